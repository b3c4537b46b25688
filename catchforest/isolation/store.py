"""
This module encodes a trained IsolationForestModel as a versioned,
JSON-compatible structure and restores it without retraining.

Split thresholds are stored as Python floats; the json module writes their
shortest round-trip repr, so a reloaded model scores bit-identically.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Mapping

from ..exceptions import ModelFormatError
from .forest import IsolationForestModel
from .tree import IsolationTreeNode

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def _encode_node(node: IsolationTreeNode) -> dict[str, Any]:
    if node.is_external:
        return {"external": True, "size": node.size}

    assert node.idx_feature is not None
    assert node.split_threshold is not None
    return {
        "external": False,
        "size": node.size,
        "feature": node.idx_feature,
        "split": node.split_threshold,
        "left": _encode_node(node.children[0]),
        "right": _encode_node(node.children[1]),
    }


def _decode_node(payload: Any, depth: int, n_features: int, height_limit: int) -> IsolationTreeNode:
    if not isinstance(payload, Mapping):
        raise ModelFormatError(f"Tree node at depth {depth} is not a mapping")
    try:
        node = IsolationTreeNode(depth=depth, size=int(payload["size"]))
        if node.size < 0:
            raise ModelFormatError(f"Tree node at depth {depth} has negative size {node.size}")
        if payload["external"]:
            return node

        idx_feature = int(payload["feature"])
        if not 0 <= idx_feature < n_features:
            raise ModelFormatError(
                f"Feature index {idx_feature} out of range for {n_features} features"
            )
        node.idx_feature = idx_feature
        if depth >= height_limit:
            raise ModelFormatError(f"Internal node at depth {depth} exceeds height limit {height_limit}")
        node.split_threshold = float(payload["split"])
        node.children = [
            _decode_node(payload["left"], depth + 1, n_features, height_limit),
            _decode_node(payload["right"], depth + 1, n_features, height_limit),
        ]
    except ModelFormatError:
        raise
    except KeyError as e:
        raise ModelFormatError(f"Tree node at depth {depth} is missing key {e}") from e
    except (TypeError, ValueError) as e:
        raise ModelFormatError(f"Invalid tree node at depth {depth}: {e}") from e
    return node


def serialize(model: IsolationForestModel) -> dict[str, Any]:
    """
    Args:
        model: Trained model.
    Returns:
        JSON-compatible dict holding the format version, hyperparameters,
        feature names and every tree in build order.
    """
    return {
        "format_version": FORMAT_VERSION,
        "n_trees": model.n_trees,
        "subsample_size": model.subsample_size,
        "height_limit": model.height_limit,
        "feature_names": list(model.feature_names),
        "trees": [_encode_node(root) for root in model.trees],
    }


def deserialize(payload: Mapping[str, Any]) -> IsolationForestModel:
    """
    Rebuild a model from the output of serialize.
    Raises:
        ModelFormatError: unknown format version or malformed structure.
    """
    if not isinstance(payload, Mapping):
        raise ModelFormatError("Serialized model must be a mapping")

    version = payload.get("format_version")
    if version != FORMAT_VERSION:
        raise ModelFormatError(
            f"Unsupported model format version {version!r}, expected {FORMAT_VERSION}"
        )

    try:
        feature_names = tuple(str(name) for name in payload["feature_names"])
        n_trees = int(payload["n_trees"])
        subsample_size = int(payload["subsample_size"])
        height_limit = int(payload["height_limit"])
        trees_payload = list(payload["trees"])
    except KeyError as e:
        raise ModelFormatError(f"Serialized model is missing key {e}") from e
    except (TypeError, ValueError) as e:
        raise ModelFormatError(f"Invalid serialized model: {e}") from e

    if len(feature_names) == 0:
        raise ModelFormatError("Serialized model has no feature names")

    try:
        trees = tuple(_decode_node(tree, 0, len(feature_names), height_limit) for tree in trees_payload)
    except RecursionError as e:
        raise ModelFormatError("Serialized trees are nested too deeply") from e
    return IsolationForestModel(
        trees=trees,
        n_trees=n_trees,
        subsample_size=subsample_size,
        height_limit=height_limit,
        feature_names=feature_names,
    )


def save_model(model: IsolationForestModel, path: str | os.PathLike[str]) -> None:
    """Write the serialized model to a JSON file."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(serialize(model), f)
    logger.info("Saved model with %d trees to %s (format version %d)", len(model.trees), path, FORMAT_VERSION)


def load_model(path: str | os.PathLike[str]) -> IsolationForestModel:
    """Read a model written by save_model."""
    with open(path, "r", encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as e:
            raise ModelFormatError(f"{path} is not valid JSON: {e}") from e

    model = deserialize(payload)
    logger.info("Loaded model with %d trees from %s (format version %d)", len(model.trees), path, FORMAT_VERSION)
    return model
