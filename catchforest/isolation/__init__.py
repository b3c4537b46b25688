"""Isolation Forest implementation for anomaly detection.

This package provides tree construction by random axis-aligned partitioning,
ensemble scoring and a versioned model store.
"""

from .forest import DEFAULT_THRESHOLD, AnomalyResult, IsolationForest, IsolationForestModel
from .store import FORMAT_VERSION, deserialize, load_model, save_model, serialize
from .tree import IsolationTree, IsolationTreeNode, average_path_length, harmonic_number

__all__ = [
    "AnomalyResult",
    "DEFAULT_THRESHOLD",
    "FORMAT_VERSION",
    "IsolationForest",
    "IsolationForestModel",
    "IsolationTree",
    "IsolationTreeNode",
    "average_path_length",
    "deserialize",
    "harmonic_number",
    "load_model",
    "save_model",
    "serialize",
]
