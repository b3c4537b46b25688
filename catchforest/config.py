"""
Configuration for training and scoring an isolation forest.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .features import DEFAULT_FEATURE_NAMES


@dataclass(frozen=True)
class ForestConfig:
    """
    Hyperparameters of the isolation forest and the anomaly cutoff.

    Attributes:
        n_trees: Number of isolation trees in the ensemble.
        subsample_size: Number of rows drawn without replacement for each tree.
        threshold: Score at or above which a record is flagged. 0.6 is a
            calibration point, tune it per dataset.
        n_jobs: Number of parallel jobs for tree building (1 = sequential, -1 = all processors).
        random_state: Seed for reproducible forests, or None.
        feature_names: Ordered record fields used as features.
    """
    n_trees: int = 100
    subsample_size: int = 256
    threshold: float = 0.6
    n_jobs: int = 1
    random_state: int | None = None
    feature_names: tuple[str, ...] = DEFAULT_FEATURE_NAMES

    def __post_init__(self) -> None:
        if self.n_trees < 0:
            raise ConfigError(f"n_trees must be >= 0, got {self.n_trees}")
        if self.subsample_size < 1:
            raise ConfigError(f"subsample_size must be >= 1, got {self.subsample_size}")
        if self.n_jobs == 0:
            raise ConfigError("n_jobs must be a non-zero integer")
        if not 0.0 <= self.threshold <= 1.0:
            raise ConfigError(f"threshold must lie in [0, 1], got {self.threshold}")
        # YAML hands us lists
        object.__setattr__(self, "feature_names", tuple(self.feature_names))
        if len(self.feature_names) == 0:
            raise ConfigError("feature_names must not be empty")

    @property
    def height_limit(self) -> int:
        """Maximum tree depth, ceil(log2(subsample_size))."""
        return int(math.ceil(math.log2(self.subsample_size)))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> ForestConfig:
        known = {f.name for f in fields(cls)}
        unknown = set(mapping) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**dict(mapping))

    @classmethod
    def from_yaml(cls, path: str) -> ForestConfig:
        """
        Load a configuration file. The parameters may sit at the top level
        or under a ``forest:`` key.
        """
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}

        if not isinstance(cfg, dict):
            raise ConfigError(f"{path}: expected a mapping at the top level")
        if "forest" in cfg:
            cfg = cfg["forest"] or {}
            if not isinstance(cfg, dict):
                raise ConfigError(f"{path}: 'forest' must be a mapping")
        return cls.from_mapping(cfg)
