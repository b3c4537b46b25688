"""
This module contains the IsolationForest trainer, which grows an ensemble of
isolation trees, and the immutable IsolationForestModel it produces for scoring.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import numpy.typing as npt
from joblib import Parallel, delayed

from ..exceptions import ConfigError, MalformedInputError
from ..features import as_feature_matrix
from .tree import IsolationTree, IsolationTreeNode, average_path_length

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.6


def _fit_single_tree(
    seed: int,
    Xs: npt.NDArray[np.floating[Any]],
    subsample_size: int,
    height_limit: int,
) -> IsolationTreeNode:
    """
    Worker function to grow an isolation tree with a given seed.
    This function is designed to be called in parallel using joblib.
    Each worker owns its RandomState, so results do not depend on n_jobs.

    Args:
        seed: Random seed for this tree (integer).
        Xs: Training data of shape (n_samples, n_features).
        subsample_size: Number of samples drawn for the tree.
        height_limit: Maximum depth of the tree.
    Returns:
        Root node of the fitted tree.
    """
    tree = IsolationTree(subsample_size=subsample_size, height_limit=height_limit)
    tree.fit(Xs, rng=np.random.RandomState(seed))
    assert tree.root is not None
    return tree.root


def _score_single_tree(
    root: IsolationTreeNode,
    Xs: npt.NDArray[np.floating[Any]],
) -> npt.NDArray[np.floating[Any]]:
    """
    Worker function to compute path lengths on a single tree.
    Args:
        root: Root node of a fitted tree.
        Xs: Data samples of shape (n_samples, n_features).
    Returns:
        Path lengths for each sample of shape (n_samples,).
    """
    return root.get_path_lengths_batch(Xs)


@dataclass(frozen=True)
class AnomalyResult:
    """Score in [0, 1] of one record and whether it reaches the threshold."""
    score: float
    is_anomaly: bool


@dataclass(frozen=True)
class IsolationForestModel:
    """
    Trained isolation forest. Instances are never modified after fitting;
    retraining produces a new model.

    Attributes:
        trees: Root nodes of the ensemble, in build order.
        n_trees: Configured ensemble size.
        subsample_size: Configured number of rows drawn per tree.
        height_limit: Maximum tree depth, ceil(log2(subsample_size)).
        feature_names: Ordered names of the features the trees split on.
    """
    trees: tuple[IsolationTreeNode, ...]
    n_trees: int
    subsample_size: int
    height_limit: int
    feature_names: tuple[str, ...]

    @property
    def n_features(self) -> int:
        return len(self.feature_names)

    @property
    def expected_path_length(self) -> float:
        """c(subsample_size), with the sample size floored at 2."""
        return average_path_length(max(2, self.subsample_size))

    def path_lengths(
        self, Xs: Any, n_jobs: int = 1,
    ) -> npt.NDArray[np.floating[Any]]:
        """
        Mean isolation path length over all trees.
        Args:
            Xs: Data samples of shape (n_samples, n_features).
            n_jobs: Number of parallel jobs to score trees with.
        Returns:
            Mean path lengths of shape (n_samples,), all 0 for a model without trees.
        """
        Xs = as_feature_matrix(Xs, n_features=self.n_features)
        if not self.trees:
            return np.zeros(Xs.shape[0], dtype=np.float64)

        if n_jobs == 1:
            depth_matrix = np.zeros((Xs.shape[0], len(self.trees)))
            for tree_idx, root in enumerate(self.trees):
                depth_matrix[:, tree_idx] = root.get_path_lengths_batch(Xs)
        else:
            depth_results = Parallel(n_jobs=n_jobs, backend="loky")(
                delayed(_score_single_tree)(root, Xs) for root in self.trees
            )
            depth_matrix = np.column_stack(list(depth_results))

        return np.mean(depth_matrix, axis=1)

    def scores(
        self, Xs: Any, n_jobs: int = 1,
    ) -> npt.NDArray[np.floating[Any]]:
        """
        Anomaly scores are in (0, 1] where higher scores indicate anomalies,
        2^(-mean_path_length / c(subsample_size)). A model without trees
        scores every sample 0.
        Args:
            Xs: Data samples of shape (n_samples, n_features).
            n_jobs: Number of parallel jobs to score trees with.
        Returns:
            Anomaly scores for each sample of shape (n_samples,).
        """
        Xs = as_feature_matrix(Xs, n_features=self.n_features)
        if not self.trees:
            return np.zeros(Xs.shape[0], dtype=np.float64)

        mean_depths = self.path_lengths(Xs, n_jobs=n_jobs)
        return 2.0 ** (-mean_depths / self.expected_path_length)

    def score(self, x: Any) -> float:
        """Anomaly score of a single feature vector."""
        Xs = as_feature_matrix(x, n_features=self.n_features)
        if Xs.shape[0] != 1:
            raise MalformedInputError(f"Expected a single feature vector, got {Xs.shape[0]} rows")
        return float(self.scores(Xs)[0])

    def predict(self, x: Any, threshold: float = DEFAULT_THRESHOLD) -> AnomalyResult:
        """
        Score a single feature vector and flag it when score >= threshold.
        The default threshold of 0.6 is a calibration point, not a
        statistically derived cutoff.
        """
        s = self.score(x)
        return AnomalyResult(score=s, is_anomaly=s >= threshold)

    def predict_batch(
        self, Xs: Any, threshold: float = DEFAULT_THRESHOLD, n_jobs: int = 1,
    ) -> list[AnomalyResult]:
        """
        Predict anomaly results for samples, in row order.
        Args:
            Xs: Data samples of shape (n_samples, n_features).
            threshold: Score at or above which a sample is flagged.
            n_jobs: Number of parallel jobs to score trees with.
        Returns:
            One AnomalyResult per sample.
        """
        scores_arr = self.scores(Xs, n_jobs=n_jobs)
        return [AnomalyResult(score=float(s), is_anomaly=bool(s >= threshold)) for s in scores_arr]


class IsolationForest:
    """
    Trainer for an ensemble of Isolation Trees.

    Each tree is grown on its own random subsample of the data with its own
    random generator, so trees can be built in any order or in parallel.

    Attributes:
        ensemble_size: Number of trees in the ensemble.
        subsample_size: Number of rows drawn without replacement per tree.
        n_jobs: Number of parallel jobs to run. -1 means using all processors.
        random_state: Random seed for reproducibility.
        height_limit: Maximum tree depth, ceil(log2(subsample_size)).
    """
    def __init__(
        self,
        ensemble_size: int = 100,
        subsample_size: int = 256,
        n_jobs: int = 1,
        random_state: int | None = None,
    ) -> None:
        """
        Initialize an IsolationForest.
        Args:
            ensemble_size: Number of isolation trees to create in the ensemble.
            subsample_size: Number of rows drawn for each tree.
            n_jobs: Number of parallel jobs to run for tree building.
                - If 1 (default): sequential execution (no parallelization)
                - If -1: use all available processors
                - If > 1: use specified number of processors
            random_state: Random seed for reproducibility. If None, results will
                vary between runs. If an integer, same seed produces identical results
                in both sequential (n_jobs=1) and parallel (n_jobs=-1) modes.
        """
        if ensemble_size < 0:
            raise ConfigError(f"ensemble_size must be >= 0, got {ensemble_size}")
        if subsample_size < 1:
            raise ConfigError(f"subsample_size must be >= 1, got {subsample_size}")

        self.ensemble_size = ensemble_size
        self.subsample_size = subsample_size
        self.n_jobs = n_jobs
        self.random_state = random_state

        self.height_limit = int(math.ceil(math.log2(subsample_size)))

    @classmethod
    def from_config(cls, config: Any) -> IsolationForest:
        """Build a trainer from a ForestConfig."""
        return cls(
            ensemble_size=config.n_trees,
            subsample_size=config.subsample_size,
            n_jobs=config.n_jobs,
            random_state=config.random_state,
        )

    def fit(
        self,
        Xs: Any,
        feature_names: Sequence[str],
    ) -> IsolationForestModel:
        """
        Grows ensemble_size isolation trees, each on a random subsample of
        the data. Missing values should be imputed beforehand.

        Args:
            Xs: Training data of shape (n_samples, n_features).
            feature_names: Names of the columns of Xs, in order.
        Returns:
            The trained model. Fitting on an empty matrix yields a model
            without trees.
        """
        feature_names = tuple(feature_names)
        if len(feature_names) == 0:
            raise MalformedInputError("feature_names must contain at least one name")
        Xs = as_feature_matrix(Xs, n_features=len(feature_names))

        if Xs.shape[0] == 0:
            logger.warning("Fitting on an empty feature matrix, the model has no trees")
            return self._make_model((), feature_names)

        logger.info(
            "Fitting %d trees on %d rows x %d features (subsample_size=%d, height_limit=%d, n_jobs=%d)",
            self.ensemble_size, Xs.shape[0], Xs.shape[1],
            self.subsample_size, self.height_limit, self.n_jobs,
        )
        t0 = time.perf_counter()

        rng = np.random.RandomState(self.random_state)
        MAX_INT = np.iinfo(np.int32).max
        seeds = rng.randint(MAX_INT, size=self.ensemble_size)

        # Build trees in parallel or sequentially
        if self.n_jobs == 1:
            trees = [
                _fit_single_tree(seed, Xs, self.subsample_size, self.height_limit)
                for seed in seeds
            ]
        else:
            trees_list = Parallel(n_jobs=self.n_jobs, backend="loky")(
                delayed(_fit_single_tree)(seed, Xs, self.subsample_size, self.height_limit)
                for seed in seeds
            )
            trees = list(trees_list)  # type: ignore[arg-type]

        logger.info("Fitted %d trees in %.2fs", len(trees), time.perf_counter() - t0)
        return self._make_model(tuple(trees), feature_names)

    def _make_model(
        self,
        trees: tuple[IsolationTreeNode, ...],
        feature_names: tuple[str, ...],
    ) -> IsolationForestModel:
        return IsolationForestModel(
            trees=trees,
            n_trees=self.ensemble_size,
            subsample_size=self.subsample_size,
            height_limit=self.height_limit,
            feature_names=feature_names,
        )
