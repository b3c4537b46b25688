"""
This module contains the IsolationTreeNode and IsolationTree classes that
grow a single isolation tree by recursive random axis-aligned partitioning,
together with the path length normalisation shared by the whole forest.
"""

from __future__ import annotations

import math
from typing import Any

import numpy as np
import numpy.typing as npt

EULER_GAMMA = 0.5772156649015329

# Attempts at drawing a threshold that leaves both sides non-empty
MAX_SPLIT_ATTEMPTS = 5


def harmonic_number(n: float) -> float:
    """Approximation H(n) ~ ln(n) + gamma + 1/(2n) - 1/(12n^2)."""
    if n <= 0:
        return 0.0
    return math.log(n) + EULER_GAMMA + 1.0 / (2.0 * n) - 1.0 / (12.0 * n * n)


def average_path_length(n: float) -> float:
    """
    Average path length of an unsuccessful search in a binary search tree
    built from n points, c(n) = 2 H(n-1) - 2 (n-1) / n, and 1 for n <= 1.
    """
    if n <= 1:
        return 1.0
    return 2.0 * harmonic_number(n - 1) - 2.0 * (n - 1) / n


def _finite_column_limits(
    Xs: npt.NDArray[np.floating[Any]],
) -> tuple[npt.NDArray[np.floating[Any]], npt.NDArray[np.floating[Any]]]:
    """Per-column min and max over finite values only (inf / -inf when a column has none)."""
    finite = np.isfinite(Xs)
    mins = np.min(np.where(finite, Xs, np.inf), axis=0)
    maxs = np.max(np.where(finite, Xs, -np.inf), axis=0)
    return mins, maxs


class IsolationTreeNode:
    """
    Node in an Isolation Tree.
    A node is either internal, splitting on one feature at a threshold into
    exactly two children, or external (a leaf) remembering how many training
    rows ended in it.
    Attributes:
        depth: Depth of the node in the tree (root is 0).
        size: Number of training rows that reached this node.
        idx_feature: Index of the feature used for splitting (None for leaf nodes).
        split_threshold: Threshold value for the split (None for leaf nodes).
        children: [lower, upper] child nodes (empty for leaf nodes).
    """
    def __init__(self, depth: int, size: int = 0) -> None:
        self.depth = depth
        self.size = size

        self.idx_feature: int | None = None
        self.split_threshold: float | None = None

        self.children: list[IsolationTreeNode] = []

    @property
    def is_external(self) -> bool:
        return not self.children

    def partition_space(
        self,
        Xs: npt.NDArray[np.floating[Any]],
        indices: npt.NDArray[np.intp],
        height_limit: int,
        rng: np.random.RandomState,
    ) -> None:
        """
        Recursively partition the rows selected by indices. Column bounds are
        recomputed from the current rows at every level, so deeper splits
        follow the local density of the data.
        Args:
            Xs: Imputed training matrix of shape (n_samples, n_features).
            indices: Row indices of Xs that reached this node.
            height_limit: Depth at which branches stop growing.
            rng: Random generator owned by the tree being built.
        """
        self.size = int(indices.shape[0])
        if self.depth >= height_limit or self.size <= 1:
            return

        mins, maxs = _finite_column_limits(Xs[indices])
        valid_features = np.flatnonzero(np.isfinite(mins) & np.isfinite(maxs) & (mins < maxs))
        if valid_features.shape[0] == 0:
            return

        idx_feature = int(valid_features[rng.randint(valid_features.shape[0])])
        values = Xs[indices, idx_feature]
        finite = np.isfinite(values)

        for _ in range(1 + MAX_SPLIT_ATTEMPTS):
            split_threshold = float(rng.uniform(mins[idx_feature], maxs[idx_feature]))
            # Non-finite values behave as (threshold - 1) and go to the lower side
            mask_lower = ~finite | (values < split_threshold)
            if np.any(mask_lower) and not np.all(mask_lower):
                break
        else:
            return

        self.idx_feature = idx_feature
        self.split_threshold = split_threshold

        child_lower = IsolationTreeNode(depth=self.depth + 1)
        child_upper = IsolationTreeNode(depth=self.depth + 1)

        self.children = [child_lower, child_upper]
        self.children[0].partition_space(Xs, indices[mask_lower], height_limit, rng)
        self.children[1].partition_space(Xs, indices[~mask_lower], height_limit, rng)

    def get_path_lengths_batch(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.floating[Any]]:
        """
        Args:
            Xs: Data samples of shape (n_samples, n_features).
        Returns:
            Path lengths for each sample of shape (n_samples,): edges traversed
            plus c(size) of the leaf reached.
        """
        n_samples = Xs.shape[0]

        if self.is_external:
            return np.full(n_samples, average_path_length(self.size), dtype=np.float64)

        assert self.idx_feature is not None
        assert self.split_threshold is not None

        path_lengths = np.zeros(n_samples, dtype=np.float64)
        values = Xs[:, self.idx_feature]
        mask_lower = ~np.isfinite(values) | (values < self.split_threshold)

        if np.any(mask_lower):
            path_lengths[mask_lower] = 1 + self.children[0].get_path_lengths_batch(Xs[mask_lower])

        if np.any(~mask_lower):
            path_lengths[~mask_lower] = 1 + self.children[1].get_path_lengths_batch(Xs[~mask_lower])

        return path_lengths

    def count_nodes(self) -> int:
        return 1 + sum(child.count_nodes() for child in self.children)

    def leaf_sizes(self) -> list[int]:
        """Sizes of the leaves below this node, left to right."""
        if self.is_external:
            return [self.size]
        return [size for child in self.children for size in child.leaf_sizes()]


class IsolationTree:
    """
    Single Isolation Tree grown on a random subsample of the training rows.
    Attributes:
        root: Root node of the tree.
        subsample_size: Configured number of rows drawn for the tree.
        height_limit: Maximum depth of the tree.
        expected_path_length: c(subsample_size), used to normalise path lengths.
    """

    def __init__(self, subsample_size: int = 256, height_limit: int | None = None) -> None:
        self.subsample_size = subsample_size
        if height_limit is None:
            height_limit = int(math.ceil(math.log2(subsample_size)))
        self.height_limit = height_limit

        self.root: IsolationTreeNode | None = None
        self.expected_path_length = average_path_length(max(2, subsample_size))

    def fit(
        self,
        Xs: npt.NDArray[np.floating[Any]],
        rng: np.random.RandomState | None = None,
    ) -> IsolationTree:
        """
        Draws min(subsample_size, n_samples) rows without replacement and
        partitions them.
        Args:
            Xs: Imputed training data of shape (n_samples, n_features).
            rng: Random generator for this tree; a fresh unseeded one if None.
        Returns:
            The fitted tree.
        """
        if rng is None:
            rng = np.random.RandomState()

        n_samples = Xs.shape[0]
        subsample_indices = rng.choice(n_samples, min(self.subsample_size, n_samples), replace=False)

        self.root = IsolationTreeNode(depth=0)
        self.root.partition_space(Xs, subsample_indices, self.height_limit, rng)
        return self

    def get_path_lengths(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.floating[Any]]:
        assert self.root is not None

        return self.root.get_path_lengths_batch(Xs)

    def scores(self, Xs: npt.NDArray[np.floating[Any]]) -> npt.NDArray[np.floating[Any]]:
        """
        Single-tree anomaly scores, 2^(-path_length / c(subsample_size)).
        Args:
            Xs: Data samples of shape (n_samples, n_features).
        Returns:
            Anomaly scores for each sample of shape (n_samples,).
        """
        depths = self.get_path_lengths(Xs)
        return 2.0 ** (-depths / self.expected_path_length)
