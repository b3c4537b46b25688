"""
This module turns loosely typed catch records into fixed-width numeric
feature matrices and fills missing cells with per-column medians.
Missing values are carried as NaN until imputation.
"""

from __future__ import annotations

import logging
import numbers
import re
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
import numpy.typing as npt

from ..exceptions import MalformedInputError

logger = logging.getLogger(__name__)

DEFAULT_FEATURE_NAMES: tuple[str, ...] = (
    "latitude",
    "longitude",
    "quantity",
    "weight_kg",
    "depth_m",
    "water_temperature",
)

# Longest leading decimal number, the way spreadsheet cells like "12kg" are read
_LEADING_NUMBER = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _check_feature_names(feature_names: Sequence[str]) -> list[str]:
    names = list(feature_names)
    if len(names) == 0:
        raise MalformedInputError("feature_names must contain at least one name")
    if len(set(names)) != len(names):
        raise MalformedInputError(f"Duplicate feature names: {names}")
    return names


def _to_float(value: Any) -> float:
    """Numeric value of a record field, or NaN when it is absent or not numeric."""
    if value is None or isinstance(value, bool):
        return np.nan
    if isinstance(value, numbers.Real):
        return float(value)
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if match is None:
            return np.nan
        return float(match.group(1))
    return np.nan


def extract_numeric_features(
    records: Iterable[Mapping[str, Any]],
    feature_names: Sequence[str],
) -> npt.NDArray[np.float64]:
    """
    Read the named fields of every record into a float matrix.
    Fields that are missing, non-numeric or unparsable text become NaN;
    no error is raised for them.
    Args:
        records: Field/value mappings, one per catch record.
        feature_names: Ordered field names to extract.
    Returns:
        Matrix of shape (n_records, len(feature_names)).
    """
    names = _check_feature_names(feature_names)

    rows = [[_to_float(record.get(name)) for name in names] for record in records]
    if not rows:
        return np.empty((0, len(names)), dtype=np.float64)
    return np.array(rows, dtype=np.float64)


def as_feature_matrix(
    data: Any,
    n_features: int | None = None,
) -> npt.NDArray[np.float64]:
    """
    Validate and convert a feature matrix (or a single feature vector) to a
    2-D float64 array.
    Args:
        data: Array-like of shape (n_samples, n_features) or (n_features,).
        n_features: Expected column count, if known.
    Returns:
        Array of shape (n_samples, n_features).
    """
    if isinstance(data, np.ndarray):
        Xs = data.astype(np.float64, copy=False)
    else:
        rows = list(data)
        if rows and all(isinstance(v, numbers.Real) for v in rows):
            Xs = np.array(rows, dtype=np.float64)
        else:
            try:
                lengths = {len(row) for row in rows}
            except TypeError as e:
                raise MalformedInputError("Feature matrix rows must be sequences of numbers") from e
            if len(lengths) > 1:
                raise MalformedInputError(f"Rows of unequal length: {sorted(lengths)}")
            width = lengths.pop() if lengths else (n_features or 0)
            Xs = np.array(rows, dtype=np.float64).reshape(len(rows), width)

    if Xs.ndim == 1:
        Xs = Xs.reshape(1, -1)
    if Xs.ndim != 2:
        raise MalformedInputError(f"Expected a 2-D feature matrix, got {Xs.ndim} dimensions")
    if n_features is not None and Xs.shape[1] != n_features:
        raise MalformedInputError(
            f"Expected {n_features} features per vector, got {Xs.shape[1]}"
        )
    return Xs


def compute_medians(Xs: Any) -> npt.NDArray[np.float64]:
    """
    Median of the finite values of every column. Columns without any finite
    value get a median of 0.
    Args:
        Xs: Feature matrix of shape (n_samples, n_features).
    Returns:
        Medians of shape (n_features,).
    """
    Xs = as_feature_matrix(Xs)
    medians = np.zeros(Xs.shape[1], dtype=np.float64)

    for idx_feature in range(Xs.shape[1]):
        column = Xs[:, idx_feature]
        column = np.sort(column[np.isfinite(column)])
        n = column.shape[0]
        if n == 0:
            logger.warning("Feature %d has no finite values, median defaults to 0", idx_feature)
            continue
        if n % 2 == 1:
            medians[idx_feature] = column[n // 2]
        else:
            medians[idx_feature] = (column[n // 2 - 1] + column[n // 2]) / 2.0

    return medians


def impute_with_medians(Xs: Any, medians: Any) -> npt.NDArray[np.float64]:
    """
    Replace every non-finite cell with its column median. Finite cells are
    passed through unchanged and the input is not modified.
    Args:
        Xs: Feature matrix of shape (n_samples, n_features).
        medians: Per-column fill values of shape (n_features,).
    Returns:
        Imputed copy of Xs.
    """
    medians = np.asarray(medians, dtype=np.float64)
    Xs = as_feature_matrix(Xs, n_features=medians.shape[0])

    missing = ~np.isfinite(Xs)
    if logger.isEnabledFor(logging.DEBUG):
        for idx_feature, count in enumerate(missing.sum(axis=0)):
            if count:
                logger.debug("Imputed %d cells of feature %d with %r", count, idx_feature, medians[idx_feature])

    return np.where(missing, medians[np.newaxis, :], Xs)
