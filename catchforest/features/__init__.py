"""Feature preparation: numeric extraction and median imputation of catch records."""

from .preparation import (
    DEFAULT_FEATURE_NAMES,
    as_feature_matrix,
    compute_medians,
    extract_numeric_features,
    impute_with_medians,
)

__all__ = [
    "DEFAULT_FEATURE_NAMES",
    "as_feature_matrix",
    "compute_medians",
    "extract_numeric_features",
    "impute_with_medians",
]
