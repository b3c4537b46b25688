"""Anomaly detection for geolocated catch records.

This package scores numeric records for how isolated they are within a batch
using an ensemble of isolation trees:
- features: numeric extraction and median imputation of records
- isolation: tree construction, forest scoring and model serialization
- pipeline: one-call training and scoring of an uploaded batch
"""

from . import features
from . import isolation
from .config import ForestConfig
from .exceptions import CatchForestError, ConfigError, MalformedInputError, ModelFormatError
from .pipeline import DetectionReport, detect_anomalies, score_records

__all__ = [
    "CatchForestError",
    "ConfigError",
    "DetectionReport",
    "ForestConfig",
    "MalformedInputError",
    "ModelFormatError",
    "detect_anomalies",
    "features",
    "isolation",
    "score_records",
]
