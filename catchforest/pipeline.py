"""
End-to-end scoring of one uploaded batch of catch records: feature
extraction, median imputation, training and prediction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import numpy as np
import numpy.typing as npt

from .config import ForestConfig
from .features import compute_medians, extract_numeric_features, impute_with_medians
from .isolation import DEFAULT_THRESHOLD, AnomalyResult, IsolationForest, IsolationForestModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionReport:
    """
    Outcome of detect_anomalies.
    Attributes:
        model: Forest trained on the batch.
        medians: Per-feature medians used for imputation.
        results: One AnomalyResult per input record, in record order.
    """
    model: IsolationForestModel
    medians: npt.NDArray[np.float64]
    results: list[AnomalyResult]

    @property
    def anomaly_indices(self) -> list[int]:
        return [i for i, result in enumerate(self.results) if result.is_anomaly]


def detect_anomalies(
    records: Iterable[Mapping[str, Any]],
    config: ForestConfig | None = None,
) -> DetectionReport:
    """
    Train a forest on a batch of records and score every record of it.
    Args:
        records: Catch records as field/value mappings.
        config: Forest settings, defaults to ForestConfig().
    Returns:
        DetectionReport with the model, medians and per-record results.
    """
    if config is None:
        config = ForestConfig()

    raw = extract_numeric_features(records, config.feature_names)
    medians = compute_medians(raw)
    Xs = impute_with_medians(raw, medians)

    model = IsolationForest.from_config(config).fit(Xs, config.feature_names)
    results = model.predict_batch(Xs, threshold=config.threshold, n_jobs=config.n_jobs)

    n_flagged = sum(result.is_anomaly for result in results)
    logger.info("Flagged %d of %d records (threshold=%.2f)", n_flagged, len(results), config.threshold)
    return DetectionReport(model=model, medians=medians, results=results)


def score_records(
    model: IsolationForestModel,
    records: Iterable[Mapping[str, Any]],
    medians: Any,
    threshold: float = DEFAULT_THRESHOLD,
) -> list[AnomalyResult]:
    """
    Score new records against an existing model. Missing fields are filled
    with the medians of the training batch.
    """
    raw = extract_numeric_features(records, model.feature_names)
    Xs = impute_with_medians(raw, medians)
    return model.predict_batch(Xs, threshold=threshold)
