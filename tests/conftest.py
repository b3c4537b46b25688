import numpy as np
import pytest

from catchforest.features import DEFAULT_FEATURE_NAMES


def _catch_features(n_samples, rng):
    """Catch features clustered around latitude 20, longitude 70."""
    return np.column_stack([
        rng.normal(20.0, 0.5, n_samples),
        rng.normal(70.0, 0.5, n_samples),
        rng.poisson(30, n_samples).astype(np.float64),
        rng.normal(120.0, 15.0, n_samples),
        rng.normal(40.0, 5.0, n_samples),
        rng.normal(27.0, 1.0, n_samples),
    ])


@pytest.fixture
def make_catches():
    return _catch_features


@pytest.fixture
def catches(make_catches):
    return make_catches(400, np.random.default_rng(2024))


@pytest.fixture
def feature_names():
    return list(DEFAULT_FEATURE_NAMES)
