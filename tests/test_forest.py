"""Tests for forest training, scoring and prediction."""

import numpy as np
import pytest

from catchforest.exceptions import ConfigError, MalformedInputError
from catchforest.isolation import AnomalyResult, IsolationForest, serialize


def test_fit_builds_configured_ensemble(catches, feature_names):
    model = IsolationForest(ensemble_size=20, subsample_size=64, random_state=0).fit(catches, feature_names)

    assert len(model.trees) == 20
    assert model.n_trees == 20
    assert model.subsample_size == 64
    assert model.height_limit == 6
    assert model.feature_names == tuple(feature_names)
    for root in model.trees:
        assert root.size == 64


def test_default_hyperparameters():
    forest = IsolationForest()
    assert forest.ensemble_size == 100
    assert forest.subsample_size == 256
    assert forest.height_limit == 8


def test_invalid_hyperparameters_are_rejected():
    with pytest.raises(ConfigError):
        IsolationForest(subsample_size=0)
    with pytest.raises(ConfigError):
        IsolationForest(ensemble_size=-1)


def test_scores_are_bounded_and_deterministic(catches, feature_names):
    model = IsolationForest(ensemble_size=30, subsample_size=128, random_state=1).fit(catches, feature_names)

    rng = np.random.default_rng(5)
    probes = np.vstack([catches[:50], rng.uniform(-500, 500, size=(50, 6))])
    first = model.scores(probes)
    second = model.scores(probes)

    assert np.all(first > 0.0) and np.all(first <= 1.0)
    assert np.array_equal(first, second)


def test_single_and_batch_scores_agree(catches, feature_names):
    model = IsolationForest(ensemble_size=25, subsample_size=64, random_state=2).fit(catches, feature_names)
    batch = model.scores(catches[:10])
    singles = [model.score(row) for row in catches[:10]]
    assert np.array_equal(batch, np.array(singles))


def test_same_seed_gives_same_model(catches, feature_names):
    a = IsolationForest(ensemble_size=10, subsample_size=32, random_state=9).fit(catches, feature_names)
    b = IsolationForest(ensemble_size=10, subsample_size=32, random_state=9).fit(catches, feature_names)
    assert serialize(a) == serialize(b)


def test_parallel_build_matches_sequential(catches, feature_names):
    sequential = IsolationForest(ensemble_size=12, subsample_size=64, n_jobs=1, random_state=11)
    parallel = IsolationForest(ensemble_size=12, subsample_size=64, n_jobs=2, random_state=11)

    model_seq = sequential.fit(catches, feature_names)
    model_par = parallel.fit(catches, feature_names)

    assert serialize(model_seq) == serialize(model_par)
    assert np.array_equal(model_seq.scores(catches), model_par.scores(catches, n_jobs=2))


def test_far_point_scores_higher_than_cluster_point(feature_names):
    rng = np.random.default_rng(0)
    Xs = np.column_stack([
        rng.normal(20.0, 1.0, 300),
        rng.normal(70.0, 1.0, 300),
        rng.normal(0.0, 1.0, (300, 4)),
    ])
    dense = np.array([20.0, 70.0, 0.0, 0.0, 0.0, 0.0])
    far = np.array([1000.0, 1000.0, 0.0, 0.0, 0.0, 0.0])

    dense_scores, far_scores = [], []
    for seed in range(10):
        model = IsolationForest(ensemble_size=50, subsample_size=128, random_state=seed).fit(Xs, feature_names)
        dense_scores.append(model.score(dense))
        far_scores.append(model.score(far))

    assert np.mean(far_scores) > np.mean(dense_scores)
    assert max(dense_scores) < 0.55


def test_predict_label_matches_score(catches, feature_names):
    model = IsolationForest(ensemble_size=30, subsample_size=64, random_state=3).fit(catches, feature_names)
    rng = np.random.default_rng(8)
    probes = np.vstack([catches[:100], rng.uniform(-200, 200, size=(100, 6))])

    for threshold in (0.4, 0.6, 0.75):
        for row in probes:
            result = model.predict(row, threshold)
            assert isinstance(result, AnomalyResult)
            assert result.is_anomaly == (result.score >= threshold)

    results = model.predict_batch(probes)
    assert [r.is_anomaly for r in results] == [r.score >= 0.6 for r in results]


def test_gaussian_cluster_with_far_outliers():
    rng = np.random.default_rng(42)
    cluster = rng.normal(0.0, 1.0, size=(500, 2))
    angles = rng.uniform(0.0, 2.0 * np.pi, 10)
    radii = rng.uniform(12.0, 20.0, 10)
    outliers = np.column_stack([radii * np.cos(angles), radii * np.sin(angles)])
    Xs = np.vstack([cluster, outliers])

    model = IsolationForest(ensemble_size=50, subsample_size=32, random_state=42).fit(Xs, ["x", "y"])
    scores = model.scores(Xs)

    assert np.sum(scores[500:] >= 0.6) >= 8
    assert np.sum(scores[:500] >= 0.6) <= 25


def test_constant_data_scores_one_half(feature_names):
    Xs = np.tile([20.0, 70.0, 5.0, 10.0, 30.0, 26.0], (300, 1))
    model = IsolationForest(ensemble_size=10, subsample_size=256, random_state=0).fit(Xs, feature_names)

    assert all(root.is_external for root in model.trees)
    assert model.score(Xs[0]) == pytest.approx(0.5)


def test_empty_model_scores_zero(feature_names):
    model = IsolationForest(ensemble_size=10).fit(np.empty((0, 6)), feature_names)

    assert model.trees == ()
    assert model.score([20.0, 70.0, 5.0, 10.0, 30.0, 26.0]) == 0.0
    result = model.predict([20.0, 70.0, 5.0, 10.0, 30.0, 26.0])
    assert result == AnomalyResult(score=0.0, is_anomaly=False)


def test_zero_trees_requested_scores_zero(catches, feature_names):
    model = IsolationForest(ensemble_size=0).fit(catches, feature_names)
    assert np.array_equal(model.scores(catches[:5]), np.zeros(5))


def test_malformed_inputs_fail_fast(catches, feature_names):
    forest = IsolationForest(ensemble_size=5, subsample_size=16, random_state=0)

    with pytest.raises(MalformedInputError):
        forest.fit(catches, [])
    with pytest.raises(MalformedInputError):
        forest.fit([[1.0, 2.0], [3.0]], ["a", "b"])
    with pytest.raises(MalformedInputError):
        forest.fit(catches, feature_names[:3])

    model = forest.fit(catches, feature_names)
    with pytest.raises(MalformedInputError):
        model.score([20.0, 70.0])
    with pytest.raises(MalformedInputError):
        model.score(catches[:2])


def test_empty_model_path_lengths_are_zero(feature_names):
    model = IsolationForest(ensemble_size=4).fit(np.empty((0, 6)), feature_names)
    probes = np.zeros((3, 6))

    assert np.array_equal(model.path_lengths(probes), np.zeros(3))
    assert np.array_equal(model.path_lengths(probes, n_jobs=2), np.zeros(3))


def test_single_row_batch_scores_without_error(feature_names):
    row = np.array([[20.0, 70.0, 5.0, 10.0, 30.0, 26.0]])
    model = IsolationForest(ensemble_size=10, random_state=0).fit(row, feature_names)

    assert len(model.trees) == 10
    assert all(root.is_external and root.size == 1 for root in model.trees)
    # path length c(1) = 1 against c(256)
    expected = 2.0 ** (-1.0 / model.expected_path_length)
    assert model.score(row[0]) == pytest.approx(expected)
    assert 0.0 < model.score(row[0]) <= 1.0
