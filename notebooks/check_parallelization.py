"""Script to verify parallel tree building produces identical models.

This script verifies that IsolationForest produces identical models and
scores when trained with n_jobs=1 (sequential) vs n_jobs=-1 (parallel)
using the same random_state, and that a saved model reloads bit-identically.
"""

import os
import sys
import tempfile

# Add parent directory to path to import the package without installing it
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import numpy as np
from catchforest.features import DEFAULT_FEATURE_NAMES, compute_medians, impute_with_medians
from catchforest.isolation import IsolationForest, load_model, save_model, serialize


def generate_catches(n_samples=1000, random_state=42):
    """Generate synthetic catch features with a few implausible records and missing cells."""
    rng = np.random.default_rng(random_state)

    n_anomalies = int(n_samples * 0.02)
    n_normal = n_samples - n_anomalies

    normal = np.column_stack([
        rng.normal(20.0, 0.5, n_normal),
        rng.normal(70.0, 0.5, n_normal),
        rng.poisson(30, n_normal),
        rng.normal(120.0, 15.0, n_normal),
        rng.normal(40.0, 5.0, n_normal),
        rng.normal(27.0, 1.0, n_normal),
    ])
    anomalies = normal[:n_anomalies] * rng.uniform(3.0, 10.0, size=(n_anomalies, 6))

    X = np.vstack([normal, anomalies]).astype(np.float64)
    y = np.array([0] * n_normal + [1] * n_anomalies)

    # Knock out some cells as missing
    X[rng.random(X.shape) < 0.05] = np.nan

    indices = rng.permutation(len(X))
    return X[indices], y[indices]


def check_reproducibility():
    print("=" * 80)
    print("Checking IsolationForest reproducibility")
    print("=" * 80)

    X_raw, y = generate_catches(n_samples=1000, random_state=42)
    X_train = impute_with_medians(X_raw, compute_medians(X_raw))

    print("\n[1/3] Training with n_jobs=1 (sequential)...")
    model_seq = IsolationForest(ensemble_size=50, n_jobs=1, random_state=12345).fit(X_train, DEFAULT_FEATURE_NAMES)
    scores_seq = model_seq.scores(X_train)

    print("[2/3] Training with n_jobs=-1 (parallel)...")
    model_par = IsolationForest(ensemble_size=50, n_jobs=-1, random_state=12345).fit(X_train, DEFAULT_FEATURE_NAMES)
    scores_par = model_par.scores(X_train, n_jobs=-1)

    print("[3/3] Comparing results...")
    models_match = serialize(model_seq) == serialize(model_par)
    scores_match = np.array_equal(scores_seq, scores_par)

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "model.json")
        save_model(model_seq, path)
        reload_match = np.array_equal(load_model(path).scores(X_train), scores_seq)

    flagged = scores_seq >= 0.6
    print(f"\n{'Results':.<40} {'Status'}")
    print("-" * 80)
    print(f"{'Models identical':<40} {'PASS' if models_match else 'FAIL'}")
    print(f"{'Scores identical':<40} {'PASS' if scores_match else 'FAIL'}")
    print(f"{'Reloaded model scores identical':<40} {'PASS' if reload_match else 'FAIL'}")
    print(f"\nFlagged {flagged.sum()} records, {int((flagged & (y == 1)).sum())} of {int(y.sum())} injected anomalies")

    return models_match and scores_match and reload_match


if __name__ == "__main__":
    sys.exit(0 if check_reproducibility() else 1)
