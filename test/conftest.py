"""
Shared fixtures: synthetic knot feature tables.

Each class is a Gaussian blob in feature space, close enough to its
neighbours that a classifier is uncertain near the boundaries.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import pytest  # noqa: E402

from knot_al.data_loader import ActiveLearningData, FeatureTable, numbered_feature_columns

CLASSES = ["sound_knot", "dry_knot", "encased_knot"]


def _blobs(rng, labels, centers, noise):
    index = np.array([CLASSES.index(label) for label in labels])
    return centers[index] + rng.normal(scale=noise, size=(len(labels), centers.shape[1]))


def build_frames(
    n_labelled_per_class: int = 40,
    n_unlabelled: int = 200,
    n_features: int = 6,
    noise: float = 1.5,
    seed: int = 0,
):
    """Return (labelled_df, unlabelled_df, reference_df) with Feature1..FeatureN columns."""
    rng = np.random.default_rng(seed)
    centers = rng.normal(scale=2.0, size=(len(CLASSES), n_features))
    columns = numbered_feature_columns("Feature", n_features)

    labelled_labels = np.repeat(CLASSES, n_labelled_per_class)
    labelled = pd.DataFrame(_blobs(rng, labelled_labels, centers, noise), columns=columns)
    labelled.insert(0, "path", [f"labelled/img_{i:04d}.png" for i in range(len(labelled))])
    labelled.insert(0, "knot_class", labelled_labels)

    unlabelled_labels = rng.choice(CLASSES, n_unlabelled)
    unlabelled = pd.DataFrame(
        _blobs(rng, unlabelled_labels, centers, noise), columns=columns
    )
    unlabelled.insert(0, "path", [f"unlabelled/img_{i:04d}.png" for i in range(n_unlabelled)])

    reference = pd.DataFrame(
        {"path": unlabelled["path"], "knot_class": unlabelled_labels}
    )
    return labelled, unlabelled, reference


def data_from_frames(labelled, unlabelled, reference) -> ActiveLearningData:
    columns = [col for col in labelled.columns if col.startswith("Feature")]
    return ActiveLearningData(
        labelled=FeatureTable(
            paths=labelled["path"].tolist(),
            features=labelled[columns].to_numpy(),
            labels=labelled["knot_class"].to_numpy(dtype=object),
        ),
        unlabelled=FeatureTable(
            paths=unlabelled["path"].tolist(),
            features=unlabelled[columns].to_numpy(),
        ),
        reference_labels=reference.set_index("path")["knot_class"],
        feature_columns=columns,
        classes=list(CLASSES),
    )


@pytest.fixture
def make_data():
    """Factory for in-memory ActiveLearningData."""

    def _make(**kwargs) -> ActiveLearningData:
        return data_from_frames(*build_frames(**kwargs))

    return _make


@pytest.fixture
def table_files(tmp_path):
    """Write synthetic tables to CSV and return their paths and feature columns."""

    def _write(**kwargs):
        labelled, unlabelled, reference = build_frames(**kwargs)
        paths = {
            "labelled_path": tmp_path / "labelled.csv",
            "unlabelled_path": tmp_path / "unlabelled.csv",
            "reference_path": tmp_path / "pseudolabels.csv",
        }
        labelled.to_csv(paths["labelled_path"], index=False)
        unlabelled.to_csv(paths["unlabelled_path"], index=False)
        reference.to_csv(paths["reference_path"], index=False)
        feature_columns = [col for col in labelled.columns if col.startswith("Feature")]
        return {key: str(value) for key, value in paths.items()}, feature_columns

    return _write
