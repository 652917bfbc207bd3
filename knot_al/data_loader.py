"""
Data loading utilities for active learning experiments.

The loader reads three tables:

- a labelled feature table (path, class label, feature columns),
- an unlabelled feature table (path, feature columns),
- a pseudolabel reference table mapping path to ground-truth class.

Feature columns are given explicitly and validated against both feature tables.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

DEFAULT_CLASSES = ("sound_knot", "dry_knot", "encased_knot")


def numbered_feature_columns(prefix: str, count: int) -> list[str]:
    """Return ``[f"{prefix}1", ..., f"{prefix}{count}"]``."""
    count = int(count)
    if count <= 0:
        raise ValueError(f"Feature count must be positive, got {count}")
    return [f"{prefix}{i}" for i in range(1, count + 1)]


@dataclass
class FeatureTable:
    """
    Column-wise container for feature rows.

    Attributes:
        paths: Image path of each row, used as the stable row identifier
        features: 2-D array of feature vectors, one row per path
        labels: Class label of each row, or None for unlabelled tables
    """

    paths: list[str]
    features: np.ndarray
    labels: np.ndarray | None = None

    def __post_init__(self) -> None:
        """Validate table after initialization."""
        self.paths = [str(path) for path in self.paths]
        self.features = np.asarray(self.features, dtype=float)
        if self.features.ndim != 2:
            raise ValueError(
                f"Features must be a 2-D array, got shape {self.features.shape}"
            )
        if len(self.paths) != len(self.features):
            raise ValueError(
                f"Paths ({len(self.paths)}) and features "
                f"({len(self.features)}) must have the same length"
            )
        if self.labels is not None:
            self.labels = np.asarray(self.labels, dtype=object)
            if len(self.labels) != len(self.paths):
                raise ValueError(
                    f"Paths ({len(self.paths)}) and labels "
                    f"({len(self.labels)}) must have the same length"
                )

    def __len__(self) -> int:
        return len(self.paths)

    @property
    def is_labelled(self) -> bool:
        return self.labels is not None

    def take(self, indices: Sequence[int]) -> "FeatureTable":
        """Return a new table holding the rows at ``indices`` (in that order)."""
        indices = np.asarray(indices, dtype=int)
        return FeatureTable(
            paths=[self.paths[i] for i in indices],
            features=self.features[indices, :]
            if len(indices)
            else np.empty((0, self.features.shape[1])),
            labels=self.labels[indices] if self.labels is not None else None,
        )


@dataclass
class ActiveLearningData:
    """Everything the experiment reads from disk, loaded once at start."""

    labelled: FeatureTable
    unlabelled: FeatureTable
    reference_labels: pd.Series
    feature_columns: list[str]
    classes: list[str]


class DataLoader:
    """
    Load the labelled, unlabelled and pseudolabel reference tables.
    """

    def __init__(
        self,
        labelled_path: str,
        unlabelled_path: str,
        reference_path: str,
        feature_columns: Sequence[str],
        classes: Sequence[str] = DEFAULT_CLASSES,
        path_column: str = "path",
        label_column: str = "knot_class",
        reference_label_column: str | None = None,
    ) -> None:
        """
        Initialize the data loader.

        Args:
            labelled_path: CSV with path, class label and feature columns.
            unlabelled_path: CSV with path and feature columns.
            reference_path: CSV mapping path to ground-truth class.
            feature_columns: Explicit list of feature column names.
            classes: Allowed class labels, in reporting order.
            path_column: Column holding the image path in all three tables.
            label_column: Column holding the class label in the labelled table.
            reference_label_column: Label column in the reference table.
                Defaults to ``label_column``.
        """
        if not feature_columns:
            raise ValueError("feature_columns must list at least one column.")
        if len(set(feature_columns)) != len(feature_columns):
            raise ValueError("feature_columns contains duplicate names.")
        if len(classes) < 2:
            raise ValueError("At least two classes are required.")

        self.labelled_path = labelled_path
        self.unlabelled_path = unlabelled_path
        self.reference_path = reference_path
        self.feature_columns = [str(col) for col in feature_columns]
        self.classes = [str(label) for label in classes]
        self.path_column = path_column
        self.label_column = label_column
        self.reference_label_column = reference_label_column or label_column

    def load(self) -> ActiveLearningData:
        """
        Load all three tables and return them as ActiveLearningData.
        """
        logger.info(
            f"Loading labelled features from {self.labelled_path}, "
            f"unlabelled features from {self.unlabelled_path} "
            f"and reference labels from {self.reference_path}"
        )

        labelled = self._load_feature_table(self.labelled_path, labelled=True)
        unlabelled = self._load_feature_table(self.unlabelled_path, labelled=False)
        unlabelled = self._drop_labelled_overlap(labelled, unlabelled)
        reference_labels = self._load_reference_labels()

        class_counts = pd.Series(labelled.labels).value_counts()
        logger.info(
            "Loaded %d labelled rows (%s) and %d unlabelled rows with %d features.",
            len(labelled),
            ", ".join(f"{label}={class_counts.get(label, 0)}" for label in self.classes),
            len(unlabelled),
            len(self.feature_columns),
        )

        return ActiveLearningData(
            labelled=labelled,
            unlabelled=unlabelled,
            reference_labels=reference_labels,
            feature_columns=list(self.feature_columns),
            classes=list(self.classes),
        )

    def _read_csv(self, path: str) -> pd.DataFrame:
        csv_path = Path(path)
        if not csv_path.exists():
            raise FileNotFoundError(f"Table {csv_path} does not exist.")
        return pd.read_csv(csv_path)

    def _load_feature_table(self, path: str, labelled: bool) -> FeatureTable:
        df = self._read_csv(path)

        required = [self.path_column, *self.feature_columns]
        if labelled:
            required.append(self.label_column)
        missing = [col for col in required if col not in df.columns]
        if missing:
            raise ValueError(
                f"Table {path} is missing columns: {missing[:10]}"
                + (" ..." if len(missing) > 10 else "")
            )

        paths = df[self.path_column].astype(str)
        duplicated = paths[paths.duplicated()].unique().tolist()
        if duplicated:
            raise ValueError(
                f"Table {path} contains {len(duplicated)} duplicate paths, "
                f"e.g. {duplicated[:5]}"
            )

        features = df[self.feature_columns]
        non_numeric = [
            col
            for col in self.feature_columns
            if not pd.api.types.is_numeric_dtype(features[col])
        ]
        if non_numeric:
            raise ValueError(f"Feature columns in {path} are not numeric: {non_numeric[:10]}")
        if features.isna().to_numpy().any():
            raise ValueError(f"Feature columns in {path} contain missing values.")

        labels = None
        if labelled:
            labels = df[self.label_column].astype(str).to_numpy(dtype=object)
            unknown = sorted(set(labels) - set(self.classes))
            if unknown:
                raise ValueError(
                    f"Table {path} has labels outside {self.classes}: {unknown}"
                )

        return FeatureTable(
            paths=paths.tolist(),
            features=features.to_numpy(dtype=float),
            labels=labels,
        )

    def _drop_labelled_overlap(
        self, labelled: FeatureTable, unlabelled: FeatureTable
    ) -> FeatureTable:
        labelled_paths = set(labelled.paths)
        keep = [i for i, path in enumerate(unlabelled.paths) if path not in labelled_paths]
        if len(keep) == len(unlabelled):
            return unlabelled

        logger.warning(
            "Removed %d unlabelled rows whose paths also appear in the labelled table.",
            len(unlabelled) - len(keep),
        )
        return unlabelled.take(keep)

    def _load_reference_labels(self) -> pd.Series:
        df = self._read_csv(self.reference_path)
        missing = [
            col
            for col in (self.path_column, self.reference_label_column)
            if col not in df.columns
        ]
        if missing:
            raise ValueError(f"Reference table {self.reference_path} is missing columns: {missing}")

        df = df[[self.path_column, self.reference_label_column]]
        labels = df[self.reference_label_column]
        blank = labels.isna() | (labels.astype(str).str.strip() == "")
        if blank.any():
            logger.warning(
                "Ignoring %d reference rows without a label; their paths count as unmatched.",
                int(blank.sum()),
            )
        df = df[~blank].astype(str).drop_duplicates()
        conflicting = df[df[self.path_column].duplicated()][self.path_column].tolist()
        if conflicting:
            raise ValueError(
                f"Reference table has conflicting labels for {len(conflicting)} paths, "
                f"e.g. {conflicting[:5]}"
            )

        reference = df.set_index(self.path_column)[self.reference_label_column]
        reference.name = self.reference_label_column
        return reference
