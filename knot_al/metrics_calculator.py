"""
Classification metrics for active learning rounds.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, auc, confusion_matrix, roc_curve

from knot_al.data_loader import FeatureTable
from knot_al.predictor_trainer import PredictorTrainer
from knot_al.uncertainty import negentropy, predictive_entropy

logger = logging.getLogger(__name__)

RocCurve = Tuple[np.ndarray, np.ndarray, np.ndarray]


@dataclass
class EvaluationResult:
    """
    Predictions and metrics for one model on the test set.

    Attributes:
        classes: Class labels, in probability-column order
        paths: Test-case paths
        true_labels: Ground-truth class of each test case
        predicted_labels: Argmax class of each test case
        probabilities: Per-class probabilities, shape (n_cases, n_classes)
        entropy: Predictive entropy of each test case
        roc_curves: One-vs-rest (fpr, tpr, thresholds) per class
        auc: One-vs-rest AUC per class (NaN when a class is absent)
        confusion: Confusion matrix, rows true and columns predicted
        accuracy: Fraction of correct argmax predictions
        macro_auc: Mean of the defined per-class AUCs
        mean_negentropy: Mean negative entropy over the test cases
    """

    classes: List[str]
    paths: List[str]
    true_labels: np.ndarray
    predicted_labels: np.ndarray
    probabilities: np.ndarray
    entropy: np.ndarray
    roc_curves: Dict[str, RocCurve]
    auc: Dict[str, float]
    confusion: np.ndarray
    accuracy: float
    macro_auc: float
    mean_negentropy: float

    @property
    def correct(self) -> np.ndarray:
        return self.true_labels == self.predicted_labels

    def metrics(self) -> Dict[str, float]:
        """Flat summary metrics for the round tracker."""
        values = {
            "accuracy": self.accuracy,
            "macro_auc": self.macro_auc,
            "mean_negentropy": self.mean_negentropy,
        }
        for label in self.classes:
            values[f"auc_{label}"] = self.auc[label]
        return values

    def to_frame(self) -> pd.DataFrame:
        """One row per test case."""
        df = pd.DataFrame(
            {
                "path": self.paths,
                "true_label": self.true_labels,
                "predicted_label": self.predicted_labels,
                "entropy": self.entropy,
            }
        )
        for col, label in enumerate(self.classes):
            df[f"p_{label}"] = self.probabilities[:, col]
        return df


class MetricsCalculator:
    """
    Scores the fixed test set and computes per-round classification metrics.
    """

    def __init__(self, classes: Sequence[str]) -> None:
        """
        Args:
            classes: Class labels, in probability-column order
        """
        self.classes = [str(label) for label in classes]

    def evaluate(
        self, model: Any, trainer: PredictorTrainer, test_set: FeatureTable
    ) -> EvaluationResult:
        """Predict the test set with ``model`` and compute its metrics."""
        probabilities = trainer.predict_proba(model, test_set.features)
        return self.compute(test_set, probabilities)

    def compute(
        self, test_set: FeatureTable, probabilities: np.ndarray
    ) -> EvaluationResult:
        if test_set.labels is None:
            raise ValueError("Evaluation requires a labelled test set.")
        probabilities = np.asarray(probabilities, dtype=float)
        if probabilities.shape != (len(test_set), len(self.classes)):
            raise ValueError(
                f"Probabilities have shape {probabilities.shape}, expected "
                f"({len(test_set)}, {len(self.classes)})"
            )

        true_labels = np.asarray(test_set.labels).astype(str)
        class_array = np.asarray(self.classes)
        if len(test_set):
            predicted_labels = class_array[np.argmax(probabilities, axis=1)]
        else:
            predicted_labels = np.array([], dtype=str)
        case_entropy = predictive_entropy(probabilities)

        roc_curves: Dict[str, RocCurve] = {}
        aucs: Dict[str, float] = {}
        for col, label in enumerate(self.classes):
            roc_curves[label], aucs[label] = self._one_vs_rest_roc(
                true_labels == label, probabilities[:, col]
            )

        defined_aucs = [value for value in aucs.values() if not np.isnan(value)]
        macro_auc = float(np.mean(defined_aucs)) if defined_aucs else float("nan")

        if len(test_set):
            accuracy = float(accuracy_score(true_labels, predicted_labels))
            mean_negentropy = float(np.mean(negentropy(probabilities)))
        else:
            accuracy = float("nan")
            mean_negentropy = float("nan")

        if len(test_set):
            confusion = confusion_matrix(
                true_labels, predicted_labels, labels=self.classes
            )
        else:
            confusion = np.zeros((len(self.classes), len(self.classes)), dtype=int)

        logger.info(
            "Test metrics - accuracy: %.3f, macro AUC: %.3f, mean negentropy: %.3f",
            accuracy,
            macro_auc,
            mean_negentropy,
        )

        return EvaluationResult(
            classes=list(self.classes),
            paths=list(test_set.paths),
            true_labels=true_labels,
            predicted_labels=predicted_labels,
            probabilities=probabilities,
            entropy=np.asarray(case_entropy),
            roc_curves=roc_curves,
            auc=aucs,
            confusion=confusion,
            accuracy=self._round_metric(accuracy),
            macro_auc=self._round_metric(macro_auc),
            mean_negentropy=self._round_metric(mean_negentropy),
        )

    def _one_vs_rest_roc(
        self, is_positive: np.ndarray, scores: np.ndarray
    ) -> Tuple[RocCurve, float]:
        n_positive = int(is_positive.sum())
        if n_positive == 0 or n_positive == len(is_positive):
            empty = np.array([], dtype=float)
            return (empty, empty, empty), float("nan")
        fpr, tpr, thresholds = roc_curve(is_positive.astype(int), scores)
        return (fpr, tpr, thresholds), self._round_metric(float(auc(fpr, tpr)))

    def _round_metric(self, value: float, digits: int = 6) -> float:
        if np.isnan(value):
            return value
        return round(float(value), digits)
