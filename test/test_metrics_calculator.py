"""
Unit tests for MetricsCalculator class.
"""

import numpy as np
import pytest
from sklearn.linear_model import LogisticRegression

from knot_al.data_loader import FeatureTable
from knot_al.metrics_calculator import MetricsCalculator
from knot_al.predictor_trainer import PredictorTrainer
from knot_al.state import TrainingSet

CLASSES = ["sound_knot", "dry_knot", "encased_knot"]


def _test_set(labels) -> FeatureTable:
    return FeatureTable(
        paths=[f"t{i}.png" for i in range(len(labels))],
        features=np.zeros((len(labels), 2)),
        labels=np.array(labels, dtype=object),
    )


class TestMetricsCalculator:
    """Test cases for MetricsCalculator class."""

    def test_perfect_predictions(self):
        calculator = MetricsCalculator(CLASSES)
        test_set = _test_set(["sound_knot", "dry_knot", "encased_knot", "dry_knot"])
        probs = np.array(
            [
                [0.9, 0.05, 0.05],
                [0.1, 0.8, 0.1],
                [0.1, 0.1, 0.8],
                [0.2, 0.7, 0.1],
            ]
        )

        result = calculator.compute(test_set, probs)

        assert result.accuracy == 1.0
        assert result.macro_auc == 1.0
        assert all(value == 1.0 for value in result.auc.values())
        np.testing.assert_array_equal(result.confusion, [[1, 0, 0], [0, 2, 0], [0, 0, 1]])
        assert result.predicted_labels.tolist() == test_set.labels.tolist()

    def test_accuracy_and_confusion_orientation(self):
        calculator = MetricsCalculator(CLASSES)
        test_set = _test_set(["sound_knot", "sound_knot", "dry_knot"])
        probs = np.array(
            [
                [0.6, 0.3, 0.1],
                [0.2, 0.7, 0.1],
                [0.1, 0.8, 0.1],
            ]
        )

        result = calculator.compute(test_set, probs)

        assert result.accuracy == pytest.approx(2 / 3, abs=1e-6)
        # rows are true classes, columns predicted classes
        assert result.confusion[0, 1] == 1
        assert result.confusion[1, 0] == 0
        assert result.confusion.sum() == 3
        assert result.correct.tolist() == [True, False, True]

    def test_mean_negentropy(self):
        calculator = MetricsCalculator(CLASSES)
        test_set = _test_set(["sound_knot", "dry_knot"])
        probs = np.array([[1.0, 0.0, 0.0], [1 / 3, 1 / 3, 1 / 3]])

        result = calculator.compute(test_set, probs)

        assert result.entropy[0] == pytest.approx(0.0)
        assert result.entropy[1] == pytest.approx(np.log(3))
        assert result.mean_negentropy == pytest.approx(-np.log(3) / 2, abs=1e-6)

    def test_absent_class_has_nan_auc(self):
        calculator = MetricsCalculator(CLASSES)
        test_set = _test_set(["sound_knot", "dry_knot", "sound_knot"])
        probs = np.array([[0.7, 0.2, 0.1], [0.3, 0.6, 0.1], [0.5, 0.4, 0.1]])

        result = calculator.compute(test_set, probs)

        assert np.isnan(result.auc["encased_knot"])
        assert len(result.roc_curves["encased_knot"][0]) == 0
        assert result.macro_auc == pytest.approx(
            np.mean([result.auc["sound_knot"], result.auc["dry_knot"]]), abs=1e-6
        )

    def test_empty_test_set(self):
        calculator = MetricsCalculator(CLASSES)

        result = calculator.compute(_test_set([]), np.empty((0, 3)))

        assert np.isnan(result.accuracy)
        assert np.isnan(result.macro_auc)
        assert np.isnan(result.mean_negentropy)
        assert result.confusion.shape == (3, 3)
        assert result.confusion.sum() == 0

    def test_shape_mismatch_raises(self):
        calculator = MetricsCalculator(CLASSES)
        with pytest.raises(ValueError):
            calculator.compute(_test_set(["sound_knot"]), np.ones((1, 2)))

    def test_metrics_and_frame(self):
        calculator = MetricsCalculator(CLASSES)
        test_set = _test_set(["sound_knot", "dry_knot", "encased_knot"])
        probs = np.array([[0.8, 0.1, 0.1], [0.1, 0.8, 0.1], [0.3, 0.3, 0.4]])

        result = calculator.compute(test_set, probs)
        metrics = result.metrics()
        frame = result.to_frame()

        assert set(metrics) == {
            "accuracy",
            "macro_auc",
            "mean_negentropy",
            "auc_sound_knot",
            "auc_dry_knot",
            "auc_encased_knot",
        }
        assert list(frame.columns) == [
            "path",
            "true_label",
            "predicted_label",
            "entropy",
            "p_sound_knot",
            "p_dry_knot",
            "p_encased_knot",
        ]
        assert len(frame) == 3

    def test_evaluate_uses_trainer_probabilities(self):
        rng = np.random.default_rng(0)
        labels = np.repeat(CLASSES, 10)
        offsets = {"sound_knot": -4.0, "dry_knot": 0.0, "encased_knot": 4.0}
        features = np.array([[offsets[label], 0.0] for label in labels])
        features = features + rng.normal(scale=0.2, size=features.shape)
        training_set = TrainingSet(
            paths=tuple(f"tr{i}" for i in range(len(labels))),
            features=features,
            labels=labels.astype(object),
        )
        trainer = PredictorTrainer(LogisticRegression(max_iter=500), classes=CLASSES)
        model = trainer.train(training_set)
        test_set = FeatureTable(
            paths=["a", "b", "c"],
            features=np.array([[-4.0, 0.0], [0.0, 0.0], [4.0, 0.0]]),
            labels=np.array(CLASSES, dtype=object),
        )

        result = MetricsCalculator(CLASSES).evaluate(model, trainer, test_set)

        assert result.accuracy == 1.0
        assert result.probabilities.shape == (3, 3)
