"""
Unit tests for RoundTracker class.
"""

import numpy as np
import pandas as pd
import pytest

from knot_al.data_loader import FeatureTable
from knot_al.metrics_calculator import MetricsCalculator
from knot_al.query_strategies import SelectionBatch
from knot_al.round_tracker import SUMMARY_METRIC_RULES, IterationResult, RoundTracker

CLASSES = ["sound_knot", "dry_knot", "encased_knot"]


def _evaluation(n_correct: int):
    labels = np.array(["sound_knot", "dry_knot", "encased_knot", "dry_knot"], dtype=object)
    test_set = FeatureTable(paths=["t0", "t1", "t2", "t3"], features=np.zeros((4, 1)), labels=labels)
    probs = np.full((4, 3), 0.1)
    for row, label in enumerate(labels):
        col = CLASSES.index(label)
        if row >= n_correct:
            col = (col + 1) % 3
        probs[row, col] = 0.8
    return MetricsCalculator(CLASSES).compute(test_set, probs)


def _result(iteration: int, n_correct: int, selected=("u0", "u1")) -> IterationResult:
    rows = FeatureTable(paths=list(selected), features=np.zeros((len(selected), 1)))
    selection = SelectionBatch(
        strategy="MAX_ENTROPY",
        rows=rows,
        entropy=np.linspace(0.5, 1.0, len(selected)),
        pool_entropy=np.zeros(10),
    )
    return IterationResult(
        iteration=iteration,
        model=None,
        evaluation=_evaluation(n_correct),
        train_size=60 + 10 * (iteration - 1),
        pool_size=100 - 2 * (iteration - 1),
        selection=selection,
        already_evaluated=frozenset(selected),
    )


class TestRoundTracker:
    """Test cases for RoundTracker class."""

    def test_initialization(self):
        tracker = RoundTracker()
        assert tracker.rounds == []
        assert tracker.results == []

    def test_track_round(self):
        tracker = RoundTracker()

        tracker.track_round(_result(1, n_correct=3))

        row = tracker.rounds[0]
        assert row["iteration"] == 1
        assert row["train_size"] == 60
        assert row["n_selected"] == 2
        assert row["n_dropped"] == 0
        assert row["accuracy"] == 0.75
        assert row["selected_paths"] == "u0;u1"
        assert row["max_selected_entropy"] == pytest.approx(1.0)
        assert "auc_dry_knot" in row

    def test_round_without_selection(self):
        tracker = RoundTracker()
        result = _result(1, n_correct=4)
        result.selection = None

        tracker.track_round(result)

        assert tracker.rounds[0]["n_selected"] == 0
        assert np.isnan(tracker.rounds[0]["mean_selected_entropy"])

    def test_compute_summary_metrics(self):
        tracker = RoundTracker()
        tracker.track_round(_result(1, n_correct=2))
        tracker.track_round(_result(2, n_correct=4))
        tracker.track_round(_result(3, n_correct=3))

        summary = tracker.compute_summary_metrics()

        for key in SUMMARY_METRIC_RULES:
            assert key in summary
        assert summary["final_accuracy"] == 0.75
        assert summary["best_accuracy"] == 1.0
        assert summary["auc_accuracy"] == pytest.approx(0.75)
        assert summary["last_round_train_size"] == 80
        assert summary["n_rounds"] == 3

    def test_summary_requires_rounds(self):
        with pytest.raises(ValueError, match="no rounds have been tracked yet"):
            RoundTracker().compute_summary_metrics()

    def test_save_to_csv(self, tmp_path):
        tracker = RoundTracker()
        tracker.track_round(_result(1, n_correct=3))
        tracker.track_round(_result(2, n_correct=4, selected=("u2", "u3")))

        output_path = tmp_path / "results.csv"
        tracker.save_to_csv(output_path)

        df = pd.read_csv(output_path)
        assert len(df) == 2
        assert df["selected_paths"].tolist() == ["u0;u1", "u2;u3"]

    def test_save_predictions(self, tmp_path):
        tracker = RoundTracker()
        tracker.track_round(_result(1, n_correct=3))
        tracker.track_round(_result(2, n_correct=4))

        output_path = tmp_path / "predictions.csv"
        tracker.save_predictions(output_path)

        df = pd.read_csv(output_path)
        assert len(df) == 8
        assert sorted(df["iteration"].unique()) == [1, 2]
        assert {"path", "true_label", "predicted_label", "entropy"} <= set(df.columns)
