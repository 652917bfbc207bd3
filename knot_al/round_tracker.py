"""
Per-iteration results and their tracking across active learning rounds.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from knot_al.metrics_calculator import EvaluationResult
from knot_al.pseudolabeller import LabelledBatch
from knot_al.query_strategies import SelectionBatch

logger = logging.getLogger(__name__)


SUMMARY_METRIC_RULES = {
    "final_accuracy": ("last", "accuracy"),
    "best_accuracy": ("max_overall", "accuracy"),
    "auc_accuracy": ("mean", "accuracy"),
    "final_macro_auc": ("last", "macro_auc"),
    "best_macro_auc": ("max_overall", "macro_auc"),
    "final_mean_negentropy": ("last", "mean_negentropy"),
}


@dataclass
class IterationResult:
    """
    Snapshot of one active learning round.

    Attributes:
        iteration: 1-based round number
        model: Classifier fit on the round's training set
        evaluation: Test-set predictions and metrics of ``model``
        train_size: Size of the training set the model was fit on
        pool_size: Candidate rows available before selection
        selection: Rows chosen this round (None for the final evaluation)
        labelled_batch: Selected rows with reference labels attached
        already_evaluated: Unlabelled paths selected up to and including this round
        significance: Permutation-test results against the previous round
    """

    iteration: int
    model: Any
    evaluation: EvaluationResult
    train_size: int
    pool_size: int
    selection: Optional[SelectionBatch] = None
    labelled_batch: Optional[LabelledBatch] = None
    already_evaluated: frozenset = field(default_factory=frozenset)
    significance: Dict[str, float] = field(default_factory=dict)


class RoundTracker:
    """
    Tracks metrics and selections across active learning rounds.
    """

    def __init__(self) -> None:
        self.rounds: List[Dict[str, Any]] = []
        self.results: List[IterationResult] = []

    def track_round(self, result: IterationResult) -> None:
        """
        Record one round as a flat row.

        Args:
            result: The finished iteration
        """
        selection = result.selection
        selected_paths = selection.paths if selection is not None else []
        selected_entropy = (
            selection.entropy if selection is not None else np.array([], dtype=float)
        )
        dropped = (
            result.labelled_batch.dropped_paths
            if result.labelled_batch is not None
            else []
        )
        self.rounds.append(
            {
                "iteration": result.iteration,
                "train_size": result.train_size,
                "pool_size": result.pool_size,
                "n_selected": len(selected_paths),
                "n_dropped": len(dropped),
                "n_already_evaluated": len(result.already_evaluated),
                **result.evaluation.metrics(),
                "mean_selected_entropy": float(np.mean(selected_entropy))
                if len(selected_entropy)
                else float("nan"),
                "max_selected_entropy": float(np.max(selected_entropy))
                if len(selected_entropy)
                else float("nan"),
                **result.significance,
                "selected_paths": ";".join(selected_paths),
            }
        )
        self.results.append(result)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.rounds)

    def compute_summary_metrics(self) -> Dict[str, float]:
        """
        Compute summary metrics defined by `SUMMARY_METRIC_RULES`.
        """
        if not self.rounds:
            raise ValueError(
                "Cannot compute summary metrics: no rounds have been tracked yet"
            )

        summary_values: Dict[str, float] = {}
        for metric_name, (rule, metric_column) in SUMMARY_METRIC_RULES.items():
            if metric_column not in self.rounds[0]:
                raise ValueError(f"Metric column {metric_column} not found in rounds")

            values = np.array([round[metric_column] for round in self.rounds], dtype=float)
            if rule == "last":
                summary_values[metric_name] = float(values[-1])
            elif rule == "max_overall":
                summary_values[metric_name] = (
                    float(np.nanmax(values)) if not np.all(np.isnan(values)) else float("nan")
                )
            elif rule == "mean":
                summary_values[metric_name] = (
                    float(np.nanmean(values)) if not np.all(np.isnan(values)) else float("nan")
                )
            else:
                raise ValueError(
                    f"Unknown summary metric rule '{rule}' for {metric_name}"
                )

        summary_values["last_round_train_size"] = int(self.rounds[-1]["train_size"])
        summary_values["n_rounds"] = len(self.rounds)
        return summary_values

    def save_to_csv(self, output_path: Path) -> None:
        """
        Save rounds to CSV file.

        Args:
            output_path: Path to save rounds
        """
        self.to_frame().to_csv(output_path, index=False)
        logger.info(f"Rounds saved to {output_path}")

    def save_predictions(self, output_path: Path) -> None:
        """
        Save per-test-case predictions of every round in long form.

        Args:
            output_path: Path to save predictions
        """
        frames = []
        for result in self.results:
            df = result.evaluation.to_frame()
            df.insert(0, "iteration", result.iteration)
            frames.append(df)
        predictions = pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()
        predictions.to_csv(output_path, index=False)
        logger.info(f"Predictions saved to {output_path}")
