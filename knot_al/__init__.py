"""
Core components for knot defect active learning experiments.

The experiment is composed of small, focused classes: data loading, the
initial split, classifier training, test-set evaluation, uncertainty-based
case selection, pseudolabelling and round tracking.
"""

from knot_al.data_loader import ActiveLearningData, DataLoader, FeatureTable
from knot_al.experiment import ActiveLearningExperiment
from knot_al.initial_selection_strategies import (
    InitialSelectionStrategy,
    PerClassInitialSelection,
)
from knot_al.predictor_trainer import PredictorTrainer
from knot_al.pseudolabeller import LabelledBatch, Pseudolabeller
from knot_al.query_strategies import QueryStrategyBase, SelectionBatch
from knot_al.round_tracker import IterationResult, RoundTracker
from knot_al.state import LoopState, TrainingSet

__all__ = [
    "ActiveLearningData",
    "ActiveLearningExperiment",
    "DataLoader",
    "FeatureTable",
    "InitialSelectionStrategy",
    "IterationResult",
    "LabelledBatch",
    "LoopState",
    "PerClassInitialSelection",
    "PredictorTrainer",
    "Pseudolabeller",
    "QueryStrategyBase",
    "RoundTracker",
    "SelectionBatch",
    "TrainingSet",
]
