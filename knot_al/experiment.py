"""
ActiveLearningExperiment class.

This class orchestrates the active learning loop using composed components.
Loop state is explicit: `step` takes a LoopState and returns the next one
together with the round's IterationResult.
"""

import logging
import random
from typing import Any, List, Optional, Tuple

import numpy as np
from sklearn.base import ClassifierMixin
from tqdm import tqdm

from knot_al.data_loader import ActiveLearningData, FeatureTable
from knot_al.errors import EmptyCandidatePool
from knot_al.initial_selection_strategies import InitialSelectionStrategy
from knot_al.metrics_calculator import EvaluationResult, MetricsCalculator
from knot_al.predictor_trainer import PredictorTrainer
from knot_al.pseudolabeller import MissingLabelPolicy, Pseudolabeller
from knot_al.query_strategies import QueryStrategyBase
from knot_al.round_tracker import IterationResult, RoundTracker
from knot_al.significance import compare_rounds
from knot_al.state import LoopState, TrainingSet

logger = logging.getLogger(__name__)


class ActiveLearningExperiment:
    """
    Active learning experiment for knot defect classification.

    The labelled table is split once into the initial training set and the
    fixed test set. Each round fits a classifier, scores the test set, picks
    the most uncertain unlabelled rows, pseudolabels them and adds them to
    the training set.
    """

    def __init__(
        self,
        data: ActiveLearningData,
        initial_selection_strategy: InitialSelectionStrategy,
        query_strategy: QueryStrategyBase,
        predictor: ClassifierMixin,
        examples_per_iteration: int = 10,
        random_seed: int = 42,
        feature_transforms: list[tuple[str, Any]] | None = None,
        missing_label_policy: MissingLabelPolicy | str = MissingLabelPolicy.FAIL,
        allow_partial_batch: bool = False,
        monte_carlo_samples: int = 1000,
        show_progress: bool = True,
    ) -> None:
        """
        Initialize the active learning experiment.

        Args:
            data: Labelled, unlabelled and reference tables
            initial_selection_strategy: Splitter producing the initial training set
            query_strategy: Strategy for selecting the next rows to label
            predictor: Probabilistic classifier fit each round
            examples_per_iteration: Number of rows to label in each round
            random_seed: Random seed for reproducibility
            feature_transforms: List of (name, transformer) steps to apply to the *features*
            missing_label_policy: ``fail`` or ``drop`` for paths without a reference label
            allow_partial_batch: Accept a last batch smaller than examples_per_iteration
            monte_carlo_samples: Permutations for the between-round significance tests
            show_progress: Show a progress bar over rounds
        """
        if examples_per_iteration <= 0:
            raise ValueError("examples_per_iteration must be positive")
        if monte_carlo_samples <= 0:
            raise ValueError("monte_carlo_samples must be positive")

        self.data = data
        self.classes = list(data.classes)
        self.initial_selection_strategy = initial_selection_strategy
        self.query_strategy = query_strategy
        self.examples_per_iteration = examples_per_iteration
        self.random_seed = random_seed
        self.allow_partial_batch = allow_partial_batch
        self.monte_carlo_samples = monte_carlo_samples
        self.show_progress = show_progress

        # Set random seeds for reproducibility
        random.seed(random_seed)
        np.random.seed(random_seed)

        # Split labelled rows into the initial training set and the test set
        self.train_indices, self.test_indices = initial_selection_strategy.split(
            data.labelled
        )
        self.test_set: FeatureTable = data.labelled.take(self.test_indices)
        self.initial_training_set = TrainingSet.from_table(
            data.labelled.take(self.train_indices)
        )

        # Initialize components
        self.trainer = PredictorTrainer(
            predictor, classes=self.classes, feature_transform=feature_transforms
        )
        self.metrics_calculator = MetricsCalculator(self.classes)
        self.pseudolabeller = Pseudolabeller(
            data.reference_labels, classes=self.classes, policy=missing_label_policy
        )
        self.round_tracker = RoundTracker()

        self.final_state: Optional[LoopState] = None
        self.final_result: Optional[IterationResult] = None

        logger.info(f"Start experiment with {query_strategy.name}, seed={random_seed}")
        logger.info(
            "Initial training set %d rows %s, test set %d rows, unlabelled pool %d rows.",
            len(self.initial_training_set),
            self.initial_training_set.class_counts(),
            len(self.test_set),
            len(data.unlabelled),
        )

    def initial_state(self) -> LoopState:
        """State before the first iteration."""
        return LoopState(
            iteration=1,
            training_set=self.initial_training_set,
            already_evaluated=frozenset(),
        )

    def candidate_pool(self, state: LoopState) -> FeatureTable:
        """Unlabelled rows not selected in any earlier iteration."""
        unlabelled = self.data.unlabelled
        keep = [
            i
            for i, path in enumerate(unlabelled.paths)
            if path not in state.already_evaluated
        ]
        return unlabelled.take(keep)

    def fit_and_evaluate(
        self, training_set: TrainingSet
    ) -> Tuple[Any, EvaluationResult]:
        """
        Fit a fresh model on ``training_set`` and score the fixed test set.
        """
        self._check_disjoint(training_set)
        model = self.trainer.train(training_set)
        evaluation = self.metrics_calculator.evaluate(model, self.trainer, self.test_set)
        return model, evaluation

    def step(
        self,
        state: LoopState,
        previous: Optional[IterationResult] = None,
    ) -> Tuple[IterationResult, LoopState]:
        """
        Run one iteration.

        Args:
            state: Current loop state
            previous: Result of the previous iteration, for significance tests

        Returns:
            The iteration's result and the state for the next iteration
        """
        model, evaluation = self.fit_and_evaluate(state.training_set)

        pool = self.candidate_pool(state)
        if len(pool) == 0 or (
            len(pool) < self.examples_per_iteration and not self.allow_partial_batch
        ):
            raise EmptyCandidatePool(
                available=len(pool), requested=self.examples_per_iteration
            )

        selection = self.query_strategy.select(
            model, self.trainer, pool, self.examples_per_iteration
        )
        labelled_batch = self.pseudolabeller.label(selection)

        next_state = state.advance(
            training_set=state.training_set.extend(labelled_batch.rows),
            selected_paths=selection.paths,
        )

        result = IterationResult(
            iteration=state.iteration,
            model=model,
            evaluation=evaluation,
            train_size=len(state.training_set),
            pool_size=len(pool),
            selection=selection,
            labelled_batch=labelled_batch,
            already_evaluated=next_state.already_evaluated,
            significance=self._significance(previous, evaluation, state.iteration),
        )
        return result, next_state

    def run(
        self, num_iterations: int = 20, evaluate_final: bool = True
    ) -> List[IterationResult]:
        """
        Run the active learning experiment.

        Args:
            num_iterations: Number of select-and-label rounds
            evaluate_final: Also fit and score a model on the final training set

        Returns:
            One IterationResult per round
        """
        if num_iterations < 0:
            raise ValueError("num_iterations must be non-negative")
        logger.info(f"Starting active learning run with {num_iterations} iterations")

        self.round_tracker = RoundTracker()
        state = self.initial_state()
        history: List[IterationResult] = []
        previous: Optional[IterationResult] = None

        for _ in tqdm(
            range(num_iterations), desc="AL rounds", disable=not self.show_progress
        ):
            logger.info(f"--- Iteration {state.iteration} ---")
            result, state = self.step(state, previous)
            self.round_tracker.track_round(result)
            history.append(result)
            previous = result

        self.final_state = state
        if evaluate_final:
            logger.info("--- Final evaluation ---")
            model, evaluation = self.fit_and_evaluate(state.training_set)
            self.final_result = IterationResult(
                iteration=state.iteration,
                model=model,
                evaluation=evaluation,
                train_size=len(state.training_set),
                pool_size=len(self.candidate_pool(state)),
                already_evaluated=state.already_evaluated,
                significance=self._significance(previous, evaluation, state.iteration),
            )

        logger.info(
            "Finished: training set %d rows %s, %d unlabelled paths evaluated.",
            len(state.training_set),
            state.training_set.class_counts(),
            len(state.already_evaluated),
        )
        return history

    def _significance(
        self,
        previous: Optional[IterationResult],
        evaluation: EvaluationResult,
        iteration: int,
    ) -> dict[str, float]:
        if previous is None or len(self.test_set) == 0:
            return {}
        return compare_rounds(
            previous.evaluation,
            evaluation,
            n_samples=self.monte_carlo_samples,
            seed=self.random_seed + iteration,
        )

    def _check_disjoint(self, training_set: TrainingSet) -> None:
        overlap = set(training_set.paths).intersection(self.test_set.paths)
        if overlap:
            raise ValueError(
                f"{len(overlap)} test paths leaked into the training set, "
                f"e.g. {sorted(overlap)[:5]}"
            )
