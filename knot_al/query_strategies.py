"""
Query strategy implementations.

A query strategy scores every row of the candidate pool with the current
model and picks the batch to be labelled next.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional

import numpy as np

from knot_al.data_loader import FeatureTable
from knot_al.predictor_trainer import PredictorTrainer
from knot_al.uncertainty import predictive_entropy

logger = logging.getLogger(__name__)


@dataclass
class SelectionBatch:
    """
    Rows chosen from the candidate pool in one iteration.

    Attributes:
        strategy: Name of the strategy that made the selection
        rows: The selected rows (unlabelled)
        entropy: Predictive entropy of each selected row
        pool_entropy: Predictive entropy of every candidate scored this round
    """

    strategy: str
    rows: FeatureTable
    entropy: np.ndarray
    pool_entropy: np.ndarray

    @property
    def paths(self) -> List[str]:
        return list(self.rows.paths)

    def __len__(self) -> int:
        return len(self.rows)


class QueryStrategyBase(ABC):
    """
    Abstract base class for query strategies.

    Each concrete strategy implements `_select_batch` to choose positions in
    the candidate pool from the entropy scores.
    """

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.__class__.__name__

    def select(
        self,
        model: Any,
        trainer: PredictorTrainer,
        candidate_pool: FeatureTable,
        batch_size: int,
    ) -> SelectionBatch:
        """
        Select the next batch of rows (template method).

        Scores the pool, handles the small-pool case and delegates to
        _select_batch() for the actual selection logic. The pool is not
        modified.

        Returns:
            SelectionBatch of min(batch_size, len(candidate_pool)) rows
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        probabilities = trainer.predict_proba(model, candidate_pool.features)
        scores = np.asarray(predictive_entropy(probabilities), dtype=float)

        if len(candidate_pool) <= batch_size:
            local_indices = list(range(len(candidate_pool)))
        else:
            local_indices = [
                int(i) for i in self._select_batch(scores, candidate_pool, batch_size)
            ]

        batch = SelectionBatch(
            strategy=self.name,
            rows=candidate_pool.take(local_indices),
            entropy=scores[local_indices],
            pool_entropy=scores,
        )
        self._log_round(batch)
        return batch

    @abstractmethod
    def _select_batch(
        self, scores: np.ndarray, candidate_pool: FeatureTable, batch_size: int
    ) -> List[int]:
        """
        Strategy-specific batch selection logic.

        Args:
            scores: Predictive entropy of each pool row
            candidate_pool: Unlabelled rows still available (longer than batch_size)
            batch_size: Number of rows to select

        Returns:
            Positions in candidate_pool of the selected rows
        """

    def _log_round(self, batch: SelectionBatch) -> None:
        if len(batch) == 0:
            logger.info(f"{self.name}: selected no rows")
            return
        logger.info(
            "%s: selected %d of %d candidates, entropy %.3f-%.3f",
            self.name,
            len(batch),
            len(batch.pool_entropy),
            float(np.min(batch.entropy)),
            float(np.max(batch.entropy)),
        )


class MaxEntropy(QueryStrategyBase):
    """Selects the rows whose predicted class distribution has highest entropy."""

    def __init__(self) -> None:
        super().__init__("MAX_ENTROPY")

    def _select_batch(
        self, scores: np.ndarray, candidate_pool: FeatureTable, batch_size: int
    ) -> List[int]:
        # stable sort: equal scores keep pool order
        order = np.argsort(-scores, kind="stable")
        return order[:batch_size].tolist()


class Random(QueryStrategyBase):
    """Baseline strategy that selects rows uniformly at random."""

    def __init__(self, seed: int) -> None:
        super().__init__("RANDOM")
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def _select_batch(
        self, scores: np.ndarray, candidate_pool: FeatureTable, batch_size: int
    ) -> List[int]:
        return self._rng.choice(len(candidate_pool), batch_size, replace=False).tolist()
