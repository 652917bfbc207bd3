"""
Initial selection strategies for choosing the seed training set.

The rows a strategy selects form the initial TrainingSet; the complement of
the labelled table becomes the fixed test set.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

import numpy as np

from knot_al.data_loader import FeatureTable
from knot_al.errors import InsufficientClassSamples

logger = logging.getLogger(__name__)


class InitialSelectionStrategy(ABC):
    """Interface for selecting the initial labelled pool."""

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name or self.__class__.__name__

    @abstractmethod
    def select(self, table: FeatureTable) -> List[int]:
        """Return row indices for the initial training set."""

    def split(self, table: FeatureTable) -> Tuple[List[int], List[int]]:
        """
        Partition a labelled table into initial training and test indices.

        Returns:
            (train_indices, test_indices), both sorted ascending and disjoint
        """
        train_indices = sorted(int(i) for i in self.select(table))
        if len(set(train_indices)) != len(train_indices):
            raise ValueError(f"{self.name} selected the same row more than once.")
        chosen = set(train_indices)
        test_indices = [i for i in range(len(table)) if i not in chosen]
        logger.info(
            "%s split: %d initial training rows, %d test rows.",
            self.name,
            len(train_indices),
            len(test_indices),
        )
        return train_indices, test_indices


class PerClassInitialSelection(InitialSelectionStrategy):
    """Draw a fixed number of rows per class uniformly without replacement."""

    def __init__(
        self,
        seed: int,
        examples_per_class: int,
        classes: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__("PER_CLASS_RANDOM")
        if examples_per_class <= 0:
            raise ValueError("examples_per_class must be positive")
        self.seed = seed
        self.examples_per_class = examples_per_class
        self.classes = list(classes) if classes is not None else None

    def select(self, table: FeatureTable) -> List[int]:
        if table.labels is None:
            raise ValueError("Initial selection requires a labelled table.")

        labels = np.asarray(table.labels).astype(str)
        classes = self.classes if self.classes is not None else sorted(set(labels))
        rng = np.random.default_rng(self.seed)

        selected: List[int] = []
        for label in classes:
            class_indices = np.flatnonzero(labels == label)
            if len(class_indices) < self.examples_per_class:
                raise InsufficientClassSamples(
                    label=label,
                    available=len(class_indices),
                    requested=self.examples_per_class,
                )
            if len(class_indices) == self.examples_per_class:
                logger.warning(
                    "Class '%s' has exactly %d rows; none remain for the test set.",
                    label,
                    self.examples_per_class,
                )
            drawn = rng.choice(class_indices, self.examples_per_class, replace=False)
            selected.extend(int(i) for i in drawn)

        logger.info(
            "PER_CLASS_INITIAL: selected %d rows per class for %d classes.",
            self.examples_per_class,
            len(classes),
        )
        return selected
