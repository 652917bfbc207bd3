"""
Loop state threaded through active learning iterations.

Both containers are treated as immutable values: every update returns a new
object, so a past iteration's state is never changed by a later one.
"""

from dataclasses import dataclass, field

import numpy as np

from knot_al.data_loader import FeatureTable


@dataclass(frozen=True)
class TrainingSet:
    """Labelled rows the classifier is fit on. Grows, never shrinks."""

    paths: tuple[str, ...]
    features: np.ndarray
    labels: np.ndarray

    def __post_init__(self) -> None:
        if len(set(self.paths)) != len(self.paths):
            raise ValueError("TrainingSet must not contain duplicate paths.")
        if not (len(self.paths) == len(self.features) == len(self.labels)):
            raise ValueError(
                f"TrainingSet columns differ in length: paths={len(self.paths)}, "
                f"features={len(self.features)}, labels={len(self.labels)}"
            )

    @classmethod
    def from_table(cls, table: FeatureTable) -> "TrainingSet":
        if table.labels is None:
            raise ValueError("A TrainingSet can only be built from a labelled table.")
        return cls(
            paths=tuple(table.paths),
            features=np.array(table.features, dtype=float),
            labels=np.array(table.labels, dtype=object),
        )

    def __len__(self) -> int:
        return len(self.paths)

    def extend(self, batch: FeatureTable) -> "TrainingSet":
        """Return a new TrainingSet with the rows of a labelled batch appended."""
        if batch.labels is None:
            raise ValueError("Only labelled rows can be added to the TrainingSet.")
        if len(batch) == 0:
            return self

        duplicates = set(self.paths).intersection(batch.paths)
        if duplicates:
            raise ValueError(
                f"{len(duplicates)} paths are already in the TrainingSet, "
                f"e.g. {sorted(duplicates)[:5]}"
            )

        return TrainingSet(
            paths=self.paths + tuple(batch.paths),
            features=np.vstack([self.features, batch.features]),
            labels=np.concatenate([self.labels, np.asarray(batch.labels, dtype=object)]),
        )

    def class_counts(self) -> dict[str, int]:
        values, counts = np.unique(self.labels.astype(str), return_counts=True)
        return {str(v): int(c) for v, c in zip(values, counts)}


@dataclass(frozen=True)
class LoopState:
    """
    Explicit state of the active learning loop.

    Attributes:
        iteration: 1-based number of the next iteration to run
        training_set: Current TrainingSet
        already_evaluated: Unlabelled paths selected in any previous iteration
    """

    iteration: int
    training_set: TrainingSet
    already_evaluated: frozenset[str] = field(default_factory=frozenset)

    def advance(
        self, training_set: TrainingSet, selected_paths: list[str]
    ) -> "LoopState":
        repeated = self.already_evaluated.intersection(selected_paths)
        if repeated:
            raise ValueError(
                f"Paths were selected twice across iterations: {sorted(repeated)[:5]}"
            )
        return LoopState(
            iteration=self.iteration + 1,
            training_set=training_set,
            already_evaluated=self.already_evaluated.union(selected_paths),
        )
