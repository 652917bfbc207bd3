"""
Error types raised by the active learning pipeline.

Every error is fatal to a run. Each one records the pipeline stage it came
from so the entry point can report where the run halted.
"""

from typing import Iterable


class ActiveLearningError(ValueError):
    """Base class for pipeline failures."""

    stage: str = "unknown"


class InsufficientClassSamples(ActiveLearningError):
    """A class has fewer labelled rows than requested for the initial split."""

    stage = "split"

    def __init__(self, label: str, available: int, requested: int) -> None:
        super().__init__(
            f"Class '{label}' has {available} labelled rows but "
            f"{requested} were requested for the initial training set"
        )
        self.label = label
        self.available = available
        self.requested = requested


class MissingPseudolabel(ActiveLearningError):
    """Selected paths have no entry in the pseudolabel reference table."""

    stage = "pseudolabel"

    def __init__(self, missing_paths: Iterable[str]) -> None:
        self.missing_paths = list(missing_paths)
        preview = ", ".join(self.missing_paths[:5])
        super().__init__(
            f"{len(self.missing_paths)} selected paths have no reference label: {preview}"
        )


class ModelFitFailure(ActiveLearningError):
    """The classifier could not be fit on the current training set."""

    stage = "fit"


class EmptyCandidatePool(ActiveLearningError):
    """Too few unlabelled rows remain to fill the next selection batch."""

    stage = "select"

    def __init__(self, available: int, requested: int) -> None:
        super().__init__(
            f"Candidate pool holds {available} rows but {requested} were requested"
        )
        self.available = available
        self.requested = requested
