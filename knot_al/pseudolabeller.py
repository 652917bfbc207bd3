"""
Pseudolabelling: attach reference labels to selected rows, standing in for
a human annotator.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence

import numpy as np
import pandas as pd

from knot_al.data_loader import FeatureTable
from knot_al.errors import MissingPseudolabel
from knot_al.query_strategies import SelectionBatch

logger = logging.getLogger(__name__)


class MissingLabelPolicy(str, Enum):
    """What to do with a selected path that has no reference label."""

    FAIL = "fail"
    DROP = "drop"


@dataclass
class LabelledBatch:
    """
    Selected rows with their reference labels attached.

    Attributes:
        rows: Labelled rows, in selection order
        dropped_paths: Selected paths removed for lack of a reference label
    """

    rows: FeatureTable
    dropped_paths: List[str] = field(default_factory=list)

    @property
    def paths(self) -> List[str]:
        return list(self.rows.paths)

    def __len__(self) -> int:
        return len(self.rows)


class Pseudolabeller:
    """Looks up ground-truth classes for selected rows by path."""

    def __init__(
        self,
        reference_labels: pd.Series,
        classes: Sequence[str],
        policy: MissingLabelPolicy | str = MissingLabelPolicy.FAIL,
    ) -> None:
        """
        Args:
            reference_labels: Series indexed by path holding the class label
            classes: Allowed class labels
            policy: ``fail`` raises MissingPseudolabel, ``drop`` removes the row
        """
        if not reference_labels.index.is_unique:
            raise ValueError("Reference labels must have one entry per path.")
        # a path with a blank label is treated as having no label
        labelled = reference_labels.notna() & (
            reference_labels.astype(str).str.strip() != ""
        )
        self.reference_labels = reference_labels[labelled].astype(str)
        self.classes = [str(label) for label in classes]
        self.policy = MissingLabelPolicy(policy)

    def label(self, selection: SelectionBatch) -> LabelledBatch:
        """
        Attach reference labels to every row of a SelectionBatch.

        Raises:
            MissingPseudolabel: if a path is absent and the policy is ``fail``
            ValueError: if a reference label is not one of the known classes
        """
        rows = selection.rows
        found = np.array(
            [path in self.reference_labels.index for path in rows.paths], dtype=bool
        )
        missing = [path for path, ok in zip(rows.paths, found) if not ok]

        if missing:
            if self.policy is MissingLabelPolicy.FAIL:
                raise MissingPseudolabel(missing)
            logger.warning(
                "Dropping %d selected rows without a reference label: %s",
                len(missing),
                missing[:5],
            )

        kept = rows.take(np.flatnonzero(found))
        labels = self.reference_labels.loc[kept.paths].to_numpy(dtype=object)
        unknown = sorted(set(labels) - set(self.classes))
        if unknown:
            raise ValueError(f"Reference labels outside {self.classes}: {unknown}")

        labelled = FeatureTable(paths=kept.paths, features=kept.features, labels=labels)
        logger.info(
            "Pseudolabelled %d rows (%s).",
            len(labelled),
            ", ".join(
                f"{label}={int(np.sum(labels == label))}" for label in self.classes
            ),
        )
        return LabelledBatch(rows=labelled, dropped_paths=missing)
