"""Shared helpers for Hydra/OmegaConf configuration handling."""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from omegaconf import DictConfig, ListConfig, OmegaConf

from knot_al.data_loader import DEFAULT_CLASSES, numbered_feature_columns
from knot_al.pseudolabeller import MissingLabelPolicy

logger = logging.getLogger(__name__)

_resolvers_registered = False


def ensure_resolvers() -> None:
    """Register custom OmegaConf resolvers once."""
    global _resolvers_registered
    if _resolvers_registered:
        return

    # ${numbered_columns:Feature,512} -> [Feature1, ..., Feature512]
    OmegaConf.register_new_resolver(
        "numbered_columns",
        lambda prefix, count: numbered_feature_columns(str(prefix), int(count)),
        replace=True,
    )

    _resolvers_registered = True


@dataclass
class DataConfig:
    """Container holding table paths and column names."""

    labelled_path: str
    unlabelled_path: str
    reference_path: str
    feature_columns: List[str]
    path_column: str = "path"
    label_column: str = "knot_class"
    reference_label_column: Optional[str] = None

    @classmethod
    def from_cfg(cls, cfg: DictConfig) -> "DataConfig":
        for key in ("labelled_path", "unlabelled_path", "reference_path"):
            if not cfg.get(key):
                raise ValueError(f"data.{key} must be provided in the config.")

        feature_columns = cfg.get("feature_columns")
        if isinstance(feature_columns, (ListConfig, list)):
            feature_columns = [str(col) for col in feature_columns]
        else:
            feature_columns = None
        if not feature_columns:
            raise ValueError("data.feature_columns must list at least one column.")

        return cls(
            labelled_path=str(cfg.labelled_path),
            unlabelled_path=str(cfg.unlabelled_path),
            reference_path=str(cfg.reference_path),
            feature_columns=feature_columns,
            path_column=str(cfg.get("path_column", "path")),
            label_column=str(cfg.get("label_column", "knot_class")),
            reference_label_column=cfg.get("reference_label_column", None),
        )


@dataclass
class ActiveLearningSettings:
    """
    Run parameters, fixed at start.

    ``mu`` and ``sigma`` are reserved distribution-shape parameters; they are
    validated and logged but not used by the loop.
    """

    seed: int = 42
    initial_examples_per_class: int = 20
    examples_per_iteration: int = 10
    num_iterations: int = 20
    monte_carlo_samples: int = 1000
    mu: float = 0.0
    sigma: float = 1.0
    missing_label_policy: str = MissingLabelPolicy.FAIL.value
    allow_partial_batch: bool = False
    evaluate_final: bool = True
    make_plots: bool = True
    show_progress: bool = True
    output_dir: Optional[str] = None

    def __post_init__(self) -> None:
        positive = {
            "initial_examples_per_class": self.initial_examples_per_class,
            "examples_per_iteration": self.examples_per_iteration,
            "monte_carlo_samples": self.monte_carlo_samples,
        }
        for name, value in positive.items():
            if int(value) <= 0:
                raise ValueError(f"al_settings.{name} must be positive, got {value}")
        if int(self.num_iterations) < 0:
            raise ValueError(
                f"al_settings.num_iterations must be non-negative, got {self.num_iterations}"
            )
        if float(self.sigma) <= 0:
            raise ValueError(f"al_settings.sigma must be positive, got {self.sigma}")
        # raises ValueError for unknown policies
        self.missing_label_policy = MissingLabelPolicy(self.missing_label_policy).value

    @classmethod
    def from_cfg(cls, cfg: DictConfig) -> "ActiveLearningSettings":
        values = OmegaConf.to_container(cfg, resolve=True)
        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown al_settings keys: {unknown}")
        return cls(**values)


def resolve_classes(cfg: DictConfig) -> List[str]:
    """Class labels from the config, defaulting to the three knot classes."""
    classes: Any = cfg.get("classes", None)
    if classes is None:
        return list(DEFAULT_CLASSES)
    classes = [str(label) for label in classes]
    if len(set(classes)) != len(classes):
        raise ValueError(f"classes contains duplicates: {classes}")
    return classes
