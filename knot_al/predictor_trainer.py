"""
Model training utilities for active learning experiments.
"""

import logging
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.base import ClassifierMixin, clone
from sklearn.pipeline import Pipeline

from knot_al.errors import ModelFitFailure
from knot_al.state import TrainingSet

logger = logging.getLogger(__name__)


class PredictorTrainer:
    """
    Fits a fresh probabilistic classifier on each TrainingSet.

    The trainer never keeps a fitted model: ``train`` returns a new estimator
    each time, so models from earlier iterations stay untouched.
    """

    def __init__(
        self,
        predictor: ClassifierMixin,
        classes: Sequence[str],
        feature_transform: Optional[List[Tuple[str, Any]]] = None,
    ) -> None:
        """
        Initialize the predictor trainer.

        Args:
            predictor: Scikit-learn compatible classifier exposing predict_proba
            classes: Class labels; probability columns follow this order
            feature_transform: List of (name, transformer) steps to apply to the *features*
        """
        if not hasattr(predictor, "predict_proba"):
            raise ValueError(
                f"{predictor.__class__.__name__} does not implement predict_proba."
            )
        self.base_predictor = predictor
        self.classes = [str(label) for label in classes]
        self.feature_transform = feature_transform

        if feature_transform:
            logger.info(
                f"PredictorTrainer initialized with feature_transform={self.feature_transform}"
            )

    def _build_estimator(self) -> Any:
        """
        Create a fresh estimator, wrapped in a Pipeline when feature
        transforms are configured, e.g. [("scaler", StandardScaler())].
        """
        if self.feature_transform:
            steps = [(name, clone(step)) for name, step in self.feature_transform]
            return Pipeline(steps + [("estimator", clone(self.base_predictor))])
        return clone(self.base_predictor)

    def train(self, training_set: TrainingSet) -> Any:
        """
        Fit a fresh model on the TrainingSet.

        Args:
            training_set: Current labelled training rows

        Returns:
            The fitted estimator
        """
        return self.fit(training_set.features, training_set.labels)

    def fit(self, X_train: np.ndarray, y_train: np.ndarray) -> Any:
        if len(X_train) == 0:
            raise ModelFitFailure("Training requires at least one sample.")

        y_train = np.asarray(y_train).astype(str)
        present = set(y_train)
        absent = [label for label in self.classes if label not in present]
        if absent:
            raise ModelFitFailure(
                f"Training set has no examples of classes {absent}; "
                "cannot fit a classifier over all classes."
            )
        unknown = sorted(present - set(self.classes))
        if unknown:
            raise ModelFitFailure(f"Training set has unknown classes {unknown}.")

        logger.info(f"Total training samples: {len(X_train)}")

        estimator = self._build_estimator()
        try:
            estimator.fit(X_train, y_train)
        except (ValueError, np.linalg.LinAlgError) as exc:
            raise ModelFitFailure(
                f"{self.base_predictor.__class__.__name__} failed to fit: {exc}"
            ) from exc
        return estimator

    def predict_proba(self, model: Any, X: np.ndarray) -> np.ndarray:
        """
        Class probabilities with columns in the configured class order.
        """
        if model is None:
            raise ValueError("A fitted model is required for prediction.")
        if len(X) == 0:
            return np.empty((0, len(self.classes)))

        probabilities = model.predict_proba(X)
        model_classes = [str(label) for label in model.classes_]
        column_order = [model_classes.index(label) for label in self.classes]
        return np.asarray(probabilities)[:, column_order]
