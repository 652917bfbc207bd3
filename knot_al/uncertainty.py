"""
Uncertainty scores over predicted class-probability distributions.
"""

import numpy as np
from scipy.stats import entropy


def predictive_entropy(probabilities: np.ndarray) -> np.ndarray:
    """
    Shannon entropy (natural log) of each row of a probability matrix.

    H(p) = -sum_c p_c log p_c, with 0 log 0 taken as 0. For three classes the
    result lies in [0, log 3].

    Args:
        probabilities: Array of shape (n_samples, n_classes) or (n_classes,)

    Returns:
        Entropy per row, shape (n_samples,), or a scalar array for 1-D input
    """
    probs = np.asarray(probabilities, dtype=float)
    if probs.size == 0:
        return np.zeros(probs.shape[:-1]) if probs.ndim > 1 else np.float64(0.0)
    if np.any(probs < 0):
        raise ValueError("Probabilities must be non-negative.")
    return entropy(probs, axis=-1)


def negentropy(probabilities: np.ndarray) -> np.ndarray:
    """Negative predictive entropy, a confidence-style score."""
    return -predictive_entropy(probabilities)


def max_entropy(n_classes: int) -> float:
    """Entropy of the uniform distribution over ``n_classes``."""
    if n_classes < 1:
        raise ValueError("n_classes must be at least 1")
    return float(np.log(n_classes))
