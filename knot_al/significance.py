"""
Monte Carlo significance tests for metric changes between rounds.

Two consecutive models are scored on the same fixed test set, so their
per-case scores are paired. The paired permutation test randomly swaps the
two scores of each case and counts how often the permuted mean difference is
at least as extreme as the observed one.
"""

import logging
from typing import Dict

import numpy as np
from scipy.stats import permutation_test

from knot_al.metrics_calculator import EvaluationResult
from knot_al.uncertainty import negentropy

logger = logging.getLogger(__name__)


def _mean_difference(before: np.ndarray, after: np.ndarray, axis: int = -1) -> np.ndarray:
    return np.mean(after - before, axis=axis)


def paired_permutation_test(
    before: np.ndarray,
    after: np.ndarray,
    n_samples: int,
    rng: np.random.Generator,
) -> tuple[float, float]:
    """
    Two-sided paired permutation test on the mean difference ``after - before``.

    Args:
        before: Per-case scores of the earlier model
        after: Per-case scores of the later model, same cases and order
        n_samples: Number of Monte Carlo permutations
        rng: Random generator

    Returns:
        (observed mean difference, p-value). Monte Carlo p-values use the
        (k + 1) / (n + 1) estimate, so they are never zero. When ``n_samples``
        covers every sign assignment the test is exact.
    """
    before = np.asarray(before, dtype=float)
    after = np.asarray(after, dtype=float)
    if before.shape != after.shape:
        raise ValueError(
            f"Paired scores must have the same shape: {before.shape} vs {after.shape}"
        )
    if n_samples <= 0:
        raise ValueError("n_samples must be positive")
    if before.size == 0:
        return float("nan"), float("nan")

    result = permutation_test(
        (before, after),
        _mean_difference,
        permutation_type="samples",
        vectorized=True,
        n_resamples=n_samples,
        alternative="two-sided",
        rng=rng,
    )
    return float(result.statistic), float(result.pvalue)


def compare_rounds(
    previous: EvaluationResult,
    current: EvaluationResult,
    n_samples: int,
    seed: int,
) -> Dict[str, float]:
    """
    Test whether accuracy and mean negentropy changed between two rounds.

    Returns:
        Observed deltas and permutation p-values keyed for the round tracker
    """
    if previous.paths != current.paths:
        raise ValueError("Rounds must be evaluated on the same test cases in the same order.")

    rng = np.random.default_rng(seed)
    accuracy_delta, accuracy_p = paired_permutation_test(
        previous.correct.astype(float),
        current.correct.astype(float),
        n_samples=n_samples,
        rng=rng,
    )
    negentropy_delta, negentropy_p = paired_permutation_test(
        negentropy(previous.probabilities),
        negentropy(current.probabilities),
        n_samples=n_samples,
        rng=rng,
    )
    logger.info(
        "Change vs previous round - accuracy %+.3f (p=%.3f), negentropy %+.3f (p=%.3f)",
        accuracy_delta,
        accuracy_p,
        negentropy_delta,
        negentropy_p,
    )
    return {
        "accuracy_delta": accuracy_delta,
        "accuracy_p_value": accuracy_p,
        "negentropy_delta": negentropy_delta,
        "negentropy_p_value": negentropy_p,
    }
