"""
Label distribution helpers shared by trees, vines and the threshold search.
"""

import numpy as np
from typing import Optional, Sequence

# Total pseudo-count spread uniformly over the labels before normalizing.
DIRICHLET_PRIOR = 1e-4


def normalize(distribution: np.ndarray) -> np.ndarray:
    """Dirichlet-smoothed probability vector. Never contains an exact zero."""
    distribution = np.asarray(distribution, dtype=np.float64)
    prior = DIRICHLET_PRIOR / len(distribution)
    return (distribution + prior) / (distribution.sum() + DIRICHLET_PRIOR)


def normalize_rows(distributions: np.ndarray) -> np.ndarray:
    """Row-wise `normalize` for a (n, num_labels) array of counts."""
    distributions = np.asarray(distributions, dtype=np.float64)
    prior = DIRICHLET_PRIOR / distributions.shape[-1]
    return (distributions + prior) / (distributions.sum(axis=-1, keepdims=True) + DIRICHLET_PRIOR)


def entropy(distribution: np.ndarray) -> float:
    """Shannon entropy in bits of the smoothed distribution."""
    p = normalize(distribution)
    return float(-np.sum(p * np.log2(p)))


def entropy_rows(distributions: np.ndarray) -> np.ndarray:
    p = normalize_rows(distributions)
    return -np.sum(p * np.log2(p), axis=-1)


def label_distribution(labels: np.ndarray, num_labels: int,
                       weights: Optional[np.ndarray] = None,
                       label_weights: Optional[Sequence[float]] = None) -> np.ndarray:
    """
    Weighted label histogram.

    Args:
        labels: Integer labels in [0, num_labels); -1 entries are skipped
        num_labels: Length of the result
        weights: Optional per-point weights
        label_weights: Optional per-label multipliers applied after counting

    Returns:
        Array of shape (num_labels,)
    """
    labels = np.asarray(labels, dtype=np.int64)
    keep = labels >= 0
    point_weights = None if weights is None else np.asarray(weights, dtype=np.float64)[keep]
    counts = np.bincount(labels[keep], weights=point_weights, minlength=num_labels).astype(np.float64)
    if label_weights is not None:
        counts *= np.asarray(label_weights, dtype=np.float64)
    return counts


def is_delta(labels: np.ndarray) -> bool:
    """True when every labelled point shares one label."""
    labels = np.asarray(labels)
    labels = labels[labels >= 0]
    return labels.size > 0 and bool(np.all(labels == labels[0]))


def delta_distribution(label: int, num_labels: int, count: float = 1.0) -> np.ndarray:
    distribution = np.zeros(num_labels, dtype=np.float64)
    distribution[label] = count
    return distribution
