"""
Per-threshold label counting for the threshold search.
"""

from typing import NamedTuple, Optional, Sequence

import numpy as np


class LabelCounts(NamedTuple):
    left_distributions: np.ndarray   # (num_thresholds, num_labels)
    right_distributions: np.ndarray  # (num_thresholds, num_labels)
    left_counts: np.ndarray          # (num_thresholds,)
    right_counts: np.ndarray         # (num_thresholds,)


class LabelCounter:
    """
    Counts, for every candidate threshold, the weighted label histogram of
    the points falling on each side.

    Each point is placed into one of num_thresholds + 1 bins by binary search;
    prefix sums over the bins give the left side of every cut and suffix sums
    give the right side. A point whose value equals a threshold lies right of
    that threshold.
    """

    def __init__(self, num_thresholds: int, num_labels: int):
        self.num_thresholds = num_thresholds
        self.num_labels = num_labels

    def count(self, values: np.ndarray, labels: np.ndarray, thresholds: np.ndarray,
              weights: Optional[np.ndarray] = None,
              label_weights: Optional[Sequence[float]] = None) -> LabelCounts:
        """
        Args:
            values: Feature values, one per point
            labels: Labels in [0, num_labels), one per point
            thresholds: Sorted candidate thresholds
            weights: Optional per-point weights
            label_weights: Optional per-label multipliers applied after counting

        Returns:
            LabelCounts for every threshold
        """
        T, L = self.num_thresholds, self.num_labels
        bins = np.searchsorted(thresholds, values, side='right')
        histogram = np.bincount(bins * L + labels, weights=weights, minlength=(T + 1) * L)
        histogram = histogram.astype(np.float64).reshape(T + 1, L)

        left = np.cumsum(histogram, axis=0)[:-1]
        right = np.cumsum(histogram[::-1], axis=0)[::-1][1:]
        if label_weights is not None:
            label_weights = np.asarray(label_weights, dtype=np.float64)
            left = left * label_weights
            right = right * label_weights
        return LabelCounts(left, right, left.sum(axis=1), right.sum(axis=1))
