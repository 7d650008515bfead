"""
Decider: one feature plus one threshold, and the randomized threshold search
that picks the threshold.
"""

from enum import IntEnum
from typing import Dict, List, NamedTuple, Optional, Sequence

import numpy as np

from .data_point import DataPoint
from .distribution import DIRICHLET_PRIOR
from .exceptions import InvalidFeatureValueError
from .features import Feature, FeatureFactory
from .label_counter import LabelCounter, LabelCounts
from Util.ThreadsafeRandom import ThreadsafeRandom

# Score reported when the best cut leaves one side empty.
NO_SPLIT = float('-inf')


class Decision(IntEnum):
    LEFT = 0
    RIGHT = 1


class ThresholdChoice(NamedTuple):
    left_distribution: np.ndarray
    right_distribution: np.ndarray
    score: float


def _smoothed_entropy(distributions: np.ndarray, counts: np.ndarray) -> np.ndarray:
    num_labels = distributions.shape[-1]
    dirichlet = DIRICHLET_PRIOR / num_labels
    p = (distributions + dirichlet) / (counts[:, np.newaxis] + num_labels * dirichlet)
    return -np.sum(p * np.log2(p), axis=1)


def entropy_gain(counts: LabelCounts) -> np.ndarray:
    """
    Negative size-weighted child entropy of every cut:
    -(|L| H(L) + |R| H(R)) / (|L| + |R|).
    """
    left_entropy = _smoothed_entropy(counts.left_distributions, counts.left_counts)
    right_entropy = _smoothed_entropy(counts.right_distributions, counts.right_counts)
    total = counts.left_counts + counts.right_counts
    with np.errstate(divide='ignore', invalid='ignore'):
        gain = -(counts.left_counts * left_entropy + counts.right_counts * right_entropy) / total
    return np.where(total > 0, gain, NO_SPLIT)


def split_energy(counts: LabelCounts, left_prior: np.ndarray, right_prior: np.ndarray) -> np.ndarray:
    """
    Total weighted entropy |L| H(L) + |R| H(R) of two children that already
    hold `left_prior` and `right_prior` and receive each cut's counts.
    Cuts that leave one side without points are +inf.
    """
    left = counts.left_distributions + left_prior
    right = counts.right_distributions + right_prior
    left_total = left.sum(axis=1)
    right_total = right.sum(axis=1)
    energy = left_total * _smoothed_entropy(left, left_total) + right_total * _smoothed_entropy(right, right_total)
    valid = (counts.left_counts > 0) & (counts.right_counts > 0)
    return np.where(valid, energy, np.inf)


class Decider:
    """
    Couples a Feature with a threshold: `value < threshold` goes left and
    everything else, including equality, goes right.

    While training, a decider holds scratch arrays (loaded values, labels,
    candidate thresholds) that are dropped when it is pickled.
    """

    _SCRATCH = ('_values', '_labels', '_weights', '_thresholds', '_min_value', '_max_value')

    def __init__(self, feature: Feature, threshold: float = 0.0):
        self.feature = feature
        self.threshold = float(threshold)
        self._reset_scratch()

    @classmethod
    def from_factory(cls, factory: FeatureFactory) -> 'Decider':
        return cls(factory.create())

    def _reset_scratch(self):
        self._values: Optional[np.ndarray] = None
        self._labels: Optional[np.ndarray] = None
        self._weights: Optional[np.ndarray] = None
        self._thresholds: Optional[np.ndarray] = None
        self._min_value = np.inf
        self._max_value = -np.inf

    def __getstate__(self):
        state = self.__dict__.copy()
        for key in self._SCRATCH:
            state.pop(key, None)
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._reset_scratch()

    @property
    def name(self) -> str:
        return self.feature.name

    @property
    def is_loaded(self) -> bool:
        return self._values is not None

    @property
    def value_range(self):
        return self._min_value, self._max_value

    def __str__(self):
        return f"{self.feature} {self.threshold}"

    def __repr__(self):
        return f"Decider({self.feature!r}, {self.threshold})"

    def _checked(self, value: float) -> float:
        if not np.isfinite(value):
            raise InvalidFeatureValueError(self.feature.name, value)
        return value

    def compute(self, point: DataPoint, building: bool = False) -> float:
        return self._checked(float(self.feature.compute(point, building)))

    def load_data(self, points: Sequence[DataPoint], building: bool = True) -> None:
        """Compute and cache the feature value of every point. Points are not modified."""
        values = np.fromiter((self.feature.compute(p, building) for p in points),
                             dtype=np.float64, count=len(points))
        labels = np.fromiter((p.label for p in points), dtype=np.int64, count=len(points))
        weights = np.fromiter((p.weight for p in points), dtype=np.float64, count=len(points))
        self.set_data(values, labels, weights)

    def set_data(self, values: np.ndarray, labels: np.ndarray, weights: Optional[np.ndarray] = None) -> None:
        """Load pre-computed feature values."""
        values = np.asarray(values, dtype=np.float64)
        bad = ~np.isfinite(values)
        if np.any(bad):
            raise InvalidFeatureValueError(self.feature.name, float(values[np.argmax(bad)]))
        self._values = values
        self._labels = np.asarray(labels, dtype=np.int64)
        self._weights = None if weights is None else np.asarray(weights, dtype=np.float64)
        if values.size:
            self._min_value = float(values.min())
            self._max_value = float(values.max())

    def _generate_thresholds(self, num_thresholds: int) -> np.ndarray:
        mean = float(self._values.mean()) if self._values.size else 0.0
        stddev = float(self._values.std()) if self._values.size > 1 else 0.0
        thresholds = np.empty(num_thresholds, dtype=np.float64)
        thresholds[0] = mean
        if num_thresholds > 1:
            thresholds[1:] = ThreadsafeRandom.normal(mean, stddev, size=num_thresholds - 1)
        thresholds.sort()
        self._thresholds = thresholds
        return thresholds

    def _count(self, num_thresholds: int, num_labels: int, label_weights=None) -> LabelCounts:
        if self._values is None:
            raise RuntimeError("Decider has no data loaded")
        if num_thresholds < 1:
            raise ValueError("num_thresholds must be at least 1")
        thresholds = self._generate_thresholds(num_thresholds)
        counter = LabelCounter(num_thresholds, num_labels)
        return counter.count(self._values, self._labels, thresholds, self._weights, label_weights)

    def choose_threshold(self, num_thresholds: int, num_labels: int,
                         label_weights: Optional[Sequence[float]] = None) -> ThresholdChoice:
        """
        Pick the candidate threshold with the largest entropy gain and commit it.

        Args:
            num_thresholds: Number of candidate thresholds to draw
            num_labels: Size of the label space
            label_weights: Optional per-label multipliers

        Returns:
            The winning cut's left/right label distributions and its gain.
            The score is NO_SPLIT when the winning cut leaves a side empty.
        """
        counts = self._count(num_thresholds, num_labels, label_weights)
        gains = entropy_gain(counts)
        best = int(np.argmax(gains))
        self.threshold = float(self._thresholds[best])
        score = float(gains[best])
        if counts.left_counts[best] == 0 or counts.right_counts[best] == 0:
            score = NO_SPLIT
        return ThresholdChoice(counts.left_distributions[best].copy(),
                               counts.right_distributions[best].copy(), score)

    def choose_threshold_with_priors(self, num_thresholds: int, num_labels: int,
                                     left_prior: np.ndarray, right_prior: np.ndarray) -> ThresholdChoice:
        """
        Pick the threshold minimizing the split energy when the children
        already hold `left_prior` and `right_prior`. The score is the energy,
        +inf when no cut puts points on both sides.
        """
        counts = self._count(num_thresholds, num_labels)
        energies = split_energy(counts, np.asarray(left_prior, dtype=np.float64),
                                np.asarray(right_prior, dtype=np.float64))
        best = int(np.argmin(energies))
        self.threshold = float(self._thresholds[best])
        return ThresholdChoice(counts.left_distributions[best].copy(),
                               counts.right_distributions[best].copy(), float(energies[best]))

    def decide_value(self, value: float) -> Decision:
        return Decision.LEFT if value < self.threshold else Decision.RIGHT

    def decide(self, point: DataPoint, building: bool = False, cache: bool = True) -> Decision:
        value = self.compute(point, building)
        if cache:
            point.feature_value = value
        return self.decide_value(value)

    def apply_feature(self, points: Sequence[DataPoint], building: bool = False) -> None:
        for point in points:
            point.feature_value = self.compute(point, building)

    def decide_all(self, points: Sequence[DataPoint], building: bool = False) -> np.ndarray:
        """Decisions for every point, as an array of Decision values."""
        self.apply_feature(points, building)
        values = np.fromiter((p.feature_value for p in points), dtype=np.float64, count=len(points))
        return np.where(values < self.threshold, Decision.LEFT, Decision.RIGHT)

    def generate_code(self, variable_name: str = 'point') -> str:
        return self.feature.generate_code(variable_name)

    def metadata(self) -> Dict[str, object]:
        return self.feature.metadata()

    @staticmethod
    def best_of(choices: List[tuple]):
        """First (decider, choice) pair with the highest score."""
        best = None
        for decider, choice in choices:
            if best is None or choice.score > best[1].score:
                best = (decider, choice)
        return best
