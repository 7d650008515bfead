import pickle

import numpy as np
import pytest

from DForest.Core.data_point import ArrayDataPoint
from DForest.Core.decider import Decider, Decision, NO_SPLIT, ThresholdChoice
from DForest.Core.distribution import DIRICHLET_PRIOR
from DForest.Core.exceptions import InvalidFeatureValueError
from DForest.Core.feature_factories import UnaryFeature
from DForest.Core.label_counter import LabelCounter


def smoothed_entropy(counts):
    counts = np.asarray(counts, dtype=np.float64)
    prior = DIRICHLET_PRIOR / len(counts)
    p = (counts + prior) / (counts.sum() + DIRICHLET_PRIOR)
    return -np.sum(p * np.log2(p))


def test_label_counter_prefix_and_suffix_sums():
    values = np.array([0.1, 0.2, 0.9, 0.95])
    labels = np.array([0, 0, 1, 1])
    counts = LabelCounter(3, 2).count(values, labels, np.array([0.15, 0.5, 2.0]))

    np.testing.assert_array_equal(counts.left_distributions, [[1, 0], [2, 0], [2, 2]])
    np.testing.assert_array_equal(counts.right_distributions, [[1, 2], [0, 2], [0, 0]])
    np.testing.assert_array_equal(counts.left_counts, [1, 2, 4])
    np.testing.assert_array_equal(counts.right_counts, [3, 2, 0])


def test_label_counter_value_equal_to_threshold_counts_right():
    counts = LabelCounter(1, 2).count(np.array([0.5]), np.array([1]), np.array([0.5]))
    assert counts.left_counts[0] == 0
    assert counts.right_counts[0] == 1


def test_label_counter_applies_point_and_label_weights():
    counts = LabelCounter(1, 2).count(np.array([0.0, 1.0]), np.array([0, 1]), np.array([0.5]),
                                      weights=np.array([2.0, 1.0]), label_weights=[1.0, 3.0])
    np.testing.assert_allclose(counts.left_distributions[0], [2.0, 0.0])
    np.testing.assert_allclose(counts.right_distributions[0], [0.0, 3.0])


def test_choose_threshold_matches_hand_computed_gain():
    decider = Decider(UnaryFeature(0))
    decider.set_data(np.array([0.1, 0.2, 0.9, 0.95]), np.array([0, 0, 1, 1]))

    choice = decider.choose_threshold(1, 2)

    assert decider.threshold == pytest.approx(0.5375)
    np.testing.assert_allclose(choice.left_distribution, [2, 0])
    np.testing.assert_allclose(choice.right_distribution, [0, 2])
    expected = -(2 * smoothed_entropy([2, 0]) + 2 * smoothed_entropy([0, 2])) / 4
    assert choice.score == pytest.approx(expected)


def test_choose_threshold_reports_no_split_for_constant_values():
    decider = Decider(UnaryFeature(0))
    decider.set_data(np.ones(5), np.array([0, 1, 0, 1, 0]))
    assert decider.choose_threshold(4, 2).score == NO_SPLIT


def test_choose_threshold_with_priors_is_infinite_without_valid_cut():
    decider = Decider(UnaryFeature(0))
    decider.set_data(np.ones(3), np.array([0, 1, 1]))
    choice = decider.choose_threshold_with_priors(3, 2, np.zeros(2), np.zeros(2))
    assert choice.score == np.inf


def test_choose_threshold_with_priors_prefers_matching_children():
    decider = Decider(UnaryFeature(0))
    decider.set_data(np.array([0.1, 0.2, 0.9, 0.95]), np.array([0, 0, 1, 1]))
    choice = decider.choose_threshold_with_priors(1, 2, np.array([10.0, 0.0]), np.array([0.0, 10.0]))
    expected = 12 * smoothed_entropy([12, 0]) + 12 * smoothed_entropy([0, 12])
    assert choice.score == pytest.approx(expected)


def test_decide_sends_ties_right():
    decider = Decider(UnaryFeature(0), threshold=0.5)
    assert decider.decide(ArrayDataPoint([0.49])) is Decision.LEFT
    assert decider.decide(ArrayDataPoint([0.5])) is Decision.RIGHT
    assert decider.decide(ArrayDataPoint([0.51])) is Decision.RIGHT


def test_decide_caches_feature_value_on_point():
    point = ArrayDataPoint([0.25])
    Decider(UnaryFeature(0), threshold=0.5).decide(point)
    assert point.feature_value == 0.25


def test_invalid_feature_values_are_rejected():
    decider = Decider(UnaryFeature(0))
    with pytest.raises(InvalidFeatureValueError):
        decider.set_data(np.array([0.0, np.nan]), np.array([0, 1]))
    with pytest.raises(InvalidFeatureValueError):
        decider.compute(ArrayDataPoint([np.inf]))


def test_pickling_drops_scratch_state():
    decider = Decider(UnaryFeature(0))
    decider.set_data(np.array([0.1, 0.9]), np.array([0, 1]))
    decider.choose_threshold(2, 2)

    restored = pickle.loads(pickle.dumps(decider))

    assert decider.is_loaded
    assert not restored.is_loaded
    assert restored.threshold == decider.threshold
    assert str(restored) == f"A {decider.threshold}"


def test_best_of_keeps_first_maximum():
    first = Decider(UnaryFeature(0))
    second = Decider(UnaryFeature(1))
    choices = [(first, _choice(-0.5)), (second, _choice(-0.5))]
    assert Decider.best_of(choices)[0] is first


def _choice(score):
    return ThresholdChoice(np.zeros(2), np.zeros(2), score)
