import numpy as np
import pytest

from DForest.Core.data_point import ArrayDataPoint
from DForest.Core.exceptions import ConfigurationError
from DForest.Core.training_config import TrainingConfig
from DForest.Core.vine import DecisionVine, DecisionVineNode, _VineLevel


def test_node_distribution_add_remove_roundtrip():
    node = DecisionVineNode(0, 3)
    node.add_distribution(np.array([1.0, 2.0, 0.0]))
    before = node.distribution.copy()

    contribution = np.array([0.5, 0.0, 4.0])
    node.add_distribution(contribution)
    node.remove_distribution(contribution)

    np.testing.assert_allclose(node.distribution, before)


def test_reassigning_a_parent_conserves_child_distributions():
    parents = [DecisionVineNode(i, 2) for i in range(2)]
    level = _VineLevel(parents, 2)
    for parent, counts in zip(parents, ([3.0, 1.0], [0.0, 5.0])):
        parent.left_counts = np.array(counts)
        parent.right_counts = np.array(counts[::-1])
        level.set_left(parent, level.new_child())
        level.set_right(parent, level.new_child())
    before = [child.distribution.copy() for child in level.children]

    parent = parents[0]
    original_left = parent.left
    level.set_left(parent, None)
    level.set_left(parent, 3)
    level.set_left(parent, original_left)
    level.detach(parent)
    level.attach(parent)

    for child, expected in zip(level.children, before):
        np.testing.assert_allclose(child.distribution, expected)


def test_find_best_child_prefers_matching_labels():
    level = _VineLevel([], 2)
    for counts in ([10.0, 0.0], [0.0, 10.0]):
        level.children[level.new_child()].add_distribution(np.array(counts))
    assert level.find_best_child(np.array([0.0, 3.0])) == 1
    assert level.find_best_child(np.array([3.0, 0.0])) == 0


def test_separable_data_gives_two_pure_leaves(separable_points, identity_factory):
    config = TrainingConfig(minimum_depth=1, maximum_depth=4)
    vine = DecisionVine.construct_using_lsearch(separable_points, identity_factory, 3, 10, 8, 5, 2, config)

    assert vine.level_count == 2
    assert vine.leaf_count == 2
    assert [vine.classify(p) for p in separable_points] == [p.label for p in separable_points]
    for distribution in vine.get_distributions():
        assert distribution.sum() == pytest.approx(1.0)
        assert distribution.max() == pytest.approx(1.0, abs=1e-3)


def test_level_widths_respect_cap(banded_points, identity_factory):
    config = TrainingConfig(minimum_depth=1, maximum_depth=5)
    vine = DecisionVine.construct_using_lsearch(banded_points, identity_factory, 4, 10, 3, 10, 4, config)

    for depth, level in enumerate(vine.levels):
        assert len(level) <= min(2 ** depth, 3)
    for depth, level in enumerate(vine.levels[:-1]):
        width = len(vine.levels[depth + 1])
        for node in level:
            if not node.is_leaf:
                assert 0 <= node.left < width
                assert 0 <= node.right < width
    assert all(node.is_leaf for node in vine.levels[-1])


def test_leaf_distributions_are_normalized(banded_points, identity_factory):
    config = TrainingConfig(minimum_depth=1, maximum_depth=4)
    vine = DecisionVine.construct_using_lsearch(banded_points, identity_factory, 4, 10, 3, 10, 4, config)

    for level in vine.levels:
        for node in level:
            if node.is_leaf:
                assert node.distribution.sum() == pytest.approx(1.0)
    for point in banded_points[:10]:
        assert vine.classify_soft(point).sum() == pytest.approx(1.0)


def test_single_level_vine_is_a_leaf(banded_points, identity_factory):
    config = TrainingConfig(minimum_depth=1, maximum_depth=1)
    vine = DecisionVine.construct_using_lsearch(banded_points, identity_factory, 4, 10, 3, 10, 4, config)
    assert vine.level_count == 1
    assert vine.levels[0][0].is_leaf


def test_compute_responses_on_two_level_vine(separable_points, identity_factory):
    config = TrainingConfig(minimum_depth=1, maximum_depth=4)
    vine = DecisionVine.construct_using_lsearch(separable_points, identity_factory, 3, 10, 8, 5, 2, config)

    points = [ArrayDataPoint([0.3]), ArrayDataPoint([0.7])]
    responses = vine.compute_responses(points, lambda a, b: a + b, 0.0)

    assert responses.shape == (2, vine.leaf_count)
    np.testing.assert_allclose(responses, [[0.3, 0.3], [0.7, 0.7]])


def test_compute_responses_accepts_callable_init(banded_points, identity_factory):
    config = TrainingConfig(minimum_depth=1, maximum_depth=4, n_jobs=2)
    vine = DecisionVine.construct_using_lsearch(banded_points, identity_factory, 4, 10, 3, 10, 4, config)

    responses = vine.compute_responses(banded_points[:5], max, lambda: float('-inf'))
    assert responses.shape == (5, vine.leaf_count)


def test_invalid_arguments(banded_points, identity_factory):
    with pytest.raises(ValueError):
        DecisionVine.construct_using_lsearch(banded_points, identity_factory, 4, 10, 1, 10, 4)
    with pytest.raises(ConfigurationError):
        DecisionVine.construct_using_lsearch([], identity_factory, 4, 10, 3, 10, 4)
