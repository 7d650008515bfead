import numpy as np
import pytest

from DForest.Core.data_point import ArrayDataPoint
from DForest.Core.exceptions import ConfigurationError, TrainingInvariantError
from DForest.Core.features import Feature, FeatureFactory
from DForest.Core.feature_factories import UnaryFeatureFactory
from DForest.Core.training_config import TrainingConfig
from DForest.Core.tree import DecisionTree


def four_points():
    return [ArrayDataPoint([0.1], 0), ArrayDataPoint([0.2], 0),
            ArrayDataPoint([0.9], 1), ArrayDataPoint([0.95], 1)]


def random_points(count=200, num_labels=3, seed=7):
    rng = np.random.default_rng(seed)
    data = rng.random((count, 2))
    labels = (data[:, 0] * num_labels).astype(int) % num_labels
    return [ArrayDataPoint(x, int(y)) for x, y in zip(data, labels)]


def test_four_point_tree_splits_into_pure_leaves(identity_factory, shallow_config):
    tree = DecisionTree.compute_depth_first(four_points(), identity_factory, 1, 1, 2, config=shallow_config)

    assert not tree.root.is_leaf
    assert tree.root.decider.threshold == pytest.approx(0.5375)
    left, right = tree.root.left, tree.root.right
    np.testing.assert_allclose(left.distribution, [1, 0], atol=1e-3)
    np.testing.assert_allclose(right.distribution, [0, 1], atol=1e-3)
    assert [tree.classify(p) for p in four_points()] == [0, 0, 1, 1]


def test_single_label_data_gives_single_leaf(identity_factory):
    points = [ArrayDataPoint([v], 1) for v in (0.1, 0.5, 0.7)]
    tree = DecisionTree.compute_depth_first(points, identity_factory, 5, 5, 3)

    assert tree.root.is_leaf
    assert tree.node_count == 1
    assert tree.root.distribution[1] == pytest.approx(1.0, abs=1e-3)


@pytest.mark.parametrize("maximum_depth", [1, 2, 4])
def test_depth_never_exceeds_maximum(maximum_depth):
    config = TrainingConfig(minimum_depth=1, maximum_depth=maximum_depth)
    tree = DecisionTree.compute_depth_first(random_points(), UnaryFeatureFactory(2), 5, 5, 3, config=config)

    assert tree.level_count <= maximum_depth
    assert all(leaf.level <= maximum_depth - 1 for leaf in tree.leaves())


def test_leaf_distributions_are_smoothed_probabilities():
    config = TrainingConfig(minimum_depth=1, maximum_depth=5)
    tree = DecisionTree.compute_depth_first(random_points(), UnaryFeatureFactory(2), 5, 5, 3, config=config)

    for leaf in tree.leaves():
        assert leaf.distribution.sum() == pytest.approx(1.0)
        assert np.all(leaf.distribution > 0)


def test_minimum_support_stops_splitting(identity_factory):
    config = TrainingConfig(minimum_support=10, minimum_depth=1, maximum_depth=5)
    tree = DecisionTree.compute_depth_first(four_points(), identity_factory, 1, 1, 2, config=config)
    assert tree.root.is_leaf


def test_metadata_and_leaf_numbering():
    config = TrainingConfig(minimum_depth=1, maximum_depth=4)
    tree = DecisionTree.compute_depth_first(random_points(), UnaryFeatureFactory(2), 5, 5, 3, config=config)

    next_leaf = tree.set_tree_label(3, leaf_start=10)

    assert next_leaf == 10 + tree.leaf_count
    assert sorted(leaf.leaf_node_index for leaf in tree.leaves()) == list(range(10, next_leaf))
    for index, node in tree.node_info.items():
        assert node.tree == 3
        assert node.tree_index == index
        assert node.level_index == index - (1 << node.level)
    assert sum(tree.test_counts.values()) == tree.node_count - tree.leaf_count


def test_histogram_counts_shrink_with_depth():
    points = random_points()
    config = TrainingConfig(minimum_depth=1, maximum_depth=4)
    tree = DecisionTree.compute_depth_first(points, UnaryFeatureFactory(2), 5, 5, 3, config=config)

    histogram = tree.compute_histogram(points)

    assert histogram[(0, 1)] == len(points)
    totals = [histogram.total(level) for level in range(tree.level_count)]
    assert totals[0] == len(points)
    assert all(a >= b for a, b in zip(totals, totals[1:]))


def test_assign_nodes_matches_find_leaf():
    points = random_points(50)
    config = TrainingConfig(minimum_depth=1, maximum_depth=4)
    tree = DecisionTree.compute_depth_first(points, UnaryFeatureFactory(2), 5, 5, 3, config=config)

    assigned = tree.assign_nodes(points)

    assert all(node is tree.find_leaf(p) for node, p in zip(assigned, points))
    assert [tree.get_sparse_code(p) for p in points] == [n.leaf_node_index for n in assigned]


def test_fill_then_normalize_records_training_counts():
    points = random_points(80)
    config = TrainingConfig(minimum_depth=1, maximum_depth=3)
    tree = DecisionTree.compute_depth_first(points, UnaryFeatureFactory(2), 5, 5, 3, config=config)

    tree.clear()
    tree.fill(points)
    tree.normalize()

    assert tree.get_training_data_count() == pytest.approx(len(points))
    histogram = np.zeros(tree.leaf_count)
    tree.fill_node_histogram(histogram)
    assert histogram.sum() == pytest.approx(len(points))


def test_classify_soft_accumulates(identity_factory, shallow_config):
    tree = DecisionTree.compute_depth_first(four_points(), identity_factory, 1, 1, 2, config=shallow_config)
    accumulator = np.zeros(2)
    tree.classify_soft(four_points()[0], accumulator)
    tree.classify_soft(four_points()[3], accumulator)
    np.testing.assert_allclose(accumulator, [1, 1], atol=1e-3)


def test_breadth_first_separates_clusters(separable_points, identity_factory, shallow_config):
    tree = DecisionTree.compute_breadth_first(separable_points, identity_factory, 3, 10, 2, config=shallow_config)

    assert tree.level_count == 2
    assert [tree.classify(p) for p in separable_points] == [p.label for p in separable_points]


def test_breadth_first_drains_open_nodes_at_maximum_depth(banded_points, identity_factory):
    config = TrainingConfig(minimum_depth=1, maximum_depth=2)
    tree = DecisionTree.compute_breadth_first(banded_points, identity_factory, 3, 10, 4, config=config)

    assert tree.level_count == 2
    assert tree.leaf_count == 2
    for leaf in tree.leaves():
        assert leaf.distribution.sum() == pytest.approx(1.0)


def test_breadth_first_with_single_level_is_a_leaf(banded_points, identity_factory):
    config = TrainingConfig(minimum_depth=1, maximum_depth=1)
    tree = DecisionTree.compute_breadth_first(banded_points, identity_factory, 3, 10, 4, config=config)
    assert tree.root.is_leaf


def test_breadth_first_terminates_when_threshold_is_never_met(banded_points, identity_factory):
    config = TrainingConfig(minimum_depth=0, maximum_depth=6, number_of_tries=2)
    tree = DecisionTree.compute_breadth_first(banded_points, identity_factory, 2, 5, 4,
                                              threshold=100.0, config=config)
    assert tree.root.is_leaf


@pytest.mark.parametrize("kwargs", [
    {'minimum_depth': 5, 'maximum_depth': 3},
    {'maximum_depth': 0, 'minimum_depth': 0},
    {'number_of_tries': 0},
    {'n_jobs': 0},
    {'minimum_support': -1},
])
def test_invalid_configuration_fails_before_training(identity_factory, kwargs):
    with pytest.raises(ConfigurationError):
        DecisionTree.compute_depth_first(four_points(), identity_factory, 1, 1, 2, config=TrainingConfig(**kwargs))


def test_label_weight_length_mismatch_is_rejected(identity_factory, shallow_config):
    with pytest.raises(ConfigurationError):
        DecisionTree.compute_depth_first(four_points(), identity_factory, 1, 1, 2,
                                         label_weights=[1.0, 2.0, 3.0], config=shallow_config)


def test_labels_outside_label_space_are_rejected(identity_factory, shallow_config):
    with pytest.raises(ConfigurationError):
        DecisionTree.compute_depth_first([ArrayDataPoint([0.0], 2)], identity_factory, 1, 1, 2,
                                         config=shallow_config)


def test_parallel_trials_produce_valid_tree(banded_points, identity_factory):
    config = TrainingConfig(minimum_depth=1, maximum_depth=4, n_jobs=4)
    tree = DecisionTree.compute_depth_first(banded_points, identity_factory, 8, 5, 4, config=config)
    assert tree.level_count <= 4
    assert all(leaf.distribution.sum() == pytest.approx(1.0) for leaf in tree.leaves())


class FreezingFeature(Feature):
    """Reads the first coordinate for `live_calls` evaluations, then always returns 0."""

    def __init__(self, live_calls):
        self.calls = 0
        self.live_calls = live_calls

    def compute(self, point, building=False):
        self.calls += 1
        return float(point.data[0]) if self.calls <= self.live_calls else 0.0

    @property
    def name(self):
        return "Freezing"


class FreezingFeatureFactory(FeatureFactory):
    def __init__(self, live_calls):
        self.live_calls = live_calls

    def create(self):
        return FreezingFeature(self.live_calls)

    def is_product(self, feature):
        return isinstance(feature, FreezingFeature)


def test_depth_first_one_sided_split_is_an_invariant_violation():
    config = TrainingConfig(minimum_depth=1, maximum_depth=3)
    with pytest.raises(TrainingInvariantError):
        DecisionTree.compute_depth_first(four_points(), FreezingFeatureFactory(4), 1, 1, 2, config=config)


def test_breadth_first_one_sided_split_is_an_invariant_violation():
    config = TrainingConfig(minimum_depth=1, maximum_depth=3)
    with pytest.raises(TrainingInvariantError):
        DecisionTree.compute_breadth_first(four_points(), FreezingFeatureFactory(4), 1, 1, 2, config=config)
