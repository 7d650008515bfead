import pickle

import numpy as np
import pytest

from DForest.Core.data_point import ArrayDataPoint
from DForest.Core.distribution import normalize
from DForest.Core.exceptions import ConfigurationError
from DForest.Core.feature_factories import UnaryFeatureFactory
from DForest.Core.forest import DecisionForest
from DForest.Core.training_config import TrainingConfig

LABELS = ['a', 'b', 'c']


def make_points(count=120, seed=3):
    rng = np.random.default_rng(seed)
    data = rng.random((count, 3))
    labels = (data[:, 0] * 3).astype(int) % 3
    return [ArrayDataPoint(x, int(y)) for x, y in zip(data, labels)]


@pytest.fixture
def points():
    return make_points()


@pytest.fixture
def forest(points):
    config = TrainingConfig(minimum_depth=1, maximum_depth=4)
    splits = [points[0::2], points[1::2]]
    return DecisionForest.compute_depth_first(4, splits, UnaryFeatureFactory(3), 5, 5, LABELS, config=config)


def test_single_tree_forest_matches_its_tree(points):
    config = TrainingConfig(minimum_depth=1, maximum_depth=4)
    forest = DecisionForest.compute_depth_first(1, [points], UnaryFeatureFactory(3), 5, 5, LABELS, config=config)

    for point in points[:20]:
        expected = normalize(forest[0].classify_soft(point))
        np.testing.assert_allclose(forest.classify_soft(point), expected)
        assert forest.classify(point) == forest[0].classify(point)


def test_classify_soft_is_a_distribution(forest, points):
    for point in points[:10]:
        distribution = forest.classify_soft(point)
        assert distribution.sum() == pytest.approx(1.0)
        assert np.all(distribution > 0)


def test_leaves_are_numbered_across_trees(forest):
    assert forest.leaf_count == sum(tree.leaf_count for tree in forest.trees)
    leaf_nodes = forest.get_leaf_nodes()
    assert len(leaf_nodes) == forest.leaf_count
    assert [node.leaf_node_index for node in leaf_nodes] == list(range(forest.leaf_count))
    assert [tree.tree_label for tree in forest.trees] == [0, 1, 2, 3]


def test_sparse_coding_has_one_leaf_per_tree(forest, points):
    codes = forest.get_sparse_coding(points[0])

    assert codes.shape == (forest.tree_count,)
    assert np.all(codes >= 0) and np.all(codes < forest.leaf_count)
    for tree, code in zip(forest.trees, codes):
        assert code == tree.get_sparse_code(points[0])


def test_sparse_coding_in_parallel_matches_serial(forest, points):
    serial = [forest.get_sparse_coding(p) for p in points[:10]]
    forest.n_jobs = 4
    parallel = [forest.get_sparse_coding(p) for p in points[:10]]
    np.testing.assert_array_equal(serial, parallel)


def test_histogram_is_normalized_by_point_count(forest, points):
    histogram = forest.compute_histogram(points)

    for tree in range(forest.tree_count):
        assert histogram[(tree, 1)] == pytest.approx(1.0)
    assert histogram.total(level=0) == pytest.approx(forest.tree_count)


def test_histogram_of_no_points_is_empty(forest):
    assert len(forest.compute_histogram([])) == 0


def test_active_tree_count(forest, points):
    forest.tree_count = 2

    assert len(forest.trees) == 2
    assert forest.total_trees == 4
    assert forest.get_sparse_coding(points[0]).shape == (2,)
    assert forest.leaf_count == forest[0].leaf_count + forest[1].leaf_count

    with pytest.raises(ConfigurationError):
        forest.tree_count = 0
    with pytest.raises(ConfigurationError):
        forest.tree_count = 5


def test_refill_restores_training_counts(forest, points):
    forest.clear()
    forest.fill(points)
    forest.normalize()

    assert forest.get_node_histogram().sum() == pytest.approx(forest.tree_count * len(points))
    assert forest.get_training_data_count() == pytest.approx(len(points))


def test_fill_skips_unlabelled_and_rejects_unknown_labels(forest, points):
    forest.clear()
    forest.fill(points + [ArrayDataPoint([0.5, 0.5, 0.5], -1)])
    forest.normalize()
    assert forest.get_training_data_count() == pytest.approx(len(points))

    with pytest.raises(ConfigurationError):
        forest.fill([ArrayDataPoint([0.5, 0.5, 0.5], 255)])


def test_test_counts_cover_every_branch(forest):
    branches = sum(tree.node_count - tree.leaf_count for tree in forest.trees)
    assert sum(forest.test_counts.values()) == branches
    assert set(forest.tests_used) <= {"A"}


def test_random_sub_forest(forest):
    sub = forest.create_random_sub_forest(2)
    assert sub.tree_count == 2
    assert sub.label_names == LABELS
    with pytest.raises(ConfigurationError):
        forest.create_random_sub_forest(5)


def test_breadth_first_forest(points):
    config = TrainingConfig(minimum_depth=1, maximum_depth=3)
    forest = DecisionForest.compute_breadth_first(3, [points], UnaryFeatureFactory(3), 5, 5, LABELS, config=config)
    assert forest.tree_count == 3
    assert forest.level_count <= 3


def test_empty_split_is_rejected(points):
    with pytest.raises(ConfigurationError):
        DecisionForest.compute_depth_first(2, [points, []], UnaryFeatureFactory(3), 5, 5, LABELS)
    with pytest.raises(ConfigurationError):
        DecisionForest.compute_depth_first(2, [], UnaryFeatureFactory(3), 5, 5, LABELS)


def test_label_names_must_match_trees(forest):
    with pytest.raises(ConfigurationError):
        DecisionForest(forest.trees, ['only', 'two'])
    with pytest.raises(ConfigurationError):
        DecisionForest([], LABELS)


def test_forest_survives_pickling(forest, points):
    restored = pickle.loads(pickle.dumps(forest))
    for point in points[:10]:
        np.testing.assert_allclose(restored.classify_soft(point), forest.classify_soft(point))
