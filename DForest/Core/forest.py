"""
Decision forests: ensembles of independently trained DecisionTrees.
"""

import copy
from typing import Dict, List, Optional, Sequence

import numpy as np

from .data_point import DataPoint
from .distribution import normalize
from .exceptions import ConfigurationError
from .features import FeatureFactory
from .histogram import TreeHistogram
from .training_config import TrainingConfig, resolve_config
from .tree import DecisionTree, DecisionTreeNode, make_executor, parallel_map
from Util.ThreadsafeRandom import ThreadsafeRandom
from Util.UpdateManager import UpdateManager


class DecisionForest:
    """
    A fixed set of trees over a shared label space.

    Only the first `tree_count` trees take part in classification, histograms
    and sparse coding, which allows evaluating sub-forests without copying.
    Forest metadata (leaf numbering, level count, test usage) is derived from
    the trees and rebuilt by `refresh_metadata`.
    """

    def __init__(self, trees: Sequence[DecisionTree], label_names: Sequence[str], n_jobs: int = 1):
        if not trees:
            raise ConfigurationError("A forest needs at least one tree")
        self._label_names = list(label_names)
        for i, tree in enumerate(trees):
            if tree.label_count != len(self._label_names):
                raise ConfigurationError(
                    f"Tree {i} has {tree.label_count} labels but the forest has {len(self._label_names)}")
        self._trees = list(trees)
        self._tree_count = len(self._trees)
        self.n_jobs = n_jobs
        self.refresh_metadata()

    @property
    def trees(self) -> List[DecisionTree]:
        return self._trees[:self._tree_count]

    def __getitem__(self, index: int) -> DecisionTree:
        return self._trees[index]

    @property
    def tree_count(self) -> int:
        return self._tree_count

    @tree_count.setter
    def tree_count(self, value: int) -> None:
        if not 1 <= value <= len(self._trees):
            raise ConfigurationError(f"Active tree count must be in [1, {len(self._trees)}], got {value}")
        self._tree_count = value
        self.refresh_metadata()

    @property
    def total_trees(self) -> int:
        return len(self._trees)

    @property
    def label_names(self) -> List[str]:
        return self._label_names

    @property
    def label_count(self) -> int:
        return len(self._label_names)

    @property
    def leaf_count(self) -> int:
        return self._leaf_count

    @property
    def level_count(self) -> int:
        return self._level_count

    @property
    def test_counts(self) -> Dict[str, int]:
        return self._test_counts

    @property
    def tests_used(self) -> List[str]:
        return list(self._test_counts)

    def refresh_metadata(self) -> None:
        """Renumber leaves across the active trees and recount levels and tests."""
        self._leaf_count = 0
        self._level_count = 0
        self._test_counts: Dict[str, int] = {}
        for i, tree in enumerate(self.trees):
            self._leaf_count = tree.set_tree_label(i, self._leaf_count)
            self._level_count = max(self._level_count, tree.level_count)
            for name, count in tree.test_counts.items():
                self._test_counts[name] = self._test_counts.get(name, 0) + count

    # Evaluation

    def classify_soft(self, point: DataPoint) -> np.ndarray:
        """Sum of the active trees' leaf distributions, normalized."""
        distribution = np.zeros(self.label_count, dtype=np.float64)
        for tree in self.trees:
            tree.classify_soft(point, distribution)
        return normalize(distribution)

    def classify(self, point: DataPoint) -> int:
        return int(np.argmax(self.classify_soft(point)))

    def get_leaf_indices(self, point: DataPoint) -> np.ndarray:
        """Serial form of `get_sparse_coding`, for callers that parallelize over points."""
        return np.array([tree.get_sparse_code(point) for tree in self.trees], dtype=np.int64)

    def get_sparse_coding(self, point: DataPoint) -> np.ndarray:
        """Leaf number reached in every active tree, one entry per tree."""
        if min(self.n_jobs, self._tree_count) <= 1:
            return self.get_leaf_indices(point)
        executor = make_executor(min(self.n_jobs, self._tree_count))
        try:
            codes = parallel_map(lambda tree: tree.get_sparse_code(point), self.trees, executor)
        finally:
            executor.shutdown(wait=True)
        return np.asarray(codes, dtype=np.int64)

    def compute_histogram(self, points: Sequence[DataPoint]) -> TreeHistogram:
        """Union of the tree histograms, divided by the number of points."""
        if not points:
            return TreeHistogram()
        histogram = TreeHistogram()
        for tree in self.trees:
            histogram = histogram.union(tree.compute_histogram(points))
        return histogram.divide(len(points))

    def get_node_histogram(self) -> np.ndarray:
        """Training count of every leaf, indexed by leaf number."""
        histogram = np.zeros(self._leaf_count, dtype=np.float64)
        for tree in self.trees:
            tree.fill_node_histogram(histogram)
        return histogram

    def get_leaf_nodes(self) -> List[DecisionTreeNode]:
        leaf_nodes: List[Optional[DecisionTreeNode]] = [None] * self._leaf_count
        for tree in self.trees:
            tree.fill_leaf_nodes(leaf_nodes)
        return leaf_nodes

    def get_forest_info(self) -> List[Dict[int, DecisionTreeNode]]:
        return [tree.node_info for tree in self.trees]

    def get_training_data_count(self) -> float:
        return self._trees[0].get_training_data_count()

    # Refilling

    def clear(self) -> None:
        for tree in self.trees:
            tree.clear()
        self.refresh_metadata()

    def fill(self, points: Sequence[DataPoint]) -> None:
        for tree in self.trees:
            tree.fill(points)
        self.refresh_metadata()

    def normalize(self) -> None:
        for tree in self.trees:
            tree.normalize()
        self.refresh_metadata()

    def create_random_sub_forest(self, num_trees: int) -> 'DecisionForest':
        """New forest built from copies of `num_trees` randomly chosen active trees."""
        if not 1 <= num_trees <= self._tree_count:
            raise ConfigurationError(f"Sub-forest size must be in [1, {self._tree_count}], got {num_trees}")
        chosen = ThreadsafeRandom.select_random(self.trees, num_trees)
        return DecisionForest([copy.deepcopy(tree) for tree in chosen], self._label_names, self.n_jobs)

    def get_model_info(self) -> Dict:
        return {
            'total_trees': self.total_trees,
            'tree_count': self._tree_count,
            'label_names': self._label_names,
            'leaf_count': self._leaf_count,
            'level_count': self._level_count,
            'test_counts': dict(self._test_counts),
        }

    # Construction

    @staticmethod
    def _check_splits(num_trees: int, splits: Sequence[Sequence[DataPoint]]) -> None:
        if num_trees < 1:
            raise ConfigurationError("num_trees must be at least 1")
        if not splits:
            raise ConfigurationError("At least one data split is required")
        for i, split in enumerate(splits):
            if len(split) == 0:
                raise ConfigurationError(f"Data split {i} is empty")

    @staticmethod
    def compute_depth_first(num_trees: int, splits: Sequence[Sequence[DataPoint]], factory: FeatureFactory,
                            num_features: int, num_thresholds: int, label_names: Sequence[str],
                            label_weights: Optional[Sequence[float]] = None,
                            config: Optional[TrainingConfig] = None) -> 'DecisionForest':
        """
        Train `num_trees` depth-first trees; tree i uses split i % len(splits).
        """
        config = resolve_config(config)
        DecisionForest._check_splits(num_trees, splits)
        trees = []
        for i in range(num_trees):
            UpdateManager.write_line("[DecisionForest] Training tree {0} of {1}", i + 1, num_trees)
            UpdateManager.add_indent()
            try:
                trees.append(DecisionTree.compute_depth_first(
                    splits[i % len(splits)], factory, num_features, num_thresholds,
                    len(label_names), label_weights, config))
            finally:
                UpdateManager.remove_indent()
        return DecisionForest(trees, label_names, config.n_jobs)

    @staticmethod
    def compute_breadth_first(num_trees: int, splits: Sequence[Sequence[DataPoint]], factory: FeatureFactory,
                              num_features: int, num_thresholds: int, label_names: Sequence[str],
                              label_weights: Optional[Sequence[float]] = None, threshold: float = 0.0,
                              config: Optional[TrainingConfig] = None) -> 'DecisionForest':
        """
        Train `num_trees` breadth-first trees; tree i uses split i % len(splits).
        """
        config = resolve_config(config)
        DecisionForest._check_splits(num_trees, splits)
        trees = []
        for i in range(num_trees):
            UpdateManager.write_line("[DecisionForest] Training tree {0} of {1}", i + 1, num_trees)
            UpdateManager.add_indent()
            try:
                trees.append(DecisionTree.compute_breadth_first(
                    splits[i % len(splits)], factory, num_features, num_thresholds,
                    len(label_names), label_weights, threshold, config))
            finally:
                UpdateManager.remove_indent()
        return DecisionForest(trees, label_names, config.n_jobs)
