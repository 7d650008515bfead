"""
Binary decision trees: depth-first and breadth-first construction,
classification, histograms and node bookkeeping.
"""

from collections import deque
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .data_point import DataPoint
from .decider import Decider, Decision, NO_SPLIT, ThresholdChoice
from .distribution import entropy, is_delta, label_distribution, normalize
from .exceptions import ConfigurationError, TrainingInvariantError
from .features import FeatureFactory
from .histogram import TreeHistogram, TreeNode
from .training_config import TrainingConfig, resolve_config
from Util.UpdateManager import UpdateManager


class NodeType(Enum):
    LEAF = 'leaf'
    BRANCH = 'branch'


def parallel_map(fn: Callable, items: Sequence, executor: Optional[Executor]) -> List:
    """Apply `fn` to every item and wait for all results, in item order."""
    if executor is None:
        return [fn(item) for item in items]
    futures = [executor.submit(fn, item) for item in items]
    return [future.result() for future in futures]


def make_executor(n_jobs: int) -> Optional[ThreadPoolExecutor]:
    return ThreadPoolExecutor(max_workers=n_jobs) if n_jobs > 1 else None


def point_arrays(points: Sequence[DataPoint]) -> Tuple[np.ndarray, np.ndarray]:
    labels = np.fromiter((p.label for p in points), dtype=np.int64, count=len(points))
    weights = np.fromiter((p.weight for p in points), dtype=np.float64, count=len(points))
    return labels, weights


def validate_training_input(data: Sequence[DataPoint], num_labels: int,
                            label_weights: Optional[Sequence[float]],
                            num_features: int, num_thresholds: int) -> Optional[np.ndarray]:
    """Fail fast on unusable training input; returns label weights as an array."""
    if num_labels < 1:
        raise ConfigurationError("num_labels must be at least 1")
    if num_features < 1 or num_thresholds < 1:
        raise ConfigurationError("num_features and num_thresholds must be at least 1")
    if len(data) == 0:
        raise ConfigurationError("Cannot train on an empty data set")
    labels, _ = point_arrays(data)
    if labels.min() < 0 or labels.max() >= num_labels:
        raise ConfigurationError(f"Training labels must lie in [0, {num_labels})")
    if label_weights is None:
        return None
    label_weights = np.asarray(label_weights, dtype=np.float64)
    if label_weights.shape != (num_labels,):
        raise ConfigurationError(
            f"Expected {num_labels} label weights, got {label_weights.size}")
    return label_weights


class DecisionTreeNode:
    """
    Branch (decider with two children) or leaf (label distribution).

    The positional metadata (level, tree_index, leaf_node_index...) is
    filled in by the owning tree and recomputed whenever the tree is
    relabelled.
    """

    def __init__(self, node_type: NodeType, distribution: Optional[np.ndarray] = None,
                 decider: Optional[Decider] = None,
                 left: Optional['DecisionTreeNode'] = None,
                 right: Optional['DecisionTreeNode'] = None):
        if node_type is NodeType.BRANCH and (decider is None or left is None or right is None):
            raise TrainingInvariantError("A branch needs a decider and two children")
        self.node_type = node_type
        self.distribution = distribution
        self.decider = decider
        self.left = left
        self.right = right
        self.training_count = 0.0
        self.entropy = 0.0
        self.tree = 0
        self.level = 0
        self.level_index = 0
        self.tree_index = 1
        self.leaf_node_index = -1

    @classmethod
    def leaf(cls, distribution: np.ndarray) -> 'DecisionTreeNode':
        return cls(NodeType.LEAF, distribution=np.asarray(distribution, dtype=np.float64))

    @classmethod
    def branch(cls, decider: Decider, left: 'DecisionTreeNode', right: 'DecisionTreeNode',
               distribution: Optional[np.ndarray] = None) -> 'DecisionTreeNode':
        if distribution is None:
            distribution = left.distribution + right.distribution
        return cls(NodeType.BRANCH, distribution=np.asarray(distribution, dtype=np.float64),
                   decider=decider, left=left, right=right)

    @property
    def is_leaf(self) -> bool:
        return self.node_type is NodeType.LEAF

    @property
    def test_info(self) -> Optional[Decider]:
        return self.decider

    def __repr__(self):
        if self.is_leaf:
            return f"Leaf(index={self.tree_index}, leaf={self.leaf_node_index})"
        return f"Branch(index={self.tree_index}, decider={self.decider})"


@dataclass
class _SplitCandidate:
    indices: np.ndarray
    index: int
    level: int
    entropy: float
    support: int
    delta: bool
    entropy_gain: float = 0.0
    decider: Optional[Decider] = None


@dataclass
class _DepthFirstContext:
    factory: FeatureFactory
    num_features: int
    num_thresholds: int
    num_labels: int
    label_weights: Optional[np.ndarray]
    config: TrainingConfig
    executor: Optional[Executor]


class DecisionTree:
    """
    A strict binary tree of Deciders with label distributions at the leaves.

    Use `compute_depth_first` or `compute_breadth_first` to train one.
    """

    def __init__(self, root: DecisionTreeNode, num_labels: int,
                 label_weights: Optional[Sequence[float]] = None, tree_label: int = 0):
        self._root = root
        self._num_labels = num_labels
        self.label_weights = None if label_weights is None else np.asarray(label_weights, dtype=np.float64)
        self._leaf_count = 0
        self.set_tree_label(tree_label, 0)
        UpdateManager.write_line("[DecisionTree] Tree created with {0} leaf nodes", self._leaf_count)

    # Bookkeeping

    def set_tree_label(self, label: int, leaf_start: int = 0) -> int:
        """
        Relabel the tree and renumber its leaves starting at `leaf_start`.

        Returns:
            The next free leaf number
        """
        self._tree_label = label
        self._node_info: Dict[int, DecisionTreeNode] = {}
        self._test_counts: Dict[str, int] = {}
        self._level_count = 0
        end = self._gather(self._root, 1, leaf_start)
        self._leaf_count = end - leaf_start
        return end

    def _gather(self, node: DecisionTreeNode, index: int, count: int) -> int:
        self._node_info[index] = node
        node.tree = self._tree_label
        node.level = index.bit_length() - 1
        node.level_index = index - (1 << node.level)
        node.tree_index = index
        if node.is_leaf:
            node.leaf_node_index = count
            self._level_count = max(self._level_count, node.level + 1)
            return count + 1
        node.leaf_node_index = -1
        name = node.decider.name
        self._test_counts[name] = self._test_counts.get(name, 0) + 1
        count = self._gather(node.left, 2 * index, count)
        return self._gather(node.right, 2 * index + 1, count)

    @property
    def root(self) -> DecisionTreeNode:
        return self._root

    @property
    def label_count(self) -> int:
        return self._num_labels

    @property
    def tree_label(self) -> int:
        return self._tree_label

    @property
    def node_info(self) -> Dict[int, DecisionTreeNode]:
        return self._node_info

    @property
    def test_counts(self) -> Dict[str, int]:
        return self._test_counts

    @property
    def leaf_count(self) -> int:
        return self._leaf_count

    @property
    def node_count(self) -> int:
        return len(self._node_info)

    @property
    def level_count(self) -> int:
        return self._level_count

    def nodes(self) -> List[DecisionTreeNode]:
        return [self._node_info[i] for i in sorted(self._node_info)]

    def leaves(self) -> List[DecisionTreeNode]:
        return [n for n in self.nodes() if n.is_leaf]

    # Evaluation

    def find_leaf(self, point: DataPoint) -> DecisionTreeNode:
        node = self._root
        while not node.is_leaf:
            if node.decider.decide(point, cache=False) is Decision.LEFT:
                node = node.left
            else:
                node = node.right
        return node

    def classify_soft(self, point: DataPoint, accumulator: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Leaf distribution reached by `point`. With an accumulator, the
        distribution is added into it and the accumulator is returned.
        """
        distribution = self.find_leaf(point).distribution
        if accumulator is None:
            return distribution
        accumulator += distribution
        return accumulator

    def classify(self, point: DataPoint) -> int:
        return int(np.argmax(self.classify_soft(point)))

    def get_sparse_code(self, point: DataPoint) -> int:
        """Forest-wide leaf number reached by `point`."""
        return self.find_leaf(point).leaf_node_index

    def _partition(self, points: Sequence[DataPoint], visit: Callable) -> None:
        """Route the points down the tree, calling visit(node, indices) at every node reached."""
        stack = [(self._root, np.arange(len(points)))]
        while stack:
            node, indices = stack.pop()
            visit(node, indices)
            if node.is_leaf or indices.size == 0:
                continue
            decisions = node.decider.decide_all([points[i] for i in indices])
            left = indices[decisions == Decision.LEFT]
            right = indices[decisions == Decision.RIGHT]
            if left.size:
                stack.append((node.left, left))
            if right.size:
                stack.append((node.right, right))

    def assign_nodes(self, points: Sequence[DataPoint]) -> List[DecisionTreeNode]:
        """Leaf reached by each point, in point order."""
        result: List[Optional[DecisionTreeNode]] = [None] * len(points)

        def visit(node, indices):
            if node.is_leaf:
                for i in indices:
                    result[i] = node

        self._partition(points, visit)
        return result

    def compute_histogram(self, points: Sequence[DataPoint]) -> TreeHistogram:
        """Number of points passing through every node the points reach."""
        counts: Dict[int, int] = {}

        def visit(node, indices):
            if indices.size:
                counts[node.tree_index] = int(indices.size)

        self._partition(points, visit)
        nodes = [TreeNode(self._tree_label, float(count), self._node_info[index].leaf_node_index, index)
                 for index, count in counts.items()]
        return TreeHistogram(nodes)

    # Refilling

    def clear(self) -> None:
        for node in self._node_info.values():
            node.distribution = np.zeros(self._num_labels, dtype=np.float64)
            node.training_count = 0.0

    def fill(self, points: Sequence[DataPoint]) -> None:
        """
        Add the labelled points to the distribution of every node they pass
        through. Unlabelled points (-1) are skipped.

        Raises:
            ConfigurationError: A label lies outside [0, label_count)
        """
        labelled = [p for p in points if p.label >= 0]
        labels, weights = point_arrays(labelled)
        if labels.size and labels.max() >= self._num_labels:
            raise ConfigurationError(
                f"Fill labels must lie in [0, {self._num_labels}), got {int(labels.max())}")

        def visit(node, indices):
            np.add.at(node.distribution, labels[indices], weights[indices])

        self._partition(labelled, visit)

    def normalize(self) -> None:
        """Apply label weights, record training counts and entropies, then normalize every node."""
        self._normalize(apply_weights=True)

    def _normalize(self, apply_weights: bool) -> None:
        for node in self._node_info.values():
            distribution = np.asarray(node.distribution, dtype=np.float64)
            if apply_weights and self.label_weights is not None:
                distribution = distribution * self.label_weights
            node.training_count = float(distribution.sum())
            node.distribution = normalize(distribution)
            node.entropy = float(-np.sum(node.distribution * np.log2(node.distribution)))

    def fill_node_histogram(self, histogram: np.ndarray) -> None:
        """Write each leaf's training count at its leaf number."""
        for node in self.leaves():
            histogram[node.leaf_node_index] = node.training_count

    def fill_leaf_nodes(self, leaf_nodes: List) -> None:
        for node in self.leaves():
            leaf_nodes[node.leaf_node_index] = node

    def get_training_data_count(self) -> float:
        return self._root.training_count

    # Construction

    @staticmethod
    def compute_depth_first(data: Sequence[DataPoint], factory: FeatureFactory, num_features: int,
                            num_thresholds: int, num_labels: int,
                            label_weights: Optional[Sequence[float]] = None,
                            config: Optional[TrainingConfig] = None) -> 'DecisionTree':
        """
        Grow a tree greedily, one node at a time.

        Args:
            data: Labelled training points
            factory: Source of candidate features
            num_features: Candidate features tried per node
            num_thresholds: Candidate thresholds tried per feature
            num_labels: Size of the label space
            label_weights: Optional per-label multipliers
            config: Training knobs

        Returns:
            The trained, normalized tree
        """
        config = resolve_config(config)
        weights = validate_training_input(data, num_labels, label_weights, num_features, num_thresholds)
        UpdateManager.write_line("[DecisionTree] Depth-first training on {0} points", len(data))
        executor = make_executor(config.n_jobs)
        try:
            context = _DepthFirstContext(factory, num_features, num_thresholds, num_labels,
                                         weights, config, executor)
            root = DecisionTree._depth_first(list(data), 0, context)
        finally:
            if executor is not None:
                executor.shutdown(wait=True)
        tree = DecisionTree(root, num_labels, weights)
        tree._normalize(apply_weights=False)
        return tree

    @staticmethod
    def _trial(data: List[DataPoint], context: _DepthFirstContext) -> Tuple[Decider, ThresholdChoice]:
        decider = Decider.from_factory(context.factory)
        decider.load_data(data, building=True)
        choice = decider.choose_threshold(context.num_thresholds, context.num_labels, context.label_weights)
        return decider, choice

    @staticmethod
    def _depth_first(data: List[DataPoint], depth: int, context: _DepthFirstContext) -> DecisionTreeNode:
        labels, weights = point_arrays(data)
        distribution = label_distribution(labels, context.num_labels, weights, context.label_weights)
        if is_delta(labels):
            UpdateManager.write_line("[DecisionTree] Delta function at depth {0}", depth)
            return DecisionTreeNode.leaf(distribution)
        if depth >= context.config.maximum_depth - 1:
            return DecisionTreeNode.leaf(distribution)

        trials = parallel_map(lambda _: DecisionTree._trial(data, context),
                              range(context.num_features), context.executor)
        decider, choice = Decider.best_of(trials)

        if choice.score == NO_SPLIT or len(data) < context.config.minimum_support:
            UpdateManager.write_line("[DecisionTree] Stopping due to lack of data at depth {0}, {1} < {2}",
                                     depth, len(data), context.config.minimum_support)
            return DecisionTreeNode.leaf(distribution)

        if depth == context.config.maximum_depth - 2:
            return DecisionTreeNode.branch(decider, DecisionTreeNode.leaf(choice.left_distribution),
                                           DecisionTreeNode.leaf(choice.right_distribution), distribution)

        decisions = decider.decide_all(data, building=True)
        left = [p for p, d in zip(data, decisions) if d == Decision.LEFT]
        right = [p for p, d in zip(data, decisions) if d == Decision.RIGHT]
        if not left or not right:
            raise TrainingInvariantError(
                f"Winning split {decider} sent all {len(data)} points to one side at depth {depth}")
        UpdateManager.write_line("[DecisionTree] Branch node at depth {0} trained.", depth)
        left_node = DecisionTree._depth_first(left, depth + 1, context)
        right_node = DecisionTree._depth_first(right, depth + 1, context)
        return DecisionTreeNode.branch(decider, left_node, right_node, distribution)

    @staticmethod
    def compute_breadth_first(data: Sequence[DataPoint], factory: FeatureFactory, num_features: int,
                              num_thresholds: int, num_labels: int,
                              label_weights: Optional[Sequence[float]] = None,
                              threshold: float = 0.0,
                              config: Optional[TrainingConfig] = None) -> 'DecisionTree':
        """
        Grow all open nodes level by level under a shared acceptance bar.

        Each round tries `num_features` features against every open node and
        splits the nodes whose best information gain beat `threshold` (nodes
        above the minimum depth always accept). A round without splits lowers
        the bar by threshold / number_of_tries; after number_of_tries empty
        rounds the remaining open nodes become leaves.
        """
        config = resolve_config(config)
        weights = validate_training_input(data, num_labels, label_weights, num_features, num_thresholds)
        data = list(data)
        labels, point_weights = point_arrays(data)
        UpdateManager.write_line("[DecisionTree] Breadth-first training on {0} points", len(data))

        def make_candidate(indices: np.ndarray, index: int, level: int) -> _SplitCandidate:
            distribution = label_distribution(labels[indices], num_labels, point_weights[indices], weights)
            return _SplitCandidate(indices, index, level, entropy(distribution), len(indices),
                                   is_delta(labels[indices]))

        def splittable(candidate: _SplitCandidate) -> bool:
            return not (candidate.delta
                        or candidate.level >= config.maximum_depth - 1
                        or candidate.support < config.minimum_support)

        candidates: Deque[_SplitCandidate] = deque([make_candidate(np.arange(len(data)), 1, 0)])
        deciders: Dict[int, Decider] = {}
        tries = config.number_of_tries
        increment = threshold / tries
        changed = True

        executor = make_executor(config.n_jobs)
        try:
            while tries > 0:
                if not changed:
                    threshold -= increment
                    UpdateManager.write_line("[DecisionTree] Decreasing threshold to {0}", threshold)
                open_candidates = [c for c in candidates if splittable(c)]

                def evaluate_feature(_):
                    decider = Decider.from_factory(factory)
                    values = np.fromiter((decider.compute(p, building=True) for p in data),
                                         dtype=np.float64, count=len(data))
                    scores = []
                    for candidate in open_candidates:
                        idx = candidate.indices
                        decider.set_data(values[idx], labels[idx], point_weights[idx])
                        choice = decider.choose_threshold(num_thresholds, num_labels, weights)
                        scores.append((choice.score, decider.threshold))
                    return decider.feature, scores

                outcomes = parallel_map(evaluate_feature, range(num_features), executor) if open_candidates else []
                best_gain = NO_SPLIT
                for feature, scores in outcomes:
                    for candidate, (score, cut) in zip(open_candidates, scores):
                        gain = candidate.entropy + score
                        best_gain = max(best_gain, gain)
                        if (gain > threshold or candidate.level < config.minimum_depth) \
                                and gain > candidate.entropy_gain:
                            candidate.entropy_gain = gain
                            candidate.decider = Decider(feature, cut)

                changed = False
                for _ in range(len(candidates)):
                    candidate = candidates.popleft()
                    if candidate.decider is None:
                        candidates.append(candidate)
                        continue
                    changed = True
                    points = [data[i] for i in candidate.indices]
                    decisions = candidate.decider.decide_all(points, building=True)
                    left = candidate.indices[decisions == Decision.LEFT]
                    right = candidate.indices[decisions == Decision.RIGHT]
                    if left.size == 0 or right.size == 0:
                        raise TrainingInvariantError(
                            f"Accepted split {candidate.decider} sent all points to one side at node {candidate.index}")
                    UpdateManager.write_line("[DecisionTree] {0:05d}:{1:.3f}|{2:.3f} {3:.3f} {4}",
                                             candidate.index, left.size / candidate.support,
                                             right.size / candidate.support, candidate.entropy_gain,
                                             candidate.decider)
                    deciders[candidate.index] = candidate.decider
                    candidates.append(make_candidate(left, 2 * candidate.index, candidate.level + 1))
                    candidates.append(make_candidate(right, 2 * candidate.index + 1, candidate.level + 1))

                if not changed:
                    UpdateManager.write_line("[DecisionTree] No new nodes added, best entropy gain was {0}", best_gain)
                    tries -= 1
                if best_gain == NO_SPLIT:
                    break
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        leaf_indices = {candidate.index: candidate.indices for candidate in candidates}

        def build(index: int) -> DecisionTreeNode:
            if index not in deciders:
                idx = leaf_indices[index]
                return DecisionTreeNode.leaf(
                    label_distribution(labels[idx], num_labels, point_weights[idx], weights))
            return DecisionTreeNode.branch(deciders[index], build(2 * index), build(2 * index + 1))

        tree = DecisionTree(build(1), num_labels, weights)
        tree._normalize(apply_weights=False)
        return tree
