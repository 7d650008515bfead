"""
Decision vines (decision jungles): level-structured DAGs whose nodes may
share children once a level reaches its width cap.

Nodes live in per-level lists. A branch node refers to its children by
their position in the next level, and every child keeps the running sum of
the label counts its parents send to it.
"""

from collections import deque
from concurrent.futures import Executor
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .data_point import DataPoint
from .decider import Decider, Decision
from .distribution import entropy, entropy_rows, is_delta, label_distribution, normalize
from .features import FeatureFactory
from .training_config import TrainingConfig, resolve_config
from .tree import NodeType, make_executor, parallel_map, point_arrays, validate_training_input
from Util.ThreadsafeRandom import ThreadsafeRandom
from Util.UpdateManager import UpdateManager


class DecisionVineNode:
    """
    Attributes:
        index: Position of the node within its level
        distribution: Label counts received from all parents (normalized for leaves once training ends)
        left, right: Child positions in the next level, None when unassigned
        left_counts, right_counts: Label counts this node sends to each child
        data: Training points reaching the node; released once they are passed on
    """

    def __init__(self, index: int, num_labels: int, node_type: NodeType = NodeType.BRANCH):
        self.index = index
        self.node_type = node_type
        self.distribution = np.zeros(num_labels, dtype=np.float64)
        self.decider: Optional[Decider] = None
        self.left: Optional[int] = None
        self.right: Optional[int] = None
        self.left_counts = np.zeros(num_labels, dtype=np.float64)
        self.right_counts = np.zeros(num_labels, dtype=np.float64)
        self.data: Optional[List[DataPoint]] = []

    def __getstate__(self):
        state = self.__dict__.copy()
        state['data'] = None
        return state

    @property
    def is_leaf(self) -> bool:
        return self.node_type is NodeType.LEAF

    @property
    def count(self) -> int:
        return len(self.data) if self.data else 0

    def add_distribution(self, distribution: np.ndarray) -> None:
        self.distribution += distribution

    def remove_distribution(self, distribution: np.ndarray) -> None:
        self.distribution -= distribution


class _VineLevel:
    """Links one level of parents to the children being built below it."""

    def __init__(self, parents: List[DecisionVineNode], num_labels: int):
        self.parents = parents
        self.children: List[DecisionVineNode] = []
        self.num_labels = num_labels

    def new_child(self) -> int:
        self.children.append(DecisionVineNode(len(self.children), self.num_labels))
        return len(self.children) - 1

    def set_left(self, parent: DecisionVineNode, child: Optional[int]) -> None:
        if parent.left is not None:
            self.children[parent.left].remove_distribution(parent.left_counts)
        parent.left = child
        if child is not None:
            self.children[child].add_distribution(parent.left_counts)

    def set_right(self, parent: DecisionVineNode, child: Optional[int]) -> None:
        if parent.right is not None:
            self.children[parent.right].remove_distribution(parent.right_counts)
        parent.right = child
        if child is not None:
            self.children[child].add_distribution(parent.right_counts)

    def detach(self, parent: DecisionVineNode) -> None:
        """Take the parent's counts out of its children, keeping the links."""
        self.children[parent.left].remove_distribution(parent.left_counts)
        self.children[parent.right].remove_distribution(parent.right_counts)

    def attach(self, parent: DecisionVineNode) -> None:
        self.children[parent.left].add_distribution(parent.left_counts)
        self.children[parent.right].add_distribution(parent.right_counts)

    def find_best_child(self, distribution: np.ndarray) -> int:
        """
        Child whose absorption of `distribution` gives the lowest total
        weighted entropy over the level.
        """
        current = np.array([c.distribution for c in self.children])
        energies = current.sum(axis=1) * entropy_rows(current)
        merged = current + distribution
        candidates = energies.sum() - energies + merged.sum(axis=1) * entropy_rows(merged)
        return int(np.argmin(candidates))


class DecisionVine:
    """
    A decision DAG trained level by level with LSearch: greedy seeding of
    new children, assignment of the remaining parents to existing children,
    then random local reassignment.
    """

    def __init__(self, levels: List[List[DecisionVineNode]], num_labels: int, n_jobs: int = 1):
        self._levels = levels
        self._num_labels = num_labels
        self.n_jobs = n_jobs

    @property
    def levels(self) -> List[List[DecisionVineNode]]:
        return self._levels

    @property
    def level_count(self) -> int:
        return len(self._levels)

    @property
    def leaf_count(self) -> int:
        return len(self._levels[-1])

    @property
    def label_count(self) -> int:
        return self._num_labels

    def get_distributions(self) -> List[np.ndarray]:
        return [node.distribution for node in self._levels[-1]]

    def find_node(self, point: DataPoint) -> DecisionVineNode:
        node = self._levels[0][0]
        for level in range(len(self._levels) - 1):
            if node.is_leaf:
                break
            child = node.left if node.decider.decide(point, cache=False) is Decision.LEFT else node.right
            node = self._levels[level + 1][child]
        return node

    def classify_soft(self, point: DataPoint) -> np.ndarray:
        return self.find_node(point).distribution

    def classify(self, point: DataPoint) -> int:
        return int(np.argmax(self.classify_soft(point)))

    def compute_responses(self, points: Sequence[DataPoint], reduce: Callable[[float, float], float],
                          init: Union[float, Callable[[], float]]) -> np.ndarray:
        """
        Continuous embedding over the last level.

        Every branch passes `parent response + (level + 1) * decider value`
        to both of its children; a child combines the responses of all its
        parents with `reduce`, starting from `init`.

        Returns:
            Array of shape (num_points, leaf_count)
        """
        num_levels = len(self._levels)
        width = max(len(level) for level in self._levels)
        denominator = 0.5 * (num_levels * num_levels - num_levels)
        norm = 1.0 / denominator if denominator else 1.0
        start = init if not callable(init) else None

        def respond(point: DataPoint) -> np.ndarray:
            parents = np.zeros(width, dtype=np.float64)
            for level in range(num_levels - 1):
                children = np.full(width, start if start is not None else init(), dtype=np.float64)
                for k, node in enumerate(self._levels[level]):
                    if node.is_leaf:
                        continue
                    response = parents[k] + (level + 1) * node.decider.compute(point)
                    children[node.left] = reduce(children[node.left], response)
                    children[node.right] = reduce(children[node.right], response)
                parents = children
            return parents[:self.leaf_count] * norm

        executor = make_executor(self.n_jobs)
        try:
            rows = parallel_map(respond, list(points), executor)
        finally:
            if executor is not None:
                executor.shutdown(wait=True)
        return np.array(rows, dtype=np.float64).reshape(len(rows), self.leaf_count)

    # Construction

    @staticmethod
    def construct_using_lsearch(data: Sequence[DataPoint], factory: FeatureFactory, num_features: int,
                                num_thresholds: int, max_children: int, max_iterations: int,
                                num_labels: int, config: Optional[TrainingConfig] = None) -> 'DecisionVine':
        """
        Train a vine with at most `config.maximum_depth` levels.

        Args:
            data: Labelled training points
            factory: Source of candidate features
            num_features: Candidate features tried per split
            num_thresholds: Candidate thresholds per feature
            max_children: Width cap for every level
            max_iterations: Local search iterations on capped levels
            num_labels: Size of the label space
            config: Training knobs (minimum_support, maximum_depth, n_jobs)
        """
        config = resolve_config(config)
        validate_training_input(data, num_labels, None, num_features, num_thresholds)
        if max_children < 2:
            raise ValueError("max_children must be at least 2")
        UpdateManager.write_line("[DecisionVine] Training Decision Vine with {0} data points...", len(data))

        root = DecisionVineNode(0, num_labels)
        root.data = list(data)
        labels, weights = point_arrays(root.data)
        root.distribution = label_distribution(labels, num_labels, weights)
        if is_delta(labels) or len(root.data) < config.minimum_support or config.maximum_depth == 1:
            root.node_type = NodeType.LEAF
        levels = [[root]]

        executor = make_executor(config.n_jobs)
        try:
            for i in range(1, config.maximum_depth):
                num_children = min(1 << i, max_children)
                num_iterations = max_iterations if num_children >= max_children else 0
                UpdateManager.write_line("[DecisionVine] Training level {0} with {1} children and {2} optimization iterations...",
                                         i, num_children, num_iterations)
                children = DecisionVine._compute_lsearch_level(
                    levels[-1], factory, num_children, num_features, num_labels, num_thresholds,
                    num_iterations, config, executor)
                if not children:
                    UpdateManager.write_line("[DecisionVine] No splittable nodes left at level {0}", i)
                    break
                if i == config.maximum_depth - 1:
                    for child in children:
                        child.node_type = NodeType.LEAF
                levels.append(children)
                UpdateManager.write_line("[DecisionVine] Level {0} complete with entropy {1}", i,
                                         DecisionVine._level_entropy(children))
                UpdateManager.write_line("[DecisionVine] Data distribution: [{0}]",
                                         ",".join(str(c.count) for c in children))
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        for level in levels:
            for node in level:
                if node.is_leaf:
                    node.distribution = normalize(node.distribution)
                node.data = None
        UpdateManager.write_line("[DecisionVine] Complete.")
        return DecisionVine(levels, num_labels, config.n_jobs)

    @staticmethod
    def _level_entropy(level: List[DecisionVineNode]) -> float:
        return float(sum(node.distribution.sum() * entropy(node.distribution) for node in level))

    @staticmethod
    def _find_split(node: DecisionVineNode, factory: FeatureFactory, left_prior: np.ndarray,
                    right_prior: np.ndarray, num_features: int, num_labels: int, num_thresholds: int,
                    executor: Optional[Executor]) -> bool:
        """
        Try `num_features` features and keep the one with the lowest split
        energy given the child priors. Leaves the node untouched and returns
        False when no feature separates its points.
        """
        def trial(_) -> Tuple[Decider, float]:
            decider = Decider.from_factory(factory)
            decider.load_data(node.data, building=True)
            choice = decider.choose_threshold_with_priors(num_thresholds, num_labels, left_prior, right_prior)
            return decider, choice.score

        results = parallel_map(trial, range(num_features), executor)
        best, energy = min(results, key=lambda r: r[1])
        if not np.isfinite(energy):
            return False

        decisions = best.decide_all(node.data, building=True)
        labels, weights = point_arrays(node.data)
        left = decisions == Decision.LEFT
        node.decider = best
        node.left_counts = label_distribution(labels[left], num_labels, weights[left])
        node.right_counts = label_distribution(labels[~left], num_labels, weights[~left])
        return True

    @staticmethod
    def _resplit_with_priors(level: _VineLevel, parent: DecisionVineNode, factory: FeatureFactory,
                             num_features: int, num_labels: int, num_thresholds: int,
                             executor: Optional[Executor]) -> None:
        level.detach(parent)
        DecisionVine._find_split(parent, factory,
                                 level.children[parent.left].distribution.copy(),
                                 level.children[parent.right].distribution.copy(),
                                 num_features, num_labels, num_thresholds, executor)
        level.attach(parent)

    @staticmethod
    def _compute_lsearch_level(parents: List[DecisionVineNode], factory: FeatureFactory, num_children: int,
                               num_features: int, num_labels: int, num_thresholds: int, num_iterations: int,
                               config: TrainingConfig, executor: Optional[Executor]) -> List[DecisionVineNode]:
        level = _VineLevel(parents, num_labels)
        zeros = np.zeros(num_labels, dtype=np.float64)
        branches = [p for p in parents if not p.is_leaf]
        queue = deque(sorted(branches, key=lambda p: p.count * entropy(p.distribution), reverse=True))

        UpdateManager.write_line("[DecisionVine] Initializing children using highest-energy parents...")
        while queue and len(level.children) < num_children:
            parent = queue.popleft()
            if not DecisionVine._find_split(parent, factory, zeros, zeros, num_features, num_labels,
                                            num_thresholds, executor):
                parent.node_type = NodeType.LEAF
                continue
            level.set_left(parent, level.new_child())
            if len(level.children) < num_children:
                level.set_right(parent, level.new_child())
            else:
                level.set_right(parent, level.find_best_child(parent.right_counts))

        if queue:
            UpdateManager.write_line("[DecisionVine] Adding in parents without children...")
        while queue:
            parent = queue.popleft()
            if not DecisionVine._find_split(parent, factory, zeros, zeros, num_features, num_labels,
                                            num_thresholds, executor):
                parent.node_type = NodeType.LEAF
                continue
            level.set_left(parent, level.find_best_child(parent.left_counts))
            level.set_right(parent, level.find_best_child(parent.right_counts))
            DecisionVine._resplit_with_priors(level, parent, factory, num_features, num_labels,
                                              num_thresholds, executor)

        if not level.children:
            return []

        if num_iterations:
            UpdateManager.write_line("[DecisionVine] Optimizing...")
        for _ in UpdateManager.progress_enum(range(num_iterations)):
            parent = parents[ThreadsafeRandom.next_int(0, len(parents))]
            if parent.is_leaf or parent.decider is None:
                continue
            level.set_left(parent, None)
            level.set_left(parent, level.find_best_child(parent.left_counts))
            level.set_right(parent, None)
            level.set_right(parent, level.find_best_child(parent.right_counts))
            DecisionVine._resplit_with_priors(level, parent, factory, num_features, num_labels,
                                              num_thresholds, executor)

        UpdateManager.write_line("[DecisionVine] Portioning out data to children...")
        for child in level.children:
            child.data = []
        for parent in parents:
            if parent.is_leaf:
                continue
            decisions = parent.decider.decide_all(parent.data, building=True)
            for point, decision in zip(parent.data, decisions):
                target = parent.left if decision == Decision.LEFT else parent.right
                level.children[target].data.append(point)
            parent.data = None

        for child in level.children:
            child_labels = np.fromiter((p.label for p in child.data), dtype=np.int64, count=len(child.data))
            if not child.data or is_delta(child_labels) or len(child.data) < config.minimum_support:
                child.node_type = NodeType.LEAF
            else:
                child.node_type = NodeType.BRANCH
        return level.children
