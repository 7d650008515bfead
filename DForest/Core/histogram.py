"""
Sparse tree histograms: how many points passed through each tree node.
"""

from bisect import bisect_left
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Optional, Tuple


@dataclass(frozen=True)
class TreeNode:
    """
    One histogram bin.

    Attributes:
        tree: Label of the tree the node belongs to
        value: Bin value (a point count, or a normalized count)
        leaf_index: Forest-wide leaf number, -1 for branch nodes
        index: Position in the tree (root = 1, children of i are 2i and 2i+1)
    """
    tree: int
    value: float
    leaf_index: int
    index: int
    level: int = field(init=False)
    bin: int = field(init=False)

    def __post_init__(self):
        level = self.index.bit_length() - 1
        object.__setattr__(self, 'level', level)
        object.__setattr__(self, 'bin', self.index - (1 << level))

    @property
    def key(self) -> Tuple[int, int]:
        return self.tree, self.index

    def with_value(self, value: float) -> 'TreeNode':
        return replace(self, value=value)

    def __str__(self):
        return f"{self.tree}:{self.level}:{self.bin}:{self.value}"


class TreeHistogram:
    """Bins kept sorted by (tree, index)."""

    def __init__(self, nodes: Optional[Iterable[TreeNode]] = None, id: Optional[str] = None):
        self._nodes: List[TreeNode] = sorted(nodes or [], key=lambda n: n.key)
        self._keys = [n.key for n in self._nodes]
        self.id = id

    def _find(self, tree: int, index: int) -> int:
        key = (tree, index)
        position = bisect_left(self._keys, key)
        if position < len(self._keys) and self._keys[position] == key:
            return position
        return -1

    def __getitem__(self, key: Tuple[int, int]) -> float:
        position = self._find(*key)
        return 0.0 if position < 0 else self._nodes[position].value

    def __setitem__(self, key: Tuple[int, int], value: float) -> None:
        position = self._find(*key)
        if position < 0:
            raise KeyError(f"Histogram does not contain bin {key}")
        self._nodes[position] = self._nodes[position].with_value(value)

    def __len__(self):
        return len(self._nodes)

    def __iter__(self) -> Iterator[TreeNode]:
        return iter(self._nodes)

    def __contains__(self, node: TreeNode) -> bool:
        return self._find(node.tree, node.index) >= 0

    def contains(self, node: TreeNode) -> bool:
        return node in self

    def total(self, level: Optional[int] = None) -> float:
        """Sum of bin values, optionally restricted to one tree level."""
        return sum(n.value for n in self._nodes if level is None or n.level == level)

    def divide(self, value: float) -> 'TreeHistogram':
        return TreeHistogram([n.with_value(n.value / value) for n in self._nodes], self.id)

    def _merge(self, other: 'TreeHistogram', both, only_self, only_other) -> 'TreeHistogram':
        mine: Dict[Tuple[int, int], TreeNode] = {n.key: n for n in self._nodes}
        theirs: Dict[Tuple[int, int], TreeNode] = {n.key: n for n in other._nodes}
        nodes = []
        for key, node in mine.items():
            if key in theirs:
                nodes.append(node.with_value(both(node.value, theirs[key].value)))
            elif only_self is not None:
                nodes.append(node.with_value(only_self(node.value)))
        if only_other is not None:
            for key, node in theirs.items():
                if key not in mine:
                    nodes.append(node.with_value(only_other(node.value)))
        return TreeHistogram(nodes)

    def union(self, other: 'TreeHistogram') -> 'TreeHistogram':
        """Every bin of either histogram; shared bins are summed."""
        return self._merge(other, lambda a, b: a + b, lambda a: a, lambda b: b)

    def subtract(self, other: 'TreeHistogram') -> 'TreeHistogram':
        return self._merge(other, lambda a, b: a - b, lambda a: a, lambda b: -b)

    def intersect(self, other: 'TreeHistogram') -> 'TreeHistogram':
        """Shared bins only, each with the smaller value."""
        return self._merge(other, min, None, None)

    def __add__(self, other):
        return self.union(other)

    def __sub__(self, other):
        return self.subtract(other)

    def __truediv__(self, value):
        return self.divide(value)

    def __repr__(self):
        return f"TreeHistogram({len(self._nodes)} bins, id={self.id!r})"
