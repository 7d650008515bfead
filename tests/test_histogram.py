import pytest

from DForest.Core.histogram import TreeHistogram, TreeNode


def histogram(*bins, id=None):
    return TreeHistogram([TreeNode(tree, value, -1, index) for tree, index, value in bins], id)


def test_tree_node_position():
    node = TreeNode(2, 5.0, -1, 6)
    assert node.level == 2
    assert node.bin == 2
    assert str(node) == "2:2:2:5.0"


def test_lookup_and_assignment():
    h = histogram((1, 3, 2.0), (0, 1, 4.0), (0, 2, 1.0))

    assert [n.key for n in h] == [(0, 1), (0, 2), (1, 3)]
    assert h[(0, 2)] == 1.0
    assert h[(5, 1)] == 0.0
    h[(0, 2)] = 7.0
    assert h[(0, 2)] == 7.0
    with pytest.raises(KeyError):
        h[(9, 9)] = 1.0
    assert h.contains(TreeNode(1, 0.0, -1, 3))
    assert TreeNode(1, 0.0, -1, 4) not in h


def test_union_sums_shared_bins():
    result = histogram((0, 1, 2.0), (0, 2, 1.0)) + histogram((0, 1, 3.0), (1, 1, 5.0))
    assert len(result) == 3
    assert result[(0, 1)] == 5.0
    assert result[(0, 2)] == 1.0
    assert result[(1, 1)] == 5.0


def test_subtract_and_intersect():
    a = histogram((0, 1, 4.0), (0, 2, 1.0))
    b = histogram((0, 1, 3.0), (0, 3, 2.0))

    difference = a - b
    assert difference[(0, 1)] == 1.0
    assert difference[(0, 3)] == -2.0

    common = a.intersect(b)
    assert len(common) == 1
    assert common[(0, 1)] == 3.0


def test_divide_and_totals():
    h = histogram((0, 1, 4.0), (0, 2, 3.0), (0, 3, 1.0), id="img") / 4

    assert h.id == "img"
    assert h.total() == pytest.approx(2.0)
    assert h.total(level=0) == pytest.approx(1.0)
    assert h.total(level=1) == pytest.approx(1.0)
