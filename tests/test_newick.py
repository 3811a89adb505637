"""Tests for merge trace reconstruction and Newick output."""

import re

import pytest

from oligo.exceptions import StructuralError
from oligo.newick import ROOT_SENTINEL, Tree, from_merge_trace, serialize


def three_leaf_trace():
    """a and b merge first (node 3), then node 3 merges with c (node 4, the root)."""
    parents = [3, 3, 4, 4, ROOT_SENTINEL]
    costs = [1.0, 0.6, 0.0]
    return ["a", "b", "c"], parents, costs


def caterpillar_trace(n):
    """Each merge joins the next leaf onto the previous merge."""
    parents = [0] * (2 * n - 1)
    parents[0] = n
    parents[1] = n
    for leaf in range(2, n):
        parents[leaf] = n + leaf - 1
    for node in range(n, 2 * n - 2):
        parents[node] = node + 1
    parents[2 * n - 2] = ROOT_SENTINEL
    costs = [float(n - i) for i in range(n)]
    return [f"leaf{i}" for i in range(n)], parents, costs


def test_three_leaf_tree():
    tree = from_merge_trace(*three_leaf_trace())
    newick = serialize(tree)

    assert newick == "(c:0.600000,(a:0.400000,b:0.400000):0.600000):0.000000;"
    for name in ("a", "b", "c"):
        assert len(re.findall(rf"\b{name}:", newick)) == 1
    assert newick.count("(") == 2
    assert newick.count(")") == 2
    assert newick.endswith(";")


def test_tree_structure_from_trace():
    tree = Tree.from_merge_trace(*three_leaf_trace())

    assert tree.root == 4
    assert tree.is_root(4)
    assert tree.nodes[4].children == [2, 3]
    assert tree.nodes[3].children == [0, 1]
    assert tree.nodes[0].parent == 3
    assert sorted(tree.leaf_names()) == ["a", "b", "c"]
    assert tree.nodes[3].name == ""
    assert tree.nodes[0].distance == pytest.approx(0.4)
    assert tree.nodes[3].distance == pytest.approx(0.6)


def test_single_leaf_trace():
    tree = from_merge_trace(["only"], [ROOT_SENTINEL], [0.25])
    assert serialize(tree) == "only:0.000000;"


def test_subtree_has_no_terminator():
    tree = from_merge_trace(*three_leaf_trace())
    assert tree.to_newick(3) == "(a:0.400000,b:0.400000):0.600000"


def test_internal_node_name_is_written():
    tree = from_merge_trace(*three_leaf_trace())
    tree.set_name(3, "ab")
    assert serialize(tree) == "(c:0.600000,(a:0.400000,b:0.400000)ab:0.600000):0.000000;"


def test_deep_tree_serializes():
    ids, parents, costs = caterpillar_trace(3000)
    tree = from_merge_trace(ids, parents, costs)
    newick = serialize(tree)

    assert newick.count("(") == 2999
    assert newick.count(")") == 2999
    assert len(tree.leaf_names()) == 3000
    assert newick.endswith(":0.000000;")


def test_manual_tree():
    tree = Tree()
    root = tree.add_node()
    left = tree.add_node("x")
    right = tree.add_node("y")
    tree.add_child(root, left)
    tree.add_child(root, right)
    tree.set_distance(left, 1.5)

    assert tree.is_leaf(left)
    assert not tree.is_leaf(root)
    assert tree.is_root(root)
    assert tree.to_newick() == "(x:1.500000,y:0.000000):0.000000;"


def test_missing_root_raises():
    ids, parents, costs = three_leaf_trace()
    parents[4] = 4
    with pytest.raises(StructuralError):
        from_merge_trace(ids, parents, costs)


def test_multiple_roots_raise():
    ids, parents, costs = three_leaf_trace()
    parents[3] = ROOT_SENTINEL
    with pytest.raises(StructuralError):
        from_merge_trace(ids, parents, costs)


def test_wrong_trace_lengths_raise():
    ids, parents, costs = three_leaf_trace()
    with pytest.raises(StructuralError):
        from_merge_trace(ids, parents[:-1], costs)
    with pytest.raises(StructuralError):
        from_merge_trace(ids, parents, costs[:-1])
    with pytest.raises(StructuralError):
        from_merge_trace([], [], [])


def test_leaf_as_parent_raises():
    ids, parents, costs = three_leaf_trace()
    parents[2] = 1
    with pytest.raises(StructuralError):
        from_merge_trace(ids, parents, costs)


def test_cyclic_trace_raises():
    # Nodes 5 and 6 point at each other and never reach the root
    ids = ["a", "b", "c", "d", "e"]
    parents = [5, 5, 6, 7, 7, 6, 5, 8, ROOT_SENTINEL]
    costs = [4.0, 3.0, 2.0, 1.0, 0.0]
    with pytest.raises(StructuralError):
        from_merge_trace(ids, parents, costs)


def test_tree_without_single_root_has_no_root():
    tree = Tree()
    tree.add_node("a")
    tree.add_node("b")
    with pytest.raises(StructuralError):
        tree.to_newick()
