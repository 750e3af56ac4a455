"""Tests for contraction-tree nodes and the node arena."""

import numpy as np
import pytest

from symnet.core.bond import Bond, FlowDirection
from symnet.core.symmetry import U1Symmetry
from symnet.network.node import Node, NodeArena, cal_elem_num


def _leaf(labels, dims, index, name=""):
    u1 = U1Symmetry()
    bonds = [
        Bond(u1, np.zeros(d, dtype=np.int32), FlowDirection.IN, label=lbl)
        for lbl, d in zip(labels, dims)
    ]
    return Node(labels, bonds, name=name or f"T{index}", leaf=index)


@pytest.fixture
def chain_leaves():
    """A(1, 2) B(2, 3) C(3, 4) with dims 1->2, 2->3, 3->4, 4->5."""
    return [
        _leaf((1, 2), (2, 3), 0, "A"),
        _leaf((2, 3), (3, 4), 1, "B"),
        _leaf((3, 4), (4, 5), 2, "C"),
    ]


class TestNode:
    def test_cal_elem_num(self, chain_leaves):
        assert cal_elem_num(chain_leaves[0].bonds) == 6
        assert cal_elem_num(()) == 1

    def test_leaf_properties(self, chain_leaves):
        a = chain_leaves[0]
        assert a.is_leaf
        assert a.elem_num == 6
        assert a.parent is None

    def test_contract_labels_and_bonds(self, chain_leaves):
        a, b, _ = chain_leaves
        ab = a.contract(b)
        assert ab.labels == (1, 3)
        assert [bd.dim for bd in ab.bonds] == [2, 4]
        assert ab.elem_num == 8
        assert not ab.is_leaf
        # Inputs are untouched and unlinked.
        assert a.parent is None and b.parent is None

    def test_contract_without_bonds_keeps_labels(self):
        a = Node((1, 2), leaf=0)
        b = Node((2, 3), leaf=1)
        ab = a.contract(b)
        assert ab.labels == (1, 3)
        assert ab.bonds == ()

    def test_metric_is_result_size(self, chain_leaves):
        a, b, c = chain_leaves
        assert a.metric(b) == a.contract(b).elem_num
        assert a.metric(c) == 2 * 3 * 4 * 5

    def test_delink(self, chain_leaves):
        a = chain_leaves[0]
        a.parent, a.left, a.right = 5, 1, 2
        a.delink()
        assert (a.parent, a.left, a.right) == (None, None, None)


class TestNodeArena:
    def test_build_and_ssa_path(self, chain_leaves):
        arena = NodeArena(chain_leaves)
        root = arena.build([(0, 1), (2, 3)])
        assert arena[root].labels == (1, 4)
        assert arena.ssa_path(root) == [(0, 1), (2, 3)]
        assert len(arena) == 5

    def test_build_sets_parents(self, chain_leaves):
        arena = NodeArena(chain_leaves)
        root = arena.build([(1, 2), (0, 3)])
        assert arena[root].parent is None
        assert arena[1].parent == arena[2].parent == 3
        assert arena[0].parent == root
        assert arena[3].point == float(arena[3].elem_num)

    def test_single_leaf(self, chain_leaves):
        arena = NodeArena(chain_leaves[:1])
        assert arena.build([]) == 0
        assert arena.ssa_path(0) == []

    @pytest.mark.parametrize(
        "path",
        [
            [(0, 1)],
            [(0, 0), (1, 2)],
            [(0, 1), (0, 2)],
            [(0, 1), (2, 7)],
        ],
    )
    def test_invalid_path_raises(self, chain_leaves, path):
        with pytest.raises(ValueError):
            NodeArena(chain_leaves).build(path)

    def test_traversals(self, chain_leaves):
        arena = NodeArena(chain_leaves)
        root = arena.build([(1, 2), (0, 3)])
        assert list(arena.post_order(root)) == [0, 1, 2, 3, 4]
        assert list(arena.pre_order(root)) == [(4, 0), (0, 1), (3, 1), (1, 2), (2, 2)]
        assert arena.leaf_order(root) == [0, 1, 2]
        assert arena.internal_nodes(root) == [3, 4]

    def test_refresh_upwards(self, chain_leaves):
        arena = NodeArena(chain_leaves)
        root = arena.build([(0, 1), (2, 3)])
        u1 = U1Symmetry()
        wider = [Bond(u1, np.zeros(d, dtype=np.int32), FlowDirection.IN, label=lbl)
                 for lbl, d in ((1, 7), (2, 3))]
        arena[0].set_payload((1, 2), wider)
        arena.refresh_upwards(arena[0].parent)
        assert [b.dim for b in arena[root].bonds] == [7, 5]

    def test_delink_both_ways(self, chain_leaves):
        arena = NodeArena(chain_leaves)
        root = arena.build([(0, 1), (2, 3)])
        arena.delink(3)
        assert arena[0].parent is None
        assert arena[1].parent is None
        assert arena[root].left is None
        assert arena[3].parent is None

    def test_release_internal(self, chain_leaves):
        arena = NodeArena(chain_leaves)
        arena.build([(0, 1), (2, 3)])
        arena.release_internal()
        assert len(arena) == 3
        assert all(arena[i].parent is None for i in range(3))
        # The leaves can be joined into a new tree afterwards.
        root = arena.build([(1, 2), (0, 3)])
        assert arena[root].labels == (1, 4)
