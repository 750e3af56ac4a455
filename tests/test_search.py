"""Tests for the contraction-order search."""

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from symnet.core.bond import Bond, FlowDirection
from symnet.core.symmetry import U1Symmetry
from symnet.network.node import Node, NodeArena
from symnet.network.search import (
    STRATEGIES,
    SearchConfig,
    branch,
    chain_path,
    find_path,
    greedy_path,
    insertion_path,
    linear_to_ssa,
    matching,
    optimal_path,
    score_path,
)


def _leaves(label_arr, dims):
    """Leaf nodes whose bond dimensions come from a label -> dim map."""
    u1 = U1Symmetry()
    leaves = []
    for i, labels in enumerate(label_arr):
        bonds = [
            Bond(u1, np.zeros(dims[lbl], dtype=np.int32), FlowDirection.IN, label=lbl)
            for lbl in labels
        ]
        leaves.append(Node(labels, bonds, name=f"T{i}", leaf=i))
    return leaves


@pytest.fixture
def bad_chain():
    """A(1, 2) B(3, 4) C(2, 3): declaration order starts with an outer product."""
    return _leaves([(1, 2), (3, 4), (2, 3)], {1: 2, 2: 10, 3: 10, 4: 2})


def _is_valid_path(path, n):
    try:
        NodeArena(_leaves([()] * n, {})).build(path)
    except ValueError:
        return False
    return True


class TestMatching:
    def test_shared_label(self, bad_chain):
        a, b, c = bad_chain
        assert matching(a, c)
        assert not matching(a, b)

    def test_repeated_label_does_not_match(self):
        a = Node((1, 1, 2), leaf=0)
        b = Node((2, 3), leaf=1)
        assert not matching(a, b)


class TestBranch:
    def test_branch_at_root_creates_new_root(self, bad_chain):
        arena = NodeArena(bad_chain)
        root = arena.merge(0, 1)
        new_root = branch(arena, 2, root)
        assert arena[new_root].parent is None
        assert arena[new_root].left == root
        assert arena[new_root].right == 2
        assert arena[new_root].labels == (1, 4)

    def test_branch_inside_refreshes_ancestors(self, bad_chain):
        arena = NodeArena(bad_chain)
        root = arena.merge(0, 1)
        mid = branch(arena, 2, 0)
        assert arena[root].left == mid
        assert arena[mid].parent == root
        assert arena[mid].labels == (1, 3)
        assert arena[root].labels == (1, 4)
        assert arena.leaf_order(root) == [0, 2, 1]


class TestScorePath:
    def test_chain_cost(self, bad_chain):
        # (A, B) is a 2 x 10 x 10 x 2 outer product, then (AB, C) -> 2 x 2
        assert score_path(bad_chain, chain_path(bad_chain)) == (404, 400)

    def test_good_order_cost(self, bad_chain):
        assert score_path(bad_chain, [(0, 2), (1, 3)]) == (24, 20)

    def test_single_leaf(self, bad_chain):
        assert score_path(bad_chain[:1], []) == (0, 0)


class TestStrategies:
    def test_chain_path(self, bad_chain):
        assert chain_path(bad_chain) == [(0, 1), (3, 2)]
        assert chain_path(bad_chain[:1]) == []

    def test_greedy_picks_cheapest(self, bad_chain):
        path = greedy_path(bad_chain)
        assert score_path(bad_chain, path)[0] == 24

    def test_greedy_disconnected_takes_outer_product(self):
        leaves = _leaves([(1,), (2,)], {1: 2, 2: 3})
        assert greedy_path(leaves) == [(0, 1)]

    def test_optimal(self, bad_chain):
        path = optimal_path(bad_chain)
        assert _is_valid_path(path, 3)
        assert score_path(bad_chain, path)[0] == 24

    def test_insertion_is_valid(self, bad_chain):
        path = insertion_path(bad_chain)
        assert _is_valid_path(path, 3)

    def test_randomised_paths_are_valid(self, bad_chain):
        rng = np.random.default_rng(0)
        config = SearchConfig(temperature=1.0)
        for _ in range(5):
            assert _is_valid_path(greedy_path(bad_chain, rng, config), 3)
            assert _is_valid_path(insertion_path(bad_chain, rng, config), 3)

    def test_linear_to_ssa(self):
        assert linear_to_ssa([(0, 2), (0, 1)], 3) == [(0, 2), (1, 3)]


class TestSearchConfig:
    def test_defaults(self):
        config = SearchConfig()
        assert config.strategy == "auto"
        assert config.times == 1

    def test_unknown_strategy(self):
        with pytest.raises(ValueError, match="Unknown strategy"):
            SearchConfig(strategy="annealing")

    def test_times_must_be_positive(self):
        with pytest.raises(ValueError, match="times"):
            SearchConfig(times=0)

    def test_negative_temperature(self):
        with pytest.raises(ValueError, match="temperature"):
            SearchConfig(temperature=-1.0)


class TestFindPath:
    @pytest.mark.parametrize("strategy", ["auto", *sorted(STRATEGIES)])
    def test_never_worse_than_chain(self, bad_chain, strategy):
        result = find_path(bad_chain, SearchConfig(strategy=strategy))
        chain = score_path(bad_chain, chain_path(bad_chain))
        assert (result.tot_elem, result.max_elem) <= chain
        assert score_path(bad_chain, result.path) == (result.tot_elem, result.max_elem)

    def test_greedy_beats_chain(self, bad_chain):
        result = find_path(bad_chain, SearchConfig(strategy="greedy"))
        assert result.tot_elem == 24
        assert result.strategy == "greedy"

    def test_chain_kept_when_not_beaten(self):
        leaves = _leaves([(1, 2), (2, 3), (3, 4)], {1: 2, 2: 2, 3: 2, 4: 2})
        result = find_path(leaves, SearchConfig(strategy="insertion"))
        assert result.strategy == "chain"
        assert result.path == chain_path(leaves)

    def test_attempts(self, bad_chain):
        assert find_path(bad_chain, SearchConfig(strategy="greedy", times=4)).attempts == 4
        assert find_path(bad_chain, SearchConfig(strategy="optimal", times=4)).attempts == 1

    def test_seeded_search_is_reproducible(self, bad_chain):
        config = SearchConfig(strategy="insertion", times=5, seed=3)
        assert find_path(bad_chain, config).path == find_path(bad_chain, config).path

    def test_auto_switches_to_greedy(self):
        label_arr = [(i, i + 1) for i in range(6)]
        dims = {i: 2 for i in range(7)}
        result = find_path(_leaves(label_arr, dims), SearchConfig(optimal_limit=3))
        assert result.strategy in ("greedy", "chain")

    @given(
        st.lists(st.integers(1, 6), min_size=5, max_size=5),
        st.sampled_from(["greedy", "insertion"]),
    )
    @settings(max_examples=30, deadline=None)
    def test_ring_never_worse_than_chain(self, dims, strategy):
        """Property: on a 5-ring the search result costs at most the chain."""
        label_arr = [(i, (i + 1) % 5) for i in range(5)]
        leaves = _leaves(label_arr, dict(enumerate(dims)))
        result = find_path(leaves, SearchConfig(strategy=strategy, times=3, seed=0))
        assert (result.tot_elem, result.max_elem) <= score_path(leaves, chain_path(leaves))
