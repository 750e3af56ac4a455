"""Tests for fermionic swap bookkeeping."""

import jax
import numpy as np
import pytest

from symnet.core.bond import Bond, FlowDirection
from symnet.core.tensor import SymmetricTensor
from symnet.network.swap import (
    Swap,
    SwapTracker,
    exchange_swaps,
    tensor_order_swaps,
)

TRIANGLE = [(1, 2), (2, 3), (3, 1)]


def _fp_tensor(fp, labels, charges, key):
    bonds = [
        Bond(fp, np.asarray(charges, dtype=np.int32), flow, label=lbl)
        for lbl, flow in zip(labels, (FlowDirection.IN, FlowDirection.OUT))
    ]
    return SymmetricTensor.random_normal(bonds, key)


class TestTensorOrderSwaps:
    def test_sorted_order_needs_nothing(self):
        assert tensor_order_swaps([0, 1, 2]) == []

    def test_single_exchange(self):
        assert tensor_order_swaps([0, 2, 1]) == [(1, 2)]

    def test_reversed(self):
        assert tensor_order_swaps([2, 1, 0]) == [(1, 2), (0, 2), (0, 1)]


class TestExchangeSwaps:
    def test_shared_against_rest(self):
        assert exchange_swaps((2, 3), (3, 1)) == [(1, 0)]

    def test_nothing_shared(self):
        assert exchange_swaps((1, 2), (3, 4)) == []

    def test_everything_shared(self):
        assert exchange_swaps((1, 2), (2, 1)) == []

    def test_multiple(self):
        assert exchange_swaps((1, 2, 3), (2, 5)) == [(1, 0), (1, 2)]


class TestSwapTracker:
    def test_declared_order_has_no_swaps(self):
        tracker = SwapTracker(3)
        arr = tracker.rec_swap([0, 1, 2], TRIANGLE, [None] * 3)
        assert arr == [[], [], []]

    def test_reordered_triangle(self):
        tracker = SwapTracker(3)
        arr = tracker.rec_swap([0, 2, 1], TRIANGLE, [None] * 3)
        assert arr[0] == []
        assert arr[1] == [Swap(0, 1, True)]
        assert arr[2] == []

    def test_duplicates_cancel(self):
        # Leaf 0 passes both 1 and 2; each exchange produces the same swap.
        label_arr = [(1, 2), (1, 3), (2, 3)]
        tracker = SwapTracker(3)
        arr = tracker.rec_swap([1, 2, 0], label_arr, [None] * 3)
        assert arr[0] == []

    def test_bosonic_swaps_are_unflagged(self, u1_sym_tensor_3leg):
        t = u1_sym_tensor_3leg
        tracker = SwapTracker(3)
        tracker.rec_swap([0, 2, 1], TRIANGLE, [t, t, t])
        assert tracker.swaps(1) == [Swap(0, 1, False)]

    def test_even_only_bonds_are_unflagged(self, fp):
        key = jax.random.PRNGKey(0)
        even = _fp_tensor(fp, (2, 3), [0, 0], key)
        mixed = _fp_tensor(fp, (2, 3), [0, 1], key)
        tracker = SwapTracker(3)
        tracker.rec_swap([0, 2, 1], TRIANGLE, [None, even, None])
        assert tracker.swaps(1) == [Swap(0, 1, False)]
        tracker.refresh_flags(1, mixed)
        assert tracker.swaps(1) == [Swap(0, 1, True)]

    def test_not_a_permutation_raises(self):
        with pytest.raises(ValueError, match="permutation"):
            SwapTracker(3).rec_swap([0, 0, 1], TRIANGLE, [None] * 3)

    def test_clear(self):
        tracker = SwapTracker(3)
        tracker.rec_swap([2, 1, 0], TRIANGLE, [None] * 3)
        tracker.clear()
        assert tracker.swaps_arr == [[], [], []]
