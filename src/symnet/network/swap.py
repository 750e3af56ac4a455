"""Exchange-statistics bookkeeping for fermionic networks.

The contraction tree visits leaves in an order (its in-order leaf
sequence) that generally differs from the order in which the tensors were
declared. For fermionic tensors every such reordering has a sign: moving
leaf ``a`` past leaf ``b`` exchanges the bonds ``a`` shares with ``b``
with ``a``'s remaining bonds. :class:`SwapTracker` turns the reordering
into, per leaf, a list of bond exchanges (:class:`Swap`) that
:meth:`~symnet.core.tensor.SymmetricTensor.apply_swaps` converts into
block signs before the leaf is contracted.

Graded pairwise contraction (:func:`~symnet.contraction.contractor.contract_blocks`)
attaches to every contracted label a parity sign that depends on which of
its two leaves comes first in the tree. A leaf block has even total
parity, so the exchanges recorded for ``a`` passing ``b`` multiply to the
parity of the labels joining ``a`` and ``b``, which is exactly the change
of those signs. Launching any tree therefore gives the declared-order
result.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import NamedTuple

from symnet.core.bond import Label
from symnet.core.tensor import Tensor

logger = logging.getLogger(__name__)


class Swap(NamedTuple):
    """Exchange of two bond positions on one tensor.

    Attributes:
        b1:   Smaller bond position.
        b2:   Larger bond position.
        flag: True when both bonds can carry an odd charge, i.e. the
              exchange can produce a sign. Unflagged swaps are skipped.
    """

    b1: int
    b2: int
    flag: bool = True


def tensor_order_swaps(order: Sequence[int]) -> list[tuple[int, int]]:
    """Adjacent exchanges that bubble-sort *order* into ascending order.

    Each entry is ``(a, b)`` with ``a < b``: leaf ``a`` had to move in
    front of leaf ``b``.

    Example:
        >>> tensor_order_swaps([0, 2, 1])
        [(1, 2)]
    """
    seq = list(order)
    exchanges: list[tuple[int, int]] = []
    for i in range(len(seq) - 1):
        for j in range(len(seq) - i - 1):
            if seq[j] > seq[j + 1]:
                exchanges.append((seq[j + 1], seq[j]))
                seq[j], seq[j + 1] = seq[j + 1], seq[j]
    return exchanges


def exchange_swaps(
    labels_a: Sequence[Label],
    labels_b: Sequence[Label],
) -> list[tuple[int, int]]:
    """Bond exchanges on ``a`` when ``a`` moves past ``b``.

    Every bond of ``a`` shared with ``b`` is exchanged with every bond of
    ``a`` that is not.
    """
    b_set = set(labels_b)
    shared = [i for i, lbl in enumerate(labels_a) if lbl in b_set]
    rest = [i for i, lbl in enumerate(labels_a) if lbl not in b_set]
    return [(i, j) for i in shared for j in rest]


def _cancel_pairs(exchanges: Sequence[tuple[int, int]]) -> list[tuple[int, int]]:
    """Keep the exchanges that occur an odd number of times, sorted."""
    odd: set[tuple[int, int]] = set()
    for i, j in exchanges:
        odd ^= {(min(i, j), max(i, j))}
    return sorted(odd)


def _swap_flag(tensor: Tensor | None, b1: int, b2: int) -> bool:
    if tensor is None:
        return True
    sym = tensor.bond(b1).symmetry
    if not sym.is_fermionic:
        return False
    return sym.has_odd(tensor.bond(b1).charges) and sym.has_odd(tensor.bond(b2).charges)


class SwapTracker:
    """Per-leaf swap plans for one contraction tree.

    Args:
        n_leaves: Number of leaves in the network.

    Attributes:
        swaps_arr: ``swaps_arr[i]`` is the swap list of leaf ``i``.
    """

    def __init__(self, n_leaves: int) -> None:
        self.n_leaves = n_leaves
        self.swaps_arr: list[list[Swap]] = [[] for _ in range(n_leaves)]

    def rec_swap(
        self,
        tree_order: Sequence[int],
        label_arr: Sequence[Sequence[Label]],
        tensors: Sequence[Tensor | None],
    ) -> list[list[Swap]]:
        """Recompute every leaf's swap list for a new tree.

        Args:
            tree_order: Declaration indices of the leaves in tree order.
            label_arr:  Declared labels of each leaf.
            tensors:    Current leaf tensors (``None`` for empty slots),
                        used to set the swap flags.

        Returns:
            The new ``swaps_arr``.
        """
        if sorted(tree_order) != list(range(self.n_leaves)):
            raise ValueError(
                f"Tree order {list(tree_order)} is not a permutation of "
                f"{self.n_leaves} leaves"
            )
        raw: list[list[tuple[int, int]]] = [[] for _ in range(self.n_leaves)]
        for a, b in tensor_order_swaps(tree_order):
            raw[a].extend(exchange_swaps(label_arr[a], label_arr[b]))

        self.swaps_arr = [
            [Swap(i, j, _swap_flag(tensors[t], i, j)) for i, j in _cancel_pairs(raw[t])]
            for t in range(self.n_leaves)
        ]
        n_active = sum(s.flag for swaps in self.swaps_arr for s in swaps)
        logger.debug(
            "Swap plan for order %s: %d swaps, %d sign-carrying",
            list(tree_order),
            sum(len(s) for s in self.swaps_arr),
            n_active,
        )
        return self.swaps_arr

    def refresh_flags(self, index: int, tensor: Tensor | None) -> None:
        """Re-derive the flags of leaf *index* after its payload changed."""
        self.swaps_arr[index] = [
            Swap(s.b1, s.b2, _swap_flag(tensor, s.b1, s.b2)) for s in self.swaps_arr[index]
        ]

    def clear(self) -> None:
        self.swaps_arr = [[] for _ in range(self.n_leaves)]

    def swaps(self, index: int) -> list[Swap]:
        return self.swaps_arr[index]
