r"""Pairwise block contraction with a label-based API.

Primary API::

    contract_blocks(a, b) -> SymmetricTensor
    contract(\*tensors, output_labels=None, row_count=None) -> SymmetricTensor

Bonds with equal labels on the two operands are summed over, every other
bond survives in the order ``a``'s open bonds then ``b``'s open bonds.
Within a pair of matching blocks the work is a small einsum executed by
opt_einsum on the JAX backend.

Fermionic contraction is graded: the left operand's shared bonds are moved
behind its open bonds (in its own order), the right operand's shared bonds
in front of its open bonds in the reverse order, so that contracted pairs
meet innermost first. Each block picks up the Koszul sign of those moves.
Every leaf block has even total parity, so together with the swap gates
of :class:`~symnet.network.swap.SwapTracker` the result of a network does
not depend on its contraction tree.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from typing import Any

import jax
import numpy as np
import opt_einsum

from symnet.core.bond import Bond, Label
from symnet.core.symmetry import BaseSymmetry
from symnet.core.tensor import BlockKey, SymmetricTensor, _koszul_sign


def _pair_subscripts(
    labels_a: Sequence[Label],
    labels_b: Sequence[Label],
    shared: set[Label],
) -> str:
    """Einsum subscripts for one block pair, e.g. ``"ab,bc->ac"``."""
    symbols: dict[Label, str] = {}
    for lbl in (*labels_a, *labels_b):
        if lbl not in symbols:
            symbols[lbl] = opt_einsum.get_symbol(len(symbols))
    out = [lbl for lbl in labels_a if lbl not in shared]
    out += [lbl for lbl in labels_b if lbl not in shared]
    return (
        "".join(symbols[lbl] for lbl in labels_a)
        + ","
        + "".join(symbols[lbl] for lbl in labels_b)
        + "->"
        + "".join(symbols[lbl] for lbl in out)
    )


def _grading_sign(sym: BaseSymmetry, key: BlockKey, perm: Sequence[int]) -> int:
    """Koszul sign of reordering the bonds of block *key* into *perm*."""
    parities = [int(p) for p in sym.parity(np.array(key, dtype=np.int32))]
    return _koszul_sign(parities, perm)


def contract_blocks(
    a: SymmetricTensor,
    b: SymmetricTensor,
    name: str = "",
) -> SymmetricTensor:
    """Contract two block-sparse tensors over all of their shared labels.

    Only block pairs whose charges agree on every shared bond are
    multiplied; their products are accumulated into the output block keyed
    by the remaining charges. With no shared label the result is the outer
    product. Fermionic block pairs carry the grading sign described in the
    module docstring.

    Args:
        a:    Left operand.
        b:    Right operand.
        name: Name given to the result.

    Returns:
        SymmetricTensor with bonds ``a``'s open bonds then ``b``'s.

    Raises:
        ValueError: If a label repeats on one operand or a shared pair of
            bonds cannot be contracted (see :meth:`Bond.pairs_with`).
    """
    labels_a, labels_b = a.labels(), b.labels()
    for labels, which in ((labels_a, "left"), (labels_b, "right")):
        if len(set(labels)) != len(labels):
            raise ValueError(f"Repeated label on the {which} operand: {list(labels)}")

    shared = set(labels_a) & set(labels_b)
    pos_a = [i for i, lbl in enumerate(labels_a) if lbl in shared]
    pos_b = [labels_b.index(labels_a[i]) for i in pos_a]
    for i, j in zip(pos_a, pos_b):
        if not a.bond(i).pairs_with(b.bond(j)):
            raise ValueError(
                f"Bonds with label {labels_a[i]!r} cannot be contracted: "
                f"{a.bond(i)!r} and {b.bond(j)!r}"
            )

    free_a = [i for i, lbl in enumerate(labels_a) if lbl not in shared]
    free_b = [j for j, lbl in enumerate(labels_b) if lbl not in shared]
    out_bonds: tuple[Bond, ...] = tuple(a.bond(i) for i in free_a) + tuple(
        b.bond(j) for j in free_b
    )
    subscripts = _pair_subscripts(labels_a, labels_b, shared)

    sym = a.bond(pos_a[0]).symmetry if shared else None
    graded = sym is not None and sym.is_fermionic
    perm_a = free_a + pos_a
    perm_b = pos_b[::-1] + free_b

    # Index b's blocks by the charges on the shared bonds, in a's order.
    b_by_shared: dict[BlockKey, list[tuple[BlockKey, jax.Array, int]]] = defaultdict(list)
    for key_b, block_b in b.blocks.items():
        sign_b = _grading_sign(sym, key_b, perm_b) if graded else 1
        b_by_shared[tuple(key_b[j] for j in pos_b)].append((key_b, block_b, sign_b))

    out: dict[BlockKey, Any] = {}
    for key_a, block_a in a.blocks.items():
        matches = b_by_shared.get(tuple(key_a[i] for i in pos_a), ())
        sign_a = _grading_sign(sym, key_a, perm_a) if graded and matches else 1
        for key_b, block_b, sign_b in matches:
            out_key = tuple(key_a[i] for i in free_a) + tuple(key_b[j] for j in free_b)
            product = opt_einsum.contract(subscripts, block_a, block_b, backend="jax")
            if sign_a * sign_b < 0:
                product = -product
            if out_key in out:
                out[out_key] = out[out_key] + product
            else:
                out[out_key] = product

    return SymmetricTensor(out, out_bonds, name)


def contract(
    *tensors: SymmetricTensor,
    output_labels: Sequence[Label] | None = None,
    row_count: int | None = None,
) -> SymmetricTensor:
    """Contract tensors by matching shared labels.

    A throwaway :class:`~symnet.network.network.Network` is built over the
    tensors' own labels, so the pairwise order comes from the same search
    that cached networks use.

    Args:
        *tensors:      One or more tensors.
        output_labels: Order of the open labels in the result.
        row_count:     Number of leading output bonds turned into IN bonds.

    Raises:
        ValueError: If no tensor is given.
        TopologyError: If the labels do not define a valid contraction.

    Example:
        >>> # A has labels (1, 2), B has labels (2, 3)
        >>> contract(A, B).labels()
        (1, 3)
    """
    if not tensors:
        raise ValueError("contract() requires at least one tensor")

    from symnet.network.network import Network

    net = Network.from_tensors(list(tensors))
    return net.launch(output_labels=output_labels, row_count=row_count)
