"""Block-sparse symmetric tensor.

:class:`SymmetricTensor` keeps only the charge sectors allowed by the
conservation law. Blocks are stored in ``dict[BlockKey, jax.Array]`` where
a ``BlockKey`` holds one charge per bond. The class is registered as a JAX
pytree: block arrays are the leaves, block keys, bonds and name are static
aux data.

Besides the usual tensor operations it exposes the narrow interface the
network core relies on: :meth:`~SymmetricTensor.bond_count`,
:meth:`~SymmetricTensor.bond`, :meth:`~SymmetricTensor.element_count`,
:meth:`~SymmetricTensor.apply_swaps` and :meth:`~SymmetricTensor.permute`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import jax
import jax.numpy as jnp
import numpy as np

from symnet.core.bond import Bond, FlowDirection, Label

if TYPE_CHECKING:
    from symnet.network.swap import Swap

BlockKey = tuple[int, ...]


def _koszul_sign(parities: Sequence[int], perm: Sequence[int]) -> int:
    """Sign of permuting graded objects: -1 per inversion of two odd ones.

    Args:
        parities: Parity of each object in the original order.
        perm:     New order, as indices into the original order.
    """
    sign = 1
    for i in range(len(perm)):
        for j in range(i + 1, len(perm)):
            if perm[i] > perm[j] and parities[perm[i]] and parities[perm[j]]:
                sign = -sign
    return sign


def _compute_valid_blocks(bonds: tuple[Bond, ...]) -> list[BlockKey]:
    """Enumerate the charge sectors that satisfy the conservation law.

    Partial fused charges are propagated bond by bond so that incompatible
    branches are pruned early. For infinite groups the charge of the last
    bond is solved for instead of enumerated.
    """
    if not bonds:
        return [()]

    sym = bonds[0].symmetry
    identity = sym.identity()
    unique = [sorted(set(b.charges.tolist())) for b in bonds]

    if len(bonds) == 1:
        return [(q,) for q in unique[0] if int(bonds[0].flow) * q == identity]

    def _fuse(a: int, b: int) -> int:
        return int(sym.fuse(np.array([a], dtype=np.int32), np.array([b], dtype=np.int32))[0])

    partial: dict[int, list[BlockKey]] = {}
    flow0 = int(bonds[0].flow)
    for q in unique[0]:
        partial.setdefault(flow0 * q, []).append((q,))

    last = len(bonds) - 1
    for i in range(1, last):
        flow = int(bonds[i].flow)
        nxt: dict[int, list[BlockKey]] = {}
        for q in unique[i]:
            for fused, combos in partial.items():
                nxt.setdefault(_fuse(fused, flow * q), []).extend(c + (q,) for c in combos)
        partial = nxt

    flow_last = int(bonds[last].flow)
    valid: list[BlockKey] = []
    if sym.n_values() is None:
        last_set = set(unique[last])
        for fused, combos in partial.items():
            needed = int(sym.dual(np.array([fused], dtype=np.int32))[0])
            q_last = needed * flow_last
            if q_last in last_set:
                valid.extend(c + (q_last,) for c in combos)
    else:
        for q in unique[last]:
            for fused, combos in partial.items():
                if _fuse(fused, flow_last * q) == identity:
                    valid.extend(c + (q,) for c in combos)
    return valid


def _block_slices(
    bonds: tuple[Bond, ...],
    key: BlockKey,
) -> tuple[tuple[np.ndarray, ...], tuple[int, ...]]:
    """Boolean masks selecting the states of each bond in sector *key*."""
    masks = tuple(b.charges == q for b, q in zip(bonds, key))
    shape = tuple(int(m.sum()) for m in masks)
    return masks, shape


class Tensor(ABC):
    """Interface the network core expects from a tensor.

    :class:`SymmetricTensor` is the implementation shipped with the
    package; any subclass implementing the abstract methods can be placed
    on a network leaf.
    """

    name: str = ""

    @property
    @abstractmethod
    def bonds(self) -> tuple[Bond, ...]:
        """Bonds in leg order."""

    def bond_count(self) -> int:
        return len(self.bonds)

    def bond(self, i: int) -> Bond:
        return self.bonds[i]

    def labels(self) -> tuple[Label, ...]:
        return tuple(b.label for b in self.bonds)

    @abstractmethod
    def element_count(self) -> int:
        """Number of stored elements."""

    @abstractmethod
    def apply_swaps(self, swaps: Sequence[Swap]) -> Tensor:
        """Apply exchange signs for *swaps*."""

    @abstractmethod
    def with_labels(self, labels: Sequence[Label]) -> Tensor:
        """Return the tensor with its bonds relabelled position by position."""

    @abstractmethod
    def permute(
        self, labels: Sequence[Label], row_count: int | None = None
    ) -> Tensor:
        """Reorder the bonds by label, optionally resetting flows."""


@jax.tree_util.register_pytree_node_class
class SymmetricTensor(Tensor):
    """Tensor stored as symmetry-allowed blocks only.

    Args:
        blocks: Mapping ``BlockKey -> jax.Array``; each key must satisfy the
            conservation law and each array has, per bond, as many entries
            as that bond has states with the key's charge.
        bonds:  One :class:`~symnet.core.bond.Bond` per leg.
        name:   Optional name, carried through relabelling and permutation.

    Raises:
        ValueError: If a block key violates charge conservation.
    """

    def __init__(
        self,
        blocks: dict[BlockKey, jax.Array],
        bonds: Sequence[Bond],
        name: str = "",
    ) -> None:
        self._bonds = tuple(bonds)
        self._blocks: dict[BlockKey, jax.Array] = dict(blocks)
        self.name = name
        self._validate()

    @classmethod
    def _wrap(
        cls,
        blocks: dict[BlockKey, jax.Array],
        bonds: tuple[Bond, ...],
        name: str,
    ) -> SymmetricTensor:
        # Blocks derived from a validated tensor skip re-validation.
        obj = object.__new__(cls)
        obj._bonds = bonds
        obj._blocks = blocks
        obj.name = name
        return obj

    def _validate(self) -> None:
        if not self._bonds:
            return
        sym = self._bonds[0].symmetry
        flows = [int(b.flow) for b in self._bonds]
        for key in self._blocks:
            if len(key) != len(self._bonds):
                raise ValueError(
                    f"Block {key} has {len(key)} charges for {len(self._bonds)} bonds"
                )
            if not sym.is_conserved(list(key), flows):
                raise ValueError(f"Block {key} violates charge conservation")

    # --- Pytree interface ---

    def tree_flatten(self) -> tuple[list[jax.Array], tuple[Any, ...]]:
        keys = sorted(self._blocks)
        return [self._blocks[k] for k in keys], (keys, self._bonds, self.name)

    @classmethod
    def tree_unflatten(
        cls, aux: tuple[Any, ...], children: list[jax.Array]
    ) -> SymmetricTensor:
        keys, bonds, name = aux
        return cls._wrap(dict(zip(keys, children)), bonds, name)

    # --- Factories ---

    @classmethod
    def zeros(
        cls,
        bonds: Sequence[Bond],
        dtype: Any = jnp.float64,
        name: str = "",
    ) -> SymmetricTensor:
        """All allowed blocks filled with zeros."""
        bonds = tuple(bonds)
        blocks: dict[BlockKey, jax.Array] = {}
        for key in _compute_valid_blocks(bonds):
            _, shape = _block_slices(bonds, key)
            if all(s > 0 for s in shape):
                blocks[key] = jnp.zeros(shape, dtype=dtype)
        return cls(blocks, bonds, name)

    @classmethod
    def random_normal(
        cls,
        bonds: Sequence[Bond],
        key: jax.Array,
        dtype: Any = jnp.float64,
        stddev: float = 1.0,
        name: str = "",
    ) -> SymmetricTensor:
        """All allowed blocks drawn from ``N(0, stddev)``.

        The random key is folded with the block's position in sorted key
        order, so equal bond layouts and keys give equal tensors.
        """
        bonds = tuple(bonds)
        blocks: dict[BlockKey, jax.Array] = {}
        for i, block_key in enumerate(sorted(_compute_valid_blocks(bonds))):
            _, shape = _block_slices(bonds, block_key)
            if all(s > 0 for s in shape):
                subkey = jax.random.fold_in(key, i)
                blocks[block_key] = jax.random.normal(subkey, shape, dtype=dtype) * stddev
        return cls(blocks, bonds, name)

    @classmethod
    def from_dense(
        cls,
        data: jax.Array,
        bonds: Sequence[Bond],
        tol: float = 1e-12,
        name: str = "",
    ) -> SymmetricTensor:
        """Cut a dense array into blocks.

        Raises:
            ValueError: If the shape does not match the bonds or *data* has
                entries above *tol* outside the allowed sectors.
        """
        bonds = tuple(bonds)
        dims = tuple(b.dim for b in bonds)
        if tuple(data.shape) != dims:
            raise ValueError(f"data.shape {tuple(data.shape)} does not match bond dims {dims}")

        data_np = np.asarray(data)
        covered = np.zeros(data_np.shape, dtype=bool)
        blocks: dict[BlockKey, jax.Array] = {}
        for key in sorted(_compute_valid_blocks(bonds)):
            masks, shape = _block_slices(bonds, key)
            if not all(s > 0 for s in shape):
                continue
            grid = np.ix_(*[np.where(m)[0] for m in masks])
            blocks[key] = jnp.array(data_np[grid], dtype=data_np.dtype)
            covered[grid] = True

        outside = np.abs(data_np[~covered])
        if outside.size and np.any(outside > tol):
            raise ValueError(
                f"data has {int(np.sum(outside > tol))} non-zero elements "
                f"outside symmetry-allowed sectors"
            )
        return cls(blocks, bonds, name)

    # --- Properties ---

    @property
    def bonds(self) -> tuple[Bond, ...]:
        return self._bonds

    @property
    def ndim(self) -> int:
        return len(self._bonds)

    @property
    def dtype(self) -> Any:
        if not self._blocks:
            return jnp.float64
        return next(iter(self._blocks.values())).dtype

    @property
    def n_blocks(self) -> int:
        return len(self._blocks)

    @property
    def blocks(self) -> dict[BlockKey, jax.Array]:
        return self._blocks

    def element_count(self) -> int:
        """Number of stored elements summed over all blocks."""
        return int(sum(int(np.prod(v.shape)) for v in self._blocks.values()))

    def block_shapes(self) -> dict[BlockKey, tuple[int, ...]]:
        return {k: tuple(v.shape) for k, v in self._blocks.items()}

    def todense(self) -> jax.Array:
        """Materialise the full array (testing and debugging only)."""
        shape = tuple(b.dim for b in self._bonds)
        result = np.zeros(shape, dtype=np.dtype(self.dtype))
        for key, block in self._blocks.items():
            masks, _ = _block_slices(self._bonds, key)
            grid = np.ix_(*[np.where(m)[0] for m in masks])
            result[grid] = np.asarray(block)
        return jnp.array(result)

    def norm(self) -> jax.Array:
        if not self._blocks:
            return jnp.zeros((), dtype=self.dtype)
        return jnp.sqrt(sum(jnp.sum(jnp.abs(v) ** 2) for v in self._blocks.values()))

    # --- Structural operations ---

    def conj(self) -> SymmetricTensor:
        blocks = {k: jnp.conj(v) for k, v in self._blocks.items()}
        return self._wrap(blocks, self._bonds, self.name)

    def transpose(self, axes: Sequence[int]) -> SymmetricTensor:
        """Permute the bonds; fermionic blocks pick up their Koszul sign."""
        axes = tuple(axes)
        if sorted(axes) != list(range(self.ndim)):
            raise ValueError(f"axes {axes} is not a permutation of {self.ndim} bonds")
        sym = self._bonds[0].symmetry if self._bonds else None
        fermionic = sym is not None and sym.is_fermionic

        blocks: dict[BlockKey, jax.Array] = {}
        for key, block in self._blocks.items():
            moved = jnp.transpose(block, axes)
            if fermionic:
                parities = [int(p) for p in sym.parity(np.array(key))]
                if _koszul_sign(parities, axes) < 0:
                    moved = -moved
            blocks[tuple(key[i] for i in axes)] = moved
        return self._wrap(blocks, tuple(self._bonds[i] for i in axes), self.name)

    def with_labels(self, labels: Sequence[Label]) -> SymmetricTensor:
        """Return a view whose bonds carry *labels*, position by position.

        Raises:
            ValueError: If the number of labels differs from the bond count.
        """
        labels = tuple(labels)
        if len(labels) != self.ndim:
            raise ValueError(
                f"Got {len(labels)} labels for a tensor with {self.ndim} bonds"
            )
        if labels == self.labels():
            return self
        bonds = tuple(b.relabel(lbl) for b, lbl in zip(self._bonds, labels))
        return self._wrap(self._blocks, bonds, self.name)

    def relabels(self, mapping: dict[Label, Label]) -> SymmetricTensor:
        """Rename the labels found in *mapping*; others are left alone."""
        return self.with_labels([mapping.get(lbl, lbl) for lbl in self.labels()])

    def rename(self, name: str) -> SymmetricTensor:
        return self._wrap(self._blocks, self._bonds, name)

    def permute(
        self,
        labels: Sequence[Label],
        row_count: int | None = None,
    ) -> SymmetricTensor:
        """Reorder the bonds by label and optionally reset their flows.

        Args:
            labels:    New bond order, a permutation of :meth:`labels`.
            row_count: If given, the first ``row_count`` bonds become IN
                       bonds and the rest OUT bonds. A flipped bond takes the
                       dual charges; its blocks are re-keyed accordingly.

        Raises:
            ValueError: If *labels* is not a permutation of the current
                        labels or *row_count* is out of range.
        """
        current = self.labels()
        if len(labels) != len(current) or set(labels) != set(current):
            raise ValueError(f"{list(labels)} is not a permutation of {list(current)}")
        result = self.transpose(tuple(current.index(lbl) for lbl in labels))
        if row_count is None:
            return result
        if not 0 <= row_count <= self.ndim:
            raise ValueError(f"row_count {row_count} out of range for {self.ndim} bonds")

        flows = [FlowDirection.IN] * row_count + [FlowDirection.OUT] * (self.ndim - row_count)
        flip = [b.flow != f for b, f in zip(result.bonds, flows)]
        if not any(flip):
            return result
        sym = result.bonds[0].symmetry
        bonds = tuple(b.with_flow(f) for b, f in zip(result.bonds, flows))
        blocks: dict[BlockKey, jax.Array] = {}
        for key, block in result.blocks.items():
            new_key = tuple(
                int(sym.dual(np.array([q], dtype=np.int32))[0]) if f else q
                for q, f in zip(key, flip)
            )
            blocks[new_key] = block
        return self._wrap(blocks, bonds, self.name)

    def apply_swaps(self, swaps: Sequence[Swap]) -> SymmetricTensor:
        """Apply exchange-statistics signs for a list of bond swaps.

        Every block is multiplied by the product of
        ``symmetry.exchange_sign(key[b1], key[b2])`` over the flagged swaps.
        Bosonic tensors and empty swap lists return ``self``.
        """
        active = [s for s in swaps if s.flag]
        if not active or not self._bonds or not self._bonds[0].symmetry.is_fermionic:
            return self
        sym = self._bonds[0].symmetry
        blocks: dict[BlockKey, jax.Array] = {}
        for key, block in self._blocks.items():
            sign = 1
            for s in active:
                sign *= sym.exchange_sign(key[s.b1], key[s.b2])
            blocks[key] = -block if sign < 0 else block
        return self._wrap(blocks, self._bonds, self.name)

    def __repr__(self) -> str:
        return (
            f"SymmetricTensor(name={self.name!r}, ndim={self.ndim}, "
            f"n_blocks={self.n_blocks}, nnz={self.element_count()}, "
            f"dtype={self.dtype}, labels={self.labels()})"
        )
