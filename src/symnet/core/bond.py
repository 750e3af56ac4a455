"""Bond (leg) metadata for block-sparse tensors.

A :class:`Bond` is one dimension-slot of a tensor: the symmetry governing
it, the charge of each basis state along it, its flow direction and the
integer label used to match it with a bond of another tensor. Bonds are
identified by position inside a tensor; the label only says which bonds of
different tensors are contracted together.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

import numpy as np

from symnet.core.symmetry import BaseSymmetry

Label = int


class FlowDirection(IntEnum):
    """Direction of a bond.

    IN (+1) bonds are row bonds, OUT (-1) bonds are column bonds. Every
    stored block satisfies ``sum_i(flow_i * charge_i) == identity``.
    """

    IN = 1
    OUT = -1


@dataclass(frozen=True, slots=True)
class Bond:
    """Metadata for one bond of a symmetric tensor.

    Attributes:
        symmetry: Symmetry group of the charges.
        charges:  1-D int32 array, ``charges[i]`` is the charge of state ``i``.
        flow:     :class:`FlowDirection` of the bond.
        label:    Integer label; equal labels on two tensors are contracted.

    Example:
        >>> b = Bond(U1Symmetry(), np.array([-1, 0, 1]), FlowDirection.IN, label=3)
        >>> b.dim
        3
    """

    symmetry: BaseSymmetry
    charges: np.ndarray
    flow: FlowDirection
    label: Label = 0

    def __post_init__(self) -> None:
        charges = np.asarray(self.charges)
        if charges.ndim != 1:
            raise ValueError(f"charges must be 1-D, got shape {charges.shape}")
        if charges.dtype != np.int32:
            charges = charges.astype(np.int32)
        object.__setattr__(self, "charges", charges)
        object.__setattr__(self, "flow", FlowDirection(int(self.flow)))

    @property
    def dim(self) -> int:
        return len(self.charges)

    def dual(self) -> Bond:
        """Return the bond with opposite flow and dual charges."""
        return Bond(
            self.symmetry,
            self.symmetry.dual(self.charges),
            FlowDirection(-int(self.flow)),
            self.label,
        )

    def relabel(self, new_label: Label) -> Bond:
        return Bond(self.symmetry, self.charges, self.flow, new_label)

    def with_flow(self, flow: FlowDirection) -> Bond:
        """Return this bond pointing in *flow*, dualising it if needed."""
        if self.flow == flow:
            return self
        return self.dual()

    def same_structure(self, other: Bond) -> bool:
        """True if *other* equals this bond up to its label.

        Dimension and flow are compared first; the charge arrays only when
        those agree.
        """
        return (
            self.dim == other.dim
            and self.flow == other.flow
            and self.symmetry == other.symmetry
            and np.array_equal(self.charges, other.charges)
        )

    def pairs_with(self, other: Bond) -> bool:
        """True if this bond can be contracted with *other*.

        Contracted bonds share the symmetry and the charge array and point
        in opposite directions, so that block keys match charge for charge.
        """
        return (
            self.symmetry == other.symmetry
            and self.flow != other.flow
            and np.array_equal(self.charges, other.charges)
        )

    def __hash__(self) -> int:
        return hash((self.symmetry, self.charges.tobytes(), int(self.flow), self.label))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bond):
            return NotImplemented
        return (
            self.symmetry == other.symmetry
            and np.array_equal(self.charges, other.charges)
            and self.flow == other.flow
            and self.label == other.label
        )

    def __repr__(self) -> str:
        return (
            f"Bond(sym={self.symmetry!r}, dim={self.dim}, "
            f"flow={self.flow.name}, label={self.label!r})"
        )
