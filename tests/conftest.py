"""Shared fixtures for the symnet test suite."""

import jax
import numpy as np
import pytest

from symnet.core.bond import Bond, FlowDirection
from symnet.core.symmetry import FermionParity, U1Symmetry, ZnSymmetry
from symnet.core.tensor import SymmetricTensor

# ------------------------------------------------------------------ #
# Symmetry fixtures                                                    #
# ------------------------------------------------------------------ #

@pytest.fixture
def u1():
    return U1Symmetry()


@pytest.fixture
def z2():
    return ZnSymmetry(2)


@pytest.fixture
def z3():
    return ZnSymmetry(3)


@pytest.fixture
def fp():
    return FermionParity()


# ------------------------------------------------------------------ #
# Random key fixtures                                                  #
# ------------------------------------------------------------------ #

@pytest.fixture
def rng():
    return jax.random.PRNGKey(42)


@pytest.fixture
def rng2():
    return jax.random.PRNGKey(99)


# ------------------------------------------------------------------ #
# Bond fixtures                                                        #
# ------------------------------------------------------------------ #

@pytest.fixture
def u1_charges_3():
    """U(1) charges [-1, 0, 1], typical for a bond of dimension 3."""
    return np.array([-1, 0, 1], dtype=np.int32)


@pytest.fixture
def bond_in_3(u1, u1_charges_3):
    """U(1) IN bond with charges [-1, 0, 1], label 1."""
    return Bond(u1, u1_charges_3, FlowDirection.IN, label=1)


@pytest.fixture
def bond_out_3(u1, u1_charges_3):
    """U(1) OUT bond with the same charges, label 1: contracts with bond_in_3."""
    return Bond(u1, u1_charges_3, FlowDirection.OUT, label=1)


# ------------------------------------------------------------------ #
# SymmetricTensor fixtures                                             #
# ------------------------------------------------------------------ #

@pytest.fixture
def u1_sym_tensor_3leg(u1, rng):
    """3-leg U(1)-symmetric tensor: phys (1) x left (2) x right (3)."""
    phys_c = np.array([-1, 1], dtype=np.int32)
    virt_c = np.array([-1, 0, 1], dtype=np.int32)
    bonds = (
        Bond(u1, phys_c, FlowDirection.IN, label=1),
        Bond(u1, virt_c, FlowDirection.IN, label=2),
        Bond(u1, virt_c, FlowDirection.OUT, label=3),
    )
    return SymmetricTensor.random_normal(bonds, rng)


@pytest.fixture
def u1_sym_tensor_pair(u1, rng, rng2):
    """A pair of 3-leg U(1)-symmetric tensors sharing label 3.

    Both ends of the shared bond use the SAME charge array with opposite
    flows, so position i on either side stores the same charge and dense
    einsum over the shared index agrees with the block contraction.
    """
    phys_c = np.array([-1, 1], dtype=np.int32)
    bond_c = np.array([-1, 0, 1], dtype=np.int32)
    bonds_a = (
        Bond(u1, phys_c, FlowDirection.IN, label=1),
        Bond(u1, bond_c, FlowDirection.IN, label=2),
        Bond(u1, bond_c, FlowDirection.OUT, label=3),
    )
    bonds_b = (
        Bond(u1, phys_c, FlowDirection.IN, label=4),
        Bond(u1, bond_c, FlowDirection.IN, label=3),
        Bond(u1, bond_c, FlowDirection.OUT, label=5),
    )
    a = SymmetricTensor.random_normal(bonds_a, rng, name="A")
    b = SymmetricTensor.random_normal(bonds_b, rng2, name="B")
    return a, b


def _matrix(sym, charges, row_label, col_label, key, name=""):
    bonds = (
        Bond(sym, charges, FlowDirection.IN, label=row_label),
        Bond(sym, charges, FlowDirection.OUT, label=col_label),
    )
    return SymmetricTensor.random_normal(bonds, key, name=name)


@pytest.fixture
def triangle(u1):
    """U(1) matrices A(1, 2), B(2, 3), C(3, 1) forming a closed loop."""
    charges = np.array([-1, 0, 0, 1], dtype=np.int32)
    keys = jax.random.split(jax.random.PRNGKey(7), 3)
    a = _matrix(u1, charges, 1, 2, keys[0], "A")
    b = _matrix(u1, charges, 2, 3, keys[1], "B")
    c = _matrix(u1, charges, 3, 1, keys[2], "C")
    return a, b, c


@pytest.fixture
def fermion_triangle(fp):
    """Fermion-parity matrices A(1, 2), B(2, 3), C(3, 1)."""
    charges = np.array([0, 1, 1], dtype=np.int32)
    keys = jax.random.split(jax.random.PRNGKey(11), 3)
    a = _matrix(fp, charges, 1, 2, keys[0], "A")
    b = _matrix(fp, charges, 2, 3, keys[1], "B")
    c = _matrix(fp, charges, 3, 1, keys[2], "C")
    return a, b, c
