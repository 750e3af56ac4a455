"""Core tensor, bond and symmetry classes."""

from symnet.core.bond import Bond, FlowDirection, Label
from symnet.core.errors import (
    NetfileError,
    NetworkError,
    StructuralMismatchError,
    TopologyError,
    UnconstructedNetworkError,
)
from symnet.core.profiler import ContractionProfiler
from symnet.core.symmetry import (
    BaseSymmetry,
    BraidingStyle,
    FermionicU1,
    FermionParity,
    U1Symmetry,
    ZnSymmetry,
)
from symnet.core.tensor import BlockKey, SymmetricTensor, Tensor

__all__ = [
    "BaseSymmetry",
    "BraidingStyle",
    "U1Symmetry",
    "ZnSymmetry",
    "FermionParity",
    "FermionicU1",
    "FlowDirection",
    "Label",
    "Bond",
    "Tensor",
    "SymmetricTensor",
    "BlockKey",
    "ContractionProfiler",
    "NetworkError",
    "TopologyError",
    "StructuralMismatchError",
    "UnconstructedNetworkError",
    "NetfileError",
]
