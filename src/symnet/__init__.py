"""symnet: reusable contraction networks over symmetric block-sparse tensors.

A network is declared once by its integer bond labels, searched once for a
cheap pairwise contraction order and then launched repeatedly on fresh
tensors with the same bond structure. Fermionic tensors get the exchange
signs their reordering implies.

.. note::
    Importing ``symnet`` enables JAX 64-bit mode (``jax_enable_x64``).

Quick start::

    import jax
    import numpy as np
    from symnet import Bond, FlowDirection, Network, SymmetricTensor, U1Symmetry

    u1 = U1Symmetry()
    q = np.array([-1, 0, 1], dtype=np.int32)
    a = SymmetricTensor.random_normal(
        (Bond(u1, q, FlowDirection.IN, 1), Bond(u1, q, FlowDirection.OUT, 2)),
        jax.random.PRNGKey(0),
    )
    b = SymmetricTensor.random_normal(
        (Bond(u1, q, FlowDirection.IN, 2), Bond(u1, q, FlowDirection.OUT, 3)),
        jax.random.PRNGKey(1),
    )
    net = Network.from_tensors([a, b])
    result = net.launch()     # contracts over label 2
    print(result.labels())    # (1, 3)
"""

import jax

jax.config.update("jax_enable_x64", True)

from symnet.contraction.contractor import contract, contract_blocks
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
from symnet.network.netfile import ParsedNetwork, format_netfile, parse_netfile
from symnet.network.network import Network
from symnet.network.search import SearchConfig, SearchResult
from symnet.network.swap import Swap, SwapTracker

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Symmetries
    "BaseSymmetry",
    "BraidingStyle",
    "U1Symmetry",
    "ZnSymmetry",
    "FermionParity",
    "FermionicU1",
    # Bonds
    "FlowDirection",
    "Label",
    "Bond",
    # Tensors
    "Tensor",
    "SymmetricTensor",
    "BlockKey",
    # Contraction
    "contract",
    "contract_blocks",
    # Network
    "Network",
    "SearchConfig",
    "SearchResult",
    "Swap",
    "SwapTracker",
    "ContractionProfiler",
    "ParsedNetwork",
    "parse_netfile",
    "format_netfile",
    # Errors
    "NetworkError",
    "TopologyError",
    "StructuralMismatchError",
    "UnconstructedNetworkError",
    "NetfileError",
]
