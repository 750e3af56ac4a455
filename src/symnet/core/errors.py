"""Exceptions raised by network construction and execution.

The concrete classes also derive from the builtin exception a caller would
expect (``ValueError`` for bad input, ``RuntimeError`` for lifecycle
misuse), so ``except ValueError`` keeps working.
"""


class NetworkError(Exception):
    """Base class for every network error."""


class TopologyError(NetworkError, ValueError):
    """The label layout does not define a valid contraction.

    Raised for a label shared by more than two leaves, a label repeated on
    one leaf, paired bonds that cannot be contracted, output labels that are
    not exactly the open legs, or a contraction order that does not cover
    every leaf once.
    """


class StructuralMismatchError(NetworkError, ValueError):
    """A replacement tensor's bonds disagree with the leaf it replaces."""


class UnconstructedNetworkError(NetworkError, RuntimeError):
    """The network was used before its contraction tree was built."""


class NetfileError(ValueError):
    """Syntax or consistency error in a ``.net`` network description."""
