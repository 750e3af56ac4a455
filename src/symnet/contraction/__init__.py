"""Block contraction engine with label-based API."""

from symnet.contraction.contractor import contract, contract_blocks

__all__ = [
    "contract",
    "contract_blocks",
]
