"""Contraction networks, order search and .net file support."""

from symnet.network.netfile import ParsedNetwork, format_netfile, parse_netfile
from symnet.network.network import Network
from symnet.network.node import Node, NodeArena
from symnet.network.search import SearchConfig, SearchResult, find_path
from symnet.network.swap import Swap, SwapTracker

__all__ = [
    "Network",
    "Node",
    "NodeArena",
    "SearchConfig",
    "SearchResult",
    "find_path",
    "Swap",
    "SwapTracker",
    "ParsedNetwork",
    "parse_netfile",
    "format_netfile",
]
