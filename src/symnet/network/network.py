"""Reusable contraction network over block-sparse tensors.

A :class:`Network` fixes a topology (per-leaf integer labels, optional
row/column splits, output labels and contraction order) and then contracts
it repeatedly with fresh tensors of the same shape:

- ``construct()`` searches a pairwise contraction tree once and derives the
  fermionic swap plan for that tree.
- ``launch()`` gates each leaf with its swaps, contracts bottom-up and
  permutes the result.
- ``replace_with()`` swaps one leaf's tensor. A replacement with the same
  bond structure keeps the tree; a forced one re-runs the search.

Key design choices:
- Tree nodes live in a :class:`~symnet.network.node.NodeArena` addressed by
  integer handles; leaves are handles ``0 .. n-1`` in declaration order.
- Leaf connectivity is mirrored in an ``nx.MultiGraph`` (one edge per
  shared label) to report disconnected networks.
- Intermediates exist only during ``launch`` and are released as soon as
  their parent is formed.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import networkx as nx

from symnet.contraction.contractor import contract_blocks
from symnet.core.bond import Bond, Label
from symnet.core.errors import (
    StructuralMismatchError,
    TopologyError,
    UnconstructedNetworkError,
)
from symnet.core.profiler import ContractionProfiler
from symnet.core.tensor import SymmetricTensor, Tensor
from symnet.network.netfile import order_to_path, parse_netfile, parse_order
from symnet.network.node import Node, NodeArena, NodeHandle
from symnet.network.search import SearchConfig, find_path, open_labels, score_path
from symnet.network.swap import Swap, SwapTracker

logger = logging.getLogger(__name__)

LeafKey = int | str


class Network:
    """Contraction network with a cached tree and swap plan.

    Args:
        label_arr:     Labels of each leaf, in declaration order.
        names:         Leaf names (default ``T0, T1, ...``).
        row_counts:    Declared row count per leaf (informational, as read
                       from a ``.net`` file).
        out_labels:    Required order of the open labels in the result.
        out_row_count: Row count applied to the result by default.
        order:         Fixed contraction order, either an ORDER expression
                       over the leaf names (``"((A,B),C)"``) or an SSA path.
                       Bypasses the search.
        config:        Search configuration.
        profiler:      Profiler shared with the caller (a fresh one by
                       default).

    Raises:
        TopologyError: If a label is on more than two leaves or repeated on
            one leaf, ``out_labels`` are not exactly the open labels, or
            ``order`` does not use every leaf exactly once.

    Example:
        >>> net = Network([[1, 2], [2, 3]], names=["A", "B"])
        >>> net.put_tensor("A", a)
        >>> net.put_tensor("B", b)
        >>> net.construct()
        >>> result = net.launch()
    """

    def __init__(
        self,
        label_arr: Sequence[Sequence[Label]],
        names: Sequence[str] | None = None,
        row_counts: Sequence[int | None] | None = None,
        out_labels: Sequence[Label] | None = None,
        out_row_count: int | None = None,
        order: str | Sequence[tuple[int, int]] | None = None,
        config: SearchConfig | None = None,
        profiler: ContractionProfiler | None = None,
    ) -> None:
        self._label_arr: list[tuple[Label, ...]] = [tuple(lbls) for lbls in label_arr]
        n = len(self._label_arr)
        if n == 0:
            raise TopologyError("A network needs at least one tensor")

        self._names = list(names) if names is not None else [f"T{i}" for i in range(n)]
        if len(self._names) != n:
            raise ValueError(f"Got {len(self._names)} names for {n} tensors")
        if len(set(self._names)) != n:
            raise ValueError(f"Tensor names must be unique, got {self._names}")
        self._row_counts = list(row_counts) if row_counts is not None else [None] * n
        if len(self._row_counts) != n:
            raise ValueError(f"Got {len(self._row_counts)} row counts for {n} tensors")

        self._check_labels()
        self._leaves = [
            Node(labels, name=name, leaf=i)
            for i, (labels, name) in enumerate(zip(self._label_arr, self._names))
        ]
        self._open = open_labels(self._leaves)

        self._out_labels: list[Label] | None = None
        if out_labels is not None:
            self._out_labels = list(out_labels)
            if sorted(self._out_labels) != sorted(self._open):
                raise TopologyError(
                    f"Output labels {self._out_labels} are not the open labels "
                    f"{self._open}"
                )
        if out_row_count is not None and not 0 <= out_row_count <= len(self._open):
            raise TopologyError(
                f"Output row count {out_row_count} out of range for "
                f"{len(self._open)} open labels"
            )
        self._out_row_count = out_row_count

        self._order = self._resolve_order(order)

        self._arena = NodeArena(self._leaves)
        self._tensors: list[Tensor | None] = [None] * n
        self._swaps = SwapTracker(n)
        self._graph: nx.MultiGraph = nx.MultiGraph()
        self._graph.add_nodes_from(range(n))
        for lbl, (a, b) in self._label_pairs().items():
            self._graph.add_edge(a, b, key=lbl)

        self.config = config or SearchConfig()
        self.profiler = profiler or ContractionProfiler()
        self.root: NodeHandle | None = None
        self.times = 0
        self.tot_elem = 0
        self.max_elem = 0
        self._loaded = False

    # ------------------------------------------------------------------ #
    # Alternate constructors                                               #
    # ------------------------------------------------------------------ #

    @classmethod
    def from_tensors(
        cls,
        tensors: Sequence[Tensor],
        label_arr: Sequence[Sequence[Label]] | None = None,
        names: Sequence[str] | None = None,
        **kwargs: Any,
    ) -> Network:
        """Build and construct a network over *tensors*.

        Labels default to each tensor's own labels; names to the tensors'
        names when those are set and unique.
        """
        tensors = list(tensors)
        if label_arr is None:
            label_arr = [t.labels() for t in tensors]
        if names is None:
            names = [t.name or f"T{i}" for i, t in enumerate(tensors)]
            if len(set(names)) != len(names):
                names = [f"T{i}" for i in range(len(tensors))]
        net = cls(label_arr, names=names, **kwargs)
        for i, tensor in enumerate(tensors):
            net.put_tensor(i, tensor)
        net.construct()
        return net

    @classmethod
    def from_netfile(
        cls,
        source: str | Path | list[str],
        tensors: Mapping[str, Tensor] | Sequence[Tensor] | None = None,
        **kwargs: Any,
    ) -> Network:
        """Build a network from a ``.net`` source.

        Args:
            source:  Anything :func:`~symnet.network.netfile.parse_netfile`
                     accepts.
            tensors: Optional tensors by name or in declaration order. When
                     every slot is filled the network is constructed.
        """
        parsed = parse_netfile(source)
        net = cls(
            parsed.label_arr,
            names=parsed.names,
            row_counts=[parsed.row_counts[name] for name in parsed.names],
            out_labels=parsed.tout,
            out_row_count=parsed.tout_row_count,
            order=parsed.order,
            **kwargs,
        )
        if tensors is not None:
            items = tensors.items() if isinstance(tensors, Mapping) else enumerate(tensors)
            for key, tensor in items:
                net.put_tensor(key, tensor)
            if all(t is not None for t in net._tensors):
                net.construct()
        return net

    # ------------------------------------------------------------------ #
    # Topology checks                                                      #
    # ------------------------------------------------------------------ #

    def _check_labels(self) -> None:
        counts: Counter[Label] = Counter()
        for name, labels in zip(self._names, self._label_arr):
            if len(set(labels)) != len(labels):
                dupes = sorted({lbl for lbl in labels if labels.count(lbl) > 1})
                raise TopologyError(f"Tensor {name!r} repeats labels {dupes}")
            counts.update(labels)
        over = sorted(lbl for lbl, c in counts.items() if c > 2)
        if over:
            raise TopologyError(f"Labels {over} appear on more than two tensors")

    def _label_pairs(self) -> dict[Label, tuple[int, int]]:
        """Contracted label -> the two leaves carrying it."""
        owners: dict[Label, list[int]] = {}
        for i, labels in enumerate(self._label_arr):
            for lbl in labels:
                owners.setdefault(lbl, []).append(i)
        return {lbl: (o[0], o[1]) for lbl, o in owners.items() if len(o) == 2}

    def _resolve_order(
        self, order: str | Sequence[tuple[int, int]] | None
    ) -> list[tuple[int, int]] | None:
        if order is None:
            return None
        if isinstance(order, str):
            tree = parse_order(order, set(self._names))
            return order_to_path(tree, self._names)
        path = [(int(a), int(b)) for a, b in order]
        try:
            NodeArena([Node(lbls) for lbls in self._label_arr]).build(path)
        except ValueError as exc:
            raise TopologyError(f"Order {path} is not a contraction tree: {exc}") from None
        return path

    def _check_pairs(self) -> None:
        for lbl, (a, b) in self._label_pairs().items():
            bond_a = self._leaf_bond(a, lbl)
            bond_b = self._leaf_bond(b, lbl)
            if not bond_a.pairs_with(bond_b):
                raise TopologyError(
                    f"Label {lbl!r} joins incompatible bonds of "
                    f"{self._names[a]!r} and {self._names[b]!r}: {bond_a!r}, {bond_b!r}"
                )

    def _leaf_bond(self, index: int, lbl: Label) -> Bond:
        return self._leaves[index].bonds[self._label_arr[index].index(lbl)]

    def is_connected(self) -> bool:
        """True if every leaf is reachable from every other through labels."""
        return nx.is_connected(self._graph)

    # ------------------------------------------------------------------ #
    # Leaf management                                                      #
    # ------------------------------------------------------------------ #

    def _index(self, key: LeafKey) -> int:
        if isinstance(key, str):
            if key not in self._names:
                raise KeyError(f"No tensor named {key!r}; known: {self._names}")
            return self._names.index(key)
        if not 0 <= key < len(self._label_arr):
            raise KeyError(f"Leaf index {key} out of range for {len(self._label_arr)} leaves")
        return key

    def _check_rank(self, index: int, tensor: Tensor) -> None:
        expected = len(self._label_arr[index])
        if tensor.bond_count() != expected:
            raise StructuralMismatchError(
                f"Tensor for {self._names[index]!r} has {tensor.bond_count()} bonds, "
                f"expected {expected}"
            )

    def _check_structure(self, index: int, tensor: Tensor) -> None:
        self._check_rank(index, tensor)
        for pos, old in enumerate(self._leaves[index].bonds):
            if not old.same_structure(tensor.bond(pos)):
                raise StructuralMismatchError(
                    f"Bond {pos} of {self._names[index]!r} changed from {old!r} "
                    f"to {tensor.bond(pos)!r}"
                )

    def _check_partners(self, index: int, tensor: Tensor) -> None:
        """Check *tensor*'s paired bonds against the filled neighbours."""
        labels = self._label_arr[index]
        for lbl, (a, b) in self._label_pairs().items():
            if index not in (a, b):
                continue
            other = b if a == index else a
            if other == index or self._tensors[other] is None:
                continue
            mine = tensor.bond(labels.index(lbl))
            if not mine.pairs_with(self._leaf_bond(other, lbl)):
                raise StructuralMismatchError(
                    f"Bond with label {lbl!r} of {self._names[index]!r} cannot be "
                    f"contracted with {self._names[other]!r}"
                )

    def _fill(self, index: int, tensor: Tensor) -> None:
        labels = self._label_arr[index]
        self._tensors[index] = tensor
        self._leaves[index].set_payload(
            labels, [tensor.bond(i).relabel(lbl) for i, lbl in enumerate(labels)]
        )

    def put_tensor(self, key: LeafKey, tensor: Tensor) -> Node:
        """Place *tensor* on a leaf; a filled leaf goes through :meth:`replace_with`.

        Raises:
            KeyError: If *key* names no leaf.
            StructuralMismatchError: If the bond count differs from the
                number of labels of the leaf.
        """
        index = self._index(key)
        if self._tensors[index] is not None:
            return self.replace_with(index, tensor)
        self._check_rank(index, tensor)
        self._fill(index, tensor)
        return self._leaves[index]

    def replace_with(self, key: LeafKey, tensor: Tensor, force: bool = False) -> Node:
        """Replace the tensor on a leaf.

        Without *force* the new tensor must have the same bonds (up to
        labels) as the old one; the tree is kept and only the leaf's swap
        flags are refreshed. With *force* any tensor of the right rank whose
        paired bonds still fit is accepted, and a constructed network is
        destructed and searched again.

        Raises:
            KeyError: If *key* names no leaf.
            StructuralMismatchError: If the tensor does not fit. The network
                is left unchanged.
        """
        index = self._index(key)
        if self._tensors[index] is None:
            return self.put_tensor(index, tensor)
        if not force:
            self._check_structure(index, tensor)
            self._fill(index, tensor)
            self._swaps.refresh_flags(index, tensor)
            return self._leaves[index]

        self._check_rank(index, tensor)
        self._check_partners(index, tensor)
        self._fill(index, tensor)
        if self._loaded:
            self.destruct()
            self.construct()
        return self._leaves[index]

    def tensor(self, key: LeafKey) -> Tensor | None:
        return self._tensors[self._index(key)]

    # ------------------------------------------------------------------ #
    # Tree lifecycle                                                       #
    # ------------------------------------------------------------------ #

    def construct(self) -> None:
        """Build the contraction tree and the swap plan.

        No-op when already constructed.

        Raises:
            UnconstructedNetworkError: If a leaf has no tensor yet.
            TopologyError: If paired bonds cannot be contracted.
        """
        if self._loaded:
            return
        missing = [name for name, t in zip(self._names, self._tensors) if t is None]
        if missing:
            raise UnconstructedNetworkError(f"Tensors {missing} have not been put")
        self._check_pairs()

        if self._order is not None:
            path = self._order
            self.tot_elem, self.max_elem = score_path(self._leaves, path)
            how = "ORDER"
        else:
            result = find_path(self._leaves, self.config)
            path = result.path
            self.tot_elem, self.max_elem = result.tot_elem, result.max_elem
            how = f"{result.strategy} search, {result.attempts} attempt(s)"

        self.root = self._arena.build(path)
        self._swaps.rec_swap(
            self._arena.leaf_order(self.root), self._label_arr, self._tensors
        )
        self._loaded = True
        self.times += 1

        if not self.is_connected():
            logger.warning(
                "Network %s is disconnected; components are joined by outer products",
                self._names,
            )
        logger.info(
            "Constructed network of %d tensors (%s): tot_elem=%d max_elem=%d",
            len(self._leaves),
            how,
            self.tot_elem,
            self.max_elem,
        )

    def destruct(self) -> None:
        """Drop the tree and swap plan, keeping the leaves and their tensors."""
        self._arena.release_internal()
        self._swaps.clear()
        self.root = None
        self._loaded = False

    # ------------------------------------------------------------------ #
    # Execution                                                            #
    # ------------------------------------------------------------------ #

    def _output_order(self, output_labels: Sequence[Label] | None) -> list[Label]:
        natural = list(self._arena[self.root].labels)
        if output_labels is None:
            return list(self._out_labels) if self._out_labels is not None else natural
        labels = list(output_labels)
        if len(labels) != len(natural) or set(labels) != set(natural):
            raise TopologyError(
                f"Output labels {labels} are not the open labels {sorted(natural)}"
            )
        return labels

    def launch(
        self,
        output_labels: Sequence[Label] | None = None,
        row_count: int | None = None,
        name: str = "",
    ) -> SymmetricTensor:
        """Contract the network with its current tensors.

        Args:
            output_labels: Bond order of the result (default: the declared
                           output labels, else the root's natural order).
            row_count:     Number of leading result bonds made IN bonds
                           (default: the declared output row count).
            name:          Name given to the result.

        Raises:
            UnconstructedNetworkError: If :meth:`construct` has not run.
            TopologyError: If *output_labels* are not the open labels.
        """
        if not self._loaded:
            raise UnconstructedNetworkError("Network must be constructed before launch")
        out = self._output_order(output_labels)
        if row_count is None and output_labels is None:
            row_count = self._out_row_count

        results: dict[NodeHandle, Tensor] = {}
        live: dict[NodeHandle, int] = {}
        try:
            for handle in self._arena.post_order(self.root):
                node = self._arena[handle]
                if node.is_leaf:
                    i = node.leaf
                    gated = self._tensors[i].apply_swaps(self._swaps.swaps(i))
                    results[handle] = gated.with_labels(self._label_arr[i])
                    continue
                merged = contract_blocks(results.pop(node.left), results.pop(node.right))
                live[handle] = merged.element_count()
                self.profiler.record(live[handle])
                for child in (node.left, node.right):
                    if child in live:
                        self.profiler.release(live.pop(child))
                logger.debug(
                    "Contracted %s x %s -> %s (%d elements)",
                    self._arena[node.left].labels,
                    self._arena[node.right].labels,
                    merged.labels(),
                    live[handle],
                )
                results[handle] = merged
            result = results.pop(self.root)
        finally:
            for n_elements in live.values():
                self.profiler.release(n_elements)

        if out != list(result.labels()) or row_count is not None:
            result = result.permute(out, row_count)
        return result.rename(name) if name else result

    # ------------------------------------------------------------------ #
    # Introspection                                                        #
    # ------------------------------------------------------------------ #

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def names(self) -> list[str]:
        return list(self._names)

    @property
    def label_arr(self) -> list[tuple[Label, ...]]:
        return list(self._label_arr)

    @property
    def row_counts(self) -> list[int | None]:
        return list(self._row_counts)

    @property
    def open_labels(self) -> list[Label]:
        return list(self._open)

    @property
    def n_leaves(self) -> int:
        return len(self._leaves)

    @property
    def swaps_arr(self) -> list[list[Swap]]:
        return self._swaps.swaps_arr

    @property
    def arena(self) -> NodeArena:
        return self._arena

    def contraction_path(self) -> list[tuple[int, int]]:
        """SSA path of the current tree.

        Raises:
            UnconstructedNetworkError: If the network is not constructed.
        """
        if not self._loaded:
            raise UnconstructedNetworkError("Network has no contraction tree")
        return self._arena.ssa_path(self.root)

    def format_tree(self) -> str:
        """Pre-order listing of the contraction tree.

        One line per node with its labels, bond dimensions, element count
        and the cost recorded when it was formed.
        """
        if not self._loaded:
            return f"Network({self._names}) [not constructed]"
        lines = []
        for handle, depth in self._arena.pre_order(self.root):
            node = self._arena[handle]
            title = node.name if node.is_leaf else "*"
            dims = [b.dim for b in node.bonds]
            lines.append(
                f"{'  ' * depth}{title}: labels={list(node.labels)} dims={dims} "
                f"elem_num={node.elem_num} point={node.point:g}"
            )
        lines.append(f"tot_elem={self.tot_elem} max_elem={self.max_elem}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format_tree()

    def __repr__(self) -> str:
        return (
            f"Network(names={self._names}, open_labels={self._open}, "
            f"loaded={self._loaded})"
        )
