"""Contraction-tree vertices stored in an arena of integer handles.

A :class:`Node` is either a leaf (one declared tensor slot) or an internal
node with exactly two children. Children and parents are referenced by
handle into a :class:`NodeArena` rather than by object, so re-parenting a
sub-tree during the search is index reassignment and tearing a tree down is
truncating the arena.

Handles ``0 .. n_leaves - 1`` are always the leaves, in declaration order.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from symnet.core.bond import Bond, Label

NodeHandle = int


def cal_elem_num(bonds: Sequence[Bond]) -> int:
    """Product of the bond dimensions (1 for a scalar)."""
    n = 1
    for b in bonds:
        n *= b.dim
    return n


@dataclass(eq=False)
class Node:
    """One vertex of a contraction tree.

    Attributes:
        labels:   Open labels of the (sub-)tree rooted here. For an internal
                  node: the left child's open labels then the right child's,
                  with the labels they share removed.
        bonds:    Bonds matching ``labels`` position by position.
        name:     Tensor name for leaves, empty for internal nodes.
        leaf:     Declaration index for leaves, ``None`` for internal nodes.
        left:     Handle of the left child.
        right:    Handle of the right child.
        parent:   Handle of the parent, ``None`` at the root.
        point:    Cost recorded when this node was formed.
        elem_num: Element count of the tensor this node stands for.
    """

    labels: tuple[Label, ...]
    bonds: tuple[Bond, ...] = ()
    name: str = ""
    leaf: int | None = None
    left: NodeHandle | None = None
    right: NodeHandle | None = None
    parent: NodeHandle | None = None
    point: float = 0.0
    elem_num: int = field(init=False)

    def __post_init__(self) -> None:
        self.labels = tuple(self.labels)
        self.bonds = tuple(self.bonds)
        self.elem_num = cal_elem_num(self.bonds)

    @property
    def is_leaf(self) -> bool:
        return self.leaf is not None

    def shared_labels(self, other: Node) -> set[Label]:
        return set(self.labels) & set(other.labels)

    def contract(self, other: Node) -> Node:
        """Provisional node for ``self`` contracted with ``other``.

        Neither input is modified and the result is not linked to them.
        """
        shared = self.shared_labels(other)
        pair = (self, other)
        labels = [lbl for node in pair for lbl in node.labels if lbl not in shared]
        bonds: list[Bond] = []
        # Slots whose tensor has not arrived yet carry labels but no bonds.
        if all(len(node.bonds) == len(node.labels) for node in pair):
            bonds = [
                bond
                for node in pair
                for lbl, bond in zip(node.labels, node.bonds)
                if lbl not in shared
            ]
        return Node(tuple(labels), tuple(bonds))

    def metric(self, other: Node) -> int:
        """Element count of the node formed by contracting with *other*.

        Only meant as a comparison key between candidate merges.
        """
        shared = self.shared_labels(other)
        n = 1
        for node in (self, other):
            for lbl, bond in zip(node.labels, node.bonds):
                if lbl not in shared:
                    n *= bond.dim
        return n

    def delink(self) -> None:
        """Forget parent and children without touching them."""
        self.parent = None
        self.left = None
        self.right = None

    def set_payload(self, labels: Sequence[Label], bonds: Sequence[Bond]) -> None:
        self.labels = tuple(labels)
        self.bonds = tuple(bonds)
        self.elem_num = cal_elem_num(self.bonds)


class NodeArena:
    """Owner of every node of one contraction tree.

    Args:
        leaves: Leaf nodes; they receive handles ``0 .. len(leaves) - 1``.
    """

    def __init__(self, leaves: Sequence[Node] = ()) -> None:
        self._nodes: list[Node] = list(leaves)
        self.n_leaves = len(self._nodes)

    def __getitem__(self, handle: NodeHandle) -> Node:
        return self._nodes[handle]

    def __len__(self) -> int:
        return len(self._nodes)

    def add(self, node: Node) -> NodeHandle:
        self._nodes.append(node)
        return len(self._nodes) - 1

    def merge(self, a: NodeHandle, b: NodeHandle) -> NodeHandle:
        """Create the internal node ``(a, b)`` and link both children to it."""
        par = self._nodes[a].contract(self._nodes[b])
        par.point = float(par.elem_num)
        par.left = a
        par.right = b
        handle = self.add(par)
        self._nodes[a].parent = handle
        self._nodes[b].parent = handle
        return handle

    def refresh(self, handle: NodeHandle) -> None:
        """Recompute an internal node's payload from its children."""
        node = self._nodes[handle]
        merged = self._nodes[node.left].contract(self._nodes[node.right])
        node.set_payload(merged.labels, merged.bonds)

    def refresh_upwards(self, handle: NodeHandle | None) -> None:
        while handle is not None:
            self.refresh(handle)
            handle = self._nodes[handle].parent

    def delink(self, handle: NodeHandle) -> None:
        """Detach a node from its parent and children, both ways."""
        node = self._nodes[handle]
        for child in (node.left, node.right):
            if child is not None and self._nodes[child].parent == handle:
                self._nodes[child].parent = None
        if node.parent is not None:
            par = self._nodes[node.parent]
            if par.left == handle:
                par.left = None
            if par.right == handle:
                par.right = None
        node.delink()

    def release_internal(self) -> None:
        """Drop every internal node and unlink the leaves."""
        for handle in range(len(self._nodes) - 1, self.n_leaves - 1, -1):
            self.delink(handle)
        del self._nodes[self.n_leaves:]

    # --- Traversal ---

    def post_order(self, root: NodeHandle) -> Iterator[NodeHandle]:
        """Children before parents, left before right."""
        stack: list[tuple[NodeHandle, bool]] = [(root, False)]
        while stack:
            handle, expanded = stack.pop()
            node = self._nodes[handle]
            if node.is_leaf or expanded:
                yield handle
                continue
            stack.append((handle, True))
            stack.append((node.right, False))
            stack.append((node.left, False))

    def pre_order(self, root: NodeHandle) -> Iterator[tuple[NodeHandle, int]]:
        """``(handle, depth)`` pairs, parents before children."""
        stack: list[tuple[NodeHandle, int]] = [(root, 0)]
        while stack:
            handle, depth = stack.pop()
            yield handle, depth
            node = self._nodes[handle]
            if not node.is_leaf:
                stack.append((node.right, depth + 1))
                stack.append((node.left, depth + 1))

    def leaf_order(self, root: NodeHandle) -> list[int]:
        """Declaration indices of the leaves, left to right."""
        return [
            self._nodes[h].leaf for h in self.post_order(root) if self._nodes[h].is_leaf
        ]

    def internal_nodes(self, root: NodeHandle) -> list[NodeHandle]:
        return [h for h in self.post_order(root) if not self._nodes[h].is_leaf]

    def ssa_path(self, root: NodeHandle) -> list[tuple[int, int]]:
        """Export the tree as merges in single static assignment form.

        Leaves keep their declaration index, the k-th merge (post-order)
        creates id ``n_leaves + k``.
        """
        ids: dict[NodeHandle, int] = {}
        path: list[tuple[int, int]] = []
        for handle in self.post_order(root):
            node = self._nodes[handle]
            if node.is_leaf:
                ids[handle] = node.leaf
            else:
                path.append((ids[node.left], ids[node.right]))
                ids[handle] = self.n_leaves + len(path) - 1
        return path

    def build(self, path: Sequence[tuple[int, int]]) -> NodeHandle:
        """Replay an SSA *path* on top of the leaves and return the root.

        Raises:
            ValueError: If the path reuses an id, references an unknown id,
                or does not end in a single tree.
        """
        if len(path) != self.n_leaves - 1:
            raise ValueError(
                f"Path with {len(path)} steps cannot join {self.n_leaves} leaves"
            )
        ssa_to_handle = {i: i for i in range(self.n_leaves)}
        consumed: set[int] = set()
        for step, (a, b) in enumerate(path):
            if a == b or {a, b} & consumed or not {a, b} <= ssa_to_handle.keys():
                raise ValueError(f"Invalid contraction path step {(a, b)}")
            consumed.update((a, b))
            ssa_to_handle[self.n_leaves + step] = self.merge(
                ssa_to_handle[a], ssa_to_handle[b]
            )
        return ssa_to_handle[self.n_leaves + len(path) - 1] if path else 0
