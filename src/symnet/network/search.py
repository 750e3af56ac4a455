"""Contraction-order search.

Every strategy proposes a contraction path in single static assignment
(SSA) form: leaves are ``0 .. n-1`` and the k-th merge creates id
``n + k``. :func:`find_path` scores proposals with :func:`score_path`
(sum and maximum of the intermediate element counts) and keeps the best
one. The naive left-to-right chain is always scored first, so the result
never costs more than the chain.

Strategies:

- ``"chain"``:     ``((0, 1), 2), ...``
- ``"greedy"``:    merge the matching pair with the smallest result first.
- ``"insertion"``: insert leaves one at a time into a growing tree,
  descending while a child is a cheaper partner (:func:`branch`).
- ``"optimal"``:   exhaustive search by ``opt_einsum.paths.optimal``.
- ``"auto"``:      ``"optimal"`` up to ``optimal_limit`` leaves, else
  ``"greedy"``.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import numpy as np
import opt_einsum

from symnet.core.bond import Label
from symnet.network.node import Node, NodeArena, NodeHandle

logger = logging.getLogger(__name__)

Path = list[tuple[int, int]]


@dataclass
class SearchConfig:
    """Configuration for the contraction-order search.

    Attributes:
        strategy:      ``"auto"``, ``"chain"``, ``"greedy"``,
                       ``"insertion"`` or ``"optimal"``.
        times:         Number of attempts for the randomisable strategies
                       (greedy, insertion). Attempt 0 is deterministic,
                       later ones draw from the seeded RNG.
        seed:          Seed of ``numpy.random.default_rng``.
        temperature:   Gumbel noise scale applied to log-costs by the
                       randomised greedy attempts.
        optimal_limit: Largest network ``"auto"`` hands to the exhaustive
                       search.
    """

    strategy: str = "auto"
    times: int = 1
    seed: int | None = None
    temperature: float = 0.3
    optimal_limit: int = 8

    def __post_init__(self) -> None:
        if self.strategy != "auto" and self.strategy not in STRATEGIES:
            raise ValueError(
                f"Unknown strategy {self.strategy!r}. "
                f"Choose from: auto, {', '.join(sorted(STRATEGIES))}"
            )
        if self.times < 1:
            raise ValueError(f"times must be >= 1, got {self.times}")
        if self.temperature < 0:
            raise ValueError(f"temperature must be >= 0, got {self.temperature}")


@dataclass
class SearchResult:
    """Best path found by :func:`find_path` and its cost profile."""

    path: Path
    tot_elem: int
    max_elem: int
    strategy: str
    attempts: int


# ---------- Tree primitives ----------


def matching(subject: Node, target: Node) -> bool:
    """True if *subject* and *target* can be contracted with each other.

    They must share at least one label, and neither may repeat a label
    (otherwise a label would occur three times in the merge).
    """
    if not subject.shared_labels(target):
        return False
    return all(len(set(n.labels)) == len(n.labels) for n in (subject, target))


def branch(arena: NodeArena, subject: NodeHandle, target: NodeHandle) -> NodeHandle:
    """Join *subject* to *target* under a new internal node.

    The new node takes *target*'s place in the tree (left child *target*,
    right child *subject*) and every ancestor is refreshed. *subject* must
    be detached.

    Returns:
        Handle of the new node; it is the new root if *target* was.
    """
    tar = arena[target]
    sbj = arena[subject]
    old_parent = tar.parent
    par = tar.contract(sbj)
    par.point = float(tar.metric(sbj))
    par.left, par.right, par.parent = target, subject, old_parent
    handle = arena.add(par)
    tar.parent = handle
    sbj.parent = handle
    if old_parent is not None:
        up = arena[old_parent]
        if up.left == target:
            up.left = handle
        else:
            up.right = handle
        arena.refresh_upwards(old_parent)
    return handle


def score_path(leaves: Sequence[Node], path: Sequence[tuple[int, int]]) -> tuple[int, int]:
    """``(tot_elem, max_elem)`` of the intermediates created by *path*."""
    nodes: dict[int, Node] = dict(enumerate(leaves))
    n = len(leaves)
    tot = peak = 0
    for step, (a, b) in enumerate(path):
        merged = nodes.pop(a).contract(nodes.pop(b))
        nodes[n + step] = merged
        tot += merged.elem_num
        peak = max(peak, merged.elem_num)
    return tot, peak


def open_labels(leaves: Sequence[Node]) -> list[Label]:
    """Labels occurring on exactly one leaf, in declaration order."""
    counts = Counter(lbl for leaf in leaves for lbl in leaf.labels)
    return [lbl for leaf in leaves for lbl in leaf.labels if counts[lbl] == 1]


def _detached_copies(leaves: Sequence[Node]) -> list[Node]:
    return [
        Node(leaf.labels, leaf.bonds, name=leaf.name, leaf=i)
        for i, leaf in enumerate(leaves)
    ]


def linear_to_ssa(path: Sequence[Sequence[int]], n: int) -> Path:
    """Convert an opt_einsum (linear, recycled) path to SSA form."""
    ids = list(range(n))
    ssa = n
    out: Path = []
    for con in path:
        scon = [ids.pop(c) for c in sorted(con, reverse=True)]
        if len(scon) == 2:
            out.append((min(scon), max(scon)))
            ids.append(ssa)
            ssa += 1
        else:
            ids.extend(scon)
    return out


# ---------- Strategies ----------


def chain_path(
    leaves: Sequence[Node],
    rng: np.random.Generator | None = None,
    config: SearchConfig | None = None,
) -> Path:
    n = len(leaves)
    path: Path = []
    current = 0
    for i in range(1, n):
        path.append((current, i))
        current = n + i - 1
    return path


def greedy_path(
    leaves: Sequence[Node],
    rng: np.random.Generator | None = None,
    config: SearchConfig | None = None,
) -> Path:
    """Repeatedly merge the cheapest matching pair of the frontier.

    The frontier starts as the leaves. Cost is :meth:`Node.metric`; ties go
    to the pair that entered the frontier first. When no pair matches
    (disconnected components) the cheapest outer product is taken. With
    *rng*, log-costs are perturbed by ``temperature`` times Gumbel noise.
    """
    temperature = config.temperature if config is not None else 0.0
    n = len(leaves)
    frontier: dict[int, Node] = dict(enumerate(leaves))
    path: Path = []
    while len(frontier) > 1:
        ids = list(frontier)
        pairs = [
            (i, j)
            for k, i in enumerate(ids)
            for j in ids[k + 1:]
            if matching(frontier[i], frontier[j])
        ]
        if not pairs:
            pairs = [(i, j) for k, i in enumerate(ids) for j in ids[k + 1:]]

        best: tuple[int, int] | None = None
        best_key = math.inf
        for i, j in pairs:
            cost = frontier[i].metric(frontier[j])
            key = float(cost)
            if rng is not None and temperature > 0:
                key = math.log(max(cost, 1)) - temperature * float(rng.gumbel())
            if key < best_key:
                best, best_key = (i, j), key

        i, j = best
        frontier[n + len(path)] = frontier.pop(i).contract(frontier.pop(j))
        path.append((i, j))
    return path


def _insert(arena: NodeArena, root: NodeHandle, subject: NodeHandle) -> NodeHandle:
    """Insert a detached leaf into the tree at *root*; return the new root."""
    sbj = arena[subject]
    target = root
    while True:
        tar = arena[target]
        if tar.is_leaf or not matching(sbj, tar):
            break
        best_child, best_cost = None, sbj.metric(tar)
        for child in (tar.left, tar.right):
            if matching(sbj, arena[child]):
                cost = sbj.metric(arena[child])
                if cost < best_cost:
                    best_child, best_cost = child, cost
        if best_child is None:
            break
        target = best_child
    handle = branch(arena, subject, target)
    return handle if arena[handle].parent is None else root


def insertion_path(
    leaves: Sequence[Node],
    rng: np.random.Generator | None = None,
    config: SearchConfig | None = None,
) -> Path:
    """Grow one tree by inserting leaves in declaration (or shuffled) order."""
    arena = NodeArena(_detached_copies(leaves))
    order = list(range(len(leaves)))
    if rng is not None:
        order = [int(i) for i in rng.permutation(len(leaves))]
    root: NodeHandle | None = None
    for i in order:
        root = i if root is None else _insert(arena, root, i)
    if root is None:
        return []
    return arena.ssa_path(root)


def optimal_path(
    leaves: Sequence[Node],
    rng: np.random.Generator | None = None,
    config: SearchConfig | None = None,
) -> Path:
    """Exhaustive search through ``opt_einsum.paths.optimal``."""
    n = len(leaves)
    if n < 2:
        return []
    symbols: dict[Label, str] = {}
    for leaf in leaves:
        for lbl in leaf.labels:
            if lbl not in symbols:
                symbols[lbl] = opt_einsum.get_symbol(len(symbols))
    inputs = [frozenset(symbols[lbl] for lbl in leaf.labels) for leaf in leaves]
    output = frozenset(symbols[lbl] for lbl in open_labels(leaves))
    size_dict = {
        symbols[lbl]: bond.dim
        for leaf in leaves
        for lbl, bond in zip(leaf.labels, leaf.bonds)
    }
    linear = opt_einsum.paths.optimal(inputs, output, size_dict)
    return linear_to_ssa(linear, n)


STRATEGIES: dict[str, Callable[..., Path]] = {
    "chain": chain_path,
    "greedy": greedy_path,
    "insertion": insertion_path,
    "optimal": optimal_path,
}

_RANDOMISABLE = ("greedy", "insertion")


def resolve_strategy(config: SearchConfig, n_leaves: int) -> str:
    if config.strategy != "auto":
        return config.strategy
    return "optimal" if n_leaves <= config.optimal_limit else "greedy"


def find_path(leaves: Sequence[Node], config: SearchConfig | None = None) -> SearchResult:
    """Propose paths, score them, keep the best.

    Args:
        leaves: Leaf nodes with their bonds filled in.
        config: Search configuration; defaults to ``SearchConfig()``.

    Returns:
        SearchResult with the cheapest path seen. Cost compares
        ``tot_elem`` first and ``max_elem`` second.
    """
    config = config or SearchConfig()
    strategy = resolve_strategy(config, len(leaves))
    propose = STRATEGIES[strategy]

    best_path = chain_path(leaves)
    best = score_path(leaves, best_path)
    best_name = "chain"

    attempts = config.times if strategy in _RANDOMISABLE else 1
    rng = np.random.default_rng(config.seed)
    for attempt in range(attempts):
        path = propose(leaves, rng if attempt else None, config)
        score = score_path(leaves, path)
        logger.debug(
            "Search attempt %d (%s): tot_elem=%d max_elem=%d",
            attempt,
            strategy,
            score[0],
            score[1],
        )
        if score < best:
            best, best_path, best_name = score, path, strategy

    return SearchResult(best_path, best[0], best[1], best_name, attempts)
