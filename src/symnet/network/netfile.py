"""``.net`` topology files.

A ``.net`` source declares a network's topology (tensor names, integer
bond labels, row/column split, output labels and an optional contraction
order) separately from tensor data, so one topology can be loaded once and
contracted repeatedly with fresh tensors.

File format::

    # comment
    A: 1, 2; 3
    B: 3 4; 5
    TOUT: 1, 2; 4, 5
    ORDER: (A, B)

Line types:
- ``Name: rows ; cols``   tensor declaration. Labels before ``;`` are row
  (IN) bonds; without ``;`` no row count is declared.
- ``TOUT: rows ; cols``   output labels (empty means a scalar). Required,
  and ends the tensor declarations.
- ``ORDER: ((A,B),C)``    optional pairwise contraction order, only after
  ``TOUT``.
- Lines starting with ``#`` are comments.

Labels are integers separated by commas and/or whitespace.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from symnet.core.bond import Label
from symnet.core.errors import NetfileError, TopologyError

RESERVED_KEYS = ("TOUT", "ORDER")

_NAME_FORBIDDEN = set("(),;:#")


@dataclass
class ParsedNetwork:
    """Topology read from a ``.net`` source.

    Attributes:
        tensors:        Tensor name -> ordered labels, in declaration order.
        row_counts:     Tensor name -> declared row count (``None`` if the
                        line had no ``;``).
        tout:           Output labels.
        tout_row_count: Row count of the output, or ``None``.
        order:          Canonical ORDER expression, or ``None``.
    """

    tensors: dict[str, list[Label]] = field(default_factory=dict)
    row_counts: dict[str, int | None] = field(default_factory=dict)
    tout: list[Label] = field(default_factory=list)
    tout_row_count: int | None = None
    order: str | None = None

    @property
    def names(self) -> list[str]:
        return list(self.tensors)

    @property
    def label_arr(self) -> list[list[Label]]:
        return list(self.tensors.values())


# ---------- .net file parser ----------


def parse_netfile(source: str | Path | list[str]) -> ParsedNetwork:
    """Parse a ``.net`` file or string.

    Args:
        source: One of:
            - A ``Path`` to a ``.net`` file on disk.
            - A multi-line string with the file contents (or a path to one).
            - A list of already-split lines.

    Returns:
        The parsed topology.

    Raises:
        NetfileError: On syntax errors, duplicate or reserved tensor names,
            a missing ``TOUT``, declarations after ``TOUT``, an ORDER that
            names unknown tensors, or a label on more than two tensors.
    """
    lines = _read_lines(source)
    parsed = ParsedNetwork()
    tout_seen = False
    order_seen = False

    for lineno, raw_line in enumerate(lines, 1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        if ":" not in line:
            raise NetfileError(
                f"Line {lineno}: expected 'Name: labels' or 'TOUT:/ORDER:', "
                f"got {line!r}"
            )

        key, _, value = line.partition(":")
        key = key.strip()
        value = value.strip()

        if key == "TOUT":
            if tout_seen:
                raise NetfileError(f"Line {lineno}: duplicate TOUT declaration")
            tout_seen = True
            parsed.tout, parsed.tout_row_count = _parse_labels(value, lineno)
        elif key == "ORDER":
            if not tout_seen:
                raise NetfileError(f"Line {lineno}: ORDER must follow TOUT")
            if order_seen:
                raise NetfileError(f"Line {lineno}: duplicate ORDER declaration")
            order_seen = True
            if not value:
                raise NetfileError(f"Line {lineno}: empty ORDER expression")
            try:
                tree = parse_order(value, set(parsed.tensors))
            except NetfileError as exc:
                raise NetfileError(f"Line {lineno}: {exc}") from None
            parsed.order = format_order(tree)
        else:
            if tout_seen:
                raise NetfileError(
                    f"Line {lineno}: tensor {key!r} declared after TOUT"
                )
            _check_name(key, lineno)
            if key in parsed.tensors:
                raise NetfileError(f"Line {lineno}: duplicate tensor name {key!r}")
            labels, row_count = _parse_labels(value, lineno)
            parsed.tensors[key] = labels
            parsed.row_counts[key] = row_count

    if not parsed.tensors:
        raise NetfileError("No tensor declarations found")
    if not tout_seen:
        raise NetfileError("Missing TOUT declaration")

    # No label on more than 2 tensors
    label_counts: Counter[Label] = Counter()
    for labels in parsed.tensors.values():
        label_counts.update(set(labels))
    for lbl, count in label_counts.items():
        if count > 2:
            raise NetfileError(
                f"Label {lbl!r} appears on {count} tensors (max 2 allowed)"
            )

    return parsed


def _read_lines(source: str | Path | list[str]) -> list[str]:
    """Normalise *source* into a list of lines."""
    if isinstance(source, list):
        return source
    if isinstance(source, Path):
        return source.read_text().splitlines()
    # str: a file path or inline content
    if "\n" not in source and Path(source).is_file():
        return Path(source).read_text().splitlines()
    return source.splitlines()


def _check_name(name: str, lineno: int) -> None:
    if not name or any(c.isspace() or c in _NAME_FORBIDDEN for c in name):
        raise NetfileError(f"Line {lineno}: invalid tensor name {name!r}")
    if name.upper() in RESERVED_KEYS:
        raise NetfileError(f"Line {lineno}: {name!r} is reserved")


def _split_labels(text: str, lineno: int) -> list[Label]:
    labels: list[Label] = []
    for tok in re.split(r"[,\s]+", text.strip()):
        if not tok:
            continue
        try:
            labels.append(int(tok))
        except ValueError:
            raise NetfileError(
                f"Line {lineno}: label {tok!r} is not an integer"
            ) from None
    return labels


def _parse_labels(text: str, lineno: int) -> tuple[list[Label], int | None]:
    """``"1, 2; 3"`` -> ``([1, 2, 3], 2)``; no ``;`` gives a ``None`` row count."""
    rows, sep, cols = text.partition(";")
    if ";" in cols:
        raise NetfileError(f"Line {lineno}: more than one ';' in {text!r}")
    row_labels = _split_labels(rows, lineno)
    col_labels = _split_labels(cols, lineno)
    return row_labels + col_labels, (len(row_labels) if sep else None)


# ---------- Formatter ----------


def _format_labels(labels: list[Label], row_count: int | None) -> str:
    if row_count is None:
        return ", ".join(str(lbl) for lbl in labels)
    rows = ", ".join(str(lbl) for lbl in labels[:row_count])
    cols = ", ".join(str(lbl) for lbl in labels[row_count:])
    return f"{rows}; {cols}".strip()


def format_netfile(parsed: ParsedNetwork) -> str:
    """Write *parsed* in canonical form.

    ``parse_netfile(format_netfile(p)) == p`` for every parsed network ``p``,
    and formatting is a fixed point on its own output.
    """
    lines = [
        f"{name}: {_format_labels(labels, parsed.row_counts.get(name))}".rstrip()
        for name, labels in parsed.tensors.items()
    ]
    lines.append(f"TOUT: {_format_labels(parsed.tout, parsed.tout_row_count)}".rstrip())
    if parsed.order is not None:
        lines.append(f"ORDER: {parsed.order}")
    return "\n".join(lines) + "\n"


# ---------- ORDER parser ----------


def parse_order(order_str: str, tensor_names: set[str]) -> Any:
    """Parse a nested-parenthesis ORDER string into a binary tree.

    ``"((A,B),C)"`` -> ``(("A", "B"), "C")``

    Raises:
        NetfileError: On syntax errors or unknown tensor names.
    """
    tokens = _tokenize_order(order_str)
    tree, pos = _parse_order_expr(tokens, 0)
    if pos != len(tokens):
        raise NetfileError(
            f"ORDER: unexpected tokens after position {pos}: {tokens[pos:]}"
        )
    for name in _tree_leaves(tree):
        if name not in tensor_names:
            raise NetfileError(
                f"ORDER: unknown tensor name {name!r}. Known: {sorted(tensor_names)}"
            )
    return tree


def format_order(tree: Any) -> str:
    if isinstance(tree, str):
        return tree
    return f"({format_order(tree[0])}, {format_order(tree[1])})"


def order_to_path(tree: Any, names: list[str]) -> list[tuple[int, int]]:
    """Turn an ORDER tree into an SSA contraction path over *names*.

    Leaves are numbered by their position in *names*; merges are numbered
    from ``len(names)`` in post-order.

    Raises:
        TopologyError: If the tree does not cover every name exactly once.
    """
    index = {name: i for i, name in enumerate(names)}
    leaves = _tree_leaves(tree)
    counts = Counter(leaves)
    if set(counts) != set(names) or any(c > 1 for c in counts.values()):
        missing = sorted(set(names) - set(counts))
        repeated = sorted(n for n, c in counts.items() if c > 1)
        raise TopologyError(
            f"ORDER must use every tensor exactly once "
            f"(missing: {missing}, repeated: {repeated})"
        )

    path: list[tuple[int, int]] = []

    def _flatten(node: Any) -> int:
        if isinstance(node, str):
            return index[node]
        left = _flatten(node[0])
        right = _flatten(node[1])
        path.append((left, right))
        return len(names) + len(path) - 1

    _flatten(tree)
    return path


def _tree_leaves(tree: Any) -> list[str]:
    if isinstance(tree, str):
        return [tree]
    return _tree_leaves(tree[0]) + _tree_leaves(tree[1])


def _tokenize_order(s: str) -> list[str]:
    """Tokenize an ORDER string into ``(``, ``)``, ``,``, and name tokens."""
    tokens: list[str] = []
    i = 0
    s = s.strip()
    while i < len(s):
        c = s[i]
        if c in "(),":
            tokens.append(c)
            i += 1
        elif c.isspace():
            i += 1
        else:
            j = i
            while j < len(s) and s[j] not in "(),;:#" and not s[j].isspace():
                j += 1
            if j == i:
                raise NetfileError(f"ORDER: unexpected character {c!r}")
            tokens.append(s[i:j])
            i = j
    return tokens


def _parse_order_expr(tokens: list[str], pos: int) -> tuple[Any, int]:
    """Recursive descent parser for ORDER expressions.

    Returns ``(tree, next_pos)`` where *tree* is either a tensor name or a
    ``(left_tree, right_tree)`` tuple.
    """
    if pos >= len(tokens):
        raise NetfileError("ORDER: unexpected end of expression")

    if tokens[pos] == "(":
        left, pos = _parse_order_expr(tokens, pos + 1)
        if pos >= len(tokens) or tokens[pos] != ",":
            raise NetfileError(f"ORDER: expected ',' after first operand at position {pos}")
        right, pos = _parse_order_expr(tokens, pos + 1)
        if pos >= len(tokens) or tokens[pos] != ")":
            raise NetfileError(f"ORDER: expected ')' at position {pos}")
        return (left, right), pos + 1

    name = tokens[pos]
    if name in ("(", ")", ","):
        raise NetfileError(f"ORDER: unexpected token {name!r} at position {pos}")
    return name, pos + 1
