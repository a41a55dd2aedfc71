"""Structural merge of two versions of the same KeyValues block."""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass

from skinsmith.errors import KeyValuesSyntaxError
from skinsmith.keyvalues.normalization import normalize
from skinsmith.keyvalues.scanner import TokenKind, is_conditional, tokenize


class MergeConflictError(Exception):
    """Both sides set the same key to different values."""


@dataclass(slots=True)
class KVNode:
    key: str
    value: str | list[KVNode]

    @property
    def is_block(self) -> bool:
        return isinstance(self.value, list)


def parse_tree(text: str) -> list[KVNode]:
    """Parse KeyValues text into an ordered list of top-level nodes.

    Anonymous blocks get an empty key. Values keep their escape sequences
    verbatim so rendering reproduces them.
    """
    root: list[KVNode] = []
    stack: list[list[KVNode]] = [root]
    pending: str | None = None
    for tok in tokenize(text):
        if tok.kind is TokenKind.string:
            if not tok.quoted and is_conditional(tok.value):
                continue
            if pending is None:
                pending = tok.value
            else:
                stack[-1].append(KVNode(pending, tok.value))
                pending = None
        elif tok.kind is TokenKind.open:
            children: list[KVNode] = []
            stack[-1].append(KVNode(pending or "", children))
            stack.append(children)
            pending = None
        else:
            if pending is not None or len(stack) == 1:
                raise KeyValuesSyntaxError("Unbalanced block", tok.start)
            stack.pop()
    if len(stack) != 1 or pending is not None:
        raise KeyValuesSyntaxError("Unclosed block", len(text))
    return root


def render(nodes: list[KVNode], indent: int = 0) -> str:
    lines: list[str] = []
    _render_into(nodes, indent, lines)
    return "\n".join(lines)


def _render_into(nodes: list[KVNode], indent: int, lines: list[str]) -> None:
    pad = "\t" * indent
    for node in nodes:
        if isinstance(node.value, list):
            if node.key:
                lines.append(f'{pad}"{node.key}"')
            lines.append(f"{pad}{{")
            _render_into(node.value, indent + 1, lines)
            lines.append(f"{pad}}}")
        else:
            lines.append(f'{pad}"{node.key}"\t\t"{node.value}"')


def _merge_children(ours: list[KVNode], theirs: list[KVNode], path: str) -> list[KVNode]:
    our_counts = Counter(n.key.casefold() for n in ours)
    their_counts = Counter(n.key.casefold() for n in theirs)

    # Repeated keys (and anonymous blocks) cannot be paired up reliably.
    for key in set(our_counts) & set(their_counts):
        if our_counts[key] > 1 or their_counts[key] > 1:
            mine = [n for n in ours if n.key.casefold() == key]
            other = [n for n in theirs if n.key.casefold() == key]
            if render(mine) != render(other):
                raise MergeConflictError(f"Repeated key '{path}/{key}' differs between sides")

    merged = list(ours)
    index = {
        n.key.casefold(): i for i, n in enumerate(merged) if our_counts[n.key.casefold()] == 1
    }
    for node in theirs:
        folded = node.key.casefold()
        if folded not in our_counts:
            merged.append(node)
            continue
        if folded not in index:
            continue
        mine = merged[index[folded]]
        child_path = f"{path}/{node.key}"
        if isinstance(mine.value, list) and isinstance(node.value, list):
            children = _merge_children(mine.value, node.value, child_path)
            merged[index[folded]] = KVNode(mine.key, children)
        elif isinstance(mine.value, str) and isinstance(node.value, str):
            if mine.value != node.value:
                raise MergeConflictError(
                    f"'{child_path}' is '{mine.value}' on one side and '{node.value}' on the other"
                )
        else:
            raise MergeConflictError(f"'{child_path}' is a block on one side only")
    return merged


def merge_blocks(ours: str, theirs: str) -> str:
    """Merge two texts of the same block into one.

    Keys present on only one side are kept; identical values are kept once;
    sub-blocks merge recursively. Raises :class:`MergeConflictError` when a
    key carries different values on each side.
    """
    our_nodes = parse_tree(normalize(ours))
    their_nodes = parse_tree(normalize(theirs))
    if len(our_nodes) != 1 or len(their_nodes) != 1:
        raise MergeConflictError("Each side must contain exactly one block")
    mine, other = our_nodes[0], their_nodes[0]
    if (
        mine.key != other.key
        or not isinstance(mine.value, list)
        or not isinstance(other.value, list)
    ):
        raise MergeConflictError(f"Cannot merge block '{mine.key}' with '{other.key}'")
    merged = KVNode(mine.key, _merge_children(mine.value, other.value, mine.key))
    return render([merged])


def merge_settings(ours: Mapping[str, str], theirs: Mapping[str, str]) -> dict[str, str]:
    """Union two settings mappings; a key set to different values is a conflict."""
    merged = dict(ours)
    for key, value in theirs.items():
        if key in merged and merged[key] != value:
            raise MergeConflictError(f"Setting '{key}' is '{merged[key]}' and '{value}'")
        merged[key] = value
    return merged
