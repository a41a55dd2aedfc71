"""Quote-aware structural scanner for Valve KeyValues text.

The scanner never builds a tree of the document. It records the exact
character span of every brace-delimited block and the position of every key
token, which is all the patcher needs to splice replacement blocks in place
while leaving every other byte untouched.

Malformed input (an unterminated quoted string, an unbalanced brace, a key
with no value) raises :class:`KeyValuesSyntaxError` instead of being guessed at.
"""

from __future__ import annotations

import bisect
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum

from skinsmith.errors import KeyValuesSyntaxError

_TOKEN_RE = re.compile(
    r"""
    (?P<space>\s+)
    |(?P<comment>//[^\n]*)
    |(?P<quoted>"[^"\\]*(?:\\.[^"\\]*)*")
    |(?P<stray>")
    |(?P<open>\{)
    |(?P<close>\})
    |(?P<bare>[^\s{}"]+)
    """,
    re.VERBOSE | re.DOTALL,
)

# Platform conditionals such as ``[$WIN32]`` trail a value and are not keys.
_CONDITIONAL_RE = re.compile(r"^\[.*\]$")


def is_conditional(value: str) -> bool:
    return bool(_CONDITIONAL_RE.match(value))


class TokenKind(StrEnum):
    string = "string"
    open = "open"
    close = "close"


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    start: int
    end: int
    value: str = ""
    quoted: bool = False


@dataclass(frozen=True, slots=True)
class KeyRef:
    """A string token that sits in key position."""

    text: str
    start: int
    end: int
    depth: int


@dataclass(frozen=True, slots=True)
class Block:
    """Character span of one brace-delimited block.

    ``start`` is the opening quote of the block's key (or the opening brace of
    an anonymous block) and ``end`` is one past the closing brace, so
    ``text[start:end]`` is the complete block.
    """

    key: str | None
    quoted: bool
    start: int
    open_brace: int
    end: int
    depth: int
    parent: int | None

    @property
    def is_numeric(self) -> bool:
        return self.quoted and self.key is not None and self.key.isascii() and self.key.isdigit()


@dataclass(slots=True)
class Scan:
    text: str
    blocks: list[Block] = field(default_factory=list)
    keys: list[KeyRef] = field(default_factory=list)
    _key_starts: list[int] = field(default_factory=list, repr=False)

    def numeric_blocks(self, block_id: str | None = None) -> list[Block]:
        """Numeric-keyed blocks in document order, optionally only those keyed *block_id*."""
        return [
            b
            for b in self.blocks
            if b.is_numeric and (block_id is None or b.key == block_id)
        ]

    def body_has_key(self, block: Block, key: str) -> bool:
        """True if any key token nested inside *block* equals *key* (case-insensitive)."""
        wanted = key.casefold()
        lo = bisect.bisect_right(self._key_starts, block.open_brace)
        hi = bisect.bisect_left(self._key_starts, block.end)
        return any(k.text.casefold() == wanted for k in self.keys[lo:hi])

    def has_numeric_ancestor(self, block: Block) -> bool:
        parent = block.parent
        while parent is not None:
            ancestor = self.blocks[parent]
            if ancestor.is_numeric:
                return True
            parent = ancestor.parent
        return False


def tokenize(text: str) -> Iterator[Token]:
    """Yield string and brace tokens, skipping whitespace and ``//`` comments."""
    for m in _TOKEN_RE.finditer(text):
        kind = m.lastgroup
        if kind in ("space", "comment"):
            continue
        if kind == "stray":
            raise KeyValuesSyntaxError("Unterminated quoted string", m.start())
        if kind == "open":
            yield Token(TokenKind.open, m.start(), m.end())
        elif kind == "close":
            yield Token(TokenKind.close, m.start(), m.end())
        elif kind == "quoted":
            yield Token(TokenKind.string, m.start(), m.end(), m.group()[1:-1], quoted=True)
        else:
            yield Token(TokenKind.string, m.start(), m.end(), m.group())


@dataclass(slots=True)
class _Frame:
    index: int
    key: Token | None
    brace: int
    parent: int | None


def scan(text: str) -> Scan:
    """Scan *text* and return every block span and key position.

    Braces inside quoted strings never affect depth. Blocks are returned in
    document order.
    """
    slots: list[Block | None] = []
    keys: list[KeyRef] = []
    stack: list[_Frame] = []
    pending: Token | None = None

    for tok in tokenize(text):
        if tok.kind is TokenKind.string:
            if not tok.quoted and is_conditional(tok.value):
                continue
            if pending is None:
                pending = tok
                keys.append(KeyRef(tok.value, tok.start, tok.end, len(stack)))
            else:
                pending = None
        elif tok.kind is TokenKind.open:
            stack.append(
                _Frame(
                    index=len(slots),
                    key=pending,
                    brace=tok.start,
                    parent=stack[-1].index if stack else None,
                )
            )
            slots.append(None)
            pending = None
        else:
            if pending is not None:
                raise KeyValuesSyntaxError(f"Key '{pending.value}' has no value", pending.start)
            if not stack:
                raise KeyValuesSyntaxError("Unbalanced closing brace", tok.start)
            frame = stack.pop()
            slots[frame.index] = Block(
                key=frame.key.value if frame.key else None,
                quoted=frame.key.quoted if frame.key else False,
                start=frame.key.start if frame.key else frame.brace,
                open_brace=frame.brace,
                end=tok.end,
                depth=len(stack),
                parent=frame.parent,
            )

    if stack:
        raise KeyValuesSyntaxError("Unclosed block", stack[-1].brace)
    if pending is not None:
        raise KeyValuesSyntaxError(f"Key '{pending.value}' has no value", pending.start)

    blocks = [b for b in slots if b is not None]
    return Scan(text=text, blocks=blocks, keys=keys, _key_starts=[k.start for k in keys])
