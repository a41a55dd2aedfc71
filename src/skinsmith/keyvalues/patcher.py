"""Extract and replace numeric-keyed blocks inside KeyValues documents.

All functions operating on ``document`` strings work on the text exactly as
given: nothing outside a replaced block's span is touched. Use
:func:`read_document` (or :func:`~skinsmith.keyvalues.normalization.normalize`)
first so curly quotes from foreign authoring tools cannot desynchronize the
scanner.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from skinsmith.constants import CONFIG_FILE_CANDIDATES, INDEX_FILE_NAME
from skinsmith.errors import PatchNotAppliedError
from skinsmith.keyvalues.normalization import normalize
from skinsmith.keyvalues.scanner import Block, Scan, scan

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BlockPatch:
    block_id: str
    text: str
    owner_tag: str | None = None


@dataclass(slots=True)
class PatchReport:
    text: str
    applied: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


def find_block(doc_scan: Scan, block_id: str, owner_tag: str | None = None) -> Block | None:
    """Return the first block keyed *block_id* in document order.

    With *owner_tag*, candidates whose body lacks the tag as a nested key are
    passed over, so a short id that also appears in an unrelated section
    cannot be matched by accident.
    """
    for block in doc_scan.numeric_blocks(block_id):
        if owner_tag is None or doc_scan.body_has_key(block, owner_tag):
            return block
    return None


def extract_block(document: str, block_id: str, owner_tag: str | None = None) -> str | None:
    doc_scan = scan(document)
    block = find_block(doc_scan, block_id, owner_tag)
    if block is None:
        return None
    return document[block.start : block.end]


def parse_blocks(document: str) -> dict[str, str]:
    """Map every outermost numeric-keyed block to its text.

    Non-numeric keys (``items``, ``prefabs`` and other section headers) are
    descended into but never returned. Blocks nested inside another numeric
    block belong to that block's text. The first occurrence of an id wins.
    """
    text = normalize(document)
    doc_scan = scan(text)
    result: dict[str, str] = {}
    for block in doc_scan.numeric_blocks():
        if block.key is None or doc_scan.has_numeric_ancestor(block):
            continue
        if block.key in result:
            logger.warning("Duplicate block id %s in payload; keeping the first", block.key)
            continue
        result[block.key] = text[block.start : block.end]
    return result


# ---------------------------------------------------------------------------
# Replacement
# ---------------------------------------------------------------------------


def _validate_replacement(block_id: str, replacement: str, owner_tag: str | None) -> str:
    """Return the stripped replacement after checking it is one block keyed *block_id*."""
    stripped = replacement.strip()
    repl_scan = scan(stripped)
    top = [b for b in repl_scan.blocks if b.depth == 0]
    if len(top) != 1 or top[0].start != 0 or top[0].end != len(stripped):
        raise PatchNotAppliedError(f"Replacement for block {block_id} is not a single block")
    if not top[0].is_numeric or top[0].key != block_id:
        raise PatchNotAppliedError(
            f"Replacement for block {block_id} is keyed '{top[0].key}' instead"
        )
    if owner_tag is not None and not repl_scan.body_has_key(top[0], owner_tag):
        raise PatchNotAppliedError(
            f"Replacement for block {block_id} does not belong to '{owner_tag}'"
        )
    return stripped


def replace_block(
    document: str,
    block_id: str,
    replacement: str,
    owner_tag: str | None = None,
) -> tuple[str, bool]:
    """Substitute *replacement* for the block keyed *block_id*.

    Returns ``(new_document, replaced)``. When no block matches, the document
    is returned unchanged with ``replaced=False``. Raises
    :class:`PatchNotAppliedError` when the replacement itself is not a single
    block carrying the same id (and owner tag, if given).
    """
    block = find_block(scan(document), block_id, owner_tag)
    if block is None:
        return document, False
    new_text = _validate_replacement(block_id, replacement, owner_tag)
    return document[: block.start] + new_text + document[block.end :], True


def apply_block_patches(document: str, patches: Iterable[BlockPatch]) -> PatchReport:
    """Apply many block replacements against a single scan of *document*.

    Patches that cannot be applied are recorded in ``PatchReport.skipped``
    with a reason instead of aborting the batch.
    """
    doc_scan = scan(document)
    report = PatchReport(text=document)
    targets: list[tuple[Block, BlockPatch, str]] = []
    claimed: set[str] = set()

    for patch in patches:
        if patch.block_id in claimed:
            report.skipped[patch.block_id] = "duplicate patch for the same block"
            continue
        block = find_block(doc_scan, patch.block_id, patch.owner_tag)
        if block is None:
            reason = "block not found"
            if patch.owner_tag and doc_scan.numeric_blocks(patch.block_id):
                reason = f"no block owned by '{patch.owner_tag}'"
            report.skipped[patch.block_id] = reason
            continue
        try:
            new_text = _validate_replacement(
                patch.block_id, normalize(patch.text), patch.owner_tag
            )
        except PatchNotAppliedError as exc:
            report.skipped[patch.block_id] = exc.message
            continue
        claimed.add(patch.block_id)
        targets.append((block, patch, new_text))

    # Splice from the end so earlier offsets stay valid.
    targets.sort(key=lambda t: t[0].start, reverse=True)
    text = document
    last_start: int | None = None
    for block, patch, new_text in targets:
        if last_start is not None and block.end > last_start:
            report.skipped[patch.block_id] = "overlaps another patched block"
            continue
        text = text[: block.start] + new_text + text[block.end :]
        report.applied.append(patch.block_id)
        last_start = block.start

    report.applied.reverse()
    report.text = text
    return report


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def read_document(path: Path) -> str:
    """Read and normalize a KeyValues file, tolerating a BOM and stray bytes."""
    return normalize(path.read_text(encoding="utf-8-sig", errors="replace"))


def write_document(path: Path, text: str) -> None:
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(text)


def find_config_file(root: Path) -> Path | None:
    for candidate in CONFIG_FILE_CANDIDATES:
        path = root / candidate
        if path.is_file():
            return path
    return None


def find_index_file(root: Path) -> Path | None:
    direct = root / INDEX_FILE_NAME
    if direct.is_file():
        return direct
    return next((p for p in sorted(root.rglob(INDEX_FILE_NAME)) if p.is_file()), None)
