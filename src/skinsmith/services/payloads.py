"""Mod payloads: a directory or a .zip/.7z container with asset files and ``index.txt``.

``index.txt`` holds the replacement config blocks a mod ships; it is read
when the request itself carries no ``config_blocks`` for that mod.
"""

from __future__ import annotations

import logging
from pathlib import Path

from skinsmith.archive.handler import extract_all, is_container, read_named_entry
from skinsmith.constants import INDEX_FILE_NAME
from skinsmith.errors import ArtifactNotFoundError, CorruptArtifactError, PipelineError
from skinsmith.keyvalues.normalization import normalize
from skinsmith.keyvalues.patcher import find_index_file, parse_blocks, read_document
from skinsmith.schemas.mod import ModSource
from skinsmith.utils.paths import safe_relative, to_native_path

logger = logging.getLogger(__name__)


def payload_path(source: ModSource) -> Path | None:
    if not source.payload_dir:
        return None
    return Path(to_native_path(source.payload_dir))


def check_affected_files(source: ModSource) -> None:
    """Refuse file paths that could read or write outside their root."""
    for rel in source.affected_files:
        if safe_relative(rel) is None:
            raise PipelineError(f"Mod '{source.mod_name}' lists an unsafe file path: {rel!r}")


def _read_index(path: Path) -> str | None:
    if is_container(path):
        data = read_named_entry(path, INDEX_FILE_NAME)
        if data is None:
            return None
        return normalize(data.decode("utf-8-sig", errors="replace"))
    if path.is_dir():
        index = find_index_file(path)
        if index is None:
            return None
        try:
            return read_document(index)
        except OSError as exc:
            raise CorruptArtifactError(f"Cannot read {index}: {exc}") from exc
    return None


def with_index_blocks(source: ModSource) -> ModSource:
    """Return *source* with ``config_blocks`` filled from its payload's ``index.txt``.

    Mods that already declare blocks, or have no payload or no index, are
    returned unchanged.
    """
    if source.config_blocks:
        return source
    path = payload_path(source)
    if path is None:
        return source
    document = _read_index(path)
    if document is None:
        return source
    blocks = parse_blocks(document)
    logger.info("Read %d block(s) from %s for %s", len(blocks), INDEX_FILE_NAME, source.mod_name)
    return source.model_copy(update={"config_blocks": blocks})


def stage_payload(source: ModSource, staging_dir: Path) -> Path:
    """Directory holding *source*'s asset files; containers are unpacked into *staging_dir*."""
    path = payload_path(source)
    if path is None:
        raise ArtifactNotFoundError(f"Mod '{source.mod_name}' lists files but has no payload")
    if is_container(path):
        extract_all(path, staging_dir)
        logger.info("Unpacked payload %s for %s", path.name, source.mod_name)
        return staging_dir
    if not path.is_dir():
        raise ArtifactNotFoundError(f"Payload {path} for '{source.mod_name}' is missing")
    return path
