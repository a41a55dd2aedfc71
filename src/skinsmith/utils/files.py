"""Bounded, cancellable waits on files that an external process may still hold."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

from skinsmith.errors import OperationCancelledError

logger = logging.getLogger(__name__)


def _readable_size(path: Path) -> int | None:
    """Return the file size if it can be opened for reading, else ``None``."""
    try:
        with open(path, "rb") as f:
            f.read(1)
        return path.stat().st_size
    except OSError:
        return None


async def wait_for_file_ready(
    path: Path,
    *,
    attempts: int,
    interval: float,
    cancel_event: asyncio.Event | None = None,
) -> bool:
    """Poll until *path* is readable, non-empty and no longer growing.

    A file counts as ready once two consecutive polls see the same non-zero
    size and both opens succeed. Returns ``False`` when *attempts* run out.
    Raises :class:`OperationCancelledError` if *cancel_event* is set between polls.
    """
    last_size: int | None = None
    for attempt in range(attempts):
        if cancel_event and cancel_event.is_set():
            raise OperationCancelledError(f"Cancelled while waiting for {path.name}")
        size = _readable_size(path)
        if size and size == last_size:
            return True
        last_size = size
        if attempt < attempts - 1:
            await asyncio.sleep(interval)
    logger.warning("File %s not ready after %d polls", path, attempts)
    return False


def remove_tree(path: Path) -> None:
    """Delete a directory tree if present; errors are logged, not raised."""
    if not path.exists():
        return
    try:
        shutil.rmtree(path)
    except OSError:
        logger.warning("Could not remove %s", path, exc_info=True)
