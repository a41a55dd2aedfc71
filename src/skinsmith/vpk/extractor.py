"""Unpack a content archive with the external unpacker and verify the result."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

from skinsmith.config import settings
from skinsmith.constants import EXTRACTION_MARKER, EXTRACTION_WRAPPER
from skinsmith.errors import InvalidArchiveError, ToolFailedError, ToolMissingError
from skinsmith.tools.runner import CommandRunner
from skinsmith.utils.files import remove_tree

logger = logging.getLogger(__name__)


def flatten_wrapper(target_dir: Path, wrapper: str = EXTRACTION_WRAPPER) -> bool:
    """Move everything out of ``target_dir/<wrapper>`` into *target_dir*.

    Existing entries at the destination are replaced. Returns ``False`` when
    there is no wrapper directory.
    """
    wrapper_dir = target_dir / wrapper
    if not wrapper_dir.is_dir():
        return False
    for item in list(wrapper_dir.iterdir()):
        dest = target_dir / item.name
        if dest.is_dir():
            shutil.rmtree(dest)
        elif dest.exists():
            dest.unlink()
        shutil.move(str(item), str(dest))
    wrapper_dir.rmdir()
    return True


class ArchiveExtractor:
    def __init__(
        self,
        runner: CommandRunner,
        *,
        tool_path: Path | None = None,
        timeout: float | None = None,
        marker: str = EXTRACTION_MARKER,
    ) -> None:
        self._runner = runner
        self._tool_path = tool_path or settings.unpacker_path
        self._timeout = timeout or settings.extract_timeout
        self._marker = marker

    async def extract(
        self,
        archive_path: Path,
        target_dir: Path,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> Path:
        """Extract *archive_path* into *target_dir* and return the marker file path.

        On any failure *target_dir* is removed so a half-extracted tree is
        never mistaken for a valid one.
        """
        if not self._tool_path.is_file():
            raise ToolMissingError(f"Unpacker not found at {self._tool_path}")
        if not archive_path.is_file():
            raise InvalidArchiveError(f"Archive {archive_path} does not exist")

        remove_tree(target_dir)
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ToolFailedError(
                f"Cannot create extraction directory {target_dir}: {exc}", reason="io"
            ) from exc
        args = ["-p", str(archive_path), "-d", str(target_dir), "-e", EXTRACTION_WRAPPER]
        logger.info("Extracting %s into %s", archive_path.name, target_dir)

        try:
            result = await self._runner.run(
                self._tool_path,
                args,
                cwd=target_dir,
                timeout=self._timeout,
                cancel_event=cancel_event,
            )
            if not result.ok:
                raise ToolFailedError(
                    f"Unpacker exited with code {result.exit_code}",
                    exit_code=result.exit_code,
                    stderr=result.stderr,
                )
            try:
                flattened = flatten_wrapper(target_dir)
            except OSError as exc:
                raise InvalidArchiveError(
                    f"Cannot flatten the extracted {archive_path.name}: {exc}"
                ) from exc
            if flattened:
                logger.info("Flattened '%s' wrapper directory", EXTRACTION_WRAPPER)
            marker = target_dir / self._marker
            if not marker.is_file():
                raise InvalidArchiveError(
                    f"Extraction of {archive_path.name} did not produce {self._marker}"
                )
        except BaseException:
            remove_tree(target_dir)
            raise

        logger.info("Extraction verified (%s present)", self._marker)
        return marker
