"""Repack a prepared directory into a content archive with the external packer."""

from __future__ import annotations

import asyncio
import logging
import tempfile
import time
from pathlib import Path

from skinsmith.config import settings
from skinsmith.constants import PACKER_REQUIRED_LIBRARIES
from skinsmith.errors import (
    ArtifactNotFoundError,
    OperationCancelledError,
    ToolFailedError,
    ToolMissingError,
)
from skinsmith.tools.runner import CommandRunner
from skinsmith.utils.files import wait_for_file_ready

logger = logging.getLogger(__name__)

# The packer stamps its output slightly before our own start time on some filesystems.
_CLOCK_SLACK = 2.0


class ArchiveRecompiler:
    def __init__(
        self,
        runner: CommandRunner,
        *,
        tool_path: Path | None = None,
        timeout: float | None = None,
        search_attempts: int = 15,
        search_interval: float = 0.3,
        ready_attempts: int = 20,
        ready_interval: float = 0.2,
    ) -> None:
        self._runner = runner
        self._tool_path = tool_path or settings.packer_path
        self._timeout = timeout or settings.recompile_timeout
        self._search_attempts = search_attempts
        self._search_interval = search_interval
        self._ready_attempts = ready_attempts
        self._ready_interval = ready_interval

    def check_preconditions(self, source_dir: Path, build_dir: Path) -> None:
        if not self._tool_path.is_file():
            raise ToolMissingError(f"Packer not found at {self._tool_path}")
        missing = [
            lib for lib in PACKER_REQUIRED_LIBRARIES if not (self._tool_path.parent / lib).is_file()
        ]
        if missing:
            raise ToolMissingError(f"Packer libraries missing: {', '.join(missing)}")
        if not source_dir.is_dir() or not any(source_dir.iterdir()):
            raise ArtifactNotFoundError(f"Source directory {source_dir} is missing or empty")
        try:
            build_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ToolFailedError(f"Cannot create build directory {build_dir}: {exc}") from exc

    @staticmethod
    def candidate_dirs(source_dir: Path, build_dir: Path) -> list[Path]:
        dirs = [build_dir, source_dir, source_dir.parent, Path(tempfile.gettempdir())]
        return list(dict.fromkeys(dirs))

    def _find_newest(self, dirs: list[Path], not_before: float) -> Path | None:
        best: tuple[float, Path] | None = None
        for directory in dirs:
            if not directory.is_dir():
                continue
            for path in directory.glob("*.vpk"):
                try:
                    mtime = path.stat().st_mtime
                except OSError:
                    continue
                if mtime < not_before:
                    continue
                if best is None or mtime > best[0]:
                    best = (mtime, path)
        return best[1] if best else None

    async def recompile(
        self,
        source_dir: Path,
        build_dir: Path,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> Path:
        """Pack *source_dir* and return the path of the freshly produced archive."""
        self.check_preconditions(source_dir, build_dir)
        started = time.time()
        logger.info("Recompiling %s", source_dir)

        result = await self._runner.run(
            self._tool_path,
            [str(source_dir)],
            cwd=build_dir,
            timeout=self._timeout,
            cancel_event=cancel_event,
        )
        if not result.ok:
            detail = (result.stderr or result.stdout).strip()[-500:]
            raise ToolFailedError(
                f"Packer exited with code {result.exit_code}: {detail}",
                exit_code=result.exit_code,
                stderr=result.stderr,
            )

        dirs = self.candidate_dirs(source_dir, build_dir)
        archive: Path | None = None
        for attempt in range(self._search_attempts):
            if cancel_event and cancel_event.is_set():
                raise OperationCancelledError("Cancelled while locating packed archive")
            archive = self._find_newest(dirs, started - _CLOCK_SLACK)
            if archive is not None:
                break
            if attempt < self._search_attempts - 1:
                await asyncio.sleep(self._search_interval)
        if archive is None:
            raise ArtifactNotFoundError(
                "Packer finished but no new archive appeared in "
                + ", ".join(str(d) for d in dirs)
            )

        ready = await wait_for_file_ready(
            archive,
            attempts=self._ready_attempts,
            interval=self._ready_interval,
            cancel_event=cancel_event,
        )
        if not ready:
            logger.warning("%s still busy after readiness wait; continuing", archive)
        logger.info("Packed archive ready at %s", archive)
        return archive
