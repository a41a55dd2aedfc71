"""Narrow abstraction over external tool processes.

Extractor and recompiler logic only sees :class:`CommandRunner`, so tests can
substitute a fake that fabricates tool output on disk without spawning
anything.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import psutil

from skinsmith.errors import OperationCancelledError, ToolFailedError, ToolMissingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandResult:
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner(Protocol):
    """Runs one external command to completion.

    Implementations raise :class:`ToolMissingError` when the executable cannot
    be started, :class:`ToolFailedError` with ``reason="timeout"`` when the
    timeout expires and :class:`OperationCancelledError` when *cancel_event*
    fires. A non-zero exit is *not* an error here; callers inspect
    ``exit_code``.
    """

    async def run(
        self,
        executable: Path,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout: float,
        cancel_event: asyncio.Event | None = None,
    ) -> CommandResult: ...


def kill_process_tree(pid: int) -> None:
    """Force-kill *pid* and all of its descendants, children first."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    procs = parent.children(recursive=True) + [parent]
    for proc in procs:
        with contextlib.suppress(psutil.NoSuchProcess):
            proc.kill()
    _, alive = psutil.wait_procs(procs, timeout=5)
    for proc in alive:
        logger.warning("Process %d survived kill", proc.pid)


def _decode(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace")


class AsyncCommandRunner:
    """Spawns tools with ``asyncio.create_subprocess_exec`` and captures both streams."""

    async def run(
        self,
        executable: Path,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout: float,
        cancel_event: asyncio.Event | None = None,
    ) -> CommandResult:
        name = Path(executable).name
        spawn_kwargs: dict[str, object] = {}
        if sys.platform == "win32":
            spawn_kwargs["creationflags"] = 0x08000000  # CREATE_NO_WINDOW
        else:
            spawn_kwargs["start_new_session"] = True

        try:
            proc = await asyncio.create_subprocess_exec(
                os.fspath(executable),
                *args,
                cwd=os.fspath(cwd) if cwd else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **spawn_kwargs,  # type: ignore[arg-type]
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise ToolMissingError(f"Cannot start {name}: {exc}") from exc

        logger.info("Started %s (pid %d)", name, proc.pid)
        communicate = asyncio.ensure_future(proc.communicate())
        waiters: set[asyncio.Future[object]] = {communicate}  # type: ignore[arg-type]
        cancel_wait: asyncio.Future[object] | None = None
        if cancel_event is not None:
            cancel_wait = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            await self._terminate(proc, communicate)
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        if communicate in done:
            stdout, stderr = communicate.result()
            code = proc.returncode if proc.returncode is not None else -1
            logger.info("%s exited with code %d", name, code)
            return CommandResult(code, _decode(stdout), _decode(stderr))

        await self._terminate(proc, communicate)
        if cancel_wait is not None and cancel_wait in done:
            raise OperationCancelledError(f"{name} was cancelled")
        raise ToolFailedError(f"{name} timed out after {timeout:.0f}s", reason="timeout")

    async def _terminate(
        self, proc: asyncio.subprocess.Process, communicate: asyncio.Future[object]
    ) -> None:
        if proc.returncode is None:
            logger.warning("Killing process tree of pid %d", proc.pid)
            await asyncio.to_thread(kill_process_tree, proc.pid)
        with contextlib.suppress(Exception):
            await asyncio.wait_for(asyncio.shield(communicate), timeout=5)
        if not communicate.done():
            communicate.cancel()
