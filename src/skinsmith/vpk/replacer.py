"""Install a freshly packed archive over the live one without ever half-writing it."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path

from skinsmith.constants import LIVE_ARCHIVE_NAME
from skinsmith.errors import OperationCancelledError, ReplaceFailedError
from skinsmith.utils.files import wait_for_file_ready
from skinsmith.utils.paths import mods_dir

logger = logging.getLogger(__name__)

STAGING_SUFFIX = ".incoming"


class AtomicReplacer:
    """Copy the new archive next to the live one, verify it, then swap it in.

    The new archive is copied, never moved, so it remains available for a
    retry. The live archive is only touched by the final ``os.replace`` of a
    fully copied and size-checked staging file; any earlier failure leaves it
    byte-for-byte intact.
    """

    def __init__(self, *, ready_attempts: int = 30, ready_interval: float = 0.5) -> None:
        self._ready_attempts = ready_attempts
        self._ready_interval = ready_interval

    async def replace(
        self,
        target_path: str | Path,
        new_archive: Path,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> Path:
        destination_dir = mods_dir(target_path)
        live = destination_dir / LIVE_ARCHIVE_NAME
        staging = live.with_name(live.name + STAGING_SUFFIX)

        ready = await wait_for_file_ready(
            new_archive,
            attempts=self._ready_attempts,
            interval=self._ready_interval,
            cancel_event=cancel_event,
        )
        if not ready:
            raise ReplaceFailedError(f"{new_archive} never became readable")
        if cancel_event and cancel_event.is_set():
            raise OperationCancelledError("Cancelled before installing archive")

        try:
            expected = new_archive.stat().st_size
            destination_dir.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copyfile, new_archive, staging)
            copied = staging.stat().st_size
            if copied != expected:
                raise ReplaceFailedError(
                    f"Copy of {new_archive.name} is incomplete ({copied} of {expected} bytes)"
                )
            os.replace(staging, live)
        except ReplaceFailedError:
            staging.unlink(missing_ok=True)
            raise
        except OSError as exc:
            staging.unlink(missing_ok=True)
            raise ReplaceFailedError(f"Could not install archive into {live}: {exc}") from exc

        logger.info("Installed %s (%d bytes) at %s", new_archive.name, expected, live)
        return live
