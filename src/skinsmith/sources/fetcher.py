"""Multi-source asset download with stall detection and an on-disk cache."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import time
import zipfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx

from skinsmith.config import settings
from skinsmith.errors import CorruptArtifactError, OperationCancelledError, SourceExhaustedError
from skinsmith.sources.ranker import SourceRanker, build_url

logger = logging.getLogger(__name__)

_STREAM_CHUNK_SIZE = 65_536  # 64 KB
_MAX_RETRY_DELAY = 5.0
_TRANSIENT_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})

WarningCallback = Callable[[str], None]
ByteProgress = Callable[[int, int], None]


@dataclass(frozen=True, slots=True)
class FetchResult:
    path: Path
    size: int
    source_url: str | None
    from_cache: bool = False


class _TransientStatusError(Exception):
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}")


class _TransferAborted(Exception):
    """The stall monitor or the overall deadline cut a transfer short."""


def is_valid_zip(path: Path, min_bytes: int) -> bool:
    """Non-trivial size and a readable zip directory with at least one entry."""
    try:
        if path.stat().st_size < min_bytes or not zipfile.is_zipfile(path):
            return False
        with zipfile.ZipFile(path) as zf:
            return len(zf.namelist()) > 0
    except (OSError, zipfile.BadZipFile):
        return False


@dataclass(slots=True)
class _TransferState:
    started: float
    last_byte: float
    received: int = 0
    abort_reason: str | None = None


class ResilientFetcher:
    """Downloads an asset from the first source in the ranker's order that delivers it.

    Transient errors are retried with exponential backoff on the same source.
    A stall (no bytes for ``stall_timeout`` seconds) or an overall deadline
    overrun moves straight on to the next source. Successful downloads land in
    ``cache_root/<cache_key>/<file name>`` and are served from there afterwards.
    """

    def __init__(
        self,
        ranker: SourceRanker,
        *,
        cache_root: Path | None = None,
        overall_timeout: float | None = None,
        stall_timeout: float | None = None,
        stall_warning: float | None = None,
        retries_per_source: int | None = None,
        retry_initial_delay: float | None = None,
        min_bytes: int | None = None,
        validator: Callable[[Path], bool] | None = None,
    ) -> None:
        self._ranker = ranker
        self._cache_root = cache_root or settings.cache_dir
        self._overall_timeout = overall_timeout or settings.fetch_overall_timeout
        self._stall_timeout = stall_timeout or settings.fetch_stall_timeout
        self._stall_warning = stall_warning or settings.fetch_stall_warning
        self._retries = (
            settings.fetch_retries_per_source if retries_per_source is None else retries_per_source
        )
        self._retry_delay = (
            settings.fetch_retry_initial_delay
            if retry_initial_delay is None
            else retry_initial_delay
        )
        min_size = settings.fetch_min_bytes if min_bytes is None else min_bytes
        self._validator = validator or (lambda p: is_valid_zip(p, min_size))
        self._poll_interval = min(1.0, self._stall_timeout / 4)

    @property
    def ranker(self) -> SourceRanker:
        return self._ranker

    @property
    def cache_root(self) -> Path:
        return self._cache_root

    def cached_path(self, asset_path: str, cache_key: str) -> Path:
        return self._cache_root / cache_key / Path(asset_path).name

    def clear_cache(self, cache_key: str | None = None) -> None:
        target = self._cache_root / cache_key if cache_key else self._cache_root
        if target.exists():
            shutil.rmtree(target)
            logger.info("Cleared fetch cache %s", target)

    # -- public ------------------------------------------------------------

    async def fetch(
        self,
        asset_path: str,
        cache_key: str,
        *,
        on_warning: WarningCallback | None = None,
        on_progress: ByteProgress | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> FetchResult:
        dest = self.cached_path(asset_path, cache_key)
        if dest.exists():
            if self._validator(dest):
                logger.info("Cache hit for %s (%s)", asset_path, dest)
                return FetchResult(dest, dest.stat().st_size, None, from_cache=True)
            logger.warning("Cached %s failed validation; refetching", dest)
            dest.unlink(missing_ok=True)

        dest.parent.mkdir(parents=True, exist_ok=True)
        part = dest.with_name(dest.name + ".part")
        attempts = 0
        last_error: str | None = None
        last_was_corrupt = False

        async with httpx.AsyncClient(
            follow_redirects=True, timeout=httpx.Timeout(30.0, read=None)
        ) as client:
            for base in self._ranker.rank():
                url = build_url(base, asset_path)
                delay = self._retry_delay
                for attempt in range(self._retries + 1):
                    if cancel_event and cancel_event.is_set():
                        raise OperationCancelledError(f"Download of {asset_path} cancelled")
                    attempts += 1
                    started = time.perf_counter()
                    try:
                        size = await self._download(
                            client, url, part, on_warning, on_progress, cancel_event
                        )
                    except (httpx.TransportError, _TransientStatusError) as exc:
                        part.unlink(missing_ok=True)
                        last_error, last_was_corrupt = f"{url}: {exc}", False
                        if attempt < self._retries:
                            logger.warning("Transient error from %s (%s); retrying", url, exc)
                            await self._backoff(delay, cancel_event)
                            delay = min(delay * 2, _MAX_RETRY_DELAY)
                            continue
                    except (httpx.HTTPStatusError, _TransferAborted) as exc:
                        part.unlink(missing_ok=True)
                        last_error, last_was_corrupt = f"{url}: {exc}", False
                    except BaseException:
                        part.unlink(missing_ok=True)
                        raise
                    else:
                        if self._validator(part):
                            os.replace(part, dest)
                            elapsed = max(time.perf_counter() - started, 1e-6)
                            self._ranker.record_measurement(base, size / elapsed)
                            self._ranker.report_success(base)
                            logger.info("Fetched %s from %s (%d bytes)", asset_path, base, size)
                            return FetchResult(dest, size, base)
                        part.unlink(missing_ok=True)
                        last_error = f"{url}: downloaded content failed validation"
                        last_was_corrupt = True
                    break

                logger.warning("Source %s failed for %s: %s", base, asset_path, last_error)
                self._ranker.report_failure(base)

        if last_was_corrupt:
            raise CorruptArtifactError(f"Every source served corrupt data for '{asset_path}'")
        raise SourceExhaustedError(asset_path, attempts, last_error)

    # -- internals ---------------------------------------------------------

    async def _backoff(self, delay: float, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
            raise OperationCancelledError("Download cancelled during retry backoff")

    async def _read_loop(
        self,
        client: httpx.AsyncClient,
        url: str,
        dest: Path,
        state: _TransferState,
        on_progress: ByteProgress | None,
    ) -> int:
        loop = asyncio.get_running_loop()
        async with client.stream("GET", url) as resp:
            if resp.status_code in _TRANSIENT_STATUS:
                raise _TransientStatusError(resp.status_code)
            resp.raise_for_status()
            total = int(resp.headers.get("Content-Length", 0))
            with open(dest, "wb") as f:
                async for chunk in resp.aiter_bytes(chunk_size=_STREAM_CHUNK_SIZE):
                    f.write(chunk)
                    state.received += len(chunk)
                    state.last_byte = loop.time()
                    if on_progress:
                        on_progress(state.received, total)
        return state.received

    async def _monitor(
        self,
        state: _TransferState,
        reader: asyncio.Task[int],
        url: str,
        on_warning: WarningCallback | None,
        cancel_event: asyncio.Event | None,
    ) -> None:
        loop = asyncio.get_running_loop()
        warned = False
        while not reader.done():
            await asyncio.sleep(self._poll_interval)
            now = loop.time()
            idle = now - state.last_byte
            if cancel_event and cancel_event.is_set():
                state.abort_reason = "cancelled"
            elif now - state.started >= self._overall_timeout:
                state.abort_reason = f"exceeded overall deadline of {self._overall_timeout:.0f}s"
            elif idle >= self._stall_timeout:
                state.abort_reason = f"stalled for {idle:.1f}s"
            elif not warned and idle >= self._stall_warning:
                warned = True
                logger.warning("Transfer from %s idle for %.1fs", url, idle)
                if on_warning:
                    on_warning(f"Download from {url} has stalled for {idle:.0f}s; retrying soon")
                continue
            else:
                continue
            reader.cancel()
            return

    async def _download(
        self,
        client: httpx.AsyncClient,
        url: str,
        dest: Path,
        on_warning: WarningCallback | None,
        on_progress: ByteProgress | None,
        cancel_event: asyncio.Event | None,
    ) -> int:
        loop = asyncio.get_running_loop()
        now = loop.time()
        state = _TransferState(started=now, last_byte=now)
        reader = asyncio.create_task(self._read_loop(client, url, dest, state, on_progress))
        monitor = asyncio.create_task(
            self._monitor(state, reader, url, on_warning, cancel_event)
        )
        try:
            return await reader
        except asyncio.CancelledError:
            if state.abort_reason is None:
                raise
            if state.abort_reason == "cancelled":
                raise OperationCancelledError(f"Download from {url} cancelled") from None
            raise _TransferAborted(state.abort_reason) from None
        finally:
            monitor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await monitor
