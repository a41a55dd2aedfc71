"""Speed/failure ranking of interchangeable content mirrors.

One ``SourceRanker`` is constructed per process (see ``routers/deps.py``)
and handed to every fetcher, so tests can build their own with a fixed
ordering.
"""

from __future__ import annotations

import asyncio
import logging
import statistics
import time
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

import httpx

from skinsmith.schemas.source import ContentSource

logger = logging.getLogger(__name__)

_PROBE_BYTES = 65_536


def build_url(base_url: str, asset_path: str) -> str:
    return f"{base_url.rstrip('/')}/{asset_path.lstrip('/')}"


class SourceRanker:
    """Orders mirrors fastest first and demotes ones that keep failing.

    Failures are session-only state. A source whose failure count reaches
    ``failure_threshold`` drops out of :meth:`rank` for as long as at least
    one other source is still under the threshold.
    """

    def __init__(
        self,
        urls: Iterable[str],
        *,
        failure_threshold: int = 2,
        stale_after: timedelta = timedelta(hours=6),
    ) -> None:
        self._urls = list(dict.fromkeys(u.rstrip("/") for u in urls))
        if not self._urls:
            raise ValueError("SourceRanker needs at least one source URL")
        self._failure_threshold = failure_threshold
        self._stale_after = stale_after
        self._speeds: dict[str, float] = {}
        self._failures: dict[str, int] = {}
        self._measured_at: datetime | None = None

    @property
    def urls(self) -> list[str]:
        return list(self._urls)

    def _key(self, url: str) -> str:
        key = url.rstrip("/")
        if key not in self._urls:
            raise KeyError(f"Unknown content source: {url}")
        return key

    # -- mutation ----------------------------------------------------------

    def record_measurement(self, url: str, bytes_per_second: float) -> None:
        self._speeds[self._key(url)] = max(bytes_per_second, 0.0)
        self._measured_at = datetime.now(UTC)

    def report_failure(self, url: str) -> None:
        key = self._key(url)
        self._failures[key] = self._failures.get(key, 0) + 1
        logger.info("Source %s demoted (%d failure(s))", key, self._failures[key])

    def report_success(self, url: str) -> None:
        self._failures.pop(self._key(url), None)

    def reset(self) -> None:
        self._speeds.clear()
        self._failures.clear()
        self._measured_at = None

    # -- queries -----------------------------------------------------------

    def failures(self, url: str) -> int:
        return self._failures.get(self._key(url), 0)

    def is_stale(self) -> bool:
        if self._measured_at is None:
            return True
        return datetime.now(UTC) - self._measured_at > self._stale_after

    def rank(self) -> list[str]:
        """Return source URLs, fewest failures first, then fastest measured.

        Unmeasured sources sit at the median measured speed; ties keep the
        configured order.
        """
        neutral = statistics.median(self._speeds.values()) if self._speeds else 0.0
        eligible = [u for u in self._urls if self.failures(u) < self._failure_threshold]
        pool = eligible or self._urls
        return sorted(
            pool,
            key=lambda u: (self.failures(u), -self._speeds.get(u, neutral)),
        )

    def sources(self) -> list[ContentSource]:
        ranked = self.rank()
        ordered = ranked + [u for u in self._urls if u not in ranked]
        return [
            ContentSource(
                url=u,
                bytes_per_second=self._speeds.get(u),
                failures=self.failures(u),
                last_measured=self._measured_at if u in self._speeds else None,
                excluded=u not in ranked,
            )
            for u in ordered
        ]

    # -- probing -----------------------------------------------------------

    async def _probe_one(self, client: httpx.AsyncClient, url: str, asset_path: str) -> None:
        start = time.perf_counter()
        try:
            resp = await client.get(
                build_url(url, asset_path),
                headers={"Range": f"bytes=0-{_PROBE_BYTES - 1}"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Probe of %s failed: %s", url, exc)
            self.report_failure(url)
            return
        elapsed = max(time.perf_counter() - start, 1e-6)
        self.record_measurement(url, len(resp.content) / elapsed)

    async def probe(self, asset_path: str, *, timeout: float = 15.0) -> list[ContentSource]:
        """Measure every source with a small ranged download and re-rank."""
        async with httpx.AsyncClient(follow_redirects=True, timeout=timeout) as client:
            await asyncio.gather(*(self._probe_one(client, u, asset_path) for u in self._urls))
        logger.info("Probed %d content sources; order: %s", len(self._urls), self.rank())
        return self.sources()
