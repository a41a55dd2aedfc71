"""Fetch, unpack and extract the unmodified base content tree.

The base asset is a container (``Original.zip``) holding the stock
``pak01_dir.vpk``. It is downloaded through the resilient fetcher, unpacked,
and the archive inside it is run through the external unpacker. The
extracted tree is reused by every later generation run until invalidated.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from skinsmith.archive.handler import extract_all, find_entry
from skinsmith.config import settings
from skinsmith.constants import EXTRACTION_MARKER, LIVE_ARCHIVE_NAME
from skinsmith.errors import CorruptArtifactError
from skinsmith.services.progress import ProgressCallback, noop_progress
from skinsmith.sources.fetcher import ResilientFetcher
from skinsmith.utils.files import remove_tree
from skinsmith.vpk.extractor import ArchiveExtractor

logger = logging.getLogger(__name__)

BASE_CACHE_KEY = "original"


class BaseContentProvider:
    def __init__(
        self,
        fetcher: ResilientFetcher,
        extractor: ArchiveExtractor,
        *,
        asset_path: str | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._extractor = extractor
        self._asset_path = asset_path or settings.base_asset_path
        self._root = fetcher.cache_root / BASE_CACHE_KEY
        self._lock = asyncio.Lock()

    @property
    def payload_dir(self) -> Path:
        return self._root / "payload"

    @property
    def extracted_dir(self) -> Path:
        return self._root / "vpk_extracted"

    def is_ready(self) -> bool:
        return (self.extracted_dir / EXTRACTION_MARKER).is_file()

    async def get_base(
        self,
        progress: ProgressCallback = noop_progress,
        cancel_event: asyncio.Event | None = None,
    ) -> Path:
        """Return the extracted base tree, building it first when necessary."""
        async with self._lock:
            if self.is_ready():
                progress("base", "Using cached base content", 30)
                return self.extracted_dir

            progress("download", f"Downloading {self._asset_path}...", 10)

            def on_bytes(received: int, total: int) -> None:
                if total:
                    pct = 10 + 10 * received // total
                    progress("download", f"Downloaded {received}/{total} bytes", pct)

            result = await self._fetcher.fetch(
                self._asset_path,
                BASE_CACHE_KEY,
                on_warning=lambda message: progress("download", message, 10),
                on_progress=on_bytes,
                cancel_event=cancel_event,
            )

            progress("unpack", f"Unpacking {result.path.name}...", 20)
            remove_tree(self.payload_dir)
            await asyncio.to_thread(extract_all, result.path, self.payload_dir)
            archive = find_entry(self.payload_dir, LIVE_ARCHIVE_NAME)
            if archive is None:
                remove_tree(self.payload_dir)
                raise CorruptArtifactError(
                    f"{result.path.name} does not contain {LIVE_ARCHIVE_NAME}"
                )

            progress("extract", f"Extracting {archive.name}...", 25)
            await self._extractor.extract(archive, self.extracted_dir, cancel_event=cancel_event)
            logger.info("Base content ready at %s", self.extracted_dir)
            progress("base", "Base content ready", 30)
            return self.extracted_dir

    def invalidate(self) -> None:
        """Forget the extracted tree and the downloaded container."""
        remove_tree(self._root)
        logger.info("Invalidated base content at %s", self._root)
