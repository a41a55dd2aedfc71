"""Load, cache and persist the per-installation mod priority table."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from pydantic import ValidationError

from skinsmith.constants import PRIORITY_CONFIG_FILE
from skinsmith.schemas.mod import ModSource
from skinsmith.schemas.priority import ModPriorityConfig
from skinsmith.utils.paths import private_data_dir

logger = logging.getLogger(__name__)

_CACHE_SECONDS = 30.0


def config_path(target_path: str | Path) -> Path:
    return private_data_dir(target_path) / PRIORITY_CONFIG_FILE


def load_config(target_path: str | Path) -> ModPriorityConfig:
    """Read the priority file; a missing or unreadable file yields defaults."""
    path = config_path(target_path)
    if not path.is_file():
        return ModPriorityConfig()
    try:
        return ModPriorityConfig.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError, ValueError):
        logger.warning("Priority config %s is unreadable; using defaults", path, exc_info=True)
        return ModPriorityConfig()


def save_config(target_path: str | Path, config: ModPriorityConfig) -> Path:
    path = config_path(target_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(config.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    return path


class PriorityService:
    """Priority table access with a short in-memory cache per installation."""

    def __init__(self, cache_seconds: float = _CACHE_SECONDS) -> None:
        self._cache_seconds = cache_seconds
        self._cache: dict[str, tuple[float, ModPriorityConfig]] = {}

    def _cache_key(self, target_path: str | Path) -> str:
        return str(config_path(target_path))

    def get_config(self, target_path: str | Path) -> ModPriorityConfig:
        key = self._cache_key(target_path)
        cached = self._cache.get(key)
        if cached and time.monotonic() - cached[0] < self._cache_seconds:
            return cached[1]
        config = load_config(target_path)
        self._cache[key] = (time.monotonic(), config)
        return config

    def save_config(self, target_path: str | Path, config: ModPriorityConfig) -> None:
        path = save_config(target_path, config)
        self._cache[self._cache_key(target_path)] = (time.monotonic(), config)
        logger.info("Saved priority config to %s", path)

    def invalidate(self, target_path: str | Path | None = None) -> None:
        if target_path is None:
            self._cache.clear()
        else:
            self._cache.pop(self._cache_key(target_path), None)

    def get_priority(self, target_path: str | Path, mod_id: str) -> int | None:
        return self.get_config(target_path).get_priority(mod_id)

    def set_priority(
        self,
        target_path: str | Path,
        mod_id: str,
        priority: int,
        *,
        mod_name: str = "",
        category: str = "",
    ) -> bool:
        """Persist a priority change. Returns ``False`` when the entry is locked."""
        config = self.get_config(target_path)
        if not config.set_priority(mod_id, priority, mod_name=mod_name, category=category):
            logger.info("Priority for %s is locked; not changed", mod_id)
            return False
        self.save_config(target_path, config)
        return True

    def reset(self, target_path: str | Path) -> ModPriorityConfig:
        config = ModPriorityConfig()
        self.save_config(target_path, config)
        return config

    def apply_priorities(
        self, target_path: str | Path, sources: list[ModSource]
    ) -> list[ModSource]:
        """Return *sources* with their configured priorities applied.

        Request order is kept: it is the registration order that KeepExisting
        and UseNew resolve against.
        """
        config = self.get_config(target_path)
        updated: list[ModSource] = []
        for source in sources:
            configured = config.get_priority(source.mod_id)
            if configured is not None and configured != source.priority:
                source = source.model_copy(update={"priority": configured})
            updated.append(source)
        return updated
