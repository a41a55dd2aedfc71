"""Persisted per-installation mod priority table."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from skinsmith.schemas.conflict import ResolutionStrategy

MIN_PRIORITY = 1
MAX_PRIORITY = 999
DEFAULT_PRIORITY = 100


def clamp_priority(value: int) -> int:
    return max(MIN_PRIORITY, min(MAX_PRIORITY, value))


def _default_category_strategies() -> dict[str, ResolutionStrategy]:
    # Weather and river mods layer cleanly, so the newest one wins.
    return {
        "Weather": ResolutionStrategy.MOST_RECENT,
        "River": ResolutionStrategy.MOST_RECENT,
    }


class ModPriority(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mod_id: str
    mod_name: str = ""
    category: str = ""
    priority: int = DEFAULT_PRIORITY
    is_locked: bool = False
    notes: str = ""

    @field_validator("priority")
    @classmethod
    def _clamp(cls, v: int) -> int:
        return clamp_priority(v)


class ModPriorityConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    priorities: list[ModPriority] = []
    default_strategy: ResolutionStrategy = ResolutionStrategy.HIGHER_PRIORITY
    auto_resolve_non_breaking: bool = True
    category_strategies: dict[str, ResolutionStrategy] = Field(
        default_factory=_default_category_strategies
    )
    last_modified: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def find(self, mod_id: str) -> ModPriority | None:
        return next((p for p in self.priorities if p.mod_id == mod_id), None)

    def get_priority(self, mod_id: str) -> int | None:
        entry = self.find(mod_id)
        return entry.priority if entry else None

    def set_priority(
        self,
        mod_id: str,
        priority: int,
        *,
        mod_name: str = "",
        category: str = "",
    ) -> bool:
        """Create or update an entry. Locked entries are left alone and return ``False``."""
        entry = self.find(mod_id)
        if entry is None:
            self.priorities.append(
                ModPriority(
                    mod_id=mod_id,
                    mod_name=mod_name,
                    category=category,
                    priority=priority,
                )
            )
        elif entry.is_locked:
            return False
        else:
            entry.priority = clamp_priority(priority)
            if mod_name:
                entry.mod_name = mod_name
            if category:
                entry.category = category
        self.last_modified = datetime.now(UTC)
        return True


class PriorityUpdate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    priority: int
    mod_name: str = ""
    category: str = ""
