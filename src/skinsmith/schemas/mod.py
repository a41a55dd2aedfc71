"""A single selectable mod contribution."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ModSource(BaseModel):
    """One independently selectable mod with the files and config blocks it touches.

    ``priority``: lower value wins. ``config_blocks`` maps a numeric block id
    to the replacement block text the mod wants in the item config file.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mod_id: str
    mod_name: str
    category: str = ""
    priority: int = 100
    applied_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    affected_files: list[str] = []
    config_blocks: dict[str, str] = {}
    owner_tag: str | None = None
    settings: dict[str, str] = {}
    payload_dir: str | None = None

    @property
    def config_keys(self) -> list[str]:
        return sorted(self.config_blocks)

    def __str__(self) -> str:
        return f"{self.category}/{self.mod_name} (priority {self.priority})"
