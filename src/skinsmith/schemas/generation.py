"""Request/response models for a generation run."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from skinsmith.errors import ErrorKind
from skinsmith.schemas.conflict import ModConflict, ResolutionOutcome
from skinsmith.schemas.mod import ModSource


class GenerationStatus(StrEnum):
    SUCCESS = "success"
    CONFLICTS = "conflicts"
    FAILED = "failed"
    CANCELLED = "cancelled"


class GenerationRequest(BaseModel):
    """Mods to deploy into one installation.

    ``decisions`` maps a conflict id from a previous ``conflicts`` result to
    the id of the resolution option the user picked.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    target_path: str
    mods: list[ModSource] = Field(min_length=1)
    decisions: dict[str, str] = {}


class GenerationResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: GenerationStatus
    message: str = ""
    error_kind: ErrorKind | None = None
    archive_path: str | None = None
    installed_mods: list[str] = []
    applied_blocks: list[str] = []
    skipped_blocks: dict[str, str] = {}
    outcomes: list[ResolutionOutcome] = []
    pending_conflicts: list[ModConflict] = []
    elapsed_ms: int = 0

    @property
    def success(self) -> bool:
        return self.status == GenerationStatus.SUCCESS
