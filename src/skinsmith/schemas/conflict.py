"""Conflict detection and resolution models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from skinsmith.schemas.mod import ModSource


class ConflictType(StrEnum):
    FILE = "File"
    SCRIPT = "Script"
    ASSET = "Asset"
    CONFIGURATION = "Configuration"


class ConflictSeverity(StrEnum):
    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    ConflictSeverity.NONE: 0,
    ConflictSeverity.LOW: 1,
    ConflictSeverity.MEDIUM: 2,
    ConflictSeverity.HIGH: 3,
    ConflictSeverity.CRITICAL: 4,
}


class ResolutionStrategy(StrEnum):
    HIGHER_PRIORITY = "HigherPriority"
    LOWER_PRIORITY = "LowerPriority"
    MOST_RECENT = "MostRecent"
    KEEP_EXISTING = "KeepExisting"
    USE_NEW = "UseNew"
    MERGE = "Merge"
    INTERACTIVE = "Interactive"


class ResolutionOption(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    strategy: ResolutionStrategy
    description: str = ""
    preferred_source: ModSource | None = None

    @property
    def is_automatic(self) -> bool:
        return self.strategy != ResolutionStrategy.INTERACTIVE


class ModConflict(BaseModel):
    """Two or more mod sources touching the same files, config keys or settings.

    Critical conflicts only offer interactive options; every other severity
    offers at least one automatic option. ``selected_resolution`` is set once,
    by the resolver.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    type: ConflictType
    severity: ConflictSeverity
    description: str = ""
    affected_files: list[str] = []
    affected_keys: list[str] = []
    conflicting_sources: list[ModSource] = Field(min_length=2)
    available_resolutions: list[ResolutionOption] = []
    selected_resolution: ResolutionOption | None = None

    @model_validator(mode="after")
    def _check_resolution_options(self) -> ModConflict:
        if self.severity == ConflictSeverity.CRITICAL:
            if any(o.is_automatic for o in self.available_resolutions):
                raise ValueError("Critical conflicts may only offer interactive resolutions")
        elif not any(o.is_automatic for o in self.available_resolutions):
            raise ValueError("Non-critical conflicts need at least one automatic resolution")
        return self

    @property
    def is_resolved(self) -> bool:
        return self.selected_resolution is not None

    @property
    def requires_user_intervention(self) -> bool:
        return self.severity == ConflictSeverity.CRITICAL

    @property
    def highest_priority_source(self) -> ModSource:
        return min(self.conflicting_sources, key=lambda s: s.priority)

    @property
    def most_recent_source(self) -> ModSource:
        return max(self.conflicting_sources, key=lambda s: s.applied_at)

    def option(self, option_id: str) -> ResolutionOption | None:
        return next((o for o in self.available_resolutions if o.id == option_id), None)


class ResolutionOutcome(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    conflict_id: str
    success: bool
    used_strategy: ResolutionStrategy
    winning_source: ModSource | None = None
    resolved_files: list[str] = []
    resolved_keys: list[str] = []
    merged_blocks: dict[str, str] = {}
    merged_settings: dict[str, str] | None = None
    error_message: str | None = None

    @classmethod
    def successful(
        cls,
        conflict: ModConflict,
        strategy: ResolutionStrategy,
        winner: ModSource | None,
        *,
        merged_blocks: dict[str, str] | None = None,
        merged_settings: dict[str, str] | None = None,
    ) -> ResolutionOutcome:
        return cls(
            conflict_id=conflict.id,
            success=True,
            used_strategy=strategy,
            winning_source=winner,
            resolved_files=list(conflict.affected_files),
            resolved_keys=list(conflict.affected_keys),
            merged_blocks=merged_blocks or {},
            merged_settings=merged_settings,
        )

    @classmethod
    def failed(
        cls, conflict: ModConflict, strategy: ResolutionStrategy, message: str
    ) -> ResolutionOutcome:
        return cls(
            conflict_id=conflict.id,
            success=False,
            used_strategy=strategy,
            error_message=message,
        )


class ResolveRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    conflict: ModConflict
    strategy: ResolutionStrategy | None = None
    option_id: str | None = None


class ConflictDetectRequest(BaseModel):
    """Mods to check; with ``target_path`` the installation's priorities are applied first."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mods: list[ModSource] = Field(min_length=1)
    target_path: str | None = None


class ConflictReport(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    conflicts: list[ModConflict] = []
    auto_resolvable: list[str] = []
    requires_decision: list[str] = []
