"""Conflict detector protocol, registry, and built-in detectors.

Each detector compares one pair of mod sources and returns a ``ModConflict``
when they collide on its resource kind (files, config blocks or declared
settings).
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import PurePosixPath
from typing import Protocol

from skinsmith.constants import (
    ASSET_EXTENSIONS,
    CONFIG_FILE_CANDIDATES,
    CONFIG_FILE_PATTERNS,
    CORE_FILE_PATTERNS,
    SCRIPT_EXTENSIONS,
)
from skinsmith.schemas.conflict import (
    ConflictSeverity,
    ConflictType,
    ModConflict,
    ResolutionOption,
    ResolutionStrategy,
)
from skinsmith.schemas.mod import ModSource
from skinsmith.utils.paths import normalize_relative

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Protocol + Registry
# ---------------------------------------------------------------------------


class ConflictDetector(Protocol):
    """Interface that all conflict detectors must satisfy."""

    name: str

    def detect(self, first: ModSource, second: ModSource) -> ModConflict | None: ...


_DETECTORS: list[type[ConflictDetector]] = []


def register_detector(cls: type[ConflictDetector]) -> type[ConflictDetector]:
    """Class decorator that adds a detector to the global registry."""
    if cls not in _DETECTORS:
        _DETECTORS.append(cls)
    return cls


def get_all_detectors() -> list[ConflictDetector]:
    """Instantiate and return all registered detectors."""
    return [cls() for cls in _DETECTORS]  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def conflict_id(kind: ConflictType, sources: list[ModSource], keys: list[str]) -> str:
    """Stable id so a caller can answer a conflict on a later resubmission."""
    material = "|".join([kind.value, *sorted(s.mod_id for s in sources), *sorted(keys)])
    return hashlib.sha1(material.encode("utf-8")).hexdigest()[:8]


def default_resolutions(
    first: ModSource, second: ModSource, *, include_merge: bool = False
) -> list[ResolutionOption]:
    options = [
        ResolutionOption(
            id="priority",
            strategy=ResolutionStrategy.HIGHER_PRIORITY,
            description="Use mod with higher priority",
            preferred_source=first if first.priority <= second.priority else second,
        ),
        ResolutionOption(
            id="recent",
            strategy=ResolutionStrategy.MOST_RECENT,
            description="Use most recently applied mod",
            preferred_source=first if first.applied_at >= second.applied_at else second,
        ),
        ResolutionOption(
            id="keep_existing",
            strategy=ResolutionStrategy.KEEP_EXISTING,
            description=f"Keep {first.mod_name}",
            preferred_source=first,
        ),
        ResolutionOption(
            id="use_new",
            strategy=ResolutionStrategy.USE_NEW,
            description=f"Use {second.mod_name}",
            preferred_source=second,
        ),
    ]
    if include_merge:
        options.insert(
            0,
            ResolutionOption(
                id="merge",
                strategy=ResolutionStrategy.MERGE,
                description="Attempt to merge both changes",
            ),
        )
    return options


def interactive_resolutions(first: ModSource, second: ModSource) -> list[ResolutionOption]:
    return [
        ResolutionOption(
            id="choose_first",
            strategy=ResolutionStrategy.INTERACTIVE,
            description=f"Use {first.mod_name} only",
            preferred_source=first,
        ),
        ResolutionOption(
            id="choose_second",
            strategy=ResolutionStrategy.INTERACTIVE,
            description=f"Use {second.mod_name} only",
            preferred_source=second,
        ),
    ]


def critical_conflict(
    first: ModSource,
    second: ModSource,
    reason: str,
    *,
    files: list[str] | None = None,
    keys: list[str] | None = None,
    kind: ConflictType = ConflictType.CONFIGURATION,
) -> ModConflict:
    files = files or []
    keys = keys or []
    return ModConflict(
        id=conflict_id(kind, [first, second], files + keys),
        type=kind,
        severity=ConflictSeverity.CRITICAL,
        description=(
            f"Critical conflict between '{first.mod_name}' and '{second.mod_name}': {reason}"
        ),
        affected_files=files,
        affected_keys=keys,
        conflicting_sources=[first, second],
        available_resolutions=interactive_resolutions(first, second),
    )


# ---------------------------------------------------------------------------
# Severity helpers
# ---------------------------------------------------------------------------


def classify_files(files: list[str]) -> ConflictType:
    """Pick the conflict type from the overlapping file paths."""
    paths = [PurePosixPath(normalize_relative(f)) for f in files]
    if any(pattern in path.stem for path in paths for pattern in CONFIG_FILE_PATTERNS):
        return ConflictType.CONFIGURATION
    suffixes = {path.suffix for path in paths}
    if suffixes & SCRIPT_EXTENSIONS:
        return ConflictType.SCRIPT
    if suffixes & ASSET_EXTENSIONS:
        return ConflictType.ASSET
    return ConflictType.FILE


def file_severity(count: int) -> ConflictSeverity:
    if count <= 2:
        return ConflictSeverity.LOW
    if count <= 5:
        return ConflictSeverity.MEDIUM
    if count <= 10:
        return ConflictSeverity.HIGH
    return ConflictSeverity.CRITICAL


def script_severity(count: int) -> ConflictSeverity:
    return ConflictSeverity.HIGH if count > 5 else ConflictSeverity.MEDIUM


def _touches_core_files(files: list[str]) -> bool:
    return any(pattern in normalize_relative(f) for f in files for pattern in CORE_FILE_PATTERNS)


# ---------------------------------------------------------------------------
# Built-in detectors
# ---------------------------------------------------------------------------


@register_detector
class FileOverlapDetector:
    """Detects mods shipping the same file paths (compared case-insensitively)."""

    name = "files"

    def detect(self, first: ModSource, second: ModSource) -> ModConflict | None:
        theirs = {normalize_relative(f) for f in second.affected_files}
        overlap = [f for f in first.affected_files if normalize_relative(f) in theirs]
        if not overlap:
            return None

        kind = classify_files(overlap)
        same_category_bulk = first.category == second.category and len(overlap) > 10
        if kind == ConflictType.CONFIGURATION or same_category_bulk or _touches_core_files(overlap):
            return critical_conflict(
                first,
                second,
                f"both mods modify {len(overlap)} critical file(s)",
                files=overlap,
            )

        if kind == ConflictType.SCRIPT:
            severity = script_severity(len(overlap))
        else:
            severity = file_severity(len(overlap))
        if severity == ConflictSeverity.CRITICAL:
            return critical_conflict(
                first, second, f"{len(overlap)} overlapping files", files=overlap, kind=kind
            )
        return ModConflict(
            id=conflict_id(kind, [first, second], overlap),
            type=kind,
            severity=severity,
            description=(
                f"{kind.value} conflict between '{first.mod_name}' and "
                f"'{second.mod_name}': {len(overlap)} overlapping file(s)"
            ),
            affected_files=overlap,
            conflicting_sources=[first, second],
            available_resolutions=default_resolutions(first, second),
        )


@register_detector
class ConfigKeyDetector:
    """Detects mods replacing the same config block with different text."""

    name = "config_keys"

    def detect(self, first: ModSource, second: ModSource) -> ModConflict | None:
        shared = sorted(
            set(first.config_keys) & set(second.config_keys), key=lambda k: (len(k), k)
        )
        differing = [
            key
            for key in shared
            if first.config_blocks[key].strip() != second.config_blocks[key].strip()
        ]
        if not differing:
            return None
        return ModConflict(
            id=conflict_id(ConflictType.SCRIPT, [first, second], differing),
            type=ConflictType.SCRIPT,
            severity=script_severity(len(differing)),
            description=(
                f"Script conflict: both '{first.mod_name}' and '{second.mod_name}' "
                f"modify block(s) {', '.join(differing)} in {CONFIG_FILE_CANDIDATES[0]}"
            ),
            affected_files=[CONFIG_FILE_CANDIDATES[0]],
            affected_keys=differing,
            conflicting_sources=[first, second],
            available_resolutions=default_resolutions(first, second, include_merge=True),
        )


@register_detector
class SettingsDetector:
    """Detects mutually exclusive declared settings (same key, different value)."""

    name = "settings"

    def detect(self, first: ModSource, second: ModSource) -> ModConflict | None:
        clashing = sorted(
            key
            for key in set(first.settings) & set(second.settings)
            if first.settings[key] != second.settings[key]
        )
        if not clashing:
            return None
        return critical_conflict(
            first,
            second,
            f"mutually exclusive setting(s) {', '.join(clashing)}",
            keys=clashing,
        )
