"""Conflict detection and resolution between mod sources."""

from skinsmith.services.conflicts.detectors import get_all_detectors
from skinsmith.services.conflicts.engine import ConflictEngine
from skinsmith.services.conflicts.resolver import (
    ConflictAlreadyResolvedError,
    ConflictResolver,
    ResolutionBatch,
)

__all__ = [
    "ConflictAlreadyResolvedError",
    "ConflictEngine",
    "ConflictResolver",
    "ResolutionBatch",
    "get_all_detectors",
]
