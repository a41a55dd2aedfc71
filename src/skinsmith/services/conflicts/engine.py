"""ConflictEngine: runs every registered detector across all pairs of mod sources."""

from __future__ import annotations

import itertools
import logging
import time

from skinsmith.schemas.conflict import ModConflict
from skinsmith.schemas.mod import ModSource
from skinsmith.services.conflicts.detectors import get_all_detectors

logger = logging.getLogger(__name__)


class ConflictEngine:
    """Pairwise conflict detection over a mod set.

    Sources are compared in the order given, so "first" in a conflict is
    always the earlier-registered source. Results come back most severe first.
    """

    def detect(self, sources: list[ModSource]) -> list[ModConflict]:
        start = time.perf_counter()
        if len(sources) < 2:
            return []

        conflicts: list[ModConflict] = []
        detectors = get_all_detectors()
        for first, second in itertools.combinations(sources, 2):
            for detector in detectors:
                conflict = detector.detect(first, second)
                if conflict is None:
                    continue
                conflicts.append(conflict)
                logger.info(
                    "Detector %s: %s conflict between %s and %s",
                    detector.name,
                    conflict.severity,
                    first.mod_name,
                    second.mod_name,
                )

        conflicts.sort(key=lambda c: c.severity.rank, reverse=True)
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "Conflict detection over %d mods: %d conflicts in %dms",
            len(sources),
            len(conflicts),
            elapsed_ms,
        )
        return conflicts
