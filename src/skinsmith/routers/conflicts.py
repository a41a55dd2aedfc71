"""Endpoints for checking a mod set for conflicts and resolving single conflicts."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from skinsmith.routers.deps import get_engine, get_priority_service, get_resolver
from skinsmith.schemas.conflict import (
    ConflictDetectRequest,
    ConflictReport,
    ResolutionOutcome,
    ResolveRequest,
)
from skinsmith.schemas.priority import ModPriorityConfig
from skinsmith.services.conflicts import (
    ConflictAlreadyResolvedError,
    ConflictEngine,
    ConflictResolver,
)
from skinsmith.services.priority_service import PriorityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conflicts", tags=["conflicts"])


@router.post("/detect", response_model=ConflictReport)
def detect_conflicts(
    data: ConflictDetectRequest,
    engine: ConflictEngine = Depends(get_engine),
    resolver: ConflictResolver = Depends(get_resolver),
    priorities: PriorityService = Depends(get_priority_service),
) -> ConflictReport:
    mods = data.mods
    config = ModPriorityConfig()
    if data.target_path:
        config = priorities.get_config(data.target_path)
        mods = priorities.apply_priorities(data.target_path, mods)

    conflicts = engine.detect(mods)
    report = ConflictReport(conflicts=conflicts)
    for conflict in conflicts:
        if resolver.can_auto_resolve(conflict, config):
            report.auto_resolvable.append(conflict.id)
        else:
            report.requires_decision.append(conflict.id)
    return report


@router.post("/resolve", response_model=ResolutionOutcome)
def resolve_conflict(
    data: ResolveRequest,
    resolver: ConflictResolver = Depends(get_resolver),
) -> ResolutionOutcome:
    """Resolve one conflict by option id (a user choice) or by strategy."""
    conflict = data.conflict
    try:
        if data.option_id is not None:
            option = conflict.option(data.option_id)
            if option is None:
                raise HTTPException(404, f"Option '{data.option_id}' not found for {conflict.id}")
            return resolver.apply_user_choice(conflict, option)
        if data.strategy is not None:
            return resolver.resolve(conflict, data.strategy)
    except ConflictAlreadyResolvedError as exc:
        raise HTTPException(409, str(exc)) from exc
    raise HTTPException(400, "Either option_id or strategy is required")
