"""Endpoints for the per-installation mod priority table."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from skinsmith.routers.deps import get_priority_service
from skinsmith.schemas.priority import ModPriorityConfig, PriorityUpdate
from skinsmith.services.priority_service import PriorityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/priorities", tags=["priorities"])


@router.get("", response_model=ModPriorityConfig)
def get_priorities(
    target_path: str,
    service: PriorityService = Depends(get_priority_service),
) -> ModPriorityConfig:
    return service.get_config(target_path)


@router.put("", response_model=ModPriorityConfig)
def replace_priorities(
    target_path: str,
    data: ModPriorityConfig,
    service: PriorityService = Depends(get_priority_service),
) -> ModPriorityConfig:
    service.save_config(target_path, data)
    return data


@router.delete("", response_model=ModPriorityConfig)
def reset_priorities(
    target_path: str,
    service: PriorityService = Depends(get_priority_service),
) -> ModPriorityConfig:
    return service.reset(target_path)


@router.put("/{mod_id}", response_model=ModPriorityConfig)
def set_priority(
    mod_id: str,
    target_path: str,
    data: PriorityUpdate,
    service: PriorityService = Depends(get_priority_service),
) -> ModPriorityConfig:
    changed = service.set_priority(
        target_path, mod_id, data.priority, mod_name=data.mod_name, category=data.category
    )
    if not changed:
        raise HTTPException(409, f"Priority for '{mod_id}' is locked")
    return service.get_config(target_path)
