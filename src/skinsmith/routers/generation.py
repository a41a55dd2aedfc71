"""Endpoint that runs the full generation pipeline for one installation."""

import logging

from fastapi import APIRouter, Depends

from skinsmith.routers.deps import get_pipeline
from skinsmith.schemas.generation import GenerationRequest, GenerationResult
from skinsmith.services.generation import GenerationPipeline

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generation"])


@router.post("/generate", response_model=GenerationResult)
async def generate(
    data: GenerationRequest,
    pipeline: GenerationPipeline = Depends(get_pipeline),
) -> GenerationResult:
    """Build and install a content archive from the requested mods.

    Unresolved conflicts come back with status ``conflicts``; resubmit with
    ``decisions`` mapping each conflict id to the chosen option id.
    """

    def on_progress(phase: str, message: str, percent: int) -> None:
        logger.info("[%s %3d%%] %s", phase, percent, message)

    return await pipeline.run(data, progress=on_progress)
