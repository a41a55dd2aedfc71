"""Endpoints for content source ranking and the download cache."""

import logging

from fastapi import APIRouter, Depends

from skinsmith.config import settings
from skinsmith.routers.deps import get_base_provider, get_fetcher, get_ranker
from skinsmith.schemas.source import ContentSource
from skinsmith.services.base_content import BaseContentProvider
from skinsmith.sources.fetcher import ResilientFetcher
from skinsmith.sources.ranker import SourceRanker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sources"])


@router.get("/sources", response_model=list[ContentSource])
def list_sources(ranker: SourceRanker = Depends(get_ranker)) -> list[ContentSource]:
    """Sources in the order the next download will try them."""
    return ranker.sources()


@router.post("/sources/probe", response_model=list[ContentSource])
async def probe_sources(ranker: SourceRanker = Depends(get_ranker)) -> list[ContentSource]:
    return await ranker.probe(settings.base_asset_path)


@router.delete("/cache")
def clear_cache(
    fetcher: ResilientFetcher = Depends(get_fetcher),
    base: BaseContentProvider = Depends(get_base_provider),
) -> dict[str, bool]:
    base.invalidate()
    fetcher.clear_cache()
    return {"cleared": True}
