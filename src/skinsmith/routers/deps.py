"""Process-wide service instances, exposed as FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from skinsmith.config import settings
from skinsmith.services.base_content import BaseContentProvider
from skinsmith.services.conflicts import ConflictEngine, ConflictResolver
from skinsmith.services.generation import GenerationPipeline
from skinsmith.services.priority_service import PriorityService
from skinsmith.sources.fetcher import ResilientFetcher
from skinsmith.sources.ranker import SourceRanker
from skinsmith.tools.runner import AsyncCommandRunner
from skinsmith.vpk.extractor import ArchiveExtractor
from skinsmith.vpk.recompiler import ArchiveRecompiler
from skinsmith.vpk.replacer import AtomicReplacer


@lru_cache
def get_ranker() -> SourceRanker:
    return SourceRanker(settings.content_sources)


@lru_cache
def get_runner() -> AsyncCommandRunner:
    return AsyncCommandRunner()


@lru_cache
def get_fetcher() -> ResilientFetcher:
    return ResilientFetcher(get_ranker())


@lru_cache
def get_base_provider() -> BaseContentProvider:
    return BaseContentProvider(get_fetcher(), ArchiveExtractor(get_runner()))


@lru_cache
def get_priority_service() -> PriorityService:
    return PriorityService()


@lru_cache
def get_engine() -> ConflictEngine:
    return ConflictEngine()


@lru_cache
def get_resolver() -> ConflictResolver:
    return ConflictResolver()


@lru_cache
def get_pipeline() -> GenerationPipeline:
    return GenerationPipeline(
        get_base_provider(),
        ArchiveRecompiler(get_runner()),
        AtomicReplacer(),
        priority_service=get_priority_service(),
        engine=get_engine(),
        resolver=get_resolver(),
    )
