from fastapi import APIRouter

from skinsmith.routers import conflicts, generation, install_log, priorities, sources

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(generation.router)
api_router.include_router(conflicts.router)
api_router.include_router(priorities.router)
api_router.include_router(sources.router)
api_router.include_router(install_log.router)
