import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from skinsmith.config import settings
from skinsmith.errors import ErrorKind, PipelineError
from skinsmith.routers import api_router
from skinsmith.utils.files import remove_tree


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )
    for name in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)


_configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    for directory in (settings.cache_dir, settings.work_dir, settings.tools_dir):
        directory.mkdir(parents=True, exist_ok=True)
    logger.info("Application started (data dir %s)", settings.data_dir)
    yield
    logger.info("Shutting down...")
    # Scratch trees of runs interrupted by the shutdown.
    for leftover in settings.work_dir.glob("build-*"):
        remove_tree(leftover)
    logger.info("Shutdown complete")


app = FastAPI(
    title="Skinsmith",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:1420", "https://tauri.localhost"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(_request: Request, exc: PipelineError) -> JSONResponse:
    if exc.kind == ErrorKind.invalid_request:
        status = 400
        logger.warning("Rejected request: %s", exc.message)
    else:
        status = 500
        logger.exception("%s: %s", exc.kind, exc.message, exc_info=exc)
    return JSONResponse(status_code=status, content={"kind": exc.kind, "message": exc.message})


app.include_router(api_router)


@app.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok"}
