"""
FastAPI application for the Compliance Posture engine.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import get_settings
from .db.base import init_database
from .errors import EngineError
from .logging_config import configure_logging
from .routes import router

# Initialize structured logging
logger = structlog.get_logger()

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    configure_logging(settings.log_level, settings.log_format)
    logger.info("app_starting", app_name=settings.app_name, environment=settings.environment)

    try:
        init_database()
        logger.info("database_initialized")
    except Exception as e:
        logger.error("app_start_failed", error=str(e))
        raise

    yield

    logger.info("app_stopped")


app = FastAPI(
    title=settings.app_name,
    description="Risk scoring, control posture, evidence and policy mapping for compliance programs",
    version=__version__,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Map engine errors to HTTP responses with their structured body."""
    log = logger.bind(path=request.url.path, code=exc.code)
    if exc.status_code >= 500:
        log.error("request_failed", message=exc.message)
    else:
        log.info("request_rejected", message=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Health and Info Endpoints
@app.get("/healthz", tags=["system"])
def healthz() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/version", tags=["system"])
def version() -> dict[str, str]:
    """Return the version of the application."""
    return {"version": __version__}


app.include_router(router)
