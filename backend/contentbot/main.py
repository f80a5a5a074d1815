"""FastAPI application entry point and lifespan management.

Configures CORS, registers API routers, and manages the application
lifespan (logging, database table creation, stale generation cleanup,
shared HTTP client shutdown).
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from contentbot.config import get_settings
from contentbot.database import create_tables
from contentbot.api.v1.router import router as v1_router
from contentbot.schemas.common import HealthResponse


def _setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Suppress noisy third-party HTTP loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Runs on startup: logging, DB tables, orphaned generation cleanup."""
    settings = get_settings()
    _setup_logging(settings.LOG_LEVEL)

    create_tables()
    logging.getLogger(__name__).info("Database tables ready")

    # Fail generations left mid-pipeline by a previous unclean shutdown
    from contentbot.utils.startup import cleanup_stale_generations
    cleanup_stale_generations()

    yield  # Application runs here

    # Graceful shutdown: close shared HTTP clients
    from contentbot.services.http_client_manager import close_all_clients
    await close_all_clients()
    logging.getLogger(__name__).info("Shutting down")


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logging.getLogger(__name__).exception("Unhandled error: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc)},
        )

    # Health check
    @app.get("/health", tags=["Health"], response_model=HealthResponse)
    async def health():
        return HealthResponse(
            status="healthy",
            version=settings.APP_VERSION,
            timestamp=datetime.now(timezone.utc),
        )

    # Mount API routes
    app.include_router(v1_router)

    return app


app = create_app()
