"""
FastAPI Application Entry Point.

Usage:
    # Run with uvicorn
    uvicorn tts_cache.main:app --host 0.0.0.0 --port 3000

    # Or through the CLI
    tts-cache serve --port 3000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from tts_cache.api.dependencies import get_settings, start_service, stop_service
from tts_cache.api.routes import build_audio_router, router
from tts_cache.core.config import ServiceConfig, Settings
from tts_cache.core.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Purge debris and start the sweeper on startup; stop it on shutdown."""
    start_service()
    try:
        yield
    finally:
        stop_service()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Configures logging, registers the routes (artifacts under the configured
    storage.public_prefix), and ties the retention sweeper to the
    application lifespan.
    """
    configure_logging()
    cfg = ServiceConfig.from_settings(settings or get_settings())

    app = FastAPI(title="tts-cache", lifespan=lifespan)
    app.include_router(router)
    app.include_router(build_audio_router(cfg.storage.public_prefix))

    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
