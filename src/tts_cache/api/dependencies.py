"""
FastAPI Dependency Injection Providers.

Hierarchy:
    1. get_settings() - loads and caches configuration
    2. get_audio_service() - creates/returns the singleton AudioService

Lifecycle:
    startup  -> start_service()  purges crash debris, starts the sweeper
    shutdown -> stop_service()   stops the sweeper thread

Usage in Route Handlers:
    @router.post("/api/tts")
    def tts(req: TTSRequest, service: AudioService = Depends(get_audio_service)):
        ...
"""
from __future__ import annotations

import os
from functools import lru_cache

from tts_cache.core.config import Settings, load_settings
from tts_cache.services.audio_service import AudioService, get_service


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    The path comes from TTS_CACHE_SETTINGS (default config/settings.yaml).
    A missing file means defaults, so the container runs without one.
    """
    return load_settings(os.getenv("TTS_CACHE_SETTINGS", "config/settings.yaml"), missing_ok=True)


def get_audio_service() -> AudioService:
    return get_service(get_settings())


def start_service() -> None:
    get_audio_service().start()


def stop_service() -> None:
    get_audio_service().shutdown()
