"""
tts-cache Services Layer.

Sits between the API/CLI and the pipeline.

Components:
    - audio_service.py: AudioService (request orchestration, health, sweeping)
    - publish.py: Publisher interface and the asset side index
"""
from .audio_service import AudioService, GenerateResult, get_service, reset_service
from .publish import AssetIndex, PublishError, Publisher, publish_artifact

__all__ = [
    "AudioService",
    "GenerateResult",
    "get_service",
    "reset_service",
    "AssetIndex",
    "PublishError",
    "Publisher",
    "publish_artifact",
]
