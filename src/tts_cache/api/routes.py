"""
HTTP Routes.

Endpoints:
    POST /api/tts                   - Get or create audio (inline base64 or URL)
    GET  <prefix>/{fingerprint}.{ext} - Static artifact serving (never generates);
                                      <prefix> is storage.public_prefix, /audio by default
    POST /admin/sweep               - On-demand retention sweep
    GET  /health                    - Binary availability, cache and storage stats
    GET  /metrics                   - Prometheus metrics

Error Handling:
    All errors are JSON:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>",
        "details": {...}
    }

    HTTP status codes are mapped from error codes:
        - INVALID_INPUT and field codes -> 400 Bad Request
        - NOT_FOUND -> 404 Not Found
        - TIMEOUT -> 504 Gateway Timeout
        - SPAWN_ERROR, EXECUTION_ERROR, STORAGE_ERROR -> 500

Every response carries X-Request-Id; the same id appears in the log lines
of the request.

Example Usage:
    >>> import requests
    >>> r = requests.post("http://localhost:3000/api/tts", json={"text": "Hello world"})
    >>> r.json()["audio_data"][:16]
"""
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import FileResponse, JSONResponse

from tts_cache.api.dependencies import get_audio_service
from tts_cache.api.schemas import SweepResponse, TTSRequest, TTSResponse
from tts_cache.core.logging import error, get_logger, set_request_id
from tts_cache.core.metrics import metrics
from tts_cache.pipeline.errors import ArtifactNotFound, CacheError, ErrorCode
from tts_cache.pipeline.fingerprint import is_fingerprint
from tts_cache.services.audio_service import AudioService

router = APIRouter()

_LOG = get_logger("tts-cache.api")

_STATUS_MAP = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.TEXT_REQUIRED: 400,
    ErrorCode.TEXT_TOO_LONG: 400,
    ErrorCode.INVALID_VOICE: 400,
    ErrorCode.INVALID_SPEED: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.TIMEOUT: 504,
}

_MEDIA_TYPES = {
    "mp3": "audio/mpeg",
    "ogg": "audio/ogg",
    "opus": "audio/ogg",
    "m4a": "audio/mp4",
    "wav": "audio/wav",
}


def _new_request_id() -> str:
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)
    return rid


def _error_response(e: CacheError, rid: str) -> JSONResponse:
    return JSONResponse(
        status_code=_STATUS_MAP.get(e.code, 500),
        content=e.to_dict(),
        headers={"X-Request-Id": rid},
    )


def _internal_error(rid: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
            "request_id": rid,
        },
        headers={"X-Request-Id": rid},
    )


@router.post("/api/tts", response_model=TTSResponse, response_model_exclude_none=True)
def tts(req: TTSRequest, service: AudioService = Depends(get_audio_service)):
    """
    Get or create the audio artifact for (text, voice, speed).

    Example:
        curl -X POST http://localhost:3000/api/tts \\
            -H "Content-Type: application/json" \\
            -d '{"text": "Hello world", "voice": "en", "speed": 175, "mode": "url"}'
    """
    rid = _new_request_id()
    try:
        request = service.make_request(req.text, req.voice, req.speed)
        result = service.generate(request, output_mode=req.mode)
    except CacheError as e:
        return _error_response(e, rid)
    except Exception as e:
        error(_LOG, "unhandled", error=repr(e))
        return _internal_error(rid)

    return JSONResponse(content=result.to_dict(), headers={"X-Request-Id": rid})


def audio(fingerprint: str, ext: str, service: AudioService = Depends(get_audio_service)):
    """Serve an existing artifact. 404 if absent or malformed; never generates."""
    rid = _new_request_id()
    if ext != service.cache.extension or not is_fingerprint(fingerprint):
        return _error_response(ArtifactNotFound(fingerprint), rid)
    try:
        meta = service.lookup(fingerprint)
    except CacheError as e:
        return _error_response(e, rid)

    return FileResponse(
        meta.path,
        media_type=_MEDIA_TYPES.get(meta.extension, "application/octet-stream"),
        headers={"X-Request-Id": rid, "Cache-Control": "public, max-age=86400, immutable"},
    )


def build_audio_router(public_prefix: str) -> APIRouter:
    """
    Router serving artifacts under public_prefix.

    The prefix must be the one ArtifactCache.url_for() uses, so every url
    returned by /api/tts resolves on this server.
    """
    audio_router = APIRouter(prefix=public_prefix.rstrip("/"))
    audio_router.add_api_route("/{fingerprint}.{ext}", audio, methods=["GET"])
    return audio_router


@router.post("/admin/sweep", response_model=SweepResponse)
def sweep(
    max_age_seconds: Optional[float] = Query(default=None, ge=0),
    service: AudioService = Depends(get_audio_service),
):
    """Run a retention sweep now. Defaults to the configured window."""
    rid = _new_request_id()
    result = service.sweep(max_age_seconds)
    return JSONResponse(content={"ok": True, **result.to_dict()}, headers={"X-Request-Id": rid})


@router.get("/health")
def health(service: AudioService = Depends(get_audio_service)):
    """
    Health check for load balancers and probes.

    status is "degraded" when espeak or ffmpeg cannot be found; the service
    still answers cache hits in that state.
    """
    return service.get_health_info()


@router.get("/metrics")
def prometheus_metrics():
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
