"""
AudioService - the single entry point used by the API and the CLI.

Wires configuration into the pipeline components and adds the request-level
concerns around ArtifactCache: logging, metrics, inline encoding, sweeping,
health reporting and hand-off to a publisher.

Architecture:
    Request → Validate → Fingerprint → Lookup → (miss) Synthesize → Transcode → Persist → Response

Example:
    >>> from tts_cache.core.config import load_settings
    >>> from tts_cache.pipeline import AudioRequest
    >>> from tts_cache.services import AudioService
    >>>
    >>> service = AudioService(load_settings(missing_ok=True))
    >>> result = service.generate(AudioRequest("Hello world"), output_mode="url")
    >>> print(result.meta.url, result.meta.cache_status)
"""
from __future__ import annotations

import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from tts_cache.core.config import ServiceConfig, Settings
from tts_cache.core.logging import error, get_logger, info, success
from tts_cache.core.metrics import metrics
from tts_cache.pipeline.artifacts import ArtifactCache
from tts_cache.pipeline.errors import ArtifactNotFound, CacheError, ErrorCode, StorageError, ValidationError
from tts_cache.pipeline.fingerprint import fingerprint, is_fingerprint
from tts_cache.pipeline.memo import MetadataMemo
from tts_cache.pipeline.models import ArtifactMetadata, AudioRequest, RequestLimits, SweepResult
from tts_cache.pipeline.runner import SubprocessRunner
from tts_cache.pipeline.sweeper import RetentionSweeper
from tts_cache.pipeline.synthesis import EspeakSynthesizer
from tts_cache.pipeline.transcode import FfmpegTranscoder
from tts_cache.pipeline.validators import validate_request
from tts_cache.services.publish import AssetIndex, Publisher, publish_artifact
from tts_cache.utils.timeit import timeit

_LOG = get_logger("tts-cache.service")


@dataclass
class GenerateResult:
    """
    Result of AudioService.generate().

    Attributes:
        meta: Artifact metadata.
        output_mode: "url" or "inline".
        audio_b64: Base64 artifact bytes, set only in inline mode.
        seconds: Total request time.
    """
    meta: ArtifactMetadata
    output_mode: str
    audio_b64: Optional[str] = None
    seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "ok": True,
            "fingerprint": self.meta.fingerprint,
            "duration": round(self.meta.duration_seconds, 3),
            "bytes": self.meta.byte_size,
            "cache": self.meta.cache_status,
            "url": self.meta.url,
        }
        if self.audio_b64 is not None:
            payload["audio_data"] = self.audio_b64
        return payload


class AudioService:
    """
    Audio artifact service.

    Thread Safety:
        generate() is safe to call from FastAPI's thread pool; the cache
        serializes generation per fingerprint and nothing else is shared.
    """

    def __init__(
        self,
        settings: Settings,
        runner: Optional[SubprocessRunner] = None,
        synthesizer: Optional[EspeakSynthesizer] = None,
        transcoder: Optional[FfmpegTranscoder] = None,
    ):
        """
        Args:
            settings: Raw settings; validated here into a ServiceConfig.
            runner: Shared subprocess runner (default: a new SubprocessRunner).
            synthesizer: Override the espeak adapter (tests pass stubs).
            transcoder: Override the ffmpeg adapter (tests pass stubs).

        Raises:
            ConfigValidationError: Invalid settings.
            StorageError: The artifact directory cannot be created.
        """
        self._settings = settings
        self._config = ServiceConfig.from_settings(settings)
        cfg = self._config

        runner = runner or SubprocessRunner()
        self._synthesizer = synthesizer or EspeakSynthesizer(
            runner, binary=cfg.synth.binary, timeout=cfg.synth.timeout_s,
        )
        self._transcoder = transcoder or FfmpegTranscoder(
            runner,
            ffmpeg=cfg.transcode.ffmpeg,
            ffprobe=cfg.transcode.ffprobe,
            codec=cfg.transcode.codec,
            bitrate_kbps=cfg.transcode.bitrate_kbps,
            sample_rate=cfg.transcode.sample_rate,
            channels=cfg.transcode.channels,
            timeout=cfg.transcode.timeout_s,
        )

        self._cache = ArtifactCache(
            cfg.storage.artifact_dir,
            self._synthesizer,
            self._transcoder,
            extension=cfg.storage.extension,
            public_prefix=cfg.storage.public_prefix,
            memo=MetadataMemo(cfg.memo.max_items) if cfg.memo.enabled else None,
            limits=RequestLimits.from_config(cfg.limits),
        )
        self._sweeper = RetentionSweeper(
            self._cache.artifact_dir,
            max_age_seconds=cfg.retention.max_age_seconds,
            grace_seconds=cfg.retention.grace_seconds,
            interval_seconds=cfg.retention.interval_seconds,
            on_removed=self._cache.on_removed,
        )
        self._index = AssetIndex(cfg.publish.index_path) if cfg.publish.index_path else None

        self._text_preview_chars = cfg.logging.text_preview_chars
        # Intermediate files younger than this may belong to a running generation.
        self._debris_age = max(cfg.retention.grace_seconds, cfg.synth.timeout_s + cfg.transcode.timeout_s)

        info(
            _LOG, "service_init",
            artifact_dir=str(self._cache.artifact_dir),
            synth=cfg.synth.binary,
            ffmpeg=cfg.transcode.ffmpeg,
            memo=cfg.memo.enabled,
        )

    @property
    def config(self) -> ServiceConfig:
        return self._config

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def cache(self) -> ArtifactCache:
        return self._cache

    @property
    def sweeper(self) -> RetentionSweeper:
        return self._sweeper

    @property
    def index(self) -> Optional[AssetIndex]:
        return self._index

    def make_request(self, text: str, voice: Optional[str] = None, speed: Optional[int] = None) -> AudioRequest:
        """Build an AudioRequest, filling voice and speed from configuration."""
        return AudioRequest(
            text=text,
            voice=self._config.synth.default_voice if voice is None else voice,
            speed=self._config.synth.default_speed if speed is None else speed,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────────────────────

    def generate(self, request: AudioRequest, output_mode: str = "url") -> GenerateResult:
        """
        Get or create the artifact for request.

        Raises:
            ValidationError, GenerationFailed, StorageError
        """
        preview = request.text[: self._text_preview_chars] if self._text_preview_chars > 0 else ""
        info(
            _LOG, "request",
            chars=len(request.text) if isinstance(request.text, str) else 0,
            voice=request.voice,
            speed=request.speed,
            mode=output_mode,
            text_preview=preview,
        )

        with timeit("request") as t:
            try:
                meta = self._cache.get_or_create(request, output_mode=output_mode)
                audio_b64 = meta.to_base64() if output_mode == "inline" else None
            except CacheError as e:
                metrics.record_request(e.code, t.elapsed, cache_status="none")
                raise
            except OSError as e:
                # Inline read of an artifact that was swept in between.
                metrics.record_request(ErrorCode.STORAGE_ERROR, t.elapsed, cache_status="none")
                raise StorageError(f"cannot read artifact: {e}") from e

        metrics.record_request("success", t.seconds, cache_status=meta.cache_status)
        success(
            _LOG, "done",
            fp=meta.fingerprint[:8],
            cache=meta.cache_status,
            bytes=meta.byte_size,
            seconds=round(t.seconds, 4),
        )
        return GenerateResult(meta=meta, output_mode=output_mode, audio_b64=audio_b64, seconds=t.seconds)

    def fingerprint_for(self, request: AudioRequest) -> str:
        """Validate request and return its fingerprint without generating anything."""
        validate_request(request, self._cache.limits)
        return fingerprint(request.text, request.voice, request.speed)

    def lookup(self, fp: str) -> ArtifactMetadata:
        """
        Metadata of an existing artifact.

        Raises:
            ValidationError: fp is not a fingerprint.
            ArtifactNotFound: No artifact for fp.
        """
        if not is_fingerprint(fp):
            raise ValidationError("Invalid fingerprint", ErrorCode.INVALID_INPUT, field="fingerprint")
        meta = self._cache.lookup(fp)
        if meta is None:
            raise ArtifactNotFound(fp)
        return meta

    def publish(self, fp: str, publisher: Publisher) -> str:
        """
        Hand an existing artifact to publisher and record the asset id.

        Raises:
            ArtifactNotFound, PublishError
        """
        meta = self.lookup(fp)
        return publish_artifact(meta, publisher, self._index)

    # ─────────────────────────────────────────────────────────────────────────
    # Retention
    # ─────────────────────────────────────────────────────────────────────────

    def sweep(self, max_age: Optional[float] = None) -> SweepResult:
        """Purge crash debris, then run a retention sweep."""
        debris = self._cache.purge_debris(self._debris_age)
        result = self._sweeper.sweep(max_age)
        result.removed_count += debris.removed_count
        result.bytes_freed += debris.bytes_freed
        result.errors = debris.errors + result.errors
        return result

    def start(self) -> None:
        """Server startup: purge debris and start the periodic sweeper."""
        self._cache.purge_debris(self._debris_age)
        if self._config.retention.enabled:
            self._sweeper.start()

    def shutdown(self) -> None:
        self._sweeper.stop()

    # ─────────────────────────────────────────────────────────────────────────
    # Health
    # ─────────────────────────────────────────────────────────────────────────

    def get_health_info(self) -> Dict[str, Any]:
        binaries = {
            "espeak": self._which(self._config.synth.binary),
            "ffmpeg": self._which(self._config.transcode.ffmpeg),
            "ffprobe": self._which(self._config.transcode.ffprobe),
        }
        ok = binaries["espeak"] and binaries["ffmpeg"]
        if not ok:
            error(_LOG, "binaries_missing", **{k: v for k, v in binaries.items() if not v})
        return {
            "ok": bool(ok),
            "status": "ok" if ok else "degraded",
            "binaries": binaries,
            "cache": self._cache.stats(),
            "retention": {
                "enabled": self._config.retention.enabled,
                "max_age_seconds": self._sweeper.max_age_seconds,
                "grace_seconds": self._sweeper.grace_seconds,
                **self._sweeper.get_stats(),
            },
            "storage": self._sweeper.get_storage_info(),
        }

    @staticmethod
    def _which(binary: str) -> bool:
        return shutil.which(binary) is not None or Path(binary).is_file()


# =============================================================================
# Global Service Instance
# =============================================================================

_service: Optional[AudioService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> AudioService:
    """
    Get or create the global AudioService instance.

    Thread-safe lazy singleton.
    """
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = AudioService(settings)
    return _service


def reset_service() -> None:
    """Stop and drop the global service instance (used by tests)."""
    global _service
    with _service_lock:
        if _service is not None:
            _service.shutdown()
        _service = None
