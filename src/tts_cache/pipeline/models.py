"""
Data Model for the Artifact Pipeline.

    AudioRequest      - immutable (text, voice, speed) triple
    RequestLimits     - bounds applied to every AudioRequest
    ArtifactMetadata  - what a caller gets back for a persisted artifact
    SweepResult       - outcome of one retention sweep
"""
from __future__ import annotations

import base64
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal

from tts_cache.core.config import Defaults, LimitsConfig

OutputMode = Literal["url", "inline"]
OUTPUT_MODES = ("url", "inline")

CacheStatus = Literal["mem", "disk", "miss"]


@dataclass(frozen=True)
class AudioRequest:
    """One synthesis request. Text is kept exactly as sent."""
    text: str
    voice: str = Defaults.SYNTH_DEFAULT_VOICE
    speed: int = Defaults.SYNTH_DEFAULT_SPEED


@dataclass(frozen=True)
class RequestLimits:
    max_text_len: int = Defaults.LIMITS_MAX_TEXT_LEN
    min_speed: int = Defaults.LIMITS_MIN_SPEED
    max_speed: int = Defaults.LIMITS_MAX_SPEED
    max_voice_len: int = Defaults.LIMITS_MAX_VOICE_LEN

    @classmethod
    def from_config(cls, cfg: LimitsConfig) -> "RequestLimits":
        return cls(
            max_text_len=cfg.max_text_len,
            min_speed=cfg.min_speed,
            max_speed=cfg.max_speed,
            max_voice_len=cfg.max_voice_len,
        )


@dataclass(frozen=True)
class ArtifactMetadata:
    """
    A persisted artifact as seen by callers.

    Attributes:
        fingerprint: Cache key and filename stem.
        path: Absolute on-disk path of ``<fingerprint>.<extension>``.
        byte_size: File size in bytes.
        mtime: Modification time (epoch seconds) at lookup.
        duration_seconds: Best-effort duration, 0.0 if unknown.
        extension: File extension without the dot.
        cache_status: "mem" or "disk" for hits, "miss" if this call generated it.
        url: Public locator for static serving.
    """
    fingerprint: str
    path: Path
    byte_size: int
    mtime: float
    duration_seconds: float
    extension: str
    cache_status: CacheStatus
    url: str

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def to_base64(self) -> str:
        """Artifact bytes for inline embedding."""
        return base64.b64encode(self.read_bytes()).decode("ascii")

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["path"] = str(self.path)
        return d


@dataclass(frozen=True)
class SweepFileError:
    file: str
    reason: str


@dataclass
class SweepResult:
    removed_count: int = 0
    bytes_freed: int = 0
    errors: List[SweepFileError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "removed_count": self.removed_count,
            "bytes_freed": self.bytes_freed,
            "errors": [asdict(e) for e in self.errors],
        }
