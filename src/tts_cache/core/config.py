"""
Configuration Management for tts-cache.

Configuration Hierarchy (highest priority first):
    1. Environment variables (TTS_CACHE_ARTIFACT_DIR, TTS_CACHE_ESPEAK_BIN, ...)
    2. YAML config file (config/settings.yaml, or $TTS_CACHE_SETTINGS)
    3. Defaults class values

Example settings.yaml:
    storage:
      artifact_dir: ./artifacts
      extension: mp3
      public_prefix: /audio

    limits:
      max_text_len: 1000
      min_speed: 80
      max_speed: 450

    synth:
      binary: espeak
      timeout_s: 30

    transcode:
      ffmpeg: ffmpeg
      bitrate_kbps: 64

    retention:
      max_age_seconds: 86400

    logging:
      level: 2  # NORMAL
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml


class ConfigValidationError(ValueError):
    """
    Raised when configuration validation fails.

    Also raised when the settings file is not valid YAML.
    """
    pass


class Defaults:
    """
    Centralized default configuration values.

    Sections:
        - Storage: artifact directory and public URL prefix
        - Limits: request validation bounds
        - Synth: speech synthesizer executable
        - Transcode: media transcoder executable and output format
        - Memo: in-memory metadata acceleration layer
        - Retention: sweeper window and schedule
        - Logging: log level and formatting
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Storage
    # ─────────────────────────────────────────────────────────────────────────
    STORAGE_ARTIFACT_DIR = "./artifacts"
    STORAGE_EXTENSION = "mp3"
    STORAGE_PUBLIC_PREFIX = "/audio"

    # ─────────────────────────────────────────────────────────────────────────
    # Request Limits
    # ─────────────────────────────────────────────────────────────────────────
    LIMITS_MAX_TEXT_LEN = 1000
    LIMITS_MIN_SPEED = 80           # eSpeak words-per-minute floor
    LIMITS_MAX_SPEED = 450          # eSpeak words-per-minute ceiling
    LIMITS_MAX_VOICE_LEN = 64

    # ─────────────────────────────────────────────────────────────────────────
    # Synthesizer
    # ─────────────────────────────────────────────────────────────────────────
    SYNTH_BINARY = "espeak"
    SYNTH_TIMEOUT_S = 30.0
    SYNTH_DEFAULT_VOICE = "en"
    SYNTH_DEFAULT_SPEED = 175

    # ─────────────────────────────────────────────────────────────────────────
    # Transcoder
    # ─────────────────────────────────────────────────────────────────────────
    TRANSCODE_FFMPEG = "ffmpeg"
    TRANSCODE_FFPROBE = "ffprobe"
    TRANSCODE_CODEC = "libmp3lame"
    TRANSCODE_BITRATE_KBPS = 64
    TRANSCODE_SAMPLE_RATE = 22050
    TRANSCODE_CHANNELS = 1
    TRANSCODE_TIMEOUT_S = 30.0

    # ─────────────────────────────────────────────────────────────────────────
    # Metadata memo (acceleration only, filesystem stays authoritative)
    # ─────────────────────────────────────────────────────────────────────────
    MEMO_ENABLED = True
    MEMO_MAX_ITEMS = 512

    # ─────────────────────────────────────────────────────────────────────────
    # Retention
    # ─────────────────────────────────────────────────────────────────────────
    RETENTION_ENABLED = True
    RETENTION_MAX_AGE_SECONDS = 86400       # 1 day
    RETENTION_GRACE_SECONDS = 120
    RETENTION_INTERVAL_SECONDS = 3600

    # ─────────────────────────────────────────────────────────────────────────
    # Publish side index
    # ─────────────────────────────────────────────────────────────────────────
    PUBLISH_INDEX_PATH = ""

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 40
    LOGGING_LEVEL = 2


_EXTENSION_RE = re.compile(r"^[a-z0-9]{1,8}$")


@dataclass
class StorageConfig:
    """Where artifacts live and how they are addressed publicly."""
    artifact_dir: str = Defaults.STORAGE_ARTIFACT_DIR
    extension: str = Defaults.STORAGE_EXTENSION
    public_prefix: str = Defaults.STORAGE_PUBLIC_PREFIX


@dataclass
class LimitsConfig:
    """Bounds applied to every AudioRequest before any work is done."""
    max_text_len: int = Defaults.LIMITS_MAX_TEXT_LEN
    min_speed: int = Defaults.LIMITS_MIN_SPEED
    max_speed: int = Defaults.LIMITS_MAX_SPEED
    max_voice_len: int = Defaults.LIMITS_MAX_VOICE_LEN


@dataclass
class SynthConfig:
    binary: str = Defaults.SYNTH_BINARY
    timeout_s: float = Defaults.SYNTH_TIMEOUT_S
    default_voice: str = Defaults.SYNTH_DEFAULT_VOICE
    default_speed: int = Defaults.SYNTH_DEFAULT_SPEED


@dataclass
class TranscodeConfig:
    """
    Transcoder configuration.

    bitrate_kbps is also the basis of the size-based duration estimate used
    when ffprobe is unavailable.
    """
    ffmpeg: str = Defaults.TRANSCODE_FFMPEG
    ffprobe: str = Defaults.TRANSCODE_FFPROBE
    codec: str = Defaults.TRANSCODE_CODEC
    bitrate_kbps: int = Defaults.TRANSCODE_BITRATE_KBPS
    sample_rate: int = Defaults.TRANSCODE_SAMPLE_RATE
    channels: int = Defaults.TRANSCODE_CHANNELS
    timeout_s: float = Defaults.TRANSCODE_TIMEOUT_S


@dataclass
class MemoConfig:
    enabled: bool = Defaults.MEMO_ENABLED
    max_items: int = Defaults.MEMO_MAX_ITEMS


@dataclass
class RetentionConfig:
    """
    Retention sweeper configuration.

    Files younger than grace_seconds are never removed, whatever max_age is.
    """
    enabled: bool = Defaults.RETENTION_ENABLED
    max_age_seconds: int = Defaults.RETENTION_MAX_AGE_SECONDS
    grace_seconds: int = Defaults.RETENTION_GRACE_SECONDS
    interval_seconds: int = Defaults.RETENTION_INTERVAL_SECONDS


@dataclass
class PublishConfig:
    index_path: str = Defaults.PUBLISH_INDEX_PATH


@dataclass
class LoggingConfig:
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class ServiceConfig:
    """
    Validated configuration for AudioService.

    Usage:
        settings = load_settings("config/settings.yaml", missing_ok=True)
        config = ServiceConfig.from_settings(settings)
        print(config.storage.artifact_dir)
    """
    storage: StorageConfig = field(default_factory=StorageConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    synth: SynthConfig = field(default_factory=SynthConfig)
    transcode: TranscodeConfig = field(default_factory=TranscodeConfig)
    memo: MemoConfig = field(default_factory=MemoConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ServiceConfig":
        """
        Build a validated ServiceConfig from raw settings.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Storage
        # ─────────────────────────────────────────────────────────────────────
        storage_raw = raw.get("storage", {}) or {}
        storage = StorageConfig(
            artifact_dir=str(storage_raw.get("artifact_dir", Defaults.STORAGE_ARTIFACT_DIR)),
            extension=str(storage_raw.get("extension", Defaults.STORAGE_EXTENSION)).lower().lstrip("."),
            public_prefix="/" + str(storage_raw.get("public_prefix", Defaults.STORAGE_PUBLIC_PREFIX)).strip("/"),
        )
        if not _EXTENSION_RE.fullmatch(storage.extension):
            raise ConfigValidationError(f"storage.extension is not a plain extension: {storage.extension!r}")
        if storage.extension == "wav":
            # The intermediate synthesizer output uses .wav in the same directory.
            raise ConfigValidationError("storage.extension must differ from the intermediate 'wav'")

        # ─────────────────────────────────────────────────────────────────────
        # Limits
        # ─────────────────────────────────────────────────────────────────────
        limits_raw = raw.get("limits", {}) or {}
        limits = LimitsConfig(
            max_text_len=int(limits_raw.get("max_text_len", Defaults.LIMITS_MAX_TEXT_LEN)),
            min_speed=int(limits_raw.get("min_speed", Defaults.LIMITS_MIN_SPEED)),
            max_speed=int(limits_raw.get("max_speed", Defaults.LIMITS_MAX_SPEED)),
            max_voice_len=int(limits_raw.get("max_voice_len", Defaults.LIMITS_MAX_VOICE_LEN)),
        )
        cls._validate_positive("limits.max_text_len", limits.max_text_len)
        cls._validate_positive("limits.min_speed", limits.min_speed)
        cls._validate_positive("limits.max_voice_len", limits.max_voice_len)
        if limits.min_speed > limits.max_speed:
            raise ConfigValidationError(
                f"limits.min_speed ({limits.min_speed}) exceeds limits.max_speed ({limits.max_speed})"
            )

        # ─────────────────────────────────────────────────────────────────────
        # Synthesizer
        # ─────────────────────────────────────────────────────────────────────
        synth_raw = raw.get("synth", {}) or {}
        synth = SynthConfig(
            binary=str(synth_raw.get("binary", Defaults.SYNTH_BINARY)),
            timeout_s=float(synth_raw.get("timeout_s", Defaults.SYNTH_TIMEOUT_S)),
            default_voice=str(synth_raw.get("default_voice", Defaults.SYNTH_DEFAULT_VOICE)),
            default_speed=int(synth_raw.get("default_speed", Defaults.SYNTH_DEFAULT_SPEED)),
        )
        cls._validate_positive("synth.timeout_s", synth.timeout_s)
        cls._validate_range("synth.default_speed", synth.default_speed, limits.min_speed, limits.max_speed)

        # ─────────────────────────────────────────────────────────────────────
        # Transcoder
        # ─────────────────────────────────────────────────────────────────────
        transcode_raw = raw.get("transcode", {}) or {}
        transcode = TranscodeConfig(
            ffmpeg=str(transcode_raw.get("ffmpeg", Defaults.TRANSCODE_FFMPEG)),
            ffprobe=str(transcode_raw.get("ffprobe", Defaults.TRANSCODE_FFPROBE)),
            codec=str(transcode_raw.get("codec", Defaults.TRANSCODE_CODEC)),
            bitrate_kbps=int(transcode_raw.get("bitrate_kbps", Defaults.TRANSCODE_BITRATE_KBPS)),
            sample_rate=int(transcode_raw.get("sample_rate", Defaults.TRANSCODE_SAMPLE_RATE)),
            channels=int(transcode_raw.get("channels", Defaults.TRANSCODE_CHANNELS)),
            timeout_s=float(transcode_raw.get("timeout_s", Defaults.TRANSCODE_TIMEOUT_S)),
        )
        cls._validate_positive("transcode.bitrate_kbps", transcode.bitrate_kbps)
        cls._validate_positive("transcode.sample_rate", transcode.sample_rate)
        cls._validate_range("transcode.channels", transcode.channels, 1, 2)
        cls._validate_positive("transcode.timeout_s", transcode.timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Memo
        # ─────────────────────────────────────────────────────────────────────
        memo_raw = raw.get("memo", {}) or {}
        memo = MemoConfig(
            enabled=bool(memo_raw.get("enabled", Defaults.MEMO_ENABLED)),
            max_items=int(memo_raw.get("max_items", Defaults.MEMO_MAX_ITEMS)),
        )
        cls._validate_positive("memo.max_items", memo.max_items)

        # ─────────────────────────────────────────────────────────────────────
        # Retention
        # ─────────────────────────────────────────────────────────────────────
        retention_raw = raw.get("retention", {}) or {}
        retention = RetentionConfig(
            enabled=bool(retention_raw.get("enabled", Defaults.RETENTION_ENABLED)),
            max_age_seconds=int(retention_raw.get("max_age_seconds", Defaults.RETENTION_MAX_AGE_SECONDS)),
            grace_seconds=int(retention_raw.get("grace_seconds", Defaults.RETENTION_GRACE_SECONDS)),
            interval_seconds=int(retention_raw.get("interval_seconds", Defaults.RETENTION_INTERVAL_SECONDS)),
        )
        cls._validate_positive("retention.max_age_seconds", retention.max_age_seconds)
        cls._validate_non_negative("retention.grace_seconds", retention.grace_seconds)
        cls._validate_positive("retention.interval_seconds", retention.interval_seconds)

        publish_raw = raw.get("publish", {}) or {}
        publish = PublishConfig(
            index_path=str(publish_raw.get("index_path", Defaults.PUBLISH_INDEX_PATH) or ""),
        )

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        log_level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)
        if isinstance(log_level_raw, str):
            level_map = {
                "MINIMAL": 1, "1": 1,
                "NORMAL": 2, "INFO": 2, "2": 2,
                "VERBOSE": 3, "3": 3,
                "DEBUG": 4, "TRACE": 4, "4": 4,
            }
            log_level = level_map.get(log_level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            log_level = int(log_level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=log_level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            storage=storage,
            limits=limits,
            synth=synth,
            transcode=transcode,
            memo=memo,
            retention=retention,
            publish=publish,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable raw settings loaded from YAML.

    Use get_service_config() for the validated, typed view.
    """
    raw: Dict[str, Any]

    @property
    def artifact_dir(self) -> str:
        return str((self.raw.get("storage", {}) or {}).get("artifact_dir", Defaults.STORAGE_ARTIFACT_DIR))

    @property
    def default_voice(self) -> str:
        return str((self.raw.get("synth", {}) or {}).get("default_voice", Defaults.SYNTH_DEFAULT_VOICE))

    @property
    def default_speed(self) -> int:
        return int((self.raw.get("synth", {}) or {}).get("default_speed", Defaults.SYNTH_DEFAULT_SPEED))

    def get_service_config(self) -> ServiceConfig:
        return ServiceConfig.from_settings(self)


# Environment variable -> (section, key)
_ENV_OVERRIDES = {
    "TTS_CACHE_ARTIFACT_DIR": ("storage", "artifact_dir"),
    "TTS_CACHE_ESPEAK_BIN": ("synth", "binary"),
    "TTS_CACHE_FFMPEG_BIN": ("transcode", "ffmpeg"),
    "TTS_CACHE_FFPROBE_BIN": ("transcode", "ffprobe"),
    "TTS_CACHE_RETENTION_SECONDS": ("retention", "max_age_seconds"),
}


def load_settings(path: str = "config/settings.yaml", missing_ok: bool = False) -> Settings:
    """
    Load settings from a YAML file and apply environment overrides.

    Args:
        path: Path to the YAML configuration file.
        missing_ok: Start from an empty config instead of raising when the
            file does not exist.

    Raises:
        FileNotFoundError: If the file is missing and missing_ok is False.
        ConfigValidationError: If the file is not valid YAML or not a mapping.
    """
    p = Path(path)
    raw: Dict[str, Any] = {}
    if p.exists():
        try:
            with p.open("r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"invalid YAML in {p}: {exc}") from exc
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigValidationError(f"settings root must be a mapping: {p}")
        raw = loaded or {}
    elif not missing_ok:
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            section_raw = raw.get(section) or {}
            section_raw[key] = value
            raw[section] = section_raw

    return Settings(raw=raw)
