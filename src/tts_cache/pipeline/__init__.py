"""
Content-Addressed Audio Pipeline.

    fingerprint.py  - request -> SHA-256 fingerprint
    runner.py       - external process execution with timeout
    synthesis.py    - espeak adapter (text -> WAV)
    transcode.py    - ffmpeg/ffprobe adapter (WAV -> MP3, duration)
    inflight.py     - per-fingerprint single flight
    memo.py         - in-memory metadata memo
    artifacts.py    - get-or-create cache over the artifact directory
    sweeper.py      - retention sweeper
    errors.py       - error taxonomy
"""
from tts_cache.pipeline.artifacts import ArtifactCache
from tts_cache.pipeline.errors import (
    ArtifactNotFound,
    CacheError,
    ErrorCode,
    ExecutionError,
    GenerationFailed,
    RunnerError,
    SpawnError,
    StorageError,
    SubprocessTimeoutError,
    TranscodeOutputError,
    ValidationError,
)
from tts_cache.pipeline.fingerprint import fingerprint, is_fingerprint
from tts_cache.pipeline.inflight import InflightTable
from tts_cache.pipeline.memo import MetadataMemo
from tts_cache.pipeline.models import ArtifactMetadata, AudioRequest, RequestLimits, SweepResult
from tts_cache.pipeline.runner import RunResult, SubprocessRunner
from tts_cache.pipeline.sweeper import RetentionSweeper
from tts_cache.pipeline.synthesis import EspeakSynthesizer
from tts_cache.pipeline.transcode import FfmpegTranscoder

__all__ = [
    "ArtifactCache",
    "ArtifactMetadata",
    "ArtifactNotFound",
    "AudioRequest",
    "CacheError",
    "ErrorCode",
    "EspeakSynthesizer",
    "ExecutionError",
    "FfmpegTranscoder",
    "GenerationFailed",
    "InflightTable",
    "MetadataMemo",
    "RequestLimits",
    "RetentionSweeper",
    "RunResult",
    "RunnerError",
    "SpawnError",
    "StorageError",
    "SubprocessRunner",
    "SubprocessTimeoutError",
    "SweepResult",
    "TranscodeOutputError",
    "ValidationError",
    "fingerprint",
    "is_fingerprint",
]
