"""
Content-Addressed Artifact Cache.

Turns an AudioRequest into a persisted audio file exactly once:

    get_or_create(request)
        1. validate the request (no subprocess on failure)
        2. fp = fingerprint(text, voice, speed)
        3. fast path, no lock: memo entry re-validated by stat, else stat of
           <artifact_dir>/<fp>.<ext>; a regular nonzero file is a hit
        4. miss: single flight per fp through InflightTable; the leader
           re-checks the filesystem, then generates
        5. generation: synthesize to <fp>.<token>.wav, transcode to
           <fp>.<token>.part.<ext>, os.replace() onto <fp>.<ext>
        6. the intermediate and staging files are unlinked on every exit path

File Organization:
    {artifact_dir}/
        5a2b...e1.mp3                      artifact (public)
        5a2b...e1.<token>.wav              intermediate, only while generating
        5a2b...e1.<token>.part.mp3         staging output, only while generating

    The final name only ever appears through an atomic rename, so a reader
    that sees <fp>.<ext> sees a complete file. The per-attempt token keeps
    debris from a crashed process from being mistaken for live output.

The filesystem is authoritative. The memo (MetadataMemo) only saves the
duration probe on repeat hits.

See Also:
    - inflight.py: per-fingerprint single flight
    - sweeper.py: retention
"""
from __future__ import annotations

import os
import re
import stat
import time
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

from tts_cache.core.config import Defaults
from tts_cache.core.logging import debug, fail, get_logger, info, success, warn
from tts_cache.core.metrics import metrics
from tts_cache.pipeline.errors import (
    ErrorCode,
    GenerationFailed,
    RunnerError,
    StorageError,
    ValidationError,
)
from tts_cache.pipeline.fingerprint import fingerprint
from tts_cache.pipeline.inflight import InflightTable
from tts_cache.pipeline.memo import MetadataMemo
from tts_cache.pipeline.models import (
    OUTPUT_MODES,
    ArtifactMetadata,
    AudioRequest,
    RequestLimits,
    SweepFileError,
    SweepResult,
)
from tts_cache.pipeline.synthesis import EspeakSynthesizer
from tts_cache.pipeline.transcode import FfmpegTranscoder
from tts_cache.pipeline.validators import validate_request
from tts_cache.utils.timeit import timeit

_LOG = get_logger("tts-cache.artifacts")

# <fp>.<token>.wav or <fp>.<token>.part.<ext>
_DEBRIS_RE = re.compile(r"^[0-9a-f]{64}\.[0-9a-f]{12}\.(wav|part\.[a-z0-9]+)$")


class ArtifactCache:
    """
    Generation-and-cache pipeline over one flat artifact directory.

    Thread Safety:
        get_or_create() may be called from any number of threads. Lookups
        take no lock; generation is serialized per fingerprint only.

    Example:
        cache = ArtifactCache("./artifacts", EspeakSynthesizer(), FfmpegTranscoder())
        meta = cache.get_or_create(AudioRequest("Hello world", "en", 175))
        print(meta.url, meta.byte_size, meta.duration_seconds)
    """

    def __init__(
        self,
        artifact_dir: Union[str, Path],
        synthesizer: EspeakSynthesizer,
        transcoder: FfmpegTranscoder,
        extension: str = Defaults.STORAGE_EXTENSION,
        public_prefix: str = Defaults.STORAGE_PUBLIC_PREFIX,
        memo: Optional[MetadataMemo] = None,
        limits: Optional[RequestLimits] = None,
        inflight: Optional[InflightTable] = None,
    ):
        self.artifact_dir = Path(artifact_dir).resolve()
        self.synthesizer = synthesizer
        self.transcoder = transcoder
        self.extension = extension.lstrip(".")
        self.public_prefix = "/" + public_prefix.strip("/")
        self.memo = memo
        self.limits = limits or RequestLimits()
        self._inflight = inflight or InflightTable()

        try:
            self.artifact_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"cannot create artifact directory: {e}", str(self.artifact_dir)) from e

    # ─────────────────────────────────────────────────────────────────────────
    # Addressing
    # ─────────────────────────────────────────────────────────────────────────

    def path_for(self, fp: str) -> Path:
        return self.artifact_dir / f"{fp}.{self.extension}"

    def url_for(self, fp: str) -> str:
        """Public URL for fp. Pure mapping, never generates."""
        return f"{self.public_prefix.rstrip('/')}/{fp}.{self.extension}"

    # ─────────────────────────────────────────────────────────────────────────
    # Lookup
    # ─────────────────────────────────────────────────────────────────────────

    def lookup(self, fp: str) -> Optional[ArtifactMetadata]:
        """
        Return metadata for an existing artifact, or None.

        Never generates. Checks the memo first (re-validated against the
        filesystem), then the filesystem.

        Raises:
            StorageError: stat failed for a reason other than absence.
        """
        with timeit("lookup") as t:
            meta = self._memo_lookup(fp)
            if meta is None:
                meta = self._disk_lookup(fp)
        if meta is None:
            metrics.record_lookup("miss")
            return None
        metrics.record_lookup("hit", tier=meta.cache_status)
        info(_LOG, "hit", fp=fp[:8], cache=meta.cache_status, seconds=round(t.seconds, 4))
        return meta

    def _stat(self, path: Path) -> Optional[os.stat_result]:
        try:
            st = path.stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"cannot stat artifact: {e}", str(path)) from e
        if not stat.S_ISREG(st.st_mode) or st.st_size <= 0:
            return None
        return st

    def _memo_lookup(self, fp: str) -> Optional[ArtifactMetadata]:
        if self.memo is None:
            return None
        meta = self.memo.get(fp)
        if meta is None:
            return None
        st = self._stat(meta.path)
        if st is None or st.st_size != meta.byte_size or st.st_mtime != meta.mtime:
            self.memo.drop_stale(fp)
            return None
        return replace(meta, cache_status="mem")

    def _disk_lookup(self, fp: str) -> Optional[ArtifactMetadata]:
        path = self.path_for(fp)
        st = self._stat(path)
        if st is None:
            return None
        return self._remember(self._build_meta(fp, path, st, "disk"))

    def _build_meta(self, fp: str, path: Path, st: os.stat_result, cache_status: str) -> ArtifactMetadata:
        return ArtifactMetadata(
            fingerprint=fp,
            path=path,
            byte_size=st.st_size,
            mtime=st.st_mtime,
            duration_seconds=self.transcoder.get_duration(path),
            extension=self.extension,
            cache_status=cache_status,  # type: ignore[arg-type]
            url=self.url_for(fp),
        )

    def _remember(self, meta: ArtifactMetadata) -> ArtifactMetadata:
        if self.memo is not None:
            self.memo.set(meta.fingerprint, meta)
        return meta

    # ─────────────────────────────────────────────────────────────────────────
    # Get or create
    # ─────────────────────────────────────────────────────────────────────────

    def get_or_create(self, request: AudioRequest, output_mode: str = "url") -> ArtifactMetadata:
        """
        Return metadata for request's artifact, generating it on a miss.

        output_mode is checked here but resolved by the caller: "url" uses
        ``meta.url``, "inline" uses ``meta.to_base64()``.

        Raises:
            ValidationError: Bad request or output mode. Nothing was run.
            GenerationFailed: Synthesis or transcoding failed; code follows the cause.
            StorageError: The artifact directory could not be read or written.
        """
        validate_request(request, self.limits)
        if output_mode not in OUTPUT_MODES:
            raise ValidationError(
                f"output mode must be one of {', '.join(OUTPUT_MODES)}",
                ErrorCode.INVALID_INPUT,
                field="mode",
            )

        fp = fingerprint(request.text, request.voice, request.speed)
        meta = self.lookup(fp)
        if meta is not None:
            return meta

        meta, leader = self._inflight.run(fp, lambda: self._generate_once(fp, request))
        if not leader:
            debug(_LOG, "joined", fp=fp[:8])
        return meta

    def _generate_once(self, fp: str, request: AudioRequest) -> ArtifactMetadata:
        # A previous leader may have finished between our lookup and taking the flight.
        meta = self._disk_lookup(fp)
        if meta is not None:
            return meta
        return self._generate(fp, request)

    def _generate(self, fp: str, request: AudioRequest) -> ArtifactMetadata:
        token = uuid.uuid4().hex[:12]
        wav_path = self.artifact_dir / f"{fp}.{token}.wav"
        part_path = self.artifact_dir / f"{fp}.{token}.part.{self.extension}"
        final_path = self.path_for(fp)

        metrics.inflight_inc()
        try:
            with timeit("generate") as t:
                try:
                    self.synthesizer.synthesize(request.text, request.voice, request.speed, wav_path)
                    self.transcoder.transcode(wav_path, part_path)
                except RunnerError as e:
                    metrics.record_generation(e.code)
                    fail(_LOG, "generation_failed", fp=fp[:8], code=e.code, error=e.message)
                    raise GenerationFailed(fp, e) from e

                try:
                    os.replace(part_path, final_path)
                except OSError as e:
                    metrics.record_generation(ErrorCode.STORAGE_ERROR)
                    fail(_LOG, "publish_rename_failed", fp=fp[:8], error=str(e))
                    raise StorageError(f"cannot move artifact into place: {e}", str(final_path)) from e
        finally:
            self._unlink_quietly(wav_path)
            self._unlink_quietly(part_path)
            metrics.inflight_dec()

        st = self._stat(final_path)
        if st is None:
            # Removed between rename and stat, e.g. by a sweep with max_age=0.
            raise StorageError("artifact vanished after generation", str(final_path))

        meta = self._remember(self._build_meta(fp, final_path, st, "miss"))
        metrics.record_generation("success", meta.byte_size)
        success(
            _LOG, "generated",
            fp=fp[:8],
            bytes=meta.byte_size,
            duration=round(meta.duration_seconds, 2),
            seconds=round(t.seconds, 3),
        )
        return meta

    @staticmethod
    def _unlink_quietly(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            warn(_LOG, "cleanup_failed", file=path.name, error=str(e))

    # ─────────────────────────────────────────────────────────────────────────
    # Maintenance
    # ─────────────────────────────────────────────────────────────────────────

    def purge_debris(self, max_age: float) -> SweepResult:
        """
        Remove intermediate and staging files older than max_age seconds.

        These only survive a crashed or killed process; a running generation
        removes its own. max_age should exceed the longest possible
        generation so live files are left alone.
        """
        result = SweepResult()
        if not self.artifact_dir.exists():
            return result

        now = time.time()
        for entry in os.scandir(self.artifact_dir):
            if not _DEBRIS_RE.fullmatch(entry.name):
                continue
            try:
                st = entry.stat(follow_symlinks=False)
                if not stat.S_ISREG(st.st_mode) or now - st.st_mtime <= max_age:
                    continue
                os.unlink(entry.path)
                result.removed_count += 1
                result.bytes_freed += st.st_size
            except FileNotFoundError:
                continue
            except OSError as e:
                result.errors.append(SweepFileError(file=entry.name, reason=str(e)))

        if result.removed_count or result.errors:
            info(_LOG, "debris_purged", files_removed=result.removed_count, errors=len(result.errors))
        return result

    def invalidate(self, fp: str) -> bool:
        """Forget memoized metadata for fp. The file itself is untouched."""
        if self.memo is None:
            return False
        return self.memo.delete(fp)

    def on_removed(self, path: Path) -> None:
        """Sweeper callback: drop the memo entry of a deleted artifact."""
        name = Path(path).name
        suffix = f".{self.extension}"
        if name.endswith(suffix):
            self.invalidate(name[: -len(suffix)])

    def stats(self) -> Dict[str, Any]:
        return {
            "artifact_dir": str(self.artifact_dir),
            "extension": self.extension,
            "inflight": len(self._inflight),
            "memo": self.memo.stats() if self.memo is not None else None,
        }
