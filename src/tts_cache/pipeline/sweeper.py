"""
Retention Sweeper for the Artifact Directory.

Removes artifacts whose age (now - mtime) exceeds the retention window.

Rules:
    - Only regular files directly inside the artifact directory are
      considered; subdirectories and symlinks are ignored.
    - A file is removed when age > max_age AND age > grace_seconds. The grace
      period protects files written moments ago, whatever max_age a caller
      passes.
    - A failure on one file is recorded as {file, reason} and the sweep
      continues.
    - A missing directory yields an empty result.

Scheduling:
    sweep()        blocking, on demand (CLI, POST /admin/sweep)
    maybe_sweep()  non-blocking, at most once per interval, background thread
    start()/stop() periodic daemon thread for the server process

Deleting a file that a concurrent reader is still streaming is an accepted
race; the open file handle keeps working on POSIX.

Usage:
    sweeper = RetentionSweeper("./artifacts", max_age_seconds=86400)
    result = sweeper.sweep()
    print(result.removed_count, result.errors)
"""
from __future__ import annotations

import os
import stat
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from tts_cache.core.config import Defaults
from tts_cache.core.logging import get_logger, info, verbose, warn
from tts_cache.core.metrics import metrics
from tts_cache.pipeline.models import SweepFileError, SweepResult

_LOG = get_logger("tts-cache.sweeper")


class RetentionSweeper:
    """
    Age-based cleanup of the artifact directory.

    Thread-safe: sweeps may run concurrently with each other and with
    artifact generation.
    """

    def __init__(
        self,
        artifact_dir: Union[str, Path],
        max_age_seconds: int = Defaults.RETENTION_MAX_AGE_SECONDS,
        grace_seconds: int = Defaults.RETENTION_GRACE_SECONDS,
        interval_seconds: int = Defaults.RETENTION_INTERVAL_SECONDS,
        on_removed: Optional[Callable[[Path], None]] = None,
    ):
        """
        Args:
            artifact_dir: Directory to sweep.
            max_age_seconds: Default retention window.
            grace_seconds: Files younger than this are never removed.
            interval_seconds: Minimum time between scheduled sweeps.
            on_removed: Called with the path of every removed file.
        """
        self._dir = Path(artifact_dir)
        self._max_age = max_age_seconds
        self._grace = grace_seconds
        self._interval = interval_seconds
        self._on_removed = on_removed

        self._lock = threading.Lock()
        self._last_sweep = 0.0
        self._sweep_running = False

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._stats_lock = threading.Lock()
        self._total_removed = 0
        self._total_bytes_freed = 0
        self._total_errors = 0
        self._sweeps = 0

    @property
    def max_age_seconds(self) -> int:
        return self._max_age

    @property
    def grace_seconds(self) -> int:
        return self._grace

    def sweep(self, max_age: Optional[float] = None) -> SweepResult:
        """
        Remove every regular file older than max_age (default: configured window).

        Returns:
            SweepResult with removed_count, bytes_freed and per-file errors.
        """
        max_age = self._max_age if max_age is None else max_age
        result = SweepResult()

        try:
            entries = list(os.scandir(self._dir))
        except FileNotFoundError:
            return result
        except OSError as e:
            warn(_LOG, "sweep_list_failed", dir=str(self._dir), error=str(e))
            result.errors.append(SweepFileError(file=str(self._dir), reason=str(e)))
            return result

        now = time.time()
        for entry in entries:
            try:
                st = entry.stat(follow_symlinks=False)
                if not stat.S_ISREG(st.st_mode):
                    continue
                age = now - st.st_mtime
                if age <= max_age or age <= self._grace:
                    continue
                os.unlink(entry.path)
            except FileNotFoundError:
                # Removed by someone else since the listing.
                continue
            except OSError as e:
                result.errors.append(SweepFileError(file=entry.name, reason=str(e)))
                verbose(_LOG, "sweep_file_error", file=entry.name, error=str(e))
                continue

            result.removed_count += 1
            result.bytes_freed += st.st_size
            if self._on_removed is not None:
                self._on_removed(Path(entry.path))

        with self._stats_lock:
            self._sweeps += 1
            self._total_removed += result.removed_count
            self._total_bytes_freed += result.bytes_freed
            self._total_errors += len(result.errors)
        metrics.inc_swept(result.removed_count)

        if result.removed_count or result.errors:
            info(
                _LOG, "sweep",
                files_removed=result.removed_count,
                bytes_freed=result.bytes_freed,
                errors=len(result.errors),
            )
        return result

    def maybe_sweep(self) -> bool:
        """
        Start a background sweep if the interval has elapsed.

        Returns:
            True if a sweep was started.
        """
        now = time.time()
        with self._lock:
            if now - self._last_sweep < self._interval or self._sweep_running:
                return False
            self._sweep_running = True
            self._last_sweep = now

        threading.Thread(target=self._sweep_in_background, daemon=True, name="artifact-sweep").start()
        return True

    def _sweep_in_background(self) -> None:
        try:
            self.sweep()
        finally:
            with self._lock:
                self._sweep_running = False

    def start(self) -> None:
        """Start the periodic sweep thread (idempotent)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="artifact-sweeper")
        self._thread.start()
        info(_LOG, "sweeper_started", max_age=self._max_age, interval=self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        self._thread = None

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.maybe_sweep()
            self._stop.wait(self._interval)

    def get_stats(self) -> Dict[str, int]:
        with self._stats_lock:
            return {
                "sweeps": self._sweeps,
                "total_files_removed": self._total_removed,
                "total_bytes_freed": self._total_bytes_freed,
                "total_errors": self._total_errors,
            }

    def get_storage_info(self) -> Dict[str, Any]:
        """
        Current usage of the artifact directory.

        Returns:
            Dict with file_count, total_bytes, oldest_file_age
        """
        file_count = 0
        total_bytes = 0
        oldest_mtime = time.time()

        try:
            entries = list(os.scandir(self._dir))
        except OSError:
            entries = []

        for entry in entries:
            try:
                st = entry.stat(follow_symlinks=False)
            except OSError:
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            file_count += 1
            total_bytes += st.st_size
            oldest_mtime = min(oldest_mtime, st.st_mtime)

        return {
            "file_count": file_count,
            "total_bytes": total_bytes,
            "oldest_file_age": int(time.time() - oldest_mtime) if file_count else 0,
        }
