"""
Subprocess Runner.

Runs one external executable with a hard timeout and turns the outcome into
either a RunResult or a typed error:

    exit 0            -> RunResult
    exit != 0         -> ExecutionError(exit_code, stderr)
    cannot start      -> SpawnError
    timeout exceeded  -> process group killed, SubprocessTimeoutError

Arguments are always passed as a list with shell=False, so text containing
quotes or shell metacharacters reaches the tool as one literal argument.

stderr is kept only as diagnostic payload on errors and in logs. Nothing in
this package inspects it to decide success or failure.

The runner holds no mutable state and can be shared by any number of
threads; each run() spawns its own process.
"""
from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from tts_cache.core.logging import debug, get_logger, verbose, warn
from tts_cache.core.metrics import metrics
from tts_cache.pipeline.errors import ExecutionError, SpawnError, SubprocessTimeoutError
from tts_cache.utils.timeit import timeit

_LOG = get_logger("tts-cache.runner")

# Only the tail of stderr is kept; tools can be very chatty on failure.
STDERR_LIMIT_BYTES = 8 * 1024

# Upper bound on collecting output after a timeout kill.
REAP_TIMEOUT_S = 5.0

_POSIX = os.name == "posix"


@dataclass(frozen=True)
class RunResult:
    """Outcome of a successful run."""
    returncode: int
    stdout: str
    stderr: str
    seconds: float


def _decode_tail(data: bytes | None, limit: int = STDERR_LIMIT_BYTES) -> str:
    if not data:
        return ""
    return data[-limit:].decode("utf-8", errors="replace")


class SubprocessRunner:
    """
    Spawn external tools and resolve their outcome.

    Example:
        runner = SubprocessRunner()
        result = runner.run("ffprobe", ["-v", "error", "in.mp3"], timeout=10)
        print(result.stdout)
    """

    def run(self, executable: str, args: Sequence[str], timeout: float) -> RunResult:
        """
        Run executable with args and wait at most timeout seconds.

        Raises:
            SpawnError: The executable could not be started.
            ExecutionError: Nonzero exit status.
            SubprocessTimeoutError: The deadline passed; the process was killed.
        """
        argv = [executable, *[str(a) for a in args]]
        tool = Path(executable).name
        debug(_LOG, "spawn", tool=tool, argv=argv, timeout=timeout)

        with timeit(tool) as t:
            try:
                proc = subprocess.Popen(
                    argv,
                    shell=False,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    start_new_session=_POSIX,
                )
            except OSError as e:
                reason = e.strerror or str(e)
                warn(_LOG, "spawn_failed", tool=tool, error=reason)
                raise SpawnError(executable, reason) from e

            try:
                stdout, stderr = proc.communicate(timeout=timeout)
            except subprocess.TimeoutExpired:
                self._kill(proc)
                stderr = self._reap(proc)
                metrics.observe_subprocess(tool, t.elapsed)
                warn(_LOG, "timeout", tool=tool, timeout=timeout, seconds=round(t.elapsed, 3))
                raise SubprocessTimeoutError(executable, timeout, _decode_tail(stderr))

        seconds = t.seconds
        metrics.observe_subprocess(tool, seconds)
        stderr_text = _decode_tail(stderr)

        if proc.returncode != 0:
            warn(_LOG, "exit", tool=tool, returncode=proc.returncode, seconds=round(seconds, 3))
            raise ExecutionError(executable, proc.returncode, stderr_text)

        verbose(_LOG, "exit", tool=tool, returncode=0, seconds=round(seconds, 3))
        return RunResult(
            returncode=proc.returncode,
            stdout=(stdout or b"").decode("utf-8", errors="replace"),
            stderr=stderr_text,
            seconds=seconds,
        )

    @staticmethod
    def _reap(proc: subprocess.Popen) -> bytes:
        """
        Collect whatever stderr the killed child wrote before dying.

        A descendant that left the process group can keep the pipes open, so
        the wait is bounded; past REAP_TIMEOUT_S the stderr is dropped.
        """
        try:
            _, stderr = proc.communicate(timeout=REAP_TIMEOUT_S)
            return stderr or b""
        except subprocess.TimeoutExpired:
            warn(_LOG, "reap_timeout", pid=proc.pid, timeout=REAP_TIMEOUT_S)
            for stream in (proc.stdout, proc.stderr):
                if stream is not None:
                    stream.close()
            proc.wait()
            return b""

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        """Kill the whole process group so helpers spawned by the tool die too."""
        if _POSIX:
            try:
                os.killpg(proc.pid, signal.SIGKILL)
                return
            except (ProcessLookupError, PermissionError):
                pass
        try:
            proc.kill()
        except ProcessLookupError:
            pass
