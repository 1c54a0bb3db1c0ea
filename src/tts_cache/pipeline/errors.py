"""
Error Taxonomy for the Artifact Pipeline.

Every error carries a stable machine-readable ``code`` so the HTTP layer and
the CLI can map it without isinstance chains:

    CacheError
     |- ValidationError          INVALID_INPUT (or a field-specific code)
     |- RunnerError
     |   |- SpawnError           SPAWN_ERROR
     |   |- ExecutionError       EXECUTION_ERROR
     |   |   |- TranscodeOutputError
     |   |- SubprocessTimeoutError  TIMEOUT
     |- GenerationFailed         code of its cause
     |- StorageError             STORAGE_ERROR
     |- ArtifactNotFound         NOT_FOUND
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class ErrorCode:
    """Standard error codes."""
    INVALID_INPUT = "INVALID_INPUT"
    TEXT_REQUIRED = "TEXT_REQUIRED"
    TEXT_TOO_LONG = "TEXT_TOO_LONG"
    INVALID_VOICE = "INVALID_VOICE"
    INVALID_SPEED = "INVALID_SPEED"
    SPAWN_ERROR = "SPAWN_ERROR"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    TIMEOUT = "TIMEOUT"
    GENERATION_FAILED = "GENERATION_FAILED"
    STORAGE_ERROR = "STORAGE_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CacheError(Exception):
    """
    Base error for everything the pipeline raises on purpose.

    Attributes:
        code: Machine-readable error code (see ErrorCode).
        message: Human-readable description.
        details: Optional diagnostic payload (never used for control flow).
    """

    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON error body."""
        result: Dict[str, Any] = {"ok": False, "error": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(CacheError):
    """Malformed or out-of-bound request. Raised before any subprocess runs."""

    code = ErrorCode.INVALID_INPUT

    def __init__(self, message: str, code: str = ErrorCode.INVALID_INPUT, field: Optional[str] = None):
        super().__init__(message, code=code, details={"field": field} if field else None)
        self.field = field


class RunnerError(CacheError):
    """Base for failures of an external tool invocation."""


class SpawnError(RunnerError):
    """The executable is missing, not executable, or could not be started."""

    code = ErrorCode.SPAWN_ERROR

    def __init__(self, executable: str, reason: str):
        super().__init__(
            f"failed to start {executable}: {reason}",
            details={"executable": executable, "reason": reason},
        )
        self.executable = executable
        self.reason = reason


class ExecutionError(RunnerError):
    """The process ran and exited with a nonzero status."""

    code = ErrorCode.EXECUTION_ERROR

    def __init__(self, executable: str, exit_code: int, stderr: str = "", message: Optional[str] = None):
        super().__init__(
            message or f"{executable} exited with status {exit_code}",
            details={"executable": executable, "exit_code": exit_code, "stderr": stderr[-2000:]},
        )
        self.executable = executable
        self.exit_code = exit_code
        self.stderr = stderr


class TranscodeOutputError(ExecutionError):
    """The transcoder exited 0 but left no usable output file."""

    def __init__(self, executable: str, output_path: str, stderr: str = ""):
        super().__init__(
            executable,
            exit_code=0,
            stderr=stderr,
            message=f"{executable} produced no output at {output_path}",
        )
        self.output_path = output_path


class SubprocessTimeoutError(RunnerError):
    """The process exceeded its time budget and was killed."""

    code = ErrorCode.TIMEOUT

    def __init__(self, executable: str, timeout: float, stderr: str = ""):
        super().__init__(
            f"{executable} timed out after {timeout:g}s",
            details={"executable": executable, "timeout": timeout},
        )
        self.executable = executable
        self.timeout = timeout
        self.stderr = stderr


class GenerationFailed(CacheError):
    """
    Synthesis or transcoding failed for one fingerprint.

    The code follows the underlying runner error, so a missing binary is
    still reported as SPAWN_ERROR to the caller.
    """

    def __init__(self, fingerprint: str, cause: CacheError):
        super().__init__(
            f"generation failed for {fingerprint[:12]}: {cause.message}",
            code=getattr(cause, "code", ErrorCode.GENERATION_FAILED),
            details={"fingerprint": fingerprint, **cause.details},
        )
        self.fingerprint = fingerprint
        self.cause = cause


class StorageError(CacheError):
    """A filesystem operation on the artifact directory failed."""

    code = ErrorCode.STORAGE_ERROR

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, details={"path": path} if path else None)
        self.path = path


class ArtifactNotFound(CacheError):
    code = ErrorCode.NOT_FOUND

    def __init__(self, fingerprint: str):
        super().__init__(f"no artifact for {fingerprint}", details={"fingerprint": fingerprint})
        self.fingerprint = fingerprint
