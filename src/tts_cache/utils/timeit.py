"""
Timing Utilities.

Used to time cache lookups, subprocess runs and whole requests for the
log lines and the Prometheus histograms.

Example:
    with timeit("transcode") as t:
        transcoder.transcode(wav, mp3)
    print(f"Took {t.timing.seconds:.3f}s")
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Any, Dict, Optional


@dataclass
class Timing:
    """
    Timing measurement result.

    Attributes:
        name: What was timed (e.g., "espeak", "lookup").
        seconds: Duration in seconds.
        meta: Optional metadata dictionary.
    """
    name: str
    seconds: float
    meta: Optional[Dict[str, Any]] = None


class timeit:
    """
    Context manager for timing code blocks.

    The result is available as ``.timing`` after the block exits, also
    when the block raised. ``.elapsed`` can be read while still inside.
    """

    def __init__(self, name: str, meta: Optional[Dict[str, Any]] = None):
        self.name = name
        self.meta = meta
        self._t0: float | None = None
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.timing = Timing(name=self.name, seconds=self.elapsed, meta=self.meta)

    @property
    def elapsed(self) -> float:
        assert self._t0 is not None
        return perf_counter() - self._t0

    @property
    def seconds(self) -> float:
        """Final duration, or -1.0 if the block has not exited yet."""
        return self.timing.seconds if self.timing else -1.0
