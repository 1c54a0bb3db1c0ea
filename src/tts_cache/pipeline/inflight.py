"""
Per-Key Single Flight.

InflightTable guarantees that, for one key, at most one caller runs the
work function at a time. Callers that arrive while it runs block until it
finishes and receive the same result object, or the same exception object.

    table = InflightTable()
    result, leader = table.run(fp, lambda: generate(fp))

Lifecycle of an entry:
    inserted by the first caller (the leader) under the table lock,
    removed by the leader when the work finishes (success or failure),
    then the completion event is set and every follower wakes up.

Removing the entry before waking followers means a call that arrives after
a failure starts a fresh attempt instead of inheriting a stale error.

The table lock is only held for dict operations, never while the work runs,
so distinct keys proceed fully in parallel.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

T = TypeVar("T")


@dataclass
class _Flight:
    """One in-flight unit of work and its outcome."""
    done: threading.Event = field(default_factory=threading.Event)
    result: Any = None
    error: Optional[BaseException] = None
    waiters: int = 0


class InflightTable:
    """Process-wide table of in-flight keys."""

    def __init__(self):
        self._lock = threading.Lock()
        self._flights: Dict[str, _Flight] = {}

    def run(self, key: str, fn: Callable[[], T]) -> Tuple[T, bool]:
        """
        Run fn once per concurrent burst of callers for key.

        Returns:
            Tuple of (result, leader). leader is True for the caller that
            actually executed fn.

        Raises:
            Whatever fn raised, re-raised in the leader and in every follower.
        """
        with self._lock:
            flight = self._flights.get(key)
            if flight is not None:
                flight.waiters += 1
                leader = False
            else:
                flight = _Flight()
                self._flights[key] = flight
                leader = True

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.result, False

        try:
            flight.result = fn()
        except BaseException as e:
            flight.error = e
            raise
        finally:
            with self._lock:
                self._flights.pop(key, None)
            flight.done.set()
        return flight.result, True

    def is_inflight(self, key: str) -> bool:
        with self._lock:
            return key in self._flights

    def __len__(self) -> int:
        with self._lock:
            return len(self._flights)

    def snapshot(self) -> Dict[str, int]:
        """Current keys (truncated) mapped to their waiter counts."""
        with self._lock:
            return {k[:12]: f.waiters for k, f in self._flights.items()}
