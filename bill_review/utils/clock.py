"""
Clock Abstraction Module.

Services never call time functions directly; they receive a Clock so
that budgets, case timestamps and session expiry can be driven
deterministically in tests.

Classes:
    Clock: Abstract base (monotonic milliseconds + wall-clock UTC time)
    SystemClock: Real clock backed by time.monotonic and datetime.now
    ManualClock: Test clock that only moves when advanced
"""

import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):
    """Source of monotonic elapsed time and wall-clock timestamps."""

    @abstractmethod
    def monotonic_ms(self) -> float:
        """Milliseconds from an arbitrary, never-decreasing origin."""
        pass

    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware UTC datetime."""
        pass


class SystemClock(Clock):
    """
    Real clock.

    monotonic_ms is unaffected by system clock changes; now() follows
    the system wall clock.
    """

    def monotonic_ms(self) -> float:
        return time.monotonic() * 1000.0

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock(Clock):
    """
    Deterministic clock for tests.

    Both the monotonic counter and the wall-clock time move together
    when advance() is called.

    Example:
        >>> clock = ManualClock()
        >>> clock.advance(ms=20)
        >>> clock.monotonic_ms()
        20.0
    """

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._lock = threading.Lock()
        self._elapsed_ms = 0.0
        self._start = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def advance(self, ms: float = 0.0, seconds: float = 0.0, minutes: float = 0.0) -> None:
        """Move the clock forward."""
        delta = ms + seconds * 1000.0 + minutes * 60_000.0
        if delta < 0:
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._elapsed_ms += delta

    def monotonic_ms(self) -> float:
        with self._lock:
            return self._elapsed_ms

    def now(self) -> datetime:
        with self._lock:
            return self._start + timedelta(milliseconds=self._elapsed_ms)


__all__ = ['Clock', 'SystemClock', 'ManualClock']
