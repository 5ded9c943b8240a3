"""Injected time and identifier sources.

Every timestamp and id the engine produces comes from one of these, so tests
can freeze time and replay identical ledgers.
"""

from __future__ import annotations

import abc
import itertools
import threading
import uuid
from datetime import datetime, timedelta, timezone


class Clock(abc.ABC):
    """Source of UTC-aware time."""

    @abc.abstractmethod
    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Production clock using the system time, always UTC-aware."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """Test clock. Time only moves when advance() is called."""

    def __init__(self, start: datetime):
        if start.tzinfo is None:
            raise ValueError("FrozenClock requires a timezone-aware datetime")
        self._current = start
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def advance(self, delta: timedelta) -> datetime:
        with self._lock:
            self._current += delta
            return self._current


class IdSource(abc.ABC):
    """Source of globally unique identifiers."""

    @abc.abstractmethod
    def new_id(self) -> str:
        raise NotImplementedError


class UuidIdSource(IdSource):
    def new_id(self) -> str:
        return str(uuid.uuid4())


class SequentialIdSource(IdSource):
    """Deterministic ids: '<prefix>-000001', '<prefix>-000002', ..."""

    def __init__(self, prefix: str = "id"):
        self.prefix = prefix
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def new_id(self) -> str:
        with self._lock:
            n = next(self._counter)
        return f"{self.prefix}-{n:06d}"
