"""Explicit time-bounded cache for lookup data shared between reads."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class ExpiringValue[T]:
    """Holds one value for at most ``ttl_seconds``.

    The cache is owned by whoever constructs it and is passed to readers by
    reference; there is no module-level state. A ``ttl_seconds`` of zero
    disables caching.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be non-negative")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._value: T | None = None
        self._stored_at: float | None = None

    def peek(self) -> T | None:
        """Return the cached value, or ``None`` if absent or expired."""

        with self._lock:
            if self._stored_at is None:
                return None
            if self._clock() - self._stored_at >= self.ttl_seconds:
                self._value = None
                self._stored_at = None
                return None
            return self._value

    def put(self, value: T) -> None:
        with self._lock:
            self._value = value
            self._stored_at = self._clock()

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._stored_at = None
