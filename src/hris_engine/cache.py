"""Expiring value cache with explicit invalidation."""

from __future__ import annotations

import threading
import time
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class ExpiringCache(Generic[T]):
    """Holds one lazily loaded value for a fixed time-to-live.

    Callers receive the cache by injection; nothing reads it as module state.
    ``invalidate()`` forces the next ``get()`` to reload.
    """

    def __init__(
        self,
        loader: Callable[[], T],
        ttl_seconds: float,
        timer: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._loader = loader
        self._ttl = ttl_seconds
        self._timer = timer
        self._lock = threading.Lock()
        self._value: T | None = None
        self._loaded_at: float | None = None

    @property
    def is_fresh(self) -> bool:
        return self._loaded_at is not None and self._timer() - self._loaded_at < self._ttl

    def get(self) -> T:
        """Return the cached value, reloading it once stale.

        Blocks while the loader runs; async callers invoke it from a worker
        thread.
        """
        with self._lock:
            if not self.is_fresh:
                self._value = self._loader()
                self._loaded_at = self._timer()
            assert self._value is not None
            return self._value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None
            self._loaded_at = None
