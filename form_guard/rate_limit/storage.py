"""
Window Storage
==============
Key-value contract for persisting window state, plus the in-process backend.
"""

import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Callable, Optional, Tuple

import structlog

from ..exceptions import StorageUnavailable
from .codec import decode_state, encode_state
from .models import WindowState

logger = structlog.get_logger(__name__)


class WindowStorage(ABC):
    """
    Storage for window states with atomic compare-and-swap per key.

    Implementations raise ``StorageUnavailable`` for transient backend errors.
    """

    name = "abstract"

    @abstractmethod
    async def load(self, key: str) -> Optional[WindowState]:
        """Return the stored state for ``key`` or None if absent or expired."""
        pass

    @abstractmethod
    async def compare_and_swap(
        self,
        key: str,
        expected: Optional[WindowState],
        new_state: WindowState,
        ttl: float,
    ) -> bool:
        """
        Store ``new_state`` only if the current value still equals ``expected``.

        Args:
            key: Limiter key
            expected: State previously loaded (None means "absent")
            new_state: State to write
            ttl: Seconds until the entry may be evicted

        Returns:
            True if written, False on conflict
        """
        pass


class InMemoryWindowStorage(WindowStorage):
    """
    Process-local storage with TTL expiry and a bounded entry count.

    Thread-safe; suitable for single-instance deployments and tests.
    Use RedisWindowStorage when several workers share limits.

    When full, expired entries are purged first, then the least recently
    used entry idle for at least half its TTL (one interval) is evicted.
    Entries with a live window are never dropped: if nothing is evictable
    the write of a new key fails with ``StorageUnavailable``.
    """

    name = "memory"
    DEFAULT_MAX_ENTRIES = 10000

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        time_func: Callable[[], float] = time.time,
    ):
        """
        Args:
            max_entries: Maximum keys kept at once
            time_func: Time source for TTL bookkeeping
        """
        self._max_entries = max_entries
        self._time = time_func
        # key -> (encoded state, expires_at, evictable_at)
        self._store: "OrderedDict[str, Tuple[str, float, float]]" = OrderedDict()
        self._lock = threading.Lock()
        self.writes = 0

    def __len__(self) -> int:
        return len(self._store)

    def _get_raw(self, key: str) -> Optional[str]:
        entry = self._store.get(key)
        if entry is None:
            return None
        raw, expires_at, _ = entry
        if expires_at <= self._time():
            del self._store[key]
            return None
        self._store.move_to_end(key)
        return raw

    def _make_room(self, key: str) -> None:
        now = self._time()
        expired = [k for k, (_, expires_at, _) in self._store.items() if expires_at <= now]
        for expired_key in expired:
            del self._store[expired_key]
        if len(self._store) < self._max_entries:
            return

        for candidate, (_, _, evictable_at) in self._store.items():
            if evictable_at <= now:
                del self._store[candidate]
                logger.debug("window_state_evicted", key=candidate)
                return

        logger.warning("window_storage_full", key=key, max_entries=self._max_entries)
        raise StorageUnavailable(
            f"all {self._max_entries} entries hold live windows",
            backend=self.name,
        )

    async def load(self, key: str) -> Optional[WindowState]:
        with self._lock:
            raw = self._get_raw(key)
        return decode_state(raw)

    async def compare_and_swap(
        self,
        key: str,
        expected: Optional[WindowState],
        new_state: WindowState,
        ttl: float,
    ) -> bool:
        encoded = encode_state(new_state)
        with self._lock:
            if decode_state(self._get_raw(key)) != expected:
                return False
            if key not in self._store and len(self._store) >= self._max_entries:
                self._make_room(key)
            now = self._time()
            self._store[key] = (encoded, now + ttl, now + ttl / 2)
            self._store.move_to_end(key)
            self.writes += 1
        return True

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
