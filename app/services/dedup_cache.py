# app/services/dedup_cache.py
"""
Short-window, process-local cache that suppresses bursts of identical
automatic alerts before they reach a transport.

Entries map a dedupe key to the millisecond timestamp it was inserted at.
An entry younger than the window counts as a duplicate; entries older than
the window are swept on every insertion. Nothing is persisted: a restart
forgets everything, which at worst lets a few duplicate alerts through.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 5000


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class DedupCache:

    def __init__(self, window_ms: int = DEFAULT_WINDOW_MS, clock: Optional[Callable[[], int]] = None):
        self.window_ms = window_ms
        self._clock = clock or _epoch_millis
        self._entries: Dict[str, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.seen(key)

    def seen(self, key: str) -> bool:
        """True if key was inserted less than window_ms ago."""
        with self._lock:
            return self._is_fresh(key, self._clock())

    def mark(self, key: str) -> None:
        """Insert or refresh key, then sweep expired entries."""
        with self._lock:
            now = self._clock()
            self._entries[key] = now
            self._sweep(now)

    def check_and_mark(self, key: str) -> bool:
        """
        Atomic check-then-insert.

        Returns False when key is already fresh in the cache (caller should
        suppress), True when the key was inserted and the caller may proceed.
        """
        with self._lock:
            now = self._clock()
            if self._is_fresh(key, now):
                return False
            self._entries[key] = now
            self._sweep(now)
            return True

    def sweep(self) -> int:
        with self._lock:
            return self._sweep(self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------
    def _is_fresh(self, key: str, now: int) -> bool:
        inserted_at = self._entries.get(key)
        return inserted_at is not None and (now - inserted_at) < self.window_ms

    def _sweep(self, now: int) -> int:
        expired = [key for key, inserted_at in self._entries.items() if now - inserted_at > self.window_ms]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired dedup entries", len(expired))
        return len(expired)
