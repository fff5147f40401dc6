# -*- coding: utf-8 -*-

# Mongo Guard
# Copyright (C) 2025 Mongo Guard contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Fixed-window rate limiter for high-cost and administrative operations.

Thread-safe per-operation call counters with a background sweep that drops
entries whose window expired long ago.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from loguru import logger

from mongoguard.config import (
    RATE_LIMIT_MAX_CALLS,
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
    RATE_LIMIT_WINDOW_SECONDS,
)


@dataclass
class RateLimitEntry:
    """Call counter for one operation key."""

    count: int
    window_reset_at: float
    evicted: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class RateLimiter:
    """
    Fixed-window call counter keyed by operation name.

    Entries are created lazily on the first call for a key. Calls for the same
    key are serialized by the entry's lock; calls for different keys only share
    a short table lookup. The background sweep takes the same locks before
    removing an entry, and marks it evicted so a checker already holding a
    reference retries against a fresh entry instead of counting into a dead one.

    Attributes:
        max_calls: Calls allowed per window
        window_seconds: Window duration

    Example:
        >>> limiter = RateLimiter(max_calls=2, auto_start=False)
        >>> limiter.check_rate_limit("runAdminCommand")
        True
        >>> limiter.check_rate_limit("runAdminCommand")
        True
        >>> limiter.check_rate_limit("runAdminCommand")
        False
    """

    def __init__(
        self,
        max_calls: int = RATE_LIMIT_MAX_CALLS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        sweep_interval_seconds: Optional[float] = RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        auto_start: bool = True,
    ):
        """
        Initializes the rate limiter.

        Args:
            max_calls: Calls allowed per key per window
            window_seconds: Window duration in seconds
            sweep_interval_seconds: Background sweep period; None or <= 0 disables it
            clock: Time source in seconds (injectable for tests)
            auto_start: Start the background sweep immediately
        """
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}
        self._table_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

        if auto_start:
            self.start()

    def _get_entry(self, key: str) -> RateLimitEntry:
        """Return the entry for key, creating it with a fresh window if needed."""
        with self._table_lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = RateLimitEntry(
                    count=0, window_reset_at=self._clock() + self.window_seconds
                )
                self._entries[key] = entry
            return entry

    def check_rate_limit(self, operation_key: str) -> bool:
        """
        Count one call for operation_key.

        Args:
            operation_key: Logical operation name (e.g. "runAdminCommand")

        Returns:
            True if the call is allowed, False if the window budget is used up
            (a denied call is not counted)
        """
        while True:
            entry = self._get_entry(operation_key)
            with entry.lock:
                if entry.evicted:
                    continue

                now = self._clock()
                if now > entry.window_reset_at:
                    entry.count = 0
                    entry.window_reset_at = now + self.window_seconds

                if entry.count >= self.max_calls:
                    logger.warning(
                        "[RateLimiter] Limit reached for '{}': {} calls per {}s",
                        operation_key,
                        self.max_calls,
                        self.window_seconds,
                    )
                    return False

                entry.count += 1
                return True

    def remaining(self, operation_key: str) -> int:
        """Calls left in the current window for operation_key (does not count a call)."""
        with self._table_lock:
            entry = self._entries.get(operation_key)
        if entry is None:
            return self.max_calls

        with entry.lock:
            if entry.evicted or self._clock() > entry.window_reset_at:
                return self.max_calls
            return max(0, self.max_calls - entry.count)

    def sweep(self) -> int:
        """
        Remove entries whose window ended more than one window ago.

        Returns:
            Number of removed entries
        """
        now = self._clock()
        removed = 0
        with self._table_lock:
            for key, entry in list(self._entries.items()):
                with entry.lock:
                    if now > entry.window_reset_at + self.window_seconds:
                        entry.evicted = True
                        del self._entries[key]
                        removed += 1

        if removed:
            logger.debug("[RateLimiter] Swept {} expired entries", removed)
        return removed

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self._sweep_interval):
            self.sweep()

    def start(self) -> None:
        """Start the background sweep thread (no-op if disabled or running)."""
        if not self._sweep_interval or self._sweep_interval <= 0:
            return
        if self._sweeper is not None and self._sweeper.is_alive():
            return

        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="rate-limiter-sweep", daemon=True
        )
        self._sweeper.start()

    def stop(self) -> None:
        """Stop the background sweep thread and wait for it to exit."""
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def __enter__(self) -> "RateLimiter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    @property
    def size(self) -> int:
        """Number of tracked operation keys."""
        with self._table_lock:
            return len(self._entries)

    @property
    def is_running(self) -> bool:
        """Whether the background sweep thread is alive."""
        return self._sweeper is not None and self._sweeper.is_alive()
