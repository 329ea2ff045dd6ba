"""Rate-limited work queue with per-key single flight.

A key is handed to at most one worker at a time. Adding a key that is being
processed marks it dirty; it goes back on the queue when the worker calls
``done``. Failed keys are re-added with per-key exponential backoff.
"""

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Callable, Dict, Optional

from .config import BACKOFF_BASE_SECONDS, BACKOFF_MAX_SECONDS

logger = logging.getLogger(__name__)


class RateLimitingQueue:
    """Thread-safe queue of resource keys ("namespace/name")."""

    def __init__(
        self,
        base_delay: float = BACKOFF_BASE_SECONDS,
        max_delay: float = BACKOFF_MAX_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._clock = clock
        self._cond = threading.Condition()
        self._queue = deque()
        self._dirty = set()
        self._processing = set()
        self._failures: Dict[str, int] = {}
        self._waiting = []
        self._seq = itertools.count()
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def _add_locked(self, key: str) -> None:
        if key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._cond.notify()

    def add(self, key: str) -> None:
        """Queue a key now."""
        with self._cond:
            if self._shutting_down:
                return
            self._add_locked(key)

    def add_after(self, key: str, delay: float) -> None:
        """Queue a key once the delay has passed."""
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            heapq.heappush(self._waiting, (self._clock() + delay, next(self._seq), key))
            self._cond.notify_all()

    def add_rate_limited(self, key: str) -> float:
        """Requeue a failed key with exponential backoff; returns the delay."""
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        delay = min(self.base_delay * (2 ** failures), self.max_delay)
        self.add_after(key, delay)
        return delay

    def forget(self, key: str) -> None:
        """Reset the backoff for a key after a successful attempt."""
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def _promote_waiting(self) -> Optional[float]:
        """Move due delayed keys onto the queue; return seconds to the next one."""
        now = self._clock()
        while self._waiting and self._waiting[0][0] <= now:
            _, _, key = heapq.heappop(self._waiting)
            self._add_locked(key)
        if self._waiting:
            return self._waiting[0][0] - now
        return None

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        Take the next key, blocking until one is ready.

        Returns None on shutdown or when the timeout expires. The caller
        must call done(key) when finished with it.
        """
        end = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while True:
                next_due = self._promote_waiting()
                if self._queue:
                    key = self._queue.popleft()
                    self._processing.add(key)
                    self._dirty.discard(key)
                    return key
                if self._shutting_down:
                    return None

                wait = next_due
                if end is not None:
                    remaining = end - time.monotonic()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key: str) -> None:
        """Mark a key as finished; re-queue it if it was added meanwhile."""
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()
