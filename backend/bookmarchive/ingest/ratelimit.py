"""Sliding-window request limiter."""

from __future__ import annotations

import threading
import time
from collections import deque
from datetime import timedelta
from typing import Callable

from bookmarchive.core.errors import Cancelled

DEFAULT_MAX_REQUESTS = 150
DEFAULT_WINDOW = timedelta(minutes=5)


class RateLimiter:
    """Admit at most ``max_requests`` within any trailing ``window``.

    Not internally synchronized: the pipeline is the only caller.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window: timedelta = DEFAULT_WINDOW,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 1.0,
    ) -> None:
        self.max_requests = max_requests
        self.window = window.total_seconds()
        self.clock = clock
        self.poll_interval = poll_interval
        self._requests: deque[float] = deque()

    def try_acquire(self) -> bool:
        now = self.clock()
        cutoff = now - self.window
        while self._requests and self._requests[0] <= cutoff:
            self._requests.popleft()
        if len(self._requests) >= self.max_requests:
            return False
        self._requests.append(now)
        return True

    def acquire(self, cancel: threading.Event) -> None:
        """Block until admitted; raise ``Cancelled`` once ``cancel`` is set."""
        if cancel.is_set():
            raise Cancelled("rate limiter wait cancelled")
        while not self.try_acquire():
            if cancel.wait(self.poll_interval):
                raise Cancelled("rate limiter wait cancelled")

    @property
    def in_flight(self) -> int:
        return len(self._requests)


__all__ = ["RateLimiter", "DEFAULT_MAX_REQUESTS", "DEFAULT_WINDOW"]
