"""In-process pub/sub hub carrying pipeline progress to observers."""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

DEFAULT_SUBSCRIBER_BUFFER = 50


@dataclass(slots=True)
class ServerEvent:
    type: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}


class EventPublisher(Protocol):
    def publish(self, event: ServerEvent) -> int: ...


class EventBroadcaster:
    """Fan out events to subscriber queues without ever blocking the publisher.

    A full subscriber queue drops the event for that subscriber. Once closed,
    publishing and unsubscribing are no-ops and every open subscription
    receives a ``None`` end-of-stream marker.
    """

    def __init__(self, buffer_size: int = DEFAULT_SUBSCRIBER_BUFFER) -> None:
        self.buffer_size = buffer_size
        self._lock = threading.Lock()
        self._subscribers: set[queue.Queue] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> queue.Queue:
        subscription: queue.Queue = queue.Queue(maxsize=self.buffer_size)
        with self._lock:
            if self._closed:
                _put_end_marker(subscription)
                return subscription
            self._subscribers.add(subscription)
        return subscription

    def unsubscribe(self, subscription: queue.Queue) -> None:
        with self._lock:
            if self._closed:
                return
            self._subscribers.discard(subscription)

    def publish(self, event: ServerEvent) -> int:
        """Deliver ``event`` to every subscriber with room; return delivery count."""
        delivered = 0
        with self._lock:
            if self._closed:
                return 0
            for subscription in self._subscribers:
                try:
                    subscription.put_nowait(event)
                except queue.Full:
                    continue
                delivered += 1
        return delivered

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers, self._subscribers = self._subscribers, set()
        for subscription in subscribers:
            _put_end_marker(subscription)


def _put_end_marker(subscription: queue.Queue) -> None:
    while True:
        try:
            subscription.put_nowait(None)
            return
        except queue.Full:
            try:
                subscription.get_nowait()
            except queue.Empty:
                pass


__all__ = [
    "ServerEvent",
    "EventPublisher",
    "EventBroadcaster",
    "DEFAULT_SUBSCRIBER_BUFFER",
]
