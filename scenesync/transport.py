"""Publish/subscribe seam between the core and whatever carries messages.

The core only needs `publish(topic, message)` and `subscribe(topic, callback)`.
A real deployment plugs in a ROS TCP bridge; `InMemoryTransport` delivers
synchronously in-process and keeps a record of everything published.
"""
from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Mapping, Protocol, Tuple

from .messages import OutboundMessage


logger = logging.getLogger(__name__)

Callback = Callable[[Mapping[str, Any]], None]


class Transport(Protocol):
    def publish(self, topic: str, message: OutboundMessage) -> None: ...

    def subscribe(self, topic: str, callback: Callback) -> None: ...


class InMemoryTransport:
    """
    Synchronous in-process transport.

    Outbound messages are serialized with `to_dict()` and recorded; inbound
    payloads handed to `deliver()` are dispatched to subscribers in
    registration order. Each topic has its own delivery lock, so one topic is
    delivered at most once at a time while different topics may interleave.
    """

    def __init__(self) -> None:
        self._subs: Dict[str, List[Callback]] = defaultdict(list)
        self._topic_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._guard = threading.Lock()
        self.published: List[Tuple[str, OutboundMessage]] = []

    def publish(self, topic: str, message: OutboundMessage) -> None:
        payload = message.to_dict()
        with self._guard:
            self.published.append((topic, message))
        logger.debug("publish %s %s", topic, payload)

    def subscribe(self, topic: str, callback: Callback) -> None:
        with self._guard:
            self._subs[topic].append(callback)

    def deliver(self, topic: str, payload: Mapping[str, Any]) -> int:
        """Dispatch an inbound payload; returns the number of subscribers reached."""
        with self._guard:
            callbacks = list(self._subs.get(topic, ()))
            lock = self._topic_locks[topic]
        with lock:
            for cb in callbacks:
                cb(payload)
        return len(callbacks)

    def messages(self, topic: str | None = None) -> List[OutboundMessage]:
        with self._guard:
            return [m for t, m in self.published if topic is None or t == topic]

    def payloads(self, topic: str | None = None) -> List[Dict[str, Any]]:
        return [m.to_dict() for m in self.messages(topic)]

    def clear(self) -> None:
        with self._guard:
            self.published.clear()


__all__ = ["Transport", "InMemoryTransport", "Callback"]
