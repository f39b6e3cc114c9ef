"""Publishes local box obstacles to the planning scene.

Each pass decides ADD or MOVE per obstacle from the registry, converts the
box into the remote convention and fires one collision update per object.
Nothing waits for acknowledgment: the remote scene object list that comes
back later is what corrects the registry.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, List, Optional, Sequence

from .errors import SceneSyncError
from .messages import BoxGeometry, CollisionOperation, CollisionUpdate
from .registry import Registry
from .scene import ObstacleFilter, ObstaclePredicate, SceneObject
from .transforms import FrameConverter
from .transport import Transport


logger = logging.getLogger(__name__)


class ObstacleSynchronizer:
    def __init__(
        self,
        registry: Registry,
        transport: Transport,
        topic: str = "/collision_object",
        converter: Optional[FrameConverter] = None,
        is_obstacle: Optional[ObstaclePredicate] = None,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.topic = topic
        self.converter = converter or FrameConverter()
        self.is_obstacle = is_obstacle or ObstacleFilter()

    def synchronize(self, candidates: Sequence[SceneObject]) -> List[CollisionUpdate]:
        """Publish every eligible obstacle; per-object failures are logged and skipped."""
        if not candidates:
            logger.warning("No box colliders to synchronize")
            return []
        sent: List[CollisionUpdate] = []
        # Hold the registry for the whole pass so a concurrent pick/release
        # lands either entirely before or entirely after it.
        with self.registry.lock:
            for obj in candidates:
                try:
                    msg = self.publish(obj)
                except SceneSyncError as e:
                    logger.warning("Skipping '%s': %s", getattr(obj, "object_id", "?"), e)
                    continue
                if msg is not None:
                    sent.append(msg)
        logger.debug("Synchronized %d/%d objects", len(sent), len(candidates))
        return sent

    def publish(
        self, obj: SceneObject, operation: Optional[CollisionOperation] = None
    ) -> Optional[CollisionUpdate]:
        """
        Publish a single object.

        With no explicit operation, non-obstacles and attached objects are
        skipped and the operation is MOVE if the registry already knows the id,
        ADD otherwise. An explicit ADD (used on release) bypasses the filters.
        """
        if operation == CollisionOperation.REMOVE:
            return self.remove(obj.object_id)
        if operation is None:
            if not self.is_obstacle(obj):
                return None
            if self.registry.is_attached(obj.object_id):
                return None
        with self.registry.lock:
            if operation is None:
                operation = CollisionOperation.MOVE if self.registry.exists(obj.object_id) else CollisionOperation.ADD
            msg = CollisionUpdate(
                object_id=obj.object_id,
                operation=operation,
                box=self.box_for(obj),
                frame_id=self.converter.frame_id,
            )
            self.transport.publish(self.topic, msg)
        return msg

    def remove(self, object_id: str) -> CollisionUpdate:
        """Remove an object from the remote world and drop it from the registry."""
        with self.registry.lock:
            msg = CollisionUpdate(object_id=object_id, operation=CollisionOperation.REMOVE,
                                  frame_id=self.converter.frame_id)
            self.registry.remove(object_id)
            self.transport.publish(self.topic, msg)
        return msg

    def box_for(self, obj: SceneObject) -> BoxGeometry:
        if not obj.object_id:
            raise SceneSyncError("scene object without an id")
        size = obj.world_size()
        return self.converter.box(obj.world_center(), obj.orientation, size)


CandidateSource = Callable[[], Iterable[SceneObject]]


class PeriodicSync:
    """
    Background thread running a synchronization pass every `interval` seconds.

    `trigger()` requests an immediate pass (the manual key in the scene);
    `set_interval()` takes effect at once without waiting out the current wait.
    """

    def __init__(self, synchronizer: ObstacleSynchronizer, source: CandidateSource,
                 interval: float = 50.0, run_on_start: bool = True) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.synchronizer = synchronizer
        self.source = source
        self._interval = interval
        self._run_on_start = run_on_start
        self._wake = threading.Event()
        self._manual = threading.Event()
        self._stop_evt = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.passes = 0

    @property
    def interval(self) -> float:
        return self._interval

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_evt.clear()
        self._thread = threading.Thread(target=self._loop, name="scenesync-sync", daemon=True)
        self._thread.start()
        logger.info("Periodic sync started (interval=%.1fs)", self._interval)

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_evt.set()
        self._wake.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("Periodic sync stopped")

    def trigger(self) -> None:
        self._manual.set()
        self._wake.set()

    def set_interval(self, interval: float) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._interval = interval
        self._wake.set()

    def run_once(self) -> List[CollisionUpdate]:
        try:
            candidates = list(self.source())
        except Exception as e:
            logger.error("Candidate source failed: %s", e)
            return []
        try:
            sent = self.synchronizer.synchronize(candidates)
        except Exception:
            # Keep the background thread alive; the next pass retries
            logger.exception("Synchronization pass failed")
            sent = []
        self.passes += 1
        return sent

    def _loop(self) -> None:
        if self._run_on_start:
            self.run_once()
        deadline = time.monotonic() + self._interval
        while not self._stop_evt.is_set():
            self._wake.wait(timeout=max(0.0, deadline - time.monotonic()))
            self._wake.clear()
            if self._stop_evt.is_set():
                break
            if self._manual.is_set() or time.monotonic() >= deadline:
                self._manual.clear()
                self.run_once()
            # Either a pass just ran or the interval changed; restart the wait
            deadline = time.monotonic() + self._interval


__all__ = ["ObstacleSynchronizer", "PeriodicSync", "CandidateSource"]
