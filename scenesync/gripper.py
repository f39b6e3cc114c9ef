"""Pick/release protocol for one end effector.

Picking takes an object out of the planning scene's world and attaches it to
the gripper link; releasing detaches it and puts it back as a free obstacle at
wherever it was let go. The message order on each side keeps the remote scene
from ever holding the object as both a world obstacle and an attached payload.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from .errors import SceneSyncError
from .messages import AttachOperation, AttachUpdate, CollisionOperation
from .registry import Registry
from .scene import PickTarget, SceneGraph, SceneObject, TargetFinder
from .synchronizer import ObstacleSynchronizer
from .transport import Transport


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Empty:
    pass


@dataclass(frozen=True)
class Holding:
    obj: SceneObject
    original_parent: Any = None

    @property
    def object_id(self) -> str:
        return self.obj.object_id


HoldState = Union[Empty, Holding]


class PickStatus(Enum):
    PICKED = "picked"
    NO_ELIGIBLE_TARGET = "no_eligible_target"
    BUSY = "busy"


class ReleaseStatus(Enum):
    RELEASED = "released"
    NOT_HOLDING = "not_holding"


class ReachPredicate:
    """Eligible when the hit is within reach and every world-bounds side is small enough."""

    def __init__(self, max_distance: float = 1.0, max_size: float = 0.1) -> None:
        self.max_distance = max_distance
        self.max_size = max_size

    def __call__(self, target: PickTarget) -> bool:
        if target.distance > self.max_distance:
            return False
        return bool((target.obj.bounds_size() <= self.max_size).all())


class GripperController:
    def __init__(
        self,
        registry: Registry,
        synchronizer: ObstacleSynchronizer,
        transport: Transport,
        scene: SceneGraph,
        find_target: TargetFinder,
        end_effector: Any,
        link: str = "tool0",
        topic: str = "/attached_collision_object",
        is_eligible: Optional[Callable[[PickTarget], bool]] = None,
    ) -> None:
        self.registry = registry
        self.synchronizer = synchronizer
        self.transport = transport
        self.scene = scene
        self.find_target = find_target
        self.end_effector = end_effector
        self.link = link
        self.topic = topic
        self.is_eligible = is_eligible or ReachPredicate()
        self.state: HoldState = Empty()

    @property
    def holding(self) -> Optional[str]:
        return self.state.object_id if isinstance(self.state, Holding) else None

    def toggle(self) -> Union[PickStatus, ReleaseStatus]:
        if isinstance(self.state, Holding):
            return self.release()
        return self.pick()

    def pick(self) -> PickStatus:
        if isinstance(self.state, Holding):
            logger.debug("Pick ignored: already holding '%s'", self.state.object_id)
            return PickStatus.BUSY

        target = self.find_target()
        if target is None or not self._eligible(target):
            return PickStatus.NO_ELIGIBLE_TARGET

        obj = target.obj
        with self.registry.lock:
            # World remove strictly before attach
            self.synchronizer.remove(obj.object_id)
            self.transport.publish(self.topic, AttachUpdate(self.link, obj.object_id, AttachOperation.ATTACH))
            seq = self.registry.mark_attached(obj.object_id, self.link)
            original_parent = obj.parent
            self.scene.reparent(obj, self.end_effector)
            self.state = Holding(obj, original_parent)
        logger.info("Picked %s (seq=%d)", obj.object_id, seq)
        return PickStatus.PICKED

    def release(self) -> ReleaseStatus:
        state = self.state
        if not isinstance(state, Holding):
            return ReleaseStatus.NOT_HOLDING

        with self.registry.lock:
            # Detach strictly before the world add
            self.transport.publish(self.topic, AttachUpdate(self.link, state.object_id, AttachOperation.DETACH))
            obj = self.scene.refresh(state.obj)
            try:
                self.synchronizer.publish(obj, CollisionOperation.ADD)
                seq = self.registry.mark_released(state.object_id)
            except SceneSyncError as e:
                # Detached but not in the world; the next periodic pass sends the ADD
                logger.error("World add for released '%s' failed: %s", state.object_id, e)
                self.registry.remove(state.object_id)
                self.registry.discard_pending(state.object_id)
                seq = None
            self.scene.reparent(obj, state.original_parent)
            self.state = Empty()
        logger.info("Released %s (seq=%s)", state.object_id, seq)
        return ReleaseStatus.RELEASED

    def _eligible(self, target: PickTarget) -> bool:
        try:
            return self.is_eligible(target)
        except Exception as e:
            logger.warning("Eligibility check failed for '%s': %s", target.obj.object_id, e)
            return False


__all__ = [
    "GripperController",
    "HoldState",
    "Empty",
    "Holding",
    "PickStatus",
    "ReleaseStatus",
    "ReachPredicate",
]
