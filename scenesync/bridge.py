"""Wires the registry, synchronizer, gripper and joint stream onto transport topics."""
from __future__ import annotations

import itertools
import logging
from typing import Any, Iterable, List, Mapping, Optional

from .config import SceneSyncConfig
from .errors import MalformedMessageError
from .gripper import GripperController, ReachPredicate
from .joint_filter import Decision, DriveSink, JointJumpFilter, JointNameMap, JointStream
from .messages import AttachEvent, CollisionUpdate, JointStateMessage, SceneObjectsSnapshot
from .registry import Registry
from .scene import ObstacleFilter, ObstaclePredicate, SceneGraph, SceneObject, TargetFinder
from .synchronizer import CandidateSource, ObstacleSynchronizer, PeriodicSync
from .transforms import FrameConverter
from .transport import Transport


logger = logging.getLogger(__name__)


class SyncNode:
    """
    One manipulator's connection to the planning service.

    Owns the registry and hands the same instance to every component that
    reads or writes membership. Inbound handlers never raise: a malformed
    message is logged and dropped.

    Args:
        config: Node configuration
        transport: Publish/subscribe transport
        drive: Receives accepted joint targets (degrees, in `joint_names` order)
        candidates: Returns the current box colliders of the scene
        scene: Scene-graph operations for pick/release (optional)
        find_target: Nearest object along the gripper ray (optional)
        end_effector: Scene-graph handle the picked object is parented to
        is_obstacle: Overrides the configured obstacle filter
    """

    def __init__(
        self,
        config: SceneSyncConfig,
        transport: Transport,
        drive: DriveSink,
        candidates: CandidateSource = lambda: (),
        scene: Optional[SceneGraph] = None,
        find_target: Optional[TargetFinder] = None,
        end_effector: Any = None,
        is_obstacle: Optional[ObstaclePredicate] = None,
    ) -> None:
        self.config = config
        self.transport = transport
        topics = config.topics

        self.registry = Registry(max_pending_snapshots=config.registry.max_pending_snapshots)
        self.synchronizer = ObstacleSynchronizer(
            self.registry,
            transport,
            topic=topics.collision_object,
            converter=FrameConverter(config.frames.frame_id, config.frames.basis_rotation),
            is_obstacle=is_obstacle or ObstacleFilter(
                config.obstacles.no_collision_tag, config.obstacles.robot_layers
            ),
        )
        self.periodic = PeriodicSync(self.synchronizer, candidates, interval=config.sync.publish_interval)

        self.gripper: Optional[GripperController] = None
        if scene is not None and find_target is not None:
            self.gripper = GripperController(
                self.registry,
                self.synchronizer,
                transport,
                scene,
                find_target,
                end_effector,
                link=config.gripper.link,
                topic=topics.attached_collision_object,
                is_eligible=ReachPredicate(config.gripper.max_pick_distance, config.gripper.max_object_size),
            )

        man = config.manipulator
        jf = config.joint_filter
        self.joints = JointStream(
            JointNameMap(man.joint_names, man.aliases),
            JointJumpFilter(
                len(man.joint_names),
                threshold_deg=jf.threshold_deg,
                confirm_frames=jf.confirm_frames,
                zero_epsilon=jf.zero_epsilon,
                track_initialized=jf.track_initialized,
            ),
            drive,
        )
        self._joint_seq = itertools.count(1)

        transport.subscribe(topics.scene_objects, self.on_scene_objects)
        transport.subscribe(topics.attached_collision_object, self.on_attached_object)
        transport.subscribe(topics.joint_states, self.on_joint_state)

    # --- Lifecycle ---
    def start(self) -> None:
        self.periodic.start()

    def stop(self) -> None:
        self.periodic.stop()

    # --- Inbound handlers ---
    def on_scene_objects(self, payload: Mapping[str, Any]) -> None:
        try:
            snap = SceneObjectsSnapshot.from_dict(payload)
        except MalformedMessageError as e:
            logger.warning("Dropping scene object list: %s", e)
            return
        replace = self.config.sync.full_snapshots if snap.replace is None else snap.replace
        self.registry.apply_snapshot(snap.ids, replace=replace)

    def on_attached_object(self, payload: Mapping[str, Any]) -> None:
        # Our own attach/detach publications come back on this topic too; they
        # are ordinary confirmations from the registry's point of view.
        try:
            evt = AttachEvent.from_dict(payload)
            self.registry.apply_attach_event(evt.object_id, evt.link, evt.operation)
        except MalformedMessageError as e:
            logger.warning("Dropping attached object message: %s", e)

    def on_joint_state(self, payload: Mapping[str, Any]) -> Optional[Decision]:
        try:
            msg = JointStateMessage.from_dict(payload, seq=next(self._joint_seq))
        except MalformedMessageError as e:
            logger.warning("Dropping joint state: %s", e)
            return None
        return self.joints.handle(msg)

    # --- Local actions ---
    def synchronize(self, candidates: Optional[Iterable[SceneObject]] = None) -> List[CollisionUpdate]:
        """Run one synchronization pass now, on the given objects or the configured source."""
        if candidates is None:
            return self.periodic.run_once()
        return self.synchronizer.synchronize(list(candidates))

    def pick(self):
        if self.gripper is None:
            raise RuntimeError("gripper not configured (scene and find_target required)")
        return self.gripper.pick()

    def release(self):
        if self.gripper is None:
            raise RuntimeError("gripper not configured (scene and find_target required)")
        return self.gripper.release()


__all__ = ["SyncNode"]
