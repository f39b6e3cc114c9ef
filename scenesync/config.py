"""Configuration models and YAML loader for scenesync."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator


class TopicsConfig(BaseModel):
    collision_object: str = "/collision_object"
    attached_collision_object: str = "/attached_collision_object"
    scene_objects: str = "/scene_object_list"
    joint_states: str = "/joint_states"


class FramesConfig(BaseModel):
    frame_id: str = "base_link"
    # Basis-change quaternion (x, y, z, w) applied on the left after the axis swap
    basis_rotation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)

    @field_validator("basis_rotation")
    @classmethod
    def _rotation_not_zero(cls, v: Tuple[float, float, float, float]) -> Tuple[float, float, float, float]:
        if sum(c * c for c in v) < 1e-18:
            raise ValueError("basis_rotation must be a non-zero quaternion")
        return v


class ObstacleConfig(BaseModel):
    no_collision_tag: str = "noCollision"
    robot_layers: List[int] = Field(default_factory=list)


class SyncConfig(BaseModel):
    publish_interval: float = 50.0  # seconds
    # Treat every scene object list as a full snapshot (clear then repopulate)
    full_snapshots: bool = False

    @field_validator("publish_interval")
    @classmethod
    def _positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("publish_interval must be positive")
        return v


class GripperConfig(BaseModel):
    link: str = "tool0"
    max_pick_distance: float = 1.0
    max_object_size: float = 0.1


class JointFilterConfig(BaseModel):
    threshold_deg: float = 1.0
    confirm_frames: int = 10
    zero_epsilon: float = 1e-6
    # Use explicit per-joint "seen" flags instead of treating 0.0 as uninitialized
    track_initialized: bool = False

    @field_validator("confirm_frames")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("confirm_frames must be >= 0")
        return v


class ManipulatorConfig(BaseModel):
    name: str = "ur5e"
    joint_names: List[str] = Field(default_factory=lambda: [
        "shoulder_pan_joint",
        "shoulder_lift_joint",
        "elbow_joint",
        "wrist_1_joint",
        "wrist_2_joint",
        "wrist_3_joint",
    ])
    # Extra inbound names (e.g. URDF joint names) mapping onto joint_names entries
    aliases: Dict[str, str] = Field(default_factory=dict)


class RegistryConfig(BaseModel):
    max_pending_snapshots: int = 3


class SceneSyncConfig(BaseModel):
    """
    Top-level configuration for a scenesync node.

    Attributes:
        topics: Inbound/outbound topic names
        frames: Remote frame id and basis rotation for orientation conversion
        obstacles: Which scene objects count as world obstacles
        sync: Periodic synchronization and snapshot protocol
        gripper: Pick/release link and reach limits
        joint_filter: Jump filter threshold and hysteresis
        manipulator: Joint names driven by the joint-state stream
        registry: Reconciliation limits
    """
    topics: TopicsConfig = Field(default_factory=TopicsConfig)
    frames: FramesConfig = Field(default_factory=FramesConfig)
    obstacles: ObstacleConfig = Field(default_factory=ObstacleConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    gripper: GripperConfig = Field(default_factory=GripperConfig)
    joint_filter: JointFilterConfig = Field(default_factory=JointFilterConfig)
    manipulator: ManipulatorConfig = Field(default_factory=ManipulatorConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)

    @staticmethod
    def from_yaml(path: str | Path) -> "SceneSyncConfig":
        """
        Load a config file.

        A top-level 'defaults' mapping is merged section by section underneath
        the explicit sections, so shared settings can live in one place.
        """
        path = Path(path)
        data = yaml.safe_load(path.read_text()) or {}
        if not isinstance(data, dict):
            raise TypeError(f"{path}: top level must be a mapping")

        defaults = data.pop("defaults", None) or {}
        merged: Dict[str, object] = {}
        for key in set(defaults) | set(data):
            base = defaults.get(key)
            over = data.get(key)
            if isinstance(base, dict) and isinstance(over, dict):
                merged[key] = {**base, **over}
            else:
                merged[key] = over if over is not None else base
        return SceneSyncConfig.model_validate(merged)


__all__ = [
    "SceneSyncConfig",
    "TopicsConfig",
    "FramesConfig",
    "ObstacleConfig",
    "SyncConfig",
    "GripperConfig",
    "JointFilterConfig",
    "ManipulatorConfig",
    "RegistryConfig",
]
