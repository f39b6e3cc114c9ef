"""Read-only view of the local scene as handed to the core each pass.

The scene graph itself (transform hierarchy, parenting, physics) lives outside
this package; `SceneGraph` is the small slice of it that pick/release needs.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Protocol, Tuple

import numpy as np

from .errors import GeometryError
from .transforms import as_vector, quat_to_rotation_matrix


Vec3 = Tuple[float, float, float]
QuatXYZW = Tuple[float, float, float, float]


@dataclass
class SceneObject:
    """
    A box collider in the local scene, with its world transform already
    resolved through the parent chain.

    Attributes:
        object_id: Unique name; also the collision object id on the wire
        position: World position of the object's transform (local convention)
        orientation: World rotation (x, y, z, w)
        half_extents: Collider half-size along its local axes, before scaling
        center: Collider center offset in the object's local frame
        scale: Accumulated scale of the transform chain
        tag: Scene tag, used by the obstacle filter
        layer: Scene layer index, used by the obstacle filter
        parent: Opaque handle of the current parent in the scene graph
    """
    object_id: str
    position: Vec3 = (0.0, 0.0, 0.0)
    orientation: QuatXYZW = (0.0, 0.0, 0.0, 1.0)
    half_extents: Vec3 = (0.5, 0.5, 0.5)
    center: Vec3 = (0.0, 0.0, 0.0)
    scale: Vec3 = (1.0, 1.0, 1.0)
    tag: str = ""
    layer: int = 0
    parent: Any = field(default=None, compare=False)

    def world_center(self) -> np.ndarray:
        offset = as_vector(self.center, 3, "center") * as_vector(self.scale, 3, "scale")
        return as_vector(self.position, 3, "position") + quat_to_rotation_matrix(self.orientation) @ offset

    def world_size(self) -> np.ndarray:
        """Full box edge lengths in world units, along the box's own axes."""
        size = 2.0 * as_vector(self.half_extents, 3, "half_extents") * np.abs(as_vector(self.scale, 3, "scale"))
        if not np.all(np.isfinite(size)):
            raise GeometryError(self.object_id, f"non-finite box size {size.tolist()}")
        if np.any(size <= 0.0):
            raise GeometryError(self.object_id, f"degenerate box size {size.tolist()}")
        return size

    def bounds_size(self) -> np.ndarray:
        """Size of the world-space axis-aligned bounding box."""
        r = np.abs(quat_to_rotation_matrix(self.orientation))
        return r @ self.world_size()


class SceneGraph(Protocol):
    def reparent(self, obj: SceneObject, parent: Any) -> None:
        """Move `obj` under `parent`, keeping its world pose."""
        ...

    def refresh(self, obj: SceneObject) -> SceneObject:
        """Return `obj` with its current world transform."""
        ...


ObstaclePredicate = Callable[[SceneObject], bool]


class ObstacleFilter:
    """Default obstacle predicate: everything except tagged objects and robot layers."""

    def __init__(self, no_collision_tag: str = "noCollision", robot_layers: Iterable[int] = ()) -> None:
        self.no_collision_tag = no_collision_tag
        self.robot_layers = frozenset(robot_layers)

    def __call__(self, obj: SceneObject) -> bool:
        if self.no_collision_tag and obj.tag == self.no_collision_tag:
            return False
        if obj.layer in self.robot_layers:
            return False
        return True


@dataclass(frozen=True)
class PickTarget:
    """Nearest object along the end effector's forward ray."""
    obj: SceneObject
    distance: float


TargetFinder = Callable[[], Optional[PickTarget]]


__all__ = [
    "SceneObject",
    "SceneGraph",
    "ObstacleFilter",
    "ObstaclePredicate",
    "PickTarget",
    "TargetFinder",
]
