"""Message types exchanged with the planning service, and their dict wire form.

Outbound messages are a tagged union: one dataclass per message kind, with an
operation enum deciding which payload fields are meaningful. The dict layout
mirrors moveit_msgs/CollisionObject and moveit_msgs/AttachedCollisionObject.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import MalformedMessageError


# moveit_msgs/CollisionObject operation codes
class CollisionOperation(IntEnum):
    ADD = 0
    REMOVE = 1
    MOVE = 3


class AttachOperation(Enum):
    ATTACH = "attach"
    DETACH = "detach"


# shape_msgs/SolidPrimitive.BOX
PRIMITIVE_BOX = 1

_IDENTITY_POSE = {
    "position": {"x": 0.0, "y": 0.0, "z": 0.0},
    "orientation": {"x": 0.0, "y": 0.0, "z": 0.0, "w": 1.0},
}


@dataclass(frozen=True)
class BoxGeometry:
    """Box in the remote convention: center pose plus full edge lengths."""
    position: Tuple[float, float, float]
    orientation: Tuple[float, float, float, float]  # x, y, z, w
    dimensions: Tuple[float, float, float]

    def pose_dict(self) -> Dict[str, Any]:
        px, py, pz = self.position
        qx, qy, qz, qw = self.orientation
        return {
            "position": {"x": px, "y": py, "z": pz},
            "orientation": {"x": qx, "y": qy, "z": qz, "w": qw},
        }


@dataclass(frozen=True)
class CollisionUpdate:
    object_id: str
    operation: CollisionOperation
    box: Optional[BoxGeometry] = None
    frame_id: str = "base_link"

    def __post_init__(self) -> None:
        if not self.object_id:
            raise MalformedMessageError("collision update requires an object id")
        if self.operation == CollisionOperation.REMOVE:
            if self.box is not None:
                raise MalformedMessageError(f"{self.object_id}: REMOVE carries no geometry")
        elif self.box is None:
            raise MalformedMessageError(f"{self.object_id}: {self.operation.name} requires box geometry")

    def to_dict(self) -> Dict[str, Any]:
        msg: Dict[str, Any] = {
            "header": {"frame_id": self.frame_id},
            "id": self.object_id,
            "operation": int(self.operation),
        }
        if self.box is not None:
            msg["pose"] = self.box.pose_dict()
            msg["primitives"] = [{"type": PRIMITIVE_BOX, "dimensions": list(self.box.dimensions)}]
            # Outer pose carries the placement; the primitive sits at the object origin
            msg["primitive_poses"] = [_copy_pose(_IDENTITY_POSE)]
        return msg


@dataclass(frozen=True)
class AttachUpdate:
    link: str
    object_id: str
    operation: AttachOperation

    def __post_init__(self) -> None:
        if not self.object_id:
            raise MalformedMessageError("attach update requires an object id")
        if not self.link:
            raise MalformedMessageError(f"{self.object_id}: attach update requires a link name")

    def to_dict(self) -> Dict[str, Any]:
        op = CollisionOperation.ADD if self.operation == AttachOperation.ATTACH else CollisionOperation.REMOVE
        return {
            "link_name": self.link,
            "object": {"id": self.object_id, "operation": int(op)},
        }


OutboundMessage = CollisionUpdate | AttachUpdate


# --- Inbound ---

@dataclass(frozen=True)
class SceneObjectsSnapshot:
    """IDs currently present in the remote world. `replace` None defers to config."""
    ids: Tuple[str, ...]
    replace: Optional[bool] = None

    @staticmethod
    def from_dict(msg: Mapping[str, Any]) -> "SceneObjectsSnapshot":
        if not isinstance(msg, Mapping):
            raise MalformedMessageError(f"scene object list must be a mapping, got {type(msg).__name__}")
        ids = msg.get("ids")
        if ids is None:
            ids = []
        if isinstance(ids, (str, bytes)) or not isinstance(ids, (list, tuple, set, frozenset)):
            raise MalformedMessageError("scene object list 'ids' must be a list of strings")
        replace = msg.get("replace")
        if replace is not None and not isinstance(replace, bool):
            raise MalformedMessageError("scene object list 'replace' must be a boolean")
        # Blank entries are filtered per-item by the registry
        return SceneObjectsSnapshot(ids=tuple(ids), replace=replace)


@dataclass(frozen=True)
class AttachEvent:
    object_id: str
    link: str
    operation: AttachOperation

    @staticmethod
    def from_dict(msg: Mapping[str, Any]) -> "AttachEvent":
        if not isinstance(msg, Mapping):
            raise MalformedMessageError("attached object message must be a mapping")
        obj = msg.get("object") or {}
        object_id = obj.get("id") if isinstance(obj, Mapping) else None
        if not object_id or not isinstance(object_id, str):
            raise MalformedMessageError("attached object message has no object id")
        try:
            code = CollisionOperation(int(obj.get("operation")))
        except (TypeError, ValueError) as e:
            raise MalformedMessageError(f"{object_id}: bad attach operation {obj.get('operation')!r}") from e
        if code == CollisionOperation.ADD:
            op = AttachOperation.ATTACH
        elif code == CollisionOperation.REMOVE:
            op = AttachOperation.DETACH
        else:
            raise MalformedMessageError(f"{object_id}: attach operation must be ADD or REMOVE, got {code.name}")
        return AttachEvent(object_id=object_id, link=str(msg.get("link_name") or ""), operation=op)


@dataclass(frozen=True)
class JointStateMessage:
    names: Tuple[str, ...]
    positions_rad: Tuple[float, ...]
    seq: int = 0

    @staticmethod
    def from_dict(msg: Mapping[str, Any], seq: int = 0) -> "JointStateMessage":
        if not isinstance(msg, Mapping):
            raise MalformedMessageError("joint state must be a mapping")
        names = list(msg.get("name") or [])
        positions = list(msg.get("position") or [])
        if not names:
            raise MalformedMessageError("joint state has no joint names")
        if len(names) != len(positions):
            raise MalformedMessageError(
                f"joint state has {len(names)} names but {len(positions)} positions"
            )
        try:
            values = tuple(float(v) for v in positions)
        except (TypeError, ValueError) as e:
            raise MalformedMessageError(f"joint state position not numeric: {e}") from e
        if not all(math.isfinite(v) for v in values):
            raise MalformedMessageError(f"joint state position not finite: {list(values)}")
        return JointStateMessage(names=tuple(str(n) for n in names), positions_rad=values, seq=seq)


def _copy_pose(pose: Dict[str, Dict[str, float]]) -> Dict[str, Dict[str, float]]:
    return {k: dict(v) for k, v in pose.items()}


__all__ = [
    "CollisionOperation",
    "AttachOperation",
    "PRIMITIVE_BOX",
    "BoxGeometry",
    "CollisionUpdate",
    "AttachUpdate",
    "OutboundMessage",
    "SceneObjectsSnapshot",
    "AttachEvent",
    "JointStateMessage",
]
