"""Exception types raised by the scenesync core.

Every failure here is local to one item (one object, one joint, one message);
callers iterating over a batch catch these, log, and move on.
"""
from __future__ import annotations


class SceneSyncError(Exception):
    """Base class for all scenesync errors."""


class TransformInputError(SceneSyncError, ValueError):
    """Non-finite, malformed or zero-norm vector/quaternion handed to a frame transform."""


class GeometryError(SceneSyncError, ValueError):
    """A scene object's box geometry cannot be published (e.g. zero or negative extent)."""

    def __init__(self, object_id: str, reason: str) -> None:
        super().__init__(f"{object_id}: {reason}")
        self.object_id = object_id
        self.reason = reason


class UnknownJointError(SceneSyncError, KeyError):
    """An inbound joint name has no mapping onto the manipulator."""

    def __init__(self, joint_name: str) -> None:
        super().__init__(joint_name)
        self.joint_name = joint_name

    def __str__(self) -> str:
        return f"unknown joint '{self.joint_name}'"


class MalformedMessageError(SceneSyncError, ValueError):
    """An inbound or outbound message is missing a required field."""


__all__ = [
    "SceneSyncError",
    "TransformInputError",
    "GeometryError",
    "UnknownJointError",
    "MalformedMessageError",
]
