"""Conversions between the local scene convention and the remote (ROS) convention.

Local: left-handed y-up scene axes as reported by the scene graph.
Remote: x-forward, y-left, z-up as expected by the planning service.

Quaternions are (x, y, z, w) throughout, matching geometry_msgs/Quaternion.
Nothing here normalizes; callers pass unit quaternions.
"""
from __future__ import annotations

from typing import Sequence

import numpy as np

from .errors import TransformInputError
from .messages import BoxGeometry


IDENTITY_XYZW = np.array([0.0, 0.0, 0.0, 1.0])

# Below this norm a quaternion carries no rotation
MIN_QUAT_NORM = 1e-9


def as_vector(value: Sequence[float], size: int, what: str) -> np.ndarray:
    try:
        arr = np.asarray(value, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise TransformInputError(f"{what}: not numeric ({e})") from e
    if arr.shape != (size,):
        raise TransformInputError(f"{what}: expected {size} components, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise TransformInputError(f"{what}: non-finite component in {arr.tolist()}")
    return arr


def as_quaternion(value: Sequence[float], what: str = "orientation") -> np.ndarray:
    """Validate an (x, y, z, w) quaternion. Rejects zero-norm input; never renormalizes."""
    q = as_vector(value, 4, what)
    if np.linalg.norm(q) < MIN_QUAT_NORM:
        raise TransformInputError(f"{what}: quaternion {q.tolist()} has near-zero norm")
    return q


def to_remote_position(p: Sequence[float]) -> np.ndarray:
    """Local (x, y, z) -> remote (z, -x, y)."""
    x, y, z = as_vector(p, 3, "position")
    return np.array([z, -x, y])


def from_remote_position(p: Sequence[float]) -> np.ndarray:
    """Inverse of to_remote_position: remote (x, y, z) -> local (-y, z, x)."""
    x, y, z = as_vector(p, 3, "position")
    return np.array([-y, z, x])


def to_remote_scale(s: Sequence[float]) -> np.ndarray:
    """Local extents -> remote extents (z, x, y). Extents are magnitudes, so no sign flip."""
    x, y, z = as_vector(s, 3, "scale")
    return np.array([z, x, y])


def from_remote_scale(s: Sequence[float]) -> np.ndarray:
    x, y, z = as_vector(s, 3, "scale")
    return np.array([y, z, x])


def quat_multiply(q1: Sequence[float], q2: Sequence[float]) -> np.ndarray:
    """
    Hamilton product q1 * q2 of two (x, y, z, w) quaternions.

    The scalar part is last, so each row is the usual (w, x, y, z) product
    with its terms regrouped for that layout.

    Args:
        q1: Left quaternion [qx, qy, qz, qw]
        q2: Right quaternion [qx, qy, qz, qw]

    Returns:
        np.ndarray: Product [qx, qy, qz, qw]
    """
    x1, y1, z1, w1 = q1
    x2, y2, z2, w2 = q2
    return np.array([
        w1*x2 + x1*w2 + y1*z2 - z1*y2,
        w1*y2 - x1*z2 + y1*w2 + z1*x2,
        w1*z2 + x1*y2 - y1*x2 + z1*w2,
        w1*w2 - x1*x2 - y1*y2 - z1*z2,
    ])


def to_remote_orientation(q: Sequence[float], basis: Sequence[float] = IDENTITY_XYZW) -> np.ndarray:
    """
    Local orientation -> remote orientation.

    The axis swap is applied to the vector part, (x, y, z, w) -> (-z, -x, y, w),
    then the configured basis-change rotation is applied on the left.
    """
    qx, qy, qz, qw = as_quaternion(q)
    b = as_quaternion(basis, "basis rotation")
    corrected = np.array([-qz, -qx, qy, qw])
    return quat_multiply(b, corrected)


def quat_to_rotation_matrix(q: Sequence[float]) -> np.ndarray:
    """Rotation matrix of an (x, y, z, w) quaternion (assumed unit).

    Same entries as the textbook (w, x, y, z) form, indexed for scalar-last input.
    """
    x, y, z, w = as_vector(q, 4, "orientation")
    return np.array([
        [1-2*(y*y+z*z), 2*(x*y - z*w), 2*(x*z + y*w)],
        [2*(x*y + z*w), 1-2*(x*x+z*z), 2*(y*z - x*w)],
        [2*(x*z - y*w), 2*(y*z + x*w), 1-2*(x*x+y*y)],
    ])


class FrameConverter:
    """Converts local box geometry into a remote-convention BoxGeometry for one frame id."""

    def __init__(self, frame_id: str = "base_link", basis: Sequence[float] = IDENTITY_XYZW) -> None:
        self.frame_id = frame_id
        self.basis = as_quaternion(basis, "basis rotation")

    def box(self, center: Sequence[float], orientation: Sequence[float], size: Sequence[float]) -> BoxGeometry:
        p = to_remote_position(center)
        q = to_remote_orientation(orientation, self.basis)
        s = to_remote_scale(size)
        return BoxGeometry(
            position=(float(p[0]), float(p[1]), float(p[2])),
            orientation=(float(q[0]), float(q[1]), float(q[2]), float(q[3])),
            dimensions=(float(s[0]), float(s[1]), float(s[2])),
        )


__all__ = [
    "IDENTITY_XYZW",
    "MIN_QUAT_NORM",
    "as_vector",
    "as_quaternion",
    "FrameConverter",
    "to_remote_position",
    "from_remote_position",
    "to_remote_scale",
    "from_remote_scale",
    "to_remote_orientation",
    "quat_multiply",
    "quat_to_rotation_matrix",
]
