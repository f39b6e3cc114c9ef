"""Joint-state stream filtering.

Incoming joint frames occasionally jump by a large amount for a single frame
(sensor glitch, angle wrap in the publisher). The filter holds back any frame
whose summed motion from the last accepted frame exceeds a threshold, and only
lets the large move through once it has persisted for `confirm_frames` frames.
A spike that disappears within that window is dropped as noise.

Frames must arrive in order on one channel; reordered delivery makes the
hysteresis meaningless.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

from .errors import UnknownJointError
from .logging_utils import get_logger
from .messages import JointStateMessage


logger = get_logger("joint_filter")


@dataclass(frozen=True)
class JointFrame:
    positions_deg: np.ndarray
    seq: int = 0


@dataclass(frozen=True)
class Tracking:
    pass


@dataclass(frozen=True)
class Jumping:
    streak: int = 0


FilterState = Union[Tracking, Jumping]


class Decision(Enum):
    ACCEPTED = "accepted"
    CONFIRMED_JUMP = "confirmed_jump"  # accepted after the jump persisted
    REJECTED_SPIKE = "rejected_spike"  # first frame of a jump
    REJECTED_PENDING = "rejected_pending"  # jump still unconfirmed
    REJECTED_NOISE = "rejected_noise"  # jump vanished

    @property
    def accepted(self) -> bool:
        return self in (Decision.ACCEPTED, Decision.CONFIRMED_JUMP)


class JointJumpFilter:
    """
    Hysteresis filter over a stream of joint frames.

    Args:
        num_joints: Length of every frame
        threshold_deg: Largest summed per-frame motion accepted without confirmation
        confirm_frames: Jumping frames needed before a large move is accepted
        zero_epsilon: Baseline values closer to zero than this count as never seen
        track_initialized: Use per-joint "seen" flags instead of the zero sentinel
    """

    def __init__(self, num_joints: int, threshold_deg: float = 1.0, confirm_frames: int = 10,
                 zero_epsilon: float = 1e-6, track_initialized: bool = False) -> None:
        self.num_joints = num_joints
        self.threshold_deg = threshold_deg
        self.confirm_frames = confirm_frames
        self.zero_epsilon = zero_epsilon
        self.track_initialized = track_initialized
        self.reset()

    def reset(self) -> None:
        self.last_accepted = np.zeros(self.num_joints, dtype=np.float64)
        self._seen = np.zeros(self.num_joints, dtype=bool)
        self.state: FilterState = Tracking()

    @property
    def jumping(self) -> bool:
        return isinstance(self.state, Jumping)

    def motion(self, frame: Sequence[float]) -> float:
        f = np.asarray(frame, dtype=np.float64)
        if f.shape != self.last_accepted.shape:
            raise ValueError(f"expected {self.num_joints} joints, got shape {f.shape}")
        if not np.all(np.isfinite(f)):
            raise ValueError(f"non-finite joint value in {f.tolist()}")
        if self.track_initialized:
            live = self._seen
        else:
            # A baseline of exactly zero reads as "never received"
            live = np.abs(self.last_accepted) >= self.zero_epsilon
        return float(np.sum(np.abs(f - self.last_accepted)[live]))

    def update(self, frame: Union[JointFrame, Sequence[float]]) -> Decision:
        values = frame.positions_deg if isinstance(frame, JointFrame) else frame
        values = np.asarray(values, dtype=np.float64)
        motion = self.motion(values)
        big = motion > self.threshold_deg

        state = self.state
        if isinstance(state, Tracking):
            if big:
                self.state = Jumping(0)
                logger.debug("Jump of %.3f deg detected; holding", motion)
                return Decision.REJECTED_SPIKE
            decision = Decision.ACCEPTED
        else:
            streak = state.streak + 1
            if not big:
                self.state = Tracking()
                logger.debug("Jump disappeared after %d frame(s); rejecting as noise", streak)
                return Decision.REJECTED_NOISE
            if streak < self.confirm_frames:
                self.state = Jumping(streak)
                return Decision.REJECTED_PENDING
            self.state = Tracking()
            logger.debug("Jump confirmed after %d frames (%.3f deg)", streak, motion)
            decision = Decision.CONFIRMED_JUMP

        self.last_accepted = values.copy()
        self._seen[:] = True
        return decision


class JointNameMap:
    """Maps inbound joint names (and aliases such as URDF joint names) to frame indices."""

    def __init__(self, joint_names: Sequence[str], aliases: Optional[Mapping[str, str]] = None) -> None:
        self.joint_names: List[str] = list(joint_names)
        self._index: Dict[str, int] = {n: i for i, n in enumerate(self.joint_names)}
        for alias, target in (aliases or {}).items():
            if target not in self._index:
                raise ValueError(f"alias '{alias}' points to unknown joint '{target}'")
            self._index[alias] = self._index[target]

    def __len__(self) -> int:
        return len(self.joint_names)

    def index(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise UnknownJointError(name) from None

    def frame(self, msg: JointStateMessage, baseline: np.ndarray) -> JointFrame:
        """
        Build a dense frame in degrees from a (possibly partial) joint-state message.

        Joints missing from the message keep their baseline value; unknown
        names are dropped and reported once.
        """
        values = np.array(baseline, dtype=np.float64, copy=True)
        for name, rad in zip(msg.names, msg.positions_rad):
            try:
                idx = self.index(name)
            except UnknownJointError as e:
                logger.warning("Dropping %s", e, extra={"once": ("unknown_joint", name)})
                continue
            values[idx] = np.rad2deg(rad)
        return JointFrame(values, msg.seq)


DriveSink = Callable[[List[float]], None]


class JointStream:
    """Converts joint-state messages into filtered drive targets for one manipulator."""

    def __init__(self, names: JointNameMap, jump_filter: JointJumpFilter, drive: DriveSink) -> None:
        if len(names) != jump_filter.num_joints:
            raise ValueError("joint name map and filter disagree on joint count")
        self.names = names
        self.filter = jump_filter
        self.drive = drive
        self.accepted = 0
        self.rejected = 0

    def handle(self, msg: JointStateMessage) -> Decision:
        frame = self.names.frame(msg, self.filter.last_accepted)
        decision = self.filter.update(frame)
        if decision.accepted:
            self.accepted += 1
            self.drive([float(v) for v in frame.positions_deg])
        else:
            self.rejected += 1
        return decision

    def handle_all(self, msgs: Iterable[JointStateMessage]) -> List[Decision]:
        return [self.handle(m) for m in msgs]


__all__ = [
    "JointFrame",
    "JointJumpFilter",
    "FilterState",
    "Tracking",
    "Jumping",
    "Decision",
    "JointNameMap",
    "JointStream",
    "DriveSink",
]
