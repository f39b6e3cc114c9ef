import logging
import math
from unittest.mock import Mock

import numpy as np
import pytest

from scenesync.errors import UnknownJointError
from scenesync.joint_filter import (
    Decision,
    JointFrame,
    JointJumpFilter,
    JointNameMap,
    JointStream,
    Jumping,
    Tracking,
)
from scenesync.messages import JointStateMessage


BASE = [10.0, 20.0, 30.0, 40.0, 50.0, 60.0]
FAR = [15.0, 20.0, 30.0, 40.0, 50.0, 60.0]


def primed_filter(**kwargs):
    f = JointJumpFilter(6, **kwargs)
    assert f.update(BASE) == Decision.ACCEPTED
    return f


def test_small_motion_accepted():
    f = primed_filter()
    assert f.update([10.5, 20.0, 30.0, 40.0, 50.0, 60.0]) == Decision.ACCEPTED
    assert f.last_accepted[0] == 10.5


def test_single_spike_rejected():
    f = primed_filter()
    assert f.update(FAR) == Decision.REJECTED_SPIKE
    assert f.state == Jumping(0)
    assert f.last_accepted.tolist() == BASE


def test_persistent_jump_confirmed_after_confirm_frames():
    """The spike plus ten further far frames: the tenth after the spike is accepted."""
    f = primed_filter()
    assert f.update(FAR) == Decision.REJECTED_SPIKE
    for _ in range(9):
        assert f.update(FAR) == Decision.REJECTED_PENDING
    assert f.update(FAR) == Decision.CONFIRMED_JUMP
    assert f.state == Tracking()
    assert f.last_accepted.tolist() == FAR

    # New baseline: the same frame is no longer a jump
    assert f.update(FAR) == Decision.ACCEPTED


def test_spike_that_returns_is_noise():
    f = primed_filter()
    assert f.update(FAR) == Decision.REJECTED_SPIKE
    assert f.update([10.2, 20.0, 30.0, 40.0, 50.0, 60.0]) == Decision.REJECTED_NOISE
    assert not f.jumping
    assert f.last_accepted.tolist() == BASE


def test_threshold_is_inclusive():
    f = primed_filter(threshold_deg=1.0)
    assert f.update([10.5, 20.5, 30.0, 40.0, 50.0, 60.0]) == Decision.ACCEPTED


def test_zero_baseline_joints_ignored():
    f = JointJumpFilter(2)
    assert f.update([90.0, 0.0]) == Decision.ACCEPTED
    # Joint 1 is still at exactly zero, so its motion does not count
    assert f.update([90.0, 45.0]) == Decision.ACCEPTED


def test_track_initialized_counts_zero_joints():
    f = JointJumpFilter(2, track_initialized=True)
    assert f.update([90.0, 0.0]) == Decision.ACCEPTED
    assert f.update([90.0, 45.0]) == Decision.REJECTED_SPIKE


def test_confirm_frames_zero_accepts_on_next_frame():
    f = primed_filter(confirm_frames=0)
    assert f.update(FAR) == Decision.REJECTED_SPIKE
    assert f.update(FAR) == Decision.CONFIRMED_JUMP


def test_reset_clears_state():
    f = primed_filter()
    f.update(FAR)
    f.reset()
    assert f.state == Tracking()
    assert not f.last_accepted.any()


def test_wrong_frame_length():
    f = JointJumpFilter(6)
    with pytest.raises(ValueError):
        f.update([1.0, 2.0])


def test_non_finite_frame_rejected_and_baseline_kept():
    f = primed_filter()
    with pytest.raises(ValueError):
        f.update([math.nan] + BASE[1:])
    assert f.last_accepted.tolist() == BASE
    assert f.state == Tracking()
    assert f.update(BASE) == Decision.ACCEPTED


def test_accepts_joint_frame():
    f = JointJumpFilter(6)
    assert f.update(JointFrame(np.array(BASE), seq=3)).accepted


def test_name_map_aliases_and_unknown():
    names = JointNameMap(["a", "b"], aliases={"urdf_a": "a"})
    assert names.index("a") == 0
    assert names.index("urdf_a") == 0
    with pytest.raises(UnknownJointError) as exc:
        names.index("z")
    assert "z" in str(exc.value)
    with pytest.raises(ValueError):
        JointNameMap(["a"], aliases={"x": "missing"})


def test_name_map_fills_missing_from_baseline(caplog):
    names = JointNameMap(["a", "b", "c"])
    msg = JointStateMessage(("c", "zzz", "a"), (math.pi, 1.0, math.pi / 2))
    with caplog.at_level(logging.WARNING, logger="scenesync"):
        frame = names.frame(msg, np.array([1.0, 2.0, 3.0]))
        names.frame(msg, np.array([1.0, 2.0, 3.0]))
    assert frame.positions_deg.tolist() == pytest.approx([90.0, 2.0, 180.0])
    assert sum("zzz" in r.getMessage() for r in caplog.records) == 1


def test_stream_forwards_only_accepted_frames():
    drive = Mock()
    names = JointNameMap(["a", "b"])
    stream = JointStream(names, JointJumpFilter(2), drive)

    rad = math.radians
    stream.handle(JointStateMessage(("a", "b"), (rad(10), rad(20))))
    stream.handle(JointStateMessage(("a", "b"), (rad(50), rad(20))))
    stream.handle(JointStateMessage(("a", "b"), (rad(10), rad(20))))
    # Partial message: joint a keeps its last accepted value
    stream.handle(JointStateMessage(("b",), (rad(20.5),)))

    assert drive.call_count == 2
    assert drive.call_args_list[0].args[0] == pytest.approx([10.0, 20.0])
    assert drive.call_args_list[1].args[0] == pytest.approx([10.0, 20.5])
    assert (stream.accepted, stream.rejected) == (2, 2)


def test_stream_rejects_mismatched_filter():
    with pytest.raises(ValueError):
        JointStream(JointNameMap(["a"]), JointJumpFilter(2), Mock())
