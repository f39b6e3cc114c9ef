import pytest

from scenesync.errors import MalformedMessageError
from scenesync.messages import (
    AttachEvent,
    AttachOperation,
    AttachUpdate,
    BoxGeometry,
    CollisionOperation,
    CollisionUpdate,
    JointStateMessage,
    SceneObjectsSnapshot,
)


BOX = BoxGeometry((1.0, 2.0, 3.0), (0.0, 0.0, 0.0, 1.0), (0.1, 0.2, 0.3))


def test_add_update_wire_layout():
    msg = CollisionUpdate("cube1", CollisionOperation.ADD, BOX, frame_id="base_link").to_dict()
    assert msg["header"] == {"frame_id": "base_link"}
    assert msg["id"] == "cube1"
    assert msg["operation"] == 0
    assert msg["pose"]["position"] == {"x": 1.0, "y": 2.0, "z": 3.0}
    assert msg["pose"]["orientation"] == {"x": 0.0, "y": 0.0, "z": 0.0, "w": 1.0}
    assert msg["primitives"] == [{"type": 1, "dimensions": [0.1, 0.2, 0.3]}]
    assert msg["primitive_poses"][0]["orientation"]["w"] == 1.0
    assert msg["primitive_poses"][0]["position"] == {"x": 0.0, "y": 0.0, "z": 0.0}


def test_move_uses_moveit_code():
    assert CollisionUpdate("a", CollisionOperation.MOVE, BOX).to_dict()["operation"] == 3


def test_remove_has_no_geometry():
    msg = CollisionUpdate("a", CollisionOperation.REMOVE).to_dict()
    assert msg["operation"] == 1
    assert "pose" not in msg and "primitives" not in msg


def test_tagged_union_payload_rules():
    with pytest.raises(MalformedMessageError):
        CollisionUpdate("a", CollisionOperation.ADD)
    with pytest.raises(MalformedMessageError):
        CollisionUpdate("a", CollisionOperation.REMOVE, BOX)
    with pytest.raises(MalformedMessageError):
        CollisionUpdate("", CollisionOperation.REMOVE)
    with pytest.raises(MalformedMessageError):
        AttachUpdate("", "a", AttachOperation.ATTACH)


def test_attach_update_wire_layout():
    assert AttachUpdate("tool0", "a", AttachOperation.ATTACH).to_dict() == {
        "link_name": "tool0", "object": {"id": "a", "operation": 0},
    }
    assert AttachUpdate("tool0", "a", AttachOperation.DETACH).to_dict()["object"]["operation"] == 1


def test_snapshot_parsing():
    snap = SceneObjectsSnapshot.from_dict({"ids": ["a", "b"], "replace": True})
    assert snap.ids == ("a", "b")
    assert snap.replace is True
    assert SceneObjectsSnapshot.from_dict({}).ids == ()
    assert SceneObjectsSnapshot.from_dict({"ids": ["a"]}).replace is None


@pytest.mark.parametrize("payload", [
    {"ids": "abc"},
    {"ids": ["a"], "replace": "yes"},
    ["a", "b"],
])
def test_snapshot_rejects_malformed(payload):
    with pytest.raises(MalformedMessageError):
        SceneObjectsSnapshot.from_dict(payload)


def test_attach_event_parsing():
    evt = AttachEvent.from_dict({"link_name": "tool0", "object": {"id": "a", "operation": 0}})
    assert evt == AttachEvent("a", "tool0", AttachOperation.ATTACH)
    evt = AttachEvent.from_dict({"link_name": "tool0", "object": {"id": "a", "operation": 1}})
    assert evt.operation == AttachOperation.DETACH


@pytest.mark.parametrize("payload", [
    {"link_name": "tool0", "object": {"id": "", "operation": 0}},
    {"link_name": "tool0", "object": {"operation": 0}},
    {"link_name": "tool0", "object": {"id": "a", "operation": 3}},
    {"link_name": "tool0", "object": {"id": "a", "operation": "x"}},
    {"link_name": "tool0"},
])
def test_attach_event_rejects_malformed(payload):
    with pytest.raises(MalformedMessageError):
        AttachEvent.from_dict(payload)


def test_joint_state_parsing():
    msg = JointStateMessage.from_dict({"name": ["j1", "j2"], "position": [0.1, 0.2]}, seq=7)
    assert msg.names == ("j1", "j2")
    assert msg.positions_rad == (0.1, 0.2)
    assert msg.seq == 7


def test_joint_state_length_mismatch():
    with pytest.raises(MalformedMessageError):
        JointStateMessage.from_dict({"name": ["j1", "j2"], "position": [0.1]})


@pytest.mark.parametrize("value", [float("nan"), float("inf"), "-inf"])
def test_joint_state_rejects_non_finite(value):
    with pytest.raises(MalformedMessageError):
        JointStateMessage.from_dict({"name": ["j1", "j2"], "position": [0.1, value]})
