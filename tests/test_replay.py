import json
import sys
import textwrap
from pathlib import Path

import pytest

import scenesync
from scenesync.config import SceneSyncConfig
from scenesync.replay import load_scenario, run_scenario


TEMPLATES = Path(scenesync.__file__).parent / "templates"


def test_bundled_scenario_message_sequence():
    result = run_scenario(SceneSyncConfig(), load_scenario(TEMPLATES / "pick_place_scenario.yaml"))

    seq = []
    for entry in result.published:
        msg = entry["msg"]
        if entry["topic"] == "/collision_object":
            seq.append((msg["id"], msg["operation"]))
        else:
            seq.append((msg["object"]["id"], "attach" if msg["object"]["operation"] == 0 else "detach"))

    # The default config filters no robot layers, so gripper_pad is published too
    assert seq[:3] == [("table", 0), ("cube1", 0), ("gripper_pad", 0)]
    pick = seq.index(("cube1", "attach"))
    assert seq[pick - 1] == ("cube1", 1)
    release = seq.index(("cube1", "detach"))
    assert seq[release + 1] == ("cube1", 0)
    assert result.world == ["cube1", "table"]
    assert result.attached == []
    assert len(result.drive_targets) == 1


def test_release_pose_follows_move():
    scenario = {
        "objects": [{"id": "c", "half_extents": [0.02, 0.02, 0.02]}],
        "steps": [
            {"pick": "c"},
            {"move": {"id": "c", "position": [1.0, 2.0, 3.0]}},
            {"release": {}},
        ],
    }
    result = run_scenario(SceneSyncConfig(), scenario)
    add = result.published[-1]["msg"]
    assert add["operation"] == 0
    assert add["pose"]["position"] == {"x": 3.0, "y": -1.0, "z": 2.0}


def test_pick_out_of_reach_publishes_nothing():
    scenario = {
        "objects": [{"id": "c", "half_extents": [0.02, 0.02, 0.02]}],
        "steps": [{"pick": {"id": "c", "distance": 5.0}}],
    }
    assert run_scenario(SceneSyncConfig(), scenario).published == []


def test_unknown_step_rejected():
    with pytest.raises(ValueError):
        run_scenario(SceneSyncConfig(), {"steps": [{"teleport": {}}]})
    with pytest.raises(ValueError):
        run_scenario(SceneSyncConfig(), {"steps": [{"sync": {}, "pick": "a"}]})


def test_load_scenario_rejects_non_mapping(tmp_path):
    path = tmp_path / "s.yaml"
    path.write_text("- sync: {}\n")
    with pytest.raises(TypeError):
        load_scenario(path)


def test_cli_replay_prints_json_lines(tmp_path, monkeypatch, capsys):
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("obstacles:\n  robot_layers: [8]\n")
    scenario = tmp_path / "s.yaml"
    scenario.write_text(textwrap.dedent(
        """
        objects:
          - id: box
          - id: arm
            layer: 8
        steps:
          - sync: {}
        """
    ))
    monkeypatch.setattr(sys, "argv", ["scenesync", "replay", str(scenario), "--config", str(cfg)])
    scenesync.main()
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 1
    entry = json.loads(lines[0])
    assert entry["topic"] == "/collision_object"
    assert entry["msg"]["id"] == "box"


def test_cli_replay_bad_scenario_exits_nonzero(tmp_path, monkeypatch):
    scenario = tmp_path / "s.yaml"
    scenario.write_text("steps:\n  - fly: {}\n")
    monkeypatch.setattr(sys, "argv", ["scenesync", "replay", str(scenario)])
    with pytest.raises(SystemExit) as exc:
        scenesync.main()
    assert exc.value.code == 1


def test_cli_init_copies_templates(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(sys, "argv", ["scenesync", "init"])
    scenesync.main()
    copied = sorted(p.name for p in (tmp_path / "configs").glob("*.yaml"))
    assert copied == ["default.yaml", "pick_place_scenario.yaml"]
