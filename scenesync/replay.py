"""Scenario replay: drive a SyncNode from a YAML script and record what it publishes.

A scenario has an `objects` list (the local scene's box colliders) and a
`steps` list. Each step is a one-key mapping:

    scene_objects: {ids: [a, b], replace: true}   inbound id list
    attached: {link_name: tool0, object: {id: a, operation: 0}}
    joint_states: {name: [...], position: [...]}  radians
    sync: {}                                      one synchronization pass
    move: {id: a, position: [x, y, z]}            change a local pose
    pick: a                                       pick `a` (distance defaults to 0)
    release: {}
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .bridge import SyncNode
from .config import SceneSyncConfig
from .scene import PickTarget, SceneObject
from .transport import InMemoryTransport


logger = logging.getLogger(__name__)

END_EFFECTOR = "end_effector"


class ReplayScene:
    """Dict-backed scene graph: objects by id, parents as plain handles."""

    def __init__(self, objects: List[SceneObject]) -> None:
        self.objects: Dict[str, SceneObject] = {o.object_id: o for o in objects}
        self.target: Optional[PickTarget] = None

    def reparent(self, obj: SceneObject, parent: Any) -> None:
        self.objects[obj.object_id] = replace(self.objects[obj.object_id], parent=parent)

    def refresh(self, obj: SceneObject) -> SceneObject:
        return self.objects[obj.object_id]

    def candidates(self) -> List[SceneObject]:
        return list(self.objects.values())

    def find_target(self) -> Optional[PickTarget]:
        target, self.target = self.target, None
        return target


@dataclass
class ReplayResult:
    published: List[Dict[str, Any]] = field(default_factory=list)
    drive_targets: List[List[float]] = field(default_factory=list)
    world: List[str] = field(default_factory=list)
    attached: List[str] = field(default_factory=list)


def _scene_object(spec: Dict[str, Any]) -> SceneObject:
    spec = dict(spec)
    oid = spec.pop("id")
    kwargs = {k: tuple(v) if isinstance(v, list) else v for k, v in spec.items()}
    return SceneObject(object_id=str(oid), **kwargs)


def run_scenario(config: SceneSyncConfig, scenario: Dict[str, Any]) -> ReplayResult:
    scene = ReplayScene([_scene_object(o) for o in scenario.get("objects") or []])
    transport = InMemoryTransport()
    result = ReplayResult()
    node = SyncNode(
        config,
        transport,
        drive=result.drive_targets.append,
        candidates=scene.candidates,
        scene=scene,
        find_target=scene.find_target,
        end_effector=END_EFFECTOR,
    )
    topics = config.topics

    for i, step in enumerate(scenario.get("steps") or []):
        if not isinstance(step, dict) or len(step) != 1:
            raise ValueError(f"step {i}: expected a single-key mapping, got {step!r}")
        (kind, arg), = step.items()
        if kind == "scene_objects":
            transport.deliver(topics.scene_objects, arg or {})
        elif kind == "attached":
            transport.deliver(topics.attached_collision_object, arg or {})
        elif kind == "joint_states":
            transport.deliver(topics.joint_states, arg or {})
        elif kind == "sync":
            node.synchronize()
        elif kind == "move":
            obj = scene.objects[arg["id"]]
            changes = {k: tuple(v) for k, v in arg.items() if k != "id"}
            scene.objects[obj.object_id] = replace(obj, **changes)
        elif kind == "pick":
            target_id = arg if isinstance(arg, str) else arg["id"]
            distance = 0.0 if isinstance(arg, str) else float(arg.get("distance", 0.0))
            scene.target = PickTarget(scene.objects[target_id], distance)
            logger.info("step %d: pick %s -> %s", i, target_id, node.pick().value)
        elif kind == "release":
            logger.info("step %d: release -> %s", i, node.release().value)
        else:
            raise ValueError(f"step {i}: unknown step '{kind}'")

    result.published = [{"topic": t, "msg": m.to_dict()} for t, m in transport.published]
    result.world = sorted(node.registry.world_ids())
    result.attached = sorted(node.registry.attached_ids())
    return result


def load_scenario(path: str | Path) -> Dict[str, Any]:
    data = yaml.safe_load(Path(path).read_text()) or {}
    if not isinstance(data, dict):
        raise TypeError(f"{path}: scenario must be a mapping")
    return data


__all__ = ["ReplayScene", "ReplayResult", "run_scenario", "load_scenario"]
