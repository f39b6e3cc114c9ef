"""scenesync: keeps a simulated workspace in step with a MoveIt planning scene."""

from __future__ import annotations

import argparse
import json
import shutil
from pathlib import Path

from .bridge import SyncNode
from .config import SceneSyncConfig
from .logging_utils import setup_logging
from .registry import Registry
from .transport import InMemoryTransport


__all__ = [
    "__version__",
    "main",
    "SceneSyncConfig",
    "SyncNode",
    "Registry",
    "InMemoryTransport",
]

__version__ = "0.1.0"


def cmd_init() -> None:
    """Copy template config files to the current directory."""
    here = Path(__file__).resolve().parent
    src = here / "templates"
    dst = Path.cwd() / "configs"
    dst.mkdir(parents=True, exist_ok=True)
    for f in src.glob("*.yaml"):
        out = dst / f.name
        if not out.exists():
            shutil.copy(f, out)
    print(f"Templates copied to {dst}")


def cmd_replay(config_path: str | None, scenario_path: str, debug: bool, quiet_sync: bool = False) -> int:
    """Replay a scenario and print every published message as a JSON line."""
    from .replay import load_scenario, run_scenario

    logger = setup_logging(debug, quiet_sync=quiet_sync)
    try:
        cfg = SceneSyncConfig.from_yaml(config_path) if config_path else SceneSyncConfig()
        result = run_scenario(cfg, load_scenario(scenario_path))
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Scenario failed: {e}")
        return 1
    for entry in result.published:
        print(json.dumps(entry, sort_keys=True))
    logger.info(
        "Replay done: %d messages, %d drive targets, world=%s attached=%s",
        len(result.published), len(result.drive_targets), result.world, result.attached,
    )
    return 0


def main() -> None:
    """Main entry point for the scenesync CLI."""
    parser = argparse.ArgumentParser(
        prog="scenesync",
        description="Planning-scene synchronization tools",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_init = sub.add_parser("init", help="Copy template config files")
    p_init.set_defaults(func=lambda args: cmd_init())

    p_replay = sub.add_parser(
        "replay",
        help="Replay a YAML scenario through the sync core and dump outbound messages",
    )
    p_replay.add_argument("scenario", help="Path to YAML scenario")
    p_replay.add_argument("--config", help="Path to YAML config (defaults if omitted)")
    p_replay.add_argument("--debug", action="store_true", help="Enable debug logging")
    p_replay.add_argument("--quiet-sync", action="store_true", help="Hide per-pass synchronizer logs")
    p_replay.set_defaults(func=lambda args: cmd_replay(args.config, args.scenario, args.debug, args.quiet_sync))

    args = parser.parse_args()
    rc = args.func(args)
    if rc:
        raise SystemExit(rc)
