from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Tuple

import yaml

logger = logging.getLogger(__name__)

PROBLEM_KINDS = ["volunteers", "bands"]

CURRENT_SCHEMA_VERSION = 2

DEFAULT_SOLVER = {
    "max_time_seconds": 60.0,
    "num_workers": 8,
    "random_seed": 0,
    "log_search_progress": False,
}

DEFAULT_VOLUNTEERS = ["Alice", "Bruno", "Chiara", "Dmitri"]
DEFAULT_TASKS = [
    {"name": "Bar", "capacity": 2},
    {"name": "Security", "capacity": 1},
    {"name": "Cleanup", "capacity": 1},
]
DEFAULT_AVAILABILITY = {
    "Alice": ["Bar", "Cleanup"],
    "Bruno": ["Bar", "Security"],
    "Chiara": ["Security", "Cleanup"],
    "Dmitri": ["Bar"],
}
DEFAULT_MAX_WORKLOAD = 1

DEFAULT_PREFERENCES = {
    "The Rivets": [{"stage": "Main", "time": "20:00"}, {"stage": "Tent", "time": "20:00"}],
    "Lune": [{"stage": "Main", "time": "20:00"}],
    "Kitchen Sink": [{"stage": "Tent", "time": "20:00"}, {"stage": "Main", "time": "22:00"}],
}


def default_config() -> dict:
    default_path = Path(__file__).with_name("fest-scheduler.yml")
    if default_path.exists():
        try:
            loaded = yaml.safe_load(default_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Ignoring unreadable %s: %s", default_path, exc)
        else:
            if isinstance(loaded, dict):
                return loaded

    return {
        "schema_version": CURRENT_SCHEMA_VERSION,
        "kind": "volunteers",
        "max_workload": DEFAULT_MAX_WORKLOAD,
        "volunteers": list(DEFAULT_VOLUNTEERS),
        "tasks": [dict(task) for task in DEFAULT_TASKS],
        "availability": {name: list(tasks) for name, tasks in DEFAULT_AVAILABILITY.items()},
        "preferences": {band: [dict(slot) for slot in slots] for band, slots in DEFAULT_PREFERENCES.items()},
        "num_solutions": 1,
        "constraints": {"modes": {}},
        "solver": dict(DEFAULT_SOLVER),
    }


def migrate_config(cfg: Any) -> dict:
    if not isinstance(cfg, dict):
        cfg = {}

    version_raw = cfg.get("schema_version", 0)
    try:
        version = int(version_raw)
    except (TypeError, ValueError):
        version = 0

    # Files from a newer schema are kept as-is.
    if version > CURRENT_SCHEMA_VERSION:
        cfg["schema_version"] = version
        return cfg

    # v0 -> v1: introduce schema_version.
    if version < 1:
        version = 1

    # v1 -> v2: solver knobs moved from the top level into the "solver" section.
    if version < 2:
        solver = cfg.get("solver") if isinstance(cfg.get("solver"), dict) else {}
        for key in ("max_time_seconds", "num_workers"):
            if key in cfg:
                solver.setdefault(key, cfg.pop(key))
        if solver:
            cfg["solver"] = solver
        version = 2

    cfg["schema_version"] = CURRENT_SCHEMA_VERSION
    return cfg


def _infer_kind(cfg: dict) -> Tuple[str, bool]:
    kind = cfg.get("kind")
    if isinstance(kind, str) and kind.strip():
        return kind.strip().lower(), True
    if "preferences" in cfg and not ("tasks" in cfg or "volunteers" in cfg):
        return "bands", True
    if "tasks" in cfg or "volunteers" in cfg:
        return "volunteers", True
    return "volunteers", False


def _coerce_int(value, default: int, *, min_value: int = 0) -> int:
    try:
        out = int(value)
    except (TypeError, ValueError):
        out = int(default)
    return max(int(min_value), out)


def _coerce_float(value, default: float, *, min_value: float = 0.0) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        out = float(default)
    return max(float(min_value), out)


def _normalize_solver(value: Any) -> dict:
    if not isinstance(value, dict):
        value = {}
    return {
        "max_time_seconds": _coerce_float(
            value.get("max_time_seconds"), DEFAULT_SOLVER["max_time_seconds"], min_value=0.001
        ),
        "num_workers": _coerce_int(value.get("num_workers"), DEFAULT_SOLVER["num_workers"], min_value=1),
        "random_seed": _coerce_int(value.get("random_seed"), DEFAULT_SOLVER["random_seed"]),
        "log_search_progress": bool(value.get("log_search_progress", DEFAULT_SOLVER["log_search_progress"])),
    }


def normalize_config(cfg: Any) -> Tuple[dict, bool]:
    cfg = migrate_config(copy.deepcopy(cfg))

    kind, ok = _infer_kind(cfg)
    cfg["kind"] = kind
    cfg.setdefault("num_solutions", 1)

    if kind == "volunteers":
        cfg.setdefault("volunteers", [])
        cfg.setdefault("tasks", [])
        cfg.setdefault("availability", {})
        cfg.setdefault("max_workload", DEFAULT_MAX_WORKLOAD)
    elif kind == "bands":
        cfg.setdefault("preferences", {})

    constraints = cfg.setdefault("constraints", {})
    if not isinstance(constraints, dict):
        constraints = {}
        cfg["constraints"] = constraints
    if not isinstance(constraints.get("modes"), dict):
        constraints["modes"] = {}

    cfg["solver"] = _normalize_solver(cfg.get("solver"))
    return cfg, ok


def prepare_config(cfg: Any) -> Tuple[dict, bool]:
    return normalize_config(cfg)
