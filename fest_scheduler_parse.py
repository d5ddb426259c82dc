from __future__ import annotations

from typing import Dict, List, Tuple

import yaml

from fest_config import PROBLEM_KINDS, prepare_config
from fest_scheduler_constraints import CONSTRAINT_MODES, CORE_RULES_BY_KIND, RULES_BY_KIND
from fest_scheduler_types import (
    Band,
    BandProblem,
    ScheduleError,
    ScheduleInput,
    Slot,
    SolverSettings,
    Stage,
    Task,
    Time,
    Volunteer,
    VolunteerProblem,
)


def _parse_non_negative_int(value, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ScheduleError(f"{key} must be a non-negative integer.")
    return value


def _entry_name(entry, key: str) -> str:
    if isinstance(entry, dict):
        entry = entry.get("name")
    if not isinstance(entry, str) or not entry.strip():
        raise ScheduleError(f"{key} entries require a non-empty name.")
    return entry.strip()


def _check_unique(names: List[str], key: str) -> None:
    seen = set()
    for name in names:
        if name in seen:
            raise ScheduleError(f"Duplicate name in {key}: {name}")
        seen.add(name)


def _parse_volunteers(data: dict) -> List[Volunteer]:
    raw = data.get("volunteers")
    if not isinstance(raw, list):
        raise ScheduleError("volunteers must be a list.")
    names = [_entry_name(entry, "volunteers") for entry in raw]
    _check_unique(names, "volunteers")
    return [Volunteer(name) for name in names]


def _parse_tasks(data: dict) -> List[Task]:
    raw = data.get("tasks")
    if not isinstance(raw, list):
        raise ScheduleError("tasks must be a list.")
    tasks = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ScheduleError("Task entries must be mappings with 'name' and 'capacity'.")
        name = _entry_name(entry, "tasks")
        if "capacity" not in entry:
            raise ScheduleError(f"Task {name} requires 'capacity'.")
        tasks.append(Task(name, _parse_non_negative_int(entry["capacity"], f"tasks.{name}.capacity")))
    _check_unique([t.name for t in tasks], "tasks")
    return tasks


def _parse_availability(
    data: dict, volunteers: List[Volunteer], tasks: List[Task]
) -> Tuple[Dict[Volunteer, List[Task]], List[str]]:
    raw = data.get("availability") or {}
    if not isinstance(raw, dict):
        raise ScheduleError("availability must map volunteers to lists of tasks.")
    volunteer_by_name = {v.name: v for v in volunteers}
    task_by_name = {t.name: t for t in tasks}

    availability: Dict[Volunteer, List[Task]] = {}
    for name, task_names in raw.items():
        volunteer = volunteer_by_name.get(str(name))
        if volunteer is None:
            raise ScheduleError(f"Unknown volunteer in availability: {name}")
        if not isinstance(task_names, list):
            raise ScheduleError(f"availability.{name} must be a list of task names.")
        available: List[Task] = []
        for task_name in task_names:
            task = task_by_name.get(str(task_name))
            if task is None:
                raise ScheduleError(f"Unknown task in availability.{name}: {task_name}")
            if task not in available:
                available.append(task)
        availability[volunteer] = available

    warnings: List[str] = []
    for volunteer in volunteers:
        if volunteer not in availability:
            warnings.append(f"availability.{volunteer}: missing, volunteer will not be assigned")
    for task in tasks:
        candidates = sum(1 for available in availability.values() if task in available)
        if task.capacity > candidates:
            warnings.append(
                f"tasks.{task}: capacity {task.capacity} exceeds {candidates} available volunteer(s)"
            )
    return availability, warnings


def _parse_slot(entry, band: str) -> Slot:
    if isinstance(entry, dict):
        stage, time = entry.get("stage"), entry.get("time")
    elif isinstance(entry, str) and "@" in entry:
        stage, _, time = entry.partition("@")
    elif isinstance(entry, list) and len(entry) == 2:
        stage, time = entry
    else:
        raise ScheduleError(
            f"Slots in preferences.{band} must be {{stage, time}} mappings, 'Stage@Time' strings or pairs."
        )
    if stage is None or time is None or not str(stage).strip() or not str(time).strip():
        raise ScheduleError(f"Slots in preferences.{band} require both stage and time.")
    return Stage(str(stage).strip()), Time(str(time).strip())


def _parse_preferences(data: dict) -> Dict[Band, List[Slot]]:
    raw = data.get("preferences")
    if not isinstance(raw, dict):
        raise ScheduleError("preferences must map bands to lists of slots.")
    preferences: Dict[Band, List[Slot]] = {}
    for name, slots in raw.items():
        band_name = str(name).strip()
        if not band_name:
            raise ScheduleError("Band names must be non-empty.")
        if not isinstance(slots, list):
            raise ScheduleError(f"preferences.{band_name} must be a list of slots.")
        band = Band(band_name)
        if band in preferences:
            raise ScheduleError(f"Duplicate name in preferences: {band_name}")
        parsed: List[Slot] = []
        for entry in slots:
            slot = _parse_slot(entry, band_name)
            if slot not in parsed:
                parsed.append(slot)
        preferences[band] = parsed
    return preferences


def _parse_constraint_modes(data: dict, kind: str) -> Tuple[Dict[str, str], List[str]]:
    modes = data.get("constraints", {}).get("modes", {})
    known = {rule.id for rule in RULES_BY_KIND[kind]}
    core = CORE_RULES_BY_KIND[kind]
    out: Dict[str, str] = {}
    warnings: List[str] = []
    for key, value in modes.items():
        if key not in known:
            raise ScheduleError(f"Unknown constraint rule for {kind}: {key}")
        if value not in CONSTRAINT_MODES:
            raise ScheduleError(f"Unknown constraint mode for {key}: {value}")
        if key in core:
            if value == "disabled":
                warnings.append(f"constraints.modes.{key}: rule is always enforced, 'disabled' ignored")
            continue
        out[key] = value
    return out, warnings


def _parse_num_solutions(data: dict) -> int:
    value = data.get("num_solutions", 1)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ScheduleError("num_solutions must be a positive integer.")
    return value


def load_schedule_input(path: str) -> ScheduleInput:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return load_schedule_input_from_data(data)


def load_schedule_input_from_data(data: dict) -> ScheduleInput:
    if not isinstance(data, dict):
        raise ScheduleError("Input must be a mapping.")
    data, _ = prepare_config(data)

    kind = data["kind"]
    if kind not in PROBLEM_KINDS:
        raise ScheduleError(f"Unknown problem kind: {kind} (expected one of {', '.join(PROBLEM_KINDS)})")

    warnings: List[str] = []
    if kind == "volunteers":
        volunteers = _parse_volunteers(data)
        tasks = _parse_tasks(data)
        availability, availability_warnings = _parse_availability(data, volunteers, tasks)
        warnings.extend(availability_warnings)
        max_workload = _parse_non_negative_int(data.get("max_workload"), "max_workload")
        problem = VolunteerProblem(volunteers, tasks, availability, max_workload)
    else:
        problem = BandProblem(_parse_preferences(data))

    constraint_modes, mode_warnings = _parse_constraint_modes(data, kind)
    warnings.extend(mode_warnings)

    return ScheduleInput(
        kind=kind,
        problem=problem,
        num_solutions=_parse_num_solutions(data),
        constraint_modes=constraint_modes,
        solver=SolverSettings(**data["solver"]),
        warnings=tuple(warnings),
    )
