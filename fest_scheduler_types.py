from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Volunteer:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Task:
    """A festival task; ``capacity`` is the exact number of volunteers it needs."""

    name: str
    capacity: int

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Band:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Stage:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Time:
    time: str

    def __str__(self) -> str:
        return self.time


Slot = Tuple[Stage, Time]


@dataclass(frozen=True)
class SolverSettings:
    max_time_seconds: float = 60.0
    num_workers: int = 8
    random_seed: int = 0
    log_search_progress: bool = False


@dataclass(frozen=True)
class VolunteerProblem:
    volunteers: List[Volunteer]
    tasks: List[Task]
    availability: Dict[Volunteer, List[Task]]
    max_workload: int


@dataclass(frozen=True)
class BandProblem:
    preferences: Dict[Band, List[Slot]]


Problem = Union[VolunteerProblem, BandProblem]


@dataclass(frozen=True)
class ScheduleInput:
    kind: str
    problem: Problem
    num_solutions: int = 1
    constraint_modes: Dict[str, str] = field(default_factory=dict)
    solver: SolverSettings = field(default_factory=SolverSettings)
    warnings: Tuple[str, ...] = ()


@dataclass
class Solution:
    assignments: Dict[str, object]


@dataclass
class Diagnostic:
    status: str
    conflicting_constraints: List[Dict[str, str]]
    suggestions: List[Dict[str, object]]


@dataclass
class SolveResult:
    kind: str
    solutions: List[Solution]
    diagnostic: Optional[Diagnostic] = None
    warnings: Tuple[str, ...] = ()


class ScheduleError(Exception):
    pass


class SolverError(Exception):
    """The SAT engine could not decide the instance (time limit, invalid model)."""
