from __future__ import annotations

import logging
from dataclasses import dataclass
from itertools import combinations
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from fest_scheduler_cardinality import at_most, exactly
from fest_scheduler_logic import Formula, Model, SatEngine, Var, conj, disj, neg
from fest_scheduler_types import (
    Band,
    Slot,
    SolverError,
    SolverSettings,
    Task,
    Volunteer,
)

logger = logging.getLogger(__name__)

CONSTRAINT_MODES = ("always", "disabled")


@dataclass(frozen=True)
class ConstraintGroup:
    id: str
    rule: str
    label: str
    formula: Formula


@dataclass(frozen=True)
class RuleSpec:
    id: str
    label: str
    build: Callable[["AssignmentEncoder", SatEngine], List[ConstraintGroup]]


def _holds(model: Model, var: Var) -> bool:
    return bool(model.get(var, False))


def _slot_label(slot: Slot) -> str:
    stage, time = slot
    return f"{stage}@{time}"


class AssignmentEncoder:
    """Variables, rule groups, solve, decode.

    Subclasses choose the variable keys, the rules and how a model turns
    back into an assignment. Rules listed in ``core_rules`` ignore a
    ``disabled`` mode because decoding relies on them.
    """

    kind = ""
    rules: Sequence[RuleSpec] = ()
    core_rules: frozenset = frozenset()

    def __init__(self, constraint_modes: Optional[Mapping[str, str]] = None) -> None:
        self.constraint_modes = dict(constraint_modes or {})
        self.variables: Dict[Tuple[object, object], Var] = {}

    def rule_mode(self, rule: RuleSpec) -> str:
        if rule.id in self.core_rules:
            return "always"
        return self.constraint_modes.get(rule.id, "always")

    def active_rules(self) -> List[RuleSpec]:
        return [rule for rule in self.rules if self.rule_mode(rule) != "disabled"]

    def build_variables(self, engine: SatEngine) -> Dict[Tuple[object, object], Var]:
        raise NotImplementedError

    def decode(self, model: Model):
        raise NotImplementedError

    def to_assignments(self, decoded) -> Dict[str, object]:
        raise NotImplementedError

    def outcome(self, model: Model) -> Formula:
        """Formula that holds exactly for the models ``decode`` maps to the same assignment."""
        raise NotImplementedError

    def encode(self, engine: SatEngine) -> List[ConstraintGroup]:
        self.variables = self.build_variables(engine)
        groups: List[ConstraintGroup] = []
        for rule in self.active_rules():
            built = rule.build(self, engine)
            logger.debug("%s rule %s: %d groups", self.kind, rule.id, len(built))
            groups.extend(built)
        return groups

    def solve(self, settings: Optional[SolverSettings] = None):
        engine = SatEngine(settings)
        groups = self.encode(engine)
        model = engine.solve(conj(*(group.formula for group in groups)))
        if model is None:
            return None
        return self.decode(model)


# --- volunteers -> tasks -------------------------------------------------


def _volunteer_availability(enc: "VolunteerEncoder", engine: SatEngine) -> List[ConstraintGroup]:
    groups = []
    for v in enc.volunteers:
        available = set(enc.availability.get(v, ()))
        formula = conj(*(neg(enc.variables[(v, t)]) for t in enc.tasks if t not in available))
        groups.append(
            ConstraintGroup(f"availability:{v}", "availability", f"{v} only takes tasks they signed up for", formula)
        )
    return groups


def _volunteer_workload(enc: "VolunteerEncoder", engine: SatEngine) -> List[ConstraintGroup]:
    groups = []
    for v in enc.volunteers:
        formula = at_most([enc.variables[(v, t)] for t in enc.tasks], enc.max_workload, engine)
        groups.append(
            ConstraintGroup(f"workload:{v}", "workload", f"{v} takes at most {enc.max_workload} tasks", formula)
        )
    return groups


def _task_capacity(enc: "VolunteerEncoder", engine: SatEngine) -> List[ConstraintGroup]:
    groups = []
    for t in enc.tasks:
        formula = exactly([enc.variables[(v, t)] for v in enc.volunteers], t.capacity, engine)
        groups.append(
            ConstraintGroup(f"task_capacity:{t}", "task_capacity", f"{t} is staffed by exactly {t.capacity}", formula)
        )
    return groups


VOLUNTEER_RULES: List[RuleSpec] = [
    RuleSpec("availability", "Volunteers only get tasks they are available for", _volunteer_availability),
    RuleSpec("workload", "Maximum workload per volunteer", _volunteer_workload),
    RuleSpec("task_capacity", "Tasks filled exactly to capacity", _task_capacity),
]


class VolunteerEncoder(AssignmentEncoder):
    kind = "volunteers"
    rules = VOLUNTEER_RULES

    def __init__(
        self,
        volunteers: Sequence[Volunteer],
        tasks: Sequence[Task],
        availability: Mapping[Volunteer, Sequence[Task]],
        max_workload: int,
        constraint_modes: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(constraint_modes)
        self.volunteers = list(volunteers)
        self.tasks = list(tasks)
        self.availability = availability
        self.max_workload = max_workload

    def build_variables(self, engine: SatEngine) -> Dict[Tuple[object, object], Var]:
        return {(v, t): engine.var(f"{v.name} {t.name}") for v in self.volunteers for t in self.tasks}

    def decode(self, model: Model) -> Dict[Task, List[Volunteer]]:
        return {
            t: [v for v in self.volunteers if _holds(model, self.variables[(v, t)])]
            for t in self.tasks
        }

    def to_assignments(self, decoded: Dict[Task, List[Volunteer]]) -> Dict[str, object]:
        return {t.name: [v.name for v in assigned] for t, assigned in decoded.items()}

    def outcome(self, model: Model) -> Formula:
        # Variables missing from the model are read as False whatever the solver picks.
        return conj(
            *(
                var if model[var] else neg(var)
                for var in self.variables.values()
                if var in model
            )
        )


# --- bands -> slots ------------------------------------------------------


def _band_preference(enc: "BandEncoder", engine: SatEngine) -> List[ConstraintGroup]:
    return [
        ConstraintGroup(
            f"band_preference:{b}",
            "band_preference",
            f"{b} plays in one of its preferred slots",
            disj(*(enc.variables[(b, s)] for s in enc.preferences[b])),
        )
        for b in enc.bands
    ]


def _band_listed_slots(enc: "BandEncoder", engine: SatEngine) -> List[ConstraintGroup]:
    groups = []
    for b in enc.bands:
        preferred = set(enc.preferences[b])
        formula = conj(*(neg(enc.variables[(b, s)]) for s in enc.slots if s not in preferred))
        groups.append(
            ConstraintGroup(f"band_listed_slots:{b}", "band_listed_slots", f"{b} only plays in slots it asked for", formula)
        )
    return groups


def _band_plays_once(enc: "BandEncoder", engine: SatEngine) -> List[ConstraintGroup]:
    groups = []
    for b in enc.bands:
        formula = conj(
            *(
                disj(neg(enc.variables[(b, s1)]), neg(enc.variables[(b, s2)]))
                for s1, s2 in combinations(enc.slots, 2)
            )
        )
        groups.append(ConstraintGroup(f"band_plays_once:{b}", "band_plays_once", f"{b} plays at most once", formula))
    return groups


def _slot_used_once(enc: "BandEncoder", engine: SatEngine) -> List[ConstraintGroup]:
    groups = []
    for s in enc.slots:
        formula = conj(
            *(
                disj(neg(enc.variables[(b1, s)]), neg(enc.variables[(b2, s)]))
                for b1, b2 in combinations(enc.bands, 2)
            )
        )
        label = _slot_label(s)
        groups.append(ConstraintGroup(f"slot_used_once:{label}", "slot_used_once", f"{label} hosts one band", formula))
    return groups


BAND_RULES: List[RuleSpec] = [
    RuleSpec("band_preference", "Bands play in a preferred slot", _band_preference),
    RuleSpec("band_listed_slots", "Bands never play outside their preferred slots", _band_listed_slots),
    RuleSpec("band_plays_once", "Each band plays at most once", _band_plays_once),
    RuleSpec("slot_used_once", "Each slot hosts at most one band", _slot_used_once),
]


def all_slots(preferences: Mapping[Band, Sequence[Slot]]) -> List[Slot]:
    """Every slot named in ``preferences``, in first-seen order."""
    seen: Dict[Slot, None] = {}
    for slots in preferences.values():
        for slot in slots:
            seen.setdefault(slot, None)
    return list(seen)


class BandEncoder(AssignmentEncoder):
    kind = "bands"
    rules = BAND_RULES
    core_rules = frozenset({"band_preference", "band_listed_slots"})

    def __init__(
        self,
        preferences: Mapping[Band, Sequence[Slot]],
        constraint_modes: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(constraint_modes)
        self.preferences = preferences
        self.bands = list(preferences)
        self.slots = all_slots(preferences)

    def build_variables(self, engine: SatEngine) -> Dict[Tuple[object, object], Var]:
        return {(b, s): engine.var(f"{b.name} {_slot_label(s)}") for b in self.bands for s in self.slots}

    def _chosen(self, model: Model, band: Band) -> Optional[Slot]:
        for s in self.preferences[band]:
            if _holds(model, self.variables[(band, s)]):
                return s
        return None

    def decode(self, model: Model) -> Dict[Band, Slot]:
        plan: Dict[Band, Slot] = {}
        for b in self.bands:
            chosen = self._chosen(model, b)
            if chosen is None:
                raise SolverError(f"Model leaves band {b} without a slot.")
            plan[b] = chosen
        return plan

    def outcome(self, model: Model) -> Formula:
        # A band's decoded slot is its first held preference, so earlier preferences must stay off.
        parts: List[Formula] = []
        for b in self.bands:
            for s in self.preferences[b]:
                var = self.variables[(b, s)]
                if _holds(model, var):
                    parts.append(var)
                    break
                if var in model:
                    parts.append(neg(var))
        return conj(*parts)

    def to_assignments(self, decoded: Dict[Band, Slot]) -> Dict[str, object]:
        return {
            band.name: {"stage": stage.name, "time": time.time}
            for band, (stage, time) in decoded.items()
        }


RULES_BY_KIND: Dict[str, List[RuleSpec]] = {
    VolunteerEncoder.kind: VOLUNTEER_RULES,
    BandEncoder.kind: BAND_RULES,
}

CORE_RULES_BY_KIND: Dict[str, frozenset] = {
    VolunteerEncoder.kind: VolunteerEncoder.core_rules,
    BandEncoder.kind: BandEncoder.core_rules,
}


def schedule(
    volunteers: Sequence[Volunteer],
    tasks: Sequence[Task],
    availability: Mapping[Volunteer, Sequence[Task]],
    max_workload: int,
    settings: Optional[SolverSettings] = None,
) -> Optional[Dict[Task, List[Volunteer]]]:
    """Assign volunteers to tasks.

    Every task gets exactly ``capacity`` volunteers, each volunteer takes at
    most ``max_workload`` tasks and only tasks listed in ``availability``.
    Returns ``None`` when no complete assignment exists.
    """
    return VolunteerEncoder(volunteers, tasks, availability, max_workload).solve(settings)


def plan(
    preferences: Mapping[Band, Sequence[Slot]],
    settings: Optional[SolverSettings] = None,
) -> Optional[Dict[Band, Slot]]:
    """Give each band one of its preferred slots, no slot shared.

    Returns ``None`` unless every band can be placed.
    """
    return BandEncoder(preferences).solve(settings)
