from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Sequence

from fest_scheduler_constraints import AssignmentEncoder, BandEncoder, ConstraintGroup, VolunteerEncoder
from fest_scheduler_logic import SatEngine, TRUE, conj
from fest_scheduler_types import (
    BandProblem,
    Diagnostic,
    ScheduleError,
    ScheduleInput,
    Solution,
    SolveResult,
    VolunteerProblem,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str, str], None]


def build_encoder(schedule_input: ScheduleInput, overrides: Optional[Dict[str, str]] = None) -> AssignmentEncoder:
    modes = dict(schedule_input.constraint_modes)
    modes.update(overrides or {})
    problem = schedule_input.problem
    if isinstance(problem, VolunteerProblem):
        return VolunteerEncoder(
            problem.volunteers,
            problem.tasks,
            problem.availability,
            problem.max_workload,
            constraint_modes=modes,
        )
    if isinstance(problem, BandProblem):
        return BandEncoder(problem.preferences, constraint_modes=modes)
    raise ScheduleError(f"Unknown problem kind: {schedule_input.kind}")


def _encode(schedule_input: ScheduleInput, overrides: Optional[Dict[str, str]] = None):
    encoder = build_encoder(schedule_input, overrides)
    engine = SatEngine(schedule_input.solver)
    groups = encoder.encode(engine)
    return encoder, engine, groups


def _is_feasible(schedule_input: ScheduleInput, overrides: Dict[str, str]) -> bool:
    _, engine, groups = _encode(schedule_input, overrides)
    return engine.solve(conj(*(group.formula for group in groups))) is not None


def _suggest_relaxations(
    schedule_input: ScheduleInput,
    encoder: AssignmentEncoder,
    rule_ids: Sequence[str],
    progress_cb: Optional[ProgressCallback] = None,
) -> List[Dict[str, object]]:
    labels = {rule.id: rule.label for rule in encoder.rules}
    candidates = [rid for rid in rule_ids if rid not in encoder.core_rules]
    suggestions: List[Dict[str, object]] = []
    for idx, rule_id in enumerate(candidates, start=1):
        if progress_cb:
            progress_cb(idx, len(candidates), rule_id, "disabled")
        verified = _is_feasible(schedule_input, {rule_id: "disabled"})
        suggestions.append({"id": rule_id, "label": labels[rule_id], "mode": "disabled", "verified": verified})
    suggestions.sort(key=lambda item: not item["verified"])
    return suggestions


def _build_diagnostic(
    schedule_input: ScheduleInput,
    encoder: AssignmentEncoder,
    engine: SatEngine,
    groups: List[ConstraintGroup],
    suggest_relaxations: bool = False,
    progress_cb: Optional[ProgressCallback] = None,
) -> Diagnostic:
    core = set(engine.explain(TRUE, [(group.id, group.formula) for group in groups]))
    conflicts = [{"id": group.id, "label": group.label} for group in groups if group.id in core]
    logger.info("Infeasible: %d constraint groups in core", len(conflicts))

    rule_ids: List[str] = []
    for group in groups:
        if (group.id in core or not core) and group.rule not in rule_ids:
            rule_ids.append(group.rule)
    suggestions = (
        _suggest_relaxations(schedule_input, encoder, rule_ids, progress_cb=progress_cb)
        if suggest_relaxations
        else []
    )
    return Diagnostic(status="INFEASIBLE", conflicting_constraints=conflicts, suggestions=suggestions)


def solve_schedule(
    schedule_input: ScheduleInput,
    suggest_relaxations: bool = False,
    progress_cb: Optional[ProgressCallback] = None,
) -> SolveResult:
    encoder, engine, groups = _encode(schedule_input)
    formula = conj(*(group.formula for group in groups))
    models = engine.enumerate_models(formula, schedule_input.num_solutions, outcome=encoder.outcome)

    if not models:
        diagnostic = _build_diagnostic(
            schedule_input,
            encoder,
            engine,
            groups,
            suggest_relaxations=suggest_relaxations,
            progress_cb=progress_cb,
        )
        return SolveResult(schedule_input.kind, [], diagnostic, schedule_input.warnings)

    solutions = [Solution(assignments=encoder.to_assignments(encoder.decode(model))) for model in models]
    logger.info("Found %d solution(s) for %s problem", len(solutions), schedule_input.kind)
    return SolveResult(schedule_input.kind, solutions, None, schedule_input.warnings)
