"""Propositional formulas and the CP-SAT backed satisfiability engine.

Formulas are immutable trees compared by identity. The combinators fold
boolean constants so that circuits built over literal bit-vectors collapse
to ``TRUE``/``FALSE`` before they ever reach the solver.

``SatEngine`` hands out fresh variables and compiles a formula into a
``cp_model.CpModel``: each compound sub-formula is reified into its own
boolean, memoised per node, so shared sub-trees are encoded once.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ortools.sat.python import cp_model

from fest_scheduler_types import SolverError, SolverSettings

logger = logging.getLogger(__name__)


class Formula:
    def __and__(self, other) -> "Formula":
        return conj(self, as_formula(other))

    def __rand__(self, other) -> "Formula":
        return conj(as_formula(other), self)

    def __or__(self, other) -> "Formula":
        return disj(self, as_formula(other))

    def __ror__(self, other) -> "Formula":
        return disj(as_formula(other), self)

    def __invert__(self) -> "Formula":
        return neg(self)

    def iff(self, other) -> "Formula":
        return iff(self, as_formula(other))


@dataclass(frozen=True, eq=False)
class Constant(Formula):
    value: bool

    def __repr__(self) -> str:
        return "TRUE" if self.value else "FALSE"


@dataclass(frozen=True, eq=False)
class Var(Formula):
    index: int
    name: str

    def __repr__(self) -> str:
        return self.name


@dataclass(frozen=True, eq=False)
class Not(Formula):
    operand: Formula

    def __repr__(self) -> str:
        return f"~{self.operand!r}"


@dataclass(frozen=True, eq=False)
class And(Formula):
    operands: Tuple[Formula, ...]

    def __repr__(self) -> str:
        return "(" + " & ".join(repr(f) for f in self.operands) + ")"


@dataclass(frozen=True, eq=False)
class Or(Formula):
    operands: Tuple[Formula, ...]

    def __repr__(self) -> str:
        return "(" + " | ".join(repr(f) for f in self.operands) + ")"


@dataclass(frozen=True, eq=False)
class Iff(Formula):
    left: Formula
    right: Formula

    def __repr__(self) -> str:
        return f"({self.left!r} <-> {self.right!r})"


TRUE = Constant(True)
FALSE = Constant(False)

Model = Dict[Var, bool]


def as_formula(value) -> Formula:
    if isinstance(value, Formula):
        return value
    if isinstance(value, bool):
        return TRUE if value else FALSE
    raise TypeError(f"Expected a formula or bool, got {type(value).__name__}: {value!r}")


def conj(*fs) -> Formula:
    operands: List[Formula] = []
    for f in map(as_formula, fs):
        if f is FALSE:
            return FALSE
        if f is TRUE:
            continue
        if isinstance(f, And):
            operands.extend(f.operands)
        else:
            operands.append(f)
    if not operands:
        return TRUE
    if len(operands) == 1:
        return operands[0]
    return And(tuple(operands))


def disj(*fs) -> Formula:
    operands: List[Formula] = []
    for f in map(as_formula, fs):
        if f is TRUE:
            return TRUE
        if f is FALSE:
            continue
        if isinstance(f, Or):
            operands.extend(f.operands)
        else:
            operands.append(f)
    if not operands:
        return FALSE
    if len(operands) == 1:
        return operands[0]
    return Or(tuple(operands))


def neg(f) -> Formula:
    f = as_formula(f)
    if f is TRUE:
        return FALSE
    if f is FALSE:
        return TRUE
    if isinstance(f, Not):
        return f.operand
    return Not(f)


def iff(a, b) -> Formula:
    a, b = as_formula(a), as_formula(b)
    if a is b:
        return TRUE
    if isinstance(a, Constant):
        return b if a.value else neg(b)
    if isinstance(b, Constant):
        return a if b.value else neg(a)
    return Iff(a, b)


def evaluate(f: Formula, assignment: Mapping[Var, bool]) -> bool:
    memo: Dict[int, bool] = {}

    def _eval(node: Formula) -> bool:
        key = id(node)
        if key in memo:
            return memo[key]
        if isinstance(node, Constant):
            value = node.value
        elif isinstance(node, Var):
            value = bool(assignment[node])
        elif isinstance(node, Not):
            value = not _eval(node.operand)
        elif isinstance(node, And):
            value = all(_eval(op) for op in node.operands)
        elif isinstance(node, Or):
            value = any(_eval(op) for op in node.operands)
        elif isinstance(node, Iff):
            value = _eval(node.left) == _eval(node.right)
        else:
            raise TypeError(f"Unknown formula node: {node!r}")
        memo[key] = value
        return value

    return _eval(as_formula(f))


def _full_assignment(model: Model) -> Formula:
    return conj(*(var if value else neg(var) for var, value in model.items()))


def configure_solver(settings: SolverSettings) -> cp_model.CpSolver:
    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = float(settings.max_time_seconds)
    solver.parameters.num_workers = int(settings.num_workers)
    solver.parameters.random_seed = int(settings.random_seed)
    solver.parameters.log_search_progress = bool(settings.log_search_progress)
    return solver


class _Compiler:
    def __init__(self) -> None:
        self.model = cp_model.CpModel()
        self._true = self.model.NewBoolVar("true")
        self.model.Add(self._true == 1)
        self._literals: Dict[int, Tuple[Formula, object]] = {}
        self.variables: Dict[int, Tuple[Var, cp_model.IntVar]] = {}

    def literal(self, f: Formula):
        cached = self._literals.get(id(f))
        if cached is not None:
            return cached[1]

        if isinstance(f, Constant):
            lit = self._true if f.value else self._true.Not()
        elif isinstance(f, Var):
            lit = self.model.NewBoolVar(f.name)
            self.variables[id(f)] = (f, lit)
        elif isinstance(f, Not):
            lit = self.literal(f.operand).Not()
        elif isinstance(f, And):
            parts = [self.literal(op) for op in f.operands]
            lit = self.model.NewBoolVar("and")
            self.model.AddBoolAnd(parts).OnlyEnforceIf(lit)
            self.model.AddBoolOr([p.Not() for p in parts]).OnlyEnforceIf(lit.Not())
        elif isinstance(f, Or):
            parts = [self.literal(op) for op in f.operands]
            lit = self.model.NewBoolVar("or")
            self.model.AddBoolOr(parts).OnlyEnforceIf(lit)
            self.model.AddBoolAnd([p.Not() for p in parts]).OnlyEnforceIf(lit.Not())
        elif isinstance(f, Iff):
            x, y = self.literal(f.left), self.literal(f.right)
            lit = self.model.NewBoolVar("iff")
            self.model.AddBoolOr([x.Not(), y]).OnlyEnforceIf(lit)
            self.model.AddBoolOr([x, y.Not()]).OnlyEnforceIf(lit)
            self.model.AddBoolOr([x, y]).OnlyEnforceIf(lit.Not())
            self.model.AddBoolOr([x.Not(), y.Not()]).OnlyEnforceIf(lit.Not())
        else:
            raise TypeError(f"Unknown formula node: {f!r}")

        self._literals[id(f)] = (f, lit)
        return lit

    def require(self, f: Formula) -> None:
        if isinstance(f, Constant):
            if not f.value:
                self.model.AddBoolAnd([self._true.Not()])
            return
        if isinstance(f, And):
            for op in f.operands:
                self.require(op)
            return
        if isinstance(f, Or):
            self.model.AddBoolOr([self.literal(op) for op in f.operands])
            return
        self.model.AddBoolAnd([self.literal(f)])

    def extract(self, solver: cp_model.CpSolver) -> Model:
        return {var: bool(solver.BooleanValue(lit)) for var, lit in self.variables.values()}

    def log_size(self) -> None:
        proto = self.model.Proto()
        logger.debug(
            "Compiled formula: %d CP-SAT variables, %d constraints, %d problem variables",
            len(proto.variables),
            len(proto.constraints),
            len(self.variables),
        )


class SatEngine:
    """Fresh-variable allocator plus ``solve`` over a single variable namespace."""

    def __init__(self, settings: Optional[SolverSettings] = None) -> None:
        self.settings = settings or SolverSettings()
        self._counter = itertools.count()

    def var(self, hint: Optional[str] = None) -> Var:
        index = next(self._counter)
        return Var(index, f"{hint or 'x'}#{index}")

    def _run(self, compiler: _Compiler, solver: cp_model.CpSolver) -> bool:
        status = solver.Solve(compiler.model)
        logger.info("CP-SAT status %s in %.3fs", solver.StatusName(status), solver.WallTime())
        if status in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            return True
        if status == cp_model.INFEASIBLE:
            return False
        raise SolverError(f"SAT engine returned {solver.StatusName(status)}")

    def solve(self, formula: Formula) -> Optional[Model]:
        compiler = _Compiler()
        compiler.require(as_formula(formula))
        compiler.log_size()
        solver = configure_solver(self.settings)
        if not self._run(compiler, solver):
            return None
        return compiler.extract(solver)

    def enumerate_models(
        self,
        formula: Formula,
        limit: int,
        outcome: Optional[Callable[[Model], Formula]] = None,
    ) -> List[Model]:
        """Return up to ``limit`` models with pairwise different outcomes.

        ``outcome`` maps a model to a formula describing what the caller reads
        from it; later models must falsify it. By default the outcome is the
        full assignment of every variable in ``formula``. A solver failure
        after the first model ends the search with the models found so far.
        """
        outcome = outcome or _full_assignment
        compiler = _Compiler()
        compiler.require(as_formula(formula))
        compiler.log_size()
        solver = configure_solver(self.settings)
        models: List[Model] = []
        while len(models) < limit:
            try:
                found = self._run(compiler, solver)
            except SolverError as exc:
                if not models:
                    raise
                logger.warning("Stopped after %d model(s): %s", len(models), exc)
                break
            if not found:
                break
            model = compiler.extract(solver)
            models.append(model)
            blocking = neg(outcome(model))
            if blocking is FALSE:
                break
            compiler.require(blocking)
        return models

    def explain(self, formula: Formula, groups: Iterable[Tuple[str, Formula]]) -> List[str]:
        """Ids of guarded groups in a sufficient core for infeasibility, or ``[]`` if feasible."""
        compiler = _Compiler()
        compiler.require(as_formula(formula))
        by_index: Dict[int, str] = {}
        for group_id, group_formula in groups:
            assumption = compiler.model.NewBoolVar(f"a_{group_id}")
            compiler.model.AddImplication(assumption, compiler.literal(as_formula(group_formula)))
            compiler.model.AddAssumption(assumption)
            by_index[assumption.Index()] = group_id
        compiler.log_size()
        # Assumption cores are reported by the single-worker search only.
        solver = configure_solver(replace(self.settings, num_workers=1))
        if self._run(compiler, solver):
            return []
        core: List[str] = []
        for lit in solver.SufficientAssumptionsForInfeasibility():
            group_id = by_index.get(abs(int(lit)))
            if group_id is not None and group_id not in core:
                core.append(group_id)
        return core
