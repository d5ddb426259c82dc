from __future__ import annotations

from typing import Sequence, Set, Tuple

from fest_scheduler_arithmetic import Bits, add, const_less_equal, less_equal_const
from fest_scheduler_logic import FALSE, Formula, Iff, Not, SatEngine, Var, conj


def ordered(auxiliaries: Set[Formula]) -> Tuple[Formula, ...]:
    """Auxiliaries in allocation order of the variable each one defines."""

    # An auxiliary folds to ``iff(v, e)``, ``v`` or ``~v`` for its fresh variable ``v``.
    def _key(f: Formula) -> int:
        if isinstance(f, Iff):
            f = f.left
        if isinstance(f, Not):
            f = f.operand
        if isinstance(f, Var):
            return f.index
        raise TypeError(f"Not an adder auxiliary: {f!r}")

    return tuple(sorted(auxiliaries, key=_key))


def count_true(fs: Sequence[Formula], engine: SatEngine) -> Tuple[Bits, Set[Formula]]:
    """Bit-vector counting how many of ``fs`` hold, plus the adder auxiliaries.

    After ``i`` additions the count is at most ``i``, so everything above
    ``i.bit_length()`` bits is forced to zero by the auxiliaries and can be
    dropped from the running total.
    """
    total: Bits = [FALSE]
    auxiliaries: Set[Formula] = set()
    for i, f in enumerate(fs, start=1):
        total, extra = add(total, [f], engine)
        auxiliaries |= extra
        total = total[-i.bit_length():]
    return total, auxiliaries


def at_most(fs: Sequence[Formula], k: int, engine: SatEngine) -> Formula:
    count, auxiliaries = count_true(fs, engine)
    return conj(less_equal_const(count, k), *ordered(auxiliaries))


def at_least(fs: Sequence[Formula], k: int, engine: SatEngine) -> Formula:
    count, auxiliaries = count_true(fs, engine)
    return conj(const_less_equal(k, count), *ordered(auxiliaries))


def exactly(fs: Sequence[Formula], k: int, engine: SatEngine) -> Formula:
    # Both directions of <= assert equality without a dedicated circuit.
    count, auxiliaries = count_true(fs, engine)
    return conj(less_equal_const(count, k), const_less_equal(k, count), *ordered(auxiliaries))
