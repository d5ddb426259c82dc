"""Non-negative integers as big-endian bit-vectors of formulas.

The head of every bit-vector is the most significant bit. Circuits pad the
shorter operand with ``FALSE`` on the most significant side before lining
bits up.
"""

from __future__ import annotations

from typing import List, Sequence, Set, Tuple

from fest_scheduler_logic import FALSE, TRUE, Constant, Formula, SatEngine, as_formula, conj, disj, iff, neg

Bits = List[Formula]


def int_to_bits(n: int) -> Bits:
    """Canonical binary form of ``n``: no leading zeros, ``[FALSE]`` for zero."""
    if n < 0:
        raise ValueError(f"Cannot encode negative integer {n} as a bit-vector.")
    if n == 0:
        return [FALSE]
    bits: Bits = []
    while n:
        bits.append(TRUE if n & 1 else FALSE)
        n >>= 1
    bits.reverse()
    return bits


def bits_to_int(bits: Sequence) -> int:
    value = 0
    for bit in bits:
        if isinstance(bit, Constant):
            bit = bit.value
        if not isinstance(bit, bool):
            raise ValueError(f"bits_to_int needs literal booleans, got {bit!r}")
        value = 2 * value + (1 if bit else 0)
    return value


def pad_to_equal_length(a: Sequence[Formula], b: Sequence[Formula]) -> Tuple[Bits, Bits]:
    width = max(len(a), len(b))
    a = [as_formula(x) for x in a]
    b = [as_formula(x) for x in b]
    return [FALSE] * (width - len(a)) + a, [FALSE] * (width - len(b)) + b


def xor(a: Formula, b: Formula) -> Formula:
    return disj(conj(a, neg(b)), conj(neg(a), b))


def full_adder(a: Formula, b: Formula, carry_in: Formula) -> Tuple[Formula, Formula]:
    """Return ``(carry_out, sum)`` for three one-bit inputs."""
    half = xor(a, b)
    carry_out = disj(conj(a, b), conj(half, carry_in))
    return carry_out, xor(half, carry_in)


def less_equal(n1: Sequence[Formula], n2: Sequence[Formula]) -> Formula:
    """Formula that holds iff value(n1) <= value(n2)."""
    if not n1 or not n2:
        raise ValueError("less_equal requires non-empty bit-vectors.")
    first, second = pad_to_equal_length(n1, n2)
    # Digital comparator, built from the least significant pair upwards so the
    # most significant pair ends up outermost.
    a, b = first[-1], second[-1]
    greater = conj(a, neg(b))
    for a, b in zip(reversed(first[:-1]), reversed(second[:-1])):
        greater = disj(conj(a, neg(b)), conj(neg(xor(a, b)), greater))
    return neg(greater)


def less_equal_const(n: Sequence[Formula], k: int) -> Formula:
    return less_equal(n, int_to_bits(k))


def const_less_equal(k: int, n: Sequence[Formula]) -> Formula:
    return less_equal(int_to_bits(k), n)


def add(n1: Sequence[Formula], n2: Sequence[Formula], engine: SatEngine) -> Tuple[Bits, Set[Formula]]:
    """Ripple-carry addition.

    Every output bit and every carry is a fresh engine variable; its
    combinational definition is returned as an ``iff`` in the auxiliary set,
    which the caller must conjoin into the final formula. The result has
    ``max(len(n1), len(n2)) + 1`` bits with the final carry first.
    """
    first, second = pad_to_equal_length(n1, n2)
    auxiliaries: Set[Formula] = set()
    out: Bits = []
    carry: Formula = FALSE
    for a, b in zip(reversed(first), reversed(second)):
        carry_expr, sum_expr = full_adder(a, b, carry)
        sum_var = engine.var("sum")
        carry_var = engine.var("carry")
        auxiliaries.add(iff(sum_var, sum_expr))
        auxiliaries.add(iff(carry_var, carry_expr))
        out.append(sum_var)
        carry = carry_var
    out.append(carry)
    out.reverse()
    return out, auxiliaries
