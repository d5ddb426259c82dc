import itertools
import unittest

from fest_scheduler_arithmetic import bits_to_int
from fest_scheduler_cardinality import at_least, at_most, count_true, exactly, ordered
from fest_scheduler_logic import FALSE, TRUE, Iff, Not, SatEngine, conj, evaluate, neg
from fest_scheduler_types import SolverSettings

SETTINGS = SolverSettings(max_time_seconds=10.0, num_workers=1)


def _fix(variables, values):
    return [v if value else neg(v) for v, value in zip(variables, values)]


class CountTrueTests(unittest.TestCase):
    def test_count_matches_number_of_true_inputs(self):
        engine = SatEngine(SETTINGS)
        xs = [engine.var(f"x{i}") for i in range(4)]
        count, aux = count_true(xs, engine)
        for values in [(False,) * 4, (True, False, True, False), (True,) * 4, (False, True, True, True)]:
            with self.subTest(values=values):
                model = engine.solve(conj(*_fix(xs, values), *aux))
                self.assertIsNotNone(model)
                self.assertEqual(bits_to_int([evaluate(bit, model) for bit in count]), sum(values))

    def test_count_width_stays_logarithmic(self):
        engine = SatEngine(SETTINGS)
        for n in (1, 2, 3, 7, 8, 20):
            with self.subTest(n=n):
                count, _ = count_true([engine.var("x") for _ in range(n)], engine)
                self.assertEqual(len(count), n.bit_length())

    def test_empty_list_counts_zero(self):
        engine = SatEngine(SETTINGS)
        count, aux = count_true([], engine)
        self.assertEqual(count, [FALSE])
        self.assertEqual(aux, set())

    def test_auxiliaries_are_ordered_by_defining_variable(self):
        engine = SatEngine(SETTINGS)
        xs = [engine.var(f"x{i}") for i in range(3)]
        _, aux = count_true([xs[0], TRUE, xs[1], FALSE, xs[2]], engine)
        folded = [f for f in aux if isinstance(f, Not)]
        self.assertTrue(folded)

        def defining(f):
            if isinstance(f, Iff):
                f = f.left
            if isinstance(f, Not):
                f = f.operand
            return f.index

        indices = [defining(f) for f in ordered(aux)]
        self.assertEqual(indices, sorted(indices))
        self.assertEqual(len(set(indices)), len(indices))

    def test_constant_inputs(self):
        engine = SatEngine(SETTINGS)
        count, aux = count_true([TRUE, FALSE, TRUE, TRUE], engine)
        model = engine.solve(conj(*aux))
        self.assertEqual(bits_to_int([evaluate(bit, model) for bit in count]), 3)


class CardinalityConstraintTests(unittest.TestCase):
    def test_at_most_and_exactly_for_every_assignment(self):
        n = 3
        for values in itertools.product([False, True], repeat=n):
            for k in range(n + 2):
                with self.subTest(values=values, k=k):
                    engine = SatEngine(SETTINGS)
                    xs = [engine.var(f"x{i}") for i in range(n)]
                    fixed = _fix(xs, values)
                    count = sum(values)
                    self.assertEqual(engine.solve(conj(at_most(xs, k, engine), *fixed)) is not None, count <= k)
                    self.assertEqual(engine.solve(conj(exactly(xs, k, engine), *fixed)) is not None, count == k)
                    self.assertEqual(engine.solve(conj(at_least(xs, k, engine), *fixed)) is not None, count >= k)

    def test_exactly_boundaries(self):
        engine = SatEngine(SETTINGS)
        xs = [engine.var(f"x{i}") for i in range(4)]
        model = engine.solve(exactly(xs, 0, engine))
        self.assertEqual([model.get(x, False) for x in xs], [False] * 4)
        model = engine.solve(exactly(xs, 4, engine))
        self.assertEqual([model[x] for x in xs], [True] * 4)
        self.assertIsNone(engine.solve(exactly(xs, 5, engine)))

    def test_bound_above_length_is_vacuous(self):
        engine = SatEngine(SETTINGS)
        xs = [engine.var(f"x{i}") for i in range(3)]
        self.assertIsNotNone(engine.solve(conj(at_most(xs, 10, engine), *xs)))

    def test_empty_list(self):
        engine = SatEngine(SETTINGS)
        self.assertIsNotNone(engine.solve(at_most([], 0, engine)))
        self.assertIsNotNone(engine.solve(exactly([], 0, engine)))
        self.assertIsNone(engine.solve(exactly([], 1, engine)))
        self.assertIsNone(engine.solve(at_least([], 2, engine)))

    def test_negative_bound_rejected(self):
        engine = SatEngine(SETTINGS)
        with self.assertRaises(ValueError):
            at_most([engine.var("x")], -1, engine)


if __name__ == "__main__":
    unittest.main()
