import unittest

from fest_scheduler import ScheduleError, load_schedule_input_from_data
from fest_scheduler_types import Band, BandProblem, Stage, Time, Volunteer, VolunteerProblem


def _volunteer_data() -> dict:
    return {
        "kind": "volunteers",
        "max_workload": 1,
        "volunteers": ["A", {"name": "B"}],
        "tasks": [{"name": "T", "capacity": 2}],
        "availability": {"A": ["T"], "B": ["T"]},
    }


class ParseValidationTests(unittest.TestCase):
    def test_volunteer_input_is_parsed(self):
        schedule_input = load_schedule_input_from_data(_volunteer_data())
        self.assertEqual(schedule_input.kind, "volunteers")
        problem = schedule_input.problem
        self.assertIsInstance(problem, VolunteerProblem)
        self.assertEqual(problem.volunteers, [Volunteer("A"), Volunteer("B")])
        self.assertEqual(problem.tasks[0].capacity, 2)
        self.assertEqual(problem.availability[Volunteer("B")][0].name, "T")
        self.assertEqual(schedule_input.num_solutions, 1)
        self.assertEqual(schedule_input.warnings, ())

    def test_unknown_kind_raises_schedule_error(self):
        data = _volunteer_data()
        data["kind"] = "jugglers"
        with self.assertRaisesRegex(ScheduleError, "Unknown problem kind"):
            load_schedule_input_from_data(data)

    def test_duplicate_volunteer_raises_schedule_error(self):
        data = _volunteer_data()
        data["volunteers"] = ["A", "A"]
        with self.assertRaisesRegex(ScheduleError, "Duplicate name in volunteers"):
            load_schedule_input_from_data(data)

    def test_negative_capacity_raises_schedule_error(self):
        data = _volunteer_data()
        data["tasks"] = [{"name": "T", "capacity": -1}]
        with self.assertRaisesRegex(ScheduleError, "tasks.T.capacity must be a non-negative integer"):
            load_schedule_input_from_data(data)

    def test_missing_capacity_raises_schedule_error(self):
        data = _volunteer_data()
        data["tasks"] = [{"name": "T"}]
        with self.assertRaisesRegex(ScheduleError, "requires 'capacity'"):
            load_schedule_input_from_data(data)

    def test_boolean_workload_raises_schedule_error(self):
        data = _volunteer_data()
        data["max_workload"] = True
        with self.assertRaisesRegex(ScheduleError, "max_workload"):
            load_schedule_input_from_data(data)

    def test_unknown_task_in_availability_raises_schedule_error(self):
        data = _volunteer_data()
        data["availability"]["A"] = ["Nope"]
        with self.assertRaisesRegex(ScheduleError, "Unknown task in availability.A"):
            load_schedule_input_from_data(data)

    def test_unknown_volunteer_in_availability_raises_schedule_error(self):
        data = _volunteer_data()
        data["availability"]["Z"] = ["T"]
        with self.assertRaisesRegex(ScheduleError, "Unknown volunteer in availability"):
            load_schedule_input_from_data(data)

    def test_missing_availability_and_short_capacity_emit_warnings(self):
        data = _volunteer_data()
        del data["availability"]["B"]
        schedule_input = load_schedule_input_from_data(data)
        joined = "\n".join(schedule_input.warnings)
        self.assertIn("availability.B", joined)
        self.assertIn("tasks.T: capacity 2 exceeds 1", joined)

    def test_unknown_constraint_mode_raises_schedule_error(self):
        data = _volunteer_data()
        data["constraints"] = {"modes": {"workload": "sometimes"}}
        with self.assertRaisesRegex(ScheduleError, "Unknown constraint mode for workload"):
            load_schedule_input_from_data(data)

    def test_rule_from_other_kind_raises_schedule_error(self):
        data = _volunteer_data()
        data["constraints"] = {"modes": {"slot_used_once": "disabled"}}
        with self.assertRaisesRegex(ScheduleError, "Unknown constraint rule for volunteers"):
            load_schedule_input_from_data(data)

    def test_disabling_an_always_enforced_rule_warns(self):
        data = {
            "kind": "bands",
            "preferences": {"X": ["Main@20:00"]},
            "constraints": {"modes": {"band_preference": "disabled", "slot_used_once": "disabled"}},
        }
        schedule_input = load_schedule_input_from_data(data)
        self.assertEqual(schedule_input.constraint_modes, {"slot_used_once": "disabled"})
        self.assertIn("constraints.modes.band_preference", "\n".join(schedule_input.warnings))

    def test_num_solutions_must_be_positive(self):
        data = _volunteer_data()
        data["num_solutions"] = 0
        with self.assertRaisesRegex(ScheduleError, "num_solutions"):
            load_schedule_input_from_data(data)

    def test_band_slot_formats(self):
        data = {
            "kind": "bands",
            "preferences": {
                "X": [{"stage": "Main", "time": "20:00"}, "Tent@21:00", ["Main", "22:00"], "Main@20:00"],
            },
        }
        problem = load_schedule_input_from_data(data).problem
        self.assertIsInstance(problem, BandProblem)
        self.assertEqual(
            problem.preferences[Band("X")],
            [
                (Stage("Main"), Time("20:00")),
                (Stage("Tent"), Time("21:00")),
                (Stage("Main"), Time("22:00")),
            ],
        )

    def test_malformed_slot_raises_schedule_error(self):
        data = {"kind": "bands", "preferences": {"X": ["Main"]}}
        with self.assertRaisesRegex(ScheduleError, "Slots in preferences.X"):
            load_schedule_input_from_data(data)

    def test_kind_is_inferred_from_preferences(self):
        schedule_input = load_schedule_input_from_data({"preferences": {"X": ["Main@20:00"]}})
        self.assertEqual(schedule_input.kind, "bands")


if __name__ == "__main__":
    unittest.main()
