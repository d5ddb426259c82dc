import unittest

import yaml

from fest_scheduler import result_to_csv, result_to_yaml
from fest_scheduler_types import Diagnostic, Solution, SolveResult


class OutputTests(unittest.TestCase):
    def test_volunteer_csv_has_one_row_per_assignment(self):
        result = SolveResult("volunteers", [Solution({"Bar": ["A", "B"], "Gate": []})])
        lines = result_to_csv(result).splitlines()
        self.assertEqual(lines, ["solution_idx,task,volunteer", "0,Bar,A", "0,Bar,B"])

    def test_band_csv(self):
        result = SolveResult(
            "bands",
            [Solution({"X": {"stage": "Main", "time": "20:00"}}), Solution({"X": {"stage": "Tent", "time": "21:00"}})],
        )
        lines = result_to_csv(result).splitlines()
        self.assertEqual(lines, ["solution_idx,band,stage,time", "0,X,Main,20:00", "1,X,Tent,21:00"])

    def test_yaml_includes_diagnostic_and_warnings(self):
        diagnostic = Diagnostic(
            status="INFEASIBLE",
            conflicting_constraints=[{"id": "task_capacity:T", "label": "T is staffed by exactly 2"}],
            suggestions=[],
        )
        result = SolveResult("volunteers", [], diagnostic, ("availability.B: missing",))
        payload = yaml.safe_load(result_to_yaml(result))
        self.assertEqual(payload["kind"], "volunteers")
        self.assertEqual(payload["solutions"], [])
        self.assertEqual(payload["warnings"], ["availability.B: missing"])
        self.assertEqual(payload["diagnostic"]["status"], "INFEASIBLE")
        self.assertEqual(payload["diagnostic"]["conflicting_constraints"][0]["id"], "task_capacity:T")


if __name__ == "__main__":
    unittest.main()
