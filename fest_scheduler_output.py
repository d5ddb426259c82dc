from __future__ import annotations

import csv
from io import StringIO
from typing import Dict

import yaml

from fest_scheduler_types import SolveResult


def result_to_yaml(result: SolveResult) -> str:
    payload: Dict[str, object] = {"kind": result.kind, "solutions": []}
    if result.solutions:
        payload["solutions"] = [{"assignments": solution.assignments} for solution in result.solutions]
    if result.warnings:
        payload["warnings"] = list(result.warnings)
    if result.diagnostic:
        payload["diagnostic"] = {
            "status": result.diagnostic.status,
            "conflicting_constraints": result.diagnostic.conflicting_constraints,
            "suggestions": result.diagnostic.suggestions,
        }
    return yaml.safe_dump(payload, sort_keys=False)


def result_to_csv(result: SolveResult) -> str:
    output = StringIO()
    writer = csv.writer(output)
    if result.kind == "bands":
        writer.writerow(["solution_idx", "band", "stage", "time"])
        for idx, solution in enumerate(result.solutions):
            for band, slot in solution.assignments.items():
                writer.writerow([idx, band, slot["stage"], slot["time"]])
    else:
        writer.writerow(["solution_idx", "task", "volunteer"])
        for idx, solution in enumerate(result.solutions):
            for task, volunteers in solution.assignments.items():
                for volunteer in volunteers:
                    writer.writerow([idx, task, volunteer])
    return output.getvalue()
