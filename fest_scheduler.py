from __future__ import annotations

import argparse
import logging
import os
import sys

from fest_scheduler_constraints import (
    BAND_RULES,
    CORE_RULES_BY_KIND,
    RULES_BY_KIND,
    VOLUNTEER_RULES,
    BandEncoder,
    VolunteerEncoder,
    plan,
    schedule,
)
from fest_scheduler_output import result_to_csv, result_to_yaml
from fest_scheduler_parse import load_schedule_input, load_schedule_input_from_data
from fest_scheduler_solve import solve_schedule
from fest_scheduler_types import (
    Band,
    ScheduleError,
    ScheduleInput,
    SolveResult,
    SolverError,
    SolverSettings,
    Stage,
    Task,
    Time,
    Volunteer,
)

logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Festival volunteer and band scheduling via SAT (CP-SAT).")
    parser.add_argument(
        "input",
        nargs="?",
        default="fest-scheduler.yml",
        help="Path to YAML input file (default: fest-scheduler.yml).",
    )
    parser.add_argument("-o", "--output", help="Output YAML file path. Defaults to stdout.")
    parser.add_argument(
        "--csv-output",
        default="schedule-output.csv",
        help="CSV output path (default: schedule-output.csv).",
    )
    parser.add_argument(
        "--suggest-relaxations",
        action="store_true",
        help="When infeasible, try disabling each conflicting rule and report which ones help.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log solver progress.")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not os.path.exists(args.input):
        print(
            f"Input file not found: {args.input}\n"
            "Tip: run the Streamlit app and download to the current directory, "
            "or pass a path explicitly (e.g., python fest_scheduler.py path/to/file.yml).",
            file=sys.stderr,
        )
        raise SystemExit(2)

    try:
        schedule_input = load_schedule_input(args.input)
    except ScheduleError as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        raise SystemExit(2)
    for warning in schedule_input.warnings:
        logger.warning(warning)

    suggest = args.suggest_relaxations
    try:
        result = solve_schedule(schedule_input, suggest_relaxations=suggest)
        if result.diagnostic and not suggest and sys.stdin.isatty():
            response = input("Model infeasible. Run relaxation suggestions? [y/N]: ").strip().lower()
            if response.startswith("y"):

                def _progress(current: int, total: int, rule_id: str, mode: str) -> None:
                    print(
                        f"Relaxation suggestions: {current}/{total} {rule_id}->{mode}",
                        end="\r",
                        file=sys.stderr,
                        flush=True,
                    )

                result = solve_schedule(schedule_input, suggest_relaxations=True, progress_cb=_progress)
                print("", file=sys.stderr)
    except SolverError as exc:
        print(f"Solver failed: {exc}", file=sys.stderr)
        raise SystemExit(3)

    output = result_to_yaml(result)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as handle:
            handle.write(output)
    else:
        print(output)

    with open(args.csv_output, "w", encoding="utf-8", newline="") as handle:
        handle.write(result_to_csv(result))


if __name__ == "__main__":
    main()
