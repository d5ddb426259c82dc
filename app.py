from typing import Any

import html
import os
from datetime import date

import pandas as pd
import streamlit as st
import yaml

from fest_config import PROBLEM_KINDS, default_config, prepare_config
from fest_scheduler import (
    CORE_RULES_BY_KIND,
    RULES_BY_KIND,
    ScheduleError,
    SolverError,
    load_schedule_input_from_data,
    result_to_csv,
    result_to_yaml,
    solve_schedule,
)

APP_TITLE_TEXT = "FESTIVAL PLANNER"
APP_TITLE_DISPLAY_HTML = f"<strong><em>{html.escape(APP_TITLE_TEXT)}</em></strong>"


def _is_na(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _clean(value: Any) -> str:
    return "" if _is_na(value) else str(value).strip()


def _ensure_cfg_state():
    if "cfg" not in st.session_state:
        cfg, ok = prepare_config(default_config())
        st.session_state["cfg"] = cfg
        st.session_state["infer_ok"] = ok


def _volunteer_names(cfg: dict) -> list[str]:
    names = []
    for entry in cfg.get("volunteers", []):
        name = entry.get("name") if isinstance(entry, dict) else entry
        if isinstance(name, str) and name.strip():
            names.append(name.strip())
    return names


def _task_rows(cfg: dict) -> list[dict]:
    rows = []
    for entry in cfg.get("tasks", []):
        if isinstance(entry, dict) and entry.get("name"):
            rows.append({"Task": str(entry["name"]), "Capacity": int(entry.get("capacity", 0) or 0)})
    return rows


def _availability_frame(cfg: dict) -> pd.DataFrame:
    volunteers = _volunteer_names(cfg)
    tasks = [row["Task"] for row in _task_rows(cfg)]
    availability = cfg.get("availability", {}) or {}
    data = {
        task: [task in (availability.get(name) or []) for name in volunteers]
        for task in tasks
    }
    return pd.DataFrame(data, index=volunteers, columns=tasks)


def _preference_rows(cfg: dict) -> list[dict]:
    rows = []
    for band, slots in (cfg.get("preferences") or {}).items():
        for slot in slots or []:
            if isinstance(slot, dict):
                rows.append({"Band": str(band), "Stage": slot.get("stage", ""), "Time": slot.get("time", "")})
    return rows


def _apply_volunteer_tables(cfg: dict, volunteers_df: pd.DataFrame, tasks_df: pd.DataFrame) -> None:
    cfg["volunteers"] = [n for n in (_clean(v) for v in volunteers_df["Volunteer"]) if n]
    tasks = []
    for _, row in tasks_df.iterrows():
        name = _clean(row["Task"])
        if not name:
            continue
        capacity = 0 if _is_na(row["Capacity"]) else int(row["Capacity"])
        tasks.append({"name": name, "capacity": capacity})
    cfg["tasks"] = tasks
    known_tasks = {t["name"] for t in tasks}
    availability = cfg.get("availability", {}) or {}
    cfg["availability"] = {
        name: [t for t in (availability.get(name) or []) if t in known_tasks] for name in cfg["volunteers"]
    }


def _apply_availability(cfg: dict, availability_df: pd.DataFrame) -> None:
    cfg["availability"] = {
        str(name): [str(task) for task in availability_df.columns if bool(row[task])]
        for name, row in availability_df.iterrows()
    }


def _apply_preferences(cfg: dict, preferences_df: pd.DataFrame) -> None:
    preferences: dict = {}
    for _, row in preferences_df.iterrows():
        band, stage, time = _clean(row["Band"]), _clean(row["Stage"]), _clean(row["Time"])
        if band and stage and time:
            preferences.setdefault(band, []).append({"stage": stage, "time": time})
    cfg["preferences"] = preferences


def _render_solution(kind: str, assignments: dict) -> pd.DataFrame:
    if kind == "bands":
        rows = [
            {"Band": band, "Stage": slot["stage"], "Time": slot["time"]}
            for band, slot in assignments.items()
        ]
        return pd.DataFrame(rows, columns=["Band", "Stage", "Time"])
    rows = [
        {"Task": task, "Volunteers": ", ".join(volunteers)}
        for task, volunteers in assignments.items()
    ]
    return pd.DataFrame(rows, columns=["Task", "Volunteers"])


st.set_page_config(page_title=APP_TITLE_TEXT, layout="wide")
st.markdown(f"<h1>{APP_TITLE_DISPLAY_HTML}</h1>", unsafe_allow_html=True)

_ensure_cfg_state()
cfg = st.session_state["cfg"]

if not st.session_state.get("infer_ok", True):
    st.warning("Could not infer the problem kind from the configuration; defaulting to volunteers.")

tabs = st.tabs(["Problem", "Constraints", "Solve", "Load / Save"])

with tabs[0]:
    kind = st.radio(
        "Problem",
        options=PROBLEM_KINDS,
        index=PROBLEM_KINDS.index(cfg.get("kind", "volunteers")),
        horizontal=True,
        key="kind_input",
    )
    if kind != cfg.get("kind"):
        cfg["kind"] = kind
        cfg, _ = prepare_config(cfg)
        st.session_state["cfg"] = cfg

    if kind == "volunteers":
        cfg["max_workload"] = int(
            st.number_input(
                "Maximum tasks per volunteer",
                min_value=0,
                max_value=100,
                value=int(cfg.get("max_workload", 1)),
                step=1,
                key="max_workload_input",
            )
        )
        left, right = st.columns(2, gap="large")
        with left:
            st.markdown("**Volunteers**")
            volunteers_df = st.data_editor(
                pd.DataFrame({"Volunteer": _volunteer_names(cfg)}),
                num_rows="dynamic",
                use_container_width=True,
                hide_index=True,
                key="volunteers_table",
            )
        with right:
            st.markdown("**Tasks**")
            tasks_df = st.data_editor(
                pd.DataFrame(_task_rows(cfg), columns=["Task", "Capacity"]),
                num_rows="dynamic",
                use_container_width=True,
                hide_index=True,
                column_config={"Capacity": st.column_config.NumberColumn(min_value=0, step=1)},
                key="tasks_table",
            )
        _apply_volunteer_tables(cfg, volunteers_df, tasks_df)

        st.markdown("**Availability** (tick the tasks each volunteer signed up for)")
        availability_df = st.data_editor(
            _availability_frame(cfg),
            use_container_width=True,
            key="availability_table",
        )
        _apply_availability(cfg, availability_df)
    else:
        st.markdown("**Band preferences** (one row per acceptable slot)")
        preferences_df = st.data_editor(
            pd.DataFrame(_preference_rows(cfg), columns=["Band", "Stage", "Time"]),
            num_rows="dynamic",
            use_container_width=True,
            hide_index=True,
            key="preferences_table",
        )
        _apply_preferences(cfg, preferences_df)

with tabs[1]:
    modes = cfg.setdefault("constraints", {}).setdefault("modes", {})
    core_rules = CORE_RULES_BY_KIND.get(cfg.get("kind"), frozenset())
    for rule in RULES_BY_KIND.get(cfg.get("kind"), []):
        if rule.id in core_rules:
            modes.pop(rule.id, None)
            st.checkbox(rule.label, value=True, disabled=True, key=f"mode_{cfg.get('kind')}_{rule.id}")
            continue
        enabled = st.checkbox(
            rule.label,
            value=modes.get(rule.id, "always") != "disabled",
            key=f"mode_{cfg.get('kind')}_{rule.id}",
        )
        modes[rule.id] = "always" if enabled else "disabled"

    solver_cfg = cfg.setdefault("solver", {})
    cols = st.columns(3)
    solver_cfg["max_time_seconds"] = float(
        cols[0].number_input(
            "Time limit (s)",
            min_value=1.0,
            value=float(solver_cfg.get("max_time_seconds", 60.0)),
            key="max_time_input",
        )
    )
    solver_cfg["num_workers"] = int(
        cols[1].number_input(
            "Workers", min_value=1, max_value=64, value=int(solver_cfg.get("num_workers", 8)), key="workers_input"
        )
    )
    solver_cfg["random_seed"] = int(
        cols[2].number_input("Seed", min_value=0, value=int(solver_cfg.get("random_seed", 0)), key="seed_input")
    )

with tabs[2]:
    cfg["num_solutions"] = int(
        st.number_input(
            "Number of solutions",
            min_value=1,
            max_value=50,
            value=int(cfg.get("num_solutions", 1)),
            step=1,
            key="num_solutions_input",
        )
    )
    suggest = st.checkbox("Suggest relaxations when infeasible", value=True, key="suggest_input")

    if st.button("Solve", type="primary", use_container_width=True, key="solve_btn"):
        st.session_state.pop("solve_result", None)
        try:
            schedule_input = load_schedule_input_from_data(cfg)
        except ScheduleError as exc:
            st.error(f"Invalid configuration: {exc}")
        else:
            try:
                with st.spinner("Solving..."):
                    st.session_state["solve_result"] = solve_schedule(schedule_input, suggest_relaxations=suggest)
            except SolverError as exc:
                st.error(f"Solver failed: {exc}")

    result = st.session_state.get("solve_result")
    if result is None:
        st.info("Click Solve to run the scheduler.")
    else:
        if result.warnings:
            st.warning("\n".join(f"- {w}" for w in result.warnings))
        if result.diagnostic:
            st.error("No complete assignment exists.")
            st.markdown("**Conflicting constraints**")
            st.dataframe(
                pd.DataFrame(result.diagnostic.conflicting_constraints, columns=["id", "label"]),
                use_container_width=True,
                hide_index=True,
            )
            if result.diagnostic.suggestions:
                st.markdown("**Suggestions**")
                st.dataframe(pd.DataFrame(result.diagnostic.suggestions), use_container_width=True, hide_index=True)
        else:
            st.success(f"Found {len(result.solutions)} solution(s).")
            idx = st.selectbox(
                "Solution",
                options=list(range(len(result.solutions))),
                format_func=lambda i: f"Solution {i}",
                key="solution_select",
            )
            st.dataframe(
                _render_solution(result.kind, result.solutions[int(idx)].assignments),
                use_container_width=True,
                hide_index=True,
            )
        b1, b2 = st.columns(2, gap="small")
        b1.download_button(
            "Download YAML",
            data=result_to_yaml(result),
            file_name="schedule-output.yml",
            mime="text/yaml",
            use_container_width=True,
        )
        b2.download_button(
            "Download CSV",
            data=result_to_csv(result),
            file_name="schedule-output.csv",
            mime="text/csv",
            use_container_width=True,
        )

with tabs[3]:
    load_col, save_col = st.columns(2, gap="large")

    with load_col:
        st.markdown("### Load")
        uploaded = st.file_uploader("Drop YAML here", type=["yml", "yaml"], label_visibility="collapsed")
        if uploaded:
            try:
                loaded = yaml.safe_load(uploaded) or {}
            except yaml.YAMLError as exc:
                st.error(f"Failed to parse YAML: {exc}")
            else:
                if st.button("Apply loaded configuration", type="primary", use_container_width=True):
                    cfg_loaded, ok = prepare_config(loaded)
                    st.session_state["cfg"] = cfg_loaded
                    st.session_state["infer_ok"] = ok
                    st.session_state.pop("solve_result", None)
                    st.rerun()

    with save_col:
        st.markdown("### Save")
        default_filename = f"fest-scheduler-{date.today().isoformat()}.yml"
        filename = st.text_input("Filename", value=default_filename, key="config_filename")
        saved = st.download_button(
            "Download configuration",
            data=yaml.safe_dump(cfg, sort_keys=False),
            file_name=filename or default_filename,
            mime="text/yaml",
            use_container_width=True,
        )
        if saved:
            st.info(f"Downloaded. To make it the CLI default, save it as fest-scheduler.yml in:\n{os.getcwd()}")
