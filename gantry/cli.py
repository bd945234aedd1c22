#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from gantry.api import load_project_from_json, project_timeline
from gantry.config import GRANULARITIES, EngineConfig
from gantry.dependencies import link_tasks, unlink_tasks
from gantry.drag import BarType, DragKind, DragMachine
from gantry.graph import TaskGraph
from gantry.model import Task, TaskPatch
from gantry.progress import compute_progress_series, project_kpis
from gantry.progress_update import progress_patch
from gantry.reorder import DropPosition, commit_reorder
from gantry.session import GanttSession
from gantry.store import JsonFilePreferences, JsonFileTaskStore, load_tasks
from gantry.timeline import Timeline, compute_timeline
from gantry.util.dates import format_date, parse_date
from gantry.validate import validate_tasks
from gantry.weights import WEIGHT_MODES, compute_weights, weight_basis

logger = logging.getLogger(__name__)


def _die(msg: str, rc: int = 2) -> int:
    print(f"[gantry] ERROR: {msg}", file=sys.stderr)
    return rc


def _emit(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2, sort_keys=True))


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8", errors="replace"))


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _config(ns: argparse.Namespace) -> EngineConfig:
    ms = getattr(ns, "inflight_ms", None)
    return EngineConfig.from_env(
        tz=ns.tz,
        default_granularity=getattr(ns, "granularity", None),
        inflight_pause_s=(ms / 1000.0) if ms is not None else None,
    )


def _timeline(ns: argparse.Namespace, project: Dict[str, Any], cfg: EngineConfig) -> Timeline:
    start = getattr(ns, "start", None)
    end = getattr(ns, "end", None)
    viewport = float(getattr(ns, "viewport", 0.0) or 0.0)
    if start or end:
        return compute_timeline(
            start or project.get("startDate"),
            end or project.get("endDate"),
            cfg.default_granularity,
            viewport,
            config=cfg,
        )
    return project_timeline(project, cfg.default_granularity, viewport, config=cfg)


# -------------------- read-only commands --------------------

def _cmd_validate(ns: argparse.Namespace) -> int:
    p = Path(ns.in_json)
    doc = _read_json(p)
    records = doc.get("tasks") if isinstance(doc, dict) else doc
    errs = validate_tasks(records if records is not None else [])
    if errs:
        print("[gantry] FAIL", file=sys.stderr)
        for e in errs:
            print(f"  - {e}", file=sys.stderr)
        return 3
    print("[gantry] OK")
    return 0


def _cmd_timeline(ns: argparse.Namespace, project: Dict[str, Any], tasks: List[Task], cfg: EngineConfig) -> int:
    tl = _timeline(ns, project, cfg)
    _emit(
        {
            "start": format_date(tl.start),
            "end": format_date(tl.end),
            "granularity": tl.granularity,
            "cell_width": tl.cell_width,
            "total_width": tl.total_width,
            "cells": [{"start": format_date(c.start), "end": format_date(c.end)} for c in tl.cells],
            "group_headers": [{"label": h.label, "first_cell": h.first_cell, "span": h.span} for h in tl.group_headers],
        }
    )
    return 0


def _cmd_weights(ns: argparse.Namespace, project: Dict[str, Any], tasks: List[Task], cfg: EngineConfig) -> int:
    basis = weight_basis(tasks, ns.mode)
    w = compute_weights(tasks, ns.mode)
    _emit({"mode": basis.mode, "total": basis.total, "weights": {k: round(v, 4) for k, v in w.items()}})
    return 0


def _cmd_scurve(ns: argparse.Namespace, project: Dict[str, Any], tasks: List[Task], cfg: EngineConfig) -> int:
    tl = _timeline(ns, project, cfg)
    today = parse_date(ns.today) if ns.today else None
    if ns.today and today is None:
        return _die(f"--today must be YYYY-MM-DD; got {ns.today!r}")
    series = compute_progress_series(tasks, tl, today=today, mode=ns.mode, tz=cfg.tz)
    _emit(
        [
            {
                "start": format_date(pt.start),
                "end": format_date(pt.end),
                "planned": round(pt.planned, 2),
                "actual": round(pt.actual, 2),
                "has_actual": pt.has_actual,
            }
            for pt in series
        ]
    )
    return 0


def _cmd_kpis(ns: argparse.Namespace, project: Dict[str, Any], tasks: List[Task], cfg: EngineConfig) -> int:
    ref = parse_date(ns.date) if ns.date else None
    if ns.date and ref is None:
        return _die(f"--date must be YYYY-MM-DD; got {ns.date!r}")
    k = project_kpis(tasks, ref, mode=ns.mode, tz=cfg.tz)
    _emit(
        {
            "progress": round(k.progress, 2),
            "plan_to_date": round(k.plan_to_date, 2),
            "gap": round(k.gap, 2),
            "variance_days": k.variance_days,
            "plan_start": format_date(k.plan_range[0]) if k.plan_range else None,
            "plan_end": format_date(k.plan_range[1]) if k.plan_range else None,
        }
    )
    return 0


def _cmd_rows(ns: argparse.Namespace, project: Dict[str, Any], tasks: List[Task], cfg: EngineConfig) -> int:
    prefs = JsonFilePreferences(Path(ns.prefs)) if ns.prefs else None
    session = GanttSession(tasks, preferences=prefs, timeline=_timeline(ns, project, cfg), config=cfg)
    for row in session.visible_rows():
        t = row.task
        rng = f"{format_date(t.plan_start) or '-'}..{format_date(t.plan_end) or '-'}"
        print(f"{'  ' * row.depth}{t.name or t.id}  [{t.category}] {rng} {t.progress}%")
    return 0


# -------------------- editing commands --------------------

def _edit_plan(ns: argparse.Namespace, tasks: List[Task], cfg: EngineConfig, tl: Timeline) -> Tuple[Optional[Dict[str, TaskPatch]], str]:
    graph = TaskGraph(tasks)
    if ns.command == "drag":
        machine = DragMachine(lambda: graph, tl)
        if not machine.begin_drag(ns.task, DragKind(ns.kind), BarType(ns.bar), 0.0):
            return None, f"cannot drag task {ns.task!r} ({ns.kind}, {ns.bar} bar)"
        machine.update_drag(tl.pixels_for_days(ns.days))
        commit = machine.commit_drag()
        machine.finish_commit()
        return (commit.as_dict() if commit else {}), ""
    if ns.command == "reorder":
        patch = commit_reorder(graph, ns.task, ns.target, DropPosition(ns.position))
        return ({ns.task: patch} if patch else None), f"illegal drop of {ns.task!r} {ns.position} {ns.target!r}"
    if ns.command == "link":
        fn = unlink_tasks if ns.remove else link_tasks
        patch = fn(graph, ns.pred, ns.succ)
        return ({ns.succ: patch} if patch else None), f"cannot {'unlink' if ns.remove else 'link'} {ns.pred!r} -> {ns.succ!r}"
    if ns.command == "progress":
        task = graph.get(ns.task)
        patch = progress_patch(task, ns.value, ns.date, ns.reason) if task else None
        return ({ns.task: patch} if patch else None), f"cannot update progress of {ns.task!r}"
    raise ValueError(f"unknown edit command: {ns.command}")


async def _write(path: Path, updates: Dict[str, TaskPatch], cfg: EngineConfig, tl: Timeline) -> Tuple[str, ...]:
    store = JsonFileTaskStore(path)
    session = GanttSession(load_tasks(store.records), store=store, timeline=tl, config=cfg)
    return await session.commit_updates(updates)


def _cmd_edit(ns: argparse.Namespace, project: Dict[str, Any], tasks: List[Task], cfg: EngineConfig) -> int:
    tl = _timeline(ns, project, cfg)
    updates, why = _edit_plan(ns, tasks, cfg, tl)
    if updates is None:
        return _die(why, rc=4)

    if ns.write and updates:
        failed = asyncio.run(_write(Path(ns.in_json), updates, cfg, tl))
        if failed:
            return _die(f"failed to persist: {', '.join(failed)}", rc=5)
        logger.info("wrote %d task update(s) to %s", len(updates), ns.in_json)

    _emit({"updates": updates})
    return 0


_COMMANDS = {
    "timeline": _cmd_timeline,
    "weights": _cmd_weights,
    "scurve": _cmd_scurve,
    "kpis": _cmd_kpis,
    "rows": _cmd_rows,
    "drag": _cmd_edit,
    "reorder": _cmd_edit,
    "link": _cmd_edit,
    "progress": _cmd_edit,
}


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--in", dest="in_json", required=True, help="Project JSON path ({project, tasks} or a task list)")
    common.add_argument("--tz", default=None, help="Timezone for 'today' (default: GANTRY_TZ or local)")
    common.add_argument("--verbose", action="store_true", help="Enable debug logging")

    window = argparse.ArgumentParser(add_help=False)
    window.add_argument("--granularity", choices=GRANULARITIES, default=None, help="Timeline cell size")
    window.add_argument("--start", default=None, help="Override project start date (YYYY-MM-DD)")
    window.add_argument("--end", default=None, help="Override project end date (YYYY-MM-DD)")
    window.add_argument("--viewport", type=float, default=0.0, help="Viewport width for auto-fit")

    weighting = argparse.ArgumentParser(add_help=False)
    weighting.add_argument("--mode", choices=sorted(WEIGHT_MODES), default=None, help="Force cost or duration weighting (default: cost when any task is costed)")

    write = argparse.ArgumentParser(add_help=False)
    write.add_argument("--write", action="store_true", help="Persist the updates back into --in")
    write.add_argument("--inflight-ms", dest="inflight_ms", type=int, default=None, help="In-flight pause after a cascade")

    ap = argparse.ArgumentParser(prog="gantry", description="Gantt schedule engine: timeline, weights, S-curve and edits.")
    sub = ap.add_subparsers(dest="command", required=True)

    sub.add_parser("validate", parents=[common], help="Validate task records")
    sub.add_parser("timeline", parents=[common, window], help="Print the timeline cells")
    sub.add_parser("weights", parents=[common, weighting], help="Print per-task weights")
    p = sub.add_parser("scurve", parents=[common, window, weighting], help="Print the planned/actual progress series")
    p.add_argument("--today", default=None, help="Reference date for open-ended actual ranges")
    p = sub.add_parser("kpis", parents=[common, weighting], help="Print project progress, plan-to-date and variance")
    p.add_argument("--date", default=None, help="Reference date (YYYY-MM-DD, default today)")
    p = sub.add_parser("rows", parents=[common, window], help="Print the visible row tree")
    p.add_argument("--prefs", default=None, help="Preferences JSON path (collapsed rows, category order)")

    p = sub.add_parser("drag", parents=[common, window, write], help="Move or resize a bar by N days")
    p.add_argument("--task", required=True)
    p.add_argument("--kind", choices=[k.value for k in DragKind], default=DragKind.MOVE.value)
    p.add_argument("--bar", choices=[b.value for b in BarType], default=BarType.PLAN.value)
    p.add_argument("--days", type=int, required=True)

    p = sub.add_parser("reorder", parents=[common, window, write], help="Drop a row above/below/into another")
    p.add_argument("--task", required=True)
    p.add_argument("--target", required=True)
    p.add_argument("--position", choices=[d.value for d in DropPosition], required=True)

    p = sub.add_parser("link", parents=[common, window, write], help="Add or remove a finish-to-start dependency")
    p.add_argument("--pred", required=True)
    p.add_argument("--succ", required=True)
    p.add_argument("--remove", action="store_true")

    p = sub.add_parser("progress", parents=[common, window, write], help="Record a progress update")
    p.add_argument("--task", required=True)
    p.add_argument("--value", type=int, required=True, help="0..100, or -1 to start work")
    p.add_argument("--date", required=True, help="Update date (YYYY-MM-DD)")
    p.add_argument("--reason", default=None)
    return ap


def main(argv: List[str] | None = None) -> int:
    ns = _build_parser().parse_args(argv)
    _setup_logging(ns.verbose)

    in_path = Path(ns.in_json)
    if not in_path.exists():
        return _die(f"Missing input JSON: {in_path}")

    try:
        cfg = _config(ns)
    except ValueError as e:
        return _die(str(e))

    if ns.command == "validate":
        try:
            return _cmd_validate(ns)
        except ValueError as e:
            return _die(f"Failed to load JSON: {in_path} ({e})")

    try:
        project, tasks = load_project_from_json(in_path)
    except ValueError as e:
        return _die(f"Failed to load project: {in_path} ({e})")

    return _COMMANDS[ns.command](ns, project, tasks, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
