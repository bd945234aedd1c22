"""gantry.api

Stable *library* entrypoint for Gantry.

Policy:
  - Only names listed in __all__ are considered public API.
  - Everything else is internal and may change without notice.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from gantry.config import DEFAULT_CONFIG, EngineConfig
from gantry.dependencies import depends_on, link_tasks, unlink_tasks
from gantry.drag import BarType, DragCommit, DragKind, DragMachine, DragPhase, DragState
from gantry.graph import TaskGraph
from gantry.model import Task, TaskPatch, TaskStatus, TaskType, TaskValidationError, apply_patch
from gantry.progress import (
    CategorySummary,
    GroupSummary,
    ProgressPoint,
    ProjectKpis,
    actual_data_date,
    category_summary,
    compute_progress_series,
    effective_actual_range,
    project_kpis,
    resolve_task,
    summarize_group,
)
from gantry.progress_update import START_WORK, progress_patch
from gantry.reorder import (
    DropPosition,
    commit_reorder,
    compute_reorder_target,
    detach_from_parent,
    move_category,
    move_to_scope,
    next_order,
    normalize_orders,
)
from gantry.session import GanttSession, Row
from gantry.store import (
    InMemoryPreferences,
    InMemoryTaskStore,
    JsonFilePreferences,
    JsonFileTaskStore,
    PreferencesStore,
    StoreError,
    TaskStore,
)
from gantry.timeline import Timeline, compute_timeline
from gantry.validate import assert_valid_tasks, validate_tasks
from gantry.weights import compute_weights

JsonPath = Union[str, Path]
Project = Dict[str, Any]


def load_project_from_json(path: JsonPath, *, validate: bool = True) -> Tuple[Project, List[Task]]:
    """Load `{"project": {...}, "tasks": [...]}` (or a bare task list) from disk.

    Returns the project header (empty dict if absent) and the decoded tasks.
    """
    p = Path(path)
    doc = json.loads(p.read_text(encoding="utf-8", errors="replace"))
    if isinstance(doc, list):
        project: Project = {}
        records = doc
    elif isinstance(doc, dict):
        project = doc.get("project") or {}
        records = doc.get("tasks") or []
    else:
        raise TaskValidationError(f"{p}: expected an object or a list")
    if not isinstance(project, dict):
        raise TaskValidationError(f"{p}: project must be an object")
    if validate:
        assert_valid_tasks(records)
    return project, [Task.from_dict(r) for r in records]


def project_timeline(
    project: Project,
    granularity: Optional[str] = None,
    viewport_width: float = 0.0,
    *,
    config: EngineConfig = DEFAULT_CONFIG,
) -> Timeline:
    """Timeline over the project's own start/end dates (fallback window if unusable)."""
    return compute_timeline(
        project.get("startDate"),
        project.get("endDate"),
        granularity or config.default_granularity,
        viewport_width,
        config=config,
    )


_PUBLIC_EXPORTS = (
    # model
    "Task",
    "TaskPatch",
    "TaskStatus",
    "TaskType",
    "TaskValidationError",
    "TaskGraph",
    "apply_patch",
    # timeline
    "Timeline",
    "compute_timeline",
    "project_timeline",
    # weights / progress
    "compute_weights",
    "compute_progress_series",
    "ProgressPoint",
    "actual_data_date",
    "effective_actual_range",
    "ProjectKpis",
    "project_kpis",
    "GroupSummary",
    "summarize_group",
    "resolve_task",
    "CategorySummary",
    "category_summary",
    # drag
    "DragMachine",
    "DragKind",
    "BarType",
    "DragPhase",
    "DragState",
    "DragCommit",
    # reorder
    "DropPosition",
    "compute_reorder_target",
    "commit_reorder",
    "detach_from_parent",
    "move_to_scope",
    "next_order",
    "normalize_orders",
    "move_category",
    # dependencies / progress update
    "link_tasks",
    "unlink_tasks",
    "depends_on",
    "progress_patch",
    "START_WORK",
    # session / persistence
    "GanttSession",
    "Row",
    "TaskStore",
    "InMemoryTaskStore",
    "JsonFileTaskStore",
    "StoreError",
    "PreferencesStore",
    "InMemoryPreferences",
    "JsonFilePreferences",
    # config / io / validation
    "EngineConfig",
    "DEFAULT_CONFIG",
    "load_project_from_json",
    "validate_tasks",
    "assert_valid_tasks",
)

__all__ = [n for n in _PUBLIC_EXPORTS if n in globals()]
