# gantry/model.py
from __future__ import annotations

import dataclasses
import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .util.dates import format_date, inclusive_days, parse_date


class TaskValidationError(ValueError):
    """Raised when a task record cannot be turned into a Task."""


class TaskType(str, Enum):
    TASK = "task"
    GROUP = "group"


class TaskStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    DELAYED = "delayed"


# Partial field set sent to the task store, keyed by wire (camelCase) names.
TaskPatch = Dict[str, Any]


@dataclass(frozen=True)
class Task:
    id: str
    name: str = ""
    project_id: str = ""

    category: str = ""
    subcategory: str = ""
    type: TaskType = TaskType.TASK

    parent_task_id: Optional[str] = None
    order: float = 0.0
    predecessors: Tuple[str, ...] = ()

    plan_start: Optional[dt.date] = None
    plan_end: Optional[dt.date] = None
    actual_start: Optional[dt.date] = None
    actual_end: Optional[dt.date] = None

    cost: float = 0.0
    quantity: str = ""
    color: Optional[str] = None

    progress: int = 0
    progress_updated_at: Optional[dt.date] = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    remarks: str = ""

    @property
    def is_group(self) -> bool:
        return self.type is TaskType.GROUP

    @property
    def plan_duration(self) -> int:
        """Inclusive plan length in days; 0 when the plan range is missing or inverted."""
        if self.plan_start is None or self.plan_end is None:
            return 0
        return max(0, inclusive_days(self.plan_start, self.plan_end))

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Task":
        """Build a Task from a store record (camelCase keys, ISO date strings)."""
        if not isinstance(raw, Mapping):
            raise TaskValidationError(f"task record must be an object; got {type(raw).__name__}")

        tid = raw.get("id")
        if tid is None or not str(tid).strip():
            raise TaskValidationError("task record is missing a non-empty id")

        kw: Dict[str, Any] = {"id": str(tid)}
        for wire, attr in _WIRE_TO_ATTR.items():
            if wire == "id" or wire not in raw:
                continue
            kw[attr] = _decode(attr, raw[wire], task_id=kw["id"])
        return cls(**kw)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for wire, attr in _WIRE_TO_ATTR.items():
            out[wire] = _encode(attr, getattr(self, attr))
        return out


_WIRE_TO_ATTR: Dict[str, str] = {
    "id": "id",
    "name": "name",
    "projectId": "project_id",
    "category": "category",
    "subcategory": "subcategory",
    "type": "type",
    "parentTaskId": "parent_task_id",
    "order": "order",
    "predecessors": "predecessors",
    "planStartDate": "plan_start",
    "planEndDate": "plan_end",
    "actualStartDate": "actual_start",
    "actualEndDate": "actual_end",
    "cost": "cost",
    "quantity": "quantity",
    "color": "color",
    "progress": "progress",
    "progressUpdatedAt": "progress_updated_at",
    "status": "status",
    "remarks": "remarks",
}

_DATE_ATTRS = frozenset({"plan_start", "plan_end", "actual_start", "actual_end", "progress_updated_at"})


def _decode(attr: str, value: Any, *, task_id: str) -> Any:
    if attr in _DATE_ATTRS:
        # "" is how the store clears a date.
        return parse_date(value)
    if attr == "type":
        try:
            return TaskType(value or TaskType.TASK.value)
        except ValueError as ex:
            raise TaskValidationError(f"task {task_id}: unknown type {value!r}") from ex
    if attr == "status":
        try:
            return TaskStatus(value or TaskStatus.NOT_STARTED.value)
        except ValueError as ex:
            raise TaskValidationError(f"task {task_id}: unknown status {value!r}") from ex
    if attr == "parent_task_id":
        return str(value) if value not in (None, "") else None
    if attr == "predecessors":
        if not value:
            return ()
        if not isinstance(value, (list, tuple)):
            raise TaskValidationError(f"task {task_id}: predecessors must be a list")
        return tuple(str(p) for p in value if p not in (None, ""))
    if attr == "order":
        try:
            return float(value or 0)
        except (TypeError, ValueError) as ex:
            raise TaskValidationError(f"task {task_id}: order must be a number") from ex
    if attr == "cost":
        try:
            return float(value or 0)
        except (TypeError, ValueError) as ex:
            raise TaskValidationError(f"task {task_id}: cost must be a number") from ex
    if attr == "progress":
        try:
            return int(round(float(value or 0)))
        except (TypeError, ValueError) as ex:
            raise TaskValidationError(f"task {task_id}: progress must be a number") from ex
    if attr in ("name", "project_id", "category", "subcategory", "quantity", "remarks"):
        return "" if value is None else str(value)
    return value


def _encode(attr: str, value: Any) -> Any:
    if attr in _DATE_ATTRS:
        return format_date(value)
    if isinstance(value, Enum):
        return value.value
    if attr == "predecessors":
        return list(value)
    return value


def apply_patch(task: Task, patch: Mapping[str, Any]) -> Task:
    """Return a copy of `task` with a wire-format patch applied.

    Unknown keys are ignored; the store may carry fields the engine does not model.
    """
    changes: Dict[str, Any] = {}
    for wire, value in patch.items():
        attr = _WIRE_TO_ATTR.get(wire)
        if attr is None or attr == "id":
            continue
        changes[attr] = _decode(attr, value, task_id=task.id)
    if not changes:
        return task
    return dataclasses.replace(task, **changes)


def plan_patch(start: dt.date, end: dt.date) -> TaskPatch:
    return {"planStartDate": format_date(start), "planEndDate": format_date(end)}


def actual_patch(start: dt.date, end: dt.date) -> TaskPatch:
    return {"actualStartDate": format_date(start), "actualEndDate": format_date(end)}


__all__ = [
    "Task",
    "TaskPatch",
    "TaskStatus",
    "TaskType",
    "TaskValidationError",
    "actual_patch",
    "apply_patch",
    "plan_patch",
]
