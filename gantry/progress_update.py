# gantry/progress_update.py
from __future__ import annotations

from typing import Optional

from .model import Task, TaskPatch, TaskStatus
from .util.dates import DateLike, format_date, parse_date
from .util.numbers import clamp

# Sentinel progress value meaning "work has started, nothing done yet".
START_WORK = -1


def derive_status(progress: int, *, starting: bool = False) -> TaskStatus:
    if progress >= 100:
        return TaskStatus.COMPLETED
    if progress > 0 or starting:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.NOT_STARTED


def progress_patch(
    task: Task,
    new_progress: int,
    update_date: DateLike,
    reason: Optional[str] = None,
) -> Optional[TaskPatch]:
    """Patch for a quick progress update recorded on `update_date`.

    Actual dates follow the new progress: starting work stamps the actual
    start, any progress without an actual start borrows the plan start (or
    the update date if that is earlier than the recorded start), 100% stamps
    the actual end and anything below clears it. Returns None for groups,
    whose progress is derived, and for an unparseable date.
    """
    if task.is_group:
        return None
    when = parse_date(update_date)
    if when is None:
        return None

    starting = int(new_progress) == START_WORK
    progress = 0 if starting else int(clamp(int(new_progress), 0, 100))
    status = derive_status(progress, starting=starting)
    stamp = format_date(when)

    patch: TaskPatch = {
        "progress": progress,
        "progressUpdatedAt": stamp,
        "status": status.value,
    }
    if reason:
        patch["remarks"] = reason

    if starting:
        patch["actualStartDate"] = stamp
    elif progress == 0:
        patch["actualStartDate"] = ""
    elif task.actual_start is None:
        patch["actualStartDate"] = format_date(task.plan_start) if task.plan_start else stamp
    elif when < task.actual_start:
        patch["actualStartDate"] = stamp

    if progress == 100:
        patch["actualEndDate"] = stamp
    elif task.actual_end is not None:
        patch["actualEndDate"] = ""

    return patch


def is_started(task: Task) -> bool:
    """Whether the row should offer "start work" rather than a progress edit."""
    if task.actual_start is not None or task.progress > 0:
        return True
    return task.status in (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED)


__all__ = ["START_WORK", "derive_status", "is_started", "progress_patch"]
