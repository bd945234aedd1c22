# gantry/progress.py
from __future__ import annotations

import dataclasses
import datetime as dt
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .config import DEFAULT_CONFIG
from .graph import TaskGraph
from .model import Task, TaskStatus
from .timeline import Timeline
from .util.dates import add_days, days_between, inclusive_days, today as _today
from .util.numbers import clamp, round_half_up
from .weights import compute_weights, is_work_item

DateRange = Tuple[dt.date, dt.date]


def inferred_actual_end(task: Task, start: dt.date) -> dt.date:
    """Actual end implied by progress: the completed share of the plan duration, laid from `start`."""
    progress_days = round_half_up(task.plan_duration * (task.progress / 100.0))
    return add_days(start, max(0, progress_days - 1))


def effective_actual_range(task: Task) -> Optional[DateRange]:
    """Actual range as displayed: recorded dates first, progress inference second.

    Returns None for a task that has neither an actual start nor any progress.
    The inferred end is never persisted.
    """
    if task.actual_start is None and task.progress <= 0:
        return None

    start = task.actual_start or task.plan_start
    if start is None:
        return None

    if task.actual_end is not None:
        end = task.actual_end
    elif task.progress > 0:
        end = inferred_actual_end(task, start)
    else:
        end = start
    return start, max(start, end)


# --- S-curve ------------------------------------------------------------------

@dataclass(frozen=True)
class ProgressPoint:
    start: dt.date
    end: dt.date  # bucket end (inclusive), clipped to the timeline end
    planned: float
    actual: float
    has_actual: bool = True  # False past the actual data date; hosts stop the actual curve there


@dataclass(frozen=True)
class _Contribution:
    weight: float
    plan: Optional[DateRange]
    actual: Optional[DateRange]
    done: float  # progress / 100


def _attribution_span(task: Task, now: dt.date) -> Optional[DateRange]:
    if task.progress <= 0:
        return None
    start = task.actual_start or task.plan_start
    if start is None:
        return None
    if task.actual_end is not None:
        end = task.actual_end
    elif task.actual_start is not None:
        # Started with no recorded finish: open-ended until today.
        end = now
    else:
        # No actual dates at all: spread over the plan span.
        end = task.plan_end or start
    return start, max(start, end)


def _fraction_until(span: DateRange, lo: Optional[dt.date], hi: dt.date) -> float:
    """Share of the inclusive `span` lying within [lo, hi] (lo=None means unbounded)."""
    s, e = span
    total = inclusive_days(s, e)
    if total <= 0:
        return 0.0
    a = s if lo is None else max(s, lo)
    b = min(e, hi)
    if b < a:
        return 0.0
    return min(1.0, inclusive_days(a, b) / total)


def actual_data_date(
    tasks: Iterable[Task],
    *,
    today: Optional[dt.date] = None,
    tz: str = DEFAULT_CONFIG.tz,
) -> Optional[dt.date]:
    """Last day the actual curve has data for, or None when nothing has been recorded.

    The latest recorded actual end (a completed task without one counts at its
    actual start), pushed out to today while any task is in progress.
    """
    last: Optional[dt.date] = None
    in_progress = False
    for t in tasks:
        if not is_work_item(t):
            continue
        d = t.actual_end
        if d is None and t.status is TaskStatus.COMPLETED:
            d = t.actual_start
        if d is not None and (last is None or d > last):
            last = d
        if t.status is TaskStatus.IN_PROGRESS:
            in_progress = True
    if in_progress:
        now = today or _today(tz)
        if last is None or now > last:
            last = now
    return last


def compute_progress_series(
    tasks: Iterable[Task],
    timeline: Timeline,
    *,
    today: Optional[dt.date] = None,
    weights: Optional[Dict[str, float]] = None,
    mode: Optional[str] = None,
    tz: str = DEFAULT_CONFIG.tz,
) -> List[ProgressPoint]:
    """Cumulative planned vs actual percent at the end of every timeline cell.

    planned: each task's weight times the share of its plan range that falls
    between the timeline start and the bucket end.
    actual: each task's weight times its progress, spread linearly over its
    actual span. The actual curve is reported as-is and may dip after edits.

    `mode` ("cost"/"financial" or "duration"/"physical") overrides the automatic
    weighting; explicit `weights` win over both. Buckets starting after
    `actual_data_date` carry has_actual=False.
    """
    items = list(tasks)
    w = weights if weights is not None else compute_weights(items, mode)
    now = today or _today(tz)
    data_date = actual_data_date(items, today=now)

    contribs: List[_Contribution] = []
    for t in items:
        weight = w.get(t.id, 0.0)
        if weight <= 0 or not is_work_item(t):
            continue
        plan = None
        if t.plan_start is not None and t.plan_end is not None and t.plan_start <= t.plan_end:
            plan = (t.plan_start, t.plan_end)
        contribs.append(
            _Contribution(
                weight=weight,
                plan=plan,
                actual=_attribution_span(t, now),
                done=clamp(t.progress, 0, 100) / 100.0,
            )
        )

    out: List[ProgressPoint] = []
    for cell in timeline.cells:
        bucket_end = min(cell.end, timeline.end)
        planned = 0.0
        actual = 0.0
        for c in contribs:
            if c.plan is not None:
                planned += c.weight * _fraction_until(c.plan, timeline.start, bucket_end)
            if c.actual is not None:
                actual += c.weight * c.done * _fraction_until(c.actual, None, bucket_end)
        out.append(
            ProgressPoint(
                start=cell.start,
                end=bucket_end,
                planned=clamp(planned, 0.0, 100.0),
                actual=clamp(actual, 0.0, 100.0),
                has_actual=data_date is not None and cell.start <= data_date,
            )
        )
    return out


# --- group / category summaries -----------------------------------------------

@dataclass(frozen=True)
class GroupSummary:
    count: int
    total_cost: float
    progress: int
    plan_range: Optional[DateRange]
    actual_range: Optional[DateRange]


EMPTY_GROUP = GroupSummary(count=0, total_cost=0.0, progress=0, plan_range=None, actual_range=None)


def leaf_descendants(graph: TaskGraph, task_id: str) -> List[Task]:
    return [
        t
        for t in graph.descendants_of(task_id)
        if is_work_item(t) and not graph.has_children(t.id)
    ]


def summarize_tasks(leaves: Iterable[Task]) -> GroupSummary:
    leaves = list(leaves)
    if not leaves:
        return EMPTY_GROUP

    plan_lo: Optional[dt.date] = None
    plan_hi: Optional[dt.date] = None
    act_lo: Optional[dt.date] = None
    act_hi: Optional[dt.date] = None
    total_cost = 0.0
    weighted = 0.0
    total_weight = 0.0
    # Cost-weighted average; every leaf counts once when none has a cost.
    use_cost = any(t.cost > 0 for t in leaves)

    for t in leaves:
        if t.plan_start is not None and (plan_lo is None or t.plan_start < plan_lo):
            plan_lo = t.plan_start
        if t.plan_end is not None and (plan_hi is None or t.plan_end > plan_hi):
            plan_hi = t.plan_end

        if t.actual_start is not None:
            if act_lo is None or t.actual_start < act_lo:
                act_lo = t.actual_start
            if t.actual_end is not None:
                eff_end = t.actual_end
            elif t.progress > 0:
                eff_end = inferred_actual_end(t, t.actual_start)
            else:
                eff_end = t.actual_start
            if act_hi is None or eff_end > act_hi:
                act_hi = eff_end

        total_cost += t.cost
        leaf_weight = max(0.0, t.cost) if use_cost else 1.0
        weighted += t.progress * leaf_weight
        total_weight += leaf_weight

    plan_range = (plan_lo, plan_hi) if plan_lo is not None and plan_hi is not None else None
    actual_range = (act_lo, act_hi) if act_lo is not None and act_hi is not None else None
    return GroupSummary(
        count=len(leaves),
        total_cost=total_cost,
        progress=round_half_up(weighted / total_weight) if total_weight > 0 else 0,
        plan_range=plan_range,
        actual_range=actual_range,
    )


def summarize_group(graph: TaskGraph, task_id: str) -> GroupSummary:
    """Derived schedule, cost and progress of a container from its leaf descendants."""
    return summarize_tasks(leaf_descendants(graph, task_id))


def resolve_task(graph: TaskGraph, task_id: str) -> Optional[Task]:
    """The task as it should be read: groups get their derived fields filled in."""
    t = graph.get(task_id)
    if t is None or not t.is_group:
        return t
    s = summarize_group(graph, task_id)
    plan = s.plan_range or (None, None)
    actual = s.actual_range or (None, None)
    return dataclasses.replace(
        t,
        plan_start=plan[0],
        plan_end=plan[1],
        actual_start=actual[0],
        actual_end=actual[1],
        cost=s.total_cost,
        progress=s.progress,
    )


@dataclass(frozen=True)
class CategorySummary:
    count: int
    total_cost: float
    total_weight: float
    avg_progress: float
    plan_range: Optional[DateRange]

    @property
    def days(self) -> int:
        if self.plan_range is None:
            return 0
        return days_between(*self.plan_range) + 1


def category_summary(tasks: Iterable[Task], weights: Optional[Dict[str, float]] = None) -> CategorySummary:
    """Header-row figures for one category's tasks."""
    items = list(tasks)
    w = weights or {}
    work = [t for t in items if is_work_item(t)]

    lo: Optional[dt.date] = None
    hi: Optional[dt.date] = None
    for t in work:
        if t.plan_start is None or t.plan_end is None:
            continue
        if lo is None or t.plan_start < lo:
            lo = t.plan_start
        if hi is None or t.plan_end > hi:
            hi = t.plan_end

    return CategorySummary(
        count=len(items),
        total_cost=sum(t.cost for t in items),
        total_weight=sum(w.get(t.id, 0.0) for t in items),
        avg_progress=(sum(t.progress for t in items) / len(items)) if items else 0.0,
        plan_range=(lo, hi) if lo is not None and hi is not None else None,
    )


# --- project KPIs -------------------------------------------------------------

@dataclass(frozen=True)
class ProjectKpis:
    progress: float  # weighted actual progress, percent
    plan_to_date: float  # weighted planned percent at the reference date
    plan_range: Optional[DateRange]
    variance_days: Optional[int]

    @property
    def gap(self) -> float:
        """Progress minus plan-to-date, in percentage points (negative means behind)."""
        return self.progress - self.plan_to_date

    @property
    def span_days(self) -> int:
        if self.plan_range is None:
            return 0
        return inclusive_days(*self.plan_range)


def planned_percent_at(task: Task, reference: dt.date) -> float:
    """Share of the task's plan elapsed at `reference` (0 before its start, 100 from its end on)."""
    if task.plan_start is None or task.plan_end is None:
        return 0.0
    if reference < task.plan_start:
        return 0.0
    if reference >= task.plan_end:
        return 100.0
    elapsed = days_between(task.plan_start, reference) + 1
    return min(100.0, elapsed / max(1, task.plan_duration) * 100.0)


def project_kpis(
    tasks: Iterable[Task],
    reference_date: Optional[dt.date] = None,
    weights: Optional[Dict[str, float]] = None,
    *,
    mode: Optional[str] = None,
    tz: str = DEFAULT_CONFIG.tz,
) -> ProjectKpis:
    """Headline figures for the whole project at `reference_date` (default today).

    Variance converts the gap into days over the overall plan span.
    """
    items = list(tasks)
    w = weights if weights is not None else compute_weights(items, mode)
    ref = reference_date or _today(tz)

    weight_sum = 0.0
    done = 0.0
    for t in items:
        weight = w.get(t.id, 0.0)
        if weight > 0:
            weight_sum += weight
            done += weight * t.progress
    progress = done / weight_sum if weight_sum > 0 else 0.0

    plan_weight = 0.0
    planned = 0.0
    lo: Optional[dt.date] = None
    hi: Optional[dt.date] = None
    for t in items:
        if not is_work_item(t) or t.plan_start is None or t.plan_end is None:
            continue
        weight = w.get(t.id, 0.0)
        if weight > 0:
            plan_weight += weight
            planned += weight * planned_percent_at(t, ref)
        if lo is None or t.plan_start < lo:
            lo = t.plan_start
        if hi is None or t.plan_end > hi:
            hi = t.plan_end
    plan_to_date = planned / plan_weight if plan_weight > 0 else 0.0

    plan_range = (lo, hi) if lo is not None and hi is not None else None
    variance_days = None
    if plan_range is not None:
        span = max(1, inclusive_days(*plan_range))
        variance_days = round_half_up((progress - plan_to_date) / 100.0 * span)
    return ProjectKpis(
        progress=progress,
        plan_to_date=plan_to_date,
        plan_range=plan_range,
        variance_days=variance_days,
    )


__all__ = [
    "CategorySummary",
    "GroupSummary",
    "ProgressPoint",
    "ProjectKpis",
    "actual_data_date",
    "category_summary",
    "compute_progress_series",
    "effective_actual_range",
    "inferred_actual_end",
    "leaf_descendants",
    "planned_percent_at",
    "project_kpis",
    "resolve_task",
    "summarize_group",
    "summarize_tasks",
]
