# gantry/drag.py
from __future__ import annotations

import datetime as dt
import logging
from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple, Union

from .graph import TaskGraph
from .model import Task, TaskPatch, actual_patch, plan_patch
from .progress import inferred_actual_end
from .timeline import Timeline
from .util.dates import add_days, days_between, inclusive_days
from .util.numbers import clamp, round_half_up

logger = logging.getLogger(__name__)


class DragKind(str, Enum):
    MOVE = "move"
    RESIZE_LEFT = "resize-left"
    RESIZE_RIGHT = "resize-right"


class BarType(str, Enum):
    PLAN = "plan"
    ACTUAL = "actual"


class DragPhase(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTING = "committing"


@dataclass(frozen=True)
class DragState:
    task_id: str
    kind: DragKind
    bar: BarType
    origin_x: float
    original_start: dt.date
    original_end: dt.date
    current_start: dt.date
    current_end: dt.date
    # Descendants carried along by a plan move; empty otherwise.
    affected_ids: FrozenSet[str] = frozenset()

    @property
    def changed(self) -> bool:
        return self.current_start != self.original_start or self.current_end != self.original_end

    @property
    def start_delta(self) -> int:
        return days_between(self.original_start, self.current_start)

    @property
    def end_delta(self) -> int:
        return days_between(self.original_end, self.current_end)


@dataclass(frozen=True)
class DragCommit:
    """Everything one drag release asks the store to change.

    `updates` is ordered: the dragged task first, then descendants, then
    successors in breadth-first order. Each task id appears once.
    """

    task_id: str
    kind: DragKind
    bar: BarType
    updates: Tuple[Tuple[str, TaskPatch], ...]
    descendant_ids: Tuple[str, ...] = ()
    successor_ids: Tuple[str, ...] = ()

    @property
    def cascaded(self) -> bool:
        return bool(self.descendant_ids or self.successor_ids)

    def as_dict(self) -> Dict[str, TaskPatch]:
        return {tid: dict(p) for tid, p in self.updates}


# --- pure helpers ---------------------------------------------------------------

def drag_range(task: Task, bar: BarType) -> Optional[Tuple[dt.date, dt.date]]:
    """Range a drag starts from.

    For the actual bar a missing end is synthesized from progress, and a task
    with no progress collapses to a one-day marker at its (actual or plan) start.
    """
    if bar is BarType.PLAN:
        if task.plan_start is None or task.plan_end is None:
            return None
        return task.plan_start, max(task.plan_start, task.plan_end)

    start = task.actual_start or task.plan_start
    if start is None:
        return None
    if task.progress > 0:
        end = task.actual_end if task.actual_end is not None else inferred_actual_end(task, start)
    else:
        end = start
    return start, max(start, end)


def apply_day_delta(
    kind: DragKind,
    start: dt.date,
    end: dt.date,
    days: int,
) -> Tuple[dt.date, dt.date]:
    """New range for a day delta; a resized edge never crosses the fixed one."""
    if kind is DragKind.MOVE:
        return add_days(start, days), add_days(end, days)
    if kind is DragKind.RESIZE_LEFT:
        return min(add_days(start, days), end), end
    return start, max(add_days(end, days), start)


def progress_for_actual(task: Task, start: dt.date, end: dt.date) -> Optional[int]:
    """Completion implied by the actual bar length relative to the plan duration."""
    plan_days = task.plan_duration
    if plan_days <= 0:
        return None
    ratio = inclusive_days(start, end) / plan_days
    return int(clamp(round_half_up(100 * ratio), 0, 100))


def _shifted(task: Task, days: int) -> Optional[TaskPatch]:
    if task.is_group or task.plan_start is None or task.plan_end is None:
        return None
    return plan_patch(add_days(task.plan_start, days), add_days(task.plan_end, days))


def cascade_descendants(graph: TaskGraph, ids: FrozenSet[str], days: int) -> List[Tuple[str, TaskPatch]]:
    """Shift every still-existing descendant's plan by `days`.

    Containers are skipped: their dates are derived from the leaves that move.
    """
    out: List[Tuple[str, TaskPatch]] = []
    if not days:
        return out
    for t in graph.tasks:
        if t.id not in ids:
            continue
        patch = _shifted(t, days)
        if patch is not None:
            out.append((t.id, patch))
    return out


def cascade_successors(graph: TaskGraph, task_id: str, days: int) -> List[Tuple[str, TaskPatch]]:
    """Breadth-first push of `days` through the finish-to-start successor graph."""
    out: List[Tuple[str, TaskPatch]] = []
    if not days:
        return out
    emitted = {task_id}
    processed = set()
    queue = deque([task_id])
    while queue:
        cur = queue.popleft()
        if cur in processed:
            continue
        processed.add(cur)
        for succ in graph.successors_of(cur):
            if succ.id not in emitted:
                emitted.add(succ.id)
                patch = _shifted(succ, days)
                if patch is not None:
                    out.append((succ.id, patch))
            queue.append(succ.id)
    return out


def build_commit(graph: TaskGraph, state: DragState) -> Optional[DragCommit]:
    """Turn a finished drag into the full set of task updates."""
    task = graph.get(state.task_id)
    if task is None or not state.changed:
        return None

    updates: Dict[str, TaskPatch] = {}
    if state.bar is BarType.ACTUAL:
        patch = actual_patch(state.current_start, state.current_end)
        progress = progress_for_actual(task, state.current_start, state.current_end)
        if progress is not None:
            patch["progress"] = progress
        updates[task.id] = patch
        return DragCommit(task_id=task.id, kind=state.kind, bar=state.bar, updates=tuple(updates.items()))

    updates[task.id] = plan_patch(state.current_start, state.current_end)

    descendant_ids: List[str] = []
    if state.kind is DragKind.MOVE:
        for tid, patch in cascade_descendants(graph, state.affected_ids, state.start_delta):
            if tid not in updates:
                updates[tid] = patch
                descendant_ids.append(tid)

    successor_ids: List[str] = []
    shift = 0
    if state.kind is DragKind.MOVE:
        shift = state.start_delta
    elif state.kind is DragKind.RESIZE_RIGHT:
        shift = state.end_delta
    for tid, patch in cascade_successors(graph, task.id, shift):
        if tid not in updates:
            updates[tid] = patch
            successor_ids.append(tid)

    return DragCommit(
        task_id=task.id,
        kind=state.kind,
        bar=state.bar,
        updates=tuple(updates.items()),
        descendant_ids=tuple(descendant_ids),
        successor_ids=tuple(successor_ids),
    )


# --- state machine --------------------------------------------------------------

class DragMachine:
    """Pointer-driven editing of one task bar at a time.

    IDLE -> DRAGGING (begin_drag) -> COMMITTING (commit_drag with a net change)
    -> IDLE (finish_commit). A release without net change goes straight back
    to IDLE. Pointer moves are coalesced: update_drag only records the latest
    position and frame() recomputes once.
    """

    def __init__(
        self,
        graph_source: Callable[[], TaskGraph],
        timeline: Timeline,
        *,
        editable: bool = True,
    ):
        self._graph_source = graph_source
        self._timeline = timeline
        self._editable = editable
        self._phase = DragPhase.IDLE
        self._state: Optional[DragState] = None
        self._pending_x: Optional[float] = None

    @property
    def phase(self) -> DragPhase:
        return self._phase

    @property
    def state(self) -> Optional[DragState]:
        return self._state

    @property
    def editable(self) -> bool:
        return self._editable

    @property
    def timeline(self) -> Timeline:
        return self._timeline

    def set_timeline(self, timeline: Timeline) -> None:
        if self._phase is not DragPhase.IDLE:
            raise RuntimeError("cannot change the timeline while a drag is active")
        self._timeline = timeline

    def begin_drag(
        self,
        task: Union[Task, str],
        kind: Union[DragKind, str],
        bar: Union[BarType, str],
        pointer_x: float,
    ) -> bool:
        """Start dragging; returns False when the gesture is not allowed."""
        if not self._editable or self._phase is not DragPhase.IDLE:
            return False

        kind = DragKind(kind)
        bar = BarType(bar)
        graph = self._graph_source()
        task_id = task.id if isinstance(task, Task) else str(task)
        current = graph.get(task_id)
        if current is None or current.is_group:
            return False

        rng = drag_range(current, bar)
        if rng is None:
            return False

        affected: FrozenSet[str] = frozenset()
        if kind is DragKind.MOVE and bar is BarType.PLAN:
            affected = graph.descendant_ids(task_id)

        start, end = rng
        self._state = DragState(
            task_id=task_id,
            kind=kind,
            bar=bar,
            origin_x=float(pointer_x),
            original_start=start,
            original_end=end,
            current_start=start,
            current_end=end,
            affected_ids=affected,
        )
        self._pending_x = None
        self._phase = DragPhase.DRAGGING
        logger.debug("drag begin task=%s kind=%s bar=%s range=%s..%s", task_id, kind.value, bar.value, start, end)
        return True

    def update_drag(self, pointer_x: float) -> None:
        if self._phase is DragPhase.DRAGGING:
            self._pending_x = float(pointer_x)

    def frame(self) -> Optional[DragState]:
        """Apply the most recent pointer position; call once per display refresh."""
        if self._phase is not DragPhase.DRAGGING or self._state is None:
            return self._state
        if self._pending_x is None:
            return self._state

        st = self._state
        days = self._timeline.days_for_pixels(self._pending_x - st.origin_x)
        self._pending_x = None
        new_start, new_end = apply_day_delta(st.kind, st.original_start, st.original_end, days)
        if new_start != st.current_start or new_end != st.current_end:
            self._state = replace(st, current_start=new_start, current_end=new_end)
        return self._state

    def preview_range(self, task_id: str) -> Optional[Tuple[dt.date, dt.date]]:
        """Where a bar should be drawn right now, or None if the drag does not touch it."""
        st = self._state
        if st is None or self._phase is not DragPhase.DRAGGING:
            return None
        if task_id == st.task_id:
            return st.current_start, st.current_end
        if task_id in st.affected_ids:
            t = self._graph_source().get(task_id)
            if t is None or t.plan_start is None or t.plan_end is None:
                return None
            d = st.start_delta
            return add_days(t.plan_start, d), add_days(t.plan_end, d)
        return None

    def commit_drag(self) -> Optional[DragCommit]:
        """Finish the gesture; None means nothing to persist and the machine is IDLE again."""
        if self._phase is not DragPhase.DRAGGING or self._state is None:
            return None
        self.frame()
        commit = build_commit(self._graph_source(), self._state)
        if commit is None:
            self._reset()
            return None
        self._phase = DragPhase.COMMITTING
        logger.debug(
            "drag commit task=%s updates=%d descendants=%d successors=%d",
            commit.task_id,
            len(commit.updates),
            len(commit.descendant_ids),
            len(commit.successor_ids),
        )
        return commit

    def finish_commit(self) -> None:
        if self._phase is DragPhase.COMMITTING:
            self._reset()

    def cancel(self) -> None:
        if self._phase is DragPhase.DRAGGING:
            self._reset()

    def _reset(self) -> None:
        self._state = None
        self._pending_x = None
        self._phase = DragPhase.IDLE


__all__ = [
    "BarType",
    "DragCommit",
    "DragKind",
    "DragMachine",
    "DragPhase",
    "DragState",
    "apply_day_delta",
    "build_commit",
    "cascade_descendants",
    "cascade_successors",
    "drag_range",
    "progress_for_actual",
]
