# gantry/session.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .dependencies import link_tasks, unlink_tasks
from .drag import BarType, DragCommit, DragKind, DragMachine, DragPhase, DragState
from .graph import TaskGraph
from .model import Task, TaskPatch, apply_patch
from .progress import resolve_task
from .progress_update import progress_patch
from .reorder import (
    DropPosition,
    category_order,
    commit_reorder,
    compute_reorder_target,
    detach_from_parent,
    move_category,
    move_to_scope,
)
from .store import PreferencesStore, TaskStore, load_tasks
from .timeline import Timeline, compute_timeline
from .util.dates import DateLike

logger = logging.getLogger(__name__)

Listener = Callable[[Sequence[Task]], None]

_COLLAPSED = "collapsed:"
_CATEGORY_COLLAPSED = "collapsed-category:"
_COLOR = "color:"
_CATEGORY_ORDER = "category_order"


@dataclass(frozen=True)
class Row:
    task: Task
    depth: int


class GanttSession:
    """One view session over one project's task snapshot.

    The session owns the optimistic snapshot: every edit is applied locally in
    a single swap (one listener notification) and then sent to the store.
    Store failures are logged and left divergent until the next `refresh`.
    Without a store the session is read-only and every edit is refused.
    """

    def __init__(
        self,
        tasks: Iterable[Task] = (),
        *,
        store: Optional[TaskStore] = None,
        preferences: Optional[PreferencesStore] = None,
        timeline: Optional[Timeline] = None,
        config: EngineConfig = DEFAULT_CONFIG,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._store = store
        self._prefs = preferences
        self._config = config
        self._sleep = sleep
        self._tasks: Tuple[Task, ...] = tuple(tasks)
        self._graph: Optional[TaskGraph] = None
        self._listeners: List[Listener] = []
        self._busy: Set[str] = set()
        self._pending = 0
        self.last_failures: Tuple[str, ...] = ()

        tl = timeline or compute_timeline(None, None, config.default_granularity, config=config)
        self.drag = DragMachine(lambda: self.graph, tl, editable=store is not None)

    # -------------------- snapshot --------------------
    @property
    def tasks(self) -> Tuple[Task, ...]:
        return self._tasks

    @property
    def graph(self) -> TaskGraph:
        if self._graph is None:
            self._graph = TaskGraph(self._tasks)
        return self._graph

    @property
    def timeline(self) -> Timeline:
        return self.drag.timeline

    def set_timeline(self, timeline: Timeline) -> None:
        self.drag.set_timeline(timeline)

    @property
    def read_only(self) -> bool:
        return self._store is None

    @property
    def busy_ids(self) -> FrozenSet[str]:
        return frozenset(self._busy)

    @property
    def in_flight(self) -> bool:
        return self._pending > 0

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a snapshot listener; returns the matching unsubscribe call."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def refresh(self, tasks: Iterable[Task]) -> None:
        """Replace the snapshot wholesale with what the store now holds."""
        self._set_tasks(tasks)

    async def reload(self, project_id: str = "") -> None:
        if self._store is None:
            return
        records = await self._store.list_tasks(project_id)
        self.refresh(load_tasks(records))

    def _set_tasks(self, tasks: Iterable[Task]) -> None:
        self._tasks = tuple(tasks)
        self._graph = None
        for fn in list(self._listeners):
            fn(self._tasks)

    def _apply(self, updates: Mapping[str, TaskPatch]) -> None:
        self._set_tasks(apply_patch(t, updates[t.id]) if t.id in updates else t for t in self._tasks)

    async def _persist(self, updates: Mapping[str, TaskPatch], *, hold: bool = False) -> Tuple[str, ...]:
        """Send every patch concurrently; returns the ids whose update failed."""
        store = self._store
        if store is None:
            raise RuntimeError("session is read-only: no task store to persist to")
        ids = list(updates)
        self._busy.update(ids)
        self._pending += 1
        try:
            results = await asyncio.gather(
                *(store.update_task(tid, dict(updates[tid])) for tid in ids),
                return_exceptions=True,
            )
            failed: List[str] = []
            for tid, res in zip(ids, results):
                if isinstance(res, BaseException):
                    failed.append(tid)
                    logger.warning("update of task %s failed: %s", tid, res)
            if hold and self._config.inflight_pause_s > 0:
                await self._sleep(self._config.inflight_pause_s)
        finally:
            self._busy.difference_update(ids)
            self._pending -= 1
        if failed:
            logger.warning("%d of %d task updates failed; snapshot diverges until refresh", len(failed), len(ids))
        self.last_failures = tuple(failed)
        return self.last_failures

    async def _edit(self, updates: Mapping[str, TaskPatch], *, hold: bool = False) -> Tuple[str, ...]:
        self._apply(updates)
        return await self._persist(updates, hold=hold)

    async def commit_updates(self, updates: Mapping[str, TaskPatch]) -> Tuple[str, ...]:
        """Apply and persist patches computed elsewhere; returns the ids that failed."""
        if self.read_only:
            return tuple(updates)
        unknown = [tid for tid in updates if tid not in self.graph]
        if unknown:
            raise KeyError(f"unknown task id(s): {', '.join(unknown)}")
        return await self._edit(updates)

    def _locked(self, *task_ids: Optional[str]) -> bool:
        return any(tid in self._busy for tid in task_ids if tid is not None)

    # -------------------- drag --------------------
    def begin_drag(self, task_id: str, kind: DragKind, bar: BarType, pointer_x: float) -> bool:
        if self.read_only:
            return False
        if self._locked(task_id, *self.graph.descendant_ids(task_id)):
            logger.debug("drag refused: task %s has a commit in flight", task_id)
            return False
        return self.drag.begin_drag(task_id, kind, bar, pointer_x)

    def update_drag(self, pointer_x: float) -> None:
        self.drag.update_drag(pointer_x)

    def frame(self) -> Optional[DragState]:
        return self.drag.frame()

    def cancel_drag(self) -> None:
        self.drag.cancel()

    async def commit_drag(self) -> Optional[DragCommit]:
        """Release the pointer: apply, unlock the machine, then persist."""
        commit = self.drag.commit_drag()
        if commit is None:
            return None
        updates = commit.as_dict()
        try:
            self._apply(updates)
        finally:
            self.drag.finish_commit()
        await self._persist(updates, hold=commit.cascaded)
        return commit

    @property
    def dragging(self) -> bool:
        return self.drag.phase is DragPhase.DRAGGING

    # -------------------- reorder / nesting --------------------
    async def commit_reorder(self, dragged_id: str, target_id: str, position: DropPosition) -> Optional[TaskPatch]:
        if self.read_only or self._locked(dragged_id, target_id):
            return None
        position = DropPosition(position)
        patch = commit_reorder(self.graph, dragged_id, target_id, position)
        if patch is None:
            return None
        if position is DropPosition.CHILD and self.is_collapsed(target_id):
            self.set_collapsed(target_id, False)
        await self._edit({dragged_id: patch})
        return patch

    async def drop_row(
        self,
        dragged_id: str,
        target_id: str,
        pointer_y: float,
        row_top: float,
        row_height: float,
    ) -> Optional[TaskPatch]:
        """Resolve the drop zone under the pointer and commit it."""
        target = self.graph.get(target_id)
        if target is None:
            return None
        position = compute_reorder_target(pointer_y, row_top, row_height, target)
        return await self.commit_reorder(dragged_id, target_id, position)

    async def detach_from_parent(self, task_id: str) -> Optional[TaskPatch]:
        if self.read_only or self._locked(task_id):
            return None
        patch = detach_from_parent(self.graph, task_id)
        if patch is None:
            return None
        await self._edit({task_id: patch})
        return patch

    async def move_to_scope(self, task_id: str, category: str, subcategory: str = "") -> Optional[TaskPatch]:
        """Drop a row on a category or subcategory header."""
        if self.read_only or self._locked(task_id):
            return None
        patch = move_to_scope(self.graph, task_id, category, subcategory)
        if patch is None:
            return None
        if self.is_category_collapsed(patch["category"]):
            self.set_category_collapsed(patch["category"], False)
        await self._edit({task_id: patch})
        return patch

    # -------------------- dependencies / progress --------------------
    async def link(self, predecessor_id: str, successor_id: str) -> Optional[TaskPatch]:
        if self.read_only or self._locked(successor_id):
            return None
        patch = link_tasks(self.graph, predecessor_id, successor_id)
        if patch is None:
            return None
        await self._edit({successor_id: patch})
        return patch

    async def unlink(self, predecessor_id: str, successor_id: str) -> Optional[TaskPatch]:
        if self.read_only or self._locked(successor_id):
            return None
        patch = unlink_tasks(self.graph, predecessor_id, successor_id)
        if patch is None:
            return None
        await self._edit({successor_id: patch})
        return patch

    async def update_progress(
        self,
        task_id: str,
        new_progress: int,
        update_date: DateLike,
        reason: Optional[str] = None,
    ) -> Optional[TaskPatch]:
        if self.read_only or self._locked(task_id):
            return None
        task = self.graph.get(task_id)
        if task is None:
            return None
        patch = progress_patch(task, new_progress, update_date, reason)
        if patch is None:
            return None
        await self._edit({task_id: patch})
        return patch

    # -------------------- lifecycle --------------------
    async def create_task(self, fields: Mapping[str, Any]) -> Optional[Task]:
        if self._store is None:
            return None
        rec = await self._store.create_task(fields)
        task = Task.from_dict(rec)
        self._set_tasks(self._tasks + (task,))
        return task

    async def delete_task(self, task_id: str) -> bool:
        if self._store is None or self._locked(task_id) or task_id not in self.graph:
            return False
        await self._store.delete_task(task_id)
        self._set_tasks(t for t in self._tasks if t.id != task_id)
        return True

    # -------------------- preferences --------------------
    def _pref(self, key: str, default: Any = None) -> Any:
        if self._prefs is None:
            return default
        return self._prefs.get(key, default)

    def _set_pref(self, key: str, value: Any) -> None:
        if self._prefs is not None:
            self._prefs.set(key, value)

    def is_collapsed(self, task_id: str) -> bool:
        return bool(self._pref(_COLLAPSED + task_id, False))

    def set_collapsed(self, task_id: str, collapsed: bool) -> None:
        self._set_pref(_COLLAPSED + task_id, bool(collapsed))

    def toggle_collapsed(self, task_id: str) -> bool:
        state = not self.is_collapsed(task_id)
        self.set_collapsed(task_id, state)
        return state

    def is_category_collapsed(self, category: str) -> bool:
        return bool(self._pref(_CATEGORY_COLLAPSED + category, False))

    def set_category_collapsed(self, category: str, collapsed: bool) -> None:
        self._set_pref(_CATEGORY_COLLAPSED + category, bool(collapsed))

    def category_color(self, category: str, default: Optional[str] = None) -> Optional[str]:
        return self._pref(_COLOR + category, default)

    def set_category_color(self, category: str, color: str) -> None:
        self._set_pref(_COLOR + category, color)

    def categories(self) -> List[str]:
        return category_order(self._tasks, self._pref(_CATEGORY_ORDER, ()) or ())

    def move_category(self, source: str, target: str) -> List[str]:
        order = move_category(self.categories(), source, target)
        self._set_pref(_CATEGORY_ORDER, order)
        return order

    # -------------------- rows --------------------
    def visible_rows(self) -> List[Row]:
        """Display rows: categories in order, each subtree depth-first, collapsed branches hidden.

        Groups carry their derived schedule, cost and progress.
        """
        g = self.graph
        out: List[Row] = []

        def _walk(task: Task, depth: int, seen: Set[str]) -> None:
            if task.id in seen:
                return
            seen.add(task.id)
            out.append(Row(task=resolve_task(g, task.id) or task, depth=depth))
            if self.is_collapsed(task.id):
                return
            for child in g.children_of(task.id):
                _walk(child, depth + 1, seen)

        seen: Set[str] = set()
        for cat in self.categories():
            if self.is_category_collapsed(cat):
                continue
            for root in g.roots(cat):
                _walk(root, 0, seen)
        return out


__all__ = ["GanttSession", "Listener", "Row"]
