"""Task and preference persistence (async task store, sync preferences).

The engine only ever talks to the Protocols below. Two implementations ship
with the package: an in-memory store for hosts and tests, and a JSON file
store for the CLI.
"""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from .graph import TaskGraph
from .model import Task, TaskPatch, TaskValidationError
from .reorder import next_order

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised by a task store when a call cannot be carried out."""


class TaskStore(Protocol):
    async def list_tasks(self, project_id: str) -> List[Dict[str, Any]]: ...

    async def create_task(self, fields: Mapping[str, Any]) -> Dict[str, Any]: ...

    async def update_task(self, task_id: str, patch: TaskPatch) -> None: ...

    async def delete_task(self, task_id: str) -> None: ...


class PreferencesStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


def load_tasks(records: List[Mapping[str, Any]]) -> List[Task]:
    """Decode store records; raises TaskValidationError on the first bad record."""
    return [Task.from_dict(r) for r in records]


# --- tasks --------------------------------------------------------------------

class InMemoryTaskStore:
    """Dict-backed task store.

    With `record_calls` set, `calls` keeps every update for inspection;
    otherwise it stays empty.
    """

    def __init__(self, records: Optional[List[Mapping[str, Any]]] = None, *, record_calls: bool = False):
        self._records: Dict[str, Dict[str, Any]] = {}
        self.record_calls = record_calls
        self.calls: List[Tuple[str, TaskPatch]] = []
        for r in records or []:
            rec = dict(r)
            tid = str(rec.get("id") or "").strip()
            if not tid:
                raise TaskValidationError("task record is missing a non-empty id")
            rec["id"] = tid
            self._records[tid] = rec

    @property
    def records(self) -> List[Dict[str, Any]]:
        return [dict(r) for r in self._records.values()]

    async def list_tasks(self, project_id: str = "") -> List[Dict[str, Any]]:
        return [
            dict(r)
            for r in self._records.values()
            if not project_id or r.get("projectId", "") == project_id
        ]

    async def create_task(self, fields: Mapping[str, Any]) -> Dict[str, Any]:
        rec = dict(fields)
        tid = str(rec.get("id") or "").strip() or uuid.uuid4().hex
        if tid in self._records:
            raise StoreError(f"task {tid} already exists")
        rec["id"] = tid
        if rec.get("order") is None:
            project = rec.get("projectId", "")
            same = [r for r in self._records.values() if not project or r.get("projectId", "") == project]
            graph = TaskGraph(load_tasks(same))
            parent = rec.get("parentTaskId") or None
            category = None if parent else rec.get("category", "")
            rec["order"] = next_order(graph, parent if parent in graph else None, category)
        Task.from_dict(rec)
        self._records[tid] = rec
        self._changed()
        logger.debug("created task %s", tid)
        return dict(rec)

    async def update_task(self, task_id: str, patch: TaskPatch) -> None:
        if self.record_calls:
            self.calls.append((task_id, dict(patch)))
        rec = self._records.get(task_id)
        if rec is None:
            raise StoreError(f"task {task_id} not found")
        rec.update(patch)
        rec["id"] = task_id
        self._changed()

    async def delete_task(self, task_id: str) -> None:
        if self._records.pop(task_id, None) is None:
            raise StoreError(f"task {task_id} not found")
        self._changed()

    def _changed(self) -> None:
        pass


class JsonFileTaskStore(InMemoryTaskStore):
    """Task store persisted as `{"tasks": [...]}` in one JSON file.

    A bare JSON list is accepted on load. The whole file is rewritten after
    every mutation; other top-level keys (e.g. "project") are kept.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._header: Dict[str, Any] = {}
        records: List[Mapping[str, Any]] = []
        if self.path.exists():
            self._header, records = _read_task_doc(self.path)
        super().__init__(records)

    def _changed(self) -> None:
        doc = dict(self._header)
        doc["tasks"] = list(self._records.values())
        self.path.write_text(json.dumps(doc, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def _read_task_doc(path: Path) -> Tuple[Dict[str, Any], List[Mapping[str, Any]]]:
    obj = json.loads(path.read_text(encoding="utf-8", errors="replace"))
    header: Dict[str, Any] = {}
    if isinstance(obj, dict):
        header = {k: v for k, v in obj.items() if k != "tasks"}
        obj = obj.get("tasks", [])
    if not isinstance(obj, list):
        raise ValueError(f"{path}: expected a task list or an object with a 'tasks' list")
    for i, r in enumerate(obj):
        if not isinstance(r, dict):
            raise ValueError(f"{path}: tasks[{i}] must be an object")
    return header, obj


# --- preferences --------------------------------------------------------------

class InMemoryPreferences:
    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = dict(values or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._values)


class JsonFilePreferences(InMemoryPreferences):
    """Preferences kept in a flat JSON object; rewritten on every set."""

    def __init__(self, path: Path):
        self.path = Path(path)
        values: Dict[str, Any] = {}
        if self.path.exists():
            obj = json.loads(self.path.read_text(encoding="utf-8", errors="replace"))
            if not isinstance(obj, dict):
                raise ValueError(f"{self.path}: preferences must be a JSON object")
            values = obj
        super().__init__(values)

    def set(self, key: str, value: Any) -> None:
        super().set(key, value)
        self.path.write_text(json.dumps(self._values, indent=2, sort_keys=True) + "\n", encoding="utf-8")


__all__ = [
    "InMemoryPreferences",
    "InMemoryTaskStore",
    "JsonFilePreferences",
    "JsonFileTaskStore",
    "PreferencesStore",
    "StoreError",
    "TaskStore",
    "load_tasks",
]
