"""Task record validation helpers (library-facing)."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from .model import Task, TaskValidationError


def _require(cond: bool, msg: str, errs: List[str]) -> None:
    if not cond:
        errs.append(msg)


def _parent_cycles(tasks: Dict[str, Task]) -> List[str]:
    errs: List[str] = []
    reported = set()
    for tid in tasks:
        chain: List[str] = []
        seen = set()
        cur: Optional[str] = tid
        while cur is not None and cur in tasks and cur not in seen:
            seen.add(cur)
            chain.append(cur)
            cur = tasks[cur].parent_task_id
        if cur is not None and cur in seen:
            loop = tuple(sorted(chain[chain.index(cur):]))
            # A self-parented task is reported on its own.
            if len(loop) > 1 and loop not in reported:
                reported.add(loop)
                errs.append(f"parent cycle: {' -> '.join(chain[chain.index(cur):] + [cur])}")
    return errs


def _predecessor_cycles(tasks: Dict[str, Task]) -> List[str]:
    errs: List[str] = []
    state: Dict[str, int] = {}  # 1 = on stack, 2 = done

    for root in tasks:
        if state.get(root):
            continue
        stack = [(root, iter(tasks[root].predecessors))]
        path = [root]
        state[root] = 1
        while stack:
            node, it = stack[-1]
            nxt = next(it, None)
            if nxt is None:
                state[node] = 2
                stack.pop()
                path.pop()
                continue
            if nxt not in tasks or nxt == node:
                continue
            if state.get(nxt) == 1:
                loop = path[path.index(nxt):] + [nxt]
                errs.append(f"predecessor cycle: {' -> '.join(loop)}")
                continue
            if not state.get(nxt):
                state[nxt] = 1
                path.append(nxt)
                stack.append((nxt, iter(tasks[nxt].predecessors)))
    return errs


def validate_tasks(records: Sequence[Any]) -> List[str]:
    """Return a list of validation errors (empty means valid).

    Dangling parent and predecessor ids are tolerated: the engine treats them
    as "no link". Cycles, bad field types and inverted ranges are errors.
    """
    errs: List[str] = []
    if not isinstance(records, (list, tuple)):
        return ["tasks must be a list"]

    tasks: Dict[str, Task] = {}
    for i, raw in enumerate(records):
        label = f"tasks[{i}]"
        if not isinstance(raw, Mapping):
            errs.append(f"{label}: must be an object")
            continue
        try:
            t = Task.from_dict(raw)
        except TaskValidationError as ex:
            errs.append(f"{label}: {ex}")
            continue

        _require(t.id not in tasks, f"{label}: duplicate id {t.id}", errs)
        tasks[t.id] = t

        for key in ("planStartDate", "planEndDate", "actualStartDate", "actualEndDate"):
            v = raw.get(key)
            if v not in (None, ""):
                _require(getattr(t, _DATE_FIELDS[key]) is not None, f"{label}: {key} must be YYYY-MM-DD", errs)

        if t.plan_start is not None and t.plan_end is not None:
            _require(t.plan_start <= t.plan_end, f"{label}: planEndDate before planStartDate", errs)
        if t.actual_start is not None and t.actual_end is not None:
            _require(t.actual_start <= t.actual_end, f"{label}: actualEndDate before actualStartDate", errs)
        _require(0 <= t.progress <= 100, f"{label}: progress must be within 0..100", errs)
        _require(t.cost >= 0, f"{label}: cost must be >= 0", errs)
        _require(t.parent_task_id != t.id, f"{label}: task is its own parent", errs)
        _require(t.id not in t.predecessors, f"{label}: task lists itself as predecessor", errs)

    errs.extend(_parent_cycles(tasks))
    errs.extend(_predecessor_cycles(tasks))
    return errs


_DATE_FIELDS = {
    "planStartDate": "plan_start",
    "planEndDate": "plan_end",
    "actualStartDate": "actual_start",
    "actualEndDate": "actual_end",
}


def assert_valid_tasks(records: Sequence[Any]) -> None:
    errs = validate_tasks(records)
    if errs:
        raise TaskValidationError(errs[0])


__all__ = ["TaskValidationError", "assert_valid_tasks", "validate_tasks"]
