from __future__ import annotations

"""gantry.graph

Hierarchy and dependency index over one task snapshot.

Design goals:
- Build the adjacency maps once per snapshot; queries never rescan the list.
- Dangling parent/predecessor ids are treated as "no link", never as errors.
- Every walk terminates, even if the stored data already contains a cycle.
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Set

from .model import Task

ROOT = None


def _sort_key(t: Task):
    return (t.order, t.id)


class TaskGraph:
    def __init__(self, tasks: Iterable[Task]):
        self._tasks: List[Task] = []
        self._by_id: Dict[str, Task] = {}
        for t in tasks:
            if t.id in self._by_id:
                # Last record wins, matching a store snapshot keyed by id.
                self._tasks = [x for x in self._tasks if x.id != t.id]
            self._tasks.append(t)
            self._by_id[t.id] = t

        self._children: Dict[Optional[str], List[Task]] = {}
        self._successors: Dict[str, List[Task]] = {}

        for t in self._tasks:
            self._children.setdefault(self.parent_id_of(t), []).append(t)
            seen: Set[str] = set()
            for p in t.predecessors:
                if p in seen or p not in self._by_id or p == t.id:
                    continue
                seen.add(p)
                self._successors.setdefault(p, []).append(t)

        for kids in self._children.values():
            kids.sort(key=_sort_key)
        for succ in self._successors.values():
            succ.sort(key=_sort_key)

    # -------------------- lookups --------------------
    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._by_id

    @property
    def tasks(self) -> Sequence[Task]:
        return tuple(self._tasks)

    def get(self, task_id: Optional[str]) -> Optional[Task]:
        if task_id is None:
            return None
        return self._by_id.get(task_id)

    def parent_id_of(self, task: Task) -> Optional[str]:
        """Effective parent id: None for roots and for dangling references."""
        pid = task.parent_task_id
        if pid is None or pid == task.id or pid not in self._by_id:
            return ROOT
        return pid

    def parent_of(self, task_id: str) -> Optional[Task]:
        t = self._by_id.get(task_id)
        if t is None:
            return None
        return self.get(self.parent_id_of(t))

    # -------------------- hierarchy --------------------
    def children_of(self, task_id: Optional[str]) -> List[Task]:
        """Direct children ordered by (order, id). `None` lists the roots."""
        return list(self._children.get(task_id, ()))

    def roots(self, category: Optional[str] = None) -> List[Task]:
        out = self.children_of(ROOT)
        if category is not None:
            out = [t for t in out if t.category == category]
        return out

    def has_children(self, task_id: str) -> bool:
        return bool(self._children.get(task_id))

    def descendants_of(self, task_id: str) -> List[Task]:
        """All descendants in pre-order. Never includes `task_id` itself."""
        out: List[Task] = []
        visited: Set[str] = {task_id}
        self._collect(task_id, out, visited)
        return out

    def _collect(self, task_id: str, out: List[Task], visited: Set[str]) -> None:
        for child in self._children.get(task_id, ()):
            if child.id in visited:
                continue
            visited.add(child.id)
            out.append(child)
            self._collect(child.id, out, visited)

    def descendant_ids(self, task_id: str) -> FrozenSet[str]:
        return frozenset(t.id for t in self.descendants_of(task_id))

    def ancestors_of(self, task_id: str) -> List[Task]:
        """Parent chain, nearest first."""
        out: List[Task] = []
        seen: Set[str] = {task_id}
        cur = self.parent_of(task_id)
        while cur is not None and cur.id not in seen:
            seen.add(cur.id)
            out.append(cur)
            cur = self.parent_of(cur.id)
        return out

    def is_descendant(self, candidate_id: Optional[str], ancestor_id: str) -> bool:
        """True if `candidate_id` sits somewhere below `ancestor_id`."""
        if candidate_id is None or candidate_id not in self._by_id:
            return False
        return any(a.id == ancestor_id for a in self.ancestors_of(candidate_id))

    def siblings_of(self, parent_id: Optional[str], category: str, *, exclude: Optional[str] = None) -> List[Task]:
        """Tasks sharing an effective parent and category, in display order."""
        return [
            t
            for t in self._children.get(parent_id, ())
            if t.category == category and t.id != exclude
        ]

    def leaf_tasks(self) -> List[Task]:
        return [t for t in self._tasks if not self.has_children(t.id)]

    # -------------------- dependencies --------------------
    def successors_of(self, task_id: str) -> List[Task]:
        return list(self._successors.get(task_id, ()))

    def predecessors_of(self, task_id: str) -> List[Task]:
        t = self._by_id.get(task_id)
        if t is None:
            return []
        return [self._by_id[p] for p in dict.fromkeys(t.predecessors) if p in self._by_id and p != task_id]


__all__ = ["TaskGraph"]
