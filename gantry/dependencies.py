# gantry/dependencies.py
from __future__ import annotations

import logging
from collections import deque
from typing import Optional

from .graph import TaskGraph
from .model import TaskPatch

logger = logging.getLogger(__name__)


def depends_on(graph: TaskGraph, task_id: str, other_id: str) -> bool:
    """True if `other_id` is reachable from `task_id` by following predecessor links."""
    seen = {task_id}
    queue = deque([task_id])
    while queue:
        cur = queue.popleft()
        for p in graph.predecessors_of(cur):
            if p.id == other_id:
                return True
            if p.id not in seen:
                seen.add(p.id)
                queue.append(p.id)
    return False


def link_tasks(graph: TaskGraph, predecessor_id: str, successor_id: str) -> Optional[TaskPatch]:
    """Predecessor list patch for `successor_id` with one more finish-to-start edge.

    None for self links, unknown ids, an edge that already exists, or an edge
    that would close a cycle.
    """
    if predecessor_id == successor_id:
        return None
    pred = graph.get(predecessor_id)
    succ = graph.get(successor_id)
    if pred is None or succ is None:
        return None
    if predecessor_id in succ.predecessors:
        return None
    if depends_on(graph, predecessor_id, successor_id):
        logger.debug("link rejected: %s -> %s would create a cycle", predecessor_id, successor_id)
        return None
    return {"predecessors": list(succ.predecessors) + [predecessor_id]}


def unlink_tasks(graph: TaskGraph, predecessor_id: str, successor_id: str) -> Optional[TaskPatch]:
    succ = graph.get(successor_id)
    if succ is None or predecessor_id not in succ.predecessors:
        return None
    return {"predecessors": [p for p in succ.predecessors if p != predecessor_id]}


__all__ = ["depends_on", "link_tasks", "unlink_tasks"]
