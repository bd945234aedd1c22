# gantry/reorder.py
from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from .graph import TaskGraph
from .model import Task, TaskPatch

logger = logging.getLogger(__name__)


class DropPosition(str, Enum):
    ABOVE = "above"
    BELOW = "below"
    CHILD = "child"


def compute_reorder_target(
    pointer_y: float,
    row_top: float,
    row_height: float,
    target: Task,
) -> DropPosition:
    """Drop zone under the pointer.

    Groups split 25/50/25 into above/child/below; plain tasks split in half.
    """
    rel = float(pointer_y) - float(row_top)
    h = float(row_height)
    if h <= 0:
        return DropPosition.BELOW
    if target.is_group:
        if rel < h * 0.25:
            return DropPosition.ABOVE
        if rel > h * 0.75:
            return DropPosition.BELOW
        return DropPosition.CHILD
    return DropPosition.ABOVE if rel < h * 0.5 else DropPosition.BELOW


def next_order(graph: TaskGraph, parent_id: Optional[str], category: Optional[str] = None) -> float:
    """Order key that places a new task after its last sibling (1 for an empty set)."""
    kids = graph.children_of(parent_id)
    if category is not None:
        kids = [t for t in kids if t.category == category]
    return max([0.0] + [t.order for t in kids]) + 1


def _would_cycle(graph: TaskGraph, dragged_id: str, new_parent_id: Optional[str]) -> bool:
    if new_parent_id is None:
        return False
    return new_parent_id == dragged_id or graph.is_descendant(new_parent_id, dragged_id)


def commit_reorder(
    graph: TaskGraph,
    dragged_id: str,
    target_id: str,
    position: DropPosition,
) -> Optional[TaskPatch]:
    """Patch that moves `dragged_id` relative to `target_id`, or None when the drop is illegal.

    child: adopt the target as parent (only containers accept children), take its
    category and subcategory, append after its last child.
    above/below: join the target's sibling set (same parent and category,
    excluding the dragged task) at the midpoint to the neighbour, or one step
    past the end.
    """
    position = DropPosition(position)
    if dragged_id == target_id:
        return None
    dragged = graph.get(dragged_id)
    target = graph.get(target_id)
    if dragged is None or target is None:
        return None

    if position is DropPosition.CHILD:
        if not target.is_group or _would_cycle(graph, dragged_id, target.id):
            logger.debug("reorder rejected: %s as child of %s", dragged_id, target_id)
            return None
        return {
            "parentTaskId": target.id,
            "category": target.category,
            "subcategory": target.subcategory,
            "order": next_order(graph, target.id),
        }

    new_parent = graph.parent_id_of(target)
    if _would_cycle(graph, dragged_id, new_parent):
        logger.debug("reorder rejected: %s next to %s would nest it under itself", dragged_id, target_id)
        return None

    siblings = graph.siblings_of(new_parent, target.category, exclude=dragged_id)
    idx = next((i for i, t in enumerate(siblings) if t.id == target.id), None)
    if idx is None:
        return None

    if position is DropPosition.ABOVE:
        order = target.order - 1 if idx == 0 else (siblings[idx - 1].order + target.order) / 2
    else:
        last = idx == len(siblings) - 1
        order = target.order + 1 if last else (target.order + siblings[idx + 1].order) / 2

    return {
        "parentTaskId": new_parent,
        "category": target.category,
        "subcategory": target.subcategory,
        "order": order,
    }


def detach_from_parent(graph: TaskGraph, task_id: str) -> Optional[TaskPatch]:
    """Make a nested task a root of its category, appended after the existing roots."""
    t = graph.get(task_id)
    if t is None or graph.parent_id_of(t) is None:
        return None
    return {"parentTaskId": None, "order": next_order(graph, None, t.category)}


def move_to_scope(graph: TaskGraph, task_id: str, category: str, subcategory: str = "") -> Optional[TaskPatch]:
    """Patch for a row dropped on a category or subcategory header.

    The task becomes a root of that scope and is appended after its roots.
    None when the task is unknown or already a root of the scope.
    """
    t = graph.get(task_id)
    if t is None:
        return None
    category = category or ""
    subcategory = subcategory or ""
    if graph.parent_id_of(t) is None and t.category == category and t.subcategory == subcategory:
        return None
    roots = [r for r in graph.roots(category) if r.subcategory == subcategory and r.id != task_id]
    return {
        "parentTaskId": None,
        "category": category,
        "subcategory": subcategory,
        "order": max([0.0] + [r.order for r in roots]) + 1,
    }


def normalize_orders(graph: TaskGraph, parent_id: Optional[str], category: str) -> Dict[str, TaskPatch]:
    """Renumber one sibling set 1..n, keeping its display order.

    Repeated midpoint inserts shrink the gap between keys; this restores
    whole-number spacing. Only siblings whose key changes get a patch.
    """
    out: Dict[str, TaskPatch] = {}
    for i, t in enumerate(graph.siblings_of(parent_id, category), start=1):
        if t.order != float(i):
            out[t.id] = {"order": float(i)}
    return out


def category_order(tasks: Iterable[Task], saved: Sequence[str] = ()) -> List[str]:
    """Display order of categories: the saved order first, then unseen ones alphabetically."""
    present = {t.category for t in tasks}
    out = [c for c in dict.fromkeys(saved) if c in present]
    out.extend(sorted(present.difference(out)))
    return out


def move_category(order: Sequence[str], source: str, target: str) -> List[str]:
    """Move `source` into `target`'s slot; unknown names leave the order unchanged."""
    out = list(order)
    if source == target or source not in out or target not in out:
        return out
    to = out.index(target)
    out.remove(source)
    out.insert(to, source)
    return out


__all__ = [
    "DropPosition",
    "category_order",
    "commit_reorder",
    "compute_reorder_target",
    "detach_from_parent",
    "move_category",
    "move_to_scope",
    "next_order",
    "normalize_orders",
]
