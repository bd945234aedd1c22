# gantry/weights.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .model import Task


def is_work_item(task: Task) -> bool:
    """Groups are containers; only tasks carry weight of their own."""
    return not task.is_group


def plan_duration(task: Task) -> int:
    return task.plan_duration


# "financial" and "physical" are the S-curve names for the same two modes.
WEIGHT_MODES = {"cost": "cost", "duration": "duration", "financial": "cost", "physical": "duration"}


def resolve_mode(mode: Optional[str]) -> Optional[str]:
    """Canonical weighting mode for `mode`; None keeps the automatic policy."""
    if mode is None:
        return None
    key = str(mode).strip().lower()
    if key not in WEIGHT_MODES:
        raise ValueError(f"unknown weighting mode: {mode!r} (expected one of {', '.join(sorted(WEIGHT_MODES))})")
    return WEIGHT_MODES[key]


@dataclass(frozen=True)
class WeightBasis:
    mode: str  # "cost" | "duration"
    total: float


def weight_basis(tasks: Iterable[Task], mode: Optional[str] = None) -> WeightBasis:
    """Decide the weighting policy once for the whole task set.

    `mode` forces "cost" or "duration"; by default cost wins when any task has one.
    """
    items = [t for t in tasks if is_work_item(t)]
    forced = resolve_mode(mode)
    if forced is None:
        forced = "cost" if any(t.cost > 0 for t in items) else "duration"
    if forced == "cost":
        return WeightBasis(mode="cost", total=sum(max(0.0, t.cost) for t in items))
    return WeightBasis(mode="duration", total=float(sum(plan_duration(t) for t in items)))


def _scope(task: Task, mode: str) -> float:
    if not is_work_item(task):
        return 0.0
    if mode == "cost":
        return max(0.0, task.cost)
    return float(plan_duration(task))


def compute_weights(tasks: Iterable[Task], mode: Optional[str] = None) -> Dict[str, float]:
    """Per-task share of the project, in percent.

    Cost-weighted when any task has a cost, duration-weighted otherwise,
    unless `mode` forces one. A zero base yields 0 for every task.
    """
    items: List[Task] = list(tasks)
    basis = weight_basis(items, mode)
    out: Dict[str, float] = {}
    for t in items:
        if basis.total <= 0:
            out[t.id] = 0.0
        else:
            out[t.id] = _scope(t, basis.mode) / basis.total * 100.0
    return out


__all__ = [
    "WEIGHT_MODES",
    "WeightBasis",
    "compute_weights",
    "is_work_item",
    "plan_duration",
    "resolve_mode",
    "weight_basis",
]
