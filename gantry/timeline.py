# gantry/timeline.py
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import DEFAULT_CONFIG, GRANULARITIES, EngineConfig
from .util.dates import (
    DateLike,
    add_days,
    add_months,
    days_between,
    end_of_month,
    parse_date,
    start_of_month,
    start_of_week,
    today,
)
from .util.numbers import round_half_up

logger = logging.getLogger(__name__)

# Days represented by one cell. Month uses the average month length so the
# scale stays constant across the range; offsets drift by up to a day against
# the true calendar months (known approximation).
DAYS_PER_CELL = {"day": 1.0, "week": 7.0, "month": 30.44}


@dataclass(frozen=True)
class TimelineCell:
    start: dt.date
    end: dt.date  # inclusive


@dataclass(frozen=True)
class GroupHeader:
    label: str
    first_cell: int
    span: int  # number of cells


@dataclass(frozen=True)
class Timeline:
    start: dt.date
    end: dt.date
    granularity: str
    cells: Tuple[TimelineCell, ...]
    group_headers: Tuple[GroupHeader, ...]
    cell_width: float
    base_cell_width: float

    @property
    def days_per_cell(self) -> float:
        return DAYS_PER_CELL[self.granularity]

    @property
    def total_width(self) -> float:
        return len(self.cells) * self.cell_width

    def offset_of(self, d: dt.date) -> float:
        return days_between(self.start, d) / self.days_per_cell * self.cell_width

    def date_at_offset(self, offset: float) -> dt.date:
        return add_days(self.start, round_half_up(offset / self.cell_width * self.days_per_cell))

    def days_for_pixels(self, dx: float) -> int:
        """Pointer delta (logical units) to a whole-day delta."""
        return round_half_up(dx / self.cell_width * self.days_per_cell)

    def pixels_for_days(self, days: float) -> float:
        return days / self.days_per_cell * self.cell_width

    def span_width(self, start: dt.date, end: dt.date) -> float:
        """Width of an inclusive date range."""
        return self.pixels_for_days(days_between(start, end) + 1)


def default_window(now: Optional[dt.date] = None, tz: str = DEFAULT_CONFIG.tz) -> Tuple[dt.date, dt.date]:
    """Start of the current month through the end of the month a year later."""
    base = now or today(tz)
    return start_of_month(base), end_of_month(add_months(base, 12))


def resolve_range(
    start: DateLike,
    end: DateLike,
    *,
    now: Optional[dt.date] = None,
    tz: str = DEFAULT_CONFIG.tz,
) -> Tuple[dt.date, dt.date]:
    s = parse_date(start)
    e = parse_date(end)
    if s is None or e is None or s > e:
        fallback = default_window(now, tz)
        logger.debug("timeline range %r..%r unusable; falling back to %s..%s", start, end, *fallback)
        return fallback
    return s, e


def _cells(start: dt.date, end: dt.date, granularity: str) -> List[TimelineCell]:
    out: List[TimelineCell] = []
    if granularity == "day":
        cur = start
        while cur <= end:
            out.append(TimelineCell(cur, cur))
            cur = add_days(cur, 1)
    elif granularity == "week":
        cur = start_of_week(start)
        while cur <= end:
            out.append(TimelineCell(cur, add_days(cur, 6)))
            cur = add_days(cur, 7)
    else:
        cur = start_of_month(start)
        while cur <= end:
            out.append(TimelineCell(cur, end_of_month(cur)))
            cur = add_months(cur, 1)
    return out


def _group_label(cell: TimelineCell, granularity: str) -> str:
    if granularity == "month":
        return f"{cell.start.year:04d}"
    return cell.start.strftime("%B %Y")


def _group_headers(cells: List[TimelineCell], granularity: str) -> List[GroupHeader]:
    out: List[GroupHeader] = []
    for i, cell in enumerate(cells):
        label = _group_label(cell, granularity)
        last = out[-1] if out else None
        if last is not None and last.label == label:
            out[-1] = GroupHeader(label=last.label, first_cell=last.first_cell, span=last.span + 1)
        else:
            out.append(GroupHeader(label=label, first_cell=i, span=1))
    return out


def compute_timeline(
    start: DateLike,
    end: DateLike,
    granularity: str = "week",
    viewport_width: float = 0.0,
    *,
    config: EngineConfig = DEFAULT_CONFIG,
    now: Optional[dt.date] = None,
) -> Timeline:
    """Lay out timeline cells for [start, end] at the given granularity.

    An unusable range never raises: it is replaced by `default_window`.
    An unknown granularity is a caller bug and raises ValueError.
    """
    gran = (granularity or "").strip().lower()
    if gran not in GRANULARITIES:
        raise ValueError(f"granularity must be one of {', '.join(GRANULARITIES)}; got {granularity!r}")

    s, e = resolve_range(start, end, now=now, tz=config.tz)
    cells = _cells(s, e, gran)
    headers = _group_headers(cells, gran)

    base = config.cell_width_for(gran)
    width = base
    if viewport_width and viewport_width > 0 and cells:
        if len(cells) * base < viewport_width:
            width = float(viewport_width) / len(cells)

    return Timeline(
        start=s,
        end=e,
        granularity=gran,
        cells=tuple(cells),
        group_headers=tuple(headers),
        cell_width=width,
        base_cell_width=base,
    )


__all__ = [
    "DAYS_PER_CELL",
    "GroupHeader",
    "Timeline",
    "TimelineCell",
    "compute_timeline",
    "default_window",
    "resolve_range",
]
