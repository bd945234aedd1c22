from __future__ import annotations

import datetime as dt
import unittest

from gantry.config import EngineConfig
from gantry.timeline import compute_timeline, default_window


class TestTimelineContract(unittest.TestCase):
    def test_day_cells_cover_range_inclusive(self) -> None:
        tl = compute_timeline("2024-01-01", "2024-01-10", "day")
        self.assertEqual(len(tl.cells), 10)
        self.assertEqual(tl.cells[0].start, dt.date(2024, 1, 1))
        self.assertEqual(tl.cells[-1].end, dt.date(2024, 1, 10))
        self.assertEqual(tl.cell_width, 30.0)

    def test_week_cells_start_on_monday(self) -> None:
        tl = compute_timeline("2024-01-03", "2024-01-20", "week")
        self.assertEqual(tl.cells[0].start, dt.date(2024, 1, 1))
        self.assertEqual(tl.cells[0].end, dt.date(2024, 1, 7))
        self.assertEqual(tl.cells[-1].start, dt.date(2024, 1, 15))
        self.assertTrue(all(c.start.weekday() == 0 for c in tl.cells))

    def test_month_cells_and_year_headers(self) -> None:
        tl = compute_timeline("2024-11-15", "2025-02-10", "month")
        self.assertEqual([c.start.month for c in tl.cells], [11, 12, 1, 2])
        self.assertEqual(tl.cells[1].end, dt.date(2024, 12, 31))
        self.assertEqual([(h.label, h.span) for h in tl.group_headers], [("2024", 2), ("2025", 2)])

    def test_day_headers_group_by_month(self) -> None:
        tl = compute_timeline("2024-01-30", "2024-02-02", "day")
        self.assertEqual([(h.label, h.first_cell, h.span) for h in tl.group_headers], [("January 2024", 0, 2), ("February 2024", 2, 2)])

    def test_auto_fit_stretches_to_viewport(self) -> None:
        tl = compute_timeline("2024-01-01", "2024-01-10", "day", viewport_width=600)
        self.assertEqual(tl.cell_width, 60.0)
        self.assertEqual(tl.total_width, 600.0)
        narrow = compute_timeline("2024-01-01", "2024-01-10", "day", viewport_width=200)
        self.assertEqual(narrow.cell_width, 30.0)

    def test_configured_base_width(self) -> None:
        cfg = EngineConfig(base_cell_widths={"day": 20.0, "week": 40.0, "month": 100.0})
        tl = compute_timeline("2024-01-01", "2024-01-10", "day", config=cfg)
        self.assertEqual(tl.cell_width, 20.0)

    def test_unusable_range_falls_back_to_default_window(self) -> None:
        now = dt.date(2024, 5, 15)
        expected = (dt.date(2024, 5, 1), dt.date(2025, 5, 31))
        self.assertEqual(default_window(now), expected)
        for start, end in ((None, None), ("2024-06-01", "2024-01-01"), ("garbage", "2024-01-01")):
            tl = compute_timeline(start, end, "month", now=now)
            self.assertEqual((tl.start, tl.end), expected)

    def test_unknown_granularity_raises(self) -> None:
        with self.assertRaises(ValueError):
            compute_timeline("2024-01-01", "2024-01-10", "fortnight")

    def test_offset_round_trip(self) -> None:
        sample_days = [dt.date(2024, 1, 1) + dt.timedelta(days=i) for i in range(0, 360, 7)]
        for gran, tol in (("day", 0), ("week", 1), ("month", 1)):
            tl = compute_timeline("2024-01-01", "2024-12-31", gran, viewport_width=1234)
            for d in sample_days:
                back = tl.date_at_offset(tl.offset_of(d))
                self.assertLessEqual(abs((back - d).days), tol, f"{gran}: {d} -> {back}")

    def test_pixel_day_conversion(self) -> None:
        tl = compute_timeline("2024-01-01", "2024-03-31", "week")
        self.assertEqual(tl.days_for_pixels(40), 7)
        self.assertEqual(tl.days_for_pixels(-40), -7)
        self.assertEqual(tl.days_for_pixels(3), 1)  # 0.525 days rounds up
        self.assertEqual(tl.span_width(dt.date(2024, 1, 1), dt.date(2024, 1, 7)), 40.0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
