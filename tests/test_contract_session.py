from __future__ import annotations

import asyncio
import datetime as dt
import unittest

from gantry.drag import BarType, DragKind, DragPhase
from gantry.reorder import DropPosition
from gantry.session import GanttSession
from gantry.store import InMemoryPreferences, InMemoryTaskStore, load_tasks
from gantry.timeline import compute_timeline


def _records():
    return [
        {"id": "G", "category": "Structure", "type": "group", "order": 1},
        {"id": "A", "category": "Structure", "order": 2, "planStartDate": "2024-01-01", "planEndDate": "2024-01-10",
         "actualStartDate": "2024-01-01"},
        {"id": "B", "category": "Structure", "parentTaskId": "A", "planStartDate": "2024-01-02", "planEndDate": "2024-01-05"},
        {"id": "C", "category": "Structure", "order": 3, "predecessors": ["A"], "planStartDate": "2024-01-11",
         "planEndDate": "2024-01-15"},
    ]


class _FailingStore(InMemoryTaskStore):
    def __init__(self, records, fail_ids):
        super().__init__(records, record_calls=True)
        self.fail_ids = set(fail_ids)

    async def update_task(self, task_id, patch):
        if task_id in self.fail_ids:
            self.calls.append((task_id, dict(patch)))
            raise ConnectionError(f"store unavailable for {task_id}")
        await super().update_task(task_id, patch)


class _GatedStore(InMemoryTaskStore):
    def __init__(self, records):
        super().__init__(records)
        self.gate = asyncio.Event()

    async def update_task(self, task_id, patch):
        await self.gate.wait()
        await super().update_task(task_id, patch)


class TestGanttSessionContract(unittest.IsolatedAsyncioTestCase):
    def _session(self, store=None, prefs=None):
        self.sleeps = []

        async def _sleep(s):
            self.sleeps.append(s)

        store = store if store is not None else InMemoryTaskStore(_records(), record_calls=True)
        self.store = store
        self.notified = []
        session = GanttSession(
            load_tasks(store.records),
            store=store,
            preferences=prefs,
            timeline=compute_timeline("2024-01-01", "2024-03-31", "day"),
            sleep=_sleep,
        )
        session.subscribe(lambda tasks: self.notified.append(len(tasks)))
        return session

    async def test_cascade_commit_is_one_swap_and_concurrent_updates(self) -> None:
        s = self._session()
        self.assertTrue(s.begin_drag("A", DragKind.MOVE, BarType.PLAN, 0))
        s.update_drag(90)
        commit = await s.commit_drag()

        self.assertEqual(len(self.notified), 1)
        self.assertEqual(sorted(tid for tid, _ in self.store.calls), ["A", "B", "C"])
        self.assertEqual(self.sleeps, [0.6])
        self.assertEqual(s.drag.phase, DragPhase.IDLE)
        self.assertEqual(s.busy_ids, frozenset())
        self.assertFalse(s.in_flight)
        self.assertEqual(commit.successor_ids, ("C",))
        self.assertEqual(s.graph.get("C").plan_start, dt.date(2024, 1, 14))
        by_id = {r["id"]: r for r in self.store.records}
        self.assertEqual(by_id["B"]["planEndDate"], "2024-01-08")

    async def test_zero_displacement_makes_no_calls(self) -> None:
        s = self._session()
        s.begin_drag("A", DragKind.MOVE, BarType.PLAN, 0)
        s.update_drag(10)
        self.assertIsNone(await s.commit_drag())
        self.assertEqual(self.store.calls, [])
        self.assertEqual(self.notified, [])
        self.assertEqual(s.drag.phase, DragPhase.IDLE)

    async def test_uncascaded_commit_skips_inflight_pause(self) -> None:
        s = self._session()
        s.begin_drag("A", DragKind.RESIZE_RIGHT, BarType.ACTUAL, 0)
        s.update_drag(30)
        await s.commit_drag()
        self.assertEqual(self.sleeps, [])
        self.assertEqual(self.store.calls, [("A", {"actualStartDate": "2024-01-01", "actualEndDate": "2024-01-02", "progress": 20})])

    async def test_failed_updates_are_logged_and_left_divergent(self) -> None:
        s = self._session(store=_FailingStore(_records(), {"C"}))
        s.begin_drag("A", DragKind.MOVE, BarType.PLAN, 0)
        s.update_drag(90)
        with self.assertLogs("gantry.session", level="WARNING") as cm:
            await s.commit_drag()
        self.assertTrue(any("C" in line for line in cm.output))
        self.assertEqual(s.last_failures, ("C",))
        # optimistic snapshot moved; the store did not
        self.assertEqual(s.graph.get("C").plan_start, dt.date(2024, 1, 14))
        by_id = {r["id"]: r for r in self.store.records}
        self.assertEqual(by_id["C"]["planStartDate"], "2024-01-11")
        self.assertEqual(by_id["A"]["planStartDate"], "2024-01-04")

        s.refresh(load_tasks(self.store.records))
        self.assertEqual(s.graph.get("C").plan_start, dt.date(2024, 1, 11))

    async def test_rows_in_flight_are_locked(self) -> None:
        store = _GatedStore(_records())
        s = self._session(store=store)
        s.begin_drag("C", DragKind.MOVE, BarType.PLAN, 0)
        s.update_drag(30)
        pending = asyncio.ensure_future(s.commit_drag())
        await asyncio.sleep(0)

        self.assertIn("C", s.busy_ids)
        self.assertTrue(s.in_flight)
        self.assertEqual(s.drag.phase, DragPhase.IDLE)
        self.assertFalse(s.begin_drag("C", DragKind.MOVE, BarType.PLAN, 0))
        self.assertIsNone(await s.commit_reorder("C", "A", DropPosition.ABOVE))
        self.assertTrue(s.begin_drag("A", DragKind.MOVE, BarType.PLAN, 0))
        s.cancel_drag()

        store.gate.set()
        await pending
        self.assertEqual(s.busy_ids, frozenset())

    async def test_read_only_session_refuses_edits(self) -> None:
        s = GanttSession(load_tasks(_records()), timeline=compute_timeline("2024-01-01", "2024-03-31", "day"))
        self.assertTrue(s.read_only)
        self.assertFalse(s.begin_drag("A", DragKind.MOVE, BarType.PLAN, 0))
        self.assertIsNone(await s.commit_reorder("C", "A", DropPosition.ABOVE))
        self.assertIsNone(await s.link("A", "B"))
        self.assertIsNone(await s.update_progress("A", 50, "2024-01-05"))
        self.assertIsNone(await s.move_to_scope("A", "Finishing"))
        with self.assertRaises(RuntimeError):
            await s._persist({"A": {"progress": 10}})

    async def test_child_drop_expands_collapsed_target(self) -> None:
        prefs = InMemoryPreferences({"collapsed:G": True})
        s = self._session(prefs=prefs)
        patch = await s.commit_reorder("C", "G", DropPosition.CHILD)
        self.assertEqual(patch["parentTaskId"], "G")
        self.assertFalse(s.is_collapsed("G"))
        self.assertEqual(s.graph.parent_of("C").id, "G")
        self.assertEqual(self.store.calls[0][0], "C")

    async def test_header_drop_moves_task_across_categories(self) -> None:
        prefs = InMemoryPreferences({"collapsed-category:Finishing": True})
        s = self._session(prefs=prefs)
        patch = await s.move_to_scope("B", "Finishing", "Tiles")
        self.assertEqual(patch, {"parentTaskId": None, "category": "Finishing", "subcategory": "Tiles", "order": 1})
        self.assertFalse(s.is_category_collapsed("Finishing"))
        self.assertIsNone(s.graph.parent_of("B"))
        self.assertEqual(s.graph.get("B").category, "Finishing")
        self.assertEqual([(r.task.id, r.depth) for r in s.visible_rows()][0], ("B", 0))
        self.assertEqual(self.store.calls, [("B", patch)])
        self.assertIsNone(await s.move_to_scope("B", "Finishing", "Tiles"))

    async def test_drop_row_resolves_zone(self) -> None:
        s = self._session()
        patch = await s.drop_row("C", "A", pointer_y=101, row_top=100, row_height=40)
        self.assertEqual(patch["order"], 1.5)

    async def test_link_and_progress_go_through_store(self) -> None:
        s = self._session()
        self.assertEqual(await s.link("B", "C"), {"predecessors": ["A", "B"]})
        self.assertIsNone(await s.link("C", "A"))
        patch = await s.update_progress("C", 100, "2024-01-16", "done")
        self.assertEqual(patch["actualEndDate"], "2024-01-16")
        self.assertEqual(s.graph.get("C").progress, 100)
        self.assertEqual([tid for tid, _ in self.store.calls], ["C", "C"])

    async def test_create_and_delete(self) -> None:
        s = self._session()
        t = await s.create_task({"name": "Backfill", "category": "Structure", "parentTaskId": "G"})
        self.assertEqual(t.order, 1)
        self.assertIn(t.id, s.graph)
        self.assertTrue(await s.delete_task(t.id))
        self.assertNotIn(t.id, s.graph)

    async def test_visible_rows_follow_preferences(self) -> None:
        prefs = InMemoryPreferences()
        s = self._session(prefs=prefs)
        rows = [(r.task.id, r.depth) for r in s.visible_rows()]
        self.assertEqual(rows, [("G", 0), ("A", 0), ("B", 1), ("C", 0)])

        s.toggle_collapsed("A")
        self.assertEqual([r.task.id for r in s.visible_rows()], ["G", "A", "C"])

        s.set_category_color("Structure", "#aa5500")
        self.assertEqual(s.category_color("Structure"), "#aa5500")
        self.assertEqual(s.move_category("Structure", "Structure"), ["Structure"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
