from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from gantry.store import (
    InMemoryTaskStore,
    JsonFilePreferences,
    JsonFileTaskStore,
    StoreError,
    load_tasks,
)

REPO_ROOT = Path(__file__).resolve().parents[1]
FIXTURE = REPO_ROOT / "tests" / "fixtures" / "sample_project.json"


class TestJsonFileTaskStoreContract:
    def test_updates_are_written_back_and_project_kept(self, tmp_path: Path):
        path = tmp_path / "project.json"
        path.write_text(FIXTURE.read_text(encoding="utf-8"), encoding="utf-8")

        store = JsonFileTaskStore(path)
        asyncio.run(store.update_task("C", {"planStartDate": "2024-01-14", "planEndDate": "2024-01-18"}))

        doc = json.loads(path.read_text(encoding="utf-8"))
        assert doc["project"]["name"] == "Riverside Duplex"
        by_id = {t["id"]: t for t in doc["tasks"]}
        assert by_id["C"]["planStartDate"] == "2024-01-14"
        assert by_id["C"]["predecessors"] == ["A"]

        again = JsonFileTaskStore(path)
        tasks = {t.id: t for t in load_tasks(again.records)}
        assert str(tasks["C"].plan_end) == "2024-01-18"

    def test_bare_list_and_missing_file(self, tmp_path: Path):
        path = tmp_path / "tasks.json"
        store = JsonFileTaskStore(path)
        assert store.records == []

        rec = asyncio.run(store.create_task({"name": "Survey", "category": "Site"}))
        assert rec["order"] == 1
        assert json.loads(path.read_text(encoding="utf-8"))["tasks"][0]["name"] == "Survey"

        path.write_text(json.dumps([{"id": "x", "category": "Site"}]), encoding="utf-8")
        assert [r["id"] for r in JsonFileTaskStore(path).records] == ["x"]

    def test_unknown_ids_raise(self, tmp_path: Path):
        store = JsonFileTaskStore(tmp_path / "tasks.json")
        with pytest.raises(StoreError):
            asyncio.run(store.update_task("ghost", {"order": 1}))
        with pytest.raises(StoreError):
            asyncio.run(store.delete_task("ghost"))

    def test_rejects_non_list_tasks(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"tasks": {"id": "x"}}), encoding="utf-8")
        with pytest.raises(ValueError):
            JsonFileTaskStore(path)


class TestInMemoryTaskStoreContract:
    def test_create_orders_after_siblings_and_filters_project(self):
        store = InMemoryTaskStore(
            [
                {"id": "a", "projectId": "p1", "category": "Site", "order": 3},
                {"id": "b", "projectId": "p2", "category": "Site", "order": 9},
            ]
        )
        rec = asyncio.run(store.create_task({"projectId": "p1", "category": "Site"}))
        assert rec["order"] == 4
        listed = asyncio.run(store.list_tasks("p1"))
        assert sorted(r["id"] for r in listed) == sorted(["a", rec["id"]])

        with pytest.raises(StoreError):
            asyncio.run(store.create_task({"id": "a"}))

    def test_update_recording_is_opt_in(self):
        quiet = InMemoryTaskStore([{"id": "a", "category": "Site"}])
        asyncio.run(quiet.update_task("a", {"order": 2}))
        assert quiet.calls == []

        recorded = InMemoryTaskStore([{"id": "a", "category": "Site"}], record_calls=True)
        asyncio.run(recorded.update_task("a", {"order": 2}))
        assert recorded.calls == [("a", {"order": 2})]


class TestJsonFilePreferencesContract:
    def test_round_trip(self, tmp_path: Path):
        path = tmp_path / "prefs.json"
        prefs = JsonFilePreferences(path)
        assert prefs.get("collapsed:G", False) is False
        prefs.set("collapsed:G", True)
        prefs.set("category_order", ["Structure", "Finishing"])

        again = JsonFilePreferences(path)
        assert again.get("collapsed:G") is True
        assert again.get("category_order") == ["Structure", "Finishing"]
