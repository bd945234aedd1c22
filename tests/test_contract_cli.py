from __future__ import annotations

import json
import shutil
import subprocess
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
FIXTURE = REPO_ROOT / "tests" / "fixtures" / "sample_project.json"


def _run(*args: str):
    cmd = [sys.executable, "-m", "gantry.cli", *args]
    p = subprocess.run(cmd, cwd=str(REPO_ROOT), capture_output=True, text=True)
    return p, (p.stdout or "") + "\n" + (p.stderr or "")


class TestGantryCliContract:
    def test_validate_ok(self):
        p, combined = _run("validate", "--in", str(FIXTURE))
        assert p.returncode == 0, combined
        assert "[gantry] OK" in p.stdout

    def test_validate_fail(self, tmp_path: Path):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"tasks": [{"id": "a", "parentTaskId": "a"}]}), encoding="utf-8")
        p, combined = _run("validate", "--in", str(bad))
        assert p.returncode == 3, combined
        assert "own parent" in p.stderr

    def test_timeline_uses_project_window(self):
        p, combined = _run("timeline", "--in", str(FIXTURE), "--granularity", "month")
        assert p.returncode == 0, combined
        out = json.loads(p.stdout)
        assert out["start"] == "2024-01-01"
        assert out["end"] == "2024-03-31"
        assert len(out["cells"]) == 3
        assert out["cell_width"] == 100.0

    def test_weights(self):
        p, combined = _run("weights", "--in", str(FIXTURE))
        assert p.returncode == 0, combined
        out = json.loads(p.stdout)
        assert out["mode"] == "cost"
        assert abs(sum(out["weights"].values()) - 100.0) < 0.01
        assert out["weights"]["G"] == 0.0

        p, combined = _run("weights", "--in", str(FIXTURE), "--mode", "physical")
        assert p.returncode == 0, combined
        assert json.loads(p.stdout)["mode"] == "duration"

    def test_scurve(self):
        p, combined = _run("scurve", "--in", str(FIXTURE), "--granularity", "week", "--today", "2024-01-20")
        assert p.returncode == 0, combined
        series = json.loads(p.stdout)
        assert series[-1]["planned"] == 100.0
        assert all(0.0 <= pt["actual"] <= 100.0 for pt in series)

    def test_scurve_physical_mode_and_data_date(self):
        p, combined = _run("scurve", "--in", str(FIXTURE), "--granularity", "week", "--today", "2024-01-20", "--mode", "physical")
        assert p.returncode == 0, combined
        series = json.loads(p.stdout)
        assert series[0]["has_actual"] is True
        assert series[-1]["has_actual"] is False

    def test_kpis(self):
        p, combined = _run("kpis", "--in", str(FIXTURE), "--date", "2024-01-13")
        assert p.returncode == 0, combined
        out = json.loads(p.stdout)
        assert out["progress"] == 16.67
        assert out["plan_to_date"] == 43.33
        assert out["gap"] == -26.67
        assert out["variance_days"] == -14
        assert (out["plan_start"], out["plan_end"]) == ("2024-01-01", "2024-02-20")

    def test_drag_dry_run_prints_cascade(self):
        p, combined = _run("drag", "--in", str(FIXTURE), "--task", "A", "--days", "3", "--granularity", "day")
        assert p.returncode == 0, combined
        updates = json.loads(p.stdout)["updates"]
        assert updates["A"] == {"planStartDate": "2024-01-04", "planEndDate": "2024-01-13"}
        assert updates["B"] == {"planStartDate": "2024-01-05", "planEndDate": "2024-01-08"}
        assert updates["C"] == {"planStartDate": "2024-01-14", "planEndDate": "2024-01-18"}

    def test_drag_write_persists(self, tmp_path: Path):
        work = tmp_path / "project.json"
        shutil.copyfile(FIXTURE, work)
        p, combined = _run("drag", "--in", str(work), "--task", "A", "--days", "3", "--write", "--inflight-ms", "0")
        assert p.returncode == 0, combined
        doc = json.loads(work.read_text(encoding="utf-8"))
        by_id = {t["id"]: t for t in doc["tasks"]}
        assert by_id["C"]["planStartDate"] == "2024-01-14"
        assert doc["project"]["id"] == "p1"

    def test_reorder_rejection_exit_code(self):
        p, combined = _run("reorder", "--in", str(FIXTURE), "--task", "G", "--target", "A", "--position", "below")
        assert p.returncode == 4, combined
        assert "[gantry] ERROR:" in p.stderr

    def test_link_cycle_rejected(self):
        p, combined = _run("link", "--in", str(FIXTURE), "--pred", "C", "--succ", "A")
        assert p.returncode == 4, combined

    def test_progress(self):
        p, combined = _run("progress", "--in", str(FIXTURE), "--task", "C", "--value", "-1", "--date", "2024-01-12")
        assert p.returncode == 0, combined
        patch = json.loads(p.stdout)["updates"]["C"]
        assert patch["status"] == "in-progress"
        assert patch["actualStartDate"] == "2024-01-12"

    def test_rows(self, tmp_path: Path):
        prefs = tmp_path / "prefs.json"
        prefs.write_text(json.dumps({"collapsed:A": True, "category_order": ["Finishing", "Structure"]}), encoding="utf-8")
        p, combined = _run("rows", "--in", str(FIXTURE), "--prefs", str(prefs))
        assert p.returncode == 0, combined
        lines = p.stdout.splitlines()
        assert lines[0].startswith("Tiling")
        assert any(line.startswith("  Excavation") for line in lines)
        assert not any("Shoring" in line for line in lines)

    def test_missing_input(self, tmp_path: Path):
        p, combined = _run("weights", "--in", str(tmp_path / "nope.json"))
        assert p.returncode == 2, combined
        assert "Missing input JSON" in p.stderr
