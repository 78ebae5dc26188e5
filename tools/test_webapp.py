from __future__ import annotations

import tempfile
from pathlib import Path

from fastapi.testclient import TestClient

from babelsim.webapp import create_app


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


def _client(td: str) -> TestClient:
    return TestClient(create_app(save_path=Path(td) / "state.json", seed=11))


def test_state_and_first_job() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = _client(td)
        s = c.get("/api/state").json()
        _assert(s["credits"] == 120 and s["jobs"] == [], "fresh game")
        _assert(s["processors"][0]["status"] == "idle", "starter idle")
        _assert("Welcome to the Array of Babel." in s["messages"], "welcome message")

        s = c.post("/api/advance", json={"ms": 6000}).json()
        _assert(len(s["jobs"]) == 1, f"one job after six seconds, got {len(s['jobs'])}")


def test_take_and_assign_flow() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = _client(td)
        c.post("/api/advance", json={"ms": 12000})
        r = c.post("/api/jobs/0/take")
        _assert(r.status_code == 200 and r.json()["pending_job"] is not None, "job pending")
        _assert(c.post("/api/jobs/0/take").status_code == 409, "one pending job at a time")

        r = c.post("/api/pending/assign", json={"processor_index": 5})
        _assert(r.status_code == 404, "unknown processor is 404")

        r = c.post("/api/pending/assign", json={"processor_index": 0})
        _assert(r.status_code == 200, r.text)
        s = r.json()
        _assert(s["processors"][0]["status"] == "working" and s["pending_job"] is None, "job running")

        c.post("/api/jobs/0/take")
        r = c.post("/api/pending/assign", json={"processor_index": 0})
        _assert(r.status_code == 409 and "busy" in r.json()["error"], "busy unit is a conflict")

        s = c.post("/api/pending/return").json()
        _assert(s["pending_job"] is None and len(s["jobs"]) == 1, "job returned to the board")


def test_failed_purchase_is_conflict_and_changes_nothing() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = _client(td)
        before = c.get("/api/state").json()
        r = c.post("/api/store/7/purchase", json={"processor_index": 0})
        _assert(r.status_code == 409, f"expected 409, got {r.status_code}")
        _assert("not enough credits" in r.json()["error"], r.text)
        after = c.get("/api/state").json()
        _assert(after["credits"] == before["credits"], "credits unchanged")
        _assert(after["processors"] == before["processors"], "processors unchanged")

        _assert(c.post("/api/store/42/purchase").status_code == 404, "unknown item is 404")

        r = c.post("/api/store/0/purchase")
        _assert(r.status_code == 200 and r.json()["credits"] == 0, "clock tuning bought")
        items = c.get("/api/store").json()["items"]
        _assert(items[0]["owned"] == 1 and items[0]["cost"] == 165, "catalog reflects the purchase")


def test_processor_controls() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = _client(td)
        _assert(c.get("/api/processors/3/assist").status_code == 404, "unknown processor")
        _assert(c.get("/api/processors/0/assist").json()["suggestion"] is None, "no assist while locked")

        p = c.post("/api/processors/0/daemon-mode").json()
        _assert(p["daemon_mode"] == "off", "locked unit stays off")
        p = c.post("/api/processors/0/cooling-mins").json()
        _assert(p["honor_cooling_mins"] is False, "cooling minimum toggled")

        r = c.post("/api/processors/0/replace")
        _assert(r.status_code == 409 and "operational" in r.json()["error"], "healthy unit not replaced")
        r = c.post("/api/processors/0/accept-assist")
        _assert(r.status_code == 200 and r.json()["accepted"] is False, "nothing to accept")


def test_save_and_reset() -> None:
    with tempfile.TemporaryDirectory() as td:
        path = Path(td) / "state.json"
        c = _client(td)
        c.post("/api/advance", json={"ms": 6000})
        r = c.post("/api/save")
        _assert(r.status_code == 200 and path.exists(), "save written")

        c2 = _client(td)
        s = c2.get("/api/state").json()
        _assert(len(s["jobs"]) == 1 and "Loaded save state." in s["messages"], "new app loads the save")

        s = c2.post("/api/reset").json()
        _assert(s["jobs"] == [] and s["credits"] == 120, "reset starts over")
        _assert(not path.exists(), "save removed on reset")


def test_non_numeric_fields_are_rejected() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = _client(td)
        r = c.post("/api/advance", json={"ms": "soon"})
        _assert(r.status_code == 422 and "ms" in r.json()["error"], r.text)

        c.post("/api/advance", json={"ms": 6000})
        c.post("/api/jobs/0/take")
        r = c.post("/api/pending/assign", json={"processor_index": "x"})
        _assert(r.status_code == 422 and "error" in r.json(), r.text)
        _assert(c.get("/api/state").json()["pending_job"] is not None, "job still pending")

        before = c.get("/api/state").json()["credits"]
        r = c.post("/api/store/0/purchase", json={"processor_index": "x"})
        _assert(r.status_code == 422 and "error" in r.json(), r.text)
        _assert(c.get("/api/state").json()["credits"] == before, "credits unchanged")


def main() -> None:
    tests = [
        test_state_and_first_job,
        test_take_and_assign_flow,
        test_failed_purchase_is_conflict_and_changes_nothing,
        test_processor_controls,
        test_save_and_reset,
        test_non_numeric_fields_are_rejected,
    ]
    for t in tests:
        t()
        print(f"OK  {t.__name__}")
    print(f"ALL OK ({len(tests)} tests)")


if __name__ == "__main__":
    main()
