"""
Tests for the Kalends HTTP API.

These tests use FastAPI TestClient against the real routers, with the
registry dependency swapped for an in-memory WorkflowRegistry and the
clock pinned to Monday 2 June 2025, 09:00 London time.  The last test
runs the real database-backed dependency over the in-memory test engine.
"""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from api.deps import get_now, get_registry
from api.main import app
from kalends.dates import LONDON
from kalends.registry import WorkflowRegistry

NOW = datetime(2025, 6, 2, 9, 0, tzinfo=LONDON)
Q1 = "2025-03-01_to_2025-05-31"
Q1_URL = f"/workflows/clients/acme/VAT/{Q1}"

client = TestClient(app)


@pytest.fixture(autouse=True)
def registry():
    reg = WorkflowRegistry(known_clients=["acme", "beta"])
    app.dependency_overrides[get_registry] = lambda: reg
    app.dependency_overrides[get_now] = lambda: NOW
    yield reg
    app.dependency_overrides.clear()


def _create_q1():
    r = client.post("/workflows/clients/acme/vat-quarters",
                    json={"quarter_group": "2_5_8_11", "reference_date": "2025-03-15"})
    assert r.status_code == 200
    return r.json()


def _move(to_stage, **extra):
    return client.post(f"{Q1_URL}/transition", json={"to_stage": to_stage, "actor_id": "alice", **extra})


# ---------------------------------------------------------------------------
# Health / statutory
# ---------------------------------------------------------------------------
def test_health_check():
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_statutory_dates():
    r = client.post("/statutory/dates", json={
        "incorporation_date": "2024-01-15",
        "accounting_reference_date": "31/01",
        "today": "2024-06-01",
    })
    assert r.status_code == 200
    assert r.json() == {"yearEnd": "2025-01-31", "accountsDue": "2025-10-31", "ctDue": "2026-01-31"}


def test_statutory_dates_unknown_year_end():
    r = client.post("/statutory/dates", json={})
    assert r.json() == {"yearEnd": None, "accountsDue": None, "ctDue": None}


def test_statutory_dates_bad_reference_date():
    r = client.post("/statutory/dates", json={"accounting_reference_date": "31/02"})
    assert r.status_code == 422


def test_vat_quarter_endpoint():
    r = client.get("/statutory/vat-quarter", params={"group": "2_5_8_11", "date": "2025-03-15"})
    assert r.status_code == 200
    data = r.json()
    assert data["quarterPeriodId"] == Q1
    assert data["filingDue"] == "2025-06-30"
    assert data["label"] == "Mar - May 2025"


def test_vat_quarter_defaults_to_now():
    r = client.get("/statutory/vat-quarter", params={"group": "2_5_8_11"})
    assert r.json()["quarterPeriodId"] == "2025-06-01_to_2025-08-31"


def test_vat_quarter_unknown_group():
    r = client.get("/statutory/vat-quarter", params={"group": "1_2_3_4"})
    assert r.status_code == 422


def test_ct_should_update_refuses_large_move():
    r = client.post("/statutory/ct/should-update", json={
        "state": {"due_date": "2025-12-31", "period_start": "2024-01-01", "period_end": "2024-12-31"},
        "new_year_end": "2025-06-30",
        "companies_house_changed": True,
    })
    data = r.json()
    assert data["apply"] is False
    assert data["newDueDate"] is None
    assert len(data["warnings"]) == 1


def test_ct_summary_uses_now():
    r = client.post("/statutory/ct/summary", json={"due_date": "2025-05-01"})
    assert r.json()["status"] == "OVERDUE"


# ---------------------------------------------------------------------------
# Stage vocabulary
# ---------------------------------------------------------------------------
def test_list_stages():
    r = client.get("/workflows/VAT/stages")
    stages = r.json()
    assert len(stages) == 13
    assert stages[0]["name"] == "PAPERWORK_PENDING_CHASE"
    assert stages[0]["label"] == "Pending to chase"
    assert [s["name"] for s in stages if not s["selectable"]] == ["REVIEWED_BY_MANAGER", "REVIEWED_BY_PARTNER"]


def test_unknown_workflow_type():
    assert client.get("/workflows/PAYROLL/stages").status_code == 422


def test_allowed_next():
    r = client.get("/workflows/VAT/allowed-next", params={"current": "PAPERWORK_PENDING_CHASE"})
    assert r.json() == ["PAPERWORK_CHASED"]


def test_validate_reports_skip_without_error():
    r = client.post("/workflows/VAT/validate",
                    json={"from_stage": "PAPERWORK_PENDING_CHASE", "to_stage": "WORK_IN_PROGRESS"})
    assert r.status_code == 200
    data = r.json()
    assert data["valid"] is False
    assert data["isSkipping"] is True
    assert data["skippedStages"] == ["PAPERWORK_CHASED", "PAPERWORK_RECEIVED"]


def test_validate_unknown_stage():
    r = client.post("/workflows/VAT/validate", json={"to_stage": "DONE"})
    assert r.status_code == 422


def test_graph():
    data = client.get("/workflows/LTD/graph").json()
    assert len(data["nodes"]) == 15


# ---------------------------------------------------------------------------
# Periods and transitions
# ---------------------------------------------------------------------------
def test_create_vat_quarter():
    data = _create_q1()
    assert data["periodId"] == Q1
    assert data["filingDue"] == "2025-06-30"
    assert data["currentStage"] is None
    assert data["progress"]["percentage"] == 0.0
    assert data["version"] == 0


def test_create_accounts_period():
    r = client.post("/workflows/clients/acme/accounts-periods",
                    json={"workflow_type": "LTD", "year_end": "2025-03-31"})
    data = r.json()
    assert data["periodId"] == "2024-04-01_to_2025-03-31"
    assert data["filingDue"] == "2025-12-31"


def test_unknown_client_is_404():
    r = client.post("/workflows/clients/ghost/vat-quarters", json={"quarter_group": "2_5_8_11"})
    assert r.status_code == 404


def test_transition_records_history():
    _create_q1()
    r = _move("PAPERWORK_PENDING_CHASE", notes="first chase")
    assert r.status_code == 200
    data = r.json()
    assert data["entry"]["toStage"] == "PAPERWORK_PENDING_CHASE"
    assert data["entry"]["notes"] == "first chase"
    assert data["period"]["version"] == 1
    assert "chase_started" in data["period"]["milestones"]
    assert len(data["period"]["history"]) == 1


def test_same_stage_returns_no_entry():
    _create_q1()
    _move("PAPERWORK_PENDING_CHASE")
    r = _move("PAPERWORK_PENDING_CHASE")
    assert r.status_code == 200
    assert r.json()["entry"] is None


def test_skip_is_400_until_confirmed():
    _create_q1()
    _move("PAPERWORK_PENDING_CHASE")
    r = _move("WORK_IN_PROGRESS")
    assert r.status_code == 400
    assert r.json()["validation"]["isSkipping"] is True

    r = _move("WORK_IN_PROGRESS", confirm_skip=True)
    assert r.status_code == 200
    assert r.json()["period"]["currentStage"] == "WORK_IN_PROGRESS"


def test_version_conflict_is_409():
    _create_q1()
    _move("PAPERWORK_PENDING_CHASE", expected_version=0)
    r = _move("PAPERWORK_CHASED", expected_version=0)
    assert r.status_code == 409


def test_missing_period_is_404():
    assert client.get(Q1_URL).status_code == 404
    assert _move("PAPERWORK_PENDING_CHASE").status_code == 404


def test_assign_and_list():
    _create_q1()
    r = client.put(f"{Q1_URL}/assignee", json={"user_id": "alice"})
    assert r.json()["assignedUserId"] == "alice"
    periods = client.get("/workflows/clients/acme/periods").json()
    assert [p["periodId"] for p in periods] == [Q1]


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------
def test_deadlines_dashboard():
    _create_q1()
    client.put(f"{Q1_URL}/assignee", json={"user_id": "alice"})
    data = client.get("/dashboard/deadlines").json()
    assert data["buckets"]["upcoming"] == 1
    assert data["breakdown"]["30"] == 1
    assert [i["label"] for i in data["upcoming"]] == [Q1]
    assert data["overdue"] == []

    mine = client.get("/dashboard/deadlines", params={"user_id": "bob"}).json()
    assert sum(mine["buckets"].values()) == 0


def test_workload_dashboard():
    _create_q1()
    client.put(f"{Q1_URL}/assignee", json={"user_id": "alice"})
    _move("PAPERWORK_PENDING_CHASE")
    r = client.post("/dashboard/workload", json={
        "fallbacks": [{"client_id": "beta", "user_id": "bob", "vat_enabled": True}],
    })
    data = r.json()
    assert data["alice"]["lines"]["VAT"] == {"active": 1, "inactive": 0, "total": 1}
    assert data["bob"]["lines"]["VAT"]["inactive"] == 1
    assert data["bob"]["lines"]["LTD_ACCOUNTS"]["inactive"] == 1


# ---------------------------------------------------------------------------
# Database-backed registry
# ---------------------------------------------------------------------------
def test_each_request_gets_its_own_session(engine, monkeypatch):
    """The real dependency opens one session per request over the shared engine."""
    import api.deps as deps

    sessions = []

    def _session():
        s = Session(engine)
        sessions.append(s)
        return s

    monkeypatch.setattr(deps, "SessionLocal", _session)
    monkeypatch.setattr(deps, "init_db", lambda: None)
    app.dependency_overrides.pop(get_registry)

    _create_q1()
    assert _move("PAPERWORK_PENDING_CHASE").status_code == 200
    r = client.get(Q1_URL)
    assert r.status_code == 200
    assert r.json()["version"] == 1
    assert r.json()["history"][0]["changedAt"].startswith("2025-06-02T08:00:00")
    assert len({id(s) for s in sessions}) == 3
