"""
HTTP surface: snapshot pull, SSE push, control endpoint, scenario listing.
"""

import json

import pytest
from fastapi.testclient import TestClient

import achelion.api.server as server


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("ACHELION_AUTOSTART", "false")
    monkeypatch.setenv("ACHELION_SEED", "11")
    monkeypatch.setenv("ACHELION_STREAM_INTERVAL", "0.01")
    with TestClient(server.app) as c:
        yield c


def post_control(client, **body):
    return client.post("/api/control", json=body)


# ── Service ───────────────────────────────────────────────────

def test_root(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "operational"


def test_health_before_start(client):
    body = client.get("/health").json()
    assert body["running"] is False
    assert body["tick_count"] == 0
    assert body["phase"] == "CALM"
    assert body["scenario_id"] is None


# ── Snapshot ──────────────────────────────────────────────────

def test_snapshot_shape(client):
    resp = client.get("/api/snapshot")

    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "no-store"

    snap = resp.json()
    assert snap["phase"] == "CALM"
    assert snap["regime"] == "RISK_ON"
    assert len(snap["modules"]) == 6
    assert set(snap["pillars"]) == {"ARAS", "MACRO", "MASTER", "KEVLAR", "PERM", "SLOF", "ARES"}
    assert snap["alerts"][0]["severity"] in ("info", "watch", "critical")
    assert {"gate1_stress_normalization", "gate2_conviction", "gate3_confirmation"} <= set(snap["gates"])
    assert snap["portfolio"]["positions"]


def test_snapshot_starts_stopped_runner(client):
    assert client.get("/health").json()["running"] is False
    client.get("/api/snapshot")
    assert client.get("/health").json()["running"] is True


# ── Stream ────────────────────────────────────────────────────

def test_stream_sends_full_snapshots(client):
    resp = client.get("/api/stream", params={"limit": 2})

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")

    messages = [m for m in resp.text.split("\n\n") if m.strip()]
    assert len(messages) == 2
    for message in messages:
        event, data = message.split("\n", 1)
        assert event == "event: snapshot"
        assert data.startswith("data: ")
        snap = json.loads(data[len("data: "):])
        assert "phase" in snap and "alerts" in snap


# ── Control ───────────────────────────────────────────────────

def test_set_scenario(client):
    resp = post_control(client, action="setScenario", scenarioId="S2")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}

    assert client.get("/health").json()["scenario_id"] == "S2"
    snap = client.get("/api/snapshot").json()
    assert snap["scenario_id"] == "S2"
    assert any(a["title"].startswith("Scenario → S2") for a in snap["alerts"])


def test_set_phase(client):
    assert post_control(client, action="setPhase", phase="STABILIZE").json() == {"ok": True}
    health = client.get("/health").json()
    assert health["phase"] == "STABILIZE"
    assert health["tick_count"] == 0

    server.runner.step(0.4)
    assert client.get("/health").json()["phase"] == "STABILIZE"


def test_set_scenario_publishes_reset_reentry(client):
    post_control(client, action="setScenario", scenarioId="S3")
    server.runner.step(0.4)
    assert post_control(client, action="approveReentry").json() == {"ok": True}
    assert server.runner.snapshot().portfolio.reentry.approved is True

    post_control(client, action="setScenario", scenarioId="S1")
    snap = server.runner.snapshot()
    assert snap.scenario_id == "S1"
    assert snap.phase.value == "CALM"
    assert snap.regime.value == "RISK_ON"
    assert snap.portfolio.reentry.approved is False
    assert snap.portfolio.reentry.tranche == 0


def test_auto_demo_and_approve(client):
    assert post_control(client, action="autoDemo").json() == {"ok": True}
    assert post_control(client, action="approveReentry").json() == {"ok": True}

    assert server.runner.state.scenario_id == "S1"
    assert server.runner.state.reentry.approved is True

    assert post_control(client, action="clearScenario").json() == {"ok": True}
    assert server.runner.state.scenario_id is None


def test_approve_without_scenario_is_accepted(client):
    resp = post_control(client, action="approveReentry")
    assert resp.status_code == 200
    assert server.runner.state.reentry.approved is False


@pytest.mark.parametrize("body", [
    {"action": "selfDestruct"},
    {"action": "setPhase", "phase": "PANIC"},
    {"action": "setScenario", "scenarioId": "S42"},
    {"action": "setScenario"},
    {},
])
def test_rejected_control(client, body):
    before = server.runner.state

    resp = client.post("/api/control", json=body)

    assert resp.status_code == 400
    assert resp.json()["ok"] is False
    assert resp.json()["error"]
    assert server.runner.state is before


def test_malformed_json_rejected(client):
    resp = client.post(
        "/api/control",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 400
    assert resp.json()["ok"] is False


# ── Scenarios ─────────────────────────────────────────────────

def test_list_scenarios(client):
    scenarios = client.get("/api/scenarios").json()

    assert [s["id"] for s in scenarios] == ["S1", "S2", "S3"]
    s1 = scenarios[0]
    assert s1["steps"][0] == {"start": 0.0, "phase": "CALM", "label": "Calm markets, risk-on"}
    assert s1["steps"][-1]["phase"] == "REENTRY"
