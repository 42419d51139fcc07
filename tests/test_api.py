"""Tests for the FastAPI layer and the decision audit trail."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import ACCOUNTS, keystroke_events
from server.api import create_app
from server.challenge_channel import DEMO_CODE, SimulatedChallengeChannel
from server.credential_validator import InMemoryCredentialValidator
from server.registry import SessionRegistry


@pytest.fixture
def client():
    registry = SessionRegistry(InMemoryCredentialValidator(accounts=ACCOUNTS), SimulatedChallengeChannel)
    return TestClient(create_app(registry=registry, database_url="sqlite://"))


@pytest.fixture
def session_id(client):
    resp = client.post("/sessions")
    assert resp.status_code == 201
    return resp.json()["session_id"]


def login(client, session_id, identifier="alice@example.com", secret="CorrectHorse1"):
    return client.post(f"/sessions/{session_id}/login",
                       json={"identifier": identifier, "secret": secret})


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_new_session_snapshot(client, session_id):
    body = client.get(f"/sessions/{session_id}").json()
    assert body["state"] == "collecting"
    assert body["trust_score"] == 100
    assert body["metrics"] == []
    assert body["access_granted"] is False


def test_unknown_session_is_404(client):
    assert client.get("/sessions/does-not-exist").status_code == 404
    assert client.post("/sessions/does-not-exist/reset").status_code == 404
    assert client.delete("/sessions/does-not-exist").status_code == 404


def test_keystrokes_update_metrics_and_consistency(client, session_id):
    resp = client.post(f"/sessions/{session_id}/keystrokes",
                       json={"events": keystroke_events([0.0, 300.0] * 5)})
    body = resp.json()
    assert resp.status_code == 200
    assert len(body["metrics"]) == 10
    assert body["factors"]["typing_consistency"] == 25
    assert body["trust_score"] == 80


def test_approved_login_is_audited(client, session_id):
    client.post(f"/sessions/{session_id}/keystrokes", json={"events": keystroke_events([120.0] * 10)})
    resp = login(client, session_id)
    assert resp.status_code == 200
    report = resp.json()
    assert report["decision"] == "approved"
    assert report["trust_score"] == 100
    assert [s["stage"] for s in report["stages"]] == ["context_check", "biometric_check", "score_computation"]

    decisions = client.get(f"/sessions/{session_id}/decisions").json()
    assert [d["state"] for d in decisions] == ["approved"]
    assert decisions[0]["identifier"] == "alice@example.com"


def test_short_password_is_400(client, session_id):
    resp = login(client, session_id, "short@example.com", "Short7!")
    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "input_error"
    assert client.get(f"/sessions/{session_id}").json()["state"] == "collecting"


def test_wrong_password_is_401(client, session_id):
    resp = login(client, session_id, secret="WrongHorse1")
    assert resp.status_code == 401
    assert resp.json()["detail"]["error"] == "authentication_error"
    assert client.get(f"/sessions/{session_id}/decisions").json() == []


def test_code_challenge_flow(client, session_id):
    client.put(f"/sessions/{session_id}/factors",
               json={"is_known_device": False, "is_vpn_detected": True})
    report = login(client, session_id).json()
    assert report["decision"] == "challenge_required"
    assert report["trust_score"] == 50

    resp = client.post(f"/sessions/{session_id}/challenge/code", json={"code": "000000"})
    assert resp.status_code == 403
    assert resp.json()["detail"]["attempts_remaining"] == 4

    resp = client.post(f"/sessions/{session_id}/challenge/code", json={"code": DEMO_CODE})
    assert resp.status_code == 200
    assert resp.json()["state"] == "granted"
    assert resp.json()["access_granted"] is True

    decisions = client.get(f"/sessions/{session_id}/decisions").json()
    assert [d["state"] for d in decisions] == ["challenge_required", "granted"]


def test_push_challenge_flow(client, session_id):
    client.post(f"/sessions/{session_id}/factors/is_known_location/toggle")
    client.post(f"/sessions/{session_id}/factors/is_vpn_detected/toggle")
    assert login(client, session_id).json()["decision"] == "challenge_required"

    body = client.post(f"/sessions/{session_id}/challenge/push").json()
    assert body["challenge"]["push_status"] == "pending"
    assert client.get(f"/sessions/{session_id}/challenge/push").json()["state"] == "challenge_required"

    client.post(f"/sessions/{session_id}/challenge/push/approve")
    body = client.get(f"/sessions/{session_id}/challenge/push").json()
    assert body["state"] == "granted"
    assert body["challenge"]["push_status"] == "approved"


def test_unknown_factor_toggle_is_400(client, session_id):
    resp = client.post(f"/sessions/{session_id}/factors/typing_consistency/toggle")
    assert resp.status_code == 400


def test_code_outside_challenge_is_409(client, session_id):
    resp = client.post(f"/sessions/{session_id}/challenge/code", json={"code": DEMO_CODE})
    assert resp.status_code == 409
    assert resp.json()["detail"]["error"] == "state_error"


def test_reset_and_delete(client, session_id):
    client.put(f"/sessions/{session_id}/factors",
               json={"is_known_device": False, "is_vpn_detected": True})
    client.post(f"/sessions/{session_id}/keystrokes", json={"events": keystroke_events([0.0, 300.0] * 5)})
    assert login(client, session_id).json()["decision"] == "challenge_required"

    body = client.post(f"/sessions/{session_id}/reset").json()
    assert body["state"] == "collecting"
    assert body["metrics"] == []
    assert body["factors"]["typing_consistency"] == 100
    assert body["profile"] is None

    summary = client.get(f"/sessions/{session_id}/summary").json()
    assert summary["transition_count"] == 3

    assert client.delete(f"/sessions/{session_id}").json() == {"deleted": True}
    assert client.get(f"/sessions/{session_id}").status_code == 404


def test_approved_session_leaves_registry(client, session_id):
    assert client.get("/health").json()["active_sessions"] == 1
    assert login(client, session_id).json()["decision"] == "approved"

    assert client.get("/health").json()["active_sessions"] == 0
    assert client.get(f"/sessions/{session_id}").status_code == 404
    assert [d["state"] for d in client.get(f"/sessions/{session_id}/decisions").json()] == ["approved"]


def test_granted_sessions_leave_registry(client):
    ids = [client.post("/sessions").json()["session_id"] for _ in range(2)]
    for session_id in ids:
        client.put(f"/sessions/{session_id}/factors",
                   json={"is_known_device": False, "is_vpn_detected": True})
        assert login(client, session_id).json()["decision"] == "challenge_required"
    assert client.get("/health").json()["active_sessions"] == 2

    code_id, push_id = ids
    assert client.post(f"/sessions/{code_id}/challenge/code", json={"code": DEMO_CODE}).status_code == 200
    assert client.get("/health").json()["active_sessions"] == 1

    client.post(f"/sessions/{push_id}/challenge/push")
    client.post(f"/sessions/{push_id}/challenge/push/approve")
    assert client.get(f"/sessions/{push_id}/challenge/push").json()["state"] == "granted"
    assert client.get("/health").json()["active_sessions"] == 0
    assert client.get(f"/sessions/{push_id}/challenge/push").status_code == 404


def test_login_report_includes_profile(client, session_id):
    report = login(client, session_id).json()
    assert report["profile"]["identifier"] == "alice@example.com"
    assert report["profile"]["role"] == "user"
