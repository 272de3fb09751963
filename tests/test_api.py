"""API-level tests for the Flask app."""

import pytest

from app import REGISTRY_KEY, app


@pytest.fixture(autouse=True)
def env_setup(tmp_path, monkeypatch):
    monkeypatch.setenv("SAFENIGHT_AUDIT_DB_PATH", str(tmp_path / "audit.db"))
    monkeypatch.setenv("SAFENIGHT_AUDIT_KEY", "test-key")
    app.extensions.pop(REGISTRY_KEY, None)
    yield
    app.extensions.pop(REGISTRY_KEY, None)


@pytest.fixture
def client():
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c


def setup_profile(client, **overrides):
    payload = {
        "weight_lb": 140,
        "gender": "female",
        "sos_code_word": "pineapple",
        "emergency_contacts": [{"id": "c1", "name": "Sam", "phone": "+15550001", "relationship": "friend"}],
        "settings": {"share_location": True, "auto_escalate": True},
    }
    payload.update(overrides)
    res = client.post("/api/setup", json=payload)
    assert res.status_code == 200
    return res.get_json()["profile"]


def test_healthz(client):
    res = client.get("/healthz")
    assert res.status_code == 200
    assert res.get_json() == {"ok": True}


def test_state_unconfigured(client):
    data = client.get("/api/state").get_json()
    assert data["configured"] is False
    assert data["bac"] == 0
    assert data["safety_level"] == "safe"


def test_drink_requires_setup(client):
    res = client.post("/api/drink", json={"drink_type": "beer"})
    assert res.status_code == 401


def test_setup_clamps_weight(client):
    profile = setup_profile(client, weight_lb=20, gender="nonbinary")
    assert profile["weight_lb"] == 80.0
    assert profile["gender"] == "other"
    assert profile["id"]


def test_drink_and_state_roundtrip(client):
    setup_profile(client)
    res = client.post("/api/drink", json={"drink_type": "cocktail"})
    assert res.status_code == 200
    assert res.get_json()["bac"]["bac"] > 0

    state = client.get("/api/state").get_json()
    assert state["configured"] is True
    assert state["drink_count"] == 1
    assert state["safety_level"] == "caution"
    assert state["time_to_sober"] > 0
    assert state["bac_display"].endswith("%")
    assert len(state["curve"]) > 1


def test_drink_from_description_and_fallback(client):
    setup_profile(client)
    parsed = client.post("/api/drink", json={"description": "a glass of red wine"}).get_json()
    assert parsed["drink"]["alcohol_type"] == "wine"

    fallback = client.post("/api/drink", json={"description": "something blue"}).get_json()
    assert fallback["drink"]["alcohol_type"] == "other"
    assert fallback["drink"]["volume_oz"] == 4.0


def test_unknown_drink_type(client):
    setup_profile(client)
    res = client.post("/api/drink", json={"drink_type": "mead"})
    assert res.status_code == 400


def test_today_delete_and_reset(client):
    setup_profile(client)
    drink_id = client.post("/api/drink", json={"drink_type": "beer"}).get_json()["drink"]["id"]
    client.post("/api/drink", json={"drink_type": "shot"})
    assert len(client.get("/api/drinks/today").get_json()["items"]) == 2

    assert client.delete(f"/api/drink/{drink_id}").get_json()["removed"] is True
    assert client.delete(f"/api/drink/{drink_id}").get_json()["removed"] is False

    client.post("/api/reset")
    state = client.get("/api/state").get_json()
    assert state["drink_count"] == 0
    assert state["bac"] == 0


def test_sos_trigger_conflict_and_resolve(client):
    setup_profile(client)
    first = client.post("/api/sos/trigger", json={"trigger": "button"})
    assert first.status_code == 200
    sos = first.get_json()["sos"]
    assert sos["status"] == "active"
    assert sos["contacts_notified"] == ["c1"]
    assert sos["audit_signature"]

    second = client.post("/api/sos/trigger", json={"trigger": "button"})
    assert second.status_code == 409
    assert second.get_json()["active_id"] == sos["id"]

    resolved = client.post("/api/sos/resolve", json={"event_id": sos["id"]}).get_json()
    assert resolved["sos"]["status"] == "resolved"

    history = client.get("/api/sos/history").get_json()["items"]
    assert [h["status"] for h in history] == ["resolved"]


def test_sos_cancel_and_noops(client):
    setup_profile(client)
    assert client.post("/api/sos/cancel").get_json()["sos"] is None
    assert client.post("/api/sos/resolve", json={"event_id": "nope"}).get_json()["sos"] is None

    client.post("/api/sos/trigger", json={})
    cancelled = client.post("/api/sos/cancel").get_json()["sos"]
    assert cancelled["status"] == "false_alarm"


def test_sos_invalid_trigger(client):
    setup_profile(client)
    assert client.post("/api/sos/trigger", json={"trigger": "shake"}).status_code == 400


def test_audit_verify(client):
    setup_profile(client)
    sos = client.post("/api/sos/trigger", json={}).get_json()["sos"]

    ok = client.get(f"/api/audit/verify/{sos['audit_signature']}").get_json()
    assert ok["verified"] is True
    assert ok["event"]["data"]["id"] == sos["id"]

    missing = client.get("/api/audit/verify/not-a-signature").get_json()
    assert missing == {"verified": False, "event": None}


def test_audit_retry_and_notify(client):
    setup_profile(client)
    sos = client.post("/api/sos/trigger", json={}).get_json()["sos"]

    retried = client.post(f"/api/sos/{sos['id']}/audit").get_json()
    assert retried["sos"]["audit_signature"] == sos["audit_signature"]

    notify = client.post(f"/api/sos/{sos['id']}/notify").get_json()
    assert notify["ok"] is True
    assert notify["sms_links"][0].startswith("sms:+15550001?body=")

    assert client.post("/api/sos/unknown/audit").status_code == 404
    assert client.post("/api/sos/unknown/notify").status_code == 404


def test_missed_checkins_escalate(client):
    setup_profile(client)
    assert client.post("/api/checkin/missed", json={"missed_count": 1}).get_json()["escalated"] is False
    escalated = client.post("/api/checkin/missed", json={"missed_count": 2}).get_json()
    assert escalated["escalated"] is True
    assert escalated["sos"]["trigger"] == "missed_checkin"
    assert client.post("/api/checkin/missed", json={"missed_count": 3}).get_json()["escalated"] is False
    assert client.post("/api/checkin/missed", json={"missed_count": "x"}).status_code == 400


def test_code_word_detect_triggers_sos(client):
    setup_profile(client)
    miss = client.post("/api/code-word/detect", json={"transcript": "totally unrelated sentence"}).get_json()
    assert miss["detected"] is False
    assert miss["sos"] is None

    hit = client.post("/api/code-word/detect", json={"transcript": "I said pinapple now"}).get_json()
    assert hit["detected"] is True
    assert 0.8 < hit["confidence"] < 1.0
    assert hit["sos"]["trigger"] == "code_word"


def test_sign_out_keeps_sos_history_in_audit(client):
    setup_profile(client)
    sos = client.post("/api/sos/trigger", json={}).get_json()["sos"]
    client.post("/api/sign-out")
    assert client.get("/api/state").get_json()["configured"] is False
    assert client.get(f"/api/audit/verify/{sos['audit_signature']}").get_json()["verified"] is True


def test_sessions_are_isolated_per_client():
    app.config["TESTING"] = True
    a = app.test_client()
    b = app.test_client()
    setup_profile(a)
    setup_profile(b)
    a.post("/api/drink", json={"drink_type": "shot"})
    assert a.get("/api/state").get_json()["drink_count"] == 1
    assert b.get("/api/state").get_json()["drink_count"] == 0
    assert a.post("/api/sos/trigger", json={}).status_code == 200
    assert b.post("/api/sos/trigger", json={}).status_code == 200
