from __future__ import annotations

from edusync.core.settings import settings
from edusync.sync.gateway import SOURCE_CACHE, SOURCE_HEADER


def test_health_reports_connectivity_and_storage(agent):
    client, _runtime = agent
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["online"] is True
    assert body["storage"] == {"backend": "memory", "degraded": False}
    assert resp.headers.get("x-request-id")


def test_lessons_proxy_passes_through_cache_source(agent):
    client, _runtime = agent
    online = client.get("/lessons", params={"subject": "math"})
    assert online.status_code == 200
    assert [lesson["_id"] for lesson in online.json()] == ["l2"]

    assert client.post("/connectivity", json={"online": False}).json()["online"] is False
    offline = client.get("/lessons/l2")
    assert offline.status_code == 200
    assert offline.headers[SOURCE_HEADER] == SOURCE_CACHE

    missing = client.get("/lessons/l1")
    assert missing.status_code == 404


def test_offline_completion_via_api_then_manual_replay(agent):
    client, runtime = agent
    client.post("/connectivity", json={"online": False})

    resp = client.post("/lessons/l1/complete", json={"quizScore": 8, "totalQuestions": 10})
    assert resp.status_code == 200
    assert resp.json()["state"] == "completed_optimistic"
    assert resp.json()["confirmed"] is False

    pending = client.get("/sync/pending").json()
    assert pending["count"] == 1
    assert "headers" not in pending["actions"][0]

    # flip the flag outside the app loop so the test drives the replay itself
    runtime.monitor.set_online(True)
    replay = client.post("/sync/replay").json()
    assert len(replay["confirmed"]) == 1

    progress = client.get("/progress").json()
    assert progress["entries"][0]["lesson_id"] == "l1"
    assert progress["entries"][0]["confirmed"] is True
    assert client.get("/progress/l1").json()["quiz_score"] == 8


def test_translate_endpoint_flags_approximate_results(agent):
    client, _runtime = agent
    client.post("/connectivity", json={"online": False})
    resp = client.post("/translate", json={"q": "Scroll Wheel", "source": "en", "target": "hi"})
    assert resp.status_code == 200
    assert resp.json() == {"translatedText": "स्क्रॉल व्हील", "origin": "fallback", "approximate": True}


def test_session_handoff_and_logout_clears_local_data(agent):
    client, runtime = agent
    client.get("/lessons")
    resp = client.post("/session", json={"token": "token-abc", "student_id": "stu-1"})
    assert resp.status_code == 200
    assert resp.json()["authenticated"] is True

    assert client.delete("/session").json() == {"cleared": True}
    status = client.get("/sync/status").json()
    assert status["session"] == {"authenticated": False, "student_id": None}
    assert status["pending_actions"] == 0
    assert client.post("/connectivity", json={"online": False}).status_code == 200
    assert client.get("/lessons").json() == []


def test_validation_errors_use_error_envelope(agent):
    client, _runtime = agent
    resp = client.post("/translate", json={"q": "hello"})
    assert resp.status_code == 422
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "validation_error"


def test_metrics_and_event_history(agent):
    client, _runtime = agent
    client.post("/connectivity", json={"online": False})
    client.post("/lessons/l3/complete", json={"quizScore": 1, "totalQuestions": 1})

    metrics = client.get("/metrics/sync").json()
    assert metrics["counters"]["actions_queued"] == 1
    assert "breakers" in client.get("/metrics/resilience").json()

    history = client.get("/events/history", params={"event_type": "action_queued"}).json()
    assert history["events"][0]["data"]["url"] == "/lessons/l3/complete"


def test_agent_api_key_enforced_when_enabled(agent, monkeypatch):
    client, _runtime = agent
    monkeypatch.setattr(settings, "agent_auth_enabled", True)
    monkeypatch.setattr(settings, "agent_api_key", "local-secret")

    assert client.get("/health").status_code == 200
    denied = client.get("/sync/status")
    assert denied.status_code == 401
    assert denied.json()["error"]["code"] == "unauthorized"
    assert client.get("/sync/status", headers={"x-api-key": "local-secret"}).status_code == 200


def test_authorization_header_is_captured(agent):
    client, runtime = agent
    client.get("/sync/status", headers={"Authorization": "Bearer fresh-token", "x-student-id": "stu-9"})
    assert runtime.credentials.token == "fresh-token"
    assert runtime.credentials.student_id == "stu-9"


def test_student_header_switch_reloads_that_students_progress(agent):
    client, runtime = agent
    client.post("/connectivity", json={"online": False})
    client.post("/lessons/l1/complete", json={"quizScore": 5, "totalQuestions": 5})

    other = client.get("/progress", headers={"x-student-id": "stu-2"}).json()
    assert runtime.credentials.student_id == "stu-2"
    assert other["entries"] == []
    assert client.get("/progress/l1").status_code == 404

    back = client.get("/progress", headers={"x-student-id": "stu-1"}).json()
    assert [entry["lesson_id"] for entry in back["entries"]] == ["l1"]
