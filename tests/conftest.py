from __future__ import annotations

import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
API_DIR = ROOT / "API"
if str(API_DIR) not in sys.path:
    sys.path.insert(0, str(API_DIR))

# Test-mode runtime guards:
# - no real backend traffic; every component talks to FakeLessonServer
# - memory store and no delayed follow-up replays
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("SERVER_BASE_URL", "http://testserver/api")
os.environ.setdefault("LOCAL_STORE_BACKEND", "memory")
os.environ.setdefault("START_ONLINE", "false")
os.environ.setdefault("REPLAY_FOLLOWUP_ENABLED", "false")
os.environ.setdefault("AGENT_AUTH_ENABLED", "false")

from edusync.core import sync_metrics  # noqa: E402
from edusync.core.auth import CredentialStore  # noqa: E402
from edusync.core.event_bus import event_bus  # noqa: E402
from edusync.main import app  # noqa: E402
from edusync.runtime.container import create_runtime, set_runtime  # noqa: E402
from edusync.storage.store import InMemoryLocalStore  # noqa: E402

VALID_TOKEN = "token-abc"
STUDENT_ID = "stu-1"


def lesson_fixture(lesson_id: str, **overrides) -> dict:
    lesson = {
        "_id": lesson_id,
        "title": f"Lesson {lesson_id}",
        "subject": "computers",
        "classLevel": 6,
        "language": "en",
        "category": "basics",
        "content": "A mouse is a small device that helps us control the computer.",
        "quiz": {"questions": [{"q": "What is a mouse?", "options": ["device", "animal"], "answer": 0}]},
    }
    lesson.update(overrides)
    return lesson


class FakeLessonServer:
    """In-process stand-in for the backend, served through httpx.MockTransport."""

    def __init__(self):
        self.lessons: dict[str, dict] = {
            "l1": lesson_fixture("l1"),
            "l2": lesson_fixture("l2", subject="math", classLevel=7, title="Fractions"),
            "l3": lesson_fixture("l3", language="hi", category="advanced"),
        }
        self.progress: dict[str, dict] = {}
        self.translations: dict[tuple[str, str], str] = {}
        self.requests: list[tuple[str, str]] = []
        self.down = False
        self.fail_paths: dict[str, int] = {}
        self.valid_token = VALID_TOKEN

    def calls(self, method: str, path: str) -> int:
        return sum(1 for m, p in self.requests if m == method and p == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api"):]
        if self.down:
            raise httpx.ConnectError("server unreachable", request=request)
        self.requests.append((request.method, path))
        if path in self.fail_paths:
            return httpx.Response(self.fail_paths[path], json={"message": "Server error"})

        parts = [part for part in path.split("/") if part]
        if parts == ["translate"] and request.method == "POST":
            body = json.loads(request.content or b"{}")
            key = (body.get("q", ""), body.get("target", ""))
            translated = self.translations.get(key, f"[{body.get('target')}] {body.get('q')}")
            return httpx.Response(200, json={"translatedText": translated})

        if parts[:1] != ["lessons"]:
            return httpx.Response(404, json={"message": "Not found"})

        if parts == ["lessons"] and request.method == "GET":
            params = request.url.params
            lessons = list(self.lessons.values())
            if params.get("subject"):
                lessons = [lesson for lesson in lessons if lesson["subject"] == params["subject"]]
            if params.get("classLevel"):
                lessons = [lesson for lesson in lessons if lesson["classLevel"] == int(params["classLevel"])]
            if params.get("language"):
                lessons = [lesson for lesson in lessons if lesson["language"] == params["language"]]
            return httpx.Response(200, json=lessons)

        if parts == ["lessons", "student", "progress"]:
            if not self._authorized(request):
                return httpx.Response(401, json={"message": "No token"})
            return httpx.Response(200, json=list(self.progress.values()))

        if len(parts) == 2 and request.method == "GET":
            lesson = self.lessons.get(parts[1])
            if lesson is None:
                return httpx.Response(404, json={"message": "Lesson not found"})
            return httpx.Response(200, json=lesson)

        if len(parts) == 3 and parts[2] == "complete" and request.method == "POST":
            if not self._authorized(request):
                return httpx.Response(401, json={"message": "No token"})
            lesson_id = parts[1]
            if lesson_id not in self.lessons:
                return httpx.Response(404, json={"message": "Lesson not found"})
            body = json.loads(request.content or b"{}")
            record = {
                "_id": f"p-{lesson_id}",
                "student": STUDENT_ID,
                "lesson": lesson_id,
                "isCompleted": True,
                "quizScore": body.get("quizScore", 0),
                "totalQuestions": body.get("totalQuestions", 0),
                "timeSpentSeconds": body.get("timeSpentSeconds", 0),
                "completedAt": datetime.now(timezone.utc).isoformat(),
            }
            self.progress[lesson_id] = record
            return httpx.Response(200, json=record)

        return httpx.Response(404, json={"message": "Not found"})

    def _authorized(self, request: httpx.Request) -> bool:
        return request.headers.get("authorization") == f"Bearer {self.valid_token}"


@pytest.fixture(autouse=True)
def _reset_observability():
    event_bus.clear()
    sync_metrics.reset_sync_metrics()
    yield
    event_bus.clear()


@pytest.fixture
def server() -> FakeLessonServer:
    return FakeLessonServer()


@pytest.fixture
def transport(server: FakeLessonServer) -> httpx.MockTransport:
    return httpx.MockTransport(server.handler)


@pytest_asyncio.fixture
async def runtime(transport):
    rt = create_runtime(
        transport=transport,
        store=InMemoryLocalStore(),
        online=True,
        credentials=CredentialStore(token=VALID_TOKEN, student_id=STUDENT_ID),
    )
    await rt.start()
    await rt.queue.wait_idle()
    yield rt
    await rt.aclose()


@pytest.fixture
def agent(transport):
    rt = create_runtime(
        transport=transport,
        store=InMemoryLocalStore(),
        online=True,
        credentials=CredentialStore(token=VALID_TOKEN, student_id=STUDENT_ID),
    )
    set_runtime(rt)
    with TestClient(app) as client:
        yield client, rt
    set_runtime(None)
