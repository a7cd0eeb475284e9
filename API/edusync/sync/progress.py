from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Callable

import httpx

from edusync.core.connectivity import ConnectivityMonitor
from edusync.core.errors import StorageUnavailable
from edusync.core.event_bus import EVENT_PROGRESS_UPDATED, EventBus, event_bus
from edusync.core.logging import DOMAIN_PROGRESS, get_domain_logger
from edusync.core.settings import settings
from edusync.storage.models import LocalProgressRecord, PendingAction, ProgressState, utcnow
from edusync.storage.store import LocalStore
from edusync.sync.gateway import SOURCE_HEADER, SOURCE_QUEUED, NetworkGateway
from edusync.sync.queue import ActionQueueManager

logger = get_domain_logger(__name__, DOMAIN_PROGRESS)

_COMPLETE_PATH = re.compile(r"/lessons/([^/?#]+)/complete/?(?:$|[?#])")
LOCAL_STUDENT = "local"

StudentIdProvider = Callable[[], str | None]


def completion_path(lesson_id: str) -> str:
    return f"/lessons/{lesson_id}/complete"


def lesson_id_from_url(url: str) -> str | None:
    match = _COMPLETE_PATH.search(url)
    return match.group(1) if match else None


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _server_lesson_id(record: dict) -> str | None:
    lesson = record.get("lesson")
    if isinstance(lesson, dict):
        lesson = lesson.get("_id")
    return str(lesson) if lesson else None


class ProgressReconciler:
    """Optimistic lesson-completion tracking with server confirmation.

    Completions made offline are recorded locally as `completed_optimistic` and queued; the
    entry becomes `completed_confirmed` only once the server answers a live call or a replay.
    """

    def __init__(
        self,
        store: LocalStore,
        gateway: NetworkGateway,
        queue: ActionQueueManager,
        monitor: ConnectivityMonitor,
        student_id_provider: StudentIdProvider | None = None,
        *,
        bus: EventBus | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.queue = queue
        self.monitor = monitor
        self._student_id_provider = student_id_provider or (lambda: settings.student_id or None)
        self._bus = bus or event_bus
        self._entries: dict[str, LocalProgressRecord] = {}
        queue.on_confirmed(self._on_action_confirmed)

    @property
    def student_id(self) -> str:
        return self._student_id_provider() or LOCAL_STUDENT

    def get_entry(self, lesson_id: str) -> LocalProgressRecord | None:
        return self._entries.get(lesson_id)

    def get_state(self, lesson_id: str) -> ProgressState:
        entry = self._entries.get(lesson_id)
        return entry.state if entry else ProgressState.NOT_STARTED

    def entries(self) -> list[LocalProgressRecord]:
        return sorted(self._entries.values(), key=lambda entry: entry.updated_at, reverse=True)

    async def load(self) -> int:
        """Restore persisted entries for the current student."""
        try:
            records = await self.store.get_progress(self.student_id)
        except StorageUnavailable as exc:
            logger.warning("Progress restore failed error=%s", exc)
            return 0
        self._entries = {record.lesson_id: record for record in records}
        return len(self._entries)

    def reset(self) -> None:
        self._entries.clear()

    async def start_lesson(self, lesson_id: str) -> LocalProgressRecord:
        existing = self._entries.get(lesson_id)
        if existing is not None and existing.state != ProgressState.NOT_STARTED:
            return existing
        record = LocalProgressRecord(student_id=self.student_id, lesson_id=lesson_id, state=ProgressState.IN_PROGRESS)
        await self._apply(record)
        return record

    async def complete_lesson(
        self,
        lesson_id: str,
        score: float,
        total_questions: int,
        time_spent_seconds: int = 0,
    ) -> LocalProgressRecord:
        body = {"quizScore": score, "totalQuestions": total_questions, "timeSpentSeconds": time_spent_seconds}
        optimistic = LocalProgressRecord(
            student_id=self.student_id,
            lesson_id=lesson_id,
            quiz_score=score,
            total_questions=total_questions,
            time_spent_seconds=time_spent_seconds,
            is_completed=True,
            completed_at=utcnow(),
            state=ProgressState.COMPLETED_OPTIMISTIC,
        )

        if not self.monitor.get_online_status():
            await self._apply(optimistic)
            await self.queue.enqueue(completion_path(lesson_id), "POST", body)
            return optimistic

        if await self._has_queued_completion(lesson_id):
            # Completions for one lesson reach the server in the order they were made.
            logger.info("Completion queued behind pending action lesson=%s", lesson_id)
            await self._apply(optimistic)
            await self.queue.enqueue(completion_path(lesson_id), "POST", body)
            self.queue.schedule_replay()
            return optimistic

        try:
            response = await self.gateway.fetch_with_fallback(completion_path(lesson_id), method="POST", json=body)
        except httpx.HTTPError as exc:
            logger.warning("Lesson completion failed lesson=%s error=%s", lesson_id, exc)
            response = None

        if response is not None and response.headers.get(SOURCE_HEADER) == SOURCE_QUEUED:
            await self._apply(optimistic)
            return optimistic

        if response is not None and response.is_success and SOURCE_HEADER not in response.headers:
            server_record = _json_object(response)
            confirmed = self._confirmed_record(lesson_id, server_record, fallback=optimistic)
            await self._apply(confirmed)
            return confirmed

        if response is not None:
            logger.warning("Lesson completion not accepted lesson=%s status=%s", lesson_id, response.status_code)
        await self._apply(optimistic)
        await self.queue.enqueue(completion_path(lesson_id), "POST", body)
        return optimistic

    async def refresh_from_server(self) -> int:
        """Pull server progress; records confirm entries that have no outstanding optimistic record."""
        if not self.monitor.get_online_status():
            return 0
        response = await self.gateway.fetch_with_fallback("/lessons/student/progress")
        if not response.is_success or SOURCE_HEADER in response.headers:
            logger.info("Progress refresh skipped status=%s", response.status_code)
            return 0
        try:
            records = response.json()
        except ValueError:
            return 0
        if not isinstance(records, list):
            return 0
        updated = 0
        for record in records:
            if not isinstance(record, dict):
                continue
            lesson_id = _server_lesson_id(record)
            if lesson_id is None or not record.get("isCompleted"):
                continue
            current = self._entries.get(lesson_id)
            if current is not None and current.state == ProgressState.COMPLETED_OPTIMISTIC:
                continue
            await self._apply(self._confirmed_record(lesson_id, record))
            updated += 1
        return updated

    async def _has_queued_completion(self, lesson_id: str) -> bool:
        try:
            actions = await self.queue.pending()
        except StorageUnavailable as exc:
            logger.warning("Pending action lookup failed lesson=%s error=%s", lesson_id, exc)
            return False
        return any(lesson_id_from_url(action.url) == lesson_id for action in actions)

    async def _on_action_confirmed(self, action: PendingAction, body: Any) -> None:
        lesson_id = lesson_id_from_url(action.url)
        if lesson_id is None:
            return
        current = self._entries.get(lesson_id)
        server_record = body if isinstance(body, dict) else None
        confirmed = self._confirmed_record(lesson_id, server_record, fallback=current)
        await self._apply(confirmed)
        logger.info("Progress confirmed by replay lesson=%s", lesson_id)

    def _confirmed_record(
        self,
        lesson_id: str,
        server_record: dict | None,
        fallback: LocalProgressRecord | None = None,
    ) -> LocalProgressRecord:
        record = server_record or {}
        base = fallback or LocalProgressRecord(student_id=self.student_id, lesson_id=lesson_id)
        return base.model_copy(
            update={
                "quiz_score": record.get("quizScore", base.quiz_score),
                "total_questions": record.get("totalQuestions", base.total_questions),
                "time_spent_seconds": record.get("timeSpentSeconds", base.time_spent_seconds),
                "is_completed": True,
                "completed_at": _parse_datetime(record.get("completedAt")) or base.completed_at or utcnow(),
                "state": ProgressState.COMPLETED_CONFIRMED,
                "server_record": server_record,
                "updated_at": utcnow(),
            }
        )

    async def _apply(self, record: LocalProgressRecord) -> None:
        self._entries[record.lesson_id] = record
        try:
            await self.store.save_progress(record)
        except StorageUnavailable as exc:
            logger.warning("Progress persist failed lesson=%s error=%s", record.lesson_id, exc)
        await self._bus.publish(
            EVENT_PROGRESS_UPDATED,
            "progress",
            {"lesson_id": record.lesson_id, "state": record.state.value, "quiz_score": record.quiz_score},
        )


def _json_object(response: httpx.Response) -> dict | None:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None
