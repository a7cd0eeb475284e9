from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip; stored values are always UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CachedLesson(BaseModel):
    """Local mirror of a server lesson record. Unknown server fields are kept as-is."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(alias="_id")
    title: str = ""
    subject: str | None = None
    class_level: int | None = Field(default=None, alias="classLevel")
    language: str = "en"
    category: str | None = None
    content: str = ""
    quiz: dict[str, Any] | None = None
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class PendingAction(BaseModel):
    id: int | None = None
    url: str
    method: str = "POST"
    body: Any = None
    headers: dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    retries: int = 0
    last_error: str | None = None


class ProgressState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED_OPTIMISTIC = "completed_optimistic"
    COMPLETED_CONFIRMED = "completed_confirmed"


class LocalProgressRecord(BaseModel):
    student_id: str
    lesson_id: str
    quiz_score: float = 0
    total_questions: int = 0
    time_spent_seconds: int = 0
    is_completed: bool = False
    completed_at: datetime | None = None
    state: ProgressState = ProgressState.NOT_STARTED
    server_record: dict[str, Any] | None = None
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> str:
        return progress_key(self.student_id, self.lesson_id)

    @property
    def is_done(self) -> bool:
        return self.state in {ProgressState.COMPLETED_OPTIMISTIC, ProgressState.COMPLETED_CONFIRMED}


class CachedTranslation(BaseModel):
    source_text: str
    source_lang: str
    target_lang: str
    translated_text: str
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> str:
        return translation_key(self.source_text, self.source_lang, self.target_lang)

    def is_expired(self, ttl: timedelta, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return now - as_utc(self.created_at) > ttl


def progress_key(student_id: str, lesson_id: str) -> str:
    return f"{student_id}-{lesson_id}"


def translation_key(text: str, source: str, target: str) -> str:
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return f"{source}-{target}-{digest}"
