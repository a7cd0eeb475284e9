from __future__ import annotations

import itertools
import json
import os
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Iterable

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from edusync.core.errors import StorageUnavailable
from edusync.core.logging import DOMAIN_STORAGE, get_domain_logger
from edusync.core.settings import settings
from edusync.storage.models import (
    CachedLesson,
    CachedTranslation,
    LocalProgressRecord,
    PendingAction,
    ProgressState,
    as_utc,
    progress_key,
    translation_key,
    utcnow,
)
from edusync.storage.tables import Base, LessonRow, PendingActionRow, ProgressRow, TranslationRow

logger = get_domain_logger(__name__, DOMAIN_STORAGE)

COLLECTIONS = ("lessons", "progress", "translations", "pending_actions")


def _coerce_lessons(lessons: Iterable[CachedLesson | dict]) -> list[CachedLesson]:
    out: list[CachedLesson] = []
    for item in lessons:
        if isinstance(item, CachedLesson):
            out.append(item)
            continue
        try:
            out.append(CachedLesson.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping lesson record without a usable id: %s", exc.errors()[:1])
    return out


def _lesson_matches(
    lesson: CachedLesson,
    class_level: int | None,
    subject: str | None,
    language: str | None,
    category: str | None,
) -> bool:
    if class_level is not None and lesson.class_level != class_level:
        return False
    if subject is not None and lesson.subject != subject:
        return False
    if language is not None and lesson.language != language:
        return False
    if category is not None and lesson.category != category:
        return False
    return True


class LocalStore(ABC):
    """Durable client-side mirror: lessons, progress, translations and the pending-action queue.

    Every operation is async and atomic per record. Lessons and translations are only ever
    written as whole-record upserts.
    """

    backend_name: str = "abstract"

    def __init__(self, translation_ttl: timedelta | None = None):
        self.translation_ttl = translation_ttl or timedelta(days=settings.translation_cache_ttl_days)

    @abstractmethod
    async def init(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def save_lessons(self, lessons: Iterable[CachedLesson | dict]) -> int:
        raise NotImplementedError

    @abstractmethod
    async def get_lessons(
        self,
        class_level: int | None = None,
        subject: str | None = None,
        language: str | None = None,
        category: str | None = None,
    ) -> list[CachedLesson]:
        raise NotImplementedError

    @abstractmethod
    async def get_lesson(self, lesson_id: str) -> CachedLesson | None:
        raise NotImplementedError

    @abstractmethod
    async def save_progress(self, record: LocalProgressRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get_progress(self, student_id: str) -> list[LocalProgressRecord]:
        raise NotImplementedError

    @abstractmethod
    async def put_translation(self, entry: CachedTranslation) -> None:
        raise NotImplementedError

    @abstractmethod
    async def find_translation(self, key: str) -> CachedTranslation | None:
        raise NotImplementedError

    @abstractmethod
    async def queue_pending_action(self, action: PendingAction) -> PendingAction:
        raise NotImplementedError

    @abstractmethod
    async def get_pending_actions(self) -> list[PendingAction]:
        raise NotImplementedError

    @abstractmethod
    async def update_pending_action(self, action: PendingAction) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def clear_pending_action(self, action_id: int) -> None:
        raise NotImplementedError

    @abstractmethod
    async def clear_all(self) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None

    async def save_translation(
        self,
        text: str,
        source: str,
        target: str,
        translated: str,
        created_at: datetime | None = None,
    ) -> None:
        entry = CachedTranslation(
            source_text=text,
            source_lang=source,
            target_lang=target,
            translated_text=translated,
            created_at=created_at or utcnow(),
        )
        await self.put_translation(entry)

    async def get_translation(self, text: str, source: str, target: str) -> str | None:
        entry = await self.find_translation(translation_key(text, source, target))
        if entry is None or entry.is_expired(self.translation_ttl):
            return None
        return entry.translated_text


class InMemoryLocalStore(LocalStore):
    """Process-local store. Also the degraded mode when persistence cannot be opened."""

    backend_name = "memory"

    def __init__(self, translation_ttl: timedelta | None = None):
        super().__init__(translation_ttl)
        self._lessons: dict[str, CachedLesson] = {}
        self._progress: dict[str, LocalProgressRecord] = {}
        self._translations: dict[str, CachedTranslation] = {}
        self._actions: dict[int, PendingAction] = {}
        self._ids = itertools.count(1)

    async def init(self) -> None:
        return None

    async def save_lessons(self, lessons: Iterable[CachedLesson | dict]) -> int:
        records = _coerce_lessons(lessons)
        for lesson in records:
            self._lessons[lesson.id] = lesson.model_copy(deep=True)
        return len(records)

    async def get_lessons(self, class_level=None, subject=None, language=None, category=None) -> list[CachedLesson]:
        return [
            lesson.model_copy(deep=True)
            for lesson_id, lesson in sorted(self._lessons.items())
            if _lesson_matches(lesson, class_level, subject, language, category)
        ]

    async def get_lesson(self, lesson_id: str) -> CachedLesson | None:
        lesson = self._lessons.get(lesson_id)
        return lesson.model_copy(deep=True) if lesson else None

    async def save_progress(self, record: LocalProgressRecord) -> None:
        self._progress[record.key] = record.model_copy(deep=True)

    async def get_progress(self, student_id: str) -> list[LocalProgressRecord]:
        return [r.model_copy(deep=True) for r in self._progress.values() if r.student_id == student_id]

    async def put_translation(self, entry: CachedTranslation) -> None:
        self._translations[entry.key] = entry.model_copy()

    async def find_translation(self, key: str) -> CachedTranslation | None:
        entry = self._translations.get(key)
        return entry.model_copy() if entry else None

    async def queue_pending_action(self, action: PendingAction) -> PendingAction:
        stored = action.model_copy(update={"id": next(self._ids)}, deep=True)
        self._actions[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get_pending_actions(self) -> list[PendingAction]:
        return [self._actions[key].model_copy(deep=True) for key in sorted(self._actions)]

    async def update_pending_action(self, action: PendingAction) -> bool:
        if action.id not in self._actions:
            return False
        self._actions[action.id] = action.model_copy(deep=True)
        return True

    async def clear_pending_action(self, action_id: int) -> None:
        self._actions.pop(action_id, None)

    async def clear_all(self) -> None:
        self._lessons.clear()
        self._progress.clear()
        self._translations.clear()
        self._actions.clear()


class FileLocalStore(LocalStore):
    """One JSON document per collection; each write replaces the whole file atomically.

    File I/O runs inline on the event loop, so a read-modify-write never interleaves with
    another store operation.
    """

    backend_name = "file"

    def __init__(self, base_dir: Path, translation_ttl: timedelta | None = None):
        super().__init__(translation_ttl)
        self.base = Path(base_dir)
        self.files = {name: self.base / f"{name}.json" for name in COLLECTIONS}
        self._ready = False

    async def init(self) -> None:
        if self._ready:
            return
        try:
            self.base.mkdir(parents=True, exist_ok=True)
            for name, path in self.files.items():
                if not path.exists():
                    self._write_json(path, self._empty(name))
                else:
                    self._read_json(path)
        except (OSError, ValueError) as exc:
            raise StorageUnavailable(f"Cannot open local store at {self.base}: {exc}") from exc
        self._ready = True

    @staticmethod
    def _empty(name: str) -> dict:
        if name == "pending_actions":
            return {"next_id": 1, "items": {}}
        return {}

    @staticmethod
    def _read_json(path: Path) -> dict:
        if not path.exists():
            return {}
        return json.loads(path.read_text(encoding="utf-8"))

    @staticmethod
    def _write_json(path: Path, payload: dict) -> None:
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, path)

    async def _load(self, name: str) -> dict:
        if not self._ready:
            await self.init()
        try:
            return self._read_json(self.files[name]) or self._empty(name)
        except (OSError, ValueError) as exc:
            raise StorageUnavailable(f"Cannot read {name}: {exc}") from exc

    def _save(self, name: str, payload: dict) -> None:
        try:
            self._write_json(self.files[name], payload)
        except OSError as exc:
            raise StorageUnavailable(f"Cannot write {name}: {exc}") from exc

    async def save_lessons(self, lessons: Iterable[CachedLesson | dict]) -> int:
        records = _coerce_lessons(lessons)
        existing = await self._load("lessons")
        for lesson in records:
            existing[lesson.id] = lesson.to_payload()
        self._save("lessons", existing)
        return len(records)

    async def get_lessons(self, class_level=None, subject=None, language=None, category=None) -> list[CachedLesson]:
        payload = await self._load("lessons")
        lessons = [CachedLesson.model_validate(payload[key]) for key in sorted(payload)]
        return [lesson for lesson in lessons if _lesson_matches(lesson, class_level, subject, language, category)]

    async def get_lesson(self, lesson_id: str) -> CachedLesson | None:
        payload = (await self._load("lessons")).get(lesson_id)
        return CachedLesson.model_validate(payload) if payload else None

    async def save_progress(self, record: LocalProgressRecord) -> None:
        existing = await self._load("progress")
        existing[record.key] = record.model_dump(mode="json")
        self._save("progress", existing)

    async def get_progress(self, student_id: str) -> list[LocalProgressRecord]:
        payload = await self._load("progress")
        records = [LocalProgressRecord.model_validate(item) for item in payload.values()]
        return [record for record in records if record.student_id == student_id]

    async def put_translation(self, entry: CachedTranslation) -> None:
        existing = await self._load("translations")
        existing[entry.key] = entry.model_dump(mode="json")
        self._save("translations", existing)

    async def find_translation(self, key: str) -> CachedTranslation | None:
        payload = (await self._load("translations")).get(key)
        return CachedTranslation.model_validate(payload) if payload else None

    async def queue_pending_action(self, action: PendingAction) -> PendingAction:
        queue = await self._load("pending_actions")
        action_id = int(queue.get("next_id", 1))
        stored = action.model_copy(update={"id": action_id})
        queue["items"][str(action_id)] = stored.model_dump(mode="json")
        queue["next_id"] = action_id + 1
        self._save("pending_actions", queue)
        return stored

    async def get_pending_actions(self) -> list[PendingAction]:
        items = (await self._load("pending_actions"))["items"]
        return [PendingAction.model_validate(items[key]) for key in sorted(items, key=int)]

    async def update_pending_action(self, action: PendingAction) -> bool:
        queue = await self._load("pending_actions")
        if str(action.id) not in queue["items"]:
            return False
        queue["items"][str(action.id)] = action.model_dump(mode="json")
        self._save("pending_actions", queue)
        return True

    async def clear_pending_action(self, action_id: int) -> None:
        queue = await self._load("pending_actions")
        if queue["items"].pop(str(action_id), None) is not None:
            self._save("pending_actions", queue)

    async def clear_all(self) -> None:
        if not self._ready:
            await self.init()
        for name in COLLECTIONS:
            self._save(name, self._empty(name))


class SqlLocalStore(LocalStore):
    """SQLAlchemy-backed store (SQLite via aiosqlite by default), one transaction per operation."""

    backend_name = "sql"

    def __init__(self, database_url: str, translation_ttl: timedelta | None = None):
        super().__init__(translation_ttl)
        self.database_url = database_url
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    def _ensure_parent_dir(self) -> None:
        url = make_url(self.database_url)
        if url.get_backend_name() != "sqlite":
            return
        database = url.database or ""
        if database and database != ":memory:":
            Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    async def init(self) -> None:
        if self._sessions is not None:
            return
        engine = None
        try:
            self._ensure_parent_dir()
            engine = create_async_engine(self.database_url)
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError, ImportError) as exc:
            if engine is not None:
                await engine.dispose()
            raise StorageUnavailable(f"Cannot open local store at {self.database_url}: {exc}") from exc
        self._engine = engine
        self._sessions = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        logger.info("Local store ready backend=sql url=%s", self.database_url)

    @asynccontextmanager
    async def _transaction(self):
        if self._sessions is None:
            await self.init()
        try:
            async with self._sessions() as session, session.begin():
                yield session
        except SQLAlchemyError as exc:
            raise StorageUnavailable(str(exc)) from exc

    async def aclose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessions = None

    @staticmethod
    def _lesson_row(lesson: CachedLesson) -> LessonRow:
        return LessonRow(
            id=lesson.id,
            subject=lesson.subject,
            class_level=lesson.class_level,
            language=lesson.language,
            category=lesson.category,
            payload=lesson.to_payload(),
            cached_at=utcnow(),
        )

    @staticmethod
    def _progress_from_row(row: ProgressRow) -> LocalProgressRecord:
        return LocalProgressRecord(
            student_id=row.student_id,
            lesson_id=row.lesson_id,
            quiz_score=row.quiz_score,
            total_questions=row.total_questions,
            time_spent_seconds=row.time_spent_seconds,
            is_completed=row.is_completed,
            completed_at=as_utc(row.completed_at) if row.completed_at else None,
            state=ProgressState(row.state),
            server_record=row.server_record,
            updated_at=as_utc(row.updated_at),
        )

    @staticmethod
    def _action_from_row(row: PendingActionRow) -> PendingAction:
        return PendingAction(
            id=row.id,
            url=row.url,
            method=row.method,
            body=row.body,
            headers=row.headers or {},
            created_at=as_utc(row.created_at),
            retries=row.retries,
            last_error=row.last_error,
        )

    async def save_lessons(self, lessons: Iterable[CachedLesson | dict]) -> int:
        records = _coerce_lessons(lessons)
        async with self._transaction() as session:
            for lesson in records:
                await session.merge(self._lesson_row(lesson))
        return len(records)

    async def get_lessons(self, class_level=None, subject=None, language=None, category=None) -> list[CachedLesson]:
        stmt = select(LessonRow).order_by(LessonRow.id)
        if class_level is not None:
            stmt = stmt.where(LessonRow.class_level == class_level)
        if subject is not None:
            stmt = stmt.where(LessonRow.subject == subject)
        if language is not None:
            stmt = stmt.where(LessonRow.language == language)
        if category is not None:
            stmt = stmt.where(LessonRow.category == category)
        async with self._transaction() as session:
            rows = (await session.scalars(stmt)).all()
            return [CachedLesson.model_validate(row.payload) for row in rows]

    async def get_lesson(self, lesson_id: str) -> CachedLesson | None:
        async with self._transaction() as session:
            row = await session.get(LessonRow, lesson_id)
            return CachedLesson.model_validate(row.payload) if row else None

    async def save_progress(self, record: LocalProgressRecord) -> None:
        row = ProgressRow(
            key=record.key,
            student_id=record.student_id,
            lesson_id=record.lesson_id,
            quiz_score=record.quiz_score,
            total_questions=record.total_questions,
            time_spent_seconds=record.time_spent_seconds,
            is_completed=record.is_completed,
            completed_at=record.completed_at,
            state=record.state.value,
            server_record=record.server_record,
            updated_at=record.updated_at,
        )
        async with self._transaction() as session:
            await session.merge(row)

    async def get_progress(self, student_id: str) -> list[LocalProgressRecord]:
        stmt = select(ProgressRow).where(ProgressRow.student_id == student_id).order_by(ProgressRow.lesson_id)
        async with self._transaction() as session:
            rows = (await session.scalars(stmt)).all()
            return [self._progress_from_row(row) for row in rows]

    async def put_translation(self, entry: CachedTranslation) -> None:
        row = TranslationRow(
            key=entry.key,
            source_text=entry.source_text,
            source_lang=entry.source_lang,
            target_lang=entry.target_lang,
            translated_text=entry.translated_text,
            created_at=entry.created_at,
        )
        async with self._transaction() as session:
            await session.merge(row)

    async def find_translation(self, key: str) -> CachedTranslation | None:
        async with self._transaction() as session:
            row = await session.get(TranslationRow, key)
            if row is None:
                return None
            return CachedTranslation(
                source_text=row.source_text,
                source_lang=row.source_lang,
                target_lang=row.target_lang,
                translated_text=row.translated_text,
                created_at=as_utc(row.created_at),
            )

    async def queue_pending_action(self, action: PendingAction) -> PendingAction:
        row = PendingActionRow(
            url=action.url,
            method=action.method,
            body=action.body,
            headers=dict(action.headers),
            created_at=action.created_at,
            retries=action.retries,
            last_error=action.last_error,
        )
        async with self._transaction() as session:
            session.add(row)
            await session.flush()
            return self._action_from_row(row)

    async def get_pending_actions(self) -> list[PendingAction]:
        async with self._transaction() as session:
            rows = (await session.scalars(select(PendingActionRow).order_by(PendingActionRow.id))).all()
            return [self._action_from_row(row) for row in rows]

    async def update_pending_action(self, action: PendingAction) -> bool:
        if action.id is None:
            return False
        async with self._transaction() as session:
            row = await session.get(PendingActionRow, action.id)
            if row is None:
                return False
            row.url = action.url
            row.method = action.method
            row.body = action.body
            row.headers = dict(action.headers)
            row.retries = action.retries
            row.last_error = action.last_error
            return True

    async def clear_pending_action(self, action_id: int) -> None:
        async with self._transaction() as session:
            await session.execute(delete(PendingActionRow).where(PendingActionRow.id == action_id))

    async def clear_all(self) -> None:
        async with self._transaction() as session:
            for table in (LessonRow, ProgressRow, TranslationRow, PendingActionRow):
                await session.execute(delete(table))


def build_local_store(backend: str | None = None) -> LocalStore:
    backend = (backend or settings.local_store_backend).strip().lower()
    if backend == "memory":
        return InMemoryLocalStore()
    if backend == "file":
        return FileLocalStore(Path(settings.local_store_dir))
    if backend != "sql":
        logger.warning("Unknown LOCAL_STORE_BACKEND=%s; falling back to sql", backend)
    return SqlLocalStore(settings.local_store_url)


async def open_local_store(store: LocalStore | None = None) -> tuple[LocalStore, bool]:
    """Initialise the configured store. Returns (store, degraded); degraded means memory-only."""
    store = store or build_local_store()
    try:
        await store.init()
        return store, False
    except StorageUnavailable as exc:
        logger.warning("Local persistence unavailable, operating in memory-only mode: %s", exc)
        fallback = InMemoryLocalStore(store.translation_ttl)
        await fallback.init()
        return fallback, True


def describe_store(store: LocalStore, degraded: bool) -> dict[str, Any]:
    return {"backend": store.backend_name, "degraded": degraded}
