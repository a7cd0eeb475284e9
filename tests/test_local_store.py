from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from edusync.core.errors import StorageUnavailable
from edusync.storage.models import LocalProgressRecord, PendingAction, ProgressState, utcnow
from edusync.storage.store import (
    FileLocalStore,
    InMemoryLocalStore,
    SqlLocalStore,
    open_local_store,
)

from conftest import lesson_fixture


def _make_store(backend: str, tmp_path: Path):
    if backend == "memory":
        return InMemoryLocalStore()
    if backend == "file":
        return FileLocalStore(tmp_path / "client")
    return SqlLocalStore(f"sqlite+aiosqlite:///{tmp_path / 'client' / 'edusync.db'}")


BACKENDS = ["memory", "file", "sql"]


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_lessons_upsert_and_filter(backend, tmp_path: Path):
    store = _make_store(backend, tmp_path)
    await store.init()
    try:
        saved = await store.save_lessons(
            [
                lesson_fixture("l1"),
                lesson_fixture("l2", subject="math", classLevel=7),
                lesson_fixture("l3", language="hi"),
            ]
        )
        assert saved == 3

        await store.save_lessons([lesson_fixture("l1", title="Renamed")])
        lesson = await store.get_lesson("l1")
        assert lesson is not None
        assert lesson.title == "Renamed"

        math = await store.get_lessons(subject="math")
        assert [item.id for item in math] == ["l2"]
        grade_six = await store.get_lessons(class_level=6)
        assert {item.id for item in grade_six} == {"l1", "l3"}
        hindi = await store.get_lessons(language="hi")
        assert [item.id for item in hindi] == ["l3"]
        assert await store.get_lesson("missing") is None
    finally:
        await store.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_pending_actions_keep_fifo_order_and_update_in_place(backend, tmp_path: Path):
    store = _make_store(backend, tmp_path)
    await store.init()
    try:
        first = await store.queue_pending_action(PendingAction(url="/lessons/l1/complete", body={"quizScore": 3}))
        second = await store.queue_pending_action(PendingAction(url="/lessons/l2/complete", body={"quizScore": 5}))
        assert first.id is not None and second.id is not None
        assert first.id < second.id

        updated = first.model_copy(update={"retries": 1, "last_error": "HTTP 500"})
        assert await store.update_pending_action(updated) is True

        actions = await store.get_pending_actions()
        assert [action.id for action in actions] == [first.id, second.id]
        assert actions[0].retries == 1
        assert actions[0].last_error == "HTTP 500"
        assert actions[1].body == {"quizScore": 5}

        await store.clear_pending_action(first.id)
        remaining = await store.get_pending_actions()
        assert [action.id for action in remaining] == [second.id]
        assert await store.update_pending_action(updated) is False
    finally:
        await store.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_progress_and_translations_survive_reopen(backend, tmp_path: Path):
    if backend == "memory":
        pytest.skip("memory store is not durable")
    store = _make_store(backend, tmp_path)
    await store.init()
    record = LocalProgressRecord(
        student_id="stu-1",
        lesson_id="l1",
        quiz_score=4,
        total_questions=5,
        is_completed=True,
        completed_at=utcnow(),
        state=ProgressState.COMPLETED_OPTIMISTIC,
    )
    await store.save_progress(record)
    await store.save_translation("Mouse", "en", "hi", "माउस")
    await store.queue_pending_action(PendingAction(url="/lessons/l1/complete", body={"quizScore": 4}))
    await store.aclose()

    reopened = _make_store(backend, tmp_path)
    await reopened.init()
    try:
        progress = await reopened.get_progress("stu-1")
        assert len(progress) == 1
        assert progress[0].state == ProgressState.COMPLETED_OPTIMISTIC
        assert progress[0].quiz_score == 4
        assert await reopened.get_translation("Mouse", "en", "hi") == "माउस"
        assert len(await reopened.get_pending_actions()) == 1
    finally:
        await reopened.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_expired_translation_is_a_miss(backend, tmp_path: Path):
    store = _make_store(backend, tmp_path)
    await store.init()
    try:
        await store.save_translation("Lesson", "en", "pa", "ਪਾਠ", created_at=utcnow() - timedelta(days=8))
        assert await store.get_translation("Lesson", "en", "pa") is None
        await store.save_translation("Lesson", "en", "pa", "ਪਾਠ")
        assert await store.get_translation("Lesson", "en", "pa") == "ਪਾਠ"
    finally:
        await store.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", BACKENDS)
async def test_clear_all_empties_every_collection(backend, tmp_path: Path):
    store = _make_store(backend, tmp_path)
    await store.init()
    try:
        await store.save_lessons([lesson_fixture("l1")])
        await store.save_progress(LocalProgressRecord(student_id="stu-1", lesson_id="l1"))
        await store.save_translation("Mouse", "en", "hi", "माउस")
        await store.queue_pending_action(PendingAction(url="/lessons/l1/complete"))

        await store.clear_all()

        assert await store.get_lessons() == []
        assert await store.get_progress("stu-1") == []
        assert await store.get_translation("Mouse", "en", "hi") is None
        assert await store.get_pending_actions() == []
    finally:
        await store.aclose()


@pytest.mark.asyncio
async def test_invalid_lesson_records_are_skipped():
    store = InMemoryLocalStore()
    saved = await store.save_lessons([lesson_fixture("l1"), {"title": "no id"}])
    assert saved == 1
    assert [lesson.id for lesson in await store.get_lessons()] == ["l1"]


@pytest.mark.asyncio
async def test_unknown_lesson_fields_are_preserved():
    store = InMemoryLocalStore()
    await store.save_lessons([lesson_fixture("l1", videoUrl="https://cdn.example/l1.mp4")])
    lesson = await store.get_lesson("l1")
    assert lesson.to_payload()["videoUrl"] == "https://cdn.example/l1.mp4"
    assert lesson.to_payload()["_id"] == "l1"


class _BrokenStore(InMemoryLocalStore):
    async def init(self) -> None:
        raise StorageUnavailable("disk full")


@pytest.mark.asyncio
async def test_open_local_store_degrades_to_memory():
    store, degraded = await open_local_store(_BrokenStore())
    assert degraded is True
    assert type(store) is InMemoryLocalStore
    action = await store.queue_pending_action(PendingAction(url="/lessons/l1/complete"))
    assert action.id == 1
