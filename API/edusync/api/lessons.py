from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from edusync.runtime.container import SyncRuntime, get_runtime
from edusync.schemas.sync import CompleteLessonRequest, ProgressEntryResponse
from edusync.storage.models import LocalProgressRecord, ProgressState
from edusync.sync.gateway import SOURCE_HEADER

router = APIRouter(tags=["lessons"])


def _passthrough(response: httpx.Response) -> Response:
    headers = {}
    if SOURCE_HEADER in response.headers:
        headers[SOURCE_HEADER] = response.headers[SOURCE_HEADER]
    return Response(
        content=response.content,
        status_code=response.status_code,
        media_type=response.headers.get("content-type", "application/json"),
        headers=headers,
    )


def _entry(record: LocalProgressRecord) -> ProgressEntryResponse:
    return ProgressEntryResponse(
        lesson_id=record.lesson_id,
        state=record.state.value,
        quiz_score=record.quiz_score,
        total_questions=record.total_questions,
        time_spent_seconds=record.time_spent_seconds,
        is_completed=record.is_completed,
        completed_at=record.completed_at.isoformat() if record.completed_at else None,
        confirmed=record.state == ProgressState.COMPLETED_CONFIRMED,
    )


@router.get("/lessons")
async def list_lessons(request: Request, runtime: SyncRuntime = Depends(get_runtime)):
    url = httpx.URL("/lessons", params=list(request.query_params.multi_items()))
    return _passthrough(await runtime.gateway.fetch_with_fallback(str(url)))


@router.get("/lessons/{lesson_id}")
async def get_lesson(lesson_id: str, runtime: SyncRuntime = Depends(get_runtime)):
    return _passthrough(await runtime.gateway.fetch_with_fallback(f"/lessons/{lesson_id}"))


@router.post("/lessons/{lesson_id}/start", response_model=ProgressEntryResponse)
async def start_lesson(lesson_id: str, runtime: SyncRuntime = Depends(get_runtime)):
    return _entry(await runtime.progress.start_lesson(lesson_id))


@router.post("/lessons/{lesson_id}/complete", response_model=ProgressEntryResponse)
async def complete_lesson(
    lesson_id: str,
    payload: CompleteLessonRequest,
    runtime: SyncRuntime = Depends(get_runtime),
):
    record = await runtime.progress.complete_lesson(
        lesson_id, payload.quiz_score, payload.total_questions, payload.time_spent_seconds
    )
    return _entry(record)


@router.get("/progress")
async def list_progress(refresh: bool = False, runtime: SyncRuntime = Depends(get_runtime)):
    refreshed = await runtime.progress.refresh_from_server() if refresh else 0
    return {"refreshed": refreshed, "entries": [_entry(record) for record in runtime.progress.entries()]}


@router.get("/progress/{lesson_id}", response_model=ProgressEntryResponse)
async def get_progress(lesson_id: str, runtime: SyncRuntime = Depends(get_runtime)):
    record = runtime.progress.get_entry(lesson_id)
    if record is None:
        raise HTTPException(status_code=404, detail="No local progress for this lesson")
    return _entry(record)
