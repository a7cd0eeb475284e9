from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from edusync.core.event_bus import event_bus

router = APIRouter(prefix="/events", tags=["events"])


@router.get("/stream")
async def stream_events():
    queue = await event_bus.subscribe(replay_last=20)

    async def generator():
        try:
            while True:
                event = await queue.get()
                yield f"event: {event['type']}\ndata: {json.dumps(event)}\n\n"
        except asyncio.CancelledError:
            return
        finally:
            await event_bus.unsubscribe(queue)

    return StreamingResponse(generator(), media_type="text/event-stream")


@router.get("/history")
async def event_history(event_type: str | None = None, limit: int = 50):
    events = event_bus.history(event_type)
    return {"events": events[-limit:] if limit > 0 else []}
