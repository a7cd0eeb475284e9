import asyncio
from collections import deque
from datetime import datetime, timezone

EVENT_CONNECTIVITY_CHANGED = "connectivity_changed"
EVENT_ACTION_QUEUED = "action_queued"
EVENT_ACTION_CONFIRMED = "action_confirmed"
EVENT_REPLAY_EXHAUSTED = "replay_exhausted"
EVENT_REPLAY_COMPLETED = "replay_completed"
EVENT_PROGRESS_UPDATED = "progress_updated"


class EventBus:
    def __init__(self, history_size: int = 200):
        self._subscribers: list[asyncio.Queue] = []
        self._history: deque[dict] = deque(maxlen=history_size)
        self._lock = asyncio.Lock()

    async def publish(self, event_type: str, source: str, data: dict) -> None:
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "type": event_type,
            "source": source,
            "data": data,
        }
        async with self._lock:
            self._history.append(event)
            subscribers = list(self._subscribers)
        for queue in subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                continue

    async def subscribe(self, replay_last: int = 10) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=500)
        async with self._lock:
            self._subscribers.append(queue)
            history = list(self._history)[-replay_last:] if replay_last > 0 else []
        for event in history:
            queue.put_nowait(event)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        async with self._lock:
            if queue in self._subscribers:
                self._subscribers.remove(queue)

    def history(self, event_type: str | None = None) -> list[dict]:
        if event_type is None:
            return list(self._history)
        return [event for event in self._history if event["type"] == event_type]

    def clear(self) -> None:
        self._history.clear()


event_bus = EventBus()
