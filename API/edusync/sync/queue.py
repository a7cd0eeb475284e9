from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Coroutine

import httpx

from edusync.core import sync_metrics
from edusync.core.connectivity import ConnectivityMonitor
from edusync.core.errors import AuthRequired, ReplayExhausted, StorageUnavailable, SyncError
from edusync.core.event_bus import (
    EVENT_ACTION_CONFIRMED,
    EVENT_ACTION_QUEUED,
    EVENT_REPLAY_COMPLETED,
    EVENT_REPLAY_EXHAUSTED,
    EventBus,
    event_bus,
)
from edusync.core.logging import DOMAIN_SYNC, get_domain_logger
from edusync.core.resilience import backoff_delay
from edusync.core.settings import settings
from edusync.storage.models import PendingAction
from edusync.storage.store import LocalStore

logger = get_domain_logger(__name__, DOMAIN_SYNC)

EXHAUSTED_DROP = "drop"
EXHAUSTED_RETAIN = "retain"

ActionSender = Callable[[PendingAction], Awaitable[httpx.Response]]
ConfirmedCallback = Callable[[PendingAction, Any], Awaitable[None] | None]
ExhaustedCallback = Callable[[ReplayExhausted], Awaitable[None] | None]


@dataclass
class ReplayResult:
    skipped: str | None = None
    aborted: str | None = None
    attempted: list[int] = field(default_factory=list)
    confirmed: list[int] = field(default_factory=list)
    retrying: list[int] = field(default_factory=list)
    exhausted: list[ReplayExhausted] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "skipped": self.skipped,
            "aborted": self.aborted,
            "attempted": list(self.attempted),
            "confirmed": list(self.confirmed),
            "retrying": list(self.retrying),
            "exhausted": [notice.to_dict() for notice in self.exhausted],
        }


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


async def _maybe_await(value) -> None:
    if asyncio.iscoroutine(value):
        await value


class ActionQueueManager:
    """Durable queue of mutating requests made while offline, replayed in order on reconnect."""

    def __init__(
        self,
        store: LocalStore,
        monitor: ConnectivityMonitor,
        *,
        sender: ActionSender | None = None,
        bus: EventBus | None = None,
        max_retries: int | None = None,
        exhausted_policy: str | None = None,
        followup_enabled: bool | None = None,
        backoff_base_seconds: float | None = None,
        backoff_max_seconds: float | None = None,
        max_followup_passes: int | None = None,
    ):
        self.store = store
        self.monitor = monitor
        self._sender = sender
        self._bus = bus or event_bus
        self.max_retries = max_retries if max_retries is not None else settings.max_action_retries
        self.exhausted_policy = (exhausted_policy or settings.replay_exhausted_policy).strip().lower()
        self.followup_enabled = settings.replay_followup_enabled if followup_enabled is None else followup_enabled
        self.backoff_base_seconds = (
            backoff_base_seconds if backoff_base_seconds is not None else settings.replay_backoff_base_seconds
        )
        self.backoff_max_seconds = (
            backoff_max_seconds if backoff_max_seconds is not None else settings.replay_backoff_max_seconds
        )
        self.max_followup_passes = (
            max_followup_passes if max_followup_passes is not None else settings.replay_max_followup_passes
        )
        self._sync_in_progress = False
        self._followup_passes = 0
        self._tasks: set[asyncio.Task] = set()
        self._confirmed_callbacks: list[ConfirmedCallback] = []
        self._exhausted_callbacks: list[ExhaustedCallback] = []
        monitor.add_listener(self._on_connectivity_change)

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_in_progress

    def set_sender(self, sender: ActionSender) -> None:
        self._sender = sender

    def on_confirmed(self, callback: ConfirmedCallback) -> None:
        self._confirmed_callbacks.append(callback)

    def on_exhausted(self, callback: ExhaustedCallback) -> None:
        self._exhausted_callbacks.append(callback)

    async def enqueue(
        self,
        url: str,
        method: str,
        body: Any = None,
        headers: dict[str, str] | None = None,
    ) -> PendingAction | None:
        action = PendingAction(url=url, method=method.upper(), body=body, headers=dict(headers or {}))
        try:
            stored = await self.store.queue_pending_action(action)
        except StorageUnavailable as exc:
            sync_metrics.record(sync_metrics.ACTIONS_LOST)
            logger.error("Pending action lost, local store unavailable method=%s url=%s error=%s", method, url, exc)
            return None
        sync_metrics.record(sync_metrics.ACTIONS_QUEUED)
        logger.info("Queued offline action id=%s %s %s", stored.id, stored.method, stored.url)
        await self._bus.publish(
            EVENT_ACTION_QUEUED, "action_queue", {"action_id": stored.id, "method": stored.method, "url": stored.url}
        )
        return stored

    async def pending(self) -> list[PendingAction]:
        return await self.store.get_pending_actions()

    async def replay_all(self) -> ReplayResult:
        if self._sync_in_progress:
            return ReplayResult(skipped="in_progress")
        if not self.monitor.get_online_status():
            return ReplayResult(skipped="offline")
        if self._sender is None:
            logger.error("Replay requested but no sender is bound to the action queue")
            return ReplayResult(skipped="no_sender")

        self._sync_in_progress = True
        result = ReplayResult()
        sync_metrics.record(sync_metrics.REPLAY_PASSES)
        try:
            actions = await self.store.get_pending_actions()
            if actions:
                logger.info("Syncing offline data actions=%s", len(actions))
            for action in actions:
                if not self.monitor.get_online_status():
                    result.aborted = "offline"
                    break
                result.attempted.append(action.id)
                try:
                    response = await self._sender(action)
                except AuthRequired as exc:
                    result.aborted = "auth_required"
                    logger.warning("Replay aborted, credential missing or rejected action=%s error=%s", action.id, exc)
                    break
                except (SyncError, httpx.HTTPError) as exc:
                    await self._record_failure(action, exc, result)
                    continue
                await self.store.clear_pending_action(action.id)
                result.confirmed.append(action.id)
                sync_metrics.record(sync_metrics.ACTIONS_CONFIRMED)
                await self._notify_confirmed(action, _response_body(response))
        except StorageUnavailable as exc:
            result.aborted = "storage_unavailable"
            logger.error("Replay aborted, local store unavailable error=%s", exc)
        finally:
            self._sync_in_progress = False

        await self._bus.publish(EVENT_REPLAY_COMPLETED, "action_queue", result.to_dict())
        self._schedule_followup(result)
        return result

    async def _record_failure(self, action: PendingAction, exc: Exception, result: ReplayResult) -> None:
        attempts = action.retries + 1
        error_text = str(exc) or type(exc).__name__
        logger.warning("Failed to sync action id=%s attempt=%s error=%s", action.id, attempts, error_text)
        if attempts < self.max_retries or self.exhausted_policy == EXHAUSTED_RETAIN:
            updated = action.model_copy(update={"retries": attempts, "last_error": error_text})
            await self.store.update_pending_action(updated)
            result.retrying.append(action.id)
            sync_metrics.record(sync_metrics.ACTIONS_RETRIED)
            return
        await self.store.clear_pending_action(action.id)
        notice = ReplayExhausted(action, attempts=attempts, last_error=error_text)
        result.exhausted.append(notice)
        sync_metrics.record(sync_metrics.ACTIONS_EXHAUSTED)
        logger.warning("%s", notice)
        await self._bus.publish(EVENT_REPLAY_EXHAUSTED, "action_queue", notice.to_dict())
        for callback in list(self._exhausted_callbacks):
            try:
                await _maybe_await(callback(notice))
            except Exception:  # noqa: BLE001
                logger.exception("Exhausted-action callback failed action=%s", action.id)

    async def _notify_confirmed(self, action: PendingAction, body: Any) -> None:
        await self._bus.publish(
            EVENT_ACTION_CONFIRMED, "action_queue", {"action_id": action.id, "method": action.method, "url": action.url}
        )
        for callback in list(self._confirmed_callbacks):
            try:
                await _maybe_await(callback(action, body))
            except Exception:  # noqa: BLE001
                logger.exception("Confirmed-action callback failed action=%s", action.id)

    def _schedule_followup(self, result: ReplayResult) -> None:
        if not result.retrying or result.aborted:
            self._followup_passes = 0
            return
        if not self.followup_enabled or self._followup_passes >= self.max_followup_passes:
            return
        delay = backoff_delay(
            self._followup_passes, base_seconds=self.backoff_base_seconds, max_seconds=self.backoff_max_seconds
        )
        self._followup_passes += 1
        logger.info("Scheduling follow-up replay in %.1fs pass=%s", delay, self._followup_passes)
        self.schedule_replay(delay)

    def _on_connectivity_change(self, online: bool) -> None:
        if online:
            self._followup_passes = 0
            self.schedule_replay()

    def schedule_replay(self, delay: float = 0.0) -> asyncio.Task | None:
        return self.schedule_task(self._delayed_replay(delay))

    def schedule_task(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task | None:
        """Run `coro` as a tracked background task; dropped when no loop is running."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("No running event loop; background work deferred to the next explicit call")
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _delayed_replay(self, delay: float) -> ReplayResult:
        if delay > 0:
            await asyncio.sleep(delay)
        return await self.replay_all()

    async def wait_idle(self) -> None:
        """Wait for scheduled replay passes (and any follow-ups they schedule) to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
        self.monitor.remove_listener(self._on_connectivity_change)
