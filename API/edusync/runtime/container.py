from __future__ import annotations

import httpx

from edusync.core.auth import CredentialStore
from edusync.core.connectivity import ConnectivityMonitor
from edusync.core.event_bus import EVENT_CONNECTIVITY_CHANGED, EventBus, event_bus
from edusync.core.logging import DOMAIN_SYNC, get_domain_logger
from edusync.storage.store import LocalStore, build_local_store, describe_store, open_local_store
from edusync.sync.gateway import NetworkGateway, build_http_client
from edusync.sync.progress import ProgressReconciler
from edusync.sync.queue import ActionQueueManager
from edusync.sync.translation import TranslationCache

logger = get_domain_logger(__name__, DOMAIN_SYNC)


class SyncRuntime:
    """Owns one wired instance of every sync component for the agent process."""

    def __init__(
        self,
        store: LocalStore,
        monitor: ConnectivityMonitor,
        credentials: CredentialStore,
        client: httpx.AsyncClient,
        bus: EventBus | None = None,
    ):
        self.store = store
        self.monitor = monitor
        self.credentials = credentials
        self.bus = bus or event_bus
        self.degraded = False
        self._started = False
        self.queue = ActionQueueManager(store, monitor, bus=self.bus)
        self.gateway = NetworkGateway(
            store, monitor, self.queue, client=client, token_provider=lambda: self.credentials.token
        )
        self.queue.set_sender(self.gateway.send_action)
        self.translations = TranslationCache(store, self.gateway, monitor)
        self.progress = ProgressReconciler(
            store, self.gateway, self.queue, monitor, lambda: self.credentials.student_id, bus=self.bus
        )
        monitor.add_listener(self._on_connectivity_change)

    @property
    def started(self) -> bool:
        return self._started

    def _bind_store(self, store: LocalStore) -> None:
        self.store = store
        for component in (self.queue, self.gateway, self.translations, self.progress):
            component.store = store

    async def start(self) -> None:
        if self._started:
            return
        store, degraded = await open_local_store(self.store)
        if store is not self.store:
            self._bind_store(store)
        self.degraded = degraded
        restored = await self.progress.load()
        self._started = True
        logger.info(
            "Sync runtime started online=%s store=%s restored_progress=%s",
            self.monitor.get_online_status(),
            describe_store(self.store, self.degraded),
            restored,
        )
        if self.monitor.get_online_status():
            self.queue.schedule_replay()

    async def update_session(self, token: str | None = None, student_id: str | None = None) -> bool:
        """Adopt new credentials; progress is reloaded when the student changes."""
        previous = self.credentials.student_id
        self.credentials.set(token=token, student_id=student_id)
        if self.credentials.student_id == previous:
            return False
        self.progress.reset()
        restored = await self.progress.load()
        logger.info("Session switched student restored_progress=%s", restored)
        return True

    async def logout(self) -> None:
        """Forget the signed-in student and wipe every local collection."""
        self.credentials.clear()
        self.progress.reset()
        await self.store.clear_all()
        logger.info("Local data cleared on logout")

    async def status(self) -> dict:
        pending = await self.queue.pending()
        return {
            "online": self.monitor.get_online_status(),
            "sync_in_progress": self.queue.sync_in_progress,
            "pending_actions": len(pending),
            "storage": describe_store(self.store, self.degraded),
            "session": self.credentials.describe(),
        }

    def _on_connectivity_change(self, online: bool) -> None:
        if online:
            self.gateway.breaker.reset()
        self.queue.schedule_task(self.bus.publish(EVENT_CONNECTIVITY_CHANGED, "connectivity", {"online": online}))

    async def aclose(self) -> None:
        self.monitor.remove_listener(self._on_connectivity_change)
        await self.queue.aclose()
        await self.gateway.aclose()
        await self.store.aclose()
        self._started = False


def create_runtime(
    transport: httpx.AsyncBaseTransport | None = None,
    store: LocalStore | None = None,
    online: bool | None = None,
    credentials: CredentialStore | None = None,
) -> SyncRuntime:
    return SyncRuntime(
        store=store or build_local_store(),
        monitor=ConnectivityMonitor(online),
        credentials=credentials or CredentialStore(),
        client=build_http_client(transport),
    )


_runtime: SyncRuntime | None = None


def get_runtime() -> SyncRuntime:
    global _runtime
    if _runtime is None:
        _runtime = create_runtime()
    return _runtime


def set_runtime(runtime: SyncRuntime | None) -> None:
    global _runtime
    _runtime = runtime
