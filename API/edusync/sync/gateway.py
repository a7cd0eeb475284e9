from __future__ import annotations

import re
from enum import Enum
from typing import Any, Callable

import httpx

from edusync.core import sync_metrics
from edusync.core.connectivity import ConnectivityMonitor
from edusync.core.errors import AuthRequired, DeliveryFailed, NetworkUnreachable, StorageUnavailable
from edusync.core.logging import DOMAIN_GATEWAY, get_domain_logger
from edusync.core.resilience import CircuitBreaker, register_breaker
from edusync.core.settings import settings
from edusync.storage.models import PendingAction
from edusync.storage.store import LocalStore
from edusync.sync.queue import ActionQueueManager

logger = get_domain_logger(__name__, DOMAIN_GATEWAY)

SOURCE_HEADER = "x-edusync-source"
SOURCE_CACHE = "cache"
SOURCE_QUEUED = "queued"
SOURCE_OFFLINE = "offline"

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
_LESSON_LIST = re.compile(r"^/lessons/?$")
_LESSON_DETAIL = re.compile(r"^/lessons/(?!student/|teacher/)([^/]+)/?$")
_RESERVED_HEADERS = {"authorization", "content-length", "host"}

TokenProvider = Callable[[], str | None]


class RequestKind(str, Enum):
    LESSON_LIST = "lesson_list"
    LESSON_DETAIL = "lesson_detail"
    QUEUEABLE_WRITE = "queueable_write"
    OTHER = "other"


def classify_request(method: str, path: str, queueable_prefixes: list[str] | tuple[str, ...]) -> RequestKind:
    method = method.upper()
    if method == "GET":
        if _LESSON_LIST.match(path):
            return RequestKind.LESSON_LIST
        if _LESSON_DETAIL.match(path):
            return RequestKind.LESSON_DETAIL
        return RequestKind.OTHER
    if method in MUTATING_METHODS and any(path.startswith(prefix) for prefix in queueable_prefixes):
        return RequestKind.QUEUEABLE_WRITE
    return RequestKind.OTHER


def _int_or_none(value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _auxiliary_headers(headers: dict[str, str] | None) -> dict[str, str]:
    return {k: v for k, v in (headers or {}).items() if k.lower() not in _RESERVED_HEADERS}


class NetworkGateway:
    """Request wrapper that always hands the caller a response.

    Live calls are attempted while the monitor reports online; transport failures and the
    offline state are answered from the local store (reads), by queuing (lesson writes), or
    with a synthesized 503 (everything else).
    """

    def __init__(
        self,
        store: LocalStore,
        monitor: ConnectivityMonitor,
        queue: ActionQueueManager,
        *,
        client: httpx.AsyncClient,
        token_provider: TokenProvider | None = None,
        breaker: CircuitBreaker | None = None,
        queueable_prefixes: list[str] | None = None,
    ):
        self.store = store
        self.monitor = monitor
        self.queue = queue
        self.client = client
        self._token_provider = token_provider or (lambda: settings.auth_token or None)
        self.breaker = breaker or register_breaker(
            CircuitBreaker(
                name="gateway:live",
                failure_threshold=settings.gateway_breaker_failure_threshold,
                recovery_timeout_seconds=settings.gateway_breaker_recovery_seconds,
            )
        )
        self.queueable_prefixes = list(queueable_prefixes or settings.queueable_path_prefixes)

    def _auth_headers(self) -> dict[str, str]:
        token = self._token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def fetch_with_fallback(
        self,
        url: str,
        *,
        method: str = "GET",
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        method = method.upper()
        target = httpx.URL(url)
        kind = classify_request(method, target.path, self.queueable_prefixes)

        if not self.monitor.get_online_status():
            return await self._offline_response(kind, target, method, json, headers)
        if not self.breaker.can_execute():
            logger.info("Live call skipped, circuit open url=%s", target.path)
            return await self._offline_response(kind, target, method, json, headers)

        request_headers = {**_auxiliary_headers(headers), **self._auth_headers()}
        try:
            response = await self.client.request(method, url, json=json, headers=request_headers)
        except httpx.TransportError as exc:
            self.breaker.record_failure()
            logger.warning("Network request failed url=%s error=%s", target.path, exc)
            return await self._offline_response(kind, target, method, json, headers)
        self.breaker.record_success()

        if response.is_success and kind in {RequestKind.LESSON_LIST, RequestKind.LESSON_DETAIL}:
            await self._cache_read(kind, response)
        return response

    async def _cache_read(self, kind: RequestKind, response: httpx.Response) -> None:
        try:
            body = response.json()
        except ValueError:
            logger.warning("Lesson response was not JSON; skipping cache write")
            return
        lessons = body if kind == RequestKind.LESSON_LIST else [body]
        if not isinstance(lessons, list) or not all(isinstance(item, dict) for item in lessons):
            logger.warning("Unexpected lesson payload shape; skipping cache write")
            return
        try:
            saved = await self.store.save_lessons(lessons)
        except StorageUnavailable as exc:
            logger.warning("Lesson cache write failed error=%s", exc)
            return
        sync_metrics.record(sync_metrics.LESSON_CACHE_WRITES, saved)

    async def _offline_response(
        self,
        kind: RequestKind,
        target: httpx.URL,
        method: str,
        json: Any,
        headers: dict[str, str] | None,
    ) -> httpx.Response:
        sync_metrics.record(sync_metrics.OFFLINE_RESPONSES)
        request = self.client.build_request(method, str(target))

        if kind == RequestKind.LESSON_LIST:
            params = target.params
            raw_level = params.get("classLevel")
            class_level = _int_or_none(raw_level)
            lessons = []
            if class_level is None and raw_level:
                logger.info("Offline lesson list empty for non-numeric classLevel=%s", raw_level)
            else:
                try:
                    lessons = await self.store.get_lessons(
                        class_level=class_level,
                        subject=params.get("subject") or None,
                        language=params.get("language") or None,
                        category=params.get("category") or None,
                    )
                except StorageUnavailable as exc:
                    logger.warning("Offline lesson read failed error=%s", exc)
            payload = [lesson.to_payload() for lesson in lessons]
            return httpx.Response(200, json=payload, headers={SOURCE_HEADER: SOURCE_CACHE}, request=request)

        if kind == RequestKind.LESSON_DETAIL:
            lesson_id = _LESSON_DETAIL.match(target.path).group(1)
            try:
                lesson = await self.store.get_lesson(lesson_id)
            except StorageUnavailable as exc:
                logger.warning("Offline lesson read failed error=%s", exc)
                lesson = None
            if lesson is None:
                return httpx.Response(
                    404,
                    json={"message": "Lesson not available offline", "offline": True},
                    headers={SOURCE_HEADER: SOURCE_CACHE},
                    request=request,
                )
            return httpx.Response(200, json=lesson.to_payload(), headers={SOURCE_HEADER: SOURCE_CACHE}, request=request)

        if kind == RequestKind.QUEUEABLE_WRITE:
            action = await self.queue.enqueue(str(target), method, json, _auxiliary_headers(headers))
            if action is None:
                return httpx.Response(
                    503,
                    json={"message": "Offline and the action could not be saved", "offline": True},
                    headers={SOURCE_HEADER: SOURCE_OFFLINE},
                    request=request,
                )
            return httpx.Response(
                202,
                json={"message": "Queued for sync when online", "offline": True, "action_id": action.id},
                headers={SOURCE_HEADER: SOURCE_QUEUED},
                request=request,
            )

        return httpx.Response(
            503,
            json={"message": "Offline - please check your connection", "offline": True},
            headers={SOURCE_HEADER: SOURCE_OFFLINE},
            request=request,
        )

    async def send_action(self, action: PendingAction) -> httpx.Response:
        """Authenticated raw send used by replay. Raises instead of falling back."""
        token = self._token_provider()
        if not token:
            raise AuthRequired("No authentication token")
        headers = {**_auxiliary_headers(action.headers), "Authorization": f"Bearer {token}"}
        try:
            response = await self.client.request(action.method, action.url, json=action.body, headers=headers)
        except httpx.TransportError as exc:
            raise NetworkUnreachable(f"{action.method} {action.url}: {exc}") from exc
        if response.status_code in (401, 403):
            raise AuthRequired(f"HTTP {response.status_code}: credential rejected")
        if not response.is_success:
            raise DeliveryFailed(f"HTTP {response.status_code}: {response.reason_phrase}", response.status_code)
        return response

    async def aclose(self) -> None:
        await self.client.aclose()


def build_http_client(transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.server_base_url,
        timeout=settings.request_timeout_seconds,
        transport=transport,
    )
