from __future__ import annotations

import re
from dataclasses import dataclass

import httpx

from edusync.core import sync_metrics
from edusync.core.connectivity import ConnectivityMonitor
from edusync.core.errors import StorageUnavailable, TranslationUnavailable
from edusync.core.logging import DOMAIN_TRANSLATION, get_domain_logger
from edusync.core.settings import settings
from edusync.data.translation_fallbacks import PHRASES, WORDS
from edusync.storage.store import LocalStore
from edusync.sync.gateway import NetworkGateway

logger = get_domain_logger(__name__, DOMAIN_TRANSLATION)

ORIGIN_IDENTITY = "identity"
ORIGIN_CACHE = "cache"
ORIGIN_NETWORK = "network"
ORIGIN_FALLBACK = "fallback"


@dataclass(frozen=True)
class TranslationResult:
    text: str
    origin: str

    @property
    def approximate(self) -> bool:
        return self.origin == ORIGIN_FALLBACK


def _alternation(terms) -> re.Pattern | None:
    ordered = sorted({term for term in terms if term}, key=len, reverse=True)
    if not ordered:
        return None
    body = "|".join(re.escape(term) for term in ordered)
    return re.compile(rf"(?<!\w)(?:{body})(?!\w)", re.IGNORECASE)


class RuleBasedTranslator:
    """Deterministic phrase/word substitution. Longest phrase wins; each pass is a single scan."""

    def __init__(self, phrases: dict[str, dict[str, str]] | None = None, words: dict[str, dict[str, str]] | None = None):
        self._tables: dict[str, list[tuple[re.Pattern, dict[str, str]]]] = {}
        phrases = PHRASES if phrases is None else phrases
        words = WORDS if words is None else words
        for pair in set(phrases) | set(words):
            passes = []
            for table in (phrases.get(pair, {}), words.get(pair, {})):
                lookup = {key.lower(): value for key, value in table.items()}
                pattern = _alternation(table)
                if pattern is not None:
                    passes.append((pattern, lookup))
            self._tables[pair] = passes

    def supports(self, source: str, target: str) -> bool:
        return f"{source}-{target}" in self._tables

    def translate(self, text: str, source: str, target: str) -> str:
        translated = text
        for pattern, lookup in self._tables.get(f"{source}-{target}", []):
            translated = pattern.sub(lambda match: lookup[match.group(0).lower()], translated)
        return translated


class TranslationCache:
    """Cache-first translation: local cache, then /translate, then rule-based substitution."""

    def __init__(
        self,
        store: LocalStore,
        gateway: NetworkGateway,
        monitor: ConnectivityMonitor,
        *,
        fallback: RuleBasedTranslator | None = None,
        cache_fallbacks: bool | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.monitor = monitor
        self.fallback = fallback or RuleBasedTranslator()
        self.cache_fallbacks = settings.translation_cache_fallbacks if cache_fallbacks is None else cache_fallbacks

    async def translate(self, text: str, source: str, target: str) -> str:
        return (await self.translate_detailed(text, source, target)).text

    async def translate_detailed(self, text: str, source: str, target: str) -> TranslationResult:
        if not text or source == target:
            return TranslationResult(text, ORIGIN_IDENTITY)

        cached = await self._lookup(text, source, target)
        if cached is not None:
            sync_metrics.record(sync_metrics.TRANSLATION_CACHE_HITS)
            return TranslationResult(cached, ORIGIN_CACHE)
        sync_metrics.record(sync_metrics.TRANSLATION_CACHE_MISSES)

        try:
            translated = await self._fetch_remote(text, source, target)
        except TranslationUnavailable as exc:
            logger.info("Translation unavailable, using local substitution %s-%s: %s", source, target, exc)
        else:
            await self._remember(text, source, target, translated)
            return TranslationResult(translated, ORIGIN_NETWORK)

        sync_metrics.record(sync_metrics.TRANSLATION_FALLBACKS)
        approximation = self.fallback.translate(text, source, target)
        if self.cache_fallbacks:
            await self._remember(text, source, target, approximation)
        return TranslationResult(approximation, ORIGIN_FALLBACK)

    async def _lookup(self, text: str, source: str, target: str) -> str | None:
        try:
            return await self.store.get_translation(text, source, target)
        except StorageUnavailable as exc:
            logger.warning("Translation cache read failed: %s", exc)
            return None

    async def _remember(self, text: str, source: str, target: str, translated: str) -> None:
        try:
            await self.store.save_translation(text, source, target, translated)
        except StorageUnavailable as exc:
            logger.warning("Translation cache write failed: %s", exc)

    async def _fetch_remote(self, text: str, source: str, target: str) -> str:
        if not self.monitor.get_online_status():
            raise TranslationUnavailable("offline")
        try:
            response = await self.gateway.fetch_with_fallback(
                "/translate", method="POST", json={"q": text, "source": source, "target": target}
            )
        except httpx.HTTPError as exc:
            raise TranslationUnavailable(str(exc)) from exc
        if response.status_code != 200:
            raise TranslationUnavailable(f"HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise TranslationUnavailable("malformed response") from exc
        translated = data.get("translatedText") if isinstance(data, dict) else None
        if not isinstance(translated, str) or not translated.strip():
            raise TranslationUnavailable("response missing translatedText")
        return translated
