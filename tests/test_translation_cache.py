from __future__ import annotations

from datetime import timedelta

import pytest

from edusync.core import sync_metrics
from edusync.storage.models import utcnow
from edusync.sync.translation import RuleBasedTranslator


def test_rule_based_prefers_longest_phrase_then_words():
    translator = RuleBasedTranslator()
    assert translator.translate("Parts of a Mouse", "en", "hi") == "माउस के भाग"
    assert translator.translate("Open the FOLDER on the desktop", "en", "hi") == "Open the फोल्डर on the डेस्कटॉप"
    assert translator.translate("Mouse and keyboard", "en", "pa") == "ਮਾਊਸ and ਕੀਬੋਰਡ"


def test_rule_based_matches_whole_words_only():
    translator = RuleBasedTranslator()
    assert translator.translate("classroom files", "en", "hi") == "classroom files"


def test_rule_based_unknown_pair_returns_input():
    translator = RuleBasedTranslator()
    assert translator.supports("en", "fr") is False
    assert translator.translate("computer", "en", "fr") == "computer"


def test_substitution_is_single_pass():
    translator = RuleBasedTranslator(phrases={"en-xx": {"a": "b", "b": "c"}}, words={})
    assert translator.translate("a b", "en", "xx") == "b c"


@pytest.mark.asyncio
async def test_identity_cases_skip_everything(runtime, server):
    assert await runtime.translations.translate("", "en", "hi") == ""
    assert await runtime.translations.translate("Mouse", "en", "en") == "Mouse"
    assert server.calls("POST", "/translate") == 0


@pytest.mark.asyncio
async def test_second_lookup_is_served_from_cache(runtime, server):
    server.translations[("Mouse", "hi")] = "माउस"

    first = await runtime.translations.translate_detailed("Mouse", "en", "hi")
    second = await runtime.translations.translate_detailed("Mouse", "en", "hi")

    assert first.text == second.text == "माउस"
    assert first.origin == "network"
    assert second.origin == "cache"
    assert server.calls("POST", "/translate") == 1
    metrics = sync_metrics.get_sync_metrics()
    assert metrics["counters"][sync_metrics.TRANSLATION_CACHE_HITS] == 1
    assert metrics["counters"][sync_metrics.TRANSLATION_CACHE_MISSES] == 1


@pytest.mark.asyncio
async def test_offline_uses_fallback_and_does_not_cache_it(runtime, server):
    runtime.monitor.handle_offline()

    result = await runtime.translations.translate_detailed("Left Button", "en", "hi")

    assert result.text == "बायां बटन"
    assert result.approximate is True
    assert await runtime.store.get_translation("Left Button", "en", "hi") is None

    runtime.monitor.handle_online()
    online = await runtime.translations.translate_detailed("Left Button", "en", "hi")
    assert online.origin == "network"
    assert server.calls("POST", "/translate") == 1


@pytest.mark.asyncio
async def test_expired_entry_is_refetched(runtime, server):
    await runtime.store.save_translation("Lesson", "en", "pa", "old", created_at=utcnow() - timedelta(days=30))
    server.translations[("Lesson", "pa")] = "ਪਾਠ"

    assert await runtime.translations.translate("Lesson", "en", "pa") == "ਪਾਠ"
    assert server.calls("POST", "/translate") == 1


@pytest.mark.asyncio
async def test_server_error_falls_back(runtime, server):
    server.fail_paths["/translate"] = 500
    result = await runtime.translations.translate_detailed("computer", "en", "hi")
    assert result.text == "कंप्यूटर"
    assert result.origin == "fallback"
