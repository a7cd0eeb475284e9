"""In-memory sync counters: cache hits/misses, queued and replayed actions, offline responses."""
from __future__ import annotations

from collections import Counter
from threading import Lock

_lock = Lock()
_counters: Counter[str] = Counter()

LESSON_CACHE_WRITES = "lesson_cache_writes"
OFFLINE_RESPONSES = "offline_responses"
TRANSLATION_CACHE_HITS = "translation_cache_hits"
TRANSLATION_CACHE_MISSES = "translation_cache_misses"
TRANSLATION_FALLBACKS = "translation_fallbacks"
ACTIONS_QUEUED = "actions_queued"
ACTIONS_LOST = "actions_lost"
ACTIONS_CONFIRMED = "actions_confirmed"
ACTIONS_RETRIED = "actions_retried"
ACTIONS_EXHAUSTED = "actions_exhausted"
REPLAY_PASSES = "replay_passes"


def record(name: str, amount: int = 1) -> None:
    with _lock:
        _counters[name] += amount


def get_sync_metrics() -> dict:
    with _lock:
        snapshot = dict(_counters)
    hits = snapshot.get(TRANSLATION_CACHE_HITS, 0)
    misses = snapshot.get(TRANSLATION_CACHE_MISSES, 0)
    total_lookups = hits + misses
    hit_ratio = (hits / total_lookups) if total_lookups else None
    return {
        "counters": snapshot,
        "translation_lookups": total_lookups,
        "translation_hit_ratio": round(hit_ratio, 4) if hit_ratio is not None else None,
    }


def reset_sync_metrics() -> None:
    """Reset counters (e.g. for tests)."""
    with _lock:
        _counters.clear()
