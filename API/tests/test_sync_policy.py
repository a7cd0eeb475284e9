from edusync.core.resilience import backoff_delay
from edusync.core.settings import Settings
from edusync.sync.queue import EXHAUSTED_DROP, EXHAUSTED_RETAIN


def test_retry_cap_defaults_to_three_attempts():
    assert Settings().max_action_retries == 3


def test_exhausted_policy_default_is_drop():
    assert Settings().replay_exhausted_policy == EXHAUSTED_DROP
    assert EXHAUSTED_RETAIN != EXHAUSTED_DROP


def test_translation_ttl_is_seven_days():
    assert Settings().translation_cache_ttl_days == 7


def test_backoff_is_exponential_and_capped():
    delays = [backoff_delay(attempt, base_seconds=2.0, max_seconds=10.0) for attempt in range(5)]
    assert delays == [2.0, 4.0, 8.0, 10.0, 10.0]
