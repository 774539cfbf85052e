"""
Tests for core infrastructure: TTL cache and structured logging.
"""

import json

import pytest

from core.cache import TTLCache, get_shared_cache, reset_shared_cache
from core.structured_log import get_log_file, jlog, read_recent_logs


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


# =============================================================================
# TTL cache
# =============================================================================

class TestTTLCache:
    """Entries expire ttl_seconds after they are written."""

    def test_hit_before_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set('kline_AAPL_1y', {'bars': 3})

        clock.now += 59
        assert cache.get('kline_AAPL_1y') == {'bars': 3}
        assert cache.hits == 1

    def test_miss_after_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set('news_AAPL', ['headline'])

        clock.now += 60
        assert cache.get('news_AAPL') is None
        assert len(cache) == 0
        assert cache.misses == 1

    def test_per_entry_ttl_override(self):
        clock = FakeClock()
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set('short', 1, ttl_seconds=5)
        cache.set('long', 2)

        clock.now += 10
        assert cache.get('short') is None
        assert cache.get('long') == 2

    def test_last_write_wins(self):
        cache = TTLCache()
        cache.set('k', 'first')
        cache.set('k', 'second')
        assert cache.get('k') == 'second'

    def test_get_or_set_computes_once(self):
        cache = TTLCache()
        calls = []

        def factory():
            calls.append(1)
            return 'value'

        assert cache.get_or_set('k', factory) == 'value'
        assert cache.get_or_set('k', factory) == 'value'
        assert len(calls) == 1

    def test_invalidate_and_clear(self, tmp_path):
        cache = TTLCache(cache_dir=tmp_path)
        cache.set('a', 1)
        cache.set('b', 2)

        cache.invalidate('a')
        assert cache.get('a') is None
        cache.clear()
        assert len(cache) == 0
        assert list(tmp_path.glob('*.json')) == []


class TestDiskMirror:
    def test_second_instance_reads_mirror(self, tmp_path):
        clock = FakeClock()
        TTLCache(ttl_seconds=60, cache_dir=tmp_path, clock=clock).set('news_TSLA', [{'title': 'x'}])

        fresh = TTLCache(ttl_seconds=60, cache_dir=tmp_path, clock=clock)
        assert fresh.get('news_TSLA') == [{'title': 'x'}]

    def test_expired_mirror_is_removed(self, tmp_path):
        clock = FakeClock()
        TTLCache(ttl_seconds=60, cache_dir=tmp_path, clock=clock).set('news_TSLA', ['x'])

        clock.now += 120
        fresh = TTLCache(ttl_seconds=60, cache_dir=tmp_path, clock=clock)
        assert fresh.get('news_TSLA') is None
        assert list(tmp_path.glob('*.json')) == []

    def test_unserializable_values_stay_in_memory(self, tmp_path):
        cache = TTLCache(cache_dir=tmp_path)
        cache.set('obj', object())
        assert list(tmp_path.glob('*.json')) == []
        assert cache.get('obj') is not None

    def test_keys_are_sanitized(self, tmp_path):
        cache = TTLCache(cache_dir=tmp_path)
        cache.set('kline_BRK/B_1y', 1)
        assert (tmp_path / 'kline_BRK_B_1y.json').exists()


class TestSharedCache:
    def test_singleton_until_reset(self):
        first = get_shared_cache()
        assert get_shared_cache() is first
        reset_shared_cache()
        assert get_shared_cache() is not first

    def test_ttl_from_settings(self):
        assert get_shared_cache().ttl_seconds == pytest.approx(3600)


# =============================================================================
# Structured logging
# =============================================================================

class TestStructuredLog:
    def test_entries_are_json_lines(self, isolated_logs):
        jlog('round_completed', symbol='AAPL', round=1, score=0.55)

        lines = get_log_file().read_text(encoding='utf-8').strip().splitlines()
        entry = json.loads(lines[-1])
        assert entry['event'] == 'round_completed'
        assert entry['level'] == 'INFO'
        assert entry['symbol'] == 'AAPL'
        assert 'ts' in entry

    def test_log_dir_is_isolated(self, isolated_logs):
        assert get_log_file().parent == isolated_logs

    def test_read_recent_filters_by_level(self):
        jlog('round_completed', round=1)
        jlog('round_failed', level='ERROR', round=2)
        jlog('round_completed', round=3)

        errors = read_recent_logs(10, level='ERROR')
        assert [e['round'] for e in errors] == [2]
        assert [e['round'] for e in read_recent_logs(2)] == [2, 3]
