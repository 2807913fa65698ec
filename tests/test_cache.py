"""Tests for the cache backends."""

import time
from unittest.mock import Mock

import pytest
import redis

from domain_audit.util.cache import FileCache, NullCache, RedisCache, build_cache
from domain_audit.util.errors import PersistenceError


@pytest.fixture
def cache(tmp_path):
    return FileCache(tmp_path / 'cache')


class TestFileCache:

    def test_set_and_get(self, cache):
        cache.set('complete_scan:dns:example.com', {'records': {}}, ttl=60)
        assert cache.get('complete_scan:dns:example.com') == {'records': {}}
        assert cache.stats()['hits'] == 1
        assert cache.stats()['sets'] == 1

    def test_miss(self, cache):
        assert cache.get('complete_scan:dns:missing.com') is None
        assert cache.stats()['misses'] == 1

    def test_expired_entry_is_dropped(self, cache, monkeypatch):
        cache.set('k', 'v', ttl=10)
        now = time.time()
        monkeypatch.setattr(time, 'time', lambda: now + 11)

        assert cache.get('k') is None
        assert cache.stats()['total_files'] == 0

    def test_corrupted_entry_is_a_miss(self, cache):
        cache.set('k', 'v')
        path = next(cache.cache_dir.glob('*/*.json'))
        path.write_text('{not json')

        assert cache.get('k') is None
        assert not path.exists()

    def test_delete(self, cache):
        cache.set('k', 'v')
        assert cache.delete('k') is True
        assert cache.delete('k') is False

    def test_clear_with_pattern(self, cache):
        cache.set('complete_scan:dns:a.com', 1)
        cache.set('complete_scan:dns:b.com', 2)
        cache.set('complete_scan:seo:a.com', 3)

        assert cache.clear('complete_scan:dns:*') == 2
        assert cache.get('complete_scan:seo:a.com') == 3
        assert cache.clear() == 1

    def test_cleanup_removes_expired_only(self, cache):
        cache.set('fresh', 1, ttl=3600)
        cache.set('stale', 2, ttl=-1)

        assert cache.cleanup() == 1
        assert cache.get('fresh') == 1

    def test_keys_are_sanitized(self, cache):
        cache.set('complete_scan:seo:exa mple/com', 1)
        assert cache.get('complete_scan:seo:exa_mple_com') == 1
        assert FileCache.sanitize_key('a b/c?d') == 'a_b_c_d'


class TestRemember:

    def test_computes_once(self, cache):
        producer = Mock(return_value={'score': 90})

        assert cache.remember('k', producer, ttl=60) == {'score': 90}
        assert cache.remember('k', producer, ttl=60) == {'score': 90}
        producer.assert_called_once()

    def test_exception_is_not_cached(self, cache):
        producer = Mock(side_effect=RuntimeError('boom'))

        with pytest.raises(RuntimeError):
            cache.remember('k', producer)
        assert cache.get('k') is None

    def test_failed_write_still_returns_value(self, cache, monkeypatch):
        def broken_set(key, value, ttl=3600):
            raise PersistenceError('read-only filesystem')

        monkeypatch.setattr(cache, 'set', broken_set)
        assert cache.remember('k', lambda: 'value') == 'value'

    def test_null_cache_always_computes(self):
        cache = NullCache()
        producer = Mock(return_value=1)

        cache.remember('k', producer)
        cache.remember('k', producer)

        assert producer.call_count == 2
        assert cache.stats()['driver'] == 'none'


class TestRedisCache:

    @pytest.fixture
    def client(self):
        return Mock(spec=redis.Redis)

    def test_get_decodes_json(self, client):
        client.get.return_value = '{"valid": true}'
        cache = RedisCache(client)

        assert cache.get('complete_scan:ssl:example.com') == {'valid': True}
        client.get.assert_called_once_with('complete_scan:ssl:example.com')

    def test_set_uses_setex(self, client):
        cache = RedisCache(client)
        cache.set('k', {'a': 1}, ttl=120)
        client.setex.assert_called_once_with('k', 120, '{"a": 1}')

    def test_set_failure_raises_persistence_error(self, client):
        client.setex.side_effect = redis.ConnectionError('down')
        with pytest.raises(PersistenceError):
            RedisCache(client).set('k', 1)

    def test_get_failure_is_a_miss(self, client):
        client.get.side_effect = redis.ConnectionError('down')
        cache = RedisCache(client)
        assert cache.get('k') is None
        assert cache.stats()['misses'] == 1

    def test_clear_pattern_scans_keys(self, client):
        client.scan_iter.return_value = iter(['complete_scan:dns:a.com', 'complete_scan:dns:b.com'])
        cache = RedisCache(client)

        assert cache.clear('complete_scan:dns:*') == 2
        client.delete.assert_called_once_with('complete_scan:dns:a.com', 'complete_scan:dns:b.com')


class TestBuildCache:

    def test_disabled(self):
        config = Mock(cache_enabled=False)
        assert isinstance(build_cache(config), NullCache)

    def test_file(self, tmp_path):
        config = Mock(cache_enabled=True, cache_driver='file', cache_dir=tmp_path / 'c')
        assert isinstance(build_cache(config), FileCache)

    def test_redis_unreachable_falls_back_to_file(self, tmp_path, monkeypatch):
        client = Mock(spec=redis.Redis)
        client.ping.side_effect = redis.ConnectionError('refused')
        monkeypatch.setattr(RedisCache, 'from_url', classmethod(lambda cls, url: cls(client)))
        config = Mock(cache_enabled=True, cache_driver='redis', redis_url='redis://nowhere:6379/0',
                      cache_dir=tmp_path / 'c')

        assert isinstance(build_cache(config), FileCache)
