"""Key/value caches with per-entry TTL.

Collectors are slow (DNS, WHOIS, HTTP), so every scan category goes through
``remember()``: return the fresh cached value or compute, store and return it.

Backends:
  FileCache  - one JSON file per key under the cache directory
  RedisCache - redis SETEX entries
  NullCache  - caching disabled, always recomputes

There is no per-key locking: two concurrent misses both compute and the last
write wins.
"""

import fnmatch
import hashlib
import json
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import redis

from .errors import PersistenceError
from .log import get_logger

logger = get_logger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r'[^a-zA-Z0-9:.\-_]')


class BaseCache:
    """Shared behaviour: key sanitisation, statistics and ``remember``."""

    driver = "base"

    def __init__(self):
        self._stats = {'hits': 0, 'misses': 0, 'sets': 0}

    @staticmethod
    def sanitize_key(key: str) -> str:
        """Keep alphanumerics and ``: . - _``; everything else becomes ``_``."""
        return _UNSAFE_KEY_CHARS.sub('_', key)

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def clear(self, pattern: Optional[str] = None) -> int:
        raise NotImplementedError

    def remember(self, key: str, producer: Callable[[], Any], ttl: int = 3600) -> Any:
        """Get-or-compute. Exceptions from ``producer`` propagate uncached.

        A failing cache write is logged and the computed value is still
        returned - the cache is an optimisation, never a dependency.
        """
        value = self.get(key)
        if value is not None:
            logger.debug(f"Cache hit for {key}")
            return value

        value = producer()

        try:
            self.set(key, value, ttl)
        except PersistenceError as e:
            logger.warning(f"Cache write failed for {key}: {e}")
        return value

    def stats(self) -> Dict[str, Any]:
        stats = dict(self._stats)
        stats['driver'] = self.driver
        return stats


class NullCache(BaseCache):
    """Cache that never stores anything."""

    driver = "none"

    def get(self, key: str) -> Optional[Any]:
        self._stats['misses'] += 1
        return None

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        return False

    def delete(self, key: str) -> bool:
        return False

    def clear(self, pattern: Optional[str] = None) -> int:
        return 0


class FileCache(BaseCache):
    """File-based cache with TTL support.

    Each cache entry is a JSON file with the data + expiry timestamp.
    Files live in two-character subdirectories (md5 prefix) so a busy cache
    doesn't pile thousands of files into one directory.
    """

    driver = "file"

    def __init__(self, cache_dir: Path):
        super().__init__()
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _cache_file(self, key: str) -> Path:
        digest = hashlib.md5(key.encode('utf-8')).hexdigest()
        return self.cache_dir / digest[:2] / f"{digest}.json"

    def get(self, key: str) -> Optional[Any]:
        """Retrieve cached data if it exists and hasn't expired."""
        key = self.sanitize_key(key)
        cache_file = self._cache_file(key)

        if not cache_file.exists():
            self._stats['misses'] += 1
            return None

        try:
            with open(cache_file, 'r') as f:
                cached = json.load(f)
            expired = cached['expires'] <= time.time()
        except (json.JSONDecodeError, KeyError, TypeError, OSError):
            # Corrupted cache file - drop it
            cache_file.unlink(missing_ok=True)
            self._stats['misses'] += 1
            return None

        if expired:
            cache_file.unlink(missing_ok=True)
            self._stats['misses'] += 1
            return None

        self._stats['hits'] += 1
        return cached['data']

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        """Store data in cache with its expiry."""
        key = self.sanitize_key(key)
        cache_file = self._cache_file(key)
        now = time.time()

        cached = {
            'key': key,
            'data': value,
            'created': now,
            'expires': now + ttl,
        }

        try:
            cache_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_file = cache_file.with_suffix('.tmp')
            with open(tmp_file, 'w') as f:
                json.dump(cached, f, default=str)
            tmp_file.replace(cache_file)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write cache entry {key}: {e}") from e

        self._stats['sets'] += 1
        return True

    def delete(self, key: str) -> bool:
        cache_file = self._cache_file(self.sanitize_key(key))
        if cache_file.exists():
            cache_file.unlink()
            return True
        return False

    def _iter_entries(self):
        for cache_file in self.cache_dir.glob("*/*.json"):
            try:
                with open(cache_file, 'r') as f:
                    yield cache_file, json.load(f)
            except (json.JSONDecodeError, OSError):
                yield cache_file, None

    def clear(self, pattern: Optional[str] = None) -> int:
        """Clear all cache files, or those whose key matches a glob pattern.

        Returns number of files deleted.
        """
        count = 0
        for cache_file, cached in list(self._iter_entries()):
            if pattern is not None:
                if cached is None or not fnmatch.fnmatch(cached.get('key', ''), pattern):
                    continue
            cache_file.unlink(missing_ok=True)
            count += 1
        return count

    def cleanup(self) -> int:
        """Delete expired (or unreadable) entries. Returns number deleted."""
        now = time.time()
        deleted = 0
        for cache_file, cached in list(self._iter_entries()):
            if cached is None or cached.get('expires', 0) <= now:
                cache_file.unlink(missing_ok=True)
                deleted += 1
        return deleted

    def stats(self) -> Dict[str, Any]:
        stats = super().stats()
        now = time.time()
        valid = expired = 0
        for _, cached in self._iter_entries():
            if cached is not None and cached.get('expires', 0) > now:
                valid += 1
            else:
                expired += 1
        stats.update({
            'total_files': valid + expired,
            'valid': valid,
            'expired': expired,
            'cache_dir': str(self.cache_dir),
        })
        return stats


class RedisCache(BaseCache):
    """Redis-backed cache. Values are stored as JSON strings with SETEX."""

    driver = "redis"

    def __init__(self, client: redis.Redis):
        super().__init__()
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        client = redis.Redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client)

    def get(self, key: str) -> Optional[Any]:
        key = self.sanitize_key(key)
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            self._stats['misses'] += 1
            return None

        if raw is None:
            self._stats['misses'] += 1
            return None

        try:
            value = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            self.client.delete(key)
            self._stats['misses'] += 1
            return None

        self._stats['hits'] += 1
        return value

    def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        key = self.sanitize_key(key)
        try:
            self.client.setex(key, ttl, json.dumps(value, default=str))
        except (redis.RedisError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write cache entry {key}: {e}") from e
        self._stats['sets'] += 1
        return True

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(self.sanitize_key(key)))
        except redis.RedisError as e:
            logger.warning(f"Redis delete failed for {key}: {e}")
            return False

    def clear(self, pattern: Optional[str] = None) -> int:
        try:
            if pattern is None:
                count = self.client.dbsize()
                self.client.flushdb()
                return count
            keys = list(self.client.scan_iter(match=pattern))
            if keys:
                self.client.delete(*keys)
            return len(keys)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to clear cache: {e}") from e

    def stats(self) -> Dict[str, Any]:
        stats = super().stats()
        try:
            info = self.client.info(section='memory')
            stats['redis_memory'] = info.get('used_memory_human', 'N/A')
            stats['redis_keys'] = self.client.dbsize()
        except redis.RedisError as e:
            logger.debug(f"Redis stats unavailable: {e}")
        return stats


def build_cache(config) -> BaseCache:
    """Create the cache backend selected by ``config``."""
    if not config.cache_enabled:
        return NullCache()

    if config.cache_driver == 'redis':
        cache = RedisCache.from_url(config.redis_url)
        try:
            cache.client.ping()
            return cache
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable ({e}); falling back to file cache")

    return FileCache(config.cache_dir)
