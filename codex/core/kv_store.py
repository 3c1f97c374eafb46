"""
Shared key-value store with per-key TTL.

Holds short-lived state that every API instance must see the same way:
login attempt counters, revoked token ids and OAuth state values.

Backends:
- RedisKeyValueStore: production, shared across processes
- MemoryKeyValueStore: single process (tests, local development)

Values are flat dicts of strings/ints. Redis errors propagate as
redis.RedisError; callers decide whether to fail open.
"""

import threading
import time
from typing import Dict, Optional, Tuple

import redis

from codex.core.config import settings


class KeyValueStore:
    """Abstract base class for key-value backends"""

    def get(self, key: str) -> Optional[Dict[str, str]]:
        """Return the stored mapping, or None if absent/expired"""
        raise NotImplementedError

    def put(self, key: str, value: Dict[str, object], ttl_seconds: int) -> None:
        """Replace the mapping stored under key and (re)set its TTL"""
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        """Delete a key, returning True if it existed"""
        raise NotImplementedError

    def increment(self, key: str, now: float, ttl_seconds: int) -> Tuple[int, float]:
        """
        Atomically increment the counter stored under key.

        The first increment of a fresh key stamps window_start=now and sets the
        TTL; later increments keep both. Returns (count, window_start).
        """
        raise NotImplementedError


# HINCRBY + first-hit window stamp as a single atomic step.
_INCREMENT_SCRIPT = """
local count = redis.call('HINCRBY', KEYS[1], 'count', 1)
if count == 1 then
    redis.call('HSET', KEYS[1], 'window_start', ARGV[1])
    redis.call('EXPIRE', KEYS[1], ARGV[2])
end
return {count, redis.call('HGET', KEYS[1], 'window_start')}
"""


class RedisKeyValueStore(KeyValueStore):
    """Redis-backed store; each key is a hash with an expiry"""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.redis_client = client or redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        self._increment = self.redis_client.register_script(_INCREMENT_SCRIPT)

    def get(self, key: str) -> Optional[Dict[str, str]]:
        value = self.redis_client.hgetall(key)
        return value or None

    def put(self, key: str, value: Dict[str, object], ttl_seconds: int) -> None:
        with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.delete(key)
            pipe.hset(key, mapping={k: str(v) for k, v in value.items()})
            pipe.expire(key, ttl_seconds)
            pipe.execute()

    def delete(self, key: str) -> bool:
        return bool(self.redis_client.delete(key))

    def increment(self, key: str, now: float, ttl_seconds: int) -> Tuple[int, float]:
        count, window_start = self._increment(keys=[key], args=[repr(now), ttl_seconds])
        return int(count), float(window_start)


class MemoryKeyValueStore(KeyValueStore):
    """In-process store guarded by a lock; expiry is checked lazily on read"""

    def __init__(self, clock=time.time):
        self._clock = clock
        self._data: Dict[str, Tuple[Dict[str, str], float]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> Optional[Dict[str, str]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def get(self, key: str) -> Optional[Dict[str, str]]:
        with self._lock:
            value = self._live(key)
            return dict(value) if value is not None else None

    def put(self, key: str, value: Dict[str, object], ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (
                {k: str(v) for k, v in value.items()},
                self._clock() + ttl_seconds,
            )

    def delete(self, key: str) -> bool:
        with self._lock:
            existed = self._live(key) is not None
            self._data.pop(key, None)
            return existed

    def increment(self, key: str, now: float, ttl_seconds: int) -> Tuple[int, float]:
        with self._lock:
            value = self._live(key)
            if value is None:
                value = {"count": "0"}
                self._data[key] = (value, self._clock() + ttl_seconds)
            count = int(value.get("count", "0")) + 1
            value["count"] = str(count)
            if count == 1:
                value["window_start"] = repr(now)
                self._data[key] = (value, self._clock() + ttl_seconds)
            return count, float(value["window_start"])

    def clear(self) -> None:
        with self._lock:
            self._data.clear()


def get_kv_store_backend() -> KeyValueStore:
    """Get key-value backend based on KV_BACKEND setting"""
    if settings.KV_BACKEND == "memory":
        return MemoryKeyValueStore()
    return RedisKeyValueStore()


# Singleton instance (redis-py connects lazily on first command)
kv_store = get_kv_store_backend()


def get_kv_store() -> KeyValueStore:
    """FastAPI dependency returning the shared key-value store"""
    return kv_store
