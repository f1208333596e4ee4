from __future__ import annotations

# redis backed key-value store with in-memory fallback
import logging
import time
from abc import ABC, abstractmethod
from functools import wraps
from threading import RLock
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from redis import Connection, ConnectionPool, Redis, SSLConnection
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.core.config import Settings
from app.core.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class KeyValueStore(ABC):
    """
    Store capability used by the request, reward and feed services.

    Values are strings. Hashes map str -> str, lists are pushed at the head
    and popped at the tail (FIFO), sorted sets keep (member, score) pairs.
    The conditional hash operations are atomic on every implementation.
    """

    @abstractmethod
    def ping(self) -> bool: ...

    @abstractmethod
    def get(self, key: str) -> Optional[str]: ...

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def expire(self, key: str, seconds: int) -> bool: ...

    @abstractmethod
    def hash_set(self, key: str, field: str, value: Any) -> None: ...

    @abstractmethod
    def hash_get(self, key: str, field: str) -> Optional[str]: ...

    @abstractmethod
    def hash_get_all(self, key: str) -> Dict[str, str]: ...

    @abstractmethod
    def hash_set_if_absent(self, key: str, field: str, value: Any) -> bool:
        """Set field only when it does not exist yet. True when this call set it."""

    @abstractmethod
    def hash_set_if_exists(self, key: str, field: str, value: Any) -> bool:
        """Set field only when the hash itself exists (never resurrects an expired key)."""

    @abstractmethod
    def hash_compare_and_set(self, key: str, field: str, expected: Any, value: Any) -> bool:
        """Set field to value only when its current value equals expected."""

    @abstractmethod
    def create_hash(self, key: str, mapping: Mapping[str, Any], ttl_seconds: Optional[int] = None) -> bool:
        """Create a hash with all fields and TTL in one step. False when key already exists."""

    @abstractmethod
    def sorted_set_add(self, key: str, score: float, value: str) -> None: ...

    @abstractmethod
    def sorted_set_top_n(self, key: str, n: int) -> List[Tuple[str, float]]:
        """Return the n highest-scored members, highest first."""

    @abstractmethod
    def sorted_set_trim(self, key: str, keep: int) -> int:
        """Drop the lowest-scored members so that at most `keep` remain."""

    @abstractmethod
    def list_push(self, key: str, value: str) -> int: ...

    @abstractmethod
    def list_pop_tail(self, key: str) -> Optional[str]: ...

    @abstractmethod
    def list_move_tail(self, source: str, destination: str) -> Optional[str]:
        """Pop the tail of source and push it at the head of destination atomically."""

    @abstractmethod
    def list_remove(self, key: str, value: str) -> int: ...

    @abstractmethod
    def list_range(self, key: str) -> List[str]:
        """Whole list, head first."""


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

_HSET_IF_EXISTS = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    redis.call('HSET', KEYS[1], ARGV[1], ARGV[2])
    return 1
end
return 0
"""

_HASH_COMPARE_AND_SET = """
if redis.call('HGET', KEYS[1], ARGV[1]) == ARGV[2] then
    redis.call('HSET', KEYS[1], ARGV[1], ARGV[3])
    return 1
end
return 0
"""

_CREATE_HASH = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return 0
end
for i = 2, #ARGV, 2 do
    redis.call('HSET', KEYS[1], ARGV[i], ARGV[i + 1])
end
if tonumber(ARGV[1]) > 0 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return 1
"""


def _translate_errors(func: Callable) -> Callable:
    """Turn redis transport failures into StoreUnavailable."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise StoreUnavailable(f"redis {func.__name__} failed: {e}") from e

    return wrapper


class RedisStore(KeyValueStore):
    """Redis implementation; the conditional hash operations run as Lua scripts."""

    def __init__(self, settings: Settings, client: Optional[Redis] = None):
        if client is None:
            self.pool = ConnectionPool(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                password=settings.REDIS_PASSWORD,
                socket_connect_timeout=2,
                socket_timeout=5,
                retry_on_timeout=False,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                connection_class=SSLConnection if settings.REDIS_SSL else Connection,
                decode_responses=True,
            )
            client = Redis(connection_pool=self.pool)
        self.client = client
        self._hset_if_exists = client.register_script(_HSET_IF_EXISTS)
        self._hash_cas = client.register_script(_HASH_COMPARE_AND_SET)
        self._create_hash = client.register_script(_CREATE_HASH)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except (RedisConnectionError, RedisTimeoutError):
            return False

    @_translate_errors
    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    @_translate_errors
    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        self.client.set(key, value, ex=ttl_seconds if ttl_seconds else None)

    @_translate_errors
    def delete(self, key: str) -> None:
        self.client.delete(key)

    @_translate_errors
    def expire(self, key: str, seconds: int) -> bool:
        return bool(self.client.expire(key, seconds))

    @_translate_errors
    def hash_set(self, key: str, field: str, value: Any) -> None:
        self.client.hset(key, field, _as_str(value))

    @_translate_errors
    def hash_get(self, key: str, field: str) -> Optional[str]:
        return self.client.hget(key, field)

    @_translate_errors
    def hash_get_all(self, key: str) -> Dict[str, str]:
        return self.client.hgetall(key) or {}

    @_translate_errors
    def hash_set_if_absent(self, key: str, field: str, value: Any) -> bool:
        return bool(self.client.hsetnx(key, field, _as_str(value)))

    @_translate_errors
    def hash_set_if_exists(self, key: str, field: str, value: Any) -> bool:
        return bool(self._hset_if_exists(keys=[key], args=[field, _as_str(value)]))

    @_translate_errors
    def hash_compare_and_set(self, key: str, field: str, expected: Any, value: Any) -> bool:
        return bool(
            self._hash_cas(keys=[key], args=[field, _as_str(expected), _as_str(value)])
        )

    @_translate_errors
    def create_hash(self, key: str, mapping: Mapping[str, Any], ttl_seconds: Optional[int] = None) -> bool:
        args: List[str] = [str(int(ttl_seconds or 0))]
        for field, value in mapping.items():
            args.extend([field, _as_str(value)])
        return bool(self._create_hash(keys=[key], args=args))

    @_translate_errors
    def sorted_set_add(self, key: str, score: float, value: str) -> None:
        self.client.zadd(key, {value: score})

    @_translate_errors
    def sorted_set_top_n(self, key: str, n: int) -> List[Tuple[str, float]]:
        if n <= 0:
            return []
        return [(member, float(score)) for member, score in self.client.zrevrange(key, 0, n - 1, withscores=True)]

    @_translate_errors
    def sorted_set_trim(self, key: str, keep: int) -> int:
        # ranks are ascending by score, so drop everything below the top `keep`
        return int(self.client.zremrangebyrank(key, 0, -(keep + 1)))

    @_translate_errors
    def list_push(self, key: str, value: str) -> int:
        return int(self.client.lpush(key, value))

    @_translate_errors
    def list_pop_tail(self, key: str) -> Optional[str]:
        return self.client.rpop(key)

    @_translate_errors
    def list_move_tail(self, source: str, destination: str) -> Optional[str]:
        return self.client.rpoplpush(source, destination)

    @_translate_errors
    def list_remove(self, key: str, value: str) -> int:
        return int(self.client.lrem(key, 1, value))

    @_translate_errors
    def list_range(self, key: str) -> List[str]:
        return self.client.lrange(key, 0, -1)


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------

class MemoryStore(KeyValueStore):
    """In-process store used when Redis is not configured (development, tests)."""

    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        self._data: Dict[str, Any] = {}
        self._expires_at: Dict[str, float] = {}
        self._lock = RLock()

    def _live(self, key: str) -> Optional[Any]:
        """Return the value for key, dropping it first if its TTL has passed."""
        expires_at = self._expires_at.get(key)
        if expires_at is not None and expires_at <= self._clock():
            self._data.pop(key, None)
            self._expires_at.pop(key, None)
        return self._data.get(key)

    def _sweep(self) -> None:
        """Drop every key whose TTL has passed. Runs on writes that set a TTL."""
        now = self._clock()
        for key in [key for key, expires_at in self._expires_at.items() if expires_at <= now]:
            self._data.pop(key, None)
            self._expires_at.pop(key, None)

    def key_count(self) -> int:
        """Number of keys held, including expired ones not swept yet."""
        with self._lock:
            return len(self._data)

    def _typed(self, key: str, factory: Callable[[], Any]) -> Any:
        value = self._live(key)
        if value is None:
            value = factory()
            self._data[key] = value
        return value

    def ping(self) -> bool:
        return True

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._live(key)
            return value if isinstance(value, str) else None

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        with self._lock:
            if ttl_seconds:
                self._sweep()
            self._data[key] = value
            self._expires_at.pop(key, None)
            if ttl_seconds:
                self._expires_at[key] = self._clock() + ttl_seconds

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)
            self._expires_at.pop(key, None)

    def expire(self, key: str, seconds: int) -> bool:
        with self._lock:
            if self._live(key) is None:
                return False
            self._expires_at[key] = self._clock() + seconds
            return True

    def hash_set(self, key: str, field: str, value: Any) -> None:
        with self._lock:
            self._typed(key, dict)[field] = _as_str(value)

    def hash_get(self, key: str, field: str) -> Optional[str]:
        with self._lock:
            value = self._live(key)
            return value.get(field) if isinstance(value, dict) else None

    def hash_get_all(self, key: str) -> Dict[str, str]:
        with self._lock:
            value = self._live(key)
            return dict(value) if isinstance(value, dict) else {}

    def hash_set_if_absent(self, key: str, field: str, value: Any) -> bool:
        with self._lock:
            data = self._typed(key, dict)
            if field in data:
                return False
            data[field] = _as_str(value)
            return True

    def hash_set_if_exists(self, key: str, field: str, value: Any) -> bool:
        with self._lock:
            data = self._live(key)
            if not isinstance(data, dict):
                return False
            data[field] = _as_str(value)
            return True

    def hash_compare_and_set(self, key: str, field: str, expected: Any, value: Any) -> bool:
        with self._lock:
            data = self._live(key)
            if not isinstance(data, dict) or data.get(field) != _as_str(expected):
                return False
            data[field] = _as_str(value)
            return True

    def create_hash(self, key: str, mapping: Mapping[str, Any], ttl_seconds: Optional[int] = None) -> bool:
        with self._lock:
            if ttl_seconds:
                self._sweep()
            if self._live(key) is not None:
                return False
            self._data[key] = {field: _as_str(value) for field, value in mapping.items()}
            if ttl_seconds:
                self._expires_at[key] = self._clock() + ttl_seconds
            return True

    def sorted_set_add(self, key: str, score: float, value: str) -> None:
        with self._lock:
            self._typed(key, dict)[value] = float(score)

    def _ranked(self, key: str) -> List[Tuple[str, float]]:
        members = self._live(key) or {}
        return sorted(members.items(), key=lambda item: (item[1], item[0]), reverse=True)

    def sorted_set_top_n(self, key: str, n: int) -> List[Tuple[str, float]]:
        with self._lock:
            if n <= 0:
                return []
            return self._ranked(key)[:n]

    def sorted_set_trim(self, key: str, keep: int) -> int:
        with self._lock:
            ranked = self._ranked(key)
            dropped = ranked[max(keep, 0):]
            members = self._data.get(key, {})
            for member, _ in dropped:
                members.pop(member, None)
            return len(dropped)

    def list_push(self, key: str, value: str) -> int:
        with self._lock:
            items = self._typed(key, list)
            items.insert(0, value)
            return len(items)

    def list_pop_tail(self, key: str) -> Optional[str]:
        with self._lock:
            items = self._live(key)
            if not items:
                return None
            return items.pop()

    def list_move_tail(self, source: str, destination: str) -> Optional[str]:
        with self._lock:
            value = self.list_pop_tail(source)
            if value is not None:
                self.list_push(destination, value)
            return value

    def list_remove(self, key: str, value: str) -> int:
        with self._lock:
            items = self._live(key)
            if not items or value not in items:
                return 0
            items.remove(value)
            return 1

    def list_range(self, key: str) -> List[str]:
        with self._lock:
            return list(self._live(key) or [])


def create_store(settings: Settings) -> KeyValueStore:
    """Redis when REDIS_HOST is configured, memory otherwise."""
    if settings.REDIS_HOST is None or settings.REDIS_HOST.strip() == "":
        logger.warning("REDIS_HOST not set, using in-memory store (state is lost on restart)")
        return MemoryStore()
    return RedisStore(settings)
