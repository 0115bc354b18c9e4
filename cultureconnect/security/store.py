"""
Key-value store backends for rate-limit counters, CSRF claims and the
security event ring buffer.

Two strategies behind one interface, picked once at startup by
``create_store``:

- ``RedisStore`` — shared across workers, atomic via MULTI/EXEC.
- ``MemoryStore`` — single process, guarded by one lock, expired keys
  swept on access.

Backends raise ``StoreError`` for any failure of the underlying store so
callers can apply their own fallback policy.
"""

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import redis

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """The key-value store could not complete an operation."""


class KeyValueStore(ABC):
    """Minimal store interface used by the security layer."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value for key, or None if missing/expired."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int) -> None:
        """Set key to value, expiring after ttl seconds."""

    @abstractmethod
    def add(self, key: str, value: Any, ttl: int) -> bool:
        """Set key only if absent. Returns True if this call created it."""

    @abstractmethod
    def incr(self, key: str) -> int:
        """Increment an integer key, creating it at 0 first if missing."""

    @abstractmethod
    def incr_window(self, key: str, ttl: int) -> int:
        """
        Atomically increment a fixed-window counter.

        A missing key starts a new window of ttl seconds; an existing key
        keeps its remaining TTL. Returns the count after this increment.
        """

    @abstractmethod
    def ttl(self, key: str) -> int:
        """Seconds until key expires; -2 if missing, -1 if no expiry."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key if present."""

    @abstractmethod
    def push_front(self, key: str, value: str) -> int:
        """Prepend value to the list at key. Returns the new length."""

    @abstractmethod
    def trim(self, key: str, length: int) -> None:
        """Keep only the first length items of the list at key."""

    @abstractmethod
    def range(self, key: str, start: int = 0, stop: int = -1) -> List[str]:
        """Return list items from start to stop inclusive."""

    def ping(self) -> bool:
        return True


class MemoryStore(KeyValueStore):
    """
    In-process store with manual TTL sweep.

    Not shared between workers — use only for development, tests, or as the
    fallback when Redis is unreachable at startup.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._data: Dict[str, Any] = {}
        self._expires: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _expired(self, key: str) -> bool:
        expires_at = self._expires.get(key)
        if expires_at is not None and self.clock() >= expires_at:
            self._data.pop(key, None)
            self._expires.pop(key, None)
            return True
        return False

    def sweep(self) -> int:
        """Drop every expired key. Returns the number removed."""
        with self._lock:
            now = self.clock()
            stale = [k for k, exp in self._expires.items() if now >= exp]
            for key in stale:
                self._data.pop(key, None)
                self._expires.pop(key, None)
            return len(stale)

    def get(self, key):
        with self._lock:
            if self._expired(key):
                return None
            value = self._data.get(key)
            return None if value is None else str(value)

    def set(self, key, value, ttl):
        with self._lock:
            self._data[key] = value
            self._expires[key] = self.clock() + int(ttl)

    def add(self, key, value, ttl):
        with self._lock:
            self._expired(key)
            if key in self._data:
                return False
            self._data[key] = value
            self._expires[key] = self.clock() + int(ttl)
            return True

    def incr(self, key):
        with self._lock:
            self._expired(key)
            value = int(self._data.get(key, 0)) + 1
            self._data[key] = value
            return value

    def incr_window(self, key, ttl):
        with self._lock:
            self._expired(key)
            if key not in self._data:
                self._data[key] = 0
                self._expires[key] = self.clock() + int(ttl)
            value = int(self._data[key]) + 1
            self._data[key] = value
            return value

    def ttl(self, key):
        with self._lock:
            if self._expired(key) or key not in self._data:
                return -2
            expires_at = self._expires.get(key)
            if expires_at is None:
                return -1
            return max(0, math.ceil(expires_at - self.clock()))

    def delete(self, key):
        with self._lock:
            self._data.pop(key, None)
            self._expires.pop(key, None)

    def push_front(self, key, value):
        with self._lock:
            items = self._data.setdefault(key, [])
            items.insert(0, value)
            return len(items)

    def trim(self, key, length):
        with self._lock:
            items = self._data.get(key)
            if isinstance(items, list):
                del items[length:]

    def range(self, key, start=0, stop=-1):
        with self._lock:
            items = self._data.get(key)
            if not isinstance(items, list):
                return []
            end = None if stop == -1 else stop + 1
            return list(items[start:end])


class RedisStore(KeyValueStore):
    """Store backed by a redis-py client; every RedisError becomes StoreError."""

    def __init__(self, client: redis.Redis):
        self.client = client

    def _call(self, operation: str, func, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except redis.RedisError as exc:
            raise StoreError(f'redis {operation} failed: {exc}') from exc

    def get(self, key):
        value = self._call('get', self.client.get, key)
        if isinstance(value, bytes):
            value = value.decode('utf-8')
        return value

    def set(self, key, value, ttl):
        self._call('set', self.client.set, key, value, ex=int(ttl))

    def add(self, key, value, ttl):
        return bool(self._call('set', self.client.set, key, value, ex=int(ttl), nx=True))

    def incr(self, key):
        return int(self._call('incr', self.client.incr, key))

    def incr_window(self, key, ttl):
        def _run():
            # SET NX EX opens the window; INCR counts the hit. One transaction.
            with self.client.pipeline(transaction=True) as pipe:
                pipe.set(key, 0, ex=int(ttl), nx=True)
                pipe.incr(key)
                return pipe.execute()

        _, count = self._call('incr_window', _run)
        return int(count)

    def ttl(self, key):
        return int(self._call('ttl', self.client.ttl, key))

    def delete(self, key):
        self._call('delete', self.client.delete, key)

    def push_front(self, key, value):
        return int(self._call('lpush', self.client.lpush, key, value))

    def trim(self, key, length):
        self._call('ltrim', self.client.ltrim, key, 0, length - 1)

    def range(self, key, start=0, stop=-1):
        items = self._call('lrange', self.client.lrange, key, start, stop)
        return [i.decode('utf-8') if isinstance(i, bytes) else i for i in items]

    def ping(self):
        return bool(self._call('ping', self.client.ping))


def create_store(config, clock: Callable[[], float] = time.time) -> KeyValueStore:
    """
    Build the store selected by configuration.

    REDIS_URL set and reachable → RedisStore. Otherwise MemoryStore, with a
    warning when Redis was configured but could not be reached.
    """
    url = config.get('REDIS_URL')
    if not url:
        logger.info('REDIS_URL not set; using in-memory security store')
        return MemoryStore(clock=clock)

    timeout = config.get('REDIS_SOCKET_TIMEOUT', 0.5)
    client = redis.Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )
    store = RedisStore(client)
    try:
        store.ping()
    except StoreError as exc:
        logger.warning('Redis unavailable (%s); falling back to in-memory security store', exc)
        return MemoryStore(clock=clock)

    logger.info('Using Redis security store')
    return store
