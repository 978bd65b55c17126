"""
State Store
===========

Key-value store with per-key expiry holding all cross-cycle memory:
last alerted event ids, last alerted prices and cooldown markers.

Backends:
    - RedisStateStore:  redis.asyncio client, the deployed backend
    - MemoryStateStore: in-process dict with expiry (single process, no
                        persistence across restarts)

Keys follow "{category}{field}_{contract}" (see nftwatch.types.state_key).

The store is the single source of truth and the only component shared
between pollers. Read-modify-write per key is enough; there is no
compare-and-set. Single-writer deployment is assumed.

Usage:
    store = RedisStateStore.from_url("redis://localhost:6379/0")
    state = CategoryState(store, Category.FLOOR, "0xabc...")
    last_id = await state.last_event_id()
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from nftwatch.errors import StateStoreError
from nftwatch.types import (
    FIELD_COOLDOWN,
    FIELD_LAST_VALUE,
    Category,
    last_event_key,
    state_key,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 5.0
COOLDOWN_MARKER = "true"


class StateStore(ABC):
    """Async key-value store with optional per-key TTL."""

    name = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value for key, or None if absent/expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_sec: Optional[int] = None) -> None:
        """Store value under key, expiring after ttl_sec when given."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key; absent keys are not an error."""

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class MemoryStateStore(StateStore):
    """
    In-process state store.

    Expiry uses a monotonic clock; expired keys are dropped lazily on read.

    Args:
        clock: Seconds clock, injectable for tests (default: time.monotonic)
    """

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_sec: Optional[int] = None) -> None:
        if ttl_sec is not None and ttl_sec <= 0:
            raise StateStoreError(f"Invalid ttl {ttl_sec} for {key}")
        expires_at = self._clock() + ttl_sec if ttl_sec is not None else None
        self._data[key] = (str(value), expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        """Live keys (expired entries excluded)."""
        now = self._clock()
        return [
            k for k, (_, expires_at) in self._data.items()
            if expires_at is None or now < expires_at
        ]


class RedisStateStore(StateStore):
    """
    Redis-backed state store.

    Every call is bounded by ``timeout_sec``; timeouts and Redis errors
    surface as StateStoreError so pollers can skip and retry next cycle.

    Args:
        client: redis.asyncio.Redis created with decode_responses=True
        timeout_sec: Per-operation timeout
    """

    name = "redis"

    def __init__(self, client: Redis, timeout_sec: float = DEFAULT_TIMEOUT_SEC) -> None:
        self._client = client
        self._timeout_sec = timeout_sec

    @classmethod
    def from_url(cls, url: str, timeout_sec: float = DEFAULT_TIMEOUT_SEC) -> "RedisStateStore":
        client = Redis.from_url(url, decode_responses=True)
        logger.info("redis_state_store_created", extra={"timeout_sec": timeout_sec})
        return cls(client, timeout_sec=timeout_sec)

    async def _call(self, op: str, key: str, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout_sec)
        except asyncio.TimeoutError as e:
            raise StateStoreError(f"redis {op} timed out for {key}") from e
        except (RedisError, OSError) as e:
            raise StateStoreError(f"redis {op} failed for {key}: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        value = await self._call("get", key, self._client.get(key))
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl_sec: Optional[int] = None) -> None:
        ok = await self._call("set", key, self._client.set(key, value, ex=ttl_sec))
        if not ok:
            raise StateStoreError(f"redis set not acknowledged for {key}")

    async def delete(self, key: str) -> None:
        await self._call("delete", key, self._client.delete(key))

    async def ping(self) -> bool:
        try:
            return bool(await self._call("ping", "-", self._client.ping()))
        except StateStoreError as e:
            logger.warning("redis_ping_failed", extra={"error": str(e)})
            return False

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("redis_state_store_closed")


def format_value(value: float) -> str:
    """Serialize a price for storage ("0.5", "12.0")."""
    return repr(float(value))


class CategoryState:
    """
    Typed view of one (category, collection) pair in the store.

    Persisted fields:
        last_event_id:  most recently alerted event/order id
        last_value:     last alerted price (scalar categories only)
        cooldown:       presence marker with TTL; absent means no cooldown

    Args:
        store: Backing state store
        category: Alert category
        contract: Collection contract address
    """

    def __init__(self, store: StateStore, category: Category, contract: str) -> None:
        self.store = store
        self.category = category
        self.contract = contract
        self.event_key = last_event_key(category, contract)
        self.value_key = state_key(category, FIELD_LAST_VALUE, contract)
        self.cooldown_key = state_key(category, FIELD_COOLDOWN, contract)

    async def last_event_id(self) -> Optional[str]:
        value = await self.store.get(self.event_key)
        return value if value else None

    async def last_value(self) -> Optional[float]:
        raw = await self.store.get(self.value_key)
        if raw is None or raw == "":
            return None
        try:
            return float(raw)
        except ValueError:
            logger.warning(
                "state_value_unparseable",
                extra={"key": self.value_key, "value": raw},
            )
            return None

    async def cooldown_active(self) -> bool:
        return await self.store.get(self.cooldown_key) is not None

    async def set_last_event_id(self, event_id: str) -> None:
        await self.store.set(self.event_key, event_id)

    async def clear_last_event_id(self) -> None:
        await self.store.delete(self.event_key)

    async def set_last_value(self, value: float) -> None:
        await self.store.set(self.value_key, format_value(value))

    async def start_cooldown(self, ttl_sec: int) -> None:
        await self.store.set(self.cooldown_key, COOLDOWN_MARKER, ttl_sec=ttl_sec)

    async def snapshot(self) -> dict:
        """Stored fields for API output."""
        snap: dict = {"last_event_id": await self.last_event_id()}
        if self.category.is_scalar:
            snap["last_value"] = await self.last_value()
            snap["cooldown_active"] = await self.cooldown_active()
        return snap
