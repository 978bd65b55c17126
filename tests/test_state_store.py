import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from nftwatch.errors import StateStoreError
from nftwatch.state_store import CategoryState, MemoryStateStore, RedisStateStore, format_value
from nftwatch.types import Category, last_event_key, state_key

from conftest import CONTRACT


def test_key_names_match_deployed_layout():
    assert last_event_key(Category.FLOOR, "0xabc") == "flooreventid_0xabc"
    assert state_key(Category.FLOOR, "price", "0xabc") == "floorprice_0xabc"
    assert state_key(Category.BID, "cooldown", "0xabc") == "bidcooldown_0xabc"
    assert last_event_key(Category.LISTINGS, "0xabc") == "listingsorderid_0xabc"
    assert last_event_key(Category.SALES, "0xabc") == "saleorderid_0xabc"
    assert last_event_key(Category.BURN, "0xabc") == "burnevent_0xabc"


async def test_memory_store_expires_keys(clock):
    store = MemoryStateStore(clock=clock)
    await store.set("cooldown", "true", ttl_sec=1800)
    await store.set("marker", "E1")

    clock.advance(1799)
    assert await store.get("cooldown") == "true"

    clock.advance(1)
    assert await store.get("cooldown") is None
    assert await store.get("marker") == "E1"
    assert store.keys() == ["marker"]


async def test_memory_store_delete_missing_key_is_noop():
    store = MemoryStateStore()
    await store.delete("missing")
    assert await store.get("missing") is None


async def test_memory_store_rejects_non_positive_ttl():
    store = MemoryStateStore()
    with pytest.raises(StateStoreError):
        await store.set("k", "v", ttl_sec=0)


async def test_category_state_roundtrip(clock):
    store = MemoryStateStore(clock=clock)
    state = CategoryState(store, Category.FLOOR, CONTRACT)

    assert await state.last_event_id() is None
    assert await state.last_value() is None
    assert not await state.cooldown_active()

    await state.set_last_event_id("4521")
    await state.set_last_value(0.5)
    await state.start_cooldown(60)

    assert await store.get(f"flooreventid_{CONTRACT}") == "4521"
    assert await store.get(f"floorprice_{CONTRACT}") == "0.5"
    assert await state.last_value() == 0.5
    assert await state.cooldown_active()

    clock.advance(60)
    assert not await state.cooldown_active()
    assert await state.snapshot() == {
        "last_event_id": "4521",
        "last_value": 0.5,
        "cooldown_active": False,
    }


async def test_unparseable_price_reads_as_missing():
    store = MemoryStateStore()
    await store.set(f"bidprice_{CONTRACT}", "n/a")
    assert await CategoryState(store, Category.BID, CONTRACT).last_value() is None


async def test_feed_snapshot_has_marker_only():
    store = MemoryStateStore()
    await store.set(f"saleorderid_{CONTRACT}", "0xsale")
    snapshot = await CategoryState(store, Category.SALES, CONTRACT).snapshot()
    assert snapshot == {"last_event_id": "0xsale"}


def test_format_value():
    assert format_value(1) == "1.0"
    assert format_value(0.25) == "0.25"


class StubRedis:
    def __init__(self, fail_with=None, set_result=True, delay=0.0):
        self.data = {}
        self.expiry = {}
        self.fail_with = fail_with
        self.set_result = set_result
        self.delay = delay
        self.closed = False

    async def _maybe_fail(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with:
            raise self.fail_with

    async def get(self, key):
        await self._maybe_fail()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        await self._maybe_fail()
        self.data[key] = value
        self.expiry[key] = ex
        return self.set_result

    async def delete(self, key):
        await self._maybe_fail()
        return 1 if self.data.pop(key, None) is not None else 0

    async def ping(self):
        await self._maybe_fail()
        return True

    async def aclose(self):
        self.closed = True


async def test_redis_store_passes_ttl_as_ex():
    client = StubRedis()
    store = RedisStateStore(client, timeout_sec=1)

    await store.set("floorcooldown_0xabc", "true", ttl_sec=1800)
    await store.set("flooreventid_0xabc", "12")

    assert client.expiry == {"floorcooldown_0xabc": 1800, "flooreventid_0xabc": None}
    assert await store.get("flooreventid_0xabc") == "12"
    assert await store.ping()

    await store.close()
    assert client.closed


async def test_redis_errors_become_state_store_errors():
    store = RedisStateStore(StubRedis(fail_with=RedisConnectionError("refused")), timeout_sec=1)

    with pytest.raises(StateStoreError):
        await store.get("k")
    assert not await store.ping()


async def test_redis_timeout_becomes_state_store_error():
    store = RedisStateStore(StubRedis(delay=0.5), timeout_sec=0.01)

    with pytest.raises(StateStoreError):
        await store.get("k")


async def test_unacknowledged_redis_write_raises():
    store = RedisStateStore(StubRedis(set_result=None), timeout_sec=1)

    with pytest.raises(StateStoreError):
        await store.set("k", "v")
