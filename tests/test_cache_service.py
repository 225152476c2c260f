import asyncio
import json

from giftstrack.schemas.master_data import MasterDataItem
from giftstrack.services.cache_service import TTLCache, model_validator


async def test_set_then_get_returns_value(cache):
    await cache.set("k", {"a": 1, "b": [1, 2]}, ttl=60)
    assert await cache.get("k") == {"a": 1, "b": [1, 2]}


async def test_get_missing_key(cache):
    assert await cache.get("never-set") is None


async def test_persisted_layout(cache, store, clock):
    await cache.set("k", [1, 2, 3], ttl=10)
    blob = json.loads(await store.get("k"))
    assert blob == {"data": [1, 2, 3], "timestamp": int(clock() * 1000), "ttl": 10_000}


async def test_expired_entry_is_purged(cache, store, clock):
    await cache.set("k", "v", ttl=60)
    clock.advance(59)
    assert await cache.get("k") == "v"

    clock.advance(1)  # age == ttl
    assert await cache.get("k") is None
    assert await store.get("k") is None


async def test_validator_rejection_purges(cache, store):
    await cache.set("k", {"items": "not-a-list"})
    assert await cache.get("k", lambda d: isinstance(d.get("items"), list)) is None
    assert await store.get("k") is None


async def test_corrupt_blob_is_a_miss(cache, store):
    await store.set("k", "{not json")
    assert await cache.get("k") is None
    assert await store.get("k") is None

    await store.set("k2", json.dumps({"value": 1}))
    assert await cache.get("k2") is None


async def test_blob_without_ttl_uses_default(store, clock):
    cache = TTLCache(store, default_ttl=3600, clock=clock)
    await store.set("legacy", json.dumps({"data": {"x": 1}, "timestamp": int(clock() * 1000)}))

    assert await cache.get("legacy") == {"x": 1}
    clock.advance(3600)
    assert await cache.get("legacy") is None


async def test_invalidate_is_idempotent(cache):
    await cache.set("k", 1)
    await cache.invalidate("k")
    await cache.invalidate("k")
    assert await cache.get("k") is None


async def test_overwrite_last_write_wins(cache):
    await asyncio.gather(cache.set("k", "first"), cache.set("k", "second"))
    assert await cache.get("k") == "second"


async def test_pydantic_models_stored_by_alias(cache):
    item = MasterDataItem(id=1, name="Wedding", is_default=True)
    await cache.set("k", [item])
    data = await cache.get("k")
    assert data == [{"id": 1, "name": "Wedding", "code": None, "isActive": None, "isDefault": True}]


async def test_model_validator(cache):
    await cache.set("good", {"id": 1, "name": "x"})
    await cache.set("bad", {"id": 1})
    validate = model_validator(MasterDataItem)
    assert await cache.get("good", validate) == {"id": 1, "name": "x"}
    assert await cache.get("bad", validate) is None


async def test_invalidate_by_prefix(cache):
    await cache.set("cache:customers", 1)
    await cache.set("cache:customers?search=a", 2)
    await cache.set("master_data_cache", 3)

    removed = await cache.invalidate_by_prefix("cache:customers")

    assert removed == 2
    assert await cache.get("cache:customers") is None
    assert await cache.get("master_data_cache") == 3


async def test_meta_and_is_valid(cache, clock):
    assert await cache.get_meta("k") is None
    assert not await cache.is_valid("k")

    await cache.set("k", "v", ttl=60)
    meta = await cache.get_meta("k")
    assert meta.timestamp == int(clock() * 1000)
    assert meta.expires_at == meta.timestamp + 60_000
    assert not meta.is_expired
    assert meta.last_updated == "2023-11-14 22:13:20"
    assert await cache.is_valid("k")

    clock.advance(61)
    assert (await cache.get_meta("k")).is_expired
    assert not await cache.is_valid("k")
