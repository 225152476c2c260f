import asyncio
import json

import pytest
from cryptography.fernet import Fernet
from pymongo.errors import ServerSelectionTimeoutError

from giftstrack.core.config import Settings
from giftstrack.db.mongo import MongoKeyValueStore, connect_to_mongo, open_mongo_store
from giftstrack.db.storage import EncryptedKeyValueStore, JsonFileKeyValueStore, MemoryKeyValueStore


class FakeCursor:
    def __init__(self, docs):
        self._docs = list(docs)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._docs:
            raise StopAsyncIteration
        return self._docs.pop(0)


class FakeCollection:
    """The subset of Motor's collection API the store uses."""

    def __init__(self):
        self.docs = {}

    async def find_one(self, query):
        return self.docs.get(query["_id"])

    async def replace_one(self, query, doc, upsert=False):
        assert upsert
        self.docs[query["_id"]] = doc

    async def delete_one(self, query):
        self.docs.pop(query["_id"], None)

    async def delete_many(self, query):
        if not query:
            self.docs.clear()
            return
        for key in query["_id"]["$in"]:
            self.docs.pop(key, None)

    def find(self, query, projection):
        return FakeCursor({"_id": k} for k in self.docs)


class FakeAdmin:
    def __init__(self, failures):
        self.failures = failures

    async def command(self, name):
        assert name == "ping"
        if self.failures:
            self.failures.pop()
            raise ServerSelectionTimeoutError("no servers")
        return {"ok": 1}


class FakeMotorClient:
    def __init__(self, failures):
        self.admin = FakeAdmin(failures)
        self.databases = {}

    def __getitem__(self, name):
        return self.databases.setdefault(name, {"giftstrack_store": FakeCollection()})


def client_factory(failures):
    created = []

    def factory(url, **kwargs):
        client = FakeMotorClient(failures)
        created.append((url, kwargs))
        return client

    return factory, created


@pytest.fixture
def no_sleep(monkeypatch):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr("giftstrack.db.mongo.asyncio.sleep", fake_sleep)
    return delays


async def exercise(store):
    await store.set("a", "1")
    await store.set("b", "2")
    await store.set("theme_preference", "dark")
    assert await store.get("a") == "1"
    assert sorted(await store.get_all_keys()) == ["a", "b", "theme_preference"]

    await store.remove("a")
    await store.remove("a")
    await store.multi_remove(["b", "missing"])
    assert await store.get_all_keys() == ["theme_preference"]

    await store.clear()
    assert await store.get_all_keys() == []


async def test_memory_store():
    await exercise(MemoryKeyValueStore())
    assert await MemoryKeyValueStore({"k": "v"}).get("k") == "v"


async def test_file_store(tmp_path):
    await exercise(JsonFileKeyValueStore(tmp_path / "store.json"))


async def test_file_store_persists_between_instances(tmp_path):
    path = tmp_path / "nested" / "store.json"
    await JsonFileKeyValueStore(path).set("auth_token", "abc")

    assert json.loads(path.read_text()) == {"auth_token": "abc"}
    assert await JsonFileKeyValueStore(path).get("auth_token") == "abc"


async def test_file_store_overlapping_writes(tmp_path):
    path = tmp_path / "store.json"
    store = JsonFileKeyValueStore(path)
    values = {f"cache:item:{i}": str(i) * 20_000 for i in range(20)}

    await asyncio.gather(*(store.set(k, v) for k, v in values.items()))

    assert json.loads(path.read_text()) == values
    assert sorted(await JsonFileKeyValueStore(path).get_all_keys()) == sorted(values)
    assert [p.name for p in tmp_path.iterdir()] == ["store.json"]


async def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "store.json"
    path.write_text("{not json")
    store = JsonFileKeyValueStore(path)

    assert await store.get_all_keys() == []
    await store.set("k", "v")
    assert json.loads(path.read_text()) == {"k": "v"}


async def test_encrypted_store_round_trip():
    inner = MemoryKeyValueStore()
    store = EncryptedKeyValueStore(inner, Fernet.generate_key())

    await store.set("auth_token", "secret-token")

    assert await store.get("auth_token") == "secret-token"
    assert "secret-token" not in await inner.get("auth_token")

    await exercise(EncryptedKeyValueStore(MemoryKeyValueStore(), Fernet.generate_key()))


async def test_encrypted_store_wrong_key_reads_as_absent():
    inner = MemoryKeyValueStore()
    await EncryptedKeyValueStore(inner, Fernet.generate_key()).set("auth_token", "secret")

    other = EncryptedKeyValueStore(inner, Fernet.generate_key().decode())
    assert await other.get("auth_token") is None


async def test_mongo_store():
    collection = FakeCollection()
    await exercise(MongoKeyValueStore(collection))

    await MongoKeyValueStore(collection).set("k", "v")
    assert collection.docs["k"] == {"_id": "k", "value": "v"}


async def test_connect_to_mongo_retries(no_sleep):
    factory, created = client_factory(failures=[1, 1])
    config = Settings(MONGODB_URL="mongodb://db.test:27017")

    client = await connect_to_mongo(config, client_factory=factory)

    assert isinstance(client, FakeMotorClient)
    assert len(created) == 3
    assert created[0][0] == "mongodb://db.test:27017"
    assert no_sleep == [2, 4]


async def test_connect_to_mongo_gives_up(no_sleep):
    factory, created = client_factory(failures=[1, 1, 1])
    with pytest.raises(ConnectionError):
        await connect_to_mongo(Settings(), client_factory=factory)
    assert len(created) == 3


async def test_open_mongo_store(no_sleep):
    factory, _ = client_factory(failures=[])
    config = Settings(MONGODB_DB_NAME="giftstrack", MONGODB_COLLECTION="giftstrack_store")

    client, store = await open_mongo_store(config, client_factory=factory)
    await store.set("k", "v")

    assert client["giftstrack"]["giftstrack_store"].docs["k"]["value"] == "v"
