"""
giftstrack/db/mongo.py

Purpose: MongoDB-backed persistent store

- Initializes a Motor client with retry logic
- Exposes a KeyValueStore over a single collection of {_id: key, value} documents
- Proper connection lifecycle management
"""

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from typing import Iterable, List, Optional
import asyncio
from giftstrack.core.config import settings, Settings
from giftstrack.core.logging import get_logger

logger = get_logger(__name__)


class MongoKeyValueStore:
    """
    KeyValueStore over a Motor collection.

    Each key is one document: {"_id": key, "value": str}.
    """

    def __init__(self, collection) -> None:
        self._collection = collection

    async def get(self, key: str) -> Optional[str]:
        doc = await self._collection.find_one({"_id": key})
        if not doc:
            return None
        value = doc.get("value")
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str) -> None:
        await self._collection.replace_one({"_id": key}, {"_id": key, "value": value}, upsert=True)

    async def remove(self, key: str) -> None:
        await self._collection.delete_one({"_id": key})

    async def multi_remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if keys:
            await self._collection.delete_many({"_id": {"$in": keys}})

    async def get_all_keys(self) -> List[str]:
        cursor = self._collection.find({}, {"_id": 1})
        return [doc["_id"] async for doc in cursor]

    async def clear(self) -> None:
        await self._collection.delete_many({})


async def connect_to_mongo(config: Optional[Settings] = None, client_factory=AsyncIOMotorClient) -> AsyncIOMotorClient:
    """
    Establishes a connection to MongoDB with retry logic.

    Args:
        config: Settings to read the URL from (defaults to global settings)
        client_factory: Callable building the Motor client

    Returns:
        Connected AsyncIOMotorClient

    Raises:
        ConnectionError: If all attempts fail
    """
    config = config or settings
    max_retries = 3
    retry_delay = 2

    for attempt in range(1, max_retries + 1):
        try:
            logger.info(f"Attempting to connect to MongoDB (attempt {attempt}/{max_retries})")
            client = client_factory(
                config.MONGODB_URL,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000,
                retryWrites=True,
                retryReads=True,
            )
            await client.admin.command("ping")
            logger.info(f"Connected to MongoDB: {config.MONGODB_DB_NAME}")
            return client

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(f"Failed to connect to MongoDB (attempt {attempt}/{max_retries}): {e}")
            if attempt < max_retries:
                logger.info(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay *= 2
            else:
                logger.critical("Failed to connect to MongoDB after all retries")
                raise ConnectionError("Could not establish MongoDB connection") from e

    raise ConnectionError("Could not establish MongoDB connection")


async def open_mongo_store(config: Optional[Settings] = None, client_factory=AsyncIOMotorClient):
    """
    Connects and returns (client, store) for the configured collection.
    """
    config = config or settings
    client = await connect_to_mongo(config, client_factory=client_factory)
    collection = client[config.MONGODB_DB_NAME][config.MONGODB_COLLECTION]
    return client, MongoKeyValueStore(collection)
