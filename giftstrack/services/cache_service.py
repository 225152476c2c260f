"""
giftstrack/services/cache_service.py

Purpose: TTL-bound cache over the persistent store

- Stores values as {"data", "timestamp", "ttl"} JSON blobs
- Reads purge entries that are expired, corrupt or rejected by their validator
- Unconditional overwrite and removal (last write to complete wins)
- Prefix invalidation and metadata for "last updated" indicators
"""

import json
import time
from typing import Any, Callable, Optional, Type

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from giftstrack.core.config import settings
from giftstrack.core.logging import get_logger
from giftstrack.db.storage import KeyValueStore
from giftstrack.schemas.cache import CacheEntry, CacheMeta
from giftstrack.utils.time_utils import now_ms, seconds_to_ms, is_entry_expired

logger = get_logger(__name__)

Validator = Callable[[Any], bool]

_json_adapter = TypeAdapter(Any)


def model_validator(model: Type[BaseModel]) -> Validator:
    """
    Builds a cache validator accepting data that parses as `model`.
    """
    def validate(data: Any) -> bool:
        try:
            model.model_validate(data)
        except PydanticValidationError:
            return False
        return True

    return validate


class TTLCache:
    """Generic cache with per-entry TTLs and validators."""

    def __init__(
        self,
        store: KeyValueStore,
        default_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            store: Persistent key-value store shared with the rest of the client
            default_ttl: Seconds applied when neither the write nor the blob names a TTL
            clock: Epoch-seconds clock
        """
        self._store = store
        self._default_ttl_ms = seconds_to_ms(
            settings.default_cache_ttl_seconds if default_ttl is None else default_ttl
        )
        self._clock = clock

    def _now_ms(self) -> int:
        return now_ms(self._clock)

    async def _read_entry(self, key: str) -> Optional[CacheEntry]:
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate(json.loads(raw))
        except (ValueError, PydanticValidationError):
            logger.warning("Corrupt cache entry purged", extra={"cache_key": key})
            await self._store.remove(key)
            return None

    def _ttl_ms(self, entry: CacheEntry) -> int:
        return self._default_ttl_ms if entry.ttl is None else entry.ttl

    async def get(self, key: str, validator: Optional[Validator] = None) -> Optional[Any]:
        """
        Retrieves a cached value.

        Args:
            key: Cache key
            validator: Predicate the stored data must satisfy

        Returns:
            The stored data, or None if never set, expired or invalid
        """
        entry = await self._read_entry(key)
        if entry is None:
            logger.debug("Cache miss", extra={"cache_key": key})
            return None

        if is_entry_expired(entry.timestamp, self._ttl_ms(entry), self._now_ms()):
            logger.debug("Cache entry expired", extra={"cache_key": key})
            await self._store.remove(key)
            return None

        if validator is not None and not validator(entry.data):
            logger.warning("Cache entry failed validation, purged", extra={"cache_key": key})
            await self._store.remove(key)
            return None

        logger.debug("Cache hit", extra={"cache_key": key})
        return entry.data

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Overwrites the entry for `key`.

        Args:
            key: Cache key
            value: JSON-serializable value or pydantic model(s), stored by alias
            ttl: Lifetime in seconds (defaults to the cache's default TTL)
        """
        entry = CacheEntry(
            data=_json_adapter.dump_python(value, mode="json", by_alias=True),
            timestamp=self._now_ms(),
            ttl=self._default_ttl_ms if ttl is None else seconds_to_ms(ttl),
        )
        await self._store.set(key, entry.model_dump_json())
        logger.debug("Cache entry written", extra={"cache_key": key})

    async def invalidate(self, key: str) -> None:
        await self._store.remove(key)
        logger.debug("Cache entry invalidated", extra={"cache_key": key})

    async def invalidate_by_prefix(self, prefix: str) -> int:
        """
        Removes every entry whose key starts with `prefix`.

        Returns:
            Number of keys removed
        """
        keys = [k for k in await self._store.get_all_keys() if k.startswith(prefix)]
        if keys:
            await self._store.multi_remove(keys)
        logger.info(f"Invalidated {len(keys)} cache entries", extra={"cache_key": prefix})
        return len(keys)

    async def is_valid(self, key: str) -> bool:
        """True when an unexpired entry exists. Does not purge."""
        meta = await self.get_meta(key)
        return meta is not None and not meta.is_expired

    async def get_meta(self, key: str) -> Optional[CacheMeta]:
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            entry = CacheEntry.model_validate(json.loads(raw))
        except (ValueError, PydanticValidationError):
            return None
        expires_at = entry.timestamp + self._ttl_ms(entry)
        return CacheMeta(
            timestamp=entry.timestamp,
            expires_at=expires_at,
            is_expired=is_entry_expired(entry.timestamp, self._ttl_ms(entry), self._now_ms()),
        )
