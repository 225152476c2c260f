"""
giftstrack/schemas/cache.py

Purpose: Persisted cache entry layout

- CacheEntry: the JSON blob written under each cache key
- CacheMeta: age/expiry information exposed to screens
"""

from pydantic import BaseModel, Field
from typing import Any, Optional

from giftstrack.utils.time_utils import format_timestamp


class CacheEntry(BaseModel):
    """
    Stored as {"data": ..., "timestamp": epochMillis, "ttl": millis}.
    `ttl` is absent on blobs written without one.
    """
    data: Any
    timestamp: int = Field(..., description="Epoch milliseconds when the entry was written")
    ttl: Optional[int] = Field(default=None, description="Lifetime in milliseconds")


class CacheMeta(BaseModel):
    timestamp: int
    expires_at: int
    is_expired: bool

    @property
    def last_updated(self) -> str:
        """UTC write time for "last updated" labels."""
        return format_timestamp(self.timestamp)
