"""
giftstrack/services/offline_fetch.py

Purpose: Offline-aware fetch over the TTL cache

- Offline: serve the cache, never touch the network
- Online: fetch, overwrite the cache, fall back to the cache on failure
- Refresh invalidates the cache entry before fetching
- Results arriving after teardown are dropped
"""

import asyncio
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from giftstrack.core.config import settings
from giftstrack.core.errors import describe_error, normalize_exception
from giftstrack.core.exceptions import CacheMissError, GiftsTrackError
from giftstrack.core.logging import get_logger
from giftstrack.services.cache_service import TTLCache, Validator
from giftstrack.services.network_monitor import NetworkStatusMonitor
from giftstrack.services.request_guard import MountGuard
from giftstrack.utils.constants import OFFLINE_NO_CACHE_MESSAGE

logger = get_logger(__name__)

T = TypeVar("T")


class OfflineAwareFetch(Generic[T]):
    """
    Fetch state for one cache key.

    Exposes data, is_loading, error, is_from_cache and is_cache_valid.
    Overlapping calls are tolerated; the last call to complete sets the
    final state.
    """

    def __init__(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        *,
        cache: TTLCache,
        monitor: NetworkStatusMonitor,
        ttl: Optional[float] = None,
        validator: Optional[Validator] = None,
        parse: Optional[Callable[[Any], T]] = None,
        on_error: Optional[Callable[[GiftsTrackError], None]] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            cache_key: Key of the cached value in the persistent store
            fetch_fn: Remote read; raises on failure
            cache: Shared TTL cache
            monitor: Network status monitor consulted before every fetch
            ttl: Cache lifetime in seconds (cache default when None)
            validator: Predicate cached data must satisfy
            parse: Converts cached JSON data back into T
            on_error: Called with the normalized error of a failed fetch
            timeout: Client-side timeout for fetch_fn in seconds
        """
        self.cache_key = cache_key
        self._fetch_fn = fetch_fn
        self._cache = cache
        self._monitor = monitor
        self._ttl = ttl
        self._validator = validator
        self._parse = parse
        self._on_error = on_error
        self._timeout = settings.API_TIMEOUT_SECONDS if timeout is None else timeout
        self._guard = MountGuard()
        self._mounted = False

        self.data: Optional[T] = None
        self.is_loading = False
        self.error: Optional[str] = None
        self.is_from_cache = False
        self.is_cache_valid = False

    @property
    def is_active(self) -> bool:
        return self._guard.is_active

    async def _read_cache(self) -> Optional[T]:
        raw = await self._cache.get(self.cache_key, self._validator)
        if raw is None or self._parse is None:
            return raw
        try:
            return self._parse(raw)
        except PydanticValidationError:
            logger.warning("Cached value failed to parse, purged", extra={"cache_key": self.cache_key})
            await self._cache.invalidate(self.cache_key)
            return None

    async def load_from_cache(self) -> Optional[T]:
        """
        Reads the cache and, on a hit, publishes it as the current data.
        """
        cached = await self._read_cache()
        if not self._guard.is_active:
            return None
        if cached is not None:
            self.data = cached
            self.is_from_cache = True
            self.is_cache_valid = True
        return cached

    async def fetch(self) -> Optional[T]:
        """
        Returns fresh data when online, cached data otherwise.

        Returns:
            The value now held in `data`, or None when nothing is available
        """
        if self._monitor.is_offline:
            cached = await self.load_from_cache()
            if cached is None and self._guard.is_active:
                self.error = OFFLINE_NO_CACHE_MESSAGE
                logger.info("Offline with no cached data", extra={"cache_key": self.cache_key})
            elif cached is not None:
                self.error = None
            return cached

        self.is_loading = True
        self.error = None
        try:
            result = await asyncio.wait_for(self._fetch_fn(), timeout=self._timeout)
        except Exception as e:
            return await self._handle_failure(e)
        finally:
            if self._guard.is_active:
                self.is_loading = False

        if not self._guard.is_active:
            return None

        self.data = result
        self.is_from_cache = False
        self.is_cache_valid = True
        await self._cache.set(self.cache_key, result, ttl=self._ttl)
        return result

    async def _handle_failure(self, exc: Exception) -> Optional[T]:
        error = normalize_exception(exc)
        logger.warning(
            f"Fetch failed, falling back to cache: {error.message}",
            extra={"cache_key": self.cache_key},
        )
        if self._on_error is not None:
            self._on_error(error)

        cached = await self.load_from_cache()
        if not self._guard.is_active:
            return None
        if cached is None:
            self.error = describe_error(error)
            return None
        self.error = None
        return cached

    async def refresh(self) -> Optional[T]:
        """Invalidates the cache entry, then fetches."""
        await self._cache.invalidate(self.cache_key)
        self.is_cache_valid = False
        return await self.fetch()

    async def clear_cache(self) -> None:
        await self._cache.invalidate(self.cache_key)
        self.is_cache_valid = False

    async def mount(self) -> Optional[T]:
        """
        Initial load. Runs once per instance.

        Reads the cache first; a hit while offline skips the network,
        otherwise fetch() runs whether or not the cache hit.
        """
        if self._mounted:
            return self.data
        self._mounted = True

        cached = await self.load_from_cache()
        if not self._guard.is_active:
            return None
        if cached is not None and self._monitor.is_offline:
            return cached
        return await self.fetch()

    def teardown(self) -> None:
        """Drops every result that resolves from now on."""
        self._guard.teardown()

    def raise_for_error(self) -> None:
        """Raises CacheMissError when the last call left nothing to show."""
        if self.data is None and self.error is not None:
            raise CacheMissError(self.error)
