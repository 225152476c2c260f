"""
giftstrack/services/customer_service.py

Purpose: Customer list access

- Paginated reads of /api/customers with filters
- Page-1 results cached per filter set for offline display
- Prefix invalidation of cached lists after writes
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional

from giftstrack.core.config import settings
from giftstrack.core.logging import get_logger
from giftstrack.services.api_client import ApiClient
from giftstrack.services.cache_service import TTLCache
from giftstrack.services.pagination import Page
from giftstrack.utils.constants import CUSTOMERS, CUSTOMER_LIST_CACHE_PREFIX

logger = get_logger(__name__)

# Query parameters accepted by the customers endpoint
FILTER_FIELDS = (
    "search",
    "stateId",
    "districtId",
    "cityId",
    "eventId",
    "eventDate",
    "careOfId",
    "invitationStatusId",
    "giftStatus",
)


def clean_filters(filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Drops unknown and empty filters."""
    return {k: v for k, v in (filters or {}).items() if k in FILTER_FIELDS and v not in (None, "")}


def customer_list_cache_key(filters: Optional[Dict[str, Any]] = None) -> str:
    cleaned = clean_filters(filters)
    if not cleaned:
        return CUSTOMER_LIST_CACHE_PREFIX
    suffix = "&".join(f"{k}={cleaned[k]}" for k in sorted(cleaned))
    return f"{CUSTOMER_LIST_CACHE_PREFIX}?{suffix}"


class CustomerService:

    def __init__(self, api: ApiClient, cache: Optional[TTLCache] = None):
        self._api = api
        self._cache = cache

    async def get_page(
        self,
        page: int,
        per_page: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> Page[Dict[str, Any]]:
        """
        Fetches one page of customers.

        Returns:
            Page with items, total and has_more taken from the response meta
        """
        params = {**clean_filters(filters), "page": page, "perPage": per_page}
        data = await self._api.get_data(CUSTOMERS, params=params)

        if isinstance(data, list):
            # Unpaginated fallback: the whole list in one page
            return Page(items=data, total=len(data), has_more=False)

        items: List[Dict[str, Any]] = list((data or {}).get("data") or [])
        meta = (data or {}).get("meta") or {}
        has_next = meta.get("has_next")
        return Page(
            items=items,
            total=meta.get("total"),
            has_more=bool(has_next) if has_next is not None else None,
        )

    def page_fetcher(
        self, filters: Optional[Dict[str, Any]] = None
    ) -> Callable[[int, int], Awaitable[Page[Dict[str, Any]]]]:
        """
        Page fetcher for a PagedListLoader. First pages are cached under
        the filter set's key.
        """
        cache_key = customer_list_cache_key(filters)

        async def fetch(page: int, per_page: int) -> Page[Dict[str, Any]]:
            result = await self.get_page(page, per_page, filters)
            if page == 1 and self._cache is not None:
                await self._cache.set(
                    cache_key,
                    {"items": result.items, "total": result.total, "has_more": result.has_more},
                    ttl=settings.customer_list_ttl_seconds,
                )
            return result

        return fetch

    async def cached_first_page(self, filters: Optional[Dict[str, Any]] = None) -> Optional[Page[Dict[str, Any]]]:
        if self._cache is None:
            return None
        cached = await self._cache.get(
            customer_list_cache_key(filters),
            lambda d: isinstance(d, dict) and isinstance(d.get("items"), list),
        )
        if cached is None:
            return None
        return Page(items=cached["items"], total=cached.get("total"), has_more=cached.get("has_more"))

    async def invalidate_lists(self) -> int:
        """Removes every cached customer list page. Call after customer writes."""
        if self._cache is None:
            return 0
        return await self._cache.invalidate_by_prefix(CUSTOMER_LIST_CACHE_PREFIX)
