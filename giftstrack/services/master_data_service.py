"""
giftstrack/services/master_data_service.py

Purpose: Reference ("master") data

- MasterDataService: remote reads for the seven collections, bulk load,
  superadmin category management
- MasterDataStore: cached aggregate with a strict all-or-nothing validator,
  derived lookups, and session binding (cleared on logout)
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from giftstrack.core.config import settings
from giftstrack.core.errors import describe_error
from giftstrack.core.exceptions import ValidationError
from giftstrack.core.logging import get_logger
from giftstrack.schemas.master_data import (
    EDITABLE_CATEGORIES,
    City,
    District,
    MasterData,
    MasterDataCategory,
    MasterDataItem,
    MasterDataItemPayload,
    State,
    is_valid_master_data,
)
from giftstrack.services.api_client import ApiClient
from giftstrack.services.cache_service import TTLCache
from giftstrack.services.network_monitor import NetworkStatusMonitor
from giftstrack.services.session_service import Session
from giftstrack.utils import constants

logger = get_logger(__name__)

Id = Union[int, str]

CATEGORY_ENDPOINTS: Dict[MasterDataCategory, str] = {
    MasterDataCategory.STATES: constants.MASTER_STATES,
    MasterDataCategory.DISTRICTS: constants.MASTER_DISTRICTS,
    MasterDataCategory.CITIES: constants.MASTER_CITIES,
    MasterDataCategory.EVENT_TYPES: constants.MASTER_EVENT_TYPES,
    MasterDataCategory.GIFT_TYPES: constants.MASTER_GIFT_TYPES,
    MasterDataCategory.INVITATION_STATUS: constants.MASTER_INVITATION_STATUS,
    MasterDataCategory.CARE_OF_OPTIONS: constants.MASTER_CARE_OF_OPTIONS,
}


def _items(data: Any) -> List[Any]:
    if not isinstance(data, list):
        raise ValidationError("Master data collection is not a list", details=type(data).__name__)
    return data


def _payload(name: str) -> Dict[str, Any]:
    return MasterDataItemPayload(name=name).model_dump(by_alias=True, exclude_none=True)


class MasterDataService:
    """Remote master data endpoints."""

    def __init__(self, api: ApiClient):
        self._api = api

    async def get_states(self) -> List[State]:
        data = await self._api.get_data(constants.MASTER_STATES)
        return [State.model_validate(item) for item in _items(data)]

    async def get_districts(self, state_id: Optional[Id] = None) -> List[District]:
        params = {"stateId": state_id} if state_id else None
        data = await self._api.get_data(constants.MASTER_DISTRICTS, params=params)
        return [District.model_validate(item) for item in _items(data)]

    async def get_cities(self, district_id: Optional[Id] = None) -> List[City]:
        params = {"districtId": district_id} if district_id else None
        data = await self._api.get_data(constants.MASTER_CITIES, params=params)
        return [City.model_validate(item) for item in _items(data)]

    async def _get_items(self, category: MasterDataCategory) -> List[MasterDataItem]:
        data = await self._api.get_data(CATEGORY_ENDPOINTS[category])
        return [MasterDataItem.model_validate(item) for item in _items(data)]

    async def get_event_types(self) -> List[MasterDataItem]:
        return await self._get_items(MasterDataCategory.EVENT_TYPES)

    async def get_gift_types(self) -> List[MasterDataItem]:
        return await self._get_items(MasterDataCategory.GIFT_TYPES)

    async def get_invitation_status(self) -> List[MasterDataItem]:
        return await self._get_items(MasterDataCategory.INVITATION_STATUS)

    async def get_care_of_options(self) -> List[MasterDataItem]:
        return await self._get_items(MasterDataCategory.CARE_OF_OPTIONS)

    async def load_all_master_data(self) -> MasterData:
        """
        Loads all seven collections concurrently.

        The aggregate is assembled only once every read has completed.

        Raises:
            The first failure among the seven reads
        """
        results = await asyncio.gather(
            self.get_states(),
            self.get_districts(),
            self.get_cities(),
            self.get_event_types(),
            self.get_gift_types(),
            self.get_invitation_status(),
            self.get_care_of_options(),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.error(f"Master data load failed: {len(failures)} of 7 collections")
            raise failures[0]

        states, districts, cities, event_types, gift_types, invitation_status, care_of_options = results
        return MasterData(
            states=states,
            districts=districts,
            cities=cities,
            event_types=event_types,
            gift_types=gift_types,
            invitation_status=invitation_status,
            care_of_options=care_of_options,
        )

    # Superadmin management of editable categories

    @staticmethod
    def _editable_endpoint(category: MasterDataCategory) -> str:
        category = MasterDataCategory(category)
        if category not in EDITABLE_CATEGORIES:
            raise ValueError(f"Category is not editable: {category.value}")
        return CATEGORY_ENDPOINTS[category]

    async def get_all_by_category(self, category: MasterDataCategory) -> List[MasterDataItem]:
        """All items of a category, including inactive ones."""
        data = await self._api.get_data(self._editable_endpoint(category), params={"all": 1})
        return [MasterDataItem.model_validate(item) for item in _items(data)]

    async def create_by_category(self, category: MasterDataCategory, name: str) -> MasterDataItem:
        response = await self._api.post(self._editable_endpoint(category), json=_payload(name))
        return self._item_from(response)

    async def update_by_category(self, category: MasterDataCategory, item_id: Id, name: str) -> MasterDataItem:
        response = await self._api.put(
            self._editable_endpoint(category), json=_payload(name), params={"id": item_id}
        )
        return self._item_from(response)

    async def toggle_active_by_category(self, category: MasterDataCategory, item_id: Id) -> MasterDataItem:
        response = await self._api.patch(self._editable_endpoint(category), params={"id": item_id})
        return self._item_from(response)

    async def set_default_by_category(self, category: MasterDataCategory, item_id: Id) -> MasterDataItem:
        response = await self._api.patch(
            self._editable_endpoint(category), params={"id": item_id, "action": "set-default"}
        )
        return self._item_from(response)

    async def delete_by_category(self, category: MasterDataCategory, item_id: Id) -> None:
        response = await self._api.delete(self._editable_endpoint(category), params={"id": item_id})
        if not response.success:
            raise ValidationError(response.message or "Delete failed", details=response.errors)

    @staticmethod
    def _item_from(response) -> MasterDataItem:
        if not response.success or not isinstance(response.data, dict):
            raise ValidationError(response.message or "Unexpected master data response", details=response.errors)
        return MasterDataItem.model_validate(response.data)


def validate_cached_master_data(data: Any) -> bool:
    """All seven collections present as lists, and every item parses."""
    if not is_valid_master_data(data):
        return False
    try:
        MasterData.model_validate(data)
    except PydanticValidationError:
        return False
    return True


class MasterDataStore:
    """
    Session-bound cache of the master data aggregate.

    Holds either a complete aggregate or None; a failed load never replaces
    what is already held.
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[MasterData]],
        cache: TTLCache,
        monitor: NetworkStatusMonitor,
        session: Optional[Session] = None,
        ttl: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self._loader = loader
        self._cache = cache
        self._monitor = monitor
        self._ttl = settings.master_data_ttl_seconds if ttl is None else ttl
        self._timeout = settings.API_TIMEOUT_SECONDS if timeout is None else timeout
        # Bumped on clear(); loads started before a clear drop their result
        self._epoch = 0

        self.master_data: Optional[MasterData] = None
        self.is_loading = False
        self.error: Optional[str] = None

        self._remove_listener = session.add_logout_listener(self.clear) if session else None

    async def _read_cache(self) -> Optional[MasterData]:
        raw = await self._cache.get(constants.MASTER_DATA_CACHE_KEY, validate_cached_master_data)
        return MasterData.model_validate(raw) if raw is not None else None

    async def initialize(self) -> Optional[MasterData]:
        """
        Uses a valid cached aggregate without touching the network;
        otherwise loads from the API.
        """
        epoch = self._epoch
        cached = await self._read_cache()
        if epoch != self._epoch:
            return None
        if cached is not None:
            self.master_data = cached
            logger.info("Master data loaded from cache")
            return cached
        return await self.load_master_data()

    async def load_master_data(self) -> Optional[MasterData]:
        """
        Loads the aggregate from the API and caches it.

        On failure `error` is set and the held aggregate is left untouched.
        There is no automatic retry.
        """
        epoch = self._epoch
        if self._monitor.is_offline:
            if self.master_data is None:
                self.error = constants.OFFLINE_NO_CACHE_MESSAGE
            logger.info("Offline, master data not loaded", extra={"reason": "offline"})
            return self.master_data

        self.is_loading = True
        self.error = None
        try:
            data = await asyncio.wait_for(self._loader(), timeout=self._timeout)
        except Exception as e:
            if epoch == self._epoch:
                self.error = describe_error(e)
            logger.error(f"{constants.MASTER_DATA_FAILED_MESSAGE}: {e}")
            return self.master_data
        finally:
            if epoch == self._epoch:
                self.is_loading = False

        if epoch != self._epoch:
            logger.debug("Master data result dropped after session clear")
            return None

        self.master_data = data
        await self._cache.set(constants.MASTER_DATA_CACHE_KEY, data, ttl=self._ttl)
        logger.info("Master data loaded from API")
        return data

    async def refresh_master_data(self) -> Optional[MasterData]:
        """Discards the cached entry and reloads."""
        await self._cache.invalidate(constants.MASTER_DATA_CACHE_KEY)
        return await self.load_master_data()

    async def clear(self) -> None:
        """
        Drops the in-memory aggregate and its cached entry unconditionally.
        """
        self._epoch += 1
        self.master_data = None
        self.error = None
        self.is_loading = False
        await self._cache.invalidate(constants.MASTER_DATA_CACHE_KEY)
        logger.info("Master data cleared")

    def close(self) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None

    def districts_by_state(self, state_id: Id) -> List[District]:
        if not self.master_data:
            return []
        return [d for d in self.master_data.districts if d.state_id == state_id]

    def cities_by_district(self, district_id: Id) -> List[City]:
        if not self.master_data:
            return []
        return [c for c in self.master_data.cities if c.district_id == district_id]

    def get_default_id(self, category: MasterDataCategory) -> Optional[Id]:
        """Id of the item flagged as default in `category`, if any."""
        if not self.master_data:
            return None
        for item in self.master_data.collection(category):
            if item.is_default:
                return item.id
        return None
