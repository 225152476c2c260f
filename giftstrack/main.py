"""
giftstrack/main.py

Purpose: Client entry point

- Builds the persistent stores from configuration
- Wires monitor, session, API client, cache and master-data store
- Manages the client lifecycle (startup/shutdown)
- No business logic should be written here
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from giftstrack.core.config import settings, Settings, validate_settings
from giftstrack.core.logging import setup_logging, get_logger
from giftstrack.db.mongo import open_mongo_store
from giftstrack.db.storage import (
    EncryptedKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
)
from giftstrack.services.api_client import ApiClient
from giftstrack.services.auth_service import AuthService
from giftstrack.services.cache_service import TTLCache
from giftstrack.services.customer_service import CustomerService
from giftstrack.services.master_data_service import MasterDataService, MasterDataStore
from giftstrack.services.network_monitor import (
    ConnectivitySource,
    HealthCheckConnectivitySource,
    NetworkStatusMonitor,
)
from giftstrack.services.offline_fetch import OfflineAwareFetch
from giftstrack.services.pagination import PagedListLoader, PaginationController
from giftstrack.services.session_service import Session, TokenStore

logger = get_logger(__name__)


class ClientNotStartedError(RuntimeError):
    """Raised when a component is used before GiftsTrackClient.start()."""


class GiftsTrackClient:
    """
    Composition root.

    Every collaborator is injected or built here from settings; components are
    only reachable after start().
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        general_store: Optional[KeyValueStore] = None,
        secure_store: Optional[KeyValueStore] = None,
        connectivity_source: Optional[ConnectivitySource] = None,
        http_client=None,
    ):
        self.config = config or settings
        self._general_store = general_store
        self._secure_store = secure_store
        self._connectivity_source = connectivity_source
        self._http_client = http_client
        self._mongo_client = None
        self._started = False

        self._monitor: Optional[NetworkStatusMonitor] = None
        self._session: Optional[Session] = None
        self._api: Optional[ApiClient] = None
        self._auth: Optional[AuthService] = None
        self._cache: Optional[TTLCache] = None
        self._master_data: Optional[MasterDataStore] = None
        self._customers: Optional[CustomerService] = None

    def _require(self, component):
        if not self._started or component is None:
            raise ClientNotStartedError("GiftsTrackClient.start() has not completed")
        return component

    @property
    def monitor(self) -> NetworkStatusMonitor:
        return self._require(self._monitor)

    @property
    def session(self) -> Session:
        return self._require(self._session)

    @property
    def api(self) -> ApiClient:
        return self._require(self._api)

    @property
    def auth(self) -> AuthService:
        return self._require(self._auth)

    @property
    def cache(self) -> TTLCache:
        return self._require(self._cache)

    @property
    def master_data(self) -> MasterDataStore:
        return self._require(self._master_data)

    @property
    def customers(self) -> CustomerService:
        return self._require(self._customers)

    async def _build_general_store(self) -> KeyValueStore:
        backend = self.config.STORAGE_BACKEND
        if backend == "memory":
            return MemoryKeyValueStore()
        if backend == "mongo":
            self._mongo_client, store = await open_mongo_store(self.config)
            return store
        return JsonFileKeyValueStore(Path(self.config.STORAGE_DIR) / "storage.json")

    def _build_secure_store(self) -> KeyValueStore:
        if self.config.STORAGE_BACKEND == "memory":
            inner: KeyValueStore = MemoryKeyValueStore()
        else:
            inner = JsonFileKeyValueStore(Path(self.config.STORAGE_DIR) / "secure.json")
        if self.config.SECURE_STORAGE_KEY:
            return EncryptedKeyValueStore(inner, self.config.SECURE_STORAGE_KEY)
        logger.warning("SECURE_STORAGE_KEY not set, secure store is unencrypted")
        return inner

    async def start(self) -> None:
        """
        Startup: validate configuration, build stores, sample connectivity,
        restore the session and initialize master data.
        """
        if self._started:
            return

        logger.info("Starting giftstrack client...")
        validate_settings(self.config)

        general_store = self._general_store or await self._build_general_store()
        secure_store = self._secure_store or self._build_secure_store()

        source = self._connectivity_source or HealthCheckConnectivitySource(config=self.config)
        self._connectivity_source = source
        self._monitor = NetworkStatusMonitor(source)
        await self._monitor.start()

        self._session = Session(TokenStore(secure_store), general_store)
        self._api = ApiClient(
            token_provider=lambda: self._session.token,
            on_unauthorized=lambda: self._session.logout(reason="unauthorized"),
            client=self._http_client,
            config=self.config,
        )
        self._auth = AuthService(self._api, self._session)
        self._cache = TTLCache(general_store, default_ttl=self.config.default_cache_ttl_seconds)
        self._master_data = MasterDataStore(
            loader=MasterDataService(self._api).load_all_master_data,
            cache=self._cache,
            monitor=self._monitor,
            session=self._session,
            ttl=self.config.master_data_ttl_seconds,
            timeout=self.config.API_TIMEOUT_SECONDS,
        )
        self._customers = CustomerService(self._api, self._cache)
        self._started = True

        if await self._session.restore():
            await self._master_data.initialize()

        logger.info(f"giftstrack client started (environment: {self.config.ENVIRONMENT})")

    async def stop(self) -> None:
        if not self._started:
            return
        logger.info("Shutting down giftstrack client...")
        try:
            self._session.expiry_monitor.stop()
            self._master_data.close()
            self._monitor.stop()
            close_source = getattr(self._connectivity_source, "close", None)
            if close_source is not None:
                await close_source()
            await self._api.close()
            if self._mongo_client is not None:
                self._mongo_client.close()
                self._mongo_client = None
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)
        finally:
            self._started = False
        logger.info("giftstrack client shut down")

    def offline_fetch(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None,
        **kwargs,
    ) -> OfflineAwareFetch:
        """Builds an offline-aware fetch bound to this client's cache and monitor."""
        return OfflineAwareFetch(
            cache_key,
            fetch_fn,
            cache=self.cache,
            monitor=self.monitor,
            ttl=ttl,
            timeout=kwargs.pop("timeout", self.config.API_TIMEOUT_SECONDS),
            **kwargs,
        )

    def customer_list(self, filters: Optional[dict] = None) -> PagedListLoader:
        """Paged customer list for one filter set. Offline, it opens on the cached first page."""
        controller = PaginationController(page_size=self.config.DEFAULT_PAGE_SIZE)

        async def offline_first_page():
            if not self.monitor.is_offline:
                return None
            return await self.customers.cached_first_page(filters)

        return PagedListLoader(
            self.customers.page_fetcher(filters),
            controller,
            offline_first_page=offline_first_page,
        )

    async def login(self, username: str, password: str) -> dict:
        """Signs in, then loads master data for the new session."""
        user = await self.auth.login(username, password)
        await self.master_data.initialize()
        return user

    async def logout(self) -> None:
        await self.auth.logout()

    @asynccontextmanager
    async def lifespan(self):
        """
        Client lifespan manager.
        Handles startup and shutdown.
        """
        try:
            await self.start()
        except Exception as e:
            logger.critical(f"Failed to start client: {e}", exc_info=True)
            raise
        try:
            yield self
        finally:
            await self.stop()


def create_client(config: Optional[Settings] = None, **kwargs) -> GiftsTrackClient:
    """Configures logging and returns an unstarted client."""
    config = config or settings
    setup_logging(config)
    return GiftsTrackClient(config=config, **kwargs)
