"""
giftstrack/services/network_monitor.py

Purpose: Live connectivity state

- Samples the platform connectivity source once on start
- Applies every change event atomically to an immutable snapshot
- Broadcasts snapshots to read-only listeners
- HealthCheckConnectivitySource: httpx-based source probing the API health endpoint
"""

import asyncio
from typing import Callable, List, Optional, Protocol

import httpx

from giftstrack.core.config import settings, Settings
from giftstrack.core.logging import get_logger
from giftstrack.schemas.connectivity import ConnectivityState

logger = get_logger(__name__)

ConnectivityListener = Callable[[ConnectivityState], None]
Unsubscribe = Callable[[], None]


class ConnectivitySource(Protocol):
    """Platform connectivity provider."""

    async def read(self) -> ConnectivityState: ...

    def subscribe(self, callback: ConnectivityListener) -> Unsubscribe: ...


class NetworkStatusMonitor:
    """
    Single broadcast source of connectivity state.

    Consumers read `state` (an immutable snapshot) or subscribe; none of them
    can mutate it.
    """

    def __init__(self, source: ConnectivitySource):
        self._source = source
        self._state = ConnectivityState()
        self._listeners: List[ConnectivityListener] = []
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def is_online(self) -> bool:
        return self._state.is_online

    @property
    def is_offline(self) -> bool:
        return not self._state.is_online

    @property
    def is_started(self) -> bool:
        return self._unsubscribe is not None

    async def start(self) -> ConnectivityState:
        """
        Samples the initial state and subscribes to change events.

        If the source cannot be read, the device is assumed connected.
        """
        if self._unsubscribe is not None:
            return self._state
        try:
            initial = await self._source.read()
        except Exception as e:
            logger.error(f"Connectivity source unavailable, assuming connected: {e}")
            initial = ConnectivityState(is_connected=True, is_internet_reachable=True)
        self._apply(initial)
        self._unsubscribe = self._source.subscribe(self._apply)
        logger.info(
            "Network monitor started",
            extra={"state": "online" if self.is_online else "offline"},
        )
        return self._state

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
            logger.debug("Network monitor stopped")

    def subscribe(self, listener: ConnectivityListener) -> Unsubscribe:
        """
        Registers a listener called with every new snapshot.

        Returns:
            Callable removing the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def check_connection(self) -> bool:
        """
        Samples the source on demand without touching the broadcast state.

        Returns True when the sample cannot be taken.
        """
        try:
            sample = await self._source.read()
        except Exception as e:
            logger.warning(f"Connectivity check failed, assuming connected: {e}")
            return True
        return sample.is_online

    def _apply(self, event: ConnectivityState) -> None:
        was_online = self._state.is_online
        self._state = self._state.merge(event)
        if self._state.is_online != was_online:
            logger.info(
                f"Connectivity changed: {'online' if self._state.is_online else 'offline'}",
                extra={"state": "online" if self._state.is_online else "offline"},
            )
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception as e:
                logger.error(f"Connectivity listener failed: {e}", exc_info=True)


class HealthCheckConnectivitySource:
    """
    Connectivity source for environments without a platform API.

    A GET to the health endpoint that gets any HTTP response means the API is
    reachable; a transport failure means it is not. While subscribers exist
    the endpoint is polled every CONNECTIVITY_POLL_SECONDS.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[Settings] = None,
    ):
        self._config = config or settings
        self._client = client
        self._owns_client = client is None
        self._listeners: List[ConnectivityListener] = []
        self._poll_task: Optional[asyncio.Task] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.API_BASE_URL,
                timeout=self._config.API_TIMEOUT_SECONDS,
            )
        return self._client

    async def read(self) -> ConnectivityState:
        try:
            await self._get_client().get(self._config.HEALTH_CHECK_PATH)
        except httpx.TransportError as e:
            logger.debug(f"Health probe failed: {e}")
            return ConnectivityState(is_connected=False, is_internet_reachable=False, type="none")
        return ConnectivityState(is_connected=True, is_internet_reachable=True, type="http")

    def subscribe(self, callback: ConnectivityListener) -> Unsubscribe:
        self._listeners.append(callback)
        if self._poll_task is None:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll())

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)
            if not self._listeners and self._poll_task is not None:
                self._poll_task.cancel()
                self._poll_task = None

        return unsubscribe

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._config.CONNECTIVITY_POLL_SECONDS)
            state = await self.read()
            for callback in list(self._listeners):
                callback(state)

    async def close(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
