import base64
import json

import pytest

from giftstrack.db.storage import MemoryKeyValueStore
from giftstrack.schemas.connectivity import ConnectivityState
from giftstrack.services.cache_service import TTLCache
from giftstrack.services.network_monitor import NetworkStatusMonitor

NOW = 1_700_000_000.0

MASTER_PAYLOAD = {
    "states": [{"id": 1, "name": "Gujarat"}, {"id": 2, "name": "Maharashtra"}],
    "districts": [
        {"id": 10, "name": "Surat", "state_id": 1},
        {"id": 11, "name": "Vadodara", "state_id": 1},
        {"id": 20, "name": "Pune", "state_id": 2},
    ],
    "cities": [{"id": 100, "name": "Bardoli", "district_id": 10}],
    "eventTypes": [
        {"id": 1, "name": "Wedding", "isDefault": False},
        {"id": 2, "name": "Engagement", "isDefault": True},
    ],
    "giftTypes": [{"id": 1, "name": "Cash"}],
    "invitationStatus": [{"id": 1, "name": "Invited", "isDefault": True}],
    "careOfOptions": [{"id": 1, "name": "Self"}],
}

# Master data endpoint path -> payload key
ROUTES = {
    "/api/master/states": "states",
    "/api/master/districts": "districts",
    "/api/master/cities": "cities",
    "/api/master/event-types": "eventTypes",
    "/api/master/gift-types": "giftTypes",
    "/api/master/invitation-status": "invitationStatus",
    "/api/master/care-of-options": "careOfOptions",
}


def _segment(obj) -> str:
    raw = obj if isinstance(obj, bytes) else json.dumps(obj).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class FakeClock:
    """Epoch-seconds clock advanced by hand."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeConnectivitySource:
    """In-memory platform connectivity source."""

    def __init__(self, connected=True, reachable=True, type="wifi", fail=False):
        self.state = ConnectivityState(is_connected=connected, is_internet_reachable=reachable, type=type)
        self.fail = fail
        self.listeners = []
        self.reads = 0

    async def read(self) -> ConnectivityState:
        self.reads += 1
        if self.fail:
            raise RuntimeError("connectivity unavailable")
        return self.state

    def subscribe(self, callback):
        self.listeners.append(callback)
        return lambda: self.listeners.remove(callback)

    def emit(self, **fields) -> None:
        event = ConnectivityState(**fields)
        self.state = self.state.merge(event)
        for callback in list(self.listeners):
            callback(event)


@pytest.fixture
def make_token():
    def _make(payload, header=None) -> str:
        return f"{_segment(header or {'alg': 'HS256', 'typ': 'JWT'})}.{_segment(payload)}.signature"

    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def cache(store, clock):
    return TTLCache(store, default_ttl=24 * 3600, clock=clock)


@pytest.fixture
def source():
    return FakeConnectivitySource()


@pytest.fixture
async def monitor(source):
    monitor = NetworkStatusMonitor(source)
    await monitor.start()
    yield monitor
    monitor.stop()


@pytest.fixture
async def offline_monitor():
    monitor = NetworkStatusMonitor(FakeConnectivitySource(connected=False, reachable=False, type="none"))
    await monitor.start()
    yield monitor
    monitor.stop()
