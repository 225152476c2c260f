import asyncio

import pytest

from giftstrack.core.exceptions import NetworkError
from giftstrack.flow.states import ListState, get_state_metadata, is_valid_transition
from giftstrack.services.pagination import Page, PagedListLoader, PaginationController


class FakePages:
    """Page fetcher over a fixed list of records, optionally gated."""

    def __init__(self, total=45, gated=False):
        self.records = [{"id": i} for i in range(1, total + 1)]
        self.calls = []
        self.gates = {}
        self.gated = gated
        self.fail_pages = set()

    async def __call__(self, page, per_page):
        self.calls.append(page)
        if self.gated:
            gate = self.gates.setdefault(len(self.calls), asyncio.Event())
            await gate.wait()
        if page in self.fail_pages:
            raise NetworkError()
        start = (page - 1) * per_page
        return Page(items=self.records[start:start + per_page], total=len(self.records))

    def release(self, call_number):
        self.gates.setdefault(call_number, asyncio.Event()).set()


def test_controller_initial_state():
    controller = PaginationController(page_size=20)
    state = controller.state
    assert state.items == []
    assert state.page == 1
    assert state.has_more
    assert controller.phase == ListState.IDLE
    assert controller.can_load_more


def test_append_preserves_order_without_dedup():
    controller = PaginationController()
    controller.set_data([1, 2, 3], total=8)
    controller.append_data([3, 4])
    controller.append_data([5, 6, 7], has_more=False)

    assert controller.state.items == [1, 2, 3, 3, 4, 5, 6, 7]
    assert controller.state.total == 8
    assert not controller.state.has_more
    assert not controller.can_load_more


def test_set_data_defaults_total_to_item_count():
    controller = PaginationController()
    controller.set_data(["a", "b"])
    assert controller.state.total == 2
    assert controller.phase == ListState.LOADED


@pytest.mark.parametrize(
    "flags",
    [{"is_loading": True}, {"is_loading_more": True}, {"has_more": False}],
)
def test_load_more_guard(flags):
    controller = PaginationController()
    controller.set_data([1])
    controller._update(**flags)
    assert controller.request_load_more() is None
    assert controller.state.page == 1


def test_request_load_more_claims_next_page():
    controller = PaginationController()
    controller.set_data([1])
    assert controller.request_load_more() == 2
    assert controller.state.is_loading_more
    assert controller.phase == ListState.LOADING_MORE
    assert controller.request_load_more() is None


def test_refresh_resets_page_and_keeps_items():
    controller = PaginationController()
    controller.set_data([1, 2], has_more=False)
    controller.next_page()
    controller.next_page()

    controller.start_refresh()

    assert controller.state.page == 1
    assert controller.state.items == [1, 2]
    assert controller.state.is_refreshing
    assert controller.phase == ListState.REFRESHING

    controller.set_data([9])
    assert controller.state.items == [9]
    assert not controller.state.is_refreshing


def test_previous_page_stops_at_initial_page():
    controller = PaginationController(initial_page=1)
    assert controller.previous_page() == 1
    controller.next_page()
    assert controller.previous_page() == 1


def test_set_error_clears_busy_flags():
    controller = PaginationController()
    controller.set_loading(True)
    controller.set_error("Network error")
    assert not controller.state.is_loading
    assert controller.phase == ListState.ERROR


def test_reset():
    controller = PaginationController()
    controller.set_data([1, 2], total=10)
    controller.next_page()
    controller.reset()
    assert controller.state.items == []
    assert controller.state.page == 1
    assert controller.state.total == 0
    assert controller.phase == ListState.IDLE


def test_states_are_snapshots():
    controller = PaginationController()
    before = controller.state
    controller.set_data([1])
    assert before.items == []
    assert controller.state is not before


async def test_rapid_end_reached_triggers_one_fetch():
    fetched = []

    async def on_load_more(page):
        fetched.append(page)

    controller = PaginationController(on_load_more=on_load_more)
    controller.set_data([1, 2])
    props = controller.get_load_more_props()

    assert props.on_end_reached() is True
    assert props.on_end_reached() is False
    await asyncio.sleep(0)

    assert fetched == [2]
    assert props.on_end_reached_threshold == 0.5


async def test_refresh_props_dispatch():
    refreshed = asyncio.Event()

    async def on_refresh():
        refreshed.set()

    controller = PaginationController(on_refresh=on_refresh)
    controller.set_data([1])
    controller.get_refresh_props().on_refresh()

    assert controller.get_refresh_props().refreshing is True
    await asyncio.wait_for(refreshed.wait(), timeout=1)


async def test_loader_pages_through_results():
    pages = FakePages(total=45)
    loader = PagedListLoader(pages, PaginationController(page_size=20))

    assert await loader.load()
    assert await loader.load_more()
    assert await loader.load_more()

    state = loader.controller.state
    assert [r["id"] for r in state.items] == list(range(1, 46))
    assert state.page == 3
    assert not state.has_more
    assert not await loader.load_more()
    assert pages.calls == [1, 2, 3]


async def test_has_more_from_short_page_without_total():
    async def fetch(page, per_page):
        return Page(items=list(range(per_page if page == 1 else 3)))

    loader = PagedListLoader(fetch, PaginationController(page_size=10))
    await loader.load()
    assert loader.controller.state.has_more
    await loader.load_more()
    assert not loader.controller.state.has_more


async def test_failed_load_more_rewinds_page():
    pages = FakePages(total=45)
    loader = PagedListLoader(pages, PaginationController(page_size=20))
    await loader.load()
    pages.fail_pages.add(2)

    assert not await loader.load_more()

    state = loader.controller.state
    assert state.page == 1
    assert state.error is not None
    assert len(state.items) == 20

    pages.fail_pages.clear()
    assert await loader.load_more()
    assert loader.controller.state.page == 2


async def test_load_more_refused_while_refreshing():
    pages = FakePages(total=45, gated=True)
    loader = PagedListLoader(pages, PaginationController(page_size=20))
    pages.release(1)
    await loader.load()

    refresh = asyncio.create_task(loader.refresh())
    await asyncio.sleep(0)
    assert not await loader.load_more()

    pages.release(2)
    assert await refresh
    assert pages.calls == [1, 1]


async def test_refresh_supersedes_pending_page():
    pages = FakePages(total=45, gated=True)
    loader = PagedListLoader(pages, PaginationController(page_size=20))
    pages.release(1)
    await loader.load()

    more = asyncio.create_task(loader.load_more())
    await asyncio.sleep(0)
    refresh = asyncio.create_task(loader.refresh())
    await asyncio.sleep(0)

    pages.release(3)
    assert await refresh
    pages.release(2)
    assert not await more

    state = loader.controller.state
    assert len(state.items) == 20
    assert state.page == 1
    assert not state.is_loading_more


async def test_failed_refresh_keeps_rendered_page():
    pages = FakePages(total=80)
    loader = PagedListLoader(pages, PaginationController(page_size=20))
    await loader.load()
    await loader.load_more()
    await loader.load_more()
    pages.fail_pages.add(1)

    assert not await loader.refresh()

    state = loader.controller.state
    assert state.page == 3
    assert len(state.items) == 60
    assert state.error is not None
    assert not state.is_refreshing

    pages.fail_pages.clear()
    assert await loader.load_more()
    ids = [r["id"] for r in loader.controller.state.items]
    assert ids == list(range(1, 81))
    assert pages.calls == [1, 2, 3, 1, 4]


async def test_end_reached_during_refresh_is_ignored():
    pages = FakePages(total=80, gated=True)
    loader = PagedListLoader(pages, PaginationController(page_size=20))
    pages.release(1)
    pages.release(2)
    await loader.load()
    await loader.load_more()

    refresh = asyncio.create_task(loader.refresh())
    await asyncio.sleep(0)
    assert loader.controller.get_load_more_props().on_end_reached() is False

    pages.release(3)
    assert await refresh
    state = loader.controller.state
    assert [r["id"] for r in state.items] == list(range(1, 21))
    assert state.page == 1
    assert pages.calls == [1, 2, 1]


async def test_results_after_teardown_are_not_applied():
    pages = FakePages(total=45, gated=True)
    loader = PagedListLoader(pages, PaginationController(page_size=20))

    pending = asyncio.create_task(loader.load())
    await asyncio.sleep(0)
    loader.teardown()
    pages.release(1)

    assert not await pending
    assert loader.controller.state.items == []


def test_transition_table():
    assert is_valid_transition(ListState.LOADED, ListState.LOADING_MORE)
    assert is_valid_transition(ListState.LOADING, ListState.LOADING)
    assert not is_valid_transition(ListState.REFRESHING, ListState.LOADING_MORE)
    assert get_state_metadata(ListState.LOADING_MORE).is_busy
    assert not get_state_metadata(ListState.IDLE).shows_items
