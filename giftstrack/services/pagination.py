"""
giftstrack/services/pagination.py

Purpose: Paginated list state

- PaginationController: page/append/refresh/loading-flag state machine
- Load-more guard against duplicate concurrent page fetches
- PagedListLoader: wires a page fetcher to a controller, dropping
  superseded and post-teardown results
"""

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Generic, List, Optional, Set, TypeVar

from giftstrack.core.config import settings
from giftstrack.core.errors import describe_error
from giftstrack.core.logging import get_logger
from giftstrack.flow.states import ListState, is_valid_transition
from giftstrack.services.request_guard import CancelableRequest

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PaginationState(Generic[T]):
    items: List[T] = field(default_factory=list)
    page: int = 1
    has_more: bool = True
    is_loading: bool = False
    is_loading_more: bool = False
    is_refreshing: bool = False
    error: Optional[str] = None
    total: int = 0


@dataclass(frozen=True)
class LoadMoreProps:
    on_end_reached: Callable[[], bool]
    on_end_reached_threshold: float


@dataclass(frozen=True)
class RefreshProps:
    refreshing: bool
    on_refresh: Callable[[], None]


@dataclass
class Page(Generic[T]):
    """One page returned by a page fetcher."""
    items: List[T]
    total: Optional[int] = None
    has_more: Optional[bool] = None


class PaginationController(Generic[T]):
    """
    Flags and data of one paginated list.

    Every mutation replaces `state` with a new snapshot, so readers never see
    a half-applied update. The controller does not manage request lifetimes
    and performs no id de-duplication: callers guarantee pages do not overlap.
    """

    def __init__(
        self,
        initial_page: int = 1,
        page_size: Optional[int] = None,
        on_load_more: Optional[Callable[[int], Any]] = None,
        on_refresh: Optional[Callable[[], Any]] = None,
    ):
        self.initial_page = initial_page
        self.page_size = page_size or settings.DEFAULT_PAGE_SIZE
        self.on_load_more = on_load_more
        self.on_refresh = on_refresh
        self.load_more_guard: Optional[Callable[[], bool]] = None
        self._state: PaginationState[T] = PaginationState(page=initial_page)
        self._loaded = False
        self._phase = ListState.IDLE
        self._tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> PaginationState[T]:
        return self._state

    @property
    def phase(self) -> ListState:
        return self._phase

    def _update(self, **changes) -> None:
        self._state = replace(self._state, **changes)
        new_phase = self._derive_phase()
        if not is_valid_transition(self._phase, new_phase):
            logger.warning(f"Unexpected list transition: {self._phase.value} -> {new_phase.value}")
        self._phase = new_phase

    def _derive_phase(self) -> ListState:
        s = self._state
        if s.is_refreshing:
            return ListState.REFRESHING
        if s.is_loading_more:
            return ListState.LOADING_MORE
        if s.is_loading:
            return ListState.LOADING
        if s.error is not None:
            return ListState.ERROR
        return ListState.LOADED if self._loaded else ListState.IDLE

    def set_data(self, items: List[T], total: Optional[int] = None, has_more: bool = True) -> None:
        """Replaces all items (first page or refresh result) and clears every flag."""
        self._loaded = True
        self._update(
            items=list(items),
            total=len(items) if total is None else total,
            has_more=has_more,
            is_loading=False,
            is_loading_more=False,
            is_refreshing=False,
            error=None,
        )

    def append_data(self, items: List[T], has_more: bool = True) -> None:
        """Concatenates a page to the end, preserving arrival order."""
        self._loaded = True
        self._update(
            items=self._state.items + list(items),
            has_more=has_more,
            is_loading=False,
            is_loading_more=False,
            is_refreshing=False,
            error=None,
        )

    def set_loading(self, is_loading: bool) -> None:
        self._update(is_loading=is_loading)

    def set_loading_more(self, is_loading_more: bool) -> None:
        self._update(is_loading_more=is_loading_more)

    def set_refreshing(self, is_refreshing: bool) -> None:
        self._update(is_refreshing=is_refreshing)

    def set_error(self, error: Optional[str]) -> None:
        self._update(error=error, is_loading=False, is_loading_more=False, is_refreshing=False)

    def next_page(self) -> int:
        """Advances the page counter and returns the new page number."""
        page = self._state.page + 1
        self._update(page=page)
        return page

    def previous_page(self) -> int:
        """Steps the page counter back, not below the initial page."""
        page = max(self.initial_page, self._state.page - 1)
        self._update(page=page)
        return page

    def reset_page(self) -> None:
        self._update(page=self.initial_page)

    def reset(self) -> None:
        self._loaded = False
        self._update(
            items=[],
            page=self.initial_page,
            has_more=True,
            is_loading=False,
            is_loading_more=False,
            is_refreshing=False,
            error=None,
            total=0,
        )

    @property
    def can_load_more(self) -> bool:
        s = self._state
        return not (s.is_loading or s.is_loading_more or not s.has_more)

    def restore_page(self, page: int) -> None:
        """Puts the page counter back to the last page whose items are rendered."""
        self._update(page=page)

    def request_load_more(self) -> Optional[int]:
        """
        Claims the next page if the load-more guard allows it.

        Returns:
            The page to fetch, or None when ignored
        """
        if not self.can_load_more:
            return None
        if self.load_more_guard is not None and not self.load_more_guard():
            return None
        self.set_loading_more(True)
        return self.next_page()

    def start_refresh(self) -> None:
        """Back to page 1 regardless of has_more; items stay until set_data."""
        self.set_refreshing(True)
        self.reset_page()

    def get_load_more_props(self) -> LoadMoreProps:
        def on_end_reached() -> bool:
            page = self.request_load_more()
            if page is None:
                return False
            logger.debug("Load more triggered", extra={"page": page})
            if self.on_load_more is not None:
                self._dispatch(self.on_load_more(page))
            return True

        return LoadMoreProps(
            on_end_reached=on_end_reached,
            on_end_reached_threshold=settings.LOAD_MORE_THRESHOLD,
        )

    def get_refresh_props(self) -> RefreshProps:
        def on_refresh() -> None:
            self.start_refresh()
            if self.on_refresh is not None:
                self._dispatch(self.on_refresh())

        return RefreshProps(refreshing=self._state.is_refreshing, on_refresh=on_refresh)

    def _dispatch(self, result: Any) -> None:
        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)


class PagedListLoader(Generic[T]):
    """
    Fetches pages into a PaginationController.

    All requests share one cancelable slot: a refresh or reload supersedes a
    pending page, and nothing is applied after teardown().

    `offline_first_page` may return a stored first page; load() shows it
    instead of fetching when it does.
    """

    def __init__(
        self,
        fetch_page: Callable[[int, int], Awaitable[Page[T]]],
        controller: Optional[PaginationController[T]] = None,
        offline_first_page: Optional[Callable[[], Awaitable[Optional[Page[T]]]]] = None,
    ):
        self._fetch_page = fetch_page
        self._offline_first_page = offline_first_page
        self.controller: PaginationController[T] = controller or PaginationController()
        self.controller.on_load_more = self._load_page
        self.controller.on_refresh = self._refresh_page
        self.controller.load_more_guard = self._allows_load_more
        self._request = CancelableRequest()
        self._rendered_page = self.controller.initial_page

    def _allows_load_more(self) -> bool:
        # a running refresh owns the request slot until it settles
        return not self.controller.state.is_refreshing

    def _has_more(self, page: Page[T], page_number: int) -> bool:
        if page.has_more is not None:
            return page.has_more
        if page.total is not None:
            return page_number * self.controller.page_size < page.total
        return len(page.items) >= self.controller.page_size

    async def load(self) -> bool:
        """
        Loads the first page, replacing current items.

        Returns:
            True if a result was applied
        """
        controller = self.controller
        controller.reset_page()
        controller.set_loading(True)
        if self._offline_first_page is not None:
            cached = await self._offline_first_page()
            if cached is not None:
                logger.info("Showing stored first page", extra={"page": controller.initial_page})
                self._show_first_page(cached)
                return True
        return await self._apply_first_page()

    async def refresh(self) -> bool:
        self.controller.start_refresh()
        return await self._refresh_page()

    async def load_more(self) -> bool:
        """
        Fetches the next page unless the guard (or a running refresh) blocks it.
        """
        page = self.controller.request_load_more()
        if page is None:
            return False
        return await self._load_page(page)

    async def _refresh_page(self) -> bool:
        return await self._apply_first_page()

    async def _apply_first_page(self) -> bool:
        controller = self.controller
        first = controller.initial_page
        try:
            result = await self._request.execute(lambda: self._fetch_page(first, controller.page_size))
        except Exception as e:
            logger.error(f"Failed to load page {first}: {e}", extra={"page": first})
            controller.restore_page(self._rendered_page)
            controller.set_error(describe_error(e))
            return False
        if result is None:
            return False
        self._show_first_page(result)
        return True

    def _show_first_page(self, result: Page[T]) -> None:
        first = self.controller.initial_page
        self._rendered_page = first
        self.controller.set_data(
            result.items,
            total=result.total,
            has_more=self._has_more(result, first),
        )

    async def _load_page(self, page: int) -> bool:
        controller = self.controller
        try:
            result = await self._request.execute(lambda: self._fetch_page(page, controller.page_size))
        except Exception as e:
            logger.error(f"Failed to load page {page}: {e}", extra={"page": page})
            controller.previous_page()
            controller.set_error(describe_error(e))
            return False
        if result is None:
            return False
        self._rendered_page = page
        controller.append_data(
            result.items,
            has_more=self._has_more(result, page),
        )
        return True

    def teardown(self) -> None:
        self._request.teardown()
