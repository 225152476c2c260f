import httpx

from giftstrack.services.api_client import ApiClient
from giftstrack.services.customer_service import CustomerService, clean_filters, customer_list_cache_key
from giftstrack.services.pagination import PagedListLoader, PaginationController

CUSTOMERS = [{"id": i, "name": f"Customer {i}"} for i in range(1, 26)]


def paginated_handler(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        page = int(request.url.params["page"])
        per_page = int(request.url.params["perPage"])
        start = (page - 1) * per_page
        return httpx.Response(200, json={
            "success": True,
            "data": {
                "data": CUSTOMERS[start:start + per_page],
                "meta": {"total": len(CUSTOMERS), "page": page, "has_next": start + per_page < len(CUSTOMERS)},
            },
        })

    return handler


def service(handler, cache=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.test")
    return CustomerService(ApiClient(lambda: "token", client=client), cache)


def test_clean_filters():
    assert clean_filters({"search": "ram", "stateId": None, "bogus": 1, "cityId": ""}) == {"search": "ram"}
    assert clean_filters(None) == {}


def test_cache_key_is_stable_per_filter_set():
    assert customer_list_cache_key() == "cache:customers"
    assert customer_list_cache_key({"stateId": 1, "search": "ram"}) == "cache:customers?search=ram&stateId=1"
    assert customer_list_cache_key({"search": "ram", "stateId": 1}) == customer_list_cache_key({"stateId": 1, "search": "ram"})


async def test_get_page_reads_meta():
    requests = []
    customers = service(paginated_handler(requests))

    page = await customers.get_page(1, 10, {"search": "cust"})

    assert len(page.items) == 10
    assert page.total == 25
    assert page.has_more is True
    assert requests[0].url.params["search"] == "cust"


async def test_unpaginated_list_is_a_single_page():
    customers = service(lambda request: httpx.Response(200, json={"success": True, "data": CUSTOMERS[:3]}))
    page = await customers.get_page(1, 10)
    assert page.items == CUSTOMERS[:3]
    assert page.has_more is False


async def test_paged_loader_over_customers(cache):
    requests = []
    customers = service(paginated_handler(requests), cache)
    loader = PagedListLoader(customers.page_fetcher({"search": "cust"}), PaginationController(page_size=10))

    await loader.load()
    await loader.load_more()
    await loader.load_more()

    state = loader.controller.state
    assert [c["id"] for c in state.items] == list(range(1, 26))
    assert not state.has_more
    assert not await loader.load_more()
    assert len(requests) == 3


async def test_first_page_is_cached_and_invalidated(cache):
    customers = service(paginated_handler([]), cache)
    fetch = customers.page_fetcher({"stateId": 1})

    await fetch(1, 10)
    await fetch(2, 10)

    cached = await customers.cached_first_page({"stateId": 1})
    assert [c["id"] for c in cached.items] == list(range(1, 11))
    assert cached.total == 25
    assert await customers.cached_first_page() is None

    assert await customers.invalidate_lists() == 1
    assert await customers.cached_first_page({"stateId": 1}) is None


async def test_without_cache():
    customers = service(paginated_handler([]))
    assert await customers.cached_first_page() is None
    assert await customers.invalidate_lists() == 0
