import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from nftwatch.errors import IncompleteUpstreamData, UpstreamError, UpstreamRateLimitError
from nftwatch.reservoir import PATH_FLOOR_EVENTS, PATH_SALES, PATH_TOKENS, ReservoirClient, backoff_delay
from nftwatch.types import Category

CONTRACT = "0xabc"


class Upstream:
    """Scripted Reservoir: pops one (status, body) per request."""

    def __init__(self):
        self.responses = {}
        self.requests = []

    def queue(self, path, *responses):
        self.responses.setdefault(path, []).extend(responses)

    async def handle(self, request):
        self.requests.append(request)
        status, body = self.responses[request.path].pop(0)
        return web.json_response(body, status=status)


@pytest.fixture
async def upstream():
    state = Upstream()
    app = web.Application()
    app.router.add_get("/{tail:.*}", state.handle)
    server = TestServer(app)
    await server.start_server()
    state.base_url = str(server.make_url("")).rstrip("/")
    yield state
    await server.close()


@pytest.fixture
async def client(upstream):
    client = ReservoirClient("test-key", base_url=upstream.base_url, max_retries=2, backoff_base_sec=0)
    yield client
    await client.close()


def test_backoff_doubles_and_caps():
    assert [backoff_delay(a, 1.0, 5.0) for a in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]


async def test_retries_after_rate_limit(upstream, client):
    upstream.queue(
        PATH_FLOOR_EVENTS,
        (429, {"message": "slow down"}),
        (200, {
            "events": [{
                "floorAsk": {"tokenId": "7", "price": 0.5, "source": "opensea.io"},
                "event": {"id": 42, "createdAt": "2024-01-27T12:00:00Z"},
            }]
        }),
    )

    event = await client.fetch_latest_event(CONTRACT, Category.FLOOR)

    assert event.event_id == "42"
    assert event.value == 0.5
    assert len(upstream.requests) == 2
    assert upstream.requests[0].headers["x-api-key"] == "test-key"
    assert upstream.requests[0].query["collection"] == CONTRACT
    assert client.get_stats() == {"requests_total": 2, "rate_limited_total": 1}


async def test_rate_limit_exhausted(upstream, client):
    upstream.queue(PATH_SALES, *[(429, {})] * 3)

    with pytest.raises(UpstreamRateLimitError) as exc_info:
        await client.fetch_event_window(CONTRACT, Category.SALES, 100)

    assert exc_info.value.status == 429
    assert exc_info.value.attempts == 3
    assert len(upstream.requests) == 3


async def test_server_error_not_retried(upstream, client):
    upstream.queue(PATH_SALES, (500, {"error": "boom"}))

    with pytest.raises(UpstreamError) as exc_info:
        await client.fetch_event_window(CONTRACT, Category.SALES, 100)

    assert exc_info.value.status == 500
    assert len(upstream.requests) == 1


async def test_window_requested_with_limit(upstream, client):
    upstream.queue(PATH_SALES, (200, {"sales": [{"saleId": "s2"}, {"saleId": "s1"}]}))

    window = await client.fetch_event_window(CONTRACT, Category.BURN, 25)

    assert [e.event_id for e in window] == ["s2", "s1"]
    assert upstream.requests[0].query["limit"] == "25"
    assert upstream.requests[0].query["contract"] == CONTRACT


async def test_incomplete_payload_raises(upstream, client):
    upstream.queue(PATH_FLOOR_EVENTS, (200, {"events": []}))

    with pytest.raises(IncompleteUpstreamData):
        await client.fetch_latest_event(CONTRACT, Category.FLOOR)


async def test_fetch_token_returns_first_entry(upstream, client):
    upstream.queue(PATH_TOKENS, (200, {"tokens": [{"token": {"name": "Wizard #1"}}]}), (200, {"tokens": []}))

    assert (await client.fetch_token(CONTRACT, "1"))["token"]["name"] == "Wizard #1"
    assert await client.fetch_token(CONTRACT, "2") is None
    assert upstream.requests[0].query["tokens"] == f"{CONTRACT}:1"


async def test_unreachable_host_raises_upstream_error():
    client = ReservoirClient("k", base_url="http://127.0.0.1:9", timeout_sec=2)
    try:
        with pytest.raises(UpstreamError):
            await client.get_json("/sales/v4")
    finally:
        await client.close()
