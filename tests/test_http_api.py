import asyncio

import pytest
from fastapi.testclient import TestClient

from nftwatch.errors import UpstreamError
from nftwatch.http_api import create_app
from nftwatch.metrics import PollMetrics
from nftwatch.state_store import MemoryStateStore
from nftwatch.types import Category

CONTRACT = "0xAbC"


class FakeReservoir:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    async def fetch_token(self, contract, token_id, include_attributes=False):
        assert include_attributes
        if self.error:
            raise self.error
        return self.result

    def get_stats(self):
        return {"requests_total": 3, "rate_limited_total": 0}


@pytest.fixture
def store():
    store = MemoryStateStore()

    async def seed():
        await store.set(f"flooreventid_{CONTRACT}", "55")
        await store.set(f"floorprice_{CONTRACT}", "0.7")
        await store.set(f"saleorderid_{CONTRACT}", "0xsale")

    asyncio.run(seed())
    return store


def make_client(store, reservoir=None):
    metrics = PollMetrics()
    metrics.inc(Category.SALES, "alerts_sent", 2)
    return TestClient(create_app(metrics, store, [CONTRACT], client=reservoir))


def test_health(store):
    response = make_client(store).get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True, "state_store": True}


def test_state_includes_counters(store):
    body = make_client(store, FakeReservoir()).get("/state").json()
    assert body["categories"]["sales"]["alerts_sent"] == 2
    assert body["reservoir"]["requests_total"] == 3


def test_collection_state_case_insensitive(store):
    response = make_client(store).get("/collections/0xabc/state")

    assert response.status_code == 200
    body = response.json()
    assert body["contract"] == CONTRACT
    assert body["categories"]["floor"] == {"last_event_id": "55", "last_value": 0.7, "cooldown_active": False}
    assert body["categories"]["sales"] == {"last_event_id": "0xsale"}
    assert body["categories"]["listings"] == {"last_event_id": None}


def test_untracked_collection_404(store):
    assert make_client(store).get("/collections/0xdef/state").status_code == 404


def test_token_details(store):
    reservoir = FakeReservoir(result={
        "token": {
            "contract": CONTRACT,
            "tokenId": "12",
            "name": "Wizard #12",
            "description": "A wizard",
            "image": "https://img/12.png",
            "collection": {"name": "Forgotten Runes"},
            "attributes": [{"key": "Head", "value": "Hood"}, "junk"],
        },
        "market": {"floorAsk": {"price": {"amount": {"decimal": 0.9}}}},
    })

    body = make_client(store, reservoir).get(f"/tokens/{CONTRACT}/12").json()

    assert body["name"] == "Wizard #12"
    assert body["collection"] == "Forgotten Runes"
    assert body["floor_ask"] == 0.9
    assert body["traits"] == [{"key": "Head", "value": "Hood"}]


def test_token_not_found(store):
    assert make_client(store, FakeReservoir()).get(f"/tokens/{CONTRACT}/1").status_code == 404


def test_token_lookup_failure(store):
    reservoir = FakeReservoir(error=UpstreamError("HTTP 500", status=500))
    assert make_client(store, reservoir).get(f"/tokens/{CONTRACT}/1").status_code == 502


def test_token_lookup_without_client(store):
    assert make_client(store).get(f"/tokens/{CONTRACT}/1").status_code == 503
