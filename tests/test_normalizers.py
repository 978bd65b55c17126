import pytest

from nftwatch.errors import IncompleteUpstreamData
from nftwatch.normalizers import (
    normalize_bid_event,
    normalize_floor_event,
    normalize_listings,
    normalize_sales,
)
from nftwatch.types import Category

from conftest import CONTRACT


def floor_payload(**overrides):
    item = {
        "id": 3101,
        "floorAsk": {
            "tokenId": "4521",
            "price": 0.42,
            "maker": "0xlister",
            "source": {"domain": "opensea.io", "name": "OpenSea"},
        },
        "event": {"id": 9876543, "createdAt": "2024-01-27T12:00:00.000Z"},
    }
    item.update(overrides)
    return {"events": [item]}


def test_floor_event_normalized():
    event = normalize_floor_event(floor_payload(), CONTRACT)

    assert event.category == Category.FLOOR
    assert event.event_id == "9876543"
    assert event.value == 0.42
    assert event.token_id == "4521"
    assert event.source == "opensea.io"
    assert event.created_at.year == 2024


def test_floor_source_as_plain_domain():
    payload = floor_payload(floorAsk={"tokenId": "1", "price": 1, "source": "looksrare.org"})
    assert normalize_floor_event(payload, CONTRACT).source == "looksrare.org"


@pytest.mark.parametrize(
    "overrides",
    [
        {"floorAsk": {"tokenId": "1", "price": None, "source": "x"}},
        {"floorAsk": {"price": 1.0, "source": "x"}},
        {"floorAsk": {"tokenId": "1", "price": 1.0}},
        {"event": {"id": 5}},
    ],
)
def test_floor_missing_fields_raise(overrides):
    with pytest.raises(IncompleteUpstreamData):
        normalize_floor_event(floor_payload(**overrides), CONTRACT)


@pytest.mark.parametrize("payload", [None, {}, {"events": []}])
def test_floor_without_events_raises(payload):
    with pytest.raises(IncompleteUpstreamData):
        normalize_floor_event(payload, CONTRACT)


def test_bid_event_normalized():
    payload = {
        "events": [
            {
                "topBid": {"price": 0.3, "maker": "0xbidder"},
                "event": {"id": 77, "createdAt": "2024-01-27T12:00:00Z"},
            }
        ]
    }

    event = normalize_bid_event(payload, CONTRACT)

    assert event.category == Category.BID
    assert event.event_id == "77"
    assert event.value == 0.3
    assert event.maker == "0xbidder"


def test_bid_without_maker_raises():
    payload = {"events": [{"topBid": {"price": 0.3}, "event": {"id": 77}}]}
    with pytest.raises(IncompleteUpstreamData):
        normalize_bid_event(payload, CONTRACT)


def test_listings_keep_order_and_group_by_token_set():
    payload = {
        "orders": [
            {"id": "0xo3", "tokenSetId": "token:0xabc:1"},
            {"tokenSetId": "token:0xabc:2"},
            {"id": "0xo1", "tokenSetId": "token:0xabc:1"},
        ]
    }

    window = normalize_listings(payload, CONTRACT)

    assert [e.event_id for e in window] == ["0xo3", "0xo1"]
    assert window[0].group_key == "token:0xabc:1"
    assert window[0].raw["id"] == "0xo3"


def test_sales_carry_destination_address():
    payload = {
        "sales": [
            {"saleId": "s2", "to": "0x0000000000000000000000000000000000000000"},
            {"saleId": "s1", "to": "0xbuyer"},
        ]
    }

    window = normalize_sales(payload, CONTRACT, Category.BURN)

    assert [e.event_id for e in window] == ["s2", "s1"]
    assert all(e.category == Category.BURN for e in window)
    assert window[1].to_address == "0xbuyer"


def test_missing_window_list_raises():
    with pytest.raises(IncompleteUpstreamData):
        normalize_sales({"continuation": None}, CONTRACT)
    with pytest.raises(IncompleteUpstreamData):
        normalize_listings(None, CONTRACT)
