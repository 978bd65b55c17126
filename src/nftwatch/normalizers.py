"""
Normalizers
===========

Convert raw Reservoir API responses into ScalarEvent / FeedEvent.

Endpoints:
    floor:     GET /events/collections/floor-ask/v1  -> events[0]
    bid:       GET /events/collections/top-bid/v1    -> events[0]
    listings:  GET /orders/asks/v3                   -> orders[]
    sales:     GET /sales/v4                         -> sales[]
    burn:      GET /sales/v4                         -> sales[] (filtered later)

Required fields:
    floor: event.id, event.createdAt, floorAsk.tokenId, floorAsk.price,
           floorAsk.source
    bid:   event.id, topBid.price, topBid.maker

A scalar payload missing any of these raises IncompleteUpstreamData and
the collection is skipped for the cycle. Window entries without an id
cannot be positioned and are dropped with a warning.
"""

import logging
from typing import Any, Optional

from nftwatch.errors import IncompleteUpstreamData
from nftwatch.types import Category, FeedEvent, ScalarEvent
from nftwatch.utils import safe_get, safe_get_float, safe_get_str
from nftwatch.utils_time import parse_timestamp

logger = logging.getLogger(__name__)


def _first_event(payload: Optional[dict], category: Category, contract: str) -> dict:
    events = safe_get(payload, "events")
    if not isinstance(events, list) or not events or not isinstance(events[0], dict):
        raise IncompleteUpstreamData(f"no {category.value} event returned for {contract}")
    return events[0]


def _source_name(source: Any) -> Optional[str]:
    # floorAsk.source is a domain string on older payloads and an object on newer ones
    if isinstance(source, dict):
        return safe_get_str(source, "domain") or safe_get_str(source, "name")
    if source:
        return str(source)
    return None


def normalize_floor_event(payload: Optional[dict], contract: str) -> ScalarEvent:
    """
    Normalize the newest floor-ask event.

    Raises:
        IncompleteUpstreamData: required field missing
    """
    item = _first_event(payload, Category.FLOOR, contract)

    event_id = safe_get_str(item, "event.id")
    token_id = safe_get_str(item, "floorAsk.tokenId")
    price = safe_get_float(item, "floorAsk.price")
    created_at = parse_timestamp(safe_get(item, "event.createdAt"))
    source = _source_name(safe_get(item, "floorAsk.source"))

    if not event_id or not token_id or not price or created_at is None or not source:
        raise IncompleteUpstreamData(
            f"could not pull floor ask for {contract}",
            item_id=event_id,
        )

    return ScalarEvent(
        category=Category.FLOOR,
        event_id=event_id,
        value=price,
        contract=contract,
        maker=safe_get_str(item, "floorAsk.maker"),
        token_id=token_id,
        source=source,
        created_at=created_at,
        raw=item,
    )


def normalize_bid_event(payload: Optional[dict], contract: str) -> ScalarEvent:
    """
    Normalize the newest top-bid event.

    Raises:
        IncompleteUpstreamData: required field missing
    """
    item = _first_event(payload, Category.BID, contract)

    event_id = safe_get_str(item, "event.id")
    price = safe_get_float(item, "topBid.price")
    maker = safe_get_str(item, "topBid.maker")

    if not event_id or not price or not maker:
        raise IncompleteUpstreamData(
            f"could not pull top bid for {contract}",
            item_id=event_id,
        )

    return ScalarEvent(
        category=Category.BID,
        event_id=event_id,
        value=price,
        contract=contract,
        maker=maker,
        source=_source_name(safe_get(item, "topBid.source")),
        created_at=parse_timestamp(safe_get(item, "event.createdAt")),
        raw=item,
    )


def _window_items(payload: Optional[dict], list_key: str, category: Category, contract: str) -> list:
    items = safe_get(payload, list_key)
    if not isinstance(items, list):
        raise IncompleteUpstreamData(f"could not pull {category.value} for contract {contract}")
    return items


def normalize_listings(payload: Optional[dict], contract: str) -> list[FeedEvent]:
    """
    Normalize an /orders/asks/v3 response into a newest-first window.

    The token-set id is the group key: one token listed on several
    marketplaces yields several orders with the same token set.
    """
    window: list[FeedEvent] = []
    for order in _window_items(payload, "orders", Category.LISTINGS, contract):
        order_id = safe_get_str(order, "id")
        if not order_id:
            logger.warning("listing_without_id", extra={"contract": contract})
            continue
        window.append(
            FeedEvent(
                category=Category.LISTINGS,
                event_id=order_id,
                contract=contract,
                group_key=safe_get_str(order, "tokenSetId"),
                raw=order,
            )
        )
    return window


def normalize_sales(
    payload: Optional[dict],
    contract: str,
    category: Category = Category.SALES,
) -> list[FeedEvent]:
    """
    Normalize a /sales/v4 response into a newest-first window.

    Used for both SALES and BURN; burns are selected by destination
    address in the reconciler, not here.
    """
    window: list[FeedEvent] = []
    for sale in _window_items(payload, "sales", category, contract):
        sale_id = safe_get_str(sale, "saleId")
        if not sale_id:
            logger.warning(
                "sale_without_id",
                extra={"contract": contract, "tx_hash": safe_get(sale, "txHash")},
            )
            continue
        window.append(
            FeedEvent(
                category=category,
                event_id=sale_id,
                contract=contract,
                to_address=safe_get_str(sale, "to"),
                raw=sale,
            )
        )
    return window
