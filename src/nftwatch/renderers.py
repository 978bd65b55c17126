"""
Alert Renderers
===============

Turn detected events into Alert objects, fetching the display data
(token, collection) each alert needs.

Each renderer checks the fields it cannot do without and raises
IncompleteUpstreamData, so the poller skips that single item and carries
on with the rest of the batch.

    floor:    token collection, owner, name
    bid:      collection name
    listing:  order source name + icon; token name + image;
              collection name + image
    sale:     order source; token name + image; collection name + image
    burn:     nothing required (falls back to "Unknown Token")
"""

import logging
from typing import Optional

from nftwatch.errors import IncompleteUpstreamData
from nftwatch.reservoir import ReservoirClient
from nftwatch.types import Alert, Category, FeedEvent, ScalarEvent
from nftwatch.utils import safe_get, safe_get_str
from nftwatch.utils_time import parse_timestamp

logger = logging.getLogger(__name__)

COLOR_MARKET = 0x8B43E0
COLOR_SALE = 0x808080
COLOR_BURN = 0xFF4500

RESERVOIR_ICON = (
    "https://cdn.discordapp.com/icons/872790973309153280/"
    "0dc1b70867aeeb2ee32563f575c191c6.webp?size=4096"
)
RESERVOIR_SITE = "https://reservoir.tools/"
RESERVOIR_MARKET = "https://www.reservoir.market"
RESERVOIR_REDIRECT = "https://api.reservoir.tools/redirect/sources"
MARKET_URL = "https://forgotten.market"
ETHERSCAN_TX = "https://etherscan.io/tx"

BOOTSTRAP_NOTICES = {
    Category.LISTINGS: "Restarting listing bot for contract {contract}, new listings will begin to populate from here...",
    Category.SALES: "Restarting sales bot for contract {contract}, new sales will begin to populate from here...",
    Category.BURN: "Restarting burn tracker for contract {contract}, new burns will begin to populate from here...",
}


def bootstrap_notice(category: Category, contract: str) -> str:
    """Message announcing that an ordered feed starts from the current position."""
    return BOOTSTRAP_NOTICES[category].format(contract=contract)


def short_address(address: str) -> str:
    return address[:6]


def _price_line(item: dict) -> str:
    native = safe_get(item, "price.amount.native")
    usd = safe_get(item, "price.amount.usd")
    return f"{native}Ξ (${usd})"


class AlertRenderer:
    """
    Renders alerts for every category.

    Args:
        client: Reservoir client used for token/collection lookups
    """

    def __init__(self, client: ReservoirClient) -> None:
        self._client = client

    async def render_scalar(self, event: ScalarEvent) -> Alert:
        if event.category == Category.FLOOR:
            return await self.render_floor(event)
        if event.category == Category.BID:
            return await self.render_bid(event)
        raise ValueError(f"no scalar renderer for {event.category.value}")

    async def render_feed(self, event: FeedEvent) -> Alert:
        if event.category == Category.LISTINGS:
            return await self.render_listing(event)
        if event.category == Category.SALES:
            return await self.render_sale(event)
        if event.category == Category.BURN:
            return self.render_burn(event)
        raise ValueError(f"no feed renderer for {event.category.value}")

    async def render_floor(self, event: ScalarEvent) -> Alert:
        result = await self._client.fetch_token(event.contract, event.token_id)
        token = safe_get(result, "token")
        collection = safe_get(token, "collection")
        owner = safe_get_str(token, "owner")
        name = safe_get_str(token, "name")

        if not collection or not owner or not name:
            raise IncompleteUpstreamData(
                f"could not pull floor token for {event.contract}",
                item_id=event.token_id,
            )

        last_sale = safe_get(token, "lastSell.value")
        last_sale_text = f"{last_sale}Ξ" if last_sale else "N/A"
        collection_id = safe_get_str(collection, "id") or event.contract

        return Alert(
            category=Category.FLOOR,
            contract=event.contract,
            title="New Floor Listing!",
            description=(
                f"{name} is now the floor token, listed for {event.value}Ξ by "
                f"[{short_address(owner)}]({RESERVOIR_MARKET}/address/{owner})\n"
                f"Last Sale: {last_sale_text}\n"
                f"Rarity Rank: {safe_get(token, 'rarityRank')}"
            ),
            color=COLOR_MARKET,
            url=(
                f"{RESERVOIR_REDIRECT}/{event.source}/tokens/"
                f"{collection_id}%3A{event.token_id}/link/v2"
            ),
            author_name=safe_get_str(collection, "name"),
            author_url=RESERVOIR_SITE,
            author_icon=safe_get_str(collection, "image"),
            image=safe_get_str(token, "image"),
            timestamp=event.created_at,
        )

    async def render_bid(self, event: ScalarEvent) -> Alert:
        collection = await self._client.fetch_collection(event.contract, include_top_bid=True)
        name = safe_get_str(collection, "name")

        if not name:
            raise IncompleteUpstreamData(
                f"could not collect stats for {event.contract}",
                item_id=event.event_id,
            )

        icon = safe_get_str(collection, "image") or RESERVOIR_ICON
        maker = event.maker or ""

        return Alert(
            category=Category.BID,
            contract=event.contract,
            title="New Top Bid!",
            description=(
                f"The top bid on the collection just changed to {event.value}Ξ made by "
                f"[{short_address(maker)}]({RESERVOIR_MARKET}/address/{maker})"
            ),
            color=COLOR_MARKET,
            url=f"{RESERVOIR_MARKET}/collections/{event.contract}",
            author_name=name,
            author_url=f"{RESERVOIR_MARKET}/collections/{safe_get_str(collection, 'id') or event.contract}",
            author_icon=icon,
            thumbnail=icon,
            timestamp=event.created_at,
        )

    async def render_listing(self, event: FeedEvent) -> Alert:
        order = event.raw
        source_name = safe_get_str(order, "source.name")
        source_icon = safe_get_str(order, "source.icon")

        if not source_name or not source_icon:
            raise IncompleteUpstreamData(
                f"couldn't return listing order source for {event.event_id}",
                item_id=event.event_id,
            )

        token: Optional[dict] = None
        if event.group_key:
            token = safe_get(await self._client.fetch_token_set(event.group_key), "token")

        name = safe_get_str(token, "name")
        image = safe_get_str(token, "image")
        collection_name = safe_get_str(token, "collection.name")
        collection_image = safe_get_str(token, "collection.image")

        if not token or not name or not image or not collection_name or not collection_image:
            raise IncompleteUpstreamData(
                f"couldn't return listing order collection data for {event.event_id}",
                item_id=event.event_id,
            )

        token_contract = safe_get_str(token, "contract") or event.contract

        return Alert(
            category=Category.LISTINGS,
            contract=event.contract,
            title=f"{name.strip()} has been listed!",
            description=(
                f"Item: {name}\n"
                f"Price: {_price_line(order)}\n"
                f"From: {safe_get(order, 'maker')}"
            ),
            color=COLOR_MARKET,
            url=f"{MARKET_URL}/{token_contract}/{safe_get(token, 'tokenId')}",
            author_name=collection_name,
            author_url=f"{MARKET_URL}/{token_contract}",
            author_icon=collection_image,
            thumbnail=image,
            footer=source_name,
            footer_icon=source_icon,
        )

    async def render_sale(self, event: FeedEvent) -> Alert:
        sale = event.raw
        order_source = safe_get_str(sale, "orderSource")
        tx_hash = safe_get_str(sale, "txHash")

        if not order_source:
            raise IncompleteUpstreamData(
                f"couldn't return sale order source for {tx_hash}",
                item_id=event.event_id,
            )

        name = safe_get_str(sale, "token.name")
        image = safe_get_str(sale, "token.image")
        if not name or not image:
            raise IncompleteUpstreamData(
                f"couldn't return sale order name and image for {tx_hash}",
                item_id=event.event_id,
            )

        token_contract = safe_get_str(sale, "token.contract") or event.contract
        collection = await self._client.fetch_collection(token_contract)
        collection_name = safe_get_str(collection, "name")
        collection_image = safe_get_str(collection, "image")

        if not collection_name or not collection_image:
            raise IncompleteUpstreamData(
                f"couldn't return sale order collection data for {tx_hash}",
                item_id=event.event_id,
            )

        return Alert(
            category=Category.SALES,
            contract=event.contract,
            title=f"{name} has been sold!",
            description=(
                f"Item: {name}\n"
                f"Price: {_price_line(sale)}\n"
                f"Buyer: {safe_get(sale, 'to')}\n"
                f"Seller: {safe_get(sale, 'from')}"
            ),
            color=COLOR_SALE,
            url=f"{ETHERSCAN_TX}/{tx_hash}",
            author_name=safe_get_str(sale, "token.collection.name") or collection_name,
            author_url=f"{MARKET_URL}/{token_contract}",
            author_icon=collection_image,
            thumbnail=image,
            footer=order_source,
            footer_icon=f"{RESERVOIR_REDIRECT}/{order_source}/logo/v2",
            timestamp=parse_timestamp(safe_get(sale, "timestamp")),
        )

    def render_burn(self, event: FeedEvent) -> Alert:
        transfer = event.raw
        token_name = safe_get_str(transfer, "token.name") or "Unknown Token"
        collection_name = safe_get_str(transfer, "token.collection.name") or "Unknown Collection"
        tx_hash = safe_get_str(transfer, "txHash")
        native = safe_get(transfer, "price.amount.native") or "N/A"
        usd = safe_get(transfer, "price.amount.usd") or "N/A"

        return Alert(
            category=Category.BURN,
            contract=event.contract,
            title=f"{token_name} has been burned!",
            description=(
                f"A token from the collection **{collection_name}** "
                f"has been sent to the burn address."
            ),
            color=COLOR_BURN,
            url=f"{ETHERSCAN_TX}/{tx_hash}" if tx_hash else None,
            thumbnail=safe_get_str(transfer, "token.image"),
            footer="Token Burn Event",
            timestamp=parse_timestamp(safe_get(transfer, "timestamp")),
            fields=[
                {"name": "Price", "value": f"{native}Ξ (${usd})", "inline": True},
                {
                    "name": "Transaction",
                    "value": f"[View on Etherscan]({ETHERSCAN_TX}/{tx_hash})" if tx_hash else "N/A",
                    "inline": True,
                },
            ],
        )
