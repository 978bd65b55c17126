"""
Type Definitions
================

Alert categories, normalized marketplace events and rendered alerts.

Categories come in two shapes:
    - scalar:      one current value of interest per collection (floor, bid);
                   only the freshest event matters.
    - ordered-log: many discrete events per cycle (listings, sales, burns);
                   a newest-first window is reconciled against the last
                   alerted position.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Category(str, Enum):
    """Alert category."""
    FLOOR = "floor"
    BID = "bid"
    LISTINGS = "listings"
    SALES = "sales"
    BURN = "burn"

    @property
    def is_scalar(self) -> bool:
        return self in SCALAR_CATEGORIES

    @classmethod
    def parse(cls, value: str) -> "Category":
        """Parse a category name (case-insensitive, surrounding whitespace ignored)."""
        return cls(value.strip().lower())


SCALAR_CATEGORIES = frozenset({Category.FLOOR, Category.BID})
ORDERED_CATEGORIES = frozenset({Category.LISTINGS, Category.SALES, Category.BURN})

# Processing order within one collection
CATEGORY_ORDER = (
    Category.LISTINGS,
    Category.SALES,
    Category.FLOOR,
    Category.BID,
    Category.BURN,
)

# Key prefixes and marker field names as deployed, so existing Redis data
# keeps working: "flooreventid_0x..", "listingsorderid_0x..", "burnevent_0x.."
STATE_KEY_PREFIX = {
    Category.FLOOR: "floor",
    Category.BID: "bid",
    Category.LISTINGS: "listings",
    Category.SALES: "sale",
    Category.BURN: "burn",
}

LAST_EVENT_FIELD = {
    Category.FLOOR: "eventid",
    Category.BID: "eventid",
    Category.LISTINGS: "orderid",
    Category.SALES: "orderid",
    Category.BURN: "event",
}

FIELD_LAST_VALUE = "price"
FIELD_COOLDOWN = "cooldown"


def state_key(category: Category, field_name: str, contract: str) -> str:
    """
    Build a state store key: ``"{category}{field}_{contract}"``.

    Example:
        >>> state_key(Category.FLOOR, "price", "0xabc")
        'floorprice_0xabc'
    """
    return f"{STATE_KEY_PREFIX[category]}{field_name}_{contract}"


def last_event_key(category: Category, contract: str) -> str:
    """Key of the last alerted event/order id for a (category, contract) pair."""
    return state_key(category, LAST_EVENT_FIELD[category], contract)


@dataclass(slots=True, frozen=True)
class ScalarEvent:
    """
    Freshest event of a scalar category.

    Attributes:
        category: FLOOR or BID
        event_id: Marketplace event id (numeric, monotonically increasing)
        value: Price in native currency
        contract: Collection contract address
        maker: Order maker (bid maker, floor lister)
        token_id: Floor token id (floor only)
        source: Order source domain (floor only)
        created_at: Event time, if reported
        raw: Untouched upstream payload
    """
    category: Category
    event_id: str
    value: float
    contract: str
    maker: Optional[str] = None
    token_id: Optional[str] = None
    source: Optional[str] = None
    created_at: Optional[datetime] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(slots=True, frozen=True)
class FeedEvent:
    """
    One entry of an ordered-log window (listing order or sale).

    Attributes:
        category: LISTINGS, SALES or BURN
        event_id: Order id (listings) or sale id (sales, burns)
        contract: Collection contract address
        group_key: Entries sharing it are one user-facing event
            (listings: token-set id); None disables collapsing
        to_address: Transfer destination (sales/burns)
        raw: Untouched upstream payload, used by renderers
    """
    category: Category
    event_id: str
    contract: str
    group_key: Optional[str] = None
    to_address: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(slots=True)
class Alert:
    """
    Rendered alert, ready for delivery.

    Has no identity beyond what is needed to format and send it.
    """
    category: Category
    contract: str
    title: str
    description: str
    color: int
    url: Optional[str] = None
    author_name: Optional[str] = None
    author_url: Optional[str] = None
    author_icon: Optional[str] = None
    thumbnail: Optional[str] = None
    image: Optional[str] = None
    footer: Optional[str] = None
    footer_icon: Optional[str] = None
    timestamp: Optional[datetime] = None
    fields: list[dict[str, Any]] = field(default_factory=list)

    def to_discord_embed(self) -> dict[str, Any]:
        """
        Convert to a Discord embed object.

        Optional parts are omitted rather than sent as null, Discord
        rejects embeds with null urls.
        """
        embed: dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "color": self.color,
        }
        if self.url:
            embed["url"] = self.url
        if self.author_name:
            author: dict[str, str] = {"name": self.author_name}
            if self.author_url:
                author["url"] = self.author_url
            if self.author_icon:
                author["icon_url"] = self.author_icon
            embed["author"] = author
        if self.thumbnail:
            embed["thumbnail"] = {"url": self.thumbnail}
        if self.image:
            embed["image"] = {"url": self.image}
        if self.footer:
            footer: dict[str, str] = {"text": self.footer}
            if self.footer_icon:
                footer["icon_url"] = self.footer_icon
            embed["footer"] = footer
        if self.timestamp:
            embed["timestamp"] = self.timestamp.isoformat()
        if self.fields:
            embed["fields"] = list(self.fields)
        return embed
