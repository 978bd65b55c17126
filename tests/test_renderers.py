import pytest

from nftwatch.errors import IncompleteUpstreamData
from nftwatch.renderers import COLOR_BURN, COLOR_SALE, AlertRenderer, bootstrap_notice
from nftwatch.types import Category

from conftest import CONTRACT


class LookupClient:
    def __init__(self, token=None, token_set=None, collection=None):
        self.token = token
        self.token_set = token_set
        self.collection = collection

    async def fetch_token(self, contract, token_id, include_attributes=False):
        return self.token

    async def fetch_token_set(self, token_set_id):
        return self.token_set

    async def fetch_collection(self, contract, include_top_bid=False):
        return self.collection


COLLECTION = {"id": CONTRACT, "name": "Forgotten Runes", "image": "https://img/c.png"}


async def test_floor_alert(make_scalar):
    client = LookupClient(token={
        "token": {
            "name": "Wizard #7",
            "owner": "0x1234567890",
            "image": "https://img/7.png",
            "collection": COLLECTION,
            "lastSell": {"value": 0.4},
            "rarityRank": 12,
        }
    })
    event = make_scalar("9", value=0.5, token_id="7", source="opensea.io")

    alert = await AlertRenderer(client).render_scalar(event)

    assert alert.title == "New Floor Listing!"
    assert "Wizard #7 is now the floor token, listed for 0.5Ξ" in alert.description
    assert "Last Sale: 0.4Ξ" in alert.description
    assert alert.author_name == "Forgotten Runes"
    assert "opensea.io" in alert.url


async def test_floor_without_owner_is_incomplete(make_scalar):
    client = LookupClient(token={"token": {"name": "Wizard #7", "collection": COLLECTION}})

    with pytest.raises(IncompleteUpstreamData):
        await AlertRenderer(client).render_scalar(make_scalar("9", value=0.5, token_id="7"))


async def test_bid_alert(make_scalar):
    alert = await AlertRenderer(LookupClient(collection=COLLECTION)).render_scalar(
        make_scalar("3", value=0.2, category=Category.BID, maker="0xbidder00")
    )

    assert alert.title == "New Top Bid!"
    assert "0.2Ξ" in alert.description
    assert alert.thumbnail == COLLECTION["image"]


async def test_listing_requires_source(make_feed):
    event = make_feed("0xo1", category=Category.LISTINGS, group_key="token:0xabc:1", source={"name": "OpenSea"})

    with pytest.raises(IncompleteUpstreamData):
        await AlertRenderer(LookupClient()).render_feed(event)


async def test_listing_alert(make_feed):
    client = LookupClient(token_set={
        "token": {
            "contract": CONTRACT,
            "tokenId": "1",
            "name": "Wizard #1 ",
            "image": "https://img/1.png",
            "collection": {"name": "Forgotten Runes", "image": "https://img/c.png"},
        }
    })
    event = make_feed(
        "0xo1",
        category=Category.LISTINGS,
        group_key="token:0xabc:1",
        source={"name": "OpenSea", "icon": "https://img/os.png"},
        price={"amount": {"native": 1.5, "usd": 3000}},
        maker="0xseller",
    )

    alert = await AlertRenderer(client).render_feed(event)

    assert alert.title == "Wizard #1 has been listed!"
    assert "Price: 1.5Ξ ($3000)" in alert.description
    assert alert.footer == "OpenSea"
    assert alert.url.endswith(f"/{CONTRACT}/1")


async def test_sale_alert(make_feed):
    event = make_feed(
        "s1",
        orderSource="opensea.io",
        txHash="0xtx",
        token={"contract": CONTRACT, "name": "Wizard #2", "image": "https://img/2.png"},
        price={"amount": {"native": 2, "usd": 4000}},
        to="0xbuyer",
        timestamp=1706356800,
    )

    alert = await AlertRenderer(LookupClient(collection=COLLECTION)).render_feed(event)

    assert alert.title == "Wizard #2 has been sold!"
    assert alert.color == COLOR_SALE
    assert alert.url.endswith("/0xtx")
    assert alert.timestamp.year == 2024


def test_burn_alert_falls_back_to_unknown(make_feed):
    alert = AlertRenderer(LookupClient()).render_burn(
        make_feed("s9", category=Category.BURN, txHash="0xburn")
    )

    assert alert.title == "Unknown Token has been burned!"
    assert alert.color == COLOR_BURN
    assert alert.fields[0]["value"] == "N/AΞ ($N/A)"
    embed = alert.to_discord_embed()
    assert embed["footer"] == {"text": "Token Burn Event"}
    assert "author" not in embed


def test_bootstrap_notice_names_contract():
    assert CONTRACT in bootstrap_notice(Category.SALES, CONTRACT)


def test_burn_without_tx_hash_has_no_link(make_feed):
    alert = AlertRenderer(LookupClient()).render_burn(make_feed("s10", category=Category.BURN))

    assert alert.url is None
    assert alert.fields[1] == {"name": "Transaction", "value": "N/A", "inline": True}
