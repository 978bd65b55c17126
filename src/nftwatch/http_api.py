"""
HTTP API Module
===============

FastAPI application for health checks, counters and lookups.

Endpoints:
    GET /health                           - Simple health check
    GET /state                            - Counters, scheduler and client stats
    GET /collections/{contract}/state     - Stored markers for every category
    GET /tokens/{contract}/{token_id}     - Token details (name, traits, image)
"""

import logging
from typing import TYPE_CHECKING, Optional, Sequence

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from nftwatch import __version__
from nftwatch.errors import StateStoreError, UpstreamError
from nftwatch.metrics import PollMetrics
from nftwatch.state_store import CategoryState, StateStore
from nftwatch.types import CATEGORY_ORDER
from nftwatch.utils import safe_get, safe_get_str

if TYPE_CHECKING:
    from nftwatch.reservoir import ReservoirClient
    from nftwatch.scheduler import PollScheduler

logger = logging.getLogger(__name__)


def _token_details(result: dict) -> dict:
    token = safe_get(result, "token", {}) or {}
    attributes = safe_get(token, "attributes", []) or []
    return {
        "contract": safe_get_str(token, "contract"),
        "token_id": safe_get_str(token, "tokenId"),
        "name": safe_get_str(token, "name"),
        "description": safe_get_str(token, "description"),
        "image": safe_get_str(token, "image"),
        "owner": safe_get_str(token, "owner"),
        "collection": safe_get_str(token, "collection.name"),
        "rarity_rank": safe_get(token, "rarityRank"),
        "floor_ask": safe_get(result, "market.floorAsk.price.amount.decimal"),
        "traits": [
            {"key": safe_get(attr, "key"), "value": safe_get(attr, "value")}
            for attr in attributes
            if isinstance(attr, dict)
        ],
    }


def create_app(
    metrics: PollMetrics,
    store: StateStore,
    contracts: Sequence[str],
    scheduler: Optional["PollScheduler"] = None,
    client: Optional["ReservoirClient"] = None,
) -> FastAPI:
    """
    Create FastAPI application.

    Args:
        metrics: Poll counters
        store: State store (read only here)
        contracts: Tracked collections
        scheduler: Optional scheduler for cycle stats
        client: Optional Reservoir client for token lookups

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="NFT Watch",
        description="Reservoir marketplace alert poller",
        version=__version__,
        docs_url="/docs",
        redoc_url=None,
    )
    tracked = {c.lower(): c for c in contracts}

    @app.get("/health")
    async def health() -> JSONResponse:
        """
        Health check endpoint.

        Returns:
            {"ok": true, "state_store": bool}
        """
        return JSONResponse({"ok": True, "state_store": await store.ping()})

    @app.get("/state")
    async def state() -> JSONResponse:
        snapshot = metrics.snapshot()
        if scheduler:
            snapshot["scheduler"] = scheduler.get_stats()
        if client:
            snapshot["reservoir"] = client.get_stats()
        return JSONResponse(snapshot)

    @app.get("/collections/{contract}/state")
    async def collection_state(contract: str) -> JSONResponse:
        """
        Stored markers for a tracked collection.

        Returns:
            {"contract": ..., "categories": {"floor": {...}, ...}}
        """
        configured = tracked.get(contract.lower())
        if configured is None:
            raise HTTPException(status_code=404, detail=f"Collection not tracked: {contract}")

        categories = {}
        try:
            for category in CATEGORY_ORDER:
                categories[category.value] = await CategoryState(store, category, configured).snapshot()
        except StateStoreError as e:
            logger.error("state_read_failed", extra={"contract": configured, "error": str(e)})
            raise HTTPException(status_code=503, detail="State store unavailable") from e

        return JSONResponse({"contract": configured, "categories": categories})

    @app.get("/tokens/{contract}/{token_id}")
    async def token_details(contract: str, token_id: str) -> JSONResponse:
        if client is None:
            raise HTTPException(status_code=503, detail="Reservoir client not configured")

        try:
            result = await client.fetch_token(contract, token_id, include_attributes=True)
        except UpstreamError as e:
            logger.error(
                "token_lookup_failed",
                extra={"contract": contract, "token_id": token_id, "error": str(e)},
            )
            raise HTTPException(status_code=502, detail="Reservoir lookup failed") from e

        if result is None:
            raise HTTPException(status_code=404, detail=f"Token not found: {contract}:{token_id}")

        return JSONResponse(_token_details(result))

    return app
