"""
Notifiers
=========

Deliver rendered alerts to the messaging layer.

The core only needs to know whether a send succeeded before it commits
state, so send() returns a bool and never raises for delivery problems.

Implementations:
    - DiscordWebhookNotifier: posts embeds to Discord webhooks via aiohttp.
      Listings and sales have their own channels; floor, bid and burn
      alerts go to the main channel.
    - LogNotifier: logs alerts instead of sending (DRY_RUN)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiohttp

from nftwatch.errors import NotifierError
from nftwatch.types import Alert, Category

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_SEC = 10
MAX_RATE_LIMIT_WAIT_SEC = 10.0


class Notifier(ABC):
    """Delivery interface used by the pollers."""

    @abstractmethod
    async def send(self, alert: Alert) -> bool:
        """Deliver an alert; True on success."""

    @abstractmethod
    async def send_text(self, category: Category, text: str) -> bool:
        """Deliver a plain text notice to the category's channel."""

    async def close(self) -> None:
        pass


class LogNotifier(Notifier):
    """Logs alerts and reports success."""

    def __init__(self) -> None:
        self.sent: list[Alert] = []

    async def send(self, alert: Alert) -> bool:
        self.sent.append(alert)
        logger.info(
            "alert_dry_run",
            extra={
                "category": alert.category.value,
                "contract": alert.contract,
                "title": alert.title,
                "embed": alert.to_discord_embed(),
            },
        )
        return True

    async def send_text(self, category: Category, text: str) -> bool:
        logger.info("notice_dry_run", extra={"category": category.value, "text": text})
        return True


class DiscordWebhookNotifier(Notifier):
    """
    Discord webhook notifier.

    Args:
        main_webhook_url: Channel for floor, bid and burn alerts (and the
            fallback for categories without their own webhook)
        listings_webhook_url: Channel for listing alerts
        sales_webhook_url: Channel for sale alerts
        timeout_sec: Request timeout
        username: Optional webhook display name override
    """

    def __init__(
        self,
        main_webhook_url: str,
        listings_webhook_url: Optional[str] = None,
        sales_webhook_url: Optional[str] = None,
        timeout_sec: float = WEBHOOK_TIMEOUT_SEC,
        username: Optional[str] = None,
    ) -> None:
        self._routes: dict[Category, str] = {
            Category.FLOOR: main_webhook_url,
            Category.BID: main_webhook_url,
            Category.BURN: main_webhook_url,
            Category.LISTINGS: listings_webhook_url or main_webhook_url,
            Category.SALES: sales_webhook_url or main_webhook_url,
        }
        self._timeout_sec = timeout_sec
        self._username = username
        self._session: Optional[aiohttp.ClientSession] = None

        logger.info(
            "discord_notifier_initialized",
            extra={"channels": len(set(self._routes.values()))},
        )

    def webhook_for(self, category: Category) -> str:
        return self._routes[category]

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_sec),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
            logger.info("discord_notifier_closed")

    async def _post(self, url: str, payload: dict[str, Any]) -> None:
        """
        POST to a webhook, waiting out one 429 response.

        Raises:
            NotifierError: delivery failed
        """
        if self._username:
            payload = {**payload, "username": self._username}

        session = await self._get_session()
        for attempt in (1, 2):
            try:
                async with session.post(url, json=payload) as response:
                    if 200 <= response.status < 300:
                        return
                    if response.status == 429 and attempt == 1:
                        body = await response.json(content_type=None)
                        retry_after = float((body or {}).get("retry_after", 1.0))
                        await asyncio.sleep(min(retry_after, MAX_RATE_LIMIT_WAIT_SEC))
                        continue
                    text = await response.text()
                    raise NotifierError(f"webhook HTTP {response.status}: {text[:200]}")
            except asyncio.TimeoutError as e:
                raise NotifierError("webhook request timed out") from e
            except aiohttp.ClientError as e:
                raise NotifierError(f"webhook request failed: {e}") from e
            except ValueError as e:
                raise NotifierError(f"invalid webhook rate limit response: {e}") from e

        raise NotifierError("webhook still rate limited")

    async def send(self, alert: Alert) -> bool:
        try:
            await self._post(self.webhook_for(alert.category), {"embeds": [alert.to_discord_embed()]})
        except NotifierError as e:
            logger.error(
                "alert_send_failed",
                extra={
                    "category": alert.category.value,
                    "contract": alert.contract,
                    "title": alert.title,
                    "error": str(e),
                },
            )
            return False
        return True

    async def send_text(self, category: Category, text: str) -> bool:
        try:
            await self._post(self.webhook_for(category), {"content": text})
        except NotifierError as e:
            logger.error(
                "notice_send_failed",
                extra={"category": category.value, "error": str(e)},
            )
            return False
        return True
