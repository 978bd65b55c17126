"""
Category Pollers
================

One poll pass of a single category for a single collection.

ScalarPoller (floor, bid):
    fetch freshest event -> detector.evaluate -> render -> send
    -> detector.commit only if the send succeeded

FeedPoller (listings, sales, burn):
    fetch newest-first window -> tracker.reconcile_window
    -> render + send every candidate, oldest first (each item independent)
    -> tracker.commit once the batch was processed, even if every
       candidate was skipped

Errors are caught at the smallest scope: a failing item is skipped, a
failing collection is skipped for this cycle, and nothing propagates to
the scheduler.
"""

import asyncio
import logging
from typing import Optional, Union

from nftwatch.config import AlertConfig
from nftwatch.cooldown import CooldownPolicy
from nftwatch.detector import STATUS_SUPPRESSED, STATUS_UNCHANGED, ScalarChangeDetector
from nftwatch.errors import IncompleteUpstreamData, StateStoreError, UpstreamError
from nftwatch.metrics import PollMetrics
from nftwatch.notifier import Notifier
from nftwatch.reconciler import (
    ACTION_BOOTSTRAP,
    ACTION_EMPTY,
    ACTION_GAP,
    ACTION_UNCHANGED,
    BURN_ADDRESS,
    OrderedFeedTracker,
    burn_filter,
)
from nftwatch.renderers import AlertRenderer, bootstrap_notice
from nftwatch.reservoir import ReservoirClient
from nftwatch.state_store import StateStore
from nftwatch.types import CATEGORY_ORDER, Category, FeedEvent

logger = logging.getLogger(__name__)

DEFAULT_LISTINGS_WINDOW = 500
DEFAULT_SALES_WINDOW = 100


class ScalarPoller:
    """
    Poller for floor-ask and top-bid alerts.

    Args:
        client: Event source
        detector: Change detector for the category
        renderer: Alert renderer
        notifier: Delivery
        metrics: Counters
    """

    def __init__(
        self,
        client: ReservoirClient,
        detector: ScalarChangeDetector,
        renderer: AlertRenderer,
        notifier: Notifier,
        metrics: PollMetrics,
    ) -> None:
        self.category = detector.category
        self._client = client
        self._detector = detector
        self._renderer = renderer
        self._notifier = notifier
        self._metrics = metrics

    async def poll_collection(self, contract: str) -> int:
        """
        Run one pass for a collection.

        Returns:
            Number of alerts sent (0 or 1)
        """
        log_ctx = {"category": self.category.value, "contract": contract}

        try:
            event = await self._client.fetch_latest_event(contract, self.category)
            detection = await self._detector.evaluate(event)
        except IncompleteUpstreamData as e:
            self._metrics.inc(self.category, "skipped_incomplete")
            logger.warning("scalar_event_incomplete", extra={**log_ctx, "error": str(e)})
            return 0
        except UpstreamError as e:
            self._metrics.inc(self.category, "errors")
            logger.error("scalar_fetch_failed", extra={**log_ctx, "error": str(e), "status": e.status})
            return 0
        except StateStoreError as e:
            self._metrics.inc(self.category, "errors")
            logger.error("scalar_state_read_failed", extra={**log_ctx, "error": str(e)})
            return 0

        if detection.status == STATUS_UNCHANGED:
            return 0

        if detection.status == STATUS_SUPPRESSED:
            self._metrics.inc(self.category, "suppressed")
            logger.debug(
                "scalar_alert_suppressed",
                extra={
                    **log_ctx,
                    "event_id": event.event_id,
                    "reason": detection.reason,
                    "fresh_value": event.value,
                    "last_value": detection.last_value,
                },
            )
            return 0

        try:
            alert = await self._renderer.render_scalar(event)
        except IncompleteUpstreamData as e:
            self._metrics.inc(self.category, "skipped_incomplete")
            logger.warning("scalar_render_incomplete", extra={**log_ctx, "error": str(e)})
            return 0
        except UpstreamError as e:
            self._metrics.inc(self.category, "errors")
            logger.error("scalar_lookup_failed", extra={**log_ctx, "error": str(e)})
            return 0

        if not await self._notifier.send(alert):
            self._metrics.inc(self.category, "alerts_failed")
            return 0

        self._metrics.inc(self.category, "alerts_sent")
        logger.info(
            f"{self.category.value}_alert_sent",
            extra={
                **log_ctx,
                "event_id": event.event_id,
                "value": event.value,
                "reason": detection.reason,
            },
        )

        try:
            await self._detector.commit(event)
        except StateStoreError as e:
            # Next cycle sees the old id again and may re-alert
            self._metrics.inc(self.category, "errors")
            logger.error("scalar_state_write_failed", extra={**log_ctx, "error": str(e)})

        return 1


class FeedPoller:
    """
    Poller for ordered-log categories (listings, sales, burns).

    Args:
        client: Event source
        tracker: Backfill tracker for the category
        renderer: Alert renderer
        notifier: Delivery
        metrics: Counters
        window_size: Events fetched per cycle (bounds the backfill)
        send_bootstrap_notice: Announce first-run baselines in the channel
    """

    def __init__(
        self,
        client: ReservoirClient,
        tracker: OrderedFeedTracker,
        renderer: AlertRenderer,
        notifier: Notifier,
        metrics: PollMetrics,
        window_size: int,
        send_bootstrap_notice: bool = True,
    ) -> None:
        self.category = tracker.category
        self._client = client
        self._tracker = tracker
        self._renderer = renderer
        self._notifier = notifier
        self._metrics = metrics
        self.window_size = window_size
        self._send_bootstrap_notice = send_bootstrap_notice

    async def poll_collection(self, contract: str) -> int:
        """
        Run one pass for a collection.

        Returns:
            Number of alerts sent
        """
        log_ctx = {"category": self.category.value, "contract": contract}

        try:
            window = await self._client.fetch_event_window(contract, self.category, self.window_size)
            result = await self._tracker.reconcile_window(contract, window)
        except IncompleteUpstreamData as e:
            self._metrics.inc(self.category, "skipped_incomplete")
            logger.warning("feed_window_incomplete", extra={**log_ctx, "error": str(e)})
            return 0
        except UpstreamError as e:
            self._metrics.inc(self.category, "errors")
            logger.error("feed_fetch_failed", extra={**log_ctx, "error": str(e), "status": e.status})
            return 0
        except StateStoreError as e:
            self._metrics.inc(self.category, "errors")
            logger.error("feed_state_read_failed", extra={**log_ctx, "error": str(e)})
            return 0

        if result.action in (ACTION_EMPTY, ACTION_UNCHANGED):
            return 0

        if result.action == ACTION_BOOTSTRAP:
            self._metrics.inc(self.category, "bootstraps")
            logger.info(
                "feed_bootstrap",
                extra={**log_ctx, "baseline": result.new_last_event_id},
            )
            if self._send_bootstrap_notice:
                await self._notifier.send_text(self.category, bootstrap_notice(self.category, contract))

        elif result.action == ACTION_GAP:
            self._metrics.inc(self.category, "gaps")
            logger.warning(
                "feed_marker_not_in_window",
                extra={
                    **log_ctx,
                    "stale_marker": result.previous_last_event_id,
                    "window_size": len(window),
                },
            )

        for duplicate in result.collapsed:
            self._metrics.inc(self.category, "collapsed")
            logger.info(
                "feed_duplicate_skipped",
                extra={**log_ctx, "event_id": duplicate.event_id, "group_key": duplicate.group_key},
            )

        sent = 0
        for event in result.candidates:
            sent += await self._deliver(event)

        try:
            await self._tracker.commit(contract, result)
        except StateStoreError as e:
            self._metrics.inc(self.category, "errors")
            logger.error("feed_state_write_failed", extra={**log_ctx, "error": str(e)})

        if result.candidates:
            logger.info(
                "feed_backfill_done",
                extra={
                    **log_ctx,
                    "candidates": len(result.candidates),
                    "collapsed": len(result.collapsed),
                    "sent": sent,
                    "marker": result.new_last_event_id,
                },
            )

        return sent

    async def _deliver(self, event: FeedEvent) -> int:
        log_ctx = {
            "category": self.category.value,
            "contract": event.contract,
            "event_id": event.event_id,
        }

        try:
            alert = await self._renderer.render_feed(event)
        except IncompleteUpstreamData as e:
            self._metrics.inc(self.category, "skipped_incomplete")
            logger.warning("feed_item_incomplete", extra={**log_ctx, "error": str(e)})
            return 0
        except UpstreamError as e:
            self._metrics.inc(self.category, "errors")
            logger.error("feed_item_lookup_failed", extra={**log_ctx, "error": str(e)})
            return 0
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # One malformed item must not keep the marker from advancing
            self._metrics.inc(self.category, "errors")
            logger.exception(
                "feed_item_render_failed",
                extra={**log_ctx, "error": str(e), "error_type": type(e).__name__},
            )
            return 0

        try:
            delivered = await self._notifier.send(alert)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            delivered = False
            logger.exception(
                "feed_item_send_failed",
                extra={**log_ctx, "error": str(e), "error_type": type(e).__name__},
            )

        if not delivered:
            self._metrics.inc(self.category, "alerts_failed")
            return 0

        self._metrics.inc(self.category, "alerts_sent")
        logger.info(f"{self.category.value}_alert_sent", extra=log_ctx)
        return 1


Poller = Union[ScalarPoller, FeedPoller]


def build_pollers(
    alert_config: AlertConfig,
    client: ReservoirClient,
    store: StateStore,
    notifier: Notifier,
    metrics: PollMetrics,
    listings_window: int = DEFAULT_LISTINGS_WINDOW,
    sales_window: int = DEFAULT_SALES_WINDOW,
    burn_address: str = BURN_ADDRESS,
    send_bootstrap_notice: bool = True,
    renderer: Optional[AlertRenderer] = None,
) -> list[Poller]:
    """
    Create pollers for every enabled category, in processing order.

    Floor and bid share one CooldownPolicy; the top-bid detector also
    requires the price to differ from the last alerted one.
    """
    renderer = renderer or AlertRenderer(client)
    policy = CooldownPolicy(alert_config.cooldown_window_sec, alert_config.override_fraction)
    pollers: list[Poller] = []

    for category in CATEGORY_ORDER:
        if category not in alert_config.enabled_categories:
            continue

        if category.is_scalar:
            detector = ScalarChangeDetector(
                category,
                store,
                policy,
                require_value_change=category == Category.BID,
            )
            pollers.append(ScalarPoller(client, detector, renderer, notifier, metrics))
            continue

        if category == Category.BURN:
            tracker = OrderedFeedTracker(category, store, qualifies=burn_filter(burn_address))
            window_size = sales_window
        elif category == Category.LISTINGS:
            tracker = OrderedFeedTracker(category, store)
            window_size = listings_window
        else:
            tracker = OrderedFeedTracker(category, store)
            window_size = sales_window

        pollers.append(
            FeedPoller(
                client,
                tracker,
                renderer,
                notifier,
                metrics,
                window_size=window_size,
                send_bootstrap_notice=send_bootstrap_notice,
            )
        )

    return pollers
