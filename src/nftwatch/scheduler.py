"""
Poll Scheduler
==============

Runs poll cycles until shutdown.

One cycle:
    for each tracked collection:
        for each enabled category (listings, sales, floor, bid, burn):
            poller.poll_collection(contract)

Within one collection, categories run sequentially, so the state reads
for a (collection, category) pair always happen before its writes. With
MAX_PARALLEL_COLLECTIONS > 1 collections fan out over a bounded set of
concurrent tasks; they share no state, so this is safe.

The next cycle starts poll_interval_ms after the previous one finished.
A running cycle is never aborted; shutdown is honoured between cycles.

Usage:
    scheduler = PollScheduler(pollers, contracts, metrics, poll_interval_ms=1000)
    task = asyncio.create_task(scheduler.run_forever(shutdown_event))
"""

import asyncio
import logging
from typing import Optional, Sequence

from nftwatch.metrics import PollMetrics
from nftwatch.pollers import Poller
from nftwatch.utils_time import now_ms

logger = logging.getLogger(__name__)

STATE_LOG_INTERVAL_SEC = 60


class PollScheduler:
    """
    Periodic driver for all pollers.

    Args:
        pollers: Category pollers, in processing order
        contracts: Tracked collection contract addresses
        metrics: Shared counters
        poll_interval_ms: Delay between the end of a cycle and the next
        max_parallel_collections: Collections processed concurrently
        state_log_interval_sec: Interval of the periodic state log
    """

    def __init__(
        self,
        pollers: Sequence[Poller],
        contracts: Sequence[str],
        metrics: PollMetrics,
        poll_interval_ms: int = 1000,
        max_parallel_collections: int = 1,
        state_log_interval_sec: int = STATE_LOG_INTERVAL_SEC,
    ) -> None:
        self._pollers = list(pollers)
        self._contracts = [c for c in contracts if c]
        self._metrics = metrics
        self._poll_interval_sec = poll_interval_ms / 1000.0
        self._max_parallel = max(1, max_parallel_collections)
        self._state_log_interval_sec = state_log_interval_sec

        self._cycle_count = 0
        self._unexpected_errors = 0
        self._alerts_total = 0
        self._last_cycle_ts: Optional[int] = None

        logger.info(
            "poll_scheduler_initialized",
            extra={
                "categories": [p.category.value for p in self._pollers],
                "contracts": len(self._contracts),
                "poll_interval_ms": poll_interval_ms,
                "max_parallel_collections": self._max_parallel,
            },
        )

    @property
    def contracts(self) -> list[str]:
        return list(self._contracts)

    async def run_forever(self, shutdown_event: asyncio.Event) -> None:
        """
        Run cycles until shutdown_event is set.

        Args:
            shutdown_event: Event to signal shutdown
        """
        logger.info("poll_scheduler_starting")

        state_task = asyncio.create_task(
            self._state_logger_loop(shutdown_event),
            name="poll_scheduler_state_logger",
        )

        try:
            while not shutdown_event.is_set():
                await self.run_cycle()

                # Wait for next interval or shutdown
                try:
                    await asyncio.wait_for(
                        shutdown_event.wait(),
                        timeout=self._poll_interval_sec,
                    )
                    break  # Shutdown requested
                except asyncio.TimeoutError:
                    pass  # Continue to next cycle
        finally:
            state_task.cancel()
            await asyncio.gather(state_task, return_exceptions=True)
            logger.info(
                "poll_scheduler_stopped",
                extra={
                    "cycles": self._cycle_count,
                    "alerts_total": self._alerts_total,
                },
            )

    async def run_cycle(self) -> int:
        """
        Poll every collection once for every enabled category.

        Returns:
            Alerts sent during the cycle
        """
        start_ms = now_ms()

        if self._max_parallel == 1:
            sent = 0
            for contract in self._contracts:
                sent += await self._poll_contract(contract)
        else:
            semaphore = asyncio.Semaphore(self._max_parallel)

            async def _bounded(contract: str) -> int:
                async with semaphore:
                    return await self._poll_contract(contract)

            results = await asyncio.gather(*(_bounded(c) for c in self._contracts))
            sent = sum(results)

        elapsed_ms = now_ms() - start_ms
        self._cycle_count += 1
        self._alerts_total += sent
        self._last_cycle_ts = now_ms()
        self._metrics.observe_cycle(elapsed_ms)

        logger.debug(
            "poll_cycle_done",
            extra={
                "cycle": self._cycle_count,
                "alerts": sent,
                "elapsed_ms": elapsed_ms,
            },
        )
        return sent

    async def _poll_contract(self, contract: str) -> int:
        sent = 0
        for poller in self._pollers:
            try:
                sent += await poller.poll_collection(contract)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._unexpected_errors += 1
                self._metrics.inc(poller.category, "errors")
                logger.exception(
                    "poll_unexpected_error",
                    extra={
                        "category": poller.category.value,
                        "contract": contract,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
        return sent

    async def _state_logger_loop(self, shutdown_event: asyncio.Event) -> None:
        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    shutdown_event.wait(),
                    timeout=self._state_log_interval_sec,
                )
                break  # Shutdown requested
            except asyncio.TimeoutError:
                pass  # Log state

            logger.info("poll_scheduler_state", extra=self._metrics.get_short_summary())

    def get_stats(self) -> dict:
        """
        Scheduler statistics.

        Returns:
            Dict with cycle counts, alert totals and configuration
        """
        return {
            "cycles": self._cycle_count,
            "alerts_total": self._alerts_total,
            "unexpected_errors": self._unexpected_errors,
            "last_cycle_age_sec": (
                round((now_ms() - self._last_cycle_ts) / 1000, 1)
                if self._last_cycle_ts is not None
                else None
            ),
            "categories": [p.category.value for p in self._pollers],
            "contracts": list(self._contracts),
            "poll_interval_sec": self._poll_interval_sec,
            "max_parallel_collections": self._max_parallel,
        }
