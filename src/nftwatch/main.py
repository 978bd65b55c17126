"""
Main Entry Point
================

Entry point for the NFT Watch service.

Usage:
    python -m nftwatch

The service will:
1. Load configuration from environment (exit on missing required settings)
2. Setup JSON logging
3. Connect to the state store (Redis, or in-memory)
4. Start HTTP API server (/health, /state, /collections/*, /tokens/*)
5. Poll every tracked collection for each enabled category
   (listings, sales, floor, bid, burn), then wait POLL_INTERVAL_MS
6. On SIGTERM/SIGINT finish the running cycle and shut down
"""

import asyncio
import logging
import signal
import sys

import uvicorn

from nftwatch import __version__
from nftwatch.config import Settings, load_settings, validate_settings
from nftwatch.errors import ConfigurationError
from nftwatch.http_api import create_app
from nftwatch.logging_setup import setup_logging
from nftwatch.metrics import PollMetrics
from nftwatch.notifier import DiscordWebhookNotifier, LogNotifier, Notifier
from nftwatch.pollers import build_pollers
from nftwatch.reservoir import ReservoirClient
from nftwatch.scheduler import PollScheduler
from nftwatch.state_store import MemoryStateStore, RedisStateStore, StateStore

logger = logging.getLogger(__name__)

# Upper bound for the running cycle to finish after a shutdown signal
SHUTDOWN_GRACE_SEC = 30


def create_state_store(settings: Settings) -> StateStore:
    if settings.STATE_BACKEND == "memory":
        return MemoryStateStore()
    return RedisStateStore.from_url(settings.REDIS_URL, timeout_sec=settings.STATE_TIMEOUT_SEC)


def create_notifier(settings: Settings) -> Notifier:
    if settings.DRY_RUN:
        logger.info("notifier_dry_run")
        return LogNotifier()
    return DiscordWebhookNotifier(
        main_webhook_url=settings.DISCORD_MAIN_WEBHOOK_URL,
        listings_webhook_url=settings.DISCORD_LISTINGS_WEBHOOK_URL or None,
        sales_webhook_url=settings.DISCORD_SALES_WEBHOOK_URL or None,
        username=settings.DISCORD_USERNAME or None,
    )


async def run_http_server(
    app,
    host: str,
    port: int,
) -> None:
    """Run uvicorn HTTP server."""
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="warning",
        access_log=False,
    )
    server = uvicorn.Server(config)

    logger.info(
        "http_server_starting",
        extra={"host": host, "port": port},
    )

    try:
        await server.serve()
    except asyncio.CancelledError:
        logger.info("http_server_cancelled")

    logger.info("http_server_stopped")


async def main(settings: Settings) -> None:
    """Main async entry point."""
    alert_config = validate_settings(settings)
    contracts = settings.tracked_contracts()

    logger.info("nftwatch_starting", extra={"version": __version__})
    logger.info("config_loaded", extra={"config": settings.dump()})

    store = create_state_store(settings)
    if not await store.ping():
        # Not fatal: pollers skip collections while the store is unreachable
        logger.error("state_store_unreachable", extra={"backend": settings.STATE_BACKEND})

    client = ReservoirClient(
        api_key=settings.RESERVOIR_API_KEY,
        base_url=settings.RESERVOIR_BASE_URL,
        timeout_sec=settings.FETCH_TIMEOUT_SEC,
        max_retries=settings.FETCH_MAX_RETRIES,
        backoff_base_sec=settings.FETCH_BACKOFF_BASE_SEC,
        max_concurrency=settings.FETCH_MAX_CONCURRENCY,
    )
    notifier = create_notifier(settings)
    metrics = PollMetrics()

    pollers = build_pollers(
        alert_config,
        client,
        store,
        notifier,
        metrics,
        listings_window=settings.LISTINGS_WINDOW,
        sales_window=settings.SALES_WINDOW,
        burn_address=settings.BURN_ADDRESS,
        send_bootstrap_notice=settings.BOOTSTRAP_NOTICE,
    )
    scheduler = PollScheduler(
        pollers,
        contracts,
        metrics,
        poll_interval_ms=alert_config.poll_interval_ms,
        max_parallel_collections=settings.MAX_PARALLEL_COLLECTIONS,
    )

    shutdown_event = asyncio.Event()

    # Setup signal handlers
    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("shutdown_signal", extra={"signal": sig.name})
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    # Create tasks
    scheduler_task = asyncio.create_task(scheduler.run_forever(shutdown_event), name="poll_scheduler")

    http_task = None
    if settings.HTTP_ENABLED:
        http_app = create_app(metrics, store, contracts, scheduler=scheduler, client=client)
        http_task = asyncio.create_task(
            run_http_server(http_app, settings.HTTP_HOST, settings.HTTP_PORT),
            name="http_server",
        )

    logger.info(
        "nftwatch_started",
        extra={
            "contracts": contracts,
            "categories": [p.category.value for p in pollers],
            "dry_run": settings.DRY_RUN,
        },
    )

    # Wait for shutdown signal
    await shutdown_event.wait()

    # =========================================
    # GRACEFUL SHUTDOWN
    # =========================================
    logger.info("shutdown_start")

    # 1. Let the running cycle finish so no commit is cut in half
    try:
        await asyncio.wait_for(scheduler_task, timeout=SHUTDOWN_GRACE_SEC)
    except asyncio.TimeoutError:
        logger.warning("shutdown_cycle_timeout", extra={"timeout_sec": SHUTDOWN_GRACE_SEC})
    except Exception as e:
        logger.warning(
            "shutdown_task_error",
            extra={"task": scheduler_task.get_name(), "error": str(e)},
        )

    # 2. Stop the HTTP server
    if http_task:
        http_task.cancel()
        await asyncio.gather(http_task, return_exceptions=True)

    # 3. Close clients
    await client.close()
    await notifier.close()
    await store.close()

    final_metrics = metrics.get_short_summary()
    logger.info(
        "shutdown_complete",
        extra={
            **final_metrics,
            "reservoir": client.get_stats(),
            "uptime_sec": round(metrics.snapshot().get("uptime_ms", 0) / 1000, 1),
        },
    )


def run() -> None:
    """Synchronous entry point."""
    try:
        settings = load_settings()
    except ConfigurationError as e:
        setup_logging()
        logger.critical("config_invalid", extra={"error": str(e)})
        sys.exit(1)

    setup_logging(settings.LOG_LEVEL)

    try:
        asyncio.run(main(settings))
    except ConfigurationError as e:
        logger.critical("config_invalid", extra={"error": str(e)})
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("nftwatch_interrupted")
    except asyncio.CancelledError:
        logger.info("nftwatch_cancelled")
    except Exception as e:
        logger.exception(
            "nftwatch_crashed",
            extra={"error": str(e)},
        )
        sys.exit(1)


if __name__ == "__main__":
    run()
