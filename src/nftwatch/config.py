"""
Configuration Module
====================

Application configuration using pydantic-settings.
All settings can be overridden via environment variables or a .env file.

Environment variables:
    RESERVOIR_API_KEY         - Reservoir API key (required)
    TRACKED_CONTRACTS         - Collections to watch, comma-separated or JSON list (required)
    ENABLED_CATEGORIES        - Alert categories: floor,bid,listings,sales,burn (default: sales,burn)
    ALERT_COOLDOWN_SEC        - Floor/bid cooldown window (default: 1800)
    PRICE_CHANGE_OVERRIDE     - Relative price move that bypasses the cooldown (default: 0.1)
    POLL_INTERVAL_MS          - Delay between the end of a cycle and the next (default: 1000)
    STATE_BACKEND             - redis or memory (default: redis)
    REDIS_URL                 - Redis connection URL
    DISCORD_MAIN_WEBHOOK_URL  - Floor, bid and burn alerts (required unless DRY_RUN)
    DRY_RUN                   - Log alerts instead of sending them
    LOG_LEVEL                 - Logging level (default: INFO)

Production notes:
    - Run a single instance per Redis database; there is no distributed
      locking between bot instances
    - LISTINGS_WINDOW / SALES_WINDOW bound how many events one cycle can
      backfill; a burst larger than the window is dropped (gap reset)
"""

import json
import logging
from dataclasses import dataclass
from typing import Literal

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nftwatch.errors import ConfigurationError
from nftwatch.types import Category

DEFAULT_ENABLED_CATEGORIES = "sales,burn"


@dataclass(slots=True, frozen=True)
class AlertConfig:
    """
    Static alerting configuration handed to the core.

    Attributes:
        cooldown_window_sec: Cooldown TTL after a floor/bid alert
        override_fraction: Relative price move bypassing the cooldown
        enabled_categories: Categories to poll
        poll_interval_ms: Delay between cycles
    """
    cooldown_window_sec: int
    override_fraction: float
    enabled_categories: frozenset[Category]
    poll_interval_ms: int


def parse_list(value: str) -> list[str]:
    """
    Parse a list setting given as JSON ("[\"a\", \"b\"]") or comma-separated ("a,b").

    Blank entries are dropped.
    """
    text = value.strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            items = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"invalid JSON list: {e}") from e
        if not isinstance(items, list):
            raise ConfigurationError("expected a JSON list")
        return [str(item).strip() for item in items if str(item).strip()]
    return [item.strip() for item in text.split(",") if item.strip()]


class Settings(BaseSettings):
    """
    Application settings.

    All fields can be configured via environment variables.
    Example: ENABLED_CATEGORIES=floor,sales python -m nftwatch
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Reservoir
    RESERVOIR_API_KEY: str = Field(
        default="",
        description="Reservoir API key",
    )
    RESERVOIR_BASE_URL: str = Field(
        default="https://api.reservoir.tools",
        description="Reservoir API base URL",
    )
    FETCH_TIMEOUT_SEC: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Timeout per Reservoir request",
    )
    FETCH_MAX_RETRIES: int = Field(
        default=4,
        ge=0,
        le=10,
        description="Retries on HTTP 429 before the fetch is abandoned for the cycle",
    )
    FETCH_BACKOFF_BASE_SEC: float = Field(
        default=1.0,
        ge=0,
        description="First rate-limit backoff delay, doubled per retry",
    )
    FETCH_MAX_CONCURRENCY: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Maximum concurrent Reservoir requests",
    )

    # Tracked collections and alerting
    TRACKED_CONTRACTS: str = Field(
        default="",
        description="Collection contract addresses, comma-separated or JSON list",
    )
    ENABLED_CATEGORIES: str = Field(
        default=DEFAULT_ENABLED_CATEGORIES,
        description="Enabled alert categories (floor, bid, listings, sales, burn)",
    )
    ALERT_COOLDOWN_SEC: int = Field(
        default=60 * 30,
        ge=1,
        description="Cooldown after a floor/bid alert",
    )
    PRICE_CHANGE_OVERRIDE: float = Field(
        default=0.1,
        gt=0,
        lt=1,
        description="Relative price change that overrides an active cooldown",
    )
    POLL_INTERVAL_MS: int = Field(
        default=1000,
        ge=0,
        description="Delay between the end of one poll cycle and the start of the next",
    )
    LISTINGS_WINDOW: int = Field(
        default=500,
        ge=1,
        le=1000,
        description="Listings fetched per cycle",
    )
    SALES_WINDOW: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Sales/transfers fetched per cycle (also used for burns)",
    )
    BURN_ADDRESS: str = Field(
        default="0x0000000000000000000000000000000000000000",
        description="Destination address that marks a transfer as a burn",
    )
    BOOTSTRAP_NOTICE: bool = Field(
        default=True,
        description="Post a notice when a feed starts from scratch for a collection",
    )
    MAX_PARALLEL_COLLECTIONS: int = Field(
        default=1,
        ge=1,
        le=64,
        description="Collections polled concurrently within one cycle",
    )

    # State store
    STATE_BACKEND: Literal["redis", "memory"] = Field(
        default="redis",
        description="State store backend",
    )
    REDIS_URL: str = Field(
        default="redis://redis:6379/0",
        description="Redis connection URL",
    )
    STATE_TIMEOUT_SEC: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Timeout per state store operation",
    )

    # Discord
    DISCORD_MAIN_WEBHOOK_URL: str = Field(
        default="",
        description="Webhook for floor, bid and burn alerts",
    )
    DISCORD_LISTINGS_WEBHOOK_URL: str = Field(
        default="",
        description="Webhook for listing alerts (falls back to main)",
    )
    DISCORD_SALES_WEBHOOK_URL: str = Field(
        default="",
        description="Webhook for sale alerts (falls back to main)",
    )
    DISCORD_USERNAME: str = Field(
        default="",
        description="Display name override for webhook messages",
    )
    DRY_RUN: bool = Field(
        default=False,
        description="Log alerts instead of sending them",
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # HTTP server
    HTTP_ENABLED: bool = Field(
        default=True,
        description="Serve /health and /state",
    )
    HTTP_HOST: str = Field(
        default="0.0.0.0",
        description="HTTP server bind host",
    )
    HTTP_PORT: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="HTTP server bind port",
    )

    @model_validator(mode="after")
    def warn_on_load(self) -> "Settings":
        """Log warnings for settings that are valid but risky."""
        logger = logging.getLogger(__name__)

        if self.POLL_INTERVAL_MS < 500:
            logger.warning(
                "config_poll_interval_low: POLL_INTERVAL_MS < 500 may exhaust "
                "the Reservoir rate limit with several collections"
            )
        if self.STATE_BACKEND == "memory":
            logger.warning(
                "config_memory_backend: state is lost on restart, every feed "
                "bootstraps again"
            )

        return self

    def tracked_contracts(self) -> list[str]:
        """Tracked contract addresses, deduplicated, in configured order."""
        seen: set[str] = set()
        contracts: list[str] = []
        for contract in parse_list(self.TRACKED_CONTRACTS):
            if contract.lower() in seen:
                continue
            seen.add(contract.lower())
            contracts.append(contract)
        return contracts

    def enabled_categories(self) -> frozenset[Category]:
        """
        Parse ENABLED_CATEGORIES.

        Raises:
            ConfigurationError: unknown category name
        """
        categories = set()
        for name in parse_list(self.ENABLED_CATEGORIES):
            try:
                categories.add(Category.parse(name))
            except ValueError as e:
                raise ConfigurationError(f"unknown alert category: {name}") from e
        return frozenset(categories)

    def alert_config(self) -> AlertConfig:
        return AlertConfig(
            cooldown_window_sec=self.ALERT_COOLDOWN_SEC,
            override_fraction=self.PRICE_CHANGE_OVERRIDE,
            enabled_categories=self.enabled_categories(),
            poll_interval_ms=self.POLL_INTERVAL_MS,
        )

    def dump(self) -> dict:
        """
        Dump configuration for the startup log (secrets omitted).

        Returns:
            Dictionary with configuration values.
        """
        return {
            "reservoir_base_url": self.RESERVOIR_BASE_URL,
            "api_key_set": bool(self.RESERVOIR_API_KEY),
            "tracked_contracts": self.tracked_contracts(),
            "enabled_categories": self.ENABLED_CATEGORIES,
            "alert_cooldown_sec": self.ALERT_COOLDOWN_SEC,
            "price_change_override": self.PRICE_CHANGE_OVERRIDE,
            "poll_interval_ms": self.POLL_INTERVAL_MS,
            "listings_window": self.LISTINGS_WINDOW,
            "sales_window": self.SALES_WINDOW,
            "max_parallel_collections": self.MAX_PARALLEL_COLLECTIONS,
            "state_backend": self.STATE_BACKEND,
            "state_timeout_sec": self.STATE_TIMEOUT_SEC,
            "fetch_timeout_sec": self.FETCH_TIMEOUT_SEC,
            "fetch_max_retries": self.FETCH_MAX_RETRIES,
            "dry_run": self.DRY_RUN,
            "log_level": self.LOG_LEVEL,
            "http_enabled": self.HTTP_ENABLED,
            "http_port": self.HTTP_PORT,
        }


def validate_settings(settings: Settings) -> AlertConfig:
    """
    Check required settings before anything starts.

    Returns:
        AlertConfig for the core

    Raises:
        ConfigurationError: a required setting is missing or invalid
    """
    missing = []
    if not settings.RESERVOIR_API_KEY:
        missing.append("RESERVOIR_API_KEY")
    if not settings.tracked_contracts():
        missing.append("TRACKED_CONTRACTS")
    if not settings.DRY_RUN and not settings.DISCORD_MAIN_WEBHOOK_URL:
        missing.append("DISCORD_MAIN_WEBHOOK_URL")
    if missing:
        raise ConfigurationError(f"missing required settings: {', '.join(missing)}")

    alert_config = settings.alert_config()
    if not alert_config.enabled_categories:
        raise ConfigurationError("ENABLED_CATEGORIES is empty")

    return alert_config


def load_settings(**overrides) -> Settings:
    """
    Load settings from the environment (and .env).

    Raises:
        ConfigurationError: a value fails validation
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"invalid settings: {e}") from e
