"""
Cooldown / Override Policy
==========================

Decides whether a detected scalar change (floor, top bid) is alert-worthy
right now.

Logic:
    - No stored baseline price -> emit (first observation, establishes
      the baseline, cooldown is not consulted)
    - r = last_value / fresh_value
    - r > 1 + f  or  r < 1 - f  -> override: the cooldown counts as expired
    - no active cooldown (after override) -> emit, start a new cooldown
    - otherwise -> suppress

A suppressed change writes nothing, so the same event id is evaluated
again next cycle and alerts once the cooldown clears.

Example (f = 0.1, cooldown active, last_value = 100):
    fresh 105 -> r = 0.952 -> suppressed
    fresh 95  -> r = 1.053 -> suppressed
    fresh 85  -> r = 1.176 -> override -> emit
"""

import logging
from dataclasses import dataclass
from typing import Optional

from nftwatch.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Deployed defaults
DEFAULT_COOLDOWN_SEC = 60 * 30
DEFAULT_OVERRIDE_FRACTION = 0.1

REASON_NO_BASELINE = "no_baseline"
REASON_OVERRIDE = "override"
REASON_NO_COOLDOWN = "no_cooldown"
REASON_COOLDOWN = "cooldown"


@dataclass(slots=True, frozen=True)
class CooldownDecision:
    """Outcome of a cooldown evaluation."""
    emit: bool
    overridden: bool
    reason: str
    ratio: Optional[float] = None


class CooldownPolicy:
    """
    Cooldown window with a magnitude override.

    Args:
        cooldown_window_sec: TTL of the cooldown marker set after an alert
        override_fraction: Relative price move (0 < f < 1) that bypasses
            an active cooldown
    """

    def __init__(
        self,
        cooldown_window_sec: int = DEFAULT_COOLDOWN_SEC,
        override_fraction: float = DEFAULT_OVERRIDE_FRACTION,
    ) -> None:
        if cooldown_window_sec <= 0:
            raise ConfigurationError(
                f"cooldown window must be positive, got {cooldown_window_sec}"
            )
        if not 0 < override_fraction < 1:
            raise ConfigurationError(
                f"override fraction must be in (0, 1), got {override_fraction}"
            )
        self.cooldown_window_sec = cooldown_window_sec
        self.override_fraction = override_fraction

    def ratio(self, last_value: float, fresh_value: float) -> float:
        """r = last_value / fresh_value; fresh_value must be positive."""
        return last_value / fresh_value

    def is_override(self, last_value: Optional[float], fresh_value: float) -> bool:
        """True when the move from last_value exceeds the override fraction."""
        if last_value is None:
            return False
        r = self.ratio(last_value, fresh_value)
        return r > 1 + self.override_fraction or r < 1 - self.override_fraction

    def decide(
        self,
        fresh_value: float,
        last_value: Optional[float],
        cooldown_active: bool,
    ) -> CooldownDecision:
        """
        Decide emit-or-suppress for a new scalar event.

        Args:
            fresh_value: Price of the new event (> 0)
            last_value: Last alerted price, None if never alerted
            cooldown_active: Whether the cooldown marker is present

        Returns:
            CooldownDecision
        """
        if last_value is None:
            return CooldownDecision(emit=True, overridden=False, reason=REASON_NO_BASELINE)

        r = self.ratio(last_value, fresh_value)
        overridden = self.is_override(last_value, fresh_value)

        if overridden:
            return CooldownDecision(emit=True, overridden=True, reason=REASON_OVERRIDE, ratio=r)
        if not cooldown_active:
            return CooldownDecision(emit=True, overridden=False, reason=REASON_NO_COOLDOWN, ratio=r)
        return CooldownDecision(emit=False, overridden=False, reason=REASON_COOLDOWN, ratio=r)
