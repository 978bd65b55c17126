"""
Scalar Change Detector
======================

Decides whether the freshest floor-ask / top-bid event of a collection is
new, and whether it should alert now.

Flow per (collection, category):
    1. Validate the event (id and positive price required)
    2. Same id as the stored last_event_id -> unchanged, nothing to do
    3. Otherwise consult CooldownPolicy with the stored price and marker
    4. Caller renders and sends the alert
    5. Only after a successful send does the caller invoke commit(), which
       stores the event id, the price and a fresh cooldown marker

evaluate() never writes, so re-running it on an unchanged event and
unchanged store yields zero alerts and zero writes.

Usage:
    detector = ScalarChangeDetector(Category.FLOOR, store, policy)
    detection = await detector.evaluate(event)
    if detection.should_emit:
        if await notifier.send(alert):
            await detector.commit(event)
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from nftwatch.cooldown import CooldownDecision, CooldownPolicy
from nftwatch.errors import IncompleteUpstreamData
from nftwatch.state_store import CategoryState, StateStore
from nftwatch.types import Category, ScalarEvent

logger = logging.getLogger(__name__)

STATUS_UNCHANGED = "unchanged"
STATUS_SUPPRESSED = "suppressed"
STATUS_EMIT = "emit"

REASON_VALUE_UNCHANGED = "value_unchanged"


def same_event_id(fresh_id: str, stored_id: Optional[str]) -> bool:
    """
    Compare event ids numerically when both parse as numbers.

    Floor/bid event ids are numeric and may come back as "123" or 123.0.
    """
    if stored_id is None:
        return False
    if fresh_id == stored_id:
        return True
    try:
        return Decimal(fresh_id) == Decimal(stored_id)
    except (InvalidOperation, ValueError):
        return False


@dataclass(slots=True)
class Detection:
    """Result of evaluating one scalar event against stored state."""
    status: str
    event: ScalarEvent
    reason: Optional[str] = None
    decision: Optional[CooldownDecision] = None
    last_event_id: Optional[str] = None
    last_value: Optional[float] = None

    @property
    def should_emit(self) -> bool:
        return self.status == STATUS_EMIT


class ScalarChangeDetector:
    """
    Change detector for scalar categories.

    Holds no state across cycles; everything lives in the StateStore.

    Args:
        category: FLOOR or BID
        store: State store
        policy: Cooldown/override policy
        require_value_change: Suppress a new event whose price equals the
            stored price (top-bid behaviour)
    """

    def __init__(
        self,
        category: Category,
        store: StateStore,
        policy: CooldownPolicy,
        require_value_change: bool = False,
    ) -> None:
        if not category.is_scalar:
            raise ValueError(f"{category.value} is not a scalar category")
        self.category = category
        self.store = store
        self.policy = policy
        self.require_value_change = require_value_change

    def state_for(self, contract: str) -> CategoryState:
        return CategoryState(self.store, self.category, contract)

    @staticmethod
    def validate(event: ScalarEvent) -> None:
        """Raise IncompleteUpstreamData if the event cannot be evaluated."""
        if not event.event_id:
            raise IncompleteUpstreamData(
                f"{event.category.value} event without id for {event.contract}"
            )
        if event.value is None or event.value <= 0:
            raise IncompleteUpstreamData(
                f"{event.category.value} event {event.event_id} without price",
                item_id=event.event_id,
            )

    async def evaluate(self, event: ScalarEvent) -> Detection:
        """
        Evaluate the freshest event for its collection.

        Raises:
            IncompleteUpstreamData: event id or price missing
            StateStoreError: store read failed
        """
        self.validate(event)
        state = self.state_for(event.contract)

        last_event_id = await state.last_event_id()
        if same_event_id(event.event_id, last_event_id):
            return Detection(status=STATUS_UNCHANGED, event=event, last_event_id=last_event_id)

        last_value = await state.last_value()

        if (
            self.require_value_change
            and last_value is not None
            and last_value == event.value
        ):
            return Detection(
                status=STATUS_SUPPRESSED,
                event=event,
                reason=REASON_VALUE_UNCHANGED,
                last_event_id=last_event_id,
                last_value=last_value,
            )

        # No baseline: emit without consulting the cooldown marker
        cooldown_active = False
        if last_value is not None:
            cooldown_active = await state.cooldown_active()

        decision = self.policy.decide(event.value, last_value, cooldown_active)

        if decision.overridden and cooldown_active:
            logger.info(
                "cooldown_overridden",
                extra={
                    "category": self.category.value,
                    "contract": event.contract,
                    "last_value": last_value,
                    "fresh_value": event.value,
                    "ratio": round(decision.ratio, 4) if decision.ratio else None,
                },
            )

        return Detection(
            status=STATUS_EMIT if decision.emit else STATUS_SUPPRESSED,
            event=event,
            reason=decision.reason,
            decision=decision,
            last_event_id=last_event_id,
            last_value=last_value,
        )

    async def commit(self, event: ScalarEvent) -> None:
        """
        Record a successfully sent alert: event id, cooldown marker, price.

        Raises:
            StateStoreError: a write failed (the alert may repeat next cycle)
        """
        state = self.state_for(event.contract)
        await state.set_last_event_id(event.event_id)
        await state.start_cooldown(self.policy.cooldown_window_sec)
        await state.set_last_value(event.value)
