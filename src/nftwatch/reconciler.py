"""
Backfill Reconciler
===================

Reconciles a newest-first window of ordered events (listings, sales,
burns) against the last alerted position and returns what to alert,
oldest-first.

Cases (window newest-first, stored marker = last alerted id):
    - empty window (after filtering)  -> nothing to do, marker untouched
    - no stored marker (first run)    -> bootstrap: adopt newest id, no alerts
    - newest id == marker             -> unchanged
    - marker found at index k         -> backfill indices k-1 .. 0, oldest first,
                                         marker advances to the newest id
    - marker not in window            -> gap: marker cleared, no alerts
                                         (events beyond the window bound are lost)

Duplicate collapse:
    Within the candidates, consecutive entries sharing a group key (the
    same token set listed on several marketplaces) count as one event:
    the oldest of the run is alerted, the rest are reported as collapsed.

Burns:
    The window is the whole sales/transfer feed; ``qualifies`` keeps only
    transfers to the burn address *before* the marker search, so the burn
    marker only ever holds burn ids.

Example:
    window [E5, E4, E3, E2, E1], marker E3 -> alert E4, E5; marker -> E5
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from nftwatch.state_store import CategoryState, StateStore
from nftwatch.types import Category, FeedEvent

logger = logging.getLogger(__name__)

ACTION_EMPTY = "empty"
ACTION_BOOTSTRAP = "bootstrap"
ACTION_UNCHANGED = "unchanged"
ACTION_GAP = "gap"
ACTION_BACKFILL = "backfill"

# Reservoir's null address; tokens transferred here are burned
BURN_ADDRESS = "0x0000000000000000000000000000000000000000"

EventFilter = Callable[[FeedEvent], bool]


@dataclass(slots=True)
class Reconciliation:
    """
    Outcome of reconciling one window.

    Attributes:
        action: One of the ACTION_* constants
        candidates: Events to alert, oldest first
        collapsed: Candidates dropped as duplicates of an older run entry
        previous_last_event_id: Marker before reconciliation
        new_last_event_id: Marker to store after processing (None on gap)
    """
    action: str
    previous_last_event_id: Optional[str]
    new_last_event_id: Optional[str]
    candidates: list[FeedEvent] = field(default_factory=list)
    collapsed: list[FeedEvent] = field(default_factory=list)

    @property
    def has_state_change(self) -> bool:
        return self.action in (ACTION_BOOTSTRAP, ACTION_BACKFILL, ACTION_GAP)


def burn_filter(burn_address: str = BURN_ADDRESS) -> EventFilter:
    """Predicate keeping transfers whose destination is the burn address."""
    target = burn_address.lower()

    def _is_burn(event: FeedEvent) -> bool:
        return bool(event.to_address) and event.to_address.lower() == target

    return _is_burn


def collapse_duplicates(events: Iterable[FeedEvent]) -> tuple[list[FeedEvent], list[FeedEvent]]:
    """
    Collapse consecutive events sharing a group key.

    Args:
        events: Events in alert order (oldest first)

    Returns:
        (kept, collapsed)
    """
    kept: list[FeedEvent] = []
    collapsed: list[FeedEvent] = []
    prev_key: Optional[str] = None

    for event in events:
        if event.group_key is not None and event.group_key == prev_key:
            collapsed.append(event)
        else:
            kept.append(event)
        prev_key = event.group_key

    return kept, collapsed


def reconcile(
    window: list[FeedEvent],
    last_event_id: Optional[str],
    qualifies: Optional[EventFilter] = None,
) -> Reconciliation:
    """
    Reconcile a newest-first window against the stored marker.

    Args:
        window: Freshly fetched events, newest first
        last_event_id: Stored marker, None on first run
        qualifies: Optional filter applied before anything else

    Returns:
        Reconciliation
    """
    events = [e for e in window if qualifies is None or qualifies(e)]

    if not events:
        return Reconciliation(
            action=ACTION_EMPTY,
            previous_last_event_id=last_event_id,
            new_last_event_id=last_event_id,
        )

    newest_id = events[0].event_id

    if last_event_id is None:
        return Reconciliation(
            action=ACTION_BOOTSTRAP,
            previous_last_event_id=None,
            new_last_event_id=newest_id,
        )

    if newest_id == last_event_id:
        return Reconciliation(
            action=ACTION_UNCHANGED,
            previous_last_event_id=last_event_id,
            new_last_event_id=last_event_id,
        )

    found_at = next(
        (i for i, e in enumerate(events) if e.event_id == last_event_id),
        None,
    )
    if found_at is None:
        return Reconciliation(
            action=ACTION_GAP,
            previous_last_event_id=last_event_id,
            new_last_event_id=None,
        )

    # events[:found_at] are strictly newer than the marker; reverse to oldest-first
    new_events = list(reversed(events[:found_at]))
    candidates, collapsed = collapse_duplicates(new_events)

    return Reconciliation(
        action=ACTION_BACKFILL,
        previous_last_event_id=last_event_id,
        new_last_event_id=newest_id,
        candidates=candidates,
        collapsed=collapsed,
    )


class OrderedFeedTracker:
    """
    Applies reconcile() against the State Store for one ordered category.

    reconcile_window() only reads. commit() writes the outcome and must be
    called after the candidates were processed (sent or skipped):
        bootstrap/backfill -> marker = newest id
        gap                -> marker deleted
        unchanged/empty    -> no write

    Args:
        category: LISTINGS, SALES or BURN
        store: State store
        qualifies: Optional pre-filter (burn detection)
    """

    def __init__(
        self,
        category: Category,
        store: StateStore,
        qualifies: Optional[EventFilter] = None,
    ) -> None:
        if category.is_scalar:
            raise ValueError(f"{category.value} is not an ordered-log category")
        self.category = category
        self.store = store
        self.qualifies = qualifies

    def state_for(self, contract: str) -> CategoryState:
        return CategoryState(self.store, self.category, contract)

    async def reconcile_window(self, contract: str, window: list[FeedEvent]) -> Reconciliation:
        last_event_id = await self.state_for(contract).last_event_id()
        return reconcile(window, last_event_id, self.qualifies)

    async def commit(self, contract: str, result: Reconciliation) -> None:
        state = self.state_for(contract)

        if result.action in (ACTION_BOOTSTRAP, ACTION_BACKFILL):
            await state.set_last_event_id(result.new_last_event_id)
        elif result.action == ACTION_GAP:
            await state.clear_last_event_id()
            logger.info(
                "feed_gap_reset",
                extra={
                    "category": self.category.value,
                    "contract": contract,
                    "stale_marker": result.previous_last_event_id,
                },
            )
