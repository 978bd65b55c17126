import time

import pytest

from nftwatch.cooldown import CooldownPolicy
from nftwatch.errors import IncompleteUpstreamData
from nftwatch.metrics import PollMetrics
from nftwatch.notifier import LogNotifier
from nftwatch.state_store import MemoryStateStore
from nftwatch.types import Alert, Category, FeedEvent, ScalarEvent

CONTRACT = "0x8a90cab2b38dba80c64b7734e58ee1db38b8992e"


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingStore(MemoryStateStore):
    """Memory store that records every write."""

    def __init__(self, clock=time.monotonic) -> None:
        super().__init__(clock=clock)
        self.writes: list[tuple] = []

    async def set(self, key, value, ttl_sec=None):
        self.writes.append(("set", key, value, ttl_sec))
        await super().set(key, value, ttl_sec=ttl_sec)

    async def delete(self, key):
        self.writes.append(("delete", key))
        await super().delete(key)


class StubRenderer:
    """Renders every event into a minimal alert without lookups."""

    def __init__(self, incomplete_ids=()) -> None:
        self.incomplete_ids = set(incomplete_ids)

    def _alert(self, category: Category, contract: str, event_id: str) -> Alert:
        if event_id in self.incomplete_ids:
            raise IncompleteUpstreamData("missing display data", item_id=event_id)
        return Alert(category=category, contract=contract, title=event_id, description="", color=0)

    async def render_scalar(self, event: ScalarEvent) -> Alert:
        return self._alert(event.category, event.contract, event.event_id)

    async def render_feed(self, event: FeedEvent) -> Alert:
        return self._alert(event.category, event.contract, event.event_id)


class FailingNotifier(LogNotifier):
    async def send(self, alert):
        return False


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return RecordingStore(clock=clock)


@pytest.fixture
def policy():
    return CooldownPolicy(cooldown_window_sec=1800, override_fraction=0.1)


@pytest.fixture
def metrics():
    return PollMetrics()


@pytest.fixture
def notifier():
    return LogNotifier()


@pytest.fixture
def make_scalar():
    def _make(event_id="100", value=1.0, category=Category.FLOOR, contract=CONTRACT, **kwargs):
        return ScalarEvent(category=category, event_id=event_id, value=value, contract=contract, **kwargs)

    return _make


@pytest.fixture
def make_feed():
    def _make(event_id, category=Category.SALES, contract=CONTRACT, group_key=None, to_address=None, **raw):
        return FeedEvent(
            category=category,
            event_id=event_id,
            contract=contract,
            group_key=group_key,
            to_address=to_address,
            raw=raw,
        )

    return _make
