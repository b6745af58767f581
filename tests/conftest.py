import pytest

from lp_rewards.events import merge_events
from lp_rewards.ledger import PoolState
from lp_rewards.sources import InitialSnapshot


class FakeClock:
    def __init__(self, timestamps=None):
        # Block numbers double as timestamps unless told otherwise
        self.timestamps = timestamps or {}
        self.calls = []

    def block_timestamp(self, block):
        self.calls.append(block)
        return self.timestamps.get(block, block)


class FakeSource:
    def __init__(self, snapshot, events, end_rate, end_pool):
        self.snapshot = snapshot
        self.events = events
        self.end_rate = end_rate
        self.end_pool = end_pool

    def fetch_initial_snapshot(self, block):
        return self.snapshot

    def fetch_events(self, start, end, excluded=()):
        return merge_events(self.events, excluded=excluded)

    def fetch_accumulated_rate(self, block):
        return self.end_rate

    def fetch_pool_state(self, block):
        return self.end_pool


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def snapshot():
    return InitialSnapshot(
        debts=[("0xAAA", 10.0), ("0xbbb", 30.0)],
        lp_balances=[("0xaaa", 10.0), ("0xbbb", 30.0)],
        pool=PoolState(reserve=100.0, total_supply=100.0),
        accumulated_rate=1.0,
    )
