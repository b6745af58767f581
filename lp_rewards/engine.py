import logging
from enum import Enum
from typing import Iterable, List, Tuple

from lp_rewards.checks import check_accounts
from lp_rewards.errors import (
    EngineFinalized,
    InconsistentEvent,
    InvalidCampaign,
    NegativeSupply,
    UnknownEventKind,
)
from lp_rewards.events import EventKind, RewardEvent, validate_event
from lp_rewards.ledger import (
    DUST_THRESHOLD,
    Account,
    Ledger,
    LedgerState,
    PoolState,
    WeightRule,
    apply_delta,
    normalize_address,
    round_dust,
    to_derived_balance,
)

LOG = logging.getLogger(__name__)

PROGRESS_EVERY = 1000


class EngineStatus(Enum):
    IDLE = "idle"
    ACCRUING = "accruing"
    FINALIZED = "finalized"


class ZeroWeightPolicy(Enum):
    # Reward streamed while nobody has weight is lost either way, FLAG only records it
    SKIP = "skip"
    FLAG = "flag"


class RewardEngine:
    """Streams a constant reward rate over a campaign, split by staking weight.

    Rewards are tracked with a cumulative reward-per-weight accumulator: every
    event first advances the accumulator to the event time, then credits the
    accounts it is about to modify at their current weight (checkpoint), and
    only then applies the balance change and recomputes the weights.
    """

    def __init__(
        self,
        ledger: Ledger,
        reward_amount: float,
        start_timestamp: int,
        end_timestamp: int,
        accumulated_rate: float,
        pool: PoolState,
        weight_rule: WeightRule = WeightRule(),
        zero_weight_policy: ZeroWeightPolicy = ZeroWeightPolicy.SKIP,
        dust_threshold: float = DUST_THRESHOLD,
    ):
        if end_timestamp <= start_timestamp:
            raise InvalidCampaign(f"Campaign ends at {end_timestamp}, before it starts at {start_timestamp}")
        if reward_amount < 0:
            raise InvalidCampaign(f"Negative reward amount {reward_amount}")

        self.ledger = ledger
        self.reward_amount = reward_amount
        self.start_timestamp = start_timestamp
        self.end_timestamp = end_timestamp
        self.reward_rate = reward_amount / (end_timestamp - start_timestamp)
        self.weight_rule = weight_rule
        self.zero_weight_policy = zero_weight_policy
        self.dust_threshold = dust_threshold

        self.state = LedgerState(
            current_timestamp=start_timestamp,
            accumulated_rate=accumulated_rate,
            pool_reserve=pool.reserve,
            pool_total_supply=pool.total_supply,
        )
        self.state.total_staking_weight = ledger.total_weight()
        self.status = EngineStatus.IDLE
        self.processed = 0
        # (start, end, reward) of intervals without any staking weight
        self.forfeited: List[Tuple[float, float, float]] = []

    def run(self, events: Iterable[RewardEvent]) -> Ledger:
        LOG.info(
            f"Distributing {self.reward_amount} at a reward rate of {self.reward_rate}/sec "
            f"between {self.start_timestamp} and {self.end_timestamp}"
        )
        LOG.info("Applying all events...")
        for event in events:
            self.apply(event)
        return self.finalize()

    def apply(self, event: RewardEvent):
        if self.status is EngineStatus.FINALIZED:
            raise EngineFinalized(f"Cannot apply {event!r}, rewards are already finalized")
        self.status = EngineStatus.ACCRUING

        validate_event(event)
        if event.timestamp < self.state.current_timestamp:
            raise InconsistentEvent(
                f"Event older than the current time {self.state.current_timestamp}", event
            )
        if event.timestamp > self.end_timestamp:
            raise InconsistentEvent(f"Event after the campaign end {self.end_timestamp}", event)

        self._accrue(event.timestamp)
        self.state.last_event_timestamp = event.timestamp

        if event.kind is EventKind.DELTA_DEBT:
            touched = self._delta_debt(event)
        elif event.kind is EventKind.DELTA_LP:
            touched = self._delta_lp(event)
        elif event.kind is EventKind.POOL_SYNC:
            touched = self._pool_sync(event)
        elif event.kind is EventKind.UPDATE_ACCUMULATED_RATE:
            touched = self._update_accumulated_rate(event)
        else:
            raise UnknownEventKind(f"Unknown event kind {event.kind!r}", event)

        for address in touched:
            account = self.ledger.get(address)
            account.staking_weight = self.weight_rule.weight(address, account)
        self.state.total_staking_weight = self.ledger.total_weight()

        check_accounts(self.ledger, touched, event)

        self.processed += 1
        if self.processed % PROGRESS_EVERY == 0:
            LOG.info(f"  Processed {self.processed} events")

    def finalize(self) -> Ledger:
        if self.status is EngineStatus.FINALIZED:
            raise EngineFinalized("Rewards are already finalized")

        self._accrue(self.end_timestamp)
        self._checkpoint_all()

        self.status = EngineStatus.FINALIZED
        self.ledger.freeze()
        LOG.info(f"All {self.processed} events applied")
        if self.forfeited:
            lost = sum(reward for _, _, reward in self.forfeited)
            LOG.warning(f"{len(self.forfeited)} intervals without staking weight, {lost} reward forfeited")
        return self.ledger

    def _accrue(self, timestamp):
        elapsed = timestamp - self.state.current_timestamp
        if self.state.total_staking_weight > 0:
            self.state.reward_per_weight += elapsed * self.reward_rate / self.state.total_staking_weight
        elif elapsed > 0:
            if self.zero_weight_policy is ZeroWeightPolicy.FLAG:
                self.forfeited.append((self.state.current_timestamp, timestamp, elapsed * self.reward_rate))
                LOG.warning(f"Zero total weight between {self.state.current_timestamp} and {timestamp}")
            else:
                LOG.debug(f"Zero total weight between {self.state.current_timestamp} and {timestamp}")
        self.state.current_timestamp = timestamp

    def _checkpoint(self, account: Account):
        account.earned += (self.state.reward_per_weight - account.reward_per_weight_checkpoint) * account.staking_weight
        account.reward_per_weight_checkpoint = self.state.reward_per_weight

    def _checkpoint_all(self):
        for _, account in self.ledger.items():
            self._checkpoint(account)
        return self.ledger.addresses()

    def _delta_debt(self, event):
        account = self.ledger.get_or_create(event.address)
        self._checkpoint(account)

        # Debt deltas are normalized, convert them to debt after interests
        account.debt = apply_delta(account.debt, event.value * self.state.accumulated_rate, self.dust_threshold)
        return [normalize_address(event.address)]

    def _delta_lp(self, event):
        if event.address is None:
            # Mint or burn of LP tokens
            self.state.pool_total_supply = apply_delta(
                self.state.pool_total_supply, -event.value, self.dust_threshold
            )
            if self.state.pool_total_supply < 0:
                raise NegativeSupply(f"Negative LP total supply {self.state.pool_total_supply} at {event!r}")
            return []

        account = self.ledger.get_or_create(event.address)
        self._checkpoint(account)

        account.lp_balance = apply_delta(account.lp_balance, event.value, self.dust_threshold)
        account.derived_balance = self._derived_balance(account)
        return [normalize_address(event.address)]

    def _pool_sync(self, event):
        # Swaps and liquidity changes move the reserve, so every LP position is re-priced
        touched = self._checkpoint_all()
        self.state.pool_reserve = event.value
        for _, account in self.ledger.items():
            account.derived_balance = self._derived_balance(account)
        return touched

    def _update_accumulated_rate(self, event):
        # Interest accrual raises everyone's debt
        touched = self._checkpoint_all()
        self.state.accumulated_rate += event.value
        for _, account in self.ledger.items():
            account.debt = round_dust(account.debt * (1 + event.value), self.dust_threshold)
        return touched

    def _derived_balance(self, account):
        return to_derived_balance(
            account.lp_balance, self.state.pool_reserve, self.state.pool_total_supply, self.dust_threshold
        )
