import random

import pytest

from lp_rewards.engine import EngineStatus, RewardEngine, ZeroWeightPolicy
from lp_rewards.errors import (
    EngineFinalized,
    InconsistentEvent,
    InvalidAccountState,
    InvalidCampaign,
    NegativeSupply,
    UnknownEventKind,
)
from lp_rewards.events import EventKind, RewardEvent, merge_events
from lp_rewards.initial_state import build_initial_state
from lp_rewards.ledger import Account, Ledger, PoolState, WeightPolicy, WeightRule


def debt(address, value, timestamp, log_index=0):
    return RewardEvent(EventKind.DELTA_DEBT, value, timestamp, log_index, address)


def lp(address, value, timestamp, log_index=0, sequence=0):
    return RewardEvent(EventKind.DELTA_LP, value, timestamp, log_index, address, sequence)


def sync(reserve, timestamp, log_index=0):
    return RewardEvent(EventKind.POOL_SYNC, reserve, timestamp, log_index)


def rate(value, timestamp, log_index=0):
    return RewardEvent(EventKind.UPDATE_ACCUMULATED_RATE, value, timestamp, log_index)


def make_engine(
    debts, lp_balances, pool=PoolState(1.0, 1.0), reward=10.0, start=0, end=10, accumulated_rate=1.0, **kwargs
):
    rule = kwargs.get("weight_rule", WeightRule())
    ledger = build_initial_state(debts, lp_balances, pool, accumulated_rate, weight_rule=rule)
    return RewardEngine(ledger, reward, start, end, accumulated_rate, pool, **kwargs)


def test_two_accounts_no_events_split_by_weight():
    engine = make_engine({"a": 10, "b": 30}, {"a": 10, "b": 30})
    ledger = engine.run([])

    assert ledger.get("a").earned == pytest.approx(2.5)
    assert ledger.get("b").earned == pytest.approx(7.5)
    assert engine.status is EngineStatus.FINALIZED


def test_add_remove_add_debt_with_high_prior_lp():
    ledger = Ledger({"Alice": Account(lp_balance=15, derived_balance=15 * 100 / 15)})
    engine = RewardEngine(ledger, 10, 5, 15, 1.0, PoolState(reserve=100, total_supply=15))

    ledger = engine.run(
        [
            debt("Bob", 10, 6),
            debt("Alice", 10, 8),
            debt("Alice", -10, 10),
            debt("Alice", 10, 12),
        ]
    )

    assert len(ledger) == 2
    assert ledger.get("alice").earned == pytest.approx(5)
    assert ledger.get("alice").staking_weight == 10
    assert ledger.get("bob").earned == 0


def test_pool_sync_halves_both_weights():
    pool = PoolState(reserve=100, total_supply=10)
    engine = make_engine({"a": 20, "b": 20}, {"a": 10, "b": 10}, pool=pool)
    assert engine.ledger.get("a").staking_weight == 20

    engine.apply(sync(10, 5))

    for address in ("a", "b"):
        account = engine.ledger.get(address)
        assert account.derived_balance == pytest.approx(10)
        assert account.staking_weight == pytest.approx(10)
        assert account.earned == pytest.approx(2.5)
    assert engine.state.pool_reserve == 10

    ledger = engine.finalize()
    assert ledger.get("a").earned == pytest.approx(5)
    assert ledger.get("b").earned == pytest.approx(5)


def test_accumulated_rate_update_scales_debt_after_crediting():
    engine = make_engine({"a": 10, "b": 10}, {"a": 100, "b": 100}, reward=20, end=20)

    engine.apply(rate(0.1, 10))

    for address in ("a", "b"):
        account = engine.ledger.get(address)
        assert account.debt == pytest.approx(11)
        assert account.staking_weight == pytest.approx(11)
        # Credited at the weight before the update
        assert account.earned == pytest.approx(5)
    assert engine.state.accumulated_rate == pytest.approx(1.1)
    assert engine.state.total_staking_weight == pytest.approx(22)

    ledger = engine.finalize()
    assert ledger.get("a").earned == pytest.approx(10)


def test_debt_delta_is_scaled_by_accumulated_rate():
    engine = make_engine({"a": 0}, {"a": 100}, accumulated_rate=1.5)

    engine.apply(debt("a", 10, 1))

    assert engine.ledger.get("a").debt == pytest.approx(15)
    assert engine.ledger.get("a").staking_weight == pytest.approx(15)


def test_lp_delta_recomputes_derived_balance():
    pool = PoolState(reserve=200, total_supply=100)
    engine = make_engine({"a": 1000}, {"a": 10}, pool=pool)

    engine.apply(lp("a", 5, 1))

    account = engine.ledger.get("a")
    assert account.lp_balance == 15
    assert account.derived_balance == pytest.approx(30)
    assert account.staking_weight == pytest.approx(30)


def test_lp_delta_rounds_dust_to_zero():
    engine = make_engine({"a": 1000}, {"a": 10})

    engine.apply(lp("a", -10 + 1e-12, 1))

    account = engine.ledger.get("a")
    assert account.lp_balance == 0
    assert account.derived_balance == 0
    assert account.staking_weight == 0


def test_mint_and_burn_change_total_supply_only():
    pool = PoolState(reserve=100, total_supply=10)
    engine = make_engine({"a": 1000}, {"a": 10}, pool=pool)

    # Mint: tokens leave the null address
    engine.apply(lp(None, -5, 1, sequence=0))
    engine.apply(lp("b", 5, 1, sequence=1))
    assert engine.state.pool_total_supply == 15
    assert engine.ledger.get("b").derived_balance == pytest.approx(5 * 100 / 15)

    # Burn: tokens sent to the null address
    engine.apply(lp("b", -5, 2, sequence=0))
    engine.apply(lp(None, 5, 2, sequence=1))
    assert engine.state.pool_total_supply == 10
    assert engine.ledger.get("a").lp_balance == 10


def test_negative_supply_is_fatal():
    engine = make_engine({"a": 1}, {"a": 1}, pool=PoolState(reserve=1, total_supply=1))

    with pytest.raises(NegativeSupply):
        engine.apply(lp(None, 2, 1))


def test_zero_supply_gives_zero_derived_balance():
    engine = make_engine({"a": 1}, {}, pool=PoolState(reserve=100, total_supply=0))

    engine.apply(lp("a", 5, 1))

    assert engine.ledger.get("a").derived_balance == 0
    assert engine.ledger.get("a").staking_weight == 0


def test_negative_lp_balance_is_invalid_account_state():
    engine = make_engine({"a": 1}, {"a": 1})

    with pytest.raises(InvalidAccountState) as excinfo:
        engine.apply(lp("a", -5, 1))
    assert excinfo.value.address == "a"


def test_unknown_event_kind_aborts():
    engine = make_engine({"a": 1}, {"a": 1})

    with pytest.raises(UnknownEventKind):
        engine.apply(RewardEvent("bogus", 1, 1, 0))


def test_event_before_current_time_is_rejected():
    engine = make_engine({"a": 1}, {"a": 1})
    engine.apply(debt("a", 1, 5))

    with pytest.raises(InconsistentEvent):
        engine.apply(debt("a", 1, 4))


def test_event_after_campaign_end_is_rejected():
    engine = make_engine({"a": 1}, {"a": 1})

    with pytest.raises(InconsistentEvent):
        engine.apply(debt("a", 1, 11))


def test_no_mutation_after_finalize():
    engine = make_engine({"a": 1}, {"a": 1})
    ledger = engine.run([])

    with pytest.raises(EngineFinalized):
        engine.apply(debt("a", 1, 10))
    with pytest.raises(EngineFinalized):
        engine.finalize()
    with pytest.raises(EngineFinalized):
        ledger.get_or_create("newcomer")


def test_invalid_campaign_window():
    with pytest.raises(InvalidCampaign):
        make_engine({}, {}, start=10, end=10)
    with pytest.raises(InvalidCampaign):
        make_engine({}, {}, reward=-1)


def test_zero_weight_interval_is_forfeited():
    engine = make_engine({}, {}, zero_weight_policy=ZeroWeightPolicy.FLAG)
    engine.apply(debt("a", 10, 4))
    engine.apply(lp("a", 10, 5))
    ledger = engine.finalize()

    # Nobody had weight during the first 5 seconds
    assert ledger.get("a").earned == pytest.approx(5)
    assert engine.forfeited == [(0, 4, pytest.approx(4)), (4, 5, pytest.approx(1))]


def test_zero_weight_skip_policy_records_nothing():
    engine = make_engine({}, {})
    engine.apply(debt("a", 10, 4))
    engine.finalize()

    assert engine.forfeited == []
    assert engine.ledger.get("a").earned == 0


def test_checkpoint_twice_at_same_time_adds_nothing():
    engine = make_engine({"a": 10, "b": 10}, {"a": 100, "b": 100})
    engine.apply(debt("a", 5, 4, log_index=1))
    earned = engine.ledger.get("a").earned

    engine.apply(debt("a", 5, 4, log_index=2))

    assert engine.ledger.get("a").earned == earned
    assert earned == pytest.approx(2)


def test_lp_only_policy_zeroes_custodial_holder():
    rule = WeightRule(WeightPolicy.LP_ONLY, zero_weight_address="0xSavior")
    engine = make_engine({}, {"a": 10, "0xsavior": 30}, weight_rule=rule)

    assert engine.ledger.get("0xsavior").staking_weight == 0
    engine.apply(lp("0xSAVIOR", 10, 2))
    ledger = engine.finalize()

    assert ledger.get("0xsavior").staking_weight == 0
    assert ledger.get("0xsavior").earned == 0
    assert ledger.get("a").staking_weight == 10
    assert ledger.get("a").earned == pytest.approx(10)


def random_events(seed, accounts, start, end, count=200):
    rng = random.Random(seed)
    events = []
    for log_index in range(count):
        timestamp = rng.randint(start, end)
        choice = rng.random()
        if choice < 0.5:
            events.append(debt(rng.choice(accounts), rng.uniform(0.1, 5), timestamp, log_index))
        elif choice < 0.7:
            events.append(lp(rng.choice(accounts), rng.uniform(0.1, 5), timestamp, log_index))
        elif choice < 0.85:
            events.append(sync(rng.uniform(900, 1100), timestamp, log_index))
        else:
            events.append(rate(rng.uniform(0, 0.01), timestamp, log_index))
    return events


ACCOUNTS = ["0x1", "0x2", "0x3", "0x4"]


def random_engine():
    debts = {a: 10.0 * (i + 1) for i, a in enumerate(ACCOUNTS)}
    balances = {a: 5.0 * (i + 1) for i, a in enumerate(ACCOUNTS)}
    return make_engine(debts, balances, pool=PoolState(reserve=1000, total_supply=100), reward=1000, end=1000)


def test_conservation_when_weight_never_vanishes():
    engine = random_engine()
    ledger = engine.run(merge_events(random_events(7, ACCOUNTS, 0, 1000)))

    assert ledger.total_earned() == pytest.approx(1000, rel=1e-9)


def test_weight_formula_and_monotonicity_hold_after_every_event():
    engine = random_engine()
    previous = {a: (0.0, 0.0) for a in ACCOUNTS}

    for event in merge_events(random_events(11, ACCOUNTS, 0, 1000)):
        engine.apply(event)
        for address, account in engine.ledger.items():
            assert account.staking_weight == min(account.debt, account.derived_balance)
            earned, checkpoint = previous.get(address, (0.0, 0.0))
            assert account.earned >= earned
            assert account.reward_per_weight_checkpoint >= checkpoint
            assert account.reward_per_weight_checkpoint <= engine.state.reward_per_weight
            previous[address] = (account.earned, account.reward_per_weight_checkpoint)


def test_ordering_is_deterministic():
    events = random_events(3, ACCOUNTS, 0, 1000)
    shuffled = list(events)
    random.Random(42).shuffle(shuffled)

    first = random_engine().run(merge_events(events))
    second = random_engine().run(merge_events(shuffled))

    assert first.rewards() == second.rewards()


def test_full_repay_of_large_debt_leaves_exactly_zero():
    rate_at_start = 1.086683003022487
    engine = make_engine({"a": 0}, {"a": 1e8}, accumulated_rate=rate_at_start)
    first, second = 2410763.4122836674, 2485331.310284995

    engine.apply(debt("a", first, 1, log_index=0))
    engine.apply(debt("a", second, 1, log_index=1))
    engine.apply(debt("a", -(first + second), 2))

    account = engine.ledger.get("a")
    assert account.debt == 0
    assert account.staking_weight == 0


def test_full_withdrawal_of_large_lp_balance_leaves_exactly_zero():
    engine = make_engine({"a": 1e8}, {}, pool=PoolState(reserve=1e7, total_supply=1e7))
    first, second = 2410763.4122836674 * 1.086683003022487, 2485331.310284995 * 1.086683003022487

    engine.apply(lp("a", first, 1, log_index=0))
    engine.apply(lp("a", second, 1, log_index=1))
    engine.apply(lp("a", -(first + second), 2))

    account = engine.ledger.get("a")
    assert account.lp_balance == 0
    assert account.derived_balance == 0


def test_small_residual_balance_is_kept():
    engine = make_engine({"a": 0}, {"a": 100})

    engine.apply(debt("a", 5, 1, log_index=0))
    engine.apply(debt("a", -4.999, 2))

    assert engine.ledger.get("a").debt == pytest.approx(0.001)


def test_debt_event_without_address_is_inconsistent():
    engine = make_engine({"a": 1}, {"a": 1})

    with pytest.raises(InconsistentEvent):
        engine.apply(debt(None, 1, 1))


def test_last_event_timestamp_is_tracked():
    engine = make_engine({"a": 1}, {"a": 1})
    engine.apply(debt("a", 1, 7))
    engine.finalize()

    assert engine.state.last_event_timestamp == 7
    assert engine.state.current_timestamp == 10
