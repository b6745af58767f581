import logging
import math
from typing import Iterable, Mapping, Tuple

from lp_rewards.errors import InconsistentInitialState
from lp_rewards.ledger import (
    DUST_THRESHOLD,
    Account,
    Ledger,
    PoolState,
    WeightRule,
    apply_delta,
    normalize_address,
    to_derived_balance,
)

LOG = logging.getLogger(__name__)


def _pairs(snapshot):
    if isinstance(snapshot, Mapping):
        return snapshot.items()
    return snapshot


def build_initial_state(
    debts: Iterable[Tuple[str, float]],
    lp_balances: Iterable[Tuple[str, float]],
    pool: PoolState,
    accumulated_rate: float,
    weight_rule: WeightRule = WeightRule(),
    excluded: Iterable[str] = (),
    dust_threshold: float = DUST_THRESHOLD,
) -> Ledger:
    """Build the ledger as of the campaign start block.

    ``debts`` are normalized (pre-interest) debts, scaled here by the
    accumulated rate the same way the engine scales debt deltas. LP balances
    are converted with the pool state of the start block.
    """
    excluded = {normalize_address(a) for a in excluded}

    ledger = Ledger()

    for address, normalized_debt in _pairs(debts):
        if normalize_address(address) in excluded:
            continue
        account = ledger.get_or_create(address)
        debt = _number(normalized_debt, address, "debt") * accumulated_rate
        account.debt = apply_delta(account.debt, debt, dust_threshold)

    for address, balance in _pairs(lp_balances):
        if normalize_address(address) in excluded:
            continue
        account = ledger.get_or_create(address)
        balance = _number(balance, address, "lp balance")
        account.lp_balance = apply_delta(account.lp_balance, balance, dust_threshold)

    for address, account in ledger.items():
        account.derived_balance = to_derived_balance(
            account.lp_balance, pool.reserve, pool.total_supply, dust_threshold
        )
        account.staking_weight = weight_rule.weight(address, account)
        _validate(address, account)

    LOG.info(
        f"Initial state: {len(ledger)} accounts, total staking weight {ledger.total_weight()}"
    )
    return ledger


def _number(value, address, field):
    if value is None:
        raise InconsistentInitialState(f"Undefined {field} for {address}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InconsistentInitialState(f"Invalid {field} {value!r} for {address}") from None


def _validate(address: str, account: Account):
    for field, value in account.snapshot().items():
        if value is None or not math.isfinite(value) or value < 0:
            raise InconsistentInitialState(
                f"Invalid initial {field} for {address}: {account.snapshot()}"
            )
