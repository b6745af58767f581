import logging
import math
from dataclasses import dataclass
from typing import Iterable

from lp_rewards.errors import InvalidAccountState, ReconciliationMismatch
from lp_rewards.ledger import DUST_THRESHOLD, Ledger, LedgerState, PoolState

LOG = logging.getLogger(__name__)


@dataclass
class EndState:
    """Source-of-truth values observed at the campaign end block."""

    timestamp: int
    accumulated_rate: float
    pool: PoolState


def _invalid(value):
    return value is None or not math.isfinite(value) or value < 0


def check_accounts(ledger: Ledger, addresses: Iterable[str], event=None):
    for address in addresses:
        account = ledger.get(address)
        if account is None:
            continue
        if any(_invalid(v) for v in account.snapshot().values()):
            raise InvalidAccountState(address, account.snapshot(), event)


def reconcile(
    state: LedgerState,
    expected: EndState,
    rel_tolerance: float = 1e-9,
    abs_tolerance: float = DUST_THRESHOLD,
):
    """Compare the terminal engine state with the chain state at the end block.

    A mismatch means the event stream was incomplete or mis-ordered.
    """
    last = state.last_event_timestamp
    if last is not None and last > expected.timestamp:
        raise ReconciliationMismatch(f"Impossible last event timestamp {last}, campaign ended at {expected.timestamp}")

    def close(a, b):
        return math.isclose(a, b, rel_tol=rel_tolerance, abs_tol=abs_tolerance)

    if not close(state.accumulated_rate, expected.accumulated_rate):
        raise ReconciliationMismatch(
            f"Invalid final accumulated rate. Got {state.accumulated_rate} expected {expected.accumulated_rate}"
        )

    if not close(state.pool_reserve, expected.pool.reserve) or not close(
        state.pool_total_supply, expected.pool.total_supply
    ):
        raise ReconciliationMismatch(
            "Invalid final pool state.\n"
            f"  Expected pool reserve {expected.pool.reserve} got {state.pool_reserve}\n"
            f"  Expected LP total supply {expected.pool.total_supply} got {state.pool_total_supply}"
        )

    LOG.info("Final state reconciled with the end block")


def allocation_summary(ledger: Ledger, reward_amount: float) -> float:
    # Informational: forfeited zero weight intervals and rounding keep this under budget
    total = ledger.total_earned()
    share = total / reward_amount if reward_amount else 0.0
    LOG.info(f"Total allocated reward {total:,.9f} of {reward_amount:,.9f} ({share:.4%})")
    return total
