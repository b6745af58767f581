from dataclasses import dataclass, asdict
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from lp_rewards.errors import EngineFinalized

DUST_THRESHOLD = 1e-10


def round_dust(value: float, threshold: float = DUST_THRESHOLD) -> float:
    """Force floating noise left over by repeated deltas to exactly zero."""
    return 0.0 if abs(value) < threshold else value


def apply_delta(value: float, delta: float, threshold: float = DUST_THRESHOLD) -> float:
    """Add a balance delta, zeroing what is left when it is noise relative to the operands."""
    result = value + delta
    if abs(result) < threshold * max(1.0, abs(value), abs(delta)):
        return 0.0
    return result


def to_derived_balance(
    lp_balance: float, pool_reserve: float, pool_total_supply: float, threshold: float = DUST_THRESHOLD
) -> float:
    # Share of the pool reserve owned by an LP position
    if pool_total_supply <= 0:
        return 0.0
    return round_dust(lp_balance * pool_reserve / pool_total_supply, threshold)


@dataclass
class PoolState:
    reserve: float
    total_supply: float


@dataclass
class Account:
    debt: float = 0.0
    lp_balance: float = 0.0
    derived_balance: float = 0.0
    staking_weight: float = 0.0
    earned: float = 0.0
    reward_per_weight_checkpoint: float = 0.0

    def snapshot(self):
        return asdict(self)


class WeightPolicy(Enum):
    MIN_DEBT_LP = "min_debt_lp"
    LP_ONLY = "lp_only"


@dataclass(frozen=True)
class WeightRule:
    """How an account's staking weight follows from its balances.

    ``MIN_DEBT_LP`` rewards the part of a position that is both borrowed and
    provided as liquidity. ``LP_ONLY`` ignores debt and rewards the LP balance,
    except for ``zero_weight_address`` (a custodial holder) which never earns.
    """

    policy: WeightPolicy = WeightPolicy.MIN_DEBT_LP
    zero_weight_address: Optional[str] = None

    def weight(self, address: str, account: Account) -> float:
        if self.policy is WeightPolicy.LP_ONLY:
            if self.zero_weight_address and normalize_address(address) == normalize_address(self.zero_weight_address):
                return 0.0
            return account.lp_balance
        return min(account.debt, account.derived_balance)


@dataclass
class LedgerState:
    """Global run state, owned by a single engine."""

    current_timestamp: float
    accumulated_rate: float
    pool_reserve: float
    pool_total_supply: float
    reward_per_weight: float = 0.0
    total_staking_weight: float = 0.0
    last_event_timestamp: Optional[float] = None


class Ledger:
    def __init__(self, accounts: Optional[Dict[str, Account]] = None):
        self._accounts: Dict[str, Account] = {}
        self._frozen = False
        for address, account in (accounts or {}).items():
            self._accounts[normalize_address(address)] = account

    def get_or_create(self, address: str) -> Account:
        address = normalize_address(address)
        account = self._accounts.get(address)
        if account is None:
            if self._frozen:
                raise EngineFinalized(f"Ledger is read-only, cannot create account {address}")
            account = Account()
            self._accounts[address] = account
        return account

    def get(self, address: str) -> Optional[Account]:
        return self._accounts.get(normalize_address(address))

    def freeze(self):
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def addresses(self) -> List[str]:
        return list(self._accounts)

    def items(self) -> Iterator[Tuple[str, Account]]:
        return iter(self._accounts.items())

    def total_weight(self) -> float:
        return sum(a.staking_weight for a in self._accounts.values())

    def total_earned(self) -> float:
        return sum(a.earned for a in self._accounts.values())

    def rewards(self) -> Dict[str, float]:
        return {address: a.earned for address, a in self._accounts.items()}

    def __contains__(self, address) -> bool:
        return normalize_address(address) in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self):
        return iter(self._accounts)


def normalize_address(address: str) -> str:
    return address.lower()
