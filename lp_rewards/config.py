import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from dotenv import load_dotenv

from lp_rewards.engine import ZeroWeightPolicy
from lp_rewards.errors import ConfigError
from lp_rewards.ledger import DUST_THRESHOLD, WeightPolicy, WeightRule, normalize_address

OUTPUT_FILE = "reward.csv"
RECONCILIATION_TOLERANCE = 1e-9


@dataclass(frozen=True)
class Settings:
    subgraph_url: str
    rpc_url: str
    start_block: int
    end_block: int
    reward_amount: float
    excluded_addresses: FrozenSet[str] = field(default_factory=frozenset)
    weight_policy: WeightPolicy = WeightPolicy.MIN_DEBT_LP
    zero_weight_address: Optional[str] = None
    zero_weight_policy: ZeroWeightPolicy = ZeroWeightPolicy.SKIP
    dust_threshold: float = DUST_THRESHOLD
    reconciliation_tolerance: float = RECONCILIATION_TOLERANCE
    output_file: str = OUTPUT_FILE

    @property
    def weight_rule(self):
        return WeightRule(self.weight_policy, self.zero_weight_address)


def _required(env, name):
    value = env.get(name)
    if not value:
        raise ConfigError(f"Missing environment variable {name}")
    return value


def _number(env, name, cast, default=None):
    value = env.get(name)
    if not value:
        if default is None:
            raise ConfigError(f"Missing environment variable {name}")
        return default
    try:
        return cast(value)
    except ValueError:
        raise ConfigError(f"Invalid {name}: {value!r}") from None


def _choice(env, name, enum, default):
    value = env.get(name)
    if not value:
        return default
    try:
        return enum(value.lower())
    except ValueError:
        choices = ", ".join(e.value for e in enum)
        raise ConfigError(f"Invalid {name}: {value!r}, expected one of {choices}") from None


def load_settings(environ=None) -> Settings:
    """Read the campaign settings from the environment (and a .env file)."""
    if environ is None:
        load_dotenv()
        environ = os.environ

    excluded = {a.strip() for a in environ.get("EXCLUDED_ADDRESSES", "").split(",") if a.strip()}
    # The pool itself and the savior contract hold LP tokens on behalf of others
    for name in ("UNISWAP_POOL_ADDRESS", "UNISWAP_SAVIOR_ADDRESS"):
        if environ.get(name):
            excluded.add(environ[name])

    settings = Settings(
        subgraph_url=_required(environ, "GEB_SUBGRAPH_URL"),
        rpc_url=_required(environ, "RPC_URL"),
        start_block=_number(environ, "START_BLOCK", int),
        end_block=_number(environ, "END_BLOCK", int),
        reward_amount=_number(environ, "REWARD_AMOUNT", float),
        excluded_addresses=frozenset(normalize_address(a) for a in excluded),
        weight_policy=_choice(environ, "WEIGHT_POLICY", WeightPolicy, WeightPolicy.MIN_DEBT_LP),
        zero_weight_address=normalize_address(environ["ZERO_WEIGHT_ADDRESS"])
        if environ.get("ZERO_WEIGHT_ADDRESS")
        else None,
        zero_weight_policy=_choice(environ, "ZERO_WEIGHT_POLICY", ZeroWeightPolicy, ZeroWeightPolicy.SKIP),
        dust_threshold=_number(environ, "DUST_THRESHOLD", float, DUST_THRESHOLD),
        reconciliation_tolerance=_number(environ, "RECONCILIATION_TOLERANCE", float, RECONCILIATION_TOLERANCE),
        output_file=environ.get("OUTPUT_FILE") or OUTPUT_FILE,
    )

    if settings.end_block <= settings.start_block:
        raise ConfigError(f"END_BLOCK {settings.end_block} must be after START_BLOCK {settings.start_block}")
    if settings.reward_amount < 0:
        raise ConfigError(f"REWARD_AMOUNT must be positive, got {settings.reward_amount}")
    if settings.weight_policy is WeightPolicy.LP_ONLY and settings.zero_weight_address is None:
        raise ConfigError("WEIGHT_POLICY lp_only needs ZERO_WEIGHT_ADDRESS")
    return settings
