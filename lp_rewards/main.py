import argparse
import logging
import sys

from lp_rewards.chain import BlockClock
from lp_rewards.checks import EndState, allocation_summary, reconcile
from lp_rewards.config import Settings, load_settings
from lp_rewards.engine import RewardEngine
from lp_rewards.errors import RewardsError
from lp_rewards.export import export_rewards
from lp_rewards.initial_state import build_initial_state
from lp_rewards.log import setup_logging
from lp_rewards.sources import SubgraphEventSource

LOG = logging.getLogger(__name__)


def calculate_rewards(settings: Settings, source, clock):
    # Starting and ending of the campaign
    start_timestamp = clock.block_timestamp(settings.start_block)
    end_timestamp = clock.block_timestamp(settings.end_block)

    snapshot = source.fetch_initial_snapshot(settings.start_block)
    ledger = build_initial_state(
        snapshot.debts,
        snapshot.lp_balances,
        snapshot.pool,
        snapshot.accumulated_rate,
        weight_rule=settings.weight_rule,
        excluded=settings.excluded_addresses,
        dust_threshold=settings.dust_threshold,
    )

    events = source.fetch_events(settings.start_block, settings.end_block, excluded=settings.excluded_addresses)

    engine = RewardEngine(
        ledger,
        settings.reward_amount,
        start_timestamp,
        end_timestamp,
        snapshot.accumulated_rate,
        snapshot.pool,
        weight_rule=settings.weight_rule,
        zero_weight_policy=settings.zero_weight_policy,
        dust_threshold=settings.dust_threshold,
    )
    ledger = engine.run(events)

    expected = EndState(
        timestamp=clock.block_timestamp(settings.end_block),
        accumulated_rate=source.fetch_accumulated_rate(settings.end_block),
        pool=source.fetch_pool_state(settings.end_block),
    )
    reconcile(
        engine.state,
        expected,
        rel_tolerance=settings.reconciliation_tolerance,
        abs_tolerance=settings.dust_threshold,
    )
    allocation_summary(ledger, settings.reward_amount)
    return ledger


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Compute the LP x debt liquidity mining rewards of a campaign")
    parser.add_argument("--output", help="CSV file to write, defaults to OUTPUT_FILE or reward.csv")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", help="Also write the log to this file")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    try:
        settings = load_settings()
        ledger = calculate_rewards(
            settings,
            SubgraphEventSource(settings.subgraph_url),
            BlockClock(settings.rpc_url),
        )
        export_rewards(ledger, args.output or settings.output_file)
    except RewardsError as e:
        LOG.error(f"{type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
