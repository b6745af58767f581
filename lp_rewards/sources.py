import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Tuple

from lp_rewards.events import EventKind, RewardEvent, log_index_from_id, merge_events
from lp_rewards.ledger import PoolState
from lp_rewards.queries import (
    ACCUMULATED_RATE_QUERY,
    ACCUMULATED_RATE_UPDATES_QUERY,
    COLLATERAL_TYPE,
    LP_BALANCES_QUERY,
    LP_TOKEN_LABEL,
    LP_TRANSFERS_QUERY,
    POOL_STATE_QUERY,
    POOL_SYNCS_QUERY,
    SAFE_DEBTS_QUERY,
    SAFE_MODIFICATIONS_QUERY,
)
from lp_rewards.subgraph import SubgraphClient

LOG = logging.getLogger(__name__)

NULL_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass
class InitialSnapshot:
    debts: List[Tuple[str, float]]
    lp_balances: List[Tuple[str, float]]
    pool: PoolState
    accumulated_rate: float


def debt_events(rows):
    return [
        RewardEvent(
            kind=EventKind.DELTA_DEBT,
            value=float(row["deltaDebt"]),
            address=row["safe"]["owner"]["address"],
            log_index=log_index_from_id(row["id"]),
            timestamp=int(row["createdAt"]),
        )
        for row in rows
    ]


def lp_transfer_events(rows):
    # Each transfer is an outgoing and an incoming balance delta. The null
    # address side of a mint or burn becomes a supply change.
    events = []
    for row in rows:
        amount = float(row["amount"])
        log_index = log_index_from_id(row["id"])
        timestamp = int(row["createdAt"])
        sides = ((row["source"], -amount), (row["destination"], amount))
        for sequence, (address, value) in enumerate(sides):
            events.append(
                RewardEvent(
                    kind=EventKind.DELTA_LP,
                    value=value,
                    address=None if address.lower() == NULL_ADDRESS else address,
                    log_index=log_index,
                    timestamp=timestamp,
                    sequence=sequence,
                )
            )
    return events


def sync_events(rows):
    return [
        RewardEvent(
            kind=EventKind.POOL_SYNC,
            value=float(row["reserve0"]),
            log_index=log_index_from_id(row["id"]),
            timestamp=int(row["createdAt"]),
        )
        for row in rows
    ]


def accumulated_rate_events(rows):
    return [
        RewardEvent(
            kind=EventKind.UPDATE_ACCUMULATED_RATE,
            value=float(row["rateMultiplier"]),
            log_index=log_index_from_id(row["id"]),
            timestamp=int(row["createdAt"]),
        )
        for row in rows
    ]


class SubgraphEventSource:
    """Reads campaign events and snapshots from the GEB subgraph."""

    def __init__(self, url, client_factory=None):
        self.url = url
        self.client_factory = client_factory or (lambda: SubgraphClient(url))

    def fetch_safe_modifications(self, start, end):
        rows = self.client_factory().query_paginated(
            SAFE_MODIFICATIONS_QUERY, "modifySAFECollateralizations", start=start, end=end
        )
        events = debt_events(rows)
        LOG.info(f"  Fetched {len(events)} safe modification events")
        return events

    def fetch_lp_transfers(self, start, end):
        rows = self.client_factory().query_paginated(
            LP_TRANSFERS_QUERY, "erc20Transfers", start=start, end=end, label=LP_TOKEN_LABEL
        )
        LOG.info(f"  Fetched {len(rows)} LP token transfers")
        return lp_transfer_events(rows)

    def fetch_pool_syncs(self, start, end):
        rows = self.client_factory().query_paginated(POOL_SYNCS_QUERY, "uniswapSyncs", start=start, end=end)
        events = sync_events(rows)
        LOG.info(f"  Fetched {len(events)} Uniswap sync events")
        return events

    def fetch_accumulated_rate_updates(self, start, end):
        rows = self.client_factory().query_paginated(
            ACCUMULATED_RATE_UPDATES_QUERY, "updateAccumulatedRates", start=start, end=end
        )
        events = accumulated_rate_events(rows)
        LOG.info(f"  Fetched {len(events)} accumulated rate events")
        return events

    def fetch_events(self, start, end, excluded=()):
        LOG.info("Fetch events ...")
        fetchers = (
            self.fetch_safe_modifications,
            self.fetch_lp_transfers,
            self.fetch_pool_syncs,
            self.fetch_accumulated_rate_updates,
        )
        # Sub-streams are independent, fetch them side by side then merge in order
        with ThreadPoolExecutor(max_workers=len(fetchers)) as pool:
            futures = [pool.submit(fetch, start, end) for fetch in fetchers]
            streams = [future.result() for future in futures]
        LOG.info("Fetched all events")
        return merge_events(*streams, excluded=excluded)

    def fetch_pool_state(self, block):
        data = self.client_factory().query(POOL_STATE_QUERY % {"block": block})
        pair = data["systemState"]["coinUniswapPair"]
        return PoolState(reserve=float(pair["reserve0"]), total_supply=float(pair["totalSupply"]))

    def fetch_accumulated_rate(self, block):
        data = self.client_factory().query(
            ACCUMULATED_RATE_QUERY % {"block": block, "collateral": COLLATERAL_TYPE}
        )
        return float(data["collateralType"]["accumulatedRate"])

    def fetch_initial_snapshot(self, block):
        LOG.info("Fetch initial state...")
        client = self.client_factory()

        balances = client.query_paginated(LP_BALANCES_QUERY, "erc20Balances", block=block, label=LP_TOKEN_LABEL)
        LOG.info(f"  Fetched {len(balances)} LP token balances")

        safes = client.query_paginated(SAFE_DEBTS_QUERY, "safes", block=block)
        LOG.info(f"  Fetched {len(safes)} debt balances")

        return InitialSnapshot(
            debts=[(safe["owner"]["address"], float(safe["debt"])) for safe in safes],
            lp_balances=[(row["address"], float(row["balance"])) for row in balances],
            pool=self.fetch_pool_state(block),
            accumulated_rate=self.fetch_accumulated_rate(block),
        )
