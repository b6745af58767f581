import logging

import pandas as pd

from lp_rewards.ledger import Ledger

LOG = logging.getLogger(__name__)

COLUMNS = ["Address", "Reward"]


def rewards_frame(ledger: Ledger) -> pd.DataFrame:
    rewards_df = pd.DataFrame(
        [{"Address": address, "Reward": earned} for address, earned in ledger.rewards().items()],
        columns=COLUMNS,
    )

    # Remove accounts with 0 rewards and sort by decreasing reward
    rewards_df = rewards_df[rewards_df["Reward"] > 0]
    rewards_df = rewards_df.sort_values("Reward", ascending=False, kind="stable")
    return rewards_df.reset_index(drop=True)


def export_rewards(ledger: Ledger, path="reward.csv") -> pd.DataFrame:
    rewards_df = rewards_frame(ledger)
    rewards_df.to_csv(path, index=False)
    LOG.info(f"Rewards of {len(rewards_df)} accounts saved to {path}")
    return rewards_df
