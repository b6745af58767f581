import logging

from web3 import Web3

LOG = logging.getLogger(__name__)


class BlockClock:
    """Resolves block numbers to unix timestamps through an RPC node."""

    def __init__(self, rpc_url, w3=None):
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
        self._timestamps = {}

    def block_timestamp(self, block):
        if block not in self._timestamps:
            self._timestamps[block] = int(self.w3.eth.get_block(block)["timestamp"])
            LOG.debug(f"Block {block} at {self._timestamps[block]}")
        return self._timestamps[block]
