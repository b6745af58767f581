"""Retroactive LP x debt liquidity-mining reward calculation."""

__version__ = "0.1.0"
