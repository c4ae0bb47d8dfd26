"""Keeper and rebalancer engine for the Lanca parent/child liquidity pools."""

__version__ = "0.4.0"
