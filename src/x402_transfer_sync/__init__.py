"""Incremental sync of facilitator USDC transfers from chain indexers."""

__version__ = "0.1.0"
