"""
Price Feeder - Oracle Vote Orchestration Module

This module provides the core of the oracle price feeder:
- AssetPair: Chain-facing denomination pair
- PriceProvider: Per-exchange price cache with staleness evaluation
- AggregatePriceProvider: Median aggregation across exchanges
- Feeder: Voting-period orchestrator
- SigningIdentity: Single-key, address-scoped signing
- sources: Exchange connector registry and implementations
"""

from .AggregatePriceProvider import AggregatePriceProvider
from .AssetPair import AssetPair
from .Config import Config, ConfigError
from .Feeder import Feeder, FeederInitTimeoutError
from .PriceProvider import PriceProvider
from .SigningIdentity import (
    KeyNotFoundError,
    SigningIdentity,
    UnsupportedOperationError,
)
from .types import ABSTAIN_PRICE, PRICE_TIMEOUT, Params, Price, RawPrice, VotingPeriod

__all__ = [
    "ABSTAIN_PRICE",
    "AggregatePriceProvider",
    "AssetPair",
    "Config",
    "ConfigError",
    "Feeder",
    "FeederInitTimeoutError",
    "KeyNotFoundError",
    "PRICE_TIMEOUT",
    "Params",
    "Price",
    "PriceProvider",
    "RawPrice",
    "SigningIdentity",
    "UnsupportedOperationError",
    "VotingPeriod",
]
