"""
Exchange source connectors.

Each connector emits batches of raw ticks keyed by its own exchange symbols.

Usage:
    from feeder.src.sources import get_source, get_available_sources

    # Get list of available connectors
    available = get_available_sources()
    # ['binance', 'bitfinex']

    # Create a connector tracking two symbols
    source = get_source("binance", ["BTCUSDT", "ETHUSDT"])
    async for batch in source.price_updates():
        ...
"""

# Import base classes and utilities
from .base import (
    SOURCE_REGISTRY,
    PollingSource,
    Source,
    SourceError,
    SourceHTTPError,
    get_available_sources,
    get_source,
    register_source,
)

# Import all connector implementations to trigger registration
from .binance import BinanceSource
from .bitfinex import BitfinexSource

__all__ = [
    # Base classes
    "Source",
    "PollingSource",
    "SourceError",
    "SourceHTTPError",
    # Registry functions
    "register_source",
    "get_source",
    "get_available_sources",
    "SOURCE_REGISTRY",
    # Connector implementations
    "BinanceSource",
    "BitfinexSource",
]
