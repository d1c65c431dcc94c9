"""Config: Startup configuration read from environment variables.

Required variables:
    CHAIN_ID              chain identifier
    GRPC_ENDPOINT         chain gRPC endpoint
    WEBSOCKET_ENDPOINT    chain event subscription endpoint
    FEEDER_MNEMONIC       seed phrase of the feeder key
    EXCHANGE_SYMBOLS_MAP  JSON mapping exchange -> {"base:quote": "SYMBOL"}

Example mapping:

.. code-block:: json

    {"binance": {"ubtc:unusd": "BTCUSDT"}, "bitfinex": {"ubtc:unusd": "tBTCUSD"}}
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from .AssetPair import AssetPair
from .types import Symbol


class ConfigError(ValueError):
    """Raised when the startup configuration is missing or invalid."""

    pass


def parse_exchange_symbols_map(raw: str) -> dict[str, dict[AssetPair, Symbol]]:
    """Parse the per-exchange pair-to-symbol JSON mapping.

    :param raw: JSON object of exchange name to {pair string: symbol}.
    :returns: Dict mapping exchange name to {AssetPair: symbol}.
    :raises ConfigError: On malformed JSON, wrong shape or invalid pairs.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError("failed to parse EXCHANGE_SYMBOLS_MAP: invalid json") from e

    if not isinstance(data, dict):
        raise ConfigError("EXCHANGE_SYMBOLS_MAP must be a JSON object")

    result: dict[str, dict[AssetPair, Symbol]] = {}
    for exchange, symbol_map in data.items():
        if not isinstance(symbol_map, dict):
            raise ConfigError(f"EXCHANGE_SYMBOLS_MAP[{exchange!r}] must be a JSON object")
        pairs: dict[AssetPair, Symbol] = {}
        for pair_str, symbol in symbol_map.items():
            if not isinstance(symbol, str) or not symbol:
                raise ConfigError(
                    f"EXCHANGE_SYMBOLS_MAP[{exchange!r}][{pair_str!r}] must be a non-empty string"
                )
            try:
                pairs[AssetPair.from_string(pair_str)] = symbol
            except ValueError as e:
                raise ConfigError(f"EXCHANGE_SYMBOLS_MAP[{exchange!r}]: {e}") from e
        result[exchange.lower()] = pairs
    return result


@dataclass
class Config:
    """Validated startup configuration.

    :ivar chain_id: Chain identifier.
    :ivar grpc_endpoint: Chain gRPC endpoint.
    :ivar websocket_endpoint: Chain event subscription endpoint.
    :ivar feeder_mnemonic: Seed phrase of the feeder key.
    :ivar exchange_symbols_map: Exchange name -> {AssetPair: symbol}.
    """

    chain_id: str
    grpc_endpoint: str
    websocket_endpoint: str
    feeder_mnemonic: str = field(repr=False)
    exchange_symbols_map: dict[str, dict[AssetPair, Symbol]]

    def validate(self) -> None:
        """Check that every field is set.

        :raises ConfigError: If a required field is empty.
        """
        if not self.chain_id:
            raise ConfigError("no chain id")
        if not self.feeder_mnemonic:
            raise ConfigError("no feeder mnemonic")
        if not self.websocket_endpoint:
            raise ConfigError("no websocket endpoint")
        if not self.grpc_endpoint:
            raise ConfigError("no grpc endpoint")
        if not self.exchange_symbols_map:
            raise ConfigError("no exchange symbols map")

    @property
    def pairs(self) -> list[AssetPair]:
        """All configured pairs across exchanges, in first-seen order."""
        seen: dict[AssetPair, None] = {}
        for symbol_map in self.exchange_symbols_map.values():
            for pair in symbol_map:
                seen.setdefault(pair)
        return list(seen)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        """Read and validate the configuration from the environment.

        :param environ: Mapping to read from (default: os.environ).
        :returns: Validated Config.
        :raises ConfigError: If any field is missing or malformed.
        """
        env = os.environ if environ is None else environ

        raw_map = env.get("EXCHANGE_SYMBOLS_MAP")
        if not raw_map:
            raise ConfigError("no exchange symbols map")

        config = cls(
            chain_id=env.get("CHAIN_ID", ""),
            grpc_endpoint=env.get("GRPC_ENDPOINT", ""),
            websocket_endpoint=env.get("WEBSOCKET_ENDPOINT", ""),
            feeder_mnemonic=env.get("FEEDER_MNEMONIC", ""),
            exchange_symbols_map=parse_exchange_symbols_map(raw_map),
        )
        config.validate()
        return config
