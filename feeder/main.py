#!/usr/bin/env python3
"""Price Feeder.

Gathers market prices for the configured asset pairs from exchange sources
and submits a signed oracle vote once per voting period.

Configuration is read from environment variables; see feeder/src/Config.py.
Without a chain client the feeder runs in dry-run mode: voting periods are
driven by a local clock and signed votes are logged instead of broadcast.
"""

import argparse
import asyncio
import logging
import signal
import sys

from .src.AggregatePriceProvider import AggregatePriceProvider
from .src.Config import Config
from .src.EventStream import ClockEventStream, EventStream
from .src.Feeder import INIT_TIMEOUT, Feeder
from .src.PricePoster import LoggingPricePoster, PricePoster
from .src.PriceProvider import PriceProvider
from .src.SigningIdentity import SigningIdentity
from .src.sources import get_available_sources
from .src.types import PRICE_TIMEOUT, Params

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_price_provider(
    config: Config,
    staleness_timeout: float = PRICE_TIMEOUT,
) -> AggregatePriceProvider:
    """Create one PriceProvider per configured exchange.

    :param config: Validated configuration.
    :param staleness_timeout: Maximum tick age for a valid price.
    :returns: Unstarted aggregate over all exchange providers.
    :raises ValueError: If an exchange has no registered source.
    """
    providers = [
        PriceProvider.from_config(
            exchange, pair_to_symbol, staleness_timeout=staleness_timeout
        )
        for exchange, pair_to_symbol in config.exchange_symbols_map.items()
    ]
    return AggregatePriceProvider(providers)


async def run_feeder(
    event_stream: EventStream,
    price_provider: AggregatePriceProvider,
    price_poster: PricePoster,
) -> None:
    """Run the feeder until SIGINT/SIGTERM, then shut everything down.

    :param event_stream: Source of governance events.
    :param price_provider: Started on entry, closed by the feeder on exit.
    :param price_poster: Vote submitter.
    """
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass  # Windows

    price_provider.start()
    feeder = Feeder(event_stream, price_provider, price_poster)
    try:
        await feeder.start(init_timeout=INIT_TIMEOUT)
        await stop.wait()
        logger.info("Shutting down...")
    finally:
        await feeder.close()


def main() -> None:
    """Main entry point for the Price Feeder CLI."""
    available_sources = get_available_sources()

    parser = argparse.ArgumentParser(
        description="Price Feeder: oracle votes from exchange price feeds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available exchange sources:
  {', '.join(available_sources)}

Required environment variables:
  CHAIN_ID, GRPC_ENDPOINT, WEBSOCKET_ENDPOINT, FEEDER_MNEMONIC,
  EXCHANGE_SYMBOLS_MAP

Example:
  EXCHANGE_SYMBOLS_MAP='{{"binance": {{"ubtc:unusd": "BTCUSDT"}}}}' \\
      python -m feeder.main --vote-period 30
""",
    )

    parser.add_argument(
        "--vote-period",
        dest="vote_period",
        type=float,
        help="Seconds between local voting periods (default: 30)",
        default=30.0,
    )

    parser.add_argument(
        "--vote-period-blocks",
        dest="vote_period_blocks",
        type=int,
        help="Blocks per voting period used to advance heights (default: 10)",
        default=10,
    )

    parser.add_argument(
        "--staleness-timeout",
        dest="staleness_timeout",
        type=float,
        help=f"Max tick age in seconds for a valid price (default: {PRICE_TIMEOUT})",
        default=PRICE_TIMEOUT,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if args.vote_period <= 0:
        parser.error("--vote-period must be positive")

    if args.staleness_timeout <= 0:
        parser.error("--staleness-timeout must be positive")

    try:
        config = Config.from_env()
        identity = SigningIdentity.from_mnemonic(config.feeder_mnemonic)
        price_provider = build_price_provider(config, args.staleness_timeout)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)

    # Log configuration
    logger.info("=" * 60)
    logger.info("Price Feeder")
    logger.info("=" * 60)
    logger.info(f"Chain ID:          {config.chain_id}")
    logger.info(f"gRPC Endpoint:     {config.grpc_endpoint}")
    logger.info(f"Events Endpoint:   {config.websocket_endpoint}")
    logger.info(f"Feeder Address:    {identity.address}")
    logger.info(f"Validator:         {identity.validator_address}")
    logger.info(f"Exchanges:         {', '.join(config.exchange_symbols_map)}")
    logger.info(f"Pairs:             {', '.join(str(p) for p in config.pairs)}")
    logger.info(f"Staleness Timeout: {args.staleness_timeout}s")
    logger.info(f"Vote Period:       {args.vote_period}s (dry run)")
    logger.info("=" * 60)

    event_stream = ClockEventStream(
        Params(pairs=config.pairs, vote_period_blocks=args.vote_period_blocks),
        period_seconds=args.vote_period,
    )
    price_poster = LoggingPricePoster(identity, config.chain_id)

    try:
        asyncio.run(run_feeder(event_stream, price_provider, price_poster))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
