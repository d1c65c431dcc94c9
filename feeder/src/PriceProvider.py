"""PriceProvider: Per-source price cache with staleness evaluation.

A PriceProvider wraps one exchange Source. A single consumer task applies the
Source's tick batches to a per-symbol cache, and :meth:`PriceProvider.get_price`
translates chain asset pairs into exchange symbols and classifies the answer:

    - unmapped pair (no symbol on this exchange): price -1, invalid
    - mapped but never seen: price 0, invalid
    - mapped and seen: last price, valid while younger than the timeout

.. code-block:: python

    provider = PriceProvider(source, "binance", {AssetPair("ubtc", "unusd"): "BTCUSDT"})
    provider.start()
    price = provider.get_price(AssetPair("ubtc", "unusd"))
    await provider.close()
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time

from .AssetPair import AssetPair
from .sources import Source, get_source
from .types import ABSTAIN_PRICE, PRICE_TIMEOUT, Price, RawPrice, Symbol

logger = logging.getLogger(__name__)


class PriceProvider:
    """Price cache for a single exchange source.

    :ivar source_name: Human-readable name of the wrapped source.
    :ivar staleness_timeout: Maximum tick age in seconds for a valid price.
    """

    def __init__(
        self,
        source: Source,
        source_name: str,
        pair_to_symbol: dict[AssetPair, Symbol],
        *,
        staleness_timeout: float = PRICE_TIMEOUT,
    ) -> None:
        """Initialize the provider.

        :param source: Exchange source feeding the cache.
        :param source_name: Name used in logs and returned prices.
        :param pair_to_symbol: Fixed mapping of asset pairs to exchange symbols.
        :param staleness_timeout: Maximum tick age for a valid price (default: 15s).
        """
        self.source_name = source_name
        self.staleness_timeout = staleness_timeout
        self._source = source
        self._pair_to_symbol = dict(pair_to_symbol)

        self._lock = threading.Lock()
        self._last_prices: dict[Symbol, RawPrice] = {}

        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self._source_closed = False

    @classmethod
    def from_config(
        cls,
        source_name: str,
        pair_to_symbol: dict[AssetPair, Symbol],
        *,
        staleness_timeout: float = PRICE_TIMEOUT,
        **source_kwargs,
    ) -> PriceProvider:
        """Build a provider backed by the registered connector ``source_name``.

        :param source_name: Registered exchange name (e.g., "binance").
        :param pair_to_symbol: Mapping of asset pairs to exchange symbols.
        :param staleness_timeout: Maximum tick age for a valid price.
        :param source_kwargs: Extra arguments for the connector.
        :returns: Unstarted PriceProvider.
        :raises ValueError: If the exchange name is unknown.
        """
        source = get_source(source_name, pair_to_symbol.values(), **source_kwargs)
        return cls(
            source,
            source_name,
            pair_to_symbol,
            staleness_timeout=staleness_timeout,
        )

    def start(self) -> None:
        """Start the consumer task on the running event loop.

        :raises RuntimeError: If the provider was already started or closed.
        """
        if self._task is not None or self._closed:
            raise RuntimeError(f"[{self.source_name}] PriceProvider already started")
        self._task = asyncio.create_task(
            self._consume(), name=f"price-provider-{self.source_name}"
        )

    async def _consume(self) -> None:
        try:
            try:
                async for batch in self._source.price_updates():
                    with self._lock:
                        self._last_prices.update(batch)
                logger.warning(f"[{self.source_name}] Price updates ended")
            except Exception:
                logger.exception(f"[{self.source_name}] Price updates failed")
            # Keep serving cached prices until stopped.
            await asyncio.Event().wait()
        finally:
            await self._close_source()

    async def _close_source(self) -> None:
        if self._source_closed:
            return
        self._source_closed = True
        await self._source.close()

    def get_price(self, pair: AssetPair) -> Price:
        """Return the current price for ``pair`` from this source.

        Never raises for unknown, unseen or stale prices: those come back
        with ``valid=False``.

        :param pair: Chain asset pair to look up.
        :returns: Price for the pair.
        """
        symbol = self._pair_to_symbol.get(pair)
        # Can happen after a params update adds a pair this exchange lacks.
        if symbol is None:
            logger.warning(f"[{self.source_name}] Unknown pair {pair}")
            return Price(
                pair=pair,
                price=ABSTAIN_PRICE,
                source_name=self.source_name,
                valid=False,
            )

        with self._lock:
            raw = self._last_prices.get(symbol)

        if raw is None:
            return Price(pair=pair, price=0.0, source_name=self.source_name, valid=False)

        return Price(
            pair=pair,
            price=raw.price,
            source_name=self.source_name,
            valid=time.time() - raw.observed_at < self.staleness_timeout,
        )

    async def close(self) -> None:
        """Stop the consumer task and wait until the source is released.

        Safe to call more than once.
        """
        self._closed = True
        if self._task is None:
            await self._close_source()
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            # Only swallow the cancellation we requested.
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        # A task cancelled before its first step never runs its finally block.
        await self._close_source()
        logger.debug(f"[{self.source_name}] PriceProvider closed")
