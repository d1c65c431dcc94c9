"""Source interface, connector registry and the HTTP polling base class.

A Source is a live connector to one exchange. It emits batches of raw ticks
keyed by the exchange's own symbols; the PriceProvider consuming it takes care
of translating chain asset pairs into those symbols.

Connectors register themselves by name so the exchange-to-connector selection
stays an open table:

.. code-block:: python

    @register_source
    class MySource(PollingSource):
        name = "myexchange"

        async def fetch_batch(self, symbols: list[str]) -> dict[str, float]:
            response = await self._get("https://api.example.com/tickers")
            return {row["symbol"]: float(row["price"]) for row in response.json()}
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from typing import ClassVar

import httpx

from ..types import RawPrice, Symbol

logger = logging.getLogger(__name__)


class SourceError(Exception):
    """Base exception for source transport errors."""

    pass


class SourceHTTPError(SourceError):
    """Raised when an exchange HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class Source(ABC):
    """Abstract exchange connector.

    :cvar name: Unique identifier of the exchange (e.g., "binance").
    """

    name: ClassVar[str] = ""

    @abstractmethod
    def price_updates(self) -> AsyncIterator[dict[Symbol, RawPrice]]:
        """Return the lazy sequence of tick batches.

        The sequence may end when the connector disconnects; consumers must
        treat that as a normal end of data.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release transport resources and unblock any pending receive.

        Must be idempotent.
        """
        pass


class PollingSource(Source):
    """Source that polls an exchange REST ticker endpoint on an interval.

    Subclasses implement :meth:`fetch_batch`. Each successful poll is yielded
    as one batch stamped with the observation time. Failed polls are logged
    and retried on the next interval.

    :cvar DEFAULT_POLL_INTERVAL: Seconds between polls.
    :cvar DEFAULT_TIMEOUT: HTTP request timeout in seconds.
    :ivar symbols: Exchange symbols this connector tracks.
    """

    DEFAULT_POLL_INTERVAL = 5.0
    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        symbols: Iterable[Symbol],
        poll_interval: float | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the polling source.

        :param symbols: Exchange symbols to poll.
        :param poll_interval: Seconds between polls (default: 5).
        :param timeout: Request timeout in seconds (default: 10).
        :param transport: Optional httpx transport, mainly for tests.
        """
        self.symbols = sorted(set(symbols))
        self.poll_interval = poll_interval or self.DEFAULT_POLL_INTERVAL
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=self.timeout),
            follow_redirects=True,
            transport=transport,
        )
        self._stop = asyncio.Event()

    @abstractmethod
    async def fetch_batch(self, symbols: list[Symbol]) -> dict[Symbol, float]:
        """Fetch the latest prices for ``symbols``.

        :param symbols: Exchange symbols to fetch.
        :returns: Dict mapping symbol to price; missing symbols are omitted.
        :raises SourceError: On transport or parsing failure.
        """
        pass

    async def price_updates(self) -> AsyncIterator[dict[Symbol, RawPrice]]:
        while not self._stop.is_set():
            try:
                prices = await self.fetch_batch(self.symbols)
            except SourceError as e:
                logger.warning(f"[{self.name}] Poll failed: {e}")
                prices = {}

            if prices:
                observed_at = time.time()
                yield {
                    symbol: RawPrice(price=price, observed_at=observed_at)
                    for symbol, price in prices.items()
                }

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    async def close(self) -> None:
        if self._stop.is_set():
            return
        self._stop.set()
        await self._client.aclose()
        logger.debug(f"[{self.name}] Source closed")

    async def _get(self, url: str, *, params: dict | None = None) -> httpx.Response:
        """Make an HTTP GET request with the source's client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :returns: httpx.Response object.
        :raises SourceHTTPError: On non-2xx response.
        :raises SourceError: On network/timeout errors.
        """
        try:
            response = await self._client.get(url, params=params)
            if not response.is_success:
                logger.debug(
                    "HTTP GET %s failed with status %s: %s",
                    url,
                    response.status_code,
                    response.text[:200],
                )
                raise SourceHTTPError(response.status_code, response.text[:200])
            return response
        except httpx.TimeoutException as e:
            raise SourceError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise SourceError(f"Request failed: {e}") from e


# Registry of available connectors (populated by subclass imports)
SOURCE_REGISTRY: dict[str, type[Source]] = {}


def register_source(cls: type[Source]) -> type[Source]:
    """Decorator to register a source class in the global registry.

    :param cls: Source class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If the source has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Source {cls.__name__} must define a 'name' class variable")
    SOURCE_REGISTRY[cls.name] = cls
    return cls


def get_source(name: str, symbols: Iterable[Symbol], **kwargs) -> Source:
    """Build a source connector by exchange name.

    :param name: Exchange name (e.g., "binance", "bitfinex").
    :param symbols: Exchange symbols the connector should track.
    :param kwargs: Extra connector arguments (poll_interval, timeout, ...).
    :returns: Source instance.
    :raises ValueError: If the exchange name is unknown.
    """
    if name not in SOURCE_REGISTRY:
        available = ", ".join(sorted(SOURCE_REGISTRY.keys()))
        raise ValueError(f"Unknown source '{name}'. Available: {available}")
    return SOURCE_REGISTRY[name](symbols, **kwargs)


def get_available_sources() -> list[str]:
    """Get list of registered exchange names.

    :returns: Sorted list of registered source names.
    """
    return sorted(SOURCE_REGISTRY.keys())
