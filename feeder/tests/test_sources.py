"""Unit tests for the source registry and REST polling connectors."""

import asyncio
import json

import httpx
import pytest

from feeder.src.sources import (
    BinanceSource,
    BitfinexSource,
    PollingSource,
    SourceError,
    SourceHTTPError,
    get_available_sources,
    get_source,
    register_source,
)


def binance_handler(request: httpx.Request) -> httpx.Response:
    symbols = json.loads(request.url.params["symbols"])
    prices = {"BTCUSDT": "100000.80", "ETHUSDT": "3500.5"}
    return httpx.Response(
        200,
        json=[{"symbol": s, "price": prices[s]} for s in symbols if s in prices],
    )


def bitfinex_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json=[
            ["tBTCUSD", 99990, 1.2, 100010, 0.8, -50, -0.0005, 100000.0, 1200, 101000, 98000],
            ["fUSD", 0.0001, 0.0001, 2, 100, 0.0001, 2, 50, 0, 0, 0, 0, 0, 1000, 0, 0],
            ["tETHUSD", 3499, 3, 3501, 4, 10, 0.003, 3500.0, 5000, 3600, 3400],
        ],
    )


class TestSourceRegistry:
    """Test connector registration."""

    def test_available_sources(self) -> None:
        """Built-in connectors are registered."""
        available = get_available_sources()
        assert "binance" in available
        assert "bitfinex" in available
        assert available == sorted(available)

    def test_get_source(self) -> None:
        """Connectors are built by name with the given symbols."""

        async def scenario() -> None:
            source = get_source("bitfinex", ["tETHUSD", "tBTCUSD", "tBTCUSD"], poll_interval=2.0)
            assert isinstance(source, BitfinexSource)
            assert source.symbols == ["tBTCUSD", "tETHUSD"]
            assert source.poll_interval == 2.0
            await source.close()

        asyncio.run(scenario())

    def test_unknown_source(self) -> None:
        """Unknown names list the available connectors."""
        with pytest.raises(ValueError, match="Available: binance, bitfinex"):
            get_source("kraken", ["XBTUSD"])

    def test_register_requires_name(self) -> None:
        """A connector without a name cannot be registered."""
        with pytest.raises(ValueError, match="must define a 'name'"):

            @register_source
            class Nameless(PollingSource):
                async def fetch_batch(self, symbols):
                    return {}


class TestBinanceSource:
    """Test the Binance connector."""

    def test_fetch_batch(self) -> None:
        """Known symbols are parsed, unknown ones omitted."""

        async def scenario() -> dict[str, float]:
            source = BinanceSource(
                ["BTCUSDT", "ETHUSDT", "NIBIUSDT"],
                transport=httpx.MockTransport(binance_handler),
            )
            try:
                return await source.fetch_batch(source.symbols)
            finally:
                await source.close()

        prices = asyncio.run(scenario())
        assert prices == {"BTCUSDT": 100000.8, "ETHUSDT": 3500.5}

    def test_http_error(self) -> None:
        """Non-2xx responses raise SourceHTTPError."""

        async def scenario() -> None:
            source = BinanceSource(
                ["BTCUSDT"],
                transport=httpx.MockTransport(lambda r: httpx.Response(429, text="slow down")),
            )
            try:
                with pytest.raises(SourceHTTPError) as exc_info:
                    await source.fetch_batch(source.symbols)
                assert exc_info.value.status_code == 429
            finally:
                await source.close()

        asyncio.run(scenario())

    def test_malformed_response(self) -> None:
        """Unparseable payloads raise SourceError."""

        async def scenario() -> None:
            source = BinanceSource(
                ["BTCUSDT"],
                transport=httpx.MockTransport(
                    lambda r: httpx.Response(200, json=[{"symbol": "BTCUSDT", "price": "n/a"}])
                ),
            )
            try:
                with pytest.raises(SourceError, match="Failed to parse"):
                    await source.fetch_batch(source.symbols)
            finally:
                await source.close()

        asyncio.run(scenario())

    def test_price_updates_until_closed(self) -> None:
        """Polls yield stamped batches; close() ends the sequence."""

        async def scenario() -> None:
            source = BinanceSource(
                ["BTCUSDT"],
                poll_interval=0.01,
                transport=httpx.MockTransport(binance_handler),
            )
            updates = source.price_updates()
            batch = await anext(updates)
            assert batch["BTCUSDT"].price == 100000.8
            assert batch["BTCUSDT"].observed_at > 0

            await source.close()
            with pytest.raises(StopAsyncIteration):
                await anext(updates)

        asyncio.run(scenario())

    def test_failed_polls_are_retried(self) -> None:
        """A failing poll yields nothing and the next one is tried."""
        calls = 0

        def flaky(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                return httpx.Response(500, text="boom")
            return binance_handler(request)

        async def scenario() -> None:
            source = BinanceSource(
                ["ETHUSDT"],
                poll_interval=0.01,
                transport=httpx.MockTransport(flaky),
            )
            batch = await anext(source.price_updates())
            assert batch["ETHUSDT"].price == 3500.5
            await source.close()

        asyncio.run(scenario())
        assert calls == 2

    def test_close_is_idempotent(self) -> None:
        """Closing twice is safe."""

        async def scenario() -> None:
            source = BinanceSource(["BTCUSDT"], transport=httpx.MockTransport(binance_handler))
            await source.close()
            await source.close()
            assert source._client.is_closed

        asyncio.run(scenario())


class TestBitfinexSource:
    """Test the Bitfinex connector."""

    def test_fetch_batch(self) -> None:
        """Trading tickers are parsed from LAST_PRICE, funding rows skipped."""

        async def scenario() -> dict[str, float]:
            source = BitfinexSource(
                ["tBTCUSD", "tETHUSD"],
                transport=httpx.MockTransport(bitfinex_handler),
            )
            try:
                return await source.fetch_batch(source.symbols)
            finally:
                await source.close()

        prices = asyncio.run(scenario())
        assert prices == {"tBTCUSD": 100000.0, "tETHUSD": 3500.0}

    def test_short_row(self) -> None:
        """Truncated rows raise SourceError."""

        async def scenario() -> None:
            source = BitfinexSource(
                ["tBTCUSD"],
                transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[["tBTCUSD", 1]])),
            )
            try:
                with pytest.raises(SourceError):
                    await source.fetch_batch(source.symbols)
            finally:
                await source.close()

        asyncio.run(scenario())
