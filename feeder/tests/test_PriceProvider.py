"""Unit tests for PriceProvider."""

import asyncio
from collections.abc import AsyncIterator
from unittest.mock import patch

import pytest

from feeder.src.AssetPair import AssetPair
from feeder.src.PriceProvider import PriceProvider
from feeder.src.sources import BinanceSource, Source
from feeder.src.types import ABSTAIN_PRICE, PRICE_TIMEOUT, RawPrice

BTC = AssetPair("ubtc", "unusd")
ETH = AssetPair("ueth", "unusd")
NIBI = AssetPair("unibi", "uusd")

MAPPING = {BTC: "BTCUSDT", ETH: "ETHUSDT"}

# Marks the end of a FakeSource update sequence.
END = object()


class FakeSource(Source):
    """In-memory source fed through a queue."""

    name = "fake"

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.queue: asyncio.Queue = asyncio.Queue()
        self.fail_with = fail_with
        self.close_calls = 0

    async def price_updates(self) -> AsyncIterator[dict[str, RawPrice]]:
        while True:
            batch = await self.queue.get()
            if batch is END:
                if self.fail_with is not None:
                    raise self.fail_with
                return
            yield batch

    async def close(self) -> None:
        self.close_calls += 1


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Yield to the event loop until ``predicate()`` holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.001)


def tick(price: float, observed_at: float = 1000.0) -> RawPrice:
    return RawPrice(price=price, observed_at=observed_at)


class TestPriceProviderClassification:
    """Test the unmapped / unseen / seen states of get_price()."""

    def test_unmapped_pair_abstains(self) -> None:
        """Unmapped pair returns the -1 sentinel, invalid, with source name."""

        async def scenario() -> None:
            provider = PriceProvider(FakeSource(), "mock-source", MAPPING)
            price = provider.get_price(NIBI)

            assert price.pair == NIBI
            assert price.price == ABSTAIN_PRICE
            assert price.source_name == "mock-source"
            assert price.valid is False
            await provider.close()

        asyncio.run(scenario())

    def test_unmapped_pair_with_empty_mapping(self) -> None:
        """Every pair is unmapped when the mapping is empty."""

        async def scenario() -> None:
            provider = PriceProvider(FakeSource(), "empty", {})
            provider.start()
            for pair in (BTC, ETH, NIBI):
                price = provider.get_price(pair)
                assert (price.price, price.valid) == (ABSTAIN_PRICE, False)
            await provider.close()

        asyncio.run(scenario())

    def test_mapped_unseen_pair_is_zero(self) -> None:
        """Mapped pair with no tick yet returns price 0, invalid."""

        async def scenario() -> None:
            provider = PriceProvider(FakeSource(), "mock-source", MAPPING)
            provider.start()
            price = provider.get_price(BTC)

            assert price.price == 0.0
            assert price.valid is False
            assert price.source_name == "mock-source"
            await provider.close()

        asyncio.run(scenario())

    def test_fresh_price_is_valid(self) -> None:
        """Tick younger than the timeout returns the latest price, valid."""

        async def scenario() -> None:
            source = FakeSource()
            provider = PriceProvider(source, "mock-source", MAPPING)
            provider.start()
            source.queue.put_nowait({"BTCUSDT": tick(100_000.8)})
            await wait_until(lambda: provider.get_price(BTC).price != 0.0)

            with patch("feeder.src.PriceProvider.time.time", return_value=1005.0):
                price = provider.get_price(BTC)

            assert price.price == 100_000.8
            assert price.valid is True
            await provider.close()

        asyncio.run(scenario())

    def test_stale_price_keeps_value(self) -> None:
        """Tick older than the timeout keeps its value but is invalid."""

        async def scenario() -> None:
            source = FakeSource()
            provider = PriceProvider(source, "mock-source", MAPPING)
            provider.start()
            source.queue.put_nowait({"ETHUSDT": tick(7000.11)})
            await wait_until(lambda: provider.get_price(ETH).price != 0.0)

            with patch(
                "feeder.src.PriceProvider.time.time",
                return_value=1000.0 + PRICE_TIMEOUT + 1,
            ):
                price = provider.get_price(ETH)

            assert price.price == 7000.11
            assert price.valid is False
            await provider.close()

        asyncio.run(scenario())

    def test_staleness_boundary_is_exclusive(self) -> None:
        """A tick exactly timeout seconds old is no longer valid."""

        async def scenario() -> None:
            source = FakeSource()
            provider = PriceProvider(source, "s", MAPPING, staleness_timeout=10.0)
            provider.start()
            source.queue.put_nowait({"BTCUSDT": tick(1.5)})
            await wait_until(lambda: provider.get_price(BTC).price != 0.0)

            with patch("feeder.src.PriceProvider.time.time", return_value=1009.999):
                assert provider.get_price(BTC).valid is True
            with patch("feeder.src.PriceProvider.time.time", return_value=1010.0):
                assert provider.get_price(BTC).valid is False
            await provider.close()

        asyncio.run(scenario())


class TestPriceProviderConsumer:
    """Test batch application by the consumer task."""

    def test_batches_applied_in_order(self) -> None:
        """Later batches overwrite earlier ticks per symbol."""

        async def scenario() -> None:
            source = FakeSource()
            provider = PriceProvider(source, "mock-source", MAPPING)
            provider.start()
            source.queue.put_nowait({"BTCUSDT": tick(1.0), "ETHUSDT": tick(2.0)})
            source.queue.put_nowait({"BTCUSDT": tick(3.0)})
            await wait_until(lambda: provider.get_price(BTC).price == 3.0)

            assert provider.get_price(ETH).price == 2.0
            await provider.close()

        asyncio.run(scenario())

    def test_unknown_symbols_are_cached_but_unreachable(self) -> None:
        """Ticks for symbols outside the mapping never leak into answers."""

        async def scenario() -> None:
            source = FakeSource()
            provider = PriceProvider(source, "mock-source", MAPPING)
            provider.start()
            source.queue.put_nowait({"NIBIUSDT": tick(0.5), "BTCUSDT": tick(9.0)})
            await wait_until(lambda: provider.get_price(BTC).price == 9.0)

            assert provider.get_price(NIBI).price == ABSTAIN_PRICE
            await provider.close()

        asyncio.run(scenario())

    def test_ended_source_keeps_serving_cache(self) -> None:
        """An ended update sequence does not crash the provider."""

        async def scenario() -> None:
            source = FakeSource()
            provider = PriceProvider(source, "mock-source", MAPPING)
            provider.start()
            source.queue.put_nowait({"BTCUSDT": tick(42.0)})
            source.queue.put_nowait(END)
            await wait_until(source.queue.empty)
            await asyncio.sleep(0.01)

            assert provider.get_price(BTC).price == 42.0
            assert source.close_calls == 0
            await provider.close()
            assert source.close_calls == 1

        asyncio.run(scenario())

    def test_failing_source_keeps_serving_cache(self) -> None:
        """A source raising mid-stream is logged, not propagated."""

        async def scenario() -> None:
            source = FakeSource(fail_with=ConnectionError("socket closed"))
            provider = PriceProvider(source, "mock-source", MAPPING)
            provider.start()
            source.queue.put_nowait({"ETHUSDT": tick(5.0)})
            source.queue.put_nowait(END)
            await wait_until(source.queue.empty)
            await asyncio.sleep(0.01)

            assert provider.get_price(ETH).price == 5.0
            await provider.close()
            assert source.close_calls == 1

        asyncio.run(scenario())


class TestPriceProviderLifecycle:
    """Test start() and close()."""

    def test_close_releases_source_once(self) -> None:
        """close() closes the source exactly once, even when repeated."""

        async def scenario() -> None:
            source = FakeSource()
            provider = PriceProvider(source, "mock-source", MAPPING)
            provider.start()
            await asyncio.sleep(0)

            await provider.close()
            await provider.close()
            assert source.close_calls == 1

        asyncio.run(scenario())

    def test_close_immediately_after_start(self) -> None:
        """Closing before the task ever ran still releases the source."""

        async def scenario() -> None:
            source = FakeSource()
            provider = PriceProvider(source, "mock-source", MAPPING)
            provider.start()
            await provider.close()
            assert source.close_calls == 1

        asyncio.run(scenario())

    def test_close_without_start(self) -> None:
        """An unstarted provider still closes its source."""

        async def scenario() -> None:
            source = FakeSource()
            provider = PriceProvider(source, "mock-source", MAPPING)
            await provider.close()
            await provider.close()
            assert source.close_calls == 1

        asyncio.run(scenario())

    def test_no_merge_after_close(self) -> None:
        """Batches arriving after close() are never applied."""

        async def scenario() -> None:
            source = FakeSource()
            provider = PriceProvider(source, "mock-source", MAPPING)
            provider.start()
            source.queue.put_nowait({"BTCUSDT": tick(1.0)})
            await wait_until(lambda: provider.get_price(BTC).price == 1.0)

            await provider.close()
            source.queue.put_nowait({"BTCUSDT": tick(2.0)})
            await asyncio.sleep(0.01)
            assert provider.get_price(BTC).price == 1.0

        asyncio.run(scenario())

    def test_start_twice_raises(self) -> None:
        """A provider runs exactly one consumer task."""

        async def scenario() -> None:
            provider = PriceProvider(FakeSource(), "mock-source", MAPPING)
            provider.start()
            with pytest.raises(RuntimeError, match="already started"):
                provider.start()
            await provider.close()

        asyncio.run(scenario())

    def test_start_after_close_raises(self) -> None:
        """A closed provider cannot be restarted."""

        async def scenario() -> None:
            provider = PriceProvider(FakeSource(), "mock-source", MAPPING)
            await provider.close()
            with pytest.raises(RuntimeError):
                provider.start()

        asyncio.run(scenario())


class TestPriceProviderFromConfig:
    """Test building providers from the source registry."""

    def test_builds_registered_source(self) -> None:
        """A registered exchange name yields a provider over that connector."""

        async def scenario() -> None:
            provider = PriceProvider.from_config("binance", MAPPING)
            assert provider.source_name == "binance"
            assert isinstance(provider._source, BinanceSource)
            assert provider._source.symbols == ["BTCUSDT", "ETHUSDT"]
            await provider.close()

        asyncio.run(scenario())

    def test_unknown_exchange(self) -> None:
        """Unknown exchange names fail at construction."""
        with pytest.raises(ValueError, match="Unknown source 'nope'"):
            PriceProvider.from_config("nope", MAPPING)
