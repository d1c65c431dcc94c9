"""Feeder: Orchestrates governance events, price lookups and vote submission.

The feeder owns the current oracle Params and runs one reactive loop:

    - on a Params update, the held Params are replaced wholesale
    - on a voting-period start, every pair of the current Params is priced
      through the PriceProvider, in Params order, and the resulting vote list
      is handed to the PricePoster together with the period's height

Invalid prices are kept in the vote list with a zero price, which the chain
treats as an abstain vote for that pair.

.. code-block:: python

    feeder = Feeder(event_stream, price_provider, price_poster)
    await feeder.start(init_timeout=15)
    ...
    await feeder.close()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import AsyncIterator
from dataclasses import replace
from typing import TYPE_CHECKING, Protocol

from .types import Params, Price, VotingPeriod

if TYPE_CHECKING:
    from .AssetPair import AssetPair
    from .EventStream import EventStream
    from .PricePoster import PricePoster

logger = logging.getLogger(__name__)

# Default seconds to wait for the initial Params on start.
INIT_TIMEOUT = 15.0

_PARAMS = "params"
_VOTING_PERIOD = "voting_period"


class FeederInitTimeoutError(RuntimeError):
    """Raised when no initial Params arrive within the start timeout."""

    pass


class PriceSource(Protocol):
    """What the feeder needs from a price provider."""

    def get_price(self, pair: AssetPair) -> Price: ...

    async def close(self) -> None: ...


class Feeder:
    """Voting-period state machine.

    :ivar event_stream: Source of Params and voting-period events.
    :ivar price_provider: Provider queried for each configured pair.
    :ivar price_poster: Receiver of the assembled vote lists.
    """

    def __init__(
        self,
        event_stream: EventStream,
        price_provider: PriceSource,
        price_poster: PricePoster,
    ) -> None:
        self.event_stream = event_stream
        self.price_provider = price_provider
        self.price_poster = price_poster

        self._params_lock = threading.Lock()
        self._params = Params()

        self._params_updates: AsyncIterator[Params] | None = None
        self._voting_periods: AsyncIterator[VotingPeriod] | None = None
        self._task: asyncio.Task[None] | None = None
        self._closing: asyncio.Task[None] | None = None

    @property
    def params(self) -> Params:
        """Snapshot of the Params currently in effect."""
        with self._params_lock:
            return self._params

    @property
    def running(self) -> bool:
        """Whether the reactive loop task is alive."""
        return self._task is not None and not self._task.done()

    async def start(self, init_timeout: float | None = None) -> None:
        """Start the reactive loop.

        :param init_timeout: If given, seconds to wait for the initial Params
            before starting; None starts immediately with empty Params.
        :raises FeederInitTimeoutError: If no Params arrive in time.
        :raises RuntimeError: If the feeder was already started or closed.
        """
        if self._task is not None or self._closing is not None:
            raise RuntimeError("Feeder already started")

        self._params_updates = aiter(self.event_stream.params_updates())
        self._voting_periods = aiter(self.event_stream.voting_period_started())

        if init_timeout is not None:
            try:
                initial = await asyncio.wait_for(
                    anext(self._params_updates), timeout=init_timeout
                )
            except (asyncio.TimeoutError, StopAsyncIteration) as e:
                raise FeederInitTimeoutError(
                    f"No initial params received within {init_timeout}s"
                ) from e
            self._handle_params_update(initial)

        self._task = asyncio.create_task(self._loop(), name="feeder")
        logger.info("Feeder started")

    async def _loop(self) -> None:
        streams: dict[str, AsyncIterator] = {
            _PARAMS: self._params_updates,
            _VOTING_PERIOD: self._voting_periods,
        }
        pending: dict[asyncio.Future, str] = {}

        def arm(kind: str) -> None:
            pending[asyncio.ensure_future(anext(streams[kind]))] = kind

        arm(_PARAMS)
        arm(_VOTING_PERIOD)

        try:
            while pending:
                done, _ = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                # Params first, so a simultaneous voting period sees them.
                for future in sorted(done, key=lambda f: pending[f] != _PARAMS):
                    kind = pending.pop(future)
                    try:
                        event = future.result()
                    except StopAsyncIteration:
                        logger.warning(f"Event stream {kind} ended")
                        continue
                    except Exception:
                        logger.exception(f"Event stream {kind} failed")
                        continue

                    if kind == _PARAMS:
                        self._handle_params_update(event)
                    else:
                        await self._handle_voting_period(event)
                    arm(kind)

            # Both streams ended; stay idle until closed.
            await asyncio.Event().wait()
        finally:
            for future in pending:
                future.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    def _handle_params_update(self, params: Params) -> None:
        with self._params_lock:
            self._params = params
        logger.info(
            f"Params updated: pairs=[{', '.join(str(p) for p in params.pairs)}], "
            f"vote_period_blocks={params.vote_period_blocks}"
        )

    async def _handle_voting_period(self, voting_period: VotingPeriod) -> None:
        try:
            prices = self.collect_prices(self.params)
            await self.price_poster.send_prices(voting_period.height, prices)
        except Exception:
            logger.exception(f"Failed to vote at height {voting_period.height}")

    def collect_prices(self, params: Params) -> list[Price]:
        """Price every pair of ``params`` in order.

        :param params: Params whose pairs to price.
        :returns: One Price per pair; invalid prices carry a zero price.
        """
        prices: list[Price] = []
        for pair in params.pairs:
            price = self.price_provider.get_price(pair)
            if not price.valid:
                logger.warning(
                    f"No valid price for {pair} from {price.source_name}, abstaining"
                )
                price = replace(price, price=0.0)
            prices.append(price)
        return prices

    async def close(self) -> None:
        """Stop the loop, then close the event stream, provider and poster.

        Each collaborator is closed exactly once; calling close again waits for
        the first shutdown to finish.
        """
        if self._closing is None:
            self._closing = asyncio.create_task(self._shutdown())
        await asyncio.shield(self._closing)

    async def _shutdown(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Feeder loop failed")

        first_error: Exception | None = None
        for name, resource in (
            ("event stream", self.event_stream),
            ("price provider", self.price_provider),
            ("price poster", self.price_poster),
        ):
            try:
                await resource.close()
            except Exception as e:
                logger.error(f"Failed to close {name}: {e}")
                if first_error is None:
                    first_error = e

        logger.info("Feeder stopped")
        if first_error is not None:
            raise first_error
