"""EventStream: Governance event interface and a local clock-driven stream."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from .types import Params, VotingPeriod

logger = logging.getLogger(__name__)


class EventStream(ABC):
    """Abstract source of oracle governance events."""

    @abstractmethod
    def params_updates(self) -> AsyncIterator[Params]:
        """Return the sequence of parameter updates.

        :returns: Async iterator of Params, newest last.
        """
        pass

    @abstractmethod
    def voting_period_started(self) -> AsyncIterator[VotingPeriod]:
        """Return the sequence of voting-period start notifications.

        :returns: Async iterator of VotingPeriod.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying subscription."""
        pass


class ClockEventStream(EventStream):
    """Event stream for running without a chain subscription.

    Publishes a fixed Params once and starts a new voting period every
    ``period_seconds``. Heights advance by ``params.vote_period_blocks``.

    :ivar params: Parameters published on start.
    :ivar period_seconds: Seconds between voting periods.
    """

    def __init__(
        self,
        params: Params,
        period_seconds: float,
        start_height: int = 1,
    ) -> None:
        """Initialize the clock stream.

        :param params: Parameters published once.
        :param period_seconds: Seconds between voting periods.
        :param start_height: Height of the first voting period (default: 1).
        :raises ValueError: If period_seconds is not positive.
        """
        if period_seconds <= 0:
            raise ValueError("period_seconds must be positive")
        self.params = params
        self.period_seconds = period_seconds
        self._height = start_height
        self._stop = asyncio.Event()

    async def params_updates(self) -> AsyncIterator[Params]:
        if self._stop.is_set():
            return
        yield self.params
        await self._stop.wait()

    async def voting_period_started(self) -> AsyncIterator[VotingPeriod]:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.period_seconds)
            except asyncio.TimeoutError:
                period = VotingPeriod(height=self._height)
                self._height += max(1, self.params.vote_period_blocks)
                logger.debug(f"Voting period started at height {period.height}")
                yield period

    async def close(self) -> None:
        self._stop.set()
