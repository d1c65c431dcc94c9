"""PricePoster: Vote submission interface and a signing dry-run poster.

A PricePoster turns the ordered vote list of a voting period into a signed
transaction. Broadcasting is chain specific and lives outside this package;
:class:`LoggingPricePoster` builds and signs the vote payload and logs it.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from .SigningIdentity import SigningIdentity
from .types import Price

logger = logging.getLogger(__name__)


class PricePoster(ABC):
    """Abstract vote submitter."""

    @abstractmethod
    async def send_prices(self, height: int, prices: Sequence[Price]) -> object:
        """Build, sign and submit the vote for a voting period.

        :param height: Height at which the voting period started.
        :param prices: One Price per configured pair, in vote order.
        :returns: Implementation-specific submission result.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying chain connection."""
        pass


@dataclass(frozen=True)
class SignedVote:
    """A vote payload together with its signature.

    :ivar height: Voting period height.
    :ivar payload: Canonical JSON bytes that were signed.
    :ivar signature: 64-byte secp256k1 signature.
    :ivar public_key: Compressed public key of the signer.
    """

    height: int
    payload: bytes
    signature: bytes
    public_key: bytes


class LoggingPricePoster(PricePoster):
    """Signs each vote with the feeder identity and logs it instead of broadcasting.

    :ivar identity: Signing identity of the feeder.
    :ivar chain_id: Chain the votes are meant for.
    """

    def __init__(self, identity: SigningIdentity, chain_id: str) -> None:
        self.identity = identity
        self.chain_id = chain_id
        self._closed = False

    def build_payload(self, height: int, prices: Sequence[Price]) -> bytes:
        """Build the canonical JSON vote payload.

        :param height: Voting period height.
        :param prices: Ordered vote list.
        :returns: UTF-8 encoded JSON with sorted keys and no whitespace.
        """
        body = {
            "chain_id": self.chain_id,
            "feeder": self.identity.address,
            "validator": self.identity.validator_address,
            "height": height,
            "exchange_rates": [[str(p.pair), p.price] for p in prices],
        }
        return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")

    async def send_prices(self, height: int, prices: Sequence[Price]) -> SignedVote:
        if self._closed:
            raise RuntimeError("LoggingPricePoster is closed")

        payload = self.build_payload(height, prices)
        signature, public_key = self.identity.sign_by_address(
            self.identity.address, payload
        )
        rates = ", ".join(f"{p.pair}={p.price}" for p in prices) or "none"
        logger.info(
            f"Vote at height {height} signed by {self.identity.address}: "
            f"[{rates}] sig={signature.hex()}"
        )
        return SignedVote(
            height=height,
            payload=payload,
            signature=signature,
            public_key=public_key,
        )

    async def close(self) -> None:
        self._closed = True
