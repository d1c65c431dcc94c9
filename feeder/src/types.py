"""Shared value types passed between sources, providers and the feeder."""

from __future__ import annotations

from dataclasses import dataclass, field

from .AssetPair import AssetPair

# Exchange-specific ticker, only meaningful inside one source.
Symbol = str

# Price value signaling an abstain vote for a pair.
ABSTAIN_PRICE = -1.0

# Seconds after which a cached tick is no longer valid for voting.
PRICE_TIMEOUT = 15.0


@dataclass
class RawPrice:
    """Latest tick observed for one symbol.

    :ivar price: Last traded or quoted price.
    :ivar observed_at: Unix timestamp of the observation.
    """

    price: float = 0.0
    observed_at: float = 0.0


@dataclass(frozen=True)
class Price:
    """Price answer for one asset pair, computed per query.

    :ivar pair: The queried asset pair.
    :ivar price: Price value; ``ABSTAIN_PRICE`` when the pair is unknown.
    :ivar source_name: Name of the source(s) that produced the value.
    :ivar valid: Whether the price may be used for voting.
    """

    pair: AssetPair
    price: float
    source_name: str
    valid: bool


@dataclass(frozen=True)
class Params:
    """Oracle governance parameters, replaced wholesale on every update.

    :ivar pairs: Asset pairs to vote on, in vote order.
    :ivar vote_period_blocks: Length of a voting period in blocks.
    """

    pairs: tuple[AssetPair, ...] = field(default_factory=tuple)
    vote_period_blocks: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "pairs", tuple(self.pairs))


@dataclass(frozen=True)
class VotingPeriod:
    """Notification that a new voting period started at ``height``."""

    height: int
