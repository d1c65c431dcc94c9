"""AssetPair: Chain-facing denomination pair used in oracle votes.

An asset pair is an ordered (base, quote) pair of chain denominations. Its
canonical string form is ``base:quote`` and it is the identifier the chain's
voting protocol uses for an exchange rate.

.. code-block:: python

    >>> pair = AssetPair("ubtc", "unusd")
    >>> str(pair)
    'ubtc:unusd'
    >>> AssetPair.from_string("ueth:unusd").base
    'ueth'
"""

from __future__ import annotations

import re

SEPARATOR = ":"

# Chain denoms: a leading letter followed by 1-127 letters, digits or /._-
_DENOM_RE = re.compile(r"^[a-z][a-z0-9/._-]{1,127}$")


class AssetPair:
    """An immutable (base, quote) denomination pair.

    :ivar base: Base denomination (lowercase).
    :ivar quote: Quote denomination (lowercase).
    """

    __slots__ = ("_base", "_quote")

    def __init__(self, base: str, quote: str) -> None:
        """Initialize an asset pair.

        :param base: Base denomination (e.g., "ubtc").
        :param quote: Quote denomination (e.g., "unusd").
        :raises ValueError: If either denomination is malformed.
        """
        base = base.lower()
        quote = quote.lower()
        for denom in (base, quote):
            if not _DENOM_RE.match(denom):
                raise ValueError(f"Invalid denom '{denom}' in asset pair")
        object.__setattr__(self, "_base", base)
        object.__setattr__(self, "_quote", quote)

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("AssetPair is immutable")

    @property
    def base(self) -> str:
        return self._base

    @property
    def quote(self) -> str:
        return self._quote

    def __str__(self) -> str:
        """Return the canonical ``base:quote`` identifier."""
        return f"{self._base}{SEPARATOR}{self._quote}"

    def __repr__(self) -> str:
        return f"AssetPair({self._base!r}, {self._quote!r})"

    def __hash__(self) -> int:
        return hash(str(self))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AssetPair):
            return NotImplemented
        return str(self) == str(other)

    @classmethod
    def from_string(cls, pair_str: str) -> AssetPair:
        """Parse a pair string in format "base:quote".

        :param pair_str: Pair string like "ubtc:unusd".
        :returns: New AssetPair instance.
        :raises ValueError: If pair string format is invalid.

        .. code-block:: python

            >>> pair = AssetPair.from_string("UNIBI:UUSD")
            >>> pair.base, pair.quote
            ('unibi', 'uusd')
        """
        parts = pair_str.strip().split(SEPARATOR)
        if len(parts) != 2:
            raise ValueError(
                f"Invalid pair format '{pair_str}'. "
                f"Expected 'base{SEPARATOR}quote' (e.g., 'ubtc:unusd')"
            )
        return cls(parts[0], parts[1])
