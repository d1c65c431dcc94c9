"""SigningIdentity: Single-key, address-scoped transaction signing.

The feeder signs its votes with exactly one secp256k1 key derived from a seed
phrase. This module exposes that key through a deliberately narrow surface:

    - lookup_by_address(address) -> KeyInfo
    - sign_by_address(address, message) -> (signature, public_key)

Anything a general keyring offers beyond that (listing, deleting, importing,
exporting keys, multisig, hardware wallets) raises UnsupportedOperationError.

.. code-block:: python

    >>> identity = SigningIdentity.from_mnemonic(mnemonic)
    >>> identity.address
    'nibi1...'
    >>> signature, pub_key = identity.sign_by_address(identity.address, b"vote")
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

import bech32
from Crypto.Hash import RIPEMD160
from eth_account import Account
from eth_keys import keys

# Address prefix of the target chain.
DEFAULT_HRP = "nibi"

# BIP-44 path, coin type 118 (Cosmos SDK chains).
DEFAULT_HD_PATH = "m/44'/118'/0'/0/0"

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

Account.enable_unaudited_hdwallet_features()


class SigningError(Exception):
    """Base exception for signing adapter errors."""

    pass


class KeyDerivationError(SigningError):
    """Raised when the key cannot be derived from the seed phrase."""

    pass


class KeyNotFoundError(SigningError):
    """Raised when an address does not match the held key.

    :ivar address: The address that was looked up.
    """

    def __init__(self, address: str | bytes):
        self.address = address
        super().__init__(f"key not found: {address!r}")


class UnsupportedOperationError(SigningError):
    """Raised for keyring capabilities the signing identity does not offer.

    :ivar operation: Name of the requested operation.
    """

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"unsupported operation: {operation}")


def bech32_to_bytes(address: str) -> bytes:
    """Decode a bech32 address to raw bytes.

    :param address: Bech32-encoded address (e.g., "nibi1...").
    :returns: Raw address bytes.
    :raises ValueError: If address is invalid bech32.
    """
    hrp, data = bech32.bech32_decode(address)
    if data is None:
        raise ValueError(f"Invalid bech32 address: {address}")

    # Convert 5-bit groups to bytes
    address_bytes = bech32.convertbits(data, 5, 8, False)
    if address_bytes is None:
        raise ValueError(f"Failed to convert address to bytes: {address}")

    return bytes(address_bytes)


def bytes_to_bech32(hrp: str, data: bytes) -> str:
    """Encode raw address bytes as a bech32 string.

    :param hrp: Human-readable prefix (e.g., "nibi").
    :param data: Raw address bytes.
    :returns: Bech32-encoded address.
    :raises ValueError: If the data cannot be encoded.
    """
    five_bit = bech32.convertbits(data, 8, 5, True)
    encoded = bech32.bech32_encode(hrp, five_bit) if five_bit is not None else None
    if encoded is None:
        raise ValueError(f"Failed to encode {len(data)} bytes with prefix {hrp}")
    return encoded


@dataclass(frozen=True)
class KeyInfo:
    """Public information about the held key.

    :ivar public_key: 33-byte compressed secp256k1 public key.
    :ivar address: Bech32 account address.
    """

    public_key: bytes
    address: str


class SigningIdentity:
    """The feeder's single derived key.

    :ivar address: Bech32 account address.
    :ivar validator_address: Same key under the validator-operator prefix.
    :ivar public_key: 33-byte compressed public key.
    """

    # Keyring capabilities that are intentionally not offered.
    UNSUPPORTED_OPERATIONS = frozenset(
        {
            "key",
            "sign",
            "list",
            "supported_algorithms",
            "delete",
            "delete_by_address",
            "new_mnemonic",
            "new_account",
            "save_ledger_key",
            "save_pub_key",
            "save_multisig",
            "import_priv_key",
            "import_pub_key",
            "export_pub_key_armor",
            "export_pub_key_armor_by_address",
            "export_priv_key_armor",
            "export_priv_key_armor_by_address",
        }
    )

    def __init__(self, private_key: bytes, hrp: str = DEFAULT_HRP) -> None:
        """Initialize from a raw private key.

        :param private_key: 32-byte secp256k1 private key.
        :param hrp: Bech32 account prefix (default: "nibi").
        :raises KeyDerivationError: If the private key is invalid.
        """
        try:
            self._private_key = keys.PrivateKey(private_key)
        except Exception as e:
            raise KeyDerivationError(f"invalid private key: {e}") from e

        self.public_key = self._private_key.public_key.to_compressed_bytes()
        self._address_bytes = RIPEMD160.new(hashlib.sha256(self.public_key).digest()).digest()
        self.address = bytes_to_bech32(hrp, self._address_bytes)
        self.validator_address = bytes_to_bech32(f"{hrp}valoper", self._address_bytes)

    @classmethod
    def from_mnemonic(
        cls,
        mnemonic: str,
        *,
        hrp: str = DEFAULT_HRP,
        hd_path: str = DEFAULT_HD_PATH,
    ) -> SigningIdentity:
        """Derive the identity from a BIP-39 seed phrase.

        :param mnemonic: Seed phrase.
        :param hrp: Bech32 account prefix (default: "nibi").
        :param hd_path: Hierarchical derivation path (default: m/44'/118'/0'/0/0).
        :returns: New SigningIdentity.
        :raises KeyDerivationError: If the phrase or path is invalid.
        """
        try:
            account = Account.from_mnemonic(mnemonic, account_path=hd_path)
        except Exception as e:
            raise KeyDerivationError(f"failed to derive key: {e}") from e
        return cls(bytes(account.key), hrp=hrp)

    def _matches(self, address: str | bytes) -> bool:
        if isinstance(address, str):
            try:
                address = bech32_to_bytes(address)
            except ValueError:
                return False
        return address == self._address_bytes

    def lookup_by_address(self, address: str | bytes) -> KeyInfo:
        """Return the public key info if ``address`` is the held address.

        :param address: Bech32 string (any prefix) or raw address bytes.
        :returns: KeyInfo of the held key.
        :raises KeyNotFoundError: If the address does not match.
        """
        if not self._matches(address):
            raise KeyNotFoundError(address)
        return KeyInfo(public_key=self.public_key, address=self.address)

    def sign_by_address(self, address: str | bytes, message: bytes) -> tuple[bytes, bytes]:
        """Sign ``message`` with the held key if ``address`` matches.

        The signature is the 64-byte ``r || s`` form over SHA-256(message),
        with ``s`` normalized to the lower half of the curve order.

        :param address: Bech32 string (any prefix) or raw address bytes.
        :param message: Bytes to sign.
        :returns: Tuple of (signature, compressed public key).
        :raises KeyNotFoundError: If the address does not match.
        """
        if not self._matches(address):
            raise KeyNotFoundError(address)

        digest = hashlib.sha256(message).digest()
        signature = self._private_key.sign_msg_hash(digest)
        s = signature.s
        if s > SECP256K1_N // 2:
            s = SECP256K1_N - s
        return signature.r.to_bytes(32, "big") + s.to_bytes(32, "big"), self.public_key

    def __repr__(self) -> str:
        return f"SigningIdentity({self.address!r})"


def _unsupported(operation: str):
    def method(self, *args, **kwargs):
        raise UnsupportedOperationError(operation)

    method.__name__ = operation
    method.__qualname__ = f"SigningIdentity.{operation}"
    method.__doc__ = "Not offered by SigningIdentity; raises UnsupportedOperationError."
    return method


for _operation in SigningIdentity.UNSUPPORTED_OPERATIONS:
    setattr(SigningIdentity, _operation, _unsupported(_operation))
