"""Custodial Ed25519 signer for the shared Aptos account."""

import hashlib
from typing import Dict, Optional

from nacl.signing import SigningKey

from ...services.address import pad_address


# AIP-80 prefix for Ed25519 private keys
_KEY_PREFIX = "ed25519-priv-"

# Authentication key scheme byte for single-key Ed25519 accounts
_ED25519_SCHEME = b"\x00"


class SignerConfigError(ValueError):
    """The configured private key is missing or malformed."""


def parse_private_key(raw: str) -> bytes:
    """Decode a hex private key, with or without the ``ed25519-priv-`` prefix."""

    value = (raw or "").strip()
    if value.startswith(_KEY_PREFIX):
        value = value[len(_KEY_PREFIX):]
    if value.lower().startswith("0x"):
        value = value[2:]
    try:
        key = bytes.fromhex(value)
    except ValueError as e:
        raise SignerConfigError("Custodial private key is not valid hex") from e
    if len(key) != 32:
        raise SignerConfigError(f"Custodial private key must be 32 bytes, got {len(key)}")
    return key


def derive_account_address(public_key: bytes) -> str:
    """Aptos account address for a fresh single-key Ed25519 account."""

    return "0x" + hashlib.sha3_256(public_key + _ED25519_SCHEME).hexdigest()


class CustodialSigner:
    """
    Holds the backend key that signs on behalf of every user.

    The key never leaves this object; callers get signatures and the
    public key only.
    """

    def __init__(self, private_key: str, account_address: Optional[str] = None):
        self._signing_key = SigningKey(parse_private_key(private_key))
        self.public_key: bytes = bytes(self._signing_key.verify_key)
        self.address = (
            pad_address(account_address)
            if account_address
            else derive_account_address(self.public_key)
        )

    def __repr__(self) -> str:
        return f"CustodialSigner(address={self.address})"

    @property
    def public_key_hex(self) -> str:
        return "0x" + self.public_key.hex()

    def sign(self, message: bytes) -> bytes:
        """Detached Ed25519 signature over ``message``."""
        return self._signing_key.sign(message).signature

    def signature_payload(self, message: bytes) -> Dict[str, str]:
        """Signature block in the shape the Aptos REST API expects."""
        return {
            "type": "ed25519_signature",
            "public_key": self.public_key_hex,
            "signature": "0x" + self.sign(message).hex(),
        }
