"""secp256k1 key pairs used to register buckets and to publish bucket keys."""

from __future__ import annotations

from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

PRIVATE_KEY_LEN = 32


class KeyPair:
    """
    A client or bucket key pair.

    ``private_key_hex`` is the 32-byte private scalar in hex. That string is
    what a public bucket publishes as its ``encryptionKey`` and what private
    buckets keep on the client as their master secret.
    """

    def __init__(self, private_key_hex: Optional[str] = None):
        if private_key_hex:
            try:
                value = int(private_key_hex, 16)
                self._key = ec.derive_private_key(value, ec.SECP256K1())
            except ValueError as e:
                raise ValueError(f"invalid private key: {e}") from e
        else:
            self._key = ec.generate_private_key(ec.SECP256K1())

    def get_private_key(self) -> str:
        value = self._key.private_numbers().private_value
        return value.to_bytes(PRIVATE_KEY_LEN, "big").hex()

    def get_public_key(self) -> str:
        """Compressed SEC1 public key in hex."""
        raw = self._key.public_key().public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.CompressedPoint,
        )
        return raw.hex()

    def __eq__(self, other):
        if not isinstance(other, KeyPair):
            return NotImplemented
        return self.get_private_key() == other.get_private_key()

    def __hash__(self):
        return hash(self.get_public_key())

    def __repr__(self):
        return f"KeyPair(public={self.get_public_key()[:16]}...)"
