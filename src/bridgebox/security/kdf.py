"""Key derivation for bridgebox.

Two derivations live here:

- ``derive_master_key``: Argon2id, turns a user passphrase (``keypass``) into
  master key material for a private bucket.
- ``derive_file_key``: HKDF-SHA256, turns (master secret, file id) into the
  per-file symmetric key and IV material. It is pure and deterministic, so the
  upload and download paths recompute the same key without storing it.
"""
import hashlib
import os
from dataclasses import dataclass
from typing import Dict, Optional, Union

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

FILE_KEY_LEN = 32
FILE_IV_LEN = 16
FILE_KEY_INFO = b"bridgebox-file-key"

Secret = Union[bytes, str]


@dataclass(frozen=True)
class FileKey:
    """Symmetric key plus IV material for one file."""

    key: bytes
    iv: bytes

    def __repr__(self):
        return "FileKey(<redacted>)"


def _as_bytes(value: Secret) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def generate_salt(length: int = 16) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def bucket_salt(bucket_id: str, length: int = 16) -> bytes:
    """Stable salt for passphrase-derived bucket secrets."""
    return hashlib.sha256(b"bridgebox-bucket:" + bucket_id.encode("utf-8")).digest()[:length]


def derive_master_key(
    password: Secret,
    salt: bytes,
    time_cost: int = 3,
    memory_cost: int = 65536,
    parallelism: int = 1,
    key_len: int = 32,
) -> bytes:
    """
    Derive a master key from a password using Argon2id.
    Returns raw derived key bytes.
    """
    return hash_secret_raw(
        secret=_as_bytes(password),
        salt=salt,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=key_len,
        type=Type.ID,
    )


def kdf_params_to_dict(salt: bytes, time_cost: int, memory_cost: int, parallelism: int) -> Dict:
    return {
        "algo": "argon2id",
        "salt": salt.hex(),
        "time": time_cost,
        "memory": memory_cost,
        "parallelism": parallelism,
    }


def derive_file_key(master_secret: Secret, file_id: Secret, info: Optional[bytes] = None) -> FileKey:
    """
    Derive the per-file key from the bucket's master secret and the file id.

    The same inputs always give the same FileKey. A wrong master secret or
    file id gives a different key, which the cipher pipeline detects as an
    authentication failure.
    """
    secret = _as_bytes(master_secret)
    if not secret:
        raise ValueError("master secret must not be empty")
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=FILE_KEY_LEN + FILE_IV_LEN,
        salt=_as_bytes(file_id),
        info=info or FILE_KEY_INFO,
    )
    material = hkdf.derive(secret)
    return FileKey(key=material[:FILE_KEY_LEN], iv=material[FILE_KEY_LEN:])
