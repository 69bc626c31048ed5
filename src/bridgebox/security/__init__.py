"""Security helpers: key derivation, streaming encryption and key provisioning.

This package provides:
- deterministic per-file key derivation (HKDF) and Argon2id passphrase unlock
- streaming AEAD (AES-GCM) encryption/decryption over async byte streams
- secp256k1 key pairs and their optional persistence in the OS keystore
- the explicit Session value carried through every transfer
"""

from .kdf import FileKey, generate_salt, derive_master_key, derive_file_key
from .crypto import encrypt_stream, decrypt_stream, ciphertext_size
from .keys import KeyPair
from .keystore import save_keypair, load_keypair, provision_keypair
from .session import Session

__all__ = [
    "FileKey",
    "generate_salt",
    "derive_master_key",
    "derive_file_key",
    "encrypt_stream",
    "decrypt_stream",
    "ciphertext_size",
    "KeyPair",
    "save_keypair",
    "load_keypair",
    "provision_keypair",
    "Session",
]
