"""OS keystore integration using keyring for explicit key provisioning.

Key pairs are stored as their private key hex under a (service, account)
pair. The client key pair lives under account ``client``; a bucket's
published key lives under ``bucket:<bucket_id>``. Use this only for opt-in
persistence; do not assume keyring provides hardware-backed security on all
platforms.
"""
import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from bridgebox.core.exceptions import KeyProvisioningError
from .keys import KeyPair

logger = logging.getLogger(__name__)

SERVICE = "bridgebox"
CLIENT_ACCOUNT = "client"


def bucket_account(bucket_id: str) -> str:
    return f"bucket:{bucket_id}"


def save_key(service: str, account: str, secret: str) -> None:
    """Persist a hex secret in the OS keystore under (service, account)."""
    try:
        keyring.set_password(service, account, secret)
    except KeyringError as e:
        raise KeyProvisioningError(f"could not store key for {account}: {e}") from e


def load_key(service: str, account: str) -> Optional[str]:
    """Load a persisted secret from the OS keystore; returns None when absent."""
    try:
        return keyring.get_password(service, account)
    except KeyringError as e:
        raise KeyProvisioningError(f"could not load key for {account}: {e}") from e


def delete_key(service: str, account: str) -> None:
    """Remove the key from the OS keystore."""
    try:
        keyring.delete_password(service, account)
    except PasswordDeleteError:
        # nothing stored under that account
        pass


def assess_keyring_backend() -> tuple[bool, str]:
    """Return (is_secure, message) describing the current keyring backend.

    Heuristics are used because the `keyring` package exposes different backends
    across platforms.
    """
    try:
        backend = keyring.get_keyring()
    except Exception as e:
        return False, f"failed to get keyring backend: {e}"

    name = backend.__class__.__name__
    priority = getattr(backend, "priority", None)

    insecure_indicators = ("Plaintext", "Uncrypted", "Simple", "File")
    if any(tok in name for tok in insecure_indicators):
        return False, f"insecure backend detected: {name}"

    if priority is not None and priority <= 0:
        return False, f"no suitable secure keyring backend available (priority={priority}, backend={name})"

    # treat known platform backends as acceptable
    if "Win" in name or "Keychain" in name or "SecretService" in name or "KWallet" in name:
        return True, f"backend looks acceptable: {name} (priority={priority})"

    return True, f"unknown backend '{name}', treat with caution (priority={priority})"


def load_keypair(account: str, service: str = SERVICE) -> Optional[KeyPair]:
    secret = load_key(service, account)
    if secret is None:
        return None
    try:
        return KeyPair(secret)
    except ValueError as e:
        raise KeyProvisioningError(f"stored key for {account} is corrupt: {e}") from e


def save_keypair(account: str, keypair: KeyPair, service: str = SERVICE, force: bool = False) -> None:
    """Persist a key pair, refusing insecure backends unless ``force`` is set."""
    if not force:
        secure, msg = assess_keyring_backend()
        if not secure:
            raise KeyProvisioningError(
                f"refusing to persist key to OS keystore: {msg}; "
                "pass force=True to override if you understand the risk"
            )
    save_key(service, account, keypair.get_private_key())
    logger.info("persisted key pair for %s", account)


def provision_keypair(account: str, service: str = SERVICE, persist: bool = True, force: bool = False) -> KeyPair:
    """Load the key pair stored under ``account`` or generate (and persist) one."""
    existing = load_keypair(account, service=service) if persist else None
    if existing is not None:
        return existing
    keypair = KeyPair()
    if persist:
        save_keypair(account, keypair, service=service, force=force)
    return keypair
