"""Explicit session context passed into every orchestrator call.

A Session holds the bridge client handle, the bucket it targets and the
caller's key material. Sessions are plain values: two sessions never share
key material or bucket state, so concurrent sessions cannot interfere.
Key material is kept in memory only; persisting it is an explicit step via
:meth:`Session.provision_keypair`.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from bridgebox.core.exceptions import ConfigError
from bridgebox.network.bridge import BridgeClient
from .kdf import bucket_salt, derive_master_key, kdf_params_to_dict
from .keys import KeyPair
from .keystore import CLIENT_ACCOUNT, SERVICE, provision_keypair


@dataclass
class Session:
    bridge: BridgeClient
    bucket_id: Optional[str] = None
    key_material: Optional[str] = None
    keypair: Optional[KeyPair] = None
    kdf_params: Optional[dict] = None
    keypass: Optional[Union[bytes, str]] = field(default=None, repr=False)
    kdf_costs: Dict[str, int] = field(default_factory=dict)
    bucket_keys: Dict[str, str] = field(default_factory=dict, repr=False)

    def for_bucket(self, bucket_id: str) -> "Session":
        """Return an independent session targeting another bucket."""
        return dataclasses.replace(self, bucket_id=bucket_id, bucket_keys=dict(self.bucket_keys))

    def unlock_with_key(self, key_material: str) -> None:
        """Use already-held master key material (hex string) for private buckets."""
        self.key_material = key_material

    def unlock_with_password(
        self,
        keypass: bytes | str,
        salt: Optional[bytes] = None,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 1,
    ) -> None:
        """Unlock private buckets with a passphrase.

        With an explicit salt the key is derived once and used for every
        bucket. Without one the passphrase is held and a key is derived per
        bucket from its id, so the same passphrase unlocks the same bucket
        from any process.
        """
        costs = {"time_cost": time_cost, "memory_cost": memory_cost, "parallelism": parallelism}
        if salt is not None:
            key = derive_master_key(keypass, salt, **costs)
            self.kdf_params = kdf_params_to_dict(salt, time_cost, memory_cost, parallelism)
            self.key_material = key.hex()
            return
        self.keypass = keypass
        self.kdf_costs = costs
        self.bucket_keys.clear()
        if self.bucket_id:
            self.key_for_bucket(self.bucket_id)

    def key_for_bucket(self, bucket_id: Optional[str]) -> Optional[str]:
        """Passphrase-derived key for ``bucket_id``; None when no passphrase is held."""
        if self.keypass is None:
            return None
        if not bucket_id:
            raise ConfigError("a bucket id is required to derive key material from a passphrase")
        if bucket_id not in self.bucket_keys:
            salt = bucket_salt(bucket_id)
            key = derive_master_key(self.keypass, salt, **self.kdf_costs)
            self.bucket_keys[bucket_id] = key.hex()
            self.kdf_params = kdf_params_to_dict(salt, **self.kdf_costs)
        return self.bucket_keys[bucket_id]

    def provision_keypair(self, persist: bool = True, force: bool = False, service: str = SERVICE) -> KeyPair:
        """Load or create the client key pair; persisted to the OS keystore by default."""
        if self.keypair is None:
            self.keypair = provision_keypair(CLIENT_ACCOUNT, service=service, persist=persist, force=force)
        return self.keypair

    def master_secret(self, bucket_key: str = "", bucket_id: Optional[str] = None) -> Optional[str]:
        """Secret for a transfer on ``bucket_id`` (default: the session bucket).

        Order: the bucket's published key, explicit key material, the
        passphrase key of that bucket, then the client key pair.
        """
        if bucket_key:
            return bucket_key
        if self.key_material:
            return self.key_material
        derived = self.key_for_bucket(bucket_id or self.bucket_id)
        if derived:
            return derived
        if self.keypair is not None:
            return self.keypair.get_private_key()
        return None

    def lock(self) -> None:
        """Drop key material held by this session."""
        self.key_material = None
        self.keypair = None
        self.kdf_params = None
        self.keypass = None
        self.bucket_keys.clear()
