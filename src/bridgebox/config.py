"""Client configuration.

Options can be given directly or read from the environment with
:meth:`ClientConfig.from_env`:

    BRIDGEBOX_BRIDGE     bridge base url
    BRIDGEBOX_PROTOCOL   shard fetch protocol
    BRIDGEBOX_BUCKET     default bucket id
    BRIDGEBOX_STORE      chunk store: memory | fs
    BRIDGEBOX_TMP        directory for the fs chunk store
    BRIDGEBOX_KEY        master key material (hex) for private buckets
    BRIDGEBOX_KEYPASS    passphrase that unlocks key material
    BRIDGEBOX_USER       bridge user (basic auth)
    BRIDGEBOX_PASSWORD   bridge password
    BRIDGEBOX_TIMEOUT    seconds per bridge round trip
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Union

from bridgebox.core.exceptions import ConfigError
from bridgebox.network.bridge import DEFAULT_BRIDGE, DEFAULT_TIMEOUT
from bridgebox.network.shards import DEFAULT_CONCURRENCY

STORE_NAMES = ("memory", "fs")

_ENV = {
    "bridge": "BRIDGEBOX_BRIDGE",
    "protocol": "BRIDGEBOX_PROTOCOL",
    "bucket_id": "BRIDGEBOX_BUCKET",
    "store": "BRIDGEBOX_STORE",
    "tmp_dir": "BRIDGEBOX_TMP",
    "key_material": "BRIDGEBOX_KEY",
    "keypass": "BRIDGEBOX_KEYPASS",
    "bridge_user": "BRIDGEBOX_USER",
    "bridge_password": "BRIDGEBOX_PASSWORD",
    "timeout": "BRIDGEBOX_TIMEOUT",
}


@dataclass
class ClientConfig:
    bridge: str = DEFAULT_BRIDGE
    protocol: str = "http"
    bucket_id: Optional[str] = None
    store: Union[str, Callable] = "memory"
    tmp_dir: Optional[str] = None
    key_material: Optional[str] = None
    keypass: Optional[str] = None
    bridge_user: Optional[str] = None
    bridge_password: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    concurrency: int = DEFAULT_CONCURRENCY
    file_concurrency: int = 1
    persist_keys: bool = True

    def __post_init__(self):
        if not isinstance(self.bridge, str) or not self.bridge:
            raise ConfigError("Bridge url must be a string")
        if not isinstance(self.protocol, str) or not self.protocol:
            raise ConfigError("Protocol must be a string")
        if not callable(self.store) and self.store not in STORE_NAMES:
            raise ConfigError(f"store must be one of {STORE_NAMES} or a callable, got {self.store!r}")
        try:
            self.timeout = float(self.timeout)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"timeout must be a number, got {self.timeout!r}") from e
        if self.timeout <= 0:
            raise ConfigError("timeout must be positive")
        for name in ("concurrency", "file_concurrency"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "ClientConfig":
        """Build a config from BRIDGEBOX_* variables; explicit overrides win."""
        environ = os.environ if environ is None else environ
        values = {}
        for field_name, var in _ENV.items():
            if environ.get(var):
                values[field_name] = environ[var]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
