"""
Exceptions for bridgebox
Every error raised by a collaborator derives from BridgeBoxError so the
orchestrators have one general error catcher at their boundary.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    # Terminal failure kinds reported on a TransferResult
    TOKEN_DENIED = "TokenDenied"
    MISSING_DECRYPTION_KEY = "MissingDecryptionKey"
    NETWORK_ERROR = "NetworkError"
    TIMEOUT = "Timeout"
    POINTER_RESOLUTION_FAILED = "PointerResolutionFailed"
    SUBMIT_FAILED = "SubmitFailed"
    CORRUPT_PLAINTEXT = "CorruptPlaintext"
    SOURCE_READ_FAILED = "SourceReadFailed"
    STORE_FAILED = "StoreFailed"
    TOKEN_REUSED = "TokenReused"
    CONFIG_ERROR = "ConfigError"
    KEY_PROVISIONING = "KeyProvisioning"
    BRIDGE_ERROR = "BridgeError"


class BridgeBoxError(Exception):
    # general container for errors
    kind = ErrorKind.BRIDGE_ERROR

    def __init__(self, message: str = "", step: Optional[str] = None):
        super().__init__(message)
        self.step = step

    def at(self, step: str) -> "BridgeBoxError":
        """Record the state the failure happened in, unless already set."""
        if self.step is None:
            self.step = step
        return self


class ConfigError(BridgeBoxError):
    # raised on invalid client options
    kind = ErrorKind.CONFIG_ERROR


class BridgeError(BridgeBoxError):
    # raised when the bridge answers with a non-2xx status
    kind = ErrorKind.BRIDGE_ERROR

    def __init__(self, message: str = "", status_code: Optional[int] = None, step: Optional[str] = None):
        super().__init__(message, step=step)
        self.status_code = status_code


class TokenDeniedError(BridgeError):
    # bridge refused to issue a PUSH/PULL token
    kind = ErrorKind.TOKEN_DENIED


class SubmitFailedError(BridgeError):
    # bridge rejected the final store call
    kind = ErrorKind.SUBMIT_FAILED


class NetworkError(BridgeBoxError):
    # a round trip failed at the transport level
    kind = ErrorKind.NETWORK_ERROR


class TransferTimeoutError(NetworkError):
    # a round trip exceeded its deadline
    kind = ErrorKind.TIMEOUT


class PointerResolutionError(BridgeBoxError):
    # one or more shards could not be fetched
    kind = ErrorKind.POINTER_RESOLUTION_FAILED

    def __init__(self, message: str = "", index: Optional[int] = None, step: Optional[str] = None):
        super().__init__(message, step=step)
        self.index = index


class MissingDecryptionKeyError(BridgeBoxError):
    # private bucket pulled without caller-held key material
    kind = ErrorKind.MISSING_DECRYPTION_KEY


class IntegrityError(BridgeBoxError):
    # authentication tag mismatch, wrong key or truncated ciphertext
    kind = ErrorKind.CORRUPT_PLAINTEXT


class SourceReadError(BridgeBoxError):
    # the caller's source stream failed while being read
    kind = ErrorKind.SOURCE_READ_FAILED


class ChunkStoreError(BridgeBoxError):
    # staging buffer write/read failed or went out of bounds
    kind = ErrorKind.STORE_FAILED


class TokenReusedError(BridgeBoxError):
    # a consumed token was presented again
    kind = ErrorKind.TOKEN_REUSED


class KeyProvisioningError(BridgeBoxError):
    # key pair could not be loaded, generated or persisted
    kind = ErrorKind.KEY_PROVISIONING
