"""bridgebox: client-side orchestration of encrypted uploads and downloads
against a bridge-mediated, sharded object store."""

from .client import Client
from .config import ClientConfig
from .core.exceptions import BridgeBoxError, ErrorKind
from .core.models import Direction, DownloadState, TransferResult, UploadState

__version__ = "0.1.0"

__all__ = [
    "Client",
    "ClientConfig",
    "BridgeBoxError",
    "ErrorKind",
    "Direction",
    "DownloadState",
    "UploadState",
    "TransferResult",
    "__version__",
]
