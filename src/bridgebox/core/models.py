"""
Base data models for transfers, buckets and shard pointers
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from .exceptions import BridgeBoxError, ErrorKind, TokenReusedError

logger = logging.getLogger(__name__)


class Direction(Enum):
    # Scope of a transfer token
    PUSH = "PUSH"
    PULL = "PULL"


class UploadState(Enum):
    INIT = "Init"
    TOKEN_REQUESTED = "TokenRequested"
    KEY_DERIVED = "KeyDerived"
    ENCRYPTING = "Encrypting"
    BUFFERED = "Buffered"
    SUBMITTING = "Submitting"
    DONE = "Done"
    ERROR = "Error"


class DownloadState(Enum):
    INIT = "Init"
    TOKEN_REQUESTED = "TokenRequested"
    POINTERS_RESOLVED = "PointersResolved"
    RECONSTRUCTING = "Reconstructing"
    KEY_DERIVED = "KeyDerived"
    DECRYPTING = "Decrypting"
    DONE = "Done"
    ERROR = "Error"


# Success transitions; ERROR is reachable from every non-terminal state.
UPLOAD_TRANSITIONS = {
    UploadState.INIT: UploadState.TOKEN_REQUESTED,
    UploadState.TOKEN_REQUESTED: UploadState.KEY_DERIVED,
    UploadState.KEY_DERIVED: UploadState.ENCRYPTING,
    UploadState.ENCRYPTING: UploadState.BUFFERED,
    UploadState.BUFFERED: UploadState.SUBMITTING,
    UploadState.SUBMITTING: UploadState.DONE,
}

DOWNLOAD_TRANSITIONS = {
    DownloadState.INIT: DownloadState.TOKEN_REQUESTED,
    DownloadState.TOKEN_REQUESTED: DownloadState.POINTERS_RESOLVED,
    DownloadState.POINTERS_RESOLVED: DownloadState.RECONSTRUCTING,
    DownloadState.RECONSTRUCTING: DownloadState.KEY_DERIVED,
    DownloadState.KEY_DERIVED: DownloadState.DECRYPTING,
    DownloadState.DECRYPTING: DownloadState.DONE,
}


@dataclass
class Token:
    """Single-use authorization credential scoped to one bucket and direction."""

    value: str
    bucket_id: str
    direction: Direction
    encryption_key: str = ""
    file_id: Optional[str] = None
    mimetype: Optional[str] = None
    consumed: bool = False

    @classmethod
    def from_response(cls, bucket_id: str, direction: Direction, body: Dict[str, Any]) -> "Token":
        return cls(
            value=body.get("token", ""),
            bucket_id=bucket_id,
            direction=direction,
            encryption_key=body.get("encryptionKey") or "",
            file_id=body.get("id"),
            mimetype=body.get("mimetype"),
        )

    def consume(self) -> str:
        """Mark the token used and return its value; a second call raises."""
        if self.consumed:
            raise TokenReusedError(f"{self.direction.value} token for bucket {self.bucket_id} was already used")
        self.consumed = True
        return self.value

    def __repr__(self):
        # never leak the credential itself
        return f"Token(bucket_id={self.bucket_id!r}, direction={self.direction.value}, consumed={self.consumed})"


@dataclass(frozen=True)
class Farmer:
    address: str
    port: int
    node_id: str = ""


@dataclass(frozen=True)
class Pointer:
    """Location of one physical shard; ``offset`` is its position in the file."""

    index: int
    hash: str
    size: int
    token: str
    farmer: Farmer
    offset: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any], offset: int = 0) -> "Pointer":
        farmer = data.get("farmer") or {}
        return cls(
            index=int(data.get("index", 0)),
            hash=data["hash"],
            size=int(data["size"]),
            token=data.get("token", ""),
            farmer=Farmer(
                address=farmer.get("address", ""),
                port=int(farmer.get("port", 0)),
                node_id=farmer.get("nodeID", ""),
            ),
            offset=offset,
        )


def pointers_from_response(items: List[Dict[str, Any]]) -> List[Pointer]:
    """Build pointers in index order with offsets from cumulative shard sizes."""
    pointers = []
    offset = 0
    for item in sorted(items, key=lambda p: int(p.get("index", 0))):
        pointer = Pointer.from_dict(item, offset=offset)
        pointers.append(pointer)
        offset += pointer.size
    return pointers


@dataclass
class FileDescriptor:
    id: str
    filename: str = ""
    mimetype: str = "application/octet-stream"
    size: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileDescriptor":
        return cls(
            id=data.get("id", ""),
            filename=data.get("filename", ""),
            mimetype=data.get("mimetype") or "application/octet-stream",
            size=int(data.get("size", 0) or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "filename": self.filename, "mimetype": self.mimetype, "size": self.size}


@dataclass
class Bucket:
    id: str
    name: str = ""
    encryption_key: str = ""
    public_permissions: FrozenSet[Direction] = frozenset()
    files: List[FileDescriptor] = field(default_factory=list)

    @property
    def is_public(self) -> bool:
        return bool(self.encryption_key)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bucket":
        perms = frozenset(Direction(p) for p in data.get("publicPermissions") or [] if p in ("PUSH", "PULL"))
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            encryption_key=data.get("encryptionKey") or "",
            public_permissions=perms,
            files=[FileDescriptor.from_dict(f) for f in data.get("files") or []],
        )


@dataclass
class Transfer:
    """One upload or download in progress. Never reused after a terminal state."""

    direction: Direction
    bucket_id: str
    file_id: Optional[str] = None
    state: Optional[Enum] = None
    token: Optional[Token] = None
    history: List[Enum] = field(default_factory=list)

    def __post_init__(self):
        if self.state is None:
            self.state = UploadState.INIT if self.direction is Direction.PUSH else DownloadState.INIT
        self.history.append(self.state)

    @property
    def transitions(self) -> Dict[Enum, Enum]:
        return UPLOAD_TRANSITIONS if self.direction is Direction.PUSH else DOWNLOAD_TRANSITIONS

    @property
    def terminal(self) -> bool:
        return self.state.value in ("Done", "Error")

    def advance(self) -> Enum:
        """Move to the next state on success of the current step."""
        if self.terminal:
            raise RuntimeError(f"transfer already finished in state {self.state.value}")
        self.state = self.transitions[self.state]
        self.history.append(self.state)
        logger.debug("%s %s/%s -> %s", self.direction.value, self.bucket_id, self.file_id, self.state.value)
        return self.state

    def fail(self) -> Enum:
        failed_at = self.state
        self.state = type(self.state).ERROR
        self.history.append(self.state)
        return failed_at


@dataclass
class TransferResult:
    """Outcome of one orchestrator call: success or one enumerated error kind."""

    direction: Direction
    state: Enum
    file: Optional[FileDescriptor] = None
    data: Optional[bytes] = None
    mimetype: Optional[str] = None
    error: Optional[BridgeBoxError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.state.value == "Done"

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @property
    def step(self) -> Optional[str]:
        return self.error.step if self.error is not None else None

    def unwrap(self):
        """Return the payload or raise the recorded error."""
        if self.error is not None:
            raise self.error
        return self.data if self.direction is Direction.PULL else self.file
