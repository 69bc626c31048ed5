"""
Upload orchestrator: pushes one file into a bucket.

State machine (ERROR reachable from every non-terminal state):

    Init -> TokenRequested -> KeyDerived -> Encrypting -> Buffered -> Submitting -> Done

Each state is entered before its operation runs, so a failure is reported
with the state it happened in:

- TokenRequested: request a PUSH token for the session's bucket
- KeyDerived: derive the file key from the bucket key (public bucket) or the
  session key material (private bucket) and the deterministic file id
- Encrypting: source -> cipher pipeline -> chunk store writer
- Buffered: the store holds every ciphertext byte; ``ready`` is emitted
- Submitting: ciphertext and token go to the bridge; the token is consumed
  whether or not the call succeeds
- Done: ``done`` is emitted with the file descriptor

The chunk store is closed on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import posixpath
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from bridgebox.core.exceptions import BridgeBoxError, ChunkStoreError, ConfigError, MissingDecryptionKeyError
from bridgebox.core.hashing import calculate_file_id
from bridgebox.core.models import Direction, Transfer, TransferResult
from bridgebox.core.storage import ChunkStore, ChunkStoreWriter, MemoryChunkStore, StoreFactory, open_store
from bridgebox.core.streams import source_size
from bridgebox.security.crypto import RECORD_SIZE, ciphertext_size, encrypt_stream
from bridgebox.security.kdf import derive_file_key
from bridgebox.security.session import Session
from .events import EventEmitter
from .tokens import TokenManager

logger = logging.getLogger(__name__)

UploadItem = Union[object, Tuple[object, str]]


def remote_name(source, destination: str = "/", filename: Optional[str] = None) -> str:
    """Name the file will carry in the bucket.

    An explicit ``filename`` wins; a destination not ending in ``/`` names the
    file itself; otherwise the source's own base name is used.
    """
    if filename:
        return filename
    if destination and not destination.endswith("/"):
        return posixpath.basename(destination)
    name = getattr(source, "name", None)
    if isinstance(name, (str, Path)) and str(name):
        return Path(name).name
    raise ConfigError("cannot tell the remote file name; pass filename= or a destination path")


class Uploader(EventEmitter):
    """Drives PUSH transfers for one session. Transfers never share state."""

    def __init__(
        self,
        session: Session,
        tokens: Optional[TokenManager] = None,
        store_factory: StoreFactory = MemoryChunkStore,
        file_concurrency: int = 1,
        record_size: int = RECORD_SIZE,
    ):
        super().__init__()
        self.session = session
        self.tokens = tokens or TokenManager(session.bridge)
        self.store_factory = store_factory
        self.file_concurrency = max(1, file_concurrency)
        self.record_size = record_size

    async def upload(
        self,
        source,
        destination: str = "/",
        filename: Optional[str] = None,
        size: Optional[int] = None,
        mimetype: Optional[str] = None,
    ) -> TransferResult:
        """Encrypt ``source`` and store it in the session's bucket."""
        bucket_id = self.session.bucket_id or ""
        transfer = Transfer(Direction.PUSH, bucket_id)
        store: Optional[ChunkStore] = None
        try:
            if not bucket_id:
                raise ConfigError("session has no bucket id")
            name = remote_name(source, destination, filename)
            length = size if size is not None else source_size(source)
            if length is None:
                raise ConfigError(f"size of {name!r} is unknown; pass size=")
            mimetype = mimetype or mimetypes.guess_type(name)[0] or "application/octet-stream"
            transfer.file_id = calculate_file_id(bucket_id, name)

            transfer.advance()  # TokenRequested
            token = await self.tokens.request_token(bucket_id, Direction.PUSH)
            transfer.token = token

            transfer.advance()  # KeyDerived
            secret = self.session.master_secret(token.encryption_key, bucket_id=bucket_id)
            if secret is None:
                raise MissingDecryptionKeyError(
                    f"bucket {bucket_id} is private and the session holds no key material"
                )
            file_key = derive_file_key(secret, transfer.file_id)

            transfer.advance()  # Encrypting
            store = open_store(self.store_factory, ciphertext_size(length, self.record_size))
            writer = ChunkStoreWriter(store)
            async for chunk in encrypt_stream(source, file_key, record_size=self.record_size):
                writer.write(chunk)

            transfer.advance()  # Buffered
            if not writer.complete:
                raise ChunkStoreError(
                    f"source for {name!r} ended after {writer.offset} of {store.length} encrypted bytes"
                )
            self.emit("ready", transfer)

            transfer.advance()  # Submitting
            ciphertext = store.get(0)
            descriptor = await self.session.bridge.store_file(
                bucket_id, self.tokens.present(token), ciphertext, name, mimetype
            )
            if descriptor.id and descriptor.id != transfer.file_id:
                logger.warning("bridge assigned id %s, expected %s", descriptor.id, transfer.file_id)

            transfer.advance()  # Done
            result = TransferResult(Direction.PUSH, transfer.state, file=descriptor, mimetype=descriptor.mimetype)
            logger.info("stored %s in bucket %s (%d bytes)", name, bucket_id, descriptor.size or len(ciphertext))
            self.emit("done", result)
            return result
        except BridgeBoxError as e:
            failed_at = transfer.fail()
            e.at(failed_at.value)
            logger.warning("upload to bucket %s failed at %s: %s", bucket_id, failed_at.value, e)
            result = TransferResult(Direction.PUSH, transfer.state, error=e)
            self.emit("error", result)
            return result
        finally:
            if store is not None:
                store.close()

    async def upload_many(self, items: Iterable[UploadItem], destination: str = "/") -> List[TransferResult]:
        """Upload several files as independent transfers, ``file_concurrency`` at a time.

        Items are sources or ``(source, destination)`` pairs. Results keep the
        input order.
        """
        semaphore = asyncio.Semaphore(self.file_concurrency)

        async def run(item: UploadItem) -> TransferResult:
            source, dest = item if isinstance(item, tuple) else (item, destination)
            async with semaphore:
                return await self.upload(source, dest)

        entries: Sequence[UploadItem] = list(items)
        return list(await asyncio.gather(*(run(item) for item in entries)))


