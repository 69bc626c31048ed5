"""
Download orchestrator: pulls one file out of a bucket.

State machine (ERROR reachable from every non-terminal state):

    Init -> TokenRequested -> PointersResolved -> Reconstructing -> KeyDerived -> Decrypting -> Done

- TokenRequested: request a PULL token. A private bucket (empty published
  key) with no session key material fails here with MissingDecryptionKey,
  before any pointer is resolved.
- PointersResolved: present the token and list the file's shard pointers
- Reconstructing: fetch every shard into a chunk store at its offset; one
  failed shard fails the transfer, nothing partial is delivered
- KeyDerived: same derivation as the upload path (bucket secret + file id)
- Decrypting: authenticated decrypt of the staged ciphertext
- Done

``download`` collects the plaintext into one buffer; ``stream`` yields it
chunk by chunk for large files.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Callable, Optional, Tuple

from bridgebox.core.exceptions import BridgeBoxError, ConfigError, MissingDecryptionKeyError
from bridgebox.core.models import Direction, Transfer, TransferResult
from bridgebox.core.storage import ChunkStore, MemoryChunkStore, StoreFactory, open_store, read_stream
from bridgebox.core.streams import collect
from bridgebox.network.shards import ShardFetcher, total_size
from bridgebox.security.crypto import decrypt_stream
from bridgebox.security.kdf import FileKey, derive_file_key
from bridgebox.security.session import Session
from .events import EventEmitter
from .tokens import TokenManager

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[TransferResult], None]


class Downloader(EventEmitter):
    """Drives PULL transfers for one session."""

    def __init__(
        self,
        session: Session,
        fetcher: Optional[ShardFetcher] = None,
        tokens: Optional[TokenManager] = None,
        store_factory: StoreFactory = MemoryChunkStore,
    ):
        super().__init__()
        self.session = session
        self.fetcher = fetcher or ShardFetcher()
        self.tokens = tokens or TokenManager(session.bridge)
        self.store_factory = store_factory

    async def _prepare(self, transfer: Transfer) -> Tuple[ChunkStore, FileKey]:
        """Run every step up to KeyDerived; returns the staged ciphertext and key."""
        bucket_id, file_id = transfer.bucket_id, transfer.file_id
        if not bucket_id or not file_id:
            raise ConfigError("bucket id and file id are required")

        transfer.advance()  # TokenRequested
        token = await self.tokens.request_token(bucket_id, Direction.PULL)
        transfer.token = token
        secret = self.session.master_secret(token.encryption_key, bucket_id=bucket_id)
        if secret is None:
            raise MissingDecryptionKeyError("You must supply a decryption key for private buckets.")

        transfer.advance()  # PointersResolved
        pointers = await self.session.bridge.get_file_pointers(bucket_id, file_id, self.tokens.present(token))
        logger.debug("%s/%s resolved to %d pointers", bucket_id, file_id, len(pointers))

        transfer.advance()  # Reconstructing
        store = open_store(self.store_factory, total_size(pointers))
        try:
            await self.fetcher.reconstruct(pointers, store)
            self.emit("ready", transfer)

            transfer.advance()  # KeyDerived
            file_key = derive_file_key(secret, file_id)
        except BaseException:
            store.close()
            raise
        return store, file_key

    def _new_transfer(self, file_id: str, bucket_id: Optional[str]) -> Transfer:
        return Transfer(Direction.PULL, bucket_id or self.session.bucket_id or "", file_id=file_id)

    async def download(
        self,
        file_id: str,
        bucket_id: Optional[str] = None,
        callback: Optional[CompletionCallback] = None,
    ) -> TransferResult:
        """Fetch and decrypt a whole file into memory.

        The result (success or error) is returned, emitted as ``done`` or
        ``error``, and handed to ``callback`` when one is given.
        """
        transfer = self._new_transfer(file_id, bucket_id)
        store: Optional[ChunkStore] = None
        try:
            store, file_key = await self._prepare(transfer)

            transfer.advance()  # Decrypting
            data = await collect(decrypt_stream(read_stream(store), file_key))

            transfer.advance()  # Done
            mimetype = transfer.token.mimetype if transfer.token else None
            result = TransferResult(Direction.PULL, transfer.state, data=data, mimetype=mimetype)
            logger.info("retrieved %s from bucket %s (%d bytes)", file_id, transfer.bucket_id, len(data))
            self.emit("done", result)
        except BridgeBoxError as e:
            failed_at = transfer.fail()
            e.at(failed_at.value)
            logger.warning("download of %s failed at %s: %s", file_id, failed_at.value, e)
            result = TransferResult(Direction.PULL, transfer.state, error=e)
            self.emit("error", result)
        finally:
            if store is not None:
                store.close()
        if callback is not None:
            callback(result)
        return result

    async def stream(self, file_id: str, bucket_id: Optional[str] = None) -> AsyncIterator[bytes]:
        """Yield authenticated plaintext chunks; raises BridgeBoxError on failure."""
        transfer = self._new_transfer(file_id, bucket_id)
        store: Optional[ChunkStore] = None
        try:
            store, file_key = await self._prepare(transfer)
            transfer.advance()  # Decrypting
            async for chunk in decrypt_stream(read_stream(store), file_key):
                yield chunk
            transfer.advance()  # Done
        except BridgeBoxError as e:
            failed_at = transfer.fail()
            e.at(failed_at.value)
            logger.warning("stream of %s failed at %s: %s", file_id, failed_at.value, e)
            raise
        finally:
            if store is not None:
                store.close()
