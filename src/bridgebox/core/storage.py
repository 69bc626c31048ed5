"""
Chunk stores: staging buffers between the cipher pipeline and the network leg

A chunk store is sized up front and supports two access patterns:

> Random-addressed writes (``put``) and range reads (``get``). Shards land at
  their file offsets regardless of the order they arrive in.
> Sequential writes through :class:`ChunkStoreWriter`, which tracks the offset.

Two backends ship with bridgebox and are selected by ``ClientConfig.store``:

 - ``memory`` -> MemoryChunkStore, a preallocated bytearray
 - ``fs``     -> FileChunkStore, a temporary file removed on close

Any callable ``size -> ChunkStore`` can be used instead. A store is owned by a
single transfer and must be closed on success and on failure alike; all stores
are context managers for that reason.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import AsyncIterator, Callable, Optional, Union

from .exceptions import ChunkStoreError

logger = logging.getLogger(__name__)

READ_CHUNK = 65536  # 64KB

StoreFactory = Callable[[int], "ChunkStore"]


class ChunkStore:
    """Common bounds checking and lifecycle for all backends."""

    def __init__(self, length: int):
        if length < 0:
            raise ChunkStoreError(f"store length must be non-negative, got {length}")
        self.length = length
        self.closed = False

    def _check(self, offset: int, length: int) -> None:
        if self.closed:
            raise ChunkStoreError("chunk store is closed")
        if offset < 0 or length < 0 or offset + length > self.length:
            raise ChunkStoreError(
                f"range [{offset}, {offset + length}) outside store of {self.length} bytes"
            )

    def put(self, offset: int, data: bytes) -> None:
        self._check(offset, len(data))
        self._put(offset, data)

    def get(self, offset: int = 0, length: Optional[int] = None) -> bytes:
        if length is None:
            length = self.length - offset
        self._check(offset, length)
        return self._get(offset, length)

    def _put(self, offset: int, data: bytes) -> None:
        raise NotImplementedError

    def _get(self, offset: int, length: int) -> bytes:
        raise NotImplementedError

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class MemoryChunkStore(ChunkStore):
    """In-memory store; works everywhere, bounded by RAM."""

    def __init__(self, length: int):
        super().__init__(length)
        self._buf = bytearray(length)

    def _put(self, offset: int, data: bytes) -> None:
        self._buf[offset:offset + len(data)] = data

    def _get(self, offset: int, length: int) -> bytes:
        return bytes(self._buf[offset:offset + length])

    def close(self) -> None:
        # release backing memory
        self._buf = bytearray()
        super().close()


class FileChunkStore(ChunkStore):
    """Store backed by a temporary file, deleted when the store is closed."""

    def __init__(self, length: int, tmp_dir: Optional[Union[str, Path]] = None):
        super().__init__(length)
        if tmp_dir is not None:
            Path(tmp_dir).expanduser().mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(delete=False, dir=tmp_dir, suffix=".chunks") as tmpf:
            self.path = Path(tmpf.name)
        self._fh = open(self.path, "r+b")
        try:
            self._fh.truncate(length)
        except OSError as e:
            self.close()
            raise ChunkStoreError(f"could not allocate {length} bytes in {self.path}: {e}") from e

    def _put(self, offset: int, data: bytes) -> None:
        try:
            self._fh.seek(offset)
            self._fh.write(data)
        except OSError as e:
            raise ChunkStoreError(f"write to {self.path} failed: {e}") from e

    def _get(self, offset: int, length: int) -> bytes:
        try:
            self._fh.flush()
            self._fh.seek(offset)
            return self._fh.read(length)
        except OSError as e:
            raise ChunkStoreError(f"read from {self.path} failed: {e}") from e

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._fh.close()
        finally:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            super().close()


class ChunkStoreWriter:
    """Sequential, offset-tracked sink into a chunk store."""

    def __init__(self, store: ChunkStore, offset: int = 0):
        self.store = store
        self.offset = offset

    def write(self, data: bytes) -> int:
        self.store.put(self.offset, data)
        self.offset += len(data)
        return len(data)

    @property
    def complete(self) -> bool:
        return self.offset == self.store.length


async def read_stream(store: ChunkStore, chunk_size: int = READ_CHUNK) -> AsyncIterator[bytes]:
    """Yield the store's contents in order, ``chunk_size`` bytes at a time."""
    offset = 0
    while offset < store.length:
        length = min(chunk_size, store.length - offset)
        yield store.get(offset, length)
        offset += length


def resolve_store_factory(
    store: Union[str, StoreFactory, None] = "memory",
    tmp_dir: Optional[Union[str, Path]] = None,
) -> StoreFactory:
    """Turn a configured store option into a ``size -> ChunkStore`` callable."""
    if store is None or store == "memory":
        return MemoryChunkStore
    if store == "fs":
        return lambda length: FileChunkStore(length, tmp_dir=tmp_dir)
    if callable(store):
        return store
    raise ChunkStoreError(f"unknown chunk store {store!r}; use 'memory', 'fs' or a callable")


def open_store(factory: StoreFactory, length: int) -> ChunkStore:
    store = factory(length)
    logger.debug("opened %s of %d bytes", type(store).__name__, length)
    return store
