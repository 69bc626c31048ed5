"""Helpers turning caller-supplied sources into async byte streams."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, BinaryIO, Iterable, Optional, Union

from .exceptions import BridgeBoxError, SourceReadError

CHUNK_SIZE = 65536  # 64KB

Source = Union[bytes, bytearray, memoryview, Iterable[bytes], AsyncIterable[bytes], BinaryIO]


async def iter_source(source, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield ``source`` as byte chunks.

    Accepts raw bytes, a binary file handle (anything with ``read``), a sync
    iterable of bytes or an async iterable of bytes. Failures while reading
    surface as :class:`SourceReadError`, as do chunks that are not bytes.
    File reads run in a worker thread so the event loop keeps serving other
    transfers.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
        for start in range(0, len(data), chunk_size):
            yield data[start:start + chunk_size]
        return

    if hasattr(source, "read"):
        while True:
            try:
                chunk = await asyncio.to_thread(source.read, chunk_size)
            except (OSError, ValueError) as e:
                raise SourceReadError(f"reading source failed: {e}") from e
            if not chunk:
                return
            yield _as_bytes(chunk)
        return

    if hasattr(source, "__aiter__"):
        iterator = source.__aiter__()
        while True:
            try:
                chunk = await iterator.__anext__()
            except StopAsyncIteration:
                return
            except BridgeBoxError:
                raise
            except Exception as e:
                raise SourceReadError(f"source stream failed: {e}") from e
            yield _as_bytes(chunk)
        return

    iterator = iter(source)
    while True:
        try:
            chunk = next(iterator)
        except StopIteration:
            return
        except BridgeBoxError:
            raise
        except Exception as e:
            raise SourceReadError(f"source stream failed: {e}") from e
        yield _as_bytes(chunk)
        await asyncio.sleep(0)


def _as_bytes(chunk) -> bytes:
    if isinstance(chunk, bytes):
        return chunk
    if isinstance(chunk, (bytearray, memoryview)):
        return bytes(chunk)
    raise SourceReadError(f"source yielded {type(chunk).__name__}, expected bytes")


def source_size(source) -> Optional[int]:
    """Best-effort byte length of a source; None when it cannot be known up front."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return len(source)
    size = getattr(source, "size", None)
    if isinstance(size, int):
        return size
    if hasattr(source, "fileno"):
        try:
            return os.fstat(source.fileno()).st_size - source.tell()
        except (OSError, ValueError):
            pass
    name = getattr(source, "name", None)
    if isinstance(name, (str, Path)) and Path(name).is_file():
        return Path(name).stat().st_size
    return None


async def collect(stream: AsyncIterable[bytes]) -> bytes:
    """Concatenate an async byte stream into one buffer."""
    parts = []
    async for chunk in stream:
        parts.append(chunk)
    return b"".join(parts)
