"""
Shard fetching: turn an ordered list of pointers into one muxed byte range.

Shards are fetched with bounded concurrency and written into a chunk store at
their pointer offsets, so the reassembled bytes follow the pointers' declared
order no matter which shard arrives first. Reconstruction is all-or-nothing:
the first failed shard cancels the rest and raises PointerResolutionError.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

import httpx

from bridgebox.core.exceptions import PointerResolutionError
from bridgebox.core.models import Pointer
from bridgebox.core.storage import ChunkStore

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3


def total_size(pointers: Sequence[Pointer]) -> int:
    return sum(p.size for p in pointers)


class ShardFetcher:
    def __init__(
        self,
        protocol: str = "http",
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.protocol = protocol
        self.concurrency = max(1, concurrency)
        self._http = httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)

    async def close(self) -> None:
        await self._http.aclose()

    def shard_url(self, pointer: Pointer) -> str:
        farmer = pointer.farmer
        return f"{self.protocol}://{farmer.address}:{farmer.port}/shards/{pointer.hash}?token={pointer.token}"

    async def fetch(self, pointer: Pointer) -> bytes:
        """Download one shard and check its length against the pointer."""
        try:
            response = await self._http.get(self.shard_url(pointer))
        except httpx.HTTPError as e:
            raise PointerResolutionError(f"shard {pointer.index} unreachable: {e}", index=pointer.index) from e
        if response.status_code >= 400:
            raise PointerResolutionError(
                f"shard {pointer.index} returned {response.status_code}", index=pointer.index
            )
        data = response.content
        if len(data) != pointer.size:
            raise PointerResolutionError(
                f"shard {pointer.index} is {len(data)} bytes, expected {pointer.size}", index=pointer.index
            )
        return data

    async def reconstruct(self, pointers: Sequence[Pointer], store: ChunkStore) -> None:
        """Fetch every shard into ``store`` at its offset; any failure aborts all."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def place(pointer: Pointer) -> None:
            async with semaphore:
                data = await self.fetch(pointer)
            store.put(pointer.offset, data)
            logger.debug("shard %d placed at offset %d (%d bytes)", pointer.index, pointer.offset, pointer.size)

        tasks: List[asyncio.Future] = [asyncio.ensure_future(place(p)) for p in pointers]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
