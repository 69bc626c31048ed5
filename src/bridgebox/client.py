"""
Client: one object wiring configuration, session, bridge, uploads,
downloads and bucket administration together.

    async with Client(ClientConfig(bucket_id="...")) as client:
        client.on("ready", lambda transfer: ...)
        result = await client.upload(open("photo.jpg", "rb"))
        result = await client.download(bucket_id, file_id)
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

import httpx

from bridgebox.buckets import BucketManager
from bridgebox.config import ClientConfig
from bridgebox.core.models import TransferResult
from bridgebox.core.storage import resolve_store_factory
from bridgebox.network.bridge import BridgeClient
from bridgebox.network.shards import ShardFetcher
from bridgebox.security.session import Session
from bridgebox.transfer.download import CompletionCallback, Downloader
from bridgebox.transfer.events import Handler
from bridgebox.transfer.tokens import TokenManager
from bridgebox.transfer.upload import Uploader

logger = logging.getLogger(__name__)


class Client:
    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        shard_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or ClientConfig()
        cfg = self.config

        self.bridge = BridgeClient(
            cfg.bridge,
            user=cfg.bridge_user,
            password=cfg.bridge_password,
            timeout=cfg.timeout,
            transport=transport,
        )
        self.session = Session(self.bridge, bucket_id=cfg.bucket_id, key_material=cfg.key_material)
        if cfg.keypass and not cfg.key_material:
            self.session.unlock_with_password(cfg.keypass)

        store_factory = resolve_store_factory(cfg.store, cfg.tmp_dir)
        self.fetcher = ShardFetcher(
            protocol=cfg.protocol,
            concurrency=cfg.concurrency,
            timeout=cfg.timeout,
            transport=shard_transport,
        )
        self.tokens = TokenManager(self.bridge)
        self.uploader = Uploader(
            self.session,
            tokens=self.tokens,
            store_factory=store_factory,
            file_concurrency=cfg.file_concurrency,
        )
        self.downloader = Downloader(
            self.session,
            fetcher=self.fetcher,
            tokens=self.tokens,
            store_factory=store_factory,
        )
        self.buckets = BucketManager(self.session, persist_keys=cfg.persist_keys)
        logger.debug("client ready for %s", cfg.bridge)

    def on(self, event: str, handler: Handler) -> "Client":
        """Subscribe to ``ready`` / ``done`` / ``error`` of uploads and downloads."""
        self.uploader.on(event, handler)
        self.downloader.on(event, handler)
        return self

    async def get_info(self) -> dict:
        return await self.bridge.get_info()

    async def upload(self, source, destination: str = "/", **kwargs) -> TransferResult:
        return await self.uploader.upload(source, destination, **kwargs)

    async def upload_many(self, items, destination: str = "/"):
        return await self.uploader.upload_many(items, destination)

    async def download(
        self,
        bucket_id: str,
        file_id: str,
        callback: Optional[CompletionCallback] = None,
    ) -> TransferResult:
        return await self.downloader.download(file_id, bucket_id=bucket_id, callback=callback)

    def stream(self, bucket_id: str, file_id: str) -> AsyncIterator[bytes]:
        return self.downloader.stream(file_id, bucket_id=bucket_id)

    async def close(self) -> None:
        await self.fetcher.close()
        await self.bridge.close()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
