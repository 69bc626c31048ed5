"""
Bucket administration: create, inspect, delete and publish buckets.

Key material is provisioned explicitly. The client key pair registered with
new buckets comes from :meth:`Session.provision_keypair`; the key a public
bucket publishes comes from :meth:`BucketManager.provision_bucket_key`, which
loads the bucket's stored key before generating a new one. Calling
``make_public`` again therefore republishes the same key instead of rotating
it silently.
"""

from __future__ import annotations

import logging
from typing import List, NamedTuple, Optional

from bridgebox.core.models import Bucket, Direction
from bridgebox.security.keys import KeyPair
from bridgebox.security.keystore import SERVICE, bucket_account, provision_keypair
from bridgebox.security.session import Session

logger = logging.getLogger(__name__)


class Publication(NamedTuple):
    id: str
    name: str
    pull: bool
    push: bool
    key: Optional[str]


class BucketManager:
    def __init__(self, session: Session, persist_keys: bool = True, force: bool = False, service: str = SERVICE):
        self.session = session
        self.persist_keys = persist_keys
        self.force = force
        self.service = service

    @property
    def bridge(self):
        return self.session.bridge

    async def create_bucket(self, name: str) -> Bucket:
        """Register a bucket under the client's public key (bootstrapping the key pair on first use)."""
        keypair = self.session.provision_keypair(persist=self.persist_keys, force=self.force, service=self.service)
        bucket = await self.bridge.create_bucket(name, [keypair.get_public_key()])
        logger.info("created bucket %s (%s)", bucket.name or name, bucket.id)
        return bucket

    async def get_bucket(self, bucket_id: str) -> Bucket:
        """Bucket metadata joined with its file listing."""
        bucket = await self.bridge.get_bucket(bucket_id)
        bucket.files = await self.bridge.list_files(bucket_id)
        return bucket

    async def get_buckets(self) -> List[Bucket]:
        buckets = await self.bridge.get_buckets()
        return [Bucket(id=b.id, name=b.name) for b in buckets]

    async def delete_bucket(self, bucket_id: str) -> bool:
        await self.bridge.delete_bucket(bucket_id)
        logger.info("deleted bucket %s", bucket_id)
        return True

    def provision_bucket_key(self, bucket_id: str) -> KeyPair:
        """Load the bucket's publishable key pair, or generate (and persist) it."""
        return provision_keypair(
            bucket_account(bucket_id), service=self.service, persist=self.persist_keys, force=self.force
        )

    async def make_public(self, bucket_id: str, push: bool = False, pull: bool = False) -> Publication:
        """Toggle public PUSH/PULL; publishing a key when either is granted, clearing it otherwise."""
        permissions = []
        if pull:
            permissions.append(Direction.PULL.value)
        if push:
            permissions.append(Direction.PUSH.value)

        if permissions:
            bucket_key = self.provision_bucket_key(bucket_id).get_private_key()
        else:
            bucket_key = ""

        bucket = await self.bridge.update_bucket(bucket_id, permissions, bucket_key)
        logger.info("bucket %s public permissions now %s", bucket_id, sorted(p.value for p in bucket.public_permissions))
        return Publication(
            id=bucket.id,
            name=bucket.name,
            pull=Direction.PULL in bucket.public_permissions,
            push=Direction.PUSH in bucket.public_permissions,
            key=bucket.encryption_key or None,
        )
