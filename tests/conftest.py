"""
Shared fixtures: an in-process bridge and farmer network served through
httpx.MockTransport, and an in-memory keyring so no test touches the OS
keystore.
"""

import asyncio
import hashlib
import itertools
import json
import re

import httpx
import pytest

from bridgebox.core.hashing import calculate_file_id
from bridgebox.network.bridge import BridgeClient
from bridgebox.network.shards import ShardFetcher
from bridgebox.security.session import Session

BRIDGE_URL = "https://bridge.test"

_TOKENS = re.compile(r"^/buckets/([^/]+)/tokens$")
_FILES = re.compile(r"^/buckets/([^/]+)/files$")
_POINTERS = re.compile(r"^/buckets/([^/]+)/files/([^/]+)/pointers$")
_BUCKET = re.compile(r"^/buckets/([^/]+)$")


def _json(status, body=None):
    return httpx.Response(status, json=body)


def split_shards(data, count):
    """Cut ``data`` into ``count`` contiguous pieces (the last takes the rest)."""
    size = max(1, len(data) // count)
    pieces = [data[i * size:(i + 1) * size] for i in range(count - 1)]
    pieces.append(data[(count - 1) * size:])
    return pieces


class FakeBridge:
    """Minimal bridge plus farmers; enough behaviour to drive real transfers."""

    def __init__(self, shards=4):
        self.shards = shards
        self.buckets = {}
        self.files = {}
        self.tokens = {}
        self.used_tokens = set()
        self.shard_data = {}
        self.requests = []
        self.shard_requests = []
        self.deny_tokens = False
        self.fail_store = False
        self.failing_shard = None
        self.shard_delays = {}
        self.pointer_tokens = []
        self.pointer_payload = None
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Scripting helpers
    # ------------------------------------------------------------------

    def add_bucket(self, bucket_id, name="", encryption_key="", permissions=()):
        self.buckets[bucket_id] = {
            "id": bucket_id,
            "name": name or bucket_id,
            "pubkeys": [],
            "publicPermissions": list(permissions),
            "encryptionKey": encryption_key,
        }
        self.files.setdefault(bucket_id, {})
        return self.buckets[bucket_id]

    def add_file(self, bucket_id, file_id, data, filename="file.bin", mimetype="application/octet-stream"):
        self.files.setdefault(bucket_id, {})[file_id] = {
            "id": file_id,
            "filename": filename,
            "mimetype": mimetype,
            "size": len(data),
            "data": bytes(data),
        }

    def paths(self, method=None):
        return [p for m, p in self.requests if method is None or m == method]

    # ------------------------------------------------------------------
    # Bridge
    # ------------------------------------------------------------------

    def handle(self, request):
        path = request.url.path
        method = request.method
        self.requests.append((method, path))

        if method == "GET" and path == "/":
            return _json(200, {"info": {"title": "Fake bridge", "version": "1.0"}})

        m = _TOKENS.match(path)
        if m and method == "POST":
            return self._issue_token(m.group(1), json.loads(request.content))

        m = _POINTERS.match(path)
        if m and method == "GET":
            return self._pointers(request, m.group(1), m.group(2))

        m = _FILES.match(path)
        if m and method == "POST":
            return self._store(request, m.group(1))
        if m and method == "GET":
            files = self.files.get(m.group(1), {})
            return _json(200, [{k: v for k, v in f.items() if k != "data"} for f in files.values()])

        if path == "/buckets" and method == "POST":
            body = json.loads(request.content)
            bucket = self.add_bucket(f"bucket-{next(self._ids)}", name=body["name"])
            bucket["pubkeys"] = body.get("pubkeys", [])
            return _json(201, bucket)
        if path == "/buckets" and method == "GET":
            return _json(200, list(self.buckets.values()))

        m = _BUCKET.match(path)
        if m:
            bucket = self.buckets.get(m.group(1))
            if bucket is None:
                return _json(404, {"error": "Bucket not found"})
            if method == "GET":
                return _json(200, bucket)
            if method == "PATCH":
                body = json.loads(request.content)
                bucket["publicPermissions"] = body["publicPermissions"]
                bucket["encryptionKey"] = body["encryptionKey"]
                return _json(200, bucket)
            if method == "DELETE":
                del self.buckets[m.group(1)]
                self.files.pop(m.group(1), None)
                return httpx.Response(204)

        return _json(404, {"error": f"no route for {method} {path}"})

    def _issue_token(self, bucket_id, body):
        bucket = self.buckets.get(bucket_id)
        if self.deny_tokens or bucket is None:
            return _json(401, {"error": "Not authorized"})
        value = f"tok-{next(self._ids)}"
        self.tokens[value] = (bucket_id, body["operation"])
        return _json(201, {
            "token": value,
            "bucket": bucket_id,
            "operation": body["operation"],
            "encryptionKey": bucket["encryptionKey"],
        })

    def _check_token(self, request, bucket_id, operation):
        value = request.headers.get("x-token", "")
        return self.tokens.get(value) == (bucket_id, operation)

    def _store(self, request, bucket_id):
        value = request.headers.get("x-token", "")
        if not self._check_token(request, bucket_id, "PUSH") or value in self.used_tokens:
            return _json(401, {"error": "Invalid token"})
        self.used_tokens.add(value)
        if self.fail_store:
            return _json(500, {"error": "Storage unavailable"})
        filename = request.url.params["filename"]
        file_id = calculate_file_id(bucket_id, filename)
        self.add_file(bucket_id, file_id, request.content, filename, request.url.params["mimetype"])
        entry = self.files[bucket_id][file_id]
        return _json(200, {k: v for k, v in entry.items() if k != "data"})

    def _pointers(self, request, bucket_id, file_id):
        self.pointer_tokens.append(request.headers.get("x-token"))
        if not self._check_token(request, bucket_id, "PULL"):
            return _json(401, {"error": "Invalid token"})
        entry = self.files.get(bucket_id, {}).get(file_id)
        if entry is None:
            return _json(404, {"error": "File not found"})
        pointers = []
        for index, piece in enumerate(split_shards(entry["data"], self.shards)):
            digest = hashlib.sha256(file_id.encode() + bytes([index]) + piece).hexdigest()
            self.shard_data[digest] = (index, piece)
            pointers.append({
                "index": index,
                "hash": digest,
                "size": len(piece),
                "token": f"ft-{index}",
                "farmer": {"address": f"farmer{index}.test", "port": 4000 + index, "nodeID": f"node{index}"},
            })
        if self.pointer_payload is not None:
            return _json(200, self.pointer_payload)
        return _json(200, pointers)

    # ------------------------------------------------------------------
    # Farmers
    # ------------------------------------------------------------------

    async def handle_shard(self, request):
        digest = request.url.path.rsplit("/", 1)[-1]
        index, piece = self.shard_data.get(digest, (None, None))
        self.shard_requests.append(index)
        if index is None:
            return httpx.Response(404)
        delay = self.shard_delays.get(index)
        if delay:
            await asyncio.sleep(delay)
        if index == self.failing_shard:
            return httpx.Response(503, text="farmer offline")
        return httpx.Response(200, content=piece)


@pytest.fixture
def fake_bridge():
    return FakeBridge()


@pytest.fixture
def bridge(fake_bridge):
    return BridgeClient(BRIDGE_URL, transport=httpx.MockTransport(fake_bridge.handle))


@pytest.fixture
def fetcher(fake_bridge):
    return ShardFetcher(transport=httpx.MockTransport(fake_bridge.handle_shard))


@pytest.fixture
def session(bridge):
    """Session on bucket ``b1`` holding caller key material."""
    return Session(bridge, bucket_id="b1", key_material="00" * 31 + "2a")


class MemoryKeyring:
    priority = 1

    def __init__(self):
        self.store = {}


@pytest.fixture(autouse=True)
def memory_keyring(monkeypatch):
    """Replace the OS keystore with a dict for every test."""
    from keyring.errors import PasswordDeleteError

    from bridgebox.security import keystore

    backend = MemoryKeyring()

    class _Module:
        @staticmethod
        def get_keyring():
            return backend

        @staticmethod
        def set_password(service, account, secret):
            backend.store[(service, account)] = secret

        @staticmethod
        def get_password(service, account):
            return backend.store.get((service, account))

        @staticmethod
        def delete_password(service, account):
            if (service, account) not in backend.store:
                raise PasswordDeleteError("not found")
            del backend.store[(service, account)]

    monkeypatch.setattr(keystore, "keyring", _Module)
    return backend
