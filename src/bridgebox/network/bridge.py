"""
Async client for the bridge: the service that issues transfer tokens, stores
files, resolves shard pointers and manages buckets.

Endpoints used:
  GET    /                                   -> bridge info
  POST   /buckets/{id}/tokens                -> {token, encryptionKey, id, mimetype}
  POST   /buckets/{id}/files (raw ciphertext, x-token header) -> {id, filename, mimetype, size}
  GET    /buckets/{id}/files                 -> [file...]
  GET    /buckets/{id}/files/{fileId}/pointers -> [pointer...]
  POST   /buckets, GET /buckets, GET/PATCH/DELETE /buckets/{id}

Every failure surfaces as a BridgeBoxError subclass: TransferTimeoutError for
deadlines, NetworkError for transport failures, and BridgeError (or the
operation-specific subclass) for non-2xx answers. Nothing is retried here;
retry policy belongs to the caller, which must use a fresh token.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

import httpx

from bridgebox.core.exceptions import (
    BridgeBoxError,
    BridgeError,
    NetworkError,
    PointerResolutionError,
    SubmitFailedError,
    TokenDeniedError,
    TransferTimeoutError,
)
from bridgebox.core.hashing import hash_password
from bridgebox.core.models import Bucket, Direction, FileDescriptor, Pointer, Token, pointers_from_response

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BRIDGE = "https://api.storj.io"
DEFAULT_TIMEOUT = 30.0


class BridgeClient:
    """Thin async wrapper over the bridge HTTP API. Safe to share across transfers."""

    def __init__(
        self,
        base_url: str = DEFAULT_BRIDGE,
        user: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        auth = (user, hash_password(password or "")) if user else None
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            auth=auth,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "BridgeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: Type[BridgeBoxError] = BridgeError,
        **kwargs,
    ) -> Any:
        logger.debug("%s %s%s", method, self.base_url, path)
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransferTimeoutError(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            error = error_cls(f"{method} {path} -> {response.status_code}: {_error_message(response)}")
            error.status_code = response.status_code
            raise error
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BridgeError(f"{method} {path} returned invalid JSON", status_code=response.status_code) from e

    async def get_info(self) -> Dict[str, Any]:
        return await self._request("GET", "/") or {}

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    async def create_token(self, bucket_id: str, direction: Direction) -> Token:
        body = await self._request(
            "POST",
            f"/buckets/{bucket_id}/tokens",
            error_cls=TokenDeniedError,
            json={"operation": direction.value},
        )
        if not isinstance(body, dict) or not body.get("token"):
            raise TokenDeniedError(f"bridge issued no {direction.value} token for bucket {bucket_id}")
        return _parse(lambda b: Token.from_response(bucket_id, direction, b), body, TokenDeniedError, "token")

    async def store_file(
        self,
        bucket_id: str,
        token: str,
        ciphertext: bytes,
        filename: str,
        mimetype: str = "application/octet-stream",
    ) -> FileDescriptor:
        body = await self._request(
            "POST",
            f"/buckets/{bucket_id}/files",
            error_cls=SubmitFailedError,
            headers={"x-token": token, "content-type": "application/octet-stream"},
            params={"filename": filename, "mimetype": mimetype},
            content=ciphertext,
        )
        return _parse(FileDescriptor.from_dict, body or {}, SubmitFailedError, "stored file")

    async def get_file_pointers(self, bucket_id: str, file_id: str, token: str) -> List[Pointer]:
        """Resolve all pointers of a file in one call; returned in file-offset order.

        The PULL token is presented exactly once, so the listing is never paged.
        """
        body = await self._request(
            "GET",
            f"/buckets/{bucket_id}/files/{file_id}/pointers",
            error_cls=PointerResolutionError,
            headers={"x-token": token},
        )
        if not isinstance(body, list):
            raise PointerResolutionError(f"pointer listing for {file_id} is not a list")
        return _parse(pointers_from_response, body, PointerResolutionError, "pointer listing")

    async def list_files(self, bucket_id: str) -> List[FileDescriptor]:
        body = await self._request("GET", f"/buckets/{bucket_id}/files")
        return _parse(lambda b: [FileDescriptor.from_dict(f) for f in b], body or [], BridgeError, "file listing")

    # ------------------------------------------------------------------
    # Buckets
    # ------------------------------------------------------------------

    async def create_bucket(self, name: str, pubkeys: List[str]) -> Bucket:
        body = await self._request("POST", "/buckets", json={"name": name, "pubkeys": pubkeys})
        return _parse(Bucket.from_dict, body or {}, BridgeError, "bucket")

    async def get_bucket(self, bucket_id: str) -> Bucket:
        body = await self._request("GET", f"/buckets/{bucket_id}")
        return _parse(Bucket.from_dict, body or {}, BridgeError, "bucket")

    async def get_buckets(self) -> List[Bucket]:
        body = await self._request("GET", "/buckets")
        return _parse(lambda b: [Bucket.from_dict(x) for x in b], body or [], BridgeError, "bucket listing")

    async def delete_bucket(self, bucket_id: str) -> None:
        await self._request("DELETE", f"/buckets/{bucket_id}")

    async def update_bucket(self, bucket_id: str, public_permissions: List[str], encryption_key: str) -> Bucket:
        body = await self._request(
            "PATCH",
            f"/buckets/{bucket_id}",
            json={"publicPermissions": public_permissions, "encryptionKey": encryption_key},
        )
        return _parse(Bucket.from_dict, body or {}, BridgeError, "bucket")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason_phrase
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase


def _parse(parse: Callable[[Any], T], body: Any, error_cls: Type[BridgeBoxError], what: str) -> T:
    """Run ``parse`` over a decoded reply, turning a malformed shape into ``error_cls``."""
    try:
        return parse(body)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise error_cls(f"malformed {what} from bridge: {e!r}") from e
