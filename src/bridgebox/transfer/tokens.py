"""Transfer token issuance and single-use tracking."""

from __future__ import annotations

import logging
from collections import OrderedDict

from bridgebox.core.exceptions import TokenReusedError
from bridgebox.core.models import Direction, Token
from bridgebox.network.bridge import BridgeClient

logger = logging.getLogger(__name__)

MAX_TRACKED = 1024


class TokenManager:
    """
    Requests scoped PUSH/PULL tokens and makes sure each is presented once.

    One bridge round trip per request and no automatic retry, since the bridge
    does not promise idempotent issuance. Tokens are never cached; every
    transfer asks for its own. Only the most recent ``max_tracked`` presented
    values are remembered; older tokens are still guarded by Token.consume.
    """

    def __init__(self, bridge: BridgeClient, max_tracked: int = MAX_TRACKED):
        self.bridge = bridge
        self.max_tracked = max_tracked
        self._presented: "OrderedDict[str, None]" = OrderedDict()

    async def request_token(self, bucket_id: str, direction: Direction) -> Token:
        token = await self.bridge.create_token(bucket_id, direction)
        logger.debug("%s token issued for bucket %s", direction.value, bucket_id)
        return token

    def present(self, token: Token) -> str:
        """Consume ``token`` and return the value to send to the bridge."""
        if token.value in self._presented:
            token.consumed = True
            raise TokenReusedError(f"token for bucket {token.bucket_id} was already presented")
        value = token.consume()
        self._presented[value] = None
        while len(self._presented) > self.max_tracked:
            self._presented.popitem(last=False)
        return value
