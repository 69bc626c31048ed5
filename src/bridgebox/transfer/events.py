"""Push-style notifications layered over orchestrator results.

Orchestrators return TransferResult values; callers who prefer callbacks
register handlers here. Events: ``ready`` (data staged), ``done`` (result)
and ``error`` (result). A failing handler is logged and never turns into a
transfer failure.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

Handler = Callable[..., None]


class EventEmitter:
    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> "EventEmitter":
        self._handlers[event].append(handler)
        return self

    def off(self, event: str, handler: Handler) -> None:
        try:
            self._handlers[event].remove(handler)
        except ValueError:
            pass

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def emit(self, event: str, *args) -> bool:
        handlers = list(self._handlers.get(event, ()))
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception("handler for %r raised", event)
        return bool(handlers)
