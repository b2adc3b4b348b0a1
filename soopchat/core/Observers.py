from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Dict, List, Union

from soopchat.shared.events import EventKind
from soopchat.shared.log import get_logger

logger = get_logger(__name__)

# Observers may be plain functions or coroutine functions
Observer = Callable[[Any], Union[None, Awaitable[None]]]


class ObserverRegistry:
    """
    Subscribers per event kind. Every registered observer is kept and
    called in registration order; emitting awaits each one before the next.
    """

    def __init__(self) -> None:
        self.handlers: Dict[EventKind, List[Observer]] = {kind: [] for kind in EventKind}

    def on(self, kind: EventKind, handler: Observer) -> Observer:
        self.handlers[EventKind(kind)].append(handler)
        return handler

    def off(self, kind: EventKind, handler: Observer) -> None:
        try:
            self.handlers[EventKind(kind)].remove(handler)
        except ValueError:
            pass

    def has(self, kind: EventKind) -> bool:
        return bool(self.handlers[kind])

    async def emit(self, kind: EventKind, event: Any) -> None:
        for handler in list(self.handlers[kind]):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # A failing observer must not take the session down with it
                logger.exception("Observer %r for %s raised", handler, kind.value)

    async def emit_error(self, error: BaseException) -> None:
        await self.emit(EventKind.ERROR, error)
