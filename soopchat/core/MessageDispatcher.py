from __future__ import annotations

import asyncio
from typing import Callable

from soopchat.core.ConnectionSupervisor import END_OF_STREAM
from soopchat.core.EventParsers import PARSER_REGISTRY, EventParsers
from soopchat.core.Handshake import HandshakeController
from soopchat.core.Observers import ObserverRegistry
from soopchat.core.ServiceCodes import HandshakePhase, ServiceCode
from soopchat.shared.errors import ParseError, TransportError
from soopchat.shared.events import ConnectResult, EventKind, RawMessage
from soopchat.shared.frame import Frame
from soopchat.shared.log import get_logger

logger = get_logger(__name__)


class MessageDispatcher:
    """
    Single consumer of the frame queue.

    Frames are handled one at a time in arrival order, and this is the only
    place inbound events reach observers, so observers never overlap.
    """

    def __init__(
        self,
        queue: asyncio.Queue,
        handshake: HandshakeController,
        observers: ObserverRegistry,
        is_closing: Callable[[], bool] = lambda: False,
    ) -> None:
        self.queue = queue
        self.handshake = handshake
        self.observers = observers
        self.is_closing = is_closing

    async def run(self) -> None:
        """
        Drain the queue until the stream ends.

        Returns normally on end of stream or intentional close; raises the
        fatal TransportError that ended the session otherwise.
        """
        while not self.is_closing():
            item = await self.queue.get()
            try:
                if item is END_OF_STREAM:
                    return
                if isinstance(item, TransportError):
                    await self.observers.emit_error(item)
                    if item.fatal:
                        raise item
                    continue
                await self.dispatch(item)
            finally:
                self.queue.task_done()

    async def dispatch(self, raw: bytes) -> None:
        try:
            frame = Frame.decode(raw)
        except ParseError as e:
            logger.debug("Undecodable frame: %s", e)
            await self.observers.emit_error(e)
            return

        await self.observers.emit(
            EventKind.RAW_MESSAGE,
            RawMessage(text=repr(raw.decode("utf-8", errors="replace"))),
        )

        code = frame.service_code
        if code == ServiceCode.LOGIN:
            await self.handle_login(frame)
            return
        if code == ServiceCode.JOINCH:
            await self.handle_join(frame)
            return

        entry = PARSER_REGISTRY.get(code)
        if entry is None:
            if not ServiceCode.is_valid(code):
                logger.debug("Ignoring unknown service code %d", code)
            return
        kind, parser = entry
        if not self.observers.has(kind):
            return
        try:
            event = parser(frame)
        except ParseError as e:
            logger.debug("Dropping malformed frame: %s", e, extra={"svc": code})
            await self.observers.emit_error(ParseError(f"service code {code}: {e}"))
            return
        await self.observers.emit(kind, event)

    async def handle_login(self, frame: Frame) -> None:
        """The server acknowledged LOGIN: JOIN may go out now. Failures are fatal."""
        if not self.handshake.awaiting_login_ack:
            logger.debug("Ignoring LOGIN frame in handshake state %s", self.handshake.state.value)
            return
        await self.handshake.execute(HandshakePhase.JOIN)

    async def handle_join(self, frame: Frame) -> None:
        try:
            joined = EventParsers.parse_join_ack(frame)
        except ParseError as e:
            await self.observers.emit_error(ParseError(f"join acknowledgement: {e}"))
            return
        if not joined:
            logger.warning("Chat server refused the channel join")
        await self.observers.emit(EventKind.CONNECT, ConnectResult(success=joined, acknowledged=True))
