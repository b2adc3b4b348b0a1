#!/usr/bin/env python3
"""
soopchat client

Composes the directory/identity lookups, the handshake controller, the
connection supervisor and the message dispatcher behind one object:

    client = SoopChatClient(Token(streamer_id="abc"))
    client.on_chat_message(lambda m: print(m.user.name, m.text))
    await client.connect()
"""

from __future__ import annotations

from typing import Any, Callable, Optional

import httpx

from soopchat.api import SoopApi
from soopchat.config import ClientSettings
from soopchat.core.ConnectionSupervisor import ConnectionSupervisor
from soopchat.core.Handshake import HandshakeController
from soopchat.core.MessageDispatcher import MessageDispatcher
from soopchat.core.Observers import Observer, ObserverRegistry
from soopchat.core.ServiceCodes import HandshakePhase, ServiceCode
from soopchat.shared.errors import (
    AuthenticationError,
    ConfigurationError,
    DirectoryError,
    InvalidMessageError,
    TransportError,
)
from soopchat.shared.events import EventKind, LoginResult
from soopchat.shared.frame import encode
from soopchat.shared.log import get_logger
from soopchat.state import SessionState, Token

logger = get_logger(__name__)


class SoopChatClient:

    def __init__(
        self,
        token: Token,
        settings: Optional[ClientSettings] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        connector: Optional[Callable[..., Any]] = None,
    ) -> None:
        if not token.streamer_id:
            raise ConfigurationError("streamer_id is missing from token")

        self.token = token
        self.settings = settings or ClientSettings()
        self.state = SessionState(channel_password=token.channel_password)
        self.observers = ObserverRegistry()
        self.api = SoopApi(self.settings, client=http_client)
        self.supervisor: Optional[ConnectionSupervisor] = None
        self._connector = connector

    # ========================================
    #           OBSERVER REGISTRATION
    # ========================================

    def on(self, kind: EventKind, handler: Observer) -> Observer:
        """Subscribe `handler` to `kind`; several subscribers per kind are allowed."""
        return self.observers.on(kind, handler)

    def off(self, kind: EventKind, handler: Observer) -> None:
        self.observers.off(kind, handler)

    def on_error(self, handler: Observer) -> Observer:
        return self.on(EventKind.ERROR, handler)

    def on_connect(self, handler: Observer) -> Observer:
        return self.on(EventKind.CONNECT, handler)

    def on_login(self, handler: Observer) -> Observer:
        return self.on(EventKind.LOGIN, handler)

    def on_raw_message(self, handler: Observer) -> Observer:
        return self.on(EventKind.RAW_MESSAGE, handler)

    def on_chat_message(self, handler: Observer) -> Observer:
        return self.on(EventKind.CHAT_MESSAGE, handler)

    def on_roster_update(self, handler: Observer) -> Observer:
        return self.on(EventKind.ROSTER_UPDATE, handler)

    def on_balloon(self, handler: Observer) -> Observer:
        return self.on(EventKind.BALLOON, handler)

    def on_ad_balloon(self, handler: Observer) -> Observer:
        return self.on(EventKind.AD_BALLOON, handler)

    def on_subscription(self, handler: Observer) -> Observer:
        return self.on(EventKind.SUBSCRIPTION, handler)

    def on_admin_notice(self, handler: Observer) -> Observer:
        return self.on(EventKind.ADMIN_NOTICE, handler)

    def on_mission(self, handler: Observer) -> Observer:
        return self.on(EventKind.MISSION, handler)

    # ========================================
    #           SESSION
    # ========================================

    async def connect(self, password: Optional[str] = None) -> None:
        """
        Run one chat session and return when it ends.

        Steps: optional identity login, directory lookup, socket open,
        LOGIN handshake, then dispatching until the socket closes. Fatal
        errors are reported to the error observers and raised; the socket is
        closed on every exit path.
        """
        # Each session starts from fresh state; nothing carries over from a previous one
        self.state = SessionState(
            channel_password=self.token.channel_password if password is None else password
        )
        self.supervisor = None

        if self.token.identifier.is_complete():
            try:
                await self.api.login(self.token.identifier, self.state)
            except AuthenticationError as e:
                logger.error("Login failed: %s", e)
                await self.observers.emit(EventKind.LOGIN, LoginResult(success=False))
                await self.observers.emit_error(e)
                raise
            await self.observers.emit(EventKind.LOGIN, LoginResult(success=True))

        try:
            await self.api.resolve_channel(self.token.streamer_id, self.state)
        except DirectoryError as e:
            logger.error("Directory lookup failed: %s", e, extra={"streamer": self.token.streamer_id})
            await self.observers.emit_error(e)
            raise

        supervisor = ConnectionSupervisor(self.settings, connector=self._connector)
        self.supervisor = supervisor
        handshake = HandshakeController(self.state, self.token.flag, supervisor.send, self.observers)
        handshake.prepare()
        dispatcher = MessageDispatcher(
            supervisor.queue,
            handshake,
            self.observers,
            is_closing=lambda: supervisor.closing,
        )

        try:
            try:
                await supervisor.open(self.state.socket_url)
            except TransportError as e:
                logger.error("%s", e)
                await self.observers.emit_error(e)
                raise
            supervisor.start()
            await handshake.execute(HandshakePhase.LOGIN)
            await dispatcher.run()
        finally:
            await supervisor.close()
        logger.info("Session ended", extra={"streamer": self.token.streamer_id})

    async def send_chat_message(self, message: str) -> None:
        """
        Send a chat message to the joined channel.

        Raises AuthenticationError without touching the socket when no
        ticket is held, InvalidMessageError when the text contains the field
        separator, and TransportError when the write fails.
        """
        if not self.state.auth_ticket:
            raise AuthenticationError("cannot send chat messages without logging in")
        try:
            data = encode(ServiceCode.CHATMESG, (message, "0"))
        except ValueError as e:
            raise InvalidMessageError(f"cannot send chat message: {e}") from e
        if self.supervisor is None or not self.supervisor.connected:
            raise TransportError("not connected to a chat server")
        await self.supervisor.send(data)

    async def close(self) -> None:
        """End the current session; `connect()` then returns normally."""
        if self.supervisor is not None:
            await self.supervisor.close()

    async def aclose(self) -> None:
        await self.close()
        await self.api.aclose()

    async def __aenter__(self) -> "SoopChatClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
