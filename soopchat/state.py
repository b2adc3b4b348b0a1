from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

from soopchat.core.ServiceCodes import HandshakeState

DEFAULT_FLAG = "16"


@dataclass(frozen=True)
class Identifier:
    id: str = ""
    password: str = ""

    def is_complete(self) -> bool:
        return bool(self.id) and bool(self.password)


@dataclass(frozen=True)
class Token:
    """Input to a chat session. Only `streamer_id` is required."""
    streamer_id: str
    identifier: Identifier = field(default_factory=Identifier)
    flag: str = DEFAULT_FLAG
    channel_password: str = ""


@dataclass
class SessionState:
    """Per-session values resolved by the directory/identity lookups and the handshake."""
    socket_url: Optional[str] = None
    chat_room: str = ""
    auth_ticket: str = ""
    fan_ticket: str = ""
    channel_password: str = ""
    handshake: HandshakeState = HandshakeState.UNSTARTED

    def is_resolved(self) -> bool:
        return bool(self.socket_url) and bool(self.chat_room)
