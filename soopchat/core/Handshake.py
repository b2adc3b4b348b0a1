from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Sequence, Tuple

from soopchat.core.Observers import ObserverRegistry
from soopchat.core.ServiceCodes import HandshakePhase, HandshakeState, ServiceCode
from soopchat.shared.errors import HandshakeError, TransportError
from soopchat.shared.events import ConnectResult, EventKind
from soopchat.shared.frame import encode, encode_info_block, encode_log_block
from soopchat.shared.log import get_logger
from soopchat.state import SessionState

logger = get_logger(__name__)

SendFrame = Callable[[bytes], Awaitable[None]]
KeyValues = Sequence[Tuple[str, Any]]

# Viewer log sent with JOIN, in wire order
DEFAULT_LOG: KeyValues = (
    ("set_bps", 8000),
    ("view_bps", 1000),
    ("quality", "normal"),
    ("geo_cc", "KR"),
    ("geo_rc", 41),
    ("acpt_lang", "ko_KR"),
    ("svc_lang", "ko_KR"),
    ("subscribe", 0),
    ("lowlatency", 0),
    ("mode", "landing"),
)


def default_info(channel_password: str) -> KeyValues:
    """JOIN info block; `pwd` disappears when the channel has no password"""
    return (
        ("pwd", channel_password),
        ("auth_info", "NULL"),
        ("pver", 2),
        ("access_system", "html5"),
    )


# Allowed predecessor state for each phase
_REQUIRED_STATE: Dict[HandshakePhase, HandshakeState] = {
    HandshakePhase.LOGIN: HandshakeState.UNSTARTED,
    HandshakePhase.JOIN: HandshakeState.LOGIN_SENT,
}

_SENT_STATE: Dict[HandshakePhase, HandshakeState] = {
    HandshakePhase.LOGIN: HandshakeState.LOGIN_SENT,
    HandshakePhase.JOIN: HandshakeState.JOIN_SENT,
}


class HandshakeController:
    """
    Sequences the LOGIN and JOIN frames.

    Both frames are built by `prepare()` before any I/O and sent verbatim
    later. JOIN may only go out once the dispatcher has seen the server's
    LOGIN frame, which it signals by calling `execute(HandshakePhase.JOIN)`.
    States only move forward: UNSTARTED -> LOGIN_SENT -> JOIN_SENT -> JOINED,
    or to FAILED.
    """

    def __init__(
        self,
        state: SessionState,
        flag: str,
        send: SendFrame,
        observers: ObserverRegistry,
        log_values: KeyValues = DEFAULT_LOG,
    ) -> None:
        self.session = state
        self.flag = flag
        self.send = send
        self.observers = observers
        self.log_values = log_values
        self.frames: Dict[HandshakePhase, bytes] = {}

    @property
    def state(self) -> HandshakeState:
        return self.session.handshake

    @property
    def awaiting_login_ack(self) -> bool:
        return self.state == HandshakeState.LOGIN_SENT

    def build_login_frame(self) -> bytes:
        return encode(ServiceCode.LOGIN, (self.session.auth_ticket, "", self.flag))

    def build_join_frame(self) -> bytes:
        blocks = encode_log_block(self.log_values) + encode_info_block(default_info(self.session.channel_password))
        return encode(
            ServiceCode.JOINCH,
            (self.session.chat_room, self.session.fan_ticket, "0", "", blocks),
        )

    def prepare(self) -> None:
        """Build and cache both handshake frames."""
        if self.state != HandshakeState.UNSTARTED:
            raise HandshakeError(f"Cannot prepare handshake in state {self.state.value}")
        self.frames[HandshakePhase.LOGIN] = self.build_login_frame()
        self.frames[HandshakePhase.JOIN] = self.build_join_frame()

    async def execute(self, phase: HandshakePhase) -> None:
        """
        Transmit the cached frame for `phase`.

        Raises HandshakeError when called out of order. A failed write moves
        the controller to FAILED, is reported to the error observers and
        raised as a fatal TransportError.
        """
        phase = HandshakePhase(phase)
        if phase not in self.frames:
            raise HandshakeError("Handshake frames were not prepared")
        required = _REQUIRED_STATE[phase]
        if self.state != required:
            raise HandshakeError(
                f"Cannot send {phase.name} in state {self.state.value} (requires {required.value})"
            )

        self.session.handshake = _SENT_STATE[phase]
        try:
            await self.send(self.frames[phase])
        except TransportError as e:
            self.session.handshake = HandshakeState.FAILED
            error = TransportError(f"{phase.name} handshake failed: {e}", fatal=True)
            logger.error("%s", error, extra={"room": self.session.chat_room})
            await self.observers.emit(EventKind.CONNECT, ConnectResult(success=False))
            await self.observers.emit_error(error)
            raise error from e

        logger.debug("Sent %s handshake", phase.name, extra={"room": self.session.chat_room})
        if phase == HandshakePhase.JOIN:
            self.session.handshake = HandshakeState.JOINED
            logger.info("Joined chat room %s", self.session.chat_room)
            await self.observers.emit(EventKind.CONNECT, ConnectResult(success=True))
