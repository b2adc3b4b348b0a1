from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Sequence, Tuple

from soopchat.core.ServiceCodes import ServiceCode
from soopchat.shared.errors import ParseError
from soopchat.shared.events import (
    AdBalloon,
    AdminNotice,
    Balloon,
    ChatMessage,
    EventKind,
    MissionDonation,
    RosterEntry,
    RosterUpdate,
    Subscription,
    User,
)
from soopchat.shared.frame import Frame
from soopchat.shared.utils import to_int

# Type alias for parser functions
EventParser = Callable[[Frame], Any]

# Chat bodies the server echoes back as control acknowledgements
_CONTROL_TEXTS = {"-1", "1"}

ROSTER_JOIN = "1"
ROSTER_LEAVE = "-1"


def _require(fields: Sequence[str], count: int, what: str) -> None:
    if len(fields) < count:
        raise ParseError(f"{what}: expected at least {count} fields, got {len(fields)}")


def _require_int(value: str, what: str) -> int:
    number = to_int(value)
    if number is None:
        raise ParseError(f"{what}: not a number: {value!r}")
    return number


def _user(user_id: str, name: str, what: str) -> User:
    if not user_id:
        raise ParseError(f"{what}: missing user id")
    return User(id=user_id, name=name)


class EventParsers:
    """
    One pure parser per service code. Each takes a decoded Frame and returns
    a typed event or raises ParseError; nothing else escapes.

    Field positions are counted after the leading separator, so index 0 is
    the first field of the body.
    """

    @staticmethod
    def parse_join_ack(frame: Frame) -> bool:
        """[0] chat-room id on success, a negative result code on failure"""
        fields = frame.text_fields()
        _require(fields, 1, "join ack")
        return _require_int(fields[0], "join ack") >= 0

    @staticmethod
    def parse_roster(frame: Frame) -> RosterUpdate:
        """
        Two shapes share the CHUSER code:
        - a single diff: status (1 join / -1 leave), user id, nickname, flags
        - a snapshot sent on join: repeated (user id, nickname, flags) triples
        """
        fields = frame.text_fields()
        _require(fields, 3, "roster")

        if fields[0] in (ROSTER_JOIN, ROSTER_LEAVE):
            flags = fields[3] if len(fields) > 3 else ""
            entry = RosterEntry(
                user=_user(fields[1], fields[2], "roster diff"),
                joined=fields[0] == ROSTER_JOIN,
                flags=flags,
            )
            return RosterUpdate(entries=(entry,))

        if len(fields) % 3 != 0:
            raise ParseError(f"roster snapshot: {len(fields)} fields is not a multiple of 3")
        entries: List[RosterEntry] = []
        for i in range(0, len(fields), 3):
            user_id, nickname, flags = fields[i:i + 3]
            entries.append(RosterEntry(user=_user(user_id, nickname, "roster snapshot"), joined=True, flags=flags))
        return RosterUpdate(entries=tuple(entries))

    @staticmethod
    def parse_chat(frame: Frame) -> ChatMessage:
        """[0] text, [1] user id, [5] nickname, [6] flags joined with '|'"""
        fields = frame.text_fields()
        _require(fields, 6, "chat")
        text = fields[0]
        if text in _CONTROL_TEXTS:
            raise ParseError(f"chat: control text {text!r} is not a message")
        flags: Tuple[str, ...] = tuple(fields[6].split("|")) if len(fields) > 6 and fields[6] else ()
        return ChatMessage(user=_user(fields[1], fields[5], "chat"), text=text, flags=flags)

    @staticmethod
    def parse_balloon(frame: Frame) -> Balloon:
        """[0] streamer id, [1] user id, [2] nickname, [3] count"""
        fields = frame.text_fields()
        _require(fields, 4, "balloon")
        return Balloon(
            user=_user(fields[1], fields[2], "balloon"),
            count=_require_int(fields[3], "balloon count"),
            streamer_id=fields[0],
        )

    @staticmethod
    def parse_ad_balloon(frame: Frame) -> AdBalloon:
        """[0] streamer id, [1] user id, [2] nickname, [9] count"""
        fields = frame.text_fields()
        _require(fields, 10, "ad balloon")
        return AdBalloon(
            user=_user(fields[1], fields[2], "ad balloon"),
            count=_require_int(fields[9], "ad balloon count"),
            streamer_id=fields[0],
        )

    @staticmethod
    def parse_subscription(frame: Frame) -> Subscription:
        """
        FOLLOW_ITEM (new) and FOLLOW_ITEM_EFFECT (renewal) share a layout:
        [0] streamer id, [1] user id, [2] nickname, [3] tier or month count.
        """
        fields = frame.text_fields()
        _require(fields, 4, "subscription")
        return Subscription(
            user=_user(fields[1], fields[2], "subscription"),
            tier_or_months=_require_int(fields[3], "subscription tier"),
            is_renewal=frame.service_code == ServiceCode.FOLLOW_ITEM_EFFECT,
        )

    @staticmethod
    def parse_admin_notice(frame: Frame) -> AdminNotice:
        fields = frame.text_fields()
        _require(fields, 1, "admin notice")
        if not fields[0]:
            raise ParseError("admin notice: empty text")
        return AdminNotice(text=fields[0])

    @staticmethod
    def parse_mission(frame: Frame) -> MissionDonation:
        """[0] JSON document describing the mission donation"""
        fields = frame.text_fields()
        _require(fields, 1, "mission")
        try:
            data = json.loads(fields[0])
        except json.JSONDecodeError as e:
            raise ParseError(f"mission: invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ParseError("mission: payload is not an object")

        count = to_int(data.get("gift_count"))
        if count is None:
            raise ParseError(f"mission: invalid gift_count {data.get('gift_count')!r}")
        return MissionDonation(
            user=_user(str(data.get("user_id") or ""), str(data.get("user_nick") or ""), "mission"),
            count=count,
            title=str(data.get("title") or ""),
            kind=str(data.get("type") or ""),
        )


# Channel event parsers keyed by service code, with the event kind they feed
PARSER_REGISTRY: Dict[ServiceCode, Tuple[EventKind, EventParser]] = {
    ServiceCode.CHUSER: (EventKind.ROSTER_UPDATE, EventParsers.parse_roster),
    ServiceCode.CHATMESG: (EventKind.CHAT_MESSAGE, EventParsers.parse_chat),
    ServiceCode.SENDBALLOON: (EventKind.BALLOON, EventParsers.parse_balloon),
    ServiceCode.ADCON_EFFECT: (EventKind.AD_BALLOON, EventParsers.parse_ad_balloon),
    ServiceCode.FOLLOW_ITEM: (EventKind.SUBSCRIPTION, EventParsers.parse_subscription),
    ServiceCode.FOLLOW_ITEM_EFFECT: (EventKind.SUBSCRIPTION, EventParsers.parse_subscription),
    ServiceCode.SENDADMINNOTICE: (EventKind.ADMIN_NOTICE, EventParsers.parse_admin_notice),
    ServiceCode.MISSION: (EventKind.MISSION, EventParsers.parse_mission),
}
