from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple


class EventKind(str, Enum):
    """Observer registration points, one per event kind."""

    ERROR = "error"
    CONNECT = "connect"
    LOGIN = "login"
    RAW_MESSAGE = "raw_message"
    CHAT_MESSAGE = "chat_message"
    ROSTER_UPDATE = "roster_update"
    BALLOON = "balloon"
    AD_BALLOON = "ad_balloon"
    SUBSCRIPTION = "subscription"
    ADMIN_NOTICE = "admin_notice"
    MISSION = "mission"


@dataclass(frozen=True)
class User:
    id: str
    name: str


@dataclass(frozen=True)
class ChatMessage:
    user: User
    text: str
    flags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RosterEntry:
    user: User
    joined: bool
    flags: str = ""


@dataclass(frozen=True)
class RosterUpdate:
    entries: Tuple[RosterEntry, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Balloon:
    user: User
    count: int
    streamer_id: str = ""


@dataclass(frozen=True)
class AdBalloon:
    user: User
    count: int
    streamer_id: str = ""


@dataclass(frozen=True)
class Subscription:
    """New subscriptions carry the tier, renewals the month count."""
    user: User
    tier_or_months: int
    is_renewal: bool


@dataclass(frozen=True)
class MissionDonation:
    user: User
    count: int
    title: str = ""
    kind: str = ""


@dataclass(frozen=True)
class AdminNotice:
    text: str


@dataclass(frozen=True)
class RawMessage:
    text: str


@dataclass(frozen=True)
class ConnectResult:
    """`acknowledged` is False when JOIN was sent, True when the server answered it."""
    success: bool
    acknowledged: bool = False


@dataclass(frozen=True)
class LoginResult:
    success: bool
