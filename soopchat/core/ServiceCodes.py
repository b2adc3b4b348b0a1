from __future__ import annotations

from enum import Enum, IntEnum


class ServiceCode(IntEnum):
    """Chat protocol service codes (numeric frame tags)."""

    # Session control
    KEEPALIVE = 0                   # Periodic no-op, outbound only
    LOGIN = 1                       # Login announcement / server acknowledgement
    JOINCH = 2                      # Channel join request / acknowledgement

    # Channel traffic
    CHUSER = 4                      # Roster join/leave
    CHATMESG = 5                    # Chat message (also used to send chat)
    SENDBALLOON = 18                # Balloon donation
    SENDADMINNOTICE = 58            # Administrator notice
    ADCON_EFFECT = 87               # Ad-balloon donation
    FOLLOW_ITEM = 91                # New subscription
    FOLLOW_ITEM_EFFECT = 93         # Renewed subscription
    MISSION = 121                   # Challenge mission donation

    @classmethod
    def is_valid(cls, value: int) -> bool:
        """Check if an integer is a known service code."""
        try:
            cls(value)
            return True
        except ValueError:
            return False


class HandshakePhase(IntEnum):
    """Index of a frame in the handshake cache; equals its service code."""
    LOGIN = 1
    JOIN = 2


class HandshakeState(str, Enum):
    UNSTARTED = "unstarted"
    LOGIN_SENT = "login_sent"
    JOIN_SENT = "join_sent"
    JOINED = "joined"
    FAILED = "failed"

