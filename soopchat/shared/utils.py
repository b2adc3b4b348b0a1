"""
Helpers used when reading values handed back by the directory service and
positional fields out of frame bodies.
"""
from __future__ import annotations
import re
from typing import Any, Optional

# ========================================
#           INPUT VALIDATION HELPERS
# ========================================

_HOSTNAME_RE = re.compile(r'^[A-Za-z0-9.-]+$')

def to_int(value: Any) -> Optional[int]:
    """
    Lenient integer conversion: returns None instead of raising.
    Accepts ints, digit strings with an optional sign, and bytes.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="replace")
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None

def is_hostname(s: str) -> bool:
    """True for a non-empty DNS name or dotted IPv4 address."""
    return bool(s) and bool(_HOSTNAME_RE.fullmatch(s)) and not s.startswith(('.', '-'))

def is_hostport(s: str) -> bool:
    """
    Accepts 'hostname:port' or 'A.B.C.D:port'.

    Validates that:
    - Hostname is a plausible DNS name or IPv4 address
    - Port is a valid integer between 1 and 65535
    """
    try:
        if ':' not in s:
            return False
        host, port_s = s.rsplit(':', 1)
        if not is_hostname(host):
            return False
        port = int(port_s)
        return 0 < port <= 65535
    except ValueError:
        return False

def socket_url(host: str, port: int) -> str:
    """Chat websocket endpoint for a resolved chat server."""
    if not is_hostport(f"{host}:{port}"):
        raise ValueError(f"Invalid chat server address: {host}:{port}")
    return f"wss://{host}:{port}/Websocket"
