"""
Wire layout of one frame:

    ESC TAB | service code (4 digits) | body length (6 digits) | option (2 digits) | body

The body is a run of positional fields, each introduced by FIELD_SEP, closed by
one more FIELD_SEP. Field widths of the header come from captured traffic and
live only in the constants below.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterable, List, Sequence, Tuple, Union

from soopchat.shared.errors import ParseError


ESCAPE = b"\x1b\t"
SERVICE_CODE_WIDTH = 4
BODY_LENGTH_WIDTH = 6
OPTION_WIDTH = 2
HEADER_SIZE = len(ESCAPE) + SERVICE_CODE_WIDTH + BODY_LENGTH_WIDTH + OPTION_WIDTH

FIELD_SEP = b"\x0c"

# Separators used by the JOIN frame's nested "info"/"log" blocks
KV_SEP = b"\x11"
PAIR_SEP = b"\x12"
LOG_MARK = b"\x06"

Field = Union[str, bytes]


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


def make_header(service_code: int, body_length: int, option: int = 0) -> bytes:
    if not 0 <= service_code < 10 ** SERVICE_CODE_WIDTH:
        raise ValueError(f"service code out of range: {service_code}")
    if not 0 <= body_length < 10 ** BODY_LENGTH_WIDTH:
        raise ValueError(f"body too large: {body_length} bytes")
    return (
        ESCAPE
        + f"{service_code:0{SERVICE_CODE_WIDTH}d}".encode("ascii")
        + f"{body_length:0{BODY_LENGTH_WIDTH}d}".encode("ascii")
        + f"{option:0{OPTION_WIDTH}d}".encode("ascii")
    )


def make_body(fields: Iterable[Field]) -> bytes:
    """Raises ValueError for a field that contains FIELD_SEP, since it would split on the wire."""
    parts = []
    for index, field in enumerate(fields):
        data = _to_bytes(field)
        if FIELD_SEP in data:
            raise ValueError(f"field {index} contains the field separator")
        parts.append(FIELD_SEP + data)
    return b"".join(parts) + FIELD_SEP


def encode(service_code: int, fields: Iterable[Field] = (), option: int = 0) -> bytes:
    """Build the wire bytes for one frame. Pure, no I/O."""
    body = make_body(fields)
    return make_header(service_code, len(body), option) + body


def split_fields(body: bytes) -> List[bytes]:
    """Recover the positional fields of a body built by `make_body`."""
    if body == FIELD_SEP or not body:
        return []
    if body.startswith(FIELD_SEP):
        body = body[len(FIELD_SEP):]
    if body.endswith(FIELD_SEP):
        body = body[:-len(FIELD_SEP)]
    return body.split(FIELD_SEP)


def _read_number(segment: bytes, name: str) -> int:
    if not segment.isdigit():
        raise ParseError(f"Invalid {name} in frame header: {segment!r}")
    return int(segment)


@dataclass(frozen=True)
class Frame:
    service_code: int
    body: bytes
    option: int = 0

    @classmethod
    def decode(cls, data: bytes) -> 'Frame':
        """Parse raw socket bytes into a Frame, validating the header"""
        if len(data) < HEADER_SIZE:
            raise ParseError(f"Frame shorter than header: {len(data)} bytes")
        if not data.startswith(ESCAPE):
            raise ParseError(f"Missing escape marker: {data[:len(ESCAPE)]!r}")

        pos = len(ESCAPE)
        service_code = _read_number(data[pos:pos + SERVICE_CODE_WIDTH], "service code")
        pos += SERVICE_CODE_WIDTH
        length = _read_number(data[pos:pos + BODY_LENGTH_WIDTH], "body length")
        pos += BODY_LENGTH_WIDTH
        option = _read_number(data[pos:pos + OPTION_WIDTH], "option")

        body = data[HEADER_SIZE:]
        if len(body) != length:
            raise ParseError(f"Declared body length {length} does not match actual {len(body)}")

        return cls(service_code=service_code, body=body, option=option)

    def encode(self) -> bytes:
        return make_header(self.service_code, len(self.body), self.option) + self.body

    def fields(self) -> List[bytes]:
        return split_fields(self.body)

    def text_fields(self) -> List[str]:
        return [f.decode("utf-8", errors="replace") for f in self.fields()]


def decode(data: bytes) -> Tuple[int, bytes]:
    """Return (service code, body) of raw frame bytes; raises ParseError."""
    frame = Frame.decode(data)
    return frame.service_code, frame.body


# ========================================
#           NESTED KEY/VALUE BLOCKS
# ========================================

def _is_set(value: Any) -> bool:
    return value is not None and value != "" and value != 0 and value is not False


def encode_info_block(pairs: Sequence[Tuple[str, Any]]) -> bytes:
    """key KV_SEP value PAIR_SEP for every pair whose value is set"""
    return b"".join(
        _to_bytes(key) + KV_SEP + _to_bytes(value) + PAIR_SEP
        for key, value in pairs
        if _is_set(value)
    )


def encode_log_block(pairs: Sequence[Tuple[str, Any]]) -> bytes:
    """
    "log" KV_SEP, then an `&`-joined query string whose tokens are wrapped in
    LOG_MARK bytes, closed by PAIR_SEP. Unset values are omitted.
    """
    query = LOG_MARK + b"&" + b"".join(
        LOG_MARK + _to_bytes(key) + LOG_MARK + b"=" + LOG_MARK + _to_bytes(value) + LOG_MARK + b"&"
        for key, value in pairs
        if _is_set(value)
    )
    return b"log" + KV_SEP + query + PAIR_SEP
