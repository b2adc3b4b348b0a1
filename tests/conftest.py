import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import websockets
import websockets.exceptions

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from soopchat.core.ServiceCodes import ServiceCode
from soopchat.shared.frame import Frame, encode


CHANNEL = {
    "RESULT": 1,
    "CHDOMAIN": "CHAT-1.sooplive.co.kr",
    "CHPT": "8001",
    "CHATNO": "1234",
    "FTK": "",
}

SOCKET_URL = "wss://chat-1.sooplive.co.kr:8002/Websocket"


def closed_ok() -> websockets.exceptions.ConnectionClosedOK:
    return websockets.exceptions.ConnectionClosedOK(None, None)


def closed_error() -> websockets.exceptions.ConnectionClosedError:
    return websockets.exceptions.ConnectionClosedError(None, None)


class DummyWebSocket:
    """
    Stands in for a websockets connection. Items put on `inbound` are
    returned by recv() in order; exceptions among them are raised instead.
    """

    def __init__(self, inbound: Any = ()) -> None:
        self.sent_messages: List[bytes] = []
        self.closed = False
        self.fail_sends = False
        self.inbound: asyncio.Queue = asyncio.Queue()
        for item in inbound:
            self.inbound.put_nowait(item)

    async def send(self, data: bytes) -> None:
        if self.fail_sends:
            raise closed_error()
        self.sent_messages.append(data)

    async def recv(self) -> Any:
        item = await self.inbound.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.inbound.put_nowait(closed_ok())

    def sent_codes(self) -> List[int]:
        return [Frame.decode(m).service_code for m in self.sent_messages]


class ChatServerStub(DummyWebSocket):
    """Answers LOGIN with a LOGIN frame and JOIN with a join acknowledgement, then plays `after_join`."""

    def __init__(self, chat_room: str = "1234", after_join: Any = ()) -> None:
        super().__init__()
        self.chat_room = chat_room
        self.after_join = list(after_join)

    async def send(self, data: bytes) -> None:
        await super().send(data)
        code = Frame.decode(data).service_code
        if code == ServiceCode.LOGIN:
            self.inbound.put_nowait(encode(ServiceCode.LOGIN, ("", "", "16")))
        elif code == ServiceCode.JOINCH:
            self.inbound.put_nowait(encode(ServiceCode.JOINCH, (self.chat_room, "", "0")))
            for item in self.after_join:
                self.inbound.put_nowait(item)


class RecordingConnector:
    """Replacement for websockets.connect handing out one prepared socket."""

    def __init__(self, websocket: DummyWebSocket) -> None:
        self.websocket = websocket
        self.urls: List[str] = []
        self.options: List[Dict[str, Any]] = []

    async def __call__(self, url: str, **options: Any) -> DummyWebSocket:
        self.urls.append(url)
        self.options.append(options)
        return self.websocket


def soop_transport(
    channel: Optional[Dict[str, Any]] = None,
    login_result: Any = 1,
    ticket: str = "TICKET",
) -> httpx.MockTransport:
    """Fake directory and identity services."""
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.host == "login.sooplive.co.kr":
            headers = {"set-cookie": f"PdboxTicket={ticket}; Path=/"} if ticket else {}
            return httpx.Response(200, json={"RESULT": login_result}, headers=headers)
        return httpx.Response(200, json={"CHANNEL": CHANNEL if channel is None else channel})

    transport = httpx.MockTransport(handler)
    transport.requests = requests  # type: ignore[attr-defined]
    return transport
