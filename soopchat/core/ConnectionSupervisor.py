from __future__ import annotations

import asyncio
import ssl
from contextlib import suppress
from typing import Any, Callable, Optional, Set, Union

import websockets
import websockets.exceptions

from soopchat.config import ClientSettings
from soopchat.core.ServiceCodes import ServiceCode
from soopchat.shared.errors import TransportError
from soopchat.shared.frame import encode
from soopchat.shared.log import get_logger

logger = get_logger(__name__)


class _EndOfStream:
    def __repr__(self) -> str:
        return "END_OF_STREAM"


# Queued after the last frame of a session that ended cleanly
END_OF_STREAM = _EndOfStream()

QueueItem = Union[bytes, TransportError, _EndOfStream]

KEEPALIVE_FRAME = encode(ServiceCode.KEEPALIVE)


def _tls_context(verify: bool) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if not verify:
        # Chat servers present certificates that do not match their host names
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class ConnectionSupervisor:
    """
    Owns the chat websocket.

    Once started it runs two background tasks: a reader feeding inbound
    frames into `queue` (bounded, so a stalled consumer blocks the reader)
    and a keepalive sender. Writes from the handshake, the keepalive and
    chat sends go through `send`, which serializes them.
    """

    def __init__(self, settings: ClientSettings, connector: Optional[Callable[..., Any]] = None) -> None:
        self.settings = settings
        self.websocket: Optional[Any] = None
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=settings.queue_size)
        self._connect = connector or websockets.connect
        self._send_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._closing = False
        self._closed = False

    @property
    def connected(self) -> bool:
        return self.websocket is not None and not self._closing

    @property
    def closing(self) -> bool:
        return self._closing

    async def open(self, url: str) -> None:
        """Dial the chat server. Does nothing when a socket already exists."""
        if self.websocket is not None:
            return
        if self._closing:
            raise TransportError("Connection supervisor is closed", fatal=True)

        options = {
            "subprotocols": ["chat"],
            "open_timeout": self.settings.open_timeout,
            "ping_interval": None,  # the protocol has its own keepalive
            "max_size": None,
        }
        if url.startswith("wss://"):
            options["ssl"] = _tls_context(self.settings.verify_tls)

        logger.info("Connecting to %s", url)
        try:
            self.websocket = await self._connect(url, **options)
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            raise TransportError(f"Could not connect to {url}: {e}", fatal=True) from e

    def start(self) -> None:
        """Start the reader and keepalive tasks."""
        if self.websocket is None:
            raise TransportError("Cannot start before the socket is open", fatal=True)
        if self._tasks:
            return
        for coroutine in (self._read_loop(), self._keepalive_loop()):
            task = asyncio.create_task(coroutine)
            self._track_background_task(task)

    def _track_background_task(self, task: asyncio.Task) -> None:
        """Keep a strong reference to background tasks until completion."""
        self._tasks.add(task)

        def _discard(_task: asyncio.Task) -> None:
            self._tasks.discard(_task)

        task.add_done_callback(_discard)

    async def send(self, data: bytes) -> None:
        if self.websocket is None or self._closing:
            raise TransportError("Socket is not connected")
        async with self._send_lock:
            try:
                await self.websocket.send(data)
            except (OSError, websockets.exceptions.WebSocketException) as e:
                raise TransportError(f"Write failed: {e}") from e

    async def _read_loop(self) -> None:
        """
        Push inbound messages onto the queue in arrival order.

        A read failure is queued as a non-fatal TransportError and reading
        continues, up to `max_read_failures` consecutive failures; then a fatal
        error is queued and the loop stops. A normal close ends the stream.
        """
        assert self.websocket is not None
        failures = 0
        limit = self.settings.max_read_failures
        while True:
            try:
                message = await self.websocket.recv()
            except websockets.exceptions.ConnectionClosedOK:
                if not self._closing:
                    logger.info("Chat server closed the connection")
                    await self.queue.put(END_OF_STREAM)
                return
            except websockets.exceptions.ConnectionClosed as e:
                if not self._closing:
                    logger.warning("Connection lost: %s", e)
                    await self.queue.put(TransportError(f"Connection lost: {e}", fatal=True))
                return
            except Exception as e:
                if self._closing:
                    return
                failures += 1
                logger.warning("Read failed (%d/%d): %s", failures, limit, e)
                if failures >= limit:
                    await self.queue.put(
                        TransportError(f"Giving up after {failures} consecutive read failures: {e}", fatal=True)
                    )
                    return
                await self.queue.put(TransportError(f"Read failed: {e}"))
                continue

            failures = 0
            if isinstance(message, str):
                message = message.encode("utf-8")
            await self.queue.put(message)

    async def _keepalive_loop(self) -> None:
        """Send the keepalive frame every `keepalive_interval` seconds."""
        while True:
            await asyncio.sleep(self.settings.keepalive_interval)
            try:
                await self.send(KEEPALIVE_FRAME)
                logger.debug("Sent keepalive")
            except TransportError as e:
                if self._closing:
                    return
                logger.warning("Keepalive failed: %s", e)
                # Reported through the queue so observers stay on the dispatch task
                await self.queue.put(TransportError(f"Keepalive failed: {e}"))

    async def close(self) -> None:
        """Stop both tasks and close the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closing = True
        self._closed = True

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is current:
                continue
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        if self.websocket is not None:
            try:
                await self.websocket.close()
                logger.info("Connection closed")
            except (OSError, websockets.exceptions.WebSocketException) as e:
                logger.error(f"Error closing connection: {e}")

        # Wake a consumer blocked on an empty queue
        with suppress(asyncio.QueueFull):
            self.queue.put_nowait(END_OF_STREAM)
