"""HTTP adapters for the channel directory and the identity service."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from soopchat.config import ClientSettings
from soopchat.shared.errors import AuthenticationError, DirectoryError
from soopchat.shared.log import get_logger
from soopchat.shared.utils import socket_url, to_int
from soopchat.state import Identifier, SessionState

logger = get_logger(__name__)

# Cookie the identity service issues on a successful login
TICKET_COOKIE = "PdboxTicket"

# CHANNEL.RESULT value for channels that only members may watch
RESULT_LOGIN_REQUIRED = -6


class SoopApi:
    """
    Directory and identity lookups sharing one httpx client, so the login
    cookie is sent along with the directory request that follows it.
    """

    def __init__(self, settings: ClientSettings, client: Optional[httpx.AsyncClient] = None) -> None:
        self.settings = settings
        self._owns_client = client is None
        self.http = client or httpx.AsyncClient(
            timeout=settings.http_timeout,
            headers={"User-Agent": settings.user_agent},
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http.aclose()

    async def _post_json(self, url: str, data: Dict[str, str], error: type) -> Dict[str, Any]:
        try:
            resp = await self.http.post(url, data=data)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            raise error(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            raise error(f"Invalid JSON from {url}: {e}") from e
        if not isinstance(body, dict):
            raise error(f"Unexpected response from {url}")
        return body

    async def login(self, identifier: Identifier, state: SessionState) -> None:
        """Exchange credentials for an authentication ticket stored on `state`."""
        body = await self._post_json(
            self.settings.login_url,
            {
                "szWork": "login",
                "szType": "json",
                "szUid": identifier.id,
                "szPassword": identifier.password,
            },
            AuthenticationError,
        )

        result = body.get("RESULT")
        if not (result is True or (to_int(result) or 0) > 0):
            raise AuthenticationError(f"Login failed for {identifier.id} (RESULT={result!r})")

        state.auth_ticket = self.http.cookies.get(TICKET_COOKIE) or ""
        if not state.auth_ticket:
            logger.warning("Login accepted but no %s cookie was issued; chat sending stays disabled", TICKET_COOKIE)
        logger.info("Logged in as %s", identifier.id)

    async def resolve_channel(self, streamer_id: str, state: SessionState) -> None:
        """Resolve the chat socket URL, chat-room id and fan ticket for a streamer."""
        body = await self._post_json(
            self.settings.directory_url.format(streamer_id=streamer_id),
            {"bid": streamer_id, "player_type": "html5"},
            DirectoryError,
        )

        channel = body.get("CHANNEL")
        if not isinstance(channel, dict):
            raise DirectoryError(f"Directory answer for {streamer_id} has no CHANNEL section")
        if to_int(channel.get("RESULT")) == RESULT_LOGIN_REQUIRED:
            raise DirectoryError("login required")

        domain = str(channel.get("CHDOMAIN") or "").lower()
        port = to_int(channel.get("CHPT"))
        chat_room = str(channel.get("CHATNO") or "")
        if not domain or port is None or not chat_room:
            raise DirectoryError(f"Streamer {streamer_id} is not broadcasting")

        try:
            # The websocket listens one port above the advertised chat port
            state.socket_url = socket_url(domain, port + 1)
        except ValueError as e:
            raise DirectoryError(str(e)) from e
        state.chat_room = chat_room
        state.fan_ticket = str(channel.get("FTK") or "")
        logger.info("Resolved %s to %s", streamer_id, state.socket_url, extra={"room": chat_room})
