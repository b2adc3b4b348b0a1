import asyncio

import httpx
import pytest

from conftest import SOCKET_URL, ChatServerStub, RecordingConnector, soop_transport
from soopchat.client import SoopChatClient
from soopchat.core.ServiceCodes import HandshakeState, ServiceCode
from soopchat.shared.errors import (
    AuthenticationError,
    ConfigurationError,
    DirectoryError,
    InvalidMessageError,
    TransportError,
)
from soopchat.shared.events import ConnectResult, EventKind, LoginResult
from soopchat.shared.frame import Frame, encode
from soopchat.state import Identifier, Token


def make_client(server, token=None, **transport_kwargs):
    connector = RecordingConnector(server)
    http = httpx.AsyncClient(transport=soop_transport(**transport_kwargs))
    client = SoopChatClient(token or Token(streamer_id="abc"), http_client=http, connector=connector)
    return client, connector


def close_when_acknowledged(client, results):
    async def on_connect(result: ConnectResult) -> None:
        results.append(result)
        if result.acknowledged:
            await client.close()
    client.on_connect(on_connect)


def test_empty_streamer_id_is_rejected():
    with pytest.raises(ConfigurationError):
        SoopChatClient(Token(streamer_id=""))


@pytest.mark.parametrize("streamer_id", ["abc", "   ", "x"])
def test_any_non_empty_streamer_id_is_accepted(streamer_id):
    client = SoopChatClient(Token(streamer_id=streamer_id))
    assert client.supervisor is None
    assert client.state.handshake == HandshakeState.UNSTARTED


@pytest.mark.asyncio
async def test_anonymous_connect_runs_full_handshake():
    server = ChatServerStub(chat_room="1234")
    client, connector = make_client(server)
    results, logins = [], []
    close_when_acknowledged(client, results)
    client.on_login(logins.append)

    await asyncio.wait_for(client.connect(), timeout=2.0)

    assert logins == []
    assert connector.urls == [SOCKET_URL]
    assert server.sent_codes() == [ServiceCode.LOGIN, ServiceCode.JOINCH]
    assert Frame.decode(server.sent_messages[1]).fields()[0] == b"1234"
    assert results == [
        ConnectResult(success=True, acknowledged=False),
        ConnectResult(success=True, acknowledged=True),
    ]
    assert client.state.handshake == HandshakeState.JOINED
    assert server.closed


@pytest.mark.asyncio
async def test_channel_password_reaches_join_frame():
    server = ChatServerStub()
    client, _ = make_client(server)
    close_when_acknowledged(client, [])

    await asyncio.wait_for(client.connect(password="letmein"), timeout=2.0)
    assert b"pwd\x11letmein\x12" in server.sent_messages[1]


@pytest.mark.asyncio
async def test_login_required_aborts_before_socket():
    server = ChatServerStub()
    client, connector = make_client(server, channel={"RESULT": -6})
    errors = []
    client.on_error(errors.append)

    with pytest.raises(DirectoryError):
        await client.connect()

    assert connector.urls == []
    assert client.supervisor is None
    assert len(errors) == 1 and isinstance(errors[0], DirectoryError)


@pytest.mark.asyncio
async def test_login_failure_aborts_before_directory_lookup():
    server = ChatServerStub()
    token = Token(streamer_id="abc", identifier=Identifier("me", "wrong"))
    client, connector = make_client(server, token=token, login_result=-1)
    logins, errors = [], []
    client.on_login(logins.append)
    client.on_error(errors.append)

    with pytest.raises(AuthenticationError):
        await client.connect()

    assert logins == [LoginResult(success=False)]
    assert len(errors) == 1
    assert connector.urls == []


@pytest.mark.asyncio
async def test_logged_in_session_can_send_chat():
    server = ChatServerStub()
    token = Token(streamer_id="abc", identifier=Identifier("me", "secret"))
    client, _ = make_client(server, token=token, ticket="TICKET")
    logins = []
    client.on_login(logins.append)

    async def on_connect(result: ConnectResult) -> None:
        if result.acknowledged:
            await client.send_chat_message("hello chat")
            await client.close()

    client.on_connect(on_connect)
    await asyncio.wait_for(client.connect(), timeout=2.0)

    assert logins == [LoginResult(success=True)]
    assert client.state.auth_ticket == "TICKET"
    assert Frame.decode(server.sent_messages[0]).fields()[0] == b"TICKET"
    chat = Frame.decode(server.sent_messages[2])
    assert chat.service_code == ServiceCode.CHATMESG
    assert chat.fields() == ["hello chat".encode("utf-8"), b"0"]


@pytest.mark.asyncio
async def test_send_without_ticket_fails_without_writing():
    server = ChatServerStub()
    client, _ = make_client(server)
    failures = []

    async def on_connect(result: ConnectResult) -> None:
        if result.acknowledged:
            try:
                await client.send_chat_message("hi")
            except AuthenticationError as e:
                failures.append(e)
            await client.close()

    client.on_connect(on_connect)
    await asyncio.wait_for(client.connect(), timeout=2.0)

    assert len(failures) == 1
    assert server.sent_codes() == [ServiceCode.LOGIN, ServiceCode.JOINCH]


@pytest.mark.asyncio
async def test_send_before_connect_requires_ticket():
    client = SoopChatClient(Token(streamer_id="abc"))
    with pytest.raises(AuthenticationError):
        await client.send_chat_message("hi")


@pytest.mark.asyncio
async def test_login_write_failure_aborts_connect_and_closes_socket():
    server = ChatServerStub()
    server.fail_sends = True
    client, _ = make_client(server)
    results = []
    client.on_connect(results.append)

    with pytest.raises(TransportError) as excinfo:
        await asyncio.wait_for(client.connect(), timeout=2.0)

    assert excinfo.value.fatal
    assert results == [ConnectResult(success=False)]
    assert server.closed
    assert client.state.handshake == HandshakeState.FAILED


@pytest.mark.asyncio
async def test_channel_events_reach_observers_in_order():
    chat = encode(ServiceCode.CHATMESG, ("hi", "viewer1", "", "", "", "Viewer", "0"))
    balloon = encode(ServiceCode.SENDBALLOON, ("abc", "fan1", "Fan", "5"))
    server = ChatServerStub(after_join=[chat, balloon, chat])
    client, _ = make_client(server)
    seen = []
    client.on_chat_message(lambda m: seen.append(("chat", m.text)))

    async def on_balloon(b) -> None:
        seen.append(("balloon", b.count))

    client.on_balloon(on_balloon)

    async def stop_after_third(message) -> None:
        if len(seen) == 3:
            await client.close()

    client.on(EventKind.CHAT_MESSAGE, stop_after_third)

    await asyncio.wait_for(client.connect(), timeout=2.0)
    assert seen == [("chat", "hi"), ("balloon", 5), ("chat", "hi")]


@pytest.mark.asyncio
async def test_server_close_ends_connect_normally():
    from conftest import closed_ok

    server = ChatServerStub(after_join=[closed_ok()])
    client, _ = make_client(server)
    await asyncio.wait_for(client.connect(), timeout=2.0)
    assert server.closed


@pytest.mark.asyncio
async def test_context_manager_leaves_borrowed_http_client_open():
    http = httpx.AsyncClient(transport=soop_transport())
    async with SoopChatClient(Token(streamer_id="abc"), http_client=http) as client:
        assert client.api.http is http
    assert not http.is_closed
    await http.aclose()


@pytest.mark.asyncio
async def test_unsubscribed_observer_is_not_called():
    server = ChatServerStub()
    client, _ = make_client(server)
    results, removed = [], []
    close_when_acknowledged(client, results)
    client.on_connect(removed.append)
    client.off(EventKind.CONNECT, removed.append)

    await asyncio.wait_for(client.connect(), timeout=2.0)
    assert len(results) == 2
    assert removed == []


@pytest.mark.asyncio
async def test_chat_text_with_field_separator_is_refused_without_writing():
    server = ChatServerStub()
    token = Token(streamer_id="abc", identifier=Identifier("me", "secret"))
    client, _ = make_client(server, token=token)
    failures = []

    async def on_connect(result: ConnectResult) -> None:
        if result.acknowledged:
            try:
                await client.send_chat_message("hi\x0cINJECTED")
            except InvalidMessageError as e:
                failures.append(e)
            await client.close()

    client.on_connect(on_connect)
    await asyncio.wait_for(client.connect(), timeout=2.0)

    assert len(failures) == 1
    assert isinstance(failures[0], ValueError)
    assert server.sent_codes() == [ServiceCode.LOGIN, ServiceCode.JOINCH]


@pytest.mark.asyncio
async def test_client_reconnects_after_clean_close():
    servers = []

    async def connector(url, **options):
        server = ChatServerStub()
        servers.append(server)
        return server

    http = httpx.AsyncClient(transport=soop_transport())
    client = SoopChatClient(Token(streamer_id="abc"), http_client=http, connector=connector)
    results, errors = [], []
    close_when_acknowledged(client, results)
    client.on_error(errors.append)

    await asyncio.wait_for(client.connect(password="first"), timeout=2.0)
    await asyncio.wait_for(client.connect(), timeout=2.0)

    assert errors == []
    assert len(servers) == 2
    assert all(s.sent_codes() == [ServiceCode.LOGIN, ServiceCode.JOINCH] for s in servers)
    assert [r.acknowledged for r in results] == [False, True, False, True]
    assert client.state.handshake == HandshakeState.JOINED
    # The channel password of the first session is not reused
    assert b"pwd\x11first\x12" in servers[0].sent_messages[1]
    assert b"pwd\x11" not in servers[1].sent_messages[1]
    await http.aclose()
