import httpx
from typer.testing import CliRunner

from conftest import ChatServerStub, closed_error, soop_transport
from soopchat import cli
from soopchat.cli import app
from soopchat.client import SoopChatClient
from soopchat.core.ServiceCodes import ServiceCode
from soopchat.shared.frame import Frame

runner = CliRunner()

NO_CONFIG = {"SOOPCHAT_CONFIG": ""}


class ChatRejectingServer(ChatServerStub):
    """Completes the handshake but fails every chat message write."""

    async def send(self, data: bytes) -> None:
        if Frame.decode(data).service_code == ServiceCode.CHATMESG:
            raise closed_error()
        await super().send(data)


def use_fake_services(monkeypatch, server_class):
    servers = []

    async def connector(url, **options):
        server = server_class()
        servers.append(server)
        return server

    def build(token, settings):
        http = httpx.AsyncClient(transport=soop_transport())
        return SoopChatClient(token, settings, http_client=http, connector=connector)

    monkeypatch.setattr(cli, "SoopChatClient", build)
    return servers


def test_say_requires_credentials():
    result = runner.invoke(app, ["say", "abc", "hello", "--user", "", "--password", ""])
    assert result.exit_code == 2
    assert "required" in result.output


def test_say_sends_one_message(monkeypatch):
    servers = use_fake_services(monkeypatch, ChatServerStub)
    result = runner.invoke(app, ["say", "abc", "hello", "--user", "me", "--password", "pw"], env=NO_CONFIG)

    assert result.exit_code == 0
    assert "sent" in result.output
    assert ServiceCode.CHATMESG in servers[0].sent_codes()


def test_say_exits_non_zero_when_the_write_fails(monkeypatch):
    servers = use_fake_services(monkeypatch, ChatRejectingServer)
    result = runner.invoke(app, ["say", "abc", "hello", "--user", "me", "--password", "pw"], env=NO_CONFIG)

    assert result.exit_code == 1
    assert "send failed" in result.output
    assert ServiceCode.CHATMESG not in servers[0].sent_codes()


def test_watch_rejects_empty_streamer_id():
    result = runner.invoke(app, ["watch", "", "--user", "", "--password", ""], env=NO_CONFIG)
    assert result.exit_code == 2
    assert "streamer_id" in result.output


def test_watch_reports_missing_config_file(tmp_path):
    missing = tmp_path / "absent.yaml"
    result = runner.invoke(app, ["watch", "abc", "--config", str(missing)])
    assert result.exit_code == 2
    assert "not found" in result.output
