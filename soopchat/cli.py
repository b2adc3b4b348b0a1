#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from soopchat.client import SoopChatClient
from soopchat.config import load_settings
from soopchat.shared.errors import SoopChatError
from soopchat.shared.events import (
    AdBalloon,
    AdminNotice,
    Balloon,
    ChatMessage,
    ConnectResult,
    EventKind,
    LoginResult,
    MissionDonation,
    RosterUpdate,
    Subscription,
)
from soopchat.shared.log import configure_root_logging, get_logger
from soopchat.state import Identifier, Token

app = typer.Typer(help="SOOP live chat client")
console = Console()
logger = get_logger(__name__)


def _default_user() -> str:
    return os.getenv("SOOPCHAT_USER", "")


def _default_password() -> str:
    return os.getenv("SOOPCHAT_PASSWORD", "")


def _attach_printers(client: SoopChatClient, show_roster: bool) -> None:
    def on_chat(m: ChatMessage) -> None:
        console.print(f"[bold cyan]{escape(m.user.name)}[/] [dim]({escape(m.user.id)})[/]: {escape(m.text)}", highlight=False)

    def on_connect(r: ConnectResult) -> None:
        if r.acknowledged:
            colour = "green" if r.success else "red"
            console.print(f"[{colour}]join acknowledged: {r.success}[/]")
        elif r.success:
            console.print("[green]joined channel[/]")
        else:
            console.print("[red]could not join channel[/]")

    def on_login(r: LoginResult) -> None:
        console.print("[green]logged in[/]" if r.success else "[red]login failed[/]")

    def on_balloon(b: Balloon) -> None:
        console.print(f"[bold yellow]balloon[/] {escape(b.user.name)} x{b.count}")

    def on_ad_balloon(b: AdBalloon) -> None:
        console.print(f"[bold yellow]ad balloon[/] {escape(b.user.name)} x{b.count}")

    def on_subscription(s: Subscription) -> None:
        label = f"renewed ({s.tier_or_months} months)" if s.is_renewal else f"subscribed (tier {s.tier_or_months})"
        console.print(f"[bold magenta]{escape(s.user.name)}[/] {label}")

    def on_mission(m: MissionDonation) -> None:
        console.print(f"[bold yellow]mission[/] {escape(m.user.name)} x{m.count} {escape(m.title)}")

    def on_notice(n: AdminNotice) -> None:
        console.print(f"[bold red]notice[/] {escape(n.text)}")

    def on_roster(r: RosterUpdate) -> None:
        for entry in r.entries:
            sign = "+" if entry.joined else "-"
            console.print(f"[dim]{sign} {escape(entry.user.name)} ({escape(entry.user.id)})[/]")

    def on_error(e: Exception) -> None:
        console.print(f"[red]error[/]: {escape(str(e))}")

    client.on_chat_message(on_chat)
    client.on_connect(on_connect)
    client.on_login(on_login)
    client.on_balloon(on_balloon)
    client.on_ad_balloon(on_ad_balloon)
    client.on_subscription(on_subscription)
    client.on_mission(on_mission)
    client.on_admin_notice(on_notice)
    client.on_error(on_error)
    if show_roster:
        client.on_roster_update(on_roster)


@app.command()
def watch(
    streamer_id: str = typer.Argument(..., help="Streamer (channel) id"),
    user: str = typer.Option(_default_user(), help="Login id; anonymous when omitted"),
    password: str = typer.Option(_default_password(), help="Login password"),
    channel_password: Optional[str] = typer.Option(None, help="Password of a locked channel"),
    roster: bool = typer.Option(False, help="Print viewer join/leave updates"),
    config: Optional[Path] = typer.Option(None, help="YAML settings file"),
    log_level: str = typer.Option("WARNING", help="Log level"),
):
    """Print chat events of a live channel until interrupted."""
    configure_root_logging(log_level)
    try:
        settings = load_settings(config)
        token = Token(streamer_id=streamer_id, identifier=Identifier(user, password))
        client = SoopChatClient(token, settings)
    except SoopChatError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(code=2)
    _attach_printers(client, roster)

    async def main_loop() -> None:
        async with client:
            await client.connect(channel_password)

    try:
        asyncio.run(main_loop())
    except KeyboardInterrupt:
        console.print("[dim]bye[/]")
    except SoopChatError as e:
        console.print(f"[red]session ended[/]: {e}")
        raise typer.Exit(code=1)


@app.command()
def say(
    streamer_id: str = typer.Argument(..., help="Streamer (channel) id"),
    message: str = typer.Argument(..., help="Chat message to send"),
    user: str = typer.Option(_default_user(), help="Login id"),
    password: str = typer.Option(_default_password(), help="Login password"),
    channel_password: Optional[str] = typer.Option(None, help="Password of a locked channel"),
    config: Optional[Path] = typer.Option(None, help="YAML settings file"),
    log_level: str = typer.Option("WARNING", help="Log level"),
):
    """Log in, join a channel, send one message and leave."""
    configure_root_logging(log_level)
    if not user or not password:
        console.print("[red]--user and --password are required to send chat[/]")
        raise typer.Exit(code=2)
    try:
        settings = load_settings(config)
        client = SoopChatClient(Token(streamer_id=streamer_id, identifier=Identifier(user, password)), settings)
    except SoopChatError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        raise typer.Exit(code=2)

    attempted: list[bool] = []
    sent: list[bool] = []

    async def send_once(result: ConnectResult) -> None:
        if not result.success or attempted:
            return
        attempted.append(True)
        try:
            await client.send_chat_message(message)
            sent.append(True)
            console.print("[green]sent[/]")
        except SoopChatError as e:
            console.print(f"[red]send failed[/]: {escape(str(e))}")
        finally:
            await client.close()

    client.on(EventKind.CONNECT, send_once)
    client.on_error(lambda e: console.print(f"[red]error[/]: {escape(str(e))}"))

    async def main_loop() -> None:
        async with client:
            await client.connect(channel_password)

    try:
        asyncio.run(main_loop())
    except SoopChatError as e:
        console.print(f"[red]failed[/]: {escape(str(e))}")
        raise typer.Exit(code=1)
    if not sent:
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
