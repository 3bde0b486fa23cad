"""CLI interface for the chatbot: run the server or chat from a terminal."""

from __future__ import annotations

import asyncio

import click

from chatbot.config import get_settings
from chatbot.main import VERSION

HELP_TEXT = """Commands:
  /new        start a new conversation
  /list       list conversations
  /switch N   switch to conversation number N from /list
  /reset      clear the guest session
  /quit       leave"""


@click.group()
@click.version_option(version=VERSION, prog_name="chatbot")
def cli():
    """chatbot — streaming LLM chat with persisted conversations."""


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Reload on code changes (development)")
def serve(host: str, port: int, reload: bool):
    """Start the API server."""
    import uvicorn

    uvicorn.run("chatbot.main:app", host=host, port=port, reload=reload)


@cli.command("init-db")
def init_db():
    """Create the database tables if they do not exist."""
    from chatbot.db import postgres

    async def run():
        try:
            await postgres.init_schema()
        finally:
            await postgres.close_pool()

    asyncio.run(run())
    click.secho("Database schema ready.", fg="green")


@cli.command()
@click.option("--server", default=None, help="Backend URL (defaults to SERVER_URL)")
@click.option("--username", "-u", default=None, help="Sign in as this user; omit for a guest session")
@click.option("--password", "-p", default=None, help="Password (prompted when omitted)")
@click.option("--sign-up", is_flag=True, help="Create the account before signing in")
def chat(server: str | None, username: str | None, password: str | None, sign_up: bool):
    """Chat in the terminal.

    Without --username the session is a guest session and nothing is saved.

    Example:
        chatbot chat -u alice
    """
    if username and not password:
        password = click.prompt("Password", hide_input=True)

    asyncio.run(_chat_session(server or get_settings().server_url, username, password, sign_up))


async def _chat_session(server: str, username: str | None, password: str | None, sign_up: bool):
    from chatbot.client.identity import IdentityProvider
    from chatbot.client.manager import ConversationManager
    from chatbot.client.renderer import ERROR_MESSAGE, ProgressiveRenderer
    from chatbot.client.store import HttpConversationStore
    from chatbot.exceptions import IdentityError
    from chatbot.log import configure_logging

    configure_logging("WARNING")
    identity = IdentityProvider(server)
    manager = ConversationManager(HttpConversationStore(server, identity), identity)
    identity.on_change(manager.load)

    if username:
        try:
            if sign_up:
                await identity.sign_up(username, password)
            else:
                await identity.sign_in(username, password)
        except IdentityError as e:
            click.secho(f"Sign-in failed: {e}", fg="red", err=True)
            return
    else:
        await manager.load()
        click.secho("Guest session: conversations are not saved.", fg="yellow")

    renderer = ProgressiveRenderer(
        manager,
        server,
        char_delay=get_settings().char_delay,
        on_char=lambda c: click.echo(c, nl=False),
    )
    _print_history(manager)
    click.echo(HELP_TEXT)

    while True:
        line = click.prompt("you", prompt_suffix="> ", default="", show_default=False)
        command, _, arg = line.strip().partition(" ")

        if command == "/quit":
            break
        elif command == "/new":
            await manager.start_new_conversation()
            click.secho("New conversation.", fg="cyan")
        elif command == "/list":
            for i, conv in enumerate(manager.conversations, start=1):
                marker = "*" if manager.active and conv.id == manager.active.id else " "
                click.echo(f" {marker} {i:>2}. {conv.title}")
        elif command == "/switch":
            if not arg.isdigit() or not 1 <= int(arg) <= len(manager.conversations):
                click.secho("Usage: /switch N (see /list)", fg="red", err=True)
                continue
            await manager.switch_conversation(manager.conversations[int(arg) - 1].id)
            _print_history(manager)
        elif command == "/reset":
            manager.reset_guest_session()
        elif line.strip():
            click.secho("model> ", fg="magenta", nl=False)
            result = await renderer.send(line)
            click.echo()
            if result is None:
                click.secho("Started a new conversation; send your message again.", fg="yellow")
            elif result == ERROR_MESSAGE:
                click.secho(result, fg="red")
            if result is not None and renderer.meter.rate is not None:
                click.secho(f"  ({renderer.meter.rate:.1f} tokens/s)", dim=True)


def _print_history(manager) -> None:
    if manager.active is None:
        return
    click.secho(f"── {manager.active.title} ──", fg="cyan", bold=True)
    for message in manager.history:
        click.echo(f"{message.role}> {message.content}")


if __name__ == "__main__":
    cli()
