"""CLI commands for relaybot."""

import asyncio
from datetime import datetime

import typer
from rich.console import Console
from rich.table import Table

from relaybot import __logo__, __version__

app = typer.Typer(
    name="relaybot",
    help=f"{__logo__} relaybot - chat auto-reply relay",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} relaybot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    profile: str = typer.Option(None, "--profile", "-p", help="Profile name ([a-z0-9_-]+)"),
    config: str = typer.Option(None, "--config", "-c", help="Explicit config file path"),
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """relaybot - relay chat messages to an automated responder."""
    ctx.obj = {"profile": profile, "config": config}


def _load_profile(ctx: typer.Context, verbose: bool = False):
    """Load the selected profile and configure logging, or exit with an error."""
    from relaybot.config.loader import ConfigInvalid
    from relaybot.config.runtime import RelayProfile
    from relaybot.utils.helpers import setup_logging

    opts = ctx.obj or {}
    try:
        profile = RelayProfile.load(profile=opts.get("profile"), config_path=opts.get("config"))
    except (ConfigInvalid, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    setup_logging(profile.config.logging, profile.paths, verbose=verbose)
    return profile


def _print_payload(recipient: str, payload) -> None:
    console.print(f"[green]↩[/green] [bold]{recipient}[/bold]: {payload.text or ''}")
    for media in payload.media:
        console.print(f"  [dim]media: {media}[/dim]")


# ============================================================================
# Reply
# ============================================================================


@app.command()
def reply(
    ctx: typer.Context,
    body: str = typer.Argument(..., help="Inbound message body"),
    sender: str = typer.Option("cli", "--from", "-f", help="Sender identifier"),
    to: str = typer.Option("relaybot", "--to", "-t", help="Recipient identifier"),
    provider: str = typer.Option("cli", "--provider", help="Provider tag for templates"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """Resolve a reply for one message and print it."""
    from relaybot.auto_reply.command import CommandError
    from relaybot.auto_reply.reply import resolve_reply
    from relaybot.auto_reply.templating import MsgContext
    from relaybot.auto_reply.types import ReplyKind
    from relaybot.media.store import MediaError

    profile = _load_profile(ctx, verbose)
    msg = MsgContext(body=body, from_=sender, to=to, provider=provider, assistant_profile=profile.label)

    try:
        result = asyncio.run(resolve_reply(msg, None, profile))
    except (CommandError, MediaError) as e:
        console.print(f"[red]Reply failed: {e}[/red]")
        raise typer.Exit(1)

    if result.kind == ReplyKind.suppressed:
        console.print("[dim]Reply suppressed (heartbeat token)[/dim]")
    elif result.payload is None or result.payload.is_empty:
        console.print("[yellow]No reply[/yellow]")
    else:
        _print_payload(sender, result.payload)
    if result.session_id:
        state = "new" if result.is_new_session else "resumed"
        console.print(f"[dim]session {result.session_id} ({state})[/dim]")


# ============================================================================
# Heartbeat
# ============================================================================


@app.command()
def heartbeat(
    ctx: typer.Context,
    to: str = typer.Option(None, "--to", help="Recipient (defaults to the configured heartbeat recipient)"),
    message: str = typer.Option(None, "--message", "-m", help="Send this literal message instead"),
    provider: str = typer.Option("web", "--provider", help="Provider tag for the probe"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Resolve but do not send"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose output"),
):
    """Run one heartbeat now. Delivery is printed to the console."""
    from relaybot.heartbeat.service import HeartbeatOutcome, HeartbeatService

    profile = _load_profile(ctx, verbose)
    config = profile.config
    recipient = to or config.web.heartbeat_recipient or config.discord.heartbeat_user_id
    if not recipient:
        console.print("[red]Error: no recipient; pass --to or configure web.heartbeatRecipient[/red]")
        raise typer.Exit(1)

    async def console_send(target: str, payload) -> None:
        _print_payload(target, payload)

    service = HeartbeatService(
        profile=profile,
        recipient=recipient,
        send=console_send,
        provider=provider,
        dry_run=dry_run,
    )
    try:
        outcome = asyncio.run(service.run_once(override_body=message))
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    style = "red" if outcome == HeartbeatOutcome.failed else "green"
    console.print(f"[{style}]heartbeat: {outcome.value}[/{style}]")
    if outcome == HeartbeatOutcome.failed:
        raise typer.Exit(1)


# ============================================================================
# Sessions
# ============================================================================


@app.command()
def sessions(ctx: typer.Context):
    """List stored conversation sessions."""
    from relaybot.session.store import list_sessions

    profile = _load_profile(ctx)
    rows = list_sessions(profile.session_store_path)
    if not rows:
        console.print("No sessions.")
        return

    table = Table(title=f"Sessions ({profile.label})")
    table.add_column("Key", style="cyan")
    table.add_column("Session ID")
    table.add_column("Updated")
    table.add_column("Intro sent")
    for row in rows:
        updated = datetime.fromtimestamp(row["updatedAt"] / 1000).strftime("%Y-%m-%d %H:%M")
        table.add_row(row["key"], row["sessionId"], updated, "yes" if row["systemSent"] else "no")
    console.print(table)


# ============================================================================
# Media
# ============================================================================


media_app = typer.Typer(help="Manage the media cache")
app.add_typer(media_app, name="media")


@media_app.command("clean")
def media_clean(
    ctx: typer.Context,
    ttl: int = typer.Option(None, "--ttl", help="Max age in seconds (default: config)"),
):
    """Evict cached media older than the TTL."""
    profile = _load_profile(ctx)
    removed = profile.media.clean_old_media(ttl)
    console.print(f"[green]✓[/green] Removed {removed} file(s) from {profile.paths.media_dir}")


if __name__ == "__main__":
    app()
