"""StreamSports CLI - Main command-line interface."""

import asyncio
import logging
import sys
import time
from dataclasses import replace
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from streamsports import __version__
from streamsports.catalog import CatalogClient
from streamsports.config import Config, get_config, save_config
from streamsports.errors import RelayUnavailable, ResolutionTimeout, StreamSportsError
from streamsports.models import Channel, PlayerReference, ResolvedStream
from streamsports.player import get_available_players, is_player_available, play
from streamsports.proxy import ProxyServer
from streamsports.resolvers import build_chain
from streamsports.session import ResolutionCoordinator
from streamsports.tokens import describe_expiry, log_expiry

console = Console()
log = logging.getLogger("streamsports")


# ===== HELPERS =====

def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    logging.getLogger("streamsports").setLevel(logging.DEBUG if verbose else logging.INFO)


def run_async(coro):
    """Run an async function."""
    return asyncio.run(coro)


def display_channels(items: list[Channel], title: str) -> None:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=4)
    table.add_column("Name", style="cyan")
    table.add_column("Code", style="green", width=8)
    table.add_column("Status", width=10)
    if any(c.is_event for c in items):
        table.add_column("Start", style="dim", width=20)

    for i, item in enumerate(items, 1):
        status = f"[green]{item.status}[/]" if item.is_online else f"[dim]{item.status}[/]"
        row = [str(i), item.name or "(No name)", item.code, status]
        if item.is_event:
            row.append(item.start or "")
        table.add_row(*row)

    console.print(table)


def display_stream(stream: ResolvedStream) -> None:
    table = Table(title="Resolved stream", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green", overflow="fold")
    table.add_row("Resolver", stream.resolver or "?")
    table.add_row("Type", "live" if stream.is_live else "on demand")
    table.add_row("Stream URL", stream.stream_url)
    if stream.raw_url != stream.stream_url:
        table.add_row("Origin URL", stream.raw_url)
    table.add_row("Cookie", stream.cookie or "(none)")
    table.add_row("User-Agent", stream.user_agent or "(default)")
    table.add_row("Token", describe_expiry(stream.raw_url))
    console.print(table)


def pick_channel(config: Config) -> Optional[Channel]:
    """Let the user pick a channel or event from the catalog."""
    import questionary

    console.print("[dim]Loading catalog...[/]")
    items = run_async(CatalogClient(config).fetch_all())
    if not items:
        console.print("[yellow]Catalog is empty or unreachable[/]")
        return None

    choices = [
        questionary.Choice(title=f"{c.name} [{c.status or '?'}]", value=c)
        for c in items
    ]
    choices.append(questionary.Choice(title="[Cancel]", value=None))
    return questionary.select("Select channel (↑↓ arrows):", choices=choices).ask()


async def resolve_stream(config: Config, player: PlayerReference | str, proxy: ProxyServer | None = None) -> ResolvedStream:
    if isinstance(player, str):
        player = PlayerReference(player)
    coordinator = ResolutionCoordinator(build_chain(config), proxy=proxy)
    try:
        return await coordinator.resolve(player.player_url, player)
    finally:
        await coordinator.stop()


def report_failure(error: StreamSportsError) -> None:
    if isinstance(error, ResolutionTimeout):
        console.print("[red]Could not load stream: the player never requested a manifest[/]")
    else:
        console.print("[red]Could not load stream[/]")
    for reason in getattr(error, "reasons", None) or [str(error)]:
        console.print(f"  [dim]{reason}[/]")


def config_overrides(config: Config, lan: bool, no_browser: bool, timeout: Optional[float]) -> Config:
    changes = {}
    if lan:
        changes["lan_access"] = True
    if no_browser:
        changes["use_browser"] = False
    if timeout:
        changes["resolve_timeout"] = timeout
    return replace(config, **changes) if changes else config


# ===== CLI COMMANDS =====

@click.group()
@click.version_option(__version__, "--version", "-V", prog_name="streamsports")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def main(verbose: bool):
    """StreamSports - play protected live sports streams through a local relay."""
    setup_logging(verbose)


@main.command()
def channels():
    """List live TV channels."""
    config = get_config()
    items = run_async(CatalogClient(config).fetch_channels())
    if not items:
        console.print("[yellow]No channels found[/]")
        return
    display_channels(items, f"Channels ({len(items)})")


@main.command()
@click.option("--sport", "-s", default="", help="Sport key (soccer, nfl, ...), default all")
def events(sport: str):
    """List sports events and their broadcasts."""
    config = get_config()
    items = run_async(CatalogClient(config).fetch_events(sport))
    if not items:
        console.print("[yellow]No events found[/]")
        return
    display_channels(items, f"Events ({len(items)})")


@main.command()
@click.argument("player_url")
@click.option("--no-browser", is_flag=True, help="Only try static decoding")
@click.option("--timeout", "-t", type=float, default=None, help="Browser resolution timeout (s)")
def resolve(player_url: str, no_browser: bool, timeout: Optional[float]):
    """Resolve a player page to its signed manifest URL."""
    config = config_overrides(get_config(), False, no_browser, timeout)

    console.print("[dim]Resolving stream...[/]")
    try:
        stream = run_async(resolve_stream(config, player_url))
    except StreamSportsError as e:
        report_failure(e)
        sys.exit(1)

    display_stream(stream)


@main.command("play")
@click.argument("player_url", required=False)
@click.option("--player", type=click.Choice(["mpv", "vlc"]), default=None, help="Player to use")
@click.option("--lan", is_flag=True, help="Expose the relay to other devices (cast receivers)")
@click.option("--no-browser", is_flag=True, help="Only try static decoding")
def play_cmd(player_url: Optional[str], player: Optional[str], lan: bool, no_browser: bool):
    """Resolve a channel and play it through the relay."""
    config = config_overrides(get_config(), lan, no_browser, None)
    player = player or config.default_player

    if not is_player_available(player):
        console.print(f"[red]{player} not found. Available: {get_available_players()}[/]")
        return

    title = "StreamSports"
    target: PlayerReference | str | None = player_url
    if not target:
        channel = pick_channel(config)
        if not channel:
            return
        target, title = channel.player, channel.name

    server = ProxyServer(config)
    try:
        server.start()
    except RelayUnavailable as e:
        console.print(f"[red]Relay unavailable: {e}[/]")
        sys.exit(1)

    try:
        console.print("[dim]Resolving stream...[/]")
        try:
            stream = run_async(resolve_stream(config, target, proxy=server))
        except StreamSportsError as e:
            report_failure(e)
            sys.exit(1)

        log_expiry(stream.raw_url)
        console.print(f"[green]▶ Playing: {title}[/]")
        console.print(f"[dim]Player: {player} | Relay: {server.base_url}[/]")

        process = play(stream.stream_url, config, player=player, title=title)
        if process:
            console.print("[dim]Press Ctrl+C to return to terminal[/]")
            try:
                process.wait()
            except KeyboardInterrupt:
                process.terminate()
    finally:
        server.stop()


@main.command()
@click.argument("player_url", required=False)
@click.option("--lan", is_flag=True, help="Bind on all interfaces and advertise the LAN address")
@click.option("--no-browser", is_flag=True, help="Only try static decoding")
def serve(player_url: Optional[str], lan: bool, no_browser: bool):
    """Run the relay in the foreground, optionally resolving a player page first."""
    config = config_overrides(get_config(), lan, no_browser, None)
    server = ProxyServer(config)

    try:
        server.start()
    except RelayUnavailable as e:
        console.print(f"[red]Relay unavailable: {e}[/]")
        sys.exit(1)

    console.print(f"[green]Relay running on {server.base_url}[/]")
    try:
        if player_url:
            try:
                stream = run_async(resolve_stream(config, player_url, proxy=server))
            except StreamSportsError as e:
                report_failure(e)
            else:
                display_stream(stream)

        console.print("[dim]Press Ctrl+C to stop[/]")
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()


@main.command()
@click.argument("url")
def token(url: str):
    """Show how long the token in a manifest URL stays valid."""
    console.print(f"Token: {describe_expiry(url)}")


@main.command()
@click.option("--show", is_flag=True, help="Show current configuration")
@click.option("--player", type=click.Choice(["mpv", "vlc"]), help="Set default player")
@click.option("--port", type=int, help="First port of the relay port window")
@click.option("--lan/--no-lan", default=None, help="Expose the relay on the LAN by default")
@click.option("--browser/--no-browser", default=None, help="Enable the browser fallback")
@click.option("--timeout", type=float, help="Browser resolution timeout (s)")
def config(show: bool, player: Optional[str], port: Optional[int], lan: Optional[bool],
           browser: Optional[bool], timeout: Optional[float]):
    """View or edit configuration."""
    config = get_config()

    if show or (player, port, lan, browser, timeout) == (None, None, None, None, None):
        table = Table(title="Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Default Player", config.default_player)
        table.add_row("Relay Ports", f"{config.port_start}-{config.port_start + config.port_span - 1}")
        table.add_row("LAN Access", str(config.lan_access))
        table.add_row("Browser Fallback", str(config.use_browser))
        table.add_row("Resolve Timeout", f"{config.resolve_timeout:g}s")
        table.add_row("Upstream Timeout", f"{config.upstream_timeout:g}s")
        table.add_row("Origin", config.origin)
        table.add_row("Catalog API", config.catalog_api)

        console.print(table)
        return

    if player:
        config.default_player = player
    if port:
        config.port_start = port
    if lan is not None:
        config.lan_access = lan
    if browser is not None:
        config.use_browser = browser
    if timeout:
        config.resolve_timeout = timeout

    save_config(config)
    console.print("[green]✓ Configuration saved[/]")


if __name__ == "__main__":
    main()
