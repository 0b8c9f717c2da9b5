"""TabletBot CLI: run the bot and poke at its pieces from a terminal."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich import print as rprint
from rich.logging import RichHandler
from rich.table import Table

from tabletbot.bot import TabletBot
from tabletbot.extract import extract_references
from tabletbot.models import FileExcerpt, IssueItem, PullRequestItem, ResolvedItem
from tabletbot.providers.github import GitHubProvider, RawContentHost
from tabletbot.resolve import RateLimitGuard, ResourceResolver
from tabletbot.settings import BotSettings, get_settings
from tabletbot.store import StateStore
from tabletbot.udev import UDEV_FILENAME, generate_udev

app = typer.Typer(help="TabletBot: GitHub references and snippets for Discord", no_args_is_help=True)

logger = logging.getLogger("tabletbot")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_resolver(settings: BotSettings, store: StateStore) -> tuple[ResourceResolver, GitHubProvider, RawContentHost]:
    tracker = GitHubProvider(settings)
    host = RawContentHost()
    resolver = ResourceResolver(
        tracker,
        host,
        store,
        settings.default_repository,
        guard=RateLimitGuard(tracker, reserve=settings.rate_limit_reserve),
    )
    return resolver, tracker, host


async def _serve(settings: BotSettings) -> None:
    store = StateStore(settings.resolved_state_path())
    resolver, tracker, host = build_resolver(settings, store)
    bot = TabletBot(store, resolver, diagnostics_forum_id=settings.diagnostics_forum_id)
    try:
        async with bot:
            await bot.start(settings.discord_token.get_secret_value())
    finally:
        await tracker.aclose()
        await host.aclose()


def _describe(item: ResolvedItem) -> tuple[str, str, str]:
    match item:
        case IssueItem() | PullRequestItem():
            kind = "PR" if isinstance(item, PullRequestItem) else "Issue"
            return f"{kind} #{item.number}", item.state, item.title or ""
        case FileExcerpt():
            return "File", item.language or "-", item.path


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("run")
def run() -> None:
    """Connect to Discord and start answering messages."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Using state file %s", settings.resolved_state_path())
    try:
        asyncio.run(_serve(settings))
    except KeyboardInterrupt:
        logger.info("Shutting down")


@app.command("resolve")
def resolve_cmd(
    text: Annotated[str, typer.Argument(help="Message text to scan, e.g. 'see #42'")],
) -> None:
    """Extract references from TEXT and resolve them against GitHub."""
    settings = get_settings(require_discord=False)
    configure_logging(settings.log_level)

    references = extract_references(text)
    if references is None:
        rprint("[dim]No references found.[/dim]")
        raise typer.Exit(0)

    async def _resolve() -> list[ResolvedItem]:
        store = StateStore(settings.resolved_state_path())
        resolver, tracker, host = build_resolver(settings, store)
        try:
            return await resolver.resolve_all(references)
        finally:
            await tracker.aclose()
            await host.aclose()

    items = asyncio.run(_resolve())

    table = Table(title=f"{len(items)} of {len(references)} references resolved")
    table.add_column("Reference", style="cyan")
    table.add_column("State")
    table.add_column("Title / Path")
    for item in items:
        table.add_row(*_describe(item))

    rprint(table)


@app.command("udev")
def udev_cmd(
    vendor_id: Annotated[int, typer.Argument(help="The Vendor Id in decimal")],
    product_id: Annotated[int, typer.Argument(help="The Product Id in decimal")],
    libinput_override: Annotated[bool, typer.Option(help="Tell libinput to ignore the device")] = True,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help=f"Write to file instead of stdout (e.g. {UDEV_FILENAME})"),
    ] = None,
) -> None:
    """Print udev rules for a tablet."""
    rules = generate_udev(vendor_id, product_id, libinput_override)
    if output:
        output.write_text(rules)
        rprint(f"[green]✓[/green] Wrote rules to {output}")
    else:
        typer.echo(rules)


@app.command("config-show")
def config_show() -> None:
    """Show resolved configuration (masks credentials)."""
    settings = get_settings(require_discord=False)

    def mask(val: str | None) -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"...{val[-5:]}"

    table = Table(title="TabletBot Configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("discord_token", mask(settings.discord_token.get_secret_value() if settings.discord_token else None))
    table.add_row("github_token", mask(settings.github_token.get_secret_value() if settings.github_token else None))
    table.add_row("github_auth", settings.github_auth)
    table.add_row("default_repository", settings.default_repository.full_name)
    table.add_row("rate_limit_reserve", str(settings.rate_limit_reserve))
    table.add_row("diagnostics_forum_id", str(settings.diagnostics_forum_id or "[dim](not set)[/dim]"))
    table.add_row("state_path", str(settings.resolved_state_path()))
    table.add_row("log_level", settings.log_level)

    rprint(table)


if __name__ == "__main__":
    app()
