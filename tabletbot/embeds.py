"""Embed rendering and interaction response helpers."""

import logging

import discord

from tabletbot.formatting import (
    MAX_EMBED_LENGTH,
    MAX_FIELD_LENGTH,
    MAX_TITLE_LENGTH,
    clip,
    code_block,
    format_labels,
    truncate_body,
)
from tabletbot.models import FileExcerpt, IssueItem, PullRequestItem, ResolvedItem, Snippet

logger = logging.getLogger(__name__)

OPEN_COLOUR = discord.Colour(0x238636)
RESOLVED_COLOUR = discord.Colour(0x8957E5)
CLOSED_COLOUR = discord.Colour(0xDA3633)
ACCENT_COLOUR = RESOLVED_COLOUR  # a shade of purple
OK_COLOUR = discord.Colour(0x2ECC71)
ERROR_COLOUR = discord.Colour(0xE74C3C)
LIST_COLOUR = discord.Colour.teal()

STATE_COLOURS = {"open": OPEN_COLOUR, "closed": CLOSED_COLOUR, "merged": RESOLVED_COLOUR}

PAGE_SIZE = 25  # Discord's per-embed field limit
MAX_EMBEDS = 10  # Discord's per-message embed limit
MAX_MESSAGE_LENGTH = 6000  # Discord's limit on all embed text in one message

Field = tuple[str, str, bool]


def _document_embed(item: IssueItem | PullRequestItem, limit: int) -> discord.Embed:
    title = f"#{item.number}: {item.title}" if item.title else f"#{item.number}"
    embed = discord.Embed(
        title=clip(title, MAX_TITLE_LENGTH),
        description=truncate_body(item.body, limit),
        url=item.url,
        colour=STATE_COLOURS[item.state],
    )
    if item.author:
        embed.set_author(name=item.author.login, url=item.author.url, icon_url=item.author.avatar_url)
    if item.milestone:
        embed.add_field(name="Milestone", value=clip(item.milestone, MAX_FIELD_LENGTH), inline=True)
    if labels := format_labels(item.labels):
        embed.add_field(name="Labels", value=clip(labels, MAX_FIELD_LENGTH), inline=True)
    return embed


def render_embed(item: ResolvedItem, limit: int = MAX_EMBED_LENGTH) -> discord.Embed:
    """Render item with a description of at most limit characters."""
    match item:
        case IssueItem() | PullRequestItem():
            return _document_embed(item, limit)
        case FileExcerpt():
            return discord.Embed(
                title=clip(item.path, MAX_TITLE_LENGTH),
                description=code_block(item.content, item.language, limit),
                url=item.url,
                colour=ACCENT_COLOUR,
            )
        case _:
            raise TypeError(f"Cannot render {type(item).__name__}")


def compose_reply(items: list[ResolvedItem]) -> list[discord.Embed] | None:
    """Embeds for one reply, or None when nothing resolved and no reply should be sent.

    The embeds together stay within MAX_MESSAGE_LENGTH: the first item that does
    not fit has its description shortened to the space left, and anything after
    it is dropped.
    """
    if not items:
        return None

    embeds: list[discord.Embed] = []
    remaining = MAX_MESSAGE_LENGTH
    for item in items[:MAX_EMBEDS]:
        embed = render_embed(item)
        if len(embed) > remaining:
            room = remaining - (len(embed) - len(embed.description or ""))
            embed = render_embed(item, room) if room > 0 else None
            if embed is None or len(embed) > remaining:
                break
        embeds.append(embed)
        remaining -= len(embed)

    if len(embeds) < len(items):
        logger.info("Dropping %d resolved references over the message limits", len(items) - len(embeds))
    return embeds or None


def hide_bodies(embeds: list[discord.Embed]) -> list[discord.Embed]:
    hidden = []
    for embed in embeds:
        embed = embed.copy()
        embed.description = None
        hidden.append(embed)
    return hidden


def paginate(fields: list[Field], page_size: int = PAGE_SIZE) -> list[list[Field]]:
    return [fields[i : i + page_size] for i in range(0, len(fields), page_size)]


def page_embed(title: str, pages: list[list[Field]], index: int, colour: discord.Colour = LIST_COLOUR) -> discord.Embed:
    embed = discord.Embed(title=title, colour=colour)
    for name, value, inline in pages[index]:
        embed.add_field(name=name, value=value, inline=inline)
    if len(pages) > 1:
        embed.set_footer(text=f"Page: {index + 1}/{len(pages)}")
    return embed


def snippet_embed(snippet: Snippet, colour: discord.Colour = ACCENT_COLOUR) -> discord.Embed:
    return discord.Embed(title=snippet.title, description=snippet.content, colour=colour)


def ok_embed(title: str, content: str) -> discord.Embed:
    return discord.Embed(title=title, description=content, colour=OK_COLOUR)


def error_embed(title: str, content: str) -> discord.Embed:
    return discord.Embed(title=title, description=content, colour=ERROR_COLOUR)


async def respond_embed(
    interaction: discord.Interaction,
    embed: discord.Embed,
    ephemeral: bool = False,
    **kwargs,
) -> None:
    try:
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=ephemeral, **kwargs)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=ephemeral, **kwargs)
    except discord.HTTPException as exc:
        logger.warning("Failed to respond: %s", exc)


async def respond_ok(interaction: discord.Interaction, title: str, content: str) -> None:
    await respond_embed(interaction, ok_embed(title, content))


async def respond_err(interaction: discord.Interaction, title: str, content: str) -> None:
    await respond_embed(interaction, error_embed(title, content), ephemeral=True)


async def interaction_err(interaction: discord.Interaction, content: str) -> None:
    await respond_embed(interaction, error_embed("Unable to execute interaction", content), ephemeral=True)
