"""Slash commands: snippets, repository aliases, udev rules and ad-hoc embeds."""

import io
import logging
import re

import discord
from discord import app_commands

from tabletbot.embeds import (
    ACCENT_COLOUR,
    OK_COLOUR,
    error_embed,
    ok_embed,
    paginate,
    respond_embed,
    respond_err,
    respond_ok,
    snippet_embed,
)
from tabletbot.models import RepositoryDetails, Snippet
from tabletbot.session import ConfirmSession, InteractionRouter, PaginatorSession, SendFn
from tabletbot.store import StateStore
from tabletbot.udev import UDEV_FILENAME, generate_udev

logger = logging.getLogger(__name__)

MAX_CHOICES = 25  # Discord's autocomplete limit

KEY_PATTERN = re.compile(r"^[a-z0-9._-]+$")
REPO_DETAILS_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")
MESSAGE_LINK_PATTERN = re.compile(r"https://(?:ptb\.|canary\.)?discord(?:app)?\.com/channels/(?:\d+|@me)/(\d+)/(\d+)")

CLEAR_FIELD = "_"  # edit-embed argument that removes a field


def _unescape(text: str) -> str:
    return text.replace(r"\n", "\n")


def _interaction_sender(interaction: discord.Interaction) -> SendFn:
    async def send(**kwargs) -> discord.Message:
        await interaction.response.send_message(**kwargs)
        return await interaction.original_response()

    return send


def parse_colour(value: str) -> discord.Colour:
    """Parse a hex colour with or without a leading '#'. Raises ValueError."""
    return discord.Colour.from_str("#" + value.strip().lower().removeprefix("#"))


def build_embed(
    title: str | None = None,
    description: str | None = None,
    color: str | None = None,
    url: str | None = None,
    image: str | None = None,
    footer: str | None = None,
    thumbnail: str | None = None,
) -> discord.Embed:
    """Build a user-specified embed. Raises ValueError with a user-facing message."""
    if not any((title, description, image, thumbnail, footer)):
        raise ValueError("Please provide at least one title, description, image, footer or thumbnail")
    if url and not title:
        raise ValueError("To set a url, you must set a title")

    embed = discord.Embed(title=title, url=url, description=_unescape(description) if description else None)
    if color:
        try:
            embed.colour = parse_colour(color)
        except ValueError as exc:
            raise ValueError(f"The color '{color}' is not a valid hexadecimal color: {exc}") from exc
    if image:
        embed.set_image(url=image)
    if footer:
        embed.set_footer(text=footer)
    if thumbnail:
        embed.set_thumbnail(url=thumbnail)
    return embed


def parse_message_reference(value: str) -> tuple[int | None, int] | None:
    """Split a message link or bare id into (channel_id, message_id)."""
    value = value.strip()
    if value.isdigit():
        return None, int(value)
    if match := MESSAGE_LINK_PATTERN.fullmatch(value):
        return int(match.group(1)), int(match.group(2))
    return None


def _pick(new: str | None, old: str | None) -> str | None:
    if new is None:
        return old
    if new == CLEAR_FIELD:
        return None
    return new


def merge_embed(
    existing: discord.Embed,
    title: str | None = None,
    description: str | None = None,
    color: str | None = None,
    url: str | None = None,
    image: str | None = None,
    footer: str | None = None,
    thumbnail: str | None = None,
) -> discord.Embed:
    """Apply an edit to an embed: None keeps a field, "_" clears it. Raises ValueError."""
    if color is None:
        colour = existing.colour
    elif color == CLEAR_FIELD:
        colour = None
    else:
        try:
            colour = parse_colour(color)
        except ValueError as exc:
            raise ValueError(f"The color '{color}' is not a valid hexadecimal color: {exc}") from exc

    description = _pick(description, existing.description)
    embed = discord.Embed(
        title=_pick(title, existing.title),
        url=_pick(url, existing.url),
        description=_unescape(description) if description else None,
        colour=colour,
    )
    if new_image := _pick(image, existing.image.url):
        embed.set_image(url=new_image)
    if new_footer := _pick(footer, existing.footer.text):
        embed.set_footer(text=new_footer)
    if new_thumbnail := _pick(thumbnail, existing.thumbnail.url):
        embed.set_thumbnail(url=new_thumbnail)
    return embed


async def _fetch_message(interaction: discord.Interaction, reference: str) -> discord.Message | None:
    parsed = parse_message_reference(reference)
    if parsed is None:
        await respond_err(interaction, "Failure to edit embed", f"'{reference}' is not a message link or id")
        return None

    channel_id, message_id = parsed
    channel = interaction.client.get_channel(channel_id) if channel_id else interaction.channel
    if channel is None or not hasattr(channel, "fetch_message"):
        await respond_err(interaction, "Failure to edit embed", "Cannot read messages in that channel")
        return None

    try:
        return await channel.fetch_message(message_id)
    except discord.HTTPException as exc:
        await respond_err(interaction, "Failure to edit embed", f"Could not find the message: {exc}")
        return None


def register_commands(tree: app_commands.CommandTree, store: StateStore, router: InteractionRouter) -> None:
    async def snippet_autocomplete(interaction: discord.Interaction, current: str) -> list[app_commands.Choice[str]]:
        return [
            app_commands.Choice(name=s.format_output()[:100], value=s.id)
            for s in store.list_snippets()
            if s.id.startswith(current)
        ][:MAX_CHOICES]

    async def repository_autocomplete(interaction: discord.Interaction, current: str) -> list[app_commands.Choice[str]]:
        return [
            app_commands.Choice(name=key, value=key)
            for key in store.list_repositories()
            if key.startswith(current.lower())
        ][:MAX_CHOICES]

    # ---- Snippets -----------------------------------------------------------

    @tree.command(name="snippet", description="Show a snippet")
    @app_commands.describe(id="The snippet's id")
    @app_commands.autocomplete(id=snippet_autocomplete)
    @app_commands.guild_only()
    async def snippet(interaction: discord.Interaction, id: str) -> None:
        found = store.get_snippet(id)
        if found is None:
            await respond_err(interaction, "Failed to find snippet", f"Failed to find the snippet '{id}'")
            return
        await respond_embed(interaction, snippet_embed(found))

    @tree.command(name="create-snippet", description="Create a snippet, replacing any snippet with the same id")
    @app_commands.describe(id="The snippet's id", title="The snippet's title", content="The snippet's content")
    @app_commands.guild_only()
    async def create_snippet(interaction: discord.Interaction, id: str, title: str, content: str) -> None:
        created = Snippet(id=id, title=title, content=_unescape(content))
        store.upsert_snippet(created)

        embed = snippet_embed(created, colour=OK_COLOUR)
        if len(store.list_snippets()) > MAX_CHOICES:
            embed.add_field(
                name="Warning",
                value=f"There are more than {MAX_CHOICES} snippets, some may not appear in the snippet list.",
                inline=False,
            )
        await respond_embed(interaction, embed)

    @tree.command(name="edit-snippet", description="Edit a snippet's title or content")
    @app_commands.describe(id="The snippet's id", title="The new title", content="The new content")
    @app_commands.autocomplete(id=snippet_autocomplete)
    @app_commands.guild_only()
    async def edit_snippet(
        interaction: discord.Interaction,
        id: str,
        title: str | None = None,
        content: str | None = None,
    ) -> None:
        content = _unescape(content) if content is not None else None
        edited = store.edit_snippet(id, title=title, content=content)
        if edited is None:
            if title is None or content is None:
                await respond_err(interaction, "Failed to edit snippet", f"The snippet '{id}' does not exist")
                return
            edited = Snippet(id=id, title=title, content=content)
            store.upsert_snippet(edited)
        await respond_embed(interaction, snippet_embed(edited, colour=OK_COLOUR))

    @tree.command(name="remove-snippet", description="Remove a snippet")
    @app_commands.describe(id="The snippet's id")
    @app_commands.autocomplete(id=snippet_autocomplete)
    @app_commands.guild_only()
    async def remove_snippet(interaction: discord.Interaction, id: str) -> None:
        target = store.get_snippet(id)
        if target is None:
            await respond_err(interaction, "Failed to remove snippet", f"The snippet '{id}' does not exist")
            return

        def confirm() -> discord.Embed:
            removed = store.remove_snippet(id)
            if removed is None:
                return error_embed("Failed to remove snippet", f"The snippet '{id}' does not exist")
            return ok_embed("Snippet successfully removed", f"Removed snippet '{removed.format_output()}'")

        session = ConfirmSession(
            router,
            interaction.id,
            interaction.user.id,
            prompt=discord.Embed(
                title="Remove snippet?",
                description=f"Are you sure you want to remove '{target.format_output()}'?",
                colour=ACCENT_COLOUR,
            ),
            confirm=confirm,
            cancelled=discord.Embed(
                title="Removal aborted",
                description=f"The snippet '{id}' was not removed.",
                colour=ACCENT_COLOUR,
            ),
        )
        await session.attach(_interaction_sender(interaction))

    @tree.command(name="export-snippet", description="Export a snippet with escaped newlines")
    @app_commands.describe(id="The snippet's id")
    @app_commands.autocomplete(id=snippet_autocomplete)
    @app_commands.guild_only()
    async def export_snippet(interaction: discord.Interaction, id: str) -> None:
        found = store.get_snippet(id)
        if found is None:
            await respond_err(interaction, "Failed to find snippet", f"Failed to find the snippet '{id}'")
            return
        escaped = found.content.replace("\n", r"\n")
        await respond_embed(interaction, snippet_embed(found), content=f"```{escaped}```")

    @tree.command(name="list-snippets", description="List all snippets")
    @app_commands.guild_only()
    async def list_snippets(interaction: discord.Interaction) -> None:
        snippets = store.list_snippets()
        if not snippets:
            await respond_err(interaction, "Cannot send list of snippets", "There are no snippets to list!")
            return
        pages = paginate([(f"**{s.id}**", s.title, False) for s in snippets])
        session = PaginatorSession(router, interaction.id, interaction.user.id, "Snippets", pages)
        await session.attach(_interaction_sender(interaction))

    # ---- Repositories -------------------------------------------------------

    @tree.command(name="add-repository", description="Adds a repository alias for issue references")
    @app_commands.describe(
        key="The key to the repository in a lowercase alphanumeric string",
        owner="The owner of the repository",
        repository="The repository name",
    )
    @app_commands.guild_only()
    async def add_repository(interaction: discord.Interaction, key: str, owner: str, repository: str) -> None:
        key = key.lower()
        if not KEY_PATTERN.match(key):
            await respond_err(
                interaction,
                "Key parsing error",
                "The key can only contain lowercase ASCII letters, digits, and the characters ., -, and _.",
            )
            return
        if not REPO_DETAILS_PATTERN.match(owner) or not REPO_DETAILS_PATTERN.match(repository):
            await respond_err(
                interaction,
                "Repository details parsing error",
                "Your inputs for owner and repository name must be valid repository names.",
            )
            return

        store.add_repository(key, RepositoryDetails(owner=owner, name=repository))
        await respond_ok(interaction, "Successfully added issue token", f"{key}: {owner}/{repository}")

    @tree.command(name="remove-repository", description="Removes a repository alias")
    @app_commands.describe(key="The repository key")
    @app_commands.autocomplete(key=repository_autocomplete)
    @app_commands.guild_only()
    async def remove_repository(interaction: discord.Interaction, key: str) -> None:
        if store.remove_repository(key) is None:
            await respond_err(interaction, "Failure to find repository", f"The key '{key}' does not exist.")
            return
        await respond_ok(
            interaction,
            "Successfully removed repository!",
            f"The repository with the key '{key}' has been removed",
        )

    @tree.command(name="list-repositories", description="Lists all repository aliases")
    @app_commands.guild_only()
    async def list_repositories(interaction: discord.Interaction) -> None:
        repositories = store.list_repositories()
        if not repositories:
            await respond_err(interaction, "Cannot send list of repositories", "There are no repositories to list!")
            return
        pages = paginate([(f"**{key}**", details.full_name, True) for key, details in repositories.items()])
        session = PaginatorSession(router, interaction.id, interaction.user.id, "Repositories", pages)
        await session.attach(_interaction_sender(interaction))

    # ---- Utilities ----------------------------------------------------------

    @tree.command(name="generate-udev", description="Generates udev rules for the given vendor and product ids")
    @app_commands.describe(
        vendor_id="The Vendor Id in decimal",
        product_id="The Product Id in decimal",
        libinput_override="Tell libinput to ignore the device (default: true)",
    )
    async def generate_udev_command(
        interaction: discord.Interaction,
        vendor_id: app_commands.Range[int, 0, 0xFFFF],
        product_id: app_commands.Range[int, 0, 0xFFFF],
        libinput_override: bool = True,
    ) -> None:
        rules = generate_udev(vendor_id, product_id, libinput_override)
        embed = ok_embed(
            "Generated Udev rules",
            f"Move this file to `/etc/udev/rules.d/{UDEV_FILENAME}` then run the following commands: \n"
            "```sudo udevadm control --reload-rules && sudo udevadm trigger\n```",
        )
        attachment = discord.File(io.BytesIO(rules.encode()), filename=UDEV_FILENAME)
        await respond_embed(interaction, embed, file=attachment)

    @tree.command(name="embed", description="Create an embed in the current channel")
    @app_commands.describe(
        title="The embed title",
        description="The embed description",
        color="The color of the embed in hexadecimal form (ex: ff00ff)",
        url="The embed url",
        image="The embed image",
        footer="The embed footer text",
        thumbnail="The embed thumbnail",
    )
    @app_commands.guild_only()
    async def embed_command(
        interaction: discord.Interaction,
        title: str | None = None,
        description: str | None = None,
        color: str | None = None,
        url: str | None = None,
        image: str | None = None,
        footer: str | None = None,
        thumbnail: str | None = None,
    ) -> None:
        try:
            built = build_embed(title, description, color, url, image, footer, thumbnail)
        except ValueError as exc:
            await respond_err(interaction, "Failed to respond with embed", str(exc))
            return
        await respond_embed(interaction, built)

    @tree.command(name="edit-embed", description="Edit an embed created with /embed")
    @app_commands.describe(
        message="Link or id of the message to be edited",
        title="The embed title, '_' to remove it",
        description="The embed description, '_' to remove it",
        color="The color of the embed in hexadecimal form (ex: ff00ff), '_' to remove it",
        url="The embed url, '_' to remove it",
        image="The embed image, '_' to remove it",
        footer="The embed footer text, '_' to remove it",
        thumbnail="The embed thumbnail, '_' to remove it",
    )
    @app_commands.guild_only()
    async def edit_embed(
        interaction: discord.Interaction,
        message: str,
        title: str | None = None,
        description: str | None = None,
        color: str | None = None,
        url: str | None = None,
        image: str | None = None,
        footer: str | None = None,
        thumbnail: str | None = None,
    ) -> None:
        target = await _fetch_message(interaction, message)
        if target is None:
            return

        if interaction.client.user is None or target.author.id != interaction.client.user.id:
            await respond_err(interaction, "Cannot edit message!", "I am not the author of the specified message!")
            return
        if target.interaction is None:
            await respond_err(interaction, "Failure to edit embed", "This message is not an interaction!")
            return
        if target.interaction.name != "embed" or not target.embeds:
            await respond_err(
                interaction,
                "Failure to edit embed",
                "This message was an interaction, but not an embed interaction!",
            )
            return

        try:
            edited = merge_embed(target.embeds[0], title, description, color, url, image, footer, thumbnail)
        except ValueError as exc:
            await respond_err(interaction, "Invalid color provided", str(exc))
            return

        try:
            await target.edit(embed=edited)
        except discord.HTTPException as exc:
            await respond_err(interaction, "Error while handling message!", str(exc))
            return
        await respond_ok(interaction, "Successfully edited embed", "The message has been edited successfully!")

    logger.debug("Registered %d commands", len(tree.get_commands()))
