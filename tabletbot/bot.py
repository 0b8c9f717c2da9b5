"""Discord client: wires message events into the reference pipeline and component presses into sessions."""

import functools
import logging

import discord
from discord import app_commands

from tabletbot.commands import register_commands
from tabletbot.diagnostics import is_new_thread, prompt_for_diagnostics
from tabletbot.embeds import compose_reply, error_embed, respond_embed
from tabletbot.extract import extract_references
from tabletbot.resolve import ResourceResolver
from tabletbot.session import InteractionRouter, IssueSession
from tabletbot.store import StateStore

logger = logging.getLogger(__name__)


async def reply_to_references(
    message: discord.Message,
    resolver: ResourceResolver,
    router: InteractionRouter,
) -> None:
    """Reply to message with embeds for every reference it contains.

    Nothing is sent when the message has no references or none of them resolve.
    """
    references = extract_references(message.content)
    if references is None:
        return

    async with message.channel.typing():
        items = await resolver.resolve_all(references)
        embeds = compose_reply(items)
        if embeds is None:
            return
        session = IssueSession(router, message.id, message.author.id, embeds)
        send = functools.partial(message.reply, mention_author=False)

    try:
        await session.attach(send)
    except discord.HTTPException as exc:
        logger.warning("Failed to reply to message %d: %s", message.id, exc)


class TabletBot(discord.Client):
    def __init__(
        self,
        store: StateStore,
        resolver: ResourceResolver,
        sync_commands: bool = True,
        diagnostics_forum_id: int | None = None,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(intents=intents)
        self.store = store
        self.resolver = resolver
        self.router = InteractionRouter()
        self.tree = app_commands.CommandTree(self)
        self.tree.on_error = self.on_app_command_error
        self._sync_commands = sync_commands
        self.diagnostics_forum_id = diagnostics_forum_id
        # thread_create can fire more than once for the same thread
        self._prompted_threads: set[int] = set()

    async def setup_hook(self) -> None:
        register_commands(self.tree, self.store, self.router)
        if self._sync_commands:
            synced = await self.tree.sync()
            logger.info("Registered %d application commands", len(synced))

    async def on_ready(self) -> None:
        logger.info("Logged in as %s", self.user)

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return
        await reply_to_references(message, self.resolver, self.router)

    async def on_thread_create(self, thread: discord.Thread) -> None:
        if self.diagnostics_forum_id is None or thread.parent_id != self.diagnostics_forum_id:
            return
        if thread.id in self._prompted_threads or not is_new_thread(thread):
            return
        self._prompted_threads.add(thread.id)
        await prompt_for_diagnostics(self, thread)

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.component or not interaction.data:
            return
        custom_id = interaction.data.get("custom_id", "")
        if not self.router.publish(custom_id, interaction):
            logger.debug("No live session for component '%s'", custom_id)

    async def on_app_command_error(
        self,
        interaction: discord.Interaction,
        error: app_commands.AppCommandError,
    ) -> None:
        if isinstance(error, app_commands.NoPrivateMessage):
            embed = error_embed("This command cannot be ran in DMs.", "You cannot run this command in DMs.")
        else:
            name = interaction.command.name if interaction.command else "<unknown>"
            logger.error("An error occurred in command %s", name, exc_info=error)
            embed = error_embed("Command Error", str(error))
        await respond_embed(interaction, embed, ephemeral=True)
