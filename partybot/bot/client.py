"""Discord client wiring: slash commands and interaction dispatch."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import discord
from discord import app_commands

from ..structured_logging.enhanced_logging_config import get_logger, log_exception_once

if TYPE_CHECKING:
    from .router import InteractionRouter

logger = get_logger(__name__)

COMMANDS = {
    "formparty": "Start a Guild Wars Speed Clear party formation!",
    "listparties": "Show all active parties.",
    "help": "Show information about all GWPB features.",
}


def register_commands(tree: app_commands.CommandTree, router: InteractionRouter) -> None:
    """Add the bot's slash commands to ``tree``. Each one defers to the router."""

    @tree.command(name="formparty", description=COMMANDS["formparty"])
    async def formparty(interaction: discord.Interaction) -> None:
        await router.form_party(interaction)

    @tree.command(name="listparties", description=COMMANDS["listparties"])
    async def listparties(interaction: discord.Interaction) -> None:
        await router.list_parties(interaction)

    @tree.command(name="help", description=COMMANDS["help"])
    async def help_command(interaction: discord.Interaction) -> None:
        await router.show_help(interaction)


class PartyBotClient(discord.Client):
    """
    Gateway client for the party bot.

    Slash commands go through the command tree; button, select and modal
    interactions are handed to the router by custom id.
    """

    def __init__(
        self,
        router: InteractionRouter,
        *,
        channel_id: int,
        guild_id: int | None = None,
        on_startup: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        super().__init__(intents=discord.Intents.default())
        self.tree = app_commands.CommandTree(self)
        self._router = router
        self._channel_id = channel_id
        self._guild_id = guild_id
        self._on_startup = on_startup
        register_commands(self.tree, router)

    async def setup_hook(self) -> None:
        # Runs once after login and before the gateway connects, so channel
        # lookups work and no interaction can arrive ahead of the startup callback
        if self._on_startup is not None:
            await self._on_startup()
        if self._guild_id is not None:
            guild = discord.Object(id=self._guild_id)
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
        else:
            synced = await self.tree.sync()
        logger.info("Registered slash commands", count=len(synced), guild_id=self._guild_id)

    async def on_ready(self) -> None:
        logger.info("Bot ready", user=str(self.user), channel_id=self._channel_id)

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type in (discord.InteractionType.component, discord.InteractionType.modal_submit):
            await self._router.dispatch(interaction)

    async def get_target_channel(self) -> Any:
        """The channel party messages are posted to, or None if it cannot be reached."""
        channel = self.get_channel(self._channel_id)
        if channel is not None:
            return channel
        try:
            return await self.fetch_channel(self._channel_id)
        except discord.HTTPException as e:
            log_exception_once(logger, "error", "Failed to fetch target channel", exc=e, channel_id=self._channel_id)
            return None
