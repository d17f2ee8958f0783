"""
Application container for the party bot.

Builds every component once, in dependency order, and owns their startup and
shutdown. Nothing in the package reaches for a module-level singleton; tests
construct the pieces they need directly or build a container from their own
``AppConfig``.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from .bot.client import PartyBotClient
from .bot.presentation import PartyPresenter
from .bot.router import InteractionRouter
from .events.event_bus import EventBus
from .game.party_service import PartyService
from .persistence.party_store import PartyStore
from .structured_logging.enhanced_logging_config import get_logger

if TYPE_CHECKING:
    from .config.models import AppConfig

logger = get_logger(__name__)


class ApplicationContainer:
    """Holds the wired bot components for one process."""

    def __init__(self, config: AppConfig) -> None:
        self.config = config
        lock_timeout = timedelta(seconds=config.party.lock_timeout_seconds)

        self.event_bus = EventBus()
        self.party_store = PartyStore(config.party.data_path)
        self.party_service = PartyService(
            self.party_store,
            self.event_bus,
            lock_timeout=lock_timeout,
            external_name_max_length=config.party.external_name_max_length,
        )
        self.router = InteractionRouter(
            self.party_service,
            channel_id=config.discord.target_channel_id,
            lock_timeout=lock_timeout,
            external_name_max_length=config.party.external_name_max_length,
        )
        self.client = PartyBotClient(
            self.router,
            channel_id=config.discord.target_channel_id,
            guild_id=config.discord.guild_id,
            on_startup=self.initialize,
        )
        self.presenter = PartyPresenter(self.party_service, self.client.get_target_channel)
        self.presenter.register(self.event_bus)
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Restore persisted parties.

        The client runs this from its setup hook, once logged in, so that
        parties which expired while the bot was down can have their messages
        edited to the locked state.
        """
        restored = await self.party_service.restore()
        self._initialized = True
        logger.info("Application container initialized", active_parties=restored)

    async def shutdown(self) -> None:
        """
        Stop timers, let pending renders finish, write the final snapshot and disconnect.

        Raises:
            PersistenceError: If the final snapshot could not be written
        """
        logger.info("Shutting down application container")
        await self.party_service.shutdown()
        await self.event_bus.drain()
        try:
            if self._initialized:
                self.party_service.save_now()
            else:
                # Nothing was restored; saving would wipe the store
                logger.warning("Parties were never restored; skipping final save")
        finally:
            if not self.client.is_closed():
                await self.client.close()
            self._initialized = False
            logger.info("Application container shutdown complete")
