"""
Fixtures for the discord adapter tests.

Interactions are MagicMocks shaped like ``discord.Interaction``: raw payload in
``data``, awaitable response methods, and ``response.is_done()`` reporting
False until a test says otherwise.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from partybot.bot.router import InteractionRouter
from partybot.game.party_service import PartyService

CHANNEL_ID = 555000


def _interaction(user_id=100, custom_id=None, values=None, components=None, guild_id=777):
    interaction = MagicMock()
    interaction.user.id = user_id
    interaction.guild_id = guild_id
    data = {}
    if custom_id is not None:
        data["custom_id"] = custom_id
    if values is not None:
        data["values"] = values
    if components is not None:
        data["components"] = components
    interaction.data = data
    interaction.response.is_done = MagicMock(return_value=False)
    interaction.response.send_message = AsyncMock()
    interaction.response.edit_message = AsyncMock()
    interaction.response.send_modal = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


@pytest.fixture
def make_interaction():
    return _interaction


@pytest_asyncio.fixture
async def service():
    """In-memory PartyService; no store, no event bus."""
    party_service = PartyService()
    yield party_service
    await party_service.shutdown()


@pytest.fixture
def router(service):
    return InteractionRouter(service, channel_id=CHANNEL_ID, lock_timeout=timedelta(hours=3))
