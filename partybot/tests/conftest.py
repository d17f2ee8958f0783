"""
Shared fixtures for the party bot test suite.

Services are built directly from their constructors; nothing here touches the
network or the real data directory.
"""

import os
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from partybot.events.event_bus import EventBus
from partybot.events.event_types import PartyUpdated
from partybot.game.party_service import PartyService
from partybot.persistence.party_store import PartyStore

os.environ.setdefault("LOGGING_ENVIRONMENT", "unit_test")
os.environ.setdefault("LOGGING_DISABLE_LOGGING", "true")

# pylint: disable=redefined-outer-name  # Reason: Test file - pytest fixture parameter names


class FakeClock:
    """Settable UTC clock for deterministic expiry arithmetic."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def party_store(tmp_path):
    """Store writing to a per-test temporary directory."""
    return PartyStore(tmp_path / "data" / "parties.json")


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def recorded_events(event_bus):
    """Every PartyUpdated published on ``event_bus``, in order."""
    events: list[PartyUpdated] = []
    event_bus.subscribe(PartyUpdated, events.append)
    return events


@pytest_asyncio.fixture
async def party_service(party_store, event_bus):
    """PartyService backed by a temporary store; timers are stopped on teardown."""
    service = PartyService(party_store, event_bus)
    yield service
    await service.shutdown()
