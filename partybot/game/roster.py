"""
Roster model for party formations.

Pure data plus read-only helpers. Nothing here performs I/O or locking; the
party service owns every mutation.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True)
class Member:
    """A slot occupant identified by their platform user id."""

    id: str


@dataclass(frozen=True)
class External:
    """A slot occupant entered by name only; has no platform identity."""

    name: str


Occupant = Member | External


@dataclass
class Slot:
    """One role position in a party. ``occupant`` is None while vacant."""

    role: str
    occupant: Occupant | None = None

    @property
    def is_vacant(self) -> bool:
        return self.occupant is None


@dataclass
class Party:
    """
    In-memory party roster.

    ``slots`` keeps its length and role order for the party's lifetime.
    ``presentation_ref`` is the rendered message handle and stays None until
    the first render has been posted.
    """

    party_id: str
    kind: str
    leader: Member
    slots: list[Slot]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    presentation_ref: str | None = None

    @property
    def size(self) -> int:
        return len(self.slots)

    def snapshot(self) -> Party:
        """Deep copy handed out to callers so they never hold live state."""
        return copy.deepcopy(self)


def find_by_occupant(party: Party, occupant: Occupant) -> int | None:
    """Index of the slot held by ``occupant``, or None."""
    for index, slot in enumerate(party.slots):
        if slot.occupant == occupant:
            return index
    return None


def available_slots(party: Party) -> list[tuple[int, str]]:
    """Vacant slots as (index, role), ascending by index."""
    return [(index, slot.role) for index, slot in enumerate(party.slots) if slot.occupant is None]


def filled_slots(party: Party) -> list[tuple[int, Slot]]:
    """Occupied slots as (index, slot), ascending by index."""
    return [(index, slot) for index, slot in enumerate(party.slots) if slot.occupant is not None]


def member_occupants(party: Party) -> list[tuple[int, Member]]:
    """Platform members seated in the party, in slot order. Externals are skipped."""
    return [(index, slot.occupant) for index, slot in enumerate(party.slots) if isinstance(slot.occupant, Member)]


def is_full(party: Party) -> bool:
    return all(slot.occupant is not None for slot in party.slots)


def occupied_count(party: Party) -> int:
    return sum(1 for slot in party.slots if slot.occupant is not None)
