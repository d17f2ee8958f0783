"""
On-disk schema for the active-party snapshot.

The snapshot file is one JSON document holding every active party. Occupants
are stored as an explicitly tagged union so members and external players can
never be confused on reload.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..game.roster import External, Member, Occupant, Party, Slot

SNAPSHOT_VERSION = 1


class MemberRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["member"] = "member"
    id: str = Field(..., min_length=1)


class ExternalRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["external"] = "external"
    name: str = Field(..., min_length=1)


OccupantRecord = Annotated[MemberRecord | ExternalRecord, Field(discriminator="type")]


class SlotRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: str
    occupant: OccupantRecord | None = None


class PartyRecord(BaseModel):
    """One party as persisted. The party id is the key in ``SnapshotFile.parties``."""

    model_config = ConfigDict(extra="forbid")

    kind: str
    leader: MemberRecord
    slots: list[SlotRecord] = Field(..., min_length=1)
    created_at: datetime
    presentation_ref: str | None = None

    @field_validator("created_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v


class SnapshotFile(BaseModel):
    """Top-level document written to the party data file."""

    version: int = SNAPSHOT_VERSION
    parties: dict[str, PartyRecord] = Field(default_factory=dict)


def _occupant_to_record(occupant: Occupant | None) -> MemberRecord | ExternalRecord | None:
    if occupant is None:
        return None
    if isinstance(occupant, Member):
        return MemberRecord(id=occupant.id)
    return ExternalRecord(name=occupant.name)


def _record_to_occupant(record: MemberRecord | ExternalRecord | None) -> Occupant | None:
    if record is None:
        return None
    if isinstance(record, MemberRecord):
        return Member(record.id)
    return External(record.name)


def party_to_record(party: Party) -> PartyRecord:
    return PartyRecord(
        kind=party.kind,
        leader=MemberRecord(id=party.leader.id),
        slots=[SlotRecord(role=slot.role, occupant=_occupant_to_record(slot.occupant)) for slot in party.slots],
        created_at=party.created_at,
        presentation_ref=party.presentation_ref,
    )


def record_to_party(party_id: str, record: PartyRecord) -> Party:
    return Party(
        party_id=party_id,
        kind=record.kind,
        leader=Member(record.leader.id),
        slots=[Slot(role=slot.role, occupant=_record_to_occupant(slot.occupant)) for slot in record.slots],
        created_at=record.created_at,
        presentation_ref=record.presentation_ref,
    )


def build_snapshot(parties: dict[str, Party]) -> SnapshotFile:
    return SnapshotFile(parties={party_id: party_to_record(party) for party_id, party in parties.items()})
