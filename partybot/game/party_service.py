"""
Party service for the party bot.

Owns the set of active parties and every change made to them. Each operation
runs under its party's lock from the first precondition check until the
snapshot has been written, checks every precondition before touching state,
and raises a ``PartyOperationError`` subclass when one does not hold.
Successful changes are persisted as a whole snapshot and announced on the
event bus as ``PartyUpdated`` render requests.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from ..config.models import DEFAULT_LOCK_TIMEOUT_SECONDS
from ..events.event_types import PartyChange, PartyUpdated
from ..exceptions import (
    AlreadyAssignedError,
    EmptySlotError,
    ErrorContext,
    InvalidNameError,
    InvalidSlotError,
    InvalidTargetError,
    NoCurrentRoleError,
    NotLeaderError,
    NothingToPingError,
    PartyFullError,
    PartyNotFoundError,
    PersistenceError,
    SlotTakenError,
    UnknownTemplateError,
)
from ..services.expiry_scheduler import ExpiryScheduler
from ..services.party_lock import PartyLockRegistry
from ..structured_logging.enhanced_logging_config import get_logger, log_exception_once
from .roster import (
    External,
    Member,
    Occupant,
    Party,
    Slot,
    available_slots,
    find_by_occupant,
    member_occupants,
)
from .run_templates import get_template

if TYPE_CHECKING:
    from ..events.event_bus import EventBus
    from ..persistence.party_store import PartyStore

logger = get_logger(__name__)

DEFAULT_EXTERNAL_NAME_MAX_LENGTH = 50


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_party_id() -> str:
    return f"party_{uuid.uuid4()}"


@dataclass(frozen=True)
class VacateResult:
    """Outcome of ``vacate``: ``slot_index`` is None when the member held no role."""

    party: Party
    slot_index: int | None


@dataclass(frozen=True)
class KickResult:
    """Outcome of ``kick``: the occupant that was removed from ``slot_index``."""

    party: Party
    slot_index: int
    removed: Occupant


class PartyService:
    """
    Lifecycle manager for active parties.

    create, claim, vacate, switch_role, add_external, kick, promote, disband and
    expire mutate; list_active, get_party and ping only read. Parties leave the
    active set through disband or expire and are never brought back.
    """

    def __init__(
        self,
        store: PartyStore | None = None,
        event_bus: EventBus | None = None,
        *,
        lock_timeout: timedelta = timedelta(seconds=DEFAULT_LOCK_TIMEOUT_SECONDS),
        external_name_max_length: int = DEFAULT_EXTERNAL_NAME_MAX_LENGTH,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_party_id,
    ) -> None:
        self._parties: dict[str, Party] = {}
        self._store = store
        self._event_bus = event_bus
        self._clock = clock
        self._id_factory = id_factory
        self._external_name_max_length = external_name_max_length
        self._locks = PartyLockRegistry()
        self._save_lock = asyncio.Lock()
        self._scheduler = ExpiryScheduler(lock_timeout, self.expire, clock=clock)
        self._logger = get_logger(__name__)
        self._logger.info(
            "PartyService initialized",
            has_store=bool(store),
            has_event_bus=bool(event_bus),
            lock_timeout_seconds=lock_timeout.total_seconds(),
        )

    @property
    def scheduler(self) -> ExpiryScheduler:
        return self._scheduler

    # ---- internal helpers ----

    def _require(self, party_id: str, operation: str, user_id: str | None = None) -> Party:
        party = self._parties.get(party_id)
        if party is None:
            raise PartyNotFoundError(
                f"Party {party_id} is not active",
                context=ErrorContext(user_id=user_id, party_id=party_id, operation=operation),
            )
        return party

    @staticmethod
    def _require_leader(party: Party, requester_id: str, operation: str, user_friendly: str) -> None:
        if party.leader != Member(requester_id):
            raise NotLeaderError(
                f"{requester_id} is not the leader of {party.party_id}",
                context=ErrorContext(user_id=requester_id, party_id=party.party_id, operation=operation),
                user_friendly=user_friendly,
            )

    @staticmethod
    def _require_slot(party: Party, index: int, operation: str, user_id: str) -> Slot:
        if not 0 <= index < len(party.slots):
            raise InvalidSlotError(
                f"Slot {index} out of range for party of size {len(party.slots)}",
                context=ErrorContext(user_id=user_id, party_id=party.party_id, operation=operation),
            )
        return party.slots[index]

    async def _persist(self) -> None:
        """Write the whole active set. Failures are logged; memory stays authoritative."""
        if self._store is None:
            return
        async with self._save_lock:
            # Snapshot on the loop so the writer thread never sees a half-applied change
            parties = {party_id: party.snapshot() for party_id, party in self._parties.items()}
            try:
                await asyncio.to_thread(self._store.save, parties)
            except PersistenceError as e:
                log_exception_once(self._logger, "error", "Failed to save party data", exc=e)
                self._logger.warning("Keeping in-memory party state; next save will reconcile", count=len(parties))

    def _emit_party_updated(self, party: Party, change: PartyChange) -> None:
        """Publish a render request if an event bus is set."""
        if not self._event_bus:
            return
        self._event_bus.publish(PartyUpdated(party_id=party.party_id, party=party.snapshot(), change=change))

    # ---- lifecycle operations ----

    async def create(self, kind: str, leader_id: str) -> Party:
        """
        Form a new party of ``kind`` led by ``leader_id``.

        All slots start vacant and the expiry timer starts now.
        """
        template = get_template(kind)
        if template is None:
            raise UnknownTemplateError(
                f"Unknown run type {kind!r}",
                context=ErrorContext(user_id=leader_id, operation="create", metadata={"kind": kind}),
            )
        party_id = self._id_factory()
        async with self._locks.acquire(party_id):
            party = Party(
                party_id=party_id,
                kind=template.kind,
                leader=Member(leader_id),
                slots=[Slot(role=role) for role in template.roles],
                created_at=self._clock(),
            )
            self._parties[party_id] = party
            self._scheduler.arm(party_id, party.created_at)
            await self._persist()
            self._emit_party_updated(party, PartyChange.CREATED)
            self._logger.info("Party created", party_id=party_id, kind=party.kind, leader_id=leader_id)
            return party.snapshot()

    async def claim(self, party_id: str, member_id: str, slot_index: int | None = None) -> Party:
        """
        Seat ``member_id`` in a vacant slot.

        ``slot_index`` is the slot the member picked from ``available_slots``;
        when omitted the lowest vacant slot is used.
        """
        async with self._locks.acquire(party_id):
            party = self._require(party_id, "claim", member_id)
            member = Member(member_id)
            context = ErrorContext(user_id=member_id, party_id=party_id, operation="claim")
            if find_by_occupant(party, member) is not None:
                raise AlreadyAssignedError(f"{member_id} already holds a slot", context=context)
            vacant = available_slots(party)
            if not vacant:
                raise PartyFullError(f"Party {party_id} is full", context=context)
            index = vacant[0][0] if slot_index is None else slot_index
            slot = self._require_slot(party, index, "claim", member_id)
            if slot.occupant is not None:
                raise SlotTakenError(f"Slot {index} is already occupied", context=context)

            slot.occupant = member
            await self._persist()
            self._emit_party_updated(party, PartyChange.UPDATED)
            self._logger.info("Role claimed", party_id=party_id, member_id=member_id, slot=index, role=slot.role)
            return party.snapshot()

    async def vacate(self, party_id: str, member_id: str) -> VacateResult:
        """Clear whatever slot ``member_id`` holds. Holding none is not an error."""
        async with self._locks.acquire(party_id):
            party = self._require(party_id, "vacate", member_id)
            index = find_by_occupant(party, Member(member_id))
            if index is None:
                self._logger.debug("Vacate without a role", party_id=party_id, member_id=member_id)
                return VacateResult(party=party.snapshot(), slot_index=None)

            party.slots[index].occupant = None
            await self._persist()
            self._emit_party_updated(party, PartyChange.UPDATED)
            self._logger.info("Role vacated", party_id=party_id, member_id=member_id, slot=index)
            return VacateResult(party=party.snapshot(), slot_index=index)

    async def switch_role(self, party_id: str, member_id: str, target_index: int) -> Party:
        """Move ``member_id`` from their current slot to ``target_index`` in one step."""
        async with self._locks.acquire(party_id):
            party = self._require(party_id, "switch_role", member_id)
            member = Member(member_id)
            context = ErrorContext(user_id=member_id, party_id=party_id, operation="switch_role")
            current = find_by_occupant(party, member)
            if current is None:
                raise NoCurrentRoleError(f"{member_id} holds no slot", context=context)
            target = self._require_slot(party, target_index, "switch_role", member_id)
            if target.occupant is not None and target.occupant != member:
                raise SlotTakenError(f"Slot {target_index} is already occupied", context=context)
            if current == target_index:
                return party.snapshot()

            party.slots[current].occupant = None
            target.occupant = member
            await self._persist()
            self._emit_party_updated(party, PartyChange.UPDATED)
            self._logger.info(
                "Role switched", party_id=party_id, member_id=member_id, from_slot=current, to_slot=target_index
            )
            return party.snapshot()

    async def add_external(self, party_id: str, requester_id: str, target_index: int, display_name: str) -> Party:
        """Reserve ``target_index`` for a player outside the platform. Leader only."""
        async with self._locks.acquire(party_id):
            party = self._require(party_id, "add_external", requester_id)
            self._require_leader(
                party, requester_id, "add_external", "Only the party leader can reserve slots for external players."
            )
            context = ErrorContext(user_id=requester_id, party_id=party_id, operation="add_external")
            name = display_name.strip()
            if not name:
                raise InvalidNameError("External player name is empty", context=context)
            if len(name) > self._external_name_max_length:
                raise InvalidNameError(
                    f"External player name exceeds {self._external_name_max_length} characters",
                    context=context,
                    user_friendly=f"IGN must be at most {self._external_name_max_length} characters.",
                )
            slot = self._require_slot(party, target_index, "add_external", requester_id)
            if slot.occupant is not None:
                raise SlotTakenError(f"Slot {target_index} is already occupied", context=context)

            slot.occupant = External(name)
            await self._persist()
            self._emit_party_updated(party, PartyChange.UPDATED)
            self._logger.info("External player added", party_id=party_id, slot=target_index, external_name=name)
            return party.snapshot()

    async def kick(self, party_id: str, requester_id: str, target_index: int) -> KickResult:
        """Clear ``target_index`` whoever holds it. Leader only."""
        async with self._locks.acquire(party_id):
            party = self._require(party_id, "kick", requester_id)
            self._require_leader(party, requester_id, "kick", "Only the party leader can kick players.")
            slot = self._require_slot(party, target_index, "kick", requester_id)
            removed = slot.occupant
            if removed is None:
                raise EmptySlotError(
                    f"Slot {target_index} is already empty",
                    context=ErrorContext(user_id=requester_id, party_id=party_id, operation="kick"),
                )

            slot.occupant = None
            await self._persist()
            self._emit_party_updated(party, PartyChange.UPDATED)
            self._logger.info("Slot kicked", party_id=party_id, slot=target_index, by_id=requester_id)
            return KickResult(party=party.snapshot(), slot_index=target_index, removed=removed)

    async def promote(self, party_id: str, requester_id: str, new_leader_id: str) -> Party:
        """
        Hand leadership to another seated platform member. Leader only.

        External players can never lead. The new leader may later leave their
        slot and stays leader.
        """
        async with self._locks.acquire(party_id):
            party = self._require(party_id, "promote", requester_id)
            self._require_leader(party, requester_id, "promote", "Only the party leader can promote a new leader.")
            candidate = Member(new_leader_id)
            if find_by_occupant(party, candidate) is None:
                context = ErrorContext(user_id=requester_id, party_id=party_id, operation="promote")
                if find_by_occupant(party, External(new_leader_id)) is not None:
                    raise InvalidTargetError(f"{new_leader_id} is an external player", context=context)
                raise InvalidTargetError(
                    f"{new_leader_id} is not seated in the party",
                    context=context,
                    user_friendly="That player is not in the party.",
                )

            party.leader = candidate
            await self._persist()
            self._emit_party_updated(party, PartyChange.UPDATED)
            self._logger.info("Leader promoted", party_id=party_id, from_id=requester_id, leader_id=new_leader_id)
            return party.snapshot()

    async def disband(self, party_id: str, requester_id: str) -> Party:
        """Terminate the party at the leader's request. Returns its final state."""
        async with self._locks.acquire(party_id):
            party = self._require(party_id, "disband", requester_id)
            self._require_leader(party, requester_id, "disband", "Only the party leader can disband the party!")

            del self._parties[party_id]
            self._scheduler.cancel(party_id)
            await self._persist()
            self._emit_party_updated(party, PartyChange.DISBANDED)
            self._logger.info("Party disbanded", party_id=party_id, kind=party.kind, by_id=requester_id)
            return party.snapshot()

    async def expire(self, party_id: str) -> Party | None:
        """
        Terminate the party because its time window ran out.

        A party that is already gone (disbanded, or expired before) is left
        alone and None is returned.
        """
        async with self._locks.acquire(party_id):
            party = self._parties.pop(party_id, None)
            if party is None:
                self._logger.debug("Expiry for inactive party ignored", party_id=party_id)
                return None

            self._scheduler.cancel(party_id)
            await self._persist()
            self._emit_party_updated(party, PartyChange.LOCKED)
            self._logger.info("Party auto-locked after timeout", party_id=party_id, kind=party.kind)
            return party.snapshot()

    async def attach_presentation(self, party_id: str, presentation_ref: str) -> Party:
        """Record the handle of the party's rendered message once it has been posted."""
        async with self._locks.acquire(party_id):
            party = self._require(party_id, "attach_presentation")
            party.presentation_ref = presentation_ref
            await self._persist()
            self._logger.debug("Presentation attached", party_id=party_id, presentation_ref=presentation_ref)
            return party.snapshot()

    # ---- read-only views ----

    def list_active(self) -> Iterator[Party]:
        """
        Iterate over the parties active at call time.

        Every party is copied before this returns, so changes made while the
        iterator is consumed are not seen; each call starts over from the
        current state.
        """
        return iter([party.snapshot() for party in self._parties.values()])

    def get_party(self, party_id: str) -> Party | None:
        party = self._parties.get(party_id)
        return party.snapshot() if party is not None else None

    def ping(self, party_id: str, requester_id: str) -> list[str]:
        """Platform ids of every seated member, in slot order. Leader only; changes nothing."""
        party = self._require(party_id, "ping", requester_id)
        self._require_leader(party, requester_id, "ping", "Only the leader can ping the party.")
        member_ids = [member.id for _, member in member_occupants(party)]
        if not member_ids:
            raise NothingToPingError(
                f"No platform members seated in {party_id}",
                context=ErrorContext(user_id=requester_id, party_id=party_id, operation="ping"),
            )
        return member_ids

    def __len__(self) -> int:
        return len(self._parties)

    # ---- startup / shutdown ----

    async def restore(self) -> int:
        """
        Load persisted parties and re-arm their timers from their creation time.

        Parties whose deadline passed while the bot was down are expired before
        this returns, so no operation can reach them. An unreadable store is
        logged and treated as empty.

        Returns:
            Number of parties still active after restoring.
        """
        if self._store is None:
            return 0
        try:
            loaded = await asyncio.to_thread(self._store.load)
        except PersistenceError as e:
            log_exception_once(self._logger, "error", "Failed to load party data", exc=e)
            loaded = {}

        overdue: list[str] = []
        for party_id, party in loaded.items():
            self._parties[party_id] = party
            if self._scheduler.is_overdue(party.created_at):
                overdue.append(party_id)
            else:
                self._scheduler.arm(party_id, party.created_at)

        for party_id in overdue:
            await self.expire(party_id)

        self._logger.info("Parties restored", loaded=len(loaded), expired_on_load=len(overdue), active=len(self))
        return len(self)

    def save_now(self) -> None:
        """
        Write the active set synchronously. Used for the final save at shutdown.

        Raises:
            PersistenceError: If the snapshot could not be written
        """
        if self._store is None:
            return
        self._store.save({party_id: party.snapshot() for party_id, party in self._parties.items()})
        self._logger.info("Saved parties to disk", count=len(self._parties))

    async def shutdown(self) -> None:
        """Stop every pending expiry timer."""
        await self._scheduler.shutdown()
