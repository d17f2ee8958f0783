"""
Unit tests for PartyService.

Covers: create, claim, vacate, switch_role, add_external, kick, promote,
disband, expire, attach_presentation, list_active, get_party, ping, restore,
save_now, plus per-party serialization of concurrent operations.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from partybot.events.event_types import PartyChange
from partybot.exceptions import (
    AlreadyAssignedError,
    EmptySlotError,
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
from partybot.game.party_service import PartyService
from partybot.game.roster import External, Member, Party, Slot, find_by_occupant
from partybot.game.run_templates import get_template

# pylint: disable=protected-access  # Reason: Test file - accessing protected members for unit testing
# pylint: disable=redefined-outer-name  # Reason: Test file - pytest fixture parameter names

LEADER = "100"


async def _form(service, kind="DoASC", leader=LEADER):
    party = await service.create(kind, leader)
    return party.party_id


def _holders(party, member_id):
    return [index for index, slot in enumerate(party.slots) if slot.occupant == Member(member_id)]


# ---- create ----
@pytest.mark.asyncio
async def test_create_party_has_vacant_template_slots(party_service):
    """A new party copies the template's roles and starts fully vacant."""
    party = await party_service.create("UrgozSC", LEADER)
    template = get_template("UrgozSC")
    assert party.party_id.startswith("party_")
    assert [slot.role for slot in party.slots] == list(template.roles)
    assert all(slot.occupant is None for slot in party.slots)
    assert party.leader == Member(LEADER)
    assert party.created_at.tzinfo is not None
    assert party.presentation_ref is None


@pytest.mark.asyncio
async def test_create_party_ids_are_unique(party_service):
    first = await party_service.create("DoASC", LEADER)
    second = await party_service.create("DoASC", LEADER)
    assert first.party_id != second.party_id
    assert len(party_service) == 2


@pytest.mark.asyncio
async def test_create_party_persists_arms_timer_and_emits(party_service, party_store, recorded_events):
    party = await party_service.create("UWSC", LEADER)
    assert party.party_id in party_store.load()
    assert party.party_id in party_service.scheduler.pending()
    assert [(e.party_id, e.change) for e in recorded_events] == [(party.party_id, PartyChange.CREATED)]


@pytest.mark.asyncio
async def test_create_unknown_kind_rejected(party_service, recorded_events):
    with pytest.raises(UnknownTemplateError):
        await party_service.create("NotARun", LEADER)
    assert len(party_service) == 0
    assert not recorded_events


# ---- claim ----
@pytest.mark.asyncio
async def test_claim_defaults_to_lowest_vacant_slot(party_service):
    party_id = await _form(party_service)
    await party_service.claim(party_id, "m1", 0)
    party = await party_service.claim(party_id, "m2")
    assert party.slots[1].occupant == Member("m2")


@pytest.mark.asyncio
async def test_claim_chosen_slot(party_service, recorded_events):
    party_id = await _form(party_service)
    party = await party_service.claim(party_id, "m1", 5)
    assert party.slots[5].occupant == Member("m1")
    assert recorded_events[-1].change is PartyChange.UPDATED


@pytest.mark.asyncio
async def test_claim_twice_rejected(party_service):
    party_id = await _form(party_service)
    await party_service.claim(party_id, "m1")
    with pytest.raises(AlreadyAssignedError):
        await party_service.claim(party_id, "m1", 4)


@pytest.mark.asyncio
async def test_claim_taken_slot_rejected(party_service):
    party_id = await _form(party_service)
    await party_service.claim(party_id, "m1", 2)
    with pytest.raises(SlotTakenError):
        await party_service.claim(party_id, "m2", 2)


@pytest.mark.asyncio
async def test_claim_full_party_rejected(party_service):
    party_id = await _form(party_service)
    for n in range(8):
        await party_service.claim(party_id, f"m{n}")
    with pytest.raises(PartyFullError):
        await party_service.claim(party_id, "late")


@pytest.mark.asyncio
@pytest.mark.parametrize("slot_index", [-1, 8, 99])
async def test_claim_out_of_range_slot_rejected(party_service, slot_index):
    party_id = await _form(party_service)
    with pytest.raises(InvalidSlotError):
        await party_service.claim(party_id, "m1", slot_index)


# ---- vacate ----
@pytest.mark.asyncio
async def test_vacate_clears_members_slot(party_service):
    party_id = await _form(party_service)
    await party_service.claim(party_id, "m1", 3)
    result = await party_service.vacate(party_id, "m1")
    assert result.slot_index == 3
    assert result.party.slots[3].occupant is None


@pytest.mark.asyncio
async def test_vacate_without_role_is_noop(party_service, recorded_events):
    party_id = await _form(party_service)
    result = await party_service.vacate(party_id, "m1")
    assert result.slot_index is None
    assert [e.change for e in recorded_events] == [PartyChange.CREATED]


# ---- switch_role ----
@pytest.mark.asyncio
async def test_switch_role_moves_member(party_service):
    party_id = await _form(party_service)
    await party_service.claim(party_id, "m1", 0)
    party = await party_service.switch_role(party_id, "m1", 3)
    assert party.slots[0].occupant is None
    assert party.slots[3].occupant == Member("m1")


@pytest.mark.asyncio
async def test_switch_role_to_current_slot_is_noop(party_service):
    party_id = await _form(party_service)
    await party_service.claim(party_id, "m1", 2)
    party = await party_service.switch_role(party_id, "m1", 2)
    assert _holders(party, "m1") == [2]


@pytest.mark.asyncio
async def test_switch_role_without_role_rejected(party_service):
    party_id = await _form(party_service)
    with pytest.raises(NoCurrentRoleError):
        await party_service.switch_role(party_id, "m1", 1)


@pytest.mark.asyncio
async def test_switch_role_to_taken_slot_rejected(party_service):
    party_id = await _form(party_service)
    await party_service.claim(party_id, "m1", 0)
    await party_service.claim(party_id, "m2", 1)
    with pytest.raises(SlotTakenError):
        await party_service.switch_role(party_id, "m1", 1)
    party = party_service.get_party(party_id)
    assert party.slots[0].occupant == Member("m1")


@pytest.mark.asyncio
async def test_member_never_holds_two_slots(party_service):
    """Uniqueness holds after every step of a claim/vacate/switch sequence."""
    party_id = await _form(party_service)
    steps = [
        ("claim", "m1", 0),
        ("claim", "m2", None),
        ("switch", "m1", 5),
        ("claim", "m1", 0),
        ("vacate", "m2", None),
        ("switch", "m1", 1),
        ("claim", "m2", 1),
        ("switch", "m2", 0),
    ]
    for op, member_id, index in steps:
        try:
            if op == "claim":
                await party_service.claim(party_id, member_id, index)
            elif op == "switch":
                await party_service.switch_role(party_id, member_id, index)
            else:
                await party_service.vacate(party_id, member_id)
        except (AlreadyAssignedError, NoCurrentRoleError, SlotTakenError):
            pass
        party = party_service.get_party(party_id)
        for candidate in ("m1", "m2"):
            assert len(_holders(party, candidate)) <= 1


# ---- add_external ----
@pytest.mark.asyncio
async def test_add_external_sets_trimmed_name(party_service):
    party_id = await _form(party_service)
    party = await party_service.add_external(party_id, LEADER, 4, "  Bob  ")
    assert party.slots[4].occupant == External("Bob")


@pytest.mark.asyncio
async def test_add_external_by_non_leader_rejected(party_service):
    party_id = await _form(party_service)
    with pytest.raises(NotLeaderError) as exc_info:
        await party_service.add_external(party_id, "m1", 4, "Bob")
    assert "external players" in exc_info.value.user_friendly


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["", "   ", "x" * 51])
async def test_add_external_invalid_name_rejected(party_service, name):
    party_id = await _form(party_service)
    with pytest.raises(InvalidNameError):
        await party_service.add_external(party_id, LEADER, 0, name)


@pytest.mark.asyncio
async def test_add_external_name_at_limit_accepted(party_service):
    party_id = await _form(party_service)
    party = await party_service.add_external(party_id, LEADER, 0, "x" * 50)
    assert party.slots[0].occupant == External("x" * 50)


@pytest.mark.asyncio
async def test_add_external_on_taken_slot_rejected(party_service):
    party_id = await _form(party_service)
    await party_service.claim(party_id, "m1", 0)
    with pytest.raises(SlotTakenError):
        await party_service.add_external(party_id, LEADER, 0, "Bob")


# ---- kick ----
@pytest.mark.asyncio
async def test_kick_returns_removed_occupant(party_service):
    party_id = await _form(party_service)
    await party_service.add_external(party_id, LEADER, 6, "Bob")
    result = await party_service.kick(party_id, LEADER, 6)
    assert result.removed == External("Bob")
    assert result.slot_index == 6
    assert result.party.slots[6].occupant is None


@pytest.mark.asyncio
async def test_kick_empty_slot_rejected(party_service):
    party_id = await _form(party_service)
    with pytest.raises(EmptySlotError):
        await party_service.kick(party_id, LEADER, 0)


@pytest.mark.asyncio
async def test_leader_can_kick_themself(party_service):
    party_id = await _form(party_service)
    await party_service.claim(party_id, LEADER, 0)
    result = await party_service.kick(party_id, LEADER, 0)
    assert result.removed == Member(LEADER)
    assert result.party.leader == Member(LEADER)


# ---- promote ----
@pytest.mark.asyncio
async def test_promote_seated_member(party_service):
    party_id = await _form(party_service)
    await party_service.claim(party_id, "m1", 2)
    party = await party_service.promote(party_id, LEADER, "m1")
    assert party.leader == Member("m1")
    with pytest.raises(NotLeaderError):
        await party_service.promote(party_id, LEADER, "m1")


@pytest.mark.asyncio
async def test_promote_unseated_member_rejected(party_service):
    party_id = await _form(party_service)
    with pytest.raises(InvalidTargetError) as exc_info:
        await party_service.promote(party_id, LEADER, "stranger")
    assert exc_info.value.user_friendly == "That player is not in the party."


@pytest.mark.asyncio
async def test_leader_who_leaves_slot_stays_leader(party_service):
    party_id = await _form(party_service)
    await party_service.claim(party_id, "m1", 0)
    await party_service.promote(party_id, LEADER, "m1")
    result = await party_service.vacate(party_id, "m1")
    assert result.party.leader == Member("m1")


# ---- disband / expire ----
@pytest.mark.asyncio
async def test_disband_by_non_leader_rejected(party_service):
    party_id = await _form(party_service)
    with pytest.raises(NotLeaderError) as exc_info:
        await party_service.disband(party_id, "m1")
    assert exc_info.value.user_friendly == "Only the party leader can disband the party!"
    assert party_service.get_party(party_id) is not None


@pytest.mark.asyncio
async def test_disband_evicts_cancels_timer_and_emits(party_service, party_store, recorded_events):
    party_id = await _form(party_service)
    final = await party_service.disband(party_id, LEADER)
    assert final.party_id == party_id
    assert party_service.get_party(party_id) is None
    assert party_id not in party_service.scheduler.pending()
    assert party_id not in party_store.load()
    assert recorded_events[-1].change is PartyChange.DISBANDED


@pytest.mark.asyncio
async def test_expire_twice_is_noop(party_service, recorded_events):
    party_id = await _form(party_service)
    first = await party_service.expire(party_id)
    second = await party_service.expire(party_id)
    assert first is not None and first.party_id == party_id
    assert second is None
    assert [e.change for e in recorded_events].count(PartyChange.LOCKED) == 1
    assert party_id not in party_service.scheduler.pending()


@pytest.mark.asyncio
async def test_expire_after_disband_is_noop(party_service, recorded_events):
    party_id = await _form(party_service)
    await party_service.disband(party_id, LEADER)
    assert await party_service.expire(party_id) is None
    assert PartyChange.LOCKED not in [e.change for e in recorded_events]


@pytest.mark.asyncio
async def test_timer_expires_party(party_store, event_bus, recorded_events):
    service = PartyService(party_store, event_bus, lock_timeout=timedelta(milliseconds=20))
    try:
        party = await service.create("DoASC", LEADER)
        await asyncio.sleep(0.2)
        assert service.get_party(party.party_id) is None
        assert recorded_events[-1].change is PartyChange.LOCKED
    finally:
        await service.shutdown()


# ---- unknown ids ----
@pytest.mark.asyncio
@pytest.mark.parametrize(
    "call",
    [
        lambda s: s.claim("party_missing", "m1"),
        lambda s: s.vacate("party_missing", "m1"),
        lambda s: s.switch_role("party_missing", "m1", 0),
        lambda s: s.add_external("party_missing", LEADER, 0, "Bob"),
        lambda s: s.kick("party_missing", LEADER, 0),
        lambda s: s.promote("party_missing", LEADER, "m1"),
        lambda s: s.disband("party_missing", LEADER),
        lambda s: s.attach_presentation("party_missing", "123"),
    ],
)
async def test_operations_on_unknown_party_raise_not_found(party_service, call):
    with pytest.raises(PartyNotFoundError):
        await call(party_service)


def test_ping_unknown_party_raises_not_found():
    service = PartyService()
    with pytest.raises(PartyNotFoundError):
        service.ping("party_missing", LEADER)


# ---- read-only views ----
@pytest.mark.asyncio
async def test_ping_lists_members_in_slot_order(party_service, recorded_events):
    party_id = await _form(party_service)
    await party_service.claim(party_id, "m2", 5)
    await party_service.claim(party_id, "m1", 1)
    await party_service.add_external(party_id, LEADER, 0, "Bob")
    events_before = len(recorded_events)
    assert party_service.ping(party_id, LEADER) == ["m1", "m2"]
    assert len(recorded_events) == events_before


@pytest.mark.asyncio
async def test_ping_without_members_rejected(party_service):
    party_id = await _form(party_service)
    await party_service.add_external(party_id, LEADER, 0, "Bob")
    with pytest.raises(NothingToPingError):
        party_service.ping(party_id, LEADER)


@pytest.mark.asyncio
async def test_ping_by_non_leader_rejected(party_service):
    party_id = await _form(party_service)
    await party_service.claim(party_id, "m1")
    with pytest.raises(NotLeaderError):
        party_service.ping(party_id, "m1")


@pytest.mark.asyncio
async def test_list_active_captures_ids_at_call_time(party_service):
    first = await _form(party_service)
    listing = party_service.list_active()
    await _form(party_service)
    assert [party.party_id for party in listing] == [first]
    assert len(list(party_service.list_active())) == 2


@pytest.mark.asyncio
async def test_list_active_copies_parties_at_call_time(party_service):
    party_id = await _form(party_service)
    listing = party_service.list_active()
    await party_service.claim(party_id, "200", 0)
    (listed,) = list(listing)
    assert listed.slots[0].occupant is None
    assert party_service.get_party(party_id).slots[0].occupant == Member("200")


@pytest.mark.asyncio
async def test_get_party_returns_detached_snapshot(party_service):
    party_id = await _form(party_service)
    snapshot = party_service.get_party(party_id)
    snapshot.slots[0].occupant = Member("intruder")
    assert party_service.get_party(party_id).slots[0].occupant is None


@pytest.mark.asyncio
async def test_attach_presentation_is_persisted(party_service, party_store):
    party_id = await _form(party_service)
    party = await party_service.attach_presentation(party_id, "987654321")
    assert party.presentation_ref == "987654321"
    assert party_store.load()[party_id].presentation_ref == "987654321"


# ---- concurrency ----
@pytest.mark.asyncio
async def test_concurrent_claims_on_same_slot_exactly_one_wins(party_service):
    party_id = await _form(party_service)
    results = await asyncio.gather(
        party_service.claim(party_id, "A", 0),
        party_service.claim(party_id, "B", 0),
        return_exceptions=True,
    )
    assert isinstance(results[0], Party)
    assert isinstance(results[1], SlotTakenError)
    assert party_service.get_party(party_id).slots[0].occupant == Member("A")


@pytest.mark.asyncio
async def test_disband_racing_claim_leaves_no_trace(party_service):
    party_id = await _form(party_service)
    results = await asyncio.gather(
        party_service.disband(party_id, LEADER),
        party_service.claim(party_id, "m1"),
        return_exceptions=True,
    )
    assert isinstance(results[1], PartyNotFoundError)
    assert party_service.get_party(party_id) is None


# ---- persistence failures ----
@pytest.mark.asyncio
async def test_persistence_failure_keeps_memory_state(event_bus, recorded_events):
    class FailingStore:
        def save(self, parties):
            raise PersistenceError("disk full")

        def load(self):
            return {}

    service = PartyService(FailingStore(), event_bus)
    try:
        party = await service.create("DoASC", LEADER)
        claimed = await service.claim(party.party_id, "m1")
        assert claimed.slots[0].occupant == Member("m1")
        assert recorded_events[-1].change is PartyChange.UPDATED
    finally:
        await service.shutdown()


# ---- restore ----
def _persisted_party(party_id, created_at, **slots):
    template = get_template("DoASC")
    party = Party(
        party_id=party_id,
        kind=template.kind,
        leader=Member(LEADER),
        slots=[Slot(role=role) for role in template.roles],
        created_at=created_at,
        presentation_ref="555",
    )
    for index, occupant in slots.items():
        party.slots[int(index.lstrip("s"))].occupant = occupant
    return party


@pytest.mark.asyncio
async def test_restore_expires_overdue_party_before_returning(party_store, event_bus, recorded_events):
    now = datetime.now(UTC)
    overdue = _persisted_party("party_old", now - timedelta(hours=4))
    fresh = _persisted_party("party_new", now - timedelta(minutes=5), s0=Member("m1"), s1=External("Bob"))
    party_store.save({overdue.party_id: overdue, fresh.party_id: fresh})

    service = PartyService(party_store, event_bus, lock_timeout=timedelta(hours=3))
    try:
        active = await service.restore()
        assert active == 1
        assert service.get_party("party_old") is None
        with pytest.raises(PartyNotFoundError):
            await service.claim("party_old", "m9")
        restored = service.get_party("party_new")
        assert restored.slots[0].occupant == Member("m1")
        assert restored.slots[1].occupant == External("Bob")
        assert restored.created_at == fresh.created_at
        assert service.scheduler.pending() == ["party_new"]
        assert [(e.party_id, e.change) for e in recorded_events] == [("party_old", PartyChange.LOCKED)]
        assert set(party_store.load()) == {"party_new"}
    finally:
        await service.shutdown()


@pytest.mark.asyncio
async def test_restore_corrupt_store_starts_empty(party_store):
    party_store.path.parent.mkdir(parents=True, exist_ok=True)
    party_store.path.write_text("{not json", encoding="utf-8")
    service = PartyService(party_store)
    try:
        assert await service.restore() == 0
        assert list(service.list_active()) == []
    finally:
        await service.shutdown()


@pytest.mark.asyncio
async def test_save_now_writes_active_set(party_service, party_store):
    party_id = await _form(party_service)
    party_store.path.unlink()
    party_service.save_now()
    assert set(party_store.load()) == {party_id}


# ---- scenarios ----
@pytest.mark.asyncio
async def test_scenario_claim_switch_kick_disband(party_service):
    party = await party_service.create("DoASC", LEADER)
    party_id = party.party_id

    party = await party_service.claim(party_id, "m1")
    assert find_by_occupant(party, Member("m1")) == 0
    assert party.slots[0].role == "MT"

    party = await party_service.switch_role(party_id, "m1", 3)
    assert party.slots[0].occupant is None
    assert party.slots[3].occupant == Member("m1")

    with pytest.raises(NotLeaderError):
        await party_service.kick(party_id, "m1", 3)

    result = await party_service.kick(party_id, LEADER, 3)
    assert result.party.slots[3].occupant is None

    await party_service.disband(party_id, LEADER)
    assert party_id not in [p.party_id for p in party_service.list_active()]


@pytest.mark.asyncio
async def test_scenario_external_cannot_be_promoted(party_service):
    party_id = await _form(party_service)
    party = await party_service.add_external(party_id, LEADER, 2, "Bob")
    assert party.slots[2].occupant == External("Bob")
    with pytest.raises(InvalidTargetError) as exc_info:
        await party_service.promote(party_id, LEADER, "Bob")
    assert "external" in exc_info.value.user_friendly
