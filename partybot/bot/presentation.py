"""
Rendering of parties as chat messages.

The builders here are pure: they turn a ``Party`` snapshot into embeds,
component views and modals. ``PartyPresenter`` subscribes to ``PartyUpdated``
and keeps each party's posted message in step with its roster.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import discord

from ..config.models import BOT_VERSION
from ..events.event_types import PartyChange, PartyUpdated
from ..exceptions import PartyNotFoundError
from ..game.roster import (
    External,
    Member,
    Occupant,
    Party,
    available_slots,
    filled_slots,
    member_occupants,
    occupied_count,
)
from ..game.run_templates import template_kinds
from ..structured_logging.enhanced_logging_config import get_logger, log_exception_once

if TYPE_CHECKING:
    from ..events.event_bus import EventBus
    from ..game.party_service import PartyService

logger = get_logger(__name__)

COLOR_SUCCESS = 0x57F287
COLOR_DANGER = 0xED4245
COLOR_PRIMARY = 0x5865F2
COLOR_LOCKED = 0x2B2D31

IGN_INPUT_ID = "ign_input"
RUN_SELECT_ID = "select_run"

ChannelProvider = Callable[[], Awaitable[Any]]


def format_occupant(occupant: Occupant | None) -> str:
    if occupant is None:
        return "_Vacant_"
    if isinstance(occupant, External):
        return f"**{occupant.name}** (External)"
    return f"<@{occupant.id}>"


def describe_occupant(occupant: Occupant) -> str:
    """Plain-text label used in select menu descriptions and kick confirmations."""
    if isinstance(occupant, External):
        return f"External: {occupant.name}"
    return f"Discord: {occupant.id}"


def build_party_embed(party: Party) -> discord.Embed:
    filled = occupied_count(party)
    slot_lines = [
        f"`{index + 1}` **{slot.role}**: {format_occupant(slot.occupant)}" for index, slot in enumerate(party.slots)
    ]
    embed = discord.Embed(
        title=f"⚔️ Speed Clear: {party.kind}",
        description=f"**Leader:** {format_occupant(party.leader)}\n\n" + "\n".join(slot_lines),
        color=COLOR_DANGER if filled == party.size else COLOR_SUCCESS,
    )
    embed.add_field(name="Roster Status", value=f"{filled} / {party.size}", inline=True)
    embed.set_footer(text=f"Created: {party.created_at.strftime('%Y-%m-%d %H:%M UTC')}")
    return embed


def build_disbanded_embed(party: Party) -> discord.Embed:
    return discord.Embed(title=f"❌ [DISBANDED] {party.kind}", color=COLOR_DANGER)


def build_locked_embed(party: Party) -> discord.Embed:
    """Final form of a party message after auto-lock: the roster stays visible."""
    embed = build_party_embed(party)
    embed.title = f"🔒 [LOCKED] {party.kind}"
    embed.colour = discord.Colour(COLOR_LOCKED)
    return embed


def build_party_view(party_id: str) -> discord.ui.View:
    """Two rows of action buttons; discord allows at most five per row."""
    view = discord.ui.View(timeout=None)
    buttons = [
        ("join", "Claim Role", discord.ButtonStyle.success, 0),
        ("leave", "Leave", discord.ButtonStyle.danger, 0),
        ("switch", "Switch Role", discord.ButtonStyle.primary, 0),
        ("ping", "Ping Party", discord.ButtonStyle.primary, 0),
        ("external", "Add External", discord.ButtonStyle.secondary, 0),
        ("kick", "Kick Player", discord.ButtonStyle.secondary, 1),
        ("promote", "Promote Leader", discord.ButtonStyle.secondary, 1),
        ("disband", "Disband", discord.ButtonStyle.danger, 1),
    ]
    for action, label, style, row in buttons:
        view.add_item(discord.ui.Button(label=label, style=style, custom_id=f"{action}_{party_id}", row=row))
    return view


def _select_view(custom_id: str, placeholder: str, options: list[discord.SelectOption]) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(discord.ui.Select(custom_id=custom_id, placeholder=placeholder, options=options))
    return view


def build_run_select() -> discord.ui.View:
    options = [discord.SelectOption(label=kind, value=kind) for kind in template_kinds()]
    return _select_view(RUN_SELECT_ID, "Select the run type...", options)


def build_claim_select(party: Party) -> discord.ui.View:
    options = [
        discord.SelectOption(label=role, value=str(index), description=f"Slot #{index + 1}")
        for index, role in available_slots(party)
    ]
    return _select_view(f"pick_{party.party_id}", "Select your role...", options)


def build_switch_select(party: Party, member_id: str) -> discord.ui.View:
    """Vacant slots plus the member's own, so the menu never comes up empty."""
    me = Member(member_id)
    options = [
        discord.SelectOption(label=slot.role, value=str(index), description=f"Slot #{index + 1}")
        for index, slot in enumerate(party.slots)
        if slot.occupant is None or slot.occupant == me
    ]
    return _select_view(f"switchpick_{party.party_id}", "Select your new role...", options)


def build_external_role_select(party: Party) -> discord.ui.View:
    options = [discord.SelectOption(label=role, value=str(index)) for index, role in available_slots(party)]
    return _select_view(f"externalrole_{party.party_id}", "Select role to reserve", options)


def build_kick_select(party: Party) -> discord.ui.View:
    options = [
        discord.SelectOption(label=slot.role, value=str(index), description=describe_occupant(slot.occupant))
        for index, slot in filled_slots(party)
    ]
    return _select_view(f"kickpick_{party.party_id}", "Select a player to remove", options)


def build_promote_select(party: Party) -> discord.ui.View:
    options = [
        discord.SelectOption(label=party.slots[index].role, value=member.id, description=f"Slot #{index + 1}")
        for index, member in member_occupants(party)
    ]
    return _select_view(f"promotepick_{party.party_id}", "Select a new party leader", options)


def build_external_modal(party_id: str, slot_index: int, role: str, max_length: int = 50) -> discord.ui.Modal:
    modal = discord.ui.Modal(title="Add External Player", custom_id=f"externalign_{party_id}_{slot_index}")
    modal.add_item(
        discord.ui.TextInput(
            label=f"Enter IGN for {role}",
            custom_id=IGN_INPUT_ID,
            style=discord.TextStyle.short,
            placeholder="Player Name",
            required=True,
            max_length=max_length,
        )
    )
    return modal


def build_help_embed(lock_timeout: timedelta) -> discord.Embed:
    hours = lock_timeout.total_seconds() / 3600
    lock_window = f"{hours:g} hour" + ("" if hours == 1 else "s")
    embed = discord.Embed(
        title="📘 Guild Wars Party Bot Help",
        description="Here is a list of all available functions and what they do.",
        color=COLOR_PRIMARY,
    )
    fields = [
        ("⚔️ /formparty", "Starts a new party formation and posts it in the pre-configured channel(s)."),
        ("📋 /listparties", "Displays a list of all active parties that are being formed with GWPB."),
        ("ℹ️ /help", "Shows this menu."),
        ("✏️ Claim Role", "Allows a Discord user to select and reserve an available role in the party."),
        ("🚪 Leave", "Removes you from your currently claimed role."),
        ("🔄 Switch Role", "Lets you change your claimed role to another available one."),
        (
            "➕ Add External Player",
            "Party Leader only. Reserve a slot for a non-Discord player by entering their IGN and selecting a role.",
        ),
        ("❌ Kick Player", "Party Leader only. Removes a selected player (Discord or external) from the party."),
        ("👑 Promote Leader", "Party Leader only. Transfers leadership to another Discord user in the party."),
        ("🔔 Ping Party", "Party Leader only. Pings all filled slots to gather attention."),
        ("🛑 Disband", "Party Leader only. Disbands the party and locks the post."),
        ("🔒 Auto-Lock", f"Parties automatically lock after {lock_window} to prevent stale formations."),
    ]
    for name, value in fields:
        embed.add_field(name=name, value=value, inline=False)
    embed.set_footer(text=f"Guild Wars Party Bot — {BOT_VERSION} — by Kurzick Krozz")
    return embed


def build_party_list(parties: list[Party], guild_id: int | None, channel_id: int) -> str:
    if not parties:
        return "No active parties."
    lines = []
    for party in parties:
        line = f"• **{party.kind}** — Leader: <@{party.leader.id}>"
        if party.presentation_ref and guild_id is not None:
            line += f" — [Jump](https://discord.com/channels/{guild_id}/{channel_id}/{party.presentation_ref})"
        lines.append(line)
    return "\n".join(lines)


class PartyPresenter:
    """
    Keeps posted party messages in step with ``PartyUpdated`` events.

    A created party is posted to the target channel and its message id handed
    back to the service. Later changes edit that message in place. A message
    that has been deleted is logged and otherwise ignored; the party itself
    is unaffected.
    """

    def __init__(self, service: PartyService, channel_provider: ChannelProvider) -> None:
        self._service = service
        self._channel_provider = channel_provider

    def register(self, event_bus: EventBus) -> None:
        event_bus.subscribe(PartyUpdated, self.handle_party_updated)

    async def handle_party_updated(self, event: PartyUpdated) -> None:
        if event.change is PartyChange.CREATED:
            await self._post(event.party)
            return
        if event.change is PartyChange.DISBANDED:
            await self._edit(event.party, embed=build_disbanded_embed(event.party), view=None)
        elif event.change is PartyChange.LOCKED:
            await self._edit(event.party, embed=build_locked_embed(event.party), view=None)
        else:
            await self._edit(event.party, embed=build_party_embed(event.party))

    async def _post(self, party: Party) -> None:
        channel = await self._channel_provider()
        if channel is None:
            logger.error("Party channel unavailable; party not posted", party_id=party.party_id)
            return
        message = await channel.send(embed=build_party_embed(party), view=build_party_view(party.party_id))
        try:
            attached = await self._service.attach_presentation(party.party_id, str(message.id))
        except PartyNotFoundError:
            # Terminated before its first render completed
            logger.info("Party ended before it was posted", party_id=party.party_id)
            await message.edit(embed=build_disbanded_embed(party), view=None)
            return
        # Updates handled before the attach had no message to edit
        if (attached.leader, attached.slots) != (party.leader, party.slots):
            await self._edit(attached, embed=build_party_embed(attached))

    async def _edit(self, party: Party, **changes: Any) -> None:
        if party.presentation_ref is None:
            logger.debug("Party has no message yet; skipping render", party_id=party.party_id)
            return
        channel = await self._channel_provider()
        if channel is None:
            return
        message = channel.get_partial_message(int(party.presentation_ref))
        try:
            await message.edit(**changes)
        except discord.NotFound:
            logger.warning(
                "Party message no longer exists", party_id=party.party_id, presentation_ref=party.presentation_ref
            )
        except discord.HTTPException as e:
            log_exception_once(
                logger, "error", "Failed to update party message", exc=e, party_id=party.party_id, exc_info=True
            )
