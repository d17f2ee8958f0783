"""
Interaction router for the party bot.

Every component interaction carries a custom id of the form
``<action>_<party_id>`` (the IGN modal appends ``_<slot index>``). The router
decodes it, binds the interaction's logging context, and calls the matching
``PartyService`` operation. Refused operations become a private reply to the
member who acted; anything unexpected is logged and answered with a generic
notice.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import discord

from ..error_types import ErrorMessages
from ..exceptions import (
    AlreadyAssignedError,
    ErrorContext,
    InvalidSlotError,
    NoCurrentRoleError,
    NotLeaderError,
    PartyFullError,
    PartyNotFoundError,
    PartyOperationError,
    SlotTakenError,
)
from ..game.roster import External, Member, Party, available_slots, filled_slots, find_by_occupant, member_occupants
from ..structured_logging.enhanced_logging_config import get_logger, log_exception_once
from ..structured_logging.logging_context import bind_interaction_context, clear_interaction_context
from .presentation import (
    IGN_INPUT_ID,
    RUN_SELECT_ID,
    build_claim_select,
    build_external_modal,
    build_external_role_select,
    build_help_embed,
    build_kick_select,
    build_party_list,
    build_promote_select,
    build_run_select,
    build_switch_select,
)

if TYPE_CHECKING:
    from ..game.party_service import PartyService

logger = get_logger(__name__)

MODAL_ACTION = "externalign"


@dataclass(frozen=True)
class ComponentAction:
    """A decoded component custom id."""

    action: str
    party_id: str
    slot_index: int | None = None


def parse_custom_id(custom_id: str) -> ComponentAction | None:
    """
    Decode a component custom id.

    Party ids contain underscores themselves, so the action is everything
    before the first one and, for the IGN modal, the slot index is everything
    after the last one.

    Returns:
        The decoded action, or None if the id is not one of ours
    """
    action, sep, rest = custom_id.partition("_")
    if not sep or not rest:
        return None
    if action == MODAL_ACTION:
        party_id, sep, index = rest.rpartition("_")
        if not sep or not party_id or not index.isdigit():
            return None
        return ComponentAction(action=action, party_id=party_id, slot_index=int(index))
    return ComponentAction(action=action, party_id=rest)


def _selected_value(interaction: discord.Interaction) -> str:
    values = (interaction.data or {}).get("values") or []
    if not values:
        raise ValueError("Select interaction carried no values")
    return str(values[0])


def _modal_value(interaction: discord.Interaction, custom_id: str) -> str:
    for row in (interaction.data or {}).get("components", []):
        for component in row.get("components", []):
            if component.get("custom_id") == custom_id:
                return str(component.get("value") or "")
    return ""


Handler = Callable[[discord.Interaction, ComponentAction], Awaitable[None]]


class InteractionRouter:
    """Translates inbound interactions into party operations and replies."""

    def __init__(
        self,
        service: PartyService,
        *,
        channel_id: int,
        lock_timeout: timedelta,
        external_name_max_length: int = 50,
    ) -> None:
        self._service = service
        self._channel_id = channel_id
        self._lock_timeout = lock_timeout
        self._external_name_max_length = external_name_max_length
        self._handlers: dict[str, Handler] = {
            "join": self._on_join,
            "leave": self._on_leave,
            "switch": self._on_switch,
            "ping": self._on_ping,
            "external": self._on_external,
            "kick": self._on_kick,
            "promote": self._on_promote,
            "disband": self._on_disband,
            "pick": self._on_pick,
            "switchpick": self._on_switch_pick,
            "externalrole": self._on_external_role,
            "kickpick": self._on_kick_pick,
            "promotepick": self._on_promote_pick,
            MODAL_ACTION: self._on_external_ign,
        }

    # ---- entry points ----

    async def dispatch(self, interaction: discord.Interaction) -> None:
        """Route a component or modal interaction. Unknown ids are ignored."""
        custom_id = str((interaction.data or {}).get("custom_id", ""))
        if custom_id == RUN_SELECT_ID:
            await self._guarded(interaction, "select_run", None, self._on_run_selected)
            return

        parsed = parse_custom_id(custom_id)
        handler = self._handlers.get(parsed.action) if parsed else None
        if parsed is None or handler is None:
            logger.debug("Ignoring interaction with unknown custom id", custom_id=custom_id)
            return
        await self._guarded(interaction, parsed.action, parsed.party_id, lambda i: handler(i, parsed))

    async def form_party(self, interaction: discord.Interaction) -> None:
        async def _reply(i: discord.Interaction) -> None:
            await i.response.send_message("Select run type:", view=build_run_select(), ephemeral=True)

        await self._guarded(interaction, "formparty", None, _reply)

    async def list_parties(self, interaction: discord.Interaction) -> None:
        async def _reply(i: discord.Interaction) -> None:
            content = build_party_list(list(self._service.list_active()), i.guild_id, self._channel_id)
            await i.response.send_message(content, ephemeral=True)

        await self._guarded(interaction, "listparties", None, _reply)

    async def show_help(self, interaction: discord.Interaction) -> None:
        async def _reply(i: discord.Interaction) -> None:
            await i.response.send_message(embed=build_help_embed(self._lock_timeout), ephemeral=True)

        await self._guarded(interaction, "help", None, _reply)

    async def _guarded(
        self,
        interaction: discord.Interaction,
        action: str,
        party_id: str | None,
        handler: Callable[[discord.Interaction], Awaitable[None]],
    ) -> None:
        bind_interaction_context(user_id=str(interaction.user.id), party_id=party_id, action=action)
        try:
            await handler(interaction)
        except PartyOperationError as e:
            await self._reply_private(interaction, e.user_friendly)
        except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: The member must always get an answer
            log_exception_once(logger, "error", "Error handling interaction", exc=e, exc_info=True)
            try:
                await self._reply_private(interaction, ErrorMessages.INTERNAL_ERROR)
            except discord.HTTPException as reply_error:
                logger.debug("Could not send error notice", error=str(reply_error))
        finally:
            clear_interaction_context()

    @staticmethod
    async def _reply_private(interaction: discord.Interaction, content: str) -> None:
        if interaction.response.is_done():
            await interaction.followup.send(content, ephemeral=True)
        else:
            await interaction.response.send_message(content, ephemeral=True)

    # ---- helpers ----

    def _party(self, party_id: str, user_id: str, operation: str) -> Party:
        party = self._service.get_party(party_id)
        if party is None:
            raise PartyNotFoundError(
                f"Party {party_id} is not active",
                context=ErrorContext(user_id=user_id, party_id=party_id, operation=operation),
            )
        return party

    @staticmethod
    def _require_leader(party: Party, user_id: str, operation: str, user_friendly: str) -> None:
        if party.leader != Member(user_id):
            raise NotLeaderError(
                f"{user_id} is not the leader of {party.party_id}",
                context=ErrorContext(user_id=user_id, party_id=party.party_id, operation=operation),
                user_friendly=user_friendly,
            )

    # ---- slash command follow-ups ----

    async def _on_run_selected(self, interaction: discord.Interaction) -> None:
        kind = _selected_value(interaction)
        await self._service.create(kind, str(interaction.user.id))
        await interaction.response.edit_message(content=f"Party posted in <#{self._channel_id}>", view=None)

    # ---- buttons ----

    async def _on_join(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        user_id = str(interaction.user.id)
        party = self._party(target.party_id, user_id, "claim")
        context = ErrorContext(user_id=user_id, party_id=party.party_id, operation="claim")
        if find_by_occupant(party, Member(user_id)) is not None:
            raise AlreadyAssignedError(context=context)
        if not available_slots(party):
            raise PartyFullError(context=context)
        await interaction.response.send_message("Choose a role:", view=build_claim_select(party), ephemeral=True)

    async def _on_leave(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        result = await self._service.vacate(target.party_id, str(interaction.user.id))
        if result.slot_index is None:
            await self._reply_private(interaction, "You don't have a role to leave.")
        else:
            await self._reply_private(interaction, "You left your role.")

    async def _on_switch(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        user_id = str(interaction.user.id)
        party = self._party(target.party_id, user_id, "switch_role")
        if find_by_occupant(party, Member(user_id)) is None:
            raise NoCurrentRoleError(
                context=ErrorContext(user_id=user_id, party_id=party.party_id, operation="switch_role")
            )
        await interaction.response.send_message(
            "Choose your new role:", view=build_switch_select(party, user_id), ephemeral=True
        )

    async def _on_ping(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        member_ids = self._service.ping(target.party_id, str(interaction.user.id))
        mentions = " ".join(f"<@{member_id}>" for member_id in member_ids)
        await interaction.response.send_message(f"Party ping: {mentions}")

    async def _on_external(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        user_id = str(interaction.user.id)
        party = self._party(target.party_id, user_id, "add_external")
        self._require_leader(
            party, user_id, "add_external", "Only the party leader can reserve slots for external players."
        )
        if not available_slots(party):
            await self._reply_private(interaction, "No available slots to reserve.")
            return
        await interaction.response.send_message(
            "Select a role to reserve, then you will be asked to type the IGN.",
            view=build_external_role_select(party),
            ephemeral=True,
        )

    async def _on_kick(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        user_id = str(interaction.user.id)
        party = self._party(target.party_id, user_id, "kick")
        self._require_leader(party, user_id, "kick", "Only the party leader can kick players.")
        if not filled_slots(party):
            await self._reply_private(interaction, "There are no players to kick.")
            return
        await interaction.response.send_message(
            "Choose a player to remove:", view=build_kick_select(party), ephemeral=True
        )

    async def _on_promote(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        user_id = str(interaction.user.id)
        party = self._party(target.party_id, user_id, "promote")
        self._require_leader(party, user_id, "promote", "Only the party leader can promote a new leader.")
        if not member_occupants(party):
            await self._reply_private(interaction, "No eligible players to promote.")
            return
        await interaction.response.send_message(
            "Choose a new party leader:", view=build_promote_select(party), ephemeral=True
        )

    async def _on_disband(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        await self._service.disband(target.party_id, str(interaction.user.id))
        await self._reply_private(interaction, "Party disbanded.")

    # ---- select menus ----

    async def _on_pick(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        slot_index = int(_selected_value(interaction))
        await self._service.claim(target.party_id, str(interaction.user.id), slot_index)
        await interaction.response.edit_message(content="Role confirmed.", view=None)

    async def _on_switch_pick(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        slot_index = int(_selected_value(interaction))
        await self._service.switch_role(target.party_id, str(interaction.user.id), slot_index)
        await interaction.response.edit_message(content="Role switched!", view=None)

    async def _on_external_role(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        user_id = str(interaction.user.id)
        slot_index = int(_selected_value(interaction))
        party = self._party(target.party_id, user_id, "add_external")
        self._require_leader(
            party, user_id, "add_external", "Only the party leader can reserve slots for external players."
        )
        context = ErrorContext(user_id=user_id, party_id=party.party_id, operation="add_external")
        if not 0 <= slot_index < party.size:
            raise InvalidSlotError(context=context)
        slot = party.slots[slot_index]
        if slot.occupant is not None:
            raise SlotTakenError(context=context)
        await interaction.response.send_modal(
            build_external_modal(party.party_id, slot_index, slot.role, self._external_name_max_length)
        )

    async def _on_kick_pick(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        slot_index = int(_selected_value(interaction))
        result = await self._service.kick(target.party_id, str(interaction.user.id), slot_index)
        removed = result.removed
        display_name = removed.name if isinstance(removed, External) else f"<@{removed.id}>"
        await interaction.response.edit_message(content=f"Removed **{display_name}** from the party.", view=None)

    async def _on_promote_pick(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        new_leader_id = _selected_value(interaction)
        await self._service.promote(target.party_id, str(interaction.user.id), new_leader_id)
        await interaction.response.edit_message(content=f"Promoted <@{new_leader_id}> to Party Leader.", view=None)

    # ---- modal ----

    async def _on_external_ign(self, interaction: discord.Interaction, target: ComponentAction) -> None:
        assert target.slot_index is not None
        display_name = _modal_value(interaction, IGN_INPUT_ID)
        party = await self._service.add_external(
            target.party_id, str(interaction.user.id), target.slot_index, display_name
        )
        occupant: Any = party.slots[target.slot_index].occupant
        await self._reply_private(interaction, f"Reserved slot for **{occupant.name}**.")
        logger.debug("External player reserved", external_name=occupant.name, slot=target.slot_index)
