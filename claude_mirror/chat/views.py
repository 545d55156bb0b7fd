"""Discord button views for approval requests.

custom_id format: ``<decision>:<approval_id>`` where decision is one of
``approve``, ``reject`` or ``abort``. The view itself holds no state about
the approval; pressing a button hands the custom_id to the daemon, which
resolves the pending entry and reports whether it was still open.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import discord

from .base import Button, ButtonStyle
from .formatting import DECISION_LABELS

logger = logging.getLogger(__name__)

DecisionHandler = Callable[[str], Awaitable[bool]]

_STYLE_MAP: dict[ButtonStyle, discord.ButtonStyle] = {
    ButtonStyle.PRIMARY: discord.ButtonStyle.primary,
    ButtonStyle.SUCCESS: discord.ButtonStyle.success,
    ButtonStyle.DANGER: discord.ButtonStyle.danger,
    ButtonStyle.SECONDARY: discord.ButtonStyle.secondary,
}

_EXPIRED_MSG = "⚠️ This request is no longer pending (already answered or timed out)."
_UNAUTHORIZED_MSG = "You are not authorized to answer approval requests."


class DecisionView(discord.ui.View):
    """Renders :class:`Button` specs and routes presses to *on_decision*.

    Persistent (``timeout=None``): the approval's own deadline bounds how
    long a press is meaningful, not the view.
    """

    def __init__(
        self,
        buttons: list[Button],
        on_decision: DecisionHandler,
        allowed_user_ids: set[int] | None = None,
    ) -> None:
        super().__init__(timeout=None)
        self._on_decision = on_decision
        self.allowed_user_ids = allowed_user_ids
        for button in buttons[:5]:
            btn = discord.ui.Button(
                label=button.label[:80],
                style=_STYLE_MAP[button.style],
                custom_id=button.custom_id[:100],
                row=0,
            )
            btn.callback = _make_callback(self, button.custom_id)
            self.add_item(btn)

    async def _handle(self, interaction: discord.Interaction, custom_id: str) -> None:
        if self.allowed_user_ids is not None and interaction.user.id not in self.allowed_user_ids:
            logger.warning("Unauthorized decision %r by user %s", custom_id, interaction.user.id)
            await interaction.response.send_message(_UNAUTHORIZED_MSG, ephemeral=True)
            return
        resolved = await self._on_decision(custom_id)
        if not resolved:
            await interaction.response.send_message(_EXPIRED_MSG, ephemeral=True)
            return
        decision = custom_id.split(":", 1)[0]
        label = DECISION_LABELS.get(decision, decision)
        original = interaction.message.content if interaction.message else ""
        await interaction.response.edit_message(
            content=f"{original}\n\n-# {label} by {interaction.user.display_name}",
            view=None,
        )
        self.stop()


def _make_callback(view: DecisionView, custom_id: str):
    async def callback(interaction: discord.Interaction) -> None:
        await view._handle(interaction, custom_id)

    return callback
