# cogs/ladder_cog.py

import io
import logging
from typing import Dict, List, Optional

import discord
from discord import app_commands
from discord.ext import commands
from discord.ui import Button, View

from core.bracket import (
    NEXT_ROUND_ID,
    NEXT_ROUND_TEMPLATE,
    WIN_ACTION_TEMPLATE,
    LadderRegistry,
    LadderState,
    Racer,
    create_ladder,
    next_round_available,
    parse_ladder_action,
    split_racer_list,
    win_action_id,
)
from core.errors import RaceMasterError
from core.ladder_image import render_ladder_card

from .discord_safe import reply_ephemeral
from .race_checks import is_ladder_channel, is_race_director

log = logging.getLogger(__name__)

BUTTONS_PER_ROW = 5


# -------------------------------------------------------------------
# RENDERING
# -------------------------------------------------------------------

def _display_racer(r: Racer) -> str:
    return f"{r.label} {r.mention}" if r.is_mention else f"**{r.label}**"


def _display_winner(r: Racer) -> str:
    return f"**{r.label}** {r.mention}" if r.is_mention else f"**{r.label}**"


def ladder_to_text(state: LadderState) -> str:
    lines = [
        f"🏁 **{state.event_name}**",
        f"🏁 **Round {state.round}**",
        "",
    ]

    for idx, m in enumerate(state.matches):
        w = f" ✅ Winner: {_display_winner(m.winner)}" if m.winner else ""
        lines.append(f"**Race {idx + 1}:** {_display_racer(m.a)} vs {_display_racer(m.b)}{w}")

    if state.bye:
        lines.append("")
        lines.append(f"🏁 **Bye Run:** {_display_winner(state.bye)} (auto-advances) ✅")

    if state.complete and state.champion:
        lines.append("")
        lines.append(f"🏆 **Event Winner:** {_display_winner(state.champion)}")

    return "\n".join(lines)


# -------------------------------------------------------------------
# BUTTONS
# -------------------------------------------------------------------

async def _route(interaction: discord.Interaction, kind: str, idx: Optional[int] = None, side: Optional[str] = None) -> None:
    cog = interaction.client.get_cog("LadderCog")
    if cog is None:
        log.warning("Ladder button clicked while LadderCog is not loaded.")
        await reply_ephemeral(interaction, "❌ Ladders are not available right now.")
        return
    await cog.handle_action(interaction, kind, idx, side)


class LadderWinButton(discord.ui.DynamicItem[Button], template=WIN_ACTION_TEMPLATE):
    """Winner pick for one side of one race. The ladder is found by message id."""

    def __init__(
        self,
        index: int,
        side: str,
        *,
        label: str = "Winner",
        style: discord.ButtonStyle = discord.ButtonStyle.secondary,
        disabled: bool = False,
        row: Optional[int] = None,
    ):
        super().__init__(
            Button(
                custom_id=win_action_id(index, side),
                label=label[:80],
                style=style,
                disabled=disabled,
            ),
            row=row,
        )
        self.index = index
        self.side = side

    @classmethod
    async def from_custom_id(cls, interaction: discord.Interaction, item: Button, match):
        _, index, side = parse_ladder_action(item.custom_id)
        return cls(index, side)

    async def callback(self, interaction: discord.Interaction):
        await _route(interaction, "win", self.index, self.side)


class NextRoundButton(discord.ui.DynamicItem[Button], template=NEXT_ROUND_TEMPLATE):
    def __init__(self, next_round: Optional[int] = None, *, row: Optional[int] = None):
        label = f"Start Round {next_round}" if next_round else "Start Next Round"
        super().__init__(
            Button(custom_id=NEXT_ROUND_ID, label=label, style=discord.ButtonStyle.primary),
            row=row,
        )

    @classmethod
    async def from_custom_id(cls, interaction: discord.Interaction, item: Button, match):
        return cls()

    async def callback(self, interaction: discord.Interaction):
        await _route(interaction, "next_round")


def build_ladder_view(state: LadderState) -> View:
    """Winner buttons per race + "Start Round N" when the round is decided."""
    view = View(timeout=None)
    row = 0
    in_row = 0

    def _next_row() -> int:
        nonlocal row, in_row
        if in_row >= BUTTONS_PER_ROW:
            row += 1
            in_row = 0
        in_row += 1
        return row

    for idx, m in enumerate(state.matches):
        for side, racer in (("a", m.a), ("b", m.b)):
            won = m.winner is not None and m.winner.raw == racer.raw
            view.add_item(
                LadderWinButton(
                    idx,
                    side,
                    label=f"R{idx + 1}: {racer.label}",
                    style=discord.ButtonStyle.success if won else discord.ButtonStyle.secondary,
                    disabled=state.complete,
                    row=_next_row(),
                )
            )

    if next_round_available(state):
        view.add_item(NextRoundButton(state.round + 1, row=_next_row()))

    return view


def _card_file(state: LadderState) -> Optional[discord.File]:
    try:
        png = render_ladder_card(state)
    except Exception as e:
        log.warning("Ladder card render failed for %r: %r", state.event_name, e)
        return None
    return discord.File(io.BytesIO(png), filename="ladder.png")


def _mention_labels(guild: Optional[discord.Guild], tokens: List[str]) -> Dict[str, str]:
    """Display names for <@id> tokens, from the member cache."""
    labels: Dict[str, str] = {}
    if guild is None:
        return labels
    for t in tokens:
        t = t.strip()
        if not (t.startswith("<@") and t.endswith(">")):
            continue
        uid = t.strip("<@!>")
        if not uid.isdigit():
            continue
        member = guild.get_member(int(uid))
        if member is not None:
            labels[uid] = member.display_name
    return labels


# -------------------------------------------------------------------
# MAIN COG
# -------------------------------------------------------------------

class LadderCog(commands.Cog):
    """/pair ladders: randomized head-to-head rounds picked by race directors."""

    def __init__(self, bot: commands.Bot, registry: Optional[LadderRegistry] = None):
        self.bot = bot
        self.registry = registry or LadderRegistry()
        log.info("LadderCog loaded.")

    async def cog_load(self):
        # routes win:/next_round clicks by custom_id, even on messages from before a restart
        self.bot.add_dynamic_items(LadderWinButton, NextRoundButton)

    async def cog_unload(self):
        self.bot.remove_dynamic_items(LadderWinButton, NextRoundButton)

    async def _gate(self, interaction: discord.Interaction, what: str) -> bool:
        if not is_ladder_channel(interaction):
            await reply_ephemeral(interaction, f"❌ {what} only work in the ladder channel.")
            return False
        if not is_race_director(interaction):
            await reply_ephemeral(interaction, "❌ Only Race Directors/Admins can run the ladder.")
            return False
        return True

    async def _render(self, interaction: discord.Interaction, state: LadderState) -> None:
        card = _card_file(state)
        await interaction.response.edit_message(
            content=ladder_to_text(state),
            view=build_ladder_view(state),
            attachments=[card] if card else [],
        )

    # ---------------- COMMANDS -----------------

    @app_commands.command(
        name="pair",
        description="Create a randomized drag racing ladder from racer names (one per line).",
    )
    @app_commands.describe(
        event="Event name (ex: Sunday Grudge Night)",
        racers="Paste racer names (one per line or comma-separated).",
    )
    @app_commands.default_permissions(manage_events=True)
    async def pair(self, interaction: discord.Interaction, event: str, racers: str):
        if not await self._gate(interaction, "Ladder commands"):
            return

        tokens = split_racer_list(racers)
        try:
            state = create_ladder(event, tokens, labels=_mention_labels(interaction.guild, tokens))
        except RaceMasterError as e:
            await reply_ephemeral(interaction, f"❌ {e.message}")
            return

        await interaction.response.defer(thinking=True)

        card = _card_file(state)
        kwargs = {"file": card} if card else {}
        msg = await interaction.followup.send(
            content=ladder_to_text(state),
            view=build_ladder_view(state),
            wait=True,
            **kwargs,
        )
        # store by MESSAGE ID so the buttons on that message find this ladder
        self.registry.add(msg.id, state)

        log.info(
            "Guild %s: ladder %r posted as message %s by %s",
            interaction.guild_id,
            state.event_name,
            msg.id,
            interaction.user,
        )

    @app_commands.command(name="reset_ladder", description="Reset all active ladders.")
    @app_commands.default_permissions(manage_events=True)
    async def reset_ladder(self, interaction: discord.Interaction):
        if not await self._gate(interaction, "Ladder commands"):
            return

        n = self.registry.clear()
        log.info("Guild %s: %d ladder(s) reset by %s", interaction.guild_id, n, interaction.user)
        await interaction.response.send_message("🧹 Ladder reset.")

    # ---------------- BUTTONS -----------------

    async def handle_action(
        self,
        interaction: discord.Interaction,
        kind: str,
        idx: Optional[int] = None,
        side: Optional[str] = None,
    ) -> None:
        """Apply a ladder button click to the ladder shown on the clicked message."""
        if not await self._gate(interaction, "Ladder buttons"):
            return

        try:
            if kind == "next_round":
                state = self.registry.advance_round(interaction.message.id)
            else:
                state = self.registry.declare_winner(interaction.message.id, idx, side)
            await self._render(interaction, state)
        except RaceMasterError as e:
            await reply_ephemeral(interaction, f"❌ {e.message}")
        except Exception as e:
            log.exception("Ladder button %s failed: %r", kind, e)
            await reply_ephemeral(interaction, "❌ Something went wrong.")


async def setup(bot: commands.Bot):
    await bot.add_cog(LadderCog(bot))
