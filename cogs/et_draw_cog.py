import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from core.config import ET_DRAW_WINDOW_MINUTES
from core.errors import ResourceExhaustedError, TemporarilyExhausted, RaceMasterError
from core.random_draw import DEFAULT_PRECISION, DedupRandomGenerator

from .discord_safe import reply_ephemeral

log = logging.getLogger(__name__)


class EtDrawCog(commands.Cog):
    """/et_draw: random dial-in ET that won't repeat in this server for a while."""

    def __init__(self, bot: commands.Bot, generator: Optional[DedupRandomGenerator] = None):
        self.bot = bot
        self.generator = generator or DedupRandomGenerator(window_ms=ET_DRAW_WINDOW_MINUTES * 60_000)
        log.info("EtDrawCog loaded (no-repeat window %d min).", ET_DRAW_WINDOW_MINUTES)

    @app_commands.command(name="et_draw", description="Draw a random ET between two numbers (no repeats for a while).")
    @app_commands.describe(
        low="One end of the range (ex: 10.00)",
        high="Other end of the range (ex: 10.50)",
        decimals="Decimal places (default 2)",
    )
    async def et_draw(
        self,
        interaction: discord.Interaction,
        low: str,
        high: str,
        decimals: Optional[app_commands.Range[int, 0, 3]] = None,
    ):
        precision = DEFAULT_PRECISION if decimals is None else decimals
        scope = f"guild:{interaction.guild_id or interaction.channel_id}"

        try:
            res = self.generator.draw(scope, low, high, precision)
        except TemporarilyExhausted as e:
            await reply_ephemeral(
                interaction,
                f"⚠️ That range is nearly used up ({e.total_possible} possible values). Try again.",
            )
            return
        except ResourceExhaustedError as e:
            minutes = ET_DRAW_WINDOW_MINUTES
            await reply_ephemeral(
                interaction,
                f"⛔ All **{e.total_possible}** values in that range were drawn in the last {minutes} min. "
                "Widen the range or wait.",
            )
            return
        except RaceMasterError as e:
            await reply_ephemeral(interaction, f"❌ {e.message}")
            return

        log.info("Guild %s: ET draw %s..%s -> %s by %s", interaction.guild_id, res.low_text, res.high_text, res.text, interaction.user)
        await interaction.response.send_message(
            f"🎲 Range **{res.low_text} – {res.high_text}** → ET **{res.text}** "
            f"({res.remaining} of {res.total_possible} left)"
        )


async def setup(bot: commands.Bot):
    await bot.add_cog(EtDrawCog(bot))
