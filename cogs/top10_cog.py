# cogs/top10_cog.py
# Top 10 leaderboard:
# - /top10_submit   racers send a pass (ET/MPH + proof) for moderator review
# - approval card   top10_approve:<slip> / top10_deny:<slip> dynamic buttons
# - /top10          show both boards
# - /top10_pending  list open slips (moderators)
# - /top10_reset    clear a board (or both, which also clears cooldowns)

import logging
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Set

import discord
from discord import app_commands
from discord.ext import commands
from discord.ui import Button, View

from core.approvals import (
    APPROVAL_ACTION_TEMPLATE,
    APPROVE,
    DENY,
    ApprovalWorkflow,
    PendingSlip,
    Resolution,
    RoleSyncCollaborator,
    parse_approval_action,
    APPROVE_PREFIX,
    DENY_PREFIX,
)
from core.config import (
    TOP10_APPROVAL_CHANNEL_ID,
    TOP10_BOARD_CHANNEL_ID,
    TOP10_COOLDOWN_HOURS,
    TOP10_REQUIRE_PROOF,
    TOP10_ROLE_ID,
)
from core.cooldowns import HOUR_MS, CooldownTracker, format_duration
from core.db import DocumentStore, open_store
from core.errors import CooldownActive, ProofRequired, RaceMasterError
from core.leaderboard import CATEGORIES, LeaderboardEntry, LeaderboardStore

from .discord_safe import (
    reply_ephemeral,
    safe_add_role,
    safe_edit_message,
    safe_remove_role,
    safe_send,
)
from .race_checks import is_top10_moderator

log = logging.getLogger(__name__)

DISPLAY_KEY = "top10_display"
BRAND = discord.Colour.from_rgb(225, 30, 45)
MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


# -------------------------------------------------------------------
# ROLE SYNC
# -------------------------------------------------------------------

class GuildRoleSync(RoleSyncCollaborator):
    """Gives TOP10_ROLE_ID to everyone on a board, takes it from everyone else."""

    def __init__(self, bot: commands.Bot, role_id: Optional[int]):
        self.bot = bot
        self.role_id = role_id

    def _find_role(self) -> Optional[discord.Role]:
        if self.role_id is None:
            return None
        for guild in self.bot.guilds:
            role = guild.get_role(self.role_id)
            if role is not None:
                return role
        return None

    async def reconcile(self, member_ids: Set[str]) -> None:
        role = self._find_role()
        if role is None:
            return
        guild = role.guild
        reason = "RaceMaster: Top 10 board changed"

        for uid in sorted(member_ids):
            try:
                member = guild.get_member(int(uid)) or await guild.fetch_member(int(uid))
                if role not in member.roles:
                    await safe_add_role(member, role, reason=reason)
            except Exception as e:
                log.warning("Top10 role add failed for %s: %r", uid, e)

        for member in list(role.members):
            if str(member.id) in member_ids:
                continue
            try:
                await safe_remove_role(member, role, reason=reason)
            except Exception as e:
                log.warning("Top10 role remove failed for %s: %r", member.id, e)


# -------------------------------------------------------------------
# EMBEDS / VIEWS
# -------------------------------------------------------------------

def _board_lines(entries: List[LeaderboardEntry]) -> str:
    if not entries:
        return "_No approved passes yet._"
    lines = []
    for i, e in enumerate(entries, start=1):
        badge = MEDALS.get(i, f"`#{i:>2}`")
        proof = f" · [proof]({e.proof_url})" if e.proof_url else ""
        lines.append(f"{badge} **{e.et}** @ {e.mph} mph · {e.display_name} <@{e.user_id}>{proof}")
    return "\n".join(lines)


def build_board_embed(boards: Dict[str, List[LeaderboardEntry]]) -> discord.Embed:
    embed = discord.Embed(title="🏁 Top 10 Leaderboard", colour=BRAND)
    for c in CATEGORIES:
        embed.add_field(name=f"{c.title()} Top 10", value=_board_lines(boards.get(c, [])), inline=False)
    embed.set_footer(text="Lowest ET wins · ties go to the earlier approval")
    return embed


def build_slip_embed(slip: PendingSlip, status: Optional[str] = None) -> discord.Embed:
    submitted = datetime.fromtimestamp(slip.submitted_at / 1000, tz=timezone.utc)
    embed = discord.Embed(
        title=f"Top 10 submission · {slip.category.title()}",
        description=(
            f"Racer: <@{slip.user_id}>\n"
            f"ET: **{slip.et}**\n"
            f"MPH: **{slip.mph}**"
        ),
        colour=BRAND,
        timestamp=submitted,
    )
    if slip.proof_url:
        embed.set_image(url=slip.proof_url)
    if status:
        embed.add_field(name="Status", value=status, inline=False)
    embed.set_footer(text=f"Slip {slip.slip_id}")
    return embed


class ApprovalButton(discord.ui.DynamicItem[Button], template=APPROVAL_ACTION_TEMPLATE):
    """Approve/Deny on an approval card. Decodes the slip id from the custom_id."""

    def __init__(self, decision: str, slip_id: str):
        approve = decision == APPROVE
        super().__init__(
            Button(
                custom_id=f"{APPROVE_PREFIX if approve else DENY_PREFIX}{slip_id}",
                label="Approve" if approve else "Deny",
                style=discord.ButtonStyle.success if approve else discord.ButtonStyle.danger,
            )
        )
        self.decision = decision
        self.slip_id = slip_id

    @classmethod
    async def from_custom_id(cls, interaction: discord.Interaction, item: Button, match):
        decision, slip_id = parse_approval_action(item.custom_id)
        return cls(decision, slip_id)

    async def callback(self, interaction: discord.Interaction):
        cog = interaction.client.get_cog("Top10Cog")
        if cog is None:
            log.warning("Approval button for slip %s clicked while Top10Cog is not loaded.", self.slip_id)
            await reply_ephemeral(interaction, "❌ The leaderboard is not available right now.")
            return
        await cog.handle_decision(interaction, self.decision, self.slip_id)


def build_approval_view(slip_id: str) -> View:
    view = View(timeout=None)
    view.add_item(ApprovalButton(APPROVE, slip_id))
    view.add_item(ApprovalButton(DENY, slip_id))
    return view


# -------------------------------------------------------------------
# MAIN COG
# -------------------------------------------------------------------

class Top10Cog(commands.Cog):
    def __init__(self, bot: commands.Bot, store: Optional[DocumentStore] = None):
        self.bot = bot
        self.store = store or open_store()
        self.leaderboard = LeaderboardStore(self.store)
        self.cooldowns = CooldownTracker(self.store, window_ms=TOP10_COOLDOWN_HOURS * HOUR_MS)
        self.workflow = ApprovalWorkflow(
            self.store,
            self.leaderboard,
            self.cooldowns,
            require_proof=TOP10_REQUIRE_PROOF,
            name_resolver=self._resolve_name,
            role_sync=GuildRoleSync(bot, TOP10_ROLE_ID),
        )
        log.info(
            "Top10Cog loaded (pending=%d, proof required=%s).",
            len(self.workflow.pending()),
            TOP10_REQUIRE_PROOF,
        )

    async def cog_load(self):
        # pending slips outlive restarts, so their cards must stay clickable
        self.bot.add_dynamic_items(ApprovalButton)

    async def cog_unload(self):
        self.bot.remove_dynamic_items(ApprovalButton)

    # ---------------- COLLABORATORS -----------------

    async def _resolve_name(self, user_id: str) -> Optional[str]:
        uid = int(user_id)
        for guild in self.bot.guilds:
            member = guild.get_member(uid)
            if member is not None:
                return member.display_name
        user = self.bot.get_user(uid) or await self.bot.fetch_user(uid)
        return user.global_name or user.name

    async def _get_channel(self, channel_id: Optional[int]) -> Optional[discord.abc.Messageable]:
        if channel_id is None:
            return None
        ch = self.bot.get_channel(channel_id)
        if ch is None:
            try:
                ch = await self.bot.fetch_channel(channel_id)
            except discord.HTTPException as e:
                log.warning("Could not fetch channel %s: %r", channel_id, e)
                return None
        return ch

    async def refresh_board_message(self) -> None:
        """Edit the public board message in place (post a new one if it's gone)."""
        channel = await self._get_channel(TOP10_BOARD_CHANNEL_ID)
        if channel is None:
            return
        embed = build_board_embed(self.leaderboard.boards())
        display = self.store.load(DISPLAY_KEY, {})

        try:
            msg_id = display.get("message_id")
            if msg_id and display.get("channel_id") == channel.id:
                try:
                    msg = await channel.fetch_message(int(msg_id))
                except discord.NotFound:
                    msg = None
                if msg is not None and await safe_edit_message(msg, embed=embed) is not None:
                    return

            msg = await safe_send(channel, embed=embed)
            if msg is not None:
                self.store.save(DISPLAY_KEY, {"channel_id": channel.id, "message_id": msg.id})
        except Exception as e:
            log.warning("Top10 board refresh failed: %r", e)

    async def _notify_submitter(self, res: Resolution) -> None:
        if res.approved and res.rank:
            text = f"✅ Your {res.slip.category} pass ({res.slip.et} @ {res.slip.mph}) was approved. You're **#{res.rank}**!"
        elif res.approved:
            text = f"✅ Your {res.slip.category} pass ({res.slip.et}) was approved, but it didn't make the Top 10."
        else:
            text = f"❌ Your {res.slip.category} pass ({res.slip.et} @ {res.slip.mph}) was denied."
        try:
            user = self.bot.get_user(int(res.slip.user_id)) or await self.bot.fetch_user(int(res.slip.user_id))
            await user.send(text)
        except Exception as e:
            log.info("Could not DM %s about slip %s: %r", res.slip.user_id, res.slip.slip_id, e)

    # ---------------- COMMANDS -----------------

    @app_commands.command(name="top10_submit", description="Submit a pass for the Top 10 leaderboard.")
    @app_commands.describe(
        category="Which board",
        et="Elapsed time (ex: 10.52)",
        mph="Trap speed (ex: 131.7)",
        proof="Time slip screenshot",
    )
    async def top10_submit(
        self,
        interaction: discord.Interaction,
        category: Literal["track", "street"],
        et: str,
        mph: str,
        proof: Optional[discord.Attachment] = None,
    ):
        try:
            if proof is not None and proof.content_type and not proof.content_type.startswith("image/"):
                raise ProofRequired("Proof must be an image (time slip screenshot).")

            slip = self.workflow.submit(
                interaction.user.id,
                category,
                et,
                mph,
                proof_url=proof.url if proof else None,
            )
        except CooldownActive as e:
            await reply_ephemeral(
                interaction,
                f"⏳ You can submit another {category} pass in **{format_duration(e.remaining_ms)}**.",
            )
            return
        except RaceMasterError as e:
            await reply_ephemeral(interaction, f"❌ {e.message}")
            return

        await interaction.response.send_message(
            f"📨 Submitted your {category} pass (**{slip.et}** @ **{slip.mph}** mph). Moderators will review it.",
            ephemeral=True,
        )

        channel = await self._get_channel(TOP10_APPROVAL_CHANNEL_ID)
        if channel is None:
            log.warning("No TOP10_APPROVAL_CHANNEL_ID channel; slip %s waits for /top10_pending.", slip.slip_id)
            return
        try:
            await safe_send(channel, embed=build_slip_embed(slip), view=build_approval_view(slip.slip_id))
        except Exception as e:
            log.warning("Could not post approval card for slip %s: %r", slip.slip_id, e)

    @app_commands.command(name="top10", description="Show the Top 10 leaderboards.")
    async def top10(self, interaction: discord.Interaction):
        await interaction.response.send_message(embed=build_board_embed(self.leaderboard.boards()))

    @app_commands.command(name="top10_pending", description="List Top 10 submissions waiting for review.")
    @app_commands.default_permissions(manage_events=True)
    async def top10_pending(self, interaction: discord.Interaction):
        if not is_top10_moderator(interaction):
            await reply_ephemeral(interaction, "❌ Only moderators can review submissions.")
            return

        slips = self.workflow.pending()
        if not slips:
            await reply_ephemeral(interaction, "✅ Nothing waiting for review.")
            return

        await interaction.response.send_message(
            embed=build_slip_embed(slips[0]),
            view=build_approval_view(slips[0].slip_id),
            ephemeral=True,
        )
        for slip in slips[1:10]:
            await interaction.followup.send(
                embed=build_slip_embed(slip),
                view=build_approval_view(slip.slip_id),
                ephemeral=True,
            )

    @app_commands.command(name="top10_reset", description="Clear a Top 10 board (all also clears cooldowns).")
    @app_commands.default_permissions(manage_guild=True)
    async def top10_reset(
        self,
        interaction: discord.Interaction,
        category: Literal["track", "street", "all"],
    ):
        if not is_top10_moderator(interaction):
            await reply_ephemeral(interaction, "❌ Only moderators can reset the leaderboard.")
            return

        await interaction.response.defer(ephemeral=True, thinking=True)
        self.leaderboard.reset(category)
        if category == "all":
            self.cooldowns.clear()
        log.info("Guild %s: Top10 %s reset by %s", interaction.guild_id, category, interaction.user)

        await self.refresh_board_message()
        await self.workflow.sync_roles()
        await interaction.followup.send(f"🧹 Top 10 **{category}** reset.", ephemeral=True)

    # ---------------- APPROVAL BUTTONS -----------------

    async def handle_decision(self, interaction: discord.Interaction, decision: str, slip_id: str) -> None:
        if not is_top10_moderator(interaction):
            await reply_ephemeral(interaction, "❌ Only moderators can approve or deny submissions.")
            return

        try:
            await interaction.response.defer()
            res = await self.workflow.resolve(slip_id, decision, interaction.user.id)
        except RaceMasterError as e:
            await reply_ephemeral(interaction, f"❌ {e.message}")
            return
        except Exception as e:
            log.exception("Top10 %s of slip %s failed: %r", decision, slip_id, e)
            await reply_ephemeral(interaction, "❌ Something went wrong.")
            return

        if decision == APPROVE:
            status = f"✅ Approved by {interaction.user.mention}" + (
                f" · now **#{res.rank}** on {res.slip.category}" if res.rank else " · outside the Top 10"
            )
        else:
            status = f"❌ Denied by {interaction.user.mention}"

        try:
            # deferred component update: this edits the card the button sits on
            await interaction.edit_original_response(embed=build_slip_embed(res.slip, status), view=None)
        except discord.HTTPException as e:
            log.warning("Could not update approval card for slip %s: %r", slip_id, e)

        if res.approved:
            await self.refresh_board_message()
        await self._notify_submitter(res)


async def setup(bot: commands.Bot):
    await bot.add_cog(Top10Cog(bot))
