# cogs/race_checks.py
# Who may run ladder / Top 10 moderation actions, and where.

import discord

from core.config import LADDER_CHANNEL_ID, RACE_DIRECTOR_ROLE_ID


def is_race_director(interaction: discord.Interaction) -> bool:
    """Manage Events permission, or the Race Director role."""
    perms = interaction.permissions
    if perms is not None and (perms.manage_events or perms.administrator):
        return True

    member = interaction.user
    if not isinstance(member, discord.Member) or RACE_DIRECTOR_ROLE_ID is None:
        return False
    return any(r.id == RACE_DIRECTOR_ROLE_ID for r in member.roles)


def is_top10_moderator(interaction: discord.Interaction) -> bool:
    perms = interaction.permissions
    if perms is not None and perms.manage_guild:
        return True
    return is_race_director(interaction)


def is_ladder_channel(interaction: discord.Interaction) -> bool:
    # unset LADDER_CHANNEL_ID = any channel
    if LADDER_CHANNEL_ID is None:
        return True
    return interaction.channel_id == LADDER_CHANNEL_ID


async def setup(bot):
    """discord.py extension entrypoint (no-op)."""
    return
