# cogs/discord_safe.py
# Discord API smoothness helpers:
# - safe_add_role / safe_remove_role (role sync)
# - safe_edit_message / safe_send
# - reply_ephemeral (works before or after the interaction was answered)
#
# Goal:
# Prevent 429 rate limits + reduce "interaction failed" by pacing bulk operations.
#
# Works with discord.py 2.x

from __future__ import annotations

import asyncio
import logging
import random
from typing import Optional, Any

import discord

log = logging.getLogger(__name__)


# ----------------------------
# pacing / retry core
# ----------------------------

async def _sleep_with_jitter(base: float, jitter: float = 0.15) -> None:
    await asyncio.sleep(max(0.0, base + random.uniform(0, jitter)))


async def _handle_rate_limit(exc: Exception, default_sleep: float = 1.5) -> float:
    """
    Returns suggested sleep time if exception looks like a Discord 429.
    discord.py often includes `retry_after` on HTTPException.
    """
    if isinstance(exc, discord.HTTPException):
        status = getattr(exc, "status", None)
        if status == 429:
            retry_after = getattr(exc, "retry_after", None)
            if isinstance(retry_after, (int, float)) and retry_after > 0:
                return float(retry_after) + 0.2
            return default_sleep
    return 0.0


async def _retry_http(
    fn,
    *,
    tries: int = 5,
    base_sleep: float = 0.8,
    jitter: float = 0.2,
    allow_not_found: bool = False
):
    last_exc: Optional[Exception] = None
    for attempt in range(1, tries + 1):
        try:
            return await fn()
        except discord.NotFound:
            if allow_not_found:
                return None
            raise
        except discord.Forbidden:
            # Permission issue: do not retry
            raise
        except discord.HTTPException as e:
            last_exc = e
            rl_sleep = await _handle_rate_limit(e)
            if rl_sleep > 0:
                await _sleep_with_jitter(rl_sleep, jitter=0.1)
            else:
                if attempt == tries:
                    break
                await _sleep_with_jitter(base_sleep * attempt, jitter=jitter)

    if last_exc:
        raise last_exc
    return None


# ----------------------------
# public helpers
# ----------------------------

async def safe_add_role(
    member: discord.Member,
    role: discord.Role,
    *,
    reason: Optional[str] = None,
    spacing: float = 0.35,
) -> None:
    """Adds a role with retry + pacing (role sync touches many members)."""
    async def _do_add():
        return await member.add_roles(role, reason=reason)

    await _retry_http(_do_add, tries=4, base_sleep=0.6, allow_not_found=True)
    await _sleep_with_jitter(spacing, jitter=0.1)


async def safe_remove_role(
    member: discord.Member,
    role: discord.Role,
    *,
    reason: Optional[str] = None,
    spacing: float = 0.35,
) -> None:
    async def _do_remove():
        return await member.remove_roles(role, reason=reason)

    await _retry_http(_do_remove, tries=4, base_sleep=0.6, allow_not_found=True)
    await _sleep_with_jitter(spacing, jitter=0.1)


async def safe_edit_message(
    message: discord.Message,
    *,
    spacing: float = 0.25,
    **kwargs: Any
) -> Optional[discord.Message]:
    """
    Safe edit for frequently updated messages (leaderboard, approval cards).
    Returns None if the message is gone.
    """
    async def _do_edit():
        return await message.edit(**kwargs)

    edited = await _retry_http(_do_edit, tries=5, base_sleep=0.6, allow_not_found=True)
    await _sleep_with_jitter(spacing, jitter=0.1)
    return edited


async def safe_send(
    channel: discord.abc.Messageable,
    **kwargs: Any
) -> Optional[discord.Message]:
    async def _do_send():
        return await channel.send(**kwargs)

    return await _retry_http(_do_send, tries=3, base_sleep=0.6)


async def reply_ephemeral(interaction: discord.Interaction, content: str) -> None:
    """Reply privately whether or not the interaction was already answered/deferred."""
    try:
        if interaction.response.is_done():
            await interaction.followup.send(content, ephemeral=True)
        else:
            await interaction.response.send_message(content, ephemeral=True)
    except discord.HTTPException:
        log.exception("Failed to send ephemeral reply.")


async def setup(bot):
    """discord.py extension entrypoint (no-op)."""
    return
