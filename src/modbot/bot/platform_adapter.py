"""
Discord implementation of the platform action adapter.

One adapter is created per moderated message. Each method performs a single
Discord API call and raises on failure; DecisionEnactor decides what to do
with the error.
"""

from __future__ import annotations

import datetime
from typing import Optional

import discord

from modbot.bot.embeds import build_log_embed, build_notice_embed
from modbot.datatypes.moderation_datatypes import ModerationDecision
from modbot.util.logger import get_logger

logger = get_logger("discord_adapter")

TIMEOUT_REASON = "Toxic content detected by automatic moderation"


class DiscordActionAdapter:
    """
    Enacts moderation steps for one Discord message.

    Attributes:
        message: The message the decision was made about.
        log_channel: Dedicated log channel; when None, logs go to the
            message's channel and are deleted after ``log_auto_delete_seconds``.
    """

    def __init__(
        self,
        message: discord.Message,
        log_channel: Optional[discord.abc.Messageable] = None,
        log_auto_delete_seconds: float = 10,
    ) -> None:
        self.message = message
        self.log_channel = log_channel
        self.log_auto_delete_seconds = log_auto_delete_seconds

    async def delete_message(self) -> None:
        try:
            await self.message.delete()
        except discord.NotFound:
            logger.debug("[DISCORD ADAPTER] Message %s already deleted", self.message.id)

    async def timeout_user(self, duration_seconds: int) -> None:
        member = self._member()
        if member is None:
            raise RuntimeError(f"author {self.message.author.id} is not a guild member")
        await member.timeout_for(datetime.timedelta(seconds=duration_seconds), reason=TIMEOUT_REASON)
        logger.info("[DISCORD ADAPTER] Timed out %s for %ss", member, duration_seconds)

    async def notify_user(self, message: str) -> None:
        guild_name = self.message.guild.name if self.message.guild else "Direct Message"
        await self.message.author.send(embed=build_notice_embed(message, guild_name))

    async def post_log(self, decision: ModerationDecision) -> None:
        embed = build_log_embed(decision, self.message.author)
        if self.log_channel is not None:
            await self.log_channel.send(embed=embed)
            return
        await self.message.channel.send(embed=embed, delete_after=self.log_auto_delete_seconds)

    def _member(self) -> Optional[discord.Member]:
        author = self.message.author
        if isinstance(author, discord.Member):
            return author
        guild = self.message.guild
        return guild.get_member(author.id) if guild else None
