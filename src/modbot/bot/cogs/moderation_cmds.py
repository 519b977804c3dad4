"""
Owner commands for the Discord adapter.

All commands live under the ``/modbot`` group and are restricted to the bot
owner (``OWNER_ID``) and server administrators. Responses are ephemeral.
"""

from datetime import datetime, timezone
from typing import Optional

import discord
from discord import Option
from discord.ext import commands

from modbot.bot.embeds import build_diagnose_embed, build_status_embed
from modbot.bot.monitored_channels import MonitoredChannels
from modbot.datatypes.errors import PersistenceError
from modbot.moderation.moderation_orchestrator import ModerationOrchestrator
from modbot.util.logger import get_logger

logger = get_logger("moderation_commands")


class ModerationCommandsCog(commands.Cog):
    """Warning administration, status, and monitored channel management."""

    modbot = discord.SlashCommandGroup("modbot", "ModBot administration")

    def __init__(
        self,
        bot: discord.Bot,
        orchestrator: ModerationOrchestrator,
        channels: MonitoredChannels,
        owner_id: Optional[int] = None,
        mute_duration_seconds: int = 600,
    ) -> None:
        self.bot = bot
        self.orchestrator = orchestrator
        self.channels = channels
        self.owner_id = owner_id
        self.mute_duration_seconds = mute_duration_seconds

    def is_authorized(self, user: discord.abc.User) -> bool:
        if self.owner_id is not None and user.id == self.owner_id:
            return True
        permissions = getattr(user, "guild_permissions", None)
        return bool(permissions and permissions.administrator)

    async def _deny(self, application_context: discord.ApplicationContext) -> bool:
        """Respond with a refusal and return True when the invoker is not authorized."""
        if self.is_authorized(application_context.author):
            return False
        await application_context.respond("❌ You do not have permission to use this command.", ephemeral=True)
        return True

    # ------------------------------------------------------------------
    # Warnings
    # ------------------------------------------------------------------

    @modbot.command(name="warnings", description="Show a user's warnings")
    async def warnings(
        self,
        application_context: discord.ApplicationContext,
        user: Option(discord.User, "The user to inspect.", required=True),  # type: ignore
    ) -> None:
        if await self._deny(application_context):
            return

        now = datetime.now(timezone.utc)
        state = self.orchestrator.warning_store.get(str(user.id), now)
        limit = self.orchestrator.evaluator.policy.escalation_limit
        content = f"📊 {user.mention} has {state.warning_count}/{limit} warnings."
        if state.is_muted(now):
            content += f" Muted until <t:{int(state.muted_until.timestamp())}:R>."
        await application_context.respond(content, ephemeral=True)

    @modbot.command(name="clearwarnings", description="Clear a user's warnings")
    async def clearwarnings(
        self,
        application_context: discord.ApplicationContext,
        user: Option(discord.User, "The user whose warnings to clear.", required=True),  # type: ignore
    ) -> None:
        if await self._deny(application_context):
            return

        try:
            await self.orchestrator.warning_store.clear(str(user.id))
        except PersistenceError as exc:
            logger.error("[COMMANDS] Cleared %s in memory only: %s", user.id, exc)
        await application_context.respond(f"✅ Warnings for {user.mention} were cleared.", ephemeral=True)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @modbot.command(name="status", description="Show the bot's moderation status")
    async def status(self, application_context: discord.ApplicationContext) -> None:
        if await self._deny(application_context):
            return

        thresholds = self.orchestrator.normalizer.default_thresholds
        embed = build_status_embed(
            monitored_channels=len(self.channels),
            users_with_warnings=self.orchestrator.warning_store.users_with_warnings(),
            toxicity_threshold=thresholds["toxicity"],
            severe_toxicity_threshold=thresholds["severe_toxicity"],
            mute_duration_seconds=self.mute_duration_seconds,
            escalation_limit=self.orchestrator.evaluator.policy.escalation_limit,
            total_decisions=self.orchestrator.stats.total_decisions,
        )
        await application_context.respond(embed=embed, ephemeral=True)

    @modbot.command(name="diagnose", description="Check the bot's permissions and setup in this channel")
    async def diagnose(self, application_context: discord.ApplicationContext) -> None:
        """Report permissions and monitoring for the current channel, then try a send and delete."""
        if await self._deny(application_context):
            return

        await application_context.defer(ephemeral=True)
        channel = application_context.channel
        permissions = channel.permissions_for(application_context.guild.me)
        embed = build_diagnose_embed(
            channel_name=getattr(channel, "name", str(channel.id)),
            bot_user=str(self.bot.user),
            latency_ms=self.bot.latency * 1000,
            permissions={
                "View Channel": permissions.view_channel,
                "Send Messages": permissions.send_messages,
                "Manage Messages": permissions.manage_messages,
                "Timeout Members": permissions.moderate_members,
            },
            channel_monitored=self.channels.is_monitored(channel.id),
            monitored_channels=len(self.channels),
            users_with_warnings=self.orchestrator.warning_store.users_with_warnings(),
            classifier_configured=bool(getattr(self.orchestrator.classifier, "configured", True)),
        )

        try:
            test_message = await channel.send("🧪 Diagnostics test message, deleting now...")
        except discord.HTTPException as exc:
            logger.warning("[COMMANDS] Diagnose send failed in %s: %s", channel.id, exc)
            embed.add_field(name="🧪 Send Test", value=f"❌ Failed: {exc}", inline=False)
        else:
            try:
                await test_message.delete()
                embed.add_field(name="🧪 Delete Test", value="✅ The bot can delete messages", inline=False)
            except discord.HTTPException as exc:
                logger.warning("[COMMANDS] Diagnose delete failed in %s: %s", channel.id, exc)
                embed.add_field(name="🧪 Delete Test", value=f"❌ Failed: {exc}", inline=False)

        await application_context.respond(embed=embed, ephemeral=True)

    # ------------------------------------------------------------------
    # Monitored channels
    # ------------------------------------------------------------------

    @modbot.command(name="addchannel", description="Start moderating a channel")
    async def addchannel(
        self,
        application_context: discord.ApplicationContext,
        channel: Option(discord.TextChannel, "Channel to monitor (defaults to this one).", required=False),  # type: ignore
    ) -> None:
        if await self._deny(application_context):
            return

        target = channel or application_context.channel
        if await self.channels.add(target.id):
            await application_context.respond(f"✅ Channel {target.mention} added to the monitored list.", ephemeral=True)
        else:
            await application_context.respond("❌ This channel is already monitored.", ephemeral=True)

    @modbot.command(name="removechannel", description="Stop moderating a channel")
    async def removechannel(
        self,
        application_context: discord.ApplicationContext,
        channel: Option(discord.TextChannel, "Channel to stop monitoring (defaults to this one).", required=False),  # type: ignore
    ) -> None:
        if await self._deny(application_context):
            return

        target = channel or application_context.channel
        if await self.channels.remove(target.id):
            await application_context.respond(f"✅ Channel {target.mention} removed from the monitored list.", ephemeral=True)
        else:
            await application_context.respond("❌ This channel is not monitored.", ephemeral=True)

    @modbot.command(name="listchannels", description="List the monitored channels")
    async def listchannels(self, application_context: discord.ApplicationContext) -> None:
        if await self._deny(application_context):
            return

        channel_ids = self.channels.as_list()
        if not channel_ids:
            await application_context.respond("📋 No channel list configured, every channel is monitored.", ephemeral=True)
            return
        listing = "\n".join(f"<#{channel_id}> (`{channel_id}`)" for channel_id in channel_ids)
        await application_context.respond(f"📋 **Monitored channels:**\n{listing}", ephemeral=True)


def setup(
    bot: discord.Bot,
    orchestrator: ModerationOrchestrator,
    channels: MonitoredChannels,
    owner_id: Optional[int] = None,
    mute_duration_seconds: int = 600,
) -> None:
    """Register the ModerationCommandsCog with the bot."""
    bot.add_cog(ModerationCommandsCog(bot, orchestrator, channels, owner_id, mute_duration_seconds))
