"""
Embed creation utilities for moderation notifications.

This module builds the Discord embeds for log entries, the DM sent to a
user whose message was removed, and the status and diagnose commands.
"""

import datetime
from typing import Dict, Tuple

import discord

from modbot.datatypes.moderation_datatypes import ModerationAction, ModerationDecision
from modbot.util.format_utils import format_duration

# Emoji, label and colour for each action
ACTION_DETAILS: Dict[ModerationAction, Tuple[str, str, discord.Color]] = {
    ModerationAction.ALLOW_FLAGGED: ("🚩", "Message Flagged", discord.Color.light_grey()),
    ModerationAction.BLOCK_WARN: ("⚠️", "Warning Issued", discord.Color.gold()),
    ModerationAction.BLOCK_TIMEOUT: ("🔇", "User Timed Out", discord.Color.red()),
    ModerationAction.BLOCK_BAN: ("🔨", "Ban Recommended", discord.Color.dark_red()),
}


def build_log_embed(decision: ModerationDecision, user: discord.abc.User) -> discord.Embed:
    """
    Create the log embed posted after a decision is enacted.

    Args:
        decision: The enacted decision.
        user: Author of the moderated message.

    Returns:
        discord.Embed: Embed with user, action, reason and score details.
    """
    emoji, label, color = ACTION_DETAILS.get(decision.action, ("🤖", "Action Taken", discord.Color.blue()))

    embed = discord.Embed(
        title=f"{emoji} Auto-Moderation",
        color=color,
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(name="User", value=f"{user.mention} (`{user.id}`)", inline=True)
    embed.add_field(name="Action", value=label, inline=True)
    embed.add_field(name="Reason", value=decision.reason, inline=False)

    details = [f"Severity: {decision.severity}", f"Confidence: {decision.confidence}%"]
    if decision.action is ModerationAction.BLOCK_WARN:
        details.append(f"Warnings: {decision.warning_count_after}")
    if decision.muted_until is not None:
        details.append(f"Muted until: <t:{int(decision.muted_until.timestamp())}:R>")
    if decision.action is ModerationAction.BLOCK_BAN:
        details.append("Ban left to a moderator")
    embed.add_field(name="Details", value="\n".join(details), inline=False)

    embed.set_footer(text="ModBot")
    return embed


def build_notice_embed(message: str, guild_name: str) -> discord.Embed:
    """Create the DM embed sent to a user whose message was removed."""
    embed = discord.Embed(
        title="⚠️ Moderation Notice",
        description=message,
        color=discord.Color.from_rgb(255, 107, 107),
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(name="Server", value=guild_name, inline=True)
    return embed


def build_status_embed(
    monitored_channels: int,
    users_with_warnings: int,
    toxicity_threshold: float,
    severe_toxicity_threshold: float,
    mute_duration_seconds: int,
    escalation_limit: int,
    total_decisions: int,
) -> discord.Embed:
    embed = discord.Embed(
        title="📊 ModBot Status",
        color=discord.Color.blue(),
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(
        name="Monitored Channels",
        value=str(monitored_channels) if monitored_channels else "All",
        inline=True,
    )
    embed.add_field(name="Users With Warnings", value=str(users_with_warnings), inline=True)
    embed.add_field(name="Toxicity Threshold", value=f"{toxicity_threshold * 100:.1f}%", inline=True)
    embed.add_field(name="Mute Duration", value=format_duration(mute_duration_seconds), inline=True)
    embed.add_field(name="Warnings Before Timeout", value=str(escalation_limit), inline=True)
    embed.add_field(name="Severe Threshold", value=f"{severe_toxicity_threshold * 100:.1f}%", inline=True)
    embed.add_field(name="Decisions", value=str(total_decisions), inline=True)
    return embed


def _mark(ok: bool) -> str:
    return "✅" if ok else "❌"


def build_diagnose_embed(
    channel_name: str,
    bot_user: str,
    latency_ms: float,
    permissions: Dict[str, bool],
    channel_monitored: bool,
    monitored_channels: int,
    users_with_warnings: int,
    classifier_configured: bool,
) -> discord.Embed:
    """
    Create the embed reported by ``/modbot diagnose``.

    Args:
        channel_name: Channel the diagnosis ran in.
        bot_user: Display name of the bot account.
        latency_ms: Gateway latency in milliseconds.
        permissions: Permission label -> whether the bot holds it in the channel.
        channel_monitored: Whether messages in the channel are moderated.
        monitored_channels: Size of the monitored channel list (0 means all).
        users_with_warnings: Users currently holding at least one warning.
        classifier_configured: Whether the Perspective API key is set.

    Returns:
        discord.Embed: Embed without the send/delete test results, which the
        caller appends.
    """
    embed = discord.Embed(
        title="🔍 ModBot Diagnostics",
        description=f"Diagnostics for channel: {channel_name}",
        color=discord.Color.from_rgb(116, 192, 252),
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(name="🤖 Bot", value=f"Connected as {bot_user}\nPing: {latency_ms:.0f}ms", inline=True)
    embed.add_field(
        name="🛡️ Channel Permissions",
        value="\n".join(f"{label}: {_mark(granted)}" for label, granted in permissions.items()),
        inline=False,
    )
    embed.add_field(
        name="📊 Monitoring",
        value=(
            f"This channel: {'✅ Monitored' if channel_monitored else '❌ Not monitored'}\n"
            f"Channel list: {monitored_channels if monitored_channels else 'All'}\n"
            f"Users with warnings: {users_with_warnings}"
        ),
        inline=False,
    )
    embed.add_field(
        name="🌐 APIs",
        value=f"Perspective API: {'✅ Configured' if classifier_configured else '❌ Not configured'}",
        inline=False,
    )
    return embed
