"""Message listener Cog for ModBot.

Listens to guild messages, filters out the ones that are never moderated,
and passes the rest through the moderation orchestrator. The resulting
decision is enacted on Discord through a DiscordActionAdapter.
"""

from typing import Optional, Sequence

import discord
from discord.ext import commands

from modbot.bot.monitored_channels import MonitoredChannels
from modbot.bot.platform_adapter import DiscordActionAdapter
from modbot.configuration.moderation_settings import DiscordSettings
from modbot.datatypes.moderation_datatypes import ModerationAction
from modbot.moderation.decision_enactor import DecisionEnactor
from modbot.moderation.moderation_orchestrator import ModerationOrchestrator
from modbot.util.logger import get_logger

logger = get_logger("message_listener_cog")


class MessageListenerCog(commands.Cog):
    """
    Moderates every qualifying message.

    Parameters
    ----------
    bot:
        Discord bot instance.
    orchestrator:
        Moderation pipeline producing a decision per message.
    enactor:
        Turns decisions into Discord actions.
    channels:
        Channels to moderate (empty means all).
    settings:
        Immunity lists, ignored prefixes, and log channel.
    owner_id:
        Bot owner, never moderated.
    min_text_length:
        Shorter messages are ignored.
    """

    def __init__(
        self,
        bot: discord.Bot,
        orchestrator: ModerationOrchestrator,
        enactor: DecisionEnactor,
        channels: MonitoredChannels,
        settings: DiscordSettings,
        owner_id: Optional[int] = None,
        min_text_length: int = 3,
    ) -> None:
        self.bot = bot
        self.orchestrator = orchestrator
        self.enactor = enactor
        self.channels = channels
        self.settings = settings
        self.owner_id = owner_id
        self.min_text_length = min_text_length
        self._immune_users = set(settings.immune_users)
        self._immune_roles = set(settings.immune_roles)
        self._ignored_prefixes: Sequence[str] = tuple(settings.ignored_prefixes)
        logger.info("[MESSAGE LISTENER] Message listener cog loaded")

    def should_moderate(self, message: discord.Message) -> bool:
        """Whether ``message`` goes through the moderation pipeline at all."""
        author = message.author
        if author.bot or message.guild is None:
            return False
        if not self.channels.is_monitored(message.channel.id):
            return False
        if self.owner_id is not None and author.id == self.owner_id:
            return False
        if author.id in self._immune_users:
            return False
        roles = getattr(author, "roles", None) or []
        if any(role.id in self._immune_roles for role in roles):
            return False

        content = message.content.strip()
        if len(content) < self.min_text_length:
            return False
        return not content.startswith(self._ignored_prefixes)

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message) -> None:
        """Evaluate the message and enact the decision."""
        if not self.should_moderate(message):
            return

        logger.debug("Received message from %s: %s", message.author, message.content[:80])

        decision = await self.orchestrator.evaluate_message(message.content, str(message.author.id))
        if decision.action is ModerationAction.ALLOW:
            return

        adapter = DiscordActionAdapter(
            message,
            log_channel=self._log_channel(),
            log_auto_delete_seconds=self.settings.log_auto_delete_seconds,
        )
        steps = await self.enactor.enact(decision, adapter)
        logger.info(
            "[MESSAGE LISTENER] %s for %s in #%s: %s",
            decision.action,
            message.author,
            getattr(message.channel, "name", message.channel.id),
            ", ".join(steps) or "no steps succeeded",
        )

    def _log_channel(self) -> Optional[discord.abc.Messageable]:
        channel_id = self.settings.log_channel_id
        if channel_id is None:
            return None
        return self.bot.get_channel(channel_id)


def setup(
    bot: discord.Bot,
    orchestrator: ModerationOrchestrator,
    enactor: DecisionEnactor,
    channels: MonitoredChannels,
    settings: DiscordSettings,
    owner_id: Optional[int] = None,
    min_text_length: int = 3,
) -> None:
    """Register the MessageListenerCog with the bot."""
    bot.add_cog(MessageListenerCog(bot, orchestrator, enactor, channels, settings, owner_id, min_text_length))
