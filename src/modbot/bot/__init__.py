"""
Discord adapter for ModBot.

- **platform_adapter.py**: DiscordActionAdapter, one per moderated message.
- **monitored_channels.py**: Runtime-editable list of moderated channels.
- **embeds.py**: Log, DM notice and status embeds.
- **cogs/message_listener.py**: Moderates incoming guild messages.
- **cogs/moderation_cmds.py**: ``/modbot`` administration commands.
"""
