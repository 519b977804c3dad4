"""Repository layer for warning state and monitored channel database access."""
from modbot.repositories.warning_state_repo import WarningStateRepo
from modbot.repositories.monitored_channel_repo import MonitoredChannelRepo

__all__ = [
    "WarningStateRepo",
    "MonitoredChannelRepo",
]
