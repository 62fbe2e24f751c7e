"""Channel registry: maps a step's channel to its sender.

The set of channels is closed: adding a transport means adding a
``BaseChannel`` subclass and registering it here.
"""

import logging
from typing import Optional

from core.constants import Channel
from messaging.channels import BaseChannel, EmailChannel, WhatsAppChannel

logger = logging.getLogger(__name__)


class ChannelRegistry:
    """Lookup table of configured outbound channels."""

    def __init__(self, channels: Optional[list[BaseChannel]] = None):
        self._channels: dict[Channel, BaseChannel] = {}
        for channel in channels or []:
            self.register(channel)

    def register(self, channel: BaseChannel) -> None:
        """Register (or replace) the sender for a channel type."""
        self._channels[channel.channel_type] = channel
        logger.debug(f"Workflow channel registered: {channel.channel_type.value}")

    def get(self, channel: Optional[str]) -> Optional[BaseChannel]:
        """Return the sender for a channel name; None when unknown."""
        if channel is None:
            channel = Channel.WHATSAPP.value
        try:
            return self._channels.get(Channel(channel))
        except ValueError:
            return None

    def list_channels(self) -> list[str]:
        return [c.value for c in self._channels]


_registry: Optional[ChannelRegistry] = None


def get_channel_registry() -> ChannelRegistry:
    """Get the process-wide registry with the default senders."""
    global _registry
    if _registry is None:
        _registry = ChannelRegistry([WhatsAppChannel(), EmailChannel()])
    return _registry
