# -*- coding: utf-8 -*-
"""
Channel adapters, one per messaging platform.
"""

from aiexpense.channels.base import ChannelAdapter, DeliveryMode, Inbound
from aiexpense.channels.discord import DiscordAdapter
from aiexpense.channels.line import LineAdapter
from aiexpense.channels.slack import SlackAdapter
from aiexpense.channels.teams import TeamsAdapter
from aiexpense.channels.telegram import TelegramAdapter
from aiexpense.channels.terminal import TerminalAdapter
from aiexpense.channels.whatsapp import WhatsAppAdapter
from aiexpense.types import Source

ADAPTERS = {
    Source.TERMINAL: TerminalAdapter,
    Source.LINE: LineAdapter,
    Source.TELEGRAM: TelegramAdapter,
    Source.DISCORD: DiscordAdapter,
    Source.SLACK: SlackAdapter,
    Source.TEAMS: TeamsAdapter,
    Source.WHATSAPP: WhatsAppAdapter,
}


def build_adapters(settings) -> list[ChannelAdapter]:
    """Adapters for the enabled channels, in ENABLED_MESSENGERS order."""
    return [ADAPTERS[source](settings) for source in settings.sources]


__all__ = [
    "ChannelAdapter",
    "DeliveryMode",
    "Inbound",
    "TerminalAdapter",
    "LineAdapter",
    "TelegramAdapter",
    "DiscordAdapter",
    "SlackAdapter",
    "TeamsAdapter",
    "WhatsAppAdapter",
    "ADAPTERS",
    "build_adapters",
]
