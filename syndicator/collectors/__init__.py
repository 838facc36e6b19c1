# syndicator/collectors/__init__.py

"""Сборщики: Bot API, веб-версия каналов, RSS/HTML."""

from syndicator.collectors.base import BaseCollector, ChannelCollector, SourceFetchError
from syndicator.collectors.bot_api import BotApiCollector, BotApiSource
from syndicator.collectors.web_channel import WebChannelCollector
from syndicator.collectors.web_feed import WebFeedCollector

__all__ = [
    "BaseCollector",
    "ChannelCollector",
    "SourceFetchError",
    "BotApiCollector",
    "BotApiSource",
    "WebChannelCollector",
    "WebFeedCollector",
]
