# syndicator/database/__init__.py

"""Модуль работы с базой данных."""

from syndicator.database.models import (
    ActivityLog,
    Base,
    ChannelPair,
    DraftPost,
    Post,
    ScheduledPost,
    WebSource,
)
from syndicator.database.repository import SyndicationRepository

__all__ = [
    "ActivityLog",
    "Base",
    "ChannelPair",
    "DraftPost",
    "Post",
    "ScheduledPost",
    "WebSource",
    "SyndicationRepository",
]
