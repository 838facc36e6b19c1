# syndicator/utils/__init__.py

"""Утилиты и вспомогательные функции."""

from syndicator.utils.clock import to_naive_utc, utcnow
from syndicator.utils.logger import logger, setup_logger
from syndicator.utils.text import (
    MEDIA_UNAVAILABLE_MARKER,
    clean_html_content,
    is_content_media_url,
    is_valid_image_url,
    normalize_channel_username,
    stable_item_id,
    validate_channel_username,
)

__all__ = [
    "logger",
    "setup_logger",
    "utcnow",
    "to_naive_utc",
    "MEDIA_UNAVAILABLE_MARKER",
    "clean_html_content",
    "is_content_media_url",
    "is_valid_image_url",
    "normalize_channel_username",
    "stable_item_id",
    "validate_channel_username",
]
