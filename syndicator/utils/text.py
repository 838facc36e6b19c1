# syndicator/utils/text.py

"""Нормализация идентификаторов и очистка текста."""

import hashlib
import re
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

# Маркер, который сборщики вставляют вместо медиа, которое не удалось получить
MEDIA_UNAVAILABLE_MARKER = "[media unavailable]"

_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")


def normalize_channel_username(value: str) -> str:
    """Приводит ссылку или @username канала к голому username.

    Args:
        value: "@name", "name", "https://t.me/name" или "https://t.me/s/name"

    Returns:
        Username без префиксов
    """
    value = value.strip()
    match = re.search(r"t\.me/(?:s/)?([a-zA-Z0-9_]+)", value)
    if match:
        return match.group(1)
    return value.lstrip("@").strip("/")


def validate_channel_username(username: str) -> bool:
    """Проверяет, похож ли username на публичный Telegram канал."""
    return bool(re.match(r"^[a-zA-Z][a-zA-Z0-9_]{3,31}$", username))


def clean_html_content(content: str, max_length: int = 2000) -> str:
    """Убирает HTML-теги, схлопывает пробелы и обрезает длинный текст."""
    text = BeautifulSoup(content, "html.parser").get_text(" ")
    text = re.sub(r"\s+", " ", text).strip()

    if len(text) > max_length:
        text = text[:max_length] + "..."

    return text


def is_valid_image_url(url: str) -> bool:
    """Похож ли URL на картинку: по расширению или ключевым словам."""
    if not url:
        return False
    try:
        path = urlparse(urljoin("https://example.com", url)).path.lower()
    except ValueError:
        return False
    return (
        any(ext in path for ext in _IMAGE_EXTENSIONS)
        or "image" in url
        or "photo" in url
    )


def is_content_media_url(url: str) -> bool:
    """Отсекает эмодзи, аватарки и фото профилей на странице t.me/s."""
    if not url or "emoji" in url or "avatar" in url:
        return False

    # Маленькие квадратные картинки обычно аватарки
    if re.search(r"\.jpg\?.*size.*[1-9][0-9]x[1-9][0-9]$", url):
        return False

    if "/profile_photos/" in url or "/channel_photos/" in url:
        return False

    return True


def stable_item_id(*parts: str) -> str:
    """Синтетический стабильный ID для элементов без guid и ссылки."""
    content = "|".join(" ".join(p.split()) for p in parts if p)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


def unique_preserving_order(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))
