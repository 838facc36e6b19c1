# syndicator/collectors/web_channel.py

"""Сборщик публичной веб-версии канала (https://t.me/s/<username>).

Не требует прав бота в канале-источнике.
"""

import re
from datetime import datetime

from bs4 import BeautifulSoup, Tag

from syndicator.collectors.base import ChannelCollector
from syndicator.models.content import CandidateItem, CollectorKind, Media, MediaType
from syndicator.utils.clock import to_naive_utc
from syndicator.utils.text import MEDIA_UNAVAILABLE_MARKER, is_content_media_url

WEB_PREVIEW_URL = "https://t.me/s/{username}"

_BACKGROUND_URL = re.compile(r"background-image:\s*url\(['\"]?([^'\")]+)['\"]?\)")

# Порядок важен: первое вхождение URL определяет тип медиа
_BACKGROUND_SELECTORS = (
    (".tgme_widget_message_photo_wrap", MediaType.PHOTO),
    (".tgme_widget_message_video_thumb", MediaType.PHOTO),
    (".tgme_widget_message_grouped_wrap .tgme_widget_message_photo_wrap", MediaType.PHOTO),
    (".tgme_widget_message_link_preview .link_preview_image", MediaType.PHOTO),
)


def _message_id(block: Tag) -> int | None:
    data_post = block.get("data-post") or ""
    tail = data_post.rsplit("/", 1)[-1]
    return int(tail) if tail.isdigit() else None


def _message_text(block: Tag) -> str:
    text_el = block.select_one(".tgme_widget_message_text")
    if text_el is None:
        return ""
    for br in text_el.find_all("br"):
        br.replace_with("\n")
    return text_el.get_text().strip()


def _message_time(block: Tag) -> datetime | None:
    time_el = block.select_one(".tgme_widget_message_date time")
    if time_el is None or not time_el.get("datetime"):
        return None
    try:
        return to_naive_utc(datetime.fromisoformat(time_el["datetime"]))
    except ValueError:
        return None


def _message_media(block: Tag) -> list[Media]:
    found: list[tuple[str, MediaType]] = []

    for selector, media_type in _BACKGROUND_SELECTORS:
        for el in block.select(selector):
            match = _BACKGROUND_URL.search(el.get("style") or "")
            if match and is_content_media_url(match.group(1)):
                found.append((match.group(1), media_type))

    for doc in block.select(".tgme_widget_message_document"):
        link = doc.find("a", href=True)
        if link:
            found.append((link["href"], MediaType.DOCUMENT))

    # Запасной вариант: прямые <img>
    for img in block.find_all("img", src=True):
        if is_content_media_url(img["src"]):
            found.append((img["src"], MediaType.PHOTO))

    seen: dict[str, MediaType] = {}
    for url, media_type in found:
        seen.setdefault(url, media_type)
    return [Media(type=t, url=u) for u, t in seen.items()]


def parse_channel_page(html: str) -> list[CandidateItem]:
    """Разбирает страницу t.me/s. Сообщения по возрастанию ID."""
    soup = BeautifulSoup(html, "html.parser")
    items = []

    for block in soup.select(".tgme_widget_message"):
        message_id = _message_id(block)
        if message_id is None:
            continue

        text = _message_text(block)
        media = _message_media(block)
        if block.select_one(".message_media_not_supported"):
            text = f"{text}\n{MEDIA_UNAVAILABLE_MARKER}" if text else MEDIA_UNAVAILABLE_MARKER

        if not text and not media:
            continue

        items.append(
            CandidateItem(
                kind=CollectorKind.WEB_CHANNEL,
                native_id=str(message_id),
                text=text,
                media=media,
                published_at=_message_time(block),
            )
        )

    items.sort(key=lambda item: item.numeric_id)
    return items


class WebChannelCollector(ChannelCollector):
    kind = CollectorKind.WEB_CHANNEL
    error_log_type = "web_parsing_error"

    async def fetch_messages(self, username: str) -> list[CandidateItem]:
        url = WEB_PREVIEW_URL.format(username=username)
        self.log.debug(f"🌐 {url}")
        html = await self.fetch_page(url)
        items = parse_channel_page(html)
        self.log.debug(f"📋 @{username}: сообщений на странице {len(items)}")
        return items
