# syndicator/collectors/web_feed.py

"""Сборщик веб-источников: RSS 2.0 / Atom и произвольные HTML страницы.

Веб-контент никогда не публикуется автоматически, только в черновики.
"""

import asyncio
from datetime import datetime
from urllib.parse import urljoin

import feedparser
from bs4 import BeautifulSoup, Tag

from syndicator.collectors.base import BaseCollector, SourceFetchError
from syndicator.database import WebSource
from syndicator.models.content import (
    CandidateItem,
    CollectorKind,
    Media,
    MediaType,
    WebSourceKind,
)
from syndicator.utils.clock import utcnow
from syndicator.utils.text import (
    clean_html_content,
    is_valid_image_url,
    stable_item_id,
    unique_preserving_order,
)

RSS_ITEM_LIMIT = 10
HTML_ITEM_LIMIT = 5
MIN_HTML_CONTENT = 50

GENERIC_SELECTORS = [
    "article",
    ".article",
    ".post",
    ".news-item",
    ".entry",
    ".content-item",
    "main article",
    '[role="article"]',
    "h1, h2, h3",
]


def _images_from_html(html: str, base_url: str) -> list[str]:
    soup = BeautifulSoup(html, "html.parser")
    urls = [
        urljoin(base_url, img["src"])
        for img in soup.find_all("img", src=True)
        if is_valid_image_url(img["src"])
    ]
    return unique_preserving_order(urls)


def _entry_images(entry, body_html: str, base_url: str) -> list[str]:
    urls = _images_from_html(body_html, base_url)
    for m in entry.get("media_content", []):
        if m.get("url") and (m.get("medium") == "image" or m.get("type", "").startswith("image")):
            urls.append(m["url"])
    for enc in entry.get("enclosures", []):
        if enc.get("href") and enc.get("type", "").startswith("image"):
            urls.append(enc["href"])
    return unique_preserving_order(urls)


def _entry_published(entry) -> datetime | None:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime(*parsed[:6])


def parse_feed(text: str, source_url: str) -> list[CandidateItem]:
    """RSS 2.0 и Atom. Элемент нужен и с заголовком, и с текстом."""
    feed = feedparser.parse(text)
    if feed.bozo and not feed.entries:
        raise SourceFetchError(f"Некорректная лента: {feed.get('bozo_exception')}")

    items = []
    for entry in feed.entries:
        title = (entry.get("title") or "").strip()
        contents = entry.get("content") or []
        body_html = (contents[0].get("value") if contents else "") or entry.get("summary") or ""
        body = clean_html_content(body_html)
        if not title or not body:
            continue

        link = entry.get("link") or None
        # feedparser копирует guid в link, даже если это не URL
        if link and not link.startswith(("http://", "https://")):
            link = None
        items.append(
            CandidateItem(
                kind=CollectorKind.WEB_FEED,
                native_id=entry.get("id") or link or stable_item_id(title, body),
                title=title,
                text=body,
                url=link,
                published_at=_entry_published(entry),
                media=[
                    Media(type=MediaType.PHOTO, url=u)
                    for u in _entry_images(entry, body_html, link or source_url)
                ],
            )
        )

    # Сортировка устойчивая: элементы без даты сохраняют порядок ленты
    items.sort(key=lambda i: i.published_at or datetime.min, reverse=True)
    return items[:RSS_ITEM_LIMIT]


def _html_item(el: Tag, base_url: str) -> CandidateItem | None:
    content = clean_html_content(str(el))
    if len(content) <= MIN_HTML_CONTENT:
        return None

    title_el = el.select_one('h1, h2, h3, .title, [class*="title"]')
    title = (
        (title_el.get_text(" ", strip=True) if title_el else "")
        or (el.get("title") or "").strip()
        or content[:100].strip()
    )

    # Заголовок уже стоит отдельным блоком
    text = content
    if text.startswith(title) and text[len(title):].strip():
        text = text[len(title):].strip()

    link = el.find("a", href=True) or el.find_parent("a", href=True)
    url = urljoin(base_url, link["href"]) if link else None

    return CandidateItem(
        kind=CollectorKind.WEB_FEED,
        native_id=url or stable_item_id(title, content),
        title=title,
        text=text,
        url=url,
        media=[
            Media(type=MediaType.PHOTO, url=u)
            for u in _images_from_html(str(el), base_url)
        ],
    )


def parse_html(html: str, source_url: str, selector: str | None = None) -> list[CandidateItem]:
    """Первый селектор, давший содержательные блоки, и до 5 элементов."""
    soup = BeautifulSoup(html, "html.parser")
    selectors = [selector] if selector else GENERIC_SELECTORS

    for sel in selectors:
        items = []
        seen: set[str] = set()
        for el in soup.select(sel):
            item = _html_item(el, source_url)
            if item is None or item.native_id in seen:
                continue
            seen.add(item.native_id)
            items.append(item)
        if items:
            return items[:HTML_ITEM_LIMIT]
    return []


class WebFeedCollector(BaseCollector):
    kind = CollectorKind.WEB_FEED

    def __init__(self, repository, registry, intake, source_delay: float = 0.0, **kwargs):
        super().__init__(repository, registry, intake, **kwargs)
        self.source_delay = source_delay

    async def _collect_all(self) -> int:
        sources = await self.registry.due_web_sources(utcnow())
        created = 0
        for i, source in enumerate(sources):
            if i and self.source_delay:
                await asyncio.sleep(self.source_delay)
            created += await self._collect_source(source)
        return created

    async def parse_source_now(self, source: WebSource) -> int:
        """Ручной запуск, poll_interval не учитывается."""
        if not source.is_active:
            self.log.debug(f"⏸️ {source.name} выключен, пропуск")
            return 0
        async with self._lock:
            return await self._collect_source(source)

    async def fetch_items(self, source: WebSource) -> list[CandidateItem]:
        text = await self.fetch_page(source.url)
        if source.type == WebSourceKind.RSS.value:
            return await asyncio.to_thread(parse_feed, text, source.url)
        return await asyncio.to_thread(parse_html, text, source.url, source.selector)

    async def _collect_source(self, source: WebSource) -> int:
        try:
            items = await self.fetch_items(source)
        except Exception as e:
            self.log.error(f"❌ {source.name} ({source.url}): {e}")
            await self.repository.add_activity(
                type="web_parsing_failed",
                description=f"Failed to parse web source {source.name}: {e}",
                metadata={"web_source_id": source.id},
            )
            return 0

        await self.repository.mark_web_source_parsed(source.id, utcnow())
        self.log.debug(f"🔍 {source.name}: элементов {len(items)}")

        created = 0
        for item in items:
            try:
                if await self.intake.ingest_web_item(source, item) is not None:
                    created += 1
            except Exception as e:
                self.log.error(f"❌ {source.name}: элемент {item.native_id}: {e}")
                await self.repository.add_activity(
                    type="web_parsing_failed",
                    description=f"Failed to save item from {source.name}: {e}",
                    metadata={"web_source_id": source.id, "item_id": item.native_id},
                )
        return created
