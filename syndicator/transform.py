# syndicator/transform.py

"""Преобразование контента перед отправкой.

Порядок шагов фиксирован:

1. удалить маркеры недоступного медиа;
2. перевести (если включено), при ошибке оставить исходный текст;
3. удалить @упоминания и ссылки (по фильтрам пары);
4. схлопнуть пустые строки;
5. добавить подпись-брендинг последним блоком;
6. обработать изображения (водяной знак, обрезка), при ошибке взять оригинал.

Сами сущности здесь не изменяются: результат сохраняет вызывающий код.
"""

import re
from collections.abc import Awaitable, Callable

from syndicator.database import ChannelPair, SyndicationRepository
from syndicator.models.content import (
    ContentFilters,
    ImageOptions,
    Media,
    MediaType,
    RenderedContent,
    TranslationResult,
)
from syndicator.services.image_processor import ImageProcessor
from syndicator.services.translation import Translator
from syndicator.utils.logger import logger
from syndicator.utils.text import MEDIA_UNAVAILABLE_MARKER

MENTION_PATTERN = re.compile(r"@\w+")
LINK_PATTERN = re.compile(r"https?://\S+")
_MARKER_PATTERN = re.compile(r"[ \t]*" + re.escape(MEDIA_UNAVAILABLE_MARKER) + r"[ \t]*")

MediaFetcher = Callable[[Media], Awaitable[bytes]]

log = logger.bind(component="transform")


def strip_placeholders(content: str) -> str:
    return _MARKER_PATTERN.sub("", content)


def apply_filters(content: str, filters: ContentFilters) -> str:
    if filters.remove_mentions:
        content = MENTION_PATTERN.sub("", content)
    if filters.remove_links:
        content = LINK_PATTERN.sub("", content)
    return content


def collapse_blank_lines(content: str) -> str:
    lines = [re.sub(r"[ \t]{2,}", " ", line).strip() for line in content.splitlines()]
    content = "\n".join(lines)
    content = re.sub(r"\n{3,}", "\n\n", content)
    return content.strip()


def append_branding(content: str, branding: str | None) -> str:
    branding = (branding or "").strip()
    if not branding:
        return content
    if not content:
        return branding
    return f"{content}\n\n{branding}"


class ContentTransformer:
    def __init__(
        self,
        repository: SyndicationRepository,
        translator: Translator | None = None,
        image_processor: ImageProcessor | None = None,
        media_fetcher: MediaFetcher | None = None,
        watermark_default_text: str = "Reposted",
        image_quality: int = 85,
        image_max_width: int = 1920,
        image_max_height: int = 1080,
    ):
        self.repository = repository
        self.translator = translator or Translator()
        self.image_processor = image_processor
        self.media_fetcher = media_fetcher
        self.watermark_default_text = watermark_default_text
        self.image_quality = image_quality
        self.image_max_width = image_max_width
        self.image_max_height = image_max_height

    async def translate(
        self,
        content: str,
        channel_pair_id: str | None = None,
        post_id: str | None = None,
    ) -> TranslationResult:
        """Переводит текст. Ошибка перевода никогда не пробрасывается."""
        try:
            result = await self.translator.translate(content)
        except Exception as e:
            log.warning(f"⚠️ Перевод не удался, оставляем оригинал: {e}")
            await self.repository.add_activity(
                type="translation_failed",
                description=f"Translation failed: {e}",
                channel_pair_id=channel_pair_id,
                post_id=post_id,
            )
            return TranslationResult(
                original_text=content,
                detected_language="error",
                translated_text=content,
                was_translated=False,
            )

        if result.was_translated:
            await self.repository.add_activity(
                type="content_translated",
                description=(
                    f"Content translated from {result.detected_language} "
                    f"to {self.translator.target_language}"
                ),
                channel_pair_id=channel_pair_id,
                post_id=post_id,
                metadata={"detected_language": result.detected_language},
            )
        return result

    async def render_text(
        self,
        content: str,
        pair: ChannelPair,
        post_id: str | None = None,
        translate: bool | None = None,
    ) -> str:
        """Шаги 1-5.

        Args:
            translate: None означает "по настройке пары"
        """
        text = strip_placeholders(content or "")

        should_translate = pair.auto_translate if translate is None else translate
        if should_translate:
            result = await self.translate(text, channel_pair_id=pair.id, post_id=post_id)
            text = result.translated_text

        text = apply_filters(text, pair.filters)
        text = collapse_blank_lines(text)
        return append_branding(text, pair.custom_branding)

    async def render_media(
        self, media: list[Media], pair: ChannelPair, post_id: str | None = None
    ) -> list[Media]:
        """Шаг 6: обработка фото. Ошибка на одном файле оставляет оригинал."""
        filters = pair.filters
        if (
            not media
            or not filters.needs_image_processing
            or self.image_processor is None
            or self.media_fetcher is None
        ):
            return list(media)

        options = ImageOptions(
            add_watermark=filters.add_watermark,
            watermark_text=pair.custom_branding or self.watermark_default_text,
            remove_original_branding=filters.remove_original_branding,
            quality=self.image_quality,
            max_width=self.image_max_width,
            max_height=self.image_max_height,
        )

        rendered: list[Media] = []
        for item in media:
            if item.type != MediaType.PHOTO:
                rendered.append(item)
                continue
            try:
                original = await self.media_fetcher(item)
                processed = await self.image_processor.process(original, options)
            except Exception as e:
                log.warning(f"⚠️ Обработка изображения не удалась, шлем оригинал: {e}")
                await self.repository.add_activity(
                    type="image_processing_failed",
                    description=f"Image processing failed, original media used: {e}",
                    channel_pair_id=pair.id,
                    post_id=post_id,
                )
                rendered.append(item)
                continue

            rendered.append(item.model_copy(update={"data": processed}))
            await self.repository.add_activity(
                type="image_processed",
                description="Image processed with filters and branding",
                channel_pair_id=pair.id,
                post_id=post_id,
            )
        return rendered

    async def render(
        self,
        content: str,
        media: list[Media],
        pair: ChannelPair,
        post_id: str | None = None,
        translate: bool | None = None,
    ) -> RenderedContent:
        text = await self.render_text(content, pair, post_id=post_id, translate=translate)
        rendered_media = await self.render_media(media, pair, post_id=post_id)
        return RenderedContent(text=text, media=rendered_media)
