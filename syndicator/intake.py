# syndicator/intake.py

"""Дедупликация и запись новых элементов от сборщиков.

Ключ дедупликации:
    пара каналов   -> (channel_pair_id, original_post_id)
    веб-источник   -> (web_source_id, original_post_id)
"""

from syndicator.database import (
    ChannelPair,
    DraftPost,
    Post,
    SyndicationRepository,
    WebSource,
)
from syndicator.dispatcher import Dispatcher
from syndicator.models.content import CandidateItem, CopyMode
from syndicator.transform import ContentTransformer
from syndicator.utils.logger import logger

log = logger.bind(component="intake")


class Intake:
    def __init__(
        self,
        repository: SyndicationRepository,
        dispatcher: Dispatcher,
        transformer: ContentTransformer,
    ):
        self.repository = repository
        self.dispatcher = dispatcher
        self.transformer = transformer

    async def ingest_channel_item(
        self, pair: ChannelPair, item: CandidateItem
    ) -> Post | DraftPost | None:
        """Записывает сообщение канала как Post или DraftPost.

        Returns:
            Созданная сущность или None, если элемент уже записан
        """
        if pair.copy_mode == CopyMode.DRAFT_MODE.value:
            return await self._ingest_channel_draft(pair, item)

        if await self.repository.get_post_by_original_id(pair.id, item.native_id):
            return None

        post = await self.repository.create_post(
            channel_pair_id=pair.id,
            original_post_id=item.native_id,
            content=item.text,
            media=item.media,
        )
        if post is None:
            return None

        await self.repository.add_activity(
            type="post_detected",
            description=f"New post parsed from {pair.source_name}",
            channel_pair_id=pair.id,
            post_id=post.id,
            metadata={"collector": item.kind.value},
        )
        await self.dispatcher.schedule_post(post.id, pair.posting_delay or 0)

        log.info(
            f"🎯 Пост {item.native_id} из @{pair.source_username} "
            f"запланирован для @{pair.target_username}"
        )
        return post

    async def _ingest_channel_draft(
        self, pair: ChannelPair, item: CandidateItem
    ) -> DraftPost | None:
        if await self.repository.is_draft_source_recorded(
            item.native_id, channel_pair_id=pair.id
        ):
            return None

        content = item.text
        translated = False
        language = None
        if pair.auto_translate:
            result = await self.transformer.translate(content, channel_pair_id=pair.id)
            content = result.translated_text
            translated = result.was_translated
            language = result.detected_language

        draft = await self.repository.create_draft_post(
            original_post_id=item.native_id,
            content=content,
            original_content=item.text,
            media=item.media,
            channel_pair_id=pair.id,
            translated=translated,
            source_language=language,
            source_url=item.url,
        )
        if draft is None:
            return None

        await self.repository.add_activity(
            type="post_detected",
            description=f"New post parsed from {pair.source_name} into drafts",
            channel_pair_id=pair.id,
            metadata={
                "collector": item.kind.value,
                "copy_mode": pair.copy_mode,
                "draft_id": draft.id,
            },
        )
        log.info(f"📝 Черновик из @{pair.source_username}: {item.native_id}")
        return draft

    async def ingest_web_item(
        self, source: WebSource, item: CandidateItem
    ) -> DraftPost | None:
        """Веб-контент всегда идет в черновики и всегда пробуется перевод."""
        if await self.repository.is_draft_source_recorded(
            item.native_id, web_source_id=source.id
        ):
            return None

        original = f"{item.title}\n\n{item.text}" if item.title else item.text
        content = original
        if item.url:
            content += f"\n\n🔗 {item.url}"

        result = await self.transformer.translate(content)

        draft = await self.repository.create_draft_post(
            original_post_id=item.native_id,
            content=result.translated_text,
            original_content=original,
            media=item.media,
            web_source_id=source.id,
            translated=result.was_translated,
            source_language=result.detected_language,
            source_url=item.url or source.url,
        )
        if draft is None:
            return None

        await self.repository.add_activity(
            type="web_content_parsed",
            description=f'New content parsed from {source.name}: "{item.title or ""}"',
            metadata={"web_source_id": source.id, "draft_id": draft.id},
        )
        log.info(f"📝 Черновик из {source.name}: {item.title or item.native_id}")
        return draft
