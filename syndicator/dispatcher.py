# syndicator/dispatcher.py

"""Диспетчер: отправка созревших постов и учет результата.

Post:          pending -> posted | failed
ScheduledPost: scheduled -> published | failed  (cancelled ставится вручную)

Проваленные посты не переотправляются автоматически.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Protocol

from syndicator.database import (
    ChannelPair,
    Post,
    ScheduledPost,
    SyndicationRepository,
)
from syndicator.models.content import (
    Media,
    PostStatus,
    RenderedContent,
    ScheduledPostStatus,
)
from syndicator.transform import ContentTransformer
from syndicator.utils.clock import utcnow
from syndicator.utils.logger import logger

log = logger.bind(component="dispatcher")


class DestinationClient(Protocol):
    async def send_text(self, destination: str, content: str) -> str: ...

    async def send_media(self, destination: str, media: Media, caption: str) -> str: ...

    async def send_media_group(
        self, destination: str, media: list[Media], caption: str
    ) -> str: ...


class DraftPublishError(Exception):
    """Черновик нельзя опубликовать."""


class Dispatcher:
    def __init__(
        self,
        repository: SyndicationRepository,
        publisher: DestinationClient | None,
        transformer: ContentTransformer,
    ):
        self.repository = repository
        # Без получателя посты только планируются
        self.publisher = publisher
        self.transformer = transformer
        self._pending_lock = asyncio.Lock()
        self._scheduled_lock = asyncio.Lock()

    def _require_publisher(self) -> None:
        if self.publisher is None:
            raise RuntimeError("Клиент получателя не настроен (нет токена бота)")

    async def schedule_post(
        self, post_id: str, delay_minutes: int = 0, now: datetime | None = None
    ) -> datetime:
        scheduled_at = (now or utcnow()) + timedelta(minutes=max(delay_minutes, 0))
        await self.repository.set_post_schedule(post_id, scheduled_at)
        log.debug(f"⏰ Пост {post_id} запланирован на {scheduled_at:%H:%M:%S}")
        return scheduled_at

    async def _deliver(self, pair: ChannelPair, rendered: RenderedContent) -> str:
        """Медиа предпочтительнее чистого текста, если оно есть."""
        self._require_publisher()
        destination = pair.target_username
        if not rendered.media:
            return await self.publisher.send_text(destination, rendered.text)
        if len(rendered.media) == 1:
            return await self.publisher.send_media(
                destination, rendered.media[0], rendered.text
            )
        return await self.publisher.send_media_group(
            destination, rendered.media, rendered.text
        )

    # ------------------------------------------------------------------
    # Post

    async def _send_post(self, post: Post, pair: ChannelPair) -> None:
        """Отправляет пост и записывает исход. Ошибка отправки пробрасывается."""
        try:
            rendered = await self.transformer.render(
                post.content or "", post.media, pair, post_id=post.id
            )
            message_id = await self._deliver(pair, rendered)
        except Exception as e:
            error = str(e) or type(e).__name__
            if await self.repository.mark_post_failed(post.id, error):
                await self.repository.add_activity(
                    type="post_failed",
                    description=f"Failed to send post: {error}",
                    channel_pair_id=pair.id,
                    post_id=post.id,
                )
            log.error(f"❌ Публикация провалена ({post.id}): {error}")
            raise

        if await self.repository.mark_post_posted(post.id, utcnow(), message_id):
            await self.repository.add_activity(
                type="post_sent",
                description=f"Post sent successfully to {pair.target_name}",
                channel_pair_id=pair.id,
                post_id=post.id,
                metadata={"message_id": message_id},
            )
        log.info(f"✅ Опубликовано в @{pair.target_username} (msg_id: {message_id})")

    async def process_pending_posts(self, now: datetime | None = None) -> int:
        """Отправляет посты pending с scheduled_at <= now.

        Returns:
            Количество успешно отправленных постов
        """
        if self._pending_lock.locked():
            log.warning("⏭️ Предыдущая проверка постов еще идет, пропускаем")
            return 0

        async with self._pending_lock:
            now = now or utcnow()
            posts = await self.repository.get_due_pending_posts(now)
            sent = 0

            for post in posts:
                pair = await self.repository.get_channel_pair(post.channel_pair_id)
                # Неактивная пара: просто ждем следующего тика
                if pair is None or not pair.is_active:
                    continue
                try:
                    await self._send_post(post, pair)
                    sent += 1
                except Exception as e:
                    # Исход уже записан в _send_post
                    log.debug(f"Пост {post.id} пропущен: {e}")

            if sent:
                log.info(f"📤 Отправлено постов: {sent}")
            return sent

    async def send_post_now(self, post_id: str) -> None:
        """Немедленная отправка мимо расписания. Ошибка отправки пробрасывается.

        Ждет окончания идущего тика: статус читается под той же блокировкой,
        поэтому пост, уже отправленный тиком, второй раз не уйдет.
        """
        self._require_publisher()
        async with self._pending_lock:
            post = await self.repository.get_post(post_id)
            if post is None:
                raise LookupError(f"Пост не найден: {post_id}")
            if post.status != PostStatus.PENDING.value:
                raise ValueError(f"Пост {post_id} уже в статусе {post.status}")

            pair = await self.repository.get_channel_pair(post.channel_pair_id)
            if pair is None:
                raise LookupError(f"Пара каналов не найдена: {post.channel_pair_id}")

            await self._send_post(post, pair)

    # ------------------------------------------------------------------
    # ScheduledPost

    async def _publish_scheduled(self, scheduled: ScheduledPost, pair: ChannelPair) -> None:
        try:
            # Контент отложенного поста уже переведен/отредактирован вручную
            rendered = await self.transformer.render(
                scheduled.content, scheduled.media, pair, translate=False
            )
            message_id = await self._deliver(pair, rendered)
        except Exception as e:
            error = str(e) or type(e).__name__
            if await self.repository.mark_scheduled_failed(scheduled.id, error):
                await self.repository.add_activity(
                    type="scheduled_post_failed",
                    description=f'Failed to publish scheduled post "{scheduled.title}": {error}',
                    channel_pair_id=pair.id,
                    metadata={"scheduled_post_id": scheduled.id},
                )
            log.error(f"❌ Отложенный пост {scheduled.id} не опубликован: {error}")
            raise

        if await self.repository.mark_scheduled_published(
            scheduled.id, utcnow(), message_id
        ):
            await self.repository.add_activity(
                type="scheduled_post_published",
                description=f'Scheduled post "{scheduled.title}" published to {pair.target_name}',
                channel_pair_id=pair.id,
                metadata={"scheduled_post_id": scheduled.id, "message_id": message_id},
            )
        log.info(f"✅ Отложенный пост опубликован (msg_id: {message_id})")

    async def process_scheduled_posts(self, now: datetime | None = None) -> int:
        if self._scheduled_lock.locked():
            log.warning("⏭️ Предыдущая проверка отложенных постов еще идет, пропускаем")
            return 0

        async with self._scheduled_lock:
            now = now or utcnow()
            due = await self.repository.get_due_scheduled_posts(now)
            published = 0

            for scheduled in due:
                pair = await self.repository.get_channel_pair(scheduled.channel_pair_id)
                if pair is None or not pair.is_active:
                    continue
                try:
                    await self._publish_scheduled(scheduled, pair)
                    published += 1
                except Exception as e:
                    log.debug(f"Отложенный пост {scheduled.id} пропущен: {e}")

            return published

    async def publish_scheduled_now(self, scheduled_post_id: str) -> None:
        """Как send_post_now, но для отложенных постов."""
        self._require_publisher()
        async with self._scheduled_lock:
            scheduled = await self.repository.get_scheduled_post(scheduled_post_id)
            if scheduled is None:
                raise LookupError(f"Отложенный пост не найден: {scheduled_post_id}")
            if scheduled.status != ScheduledPostStatus.SCHEDULED.value:
                raise ValueError(
                    f"Отложенный пост {scheduled_post_id} в статусе {scheduled.status}"
                )

            pair = await self.repository.get_channel_pair(scheduled.channel_pair_id)
            if pair is None:
                raise LookupError(f"Пара каналов не найдена: {scheduled.channel_pair_id}")

            await self._publish_scheduled(scheduled, pair)

    async def cancel_scheduled_post(self, scheduled_post_id: str) -> bool:
        cancelled = await self.repository.cancel_scheduled_post(scheduled_post_id)
        if cancelled:
            await self.repository.add_activity(
                type="scheduled_post_cancelled",
                description=f"Scheduled post {scheduled_post_id} cancelled",
                metadata={"scheduled_post_id": scheduled_post_id},
            )
        return cancelled

    async def publish_draft(
        self,
        draft_id: str,
        channel_pair_id: str | None = None,
        now: datetime | None = None,
    ) -> ScheduledPost:
        """Превращает черновик в ScheduledPost с publish_at = now.

        Args:
            channel_pair_id: Пара-получатель; обязательна для черновиков
                из веб-источников
        """
        draft = await self.repository.get_draft_post(draft_id)
        if draft is None:
            raise DraftPublishError(f"Черновик не найден: {draft_id}")

        target_pair_id = channel_pair_id or draft.channel_pair_id
        if not target_pair_id:
            raise DraftPublishError(
                "Черновик из веб-источника публикуется только в указанную пару каналов"
            )
        if await self.repository.get_channel_pair(target_pair_id) is None:
            raise DraftPublishError(f"Пара каналов не найдена: {target_pair_id}")

        scheduled = await self.repository.promote_draft(
            draft_id, target_pair_id, now or utcnow()
        )
        if scheduled is None:
            raise DraftPublishError(f"Черновик {draft_id} уже не в статусе draft")

        preview = (draft.content or "")[:50]
        await self.repository.add_activity(
            type="draft_post_published",
            description=f'Draft post published: "{preview}..."',
            channel_pair_id=target_pair_id,
            metadata={"scheduled_post_id": scheduled.id, "draft_id": draft_id},
        )
        log.info(f"📝 Черновик {draft_id} → отложенный пост {scheduled.id}")
        return scheduled

    # ------------------------------------------------------------------
    # Housekeeping

    async def cleanup_old_logs(
        self, retention_days: int = 30, now: datetime | None = None
    ) -> int:
        cutoff = (now or utcnow()) - timedelta(days=retention_days)
        removed = await self.repository.delete_activity_older_than(cutoff)
        await self.repository.add_activity(
            type="system_cleanup",
            description=f"System cleanup completed: {removed} old log entries removed",
            metadata={"removed": removed, "retention_days": retention_days},
        )
        log.info(f"🧹 Очистка журнала: удалено {removed} записей")
        return removed
