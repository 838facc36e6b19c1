# syndicator/database/repository.py

"""Слой доступа к данным (Repository Pattern)."""

from datetime import datetime
from typing import Any

from sqlalchemy import Integer, cast, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from syndicator.database.models import (
    ActivityLog,
    Base,
    ChannelPair,
    DraftPost,
    Post,
    ScheduledPost,
    WebSource,
)
from syndicator.models.content import (
    DraftStatus,
    Media,
    PostStatus,
    ScheduledPostStatus,
)
from syndicator.utils.clock import utcnow
from syndicator.utils.logger import logger


def _media_json(media: list[Media] | None) -> list[dict[str, Any]]:
    return [m.model_dump(mode="json", exclude_none=True) for m in media or []]


class SyndicationRepository:
    def __init__(self, database_url: str):
        self.engine = create_async_engine(database_url, echo=False)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        logger.debug(f"Репозиторий инициализирован: {database_url}")

    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("База данных инициализирована")

    async def close(self) -> None:
        await self.engine.dispose()
        logger.debug("Соединение с БД закрыто")

    async def _get(self, model, entity_id: str):
        async with self.session_factory() as session:
            return await session.get(model, entity_id)

    async def _add(self, entity):
        async with self.session_factory() as session:
            session.add(entity)
            await session.commit()
            await session.refresh(entity)
            return entity

    async def _update(self, model, entity_id: str, changes: dict[str, Any]):
        async with self.session_factory() as session:
            entity = await session.get(model, entity_id)
            if entity is None:
                return None
            for key, value in changes.items():
                setattr(entity, key, value)
            await session.commit()
            await session.refresh(entity)
            return entity

    # ------------------------------------------------------------------
    # Channel pairs

    async def list_channel_pairs(self, status: str | None = None) -> list[ChannelPair]:
        async with self.session_factory() as session:
            query = select(ChannelPair).order_by(ChannelPair.created_at)
            if status:
                query = query.where(ChannelPair.status == status)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_channel_pair(self, pair_id: str) -> ChannelPair | None:
        return await self._get(ChannelPair, pair_id)

    async def find_channel_pair(
        self, source_username: str, target_username: str
    ) -> ChannelPair | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ChannelPair)
                .where(ChannelPair.source_username == source_username)
                .where(ChannelPair.target_username == target_username)
            )
            return result.scalars().first()

    async def create_channel_pair(self, **fields: Any) -> ChannelPair:
        pair = await self._add(ChannelPair(**fields))
        logger.debug(f"Создана пара каналов: {pair!r}")
        return pair

    async def update_channel_pair(
        self, pair_id: str, **changes: Any
    ) -> ChannelPair | None:
        return await self._update(ChannelPair, pair_id, changes)

    async def delete_channel_pair(self, pair_id: str) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                post_ids = select(Post.id).where(Post.channel_pair_id == pair_id)
                await session.execute(
                    delete(ActivityLog).where(
                        or_(
                            ActivityLog.channel_pair_id == pair_id,
                            ActivityLog.post_id.in_(post_ids),
                        )
                    )
                )
                await session.execute(
                    delete(Post).where(Post.channel_pair_id == pair_id)
                )
                await session.execute(
                    delete(ScheduledPost).where(
                        ScheduledPost.channel_pair_id == pair_id
                    )
                )
                await session.execute(
                    delete(DraftPost).where(DraftPost.channel_pair_id == pair_id)
                )
                result = await session.execute(
                    delete(ChannelPair).where(ChannelPair.id == pair_id)
                )
            return result.rowcount > 0

    # ------------------------------------------------------------------
    # Web sources

    async def list_web_sources(self, active_only: bool = False) -> list[WebSource]:
        async with self.session_factory() as session:
            query = select(WebSource).order_by(WebSource.created_at)
            if active_only:
                query = query.where(WebSource.is_active.is_(True))
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_web_source(self, source_id: str) -> WebSource | None:
        return await self._get(WebSource, source_id)

    async def find_web_source_by_url(self, url: str) -> WebSource | None:
        async with self.session_factory() as session:
            result = await session.execute(select(WebSource).where(WebSource.url == url))
            return result.scalar_one_or_none()

    async def create_web_source(self, **fields: Any) -> WebSource:
        source = await self._add(WebSource(**fields))
        logger.debug(f"Создан веб-источник: {source!r}")
        return source

    async def update_web_source(self, source_id: str, **changes: Any) -> WebSource | None:
        return await self._update(WebSource, source_id, changes)

    async def delete_web_source(self, source_id: str) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                # Сначала черновики, чтобы не нарушить внешний ключ
                await session.execute(
                    delete(DraftPost).where(DraftPost.web_source_id == source_id)
                )
                result = await session.execute(
                    delete(WebSource).where(WebSource.id == source_id)
                )
            return result.rowcount > 0

    async def mark_web_source_parsed(self, source_id: str, when: datetime) -> None:
        """Сдвигает last_parsed вперед (никогда не назад)."""
        async with self.session_factory() as session:
            await session.execute(
                update(WebSource)
                .where(WebSource.id == source_id)
                .where(
                    or_(WebSource.last_parsed.is_(None), WebSource.last_parsed < when)
                )
                .values(last_parsed=when, updated_at=utcnow())
            )
            await session.commit()

    # ------------------------------------------------------------------
    # Posts

    async def get_post(self, post_id: str) -> Post | None:
        return await self._get(Post, post_id)

    async def get_post_by_original_id(
        self, channel_pair_id: str, original_post_id: str
    ) -> Post | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Post)
                .where(Post.channel_pair_id == channel_pair_id)
                .where(Post.original_post_id == original_post_id)
            )
            return result.scalar_one_or_none()

    async def create_post(
        self,
        channel_pair_id: str,
        original_post_id: str,
        content: str,
        media: list[Media] | None = None,
    ) -> Post | None:
        """Создает пост в статусе pending.

        Returns:
            Пост или None, если ключ (пара, original_post_id) уже занят
        """
        post = Post(
            channel_pair_id=channel_pair_id,
            original_post_id=original_post_id,
            content=content,
            media_urls=_media_json(media),
            status=PostStatus.PENDING.value,
        )
        try:
            return await self._add(post)
        except IntegrityError:
            logger.debug(
                f"Пост уже записан: {channel_pair_id}:{original_post_id}"
            )
            return None

    async def list_posts(
        self, channel_pair_id: str | None = None, status: str | None = None
    ) -> list[Post]:
        async with self.session_factory() as session:
            query = select(Post).order_by(Post.created_at.desc())
            if channel_pair_id:
                query = query.where(Post.channel_pair_id == channel_pair_id)
            if status:
                query = query.where(Post.status == status)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def set_post_schedule(self, post_id: str, scheduled_at: datetime) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                update(Post)
                .where(Post.id == post_id)
                .where(Post.status == PostStatus.PENDING.value)
                .values(scheduled_at=scheduled_at)
            )
            await session.commit()
            return result.rowcount > 0

    async def get_due_pending_posts(self, now: datetime) -> list[Post]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Post)
                .where(Post.status == PostStatus.PENDING.value)
                .where(Post.scheduled_at.is_not(None))
                .where(Post.scheduled_at <= now)
                .order_by(Post.scheduled_at)
            )
            return list(result.scalars().all())

    async def mark_post_posted(
        self, post_id: str, when: datetime, reposted_post_id: str | None = None
    ) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                update(Post)
                .where(Post.id == post_id)
                .where(Post.status == PostStatus.PENDING.value)
                .values(
                    status=PostStatus.POSTED.value,
                    posted_at=when,
                    reposted_post_id=reposted_post_id,
                    error_message=None,
                )
            )
            await session.commit()
            return result.rowcount > 0

    async def mark_post_failed(self, post_id: str, error_message: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                update(Post)
                .where(Post.id == post_id)
                .where(Post.status == PostStatus.PENDING.value)
                .values(status=PostStatus.FAILED.value, error_message=error_message)
            )
            await session.commit()
            if result.rowcount:
                logger.warning(f"Пост помечен как проваленный: {post_id} - {error_message}")
            return result.rowcount > 0

    async def get_max_original_post_id(self, channel_pair_ids: list[str]) -> int:
        """Наибольший числовой ID сообщения, уже записанный для пар."""
        if not channel_pair_ids:
            return 0
        async with self.session_factory() as session:
            max_post = await session.execute(
                select(func.max(cast(Post.original_post_id, Integer)))
                .where(Post.channel_pair_id.in_(channel_pair_ids))
            )
            max_draft = await session.execute(
                select(func.max(cast(DraftPost.original_post_id, Integer)))
                .where(DraftPost.channel_pair_id.in_(channel_pair_ids))
            )
            values = [max_post.scalar() or 0, max_draft.scalar() or 0]
            return int(max(values))

    # ------------------------------------------------------------------
    # Scheduled posts

    async def get_scheduled_post(self, scheduled_id: str) -> ScheduledPost | None:
        return await self._get(ScheduledPost, scheduled_id)

    async def create_scheduled_post(
        self,
        channel_pair_id: str,
        content: str,
        publish_at: datetime,
        title: str = "",
        media: list[Media] | None = None,
    ) -> ScheduledPost:
        return await self._add(
            ScheduledPost(
                channel_pair_id=channel_pair_id,
                title=title,
                content=content,
                media_urls=_media_json(media),
                publish_at=publish_at,
                status=ScheduledPostStatus.SCHEDULED.value,
            )
        )

    async def list_scheduled_posts(
        self, channel_pair_id: str | None = None
    ) -> list[ScheduledPost]:
        async with self.session_factory() as session:
            query = select(ScheduledPost).order_by(ScheduledPost.publish_at.desc())
            if channel_pair_id:
                query = query.where(ScheduledPost.channel_pair_id == channel_pair_id)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_due_scheduled_posts(self, now: datetime) -> list[ScheduledPost]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ScheduledPost)
                .where(ScheduledPost.status == ScheduledPostStatus.SCHEDULED.value)
                .where(ScheduledPost.publish_at <= now)
                .order_by(ScheduledPost.publish_at)
            )
            return list(result.scalars().all())

    async def _transition_scheduled(
        self, scheduled_id: str, **values: Any
    ) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                update(ScheduledPost)
                .where(ScheduledPost.id == scheduled_id)
                .where(ScheduledPost.status == ScheduledPostStatus.SCHEDULED.value)
                .values(**values)
            )
            await session.commit()
            return result.rowcount > 0

    async def mark_scheduled_published(
        self, scheduled_id: str, when: datetime, published_post_id: str | None = None
    ) -> bool:
        return await self._transition_scheduled(
            scheduled_id,
            status=ScheduledPostStatus.PUBLISHED.value,
            published_at=when,
            published_post_id=published_post_id,
            error_message=None,
        )

    async def mark_scheduled_failed(self, scheduled_id: str, error_message: str) -> bool:
        return await self._transition_scheduled(
            scheduled_id,
            status=ScheduledPostStatus.FAILED.value,
            error_message=error_message,
        )

    async def cancel_scheduled_post(self, scheduled_id: str) -> bool:
        return await self._transition_scheduled(
            scheduled_id, status=ScheduledPostStatus.CANCELLED.value
        )

    # ------------------------------------------------------------------
    # Draft posts

    async def get_draft_post(self, draft_id: str) -> DraftPost | None:
        return await self._get(DraftPost, draft_id)

    async def list_draft_posts(
        self,
        channel_pair_id: str | None = None,
        web_source_id: str | None = None,
        status: str | None = DraftStatus.DRAFT.value,
    ) -> list[DraftPost]:
        async with self.session_factory() as session:
            query = select(DraftPost).order_by(DraftPost.created_at.desc())
            if channel_pair_id:
                query = query.where(DraftPost.channel_pair_id == channel_pair_id)
            if web_source_id:
                query = query.where(DraftPost.web_source_id == web_source_id)
            if status:
                query = query.where(DraftPost.status == status)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def is_draft_source_recorded(
        self,
        original_post_id: str,
        channel_pair_id: str | None = None,
        web_source_id: str | None = None,
    ) -> bool:
        """Есть ли уже черновик (или опубликованный из него пост) с этим ключом."""
        if (channel_pair_id is None) == (web_source_id is None):
            raise ValueError("Нужен ровно один из channel_pair_id и web_source_id")

        async with self.session_factory() as session:
            draft_query = select(DraftPost.id).where(
                DraftPost.original_post_id == original_post_id
            )
            promoted_query = select(ScheduledPost.id).where(
                ScheduledPost.original_post_id == original_post_id
            )
            if channel_pair_id:
                draft_query = draft_query.where(
                    DraftPost.channel_pair_id == channel_pair_id
                )
                promoted_query = promoted_query.where(
                    ScheduledPost.origin_channel_pair_id == channel_pair_id
                )
            else:
                draft_query = draft_query.where(DraftPost.web_source_id == web_source_id)
                promoted_query = promoted_query.where(
                    ScheduledPost.web_source_id == web_source_id
                )

            if (await session.execute(draft_query.limit(1))).first():
                return True
            return (await session.execute(promoted_query.limit(1))).first() is not None

    async def create_draft_post(
        self,
        original_post_id: str,
        content: str,
        original_content: str,
        media: list[Media] | None = None,
        channel_pair_id: str | None = None,
        web_source_id: str | None = None,
        translated: bool = False,
        source_language: str | None = None,
        source_url: str | None = None,
    ) -> DraftPost | None:
        if (channel_pair_id is None) == (web_source_id is None):
            raise ValueError("Нужен ровно один из channel_pair_id и web_source_id")

        draft = DraftPost(
            channel_pair_id=channel_pair_id,
            web_source_id=web_source_id,
            original_post_id=original_post_id,
            original_content=original_content,
            content=content,
            media_urls=_media_json(media),
            status=DraftStatus.DRAFT.value,
            translated=translated,
            source_language=source_language,
            source_url=source_url,
        )
        try:
            return await self._add(draft)
        except IntegrityError:
            logger.debug(f"Черновик уже записан: {original_post_id}")
            return None

    async def update_draft_post(self, draft_id: str, **changes: Any) -> DraftPost | None:
        if "media" in changes:
            changes["media_urls"] = _media_json(changes.pop("media"))
        return await self._update(DraftPost, draft_id, changes)

    async def discard_draft_post(self, draft_id: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                update(DraftPost)
                .where(DraftPost.id == draft_id)
                .where(DraftPost.status == DraftStatus.DRAFT.value)
                .values(status=DraftStatus.DISCARDED.value)
            )
            await session.commit()
            return result.rowcount > 0

    async def promote_draft(
        self, draft_id: str, channel_pair_id: str, now: datetime
    ) -> ScheduledPost | None:
        """Создает ScheduledPost из черновика и удаляет черновик (одна транзакция).

        Returns:
            Новый ScheduledPost или None, если черновик не найден или уже не draft
        """
        async with self.session_factory() as session:
            async with session.begin():
                draft = await session.get(DraftPost, draft_id)
                if draft is None or draft.status != DraftStatus.DRAFT.value:
                    return None

                content = draft.content or ""
                scheduled = ScheduledPost(
                    channel_pair_id=channel_pair_id,
                    title=f"Published draft: {content[:30]}...",
                    content=content,
                    media_urls=list(draft.media_urls or []),
                    publish_at=now,
                    status=ScheduledPostStatus.SCHEDULED.value,
                    original_post_id=draft.original_post_id,
                    origin_channel_pair_id=draft.channel_pair_id,
                    web_source_id=draft.web_source_id,
                )
                session.add(scheduled)
                await session.delete(draft)
            await session.refresh(scheduled)
            return scheduled

    # ------------------------------------------------------------------
    # Activity log

    async def add_activity(
        self,
        type: str,
        description: str,
        channel_pair_id: str | None = None,
        post_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ActivityLog:
        return await self._add(
            ActivityLog(
                type=type,
                description=description,
                channel_pair_id=channel_pair_id,
                post_id=post_id,
                metadata_=metadata or {},
            )
        )

    async def list_activity(
        self, limit: int = 100, type: str | None = None
    ) -> list[ActivityLog]:
        async with self.session_factory() as session:
            query = select(ActivityLog).order_by(ActivityLog.created_at.desc())
            if type:
                query = query.where(ActivityLog.type == type)
            result = await session.execute(query.limit(limit))
            return list(result.scalars().all())

    async def delete_activity_older_than(self, cutoff: datetime) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(ActivityLog).where(ActivityLog.created_at < cutoff)
            )
            await session.commit()
            return result.rowcount or 0
