# syndicator/database/models.py

"""SQLAlchemy модели для базы данных."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from syndicator.models.content import ContentFilters, Media
from syndicator.utils.clock import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Базовый класс для всех моделей."""

    pass


class ChannelPair(Base):
    """Связка канал-источник -> канал-получатель."""

    __tablename__ = "channel_pairs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    source_name: Mapped[str] = mapped_column(Text, nullable=False)
    source_username: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True
    )
    target_name: Mapped[str] = mapped_column(Text, nullable=False)
    target_username: Mapped[str] = mapped_column(String(255), nullable=False)

    # active, paused, error
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    posting_delay: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    content_filters: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    custom_branding: Mapped[str | None] = mapped_column(Text, nullable=True)
    auto_translate: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    # auto_publish, draft_mode
    copy_mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default="auto_publish"
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    @property
    def filters(self) -> ContentFilters:
        return ContentFilters.model_validate(self.content_filters or {})

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return (
            f"<ChannelPair(id={self.id}, "
            f"@{self.source_username} -> @{self.target_username}, "
            f"status={self.status})>"
        )


class WebSource(Base):
    """RSS лента или HTML страница, не привязанная к каналу-получателю."""

    __tablename__ = "web_sources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    # rss, html
    type: Mapped[str] = mapped_column(String(10), nullable=False, default="rss")
    selector: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    poll_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    last_parsed: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<WebSource(id={self.id}, type={self.type}, url={self.url})>"


class Post(Base):
    """Пост, обнаруженный в канале-источнике и ожидающий отправки."""

    __tablename__ = "posts"
    __table_args__ = (
        UniqueConstraint(
            "channel_pair_id", "original_post_id", name="uq_posts_pair_original"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    channel_pair_id: Mapped[str] = mapped_column(
        ForeignKey("channel_pairs.id"), nullable=False, index=True
    )
    original_post_id: Mapped[str] = mapped_column(String(255), nullable=False)
    reposted_post_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_urls: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )

    # pending, posted, failed
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", index=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    scheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, index=True
    )
    posted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    @property
    def media(self) -> list[Media]:
        return [Media.model_validate(m) for m in self.media_urls or []]

    def __repr__(self) -> str:
        return (
            f"<Post(id={self.id}, "
            f"original_post_id={self.original_post_id}, "
            f"status={self.status})>"
        )


class ScheduledPost(Base):
    """Пост с явно заданным временем публикации."""

    __tablename__ = "scheduled_posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    channel_pair_id: Mapped[str] = mapped_column(
        ForeignKey("channel_pairs.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    media_urls: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )
    publish_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    # scheduled, published, failed, cancelled
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="scheduled", index=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    published_post_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Ключ источника черновика, из которого создан пост
    original_post_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    origin_channel_pair_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True
    )
    web_source_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    @property
    def media(self) -> list[Media]:
        return [Media.model_validate(m) for m in self.media_urls or []]

    def __repr__(self) -> str:
        return (
            f"<ScheduledPost(id={self.id}, "
            f"publish_at={self.publish_at}, "
            f"status={self.status})>"
        )


class DraftPost(Base):
    """Черновик для ручной проверки перед публикацией."""

    __tablename__ = "draft_posts"
    __table_args__ = (
        UniqueConstraint(
            "channel_pair_id", "original_post_id", name="uq_drafts_pair_original"
        ),
        UniqueConstraint(
            "web_source_id", "original_post_id", name="uq_drafts_source_original"
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    channel_pair_id: Mapped[str | None] = mapped_column(
        ForeignKey("channel_pairs.id"), nullable=True, index=True
    )
    web_source_id: Mapped[str | None] = mapped_column(
        ForeignKey("web_sources.id"), nullable=True, index=True
    )
    original_post_id: Mapped[str] = mapped_column(String(255), nullable=False)

    original_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_urls: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, nullable=False, default=list
    )

    # draft, published, discarded
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    translated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    source_language: Mapped[str | None] = mapped_column(String(32), nullable=True)
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    @property
    def media(self) -> list[Media]:
        return [Media.model_validate(m) for m in self.media_urls or []]

    def __repr__(self) -> str:
        return (
            f"<DraftPost(id={self.id}, "
            f"original_post_id={self.original_post_id}, "
            f"status={self.status})>"
        )


class ActivityLog(Base):
    """Журнал событий конвейера (только добавление)."""

    __tablename__ = "activity_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    channel_pair_id: Mapped[str | None] = mapped_column(
        String(36), nullable=True, index=True
    )
    post_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<ActivityLog(type={self.type}, created_at={self.created_at})>"
