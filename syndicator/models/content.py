# syndicator/models/content.py

"""Модели данных для контента и статусов."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CollectorKind(str, Enum):
    """Тип сборщика, обнаружившего элемент."""

    BOT_API = "bot_api"
    WEB_CHANNEL = "web_channel"
    WEB_FEED = "web_feed"


class PairStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ERROR = "error"


class CopyMode(str, Enum):
    AUTO_PUBLISH = "auto_publish"
    DRAFT_MODE = "draft_mode"


class WebSourceKind(str, Enum):
    RSS = "rss"
    HTML = "html"


class PostStatus(str, Enum):
    PENDING = "pending"
    POSTED = "posted"
    FAILED = "failed"


class ScheduledPostStatus(str, Enum):
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DraftStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    DISCARDED = "discarded"


class MediaType(str, Enum):
    """Тип медиафайла."""

    PHOTO = "photo"
    VIDEO = "video"
    DOCUMENT = "document"


class Media(BaseModel):
    """Ссылка на медиафайл: file_id Bot API или URL.

    После обработки изображения байты лежат в data, и отправлять нужно их.
    """

    type: MediaType = MediaType.PHOTO
    url: str | None = None
    file_id: str | None = None
    data: bytes | None = Field(default=None, exclude=True, repr=False)

    @property
    def reference(self) -> str:
        return self.file_id or self.url or ""


class ContentFilters(BaseModel):
    """Флаги фильтрации контента пары каналов."""

    model_config = ConfigDict(extra="ignore")

    remove_mentions: bool = False
    remove_links: bool = False
    add_watermark: bool = False
    remove_original_branding: bool = False

    @property
    def needs_image_processing(self) -> bool:
        return self.add_watermark or self.remove_original_branding


class CandidateItem(BaseModel):
    """Нормализованный элемент от любого сборщика до записи в БД."""

    kind: CollectorKind
    native_id: str = Field(..., description="ID элемента в источнике")
    text: str = ""
    media: list[Media] = Field(default_factory=list)
    title: str | None = None
    url: str | None = None
    published_at: datetime | None = None

    @property
    def numeric_id(self) -> int:
        """ID сообщения канала как число (для курсора)."""
        return int(self.native_id)

    def __str__(self) -> str:
        preview = (self.text[:50] + "...") if len(self.text) > 50 else self.text
        return f"Item({self.kind.value}:{self.native_id}, text={preview})"

    def __repr__(self) -> str:
        return self.__str__()


class TranslationResult(BaseModel):
    original_text: str
    detected_language: str = "unknown"
    translated_text: str
    was_translated: bool = False


class ImageOptions(BaseModel):
    add_watermark: bool = False
    watermark_text: str = "Reposted"
    remove_original_branding: bool = False
    quality: int = 85
    max_width: int = 1920
    max_height: int = 1080


class RenderedContent(BaseModel):
    """Итоговый контент, готовый к отправке."""

    text: str
    media: list[Media] = Field(default_factory=list)
