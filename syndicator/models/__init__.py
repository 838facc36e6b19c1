# syndicator/models/__init__.py

"""Модели данных приложения."""

from syndicator.models.content import (
    CandidateItem,
    CollectorKind,
    ContentFilters,
    CopyMode,
    DraftStatus,
    ImageOptions,
    Media,
    MediaType,
    PairStatus,
    PostStatus,
    RenderedContent,
    ScheduledPostStatus,
    TranslationResult,
    WebSourceKind,
)

__all__ = [
    "CandidateItem",
    "CollectorKind",
    "ContentFilters",
    "CopyMode",
    "DraftStatus",
    "ImageOptions",
    "Media",
    "MediaType",
    "PairStatus",
    "PostStatus",
    "RenderedContent",
    "ScheduledPostStatus",
    "TranslationResult",
    "WebSourceKind",
]
