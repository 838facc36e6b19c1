# syndicator/services/__init__.py

"""Внешние сервисы преобразования контента."""

from syndicator.services.image_processor import ImageProcessingError, ImageProcessor
from syndicator.services.translation import (
    OpenAITranslator,
    TranslationError,
    Translator,
)

__all__ = [
    "ImageProcessingError",
    "ImageProcessor",
    "OpenAITranslator",
    "TranslationError",
    "Translator",
]
