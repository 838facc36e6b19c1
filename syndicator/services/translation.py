# syndicator/services/translation.py

"""Определение языка и перевод текста через OpenAI.

SDK импортируется при первом вызове, чтобы пакет работал без ключа API.
"""

import re
from typing import Any

from syndicator.models.content import TranslationResult
from syndicator.utils.logger import logger

_DETECT_PROMPT = """You are a language detection expert. Analyze the given text and determine its primary language.

Rules:
1. Respond with the language name in English, lower case (e.g. "english", "spanish", "russian")
2. If you can't determine the language or it's mixed, respond with "unknown"
3. Only respond with the language name, nothing else."""

_TRANSLATE_PROMPT = """You are a professional translator. Translate the given text from {source} to {target}.

Important rules:
1. Preserve the original meaning, tone, and style
2. Keep formatting, line breaks, and structure intact
3. Don't add explanations or comments
4. Keep URLs, @ mentions and hashtags unchanged
5. Only provide the translated text, nothing else."""

# Короче этого текст не отправляется в API
_MIN_TRANSLATABLE_LENGTH = 3


class TranslationError(Exception):
    """Сервис перевода недоступен или вернул ошибку."""


class Translator:
    """Базовый переводчик: ничего не переводит."""

    target_language = "russian"

    async def translate(self, text: str) -> TranslationResult:
        return TranslationResult(
            original_text=text,
            detected_language="unknown",
            translated_text=text,
            was_translated=False,
        )

    async def close(self) -> None:
        pass


def is_cyrillic_text(text: str) -> bool:
    """Грубая проверка: больше половины букв кириллические."""
    cyrillic = re.findall(r"[а-яё]", text, flags=re.IGNORECASE)
    letters = re.findall(r"[a-zа-яё]", text, flags=re.IGNORECASE)
    if len(letters) < 10:
        return False
    return len(cyrillic) / len(letters) > 0.5


class OpenAITranslator(Translator):
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        target_language: str = "russian",
        timeout: float = 60.0,
    ):
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self.target_language = target_language.lower()
        self._client: Any = None

    def _get_client(self) -> Any:
        """Ленивая инициализация AsyncOpenAI."""
        if self._client is None:
            import openai

            self._client = openai.AsyncOpenAI(
                api_key=self._api_key, timeout=self._timeout
            )
        return self._client

    async def _complete(self, system: str, text: str, max_tokens: int) -> str:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": text},
                ],
                max_tokens=max_tokens,
            )
        except Exception as e:
            raise TranslationError(str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        return (content or "").strip()

    async def translate(self, text: str) -> TranslationResult:
        if not text or len(text.strip()) < _MIN_TRANSLATABLE_LENGTH:
            return await super().translate(text)

        if self.target_language == "russian" and is_cyrillic_text(text):
            return TranslationResult(
                original_text=text,
                detected_language="russian",
                translated_text=text,
                was_translated=False,
            )

        detected = (await self._complete(_DETECT_PROMPT, text, 20)).lower() or "unknown"
        logger.debug(f"🔍 Определен язык: {detected}")

        if detected in (self.target_language, "unknown"):
            return TranslationResult(
                original_text=text,
                detected_language=detected,
                translated_text=text,
                was_translated=False,
            )

        prompt = _TRANSLATE_PROMPT.format(source=detected, target=self.target_language)
        translated = await self._complete(
            prompt, text, max(1000, int(len(text) * 1.5))
        )
        if not translated:
            raise TranslationError("Пустой ответ сервиса перевода")

        logger.info(f"🌐 Перевод: {detected} → {self.target_language}")
        return TranslationResult(
            original_text=text,
            detected_language=detected,
            translated_text=translated,
            was_translated=True,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
