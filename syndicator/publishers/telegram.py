# syndicator/publishers/telegram.py

import asyncio
import os

import httpx
from aiogram import Bot
from aiogram.exceptions import (
    TelegramAPIError,
    TelegramBadRequest,
    TelegramForbiddenError,
    TelegramNetworkError,
    TelegramNotFound,
    TelegramRetryAfter,
    TelegramUnauthorizedError,
)
from aiogram.types import (
    BufferedInputFile,
    FSInputFile,
    InputMediaDocument,
    InputMediaPhoto,
    InputMediaVideo,
)

from syndicator.models.content import Media, MediaType
from syndicator.utils.logger import logger

# Лимиты Telegram
CAPTION_LIMIT = 1024
MESSAGE_LIMIT = 4096
MEDIA_GROUP_LIMIT = 10


class DeliveryError(Exception):
    """Получатель не принял отправку."""


class DeliveryTransportError(DeliveryError):
    """Сеть, сервер Telegram или исчерпан лимит ожиданий flood control."""


class DeliveryPermissionError(DeliveryError):
    """У бота нет прав на публикацию или токен недействителен."""


class ContentRejectedError(DeliveryError):
    """Telegram отклонил контент как некорректный."""


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def chat_id(destination: str) -> str:
    """Публичный канал адресуется через @username, числовые ID как есть."""
    destination = destination.strip()
    if destination.lstrip("-").isdigit() or destination.startswith("@"):
        return destination
    return f"@{destination}"


class TelegramPublisher:
    def __init__(
        self,
        token: str | None = None,
        bot: Bot | None = None,
        http_client: httpx.AsyncClient | None = None,
        download_timeout: float = 30.0,
        max_flood_waits: int = 3,
    ):
        self._token = token
        self.bot: Bot | None = bot
        self._http = http_client
        self._download_timeout = download_timeout
        self._max_flood_waits = max_flood_waits

    async def initialize(self) -> None:
        if self.bot is None:
            if not self._token:
                raise RuntimeError("Не задан токен бота")
            self.bot = Bot(token=self._token)
        me = await self.bot.get_me()
        logger.info(f"Публикатор готов: @{me.username}")

    def _require_bot(self) -> Bot:
        if not self.bot:
            raise RuntimeError("Публикатор не инициализирован")
        return self.bot

    def _input_file(self, media: Media):
        if media.data is not None:
            return BufferedInputFile(media.data, filename=f"{media.type.value}.jpg")
        if media.file_id:
            return media.file_id
        if media.url and os.path.exists(media.url):
            return FSInputFile(media.url)
        return media.url

    async def _call(self, factory, attempt: int = 0):
        """Выполняет вызов Bot API и переводит ошибки в DeliveryError."""
        try:
            return await factory()
        except TelegramRetryAfter as e:
            if attempt >= self._max_flood_waits:
                raise DeliveryTransportError(f"Flood limit: {e.message}") from e
            logger.warning(f"Flood limit. Ждем {e.retry_after}с")
            await asyncio.sleep(e.retry_after)
            return await self._call(factory, attempt + 1)
        except (TelegramForbiddenError, TelegramUnauthorizedError) as e:
            raise DeliveryPermissionError(e.message) from e
        except (TelegramBadRequest, TelegramNotFound) as e:
            raise ContentRejectedError(e.message) from e
        except TelegramNetworkError as e:
            raise DeliveryTransportError(e.message) from e
        except TelegramAPIError as e:
            raise DeliveryTransportError(e.message) from e

    async def send_text(self, destination: str, content: str) -> str:
        bot = self._require_bot()
        msg = await self._call(
            lambda: bot.send_message(
                chat_id(destination), text=truncate(content, MESSAGE_LIMIT)
            )
        )
        return str(msg.message_id)

    async def send_media(self, destination: str, media: Media, caption: str) -> str:
        bot = self._require_bot()
        target = chat_id(destination)
        file = self._input_file(media)
        caption = truncate(caption, CAPTION_LIMIT) or None

        if media.type == MediaType.PHOTO:
            send = lambda: bot.send_photo(target, photo=file, caption=caption)
        elif media.type == MediaType.VIDEO:
            send = lambda: bot.send_video(target, video=file, caption=caption)
        else:
            send = lambda: bot.send_document(target, document=file, caption=caption)

        msg = await self._call(send)
        return str(msg.message_id)

    async def send_media_group(
        self, destination: str, media: list[Media], caption: str
    ) -> str:
        bot = self._require_bot()
        caption = truncate(caption, CAPTION_LIMIT) or None

        group = []
        for i, m in enumerate(media[:MEDIA_GROUP_LIMIT]):
            file = self._input_file(m)
            # Подпись только у первого элемента
            cap = caption if i == 0 else None
            if m.type == MediaType.PHOTO:
                group.append(InputMediaPhoto(media=file, caption=cap))
            elif m.type == MediaType.VIDEO:
                group.append(InputMediaVideo(media=file, caption=cap))
            else:
                group.append(InputMediaDocument(media=file, caption=cap))

        msgs = await self._call(
            lambda: bot.send_media_group(chat_id(destination), media=group)
        )
        return str(msgs[0].message_id)

    async def download_media(self, media: Media) -> bytes:
        """Скачивает байты медиа: по file_id через Bot API, иначе по URL."""
        if media.data is not None:
            return media.data

        if media.file_id:
            bot = self._require_bot()
            buffer = await bot.download(media.file_id, timeout=int(self._download_timeout))
            if buffer is None:
                raise DeliveryTransportError(f"Пустой файл {media.file_id}")
            return buffer.getvalue()

        if not media.url:
            raise ValueError("У медиа нет ни file_id, ни url")

        if os.path.exists(media.url):
            return await asyncio.to_thread(_read_file, media.url)

        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self._download_timeout, follow_redirects=True
            )
        resp = await self._http.get(media.url)
        resp.raise_for_status()
        return resp.content

    async def close(self) -> None:
        if self.bot:
            await self.bot.session.close()
        if self._http is not None:
            await self._http.aclose()


def _read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()
