# syndicator/collectors/bot_api.py

"""Сборщик через Bot API: getUpdates с channel_post.

Бот видит только каналы, куда он добавлен. Обновления не подтверждаются
(offset не передается), их хвост фильтруется курсором.
"""

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import Message

from syndicator.collectors.base import ChannelCollector, SourceFetchError
from syndicator.models.content import CandidateItem, CollectorKind, Media, MediaType
from syndicator.utils.clock import to_naive_utc
from syndicator.utils.text import MEDIA_UNAVAILABLE_MARKER


def message_to_item(message: Message) -> CandidateItem:
    """Текст или подпись плюс медиа по file_id."""
    media: list[Media] = []
    if message.photo:
        # Последний размер самый большой
        media.append(Media(type=MediaType.PHOTO, file_id=message.photo[-1].file_id))
    if message.video:
        media.append(Media(type=MediaType.VIDEO, file_id=message.video.file_id))
    if message.document:
        media.append(Media(type=MediaType.DOCUMENT, file_id=message.document.file_id))

    text = message.text or message.caption or ""
    unsupported = message.audio or message.voice or message.sticker or message.video_note
    if unsupported:
        text = f"{text}\n{MEDIA_UNAVAILABLE_MARKER}" if text else MEDIA_UNAVAILABLE_MARKER

    return CandidateItem(
        kind=CollectorKind.BOT_API,
        native_id=str(message.message_id),
        text=text,
        media=media,
        published_at=to_naive_utc(message.date) if message.date else None,
    )


class BotApiSource:
    def __init__(self, bot: Bot, request_timeout: int = 10):
        self.bot = bot
        self.request_timeout = request_timeout

    async def get_recent_messages(self, username: str) -> list[CandidateItem]:
        try:
            chat = await self.bot.get_chat(f"@{username}", request_timeout=self.request_timeout)
            if chat.type != "channel":
                raise SourceFetchError(f"@{username} не является каналом")

            updates = await self.bot.get_updates(
                allowed_updates=["channel_post"],
                request_timeout=self.request_timeout,
            )
        except TelegramAPIError as e:
            raise SourceFetchError(f"@{username}: {e.message}") from e

        messages = [
            u.channel_post
            for u in updates
            if u.channel_post is not None
            and (u.channel_post.chat.username or "").lower() == username.lower()
        ]
        messages.sort(key=lambda m: m.message_id)
        return [message_to_item(m) for m in messages]


class BotApiCollector(ChannelCollector):
    kind = CollectorKind.BOT_API
    error_log_type = "parsing_error"

    def __init__(self, repository, registry, intake, source: BotApiSource, **kwargs):
        super().__init__(repository, registry, intake, **kwargs)
        self.source = source

    async def fetch_messages(self, username: str) -> list[CandidateItem]:
        return await self.source.get_recent_messages(username)
