"""Tests for the channel collectors (public web preview and Bot API)."""

from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import pytest
from aiogram.types import Chat, Message, PhotoSize, Video, Voice

from syndicator.collectors.base import ChannelCollector, SourceFetchError
from syndicator.collectors.bot_api import BotApiCollector, BotApiSource, message_to_item
from syndicator.collectors.web_channel import WebChannelCollector, parse_channel_page
from syndicator.models.content import CandidateItem, CollectorKind, MediaType
from syndicator.utils.text import MEDIA_UNAVAILABLE_MARKER

CHANNEL_PAGE = """<html><body><section class="tgme_channel_history">
<div class="tgme_widget_message" data-post="news_chan/101">
  <div class="tgme_widget_message_text">First<br>line two</div>
  <a class="tgme_widget_message_photo_wrap"
     style="width:100%;background-image:url('https://cdn4.telesco.pe/file/abc.jpg')"></a>
  <div class="tgme_widget_message_date"><time datetime="2024-03-01T10:00:00+00:00"></time></div>
</div>
<div class="tgme_widget_message" data-post="news_chan/100">
  <i class="tgme_widget_message_user_photo"><img src="https://cdn4.telesco.pe/file/avatar_1.jpg"></i>
  <div class="tgme_widget_message_text">Older</div>
  <div class="tgme_widget_message_document"><a href="https://t.me/news_chan/100?single">file.pdf</a></div>
</div>
<div class="tgme_widget_message" data-post="news_chan/102">
  <div class="message_media_not_supported">Please open Telegram to view this post</div>
</div>
<div class="tgme_widget_message" data-post="news_chan/103"></div>
</section></body></html>
"""


class TestParseChannelPage:
    def test_messages_sorted_with_media(self):
        items = parse_channel_page(CHANNEL_PAGE)

        assert [i.native_id for i in items] == ["100", "101", "102"]
        older, first, unsupported = items

        assert first.text == "First\nline two"
        assert [(m.type, m.url) for m in first.media] == [
            (MediaType.PHOTO, "https://cdn4.telesco.pe/file/abc.jpg")
        ]
        assert first.published_at == datetime(2024, 3, 1, 10, 0)

        # Avatar filtered, document kept
        assert [(m.type, m.url) for m in older.media] == [
            (MediaType.DOCUMENT, "https://t.me/news_chan/100?single")
        ]
        assert unsupported.text == MEDIA_UNAVAILABLE_MARKER

    def test_grouped_media_deduplicated(self):
        html = """<div class="tgme_widget_message" data-post="c/5">
          <div class="tgme_widget_message_grouped_wrap">
            <a class="tgme_widget_message_photo_wrap" style="background-image:url('https://cdn/p1.jpg')"></a>
            <a class="tgme_widget_message_photo_wrap" style="background-image:url('https://cdn/p2.jpg')"></a>
          </div></div>"""

        items = parse_channel_page(html)

        assert [m.url for m in items[0].media] == ["https://cdn/p1.jpg", "https://cdn/p2.jpg"]


def _web_collector(repository, registry, intake, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebChannelCollector(repository, registry, intake, http_client=client)


class TestWebChannelCollector:
    async def test_tick_creates_posts_and_advances_cursor(
        self, repository, registry, intake, make_pair
    ):
        pair = await make_pair(source_username="news_chan")
        requested: list[str] = []

        def handler(request):
            requested.append(str(request.url))
            return httpx.Response(200, text=CHANNEL_PAGE)

        collector = _web_collector(repository, registry, intake, handler)

        assert await collector.run_cycle() == 3
        assert requested == ["https://t.me/s/news_chan"]
        assert collector.cursors["news_chan"] == 102
        assert await collector.run_cycle() == 0
        assert len(await repository.list_posts(pair.id)) == 3
        await collector.close()

    async def test_cursor_seeded_from_storage(self, repository, registry, intake, make_pair):
        pair = await make_pair(source_username="news_chan")
        await repository.create_post(pair.id, "101", "seen before")

        collector = _web_collector(
            repository, registry, intake, lambda r: httpx.Response(200, text=CHANNEL_PAGE)
        )

        assert await collector.run_cycle() == 1
        originals = {p.original_post_id for p in await repository.list_posts(pair.id)}
        assert originals == {"101", "102"}
        await collector.close()

    async def test_http_error_logged_per_pair(self, repository, registry, intake, make_pair):
        broken = await make_pair(source_username="broken_chan")
        healthy = await make_pair(source_username="news_chan")

        def handler(request):
            if "broken_chan" in str(request.url):
                return httpx.Response(502)
            return httpx.Response(200, text=CHANNEL_PAGE)

        collector = _web_collector(repository, registry, intake, handler)

        assert await collector.run_cycle() == 3
        errors = await repository.list_activity(type="web_parsing_error")
        assert [e.channel_pair_id for e in errors] == [broken.id]
        assert len(await repository.list_posts(healthy.id)) == 3
        await collector.close()


class FakeSource:
    def __init__(self, items=None, error: Exception | None = None):
        self.items = items or []
        self.error = error
        self.calls: list[str] = []

    async def get_recent_messages(self, username: str) -> list[CandidateItem]:
        self.calls.append(username)
        if self.error:
            raise self.error
        return list(self.items)


def _item(native_id: int, text: str = "") -> CandidateItem:
    return CandidateItem(kind=CollectorKind.BOT_API, native_id=str(native_id), text=text or f"m{native_id}")


class TestBotApiCollector:
    async def test_pairs_sharing_source_fetch_once(self, repository, registry, intake, make_pair):
        first = await make_pair(source_username="shared_src")
        second = await make_pair(source_username="@shared_src")
        source = FakeSource([_item(3), _item(1), _item(2)])
        collector = BotApiCollector(repository, registry, intake, source=source)

        assert await collector.run_cycle() == 6
        assert source.calls == ["shared_src"]
        assert len(await repository.list_posts(first.id)) == 3
        assert len(await repository.list_posts(second.id)) == 3
        assert collector.cursors["shared_src"] == 3

    async def test_fetch_error_logged_as_parsing_error(self, repository, registry, intake, make_pair):
        pair = await make_pair()
        collector = BotApiCollector(
            repository, registry, intake, source=FakeSource(error=SourceFetchError("not a channel"))
        )

        assert await collector.run_cycle() == 0
        errors = await repository.list_activity(type="parsing_error")
        assert errors[0].channel_pair_id == pair.id

    async def test_intake_failure_stops_pair_without_advancing(
        self, repository, registry, intake, make_pair
    ):
        pair = await make_pair()
        collector = BotApiCollector(
            repository, registry, intake, source=FakeSource([_item(1), _item(2), _item(3)])
        )
        original = intake.ingest_channel_item
        failing = {"2"}

        async def flaky(p, item):
            if item.native_id in failing:
                raise RuntimeError("database is locked")
            return await original(p, item)

        intake.ingest_channel_item = flaky

        assert await collector.run_cycle() == 1
        assert collector.cursors[pair.source_username] == 1
        assert len(await repository.list_activity(type="post_failed")) == 1

        failing.clear()
        assert await collector.run_cycle() == 2
        assert collector.cursors[pair.source_username] == 3

    async def test_paused_pairs_not_collected(self, repository, registry, intake, make_pair):
        await make_pair(status="paused")
        source = FakeSource([_item(1)])
        collector = BotApiCollector(repository, registry, intake, source=source)

        assert await collector.run_cycle() == 0
        assert source.calls == []

    async def test_parse_pair_now(self, repository, registry, intake, make_pair):
        pair = await make_pair()
        collector = BotApiCollector(repository, registry, intake, source=FakeSource([_item(7)]))

        assert await collector.parse_pair_now(pair) == 1

    async def test_parse_pair_now_skips_paused_pair(
        self, repository, registry, intake, make_pair
    ):
        pair = await make_pair(status="paused")
        source = FakeSource([_item(7)])
        collector = BotApiCollector(repository, registry, intake, source=source)

        assert await collector.parse_pair_now(pair) == 0
        assert source.calls == []
        assert await repository.list_posts(channel_pair_id=pair.id) == []

    async def test_tick_skipped_while_running(self, repository, registry, intake):
        collector = BotApiCollector(repository, registry, intake, source=FakeSource())

        async with collector._lock:
            assert await collector.run_cycle() == 0

    def test_is_channel_collector(self):
        assert issubclass(BotApiCollector, ChannelCollector)
        assert issubclass(WebChannelCollector, ChannelCollector)


def _message(message_id: int, username: str = "src_chan", **fields) -> Message:
    return Message(
        message_id=message_id,
        date=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        chat=Chat(id=-1001, type="channel", username=username),
        **fields,
    )


class TestMessageToItem:
    def test_largest_photo_and_caption(self):
        message = _message(
            5,
            caption="caption text",
            photo=[
                PhotoSize(file_id="small", file_unique_id="s", width=90, height=90),
                PhotoSize(file_id="big", file_unique_id="b", width=1280, height=960),
            ],
        )

        item = message_to_item(message)

        assert item.native_id == "5"
        assert item.text == "caption text"
        assert [(m.type, m.file_id) for m in item.media] == [(MediaType.PHOTO, "big")]
        assert item.published_at == datetime(2024, 1, 1, 12, 0)

    def test_video(self):
        message = _message(
            6,
            video=Video(file_id="vid", file_unique_id="v", width=640, height=360, duration=10),
        )

        assert [(m.type, m.file_id) for m in message_to_item(message).media] == [
            (MediaType.VIDEO, "vid")
        ]

    def test_unsupported_media_becomes_marker(self):
        message = _message(
            7, text=None, voice=Voice(file_id="voice", file_unique_id="vo", duration=3)
        )

        item = message_to_item(message)

        assert item.text == MEDIA_UNAVAILABLE_MARKER
        assert item.media == []


class FakeBot:
    def __init__(self, chat_type: str, updates):
        self.chat_type = chat_type
        self.updates = updates
        self.get_updates_kwargs: dict = {}

    async def get_chat(self, chat_id, request_timeout=None):
        return SimpleNamespace(type=self.chat_type)

    async def get_updates(self, **kwargs):
        self.get_updates_kwargs = kwargs
        return self.updates


class TestBotApiSource:
    async def test_filters_by_channel_and_sorts(self):
        updates = [
            SimpleNamespace(channel_post=_message(9, text="nine")),
            SimpleNamespace(channel_post=_message(4, username="other_chan", text="other")),
            SimpleNamespace(channel_post=None),
            SimpleNamespace(channel_post=_message(8, username="SRC_CHAN", text="eight")),
        ]
        bot = FakeBot("channel", updates)

        items = await BotApiSource(bot, request_timeout=5).get_recent_messages("src_chan")

        assert [i.native_id for i in items] == ["8", "9"]
        assert bot.get_updates_kwargs == {
            "allowed_updates": ["channel_post"],
            "request_timeout": 5,
        }

    async def test_rejects_non_channel(self):
        with pytest.raises(SourceFetchError):
            await BotApiSource(FakeBot("supergroup", [])).get_recent_messages("src_chan")
