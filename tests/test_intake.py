"""Tests for dedup and intake."""

from syndicator.models.content import CandidateItem, CollectorKind, Media, MediaType


def _channel_item(native_id="10", text="hello", media=None):
    return CandidateItem(
        kind=CollectorKind.WEB_CHANNEL,
        native_id=native_id,
        text=text,
        media=media or [],
    )


class TestChannelIntake:
    async def test_same_item_twice_creates_one_post(self, repository, intake, make_pair):
        pair = await make_pair(posting_delay=5)
        item = _channel_item(media=[Media(type=MediaType.PHOTO, url="https://cdn/x.jpg")])

        first = await intake.ingest_channel_item(pair, item)
        second = await intake.ingest_channel_item(pair, item)

        assert first is not None
        assert second is None
        posts = await repository.list_posts(pair.id)
        assert len(posts) == 1
        assert posts[0].status == "pending"
        assert posts[0].media[0].url == "https://cdn/x.jpg"
        assert len(await repository.list_activity(type="post_detected")) == 1

    async def test_post_scheduled_with_pair_delay(self, repository, intake, make_pair):
        pair = await make_pair(posting_delay=5)

        post = await intake.ingest_channel_item(pair, _channel_item())

        stored = await repository.get_post(post.id)
        delay = stored.scheduled_at - stored.created_at
        assert 299 <= delay.total_seconds() <= 301

    async def test_same_native_id_in_different_pairs(self, repository, intake, make_pair):
        first_pair = await make_pair()
        second_pair = await make_pair()
        item = _channel_item()

        assert await intake.ingest_channel_item(first_pair, item) is not None
        assert await intake.ingest_channel_item(second_pair, item) is not None

    async def test_draft_mode_creates_translated_draft(
        self, repository, intake, translator, make_pair
    ):
        pair = await make_pair(copy_mode="draft_mode", auto_translate=True)

        draft = await intake.ingest_channel_item(pair, _channel_item(text="hello"))
        again = await intake.ingest_channel_item(pair, _channel_item(text="hello"))

        assert again is None
        assert draft.content == "HELLO"
        assert draft.original_content == "hello"
        assert draft.translated is True
        assert draft.source_language == "english"
        assert await repository.list_posts(pair.id) == []
        logs = await repository.list_activity(type="post_detected")
        assert logs[0].metadata_["copy_mode"] == "draft_mode"

    async def test_draft_mode_without_translation(self, intake, translator, make_pair):
        pair = await make_pair(copy_mode="draft_mode")

        draft = await intake.ingest_channel_item(pair, _channel_item(text="hello"))

        assert draft.content == "hello"
        assert draft.translated is False
        assert translator.calls == []


class TestWebIntake:
    async def test_web_item_becomes_draft(self, repository, intake, translator, make_web_source):
        source = await make_web_source()
        item = CandidateItem(
            kind=CollectorKind.WEB_FEED,
            native_id="g1",
            title="T",
            text="Hello",
            url="https://news.example.com/t",
        )

        draft = await intake.ingest_web_item(source, item)

        assert draft.original_post_id == "g1"
        assert draft.original_content == "T\n\nHello"
        assert translator.calls == ["T\n\nHello\n\n🔗 https://news.example.com/t"]
        assert draft.source_url == "https://news.example.com/t"
        assert len(await repository.list_activity(type="web_content_parsed")) == 1

    async def test_web_item_dedup(self, repository, intake, make_web_source):
        source = await make_web_source()
        item = CandidateItem(kind=CollectorKind.WEB_FEED, native_id="g1", title="T", text="x")

        assert await intake.ingest_web_item(source, item) is not None
        assert await intake.ingest_web_item(source, item) is None
        assert len(await repository.list_draft_posts(web_source_id=source.id)) == 1

    async def test_source_url_falls_back_to_source(self, intake, make_web_source):
        source = await make_web_source()
        item = CandidateItem(kind=CollectorKind.WEB_FEED, native_id="a", title="T", text="x")

        draft = await intake.ingest_web_item(source, item)

        assert draft.source_url == source.url
