"""Tests for the storage layer."""

from datetime import timedelta

import pytest

from syndicator.models.content import Media, MediaType
from syndicator.utils.clock import utcnow


class TestPosts:
    async def test_duplicate_key_returns_none(self, repository, make_pair):
        pair = await make_pair()

        first = await repository.create_post(pair.id, "5", "a")
        second = await repository.create_post(pair.id, "5", "b")

        assert first is not None
        assert second is None

    async def test_media_round_trips_through_json(self, repository, make_pair):
        pair = await make_pair()
        media = [Media(type=MediaType.VIDEO, file_id="abc")]

        post = await repository.create_post(pair.id, "1", "x", media)

        stored = await repository.get_post(post.id)
        assert stored.media == media

    async def test_transitions_only_from_pending(self, repository, make_pair):
        pair = await make_pair()
        post = await repository.create_post(pair.id, "1", "x")

        assert await repository.mark_post_posted(post.id, utcnow(), "77")
        assert not await repository.mark_post_failed(post.id, "late")
        assert not await repository.set_post_schedule(post.id, utcnow())

        stored = await repository.get_post(post.id)
        assert stored.status == "posted"
        assert stored.reposted_post_id == "77"

    async def test_due_pending_posts(self, repository, make_pair):
        pair = await make_pair()
        now = utcnow()
        due = await repository.create_post(pair.id, "1", "x")
        later = await repository.create_post(pair.id, "2", "y")
        await repository.create_post(pair.id, "3", "unscheduled")
        await repository.set_post_schedule(due.id, now - timedelta(seconds=1))
        await repository.set_post_schedule(later.id, now + timedelta(minutes=1))

        assert [p.id for p in await repository.get_due_pending_posts(now)] == [due.id]

    async def test_max_original_post_id_covers_posts_and_drafts(
        self, repository, make_pair
    ):
        pair = await make_pair()
        other = await make_pair()
        await repository.create_post(pair.id, "9", "x")
        await repository.create_post(pair.id, "10", "x")
        await repository.create_draft_post("12", "d", "d", channel_pair_id=other.id)

        assert await repository.get_max_original_post_id([pair.id]) == 10
        assert await repository.get_max_original_post_id([pair.id, other.id]) == 12
        assert await repository.get_max_original_post_id([]) == 0


class TestWebSources:
    async def test_last_parsed_never_moves_back(self, repository, make_web_source):
        source = await make_web_source()
        now = utcnow()

        await repository.mark_web_source_parsed(source.id, now)
        await repository.mark_web_source_parsed(source.id, now - timedelta(minutes=5))

        assert (await repository.get_web_source(source.id)).last_parsed == now

    async def test_delete_removes_drafts(self, repository, make_web_source):
        source = await make_web_source()
        await repository.create_draft_post("g1", "c", "c", web_source_id=source.id)

        assert await repository.delete_web_source(source.id)
        assert await repository.list_draft_posts(status=None) == []


class TestDrafts:
    async def test_exactly_one_origin_required(self, repository, make_pair, make_web_source):
        pair = await make_pair()
        source = await make_web_source()

        with pytest.raises(ValueError):
            await repository.create_draft_post("1", "c", "c")
        with pytest.raises(ValueError):
            await repository.create_draft_post(
                "1", "c", "c", channel_pair_id=pair.id, web_source_id=source.id
            )

    async def test_promote_keeps_dedup_key(self, repository, make_pair, make_web_source):
        pair = await make_pair()
        source = await make_web_source()
        draft = await repository.create_draft_post(
            "g1", "Long enough draft content", "orig", web_source_id=source.id
        )

        scheduled = await repository.promote_draft(draft.id, pair.id, utcnow())

        assert scheduled.channel_pair_id == pair.id
        assert scheduled.status == "scheduled"
        assert scheduled.title == "Published draft: Long enough draft content..."
        assert await repository.get_draft_post(draft.id) is None
        assert await repository.is_draft_source_recorded("g1", web_source_id=source.id)
        assert await repository.promote_draft(draft.id, pair.id, utcnow()) is None

    async def test_discarded_draft_still_blocks(self, repository, make_pair):
        pair = await make_pair()
        draft = await repository.create_draft_post("7", "c", "c", channel_pair_id=pair.id)

        assert await repository.discard_draft_post(draft.id)
        assert not await repository.discard_draft_post(draft.id)
        assert await repository.is_draft_source_recorded("7", channel_pair_id=pair.id)

    async def test_update_draft_content_and_media(self, repository, make_web_source):
        source = await make_web_source()
        draft = await repository.create_draft_post("g1", "old", "old", web_source_id=source.id)
        photo = Media(type=MediaType.PHOTO, url="https://cdn.example.com/a.jpg")

        updated = await repository.update_draft_post(draft.id, content="new", media=[photo])

        assert updated.content == "new"
        assert updated.original_content == "old"
        assert updated.media == [photo]
        stored = await repository.get_draft_post(draft.id)
        assert stored.media_urls == [{"type": "photo", "url": "https://cdn.example.com/a.jpg"}]
        assert await repository.update_draft_post("missing", content="x") is None


class TestScheduledPosts:
    async def test_cancel_only_while_scheduled(self, repository, make_pair):
        pair = await make_pair()
        scheduled = await repository.create_scheduled_post(pair.id, "text", utcnow())

        assert await repository.cancel_scheduled_post(scheduled.id)
        assert not await repository.mark_scheduled_published(scheduled.id, utcnow())
        assert (await repository.get_scheduled_post(scheduled.id)).status == "cancelled"


class TestActivity:
    async def test_cleanup_removes_old_entries(self, repository):
        entry = await repository.add_activity(type="post_detected", description="x")

        assert await repository.delete_activity_older_than(utcnow() - timedelta(days=1)) == 0
        assert await repository.delete_activity_older_than(utcnow() + timedelta(seconds=1)) == 1
        assert entry.metadata_ == {}
