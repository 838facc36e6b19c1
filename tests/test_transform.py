"""Tests for the content transform stage."""

import pytest

from syndicator.models.content import ContentFilters, Media, MediaType
from syndicator.transform import (
    ContentTransformer,
    append_branding,
    apply_filters,
    collapse_blank_lines,
    strip_placeholders,
)
from syndicator.utils.text import MEDIA_UNAVAILABLE_MARKER

from conftest import FakeImageProcessor, FakeTranslator


class TestPureHelpers:
    def test_strip_placeholders(self):
        text = f"Hello\n{MEDIA_UNAVAILABLE_MARKER}\nworld"
        assert MEDIA_UNAVAILABLE_MARKER not in strip_placeholders(text)

    def test_filters_respect_flags(self):
        text = "Hi @someone see https://example.com/x now"
        assert apply_filters(text, ContentFilters()) == text

        no_mentions = apply_filters(text, ContentFilters(remove_mentions=True))
        assert "@someone" not in no_mentions
        assert "https://example.com/x" in no_mentions

        no_links = apply_filters(text, ContentFilters(remove_links=True))
        assert "https://" not in no_links
        assert "@someone" in no_links

    def test_collapse_blank_lines(self):
        assert collapse_blank_lines("  a  \n\n\n\n b   c \n\n") == "a\n\nb c"

    def test_append_branding(self):
        assert append_branding("body", "via Brand") == "body\n\nvia Brand"
        assert append_branding("body", None) == "body"
        assert append_branding("", "Brand") == "Brand"


class TestRenderText:
    async def test_full_order(self, repository, make_pair):
        pair = await make_pair(
            content_filters={"remove_mentions": True, "remove_links": True},
            custom_branding="Via Brand",
        )
        transformer = ContentTransformer(repository)
        content = (
            f"News from @author\n{MEDIA_UNAVAILABLE_MARKER}\n\n\n\n"
            "Read https://example.com/a\nEnd"
        )

        result = await transformer.render_text(content, pair)

        assert MEDIA_UNAVAILABLE_MARKER not in result
        assert "@author" not in result
        assert "https://" not in result
        assert "\n\n\n" not in result
        assert result.endswith("\n\nVia Brand")

    async def test_mentions_kept_when_filter_disabled(self, repository, make_pair):
        pair = await make_pair(content_filters={"remove_links": True})
        transformer = ContentTransformer(repository)

        result = await transformer.render_text("Hey @author https://x.io", pair)

        assert "@author" in result
        assert "https://x.io" not in result

    async def test_translation_applied_and_logged(self, repository, make_pair):
        pair = await make_pair(auto_translate=True)
        transformer = ContentTransformer(repository, translator=FakeTranslator())

        result = await transformer.render_text("hello world", pair)

        assert result == "HELLO WORLD"
        logs = await repository.list_activity(type="content_translated")
        assert len(logs) == 1
        assert logs[0].metadata_["detected_language"] == "english"

    async def test_translation_failure_is_not_fatal(self, repository, make_pair):
        pair = await make_pair(auto_translate=True, custom_branding="B")
        transformer = ContentTransformer(repository, translator=FakeTranslator(fail=True))

        result = await transformer.render_text("hello world", pair)

        assert result == "hello world\n\nB"
        assert len(await repository.list_activity(type="translation_failed")) == 1

    async def test_translate_override_skips_translation(self, repository, make_pair):
        pair = await make_pair(auto_translate=True)
        translator = FakeTranslator()
        transformer = ContentTransformer(repository, translator=translator)

        result = await transformer.render_text("hello", pair, translate=False)

        assert result == "hello"
        assert translator.calls == []


class TestRenderMedia:
    @pytest.fixture
    def photo(self):
        return Media(type=MediaType.PHOTO, url="https://cdn.example.com/a.jpg")

    async def test_untouched_without_image_filters(self, transformer, make_pair, photo, image_processor):
        pair = await make_pair()

        result = await transformer.render_media([photo], pair)

        assert result == [photo]
        assert image_processor.options == []

    async def test_watermark_uses_branding(self, transformer, make_pair, photo, image_processor, repository):
        pair = await make_pair(
            content_filters={"add_watermark": True}, custom_branding="My Channel"
        )

        result = await transformer.render_media([photo], pair)

        assert result[0].data == b"processed:original-bytes"
        assert image_processor.options[0].watermark_text == "My Channel"
        assert len(await repository.list_activity(type="image_processed")) == 1

    async def test_non_photo_media_skipped(self, transformer, make_pair, image_processor):
        pair = await make_pair(content_filters={"add_watermark": True})
        video = Media(type=MediaType.VIDEO, file_id="vid-1")

        result = await transformer.render_media([video], pair)

        assert result == [video]
        assert image_processor.options == []

    async def test_processing_failure_falls_back_to_original(
        self, repository, publisher, make_pair, photo
    ):
        pair = await make_pair(content_filters={"remove_original_branding": True})
        transformer = ContentTransformer(
            repository,
            image_processor=FakeImageProcessor(fail=True),
            media_fetcher=publisher.download_media,
        )

        result = await transformer.render_media([photo], pair)

        assert result == [photo]
        assert result[0].data is None
        assert len(await repository.list_activity(type="image_processing_failed")) == 1
