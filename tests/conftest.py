"""Pytest fixtures for syndicator tests."""

import asyncio
import itertools

import pytest

from syndicator.database import SyndicationRepository
from syndicator.dispatcher import Dispatcher
from syndicator.intake import Intake
from syndicator.models.content import ImageOptions, Media, TranslationResult
from syndicator.publishers import DeliveryTransportError
from syndicator.registry import SourceRegistry
from syndicator.services.image_processor import ImageProcessingError
from syndicator.services.translation import TranslationError, Translator
from syndicator.transform import ContentTransformer


class FakePublisher:
    """Records every send; optionally fails with a preset exception."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail_with: Exception | None = None
        self._ids = itertools.count(100)

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    def _record(self, kind: str, destination: str, text: str, media: list[Media]) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(
            {"kind": kind, "destination": destination, "text": text, "media": media}
        )
        return str(next(self._ids))

    async def send_text(self, destination: str, content: str) -> str:
        return self._record("text", destination, content, [])

    async def send_media(self, destination: str, media: Media, caption: str) -> str:
        return self._record("media", destination, caption, [media])

    async def send_media_group(
        self, destination: str, media: list[Media], caption: str
    ) -> str:
        return self._record("group", destination, caption, list(media))

    async def download_media(self, media: Media) -> bytes:
        return b"original-bytes"


class GatedPublisher(FakePublisher):
    """Holds every send until `release` is set; refuses to send once closed."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.closed = False

    async def send_text(self, destination: str, content: str) -> str:
        self.started.set()
        await self.release.wait()
        if self.closed:
            raise DeliveryTransportError("client closed")
        return await super().send_text(destination, content)

    async def close(self) -> None:
        self.closed = True


class FakeTranslator(Translator):
    """Uppercases text and reports it as translated from english."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[str] = []

    async def translate(self, text: str) -> TranslationResult:
        self.calls.append(text)
        if self.fail:
            raise TranslationError("service unavailable")
        return TranslationResult(
            original_text=text,
            detected_language="english",
            translated_text=text.upper(),
            was_translated=True,
        )


class FakeImageProcessor:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.options: list[ImageOptions] = []

    async def process(self, data: bytes, options: ImageOptions) -> bytes:
        self.options.append(options)
        if self.fail:
            raise ImageProcessingError("broken image")
        return b"processed:" + data


@pytest.fixture
async def repository(tmp_path):
    repo = SyndicationRepository(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await repo.init_db()
    yield repo
    await repo.close()


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def translator() -> FakeTranslator:
    return FakeTranslator()


@pytest.fixture
def image_processor() -> FakeImageProcessor:
    return FakeImageProcessor()


@pytest.fixture
def transformer(repository, translator, image_processor, publisher) -> ContentTransformer:
    return ContentTransformer(
        repository,
        translator=translator,
        image_processor=image_processor,
        media_fetcher=publisher.download_media,
    )


@pytest.fixture
def dispatcher(repository, publisher, transformer) -> Dispatcher:
    return Dispatcher(repository, publisher, transformer)


@pytest.fixture
def intake(repository, dispatcher, transformer) -> Intake:
    return Intake(repository, dispatcher, transformer)


@pytest.fixture
def registry(repository, tmp_path) -> SourceRegistry:
    return SourceRegistry(repository, tmp_path / "sources.yaml")


@pytest.fixture
def make_pair(repository):
    """Factory for channel pairs with sensible defaults."""
    counter = itertools.count(1)

    async def _make(**overrides):
        n = next(counter)
        fields = {
            "source_name": f"Source {n}",
            "source_username": f"source_chan{n}",
            "target_name": f"Target {n}",
            "target_username": f"target_chan{n}",
            "status": "active",
            "posting_delay": 0,
            "content_filters": {},
            "copy_mode": "auto_publish",
        }
        fields.update(overrides)
        return await repository.create_channel_pair(**fields)

    return _make


@pytest.fixture
def make_web_source(repository):
    counter = itertools.count(1)

    async def _make(**overrides):
        n = next(counter)
        fields = {
            "name": f"Feed {n}",
            "url": f"https://news{n}.example.com/feed.xml",
            "type": "rss",
            "is_active": True,
            "poll_interval": 5,
        }
        fields.update(overrides)
        return await repository.create_web_source(**fields)

    return _make
