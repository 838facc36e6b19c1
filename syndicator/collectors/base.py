# syndicator/collectors/base.py

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict

import httpx

from syndicator.database import ChannelPair, SyndicationRepository
from syndicator.intake import Intake
from syndicator.models.content import CandidateItem, CollectorKind
from syndicator.registry import SourceRegistry
from syndicator.utils.logger import logger
from syndicator.utils.text import normalize_channel_username

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}


class SourceFetchError(Exception):
    """Источник не ответил или ответил ошибкой."""


class BaseCollector(ABC):
    """Сборщик с не-реентерабельным тиком.

    Если предыдущий тик еще идет, новый пропускается.
    """

    kind: CollectorKind

    def __init__(
        self,
        repository: SyndicationRepository,
        registry: SourceRegistry,
        intake: Intake,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.repository = repository
        self.registry = registry
        self.intake = intake
        self._http = http_client
        self._timeout = timeout
        self._lock = asyncio.Lock()
        self.log = logger.bind(component=self.kind.value)

    async def run_cycle(self) -> int:
        """Один тик сборщика.

        Returns:
            Количество новых записей (Post или DraftPost)
        """
        if self._lock.locked():
            self.log.warning("⏭️ Предыдущий тик еще идет, пропускаем")
            return 0

        async with self._lock:
            created = await self._collect_all()
            if created:
                self.log.info(f"📊 Новых элементов: {created}")
            return created

    @abstractmethod
    async def _collect_all(self) -> int:
        pass

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                headers=BROWSER_HEADERS,
            )
        return self._http

    async def fetch_page(self, url: str, headers: dict[str, str] | None = None) -> str:
        try:
            resp = await self._client().get(url, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise SourceFetchError(f"{url}: {e}") from e
        return resp.text

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


class ChannelCollector(BaseCollector):
    """Общая дисциплина курсора для сборщиков каналов.

    Курсор (последний обработанный ID сообщения) хранится в памяти и
    привязан к username канала-источника. Пары с общим источником
    обрабатываются одним запросом, чтобы ни одна не пропустила сообщения.
    """

    error_log_type = "parsing_error"

    def __init__(
        self,
        repository: SyndicationRepository,
        registry: SourceRegistry,
        intake: Intake,
        pair_delay: float = 0.0,
        message_delay: float = 0.0,
        **kwargs,
    ):
        super().__init__(repository, registry, intake, **kwargs)
        self.pair_delay = pair_delay
        self.message_delay = message_delay
        self.cursors: dict[str, int] = {}

    @abstractmethod
    async def fetch_messages(self, username: str) -> list[CandidateItem]:
        """Последние сообщения канала (в любом порядке)."""

    async def _collect_all(self) -> int:
        groups: dict[str, list[ChannelPair]] = defaultdict(list)
        for pair in await self.registry.active_channel_pairs():
            groups[normalize_channel_username(pair.source_username)].append(pair)

        created = 0
        for i, (username, pairs) in enumerate(groups.items()):
            if i and self.pair_delay:
                await asyncio.sleep(self.pair_delay)
            created += await self._collect_source(username, pairs)
        return created

    async def parse_pair_now(self, pair: ChannelPair) -> int:
        """Ручной запуск для пары (вместе с активными парами того же источника)."""
        if not pair.is_active:
            self.log.debug(f"⏸️ Пара {pair.id} не активна, пропуск")
            return 0
        username = normalize_channel_username(pair.source_username)
        pairs = [
            p
            for p in await self.registry.active_channel_pairs()
            if normalize_channel_username(p.source_username) == username
            and p.id != pair.id
        ]
        async with self._lock:
            return await self._collect_source(username, [pair, *pairs])

    async def cursor_for(self, username: str) -> int:
        """Курсор канала; при первом обращении берется из БД."""
        if username not in self.cursors:
            pair_ids = [
                p.id
                for p in await self.repository.list_channel_pairs()
                if normalize_channel_username(p.source_username) == username
            ]
            self.cursors[username] = await self.repository.get_max_original_post_id(
                pair_ids
            )
            if self.cursors[username]:
                self.log.debug(f"Курсор @{username} восстановлен: {self.cursors[username]}")
        return self.cursors[username]

    async def _collect_source(self, username: str, pairs: list[ChannelPair]) -> int:
        try:
            cursor = await self.cursor_for(username)
            messages = await self.fetch_messages(username)
        except Exception as e:
            self.log.error(f"❌ @{username}: {e}")
            for pair in pairs:
                await self.repository.add_activity(
                    type=self.error_log_type,
                    description=f"Failed to parse channel {pair.source_name}: {e}",
                    channel_pair_id=pair.id,
                )
            return 0

        fresh = sorted(
            (m for m in messages if m.numeric_id > cursor), key=lambda m: m.numeric_id
        )
        if fresh:
            self.log.info(f"🆕 @{username}: новых сообщений {len(fresh)}")

        created = 0
        for i, item in enumerate(fresh):
            if i and self.message_delay:
                await asyncio.sleep(self.message_delay)

            ok = True
            for pair in pairs:
                try:
                    if await self.intake.ingest_channel_item(pair, item) is not None:
                        created += 1
                except Exception as e:
                    ok = False
                    self.log.error(f"❌ Сообщение {item.native_id} (@{username}): {e}")
                    await self.repository.add_activity(
                        type="post_failed",
                        description=f"Failed to process message: {e}",
                        channel_pair_id=pair.id,
                    )

            # Курсор не двигается, сообщение повторится на следующем тике
            if not ok:
                break
            self.cursors[username] = item.numeric_id

        return created
