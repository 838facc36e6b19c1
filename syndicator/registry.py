# syndicator/registry.py

"""Реестр источников: пары каналов и веб-источники.

Файл реестра (YAML) синхронизируется в БД при старте, дальше сборщики
читают только БД.
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from syndicator.database import ChannelPair, SyndicationRepository, WebSource
from syndicator.models.content import (
    ContentFilters,
    CopyMode,
    PairStatus,
    WebSourceKind,
)
from syndicator.utils.clock import utcnow
from syndicator.utils.logger import logger
from syndicator.utils.text import normalize_channel_username, validate_channel_username

log = logger.bind(component="registry")


class RegistryError(Exception):
    """Некорректная запись реестра или неизвестный ID."""


class ChannelPairConfig(BaseModel):
    source: str
    target: str
    source_name: str | None = None
    target_name: str | None = None
    status: PairStatus = PairStatus.ACTIVE
    posting_delay: int = Field(default=0, ge=0)
    content_filters: ContentFilters = Field(default_factory=ContentFilters)
    custom_branding: str | None = None
    auto_translate: bool = False
    copy_mode: CopyMode = CopyMode.AUTO_PUBLISH

    @field_validator("source", "target")
    @classmethod
    def _username(cls, value: str) -> str:
        username = normalize_channel_username(value)
        if not validate_channel_username(username):
            raise ValueError(f"Некорректный username канала: {value}")
        return username

    def to_fields(self) -> dict[str, Any]:
        return {
            "source_username": self.source,
            "target_username": self.target,
            "source_name": self.source_name or self.source,
            "target_name": self.target_name or self.target,
            "status": self.status.value,
            "posting_delay": self.posting_delay,
            "content_filters": self.content_filters.model_dump(),
            "custom_branding": self.custom_branding,
            "auto_translate": self.auto_translate,
            "copy_mode": self.copy_mode.value,
        }


class WebSourceConfig(BaseModel):
    name: str
    url: str
    type: WebSourceKind = WebSourceKind.RSS
    selector: str | None = None
    enabled: bool = True
    poll_interval: int = Field(default=5, ge=1, description="Минуты")

    @field_validator("url")
    @classmethod
    def _url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"URL должен начинаться с http(s): {value}")
        return value

    def to_fields(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "type": self.type.value,
            "selector": self.selector,
            "is_active": self.enabled,
            "poll_interval": self.poll_interval,
        }


EXAMPLE_CONFIG = {
    "channel_pairs": [
        {
            "source": "@example_source",
            "target": "@example_target",
            "status": "paused",
            "posting_delay": 0,
            "content_filters": {
                "remove_mentions": True,
                "remove_links": False,
                "add_watermark": False,
                "remove_original_branding": False,
            },
            "custom_branding": None,
            "auto_translate": False,
            "copy_mode": "auto_publish",
        }
    ],
    "web_sources": [
        {
            "name": "Example feed",
            "url": "https://example.com/feed.xml",
            "type": "rss",
            "enabled": False,
            "poll_interval": 5,
        }
    ],
}


class SourceRegistry:
    def __init__(self, repository: SyndicationRepository, config_path: Path | None = None):
        self.repository = repository
        self.config_path = config_path

    # ------------------------------------------------------------------
    # Файл реестра

    async def load(self) -> int:
        """Синхронизирует файл реестра с БД.

        Returns:
            Количество загруженных записей
        """
        path = self.config_path
        if path is None:
            return 0

        if not path.exists():
            log.warning(f"⚠️ Реестр не найден: {path}")
            self._create_example_config(path)
            return 0

        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}

        loaded = 0
        for entry in config.get("channel_pairs") or []:
            try:
                pair = await self.upsert_channel_pair(ChannelPairConfig.model_validate(entry))
                loaded += 1
                log.info(f"   {'✓' if pair.is_active else '✗'} @{pair.source_username} → @{pair.target_username}")
            except (ValidationError, RegistryError) as e:
                log.error(f"❌ Пара каналов {entry}: {e}")

        for entry in config.get("web_sources") or []:
            try:
                source = await self.upsert_web_source(WebSourceConfig.model_validate(entry))
                loaded += 1
                log.info(f"   {'✓' if source.is_active else '✗'} {source.type}: {source.url}")
            except (ValidationError, RegistryError) as e:
                log.error(f"❌ Веб-источник {entry}: {e}")

        log.info(f"📊 Загружено записей реестра: {loaded}")
        return loaded

    def _create_example_config(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(EXAMPLE_CONFIG, f, allow_unicode=True, sort_keys=False)
        log.info(f"📝 Создан пример: {path}")

    async def upsert_channel_pair(self, config: ChannelPairConfig) -> ChannelPair:
        fields = config.to_fields()
        existing = await self.repository.find_channel_pair(config.source, config.target)
        if existing is None:
            return await self.repository.create_channel_pair(**fields)
        return await self.repository.update_channel_pair(existing.id, **fields)

    async def upsert_web_source(self, config: WebSourceConfig) -> WebSource:
        fields = config.to_fields()
        existing = await self.repository.find_web_source_by_url(config.url)
        if existing is None:
            return await self.repository.create_web_source(**fields)
        return await self.repository.update_web_source(existing.id, **fields)

    # ------------------------------------------------------------------
    # Чтение для сборщиков

    async def active_channel_pairs(self) -> list[ChannelPair]:
        return await self.repository.list_channel_pairs(status=PairStatus.ACTIVE.value)

    async def due_web_sources(self, now: datetime | None = None) -> list[WebSource]:
        """Активные источники, у которых прошел poll_interval."""
        now = now or utcnow()
        due = []
        for source in await self.repository.list_web_sources(active_only=True):
            if source.last_parsed is None:
                due.append(source)
            elif source.last_parsed + timedelta(minutes=source.poll_interval) <= now:
                due.append(source)
        return due

    async def require_channel_pair(self, pair_id: str) -> ChannelPair:
        pair = await self.repository.get_channel_pair(pair_id)
        if pair is None:
            raise RegistryError(f"Пара каналов не найдена: {pair_id}")
        return pair

    async def require_web_source(self, source_id: str) -> WebSource:
        source = await self.repository.get_web_source(source_id)
        if source is None:
            raise RegistryError(f"Веб-источник не найден: {source_id}")
        return source

    # ------------------------------------------------------------------
    # CRUD

    async def add_channel_pair(self, **fields: Any) -> ChannelPair:
        try:
            config = ChannelPairConfig.model_validate(fields)
        except ValidationError as e:
            raise RegistryError(str(e)) from e

        if await self.repository.find_channel_pair(config.source, config.target):
            raise RegistryError(f"Пара @{config.source} → @{config.target} уже существует")

        pair = await self.repository.create_channel_pair(**config.to_fields())
        await self.repository.add_activity(
            type="channel_pair_created",
            description=f"Channel pair created: @{pair.source_username} -> @{pair.target_username}",
            channel_pair_id=pair.id,
        )
        return pair

    async def update_channel_pair(self, pair_id: str, **changes: Any) -> ChannelPair:
        pair = await self.require_channel_pair(pair_id)
        for key in ("source_username", "target_username"):
            if key in changes:
                changes[key] = normalize_channel_username(changes[key])
        if "content_filters" in changes:
            filters = ContentFilters.model_validate(
                {**pair.content_filters, **changes["content_filters"]}
            )
            changes["content_filters"] = filters.model_dump()
        for key, enum in (("status", PairStatus), ("copy_mode", CopyMode)):
            if key in changes:
                try:
                    changes[key] = enum(changes[key]).value
                except ValueError as e:
                    raise RegistryError(str(e)) from e
        return await self.repository.update_channel_pair(pair_id, **changes)

    async def set_pair_status(self, pair_id: str, status: PairStatus | str) -> ChannelPair:
        pair = await self.update_channel_pair(pair_id, status=status)
        log.info(f"🔀 @{pair.source_username} → @{pair.target_username}: {pair.status}")
        return pair

    async def remove_channel_pair(self, pair_id: str) -> None:
        if not await self.repository.delete_channel_pair(pair_id):
            raise RegistryError(f"Пара каналов не найдена: {pair_id}")

    async def add_web_source(self, **fields: Any) -> WebSource:
        try:
            config = WebSourceConfig.model_validate(fields)
        except ValidationError as e:
            raise RegistryError(str(e)) from e

        if await self.repository.find_web_source_by_url(config.url):
            raise RegistryError(f"Веб-источник уже существует: {config.url}")
        return await self.repository.create_web_source(**config.to_fields())

    async def update_web_source(self, source_id: str, **changes: Any) -> WebSource:
        await self.require_web_source(source_id)
        if "type" in changes:
            try:
                changes["type"] = WebSourceKind(changes["type"]).value
            except ValueError as e:
                raise RegistryError(str(e)) from e
        return await self.repository.update_web_source(source_id, **changes)

    async def remove_web_source(self, source_id: str) -> None:
        if not await self.repository.delete_web_source(source_id):
            raise RegistryError(f"Веб-источник не найден: {source_id}")
