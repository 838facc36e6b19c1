# syndicator/pipeline.py

"""Сборка конвейера: сервисы, сборщики и задачи планировщика."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from syndicator.collectors import (
    BaseCollector,
    BotApiCollector,
    BotApiSource,
    ChannelCollector,
    WebChannelCollector,
    WebFeedCollector,
)
from syndicator.config import Settings, settings
from syndicator.database import ScheduledPost, SyndicationRepository
from syndicator.dispatcher import Dispatcher
from syndicator.intake import Intake
from syndicator.publishers import TelegramPublisher
from syndicator.registry import SourceRegistry
from syndicator.services import ImageProcessor, OpenAITranslator, Translator
from syndicator.transform import ContentTransformer
from syndicator.utils.logger import logger

log = logger.bind(component="pipeline")


class Pipeline:
    def __init__(
        self,
        config: Settings = settings,
        repository: SyndicationRepository | None = None,
        publisher: TelegramPublisher | None = None,
        translator: Translator | None = None,
        image_processor: ImageProcessor | None = None,
    ):
        self.config = config
        self.repository = repository or SyndicationRepository(config.database_url)
        self.registry = SourceRegistry(self.repository, config.sources_config)

        if publisher is None and config.telegram_bot_token:
            publisher = TelegramPublisher(
                token=config.telegram_bot_token,
                download_timeout=config.http_timeout_seconds * 3,
            )
        self.publisher = publisher

        if translator is None:
            if config.openai_api_key:
                translator = OpenAITranslator(
                    api_key=config.openai_api_key.get_secret_value(),
                    model=config.translation_model,
                    target_language=config.translation_target_language,
                    timeout=config.translation_timeout_seconds,
                )
            else:
                translator = Translator()
        self.translator = translator

        self.transformer = ContentTransformer(
            self.repository,
            translator=self.translator,
            image_processor=image_processor or ImageProcessor(),
            media_fetcher=self.publisher.download_media if self.publisher else None,
            watermark_default_text=config.watermark_default_text,
            image_quality=config.image_quality,
            image_max_width=config.image_max_width,
            image_max_height=config.image_max_height,
        )
        self.dispatcher = Dispatcher(self.repository, self.publisher, self.transformer)
        self.intake = Intake(self.repository, self.dispatcher, self.transformer)

        self.bot_api_collector: BotApiCollector | None = None
        self.web_channel_collector: WebChannelCollector | None = None
        self.web_feed_collector: WebFeedCollector | None = None

        self.scheduler: AsyncIOScheduler | None = None
        self.running = False
        self._active_jobs: set[asyncio.Task] = set()

    @property
    def collectors(self) -> list[BaseCollector]:
        return [
            c
            for c in (
                self.bot_api_collector,
                self.web_channel_collector,
                self.web_feed_collector,
            )
            if c is not None
        ]

    @property
    def channel_collectors(self) -> list[ChannelCollector]:
        return [
            c
            for c in (self.bot_api_collector, self.web_channel_collector)
            if c is not None
        ]

    async def initialize(self) -> None:
        log.info("🚀 Инициализация...")
        self.config.ensure_directories()

        try:
            await self.repository.init_db()
            await self.registry.load()
            if self.publisher:
                await self.publisher.initialize()
            else:
                log.warning("⚠️ Токен бота не задан: Bot API и отправка отключены")
            self._build_collectors()
        except Exception as e:
            log.error(f"❌ Ошибка инициализации: {e}")
            raise

        names = ", ".join(c.kind.value for c in self.collectors) or "нет"
        log.info(f"✅ Готов. Сборщики: {names}")

    def _build_collectors(self) -> None:
        cfg = self.config
        common = dict(timeout=cfg.http_timeout_seconds)

        if self.publisher and cfg.bot_api_collector_enabled:
            self.bot_api_collector = BotApiCollector(
                self.repository,
                self.registry,
                self.intake,
                source=BotApiSource(
                    self.publisher.bot, request_timeout=int(cfg.http_timeout_seconds)
                ),
                **common,
            )

        if cfg.web_channel_collector_enabled:
            self.web_channel_collector = WebChannelCollector(
                self.repository,
                self.registry,
                self.intake,
                pair_delay=cfg.web_channel_pair_delay_seconds,
                message_delay=cfg.web_channel_message_delay_seconds,
                **common,
            )

        if cfg.web_feed_collector_enabled:
            self.web_feed_collector = WebFeedCollector(
                self.repository,
                self.registry,
                self.intake,
                source_delay=cfg.web_feed_source_delay_seconds,
                **common,
            )

    def build_scheduler(self) -> AsyncIOScheduler:
        cfg = self.config
        scheduler = AsyncIOScheduler(timezone="UTC")
        now = datetime.now(timezone.utc)

        def every(job_id: str, name: str, func, seconds: int, first_run: datetime):
            scheduler.add_job(
                self._run_job,
                "interval",
                seconds=seconds,
                args=[name, func],
                id=job_id,
                name=name,
                max_instances=1,
                coalesce=True,
                next_run_time=first_run,
            )

        if self.bot_api_collector:
            every(
                "bot_api",
                "Bot API collector",
                self.bot_api_collector.run_cycle,
                cfg.bot_api_interval_seconds,
                now,
            )
        if self.web_channel_collector:
            every(
                "web_channel",
                "Web channel collector",
                self.web_channel_collector.run_cycle,
                cfg.web_channel_interval_seconds,
                now + timedelta(seconds=cfg.web_channel_initial_delay_seconds),
            )
        if self.web_feed_collector:
            every(
                "web_feed",
                "Web feed collector",
                self.web_feed_collector.run_cycle,
                cfg.web_feed_interval_seconds,
                now + timedelta(seconds=cfg.web_feed_initial_delay_seconds),
            )
        if self.publisher:
            every(
                "dispatch_posts",
                "Dispatch pending posts",
                self.dispatcher.process_pending_posts,
                cfg.dispatch_interval_seconds,
                now,
            )
            every(
                "dispatch_scheduled",
                "Dispatch scheduled posts",
                self.dispatcher.process_scheduled_posts,
                cfg.dispatch_interval_seconds,
                now,
            )

        scheduler.add_job(
            self._run_job,
            "cron",
            hour=cfg.cleanup_hour_utc,
            minute=0,
            args=["Daily cleanup", self._cleanup],
            id="cleanup",
            name="Daily activity log cleanup",
            max_instances=1,
            coalesce=True,
        )
        return scheduler

    async def _cleanup(self) -> int:
        return await self.dispatcher.cleanup_old_logs(self.config.log_retention_days)

    async def _run_job(self, name: str, func: Callable[[], Awaitable[object]]) -> None:
        """Ошибка одной задачи не останавливает остальные.

        Идущие задачи запоминаются, stop() дожидается их завершения.
        """
        task = asyncio.current_task()
        self._active_jobs.add(task)
        try:
            await func()
        except Exception as e:
            log.exception(f"❌ Задача '{name}' завершилась ошибкой: {e}")
        finally:
            self._active_jobs.discard(task)

    async def _wait_active_jobs(self) -> None:
        current = asyncio.current_task()
        running = [t for t in self._active_jobs if t is not current and not t.done()]
        if running:
            log.info(f"⏳ Ждем завершения задач: {len(running)}")
            await asyncio.gather(*running, return_exceptions=True)

    async def start(self) -> None:
        await self.initialize()
        self.scheduler = self.build_scheduler()
        self.scheduler.start()
        self.running = True
        log.info(f"🔄 Планировщик запущен, задач: {len(self.scheduler.get_jobs())}")

    async def run_once(self) -> None:
        """Один проход без планировщика: сборщики по очереди, затем отправка."""
        await self.initialize()
        for collector in self.collectors:
            await self._run_job(f"{collector.kind.value} collector", collector.run_cycle)
        if self.publisher:
            await self._run_job("Dispatch pending posts", self.dispatcher.process_pending_posts)
            await self._run_job(
                "Dispatch scheduled posts", self.dispatcher.process_scheduled_posts
            )
        log.info("✅ Проход завершен")

    async def stop(self) -> None:
        """Останавливает таймеры. Уже идущие отправки не прерываются."""
        log.info("🛑 Завершение...")
        self.running = False

        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)

        await self._wait_active_jobs()

        for collector in self.collectors:
            try:
                await collector.close()
            except Exception as e:
                log.debug(f"⚠️ Ошибка закрытия сборщика: {e}")

        for name, closable in (("публикатора", self.publisher), ("переводчика", self.translator)):
            if closable is None:
                continue
            try:
                await closable.close()
            except Exception as e:
                log.debug(f"⚠️ Ошибка закрытия {name}: {e}")

        try:
            await self.repository.close()
        except Exception as e:
            log.debug(f"⚠️ Ошибка закрытия БД: {e}")

        log.info("👋 Остановлен")

    # ------------------------------------------------------------------
    # Ручные действия

    async def parse_channel_now(self, channel_pair_id: str) -> int:
        pair = await self.registry.require_channel_pair(channel_pair_id)
        if not self.channel_collectors:
            raise RuntimeError("Нет включенных сборщиков каналов")
        created = 0
        for collector in self.channel_collectors:
            created += await collector.parse_pair_now(pair)
        return created

    async def parse_source_now(self, web_source_id: str) -> int:
        source = await self.registry.require_web_source(web_source_id)
        if self.web_feed_collector is None:
            raise RuntimeError("Сборщик веб-источников выключен")
        return await self.web_feed_collector.parse_source_now(source)

    async def publish_draft(
        self, draft_id: str, channel_pair_id: str | None = None
    ) -> ScheduledPost:
        return await self.dispatcher.publish_draft(draft_id, channel_pair_id)

    async def publish_scheduled_now(self, scheduled_post_id: str) -> None:
        await self.dispatcher.publish_scheduled_now(scheduled_post_id)

    async def send_post_now(self, post_id: str) -> None:
        await self.dispatcher.send_post_now(post_id)
