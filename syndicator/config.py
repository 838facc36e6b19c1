# syndicator/config.py

"""Конфигурация приложения через переменные окружения."""

from pathlib import Path

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Настройки приложения из переменных окружения."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Telegram Bot (без токена сборщик Bot API и диспетчер не запускаются)
    telegram_bot_token: str | None = Field(
        default=None, description="Токен Telegram бота"
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/syndicator.db",
        description="URL подключения к базе данных",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Уровень логирования")
    log_file: str = Field(
        default="logs/syndicator.log", description="Путь к файлу логов"
    )

    # Интервалы опроса (секунды)
    bot_api_interval_seconds: int = Field(
        default=30, description="Интервал опроса каналов через Bot API"
    )
    web_channel_interval_seconds: int = Field(
        default=120, description="Интервал опроса веб-версии каналов t.me/s"
    )
    web_feed_interval_seconds: int = Field(
        default=300, description="Интервал опроса RSS/HTML источников"
    )
    dispatch_interval_seconds: int = Field(
        default=60, description="Интервал проверки постов к отправке"
    )
    web_channel_initial_delay_seconds: int = Field(
        default=10, description="Задержка первого веб-парсинга после старта"
    )
    web_feed_initial_delay_seconds: int = Field(
        default=15, description="Задержка первого парсинга RSS/HTML после старта"
    )

    # Вежливые задержки между запросами к внешним сайтам
    web_channel_pair_delay_seconds: float = Field(
        default=2.0, description="Пауза между каналами при веб-парсинге"
    )
    web_channel_message_delay_seconds: float = Field(
        default=0.5, description="Пауза между сообщениями при веб-парсинге"
    )
    web_feed_source_delay_seconds: float = Field(
        default=3.0, description="Пауза между веб-источниками"
    )
    http_timeout_seconds: float = Field(
        default=10.0, description="Таймаут HTTP-запросов к внешним источникам"
    )

    # Включение сборщиков
    bot_api_collector_enabled: bool = Field(default=True)
    web_channel_collector_enabled: bool = Field(default=True)
    web_feed_collector_enabled: bool = Field(default=True)

    # Перевод
    openai_api_key: SecretStr | None = Field(
        default=None, description="Ключ OpenAI для сервиса перевода"
    )
    translation_model: str = Field(default="gpt-4o-mini")
    translation_target_language: str = Field(
        default="russian", description="Язык, на который переводится контент"
    )
    translation_timeout_seconds: float = Field(default=60.0)

    # Обработка изображений
    watermark_default_text: str = Field(default="Reposted")
    image_quality: int = Field(default=85, ge=1, le=100)
    image_max_width: int = Field(default=1920)
    image_max_height: int = Field(default=1080)

    # Обслуживание
    log_retention_days: int = Field(
        default=30, description="Сколько дней хранить журнал активности"
    )
    cleanup_hour_utc: int = Field(default=0, ge=0, le=23)

    # Пути к конфигурационным файлам
    sources_config: Path = Field(
        default=Path("config/sources.yaml"),
        description="Путь к файлу с парами каналов и веб-источниками",
    )

    def ensure_directories(self) -> None:
        """Создает необходимые директории, если они не существуют."""
        # Директория для логов
        log_path = Path(self.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # Директория для базы данных
        if self.database_url.startswith("sqlite"):
            db_path = self.database_url.split("///")[-1]
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        # Директория для конфига
        self.sources_config.parent.mkdir(parents=True, exist_ok=True)


# Глобальный экземпляр настроек
settings = Settings()
