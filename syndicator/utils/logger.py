# syndicator/utils/logger.py

"""Настройка loguru.

Каждый компонент пишет через logger.bind(component=...). Логи сторонних
библиотек (apscheduler, aiogram, httpx) идут через стандартный logging
и перенаправляются сюда же.
"""

import logging
import sys
from pathlib import Path

from loguru import logger

from syndicator.config import settings

# Библиотеки, которые на INFO пишут каждый запрос или каждый запуск задачи
NOISY_LIBRARIES = ("httpx", "httpcore", "apscheduler", "aiogram.event", "asyncio")


class LogLevel:
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"


class StdlibHandler(logging.Handler):
    """Переправляет записи стандартного logging в loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Пропускаем кадры logging, чтобы в файле был настоящий источник
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(component=record.name.split(".")[0]).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


def setup_logger(
    console_level: str | None = None,
    file_enabled: bool = True,
    log_file: str | Path | None = None,
) -> None:
    logger.remove()
    logger.configure(extra={"component": "core"})

    console_level = console_level or settings.log_level
    log_file = Path(log_file or settings.log_file)

    logger.add(
        sys.stderr,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <7}</level> | "
            "<cyan>{extra[component]: <11}</cyan> | "
            "<level>{message}</level>"
        ),
        level=console_level,
        colorize=True,
        backtrace=False,
        diagnose=False,
    )

    if file_enabled:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_format = (
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[component]} | "
            "{name}:{function}:{line} | {message}"
        )

        logger.add(
            log_file,
            format=file_format,
            level="DEBUG",
            rotation="10 MB",
            retention="1 week",
            compression="zip",
            backtrace=True,
            diagnose=True,
            encoding="utf-8",
        )
        # Отдельный файл только с ошибками, хранится дольше
        logger.add(
            log_file.with_name(f"{log_file.stem}.errors{log_file.suffix}"),
            format=file_format,
            level="ERROR",
            rotation="10 MB",
            retention="1 month",
            backtrace=True,
            diagnose=False,
            encoding="utf-8",
        )

    logging.basicConfig(handlers=[StdlibHandler()], level=logging.INFO, force=True)
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["logger", "setup_logger", "LogLevel"]
