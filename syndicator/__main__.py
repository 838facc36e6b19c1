# syndicator/__main__.py

import argparse
import asyncio
import signal
from pathlib import Path

from syndicator.config import settings
from syndicator.pipeline import Pipeline
from syndicator.utils.logger import LogLevel, logger, setup_logger

EPILOG = """
    Примеры использования:
    python -m syndicator                           # Обычный запуск (INFO в консоль)
    python -m syndicator -q                        # Только ошибки в консоль
    python -m syndicator -v --no-file              # Вся отладка, без файла
    python -m syndicator --once                    # Один проход всех сборщиков и выход
    python -m syndicator --sources my/sources.yaml # Другой файл реестра
"""


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="syndicator",
        description="Content Syndicator: сбор контента из каналов и сайтов и публикация в Telegram",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "--level",
        choices=[LogLevel.ERROR, LogLevel.WARNING, LogLevel.INFO, LogLevel.DEBUG],
        help="Уровень логирования для консоли",
    )
    verbosity.add_argument(
        "-q", "--quiet", action="store_true", help="Только ошибки (= --level ERROR)"
    )
    verbosity.add_argument(
        "-v", "--verbose", action="store_true", help="Вся отладка (= --level DEBUG)"
    )

    parser.add_argument("--no-file", action="store_true", help="Не писать логи в файл")
    parser.add_argument("--sources", type=Path, help="Путь к YAML реестру источников")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Выполнить по одному тику сборщиков и диспетчера и завершиться",
    )

    return parser.parse_args(argv)


def console_level(args: argparse.Namespace) -> str | None:
    if args.quiet:
        return LogLevel.ERROR
    if args.verbose:
        return LogLevel.DEBUG
    return args.level


async def run_until_signal(pipeline: Pipeline) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await pipeline.start()
    await stop_event.wait()
    logger.info("⚠️ Получен сигнал остановки")


async def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logger(console_level=console_level(args), file_enabled=not args.no_file)

    if args.sources:
        settings.sources_config = args.sources

    logger.info("=" * 60)
    logger.info(f"Content Syndicator | реестр: {settings.sources_config}")
    logger.info("=" * 60)

    pipeline = Pipeline(settings)
    try:
        if args.once:
            await pipeline.run_once()
        else:
            await run_until_signal(pipeline)
    except Exception as e:
        logger.exception(f"Критическая ошибка: {e}")
        raise
    finally:
        await pipeline.stop()
        logger.info("Завершено")


def run_main():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run_main()
