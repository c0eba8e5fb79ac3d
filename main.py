# main.py
import asyncio
import logging
import signal
import sys

from telegram import Update
from telegram.ext import (
    Application,
    CommandHandler,
    MessageHandler,
    filters,
)

from config import ConfigError, Settings, load_settings
from file_transfer import FileTransferClient
from handlers import (
    RUNTIME_KEY,
    Runtime,
    dispatch_media,
    error_handler,
    send_instructions,
    start,
)

logger = logging.getLogger(__name__)

MEDIA_FILTER = filters.VIDEO | filters.Document.ALL


def setup_logging(level: str) -> None:
    logging.basicConfig(
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        level=level,
    )
    # httpx пишет URL запросов, а в них токен бота
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_application(settings: Settings, runtime: Runtime) -> Application:
    """Собирает Application с таймаутами и регистрирует обработчики."""
    application = (
        Application.builder()
        .token(settings.bot_token)
        .read_timeout(settings.read_timeout)
        .write_timeout(settings.write_timeout)
        .connect_timeout(settings.connect_timeout)
        .build()
    )
    application.bot_data[RUNTIME_KEY] = runtime

    # Регистрация обработчиков
    application.add_handler(CommandHandler("start", start))
    application.add_handler(MessageHandler(MEDIA_FILTER, dispatch_media))
    application.add_handler(MessageHandler(filters.UpdateType.MESSAGE & ~MEDIA_FILTER, send_instructions))

    application.add_error_handler(error_handler)
    return application


async def run_bot(settings: Settings) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    async with FileTransferClient(settings.bot_token, timeout=settings.read_timeout) as transfer:
        runtime = Runtime(settings=settings, transfer=transfer, stop_event=stop_event)
        application = build_application(settings, runtime)

        async with application:
            await application.start()
            if settings.use_webhook:
                logger.info(f"Запуск в режиме webhook -> {settings.full_webhook_url}")
                await application.updater.start_webhook(
                    listen=settings.listen,
                    port=settings.port,
                    url_path=settings.webhook_path,
                    webhook_url=settings.full_webhook_url,
                    secret_token=settings.webhook_secret,
                    allowed_updates=Update.ALL_TYPES,
                )
            else:
                logger.info("Запуск в режиме long polling")
                await application.updater.start_polling(allowed_updates=Update.ALL_TYPES)

            logger.info("Бот запущен и слушает обновления...")
            await stop_event.wait()

            logger.info("Получен сигнал завершения. Останавливаю бота...")
            await application.updater.stop()
            # Дожидается задач из create_task; ffmpeg к этому моменту уже убит
            await application.stop()


def main():
    """Запускает бота."""
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Ошибка конфигурации: {e}", file=sys.stderr)
        return 2

    setup_logging(settings.log_level)
    logger.info("Запуск бота...")
    asyncio.run(run_bot(settings))
    return 0


if __name__ == "__main__":
    sys.exit(main())
