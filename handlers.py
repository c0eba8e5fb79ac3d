# handlers.py
import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from telegram import Message, Update
from telegram.constants import ChatAction
from telegram.error import TelegramError
from telegram.ext import CallbackContext, ContextTypes

from config import Settings
from file_transfer import DownloadError, FileTransferClient, UploadError, open_for_upload
from transcoder import TranscodeError, make_circular_video, read_duration

# --- Константы ---
DEFAULT_FILE_NAME = "video.mp4"
DEFAULT_EXTENSION = ".mp4"
INPUT_FILENAME_TPL = "input_{}_{}_{}"   # chat_id, message_id, имя файла
OUTPUT_FILENAME_TPL = "output_{}_{}_{}"
VOICE_MESSAGES_FORBIDDEN = "VOICE_MESSAGES_FORBIDDEN"
RUNTIME_KEY = "runtime"

# --- Тексты для пользователя ---
START_TEXT = (
    "Hi! Send me a video (as a video or as a file) and I'll turn it into a video note.\n\n"
    "The frame is cropped to a square from the center, the audio is kept as is."
)
INSTRUCTION_TEXT = "Please send a video file to make it circular."
INVALID_VIDEO_TEXT = "Please send a valid video file."
PROCESS_FAILED_TEXT = "Failed to process the video. Please try again."
DOWNLOAD_FAILED_TEXT = "Failed to download the video. Please try again."
DOWNLOADED_TEXT = "Video downloaded. Processing..."
PROCESSED_TEXT = "Video processed. Sending..."
SEND_FAILED_TEXT = "Failed to send the processed video. Please try again."
VOICE_FORBIDDEN_TEXT = (
    "It seems that I don't have permission to send video notes. "
    "Please check if you allow sending voice messages in the settings."
)


class AttachmentKind(Enum):
    VIDEO = "video"
    DOCUMENT = "document"


class RequestOutcome(Enum):
    SUCCESS = "success"
    VALIDATION_FAILURE = "validation_failure"
    DOWNLOAD_FAILURE = "download_failure"
    TRANSCODE_FAILURE = "transcode_failure"
    UPLOAD_FAILURE = "upload_failure"


@dataclass(frozen=True)
class InboundAttachment:
    kind: AttachmentKind
    file_id: str
    file_name: Optional[str] = None


@dataclass
class Runtime:
    """Всё, что нужно запросу: настройки, HTTP-клиент и сигнал остановки."""
    settings: Settings
    transfer: FileTransferClient
    stop_event: asyncio.Event


# --- Вспомогательные функции ---
def resolve_attachment(message: Message) -> Optional[InboundAttachment]:
    """Достаёт file_id и имя файла из видео или документа в сообщении."""
    if message.video:
        return InboundAttachment(AttachmentKind.VIDEO, message.video.file_id, message.video.file_name)
    if message.document:
        return InboundAttachment(AttachmentKind.DOCUMENT, message.document.file_id, message.document.file_name)
    return None


def normalize_file_name(file_name: Optional[str]) -> str:
    name = os.path.basename((file_name or "").replace("\\", "/")).strip()
    if not name or name in (".", ".."):
        return DEFAULT_FILE_NAME
    if not os.path.splitext(name)[1]:
        name += DEFAULT_EXTENSION
    return name


def get_temp_filenames(temp_dir: str, chat_id: int, message_id: int, file_name: str) -> tuple[str, str]:
    """Временные пути запроса, уникальные в пределах чата и сообщения."""
    return (
        os.path.join(temp_dir, INPUT_FILENAME_TPL.format(chat_id, message_id, file_name)),
        os.path.join(temp_dir, OUTPUT_FILENAME_TPL.format(chat_id, message_id, file_name)),
    )


def is_voice_forbidden(error: Exception) -> bool:
    return VOICE_MESSAGES_FORBIDDEN in str(error).upper()


def cleanup_files(*filenames):
    """Безопасно удаляет указанные временные файлы."""
    for filename in filenames:
        if filename and os.path.exists(filename):
            try:
                os.remove(filename)
                logging.info(f"Временный файл {filename} удален.")
            except OSError as e:
                logging.error(f"Не удалось удалить временный файл {filename}: {e}")


async def notify(bot, chat_id: int, text: str) -> None:
    """Отправляет текст в чат; ошибка отправки только логируется."""
    try:
        await bot.send_message(chat_id=chat_id, text=text)
    except TelegramError as e:
        logging.warning(f"Chat {chat_id}: не удалось отправить сообщение '{text}': {e}")


async def _send_action(bot, chat_id: int, action: str) -> None:
    try:
        await bot.send_chat_action(chat_id=chat_id, action=action)
    except TelegramError as e:
        logging.warning(f"Chat {chat_id}: не удалось отправить статус {action}: {e}")


# --- Обработка одного запроса ---
async def process_video(message: Message, bot, runtime: Runtime) -> RequestOutcome:
    """Скачивает вложение, делает из него видеокружок и отправляет обратно."""
    settings = runtime.settings
    chat_id = message.chat_id

    attachment = resolve_attachment(message)
    if attachment is None:
        await notify(bot, chat_id, INVALID_VIDEO_TEXT)
        return RequestOutcome.VALIDATION_FAILURE

    file_name = normalize_file_name(attachment.file_name)
    logging.info(f"Chat {chat_id}: получен {attachment.kind.value} (ID: {attachment.file_id}, имя: {file_name})")

    try:
        remote_file = await bot.get_file(attachment.file_id)
    except TelegramError as e:
        logging.error(f"Chat {chat_id}: ошибка getFile для {attachment.file_id}: {e}")
        await notify(bot, chat_id, PROCESS_FAILED_TEXT)
        return RequestOutcome.DOWNLOAD_FAILURE

    input_filename, output_filename = get_temp_filenames(
        settings.temp_dir, chat_id, message.message_id, file_name)

    try:
        # 1. Скачивание
        logging.info(f"Chat {chat_id}: скачиваю видео в {input_filename}")
        try:
            await runtime.transfer.download(remote_file.file_path, input_filename)
        except DownloadError as e:
            logging.error(f"Chat {chat_id}: ошибка при скачивании файла: {e}")
            await notify(bot, chat_id, DOWNLOAD_FAILED_TEXT)
            return RequestOutcome.DOWNLOAD_FAILURE

        if settings.progress_messages:
            await notify(bot, chat_id, DOWNLOADED_TEXT)

        # 2. Конвертация
        await _send_action(bot, chat_id, ChatAction.RECORD_VIDEO_NOTE)
        try:
            await make_circular_video(
                input_filename, output_filename, runtime.stop_event,
                size=settings.video_size, ffmpeg_bin=settings.ffmpeg_bin)
        except TranscodeError as e:
            logging.error(f"Chat {chat_id}: ошибка при обработке видео: {e}")
            await notify(bot, chat_id, PROCESS_FAILED_TEXT)
            return RequestOutcome.TRANSCODE_FAILURE

        if settings.progress_messages:
            await notify(bot, chat_id, PROCESSED_TEXT)

        # 3. Отправка
        duration = await read_duration(output_filename)
        await _send_action(bot, chat_id, ChatAction.UPLOAD_VIDEO_NOTE)
        try:
            with open_for_upload(output_filename) as video_note_file:
                await bot.send_video_note(
                    chat_id=chat_id, video_note=video_note_file,
                    duration=duration, length=settings.video_size, filename=file_name)
        except (TelegramError, UploadError) as e:
            logging.error(f"Chat {chat_id}: ошибка при отправке видеокружка: {e}")
            if is_voice_forbidden(e):
                logging.warning(f"Chat {chat_id}: отправка видеокружков запрещена настройками приватности.")
                await notify(bot, chat_id, VOICE_FORBIDDEN_TEXT)
            else:
                await notify(bot, chat_id, SEND_FAILED_TEXT)
            return RequestOutcome.UPLOAD_FAILURE

        logging.info(f"Chat {chat_id}: видеокружок успешно отправлен.")
        return RequestOutcome.SUCCESS
    finally:
        # Гарантированная очистка временных файлов
        cleanup_files(input_filename, output_filename)


# --- Обработчики Telegram ---
async def start(update: Update, context: CallbackContext):
    """Отправляет приветственное сообщение /start."""
    await update.message.reply_text(START_TEXT)


async def send_instructions(update: Update, context: CallbackContext):
    """Ответ на всё, что не является видео или файлом."""
    if update.message is None:
        return
    await notify(context.bot, update.message.chat_id, INSTRUCTION_TEXT)


async def dispatch_media(update: Update, context: CallbackContext):
    """Запускает обработку вложения отдельной задачей и сразу возвращается."""
    message = update.message
    if message is None:
        return
    runtime: Runtime = context.application.bot_data[RUNTIME_KEY]
    context.application.create_task(process_video(message, context.bot, runtime), update=update)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logging.error(f"Исключение при обработке обновления {update}:", exc_info=context.error)
