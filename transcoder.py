# transcoder.py
import asyncio
import codecs
import logging
import re
from typing import Optional

from moviepy import VideoFileClip

from config import CIRCLE_SIZE

logger = logging.getLogger(__name__)

_LINE_SPLIT_RE = re.compile(r"[\r\n]+")


class TranscodeError(Exception):
    """FFmpeg не запустился, завершился с ошибкой или был остановлен."""


def build_ffmpeg_command(input_path: str, output_path: str, size: int = CIRCLE_SIZE,
                         ffmpeg_bin: str = "ffmpeg") -> list[str]:
    """Собирает командную строку ffmpeg для видеокружка.

    Кадр обрезается по центру до квадрата со стороной min(ширина, высота),
    масштабируется до size x size и приводится к yuv420p. Аудио копируется
    без перекодирования, существующий выходной файл перезаписывается.
    """
    video_filter = f"crop=min(iw\\,ih):min(iw\\,ih),scale={size}:{size},format=yuv420p"
    return [
        ffmpeg_bin,
        "-i", input_path,
        "-vf", video_filter,
        "-c:a", "copy",
        "-y",
        output_path,
    ]


async def _log_ffmpeg_output(stream: asyncio.StreamReader) -> None:
    # ffmpeg пишет прогресс через '\r', поэтому режем сами, а не через readline()
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            break
        pending += decoder.decode(chunk)
        *lines, pending = _LINE_SPLIT_RE.split(pending)
        for line in lines:
            if line.strip():
                logger.info(f"FFmpeg: {line.strip()}")
    if pending.strip():
        logger.info(f"FFmpeg: {pending.strip()}")


async def make_circular_video(input_path: str, output_path: str, stop_event: asyncio.Event, *,
                              size: int = CIRCLE_SIZE, ffmpeg_bin: str = "ffmpeg") -> None:
    """Запускает ffmpeg и ждёт завершения либо сигнала остановки.

    Вывод stderr читается непрерывно и отправляется в лог, иначе ffmpeg
    может встать на заполненном буфере. Любой исход, кроме кода 0,
    превращается в TranscodeError.
    """
    cmd = build_ffmpeg_command(input_path, output_path, size=size, ffmpeg_bin=ffmpeg_bin)
    logger.info(f"Запуск ffmpeg: {' '.join(cmd)}")
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise TranscodeError(f"не удалось запустить {ffmpeg_bin}: {e}") from e

    log_task = asyncio.create_task(_log_ffmpeg_output(process.stderr))
    wait_task = asyncio.create_task(process.wait())
    stop_task = asyncio.create_task(stop_event.wait())
    killed = False
    try:
        await asyncio.wait({wait_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop_task.cancel()
        if not wait_task.done():
            # Остановка бота (или отмена задачи) - процесс не должен пережить запрос
            killed = True
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        await log_task

    if killed:
        raise TranscodeError("ffmpeg остановлен по сигналу завершения")
    if process.returncode != 0:
        raise TranscodeError(f"ffmpeg завершился с кодом {process.returncode}")
    logger.info(f"Файл {output_path} успешно создан.")


def _probe_duration(path: str) -> Optional[int]:
    with VideoFileClip(path, audio=False) as clip:
        if not clip.duration or clip.duration <= 0:
            return None
        return int(round(clip.duration))


async def read_duration(path: str) -> Optional[int]:
    """Длительность ролика в секундах, либо None если определить не удалось."""
    try:
        return await asyncio.to_thread(_probe_duration, path)
    except Exception as e:
        logger.warning(f"Не удалось определить длительность {path}: {e}")
        return None
