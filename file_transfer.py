# file_transfer.py
import logging
from typing import BinaryIO, Optional

import httpx

TELEGRAM_FILE_URL = "https://api.telegram.org/file/bot{token}"

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    """Файл не удалось скачать или записать на диск."""


class UploadError(Exception):
    """Готовый файл не удалось открыть для отправки."""


class FileTransferClient:
    """Скачивание файлов из хранилища Telegram по HTTP.

    Без докачки, повторов и проверки целостности: файл либо скачан
    целиком, либо выброшена DownloadError.
    """

    def __init__(self, token: str, *, base_url: str = TELEGRAM_FILE_URL, timeout: float = 60.0,
                 http_client: Optional[httpx.AsyncClient] = None) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        self._base_url = base_url.format(token=token).rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def __aenter__(self) -> "FileTransferClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def build_url(self, remote_path: str) -> str:
        # PTB уже отдаёт в File.file_path полный URL, Bot API - относительный путь
        if remote_path.startswith(("http://", "https://")):
            return remote_path
        return f"{self._base_url}/{remote_path.lstrip('/')}"

    async def download(self, remote_path: str, dest_path: str) -> None:
        url = self.build_url(remote_path)
        try:
            async with self._client.stream("GET", url) as response:
                response.raise_for_status()
                with open(dest_path, "wb") as out:
                    async for chunk in response.aiter_bytes():
                        out.write(chunk)
        except httpx.HTTPStatusError as e:
            raise DownloadError(f"HTTP {e.response.status_code} при скачивании файла") from e
        except httpx.HTTPError as e:
            raise DownloadError(f"сетевая ошибка при скачивании файла: {e.__class__.__name__}") from e
        except OSError as e:
            raise DownloadError(f"не удалось записать {dest_path}: {e}") from e
        logger.info(f"Файл скачан в {dest_path}")


def open_for_upload(path: str) -> BinaryIO:
    """Открывает готовый файл на чтение с начала. Закрывает вызывающий."""
    try:
        return open(path, "rb")
    except OSError as e:
        raise UploadError(f"не удалось открыть {path}: {e}") from e
