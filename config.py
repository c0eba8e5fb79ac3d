# config.py
import os
import tempfile
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# --- Константы ---
CIRCLE_SIZE = 640  # Сторона квадратного видеокружка по умолчанию
DEFAULT_PORT = 8080
DEFAULT_WEBHOOK_PATH = "webhook"


class ConfigError(Exception):
    """Некорректная или неполная конфигурация окружения."""


@dataclass(frozen=True)
class Settings:
    bot_token: str
    webhook_url: Optional[str] = None
    webhook_path: str = DEFAULT_WEBHOOK_PATH
    webhook_secret: Optional[str] = None
    listen: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    video_size: int = CIRCLE_SIZE
    ffmpeg_bin: str = "ffmpeg"
    temp_dir: str = tempfile.gettempdir()
    progress_messages: bool = True
    read_timeout: float = 30
    write_timeout: float = 30
    connect_timeout: float = 10
    log_level: str = "INFO"

    @property
    def use_webhook(self) -> bool:
        return bool(self.webhook_url)

    @property
    def full_webhook_url(self) -> str:
        """Публичный адрес вебхука вместе с путём."""
        base = (self.webhook_url or "").rstrip("/")
        if not self.webhook_path:
            return base
        return f"{base}/{self.webhook_path}"


def _env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = _env(name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if parsed < minimum:
        raise ConfigError(f"{name} must be >= {minimum}")
    return parsed


def _float_env(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if parsed <= 0:
        raise ConfigError(f"{name} must be positive")
    return parsed


def _bool_env(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def load_settings(dotenv: bool = True) -> Settings:
    """Читает настройки бота из переменных окружения (и файла .env)."""
    if dotenv:
        load_dotenv()

    token = _env("BOT_TOKEN")
    if not token:
        raise ConfigError("BOT_TOKEN environment variable is not set")

    webhook_path = os.getenv("WEBHOOK_PATH")
    if webhook_path is None:
        webhook_path = DEFAULT_WEBHOOK_PATH

    return Settings(
        bot_token=token,
        webhook_url=_env("WEBHOOK_URL"),
        webhook_path=webhook_path.strip().strip("/"),
        webhook_secret=_env("WEBHOOK_SECRET"),
        listen=_env("LISTEN") or "0.0.0.0",
        port=_int_env("PORT", DEFAULT_PORT),
        video_size=_int_env("VIDEO_SIZE", CIRCLE_SIZE, minimum=2),
        ffmpeg_bin=_env("FFMPEG_BIN") or "ffmpeg",
        temp_dir=_env("TEMP_DIR") or tempfile.gettempdir(),
        progress_messages=_bool_env("PROGRESS_MESSAGES", True),
        read_timeout=_float_env("READ_TIMEOUT", 30),
        write_timeout=_float_env("WRITE_TIMEOUT", 30),
        connect_timeout=_float_env("CONNECT_TIMEOUT", 10),
        log_level=(_env("LOG_LEVEL") or "INFO").upper(),
    )
