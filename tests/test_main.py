"""Tests for application wiring."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

from telegram.ext import CommandHandler, MessageHandler

from config import Settings
from handlers import RUNTIME_KEY, Runtime, dispatch_media, error_handler, send_instructions
from main import build_application


def test_build_application_registers_handlers() -> None:
    settings = Settings(bot_token="123:ABC")
    runtime = Runtime(settings=settings, transfer=MagicMock(), stop_event=asyncio.Event())

    application = build_application(settings, runtime)

    assert application.bot_data[RUNTIME_KEY] is runtime
    registered = application.handlers[0]
    assert isinstance(registered[0], CommandHandler)
    assert "start" in registered[0].commands
    assert isinstance(registered[1], MessageHandler)
    assert registered[1].callback is dispatch_media
    assert registered[2].callback is send_instructions
    assert error_handler in application.error_handlers
