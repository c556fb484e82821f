from __future__ import annotations

import asyncio
import logging
import sqlite3
from typing import Any, Dict, Optional

from telegram import Bot
from telegram.error import TelegramError

from . import db
from .alerts import NOTIFICATION_TYPE
from .models import Clock, utcnow

logger = logging.getLogger(__name__)


class Notifier:
    """Record user notifications and push them to Telegram when configured.

    Store errors and Telegram delivery errors, including an event loop that
    cannot be started, are logged instead of raised.
    """

    def __init__(
        self,
        db_path: str,
        *,
        telegram_token: Optional[str] = None,
        telegram_chat_id: Optional[str] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.db_path = db_path
        self.telegram_token = telegram_token
        self.telegram_chat_id = telegram_chat_id
        self._clock = clock

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_token and self.telegram_chat_id)

    def send(
        self, user_id: str, subject: str, body: str, data: Dict[str, Any]
    ) -> None:
        try:
            db.insert_notification(
                user_id,
                NOTIFICATION_TYPE,
                subject,
                body,
                data,
                self._clock(),
                self.db_path,
            )
        except sqlite3.Error as exc:
            logger.error("Error storing notification for user %s: %s", user_id, exc)
        else:
            logger.info("Notification created for user %s: %s", user_id, body)

        if self.telegram_enabled:
            self.send_telegram(f"*{subject}*\n{body}")

    def send_telegram(self, msg: str) -> None:
        """Send *msg* to the configured Telegram chat."""
        try:
            asyncio.run(self._push(msg))
        except (TelegramError, RuntimeError) as exc:
            logger.error("Telegram delivery failed: %s", exc)

    async def _push(self, msg: str) -> None:
        async with Bot(token=self.telegram_token) as bot:
            await bot.send_message(
                chat_id=self.telegram_chat_id,
                text=msg,
                parse_mode="Markdown",
            )


__all__ = ["Notifier"]
