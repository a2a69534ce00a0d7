from __future__ import annotations

import logging
from typing import Callable

from telegram import Bot, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.error import TelegramError

from nightly_digest.notify.render import render_telegram_html
from nightly_digest.types import Report


logger = logging.getLogger(__name__)


class TelegramChannel:
    """Telegram Bot API delivery (token-authenticated)."""

    name = "telegram"

    def __init__(self, bot_token: str, chat_id: str, bot_factory: Callable[[str], Bot] = Bot) -> None:
        self._token = bot_token.strip()
        self._chat_id = chat_id.strip()
        self._bot_factory = bot_factory
        if not self.configured:
            logger.warning("telegram not configured, telegram notifications disabled")

    @property
    def configured(self) -> bool:
        return bool(self._token and self._chat_id)

    async def aclose(self) -> None:
        return None

    async def send(self, report: Report) -> bool:
        if not self.configured:
            logger.warning("telegram not configured, skipping")
            return False

        try:
            async with self._bot_factory(self._token) as bot:
                sent = await bot.send_message(
                    chat_id=self._chat_id,
                    text=render_telegram_html(report),
                    parse_mode=ParseMode.HTML,
                    link_preview_options=LinkPreviewOptions(is_disabled=True),
                )
        except TelegramError as e:
            logger.error("telegram send failed err=%s", e)
            return False
        logger.info("telegram message sent message_id=%s", sent.message_id)
        return True

    async def health_check(self) -> bool:
        if not self.configured:
            return False
        try:
            async with self._bot_factory(self._token) as bot:
                await bot.get_me()
        except TelegramError as e:
            logger.warning("telegram health check failed err=%s", e)
            return False
        return True
