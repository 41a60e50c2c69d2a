#!/usr/bin/env python3
import logging
from typing import Optional

from telegram import Bot
from telegram.error import TelegramError

from analysis.models import TradeTask


class TelegramNotifier:
    """Posts trade stream events to a Telegram chat; delivery failures are only logged."""

    def __init__(self, bot_token: str, chat_id: str, bot: Optional[Bot] = None):
        self.chat_id = chat_id
        self.bot = bot or Bot(token=bot_token)
        self.logger = logging.getLogger(__name__)
        self._initialized = False

    async def start(self) -> None:
        try:
            await self.bot.initialize()
            self._initialized = True
        except TelegramError as exc:
            self.logger.error("Could not initialise Telegram bot: %s", exc)

    async def close(self) -> None:
        if self._initialized:
            await self.bot.shutdown()
            self._initialized = False

    async def _send(self, text: str) -> None:
        try:
            await self.bot.send_message(chat_id=self.chat_id, text=text, parse_mode='HTML')
        except TelegramError as exc:
            self.logger.error("Failed to send Telegram notification: %s", exc)

    async def notify_trade(self, task: TradeTask, txhash: str, status: str, status_code: Optional[int],
                           tokens_in: Optional[int] = None, tokens_out: Optional[int] = None) -> None:
        if status_code == 0:
            icon = "✅"
        elif status == "timeout":
            icon = "⏳"
        else:
            icon = "❌"
        lines = [
            f"{icon} <b>Trade {status}</b> on pool {task.pool_id}",
            f"{task.token_in} → {task.token_out} ({task.swap_type.value}, amount {task.amount})",
            f"Code: {status_code if status_code is not None else 'n/a'}",
        ]
        if tokens_in is not None and tokens_out is not None:
            lines.append(f"In: {tokens_in} | Out: {tokens_out}")
        lines.append(f"<code>{txhash}</code>")
        await self._send("\n".join(lines))

    async def notify_window_missed(self, window_start: str, window_end: str) -> None:
        await self._send(f"⚠️ <b>Trade window missed</b>\n{window_start} → {window_end} (UTC)")
