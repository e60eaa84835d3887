"""Live activity feed for strategies and orders.

Emitting is fire-and-forget: entries are logged, kept in a bounded history,
pushed to WebSocket subscribers and forwarded to Telegram when the bot runs.
A failing channel never propagates back into the trading loops.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone

from dexbot.utils.constants import NOTIFICATION_HISTORY_SIZE

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# Only outcomes worth a phone notification go to Telegram
_TELEGRAM_LEVELS = ("success", "error")

SUBSCRIBER_QUEUE_SIZE = 256


class Notifier:
    def __init__(self, history_size: int = NOTIFICATION_HISTORY_SIZE, forward_to_telegram: bool = True):
        self._history: deque[dict] = deque(maxlen=history_size)
        self._subscribers: dict[asyncio.Queue, asyncio.AbstractEventLoop] = {}
        self.forward_to_telegram = forward_to_telegram

    def emit(
        self,
        level: str,
        message: str,
        category: str = "system",
        strategy_name: str | None = None,
        exc_info: bool = False,
        wallet_address: str | None = None,
    ) -> dict:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "category": category,
            "strategy_name": strategy_name,
            "wallet_address": wallet_address,
            "message": message,
        }
        prefix = f"[{strategy_name}] " if strategy_name else ""
        logger.log(_LOG_LEVELS.get(level, logging.INFO), f"{prefix}{message}", exc_info=exc_info)

        self._history.appendleft(entry)
        for queue, loop in list(self._subscribers.items()):
            if _running_loop() is loop:
                _offer(queue, entry)
            elif not loop.is_closed():
                # emitted from a worker thread; hand over to the subscriber's loop
                loop.call_soon_threadsafe(_offer, queue, entry)

        if self.forward_to_telegram and level in _TELEGRAM_LEVELS:
            self._send_telegram(f"{prefix}{message}")
        return entry

    def info(
        self,
        message: str,
        category: str = "system",
        strategy_name: str | None = None,
        wallet_address: str | None = None,
    ):
        return self.emit("info", message, category, strategy_name, wallet_address=wallet_address)

    def success(
        self,
        message: str,
        category: str = "system",
        strategy_name: str | None = None,
        wallet_address: str | None = None,
    ):
        return self.emit("success", message, category, strategy_name, wallet_address=wallet_address)

    def warning(
        self,
        message: str,
        category: str = "system",
        strategy_name: str | None = None,
        wallet_address: str | None = None,
    ):
        return self.emit("warning", message, category, strategy_name, wallet_address=wallet_address)

    def error(
        self,
        message: str,
        category: str = "system",
        strategy_name: str | None = None,
        exc_info: bool = False,
        wallet_address: str | None = None,
    ):
        return self.emit("error", message, category, strategy_name, exc_info, wallet_address)

    def history(
        self,
        limit: int | None = None,
        category: str | None = None,
        wallet_addresses: set[str] | None = None,
    ) -> list[dict]:
        """Newest first. ``wallet_addresses`` keeps only entries about those wallets."""
        entries = [
            e for e in self._history
            if (category is None or e["category"] == category)
            and (wallet_addresses is None or e["wallet_address"] in wallet_addresses)
        ]
        return entries[:limit] if limit is not None else entries

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._subscribers[queue] = asyncio.get_running_loop()
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        self._subscribers.pop(queue, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _send_telegram(self, message: str):
        try:
            from dexbot.services.telegram_bot import get_bot
            bot = get_bot()
            if bot is not None:
                bot.forward(message)
        except Exception as e:
            logger.warning(f"Telegram forwarding failed: {e}")


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _offer(queue: asyncio.Queue, entry: dict):
    try:
        queue.put_nowait(entry)
    except asyncio.QueueFull:
        logger.debug("Dropping notification for slow subscriber")
