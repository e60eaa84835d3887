"""Telegram bot for trade notifications and remote control."""

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Optional

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import (
    Application,
    CommandHandler,
    CallbackQueryHandler,
    ContextTypes,
)

from dexbot.config import settings

if TYPE_CHECKING:
    from dexbot.engine.manager import TradingEngine

logger = logging.getLogger(__name__)

_bot_instance: Optional["TelegramBot"] = None


class TelegramBot:
    """Telegram bot running in a background thread with its own event loop."""

    def __init__(self, token: str, chat_ids: list[int], engine: "TradingEngine"):
        self.token = token
        self.chat_ids = set(chat_ids)
        self.engine = engine
        self._app: Optional[Application] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready = threading.Event()
        self._stop_requested: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._ready.is_set() and self._loop is not None and self._loop.is_running()

    def _is_authorized(self, user_id: int) -> bool:
        return user_id in self.chat_ids

    async def _check_auth(self, update: Update) -> bool:
        user = update.effective_user
        if user is not None and self._is_authorized(user.id):
            return True
        logger.info(f"Rejected Telegram command from user {user.id if user else 'unknown'}")
        if update.message:
            await update.message.reply_text("Unauthorized.")
        return False

    async def _cmd_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        status = self.engine.status()
        scheduler_str = "running" if status["strategy_scheduler"]["running"] else "stopped"
        order_loop_str = "running" if status["order_loop"]["running"] else "stopped"
        text = (
            f"Strategy scheduler: {scheduler_str}\n"
            f"Order loop: {order_loop_str}\n"
            f"Strategies: {status['strategies_active']} active / {status['strategies_total']}\n"
            f"Pending orders: {status['pending_orders']}"
        )
        await update.message.reply_text(text)

    async def _cmd_strategies(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        statuses = self.engine.list_statuses()
        if not statuses:
            await update.message.reply_text("No strategies.")
            return

        lines = []
        for s in statuses:
            price = f"{s['current_price']:.8f}" if s["current_price"] is not None else "n/a"
            lines.append(f"{s['name']} ({s['type']}): {s['status']} | price {price}")
        await update.message.reply_text("\n".join(lines))

    async def _cmd_orders(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        pending = self.engine.orders.list_pending()
        if not pending:
            await update.message.reply_text("No pending orders.")
            return

        lines = []
        for order in pending:
            side = "BUY" if order.is_buy else "SELL"
            direction = ">" if order.trigger_above else "<"
            lines.append(
                f"{order.id[:8]} {side} {order.amount:g} {order.trading_pair} "
                f"when {direction} {order.target_price:.8f} (now {order.current_price:.8f})"
            )
        await update.message.reply_text("\n".join(lines))

    async def _cmd_stop_all(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        keyboard = InlineKeyboardMarkup([
            [
                InlineKeyboardButton("Yes, stop everything", callback_data="confirm_stop_all"),
                InlineKeyboardButton("Cancel", callback_data="cancel"),
            ]
        ])
        await update.message.reply_text(
            "Stop all strategies? Pending orders stay queued.",
            reply_markup=keyboard,
        )

    async def _handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        if not query or not query.from_user or not self._is_authorized(query.from_user.id):
            return

        await query.answer()

        if query.data == "cancel":
            await query.edit_message_text("Cancelled.")
            return

        if query.data == "confirm_stop_all":
            stopped = self.engine.stop_all_strategies()
            await query.edit_message_text(f"Stopped {stopped} strategies.")

    async def send_notification(self, message: str):
        """Deliver ``message`` to every whitelisted chat. Runs on the bot loop."""
        if self._app is None:
            return
        chat_ids = sorted(self.chat_ids)
        results = await asyncio.gather(
            *(self._app.bot.send_message(chat_id=chat_id, text=message) for chat_id in chat_ids),
            return_exceptions=True,
        )
        for chat_id, result in zip(chat_ids, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to send Telegram notification to {chat_id}: {result}")

    def forward(self, message: str) -> bool:
        """Schedule a notification from any thread. Returns False while the bot is down."""
        if not self.running:
            return False
        asyncio.run_coroutine_threadsafe(self.send_notification(message), self._loop)
        return True

    def _build_application(self) -> Application:
        app = Application.builder().token(self.token).build()
        handlers = {
            "status": self._cmd_status,
            "strategies": self._cmd_strategies,
            "orders": self._cmd_orders,
            "stop_all": self._cmd_stop_all,
        }
        for command, callback in handlers.items():
            app.add_handler(CommandHandler(command, callback))
        app.add_handler(CallbackQueryHandler(self._handle_callback))
        return app

    async def _serve(self):
        self._stop_requested = asyncio.Event()
        async with self._app:
            await self._app.start()
            await self._app.updater.start_polling()
            self._ready.set()
            logger.info(f"Telegram bot polling for {len(self.chat_ids)} chat(s)")
            await self._stop_requested.wait()
            await self._app.updater.stop()
            await self._app.stop()
        logger.info("Telegram bot stopped")

    def _thread_main(self):
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        try:
            self._app = self._build_application()
            self._loop.run_until_complete(self._serve())
        except Exception:
            logger.exception("Telegram bot crashed")
        finally:
            self._ready.clear()
            self._loop.close()

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._thread_main, name="telegram-bot", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 10.0):
        if not self.running or self._stop_requested is None:
            return
        self._loop.call_soon_threadsafe(self._stop_requested.set)
        self._thread.join(timeout=timeout)


def init_bot(engine: "TradingEngine") -> TelegramBot:
    """Create the process-wide bot from settings."""
    global _bot_instance
    _bot_instance = TelegramBot(settings.telegram_bot_token, settings.telegram_chat_ids, engine)
    return _bot_instance


def get_bot() -> Optional[TelegramBot]:
    return _bot_instance
