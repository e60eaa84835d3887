"""Order fulfilment loop: watches pending orders and executes them on trigger."""

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from dexbot.engine.scheduler import PeriodicLoop
from dexbot.engine.swap_executor import SwapExecutor
from dexbot.models.trade_order import TradeOrder
from dexbot.services.notifier import Notifier
from dexbot.services.order_store import OrderStore
from dexbot.services.price_oracle import PriceOracle

logger = logging.getLogger(__name__)


def trigger_met(order: TradeOrder, price: float) -> bool:
    if order.trigger_above:
        return price > order.target_price
    return price < order.target_price


class OrderFulfilmentLoop(PeriodicLoop):
    """Drains pending orders; the pending -> executing claim gates every swap."""

    job_id = "order_fulfilment"
    job_name = "Order fulfilment loop"

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        orders: OrderStore,
        oracle: PriceOracle,
        executor: SwapExecutor,
        notifier: Notifier,
        interval_seconds: float = 10,
    ):
        super().__init__(scheduler, interval_seconds)
        self.orders = orders
        self.oracle = oracle
        self.executor = executor
        self.notifier = notifier

    async def tick(self) -> dict[str, str]:
        pending = self.orders.list_pending()
        if not pending:
            return {}

        self.notifier.info(f"Checking {len(pending)} pending orders...", "order")
        results = await asyncio.gather(
            *(self.process_order(o) for o in pending), return_exceptions=True
        )
        outcomes = {}
        for order, result in zip(pending, results):
            if isinstance(result, BaseException):
                # the failure write itself raised; the order stays executing
                logger.error(f"[order {order.id[:8]}] Unhandled error: {result!r}", exc_info=result)
                outcomes[order.id] = "error"
            else:
                outcomes[result[0]] = result[1]
        return outcomes

    async def process_order(self, order: TradeOrder) -> tuple[str, str]:
        """Evaluate one order. Returns (order id, outcome)."""
        label = f"order {order.id[:8]}"
        claimed = False
        try:
            price = await self.oracle.get_price(order.pool_id, order.base_token)
            if price is None:
                self.notifier.warning(
                    f"No price available for {order.trading_pair}", "order", wallet_address=order.wallet_address
                )
                return order.id, "skipped"

            self.orders.update_current_price(order.id, price)
            if not trigger_met(order, price):
                distance = abs(price - order.target_price) / order.target_price * 100
                logger.info(
                    f"[{label}] {order.trading_pair}: current {price:.8f} | "
                    f"target {order.target_price:.8f} | waiting ({distance:.2f}% away)"
                )
                return order.id, "waiting"

            claimed = self.orders.claim_for_execution(order.id)
            if not claimed:
                return order.id, "claim_lost"

            side = "BUY" if order.is_buy else "SELL"
            self.notifier.success(
                f"Condition met at {price:.8f} ADA; executing {side} {order.trading_pair} ({label})",
                "order",
                wallet_address=order.wallet_address,
            )
            tx_hash = await self.executor.execute(order)
            self.orders.mark_completed(order.id, executed_price=price, tx_hash=tx_hash)
            self.notifier.success(
                f"Order {order.id[:8]} completed! TX: {tx_hash}", "order", wallet_address=order.wallet_address
            )
            return order.id, "completed"

        except Exception as e:
            if not claimed:
                logger.error(f"[{label}] Error evaluating order: {e}", exc_info=True)
                return order.id, "error"
            self.orders.mark_failed(order.id, str(e))
            self.notifier.error(
                f"Order {order.id[:8]} failed: {e}", "order", exc_info=True, wallet_address=order.wallet_address
            )
            return order.id, "failed"
