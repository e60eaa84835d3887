"""Price-target strategy: one conditional order at a fixed target price."""

from typing import Any

from dexbot.engine.strategies.base import BaseStrategy, StrategyConfig
from dexbot.utils.constants import (
    IN_FLIGHT_STATUSES,
    OrderSide,
    OrderStatus,
    StrategyKind,
    TickOutcome,
    TriggerType,
)


class PriceTargetConfig(StrategyConfig):
    target_price: float = 0.0
    order_amount: float = 0.0
    side: str = OrderSide.BUY.value
    trigger_type: str = TriggerType.ABOVE.value


class PriceTargetStrategy(BaseStrategy):
    kind = StrategyKind.PRICE_TARGET
    config_model = PriceTargetConfig
    config: PriceTargetConfig

    def __init__(self, config: PriceTargetConfig, context):
        super().__init__(config, context)
        self.orders_completed = 0

    def _validate_variant(self) -> bool:
        c = self.config
        return (
            c.target_price > 0
            and c.order_amount > 0
            and c.side in (OrderSide.BUY.value, OrderSide.SELL.value)
            and c.trigger_type in (TriggerType.ABOVE.value, TriggerType.BELOW.value)
        )

    @property
    def trigger_above(self) -> bool:
        return self.config.trigger_type == TriggerType.ABOVE.value

    def condition_met(self, price: float) -> bool:
        if self.trigger_above:
            return price > self.config.target_price
        return price < self.config.target_price

    async def execute(self) -> TickOutcome:
        price = await self.refresh_price()
        if price is None:
            return TickOutcome.SKIPPED

        status = self.in_flight_status()
        if status in IN_FLIGHT_STATUSES:
            return TickOutcome.WAITING
        if status == OrderStatus.COMPLETED.value:
            self.orders_completed += 1
            self.order_id = None
            if self.config.execute_once:
                return self.deactivate("Target order completed")
            return TickOutcome.IDLE
        if status == OrderStatus.FAILED.value:
            self.order_id = None
            if self.config.execute_once:
                return self.deactivate("Target order failed")
            return TickOutcome.IDLE

        if not self.condition_met(price):
            return TickOutcome.IDLE

        self.place_order(
            is_buy=self.config.side == OrderSide.BUY.value,
            amount=self.config.order_amount,
            target_price=self.config.target_price,
            trigger_above=self.trigger_above,
        )
        return TickOutcome.ORDER_PLACED

    def _status_details(self) -> dict[str, Any]:
        c = self.config
        price_diff_pct = None
        if self.current_price is not None:
            price_diff_pct = (self.current_price - c.target_price) / c.target_price * 100
        return {
            "target_price": c.target_price,
            "order_amount": c.order_amount,
            "side": c.side,
            "trigger_type": c.trigger_type,
            "price_diff_pct": price_diff_pct,
            "condition_met": self.condition_met(self.current_price) if self.current_price is not None else False,
            "orders_completed": self.orders_completed,
        }

    def dump_state(self) -> dict[str, Any]:
        return {**super().dump_state(), "orders_completed": self.orders_completed}

    def load_state(self, state: dict[str, Any]):
        super().load_state(state)
        self.orders_completed = state.get("orders_completed", 0)
