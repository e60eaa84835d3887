"""Stop-loss / take-profit strategy: one liquidating SELL when either boundary is crossed."""

from typing import Any

from dexbot.engine.strategies.base import BaseStrategy, StrategyConfig
from dexbot.utils.constants import StrategyKind, TickOutcome


class StopLossTakeProfitConfig(StrategyConfig):
    entry_price: float = 0.0
    stop_loss_percent: float = 0.0
    take_profit_percent: float = 0.0
    amount: float = 0.0  # position size in base token units


class StopLossTakeProfitStrategy(BaseStrategy):
    kind = StrategyKind.STOP_LOSS_TAKE_PROFIT
    config_model = StopLossTakeProfitConfig
    config: StopLossTakeProfitConfig

    def __init__(self, config: StopLossTakeProfitConfig, context):
        super().__init__(config, context)
        self.stop_loss_price = config.entry_price * (1 - config.stop_loss_percent / 100)
        self.take_profit_price = config.entry_price * (1 + config.take_profit_percent / 100)
        self.condition_triggered = False
        self.trigger_reason: str | None = None

    def _validate_variant(self) -> bool:
        c = self.config
        return (
            c.entry_price > 0
            and 0 < c.stop_loss_percent < 100
            and c.take_profit_percent > 0
            and c.amount > 0
        )

    async def execute(self) -> TickOutcome:
        if self.condition_triggered:
            return TickOutcome.IDLE

        price = await self.refresh_price()
        if price is None:
            return TickOutcome.SKIPPED

        if price > self.take_profit_price:
            reason, target, above = "take_profit", self.take_profit_price, True
        elif price < self.stop_loss_price:
            reason, target, above = "stop_loss", self.stop_loss_price, False
        else:
            return TickOutcome.IDLE

        label = "Take-profit" if reason == "take_profit" else "Stop-loss"
        self.notify(
            "warning",
            f"{label} triggered at {price:.8f} ADA (entry {self.config.entry_price:.8f})",
            "strategy",
        )
        self.place_order(is_buy=False, amount=self.config.amount, target_price=target, trigger_above=above)
        self.condition_triggered = True
        self.trigger_reason = reason
        self.deactivate(f"{label} order placed")
        return TickOutcome.ORDER_PLACED

    def _status_details(self) -> dict[str, Any]:
        c = self.config
        pnl_pct = None
        if self.current_price is not None:
            pnl_pct = (self.current_price - c.entry_price) / c.entry_price * 100
        return {
            "entry_price": c.entry_price,
            "stop_loss_percent": c.stop_loss_percent,
            "take_profit_percent": c.take_profit_percent,
            "stop_loss_price": self.stop_loss_price,
            "take_profit_price": self.take_profit_price,
            "amount": c.amount,
            "pnl_pct": pnl_pct,
            "condition_triggered": self.condition_triggered,
            "trigger_reason": self.trigger_reason,
        }

    def dump_state(self) -> dict[str, Any]:
        return {
            **super().dump_state(),
            "condition_triggered": self.condition_triggered,
            "trigger_reason": self.trigger_reason,
        }

    def load_state(self, state: dict[str, Any]):
        super().load_state(state)
        self.condition_triggered = state.get("condition_triggered", False)
        self.trigger_reason = state.get("trigger_reason")
