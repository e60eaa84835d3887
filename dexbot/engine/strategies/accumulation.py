"""Accumulation strategy: buy a fixed ADA amount at a regular interval (ACA/DCA)."""

from datetime import timedelta
from typing import Any

from dexbot.engine.strategies.base import BaseStrategy, StrategyConfig, parse_datetime
from dexbot.utils.constants import StrategyKind, TickOutcome


class AccumulationConfig(StrategyConfig):
    investment_amount: float = 0.0  # ADA per run
    interval_minutes: float = 0.0
    total_runs: int | None = None
    # Optional DCA price band; runs are deferred while the price is outside it
    min_price: float | None = None
    max_price: float | None = None


class AccumulationStrategy(BaseStrategy):
    kind = StrategyKind.ACCUMULATION
    config_model = AccumulationConfig
    config: AccumulationConfig

    def __init__(self, config: AccumulationConfig, context):
        super().__init__(config, context)
        self.runs_executed = 0
        self.last_run_at = None

    def _validate_variant(self) -> bool:
        c = self.config
        if c.investment_amount <= 0 or c.interval_minutes <= 0:
            return False
        if c.total_runs is not None and c.total_runs <= 0:
            return False
        if c.min_price is not None and c.max_price is not None and c.min_price >= c.max_price:
            return False
        return True

    @property
    def cap_reached(self) -> bool:
        return self.config.total_runs is not None and self.runs_executed >= self.config.total_runs

    def interval_elapsed(self) -> bool:
        if self.last_run_at is None:
            return True
        return self.ctx.clock() - self.last_run_at >= timedelta(minutes=self.config.interval_minutes)

    def _outside_band(self, price: float) -> bool:
        c = self.config
        return (c.max_price is not None and price > c.max_price) or (
            c.min_price is not None and price < c.min_price
        )

    async def execute(self) -> TickOutcome:
        if self.cap_reached:
            return self.deactivate(f"Completed all {self.config.total_runs} runs")
        if not self.interval_elapsed():
            return TickOutcome.IDLE
        if self.has_order_in_flight():
            return TickOutcome.WAITING

        price = await self.refresh_price()
        if price is None:
            return TickOutcome.SKIPPED
        if self._outside_band(price):
            self.notify(
                "info",
                f"Price {price:.8f} ADA outside buy band; deferring run", "strategy"
            )
            return TickOutcome.IDLE

        token_amount = self.config.investment_amount / price
        self.place_order(
            is_buy=True,
            amount=token_amount,
            target_price=price * (1 + self.ctx.accumulation_slippage),
            trigger_above=False,
        )
        self.runs_executed += 1
        self.last_run_at = self.ctx.clock()
        self.invested_amount += self.config.investment_amount

        cap = f"/{self.config.total_runs}" if self.config.total_runs else ""
        self.notify("info", f"Run {self.runs_executed}{cap} placed", "strategy")

        if self.config.execute_once:
            self.deactivate("Single run complete")
        return TickOutcome.ORDER_PLACED

    def _status_details(self) -> dict[str, Any]:
        c = self.config
        next_run_at = None
        if self.last_run_at is not None:
            next_run_at = (self.last_run_at + timedelta(minutes=c.interval_minutes)).isoformat()
        return {
            "investment_amount": c.investment_amount,
            "interval_minutes": c.interval_minutes,
            "total_runs": c.total_runs,
            "runs_executed": self.runs_executed,
            "progress": f"{self.runs_executed}/{c.total_runs}" if c.total_runs else str(self.runs_executed),
            "total_invested": self.invested_amount,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "next_run_at": next_run_at,
            "min_price": c.min_price,
            "max_price": c.max_price,
        }

    def dump_state(self) -> dict[str, Any]:
        return {
            **super().dump_state(),
            "runs_executed": self.runs_executed,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
        }

    def load_state(self, state: dict[str, Any]):
        super().load_state(state)
        self.runs_executed = state.get("runs_executed", 0)
        self.last_run_at = parse_datetime(state.get("last_run_at"))
