"""Grid strategy: buy below a level, sell one level up, repeat inside a price band.

Levels sit at ``lower + i * spacing``. Every level but the top starts armed as a
BUY. A filled BUY re-arms its level as a SELL one spacing higher for the same
token amount; a filled SELL books ``spacing * amount`` of profit and re-arms
the BUY. Only one grid order is in flight at a time, so the armed level whose
trigger is currently met and lies nearest the market price goes first. New
BUYs are only placed while the price is inside the band.
"""

from typing import Any

from pydantic import BaseModel

from dexbot.engine.strategies.base import BaseStrategy, StrategyConfig
from dexbot.utils.constants import (
    IN_FLIGHT_STATUSES,
    OrderSide,
    OrderStatus,
    StrategyKind,
    TickOutcome,
)


class GridConfig(StrategyConfig):
    lower_price: float = 0.0
    upper_price: float = 0.0
    grid_levels: int = 0
    investment_per_level: float = 0.0  # ADA


class GridLevel(BaseModel):
    index: int
    price: float
    side: str = OrderSide.BUY.value
    token_amount: float | None = None  # set once the BUY has filled
    order_id: str | None = None


class GridStrategy(BaseStrategy):
    kind = StrategyKind.GRID
    config_model = GridConfig
    config: GridConfig

    def __init__(self, config: GridConfig, context):
        super().__init__(config, context)
        self.total_profit = 0.0
        self.last_profit = 0.0
        self.cycles_completed = 0
        self.active_level: int | None = None
        self.levels: dict[int, GridLevel] = {}
        if config.grid_levels >= 2 and config.upper_price > config.lower_price:
            self.levels = {
                i: GridLevel(index=i, price=config.lower_price + i * self.spacing)
                for i in range(config.grid_levels - 1)
            }

    @property
    def spacing(self) -> float:
        c = self.config
        return (c.upper_price - c.lower_price) / (c.grid_levels - 1)

    def _validate_variant(self) -> bool:
        c = self.config
        return (
            c.lower_price > 0
            and c.lower_price < c.upper_price
            and c.grid_levels >= 2
            and c.investment_per_level > 0
        )

    def target_for(self, level: GridLevel) -> float:
        if level.side == OrderSide.SELL.value:
            return level.price + self.spacing
        return level.price

    def level_triggered(self, level: GridLevel, price: float) -> bool:
        if level.side == OrderSide.SELL.value:
            return price > self.target_for(level)
        return price < level.price

    def _record_fill(self, level: GridLevel) -> TickOutcome | None:
        order = self.ctx.orders.get(level.order_id)
        level.order_id = None
        if level.side == OrderSide.BUY.value:
            level.side = OrderSide.SELL.value
            level.token_amount = order.amount
            self.invested_amount += self.config.investment_per_level
            self.notify(
                "success",
                f"Grid {level.index}: BUY filled; SELL armed at {self.target_for(level):.8f} ADA",
                "strategy",
            )
            return None

        profit = self.spacing * (level.token_amount or 0.0)
        self.last_profit = profit
        self.total_profit += profit
        self.cycles_completed += 1
        level.side = OrderSide.BUY.value
        level.token_amount = None
        self.notify(
            "success",
            f"Grid {level.index}: profit captured {profit:.8f} ADA (total {self.total_profit:.8f} ADA)",
            "strategy",
        )
        if self.config.execute_once:
            return self.deactivate("Grid cycle complete")
        return None

    def _resolve_active(self) -> TickOutcome | None:
        """Settle the in-flight grid order. Returns an outcome when the tick should end."""
        status = self.in_flight_status()
        level = self.levels.get(self.active_level) if self.active_level is not None else None
        if status in IN_FLIGHT_STATUSES:
            return TickOutcome.WAITING
        if level is not None and level.order_id is not None:
            if status == OrderStatus.COMPLETED.value:
                outcome = self._record_fill(level)
                if outcome is not None:
                    self.order_id = None
                    self.active_level = None
                    return outcome
            else:
                # failed or deleted: leave the level armed on the same side
                level.order_id = None
        self.order_id = None
        self.active_level = None
        return None

    async def execute(self) -> TickOutcome:
        price = await self.refresh_price()
        if price is None:
            return TickOutcome.SKIPPED

        outcome = self._resolve_active()
        if outcome is not None:
            return outcome

        c = self.config
        in_range = c.lower_price <= price <= c.upper_price
        if not in_range:
            self.notify(
                "warning",
                f"Price {price:.8f} outside grid range [{c.lower_price}, {c.upper_price}]",
                "strategy",
            )

        # The top level sells above the band, so armed SELLs ignore the range
        candidates = [
            lvl for lvl in self.levels.values()
            if self.level_triggered(lvl, price) and (in_range or lvl.side == OrderSide.SELL.value)
        ]
        if not candidates:
            return TickOutcome.IDLE
        level = min(candidates, key=lambda lvl: abs(self.target_for(lvl) - price))

        if level.side == OrderSide.BUY.value:
            order = self.place_order(
                is_buy=True,
                amount=c.investment_per_level / level.price,
                target_price=level.price,
                trigger_above=False,
            )
        else:
            order = self.place_order(
                is_buy=False,
                amount=level.token_amount,
                target_price=self.target_for(level),
                trigger_above=True,
            )
        level.order_id = order.id
        self.active_level = level.index
        return TickOutcome.ORDER_PLACED

    def _status_details(self) -> dict[str, Any]:
        c = self.config
        return {
            "lower_price": c.lower_price,
            "upper_price": c.upper_price,
            "grid_levels": c.grid_levels,
            "grid_spacing": self.spacing if c.grid_levels >= 2 else None,
            "investment_per_level": c.investment_per_level,
            "total_profit": self.total_profit,
            "last_profit": self.last_profit,
            "cycles_completed": self.cycles_completed,
            "active_level": self.active_level,
            "levels": [
                {**lvl.model_dump(), "target_price": self.target_for(lvl)}
                for lvl in sorted(self.levels.values(), key=lambda lvl: lvl.index)
            ],
        }

    def dump_state(self) -> dict[str, Any]:
        return {
            **super().dump_state(),
            "total_profit": self.total_profit,
            "last_profit": self.last_profit,
            "cycles_completed": self.cycles_completed,
            "active_level": self.active_level,
            "levels": [lvl.model_dump() for lvl in self.levels.values()],
        }

    def load_state(self, state: dict[str, Any]):
        super().load_state(state)
        self.total_profit = state.get("total_profit", 0.0)
        self.last_profit = state.get("last_profit", 0.0)
        self.cycles_completed = state.get("cycles_completed", 0)
        self.active_level = state.get("active_level")
        if state.get("levels"):
            self.levels = {lvl["index"]: GridLevel(**lvl) for lvl in state["levels"]}
