"""Strategy variants, dispatched by kind."""

from dexbot.engine.strategies.accumulation import AccumulationConfig, AccumulationStrategy
from dexbot.engine.strategies.base import BaseStrategy, StrategyConfig, StrategyContext
from dexbot.engine.strategies.grid import GridConfig, GridStrategy
from dexbot.engine.strategies.price_target import PriceTargetConfig, PriceTargetStrategy
from dexbot.engine.strategies.stop_loss_take_profit import (
    StopLossTakeProfitConfig,
    StopLossTakeProfitStrategy,
)
from dexbot.utils.constants import StrategyKind

STRATEGY_TYPES: dict[str, type[BaseStrategy]] = {
    StrategyKind.PRICE_TARGET.value: PriceTargetStrategy,
    StrategyKind.ACCUMULATION.value: AccumulationStrategy,
    StrategyKind.GRID.value: GridStrategy,
    StrategyKind.STOP_LOSS_TAKE_PROFIT.value: StopLossTakeProfitStrategy,
}

__all__ = [
    "STRATEGY_TYPES",
    "AccumulationConfig",
    "AccumulationStrategy",
    "BaseStrategy",
    "GridConfig",
    "GridStrategy",
    "PriceTargetConfig",
    "PriceTargetStrategy",
    "StopLossTakeProfitConfig",
    "StopLossTakeProfitStrategy",
    "StrategyConfig",
    "StrategyContext",
]
