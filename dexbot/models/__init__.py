"""Database models."""

from dexbot.models.strategy import StrategyRecord
from dexbot.models.trade_order import TradeOrder
from dexbot.models.user import User

__all__ = [
    "StrategyRecord",
    "TradeOrder",
    "User",
]
