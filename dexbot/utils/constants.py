"""Shared enums and constants."""

from enum import Enum

ADA_UNIT = "lovelace"
LOVELACE_PER_ADA = 1_000_000

# Price quotes simulate a swap of this many whole tokens.
PRICE_QUOTE_TOKENS = 1_000_000

VALID_MNEMONIC_LENGTHS = (12, 15, 24)
MIN_ADDRESS_LENGTH = 50

NOTIFICATION_HISTORY_SIZE = 100


class OrderStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


# Orders a strategy must wait on before placing another.
IN_FLIGHT_STATUSES = (OrderStatus.PENDING.value, OrderStatus.EXECUTING.value)


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TriggerType(str, Enum):
    ABOVE = "ABOVE"
    BELOW = "BELOW"


class StrategyKind(str, Enum):
    PRICE_TARGET = "price_target"
    ACCUMULATION = "accumulation"
    GRID = "grid"
    STOP_LOSS_TAKE_PROFIT = "stop_loss_take_profit"


class StrategyStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    DELETED = "deleted"


class TickOutcome(str, Enum):
    ORDER_PLACED = "order_placed"
    WAITING = "waiting"
    IDLE = "idle"
    SKIPPED = "skipped"
    DEACTIVATED = "deactivated"
