"""TradeOrder model: a conditional swap request and its execution outcome."""

import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class TradeOrder(SQLModel, table=True):
    __tablename__ = "trade_order"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    strategy_id: str | None = Field(default=None, index=True)
    wallet_address: str = Field(index=True)
    trading_pair: str
    base_token: str
    quote_token: str = "ADA"
    pool_id: str
    is_buy: bool
    amount: float  # base token units
    target_price: float  # ADA per base token
    trigger_above: bool
    current_price: float = 0.0

    # Execution outcome
    executed_price: float | None = None
    executed_at: datetime | None = None
    tx_hash: str | None = None
    error_message: str | None = None

    status: str = Field(default="pending", index=True)  # "pending", "executing", "completed", "failed"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
