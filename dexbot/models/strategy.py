"""StrategyRecord model: persisted envelope and variant payload of a strategy."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON
from sqlmodel import SQLModel, Field, Column


class StrategyRecord(SQLModel, table=True):
    __tablename__ = "strategy"

    id: str = Field(primary_key=True)  # "<kind>-<uuid hex>"
    wallet_address: str = Field(index=True)
    name: str
    type: str  # "price_target", "accumulation", "grid", "stop_loss_take_profit"
    trading_pair: str  # e.g. "MIN/ADA"
    base_token: str  # "<policyId>.<assetNameHex>"
    quote_token: str = "ADA"
    pool_id: str
    is_active: bool = True
    status: str = Field(default="active", index=True)  # "active", "paused", "completed", "deleted"
    invested_amount: float = 0.0

    # Full variant config plus runtime state
    config: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
