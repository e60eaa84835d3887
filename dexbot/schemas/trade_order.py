"""Pydantic schemas for TradeOrder API."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from dexbot.schemas.strategy import validate_asset_unit


class TradeOrderCreate(BaseModel):
    wallet_address: str = Field(min_length=50)
    trading_pair: str = Field(min_length=1, max_length=64)
    base_token: str
    quote_token: str = "ADA"
    pool_id: str = Field(min_length=1)
    is_buy: bool
    amount: float = Field(gt=0)
    target_price: float = Field(gt=0)
    trigger_above: bool

    @field_validator("base_token")
    @classmethod
    def _validate_base_token(cls, value: str) -> str:
        return validate_asset_unit(value)


class TradeOrderRead(BaseModel):
    id: str
    strategy_id: str | None
    wallet_address: str
    trading_pair: str
    base_token: str
    quote_token: str
    pool_id: str
    is_buy: bool
    amount: float
    target_price: float
    trigger_above: bool
    current_price: float
    executed_price: float | None
    executed_at: datetime | None
    tx_hash: str | None
    error_message: str | None
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
