"""Pydantic schemas for strategy creation."""

from pydantic import BaseModel, Field, field_validator, model_validator

from dexbot.utils.constants import OrderSide, TriggerType


def validate_asset_unit(value: str) -> str:
    policy_id, sep, asset_name = value.strip().partition(".")
    if not sep or len(policy_id) != 56:
        raise ValueError("must be <policyId>.<assetNameHex>")
    try:
        bytes.fromhex(policy_id + asset_name)
    except ValueError:
        raise ValueError("policy id and asset name must be hex")
    return f"{policy_id}.{asset_name}"


class StrategyCreateBase(BaseModel):
    id: str | None = Field(default=None, max_length=80)
    name: str = Field(min_length=1, max_length=120)
    wallet_address: str = Field(min_length=50)
    trading_pair: str = Field(min_length=1, max_length=64)
    base_token: str
    quote_token: str = "ADA"
    pool_id: str = Field(min_length=1)
    execute_once: bool = False

    @field_validator("name", "trading_pair", "pool_id")
    @classmethod
    def _trim_required_text(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("wallet_address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        if not value.startswith("addr"):
            raise ValueError("must be a Cardano address")
        return value

    @field_validator("base_token")
    @classmethod
    def _validate_base_token(cls, value: str) -> str:
        return validate_asset_unit(value)


class PriceTargetCreate(StrategyCreateBase):
    target_price: float = Field(gt=0)
    order_amount: float = Field(gt=0)
    side: str = OrderSide.BUY.value
    trigger_type: str = TriggerType.ABOVE.value

    @field_validator("side")
    @classmethod
    def _validate_side(cls, value: str) -> str:
        value = value.upper()
        if value not in (OrderSide.BUY.value, OrderSide.SELL.value):
            raise ValueError("must be BUY or SELL")
        return value

    @field_validator("trigger_type")
    @classmethod
    def _validate_trigger(cls, value: str) -> str:
        value = value.upper()
        if value not in (TriggerType.ABOVE.value, TriggerType.BELOW.value):
            raise ValueError("must be ABOVE or BELOW")
        return value


class AccumulationCreate(StrategyCreateBase):
    investment_amount: float = Field(gt=0)
    interval_minutes: float = Field(gt=0)
    total_runs: int | None = Field(default=None, ge=1)
    min_price: float | None = Field(default=None, gt=0)
    max_price: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _validate_band(self):
        if self.min_price is not None and self.max_price is not None and self.min_price >= self.max_price:
            raise ValueError("min_price must be less than max_price")
        return self


class GridCreate(StrategyCreateBase):
    lower_price: float = Field(gt=0)
    upper_price: float = Field(gt=0)
    grid_levels: int = Field(ge=2, le=100)
    investment_per_level: float = Field(gt=0)

    @model_validator(mode="after")
    def _validate_bounds(self):
        if self.lower_price >= self.upper_price:
            raise ValueError("lower_price must be less than upper_price")
        return self


class StopLossTakeProfitCreate(StrategyCreateBase):
    entry_price: float = Field(gt=0)
    stop_loss_percent: float = Field(gt=0, lt=100)
    take_profit_percent: float = Field(gt=0)
    amount: float = Field(gt=0)
