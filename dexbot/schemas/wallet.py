"""Pydantic schemas for wallet custody API."""

from pydantic import BaseModel, Field


class WalletImport(BaseModel):
    mnemonic: str = Field(min_length=1)


class WalletWithdraw(BaseModel):
    to_address: str = Field(min_length=50)
    lovelace: int = Field(default=0, ge=0)
    assets: dict[str, int] = Field(default_factory=dict)  # {"<policy>.<name hex>": quantity}
