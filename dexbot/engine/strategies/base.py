"""Shared strategy contract, envelope config and runtime helpers."""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar

from pydantic import BaseModel

from dexbot.models.strategy import StrategyRecord
from dexbot.models.trade_order import TradeOrder
from dexbot.services.notifier import Notifier
from dexbot.services.order_store import OrderStore
from dexbot.services.price_oracle import PriceOracle
from dexbot.utils.constants import (
    IN_FLIGHT_STATUSES,
    MIN_ADDRESS_LENGTH,
    StrategyKind,
    StrategyStatus,
    TickOutcome,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StrategyConfig(BaseModel):
    """Envelope shared by every strategy variant.

    Fields are deliberately unconstrained here; ``BaseStrategy.validate`` reports
    bad combinations as False instead of raising.
    """

    id: str | None = None
    name: str = ""
    wallet_address: str = ""
    trading_pair: str = ""
    base_token: str = ""
    quote_token: str = "ADA"
    pool_id: str = ""
    is_active: bool = True
    execute_once: bool = False


@dataclass
class StrategyContext:
    """Collaborators a strategy needs during evaluation."""

    oracle: PriceOracle
    orders: OrderStore
    notifier: Notifier
    accumulation_slippage: float = 0.01
    clock: Callable[[], datetime] = field(default=utcnow)


class BaseStrategy(ABC):
    kind: ClassVar[StrategyKind]
    config_model: ClassVar[type[StrategyConfig]] = StrategyConfig

    def __init__(self, config: StrategyConfig, context: StrategyContext):
        self.config = config
        self.ctx = context
        self.id = config.id or f"{self.kind.value}-{uuid.uuid4().hex[:12]}"
        self.config.id = self.id
        self.is_active = config.is_active
        self.status = StrategyStatus.ACTIVE.value if self.is_active else StrategyStatus.PAUSED.value
        self.created_at = context.clock()

        # Runtime state
        self.order_id: str | None = None
        self.current_price: float | None = None
        self.last_price_check: datetime | None = None
        self.invested_amount = 0.0

    @property
    def name(self) -> str:
        return self.config.name

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def validate(self) -> bool:
        """True when the config is usable. Never raises."""
        c = self.config
        if not c.name.strip() or not c.trading_pair.strip() or not c.pool_id.strip():
            return False
        if not c.wallet_address.startswith("addr") or len(c.wallet_address) < MIN_ADDRESS_LENGTH:
            return False
        policy_id, _, asset_name = c.base_token.partition(".")
        if len(policy_id) != 56 or not _is_hex(policy_id) or not _is_hex(asset_name):
            return False
        return self._validate_variant()

    @abstractmethod
    def _validate_variant(self) -> bool:
        ...

    @abstractmethod
    async def execute(self) -> TickOutcome:
        """Evaluate one scheduler tick and report its effect."""

    def get_status(self) -> dict[str, Any]:
        """Read-only snapshot for status reporting."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.kind.value,
            "wallet_address": self.config.wallet_address,
            "trading_pair": self.config.trading_pair,
            "pool_id": self.config.pool_id,
            "is_active": self.is_active,
            "status": self.status,
            "execute_once": self.config.execute_once,
            "current_price": self.current_price,
            "last_price_check": self.last_price_check.isoformat() if self.last_price_check else None,
            "order_id": self.order_id,
            "details": self._status_details(),
        }

    def _status_details(self) -> dict[str, Any]:
        return {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def stop(self):
        self.is_active = False
        self.status = StrategyStatus.PAUSED.value
        self.notify("warning", "Strategy stopped", "strategy")

    def start(self):
        self.is_active = True
        self.status = StrategyStatus.ACTIVE.value
        self.notify("success", "Strategy started", "strategy")

    def deactivate(self, reason: str) -> TickOutcome:
        """Terminal stop after the strategy has done its job."""
        self.is_active = False
        self.status = StrategyStatus.COMPLETED.value
        self.notify("info", f"Deactivated: {reason}", "strategy")
        return TickOutcome.DEACTIVATED

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def notify(self, level: str, message: str, category: str = "strategy"):
        self.ctx.notifier.emit(
            level, message, category, self.name, wallet_address=self.config.wallet_address
        )

    async def refresh_price(self) -> float | None:
        price = await self.ctx.oracle.get_price(self.config.pool_id, self.config.base_token)
        if price is None:
            self.notify("warning", "Price unavailable; skipping tick", "strategy")
            return None
        self.current_price = price
        self.last_price_check = self.ctx.clock()
        return price

    def in_flight_status(self) -> str | None:
        """Status of the tracked order; clears the reference if the order was deleted."""
        if self.order_id is None:
            return None
        status = self.ctx.orders.get_status(self.order_id)
        if status is None:
            logger.info(f"[{self.name}] Tracked order {self.order_id[:8]} no longer exists")
            self.order_id = None
        return status

    def has_order_in_flight(self) -> bool:
        return self.in_flight_status() in IN_FLIGHT_STATUSES

    def place_order(
        self,
        is_buy: bool,
        amount: float,
        target_price: float,
        trigger_above: bool,
    ) -> TradeOrder:
        c = self.config
        order = self.ctx.orders.create(
            wallet_address=c.wallet_address,
            trading_pair=c.trading_pair,
            base_token=c.base_token,
            quote_token=c.quote_token,
            pool_id=c.pool_id,
            is_buy=is_buy,
            amount=amount,
            target_price=target_price,
            trigger_above=trigger_above,
            strategy_id=self.id,
        )
        self.order_id = order.id
        side = "BUY" if is_buy else "SELL"
        direction = "above" if trigger_above else "below"
        self.notify(
            "success",
            f"Placed {side} order {order.id[:8]} for {amount:.6f} when price {direction} {target_price:.8f} ADA",
            "order",
        )
        return order

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def dump_state(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "current_price": self.current_price,
            "last_price_check": self.last_price_check.isoformat() if self.last_price_check else None,
        }

    def load_state(self, state: dict[str, Any]):
        self.order_id = state.get("order_id")
        self.current_price = state.get("current_price")
        self.last_price_check = parse_datetime(state.get("last_price_check"))

    def to_record(self) -> StrategyRecord:
        c = self.config
        return StrategyRecord(
            id=self.id,
            wallet_address=c.wallet_address,
            name=c.name,
            type=self.kind.value,
            trading_pair=c.trading_pair,
            base_token=c.base_token,
            quote_token=c.quote_token,
            pool_id=c.pool_id,
            is_active=self.is_active,
            status=self.status,
            invested_amount=self.invested_amount,
            config={
                "settings": c.model_dump(mode="json"),
                "state": self.dump_state(),
            },
            created_at=self.created_at,
        )

    @classmethod
    def from_record(cls, record: StrategyRecord, context: StrategyContext) -> "BaseStrategy":
        payload = record.config or {}
        config = cls.config_model.model_validate(
            {**payload.get("settings", {}), "id": record.id, "is_active": record.is_active}
        )
        strategy = cls(config, context)
        strategy.status = record.status
        strategy.invested_amount = record.invested_amount
        strategy.created_at = record.created_at
        strategy.load_state(payload.get("state", {}))
        return strategy


def _is_hex(value: str) -> bool:
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True


def parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
