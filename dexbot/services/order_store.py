"""Trade order persistence and status transitions.

Status lifecycle: pending -> executing -> completed | failed, and failed ->
pending through an explicit retry. Every transition is a conditional UPDATE on
the current status, so a transition attempted from the wrong state changes
nothing. The pending -> executing claim is what grants a worker the exclusive
right to submit an order's swap.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from dexbot.models.trade_order import TradeOrder
from dexbot.utils.constants import OrderStatus

logger = logging.getLogger(__name__)

DELETABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.FAILED.value)


class OrderNotFoundError(LookupError):
    pass


class OrderStateError(ValueError):
    pass


class OrderValidationError(ValueError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def _transition(self, order_id: str, from_statuses: tuple[str, ...], **values) -> bool:
        stmt = (
            update(TradeOrder)
            .where(TradeOrder.id == order_id, TradeOrder.status.in_(from_statuses))
            .values(updated_at=_now(), **values)
        )
        with self.engine.begin() as conn:
            result = conn.execute(stmt)
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create(
        self,
        wallet_address: str,
        trading_pair: str,
        base_token: str,
        pool_id: str,
        is_buy: bool,
        amount: float,
        target_price: float,
        trigger_above: bool,
        quote_token: str = "ADA",
        strategy_id: str | None = None,
    ) -> TradeOrder:
        if amount <= 0:
            raise OrderValidationError("Order amount must be positive")
        if target_price <= 0:
            raise OrderValidationError("Target price must be positive")

        order = TradeOrder(
            strategy_id=strategy_id,
            wallet_address=wallet_address,
            trading_pair=trading_pair,
            base_token=base_token,
            quote_token=quote_token,
            pool_id=pool_id,
            is_buy=is_buy,
            amount=amount,
            target_price=target_price,
            trigger_above=trigger_above,
        )
        with Session(self.engine) as session:
            session.add(order)
            session.commit()
            session.refresh(order)

        side = "BUY" if is_buy else "SELL"
        logger.info(f"[order {order.id[:8]}] Created {side} {trading_pair} @ {target_price:.8f} ADA")
        return order

    def get(self, order_id: str) -> TradeOrder | None:
        with Session(self.engine) as session:
            return session.get(TradeOrder, order_id)

    def require(self, order_id: str) -> TradeOrder:
        order = self.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

    def get_status(self, order_id: str) -> str | None:
        order = self.get(order_id)
        return order.status if order else None

    def list_orders(
        self,
        wallet_addresses: list[str] | None = None,
        status: str | None = None,
        strategy_id: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[TradeOrder]:
        stmt = select(TradeOrder).order_by(TradeOrder.created_at.desc())
        if wallet_addresses is not None:
            stmt = stmt.where(TradeOrder.wallet_address.in_(wallet_addresses))
        if status is not None:
            stmt = stmt.where(TradeOrder.status == status)
        if strategy_id is not None:
            stmt = stmt.where(TradeOrder.strategy_id == strategy_id)
        stmt = stmt.offset(offset).limit(limit)
        with Session(self.engine) as session:
            return list(session.exec(stmt).all())

    def list_pending(self) -> list[TradeOrder]:
        stmt = (
            select(TradeOrder)
            .where(TradeOrder.status == OrderStatus.PENDING.value)
            .order_by(TradeOrder.created_at)
        )
        with Session(self.engine) as session:
            return list(session.exec(stmt).all())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def update_current_price(self, order_id: str, price: float) -> bool:
        return self._transition(order_id, (OrderStatus.PENDING.value,), current_price=price)

    def claim_for_execution(self, order_id: str) -> bool:
        """Atomically move pending -> executing. False means another worker won."""
        claimed = self._transition(
            order_id, (OrderStatus.PENDING.value,), status=OrderStatus.EXECUTING.value
        )
        if not claimed:
            logger.info(f"[order {order_id[:8]}] Claim lost; order is no longer pending")
        return claimed

    def mark_completed(self, order_id: str, executed_price: float, tx_hash: str) -> bool:
        return self._transition(
            order_id,
            (OrderStatus.EXECUTING.value,),
            status=OrderStatus.COMPLETED.value,
            executed_price=executed_price,
            executed_at=_now(),
            tx_hash=tx_hash,
            error_message=None,
        )

    def mark_failed(self, order_id: str, error_message: str) -> bool:
        return self._transition(
            order_id,
            (OrderStatus.PENDING.value, OrderStatus.EXECUTING.value),
            status=OrderStatus.FAILED.value,
            error_message=error_message or "Unknown error",
        )

    def retry(self, order_id: str) -> TradeOrder:
        """Return a failed order to pending with its error cleared."""
        order = self.require(order_id)
        if order.status != OrderStatus.FAILED.value:
            raise OrderStateError("Only failed orders can be retried")
        if not self._transition(
            order_id,
            (OrderStatus.FAILED.value,),
            status=OrderStatus.PENDING.value,
            error_message=None,
        ):
            raise OrderStateError("Order is no longer in failed state")
        logger.info(f"[order {order_id[:8]}] Retry requested; back to pending")
        return self.require(order_id)

    def delete(self, order_id: str):
        order = self.require(order_id)
        if order.status not in DELETABLE_STATUSES:
            raise OrderStateError("Can only delete pending or failed orders")
        with Session(self.engine) as session:
            row = session.get(TradeOrder, order_id)
            if row is None or row.status not in DELETABLE_STATUSES:
                raise OrderStateError("Can only delete pending or failed orders")
            session.delete(row)
            session.commit()
        logger.info(f"[order {order_id[:8]}] Deleted")
