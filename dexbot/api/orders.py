"""Trade order API: manual orders, history, delete and retry."""

from fastapi import APIRouter, Depends, HTTPException

from dexbot.api.deps import (
    get_current_user,
    get_engine,
    get_wallet_store,
    ok,
    owned_wallet_addresses,
    require_wallet_owner,
)
from dexbot.engine.manager import TradingEngine
from dexbot.models.trade_order import TradeOrder
from dexbot.models.user import User
from dexbot.schemas.trade_order import TradeOrderCreate, TradeOrderRead
from dexbot.services.order_store import OrderStateError, OrderValidationError
from dexbot.services.wallet_store import WalletStore

router = APIRouter(prefix="/api/orders", tags=["orders"])


def _owned_order(order_id: str, user: User, engine: TradingEngine, wallets: WalletStore) -> TradeOrder:
    order = engine.orders.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    require_wallet_owner(wallets, order.wallet_address, user)
    return order


@router.post("", status_code=201)
def create_order(
    data: TradeOrderCreate,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    require_wallet_owner(wallets, data.wallet_address, user)
    try:
        order = engine.orders.create(**data.model_dump())
    except OrderValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ok(TradeOrderRead.model_validate(order))


@router.get("")
def list_orders(
    status: str | None = None,
    strategy_id: str | None = None,
    limit: int = 100,
    offset: int = 0,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    addresses = sorted(owned_wallet_addresses(wallets, user))
    orders = engine.orders.list_orders(
        wallet_addresses=addresses,
        status=status,
        strategy_id=strategy_id,
        limit=limit,
        offset=offset,
    )
    return ok([TradeOrderRead.model_validate(o) for o in orders], count=len(orders))


@router.get("/{order_id}")
def get_order(
    order_id: str,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    return ok(TradeOrderRead.model_validate(_owned_order(order_id, user, engine, wallets)))


@router.delete("/{order_id}")
def delete_order(
    order_id: str,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    _owned_order(order_id, user, engine, wallets)
    try:
        engine.orders.delete(order_id)
    except OrderStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ok({"id": order_id})


@router.post("/{order_id}/retry")
def retry_order(
    order_id: str,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    _owned_order(order_id, user, engine, wallets)
    try:
        order = engine.orders.retry(order_id)
    except OrderStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ok(TradeOrderRead.model_validate(order))
