"""Strategy API: create, list with live status, stop/start/delete."""

from fastapi import APIRouter, Depends, HTTPException

from dexbot.api.deps import (
    get_current_user,
    get_engine,
    get_wallet_store,
    ok,
    owned_wallet_addresses,
    require_wallet_owner,
)
from dexbot.engine.manager import StrategyNotFoundError, StrategyValidationError, TradingEngine
from dexbot.models.user import User
from dexbot.schemas.strategy import (
    AccumulationCreate,
    GridCreate,
    PriceTargetCreate,
    StopLossTakeProfitCreate,
    StrategyCreateBase,
)
from dexbot.services.wallet_store import WalletStore
from dexbot.utils.constants import StrategyKind

router = APIRouter(prefix="/api/strategies", tags=["strategies"])


def _create(
    kind: StrategyKind,
    data: StrategyCreateBase,
    user: User,
    engine: TradingEngine,
    wallets: WalletStore,
) -> dict:
    require_wallet_owner(wallets, data.wallet_address, user)
    try:
        strategy = engine.add_strategy(kind.value, data.model_dump())
    except StrategyValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ok(strategy.get_status())


@router.post("/price-target", status_code=201)
def create_price_target(
    data: PriceTargetCreate,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    return _create(StrategyKind.PRICE_TARGET, data, user, engine, wallets)


@router.post("/accumulation", status_code=201)
def create_accumulation(
    data: AccumulationCreate,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    return _create(StrategyKind.ACCUMULATION, data, user, engine, wallets)


@router.post("/grid", status_code=201)
def create_grid(
    data: GridCreate,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    return _create(StrategyKind.GRID, data, user, engine, wallets)


@router.post("/sltp", status_code=201)
def create_stop_loss_take_profit(
    data: StopLossTakeProfitCreate,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    return _create(StrategyKind.STOP_LOSS_TAKE_PROFIT, data, user, engine, wallets)


@router.get("")
def list_strategies(
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    statuses = engine.list_statuses(owned_wallet_addresses(wallets, user))
    return ok(statuses, count=len(statuses))


def _owned_strategy(strategy_id: str, user: User, engine: TradingEngine, wallets: WalletStore):
    try:
        strategy = engine.get_strategy(strategy_id)
    except StrategyNotFoundError:
        raise HTTPException(status_code=404, detail="Strategy not found")
    require_wallet_owner(wallets, strategy.config.wallet_address, user)
    return strategy


@router.post("/{strategy_id}/stop")
def stop_strategy(
    strategy_id: str,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    _owned_strategy(strategy_id, user, engine, wallets)
    return ok(engine.stop_strategy(strategy_id).get_status())


@router.post("/{strategy_id}/start")
def start_strategy(
    strategy_id: str,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    _owned_strategy(strategy_id, user, engine, wallets)
    return ok(engine.start_strategy(strategy_id).get_status())


@router.delete("/{strategy_id}")
def delete_strategy(
    strategy_id: str,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    _owned_strategy(strategy_id, user, engine, wallets)
    engine.delete_strategy(strategy_id)
    return ok({"id": strategy_id})
