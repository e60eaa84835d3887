"""System API: health, loop status and control, manual trigger, activity feed."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool

from dexbot.api.deps import (
    get_current_user,
    get_engine,
    get_wallet_store,
    is_admin,
    ok,
    owned_wallet_addresses,
    require_admin,
)
from dexbot.config import settings
from dexbot.engine.manager import TradingEngine
from dexbot.models.user import User
from dexbot.services.auth import decode_access_token
from dexbot.services.wallet_store import WalletStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])

_LOOPS = {
    "scheduler": "strategy_scheduler",
    "order-loop": "order_loop",
}


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/status", dependencies=[Depends(get_current_user)])
def engine_status(engine: TradingEngine = Depends(get_engine)):
    """Loop state, strategy counts and pending order count."""
    return ok(engine.status())


@router.post("/{loop}/{action}", dependencies=[Depends(require_admin)])
def control_loop(loop: str, action: str, engine: TradingEngine = Depends(get_engine)):
    """Start or stop the strategy scheduler or the order fulfilment loop."""
    if loop not in _LOOPS or action not in ("start", "stop"):
        raise HTTPException(status_code=404, detail="Unknown loop or action")
    target = getattr(engine, _LOOPS[loop])
    if action == "start":
        target.start()
    else:
        target.stop()
    return ok(target.status())


@router.post("/trigger", dependencies=[Depends(require_admin)])
async def trigger_tick(engine: TradingEngine = Depends(get_engine)):
    """Manually run one strategy tick followed by one order tick."""
    strategy_results = await engine.strategy_scheduler.run_tick()
    order_results = await engine.order_loop.run_tick()
    return ok({
        "strategies": {k: (v.value if v else None) for k, v in (strategy_results or {}).items()},
        "orders": order_results or {},
    })


def _visible_wallets(wallets: WalletStore, user: User) -> set[str] | None:
    """Wallets whose activity the caller may read; None means everything."""
    if is_admin(user):
        return None
    return owned_wallet_addresses(wallets, user)


@router.get("/logs")
def activity_log(
    limit: int = 100,
    category: str | None = None,
    user: User = Depends(get_current_user),
    engine: TradingEngine = Depends(get_engine),
    wallets: WalletStore = Depends(get_wallet_store),
):
    """Recent activity for the caller's own wallets."""
    scope = _visible_wallets(wallets, user)
    return ok(engine.notifier.history(limit=limit, category=category, wallet_addresses=scope))


@router.websocket("/ws")
async def activity_stream(websocket: WebSocket, token: str = Query(...)):
    """Push recent history, then every new notification about the caller's wallets."""
    owner = decode_access_token(token)
    if owner is None:
        await websocket.close(code=1008)
        return

    notifier = websocket.app.state.engine.notifier
    wallets = websocket.app.state.wallets
    # Wallets created after connecting show up on reconnect
    scope = None
    if owner not in settings.admin_wallets:
        scope = await run_in_threadpool(
            lambda: {w["address"] for w in wallets.get_wallets_by_owner(owner)}
        )

    await websocket.accept()
    queue = notifier.subscribe()
    try:
        await websocket.send_json({"type": "history", "entries": notifier.history(wallet_addresses=scope)})
        while True:
            entry = await queue.get()
            if scope is not None and entry["wallet_address"] not in scope:
                continue
            await websocket.send_json({"type": "log", "entry": entry})
    except WebSocketDisconnect:
        logger.debug("Activity stream client disconnected")
    finally:
        notifier.unsubscribe(queue)
