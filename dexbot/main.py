"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dexbot.config import settings
from dexbot.database import create_db_and_tables, engine as db_engine
from dexbot.utils.logging import setup_logging
from dexbot.api import orders, strategies, system, wallets


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    from dexbot.engine.manager import build_engine
    from dexbot.services.cardano_client import get_cardano_client
    from dexbot.services.encryption import get_cipher
    from dexbot.services.notifier import Notifier
    from dexbot.services.wallet_store import WalletStore

    notifier = Notifier(forward_to_telegram=bool(settings.telegram_bot_token))
    wallet_store = WalletStore(settings.wallet_dir, get_cipher(), get_cardano_client())
    trading_engine = build_engine(settings, db_engine, wallet_store, notifier)
    trading_engine.restore()
    trading_engine.start(start_loops=settings.autostart_engine)

    app.state.wallets = wallet_store
    app.state.engine = trading_engine

    # Start Telegram bot if configured
    telegram_bot = None
    if settings.telegram_bot_token:
        from dexbot.services.telegram_bot import init_bot
        telegram_bot = init_bot(trading_engine)
        telegram_bot.start()

    yield

    if telegram_bot:
        telegram_bot.stop()
    trading_engine.shutdown()


app = FastAPI(
    title="DEX Strategy Bot",
    description="Automated conditional trading on Cardano DEX pools with custodial wallets",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(p) for p in e['loc'] if p != 'body')}: {e['msg']}" for e in errors
    )
    return JSONResponse(status_code=422, content={"success": False, "error": message})


# Mount routers
app.include_router(strategies.router)
app.include_router(orders.router)
app.include_router(wallets.router)
app.include_router(system.router)
