"""TradingEngine: owns the strategy registry and both periodic loops.

One engine is built per process in the FastAPI lifespan and reached by request
handlers through ``app.state``.
"""

import logging
from datetime import datetime
from typing import Any, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.engine import Engine

from dexbot.config import Settings
from dexbot.engine.order_loop import OrderFulfilmentLoop
from dexbot.engine.registry import StrategyRegistry
from dexbot.engine.scheduler import StrategyScheduler
from dexbot.engine.strategies import STRATEGY_TYPES, BaseStrategy, StrategyConfig, StrategyContext
from dexbot.engine.strategies.base import utcnow
from dexbot.engine.swap_executor import SwapExecutor
from dexbot.services.dex_client import MinswapClient
from dexbot.services.notifier import Notifier
from dexbot.services.order_store import OrderStore
from dexbot.services.price_oracle import PriceOracle
from dexbot.services.strategy_store import StrategyStore
from dexbot.services.wallet_store import WalletStore
from dexbot.utils.constants import StrategyKind

logger = logging.getLogger(__name__)


class StrategyValidationError(ValueError):
    pass


class StrategyNotFoundError(LookupError):
    pass


class TradingEngine:
    def __init__(
        self,
        db_engine: Engine,
        oracle: PriceOracle,
        executor: SwapExecutor,
        notifier: Notifier,
        strategy_interval_seconds: float = 30,
        order_interval_seconds: float = 10,
        accumulation_slippage: float = 0.01,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.notifier = notifier
        self.oracle = oracle
        self.orders = OrderStore(db_engine)
        self.strategy_store = StrategyStore(db_engine)
        self.registry = StrategyRegistry()
        self.context = StrategyContext(
            oracle=oracle,
            orders=self.orders,
            notifier=notifier,
            accumulation_slippage=accumulation_slippage,
            clock=clock,
        )
        self.scheduler = AsyncIOScheduler()
        self.strategy_scheduler = StrategyScheduler(
            self.scheduler, self.registry, self.strategy_store, notifier, strategy_interval_seconds
        )
        self.order_loop = OrderFulfilmentLoop(
            self.scheduler, self.orders, oracle, executor, notifier, order_interval_seconds
        )

    # ------------------------------------------------------------------
    # Process lifecycle
    # ------------------------------------------------------------------

    def start(self, start_loops: bool = True):
        if not self.scheduler.running:
            self.scheduler.start()
        if start_loops:
            self.strategy_scheduler.start()
            self.order_loop.start()
        logger.info(f"Trading engine started with {len(self.registry)} strategies")

    def shutdown(self):
        self.strategy_scheduler.stop()
        self.order_loop.stop()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Trading engine stopped")

    def restore(self) -> int:
        """Rebuild the registry from persisted, non-deleted strategies."""
        restored = 0
        for record in self.strategy_store.load_restorable():
            if record.id in self.registry:
                continue
            strategy_cls = STRATEGY_TYPES.get(record.type)
            if strategy_cls is None:
                logger.error(f"Unknown strategy type {record.type!r} for {record.id}; not restored")
                continue
            try:
                strategy = strategy_cls.from_record(record, self.context)
            except Exception as e:
                logger.error(f"Failed to restore strategy {record.id}: {e}", exc_info=True)
                continue
            self.registry.add(strategy)
            restored += 1
        if restored:
            self.notifier.info(f"Restored {restored} strategies", "system")
        return restored

    # ------------------------------------------------------------------
    # Strategy management
    # ------------------------------------------------------------------

    def add_strategy(self, kind: str, payload: dict[str, Any] | StrategyConfig) -> BaseStrategy:
        """Validate, persist, then register a strategy."""
        strategy_cls = STRATEGY_TYPES.get(kind)
        if strategy_cls is None:
            raise StrategyValidationError(f"Unknown strategy type: {kind}")

        if isinstance(payload, StrategyConfig):
            payload = payload.model_dump()
        try:
            config = strategy_cls.config_model.model_validate(payload)
        except ValueError as e:
            raise StrategyValidationError(str(e)) from e

        strategy = strategy_cls(config, self.context)
        if not strategy.validate():
            raise StrategyValidationError(f"Invalid {kind} strategy configuration")
        if strategy.id in self.registry or self.strategy_store.get(strategy.id) is not None:
            raise StrategyValidationError(f"Strategy id {strategy.id} already exists")

        self.strategy_store.save(strategy.to_record())
        self.registry.add(strategy)
        strategy.notify("success", f"Strategy created ({kind})")
        return strategy

    def add_price_target(self, payload: dict[str, Any]) -> BaseStrategy:
        return self.add_strategy(StrategyKind.PRICE_TARGET.value, payload)

    def add_accumulation(self, payload: dict[str, Any]) -> BaseStrategy:
        return self.add_strategy(StrategyKind.ACCUMULATION.value, payload)

    def add_grid(self, payload: dict[str, Any]) -> BaseStrategy:
        return self.add_strategy(StrategyKind.GRID.value, payload)

    def add_stop_loss_take_profit(self, payload: dict[str, Any]) -> BaseStrategy:
        return self.add_strategy(StrategyKind.STOP_LOSS_TAKE_PROFIT.value, payload)

    def get_strategy(self, strategy_id: str) -> BaseStrategy:
        strategy = self.registry.get(strategy_id)
        if strategy is None:
            raise StrategyNotFoundError(f"Strategy {strategy_id} not found")
        return strategy

    def stop_strategy(self, strategy_id: str) -> BaseStrategy:
        strategy = self.get_strategy(strategy_id)
        strategy.stop()
        self.strategy_store.save(strategy.to_record())
        return strategy

    def start_strategy(self, strategy_id: str) -> BaseStrategy:
        strategy = self.get_strategy(strategy_id)
        strategy.start()
        self.strategy_store.save(strategy.to_record())
        return strategy

    def delete_strategy(self, strategy_id: str):
        """Evict from the registry; the persisted row stays for audit."""
        strategy = self.get_strategy(strategy_id)
        strategy.is_active = False
        self.registry.remove(strategy_id)
        self.strategy_store.mark_deleted(strategy_id)
        strategy.notify("warning", "Strategy deleted")

    def stop_all_strategies(self) -> int:
        stopped = 0
        for strategy in self.registry.snapshot():
            if strategy.is_active:
                self.stop_strategy(strategy.id)
                stopped += 1
        return stopped

    def list_statuses(self, wallet_addresses: set[str] | None = None) -> list[dict[str, Any]]:
        if wallet_addresses is None:
            strategies = self.registry.snapshot()
        else:
            strategies = self.registry.for_wallets(wallet_addresses)
        return [s.get_status() for s in strategies]

    def status(self) -> dict[str, Any]:
        strategies = self.registry.snapshot()
        return {
            "scheduler_running": self.scheduler.running,
            "strategy_scheduler": self.strategy_scheduler.status(),
            "order_loop": self.order_loop.status(),
            "strategies_total": len(strategies),
            "strategies_active": sum(1 for s in strategies if s.is_active),
            "pending_orders": len(self.orders.list_pending()),
        }


def build_engine(
    settings: Settings, db_engine: Engine, wallets: WalletStore, notifier: Notifier
) -> TradingEngine:
    """Wire the chain, DEX, oracle and executor from settings into an engine."""
    chain = wallets.chain
    dex = MinswapClient(
        chain,
        pool_nft_policy=settings.minswap_pool_nft_policy,
        factory_policy=settings.minswap_factory_policy,
        lp_policy=settings.minswap_lp_policy,
        order_address=settings.minswap_order_address,
        batcher_fee=settings.minswap_batcher_fee,
        deposit_ada=settings.minswap_deposit_ada,
    )
    oracle = PriceOracle(dex, chain)
    executor = SwapExecutor(wallets, dex, chain, oracle, notifier, settings.swap_slippage_pct)
    return TradingEngine(
        db_engine,
        oracle,
        executor,
        notifier,
        strategy_interval_seconds=settings.strategy_interval_seconds,
        order_interval_seconds=settings.order_interval_seconds,
        accumulation_slippage=settings.accumulation_slippage,
    )
