"""Periodic loops on APScheduler, and the strategy evaluation loop.

Each loop is one interval job on the engine's AsyncIOScheduler. Overlapping
ticks are skipped: APScheduler coalesces missed runs and caps instances at one,
and the loop's own lock turns away manual triggers that race a running tick.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from dexbot.engine.registry import StrategyRegistry
from dexbot.engine.strategies import BaseStrategy
from dexbot.services.notifier import Notifier
from dexbot.services.strategy_store import StrategyStore
from dexbot.utils.constants import TickOutcome

logger = logging.getLogger(__name__)


class PeriodicLoop(ABC):
    job_id: str
    job_name: str

    def __init__(self, scheduler: AsyncIOScheduler, interval_seconds: float):
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self._lock = asyncio.Lock()
        self.last_tick_at: datetime | None = None
        self.tick_count = 0
        self.skipped_ticks = 0

    @property
    def running(self) -> bool:
        return self.scheduler.get_job(self.job_id) is not None

    def start(self):
        """Schedule the loop; the first tick fires immediately."""
        if self.running:
            logger.warning(f"{self.job_name} already running")
            return
        self.scheduler.add_job(
            self.run_tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=self.job_id,
            name=self.job_name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
            next_run_time=datetime.now(timezone.utc),
        )
        logger.info(f"{self.job_name} started (every {self.interval_seconds}s)")

    def stop(self):
        """Unschedule the loop. A tick already running finishes on its own."""
        if self.scheduler.get_job(self.job_id):
            self.scheduler.remove_job(self.job_id)
            logger.info(f"{self.job_name} stopped")

    async def run_tick(self):
        """Run one tick, skipping if the previous one is still in flight."""
        if self._lock.locked():
            self.skipped_ticks += 1
            logger.warning(f"{self.job_name}: skipping overlapping tick")
            return None

        async with self._lock:
            self.last_tick_at = datetime.now(timezone.utc)
            self.tick_count += 1
            try:
                return await self.tick()
            except Exception as e:
                logger.error(f"{self.job_name} tick error: {e}", exc_info=True)
                return None

    @abstractmethod
    async def tick(self):
        ...

    def status(self) -> dict:
        job = self.scheduler.get_job(self.job_id)
        return {
            "running": job is not None,
            "interval_seconds": self.interval_seconds,
            "next_run": str(job.next_run_time) if job and job.next_run_time else None,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "tick_count": self.tick_count,
            "skipped_ticks": self.skipped_ticks,
            "busy": self._lock.locked(),
        }


class StrategyScheduler(PeriodicLoop):
    """Evaluates every active registered strategy once per tick."""

    job_id = "strategy_scheduler"
    job_name = "Strategy scheduler"

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        registry: StrategyRegistry,
        store: StrategyStore,
        notifier: Notifier,
        interval_seconds: float = 30,
    ):
        super().__init__(scheduler, interval_seconds)
        self.registry = registry
        self.store = store
        self.notifier = notifier

    async def tick(self) -> dict[str, TickOutcome | None]:
        # Strategies added mid-tick wait for the next one
        strategies = [s for s in self.registry.snapshot() if s.is_active]
        if not strategies:
            return {}

        logger.info(f"Evaluating {len(strategies)} active strategies")
        results = await asyncio.gather(*(self._evaluate(s) for s in strategies))
        return dict(results)

    async def _evaluate(self, strategy: BaseStrategy) -> tuple[str, TickOutcome | None]:
        outcome = None
        try:
            outcome = await strategy.execute()
        except Exception as e:
            self.notifier.error(
                f"Execution error: {e}",
                "strategy",
                strategy.name,
                exc_info=True,
                wallet_address=strategy.config.wallet_address,
            )

        # A strategy deleted while it was being evaluated keeps its deleted row
        if strategy.id in self.registry:
            try:
                self.store.save(strategy.to_record())
            except Exception as e:
                logger.error(f"[{strategy.name}] Failed to persist state: {e}", exc_info=True)
        return strategy.id, outcome
