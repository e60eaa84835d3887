"""In-memory registry of live strategy instances, owned by the trading engine."""

import logging

from dexbot.engine.strategies import BaseStrategy

logger = logging.getLogger(__name__)


class StrategyRegistry:
    def __init__(self):
        self._strategies: dict[str, BaseStrategy] = {}

    def add(self, strategy: BaseStrategy):
        if strategy.id in self._strategies:
            raise ValueError(f"Strategy {strategy.id} already registered")
        self._strategies[strategy.id] = strategy
        logger.info(f"[{strategy.name}] Registered {strategy.kind.value} strategy {strategy.id}")

    def get(self, strategy_id: str) -> BaseStrategy | None:
        return self._strategies.get(strategy_id)

    def remove(self, strategy_id: str) -> BaseStrategy | None:
        return self._strategies.pop(strategy_id, None)

    def snapshot(self) -> list[BaseStrategy]:
        """Strategies registered right now; later additions are not included."""
        return list(self._strategies.values())

    def for_wallets(self, wallet_addresses: set[str]) -> list[BaseStrategy]:
        return [s for s in self._strategies.values() if s.config.wallet_address in wallet_addresses]

    def __contains__(self, strategy_id: str) -> bool:
        return strategy_id in self._strategies

    def __len__(self) -> int:
        return len(self._strategies)
