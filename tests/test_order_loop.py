"""Tests for the order fulfilment loop: trigger checks, claiming and outcomes."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from dexbot.engine.order_loop import OrderFulfilmentLoop, trigger_met
from dexbot.engine.strategies import PriceTargetConfig, PriceTargetStrategy
from dexbot.engine.swap_executor import SwapError
from dexbot.models.trade_order import TradeOrder

from conftest import BASE_TOKEN, POOL_ID, WALLET_ADDRESS, envelope


def make_order(orders, **overrides):
    data = dict(
        wallet_address=WALLET_ADDRESS,
        trading_pair="MIN/ADA",
        base_token=BASE_TOKEN,
        pool_id=POOL_ID,
        is_buy=True,
        amount=100,
        target_price=2.0,
        trigger_above=True,
    )
    data.update(overrides)
    return orders.create(**data)


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.execute = AsyncMock(return_value="a1b2c3")
    return executor


@pytest.fixture
def loop(orders, oracle, executor, notifier):
    return OrderFulfilmentLoop(AsyncIOScheduler(), orders, oracle, executor, notifier)


class TestTrigger:
    @pytest.mark.parametrize("above,price,expected", [
        (True, 2.5, True),
        (True, 2.0, False),
        (True, 1.5, False),
        (False, 1.5, True),
        (False, 2.0, False),
        (False, 2.5, False),
    ])
    def test_strict_comparison(self, above, price, expected):
        order = TradeOrder(
            wallet_address=WALLET_ADDRESS, trading_pair="MIN/ADA", base_token=BASE_TOKEN,
            pool_id=POOL_ID, is_buy=True, amount=1, target_price=2.0, trigger_above=above,
        )
        assert trigger_met(order, price) is expected


class TestOrderLoop:
    @pytest.mark.asyncio
    async def test_executes_triggered_order(self, loop, orders, oracle, executor):
        oracle.price = 2.5
        order = make_order(orders)

        assert await loop.tick() == {order.id: "completed"}

        stored = orders.require(order.id)
        assert stored.status == "completed"
        assert stored.executed_price == pytest.approx(2.5)
        assert stored.tx_hash == "a1b2c3"
        executor.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_waiting_updates_current_price(self, loop, orders, oracle, executor):
        oracle.price = 1.8
        order = make_order(orders)

        assert await loop.tick() == {order.id: "waiting"}

        stored = orders.require(order.id)
        assert stored.status == "pending"
        assert stored.current_price == pytest.approx(1.8)
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_swap_marks_order_failed(self, loop, orders, oracle, executor, notifier):
        oracle.price = 2.5
        executor.execute.side_effect = SwapError("Insufficient tokens! Have: 0, Need: 100")
        order = make_order(orders)

        assert await loop.tick() == {order.id: "failed"}

        stored = orders.require(order.id)
        assert stored.status == "failed"
        assert "Insufficient tokens" in stored.error_message
        assert notifier.history(limit=1)[0]["level"] == "error"

    @pytest.mark.asyncio
    async def test_store_error_isolated_to_its_order(self, loop, orders, oracle, executor, notifier, monkeypatch):
        oracle.price = 2.5
        broken = make_order(orders)
        healthy = make_order(orders)

        async def execute(order):
            if order.id == broken.id:
                raise SwapError("pool moved")
            return "tx-ok"

        executor.execute.side_effect = execute
        monkeypatch.setattr(orders, "mark_failed", MagicMock(side_effect=RuntimeError("database is locked")))

        results = await loop.tick()

        assert results == {broken.id: "error", healthy.id: "completed"}
        assert orders.get_status(healthy.id) == "completed"
        assert orders.get_status(broken.id) == "executing"
        assert any("completed" in e["message"] for e in notifier.history(category="order"))

    @pytest.mark.asyncio
    async def test_no_price_skips(self, loop, orders, oracle, executor):
        oracle.price = None
        order = make_order(orders)
        assert await loop.tick() == {order.id: "skipped"}
        assert orders.get_status(order.id) == "pending"

    @pytest.mark.asyncio
    async def test_lost_claim_does_not_execute(self, loop, orders, oracle, executor):
        oracle.price = 2.5
        order = make_order(orders)
        orders.claim_for_execution(order.id)

        assert await loop.process_order(order) == (order.id, "claim_lost")
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_pending_orders_ignored(self, loop, orders, oracle):
        oracle.price = 2.5
        failed = make_order(orders)
        orders.mark_failed(failed.id, "earlier failure")
        assert await loop.tick() == {}

    @pytest.mark.asyncio
    async def test_each_order_executes_once(self, loop, orders, oracle, executor):
        oracle.price = 2.5
        make_order(orders)
        await loop.tick()
        await loop.tick()
        executor.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_strategy_to_completed_order(self, loop, orders, oracle, context):
        oracle.price = 2.5
        strategy = PriceTargetStrategy(
            PriceTargetConfig(**envelope(target_price=2.0, order_amount=100, side="BUY", trigger_type="ABOVE")),
            context,
        )
        await strategy.execute()
        await loop.tick()

        order = orders.require(strategy.order_id)
        assert order.status == "completed"
        assert order.executed_price == pytest.approx(2.5)
        assert order.tx_hash
