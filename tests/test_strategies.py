"""Tests for strategy variant evaluation against a fake oracle and real order store."""

import pytest

from dexbot.engine.strategies import (
    AccumulationConfig,
    AccumulationStrategy,
    GridConfig,
    GridStrategy,
    PriceTargetConfig,
    PriceTargetStrategy,
    StopLossTakeProfitConfig,
    StopLossTakeProfitStrategy,
)
from dexbot.utils.constants import TickOutcome

from conftest import envelope


def fill(orders, order_id, price=None):
    orders.claim_for_execution(order_id)
    order = orders.require(order_id)
    orders.mark_completed(order_id, price or order.target_price, "tx-" + order_id[:8])


def fail(orders, order_id):
    orders.claim_for_execution(order_id)
    orders.mark_failed(order_id, "Insufficient balance")


def price_target(context, **overrides):
    data = dict(target_price=2.0, order_amount=100, side="BUY", trigger_type="ABOVE")
    data.update(overrides)
    return PriceTargetStrategy(PriceTargetConfig(**envelope(**{"name": "MIN breakout", **data})), context)


def accumulation(context, **overrides):
    data = dict(investment_amount=50, interval_minutes=60)
    data.update(overrides)
    return AccumulationStrategy(AccumulationConfig(**envelope(**data)), context)


def grid(context, **overrides):
    data = dict(lower_price=1.0, upper_price=2.0, grid_levels=3, investment_per_level=15)
    data.update(overrides)
    return GridStrategy(GridConfig(**envelope(**{"name": "MIN grid", **data})), context)


def sltp(context, **overrides):
    data = dict(entry_price=2.0, stop_loss_percent=10, take_profit_percent=25, amount=40)
    data.update(overrides)
    return StopLossTakeProfitStrategy(StopLossTakeProfitConfig(**envelope(**{"name": "MIN exit", **data})), context)


# ---------------------------------------------------------------------------
# 1. Validation
# ---------------------------------------------------------------------------

class TestValidation:
    def test_valid_configs(self, context):
        for strategy in (price_target(context), accumulation(context), grid(context), sltp(context)):
            assert strategy.validate() is True

    @pytest.mark.parametrize("overrides", [
        {"name": "  "},
        {"pool_id": ""},
        {"wallet_address": "not-an-address"},
        {"base_token": "lovelace"},
        {"base_token": "zz" * 28 + ".4d494e"},
    ])
    def test_bad_envelope(self, context, overrides):
        config = PriceTargetConfig(**{**envelope(), "target_price": 2.0, "order_amount": 1, **overrides})
        assert PriceTargetStrategy(config, context).validate() is False

    @pytest.mark.parametrize("factory,overrides", [
        (price_target, {"target_price": 0}),
        (price_target, {"order_amount": -5}),
        (price_target, {"side": "HOLD"}),
        (price_target, {"trigger_type": "EQUAL"}),
        (accumulation, {"interval_minutes": 0}),
        (accumulation, {"total_runs": 0}),
        (accumulation, {"min_price": 3.0, "max_price": 2.0}),
        (grid, {"lower_price": 2.0, "upper_price": 1.0}),
        (grid, {"grid_levels": 1}),
        (grid, {"investment_per_level": 0}),
        (sltp, {"stop_loss_percent": 100}),
        (sltp, {"take_profit_percent": 0}),
        (sltp, {"entry_price": 0}),
    ])
    def test_bad_variant(self, context, factory, overrides):
        assert factory(context, **overrides).validate() is False

    def test_generated_id_prefixed_by_kind(self, context):
        assert price_target(context).id.startswith("price_target-")


# ---------------------------------------------------------------------------
# 2. Price target
# ---------------------------------------------------------------------------

class TestPriceTarget:
    @pytest.mark.asyncio
    async def test_places_order_when_above(self, context, oracle, orders):
        oracle.price = 2.5
        strategy = price_target(context)

        assert await strategy.execute() == TickOutcome.ORDER_PLACED

        placed = orders.list_orders()
        assert len(placed) == 1
        order = placed[0]
        assert order.is_buy is True
        assert order.trigger_above is True
        assert order.target_price == 2.0
        assert order.amount == 100
        assert order.strategy_id == strategy.id
        assert strategy.order_id == order.id

    @pytest.mark.asyncio
    async def test_no_order_when_condition_not_met(self, context, oracle, orders):
        oracle.price = 1.5
        strategy = price_target(context)
        assert await strategy.execute() == TickOutcome.IDLE
        assert orders.list_orders() == []

    @pytest.mark.asyncio
    async def test_equal_price_does_not_trigger(self, context, oracle, orders):
        oracle.price = 2.0
        assert await price_target(context).execute() == TickOutcome.IDLE
        assert await price_target(context, trigger_type="BELOW").execute() == TickOutcome.IDLE
        assert orders.list_orders() == []

    @pytest.mark.asyncio
    async def test_below_trigger(self, context, oracle, orders):
        oracle.price = 1.5
        strategy = price_target(context, side="SELL", trigger_type="BELOW")
        assert await strategy.execute() == TickOutcome.ORDER_PLACED
        order = orders.require(strategy.order_id)
        assert order.is_buy is False
        assert order.trigger_above is False

    @pytest.mark.asyncio
    async def test_no_duplicate_while_in_flight(self, context, oracle, orders):
        oracle.price = 2.5
        strategy = price_target(context)
        await strategy.execute()
        assert await strategy.execute() == TickOutcome.WAITING
        orders.claim_for_execution(strategy.order_id)
        assert await strategy.execute() == TickOutcome.WAITING
        assert len(orders.list_orders()) == 1

    @pytest.mark.asyncio
    async def test_replaces_order_after_completion(self, context, oracle, orders):
        oracle.price = 2.5
        strategy = price_target(context)
        await strategy.execute()
        fill(orders, strategy.order_id)

        assert await strategy.execute() == TickOutcome.IDLE
        assert strategy.orders_completed == 1
        assert strategy.order_id is None
        assert await strategy.execute() == TickOutcome.ORDER_PLACED
        assert len(orders.list_orders()) == 2

    @pytest.mark.asyncio
    async def test_execute_once_deactivates_after_fill(self, context, oracle, orders):
        oracle.price = 2.5
        strategy = price_target(context, execute_once=True)
        await strategy.execute()
        fill(orders, strategy.order_id)

        assert await strategy.execute() == TickOutcome.DEACTIVATED
        assert strategy.is_active is False
        assert strategy.status == "completed"

    @pytest.mark.asyncio
    async def test_execute_once_deactivates_after_failure(self, context, oracle, orders):
        oracle.price = 2.5
        strategy = price_target(context, execute_once=True)
        await strategy.execute()
        fail(orders, strategy.order_id)
        assert await strategy.execute() == TickOutcome.DEACTIVATED

    @pytest.mark.asyncio
    async def test_deleted_order_forgotten(self, context, oracle, orders):
        oracle.price = 2.5
        strategy = price_target(context)
        await strategy.execute()
        orders.delete(strategy.order_id)
        assert await strategy.execute() == TickOutcome.ORDER_PLACED

    @pytest.mark.asyncio
    async def test_price_unavailable_skips(self, context, oracle, orders, notifier):
        oracle.price = None
        strategy = price_target(context)
        assert await strategy.execute() == TickOutcome.SKIPPED
        assert orders.list_orders() == []
        assert notifier.history(limit=1)[0]["level"] == "warning"

    @pytest.mark.asyncio
    async def test_status_snapshot_is_read_only(self, context, oracle, orders):
        oracle.price = 2.5
        strategy = price_target(context)
        await strategy.execute()
        before = strategy.dump_state()

        status = strategy.get_status()

        assert strategy.dump_state() == before
        assert status["type"] == "price_target"
        assert status["current_price"] == 2.5
        assert status["details"]["condition_met"] is True
        assert status["details"]["price_diff_pct"] == pytest.approx(25.0)


# ---------------------------------------------------------------------------
# 3. Accumulation
# ---------------------------------------------------------------------------

class TestAccumulation:
    @pytest.mark.asyncio
    async def test_interval_gates_runs(self, context, oracle, orders, clock):
        oracle.price = 0.5
        strategy = accumulation(context)

        assert await strategy.execute() == TickOutcome.ORDER_PLACED
        fill(orders, strategy.order_id)
        clock.advance(minutes=5)
        assert await strategy.execute() == TickOutcome.IDLE

        placed = orders.list_orders()
        assert len(placed) == 1
        assert placed[0].is_buy is True
        assert placed[0].trigger_above is False
        assert placed[0].amount == pytest.approx(100)
        assert placed[0].target_price == pytest.approx(0.505)
        assert strategy.invested_amount == 50

    @pytest.mark.asyncio
    async def test_runs_again_after_interval(self, context, oracle, orders, clock):
        oracle.price = 0.5
        strategy = accumulation(context)
        await strategy.execute()
        fill(orders, strategy.order_id)
        clock.advance(minutes=60)
        assert await strategy.execute() == TickOutcome.ORDER_PLACED
        assert strategy.runs_executed == 2

    @pytest.mark.asyncio
    async def test_waits_for_in_flight_order(self, context, oracle, orders, clock):
        oracle.price = 0.5
        strategy = accumulation(context)
        await strategy.execute()
        clock.advance(minutes=61)
        assert await strategy.execute() == TickOutcome.WAITING
        assert len(orders.list_orders()) == 1

    @pytest.mark.asyncio
    async def test_cap_deactivates(self, context, oracle, orders, clock):
        oracle.price = 0.5
        strategy = accumulation(context, total_runs=2)
        for _ in range(2):
            assert await strategy.execute() == TickOutcome.ORDER_PLACED
            fill(orders, strategy.order_id)
            clock.advance(minutes=60)

        assert await strategy.execute() == TickOutcome.DEACTIVATED
        assert strategy.status == "completed"
        assert len(orders.list_orders()) == 2
        assert strategy.get_status()["details"]["progress"] == "2/2"

    @pytest.mark.asyncio
    async def test_price_band_defers_run(self, context, oracle, orders):
        oracle.price = 0.9
        strategy = accumulation(context, max_price=0.8)
        assert await strategy.execute() == TickOutcome.IDLE
        assert strategy.runs_executed == 0
        oracle.price = 0.7
        assert await strategy.execute() == TickOutcome.ORDER_PLACED

    @pytest.mark.asyncio
    async def test_execute_once(self, context, oracle):
        oracle.price = 0.5
        strategy = accumulation(context, execute_once=True)
        assert await strategy.execute() == TickOutcome.ORDER_PLACED
        assert strategy.is_active is False

    @pytest.mark.asyncio
    async def test_skips_without_price(self, context, oracle, orders):
        oracle.price = None
        strategy = accumulation(context)
        assert await strategy.execute() == TickOutcome.SKIPPED
        assert strategy.runs_executed == 0


# ---------------------------------------------------------------------------
# 4. Grid
# ---------------------------------------------------------------------------

class TestGrid:
    def test_levels_laid_out(self, context):
        strategy = grid(context)
        assert strategy.spacing == pytest.approx(0.5)
        assert [lvl.price for lvl in strategy.levels.values()] == [1.0, 1.5]
        assert all(lvl.side == "BUY" for lvl in strategy.levels.values())

    @pytest.mark.asyncio
    async def test_buy_then_sell_captures_profit(self, context, oracle, orders):
        strategy = grid(context)

        oracle.price = 1.4
        assert await strategy.execute() == TickOutcome.ORDER_PLACED
        buy = orders.require(strategy.order_id)
        assert buy.is_buy is True
        assert buy.target_price == 1.5
        assert buy.amount == pytest.approx(10)
        fill(orders, buy.id)

        oracle.price = 1.6
        assert await strategy.execute() == TickOutcome.IDLE
        level = strategy.levels[1]
        assert level.side == "SELL"
        assert level.token_amount == pytest.approx(10)

        oracle.price = 2.1
        assert await strategy.execute() == TickOutcome.ORDER_PLACED
        sell = orders.require(strategy.order_id)
        assert sell.is_buy is False
        assert sell.trigger_above is True
        assert sell.target_price == pytest.approx(2.0)
        fill(orders, sell.id)

        oracle.price = 1.7
        await strategy.execute()
        assert strategy.total_profit == pytest.approx(5.0)
        assert strategy.cycles_completed == 1
        assert strategy.levels[1].side == "BUY"

    @pytest.mark.asyncio
    async def test_single_order_in_flight(self, context, oracle, orders):
        strategy = grid(context, grid_levels=5)
        oracle.price = 1.05
        await strategy.execute()
        assert await strategy.execute() == TickOutcome.WAITING
        assert len(orders.list_orders()) == 1
        # nearest triggered level goes first
        assert orders.require(strategy.order_id).target_price == pytest.approx(1.25)

    @pytest.mark.asyncio
    async def test_failed_order_rearms_same_side(self, context, oracle, orders):
        strategy = grid(context)
        oracle.price = 1.4
        await strategy.execute()
        fail(orders, strategy.order_id)
        assert await strategy.execute() == TickOutcome.ORDER_PLACED
        assert orders.require(strategy.order_id).is_buy is True

    @pytest.mark.asyncio
    async def test_no_buys_outside_range(self, context, oracle, orders):
        strategy = grid(context)
        oracle.price = 0.5
        assert await strategy.execute() == TickOutcome.IDLE
        assert orders.list_orders() == []

    @pytest.mark.asyncio
    async def test_state_survives_record_round_trip(self, context, oracle, orders):
        strategy = grid(context)
        oracle.price = 1.4
        await strategy.execute()
        fill(orders, strategy.order_id)
        oracle.price = 1.6
        await strategy.execute()

        restored = GridStrategy.from_record(strategy.to_record(), context)
        assert restored.id == strategy.id
        assert restored.levels[1].side == "SELL"
        assert restored.levels[1].token_amount == pytest.approx(10)
        assert restored.invested_amount == 15


# ---------------------------------------------------------------------------
# 5. Stop-loss / take-profit
# ---------------------------------------------------------------------------

class TestStopLossTakeProfit:
    def test_boundaries_derived(self, context):
        strategy = sltp(context)
        assert strategy.stop_loss_price == pytest.approx(1.8)
        assert strategy.take_profit_price == pytest.approx(2.5)

    @pytest.mark.asyncio
    async def test_take_profit(self, context, oracle, orders):
        strategy = sltp(context)
        oracle.price = 2.6
        assert await strategy.execute() == TickOutcome.ORDER_PLACED
        order = orders.require(strategy.order_id)
        assert order.is_buy is False
        assert order.amount == 40
        assert order.trigger_above is True
        assert strategy.trigger_reason == "take_profit"
        assert strategy.is_active is False

    @pytest.mark.asyncio
    async def test_stop_loss(self, context, oracle, orders):
        strategy = sltp(context)
        oracle.price = 1.7
        assert await strategy.execute() == TickOutcome.ORDER_PLACED
        order = orders.require(strategy.order_id)
        assert order.trigger_above is False
        assert order.target_price == pytest.approx(1.8)
        assert strategy.trigger_reason == "stop_loss"

    @pytest.mark.asyncio
    async def test_inside_band_does_nothing(self, context, oracle, orders):
        strategy = sltp(context)
        oracle.price = 2.0
        assert await strategy.execute() == TickOutcome.IDLE
        assert strategy.condition_triggered is False
        assert orders.list_orders() == []

    @pytest.mark.asyncio
    async def test_no_further_action_after_trigger(self, context, oracle, orders):
        strategy = sltp(context)
        oracle.price = 2.6
        await strategy.execute()
        oracle.price = 1.0
        assert await strategy.execute() == TickOutcome.IDLE
        assert len(orders.list_orders()) == 1
