"""Shared fixtures: in-memory database, fake chain/oracle collaborators."""

import hashlib
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from dexbot.database import create_db_and_tables
from dexbot.engine.strategies import StrategyContext
from dexbot.services.encryption import OwnerScopedCipher
from dexbot.services.notifier import Notifier
from dexbot.services.order_store import OrderStore

OWNER_X = "addr_test1qpxowner" + "x" * 60
OWNER_Y = "addr_test1qpyowner" + "y" * 60
WALLET_ADDRESS = "addr_test1qzwallet" + "w" * 60
POOL_ID = "6aa2153e1ae896a95539c9d62f76cedcdabdcdf144e564b8955f609d660cf6a2"
BASE_TOKEN = "e16c2dc8ae937e8d3790c7fd7168d7b994621ba14ca11415f39fed72.4d494e"

MNEMONIC_24 = " ".join(["abandon"] * 23 + ["art"])
MNEMONIC_12 = " ".join(["legal", "winner", "thank", "year", "wave", "sausage",
                        "worth", "useful", "legal", "winner", "thank", "yellow"])


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeOracle:
    """Price oracle returning a settable price per pool (None = unavailable)."""

    def __init__(self, price: float | None = None, decimals: int = 0):
        self.price = price
        self.decimals = decimals
        self.calls = 0

    async def get_price(self, pool_id, base_token=None):
        self.calls += 1
        return self.price

    async def get_token_decimals(self, unit):
        return self.decimals


class FakeChain:
    """Chain adapter that derives a deterministic address from the mnemonic."""

    network_name = "testnet"

    def __init__(self):
        self.generated = 0
        self.get_utxos = AsyncMock(return_value=[object()])
        self.get_asset_quantity = AsyncMock(return_value=0)
        self.get_balance = AsyncMock(return_value={"lovelace": 5_000_000, "ada": 5.0, "assets": []})
        self.send_assets = AsyncMock(return_value="tx-withdraw")

    def generate_mnemonic(self) -> str:
        self.generated += 1
        words = ["zoo"] * 23 + [f"w{self.generated}"]
        return " ".join(words)

    def is_valid_mnemonic(self, mnemonic: str) -> bool:
        return True

    def derive_address(self, mnemonic: str) -> str:
        return "addr_test1q" + hashlib.sha256(mnemonic.encode()).hexdigest()

    def signing_context(self, mnemonic: str):
        return SimpleNamespace(address=self.derive_address(mnemonic), signing_keys=["skey"])


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def orders(db_engine):
    return OrderStore(db_engine)


@pytest.fixture
def notifier():
    return Notifier(forward_to_telegram=False)


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def context(oracle, orders, notifier, clock):
    return StrategyContext(oracle=oracle, orders=orders, notifier=notifier, clock=clock)


@pytest.fixture
def cipher():
    # Low iteration count keeps the suite fast; the derivation is otherwise identical
    return OwnerScopedCipher("test-master-key", iterations=1_000)


@pytest.fixture
def chain():
    return FakeChain()


def envelope(**overrides) -> dict:
    data = {
        "name": "MIN accumulator",
        "wallet_address": WALLET_ADDRESS,
        "trading_pair": "MIN/ADA",
        "base_token": BASE_TOKEN,
        "pool_id": POOL_ID,
    }
    data.update(overrides)
    return data
