"""Minswap V1 DEX adapter: pool lookup, constant-product swap math, swap orders.

Pools are located through their pool NFT (``<pool nft policy><pool id>``).
Swaps are placed as batcher orders: an output to the order script address
carrying the input assets, the batcher fee and the return deposit, with an
``OrderDatum`` describing the requested step.
"""

import logging
from dataclasses import dataclass
from typing import Union

from pycardano import Address, PlutusData, TransactionOutput, Value

from dexbot.config import settings
from dexbot.services.cardano_client import (
    CardanoClient,
    SigningContext,
    build_multi_asset,
    split_unit,
)
from dexbot.utils.constants import ADA_UNIT

logger = logging.getLogger(__name__)

FEE_NUMERATOR = 997
FEE_DENOMINATOR = 1000


@dataclass
class Pool:
    pool_id: str
    address: str
    asset_a: str  # "lovelace" or "<policy><name hex>"
    asset_b: str
    reserve_a: int
    reserve_b: int

    def reserves_for(self, asset_in: str) -> tuple[int, int]:
        """Return (reserve_in, reserve_out) when swapping ``asset_in`` into the pool."""
        if asset_in == self.asset_a:
            return self.reserve_a, self.reserve_b
        if asset_in == self.asset_b:
            return self.reserve_b, self.reserve_a
        raise ValueError(f"Asset {asset_in} is not part of pool {self.pool_id}")

    @property
    def is_ada_pair(self) -> bool:
        return (self.asset_a == ADA_UNIT) != (self.asset_b == ADA_UNIT)

    @property
    def token_unit(self) -> str:
        return self.asset_b if self.asset_a == ADA_UNIT else self.asset_a


# ----------------------------------------------------------------------
# Swap math (0.3% fee, constant product)
# ----------------------------------------------------------------------

def calculate_swap_exact_in(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """Output received for exactly ``amount_in``."""
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0
    amount_in_with_fee = amount_in * FEE_NUMERATOR
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * FEE_DENOMINATOR + amount_in_with_fee
    return numerator // denominator


def calculate_swap_exact_out(exact_amount_out: int, reserve_in: int, reserve_out: int) -> int:
    """Input required to receive exactly ``exact_amount_out``."""
    if exact_amount_out <= 0 or reserve_in <= 0:
        raise ValueError("Amount out and reserves must be positive")
    if exact_amount_out >= reserve_out:
        raise ValueError("Requested output exceeds pool reserve")
    numerator = reserve_in * exact_amount_out * FEE_DENOMINATOR
    denominator = (reserve_out - exact_amount_out) * FEE_NUMERATOR
    return numerator // denominator + 1


# ----------------------------------------------------------------------
# Order datum
# ----------------------------------------------------------------------

@dataclass
class PubKeyCredential(PlutusData):
    CONSTR_ID = 0
    hash: bytes


@dataclass
class StakingHash(PlutusData):
    CONSTR_ID = 0
    credential: PubKeyCredential


@dataclass
class SomeStaking(PlutusData):
    CONSTR_ID = 0
    value: StakingHash


@dataclass
class NoStaking(PlutusData):
    CONSTR_ID = 1


@dataclass
class PlutusAddress(PlutusData):
    CONSTR_ID = 0
    payment: PubKeyCredential
    staking: Union[SomeStaking, NoStaking]

    @classmethod
    def from_address(cls, address: str) -> "PlutusAddress":
        addr = Address.from_primitive(address)
        staking = NoStaking()
        if addr.staking_part is not None:
            staking = SomeStaking(StakingHash(PubKeyCredential(addr.staking_part.payload)))
        return cls(PubKeyCredential(addr.payment_part.payload), staking)


@dataclass
class AssetClass(PlutusData):
    CONSTR_ID = 0
    policy_id: bytes
    asset_name: bytes

    @classmethod
    def from_unit(cls, unit: str) -> "AssetClass":
        if unit == ADA_UNIT:
            return cls(b"", b"")
        policy_id, asset_name = split_unit(unit)
        return cls(bytes.fromhex(policy_id), bytes.fromhex(asset_name))


@dataclass
class SwapExactIn(PlutusData):
    CONSTR_ID = 0
    desired_coin: AssetClass
    minimum_receive: int


@dataclass
class SwapExactOut(PlutusData):
    CONSTR_ID = 1
    desired_coin: AssetClass
    expected_receive: int


@dataclass
class NoDatumHash(PlutusData):
    CONSTR_ID = 1


@dataclass
class OrderDatum(PlutusData):
    CONSTR_ID = 0
    sender: PlutusAddress
    receiver: PlutusAddress
    receiver_datum_hash: NoDatumHash
    step: Union[SwapExactIn, SwapExactOut]
    batcher_fee: int
    output_ada: int


# ----------------------------------------------------------------------
# Client
# ----------------------------------------------------------------------

class MinswapClient:
    """Reads pool state from Blockfrost and submits swap orders for the batcher."""

    def __init__(
        self,
        chain: CardanoClient,
        pool_nft_policy: str = settings.minswap_pool_nft_policy,
        factory_policy: str = settings.minswap_factory_policy,
        lp_policy: str = settings.minswap_lp_policy,
        order_address: str = settings.minswap_order_address,
        batcher_fee: int = settings.minswap_batcher_fee,
        deposit_ada: int = settings.minswap_deposit_ada,
    ):
        self.chain = chain
        self.pool_nft_policy = pool_nft_policy
        self.factory_policy = factory_policy
        self.lp_policy = lp_policy
        self.order_address = order_address
        self.batcher_fee = batcher_fee
        self.deposit_ada = deposit_ada

    async def get_pool_by_id(self, pool_id: str) -> Pool | None:
        """Locate the pool UTxO by its NFT and read its reserves."""
        nft_unit = self.pool_nft_policy + pool_id
        holders = await self.chain.run_blocking(self.chain.api.asset_addresses, nft_unit)
        if not holders:
            return None
        address = holders[0].address
        utxos = await self.chain.run_blocking(self.chain.api.address_utxos_asset, address, nft_unit)
        if not utxos:
            return None

        skip = (self.pool_nft_policy, self.factory_policy, self.lp_policy)
        relevant = [
            (a.unit, int(a.quantity))
            for a in utxos[0].amount
            if not a.unit.startswith(skip)
        ]
        if len(relevant) == 2:
            # ADA/token pool
            (asset_a, reserve_a), (asset_b, reserve_b) = sorted(
                relevant, key=lambda x: x[0] != ADA_UNIT
            )
        elif len(relevant) == 3:
            # token/token pool; the lovelace entry is the min-ADA of the UTxO
            tokens = [r for r in relevant if r[0] != ADA_UNIT]
            (asset_a, reserve_a), (asset_b, reserve_b) = tokens
        else:
            logger.warning(f"Unexpected asset layout in pool {pool_id}: {relevant}")
            return None

        return Pool(
            pool_id=pool_id,
            address=address,
            asset_a=asset_a,
            asset_b=asset_b,
            reserve_a=reserve_a,
            reserve_b=reserve_b,
        )

    def _order_output(
        self,
        sender: str,
        asset_in: str,
        amount_in: int,
        step: Union[SwapExactIn, SwapExactOut],
    ) -> tuple[TransactionOutput, OrderDatum]:
        datum = OrderDatum(
            sender=PlutusAddress.from_address(sender),
            receiver=PlutusAddress.from_address(sender),
            receiver_datum_hash=NoDatumHash(),
            step=step,
            batcher_fee=self.batcher_fee,
            output_ada=self.deposit_ada,
        )
        lovelace = self.batcher_fee + self.deposit_ada
        assets: dict[str, int] = {}
        if asset_in == ADA_UNIT:
            lovelace += amount_in
        else:
            assets[asset_in] = amount_in
        output = TransactionOutput(
            Address.from_primitive(self.order_address),
            Value(lovelace, build_multi_asset(assets)),
        )
        return output, datum

    async def swap_exact_in(
        self,
        signer: SigningContext,
        asset_in: str,
        amount_in: int,
        asset_out: str,
        minimum_amount_out: int,
    ) -> str:
        """Submit an order spending exactly ``amount_in`` for at least ``minimum_amount_out``."""
        step = SwapExactIn(AssetClass.from_unit(asset_out), minimum_amount_out)
        output, datum = self._order_output(signer.address, asset_in, amount_in, step)
        return await self.chain.submit_outputs(signer, [(output, datum)])

    async def swap_exact_out(
        self,
        signer: SigningContext,
        asset_in: str,
        maximum_amount_in: int,
        asset_out: str,
        expected_amount_out: int,
    ) -> str:
        """Submit an order receiving exactly ``expected_amount_out`` for at most ``maximum_amount_in``."""
        step = SwapExactOut(AssetClass.from_unit(asset_out), expected_amount_out)
        output, datum = self._order_output(signer.address, asset_in, maximum_amount_in, step)
        return await self.chain.submit_outputs(signer, [(output, datum)])
