"""Turns a claimed trade order into a signed Minswap swap order on chain."""

import asyncio
import logging

from dexbot.models.trade_order import TradeOrder
from dexbot.services.cardano_client import CardanoClient, split_unit
from dexbot.services.dex_client import (
    MinswapClient,
    calculate_swap_exact_in,
    calculate_swap_exact_out,
)
from dexbot.services.notifier import Notifier
from dexbot.services.price_oracle import PriceOracle
from dexbot.services.wallet_store import WalletStore
from dexbot.utils.constants import ADA_UNIT

logger = logging.getLogger(__name__)


class SwapError(Exception):
    pass


class SwapExecutor:
    def __init__(
        self,
        wallets: WalletStore,
        dex: MinswapClient,
        chain: CardanoClient,
        oracle: PriceOracle,
        notifier: Notifier,
        slippage_pct: int = 5,
    ):
        self.wallets = wallets
        self.dex = dex
        self.chain = chain
        self.oracle = oracle
        self.notifier = notifier
        self.slippage_pct = slippage_pct

    async def execute(self, order: TradeOrder) -> str:
        """Build, sign and submit the swap for an order. Returns the tx hash.

        ``order.amount`` is in whole base tokens; it is scaled by the token's
        decimals before sizing the swap.
        """
        side = "BUY" if order.is_buy else "SELL"
        self.notifier.info(
            f"Executing swap: {side} {order.amount} {order.trading_pair}", "order", wallet_address=order.wallet_address
        )

        try:
            policy_id, asset_name = split_unit(order.base_token)
        except ValueError:
            raise SwapError(f"Invalid base token format: {order.base_token}")
        token_unit = policy_id + asset_name

        # Decrypting the mnemonic runs a 100k-round KDF; keep it off the loop
        signer = await asyncio.get_running_loop().run_in_executor(
            None, self.wallets.load_wallet, order.wallet_address
        )
        self.notifier.info(f"Wallet loaded: {signer.address[:20]}...", "wallet", wallet_address=order.wallet_address)

        utxos = await self.chain.get_utxos(signer.address)
        if not utxos:
            raise SwapError("No UTXOs available in wallet")

        decimals = await self.oracle.get_token_decimals(token_unit)
        if decimals is None:
            raise SwapError(f"Token decimals unavailable for {order.base_token}")
        token_amount = int(order.amount * 10 ** decimals)
        if token_amount <= 0:
            raise SwapError(f"Order amount {order.amount} is below one token unit")

        if not order.is_buy:
            held = await self.chain.get_asset_quantity(signer.address, token_unit)
            if held < token_amount:
                raise SwapError(f"Insufficient tokens! Have: {held}, Need: {token_amount}")

        pool = await self.dex.get_pool_by_id(order.pool_id)
        if pool is None:
            raise SwapError("Pool not found on DEX")

        if order.is_buy:
            reserve_in, reserve_out = pool.reserves_for(ADA_UNIT)
            ideal_in = calculate_swap_exact_out(token_amount, reserve_in, reserve_out)
            maximum_in = ideal_in * (100 + self.slippage_pct) // 100
            self.notifier.info(
                f"Buying {token_amount} base units with maximum {maximum_in} lovelace",
                "order",
                wallet_address=order.wallet_address,
            )
            tx_hash = await self.dex.swap_exact_out(
                signer, ADA_UNIT, maximum_in, token_unit, token_amount
            )
        else:
            reserve_in, reserve_out = pool.reserves_for(token_unit)
            ideal_out = calculate_swap_exact_in(token_amount, reserve_in, reserve_out)
            minimum_out = ideal_out * (100 - self.slippage_pct) // 100
            self.notifier.info(
                f"Selling {token_amount} base units for minimum {minimum_out} lovelace",
                "order",
                wallet_address=order.wallet_address,
            )
            tx_hash = await self.dex.swap_exact_in(
                signer, token_unit, token_amount, ADA_UNIT, minimum_out
            )

        logger.info(f"[order {order.id[:8]}] {side} transaction submitted: {tx_hash}")
        return tx_hash
