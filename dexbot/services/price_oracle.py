"""Spot price of a pool's token in ADA, from a simulated swap against live reserves."""

import logging

from dexbot.services.cardano_client import CardanoClient, split_unit
from dexbot.services.dex_client import MinswapClient, calculate_swap_exact_in
from dexbot.utils.constants import LOVELACE_PER_ADA, PRICE_QUOTE_TOKENS

logger = logging.getLogger(__name__)


class PriceOracle:
    """Quotes ADA per base-token unit; returns None when no price is available."""

    def __init__(self, dex: MinswapClient, chain: CardanoClient):
        self.dex = dex
        self.chain = chain
        self._decimals: dict[str, int] = {}

    async def get_token_decimals(self, unit: str) -> int | None:
        """Decimals for a token unit, cached for the life of the process.

        Returns None when the metadata lookup fails. Failures are not cached,
        so the next quote retries the fetch.
        """
        if unit in self._decimals:
            return self._decimals[unit]
        try:
            decimals = await self.chain.get_asset_decimals(unit)
        except Exception as e:
            logger.error(f"Error fetching decimals for {unit[:56]}: {e}")
            return None
        self._decimals[unit] = decimals
        return decimals

    async def get_price(self, pool_id: str, base_token: str | None = None) -> float | None:
        try:
            pool = await self.dex.get_pool_by_id(pool_id)
            if pool is None:
                logger.warning(f"Pool {pool_id} not found")
                return None
            if not pool.is_ada_pair:
                logger.error(f"Pool {pool_id} is not ADA paired")
                return None

            token = pool.token_unit
            if base_token:
                policy_id, asset_name = split_unit(base_token)
                if policy_id + asset_name != token:
                    logger.warning(f"Pool {pool_id} does not hold {base_token}")
                    return None

            reserve_in, reserve_out = pool.reserves_for(token)
            if reserve_in == 0 or reserve_out == 0:
                logger.warning(f"Zero reserves in pool {pool_id}")
                return None

            decimals = await self.get_token_decimals(token)
            if decimals is None:
                return None
            amount_in = PRICE_QUOTE_TOKENS * 10 ** decimals
            amount_out = calculate_swap_exact_in(amount_in, reserve_in, reserve_out)
            if amount_out == 0:
                logger.warning(f"Zero amount out for pool {pool_id}")
                return None

            ada_received = amount_out / LOVELACE_PER_ADA
            return ada_received / PRICE_QUOTE_TOKENS
        except Exception as e:
            logger.error(f"Error calculating price for pool {pool_id}: {e}")
            return None
