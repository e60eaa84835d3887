"""Cardano chain access: key derivation, balances, and transaction submission.

Wraps pycardano (keys, addresses, transaction building) and blockfrost-python
(chain queries). Both are synchronous, so network calls run in the default
executor.
"""

import asyncio
import logging
from dataclasses import dataclass
from functools import partial

from blockfrost import ApiError, BlockFrostApi
from pycardano import (
    Address,
    BlockFrostChainContext,
    HDWallet,
    MultiAsset,
    Network,
    PaymentExtendedSigningKey,
    StakeExtendedSigningKey,
    TransactionBuilder,
    TransactionOutput,
    Value,
)
from pycardano.utils import min_lovelace_post_alonzo

from dexbot.config import settings
from dexbot.utils.constants import ADA_UNIT, LOVELACE_PER_ADA

logger = logging.getLogger(__name__)

# CIP-1852 account 0, first external payment key and the staking key
PAYMENT_PATH = "m/1852'/1815'/0'/0/0"
STAKE_PATH = "m/1852'/1815'/0'/2/0"


@dataclass
class SigningContext:
    """Keys and base address recovered from a custodied mnemonic."""

    address: str
    payment_skey: PaymentExtendedSigningKey
    stake_skey: StakeExtendedSigningKey

    @property
    def signing_keys(self) -> list:
        return [self.payment_skey]


def split_unit(unit: str) -> tuple[str, str]:
    """Split ``policy.name`` or ``policyname`` into (policy_id, asset_name_hex)."""
    if "." in unit:
        policy_id, asset_name = unit.split(".", 1)
    else:
        policy_id, asset_name = unit[:56], unit[56:]
    if len(policy_id) != 56:
        raise ValueError(f"Invalid asset unit: {unit}")
    return policy_id, asset_name


def decode_asset_name(asset_name_hex: str) -> str:
    try:
        return bytes.fromhex(asset_name_hex).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return asset_name_hex


def build_multi_asset(assets: dict[str, int]) -> MultiAsset:
    """Build a pycardano MultiAsset from {unit: quantity}."""
    if not assets:
        return MultiAsset()
    primitive: dict[bytes, dict[bytes, int]] = {}
    for unit, quantity in assets.items():
        policy_id, asset_name = split_unit(unit)
        primitive.setdefault(bytes.fromhex(policy_id), {})[bytes.fromhex(asset_name)] = int(quantity)
    return MultiAsset.from_primitive(primitive)


class CardanoClient:
    """Chain adapter used by wallet custody, the price oracle and swap execution."""

    def __init__(
        self,
        project_id: str,
        base_url: str,
        network: str = "preprod",
    ):
        self.project_id = project_id
        self.base_url = base_url
        self.network = Network.MAINNET if network == "mainnet" else Network.TESTNET
        self.network_name = "mainnet" if network == "mainnet" else "testnet"
        self._api: BlockFrostApi | None = None
        self._context: BlockFrostChainContext | None = None

    @property
    def api(self) -> BlockFrostApi:
        if self._api is None:
            if not self.project_id:
                raise RuntimeError("DEXBOT_BLOCKFROST_PROJECT_ID not set")
            self._api = BlockFrostApi(project_id=self.project_id, base_url=self.base_url)
        return self._api

    @property
    def context(self) -> BlockFrostChainContext:
        if self._context is None:
            if not self.project_id:
                raise RuntimeError("DEXBOT_BLOCKFROST_PROJECT_ID not set")
            self._context = BlockFrostChainContext(self.project_id, base_url=self.base_url)
        return self._context

    async def run_blocking(self, fn, *args, **kwargs):
        # Blockfrost and pycardano are synchronous; keep them off the event loop
        return await asyncio.get_running_loop().run_in_executor(None, partial(fn, *args, **kwargs))

    # ------------------------------------------------------------------
    # Keys and addresses
    # ------------------------------------------------------------------

    @staticmethod
    def generate_mnemonic() -> str:
        """Generate a fresh 24-word BIP-39 mnemonic."""
        return HDWallet.generate_mnemonic(strength=256)

    @staticmethod
    def is_valid_mnemonic(mnemonic: str) -> bool:
        return HDWallet.is_mnemonic(mnemonic)

    def signing_context(self, mnemonic: str) -> SigningContext:
        """Derive payment and stake keys and the base address from a mnemonic."""
        root = HDWallet.from_mnemonic(mnemonic)
        payment_skey = PaymentExtendedSigningKey.from_hdwallet(root.derive_from_path(PAYMENT_PATH))
        stake_skey = StakeExtendedSigningKey.from_hdwallet(root.derive_from_path(STAKE_PATH))
        address = Address(
            payment_part=payment_skey.to_verification_key().hash(),
            staking_part=stake_skey.to_verification_key().hash(),
            network=self.network,
        )
        return SigningContext(address=str(address), payment_skey=payment_skey, stake_skey=stake_skey)

    def derive_address(self, mnemonic: str) -> str:
        return self.signing_context(mnemonic).address

    # ------------------------------------------------------------------
    # Chain queries
    # ------------------------------------------------------------------

    async def get_utxos(self, address: str) -> list:
        return await self.run_blocking(self.context.utxos, address)

    async def get_amounts(self, address: str) -> dict[str, int]:
        """Return {unit: quantity} held at an address; empty for unused addresses."""
        try:
            info = await self.run_blocking(self.api.address, address)
        except ApiError as e:
            if e.status_code == 404:
                return {}
            raise
        return {a.unit: int(a.quantity) for a in info.amount}

    async def get_asset_quantity(self, address: str, unit: str) -> int:
        policy_id, asset_name = split_unit(unit)
        amounts = await self.get_amounts(address)
        return amounts.get(policy_id + asset_name, 0)

    async def get_balance(self, address: str) -> dict:
        """ADA and native asset balance of an address."""
        amounts = await self.get_amounts(address)
        lovelace = amounts.pop(ADA_UNIT, 0)
        assets = []
        for unit, quantity in amounts.items():
            policy_id, asset_name = split_unit(unit)
            assets.append({
                "unit": unit,
                "policy_id": policy_id,
                "asset_name": asset_name,
                "name": decode_asset_name(asset_name),
                "quantity": quantity,
            })
        return {
            "address": address,
            "lovelace": lovelace,
            "ada": lovelace / LOVELACE_PER_ADA,
            "assets": assets,
        }

    async def get_asset_decimals(self, unit: str) -> int:
        """Token decimals from on-chain or registry metadata (0 when absent)."""
        policy_id, asset_name = split_unit(unit)
        info = await self.run_blocking(self.api.asset, policy_id + asset_name)
        for meta in (getattr(info, "onchain_metadata", None), getattr(info, "metadata", None)):
            decimals = getattr(meta, "decimals", None) if meta is not None else None
            if isinstance(decimals, int):
                return decimals
        return 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _build_and_sign(self, signer: SigningContext, outputs: list[tuple]):
        sender = Address.from_primitive(signer.address)
        builder = TransactionBuilder(self.context)
        builder.add_input_address(sender)
        for output, datum in outputs:
            if datum is not None:
                builder.add_output(output, datum=datum, add_datum_to_witness=True)
            else:
                builder.add_output(output)
        return builder.build_and_sign(signer.signing_keys, change_address=sender)

    def _submit(self, signer: SigningContext, outputs: list[tuple]) -> str:
        tx = self._build_and_sign(signer, outputs)
        self.context.submit_tx(tx)
        return str(tx.id)

    async def submit_outputs(self, signer: SigningContext, outputs: list[tuple]) -> str:
        """Build, sign and submit a transaction paying the given (output, datum) pairs."""
        tx_hash = await self.run_blocking(self._submit, signer, outputs)
        logger.info(f"Submitted transaction {tx_hash}")
        return tx_hash

    async def send_assets(
        self,
        signer: SigningContext,
        to_address: str,
        lovelace: int,
        assets: dict[str, int] | None = None,
    ) -> str:
        """Transfer ADA and native assets out of a custodied wallet."""
        output = TransactionOutput(
            Address.from_primitive(to_address),
            Value(lovelace, build_multi_asset(assets or {})),
        )
        if assets:
            # Token outputs must carry at least the protocol minimum ADA
            min_required = min_lovelace_post_alonzo(output, self.context)
            if output.amount.coin < min_required:
                output.amount.coin = min_required
        return await self.submit_outputs(signer, [(output, None)])


_client: CardanoClient | None = None


def get_cardano_client() -> CardanoClient:
    """Return the process-wide chain adapter built from settings."""
    global _client
    if _client is None:
        _client = CardanoClient(
            project_id=settings.blockfrost_project_id,
            base_url=settings.blockfrost_url,
            network=settings.cardano_network,
        )
    return _client
