"""Custodial wallet store: one encrypted mnemonic per JSON file.

Ownership is never recorded in plaintext for authorization purposes. A caller
owns a wallet exactly when the wallet's mnemonic decrypts under the key derived
from the caller's address.
"""

import json
import logging
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from dexbot.services.cardano_client import CardanoClient, SigningContext
from dexbot.services.encryption import DecryptionError, OwnerScopedCipher
from dexbot.utils.constants import MIN_ADDRESS_LENGTH, VALID_MNEMONIC_LENGTHS

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


class WalletValidationError(ValueError):
    pass


class WalletNotFoundError(LookupError):
    pass


class WalletOwnershipError(PermissionError):
    pass


def validate_address(address: str) -> str:
    address = (address or "").strip()
    if not address.startswith("addr"):
        raise WalletValidationError("Invalid Cardano address format")
    if len(address) < MIN_ADDRESS_LENGTH:
        raise WalletValidationError("Invalid address length")
    return address


def normalize_mnemonic(mnemonic: str) -> str:
    words = (mnemonic or "").strip().split()
    if len(words) not in VALID_MNEMONIC_LENGTHS:
        raise WalletValidationError("Mnemonic must be 12, 15, or 24 words")
    return " ".join(words)


class WalletStore:
    """File-backed custody of mnemonics sealed per owner."""

    def __init__(self, directory: str | Path, cipher: OwnerScopedCipher, chain: CardanoClient):
        self.directory = Path(directory)
        self.cipher = cipher
        self.chain = chain
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, address: str) -> Path:
        return self.directory / f"{_UNSAFE_CHARS.sub('_', address)}.json"

    def _read(self, address: str) -> dict | None:
        path = self._path(address)
        if not path.is_file():
            return None
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, record: dict):
        """Write a record via temp file + rename so readers never see a partial file."""
        path = self._path(record["address"])
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=".wallet-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _store(self, mnemonic: str, owner_address: str) -> str:
        address = self.chain.derive_address(mnemonic)

        existing = self._read(address)
        if existing is not None and not self.verify_wallet_ownership(address, owner_address):
            raise WalletOwnershipError("Wallet is already held for another owner")

        self._write({
            "address": address,
            "network": self.chain.network_name,
            "encryptedMnemonic": self.cipher.encrypt(mnemonic, owner_address),
            "ownerAddress": owner_address,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        })
        logger.info(f"Stored wallet {address[:20]}... for owner {owner_address[:20]}...")
        return address

    # ------------------------------------------------------------------
    # Custody operations
    # ------------------------------------------------------------------

    def create_wallet(self, owner_address: str) -> dict:
        """Generate a new wallet for an owner. The mnemonic is returned only here."""
        owner_address = validate_address(owner_address)
        mnemonic = self.chain.generate_mnemonic()
        address = self._store(mnemonic, owner_address)
        return {"address": address, "mnemonic": mnemonic}

    def add_wallet(self, mnemonic: str, owner_address: str) -> dict:
        """Import an existing mnemonic into custody for an owner."""
        owner_address = validate_address(owner_address)
        mnemonic = normalize_mnemonic(mnemonic)
        if not self.chain.is_valid_mnemonic(mnemonic):
            raise WalletValidationError("Invalid mnemonic")
        return {"address": self._store(mnemonic, owner_address)}

    def verify_wallet_ownership(self, wallet_address: str, owner_address: str) -> bool:
        """True iff the wallet's mnemonic decrypts under the owner's key."""
        try:
            record = self._read(wallet_address)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable wallet file for {wallet_address[:20]}...: {e}")
            return False
        if record is None or not record.get("encryptedMnemonic"):
            return False
        try:
            self.cipher.decrypt(record["encryptedMnemonic"], owner_address)
        except DecryptionError:
            return False
        return True

    def _records(self):
        for path in sorted(self.directory.glob("*.json")):
            try:
                with path.open("r", encoding="utf-8") as f:
                    record = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Skipping unreadable wallet file {path.name}: {e}")
                continue
            if isinstance(record, dict):
                yield record

    def get_wallets_by_owner(self, owner_address: str) -> list[dict]:
        """Every wallet whose mnemonic decrypts under the owner's key."""
        wallets = []
        for record in self._records():
            encrypted = record.get("encryptedMnemonic")
            if not encrypted:
                continue
            try:
                self.cipher.decrypt(encrypted, owner_address)
            except DecryptionError:
                continue
            wallets.append({
                "address": record["address"],
                "network": record.get("network"),
                "created_at": record.get("createdAt"),
            })
        return wallets

    def list_addresses(self) -> list[str]:
        """Addresses of every stored wallet, regardless of owner."""
        return [record["address"] for record in self._records() if "address" in record]

    def load_wallet(self, wallet_address: str) -> SigningContext:
        """Recover signing keys using the owner recorded with the wallet."""
        record = self._read(wallet_address)
        if record is None:
            raise WalletNotFoundError(f"Wallet file not found for {wallet_address}")
        if not record.get("encryptedMnemonic"):
            raise WalletNotFoundError(f"Encrypted mnemonic missing for {wallet_address}")

        mnemonic = self.cipher.decrypt(record["encryptedMnemonic"], record["ownerAddress"])
        signer = self.chain.signing_context(mnemonic)
        if signer.address != wallet_address:
            raise WalletValidationError(
                f"Wallet address mismatch! Expected: {wallet_address}, Got: {signer.address}"
            )
        return signer

    def remove_wallet(self, wallet_address: str, owner_address: str):
        """Irreversibly delete a wallet the owner controls."""
        if not self.verify_wallet_ownership(wallet_address, owner_address):
            raise WalletOwnershipError("Not authorized to use this wallet")
        self._path(wallet_address).unlink()
        logger.warning(f"Removed wallet {wallet_address[:20]}...")

    async def get_balance(self, wallet_address: str) -> dict:
        if self._read(wallet_address) is None:
            raise WalletNotFoundError(f"Wallet not found: {wallet_address}")
        return await self.chain.get_balance(wallet_address)

    async def withdraw(
        self,
        wallet_address: str,
        owner_address: str,
        to_address: str,
        lovelace: int,
        assets: dict[str, int] | None = None,
    ) -> str:
        """Send ADA and tokens out of a custodied wallet the owner controls."""
        to_address = validate_address(to_address)
        if lovelace < 0 or any(q <= 0 for q in (assets or {}).values()):
            raise WalletValidationError("Withdrawal amounts must be positive")
        if lovelace == 0 and not assets:
            raise WalletValidationError("Nothing to withdraw")
        if not self.verify_wallet_ownership(wallet_address, owner_address):
            raise WalletOwnershipError("Not authorized to use this wallet")

        signer = self.load_wallet(wallet_address)
        tx_hash = await self.chain.send_assets(signer, to_address, lovelace, assets)
        logger.info(f"Withdrawal from {wallet_address[:20]}... submitted: {tx_hash}")
        return tx_hash
