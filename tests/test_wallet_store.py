"""Tests for custodial wallet storage and decryption-based ownership."""

import json

import pytest

from dexbot.services.wallet_store import (
    WalletNotFoundError,
    WalletOwnershipError,
    WalletStore,
    WalletValidationError,
    validate_address,
)

from conftest import MNEMONIC_12, MNEMONIC_24, OWNER_X, OWNER_Y


@pytest.fixture
def store(tmp_path, cipher, chain):
    return WalletStore(tmp_path / "wallets", cipher, chain)


# ---------------------------------------------------------------------------
# 1. Validation
# ---------------------------------------------------------------------------

class TestValidation:
    def test_valid_address(self):
        assert validate_address(f"  {OWNER_X} ") == OWNER_X

    def test_address_must_start_with_addr(self):
        with pytest.raises(WalletValidationError):
            validate_address("stake_test1" + "u" * 60)

    def test_address_too_short(self):
        with pytest.raises(WalletValidationError):
            validate_address("addr_test1short")

    @pytest.mark.parametrize("words", [11, 13, 18, 23, 25])
    def test_mnemonic_word_count_rejected(self, store, words):
        with pytest.raises(WalletValidationError):
            store.add_wallet(" ".join(["abandon"] * words), OWNER_X)

    def test_invalid_mnemonic_checksum_rejected(self, store, chain):
        chain.is_valid_mnemonic = lambda m: False
        with pytest.raises(WalletValidationError):
            store.add_wallet(MNEMONIC_12, OWNER_X)


# ---------------------------------------------------------------------------
# 2. Create / import
# ---------------------------------------------------------------------------

class TestCreateAndImport:
    def test_create_returns_mnemonic_once(self, store, chain):
        created = store.create_wallet(OWNER_X)
        assert created["address"] == chain.derive_address(created["mnemonic"])
        assert len(created["mnemonic"].split()) == 24

    def test_record_file_layout(self, store):
        created = store.create_wallet(OWNER_X)
        files = list(store.directory.glob("*.json"))
        assert len(files) == 1
        record = json.loads(files[0].read_text())
        assert set(record) == {"address", "network", "encryptedMnemonic", "ownerAddress", "createdAt"}
        assert record["address"] == created["address"]
        assert record["ownerAddress"] == OWNER_X
        assert created["mnemonic"] not in files[0].read_text()

    def test_no_temp_files_left_behind(self, store):
        store.create_wallet(OWNER_X)
        assert [p.name for p in store.directory.iterdir() if p.name.endswith(".tmp")] == []

    def test_file_name_is_sanitized(self, store):
        path = store._path("addr/../../etc:passwd")
        assert path.parent == store.directory
        assert path.name == "addr_______etc_passwd.json"

    def test_import_normalizes_whitespace(self, store, chain):
        imported = store.add_wallet("  " + MNEMONIC_24.replace(" ", "   ") + "\n", OWNER_X)
        assert imported["address"] == chain.derive_address(MNEMONIC_24)

    def test_reimport_by_same_owner_allowed(self, store):
        first = store.add_wallet(MNEMONIC_12, OWNER_X)
        second = store.add_wallet(MNEMONIC_12, OWNER_X)
        assert first == second

    def test_reimport_by_other_owner_rejected(self, store):
        store.add_wallet(MNEMONIC_12, OWNER_X)
        with pytest.raises(WalletOwnershipError):
            store.add_wallet(MNEMONIC_12, OWNER_Y)

    def test_owner_address_validated(self, store):
        with pytest.raises(WalletValidationError):
            store.create_wallet("not-an-address")


# ---------------------------------------------------------------------------
# 3. Ownership
# ---------------------------------------------------------------------------

class TestOwnership:
    def test_verify_matches_owner_only(self, store):
        address = store.create_wallet(OWNER_X)["address"]
        assert store.verify_wallet_ownership(address, OWNER_X) is True
        assert store.verify_wallet_ownership(address, OWNER_Y) is False

    def test_verify_missing_wallet_is_false(self, store):
        assert store.verify_wallet_ownership("addr_test1q" + "0" * 60, OWNER_X) is False

    def test_verify_corrupt_file_is_false(self, store):
        address = store.create_wallet(OWNER_X)["address"]
        store._path(address).write_text("{not json")
        assert store.verify_wallet_ownership(address, OWNER_X) is False

    def test_ownership_ignores_plaintext_owner_field(self, store):
        address = store.create_wallet(OWNER_X)["address"]
        path = store._path(address)
        record = json.loads(path.read_text())
        record["ownerAddress"] = OWNER_Y
        path.write_text(json.dumps(record))
        assert store.verify_wallet_ownership(address, OWNER_Y) is False
        assert store.verify_wallet_ownership(address, OWNER_X) is True

    def test_list_by_owner_with_intermixed_owners(self, store):
        x_wallets = {store.create_wallet(OWNER_X)["address"] for _ in range(3)}
        y_wallets = {store.create_wallet(OWNER_Y)["address"] for _ in range(2)}

        listed_x = {w["address"] for w in store.get_wallets_by_owner(OWNER_X)}
        listed_y = {w["address"] for w in store.get_wallets_by_owner(OWNER_Y)}

        assert listed_x == x_wallets
        assert listed_y == y_wallets
        assert store.get_wallets_by_owner("addr_test1qnobody" + "n" * 60) == []

    def test_list_skips_unreadable_files(self, store):
        address = store.create_wallet(OWNER_X)["address"]
        (store.directory / "garbage.json").write_text("][")
        assert [w["address"] for w in store.get_wallets_by_owner(OWNER_X)] == [address]

    def test_list_addresses_spans_owners(self, store):
        mine = store.create_wallet(OWNER_X)["address"]
        theirs = store.create_wallet(OWNER_Y)["address"]
        (store.directory / "garbage.json").write_text("][")
        assert sorted(store.list_addresses()) == sorted([mine, theirs])


# ---------------------------------------------------------------------------
# 4. Load / remove / balance / withdraw
# ---------------------------------------------------------------------------

class TestWalletOperations:
    def test_load_wallet_uses_recorded_owner(self, store):
        address = store.create_wallet(OWNER_X)["address"]
        signer = store.load_wallet(address)
        assert signer.address == address

    def test_load_missing_wallet(self, store):
        with pytest.raises(WalletNotFoundError):
            store.load_wallet("addr_test1q" + "0" * 60)

    def test_remove_requires_ownership(self, store):
        address = store.create_wallet(OWNER_X)["address"]
        with pytest.raises(WalletOwnershipError):
            store.remove_wallet(address, OWNER_Y)
        store.remove_wallet(address, OWNER_X)
        assert store.verify_wallet_ownership(address, OWNER_X) is False

    @pytest.mark.asyncio
    async def test_balance_of_unknown_wallet(self, store):
        with pytest.raises(WalletNotFoundError):
            await store.get_balance("addr_test1q" + "0" * 60)

    @pytest.mark.asyncio
    async def test_balance_delegates_to_chain(self, store, chain):
        address = store.create_wallet(OWNER_X)["address"]
        balance = await store.get_balance(address)
        assert balance["ada"] == 5.0
        chain.get_balance.assert_awaited_once_with(address)

    @pytest.mark.asyncio
    async def test_withdraw_by_owner(self, store, chain):
        address = store.create_wallet(OWNER_X)["address"]
        tx = await store.withdraw(address, OWNER_X, OWNER_Y, 2_000_000, {"ab" * 28 + ".4d494e": 5})
        assert tx == "tx-withdraw"
        signer, to_address, lovelace, assets = chain.send_assets.await_args.args
        assert signer.address == address
        assert (to_address, lovelace) == (OWNER_Y, 2_000_000)

    @pytest.mark.asyncio
    async def test_withdraw_by_other_owner_forbidden(self, store, chain):
        address = store.create_wallet(OWNER_X)["address"]
        with pytest.raises(WalletOwnershipError):
            await store.withdraw(address, OWNER_Y, OWNER_Y, 1_000_000)
        chain.send_assets.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_withdraw_nothing_rejected(self, store):
        address = store.create_wallet(OWNER_X)["address"]
        with pytest.raises(WalletValidationError):
            await store.withdraw(address, OWNER_X, OWNER_Y, 0)
