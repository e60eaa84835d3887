"""Wallet custody API: create/import, list, balance, verify, withdraw, remove."""

from fastapi import APIRouter, Depends, HTTPException

from dexbot.api.deps import get_current_user, get_wallet_store, ok, require_wallet_owner
from dexbot.models.user import User
from dexbot.schemas.wallet import WalletImport, WalletWithdraw
from dexbot.services.wallet_store import (
    WalletNotFoundError,
    WalletOwnershipError,
    WalletStore,
    WalletValidationError,
)

router = APIRouter(prefix="/api/wallets", tags=["wallets"])


@router.post("/create", status_code=201)
def create_wallet(
    user: User = Depends(get_current_user),
    wallets: WalletStore = Depends(get_wallet_store),
):
    """Create a custodial wallet. The mnemonic is shown exactly once."""
    try:
        created = wallets.create_wallet(user.wallet_address)
    except WalletValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ok(created, message="Save the mnemonic now; it will not be shown again")


@router.post("/import", status_code=201)
def import_wallet(
    data: WalletImport,
    user: User = Depends(get_current_user),
    wallets: WalletStore = Depends(get_wallet_store),
):
    try:
        imported = wallets.add_wallet(data.mnemonic, user.wallet_address)
    except WalletValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except WalletOwnershipError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ok(imported)


@router.get("")
def list_wallets(
    user: User = Depends(get_current_user),
    wallets: WalletStore = Depends(get_wallet_store),
):
    owned = wallets.get_wallets_by_owner(user.wallet_address)
    return ok(owned, count=len(owned))


@router.get("/{wallet_address}/verify")
def verify_wallet(
    wallet_address: str,
    user: User = Depends(get_current_user),
    wallets: WalletStore = Depends(get_wallet_store),
):
    owned = wallets.verify_wallet_ownership(wallet_address, user.wallet_address)
    return ok({"address": wallet_address, "owned": owned})


@router.get("/{wallet_address}/balance")
async def wallet_balance(
    wallet_address: str,
    user: User = Depends(get_current_user),
    wallets: WalletStore = Depends(get_wallet_store),
):
    require_wallet_owner(wallets, wallet_address, user)
    try:
        balance = await wallets.get_balance(wallet_address)
    except WalletNotFoundError:
        raise HTTPException(status_code=404, detail="Wallet not found")
    return ok(balance)


@router.post("/{wallet_address}/withdraw")
async def withdraw(
    wallet_address: str,
    data: WalletWithdraw,
    user: User = Depends(get_current_user),
    wallets: WalletStore = Depends(get_wallet_store),
):
    try:
        tx_hash = await wallets.withdraw(
            wallet_address,
            user.wallet_address,
            data.to_address,
            data.lovelace,
            data.assets,
        )
    except WalletValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except WalletOwnershipError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return ok({"tx_hash": tx_hash})


@router.delete("/{wallet_address}")
def remove_wallet(
    wallet_address: str,
    user: User = Depends(get_current_user),
    wallets: WalletStore = Depends(get_wallet_store),
):
    try:
        wallets.remove_wallet(wallet_address, user.wallet_address)
    except WalletOwnershipError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return ok({"address": wallet_address})
