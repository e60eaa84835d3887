"""Shared API dependencies."""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session, select

from dexbot.config import settings
from dexbot.database import get_session
from dexbot.engine.manager import TradingEngine
from dexbot.models.user import User
from dexbot.services.auth import decode_access_token
from dexbot.services.wallet_store import WalletStore

bearer_scheme = HTTPBearer()


def ok(data=None, **extra) -> dict:
    """Success envelope shared by every endpoint."""
    return {"success": True, "data": data, **extra}


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User:
    """Validate JWT and return the current user."""
    wallet_address = decode_access_token(credentials.credentials)
    if wallet_address is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    user = session.exec(select(User).where(User.wallet_address == wallet_address)).first()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def get_engine(request: Request) -> TradingEngine:
    return request.app.state.engine


def get_wallet_store(request: Request) -> WalletStore:
    return request.app.state.wallets


def require_wallet_owner(wallets: WalletStore, wallet_address: str, user: User):
    """403 unless the wallet's mnemonic decrypts under the caller's key."""
    if not wallets.verify_wallet_ownership(wallet_address, user.wallet_address):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to use this wallet",
        )


def owned_wallet_addresses(wallets: WalletStore, user: User) -> set[str]:
    return {w["address"] for w in wallets.get_wallets_by_owner(user.wallet_address)}


def is_admin(user: User) -> bool:
    return user.wallet_address in settings.admin_wallets


def require_admin(user: User = Depends(get_current_user)) -> User:
    """403 unless the caller is on the operator allow-list."""
    if not is_admin(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Operator access required",
        )
    return user
