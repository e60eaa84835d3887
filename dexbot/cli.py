"""CLI tool for admin operations.

Usage:
    python -m dexbot.cli generate-key
    python -m dexbot.cli create-user <wallet_address>
    python -m dexbot.cli issue-token <wallet_address>
    python -m dexbot.cli list-wallets <owner_address>
    python -m dexbot.cli list-addresses
"""

import secrets
import sys

from sqlmodel import Session, select

from dexbot.config import settings
from dexbot.database import engine, create_db_and_tables
from dexbot.models.user import User
from dexbot.services.auth import create_access_token
from dexbot.services.wallet_store import WalletValidationError, validate_address


def generate_key():
    """Print a fresh 64-hex master encryption key."""
    print(secrets.token_hex(32))


def create_user(wallet_address: str):
    """Register a user identified by their own wallet address and print a token."""
    create_db_and_tables()
    try:
        wallet_address = validate_address(wallet_address)
    except WalletValidationError as e:
        print(f"Invalid address: {e}")
        sys.exit(1)

    with Session(engine) as session:
        existing = session.exec(select(User).where(User.wallet_address == wallet_address)).first()
        if existing:
            print(f"User '{wallet_address}' already exists.")
            sys.exit(1)
        session.add(User(wallet_address=wallet_address))
        session.commit()

    print(f"User '{wallet_address}' created.")
    print(f"\nAccess token ({settings.jwt_expire_minutes} min):")
    print(create_access_token(subject=wallet_address))


def issue_token(wallet_address: str):
    """Print a new access token for an existing active user."""
    with Session(engine) as session:
        user = session.exec(select(User).where(User.wallet_address == wallet_address)).first()
    if user is None or not user.is_active:
        print(f"No active user '{wallet_address}'.")
        sys.exit(1)
    print(create_access_token(subject=wallet_address))


def _wallet_store():
    from dexbot.services.cardano_client import get_cardano_client
    from dexbot.services.encryption import get_cipher
    from dexbot.services.wallet_store import WalletStore

    return WalletStore(settings.wallet_dir, get_cipher(), get_cardano_client())


def list_wallets(owner_address: str):
    """List custodial wallets that decrypt under an owner's key."""
    owned = _wallet_store().get_wallets_by_owner(owner_address)
    if not owned:
        print("No wallets.")
        return
    for wallet in owned:
        print(f"{wallet['address']}  {wallet['network']}  {wallet['created_at']}")


def list_addresses():
    """Print every custodial wallet address on disk, without decrypting anything."""
    for address in _wallet_store().list_addresses():
        print(address)


COMMANDS = {
    "generate-key": (generate_key, 0),
    "create-user": (create_user, 1),
    "issue-token": (issue_token, 1),
    "list-wallets": (list_wallets, 1),
    "list-addresses": (list_addresses, 0),
}


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m dexbot.cli <command> [args]")
        print(f"Commands: {', '.join(COMMANDS)}")
        sys.exit(1)

    command = sys.argv[1]
    if command not in COMMANDS:
        print(f"Unknown command: {command}")
        sys.exit(1)

    fn, arity = COMMANDS[command]
    args = sys.argv[2:]
    if len(args) != arity:
        print(f"{command} expects {arity} argument(s)")
        sys.exit(1)
    fn(*args)


if __name__ == "__main__":
    main()
