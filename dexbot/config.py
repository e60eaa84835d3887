"""Application configuration via environment variables."""

from pathlib import Path
from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    database_url: str = "sqlite:///./dexbot.db"
    encryption_key: str = ""  # 64 hex chars or any passphrase; generate with: python -m dexbot.cli generate-key
    kdf_iterations: int = 100_000
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173"]  # Vite dev server

    # Auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440  # 24 hours
    admin_wallets: list[str] = []  # owner addresses allowed to control the loops

    # Wallet custody
    wallet_dir: str = str(PROJECT_ROOT / "wallets" / "cardano")

    # Chain access
    cardano_network: str = "preprod"
    blockfrost_project_id: str = ""
    blockfrost_url: str = "https://cardano-preprod.blockfrost.io/api"

    # Minswap V1 (testnet deployment)
    minswap_pool_nft_policy: str = "0be55d262b29f564998ff81efe21bdc0022621c12f15af08d0f2ddb1"
    minswap_factory_policy: str = "13aa2accf2e1561723aa26871e071fdf32c867cff7e7d50ad470d62f"
    minswap_lp_policy: str = "e4214b7cce62ac6fbba385d164df48e157eae5863521b4b67ca71d86"
    minswap_order_address: str = "addr_test1wzn9efv2f6w82hagxqtn62ju4m293tqvw0uhmdl64ch8uwc0h43gt"
    minswap_batcher_fee: int = 2_000_000  # lovelace
    minswap_deposit_ada: int = 2_000_000  # lovelace returned with the swap output

    # Execution
    swap_slippage_pct: int = 5
    accumulation_slippage: float = 0.01
    strategy_interval_seconds: int = 30
    order_interval_seconds: int = 10
    autostart_engine: bool = True

    # Telegram
    telegram_bot_token: str = ""
    telegram_chat_ids: list[int] = []

    model_config = {"env_prefix": "DEXBOT_", "env_file": ".env"}


settings = Settings()
