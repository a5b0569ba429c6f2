"""
Runtime configuration loaded from the environment.

Values come from a `.env` file (via python-dotenv) or the process
environment. `get_settings()` builds a Settings object once and caches it;
tests can construct Settings directly with overrides.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DEFAULT_ONCHAIN_PROVIDERS = "multichain,blockscout,analytics,rpc"
DEFAULT_BLOCKSCOUT_CHAINS = "ethereum,polygon,optimism,base,arbitrum"


def _env_bool(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    # Persistence
    database_url: str = "sqlite:///./credit_oracle.db"
    auto_create_tables: bool = True

    # Off-chain data mode: synthetic generators instead of real APIs
    use_mock_data: bool = False

    # On-chain fallback order, first qualifying tier wins
    onchain_providers: List[str] = field(
        default_factory=lambda: DEFAULT_ONCHAIN_PROVIDERS.split(",")
    )
    blockscout_chain: str = "ethereum"
    blockscout_chains: List[str] = field(
        default_factory=lambda: DEFAULT_BLOCKSCOUT_CHAINS.split(",")
    )
    analytics_provider: str = "covalent"
    analytics_api_url: str = "https://api.covalenthq.com/v1"
    analytics_api_key: str = ""
    analytics_chain_id: str = "1"
    ethereum_rpc_url: str = "http://localhost:8545"

    # Off-chain providers
    credit_bureau_api_url: str = "http://localhost:9001"
    credit_bureau_api_key: str = ""
    bank_provider: str = "plaid"
    plaid_api_url: str = "https://sandbox.plaid.com"
    plaid_client_id: str = ""
    plaid_secret: str = ""
    bank_api_url: str = "http://localhost:9002"

    # Oracle publication
    oracle_relayer_url: Optional[str] = None
    contract_address: str = ""

    # Timing / sizing
    provider_timeout_seconds: float = 10.0
    provider_workers: int = 8
    provider_status_ttl_seconds: int = 60
    score_refresh_days: int = 30
    scheduler_batch_size: int = 50
    scheduler_interval_seconds: int = 3600

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./credit_oracle.db"),
            auto_create_tables=_env_bool("AUTO_CREATE_TABLES", "1"),
            use_mock_data=_env_bool("USE_MOCK_DATA", "0"),
            onchain_providers=_env_list("ONCHAIN_PROVIDERS", DEFAULT_ONCHAIN_PROVIDERS),
            blockscout_chain=os.getenv("BLOCKSCOUT_CHAIN", "ethereum"),
            blockscout_chains=_env_list("BLOCKSCOUT_CHAINS", DEFAULT_BLOCKSCOUT_CHAINS),
            analytics_provider=os.getenv("ANALYTICS_PROVIDER", "covalent"),
            analytics_api_url=os.getenv("ANALYTICS_API_URL", "https://api.covalenthq.com/v1"),
            analytics_api_key=os.getenv("ANALYTICS_API_KEY", ""),
            analytics_chain_id=os.getenv("ANALYTICS_CHAIN_ID", "1"),
            ethereum_rpc_url=os.getenv("ETHEREUM_RPC_URL", "http://localhost:8545"),
            credit_bureau_api_url=os.getenv("CREDIT_BUREAU_API_URL", "http://localhost:9001"),
            credit_bureau_api_key=os.getenv("CREDIT_BUREAU_API_KEY", ""),
            bank_provider=os.getenv("BANK_PROVIDER", "plaid"),
            plaid_api_url=os.getenv("PLAID_API_URL", "https://sandbox.plaid.com"),
            plaid_client_id=os.getenv("PLAID_CLIENT_ID", ""),
            plaid_secret=os.getenv("PLAID_SECRET", ""),
            bank_api_url=os.getenv("BANK_API_URL", "http://localhost:9002"),
            oracle_relayer_url=os.getenv("ORACLE_RELAYER_URL") or None,
            contract_address=os.getenv("CONTRACT_ADDRESS", ""),
            provider_timeout_seconds=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10")),
            provider_workers=int(os.getenv("PROVIDER_WORKERS", "8")),
            provider_status_ttl_seconds=int(os.getenv("PROVIDER_STATUS_TTL_SECONDS", "60")),
            score_refresh_days=int(os.getenv("SCORE_REFRESH_DAYS", "30")),
            scheduler_batch_size=int(os.getenv("SCHEDULER_BATCH_SIZE", "50")),
            scheduler_interval_seconds=int(os.getenv("SCHEDULER_INTERVAL_SECONDS", "3600")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


_settings_singleton: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_singleton
    if _settings_singleton is None:
        _settings_singleton = Settings.from_env()
    return _settings_singleton
