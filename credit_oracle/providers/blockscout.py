"""Blockscout explorer API provider (single chain)."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from credit_oracle.core.context import RequestContext, utcnow
from credit_oracle.core.exceptions import ProviderError
from credit_oracle.schemas.schemas import OnChainMetrics

from .base import JsonHttpClient, OnChainProvider

logger = logging.getLogger(__name__)

WEI_PER_ETH = 1e18
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
NO_TRANSACTIONS = "No transactions found"

SUPPORTED_BLOCKSCOUT_CHAINS: Dict[str, str] = {
    "ethereum": "https://eth.blockscout.com",
    "polygon": "https://polygon.blockscout.com",
    "gnosis": "https://gnosis.blockscout.com",
    "optimism": "https://optimism.blockscout.com",
    "base": "https://base.blockscout.com",
    "arbitrum": "https://arbitrum.blockscout.com",
    "zksync": "https://zksync.blockscout.com",
    "scroll": "https://scroll.blockscout.com",
}


def _pick(item: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    # Blockscout instances mix etherscan-style camelCase and snake_case keys
    for key in keys:
        if item.get(key) not in (None, ""):
            return item[key]
    return default


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _from_unix(value: Any) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)
    except (TypeError, ValueError, OverflowError):
        return None


class BlockscoutProvider(OnChainProvider):
    """
    Reads account data from one chain's Blockscout instance.

    Uses the etherscan-compatible `/api?module=account` endpoints:
    `txlist` is required; `balance`, `tokenlist` and `txlistinternal` are
    best effort.
    """
    provider_name = "blockscout"

    def __init__(
        self,
        chain: str = "ethereum",
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        page_size: int = 100,
        client: Optional[JsonHttpClient] = None,
    ):
        if base_url is None:
            if chain not in SUPPORTED_BLOCKSCOUT_CHAINS:
                raise ValueError(f"Unsupported Blockscout chain '{chain}'")
            base_url = SUPPORTED_BLOCKSCOUT_CHAINS[chain]
        self.chain = chain
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.client = client or JsonHttpClient(f"{self.provider_name}:{chain}", timeout)

    @classmethod
    def from_settings(cls, settings) -> "BlockscoutProvider":
        return cls(chain=settings.blockscout_chain, timeout=settings.provider_timeout_seconds)

    def _account_call(self, action: str, address: str, ctx: RequestContext, **params) -> Dict[str, Any]:
        query = {"module": "account", "action": action, "address": address, **params}
        return self.client.get_json(f"{self.base_url}/api", ctx, params=query)

    def get_balance(self, address: str, ctx: RequestContext) -> float:
        """Native balance in ETH."""
        payload = self._account_call("balance", address, ctx)
        if payload.get("status") != "1":
            raise ProviderError(f"balance lookup failed: {payload.get('message')}", self.client.provider_name)
        return _to_float(payload.get("result")) / WEI_PER_ETH

    def get_transactions(self, address: str, ctx: RequestContext) -> List[Dict[str, Any]]:
        """Most recent transactions, newest first."""
        payload = self._account_call(
            "txlist", address, ctx, page=1, offset=self.page_size, sort="desc"
        )
        if payload.get("status") != "1":
            if payload.get("message") == NO_TRANSACTIONS:
                return []
            raise ProviderError(f"txlist failed: {payload.get('message')}", self.client.provider_name)
        return payload.get("result") or []

    def get_token_balances(self, address: str, ctx: RequestContext) -> List[Dict[str, Any]]:
        payload = self._account_call("tokenlist", address, ctx)
        if payload.get("status") != "1":
            return []
        return payload.get("result") or []

    def get_internal_transactions(self, address: str, ctx: RequestContext) -> List[Dict[str, Any]]:
        """Contract-initiated transfers involving `address`, newest first."""
        payload = self._account_call(
            "txlistinternal", address, ctx, page=1, offset=self.page_size, sort="desc"
        )
        if payload.get("status") != "1":
            return []
        return payload.get("result") or []

    def fetch_on_chain(self, address: str, ctx: RequestContext) -> OnChainMetrics:
        transactions = self.get_transactions(address, ctx)

        balance = 0.0
        try:
            balance = self.get_balance(address, ctx)
        except ProviderError as e:
            logger.warning(f"Blockscout balance unavailable for {address} on {self.chain}: {e}")

        metrics = self.summarize(transactions, balance)
        logger.info(
            f"Blockscout {self.chain}: {address} tx={metrics.total_transactions} "
            f"age={metrics.wallet_age_days}d defi={metrics.defi_interactions}"
        )
        return metrics

    def summarize(self, transactions: List[Dict[str, Any]], balance_eth: float) -> OnChainMetrics:
        """Convert a newest-first transaction page and a balance into a snapshot."""
        if not transactions:
            return OnChainMetrics(collateral_value=balance_eth, source=self.provider_name)

        timestamps = [
            ts for ts in (_from_unix(_pick(tx, "timeStamp", "timestamp")) for tx in transactions)
            if ts is not None
        ]
        first_seen = min(timestamps) if timestamps else None
        last_seen = max(timestamps) if timestamps else None

        total_value = sum(_to_float(_pick(tx, "value", default=0)) for tx in transactions) / WEI_PER_ETH
        defi = sum(
            1 for tx in transactions
            if _pick(tx, "to") and _pick(tx, "functionName", "function_name")
        )

        age_days = (utcnow() - first_seen).days if first_seen else 0
        return OnChainMetrics(
            wallet_age_days=max(age_days, 0),
            total_transactions=len(transactions),
            avg_transaction_value=total_value / len(transactions),
            defi_interactions=defi,
            collateral_value=balance_eth,
            last_activity=last_seen,
            source=self.provider_name,
        )

    def health_check(self, ctx: RequestContext) -> None:
        self._account_call("balance", ZERO_ADDRESS, ctx)
