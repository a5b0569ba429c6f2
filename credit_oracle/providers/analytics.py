"""Secondary blockchain analytics provider (Covalent or Moralis)."""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from credit_oracle.core.context import RequestContext
from credit_oracle.core.exceptions import ProviderError
from credit_oracle.schemas.schemas import OnChainMetrics

from .base import JsonHttpClient, OnChainProvider

logger = logging.getLogger(__name__)

# Lending positions above this health factor count as being serviced
HEALTHY_POSITION_FACTOR = 1.5


@dataclass
class LendingPosition:
    protocol: str
    borrowed_amount: float = 0.0
    collateral_amount: float = 0.0
    health_factor: float = 0.0


@dataclass
class BlockchainSummary:
    """Provider-neutral portfolio summary before conversion to OnChainMetrics."""
    address: str
    wallet_age_days: int = 0
    total_transactions: int = 0
    average_transaction_size: float = 0.0
    last_transaction: Optional[datetime] = None
    defi_activity_count: int = 0
    lending_positions: List[LendingPosition] = field(default_factory=list)
    liquidation_count: int = 0
    token_balances: Dict[str, float] = field(default_factory=dict)
    total_portfolio_value: float = 0.0

    def to_metrics(self, source: str) -> OnChainMetrics:
        borrowed = [p for p in self.lending_positions if p.borrowed_amount > 0]
        repaid = [p for p in borrowed if p.health_factor > HEALTHY_POSITION_FACTOR]
        return OnChainMetrics(
            wallet_age_days=self.wallet_age_days,
            total_transactions=self.total_transactions,
            avg_transaction_value=self.average_transaction_size,
            defi_interactions=self.defi_activity_count,
            borrowed_count=len(borrowed),
            repaid_count=len(repaid),
            liquidation_count=self.liquidation_count,
            collateral_value=self.total_portfolio_value,
            last_activity=self.last_transaction,
            source=source,
        )


class AnalyticsProvider(OnChainProvider):
    """
    Portfolio data from a hosted analytics API.

    Covalent: GET {base}/{chain_id}/address/{address}/balances_v2/
    Moralis:  GET {base}/{address}/erc20?chain={chain_id}
    """
    provider_name = "analytics"
    SUPPORTED = ("covalent", "moralis")

    def __init__(
        self,
        vendor: str = "covalent",
        base_url: str = "https://api.covalenthq.com/v1",
        api_key: str = "",
        chain_id: str = "1",
        timeout: float = 10.0,
        client: Optional[JsonHttpClient] = None,
    ):
        if vendor not in self.SUPPORTED:
            raise ValueError(f"Unsupported analytics vendor '{vendor}'")
        self.vendor = vendor
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.chain_id = chain_id
        self.client = client or JsonHttpClient(f"{self.provider_name}:{vendor}", timeout)

    @classmethod
    def from_settings(cls, settings) -> "AnalyticsProvider":
        return cls(
            vendor=settings.analytics_provider,
            base_url=settings.analytics_api_url,
            api_key=settings.analytics_api_key,
            chain_id=settings.analytics_chain_id,
            timeout=settings.provider_timeout_seconds,
        )

    def get_summary(self, address: str, ctx: RequestContext) -> BlockchainSummary:
        if not self.api_key:
            raise ProviderError("no API key configured", self.provider_name)
        if self.vendor == "covalent":
            return self._fetch_covalent(address, ctx)
        return self._fetch_moralis(address, ctx)

    def _fetch_covalent(self, address: str, ctx: RequestContext) -> BlockchainSummary:
        url = f"{self.base_url}/{self.chain_id}/address/{address}/balances_v2/"
        payload = self.client.get_json(
            url, ctx, headers={"Authorization": f"Bearer {self.api_key}"}
        )
        items: List[Dict[str, Any]] = (payload.get("data") or {}).get("items") or []
        balances = {
            item.get("contract_ticker_symbol") or "?": float(item.get("quote") or 0.0)
            for item in items
        }
        return BlockchainSummary(
            address=address,
            token_balances=balances,
            total_portfolio_value=sum(balances.values()),
        )

    def _fetch_moralis(self, address: str, ctx: RequestContext) -> BlockchainSummary:
        url = f"{self.base_url}/{address}/erc20"
        tokens = self.client.get_json(
            url, ctx, params={"chain": self.chain_id}, headers={"X-API-Key": self.api_key}
        )
        if not isinstance(tokens, list):
            raise ProviderError("unexpected Moralis payload", self.provider_name)
        # Moralis erc20 listing carries no fiat quote
        return BlockchainSummary(
            address=address,
            token_balances={t.get("symbol") or "?": 0.0 for t in tokens},
        )

    def fetch_on_chain(self, address: str, ctx: RequestContext) -> OnChainMetrics:
        summary = self.get_summary(address, ctx)
        logger.info(
            f"{self.vendor} summary for {address}: "
            f"{len(summary.token_balances)} tokens, portfolio={summary.total_portfolio_value:.2f}"
        )
        return summary.to_metrics(self.provider_name)

    def health_check(self, ctx: RequestContext) -> None:
        if not self.api_key:
            raise ProviderError("no API key configured", self.provider_name)
