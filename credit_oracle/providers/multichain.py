"""Multi-chain aggregation over several Blockscout instances."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List

from credit_oracle.core.context import RequestContext
from credit_oracle.core.exceptions import ProviderError
from credit_oracle.schemas.schemas import OnChainMetrics

from .base import OnChainProvider
from .blockscout import BlockscoutProvider

logger = logging.getLogger(__name__)


class MultiChainProvider(OnChainProvider):
    """
    Combines Blockscout data from a configured set of chains.

    Counts, value and collateral are summed; wallet age is the oldest seen
    on any chain and last activity the most recent. The result only counts
    as usable when at least one transaction was observed somewhere.
    """
    provider_name = "multichain"

    def __init__(self, chain_providers: List[BlockscoutProvider]):
        if not chain_providers:
            raise ValueError("MultiChainProvider needs at least one chain")
        self.chain_providers = chain_providers

    @classmethod
    def from_settings(cls, settings) -> "MultiChainProvider":
        return cls([
            BlockscoutProvider(chain=chain, timeout=settings.provider_timeout_seconds)
            for chain in settings.blockscout_chains
        ])

    def fetch_on_chain(self, address: str, ctx: RequestContext) -> OnChainMetrics:
        ctx.raise_if_cancelled()
        per_chain: Dict[str, OnChainMetrics] = {}
        errors: Dict[str, str] = {}

        with ThreadPoolExecutor(max_workers=len(self.chain_providers)) as pool:
            futures = {
                p.chain: pool.submit(p.fetch_on_chain, address, ctx) for p in self.chain_providers
            }
            for chain, future in futures.items():
                try:
                    per_chain[chain] = future.result()
                except ProviderError as e:
                    errors[chain] = str(e)
                    logger.warning(f"Chain {chain} failed for {address}: {e}")

        ctx.raise_if_cancelled()
        if not per_chain:
            raise ProviderError(f"all chains failed: {errors}", self.provider_name)

        merged = self.merge(per_chain.values())
        if merged.total_transactions == 0:
            raise ProviderError(
                f"no transactions observed on {sorted(per_chain)}", self.provider_name
            )
        logger.info(
            f"Multi-chain data for {address}: {len(per_chain)} chains, "
            f"{merged.total_transactions} transactions"
        )
        return merged

    def merge(self, snapshots) -> OnChainMetrics:
        snapshots = list(snapshots)
        total_tx = sum(s.total_transactions for s in snapshots)
        total_value = sum(s.avg_transaction_value * s.total_transactions for s in snapshots)
        activity = [s.last_activity for s in snapshots if s.last_activity is not None]
        last_activity = max(activity) if activity else None
        return OnChainMetrics(
            wallet_age_days=max((s.wallet_age_days for s in snapshots), default=0),
            total_transactions=total_tx,
            avg_transaction_value=total_value / total_tx if total_tx else 0.0,
            defi_interactions=sum(s.defi_interactions for s in snapshots),
            borrowed_count=sum(s.borrowed_count for s in snapshots),
            repaid_count=sum(s.repaid_count for s in snapshots),
            liquidation_count=sum(s.liquidation_count for s in snapshots),
            collateral_value=sum(s.collateral_value for s in snapshots),
            last_activity=last_activity,
            source=self.provider_name,
        )

    def health_check(self, ctx: RequestContext) -> None:
        failures = []
        for provider in self.chain_providers:
            try:
                provider.health_check(ctx)
            except ProviderError as e:
                failures.append(f"{provider.chain}: {e}")
        if len(failures) == len(self.chain_providers):
            raise ProviderError(f"no chain reachable ({'; '.join(failures)})", self.provider_name)

