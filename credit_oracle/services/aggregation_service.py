"""
Aggregation Service - Canonical Metrics Resolution

Resolves the on-chain and off-chain snapshots for one request:

- On-chain: ordered fallback tiers, tried one at a time; the first tier that
  returns usable data wins and results are never merged across tiers. If
  every tier fails the request fails.
- Off-chain: credit report and bank report fetched concurrently; either may
  fail without affecting the other. If both fail the snapshot is None.

Every provider call runs on a shared worker pool and is bounded by a per-call
timeout. The caller's RequestContext is checked before each step; once it is
cancelled or its deadline passes, CancellationError is raised instead of
moving on to the next tier.
"""
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from credit_oracle.cache import TTLCache, generate_provider_status_key
from credit_oracle.core.context import RequestContext, utcnow
from credit_oracle.core.exceptions import OracleError, ProviderError
from credit_oracle.providers.base import (
    BankReportProvider,
    BaseProvider,
    CreditReportProvider,
    OnChainProvider,
)
from credit_oracle.providers.registry import ProviderRegistry, get_provider_registry
from credit_oracle.schemas.schemas import BankReport, CreditReport, OffChainMetrics, OnChainMetrics

logger = logging.getLogger(__name__)

# How often a waiting caller re-checks its context for cancellation
POLL_INTERVAL_SECONDS = 0.05


@dataclass
class _PendingCall:
    name: str
    future: Future
    deadline: float
    finished_at: Optional[float] = None

    def _mark_finished(self, _future: Future) -> None:
        self.finished_at = time.monotonic()

    def finished_in_time(self) -> bool:
        if not self.future.done():
            return False
        finished_at = self.finished_at if self.finished_at is not None else time.monotonic()
        return finished_at <= self.deadline


class MetricsAggregator:
    """Resolves metric snapshots across configured providers."""

    def __init__(
        self,
        on_chain_providers: List[OnChainProvider],
        credit_provider: CreditReportProvider,
        bank_provider: BankReportProvider,
        timeout_seconds: float = 10.0,
        max_workers: int = 8,
        status_cache: Optional[TTLCache] = None,
    ):
        if not on_chain_providers:
            raise ValueError("at least one on-chain provider is required")
        self.on_chain_providers = list(on_chain_providers)
        self.credit_provider = credit_provider
        self.bank_provider = bank_provider
        self.timeout_seconds = timeout_seconds
        self.status_cache = status_cache or TTLCache(ttl_seconds=60)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="provider")

    @classmethod
    def from_settings(cls, settings, registry: Optional[ProviderRegistry] = None) -> "MetricsAggregator":
        registry = registry or get_provider_registry()
        credit, bank = registry.build_off_chain_providers(settings)
        return cls(
            on_chain_providers=registry.build_on_chain_chain(settings),
            credit_provider=credit,
            bank_provider=bank,
            timeout_seconds=settings.provider_timeout_seconds,
            max_workers=settings.provider_workers,
            status_cache=TTLCache(ttl_seconds=settings.provider_status_ttl_seconds),
        )

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    # ----- provider call plumbing -----

    def _start(self, name: str, fn: Callable, *args, ctx: RequestContext) -> _PendingCall:
        ctx.raise_if_cancelled()
        future = self._pool.submit(fn, *args, ctx)
        call = _PendingCall(name, future, time.monotonic() + ctx.timeout_for(self.timeout_seconds))
        future.add_done_callback(call._mark_finished)
        return call

    def _await(self, call: _PendingCall, ctx: RequestContext):
        while True:
            ctx.raise_if_cancelled()
            # Off-chain calls are collected after the on-chain fallback; one that
            # finished before its deadline still counts
            if call.finished_in_time():
                return self._result(call)
            remaining = call.deadline - time.monotonic()
            if remaining <= 0:
                break
            wait([call.future], timeout=min(remaining, POLL_INTERVAL_SECONDS))

        call.future.cancel()
        ctx.raise_if_cancelled()
        raise ProviderError(f"timed out after {self.timeout_seconds}s", call.name)

    def _result(self, call: _PendingCall):
        try:
            return call.future.result()
        except OracleError:
            raise
        except Exception as e:
            # Provider bugs count as that provider's failure, not the request's
            raise ProviderError(f"unexpected {type(e).__name__}", call.name, e)

    def _call(self, name: str, fn: Callable, *args, ctx: RequestContext):
        return self._await(self._start(name, fn, *args, ctx=ctx), ctx)

    # ----- on-chain -----

    def fetch_on_chain(self, address: str, ctx: Optional[RequestContext] = None) -> OnChainMetrics:
        ctx = ctx or RequestContext.background()
        failures: List[str] = []

        for provider in self.on_chain_providers:
            ctx.raise_if_cancelled()
            try:
                metrics = self._call(provider.provider_name, provider.fetch_on_chain, address, ctx=ctx)
            except ProviderError as e:
                failures.append(str(e))
                logger.warning(f"On-chain tier '{provider.provider_name}' failed for {address}: {e}")
                continue
            logger.info(f"On-chain metrics for {address} resolved by '{provider.provider_name}'")
            return metrics

        raise ProviderError(
            f"all on-chain providers failed for {address}: {'; '.join(failures)}", "onchain"
        )

    # ----- off-chain -----

    def _start_off_chain(self, user_id: str, ctx: RequestContext) -> Tuple[_PendingCall, _PendingCall]:
        credit = self._start(
            f"credit_report:{self.credit_provider.provider_name}",
            self.credit_provider.fetch_credit_report, user_id, ctx=ctx,
        )
        bank = self._start(
            f"bank_report:{self.bank_provider.provider_name}",
            self.bank_provider.fetch_bank_report, user_id, ctx=ctx,
        )
        return credit, bank

    def _collect_off_chain(
        self, calls: Tuple[_PendingCall, _PendingCall], user_id: str, ctx: RequestContext
    ) -> Optional[OffChainMetrics]:
        reports = []
        for call in calls:
            try:
                reports.append(self._await(call, ctx))
            except ProviderError as e:
                logger.warning(f"Off-chain source {call.name} failed for user {user_id!r}: {e}")
                reports.append(None)
        credit, bank = reports
        return self.merge_off_chain(credit, bank)

    def merge_off_chain(
        self, credit: Optional[CreditReport], bank: Optional[BankReport]
    ) -> Optional[OffChainMetrics]:
        if credit is None and bank is None:
            return None
        sources = [r.data_source for r in (credit, bank) if r is not None]
        employment = (credit.employment_status if credit else "") or (bank.employment_status if bank else "")
        return OffChainMetrics(
            traditional_credit_score=credit.credit_score if credit else 0,
            debt_to_income_ratio=credit.debt_to_income_ratio if credit else None,
            bank_history_score=bank.bank_history_score if bank else 0,
            income_verified=bank.income_verified if bank else False,
            income_level=bank.income_level if bank else "unknown",
            employment_status=employment,
            data_source="+".join(sources),
            last_verified=utcnow(),
        )

    def fetch_off_chain(
        self, user_id: str, address: str, ctx: Optional[RequestContext] = None
    ) -> Optional[OffChainMetrics]:
        ctx = ctx or RequestContext.background()
        metrics = self._collect_off_chain(self._start_off_chain(user_id, ctx), user_id, ctx)
        if metrics is None:
            logger.warning(f"No off-chain data for {address} (user {user_id!r})")
        return metrics

    # ----- combined -----

    def resolve(
        self, address: str, user_id: str, ctx: Optional[RequestContext] = None
    ) -> Tuple[OnChainMetrics, Optional[OffChainMetrics]]:
        """On-chain and off-chain resolution overlapped; on-chain failure is fatal."""
        ctx = ctx or RequestContext.background()
        off_chain_calls = self._start_off_chain(user_id, ctx)
        try:
            on_chain = self.fetch_on_chain(address, ctx)
        except OracleError:
            for call in off_chain_calls:
                call.future.cancel()
            raise
        off_chain = self._collect_off_chain(off_chain_calls, user_id, ctx)
        return on_chain, off_chain

    # ----- health -----

    def _all_providers(self) -> List[BaseProvider]:
        return [*self.on_chain_providers, self.credit_provider, self.bank_provider]

    def clear_provider_status(self, category: Optional[str] = None) -> int:
        """Drop cached health results so the next status call probes again."""
        prefix = f"provider:{category}:" if category else "provider:"
        return self.status_cache.clear_prefix(prefix)

    def provider_status(self, ctx: Optional[RequestContext] = None) -> Dict[str, str]:
        """Map of '<category>:<name>' -> 'healthy' or 'error: ...', cached briefly."""
        ctx = ctx or RequestContext.background()
        status: Dict[str, str] = {}
        for provider in self._all_providers():
            label = f"{provider.category}:{provider.provider_name}"
            key = generate_provider_status_key(provider.provider_name, provider.category)
            cached = self.status_cache.get(key)
            if cached is None:
                try:
                    self._call(label, provider.health_check, ctx=ctx)
                    cached = "healthy"
                except ProviderError as e:
                    cached = f"error: {e}"
                self.status_cache.set(key, cached)
            status[label] = cached
        return status
