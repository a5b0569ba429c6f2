"""Tests for on-chain fallback and off-chain resolution in MetricsAggregator."""
import time
from unittest.mock import Mock

import pytest

from credit_oracle.config.settings import Settings
from credit_oracle.core.context import RequestContext
from credit_oracle.core.exceptions import CancellationError, ProviderError
from credit_oracle.providers.multichain import MultiChainProvider
from credit_oracle.providers.registry import get_provider_registry
from credit_oracle.schemas.schemas import OnChainMetrics
from credit_oracle.services.aggregation_service import MetricsAggregator

from fakes import (
    VALID_ADDRESS,
    FakeBankProvider,
    FakeCreditProvider,
    FakeOnChainProvider,
    strong_on_chain,
)


def make_aggregator(tiers, credit=None, bank=None, timeout=2.0):
    return MetricsAggregator(
        on_chain_providers=tiers,
        credit_provider=credit or FakeCreditProvider(),
        bank_provider=bank or FakeBankProvider(),
        timeout_seconds=timeout,
        max_workers=4,
    )


def _chain(name, total_transactions=0, error=None):
    stub = Mock(chain=name)
    if error is not None:
        stub.fetch_on_chain.side_effect = error
    else:
        stub.fetch_on_chain.return_value = OnChainMetrics(
            total_transactions=total_transactions, avg_transaction_value=10.0, source=f"blockscout:{name}"
        )
    return stub


class TestOnChainFallback:

    def test_first_successful_tier_wins(self):
        first = FakeOnChainProvider("multichain", error=ProviderError("down", "multichain"))
        second = FakeOnChainProvider("blockscout")
        third = FakeOnChainProvider("rpc")
        aggregator = make_aggregator([first, second, third])
        try:
            metrics = aggregator.fetch_on_chain(VALID_ADDRESS)
        finally:
            aggregator.close()

        assert metrics.source == "blockscout"
        assert first.calls == [VALID_ADDRESS]
        assert second.calls == [VALID_ADDRESS]
        assert third.calls == []

    def test_all_tiers_failing_raises_provider_error(self):
        tiers = [
            FakeOnChainProvider(name, error=ProviderError("down", name))
            for name in ("multichain", "blockscout", "rpc")
        ]
        aggregator = make_aggregator(tiers)
        try:
            with pytest.raises(ProviderError) as exc:
                aggregator.fetch_on_chain(VALID_ADDRESS)
        finally:
            aggregator.close()
        assert exc.value.provider_name == "onchain"
        assert all(len(t.calls) == 1 for t in tiers)

    def test_unexpected_exception_counts_as_tier_failure(self):
        broken = FakeOnChainProvider("analytics", error=KeyError("items"))
        backup = FakeOnChainProvider("rpc")
        aggregator = make_aggregator([broken, backup])
        try:
            assert aggregator.fetch_on_chain(VALID_ADDRESS).source == "rpc"
        finally:
            aggregator.close()

    def test_slow_tier_times_out_and_next_tier_runs(self):
        slow = FakeOnChainProvider("multichain", delay=1.0)
        fast = FakeOnChainProvider("rpc")
        aggregator = make_aggregator([slow, fast], timeout=0.1)
        try:
            metrics = aggregator.fetch_on_chain(VALID_ADDRESS)
        finally:
            aggregator.close()
        assert metrics.source == "rpc"

    def test_cancelled_context_stops_before_any_tier(self):
        tier = FakeOnChainProvider("blockscout")
        aggregator = make_aggregator([tier])
        ctx = RequestContext.background()
        ctx.cancel()
        try:
            with pytest.raises(CancellationError):
                aggregator.fetch_on_chain(VALID_ADDRESS, ctx)
        finally:
            aggregator.close()
        assert tier.calls == []

    def test_deadline_during_tier_does_not_advance_fallback(self):
        slow = FakeOnChainProvider("multichain", delay=1.0)
        never = FakeOnChainProvider("rpc")
        aggregator = make_aggregator([slow, never], timeout=5.0)
        started = time.monotonic()
        try:
            with pytest.raises(CancellationError):
                aggregator.fetch_on_chain(VALID_ADDRESS, RequestContext.with_timeout(0.1))
        finally:
            aggregator.close()
        assert time.monotonic() - started < 1.0
        assert never.calls == []


class TestMultiChain:

    def test_zero_transactions_everywhere_is_not_usable(self):
        provider = MultiChainProvider([_chain("ethereum"), _chain("polygon")])
        with pytest.raises(ProviderError, match="no transactions"):
            provider.fetch_on_chain(VALID_ADDRESS, RequestContext.background())

    def test_zero_transaction_multichain_falls_through_to_next_tier(self):
        multichain = MultiChainProvider([_chain("ethereum"), _chain("polygon")])
        backup = FakeOnChainProvider("blockscout")
        aggregator = make_aggregator([multichain, backup])
        try:
            assert aggregator.fetch_on_chain(VALID_ADDRESS).source == "blockscout"
        finally:
            aggregator.close()

    def test_merges_successful_chains_and_ignores_failed_ones(self):
        provider = MultiChainProvider([
            _chain("ethereum", total_transactions=4),
            _chain("polygon", error=ProviderError("down", "blockscout:polygon")),
            _chain("base", total_transactions=6),
        ])
        metrics = provider.fetch_on_chain(VALID_ADDRESS, RequestContext.background())
        assert metrics.total_transactions == 10
        assert metrics.avg_transaction_value == pytest.approx(10.0)
        assert metrics.source == "multichain"

    def test_all_chains_failing(self):
        provider = MultiChainProvider([
            _chain("ethereum", error=ProviderError("down", "blockscout:ethereum")),
        ])
        with pytest.raises(ProviderError, match="all chains failed"):
            provider.fetch_on_chain(VALID_ADDRESS, RequestContext.background())


class TestOffChain:

    def setup_method(self):
        self.tiers = [FakeOnChainProvider("blockscout")]

    def test_both_sources_merge(self):
        aggregator = make_aggregator(self.tiers)
        try:
            metrics = aggregator.fetch_off_chain("user-1", VALID_ADDRESS)
        finally:
            aggregator.close()
        assert metrics.traditional_credit_score == 750
        assert metrics.bank_history_score == 90
        assert metrics.income_verified is True
        assert metrics.data_source == "fake_bureau+fake_bank"
        assert metrics.last_verified is not None

    def test_credit_failure_keeps_bank_data(self):
        credit = FakeCreditProvider(error=ProviderError("down", "credit_bureau"))
        aggregator = make_aggregator(self.tiers, credit=credit)
        try:
            metrics = aggregator.fetch_off_chain("user-1", VALID_ADDRESS)
        finally:
            aggregator.close()
        assert metrics.traditional_credit_score == 0
        assert metrics.debt_to_income_ratio is None
        assert metrics.bank_history_score == 90

    def test_both_failing_yields_none(self):
        aggregator = make_aggregator(
            self.tiers,
            credit=FakeCreditProvider(error=ProviderError("down", "credit_bureau")),
            bank=FakeBankProvider(error=ProviderError("down", "plaid")),
        )
        try:
            assert aggregator.fetch_off_chain("user-1", VALID_ADDRESS) is None
        finally:
            aggregator.close()

    def test_sources_are_fetched_concurrently(self):
        aggregator = make_aggregator(
            self.tiers, credit=FakeCreditProvider(delay=0.3), bank=FakeBankProvider(delay=0.3)
        )
        started = time.monotonic()
        try:
            aggregator.fetch_off_chain("user-1", VALID_ADDRESS)
        finally:
            aggregator.close()
        assert time.monotonic() - started < 0.55

    def test_resolve_returns_both_snapshots(self):
        credit = FakeCreditProvider()
        aggregator = make_aggregator(self.tiers, credit=credit)
        try:
            on_chain, off_chain = aggregator.resolve(VALID_ADDRESS, "user-7")
        finally:
            aggregator.close()
        assert on_chain.total_transactions == strong_on_chain().total_transactions
        assert off_chain is not None
        assert credit.calls == ["user-7"]

    def test_resolve_keeps_off_chain_data_when_on_chain_fallback_runs_long(self):
        tiers = [FakeOnChainProvider("multichain", delay=1.2), FakeOnChainProvider("blockscout")]
        aggregator = make_aggregator(tiers, timeout=1.0)
        try:
            on_chain, off_chain = aggregator.resolve(VALID_ADDRESS, "user-1")
        finally:
            aggregator.close()
        assert on_chain.source == "blockscout"
        assert off_chain is not None
        assert off_chain.traditional_credit_score == 750
        assert off_chain.bank_history_score == 90

    def test_off_chain_source_finishing_after_its_deadline_still_times_out(self):
        tiers = [FakeOnChainProvider("multichain", delay=3.0), FakeOnChainProvider("blockscout", delay=0.5)]
        aggregator = make_aggregator(tiers, credit=FakeCreditProvider(delay=1.2), timeout=1.0)
        try:
            on_chain, off_chain = aggregator.resolve(VALID_ADDRESS, "user-1")
        finally:
            aggregator.close()
        assert on_chain.source == "blockscout"
        assert off_chain.traditional_credit_score == 0
        assert off_chain.bank_history_score == 90

    def test_resolve_propagates_on_chain_failure(self):
        tiers = [FakeOnChainProvider("rpc", error=ProviderError("down", "rpc"))]
        aggregator = make_aggregator(tiers)
        try:
            with pytest.raises(ProviderError):
                aggregator.resolve(VALID_ADDRESS, "user-7")
        finally:
            aggregator.close()


class TestProviderStatus:

    def test_status_is_cached(self):
        healthy = FakeOnChainProvider("blockscout")
        broken = FakeOnChainProvider("rpc", error=ProviderError("down", "rpc"))
        aggregator = make_aggregator([healthy, broken])
        aggregator._call = Mock(wraps=aggregator._call)
        try:
            first = aggregator.provider_status()
            second = aggregator.provider_status()
        finally:
            aggregator.close()

        assert first == second
        assert first["onchain:blockscout"] == "healthy"
        assert first["onchain:rpc"].startswith("error:")
        assert first["credit_report:fake_credit"] == "healthy"
        assert aggregator._call.call_count == 4

    def test_clear_provider_status_forces_a_new_probe(self):
        aggregator = make_aggregator([FakeOnChainProvider("blockscout")])
        aggregator._call = Mock(wraps=aggregator._call)
        try:
            aggregator.provider_status()
            assert aggregator.clear_provider_status("onchain") == 1
            aggregator.provider_status()
        finally:
            aggregator.close()

        # three probes first, then only the on-chain one again
        assert aggregator._call.call_count == 4


class TestFromSettings:

    def test_mock_flag_only_swaps_off_chain_sources(self):
        settings = Settings(use_mock_data=True, onchain_providers=["blockscout", "rpc"])
        aggregator = MetricsAggregator.from_settings(settings, get_provider_registry())
        try:
            assert [p.provider_name for p in aggregator.on_chain_providers] == ["blockscout", "rpc"]
            assert aggregator.credit_provider.provider_name == "synthetic"
            assert aggregator.bank_provider.provider_name == "synthetic"
        finally:
            aggregator.close()

    def test_real_off_chain_sources_by_default(self):
        settings = Settings(onchain_providers=["rpc"], bank_provider="bank_api")
        aggregator = MetricsAggregator.from_settings(settings, get_provider_registry())
        try:
            assert aggregator.credit_provider.provider_name == "credit_bureau"
            assert aggregator.bank_provider.provider_name == "bank_api"
        finally:
            aggregator.close()
