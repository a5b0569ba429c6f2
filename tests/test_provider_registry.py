"""Unit tests for ProviderRegistry auto-discovery and the BaseProvider contract."""
import pytest

from credit_oracle.config.settings import Settings
from credit_oracle.providers import OnChainProvider, ProviderRegistry, get_provider_registry
from credit_oracle.providers.base import CATEGORY_BANK_REPORT, CATEGORY_CREDIT_REPORT, CATEGORY_ONCHAIN
from credit_oracle.providers.blockscout import BlockscoutProvider
from credit_oracle.providers.multichain import MultiChainProvider
from credit_oracle.providers.plaid import PlaidProvider
from credit_oracle.providers.synthetic import SyntheticBankReportProvider, SyntheticCreditReportProvider


class DummyProvider(OnChainProvider):
    provider_name = "dummy"

    def fetch_on_chain(self, address, ctx):
        raise NotImplementedError

    def health_check(self, ctx):
        return None


class NamelessProvider(OnChainProvider):
    def fetch_on_chain(self, address, ctx):
        raise NotImplementedError

    def health_check(self, ctx):
        return None


def test_register_and_get_provider():
    registry = ProviderRegistry()
    registry.register(DummyProvider)
    assert registry.get(CATEGORY_ONCHAIN, "dummy") is DummyProvider
    assert registry.names(CATEGORY_ONCHAIN) == ["dummy"]


def test_register_requires_a_name():
    with pytest.raises(ValueError):
        ProviderRegistry().register(NamelessProvider)


def test_get_unknown_provider_raises():
    with pytest.raises(KeyError):
        ProviderRegistry().get(CATEGORY_ONCHAIN, "unknown")


def test_discover_finds_package_providers_only():
    registry = ProviderRegistry()
    assert registry.discover() > 0

    assert registry.names(CATEGORY_ONCHAIN) == ["analytics", "blockscout", "multichain", "rpc"]
    assert registry.names(CATEGORY_CREDIT_REPORT) == ["credit_bureau", "synthetic"]
    assert registry.names(CATEGORY_BANK_REPORT) == ["bank_api", "plaid", "synthetic"]


def test_same_name_in_different_categories():
    registry = get_provider_registry()
    assert registry.get(CATEGORY_CREDIT_REPORT, "synthetic") is SyntheticCreditReportProvider
    assert registry.get(CATEGORY_BANK_REPORT, "synthetic") is SyntheticBankReportProvider


def test_synthetic_is_never_an_on_chain_tier():
    with pytest.raises(KeyError):
        get_provider_registry().get(CATEGORY_ONCHAIN, "synthetic")


def test_build_on_chain_chain_follows_configured_order():
    settings = Settings(onchain_providers=["blockscout", "multichain"], blockscout_chains=["ethereum", "base"])
    chain = get_provider_registry().build_on_chain_chain(settings)

    assert isinstance(chain[0], BlockscoutProvider)
    assert isinstance(chain[1], MultiChainProvider)
    assert [p.chain for p in chain[1].chain_providers] == ["ethereum", "base"]


def test_build_off_chain_providers_uses_configured_bank():
    credit, bank = get_provider_registry().build_off_chain_providers(Settings(bank_provider="plaid"))
    assert credit.provider_name == "credit_bureau"
    assert isinstance(bank, PlaidProvider)


def test_singleton_registry():
    assert get_provider_registry() is get_provider_registry()
