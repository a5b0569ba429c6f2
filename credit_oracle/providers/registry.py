"""Provider registry with auto-discovery, and builders for configured provider chains."""
import importlib
import inspect
import pkgutil
from typing import Dict, List, Optional, Tuple, Type

from .base import (
    CATEGORY_BANK_REPORT,
    CATEGORY_CREDIT_REPORT,
    CATEGORY_ONCHAIN,
    BankReportProvider,
    BaseProvider,
    CreditReportProvider,
    OnChainProvider,
)


def _concrete_subclasses(cls):
    for sub in cls.__subclasses__():
        if not inspect.isabstract(sub):
            yield sub
        yield from _concrete_subclasses(sub)


class ProviderRegistry:
    """Registry mapping (category, provider_name) -> provider class."""

    def __init__(self):
        self._providers: Dict[Tuple[str, str], Type[BaseProvider]] = {}

    def register(self, provider_cls: Type[BaseProvider]) -> None:
        name = provider_cls.provider_name
        if not name or name == "unknown":
            raise ValueError(f"Provider {provider_cls.__name__} must define a provider_name")
        if provider_cls.category == "unknown":
            raise ValueError(f"Provider {provider_cls.__name__} must belong to a category")
        self._providers[(provider_cls.category, name)] = provider_cls

    def get(self, category: str, name: str) -> Type[BaseProvider]:
        key = (category, name)
        if key not in self._providers:
            raise KeyError(f"No {category} provider registered as '{name}'")
        return self._providers[key]

    def names(self, category: str) -> List[str]:
        return sorted(name for cat, name in self._providers if cat == category)

    def all(self) -> Dict[Tuple[str, str], Type[BaseProvider]]:
        return dict(self._providers)

    def discover(self) -> int:
        """
        Import every module under credit_oracle.providers and register concrete providers.
        Returns count of providers newly registered.
        """
        import credit_oracle.providers as providers_pkg
        for _, name, _ in pkgutil.iter_modules(providers_pkg.__path__, providers_pkg.__name__ + "."):
            importlib.import_module(name)

        count = 0
        for provider_cls in _concrete_subclasses(BaseProvider):
            key = (provider_cls.category, provider_cls.provider_name)
            if provider_cls.provider_name == "unknown" or key in self._providers:
                continue
            # Only register classes that live in this package; test doubles register explicitly
            if not provider_cls.__module__.startswith(providers_pkg.__name__):
                continue
            self._providers[key] = provider_cls
            count += 1
        return count

    def build(self, category: str, name: str, settings) -> BaseProvider:
        return self.get(category, name).from_settings(settings)

    def build_on_chain_chain(self, settings) -> List[OnChainProvider]:
        """Ordered on-chain fallback tiers. Synthetic data is never an on-chain option."""
        return [self.build(CATEGORY_ONCHAIN, name, settings) for name in settings.onchain_providers]

    def build_off_chain_providers(self, settings) -> Tuple[CreditReportProvider, BankReportProvider]:
        """Credit and bank providers; the synthetic strategy is chosen here and only here."""
        if settings.use_mock_data:
            return (
                self.build(CATEGORY_CREDIT_REPORT, "synthetic", settings),
                self.build(CATEGORY_BANK_REPORT, "synthetic", settings),
            )
        return (
            self.build(CATEGORY_CREDIT_REPORT, "credit_bureau", settings),
            self.build(CATEGORY_BANK_REPORT, settings.bank_provider, settings),
        )


_registry_singleton: Optional[ProviderRegistry] = None


def get_provider_registry() -> ProviderRegistry:
    global _registry_singleton
    if _registry_singleton is None:
        _registry_singleton = ProviderRegistry()
        _registry_singleton.discover()
    return _registry_singleton
