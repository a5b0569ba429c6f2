"""Providers package: data source interfaces, implementations and the registry."""
from .base import (
    BankReportProvider,
    BaseProvider,
    CreditReportProvider,
    JsonHttpClient,
    OnChainProvider,
)
from .registry import ProviderRegistry, get_provider_registry

__all__ = [
    "BaseProvider",
    "OnChainProvider",
    "CreditReportProvider",
    "BankReportProvider",
    "JsonHttpClient",
    "ProviderRegistry",
    "get_provider_registry",
]
