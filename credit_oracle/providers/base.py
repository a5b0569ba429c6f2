"""Base provider interfaces for on-chain and off-chain data sources."""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from credit_oracle.core.context import RequestContext
from credit_oracle.core.exceptions import ProviderError
from credit_oracle.schemas.schemas import BankReport, CreditReport, OnChainMetrics

CATEGORY_ONCHAIN = "onchain"
CATEGORY_CREDIT_REPORT = "credit_report"
CATEGORY_BANK_REPORT = "bank_report"


class BaseProvider(ABC):
    """
    Base class every data provider inherits.

    Each provider declares a unique `provider_name` within its `category`,
    and is constructed from Settings via `from_settings` so the registry can
    build ordered chains from configuration names alone.
    """
    provider_name: str = "unknown"
    category: str = "unknown"

    @classmethod
    def from_settings(cls, settings) -> "BaseProvider":
        return cls()

    @abstractmethod
    def health_check(self, ctx: RequestContext) -> None:
        """Return None when healthy, raise ProviderError otherwise."""
        raise NotImplementedError


class OnChainProvider(BaseProvider):
    category = CATEGORY_ONCHAIN

    @abstractmethod
    def fetch_on_chain(self, address: str, ctx: RequestContext) -> OnChainMetrics:
        """Fetch an on-chain snapshot for `address`. Raises ProviderError on failure."""
        raise NotImplementedError


class CreditReportProvider(BaseProvider):
    category = CATEGORY_CREDIT_REPORT

    @abstractmethod
    def fetch_credit_report(self, user_id: str, ctx: RequestContext) -> CreditReport:
        raise NotImplementedError


class BankReportProvider(BaseProvider):
    category = CATEGORY_BANK_REPORT

    @abstractmethod
    def fetch_bank_report(self, user_id: str, ctx: RequestContext) -> BankReport:
        raise NotImplementedError


class JsonHttpClient:
    """
    Thin requests wrapper shared by the HTTP-backed providers.

    Every call checks the caller's context first, bounds the request by the
    per-call timeout (shortened to the context deadline) and turns transport,
    status and decoding failures into ProviderError.
    """

    def __init__(self, provider_name: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.provider_name = provider_name
        self.timeout = timeout
        self.session = session or requests.Session()

    def request_json(
        self,
        method: str,
        url: str,
        ctx: RequestContext,
        **kwargs,
    ) -> Any:
        ctx.raise_if_cancelled()
        try:
            response = self.session.request(method, url, timeout=ctx.timeout_for(self.timeout), **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout as e:
            raise ProviderError(f"request to {url} timed out", self.provider_name, e)
        except requests.exceptions.ConnectionError as e:
            raise ProviderError(f"cannot connect to {url}", self.provider_name, e)
        except requests.exceptions.HTTPError as e:
            raise ProviderError(f"{method} {url} returned {e.response.status_code}", self.provider_name, e)
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"{method} {url} failed", self.provider_name, e)
        except ValueError as e:
            raise ProviderError(f"invalid JSON from {url}", self.provider_name, e)

    def get_json(self, url: str, ctx: RequestContext, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return self.request_json("GET", url, ctx, params=params, **kwargs)

    def post_json(self, url: str, ctx: RequestContext, payload: Dict[str, Any], **kwargs) -> Any:
        return self.request_json("POST", url, ctx, json=payload, **kwargs)
