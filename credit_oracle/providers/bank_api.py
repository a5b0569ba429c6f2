"""Generic bank account-info API provider."""
import logging
from typing import Optional

from credit_oracle.core.context import RequestContext
from credit_oracle.core.exceptions import ProviderError
from credit_oracle.schemas.schemas import BankReport

from .base import BankReportProvider, JsonHttpClient
from .plaid import categorize_income

logger = logging.getLogger(__name__)


class BankApiProvider(BankReportProvider):
    """Fetches `GET {base}/account-info?user_id=...` from an in-house bank gateway."""
    provider_name = "bank_api"

    def __init__(self, base_url: str, timeout: float = 10.0, client: Optional[JsonHttpClient] = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or JsonHttpClient(self.provider_name, timeout)

    @classmethod
    def from_settings(cls, settings) -> "BankApiProvider":
        return cls(settings.bank_api_url, timeout=settings.provider_timeout_seconds)

    def fetch_bank_report(self, user_id: str, ctx: RequestContext) -> BankReport:
        if not user_id:
            raise ProviderError("user id required for bank report", self.provider_name)
        payload = self.client.get_json(f"{self.base_url}/account-info", ctx, params={"user_id": user_id})
        verified = bool(payload.get("income_verified"))
        annual_income = payload.get("annual_income")
        if verified and annual_income is not None:
            level = categorize_income(float(annual_income))
        else:
            level = payload.get("income_level") or "unknown"
        try:
            report = BankReport(
                bank_history_score=min(int(payload.get("account_history_score") or 0), 100),
                income_verified=verified,
                income_level=level,
                employment_status=payload.get("employment_status") or "",
                data_source=self.provider_name,
            )
        except (TypeError, ValueError) as e:
            raise ProviderError("malformed account info", self.provider_name, e)
        logger.info(f"Bank report for {user_id}: history={report.bank_history_score} level={report.income_level}")
        return report

    def health_check(self, ctx: RequestContext) -> None:
        self.client.get_json(f"{self.base_url}/health", ctx)
