"""Credit bureau report provider."""
import logging
from typing import Optional

from credit_oracle.core.context import RequestContext
from credit_oracle.core.exceptions import ProviderError
from credit_oracle.schemas.schemas import CreditReport

from .base import CreditReportProvider, JsonHttpClient

logger = logging.getLogger(__name__)


class CreditBureauProvider(CreditReportProvider):
    """Fetches `GET {base}/v1/credit-reports/{user_id}` with a bearer token."""
    provider_name = "credit_bureau"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        client: Optional[JsonHttpClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.client = client or JsonHttpClient(self.provider_name, timeout)

    @classmethod
    def from_settings(cls, settings) -> "CreditBureauProvider":
        return cls(
            settings.credit_bureau_api_url,
            api_key=settings.credit_bureau_api_key,
            timeout=settings.provider_timeout_seconds,
        )

    def _headers(self):
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def fetch_credit_report(self, user_id: str, ctx: RequestContext) -> CreditReport:
        if not user_id:
            raise ProviderError("user id required for credit report", self.provider_name)
        payload = self.client.get_json(
            f"{self.base_url}/v1/credit-reports/{user_id}", ctx, headers=self._headers()
        )
        try:
            report = CreditReport(
                credit_score=int(payload.get("credit_score") or 0),
                debt_to_income_ratio=payload.get("debt_to_income_ratio"),
                employment_status=payload.get("employment_status") or "",
                data_source=payload.get("data_source") or self.provider_name,
            )
        except (TypeError, ValueError) as e:
            raise ProviderError("malformed credit report", self.provider_name, e)
        logger.info(f"Credit report for {user_id}: score={report.credit_score}")
        return report

    def health_check(self, ctx: RequestContext) -> None:
        self.client.get_json(f"{self.base_url}/health", ctx, headers=self._headers())
