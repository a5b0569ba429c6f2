"""Plaid bank and income provider, plus the bank-history scoring shared by bank sources."""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from credit_oracle.core.context import RequestContext, utcnow
from credit_oracle.core.exceptions import ProviderError
from credit_oracle.schemas.schemas import BankReport

from .base import BankReportProvider, JsonHttpClient

logger = logging.getLogger(__name__)

TRANSACTION_WINDOW_DAYS = 90


@dataclass
class AccountSummary:
    """Aggregate view of a user's bank accounts used for scoring."""
    average_balance: float = 0.0
    account_age_months: int = 0
    transaction_count: int = 0
    average_monthly_spend: float = 0.0
    annual_income: float = 0.0
    monthly_income: float = 0.0
    income_verified: bool = False
    employment_status: str = ""


def categorize_income(annual_income: float) -> str:
    if annual_income >= 100000:
        return "high"
    if annual_income >= 50000:
        return "medium"
    return "low"


def calculate_bank_score(summary: AccountSummary) -> int:
    """
    Score bank history on 0-100.

    Account age up to 30 points (full at 36 months), average balance up to 25
    (full at 5000), transaction count up to 20 (full at 100) and savings rate
    up to 25 (full at 20% of monthly income).
    """
    score = 0.0
    score += min(summary.account_age_months / 36, 1.0) * 30
    score += min(summary.average_balance / 5000, 1.0) * 25
    score += min(summary.transaction_count / 100, 1.0) * 20

    if summary.monthly_income > 0:
        savings_rate = (summary.average_balance - summary.average_monthly_spend) / summary.monthly_income
        if savings_rate >= 0.20:
            score += 25
        elif savings_rate > 0:
            score += savings_rate / 0.20 * 25

    return int(min(score, 100))


def summary_to_report(summary: AccountSummary, data_source: str) -> BankReport:
    return BankReport(
        bank_history_score=calculate_bank_score(summary),
        income_verified=summary.income_verified,
        income_level=categorize_income(summary.annual_income) if summary.income_verified else "unknown",
        employment_status=summary.employment_status,
        data_source=data_source,
    )


class PlaidProvider(BankReportProvider):
    """
    Reads balances, 90 days of transactions and income from Plaid.

    Plaid calls are keyed by an access token rather than a user id;
    `token_resolver` maps the requesting user id to a token (identity by
    default, i.e. the caller passes the access token as the user id).
    """
    provider_name = "plaid"

    def __init__(
        self,
        base_url: str,
        client_id: str,
        secret: str,
        timeout: float = 10.0,
        token_resolver: Optional[Callable[[str], Optional[str]]] = None,
        client: Optional[JsonHttpClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.secret = secret
        self.token_resolver = token_resolver or (lambda user_id: user_id or None)
        self.client = client or JsonHttpClient(self.provider_name, timeout)

    @classmethod
    def from_settings(cls, settings) -> "PlaidProvider":
        return cls(
            settings.plaid_api_url,
            settings.plaid_client_id,
            settings.plaid_secret,
            timeout=settings.provider_timeout_seconds,
        )

    def _post(self, path: str, ctx: RequestContext, access_token: str, **extra) -> Dict[str, Any]:
        body = {
            "client_id": self.client_id,
            "secret": self.secret,
            "access_token": access_token,
            **extra,
        }
        return self.client.post_json(f"{self.base_url}{path}", ctx, body)

    def get_accounts(self, access_token: str, ctx: RequestContext) -> List[Dict[str, Any]]:
        return self._post("/accounts/balance/get", ctx, access_token).get("accounts") or []

    def get_transactions(self, access_token: str, ctx: RequestContext) -> List[Dict[str, Any]]:
        today = utcnow().date()
        payload = self._post(
            "/transactions/get",
            ctx,
            access_token,
            start_date=(today - timedelta(days=TRANSACTION_WINDOW_DAYS)).isoformat(),
            end_date=today.isoformat(),
        )
        return payload.get("transactions") or []

    def get_income(self, access_token: str, ctx: RequestContext) -> Dict[str, Any]:
        return self._post("/income/get", ctx, access_token).get("income") or {}

    def fetch_bank_report(self, user_id: str, ctx: RequestContext) -> BankReport:
        if not self.client_id or not self.secret:
            raise ProviderError("Plaid credentials not configured", self.provider_name)
        access_token = self.token_resolver(user_id)
        if not access_token:
            raise ProviderError(f"no Plaid access token for user {user_id!r}", self.provider_name)

        accounts = self.get_accounts(access_token, ctx)
        transactions = self.get_transactions(access_token, ctx)
        try:
            income = self.get_income(access_token, ctx)
        except ProviderError as e:
            # Income product is optional on many Plaid items
            logger.warning(f"Plaid income unavailable for {user_id}: {e}")
            income = {}

        summary = self.summarize(accounts, transactions, income)
        return summary_to_report(summary, self.provider_name)

    def summarize(
        self,
        accounts: List[Dict[str, Any]],
        transactions: List[Dict[str, Any]],
        income: Dict[str, Any],
    ) -> AccountSummary:
        balances = [float((a.get("balances") or {}).get("current") or 0.0) for a in accounts]
        # Positive amounts are debits in Plaid's convention
        spend = sum(float(t.get("amount") or 0.0) for t in transactions if float(t.get("amount") or 0.0) > 0)
        streams = income.get("income_streams") or []
        annual = float(income.get("projected_yearly_income") or 0.0)
        return AccountSummary(
            average_balance=sum(balances) / len(balances) if balances else 0.0,
            # Item creation dates are not exposed by balance/get
            account_age_months=24,
            transaction_count=len(transactions),
            average_monthly_spend=spend / (TRANSACTION_WINDOW_DAYS / 30),
            annual_income=annual,
            monthly_income=float(streams[0].get("monthly_income") or 0.0) if streams else annual / 12,
            income_verified=annual > 0,
        )

    def health_check(self, ctx: RequestContext) -> None:
        # Plaid has no health endpoint; credentials are the only precondition
        if not self.client_id or not self.secret:
            raise ProviderError("Plaid credentials not configured", self.provider_name)
