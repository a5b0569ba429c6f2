from __future__ import annotations

import hashlib
import random

from credit_oracle.core.context import RequestContext
from credit_oracle.schemas.schemas import BankReport, CreditReport

from .base import BankReportProvider, CreditReportProvider
from .plaid import AccountSummary, summary_to_report

EMPLOYMENT_STATUSES = ("full-time", "full-time", "self-employed", "part-time", "unemployed")


def _rng(user_id: str, stream: str) -> random.Random:
    """Random generator seeded from the user id, stable across processes."""
    digest = hashlib.sha256(f"{stream}:{user_id}".encode("utf-8")).hexdigest()
    return random.Random(int(digest[:16], 16))


class SyntheticCreditReportProvider(CreditReportProvider):
    """Deterministic stand-in for a credit bureau.

    The same user id always yields the same report, so demos and tests are
    reproducible without network access.

    Output ranges:
        credit_score: 560-819
        debt_to_income_ratio: 0.10-0.60
        employment_status: one of EMPLOYMENT_STATUSES
    """

    provider_name = "synthetic"

    def fetch_credit_report(self, user_id: str, ctx: RequestContext) -> CreditReport:
        ctx.raise_if_cancelled()
        rng = _rng(user_id, "credit")
        return CreditReport(
            credit_score=rng.randint(560, 819),
            debt_to_income_ratio=round(rng.uniform(0.10, 0.60), 2),
            employment_status=rng.choice(EMPLOYMENT_STATUSES),
            data_source="credit_bureau_synthetic",
        )

    def health_check(self, ctx: RequestContext) -> None:
        return None


class SyntheticBankReportProvider(BankReportProvider):
    """Deterministic stand-in for bank/income verification, scored like real bank data."""

    provider_name = "synthetic"

    def fetch_bank_report(self, user_id: str, ctx: RequestContext) -> BankReport:
        ctx.raise_if_cancelled()
        rng = _rng(user_id, "bank")
        annual_income = float(rng.randrange(25000, 160000, 500))
        summary = AccountSummary(
            average_balance=round(rng.uniform(200.0, 15000.0), 2),
            account_age_months=rng.randint(3, 120),
            transaction_count=rng.randint(10, 400),
            average_monthly_spend=round(rng.uniform(500.0, 6000.0), 2),
            annual_income=annual_income,
            monthly_income=annual_income / 12,
            income_verified=rng.random() < 0.8,
        )
        return summary_to_report(summary, "bank_synthetic")

    def health_check(self, ctx: RequestContext) -> None:
        return None
