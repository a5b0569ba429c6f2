"""
Scorecard Configuration - Fixed Heuristic Weights

Weights and normalization caps for the three score components. They are
heuristics, not fitted values; `validate_weights()` guards against a weight
being edited without rebalancing the rest of its component.
"""
import math
from typing import Any, Dict

MIN_SCORE = 300
MAX_SCORE = 850
SCORE_SPAN = MAX_SCORE - MIN_SCORE

# Composite blend of the three components
COMPOSITE_WEIGHTS: Dict[str, float] = {
    'on_chain': 0.40,
    'off_chain': 0.40,
    'hybrid': 0.20,
}

# On-chain component
ON_CHAIN_WEIGHTS: Dict[str, float] = {
    'wallet_age': 0.25,
    'activity': 0.20,
    'defi': 0.15,
    'borrowing': 0.30,
    'collateral': 0.10,
}

# Off-chain component
OFF_CHAIN_WEIGHTS: Dict[str, float] = {
    'traditional_score': 0.50,
    'bank_history': 0.20,
    'income': 0.15,
    'dti': 0.15,
}

# Hybrid component bonuses (additive, clamped to 1.0, so no sum invariant)
HYBRID_BONUSES: Dict[str, float] = {
    'repayment_with_income': 0.30,
    'recent_activity': 0.20,
    'collateral_with_income': 0.25,
    'stable_employment': 0.25,
}

# Normalization caps: value at which a signal saturates to 1.0
NORMALIZATION: Dict[str, Any] = {
    'wallet_age_days': 730,
    'tx_count': 100,
    'avg_tx_value': 1000,
    'activity_tx_share': 0.6,
    'activity_value_share': 0.4,
    'defi_interactions': 50,
    'collateral_value': 10000,
    'liquidation_penalty': 0.2,
    'neutral_borrowing': 0.5,
}

INCOME_SCORES: Dict[str, float] = {
    'high': 1.0,
    'medium': 0.7,
    'low': 0.5,
}
UNVERIFIED_INCOME_SCORE = 0.3

# (upper bound inclusive, score); anything above the last bound gets DTI_FLOOR
DTI_BUCKETS = (
    (0.36, 1.0),
    (0.43, 0.7),
    (0.50, 0.4),
)
DTI_FLOOR = 0.2

HYBRID_THRESHOLDS: Dict[str, Any] = {
    'min_repaid_loans': 5,
    'recent_activity_days': 30,
    'min_collateral': 1000,
    'stable_employment': ('full-time', 'self-employed'),
}

CONFIDENCE_POINTS: Dict[str, int] = {
    'activity_within_week': 20,
    'activity_within_month': 10,
    'many_transactions': 15,
    'has_borrowed': 15,
    'has_traditional_score': 25,
    'income_verified': 15,
    'recently_verified': 10,
}
CONFIDENCE_MIN_TRANSACTIONS = 10

SCORE_REFRESH_DAYS = 30

WEIGHT_GROUPS = {
    'composite': COMPOSITE_WEIGHTS,
    'on_chain': ON_CHAIN_WEIGHTS,
    'off_chain': OFF_CHAIN_WEIGHTS,
}


def validate_weights() -> None:
    """Raise ValueError if any weighted component does not sum to 1.0."""
    for group, weights in WEIGHT_GROUPS.items():
        total = sum(weights.values())
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"{group} weights sum to {total}, expected 1.0")


validate_weights()
