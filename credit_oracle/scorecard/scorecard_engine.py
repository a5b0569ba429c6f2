"""
Scorecard Engine - Composite Credit Score Computation

Turns an on-chain snapshot and/or an off-chain snapshot into:
- three component scores (on-chain, off-chain, hybrid), each in [300, 850]
- a composite score blended from the components
- a confidence value in [0, 100]
- a SHA-256 data hash binding the score to its inputs

Pure computation: no I/O and no shared state. Missing snapshots never raise,
each component has a floor value instead.
"""
import hashlib
import json
from datetime import datetime, timedelta, timezone
from typing import Optional

from credit_oracle.core.context import utcnow
from credit_oracle.core.exceptions import ScoreRangeError
from credit_oracle.schemas.schemas import OffChainMetrics, OnChainMetrics, ScoreResult
from credit_oracle.scorecard import scorecard_config as cfg


def _cap(value: float, max_value: float) -> float:
    return min(float(value) / max_value, 1.0)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _age(timestamp: Optional[datetime], now: datetime) -> Optional[timedelta]:
    timestamp = _as_naive_utc(timestamp)
    if timestamp is None:
        return None
    return now - timestamp


def scale_component(normalized: float) -> int:
    """Map a [0, 1] sub-score onto [300, 850], truncating toward the floor."""
    return cfg.MIN_SCORE + int(_clamp(normalized, 0.0, 1.0) * cfg.SCORE_SPAN)


# ----- On-chain signals -----

def score_wallet_age(age_days: float) -> float:
    return _cap(max(age_days, 0), cfg.NORMALIZATION['wallet_age_days'])


def score_activity(tx_count: float, avg_tx_value: float) -> float:
    n = cfg.NORMALIZATION
    return (
        n['activity_tx_share'] * _cap(max(tx_count, 0), n['tx_count'])
        + n['activity_value_share'] * _cap(max(avg_tx_value, 0), n['avg_tx_value'])
    )


def score_defi(defi_interactions: float) -> float:
    return _cap(max(defi_interactions, 0), cfg.NORMALIZATION['defi_interactions'])


def score_borrowing(borrowed: int, repaid: int, liquidations: int) -> float:
    if borrowed == 0:
        return cfg.NORMALIZATION['neutral_borrowing']
    ratio = repaid / borrowed - cfg.NORMALIZATION['liquidation_penalty'] * liquidations
    return _clamp(ratio, 0.0, 1.0)


def score_collateral(collateral_value: float) -> float:
    return _cap(max(collateral_value, 0), cfg.NORMALIZATION['collateral_value'])


# ----- Off-chain signals -----

def score_traditional_credit(score: int) -> float:
    if score <= 0:
        return 0.0
    return _clamp((score - cfg.MIN_SCORE) / cfg.SCORE_SPAN, 0.0, 1.0)


def score_bank_history(bank_history_score: int) -> float:
    return _clamp(bank_history_score / 100, 0.0, 1.0)


def score_income(income_verified: bool, income_level: str) -> float:
    if not income_verified:
        return cfg.UNVERIFIED_INCOME_SCORE
    return cfg.INCOME_SCORES.get(income_level, cfg.UNVERIFIED_INCOME_SCORE)


def score_dti(dti: Optional[float]) -> float:
    # Unknown DTI earns nothing beyond the floor
    if dti is None:
        return cfg.DTI_FLOOR
    for upper, value in cfg.DTI_BUCKETS:
        if dti <= upper:
            return value
    return cfg.DTI_FLOOR


def validate_score(score: int) -> None:
    """Reject scores outside [300, 850] at persistence or publication boundaries."""
    if score < cfg.MIN_SCORE or score > cfg.MAX_SCORE:
        raise ScoreRangeError(score, cfg.MIN_SCORE, cfg.MAX_SCORE)


class ScoringEngine:
    """Computes composite credit scores from metric snapshots."""

    def calculate_score(
        self,
        on_chain: Optional[OnChainMetrics] = None,
        off_chain: Optional[OffChainMetrics] = None,
        computed_at: Optional[datetime] = None,
    ) -> ScoreResult:
        now = _as_naive_utc(computed_at) or utcnow()

        on_score = self.on_chain_score(on_chain)
        off_score = self.off_chain_score(off_chain)
        hybrid = self.hybrid_score(on_chain, off_chain, now)

        w = cfg.COMPOSITE_WEIGHTS
        raw = w['on_chain'] * on_score + w['off_chain'] * off_score + w['hybrid'] * hybrid
        composite = int(_clamp(int(raw), cfg.MIN_SCORE, cfg.MAX_SCORE))

        return ScoreResult(
            score=composite,
            on_chain_score=on_score,
            off_chain_score=off_score,
            hybrid_score=hybrid,
            confidence=self.confidence(on_chain, off_chain, now),
            data_hash=self.data_hash(on_chain, off_chain, composite, now),
            computed_at=now,
        )

    def on_chain_score(self, metrics: Optional[OnChainMetrics]) -> int:
        if metrics is None:
            return cfg.MIN_SCORE
        w = cfg.ON_CHAIN_WEIGHTS
        normalized = (
            w['wallet_age'] * score_wallet_age(metrics.wallet_age_days)
            + w['activity'] * score_activity(metrics.total_transactions, metrics.avg_transaction_value)
            + w['defi'] * score_defi(metrics.defi_interactions)
            + w['borrowing'] * score_borrowing(
                metrics.borrowed_count, metrics.repaid_count, metrics.liquidation_count
            )
            + w['collateral'] * score_collateral(metrics.collateral_value)
        )
        return scale_component(normalized)

    def off_chain_score(self, metrics: Optional[OffChainMetrics]) -> int:
        if metrics is None:
            return cfg.MIN_SCORE
        w = cfg.OFF_CHAIN_WEIGHTS
        normalized = (
            w['traditional_score'] * score_traditional_credit(metrics.traditional_credit_score)
            + w['bank_history'] * score_bank_history(metrics.bank_history_score)
            + w['income'] * score_income(metrics.income_verified, metrics.income_level)
            + w['dti'] * score_dti(metrics.debt_to_income_ratio)
        )
        return scale_component(normalized)

    def hybrid_score(
        self,
        on_chain: Optional[OnChainMetrics],
        off_chain: Optional[OffChainMetrics],
        now: datetime,
    ) -> int:
        if on_chain is None or off_chain is None:
            return cfg.MIN_SCORE

        bonus = cfg.HYBRID_BONUSES
        limits = cfg.HYBRID_THRESHOLDS
        total = 0.0

        if on_chain.repaid_count > limits['min_repaid_loans'] and off_chain.income_verified:
            total += bonus['repayment_with_income']

        activity_age = _age(on_chain.last_activity, now)
        if activity_age is not None and activity_age < timedelta(days=limits['recent_activity_days']):
            total += bonus['recent_activity']

        if on_chain.collateral_value > limits['min_collateral'] and off_chain.income_verified:
            total += bonus['collateral_with_income']

        if off_chain.employment_status in limits['stable_employment']:
            total += bonus['stable_employment']

        return scale_component(total)

    def confidence(
        self,
        on_chain: Optional[OnChainMetrics],
        off_chain: Optional[OffChainMetrics],
        now: datetime,
    ) -> int:
        points = cfg.CONFIDENCE_POINTS
        total = 0

        if on_chain is not None:
            activity_age = _age(on_chain.last_activity, now)
            if activity_age is not None:
                if activity_age < timedelta(days=7):
                    total += points['activity_within_week']
                elif activity_age < timedelta(days=30):
                    total += points['activity_within_month']
            if on_chain.total_transactions > cfg.CONFIDENCE_MIN_TRANSACTIONS:
                total += points['many_transactions']
            if on_chain.borrowed_count > 0:
                total += points['has_borrowed']

        if off_chain is not None:
            if off_chain.traditional_credit_score > 0:
                total += points['has_traditional_score']
            if off_chain.income_verified:
                total += points['income_verified']
            verified_age = _age(off_chain.last_verified, now)
            if verified_age is not None and verified_age < timedelta(days=30):
                total += points['recently_verified']

        return int(_clamp(total, 0, 100))

    def data_hash(
        self,
        on_chain: Optional[OnChainMetrics],
        off_chain: Optional[OffChainMetrics],
        score: int,
        computed_at: datetime,
    ) -> str:
        """SHA-256 over canonical JSON of the inputs, the score and the computation time."""
        payload = {
            "on_chain": on_chain.model_dump(mode="json") if on_chain else None,
            "off_chain": off_chain.model_dump(mode="json") if off_chain else None,
            "score": score,
            "timestamp": _as_naive_utc(computed_at).isoformat(),
        }
        encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()
