from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, String, Text
import enum

from credit_oracle.core.context import utcnow
from credit_oracle.db.database import Base


class OracleUpdateStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class CreditScore(Base):
    """Current score for one address. Identity (id, created_at) survives every update."""
    __tablename__ = "credit_scores"

    id = Column(Integer, primary_key=True, index=True)
    user_address = Column(String(42), unique=True, nullable=False, index=True)
    # Last identifier used for off-chain lookups; reused by scheduled refreshes
    user_id = Column(String, nullable=True)
    score = Column(Integer, nullable=False)
    confidence = Column(Integer, nullable=False)
    on_chain_score = Column(Integer, nullable=False)
    off_chain_score = Column(Integer, nullable=False)
    hybrid_score = Column(Integer, nullable=False)
    data_hash = Column(String(64), nullable=False)
    last_updated = Column(DateTime, nullable=False)
    next_update_due = Column(DateTime, nullable=False, index=True)
    update_count = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('idx_credit_scores_due', 'is_active', 'next_update_due'),
    )


class ScoreHistory(Base):
    """Append-only record of every successful computation."""
    __tablename__ = "score_history"

    id = Column(Integer, primary_key=True, index=True)
    user_address = Column(String(42), nullable=False, index=True)
    score = Column(Integer, nullable=False)
    confidence = Column(Integer, nullable=False)
    data_hash = Column(String(64), nullable=False)
    timestamp = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_score_history_address_ts', 'user_address', 'timestamp'),
    )


class OnChainMetricsRecord(Base):
    """Latest on-chain snapshot per address (overwritten on each fetch)."""
    __tablename__ = "on_chain_metrics"

    id = Column(Integer, primary_key=True, index=True)
    user_address = Column(String(42), unique=True, nullable=False, index=True)
    wallet_age_days = Column(Integer, default=0)
    total_transactions = Column(Integer, default=0)
    avg_transaction_value = Column(Float, default=0.0)
    defi_interactions = Column(Integer, default=0)
    borrowed_count = Column(Integer, default=0)
    repaid_count = Column(Integer, default=0)
    liquidation_count = Column(Integer, default=0)
    collateral_value = Column(Float, default=0.0)
    last_activity = Column(DateTime, nullable=True)
    source = Column(String(50))
    fetched_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class OffChainMetricsRecord(Base):
    """Latest off-chain snapshot per address (overwritten on each fetch)."""
    __tablename__ = "off_chain_metrics"

    id = Column(Integer, primary_key=True, index=True)
    user_address = Column(String(42), unique=True, nullable=False, index=True)
    traditional_credit_score = Column(Integer, default=0)
    bank_history_score = Column(Integer, default=0)
    income_verified = Column(Boolean, default=False)
    income_level = Column(String(20), default="unknown")
    employment_status = Column(String(50), default="")
    debt_to_income_ratio = Column(Float, nullable=True)
    data_source = Column(String(100), default="")
    last_verified = Column(DateTime, nullable=True)
    fetched_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class OracleUpdate(Base):
    """One row per attempt to publish a score to the oracle contract."""
    __tablename__ = "oracle_updates"

    id = Column(Integer, primary_key=True, index=True)
    user_address = Column(String(42), nullable=False, index=True)
    score = Column(Integer, nullable=False)
    confidence = Column(Integer, nullable=False)
    data_hash = Column(String(64), nullable=False)
    tx_hash = Column(String(66), nullable=True, index=True)
    block_number = Column(Integer, nullable=True)
    # Stored as plain string, values from OracleUpdateStatus
    status = Column(String(20), nullable=False, default=OracleUpdateStatus.PENDING.value)
    gas_used = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
