from datetime import datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

IncomeLevel = Literal["low", "medium", "high", "unknown"]


# ===== METRICS SNAPSHOTS =====

class OnChainMetrics(BaseModel):
    """Activity signals for one address, produced by a single fallback tier."""
    model_config = ConfigDict(from_attributes=True)

    wallet_age_days: int = Field(0, ge=0)
    total_transactions: int = Field(0, ge=0)
    avg_transaction_value: float = Field(0.0, ge=0)
    defi_interactions: int = Field(0, ge=0)
    borrowed_count: int = Field(0, ge=0)
    repaid_count: int = Field(0, ge=0)
    liquidation_count: int = Field(0, ge=0)
    collateral_value: float = Field(0.0, ge=0)
    last_activity: Optional[datetime] = None
    source: str = Field("unknown", description="Provider tier that produced this snapshot")


class CreditReport(BaseModel):
    """Credit-bureau style report for a user."""
    credit_score: int = Field(0, ge=0, description="0 means unknown")
    debt_to_income_ratio: Optional[float] = Field(None, ge=0)
    employment_status: str = ""
    data_source: str = "credit_bureau"


class BankReport(BaseModel):
    """Bank account / income verification report for a user."""
    bank_history_score: int = Field(0, ge=0, le=100)
    income_verified: bool = False
    income_level: IncomeLevel = "unknown"
    employment_status: str = ""
    data_source: str = "bank"


class OffChainMetrics(BaseModel):
    """Traditional-finance signals merged from the credit and bank reports."""
    model_config = ConfigDict(from_attributes=True)

    traditional_credit_score: int = Field(0, ge=0)
    bank_history_score: int = Field(0, ge=0, le=100)
    income_verified: bool = False
    income_level: IncomeLevel = "unknown"
    employment_status: str = ""
    debt_to_income_ratio: Optional[float] = Field(None, ge=0)
    data_source: str = ""
    last_verified: Optional[datetime] = None


# ===== SCORING =====

class ScoreResult(BaseModel):
    score: int = Field(..., ge=300, le=850)
    on_chain_score: int = Field(..., ge=300, le=850)
    off_chain_score: int = Field(..., ge=300, le=850)
    hybrid_score: int = Field(..., ge=300, le=850)
    confidence: int = Field(..., ge=0, le=100)
    data_hash: str
    computed_at: datetime


# ===== PERSISTED VIEWS =====

class CreditScoreResponse(BaseModel):
    id: int
    user_address: str
    user_id: Optional[str] = None
    score: int
    confidence: int
    on_chain_score: int
    off_chain_score: int
    hybrid_score: int
    data_hash: str
    last_updated: datetime
    next_update_due: datetime
    update_count: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ScoreHistoryResponse(BaseModel):
    user_address: str
    score: int
    confidence: int
    data_hash: str
    timestamp: datetime

    model_config = {"from_attributes": True}


class OracleUpdateResponse(BaseModel):
    id: int
    user_address: str
    score: int
    confidence: int
    data_hash: str
    tx_hash: Optional[str] = None
    status: str
    error_message: Optional[str] = None
    retry_count: int
    created_at: datetime

    model_config = {"from_attributes": True}


class OracleStats(BaseModel):
    total_active_scores: int = 0
    average_score: float = 0.0
    due_for_update: int = 0
    pending_oracle_updates: int = 0


class BatchUpdateSummary(BaseModel):
    total: int = 0
    scored: int = 0
    published: int = 0
    failed: int = 0
    errors: Dict[str, str] = Field(default_factory=dict)
