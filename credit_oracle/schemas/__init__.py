from .schemas import (
    BankReport,
    BatchUpdateSummary,
    CreditReport,
    CreditScoreResponse,
    OffChainMetrics,
    OnChainMetrics,
    OracleStats,
    OracleUpdateResponse,
    ScoreHistoryResponse,
    ScoreResult,
)

__all__ = [
    "OnChainMetrics",
    "OffChainMetrics",
    "CreditReport",
    "BankReport",
    "ScoreResult",
    "CreditScoreResponse",
    "ScoreHistoryResponse",
    "OracleUpdateResponse",
    "OracleStats",
    "BatchUpdateSummary",
]
