import functools
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from credit_oracle.core.context import utcnow
from credit_oracle.core.exceptions import ConcurrentUpdateError, PersistenceError
from credit_oracle.models.models import (
    CreditScore,
    OffChainMetricsRecord,
    OnChainMetricsRecord,
    OracleUpdate,
    OracleUpdateStatus,
    ScoreHistory,
)
from credit_oracle.schemas.schemas import OffChainMetrics, OnChainMetrics, OracleStats


def _store_errors(method):
    """Translate SQLAlchemy failures into the oracle's persistence errors."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except IntegrityError as e:
            raise ConcurrentUpdateError(f"{method.__name__} conflicted with a concurrent write", e)
        except SQLAlchemyError as e:
            raise PersistenceError(f"{method.__name__} failed", e)
    return wrapper


class ScoreRepository:
    """
    Persistence operations for scores, history, metrics and oracle updates.

    Bound to one Session. Writes are flushed, not committed: the caller owns
    the transaction so a score row and its history entry land together.
    """

    def __init__(self, db: Session):
        self.db = db

    # ----- credit scores -----

    @_store_errors
    def create_score(self, values: Dict[str, Any]) -> CreditScore:
        """Insert the first score row for an address (update_count starts at 1)."""
        row = CreditScore(**values, update_count=1, is_active=True)
        self.db.add(row)
        self.db.flush()
        return row

    @_store_errors
    def update_score(self, address: str, values: Dict[str, Any], expected_update_count: int) -> CreditScore:
        """
        Overwrite content fields of an existing row, compare-and-swap on update_count.

        The UPDATE only matches while update_count still equals the value the
        caller read; otherwise another writer got there first and
        ConcurrentUpdateError is raised. id and created_at are never touched.
        """
        matched = (
            self.db.query(CreditScore)
            .filter(
                CreditScore.user_address == address,
                CreditScore.update_count == expected_update_count,
            )
            .update(
                {**values, "update_count": expected_update_count + 1, "updated_at": utcnow()},
                synchronize_session=False,
            )
        )
        if matched != 1:
            raise ConcurrentUpdateError(
                f"update_count for {address} moved past {expected_update_count}"
            )
        self.db.flush()
        return (
            self.db.query(CreditScore)
            .filter(CreditScore.user_address == address)
            .populate_existing()
            .one()
        )

    @_store_errors
    def get_by_address(self, address: str, include_inactive: bool = False) -> Optional[CreditScore]:
        query = self.db.query(CreditScore).filter(CreditScore.user_address == address)
        if not include_inactive:
            query = query.filter(CreditScore.is_active.is_(True))
        return query.first()

    @_store_errors
    def get_due_for_update(self, limit: int, now: Optional[datetime] = None) -> List[CreditScore]:
        """Active rows whose next_update_due has passed, oldest due first."""
        now = now or utcnow()
        return (
            self.db.query(CreditScore)
            .filter(CreditScore.is_active.is_(True), CreditScore.next_update_due <= now)
            .order_by(CreditScore.next_update_due.asc())
            .limit(limit)
            .all()
        )

    @_store_errors
    def deactivate(self, address: str) -> bool:
        matched = (
            self.db.query(CreditScore)
            .filter(CreditScore.user_address == address, CreditScore.is_active.is_(True))
            .update({"is_active": False, "updated_at": utcnow()}, synchronize_session=False)
        )
        self.db.flush()
        return matched == 1

    # ----- history -----

    @_store_errors
    def create_history(
        self, address: str, score: int, confidence: int, data_hash: str, timestamp: datetime
    ) -> ScoreHistory:
        entry = ScoreHistory(
            user_address=address,
            score=score,
            confidence=confidence,
            data_hash=data_hash,
            timestamp=timestamp,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    @_store_errors
    def get_history(self, address: str, limit: int = 10) -> List[ScoreHistory]:
        return (
            self.db.query(ScoreHistory)
            .filter(ScoreHistory.user_address == address)
            .order_by(ScoreHistory.timestamp.desc(), ScoreHistory.id.desc())
            .limit(limit)
            .all()
        )

    # ----- metrics snapshots -----

    @_store_errors
    def upsert_on_chain_metrics(self, address: str, metrics: OnChainMetrics) -> OnChainMetricsRecord:
        row = (
            self.db.query(OnChainMetricsRecord)
            .filter(OnChainMetricsRecord.user_address == address)
            .first()
        )
        if row is None:
            row = OnChainMetricsRecord(user_address=address)
            self.db.add(row)
        for field, value in metrics.model_dump().items():
            setattr(row, field, value)
        row.fetched_at = utcnow()
        self.db.flush()
        return row

    @_store_errors
    def upsert_off_chain_metrics(self, address: str, metrics: OffChainMetrics) -> OffChainMetricsRecord:
        row = (
            self.db.query(OffChainMetricsRecord)
            .filter(OffChainMetricsRecord.user_address == address)
            .first()
        )
        if row is None:
            row = OffChainMetricsRecord(user_address=address)
            self.db.add(row)
        for field, value in metrics.model_dump().items():
            setattr(row, field, value)
        row.fetched_at = utcnow()
        self.db.flush()
        return row

    @_store_errors
    def get_on_chain_metrics(self, address: str) -> Optional[OnChainMetrics]:
        row = (
            self.db.query(OnChainMetricsRecord)
            .filter(OnChainMetricsRecord.user_address == address)
            .first()
        )
        return OnChainMetrics.model_validate(row) if row else None

    @_store_errors
    def get_off_chain_metrics(self, address: str) -> Optional[OffChainMetrics]:
        row = (
            self.db.query(OffChainMetricsRecord)
            .filter(OffChainMetricsRecord.user_address == address)
            .first()
        )
        return OffChainMetrics.model_validate(row) if row else None

    # ----- oracle updates -----

    @_store_errors
    def create_oracle_update(
        self,
        address: str,
        score: int,
        confidence: int,
        data_hash: str,
        status: OracleUpdateStatus,
        tx_hash: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> OracleUpdate:
        entry = OracleUpdate(
            user_address=address,
            score=score,
            confidence=confidence,
            data_hash=data_hash,
            status=status.value,
            tx_hash=tx_hash,
            error_message=error_message,
            retry_count=0,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    @_store_errors
    def update_oracle_update(self, update_id: int, **fields) -> Optional[OracleUpdate]:
        entry = self.db.query(OracleUpdate).filter(OracleUpdate.id == update_id).first()
        if entry is None:
            return None
        if isinstance(fields.get("status"), OracleUpdateStatus):
            fields["status"] = fields["status"].value
        for field, value in fields.items():
            setattr(entry, field, value)
        self.db.flush()
        return entry

    @_store_errors
    def get_oracle_update_by_tx_hash(self, tx_hash: str) -> Optional[OracleUpdate]:
        return self.db.query(OracleUpdate).filter(OracleUpdate.tx_hash == tx_hash).first()

    @_store_errors
    def get_pending_oracle_updates(self, limit: int = 100) -> List[OracleUpdate]:
        return (
            self.db.query(OracleUpdate)
            .filter(OracleUpdate.status == OracleUpdateStatus.PENDING.value)
            .order_by(OracleUpdate.created_at.asc())
            .limit(limit)
            .all()
        )

    # ----- stats -----

    @_store_errors
    def get_stats(self, now: Optional[datetime] = None) -> OracleStats:
        now = now or utcnow()
        total_active = (
            self.db.query(func.count(CreditScore.id))
            .filter(CreditScore.is_active.is_(True))
            .scalar()
        )
        average = (
            self.db.query(func.coalesce(func.avg(CreditScore.score), 0))
            .filter(CreditScore.is_active.is_(True))
            .scalar()
        )
        due = (
            self.db.query(func.count(CreditScore.id))
            .filter(CreditScore.is_active.is_(True), CreditScore.next_update_due <= now)
            .scalar()
        )
        pending = (
            self.db.query(func.count(OracleUpdate.id))
            .filter(OracleUpdate.status == OracleUpdateStatus.PENDING.value)
            .scalar()
        )
        return OracleStats(
            total_active_scores=total_active or 0,
            average_score=float(average or 0),
            due_for_update=due or 0,
            pending_oracle_updates=pending or 0,
        )
