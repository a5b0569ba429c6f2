"""
Oracle Service - Score Lifecycle Coordination

Glues the aggregator, the scoring engine, the score store and the oracle
client together:

1. resolve metrics (on-chain failure is fatal)
2. upsert both metric snapshots
3. compute the score
4. create the score row or update it in place (update_count + 1)
5. append one history entry per successful computation
6. optionally publish, recording every attempt as an OracleUpdate row
"""
import logging
import threading
from contextlib import contextmanager
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from credit_oracle.blockchain.oracle_client import OracleClient
from credit_oracle.core.context import RequestContext
from credit_oracle.core.exceptions import (
    CancellationError,
    ConcurrentUpdateError,
    NotFoundError,
    PersistenceError,
    PublishError,
)
from credit_oracle.db.crud import ScoreRepository
from credit_oracle.models.models import CreditScore, OracleUpdateStatus
from credit_oracle.schemas.schemas import (
    BatchUpdateSummary,
    CreditScoreResponse,
    OracleStats,
    OracleUpdateResponse,
    ScoreHistoryResponse,
    ScoreResult,
)
from credit_oracle.scorecard.scorecard_config import SCORE_REFRESH_DAYS
from credit_oracle.scorecard.scorecard_engine import ScoringEngine, validate_score
from credit_oracle.services.aggregation_service import MetricsAggregator
from credit_oracle.validators.address_validator import normalize_address

logger = logging.getLogger(__name__)


class AddressLocks:
    """Per-address mutexes, dropped again once no caller holds or waits on them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}  # address -> [lock, holders]

    @contextmanager
    def hold(self, address: str):
        with self._guard:
            entry = self._locks.setdefault(address, [threading.Lock(), 0])
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[address]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class OracleService:
    """Coordinates score computation, persistence and publication."""

    def __init__(
        self,
        session_factory,
        aggregator: MetricsAggregator,
        oracle_client: OracleClient,
        engine: Optional[ScoringEngine] = None,
        refresh_days: int = SCORE_REFRESH_DAYS,
        max_write_attempts: int = 3,
    ):
        self.session_factory = session_factory
        self.aggregator = aggregator
        self.oracle_client = oracle_client
        self.engine = engine or ScoringEngine()
        self.refresh_days = refresh_days
        self.max_write_attempts = max_write_attempts
        self._address_locks = AddressLocks()

    # ----- scoring -----

    def calculate_and_update_score(
        self,
        address: str,
        user_id: Optional[str] = None,
        ctx: Optional[RequestContext] = None,
    ) -> CreditScoreResponse:
        """
        Recompute and persist the score for `address`.

        Calls for the same address are serialized in-process; the write is
        additionally guarded by a compare-and-swap on update_count so that
        writers in other processes cannot make it regress or repeat.

        Raises:
            ValidationError: malformed address
            ProviderError: every on-chain tier failed
            CancellationError: ctx cancelled or deadline passed
            PersistenceError: the store failed (nothing partial is returned)
        """
        address = normalize_address(address)
        ctx = ctx or RequestContext.background()

        with self._address_locks.hold(address):
            user_id = user_id or self._stored_user_id(address) or address

            # Step 1: Resolve metrics
            on_chain, off_chain = self.aggregator.resolve(address, user_id, ctx)
            ctx.raise_if_cancelled()

            # Step 2: Compute score
            result = self.engine.calculate_score(on_chain, off_chain)
            validate_score(result.score)

            # Step 3: Persist snapshots, score row and history in one transaction
            last_conflict: Optional[ConcurrentUpdateError] = None
            for attempt in range(1, self.max_write_attempts + 1):
                try:
                    return self._persist(address, user_id, on_chain, off_chain, result)
                except ConcurrentUpdateError as e:
                    last_conflict = e
                    logger.warning(f"Write conflict for {address} (attempt {attempt}): {e}")
            raise last_conflict

    def _stored_user_id(self, address: str) -> Optional[str]:
        with self.session_factory() as db:
            row = ScoreRepository(db).get_by_address(address, include_inactive=True)
            return row.user_id if row else None

    def _persist(self, address, user_id, on_chain, off_chain, result: ScoreResult) -> CreditScoreResponse:
        with self.session_factory() as db:
            repo = ScoreRepository(db)
            repo.upsert_on_chain_metrics(address, on_chain)
            if off_chain is not None:
                repo.upsert_off_chain_metrics(address, off_chain)

            values = {
                "user_id": user_id,
                "score": result.score,
                "confidence": result.confidence,
                "on_chain_score": result.on_chain_score,
                "off_chain_score": result.off_chain_score,
                "hybrid_score": result.hybrid_score,
                "data_hash": result.data_hash,
                "last_updated": result.computed_at,
                "next_update_due": result.computed_at + timedelta(days=self.refresh_days),
            }
            existing = repo.get_by_address(address, include_inactive=True)
            if existing is None:
                row = repo.create_score({"user_address": address, **values})
            else:
                row = repo.update_score(address, values, expected_update_count=existing.update_count)

            repo.create_history(address, result.score, result.confidence, result.data_hash, result.computed_at)
            try:
                db.commit()
                db.refresh(row)
            except SQLAlchemyError as e:
                raise PersistenceError(f"could not commit score for {address}", e)

            logger.info(
                f"Score for {address}: {row.score} (confidence {row.confidence}, update #{row.update_count})"
            )
            return CreditScoreResponse.model_validate(row)

    # ----- publication -----

    def publish_score_to_blockchain(self, address: str) -> OracleUpdateResponse:
        """
        Submit the current score to the oracle and record the attempt.

        NotFoundError (and no OracleUpdate row) when the address has no score.
        On submission failure a 'failed' row is recorded and the original
        error is re-raised; the persisted score is never touched.
        """
        address = normalize_address(address)
        with self.session_factory() as db:
            repo = ScoreRepository(db)
            score = repo.get_by_address(address)
            if score is None:
                raise NotFoundError(f"no credit score for {address}")

            try:
                validate_score(score.score)
                tx_hash = self.oracle_client.submit(address, score.score, score.confidence, score.data_hash)
            except Exception as e:
                logger.error(f"Publishing score for {address} failed: {e}")
                try:
                    self._record_publish(db, repo, score, OracleUpdateStatus.FAILED, error_message=str(e))
                except PersistenceError as record_error:
                    raise record_error from e
                raise

            update = self._record_publish(db, repo, score, OracleUpdateStatus.PENDING, tx_hash=tx_hash)
            return OracleUpdateResponse.model_validate(update)

    def _record_publish(self, db, repo: ScoreRepository, score: CreditScore, status, **fields):
        update = repo.create_oracle_update(
            score.user_address, score.score, score.confidence, score.data_hash, status, **fields
        )
        try:
            db.commit()
            db.refresh(update)
        except SQLAlchemyError as e:
            raise PersistenceError(f"could not record oracle update for {score.user_address}", e)
        return update

    # ----- scheduled refresh -----

    def process_scheduled_updates(
        self, batch_size: int = 50, ctx: Optional[RequestContext] = None
    ) -> BatchUpdateSummary:
        """Rescore and republish due addresses; one address failing never stops the batch."""
        ctx = ctx or RequestContext.background()
        with self.session_factory() as db:
            due = [(row.user_address, row.user_id) for row in ScoreRepository(db).get_due_for_update(batch_size)]

        summary = BatchUpdateSummary(total=len(due))
        logger.info(f"Processing {len(due)} scheduled score updates")

        for address, user_id in due:
            ctx.raise_if_cancelled()
            try:
                self.calculate_and_update_score(address, user_id, ctx)
                summary.scored += 1
            except CancellationError:
                raise
            except Exception as e:
                summary.failed += 1
                summary.errors[address] = str(e)
                logger.error(f"Scheduled update failed for {address}: {e}")
                continue

            try:
                self.publish_score_to_blockchain(address)
                summary.published += 1
            except Exception as e:
                summary.errors[address] = f"publish: {e}"
                logger.warning(f"Scheduled publish failed for {address}: {e}")

        logger.info(
            f"Scheduled updates done: {summary.scored}/{summary.total} scored, "
            f"{summary.published} published, {summary.failed} failed"
        )
        return summary

    # ----- reads -----

    def get_score(self, address: str) -> CreditScoreResponse:
        address = normalize_address(address)
        with self.session_factory() as db:
            row = ScoreRepository(db).get_by_address(address)
            if row is None:
                raise NotFoundError(f"no credit score for {address}")
            return CreditScoreResponse.model_validate(row)

    def get_score_history(self, address: str, limit: int = 10) -> List[ScoreHistoryResponse]:
        address = normalize_address(address)
        with self.session_factory() as db:
            return [
                ScoreHistoryResponse.model_validate(entry)
                for entry in ScoreRepository(db).get_history(address, limit)
            ]

    def get_stats(self) -> OracleStats:
        with self.session_factory() as db:
            return ScoreRepository(db).get_stats()

    def get_pending_oracle_updates(self, limit: int = 100) -> List[OracleUpdateResponse]:
        with self.session_factory() as db:
            return [
                OracleUpdateResponse.model_validate(u)
                for u in ScoreRepository(db).get_pending_oracle_updates(limit)
            ]

    def deactivate_score(self, address: str) -> None:
        """Exclude an address from lookups and scheduled refreshes."""
        address = normalize_address(address)
        with self.session_factory() as db:
            if not ScoreRepository(db).deactivate(address):
                raise NotFoundError(f"no active credit score for {address}")
            try:
                db.commit()
            except SQLAlchemyError as e:
                raise PersistenceError(f"could not deactivate {address}", e)
        logger.info(f"Deactivated credit score for {address}")

    # ----- health -----

    def _database_healthy(self) -> bool:
        try:
            with self.session_factory() as db:
                db.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def _oracle_healthy(self) -> bool:
        try:
            self.oracle_client.health_check()
            return True
        except PublishError as e:
            logger.error(f"Oracle health check failed: {e}")
            return False

    def health_check(self, ctx: Optional[RequestContext] = None) -> Dict[str, bool]:
        """Component -> healthy flag. On-chain is healthy when any tier is reachable."""
        providers = self.aggregator.provider_status(ctx)
        on_chain_ok = any(
            state == "healthy" for label, state in providers.items() if label.startswith("onchain:")
        )
        return {
            "database": self._database_healthy(),
            "onchain_providers": on_chain_ok,
            "credit_report": all(
                state == "healthy" for label, state in providers.items() if label.startswith("credit_report:")
            ),
            "bank_report": all(
                state == "healthy" for label, state in providers.items() if label.startswith("bank_report:")
            ),
            "oracle": self._oracle_healthy(),
        }

    def provider_status(self, ctx: Optional[RequestContext] = None) -> Dict[str, str]:
        status = dict(self.aggregator.provider_status(ctx))
        status["database"] = "healthy" if self._database_healthy() else "error"
        try:
            self.oracle_client.health_check()
            status["oracle"] = "healthy"
        except PublishError as e:
            status["oracle"] = f"error: {e}"
        return status


def build_oracle_service(settings=None, session_factory=None) -> OracleService:
    """Wire an OracleService from Settings (providers, oracle client, database)."""
    from credit_oracle.blockchain.oracle_client import build_oracle_client
    from credit_oracle.config.settings import get_settings
    from credit_oracle.db.database import SessionLocal

    settings = settings or get_settings()
    return OracleService(
        session_factory=session_factory or SessionLocal,
        aggregator=MetricsAggregator.from_settings(settings),
        oracle_client=build_oracle_client(settings),
        refresh_days=settings.score_refresh_days,
    )
