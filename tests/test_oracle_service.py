"""End-to-end tests for OracleService against a real SQLite store and fake providers."""
import threading
from datetime import timedelta

import pytest

from credit_oracle.core.context import RequestContext, utcnow
from credit_oracle.core.exceptions import (
    CancellationError,
    NotFoundError,
    PersistenceError,
    ProviderError,
    PublishError,
    ValidationError,
)
from credit_oracle.db.crud import ScoreRepository
from credit_oracle.models.models import CreditScore, OracleUpdate, ScoreHistory
from credit_oracle.services.aggregation_service import MetricsAggregator
from credit_oracle.services.oracle_service import AddressLocks, OracleService

from fakes import (
    OTHER_ADDRESS,
    VALID_ADDRESS,
    FakeBankProvider,
    FakeCreditProvider,
    FakeOnChainProvider,
    RecordingOracleClient,
)


class FailingForAddress(FakeOnChainProvider):
    """On-chain tier that only fails for a chosen address."""

    def __init__(self, failing_address, **kwargs):
        super().__init__(**kwargs)
        self.failing_address = failing_address

    def fetch_on_chain(self, address, ctx):
        if address == self.failing_address:
            raise ProviderError("no data", self.provider_name)
        return super().fetch_on_chain(address, ctx)


@pytest.fixture
def credit():
    return FakeCreditProvider()


@pytest.fixture
def oracle_client():
    return RecordingOracleClient()


@pytest.fixture
def make_service(session_factory, credit, oracle_client):
    created = []

    def _make(tiers=None, bank=None, client=None, credit_provider=None):
        aggregator = MetricsAggregator(
            on_chain_providers=tiers or [FakeOnChainProvider("blockscout")],
            credit_provider=credit_provider or credit,
            bank_provider=bank or FakeBankProvider(),
            timeout_seconds=2.0,
            max_workers=8,
        )
        service = OracleService(session_factory, aggregator, client or oracle_client)
        created.append(service)
        return service

    yield _make
    for service in created:
        service.aggregator.close()


def _make_due(session_factory, address, days_overdue=1):
    with session_factory() as db:
        db.query(CreditScore).filter(CreditScore.user_address == address).update(
            {"next_update_due": utcnow() - timedelta(days=days_overdue)}
        )
        db.commit()


class TestCalculateAndUpdate:

    def test_first_computation_creates_row_and_history(self, make_service, session_factory):
        service = make_service()
        result = service.calculate_and_update_score(VALID_ADDRESS, "user-1")

        assert 300 <= result.score <= 850
        assert result.update_count == 1
        assert result.user_id == "user-1"
        assert result.next_update_due - result.last_updated == timedelta(days=30)

        history = service.get_score_history(VALID_ADDRESS)
        assert len(history) == 1
        assert history[0].data_hash == result.data_hash
        assert history[0].timestamp == result.last_updated

    def test_repeated_computation_keeps_identity(self, make_service, session_factory):
        service = make_service()
        first = service.calculate_and_update_score(VALID_ADDRESS, "user-1")
        second = service.calculate_and_update_score(VALID_ADDRESS, "user-1")
        third = service.calculate_and_update_score(VALID_ADDRESS, "user-1")

        assert first.id == second.id == third.id
        assert first.created_at == third.created_at
        assert [first.update_count, second.update_count, third.update_count] == [1, 2, 3]
        with session_factory() as db:
            assert db.query(CreditScore).count() == 1
            assert db.query(ScoreHistory).count() == 3

    def test_mixed_case_address_is_normalized(self, make_service):
        service = make_service()
        mixed = "0x" + "AB" * 20
        service.calculate_and_update_score(mixed, "user-1")
        assert service.get_score(VALID_ADDRESS).user_address == VALID_ADDRESS

    def test_invalid_address_rejected_before_any_fetch(self, make_service):
        tier = FakeOnChainProvider("blockscout")
        service = make_service(tiers=[tier])
        with pytest.raises(ValidationError):
            service.calculate_and_update_score("0x1234", "user-1")
        assert tier.calls == []

    def test_off_chain_outage_floors_off_chain_component(self, make_service):
        service = make_service(
            credit_provider=FakeCreditProvider(error=ProviderError("down", "credit_bureau")),
            bank=FakeBankProvider(error=ProviderError("down", "plaid")),
        )
        result = service.calculate_and_update_score(VALID_ADDRESS, "user-1")
        assert result.off_chain_score == 300
        assert result.hybrid_score == 300
        assert result.on_chain_score > 300

    def test_on_chain_outage_persists_nothing(self, make_service, session_factory):
        service = make_service(tiers=[FakeOnChainProvider("rpc", error=ProviderError("down", "rpc"))])
        with pytest.raises(ProviderError):
            service.calculate_and_update_score(VALID_ADDRESS, "user-1")
        with session_factory() as db:
            assert db.query(CreditScore).count() == 0
            assert db.query(ScoreHistory).count() == 0

    def test_cancelled_request_persists_nothing(self, make_service, session_factory):
        service = make_service()
        ctx = RequestContext.background()
        ctx.cancel()
        with pytest.raises(CancellationError):
            service.calculate_and_update_score(VALID_ADDRESS, "user-1", ctx)
        with session_factory() as db:
            assert db.query(CreditScore).count() == 0

    def test_user_id_defaults_to_stored_then_address(self, make_service, credit):
        service = make_service()
        service.calculate_and_update_score(VALID_ADDRESS, "user-9")
        service.calculate_and_update_score(VALID_ADDRESS)
        service.calculate_and_update_score(OTHER_ADDRESS)
        assert credit.calls == ["user-9", "user-9", OTHER_ADDRESS]

    def test_snapshots_are_stored(self, make_service, session_factory):
        service = make_service()
        service.calculate_and_update_score(VALID_ADDRESS, "user-1")
        with session_factory() as db:
            repo = ScoreRepository(db)
            assert repo.get_on_chain_metrics(VALID_ADDRESS).source == "blockscout"
            assert repo.get_off_chain_metrics(VALID_ADDRESS).traditional_credit_score == 750

    def test_concurrent_updates_for_one_address_serialize(self, make_service, session_factory):
        service = make_service(tiers=[FakeOnChainProvider("blockscout", delay=0.02)])
        service.calculate_and_update_score(VALID_ADDRESS, "user-1")
        errors = []

        def worker():
            try:
                service.calculate_and_update_score(VALID_ADDRESS, "user-1")
            except Exception as e:  # collected for the assertion below
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert service.get_score(VALID_ADDRESS).update_count == 6
        with session_factory() as db:
            assert db.query(ScoreHistory).count() == 6


class TestPublish:

    def test_missing_score_raises_and_records_nothing(self, make_service, session_factory, oracle_client):
        service = make_service()
        with pytest.raises(NotFoundError):
            service.publish_score_to_blockchain(VALID_ADDRESS)
        assert oracle_client.submissions == []
        with session_factory() as db:
            assert db.query(OracleUpdate).count() == 0

    def test_success_records_pending_update(self, make_service, oracle_client):
        service = make_service()
        score = service.calculate_and_update_score(VALID_ADDRESS, "user-1")

        update = service.publish_score_to_blockchain(VALID_ADDRESS)

        assert update.status == "pending"
        assert update.tx_hash.startswith("0x")
        assert oracle_client.submissions == [(VALID_ADDRESS, score.score, score.confidence, score.data_hash)]
        assert [u.id for u in service.get_pending_oracle_updates()] == [update.id]

    def test_failure_records_failed_update_and_reraises(self, make_service, session_factory):
        error = PublishError("relayer unavailable")
        service = make_service(client=RecordingOracleClient(error=error))
        before = service.calculate_and_update_score(VALID_ADDRESS, "user-1")

        with pytest.raises(PublishError) as exc:
            service.publish_score_to_blockchain(VALID_ADDRESS)

        assert exc.value is error
        with session_factory() as db:
            rows = db.query(OracleUpdate).all()
            assert [r.status for r in rows] == ["failed"]
            assert "relayer unavailable" in rows[0].error_message
        after = service.get_score(VALID_ADDRESS)
        assert after.update_count == before.update_count
        assert after.data_hash == before.data_hash

    def test_failed_row_write_error_keeps_submission_error(self, make_service, monkeypatch, caplog):
        error = PublishError("relayer unavailable")
        service = make_service(client=RecordingOracleClient(error=error))
        service.calculate_and_update_score(VALID_ADDRESS, "user-1")

        def broken_insert(self, *args, **kwargs):
            raise PersistenceError("database is locked")

        monkeypatch.setattr(ScoreRepository, "create_oracle_update", broken_insert)
        with pytest.raises(PersistenceError) as exc:
            service.publish_score_to_blockchain(VALID_ADDRESS)

        assert exc.value.__cause__ is error
        assert "relayer unavailable" in caplog.text


class TestScheduledUpdates:

    def test_one_failure_does_not_stop_the_batch(self, make_service, session_factory):
        healthy = make_service()
        healthy.calculate_and_update_score(VALID_ADDRESS, "user-1")
        healthy.calculate_and_update_score(OTHER_ADDRESS, "user-2")
        _make_due(session_factory, VALID_ADDRESS)
        _make_due(session_factory, OTHER_ADDRESS, days_overdue=2)

        service = make_service(tiers=[FailingForAddress(OTHER_ADDRESS, name="blockscout")])
        summary = service.process_scheduled_updates(batch_size=10)

        assert summary.total == 2
        assert summary.scored == 1
        assert summary.failed == 1
        assert summary.published == 1
        assert OTHER_ADDRESS in summary.errors
        assert service.get_score(VALID_ADDRESS).update_count == 2
        assert service.get_score(OTHER_ADDRESS).update_count == 1

    def test_refreshed_scores_are_no_longer_due(self, make_service):
        service = make_service()
        service.calculate_and_update_score(VALID_ADDRESS, "user-1")
        summary = service.process_scheduled_updates(batch_size=10)
        assert summary.total == 0
        assert service.get_stats().due_for_update == 0

    def test_scheduled_refresh_reuses_stored_user_id(self, make_service, session_factory, credit):
        service = make_service()
        service.calculate_and_update_score(VALID_ADDRESS, "user-1")
        _make_due(session_factory, VALID_ADDRESS)
        service.process_scheduled_updates(batch_size=10)
        assert credit.calls == ["user-1", "user-1"]

    def test_inactive_scores_are_skipped(self, make_service, session_factory):
        service = make_service()
        service.calculate_and_update_score(VALID_ADDRESS, "user-1")
        _make_due(session_factory, VALID_ADDRESS)
        service.deactivate_score(VALID_ADDRESS)
        assert service.process_scheduled_updates(batch_size=10).total == 0

    def test_cancellation_aborts_the_sweep(self, make_service, session_factory):
        service = make_service()
        service.calculate_and_update_score(VALID_ADDRESS, "user-1")
        _make_due(session_factory, VALID_ADDRESS)
        ctx = RequestContext.background()
        ctx.cancel()
        with pytest.raises(CancellationError):
            service.process_scheduled_updates(batch_size=10, ctx=ctx)


class TestReadsAndLifecycle:

    def test_get_score_missing(self, make_service):
        with pytest.raises(NotFoundError):
            make_service().get_score(VALID_ADDRESS)

    def test_deactivate(self, make_service):
        service = make_service()
        service.calculate_and_update_score(VALID_ADDRESS, "user-1")
        service.deactivate_score(VALID_ADDRESS)
        with pytest.raises(NotFoundError):
            service.get_score(VALID_ADDRESS)
        with pytest.raises(NotFoundError):
            service.deactivate_score(VALID_ADDRESS)

    def test_stats(self, make_service):
        service = make_service()
        a = service.calculate_and_update_score(VALID_ADDRESS, "user-1")
        b = service.calculate_and_update_score(OTHER_ADDRESS, "user-2")
        stats = service.get_stats()
        assert stats.total_active_scores == 2
        assert stats.average_score == pytest.approx((a.score + b.score) / 2)

    def test_health_check(self, make_service):
        health = make_service().health_check()
        assert health == {
            "database": True,
            "onchain_providers": True,
            "credit_report": True,
            "bank_report": True,
            "oracle": True,
        }

    def test_health_reports_unreachable_oracle(self, make_service):
        service = make_service(client=RecordingOracleClient(error=PublishError("down")))
        assert service.health_check()["oracle"] is False
        assert service.provider_status()["oracle"].startswith("error:")


class TestAddressLocks:

    def test_entries_are_released(self):
        locks = AddressLocks()
        with locks.hold(VALID_ADDRESS):
            assert len(locks) == 1
        assert len(locks) == 0
