"""
Tests for the analysis worker use case.

Real SQLite job store; the qualitative service and the alert publisher
are mocked at their ports.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from marketwatch.application.anomaly.process_analysis_job import (
    ProcessAnalysisJobUseCase,
)
from marketwatch.domain.anomaly.alerts import AlertKind
from marketwatch.domain.anomaly.assessment import FALLBACK_COMMENT, FALLBACK_SCENARIO
from marketwatch.domain.anomaly.entities import (
    JobStatus,
    OrderBookSnapshot,
    QualitativeAssessment,
)
from marketwatch.domain.anomaly.errors import QualitativeAnalysisUnavailableError
from marketwatch.domain.anomaly.ports import AlertPublisher, QualitativeAnalysisPort
from tests.conftest import make_job


def _pump_job(symbol="PEPEUSDT"):
    """RSI 90, thin book (0.2), 7% 1m change: base score 70."""
    book = OrderBookSnapshot(total_bids_usd=20_000.0, total_asks_usd=100_000.0, is_thin=True)
    return make_job(
        symbol,
        rsi=90.0,
        price_change_1m=7.0,
        volume_to_market_cap=0.1,
        orderbook_json=book.to_json(),
    )


@pytest.fixture
def qualitative():
    return MagicMock(spec=QualitativeAnalysisPort)


@pytest.fixture
def publisher():
    return MagicMock(spec=AlertPublisher)


@pytest.fixture
def worker(store, qualitative, publisher):
    return ProcessAnalysisJobUseCase(
        job_store=store,
        qualitative=qualitative,
        worker_id="worker-1",
        alert_publisher=publisher,
        dedup_window=timedelta(minutes=15),
    )


class TestEmptyQueue:
    def test_returns_none(self, worker, qualitative):
        assert worker.execute() is None
        qualitative.analyze.assert_not_called()


class TestCompleted:
    def test_service_assessment_is_persisted(self, store, worker, qualitative, publisher):
        job = store.insert_pending(_pump_job())
        qualitative.analyze.return_value = QualitativeAssessment(
            final_risk_score=88,
            verdict="Classic pump. Stay away.",
            likely_scenario="FOMO Trap",
            short_comment="Wait for a pullback",
        )

        outcome = worker.execute()

        assert outcome.status is JobStatus.COMPLETED
        assert not outcome.used_fallback
        saved = store.get(job.id)
        assert saved.base_risk_score == 70
        assert saved.final_risk_score == 88
        assert saved.summary == "Classic pump. Stay away."
        assert saved.likely_source == "FOMO Trap"
        assert saved.actionable_insight == "Wait for a pullback"
        assert len(saved.score_reasons) == 3
        assert saved.completed_at is not None
        assert saved.claimed_by == "worker-1"

        request = qualitative.analyze.call_args.args[0]
        assert request.symbol == "PEPEUSDT"
        assert request.base_score == 70
        assert request.rsi == 90.0
        assert request.is_thin is True

    def test_warning_alert_dispatched(self, store, worker, qualitative, publisher):
        store.insert_pending(_pump_job())
        qualitative.analyze.return_value = QualitativeAssessment(
            final_risk_score=90, verdict="Trap.", likely_scenario="Whale", short_comment="Avoid"
        )
        outcome = worker.execute()
        assert outcome.alert.kind is AlertKind.WARNING
        publisher.publish.assert_called_once_with(outcome.alert)

    def test_malformed_reply_uses_fallback(self, store, worker, qualitative, publisher):
        job = store.insert_pending(_pump_job())
        qualitative.analyze.return_value = None

        outcome = worker.execute()

        assert outcome.status is JobStatus.COMPLETED
        assert outcome.used_fallback
        saved = store.get(job.id)
        assert saved.final_risk_score == saved.base_risk_score == 70
        assert saved.summary.startswith("High risk")
        assert saved.likely_source == FALLBACK_SCENARIO
        assert saved.actionable_insight == FALLBACK_COMMENT
        # 70 < 75 and "Uncertain" is not favorable: no alert.
        assert outcome.alert is None
        publisher.publish.assert_not_called()

    def test_publisher_failure_does_not_affect_job(self, store, worker, qualitative, publisher):
        job = store.insert_pending(_pump_job())
        qualitative.analyze.return_value = QualitativeAssessment(
            final_risk_score=95, verdict="Trap.", likely_scenario="Whale", short_comment="Avoid"
        )
        publisher.publish.side_effect = RuntimeError("webhook down")

        outcome = worker.execute()

        assert outcome.status is JobStatus.COMPLETED
        assert store.get(job.id).status is JobStatus.COMPLETED


class TestFailed:
    def test_unavailable_service_marks_failed(self, store, worker, qualitative, publisher):
        job = store.insert_pending(_pump_job())
        qualitative.analyze.side_effect = QualitativeAnalysisUnavailableError("timeout")

        outcome = worker.execute()

        assert outcome.status is JobStatus.FAILED
        assert "timeout" in outcome.error
        saved = store.get(job.id)
        assert saved.status is JobStatus.FAILED
        assert saved.base_risk_score == 70
        assert saved.final_risk_score is None
        assert saved.completed_at is not None
        publisher.publish.assert_not_called()

    def test_unexpected_error_marks_failed(self, store, worker, qualitative):
        job = store.insert_pending(_pump_job())
        qualitative.analyze.side_effect = KeyError("boom")

        outcome = worker.execute()

        assert outcome.status is JobStatus.FAILED
        assert store.get(job.id).status is JobStatus.FAILED

    def test_failed_job_never_left_processing(self, store, worker, qualitative):
        store.insert_pending(_pump_job())
        qualitative.analyze.side_effect = QualitativeAnalysisUnavailableError("down")
        worker.execute()
        assert store.count_by_status()[JobStatus.PROCESSING] == 0


class TestCached:
    def test_recent_analysis_is_reused(self, store, worker, qualitative, clock):
        first = store.insert_pending(_pump_job())
        qualitative.analyze.return_value = QualitativeAssessment(
            final_risk_score=80, verdict="Risky.", likely_scenario="FOMO Trap", short_comment="Careful"
        )
        worker.execute()

        clock.advance(minutes=5)
        second = store.insert_pending(_pump_job())
        qualitative.analyze.reset_mock()

        outcome = worker.execute()

        assert outcome.job.id == second.id
        assert outcome.status is JobStatus.CACHED
        qualitative.analyze.assert_not_called()
        saved = store.get(second.id)
        assert saved.cached_from == first.id
        assert saved.final_risk_score == 80
        assert saved.completed_at == clock.now

    def test_expired_analysis_is_not_reused(self, store, worker, qualitative, clock):
        store.insert_pending(_pump_job())
        qualitative.analyze.return_value = None
        worker.execute()

        clock.advance(minutes=20)
        store.insert_pending(_pump_job())
        outcome = worker.execute()

        assert outcome.status is JobStatus.COMPLETED
        assert qualitative.analyze.call_count == 2

    def test_cached_job_is_not_alerted(self, store, worker, qualitative, publisher, clock):
        store.insert_pending(_pump_job())
        qualitative.analyze.return_value = QualitativeAssessment(
            final_risk_score=95, verdict="Trap.", likely_scenario="Whale", short_comment="Avoid"
        )
        worker.execute()
        clock.advance(minutes=1)
        store.insert_pending(_pump_job())
        publisher.reset_mock()

        outcome = worker.execute()

        assert outcome.status is JobStatus.CACHED
        publisher.publish.assert_not_called()


class TestOneJobPerTick:
    def test_each_tick_handles_one_job(self, store, worker, qualitative, clock):
        qualitative.analyze.return_value = None
        store.insert_pending(_pump_job("AUSDT"))
        clock.advance(seconds=1)
        store.insert_pending(_pump_job("BUSDT"))

        first = worker.execute()
        assert first.job.symbol == "AUSDT"
        assert store.count_by_status()[JobStatus.PENDING] == 1

        second = worker.execute()
        assert second.job.symbol == "BUSDT"
        assert worker.execute() is None
