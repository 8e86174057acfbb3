"""
Adapter: Analysis job store.

Implements the JobStore port on SQLAlchemy Core.
PostgreSQL in production (psycopg2), SQLite for local runs and tests.

The claim is one ``UPDATE ... WHERE id = (SELECT ... FOR UPDATE SKIP LOCKED)
RETURNING *`` statement. On PostgreSQL the row lock and SKIP LOCKED hand
distinct rows to concurrent claimers. On SQLite every transaction opens
with ``BEGIN IMMEDIATE`` so the database write lock serializes claimers.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
    update,
)
from sqlalchemy.engine import Engine, Row

from marketwatch.domain.anomaly.entities import (
    AnalysisJob,
    JobResult,
    JobStatus,
    can_transition,
    is_finite,
)
from marketwatch.domain.anomaly.errors import (
    InvalidRiskScoreError,
    InvalidStatusTransitionError,
    JobNotFoundError,
)
from marketwatch.domain.anomaly.ports import JobStore

logger = logging.getLogger(__name__)

metadata = MetaData()

analysis_jobs = Table(
    "analysis_jobs",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("symbol", String(32), nullable=False),
    Column("status", String(16), nullable=False),
    Column("price_at_detection", Float, nullable=False),
    Column("price_change", Float, nullable=False),
    Column("price_change_1m", Float),
    Column("volume_multiplier", Float, nullable=False),
    Column("rsi", Float),
    Column("market_cap", Float),
    Column("volume_to_market_cap", Float),
    Column("orderbook_json", Text),
    Column("social_json", Text),
    Column("base_risk_score", Integer),
    Column("score_reasons", Text),
    Column("final_risk_score", Integer),
    Column("summary", Text),
    Column("likely_source", String(128)),
    Column("actionable_insight", Text),
    Column("claimed_by", String(64)),
    Column("claimed_at", DateTime(timezone=True)),
    Column("cached_from", String(36)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True)),
    CheckConstraint(
        "final_risk_score IS NULL OR (final_risk_score >= 0 AND final_risk_score <= 100)",
        name="ck_analysis_jobs_final_score_range",
    ),
    Index("ix_analysis_jobs_status_created", "status", "created_at"),
    Index("ix_analysis_jobs_symbol_created", "symbol", "created_at"),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    return float(value) if is_finite(value) else None


def _validate_score(score: Optional[int]) -> None:
    if score is None:
        return
    if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100:
        raise InvalidRiskScoreError(score)


def _row_to_job(row: Row) -> AnalysisJob:
    m = row._mapping
    reasons = json.loads(m["score_reasons"]) if m["score_reasons"] else []
    return AnalysisJob(
        id=UUID(m["id"]),
        symbol=m["symbol"],
        status=JobStatus(m["status"]),
        price_at_detection=m["price_at_detection"],
        price_change=m["price_change"],
        price_change_1m=m["price_change_1m"],
        volume_multiplier=m["volume_multiplier"],
        rsi=m["rsi"],
        market_cap=m["market_cap"],
        volume_to_market_cap=m["volume_to_market_cap"],
        orderbook_json=m["orderbook_json"],
        social_json=m["social_json"],
        base_risk_score=m["base_risk_score"],
        score_reasons=reasons,
        final_risk_score=m["final_risk_score"],
        summary=m["summary"],
        likely_source=m["likely_source"],
        actionable_insight=m["actionable_insight"],
        claimed_by=m["claimed_by"],
        claimed_at=_as_utc(m["claimed_at"]),
        cached_from=UUID(m["cached_from"]) if m["cached_from"] else None,
        created_at=_as_utc(m["created_at"]),
        completed_at=_as_utc(m["completed_at"]),
    )


def create_db_engine(database_url: str) -> Engine:
    """Build a SQLAlchemy engine for the job store.

    SQLite engines get a busy timeout and ``BEGIN IMMEDIATE`` transactions
    so that concurrent writers queue on the database lock.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    engine = create_engine(
        database_url, connect_args={"timeout": 30, "check_same_thread": False}
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


class SqlAlchemyJobStore(JobStore):
    """SQLAlchemy implementation of the analysis job store."""

    def __init__(
        self, engine: Engine, clock: Callable[[], datetime] = _utcnow
    ) -> None:
        self._engine = engine
        self._clock = clock

    def init_schema(self) -> None:
        metadata.create_all(self._engine)
        logger.info(
            "Job store schema ready on %s",
            self._engine.url.render_as_string(hide_password=True),
        )

    def insert_pending(self, job: AnalysisJob) -> AnalysisJob:
        if job.status is not JobStatus.PENDING:
            raise InvalidStatusTransitionError(
                str(job.id), job.status.value, JobStatus.PENDING.value
            )
        created_at = _as_utc(job.created_at) or self._clock()
        values = {
            "id": str(job.id),
            "symbol": job.symbol.upper(),
            "status": JobStatus.PENDING.value,
            "price_at_detection": job.price_at_detection,
            "price_change": job.price_change,
            "price_change_1m": _finite_or_none(job.price_change_1m),
            "volume_multiplier": job.volume_multiplier,
            "rsi": _finite_or_none(job.rsi),
            "market_cap": _finite_or_none(job.market_cap),
            "volume_to_market_cap": _finite_or_none(job.volume_to_market_cap),
            "orderbook_json": job.orderbook_json,
            "social_json": job.social_json,
            "created_at": created_at,
        }
        with self._engine.begin() as conn:
            row = conn.execute(
                analysis_jobs.insert().values(**values).returning(*analysis_jobs.c)
            ).one()
        logger.debug("Inserted pending job %s for %s", job.id, job.symbol)
        return _row_to_job(row)

    def claim_next_pending_job(self, worker_id: str) -> Optional[AnalysisJob]:
        t = analysis_jobs
        oldest_pending = (
            select(t.c.id)
            .where(t.c.status == JobStatus.PENDING.value)
            .order_by(t.c.created_at, t.c.id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(t)
            .where(t.c.id == oldest_pending, t.c.status == JobStatus.PENDING.value)
            .values(
                status=JobStatus.PROCESSING.value,
                claimed_by=worker_id,
                claimed_at=self._clock(),
            )
            .returning(*t.c)
        )
        with self._engine.begin() as conn:
            row = conn.execute(stmt).first()
        if row is None:
            return None
        job = _row_to_job(row)
        logger.debug("Worker %s claimed job %s (%s)", worker_id, job.id, job.symbol)
        return job

    def update_result(
        self,
        job_id: UUID,
        status: JobStatus,
        result: JobResult,
        owner: Optional[str] = None,
    ) -> AnalysisJob:
        _validate_score(result.base_risk_score)
        _validate_score(result.final_risk_score)

        t = analysis_jobs
        conditions = [
            t.c.id == str(job_id),
            t.c.status == JobStatus.PROCESSING.value,
        ]
        if owner is not None:
            conditions.append(t.c.claimed_by == owner)

        with self._engine.begin() as conn:
            if not can_transition(JobStatus.PROCESSING, status):
                current = conn.execute(
                    select(t.c.status).where(t.c.id == str(job_id))
                ).scalar_one_or_none()
                if current is None:
                    raise JobNotFoundError(str(job_id))
                raise InvalidStatusTransitionError(str(job_id), current, status.value)

            row = conn.execute(
                update(t)
                .where(*conditions)
                .values(
                    status=status.value,
                    base_risk_score=result.base_risk_score,
                    score_reasons=json.dumps(result.score_reasons),
                    final_risk_score=result.final_risk_score,
                    summary=result.summary,
                    likely_source=result.likely_source,
                    actionable_insight=result.actionable_insight,
                    cached_from=str(result.cached_from) if result.cached_from else None,
                    completed_at=self._clock(),
                )
                .returning(*t.c)
            ).first()

            if row is None:
                current = conn.execute(
                    select(t.c.status).where(t.c.id == str(job_id))
                ).scalar_one_or_none()
                if current is None:
                    raise JobNotFoundError(str(job_id))
                raise InvalidStatusTransitionError(str(job_id), current, status.value)

        logger.debug("Job %s -> %s", job_id, status.value)
        return _row_to_job(row)

    def find_recent_completed(
        self, symbol: str, window: timedelta
    ) -> Optional[AnalysisJob]:
        t = analysis_jobs
        cutoff = self._clock() - window
        stmt = (
            select(t)
            .where(
                t.c.symbol == symbol.upper(),
                t.c.status == JobStatus.COMPLETED.value,
                t.c.completed_at >= cutoff,
            )
            .order_by(t.c.completed_at.desc())
            .limit(1)
        )
        with self._engine.connect() as conn:
            row = conn.execute(stmt).first()
        return _row_to_job(row) if row else None

    def find_recent_job(
        self, symbol: str, window: timedelta
    ) -> Optional[AnalysisJob]:
        t = analysis_jobs
        cutoff = self._clock() - window
        stmt = (
            select(t)
            .where(
                t.c.symbol == symbol.upper(),
                t.c.status != JobStatus.FAILED.value,
                t.c.created_at >= cutoff,
            )
            .order_by(t.c.created_at.desc())
            .limit(1)
        )
        with self._engine.connect() as conn:
            row = conn.execute(stmt).first()
        return _row_to_job(row) if row else None

    def get(self, job_id: UUID) -> Optional[AnalysisJob]:
        with self._engine.connect() as conn:
            row = conn.execute(
                select(analysis_jobs).where(analysis_jobs.c.id == str(job_id))
            ).first()
        return _row_to_job(row) if row else None

    def list_recent(
        self,
        status: Optional[JobStatus] = None,
        symbol: Optional[str] = None,
        limit: int = 50,
    ) -> list[AnalysisJob]:
        t = analysis_jobs
        stmt = select(t)
        if status is not None:
            stmt = stmt.where(t.c.status == status.value)
        if symbol:
            stmt = stmt.where(t.c.symbol == symbol.upper())
        stmt = stmt.order_by(t.c.created_at.desc(), t.c.id.desc()).limit(limit)
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).all()
        return [_row_to_job(row) for row in rows]

    def count_by_status(self) -> dict[JobStatus, int]:
        t = analysis_jobs
        stmt = select(t.c.status, func.count()).group_by(t.c.status)
        with self._engine.connect() as conn:
            rows = conn.execute(stmt).all()
        counts = {status: 0 for status in JobStatus}
        for status, count in rows:
            counts[JobStatus(status)] = count
        return counts

    def fail_stale_processing(self, older_than: timedelta) -> int:
        t = analysis_jobs
        now = self._clock()
        stmt = (
            update(t)
            .where(
                t.c.status == JobStatus.PROCESSING.value,
                t.c.claimed_at < now - older_than,
            )
            .values(status=JobStatus.FAILED.value, completed_at=now)
        )
        with self._engine.begin() as conn:
            failed = conn.execute(stmt).rowcount
        if failed:
            logger.warning("Failed %d job(s) stuck in PROCESSING", failed)
        return failed
