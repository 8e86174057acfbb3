"""
Pipeline scheduler: independent interval loops for the anomaly pipeline.

Uses APScheduler to run:
- **market_watcher** (every scan interval): one watcher cycle
- **analysis_worker-{i}** (every poll interval, one per worker instance):
  one job per tick
- **stale_job_reaper** (every reaper interval): fail abandoned claims

Each loop has ``max_instances=1`` and ``coalesce=True``: a slow tick is
never overlapped by the next one, so each worker instance holds at most
one job in flight. Loops share nothing but the job store.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from marketwatch.application.anomaly.process_analysis_job import (
    ProcessAnalysisJobUseCase,
)
from marketwatch.application.anomaly.reap_stale_jobs import ReapStaleJobsUseCase
from marketwatch.application.anomaly.scan_market import ScanMarketUseCase

logger = logging.getLogger(__name__)

WATCHER_TASK = "market_watcher"
WORKER_TASK_PREFIX = "analysis_worker"
REAPER_TASK = "stale_job_reaper"


class TaskStatus(Enum):
    COMPLETED = "completed"
    IDLE = "idle"
    FAILED = "failed"


@dataclass
class TaskResult:
    """Result of a scheduled task execution."""

    task_name: str
    status: TaskStatus
    started_at: str
    finished_at: str | None = None
    duration_seconds: float = 0.0
    details: dict = field(default_factory=dict)
    error: str | None = None


class PipelineScheduler:
    """Runs the watcher, the workers and the reaper on their own cadences.

    Usage:
        scheduler = PipelineScheduler(scan, workers, reaper)
        scheduler.start()                   # begin all loops
        scheduler.run_now("market_watcher") # one cycle, blocking
        scheduler.stop()                    # graceful shutdown
    """

    def __init__(
        self,
        scan_use_case: ScanMarketUseCase,
        worker_use_cases: list[ProcessAnalysisJobUseCase],
        reaper_use_case: Optional[ReapStaleJobsUseCase] = None,
        scan_interval_seconds: float = 60.0,
        worker_poll_interval_seconds: float = 5.0,
        reaper_interval_seconds: float = 60.0,
        max_history: int = 200,
    ) -> None:
        self._scan = scan_use_case
        self._workers = list(worker_use_cases)
        self._reaper = reaper_use_case
        self._scan_interval = scan_interval_seconds
        self._poll_interval = worker_poll_interval_seconds
        self._reaper_interval = reaper_interval_seconds
        self._task_history: list[TaskResult] = []
        self._max_history = max_history
        self._lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def task_history(self) -> list[TaskResult]:
        with self._lock:
            return list(self._task_history)

    def task_names(self) -> list[str]:
        names = [WATCHER_TASK]
        names.extend(f"{WORKER_TASK_PREFIX}-{i}" for i in range(len(self._workers)))
        if self._reaper is not None:
            names.append(REAPER_TASK)
        return names

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start every loop."""
        if self.is_running:
            logger.warning("Scheduler already running.")
            return

        self._scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={"coalesce": True, "max_instances": 1},
        )
        self._scheduler.add_job(
            self._task_scan,
            IntervalTrigger(seconds=self._scan_interval),
            id=WATCHER_TASK,
            name="Market watcher cycle",
            next_run_time=datetime.now(timezone.utc),
        )
        for index in range(len(self._workers)):
            self._scheduler.add_job(
                self._task_worker,
                IntervalTrigger(seconds=self._poll_interval),
                args=[index],
                id=f"{WORKER_TASK_PREFIX}-{index}",
                name=f"Analysis worker {index}",
            )
        if self._reaper is not None:
            self._scheduler.add_job(
                self._task_reap,
                IntervalTrigger(seconds=self._reaper_interval),
                id=REAPER_TASK,
                name="Stale job reaper",
            )

        self._scheduler.start()
        logger.info(
            "PipelineScheduler started with %d jobs.",
            len(self._scheduler.get_jobs()),
        )

    def stop(self, wait: bool = False) -> None:
        """Stop every loop. In-flight ticks finish when ``wait`` is True."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None
        logger.info("PipelineScheduler stopped.")

    def run_now(self, task_name: str) -> TaskResult:
        """Execute one loop body immediately (blocking).

        Args:
            task_name: ``market_watcher``, ``analysis_worker-{i}`` or
                ``stale_job_reaper``.
        """
        if task_name == WATCHER_TASK:
            return self._task_scan()
        if task_name == REAPER_TASK and self._reaper is not None:
            return self._task_reap()
        if task_name.startswith(f"{WORKER_TASK_PREFIX}-"):
            suffix = task_name.rsplit("-", 1)[1]
            if suffix.isdigit() and int(suffix) < len(self._workers):
                return self._task_worker(int(suffix))
        return TaskResult(
            task_name=task_name,
            status=TaskStatus.FAILED,
            started_at=datetime.now(timezone.utc).isoformat(),
            error=f"Unknown task: {task_name}. Available: {self.task_names()}",
        )

    def get_status(self) -> dict:
        """Return scheduler state, next run times and recent task history."""
        jobs = []
        if self._scheduler is not None:
            for job in self._scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                    }
                )
        recent = self.task_history[-20:]
        return {
            "running": self.is_running,
            "jobs": jobs,
            "recent_tasks": [
                {
                    "task": r.task_name,
                    "status": r.status.value,
                    "started_at": r.started_at,
                    "duration_seconds": r.duration_seconds,
                    "details": r.details,
                    "error": r.error,
                }
                for r in recent
            ],
        }

    # ------------------------------------------------------------------
    # Task implementations
    # ------------------------------------------------------------------

    def _record_result(self, result: TaskResult) -> None:
        with self._lock:
            self._task_history.append(result)
            if len(self._task_history) > self._max_history:
                self._task_history = self._task_history[-self._max_history:]

    def _run_task(
        self, task_name: str, body: Callable[[], tuple[TaskStatus, dict[str, Any]]]
    ) -> TaskResult:
        start = time.monotonic()
        started_at = datetime.now(timezone.utc).isoformat()
        try:
            status, details = body()
            task_result = TaskResult(
                task_name=task_name,
                status=status,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc).isoformat(),
                duration_seconds=round(time.monotonic() - start, 2),
                details=details,
            )
        except Exception as exc:
            task_result = TaskResult(
                task_name=task_name,
                status=TaskStatus.FAILED,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc).isoformat(),
                duration_seconds=round(time.monotonic() - start, 2),
                error=str(exc),
            )
            logger.exception("Scheduled task %s failed.", task_name)

        if task_result.status is not TaskStatus.IDLE:
            self._record_result(task_result)
        return task_result

    def _task_scan(self) -> TaskResult:
        def body():
            result = self._scan.run_cycle()
            details = {
                "scanned": result.scanned,
                "candidates": result.candidates,
                "enqueued": result.enqueued,
                "duplicates": result.duplicates,
                "failures": result.failures,
                "enqueued_job_ids": [str(i) for i in result.enqueued_job_ids],
            }
            if result.error:
                details["error"] = result.error
                return TaskStatus.FAILED, details
            return TaskStatus.COMPLETED, details

        return self._run_task(WATCHER_TASK, body)

    def _task_worker(self, index: int) -> TaskResult:
        worker = self._workers[index]

        def body():
            outcome = worker.execute()
            if outcome is None:
                return TaskStatus.IDLE, {"worker_id": worker.worker_id}
            return TaskStatus.COMPLETED, {
                "worker_id": worker.worker_id,
                "job_id": str(outcome.job.id),
                "symbol": outcome.job.symbol,
                "job_status": outcome.status.value,
                "final_risk_score": outcome.job.final_risk_score,
                "used_fallback": outcome.used_fallback,
                "alert": outcome.alert.kind.value if outcome.alert else None,
            }

        return self._run_task(f"{WORKER_TASK_PREFIX}-{index}", body)

    def _task_reap(self) -> TaskResult:
        def body():
            result = self._reaper.execute()
            status = TaskStatus.COMPLETED if result.failed else TaskStatus.IDLE
            return status, {"failed": result.failed}

        return self._run_task(REAPER_TASK, body)
