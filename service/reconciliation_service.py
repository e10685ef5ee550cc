# service/reconciliation_service.py
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional
from core.pdp_client import PdpAuthorityClient, registrations_from_job
from model.job import Job
from repository.job_repository import JobRepository
from util.enums import JobStatus
from util.errors import CredentialError, RegistrationError
from util.timing import timed

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    pending: int = 0
    completed: List[str] = field(default_factory=list)
    retried: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    errored: List[str] = field(default_factory=list)


class ReconciliationScheduler:
    """
    Periodically registers pending roots with the proof-set authority.

    Idle -> list pending -> (per job) add root -> completed. A failed
    registration leaves the job pending for the next tick and bumps its
    attempt counter; at `max_attempts` the job is marked failed.

    stop() lets an in-flight tick finish; no tick starts afterwards.
    """

    def __init__(
        self,
        jobs: JobRepository,
        authority: PdpAuthorityClient,
        token_source: Callable[[], str],
        *,
        interval_seconds: float = 10.0,
        max_attempts: int = 30,
        extra_data: str = "",
    ) -> None:
        self._jobs = jobs
        self._authority = authority
        self._token = token_source
        self._interval = interval_seconds
        self._max_attempts = max_attempts
        self._extra_data = extra_data
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="reconcile-scheduler")
        logger.info("scheduler.started interval=%.1fs", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop.set()
        try:
            await self._task
        finally:
            self._task = None
        logger.info("scheduler.stopped")

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.tick()
            except Exception:
                # Repository outages must not kill the loop.
                logger.exception("scheduler.tick.error")

    async def tick(self) -> TickReport:
        report = TickReport()
        pending = await self._jobs.list_pending()
        report.pending = len(pending)
        if not pending:
            return report

        with timed(logger, "scheduler.tick", pending=len(pending)):
            for job in pending:
                # One short-lived credential per job.
                try:
                    token = self._token()
                except CredentialError as e:
                    logger.error("scheduler.token.error err=%s", e)
                    return report
                try:
                    await self._reconcile(job, token, report)
                except Exception:
                    # Failures stay local to this job.
                    report.errored.append(job.id)
                    logger.exception("scheduler.job.error job=%s root=%s", job.id, job.root_id)
        return report

    async def _reconcile(self, job: Job, token: str, report: TickReport) -> None:
        try:
            await self._authority.add_roots(
                job.proof_set_id,
                registrations_from_job(job.root_id, job.child_piece_ids),
                token,
                extra_data=self._extra_data,
            )
        except RegistrationError as e:
            await self._on_failure(job, str(e), report)
            return

        await self._jobs.update_status(job.id, JobStatus.completed)
        report.completed.append(job.id)
        logger.info(
            "scheduler.job.completed job=%s name=%s root=%s",
            job.id,
            job.logical_name,
            job.root_id,
        )

    async def _on_failure(self, job: Job, error: str, report: TickReport) -> None:
        attempts = await self._jobs.record_failure(job.id, error)
        if attempts >= self._max_attempts:
            await self._jobs.update_status(job.id, JobStatus.failed, error=error)
            report.failed.append(job.id)
            logger.error(
                "scheduler.job.failed job=%s root=%s attempts=%d err=%s",
                job.id,
                job.root_id,
                attempts,
                error,
            )
            return
        report.retried.append(job.id)
        logger.warning(
            "scheduler.job.retry job=%s root=%s attempts=%d err=%s",
            job.id,
            job.root_id,
            attempts,
            error,
        )
