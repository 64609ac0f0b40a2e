"""
Job Watcher
Polls a job until it reaches a terminal state, with a hard timeout.

The watcher only observes: hitting the timeout stops polling locally and
never writes to the job.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from sqlalchemy.orm import Session

from espelho.core.config import settings
from espelho.schemas.job import JobResponse, JobStatus
from espelho.services.jobs import JobLifecycleManager, JobNotFoundError, normalize_status

logger = logging.getLogger(__name__)

TERMINAL = (JobStatus.COMPLETED.value, JobStatus.FAILED.value)

FetchJob = Callable[[str], Awaitable[Optional[Any]]]
StatusCallback = Callable[[Any, Optional[str]], None]


class JobWatchTimeout(Exception):
    def __init__(self, job_id: str, elapsed: float, last_job: Optional[Any] = None):
        super().__init__("Timeout: O processamento está demorando mais que o esperado")
        self.job_id = job_id
        self.elapsed = elapsed
        self.last_job = last_job


@dataclass
class WatchResult:
    job: Any
    status_history: List[str] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def completed(self) -> bool:
        return self.job.status == JobStatus.COMPLETED.value

    @property
    def error_message(self) -> Optional[str]:
        if self.job.status == JobStatus.FAILED.value:
            return self.job.error_message or "Falha no processamento da imagem"
        return None


class JobWatcher:
    def __init__(
        self,
        fetch_job: FetchJob,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        on_status_change: Optional[StatusCallback] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.fetch_job = fetch_job
        self.interval = interval if interval is not None else settings.JOB_POLL_INTERVAL_SECONDS
        self.timeout = timeout if timeout is not None else settings.JOB_WATCH_TIMEOUT_SECONDS
        self.on_status_change = on_status_change
        self.clock = clock
        self.sleep = sleep

    async def watch(self, job_id: str) -> WatchResult:
        """Poll immediately, then every `interval` seconds until terminal or timeout."""
        start = self.clock()
        history: List[str] = []
        previous: Optional[str] = None
        last_job = None

        logger.info(f"[JobWatcher] Watching {job_id} (interval={self.interval}s, timeout={self.timeout}s)")

        while True:
            job = await self._safe_fetch(job_id)
            if job is not None:
                last_job = job
                current = normalize_status(job.status)
                if current != previous:
                    logger.info(f"[JobWatcher] {job_id}: {previous} -> {current}")
                    history.append(current)
                    if self.on_status_change and previous is not None:
                        self.on_status_change(job, previous)
                    previous = current

                if current in TERMINAL:
                    return WatchResult(job=job, status_history=history, elapsed=self.clock() - start)

            elapsed = self.clock() - start
            if elapsed > self.timeout:
                logger.warning(f"[JobWatcher] {job_id} timed out after {elapsed:.0f}s")
                raise JobWatchTimeout(job_id, elapsed, last_job)

            await self.sleep(self.interval)

    async def _safe_fetch(self, job_id: str) -> Optional[Any]:
        try:
            return await self.fetch_job(job_id)
        except JobNotFoundError:
            raise
        except Exception as e:
            logger.error(f"[JobWatcher] Fetch error for {job_id}: {e}")
            return None


def db_job_fetcher(session_factory: Callable[[], Session], owner_id: Optional[str] = None) -> FetchJob:
    """
    Fetch callable reading the job row with a fresh session per poll.

    Stale processing jobs come back presented as failed, so a watch on a
    dead job ends instead of running into the timeout.
    """

    async def fetch(job_id: str) -> JobResponse:
        db = session_factory()
        try:
            manager = JobLifecycleManager(db)
            views, _ = manager.sweep_stale([manager.get(job_id, owner_id)])
            return views[0]
        finally:
            db.close()

    return fetch
