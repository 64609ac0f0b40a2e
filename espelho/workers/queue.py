"""
Queue Management Utilities
RQ queue wrappers for server-side job processing and stale-job repair.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from rq import Queue, Retry
from rq.exceptions import NoSuchJobError
from rq.job import Job, JobStatus as RQJobStatus

from espelho.core.config import settings
from espelho.core.redis import Queues, get_redis

logger = logging.getLogger(__name__)

PENDING_RQ_STATUSES = (
    RQJobStatus.QUEUED,
    RQJobStatus.STARTED,
    RQJobStatus.DEFERRED,
    RQJobStatus.SCHEDULED,
)


def stale_repair_id(job_id: str) -> str:
    """Deterministic RQ id, so one job never has two repairs queued."""
    return f"stale-repair-{job_id}"


def process_job_id(job_id: str) -> str:
    return f"process-{job_id}"


class QueueManager:
    """
    Manages RQ queues for the try-on backend.

    - generation: server-side processing of queued try-on jobs
    - maintenance: stale-job repair
    """

    def __init__(self, redis=None):
        self._queues: Dict[str, Queue] = {}
        self._redis = redis

    @property
    def redis(self):
        """Lazy Redis connection."""
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def get_queue(self, queue_name: str = Queues.DEFAULT) -> Queue:
        if queue_name not in self._queues:
            self._queues[queue_name] = Queue(
                name=queue_name,
                connection=self.redis,
                default_timeout=settings.JOB_TIMEOUT_GENERATION,
            )
            logger.debug(f"Created queue: {queue_name}")
        return self._queues[queue_name]

    def get_job(self, rq_job_id: str) -> Optional[Job]:
        try:
            return Job.fetch(rq_job_id, connection=self.redis)
        except NoSuchJobError:
            return None

    def _already_pending(self, rq_job_id: str) -> bool:
        job = self.get_job(rq_job_id)
        return job is not None and job.get_status() in PENDING_RQ_STATUSES

    def enqueue_process_job(self, job_id: str, ai_model: Optional[str] = None) -> Optional[Job]:
        """Enqueue server-side processing of a queued try-on job."""
        from espelho.workers.tasks import run_process_job_task

        rq_id = process_job_id(job_id)
        if self._already_pending(rq_id):
            logger.info(f"Process job already queued: {job_id}")
            return None

        # job_id is an rq keyword, task arguments go through kwargs=
        job = self.get_queue(Queues.GENERATION).enqueue(
            run_process_job_task,
            kwargs={"job_id": job_id, "ai_model": ai_model},
            job_id=rq_id,
            job_timeout=settings.JOB_TIMEOUT_GENERATION,
            retry=Retry(max=1, interval=[10]),
            meta={
                "type": "process_job",
                "job_id": job_id,
                "created_at": datetime.utcnow().isoformat(),
            },
        )
        logger.info(f"Enqueued process job: {job_id}")
        return job

    def enqueue_stale_repair(self, job_id: str) -> Optional[Job]:
        """Enqueue the `fail` write for a job the listing found stale."""
        from espelho.workers.tasks import run_stale_repair_task

        rq_id = stale_repair_id(job_id)
        if self._already_pending(rq_id):
            logger.debug(f"Stale repair already queued: {job_id}")
            return None

        job = self.get_queue(Queues.MAINTENANCE).enqueue(
            run_stale_repair_task,
            kwargs={"job_id": job_id},
            job_id=rq_id,
            job_timeout=60,
            meta={
                "type": "stale_repair",
                "job_id": job_id,
                "created_at": datetime.utcnow().isoformat(),
            },
        )
        logger.info(f"Enqueued stale repair: {job_id}")
        return job

    def get_queue_stats(self) -> Dict[str, Dict[str, Any]]:
        stats = {}
        for name in (Queues.GENERATION, Queues.MAINTENANCE, Queues.DEFAULT):
            try:
                queue = self.get_queue(name)
                stats[name] = {
                    "queued": len(queue),
                    "started": queue.started_job_registry.count,
                    "finished": queue.finished_job_registry.count,
                    "failed": queue.failed_job_registry.count,
                }
            except Exception as e:
                stats[name] = {"error": str(e)}
        return stats


# Singleton instance
_queue_manager: Optional[QueueManager] = None


def get_queue_manager() -> QueueManager:
    """Get singleton QueueManager instance."""
    global _queue_manager
    if _queue_manager is None:
        _queue_manager = QueueManager()
    return _queue_manager


# Convenience functions
def enqueue_process_job(job_id: str, ai_model: Optional[str] = None) -> Optional[Job]:
    return get_queue_manager().enqueue_process_job(job_id, ai_model)


def enqueue_stale_repair(job_id: str) -> Optional[Job]:
    return get_queue_manager().enqueue_stale_repair(job_id)


__all__ = [
    "QueueManager",
    "get_queue_manager",
    "enqueue_process_job",
    "enqueue_stale_repair",
    "stale_repair_id",
    "process_job_id",
]
