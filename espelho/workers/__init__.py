# Workers package - background job processing with RQ

from espelho.workers.queue import (
    QueueManager,
    enqueue_process_job,
    enqueue_stale_repair,
    get_queue_manager,
)
from espelho.workers.tasks import run_process_job_task, run_stale_repair_task

__all__ = [
    "QueueManager",
    "get_queue_manager",
    "enqueue_process_job",
    "enqueue_stale_repair",
    "run_process_job_task",
    "run_stale_repair_task",
]
