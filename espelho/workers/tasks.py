"""
RQ Task Definitions
Task functions executed by workers. The coroutines they wrap also back the
FastAPI background tasks when the worker queue is disabled.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from espelho.core.database import SessionLocal
from espelho.services.jobs import repair_stale_job
from espelho.services.processor import run_process_job

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Helper to run async code in sync context (for RQ)."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def run_process_job_task(job_id: str, ai_model: Optional[str] = None) -> Dict[str, Any]:
    """Process a queued try-on job. Failures are recorded on the job row."""
    logger.info(f"[Task] Processing job {job_id}")
    _run_async(run_process_job(SessionLocal, job_id, ai_model))
    return {"job_id": job_id}


def run_stale_repair_task(job_id: str) -> Dict[str, Any]:
    """Write the failure of a job that outlived the processing timeout."""
    logger.info(f"[Task] Repairing stale job {job_id}")
    repair_stale_job(SessionLocal, job_id)
    return {"job_id": job_id}
