"""
Server-Side Processing Route
Processes an existing queued job without the browser holding the images.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from espelho.api.deps import (
    get_adapter_factory,
    get_current_session,
    get_db,
    get_session_factory,
    get_storage,
)
from espelho.core.auth import AuthSession
from espelho.core.config import settings
from espelho.schemas.job import JobStatus, ProcessJobRequest, ProcessJobResponse
from espelho.services.jobs import InvalidTransitionError, JobLifecycleManager, JobNotFoundError
from espelho.services.processor import run_process_job

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/process-job", response_model=ProcessJobResponse, status_code=status.HTTP_202_ACCEPTED)
async def process_job(
    body: ProcessJobRequest,
    background_tasks: BackgroundTasks,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
    adapter_factory=Depends(get_adapter_factory),
    storage=Depends(get_storage),
):
    """Start processing a queued job. Progress is read through GET /api/jobs/{id}."""
    manager = JobLifecycleManager(db)
    try:
        job = manager.get(body.job_id, session.user_id)
        # Claimed here, a second request gets 409
        manager.mark_processing(job.id, strict=True)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    except InvalidTransitionError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job is already {e.current}",
        )

    if settings.USE_WORKER_QUEUE:
        from espelho.workers.queue import enqueue_process_job
        enqueue_process_job(job.id, body.ai_model)
        message = "Job enviado para a fila de processamento"
    else:
        background_tasks.add_task(
            run_process_job,
            session_factory,
            job.id,
            body.ai_model,
            adapter_factory,
            storage,
        )
        message = "Processamento iniciado"

    logger.info(f"[ProcessJob] {job.id} dispatched (queue={settings.USE_WORKER_QUEUE})")
    return ProcessJobResponse(job_id=job.id, status=JobStatus.PROCESSING.value, message=message)
