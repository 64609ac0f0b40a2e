"""
Jobs API Routes
History listing (with the staleness sweep), status queries and metadata.
"""

import logging
from typing import Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from espelho.api.deps import get_current_session, get_db, get_session_factory, get_storage
from espelho.core.auth import AuthSession
from espelho.core.config import settings
from espelho.schemas.job import JobListResponse, JobResponse, JobStatus, JobVisibilityUpdate
from espelho.services.jobs import JobLifecycleManager, JobNotFoundError, repair_stale_job, to_view
from espelho.services.storage import StorageService
from espelho.services.watcher import JobWatcher, JobWatchTimeout, db_job_fetcher

logger = logging.getLogger(__name__)

router = APIRouter()


def schedule_stale_repairs(
    stale_ids,
    background_tasks: BackgroundTasks,
    session_factory: Callable[[], Session],
):
    """One repair per stale job per load."""
    for job_id in dict.fromkeys(stale_ids):
        if settings.USE_WORKER_QUEUE:
            from espelho.workers.queue import enqueue_stale_repair
            enqueue_stale_repair(job_id)
        else:
            background_tasks.add_task(repair_stale_job, session_factory, job_id)


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")


@router.get("", response_model=JobListResponse)
async def list_jobs(
    background_tasks: BackgroundTasks,
    job_status: Optional[JobStatus] = None,
    limit: int = 50,
    offset: int = 0,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """List the user's jobs. Stale processing jobs are shown as failed and repaired in the background."""
    manager = JobLifecycleManager(db)
    jobs = manager.list_for_owner(
        session.user_id,
        status=job_status.value if job_status else None,
        limit=min(max(limit, 1), 200),
        offset=max(offset, 0),
    )
    views, stale_ids = manager.sweep_stale(jobs)
    schedule_stale_repairs(stale_ids, background_tasks, session_factory)
    return JobListResponse(jobs=views, stale_job_ids=stale_ids)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job_status(
    job_id: str,
    background_tasks: BackgroundTasks,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
):
    """Get job status and result. A stale job is shown as failed and repaired, as in the listing."""
    manager = JobLifecycleManager(db)
    try:
        job = manager.get(job_id, session.user_id)
    except JobNotFoundError:
        raise _not_found()
    views, stale_ids = manager.sweep_stale([job])
    schedule_stale_repairs(stale_ids, background_tasks, session_factory)
    return views[0]


@router.get("/{job_id}/wait", response_model=JobResponse)
async def wait_for_job(
    job_id: str,
    timeout: Optional[float] = Query(default=None, gt=0),
    session: AuthSession = Depends(get_current_session),
    session_factory=Depends(get_session_factory),
):
    """
    Block until the job is completed or failed.

    Answers 408 once `timeout` (capped at JOB_WATCH_TIMEOUT_SECONDS) runs
    out. The job itself is left untouched.
    """
    limit = settings.JOB_WATCH_TIMEOUT_SECONDS
    watcher = JobWatcher(
        db_job_fetcher(session_factory, session.user_id),
        timeout=min(timeout, limit) if timeout else limit,
    )
    try:
        result = await watcher.watch(job_id)
    except JobNotFoundError:
        raise _not_found()
    except JobWatchTimeout as e:
        raise HTTPException(status_code=status.HTTP_408_REQUEST_TIMEOUT, detail=str(e))
    return result.job


@router.patch("/{job_id}/visibility", response_model=JobResponse)
async def update_visibility(
    job_id: str,
    body: JobVisibilityUpdate,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        job = JobLifecycleManager(db).set_visibility(job_id, body.is_public, session.user_id)
    except JobNotFoundError:
        raise _not_found()
    return to_view(job)


@router.post("/{job_id}/favorite", response_model=JobResponse)
async def toggle_favorite(
    job_id: str,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        job = JobLifecycleManager(db).toggle_favorite(job_id, session.user_id)
    except JobNotFoundError:
        raise _not_found()
    return to_view(job)


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_job(
    job_id: str,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
):
    try:
        await JobLifecycleManager(db, storage).delete(job_id, session.user_id)
    except JobNotFoundError:
        raise _not_found()
