"""
Job Lifecycle Manager
State machine for a single try-on request:

    queued (legacy: pending) -> processing -> completed | failed

Invariants kept on every write:
- result_public_url is set only when status == completed
- error_message is set only when status == failed
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from espelho.core.auth import AuthSession, require_session
from espelho.core.config import settings
from espelho.models.job import Job
from espelho.schemas.job import JobResponse, JobStatus
from espelho.services.images import parse_data_url
from espelho.services.prompts import (
    CURRENT_PIPELINE_VERSION,
    CURRENT_PROMPT_VERSION,
    DEFAULT_STYLE,
    resolve_style,
)
from espelho.services.storage import StorageService, extension_for

logger = logging.getLogger(__name__)

DEFAULT_INSTRUCTIONS = "Atelier."
DEFAULT_FAILURE_MESSAGE = "Falhou ao processar"
STALE_JOB_MESSAGE = "Tempo limite de processamento excedido. Tente gerar o look novamente."

INITIAL_STATUSES = (JobStatus.QUEUED.value, JobStatus.PENDING.value)
TERMINAL_STATUSES = (JobStatus.COMPLETED.value, JobStatus.FAILED.value)

STATUS_MESSAGES = {
    JobStatus.QUEUED.value: "Na fila de processamento",
    JobStatus.PENDING.value: "Aguardando início",
    JobStatus.PROCESSING.value: "Processando transformação",
    JobStatus.COMPLETED.value: "Concluído com sucesso",
    JobStatus.FAILED.value: "Falhou ao processar",
}

ALLOWED_TRANSITIONS = {
    JobStatus.QUEUED.value: (JobStatus.PROCESSING.value, JobStatus.FAILED.value),
    JobStatus.PENDING.value: (JobStatus.PROCESSING.value, JobStatus.FAILED.value),
    JobStatus.PROCESSING.value: (JobStatus.COMPLETED.value, JobStatus.FAILED.value),
    JobStatus.COMPLETED.value: (),
    JobStatus.FAILED.value: (),
}


class JobNotFoundError(Exception):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidTransitionError(Exception):
    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"Job {job_id} cannot go from {current} to {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex[:12]}"


def normalize_status(status: Optional[str]) -> str:
    """pending and queued are the same initial state."""
    if status == JobStatus.PENDING.value:
        return JobStatus.QUEUED.value
    return status or JobStatus.QUEUED.value


def status_message(status: str) -> str:
    return STATUS_MESSAGES.get(status, "Status desconhecido")


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, ())


def is_stale(job: Job, now: datetime, timeout: Optional[timedelta] = None) -> bool:
    """A processing job older than the stale timeout (strictly greater)."""
    timeout = timeout or timedelta(minutes=settings.STALE_JOB_TIMEOUT_MINUTES)
    if job.status != JobStatus.PROCESSING.value or not job.created_at:
        return False
    return now - job.created_at > timeout


def to_view(job: Job) -> JobResponse:
    view = JobResponse.model_validate(job)
    return view.model_copy(update={"status_message": status_message(view.status)})


class JobLifecycleManager:
    """Repository + state machine for Job records."""

    def __init__(self, db: Session, storage: Optional[StorageService] = None):
        self.db = db
        self._storage = storage

    @property
    def storage(self) -> StorageService:
        if self._storage is None:
            self._storage = StorageService()
        return self._storage

    # ----- reads -----

    def get(self, job_id: str, owner_id: Optional[str] = None) -> Job:
        query = self.db.query(Job).filter(Job.id == job_id)
        if owner_id:
            query = query.filter(Job.user_id == owner_id)
        job = query.first()
        if not job:
            raise JobNotFoundError(job_id)
        return job

    def list_for_owner(
        self,
        owner_id: str,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Job]:
        query = self.db.query(Job).filter(Job.user_id == owner_id)
        if status:
            if normalize_status(status) == JobStatus.QUEUED.value:
                query = query.filter(Job.status.in_(INITIAL_STATUSES))
            else:
                query = query.filter(Job.status == status)
        return query.order_by(Job.created_at.desc()).offset(offset).limit(limit).all()

    # ----- transitions -----

    def create(
        self,
        session: Optional[AuthSession],
        product_id: str,
        model_id: str,
        style: Optional[str] = None,
        instructions: Optional[str] = None,
        ai_model: Optional[str] = None,
        product_owner_id: Optional[str] = None,
    ) -> Job:
        """Persist a new job in `queued`. Raises AuthenticationError without a valid session."""
        session = require_session(session)

        job = Job(
            id=new_job_id(),
            user_id=session.user_id,
            product_id=product_id,
            model_id=model_id,
            product_owner_id=product_owner_id if product_owner_id != session.user_id else None,
            style=resolve_style(style or DEFAULT_STYLE).value,
            user_instructions=(instructions or "").strip() or DEFAULT_INSTRUCTIONS,
            status=JobStatus.QUEUED.value,
            ai_model_used=ai_model,
            prompt_version=CURRENT_PROMPT_VERSION,
            pipeline_version=CURRENT_PIPELINE_VERSION,
            is_favorite=False,
            is_public=False,
            created_at=datetime.utcnow(),
        )
        self.db.add(job)
        self.db.commit()
        self.db.refresh(job)

        logger.info(f"[Jobs] Created {job.id} for user {job.user_id} (style={job.style}, model={ai_model})")
        return job

    def mark_processing(self, job_id: str, strict: bool = False) -> Job:
        """
        queued/pending -> processing.

        Jobs already past the initial state are left alone, or rejected with
        InvalidTransitionError when `strict` (a caller claiming the job).
        """
        job = self.get(job_id)
        if not can_transition(job.status, JobStatus.PROCESSING.value):
            if strict:
                raise InvalidTransitionError(job_id, job.status, JobStatus.PROCESSING.value)
            logger.debug(f"[Jobs] {job_id} already {job.status}, not marking processing")
            return job

        job.status = JobStatus.PROCESSING.value
        job.started_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"[Jobs] {job_id} -> processing")
        return job

    async def complete(self, job_id: str, image_data_url: str) -> Job:
        """
        Upload the result image and mark the job completed.

        Last write wins: completing an already completed (or force-failed)
        job replaces the artifact instead of raising.
        """
        job = self.get(job_id)
        mime_type, data = parse_data_url(image_data_url)

        public_url, _ = await self.storage.upload(
            owner_id=job.user_id,
            folder="results",
            data=data,
            filename=f"result.{extension_for(mime_type)}",
            content_type=mime_type,
        )

        if job.status == JobStatus.COMPLETED.value:
            logger.warning(f"[Jobs] {job_id} completed twice, replacing artifact")
        elif job.status == JobStatus.FAILED.value:
            logger.warning(f"[Jobs] {job_id} completed after being failed, result kept")

        job.status = JobStatus.COMPLETED.value
        job.result_public_url = public_url
        job.error_message = None
        job.completed_at = datetime.utcnow()
        if job.started_at is None:
            job.started_at = job.completed_at
        self.db.commit()

        logger.info(f"[Jobs] {job_id} -> completed ({public_url})")
        return job

    def fail(self, job_id: str, message: Optional[str] = None) -> Job:
        """Mark failed with a message. Safe to call repeatedly: terminal jobs are left as they are."""
        job = self.get(job_id)
        if not can_transition(job.status, JobStatus.FAILED.value):
            logger.debug(f"[Jobs] {job_id} already {job.status}, fail ignored")
            return job

        job.status = JobStatus.FAILED.value
        job.error_message = (message or "").strip() or DEFAULT_FAILURE_MESSAGE
        job.completed_at = datetime.utcnow()
        self.db.commit()

        logger.info(f"[Jobs] {job_id} -> failed: {job.error_message.splitlines()[0]}")
        return job

    def sweep_stale(
        self,
        jobs: List[Job],
        now: Optional[datetime] = None,
    ) -> Tuple[List[JobResponse], List[str]]:
        """
        Present stale processing jobs as failed.

        Returns the views to display and the ids that still need a real
        `fail` write. Rows are not modified here.
        """
        now = now or datetime.utcnow()
        views = []
        stale_ids = []

        for job in jobs:
            view = to_view(job)
            if is_stale(job, now):
                stale_ids.append(job.id)
                view = view.model_copy(update={
                    "status": JobStatus.FAILED.value,
                    "error_message": STALE_JOB_MESSAGE,
                    "result_public_url": None,
                    "status_message": status_message(JobStatus.FAILED.value),
                })
            views.append(view)

        if stale_ids:
            logger.warning(f"[Jobs] {len(stale_ids)} stale job(s): {', '.join(stale_ids)}")
        return views, stale_ids

    # ----- metadata -----

    def set_visibility(self, job_id: str, is_public: bool, owner_id: Optional[str] = None) -> Job:
        job = self.get(job_id, owner_id)
        job.is_public = is_public
        self.db.commit()
        return job

    def toggle_favorite(self, job_id: str, owner_id: Optional[str] = None) -> Job:
        job = self.get(job_id, owner_id)
        job.is_favorite = not job.is_favorite
        self.db.commit()
        return job

    async def delete(self, job_id: str, owner_id: Optional[str] = None):
        job = self.get(job_id, owner_id)
        result_path = self.storage.path_from_url(job.result_public_url) if job.result_public_url else None

        self.db.delete(job)
        self.db.commit()

        if result_path:
            await self.storage.delete_file(result_path)
        logger.info(f"[Jobs] Deleted {job_id}")


def repair_stale_job(session_factory: Callable[[], Session], job_id: str):
    """Background repair for a job the sweep found stale."""
    db = session_factory()
    try:
        JobLifecycleManager(db).fail(job_id, STALE_JOB_MESSAGE)
    except JobNotFoundError:
        logger.warning(f"[Jobs] Stale job {job_id} vanished before repair")
    except Exception as e:
        db.rollback()
        logger.error(f"[Jobs] Stale repair failed for {job_id}: {e}")
    finally:
        db.close()
