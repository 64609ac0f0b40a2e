"""
Job Schemas
Pydantic models for job API requests and responses.
"""

from datetime import datetime
from typing import List, Optional
from enum import Enum
from pydantic import BaseModel


class JobStatus(str, Enum):
    """Job status enum. PENDING is the legacy spelling of QUEUED."""
    QUEUED = "queued"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobResponse(BaseModel):
    """Schema for job response."""
    id: str
    user_id: str
    product_id: Optional[str] = None
    model_id: Optional[str] = None
    product_owner_id: Optional[str] = None
    style: str
    user_instructions: Optional[str] = None
    status: str
    error_message: Optional[str] = None
    result_public_url: Optional[str] = None
    is_favorite: bool = False
    is_public: bool = False
    ai_model_used: Optional[str] = None
    prompt_version: Optional[str] = None
    pipeline_version: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status_message: Optional[str] = None

    class Config:
        from_attributes = True


class JobListResponse(BaseModel):
    jobs: List[JobResponse]
    stale_job_ids: List[str] = []


class JobVisibilityUpdate(BaseModel):
    is_public: bool


class ProcessJobRequest(BaseModel):
    """Body of POST /api/process-job."""
    job_id: str
    ai_model: Optional[str] = None


class ProcessJobResponse(BaseModel):
    job_id: str
    status: str
    message: str
