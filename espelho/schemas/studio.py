"""
Studio Schemas
Request bodies and state returned by the /api/studio endpoints.
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from espelho.services.prompts import TryOnStyle


class SelectAssetRequest(BaseModel):
    asset_id: Optional[str] = None


class DirectionRequest(BaseModel):
    style: Optional[TryOnStyle] = None
    instructions: Optional[str] = Field(default=None, max_length=2000)


class StepRequest(BaseModel):
    step: int = Field(ge=1, le=4)


class StudioGenerateRequest(BaseModel):
    ai_model: Optional[str] = None


class StudioState(BaseModel):
    session_id: str
    step: int
    garment_id: Optional[str] = None
    model_id: Optional[str] = None
    style: str
    instructions: str = ""
    is_processing: bool = False
    loading_phrase: Optional[str] = None
    last_job_id: Optional[str] = None
    can_advance: bool = False


class TryOnResponse(BaseModel):
    """Outcome of one studio generation."""
    job_id: str
    status: str
    success: bool
    result_url: Optional[str] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    retriable: bool = False
    analysis: Optional[str] = None
    duration_seconds: float = 0.0
    details: Dict[str, Any] = {}


class StyleOption(BaseModel):
    id: str
    description: str
    is_default: bool = False
