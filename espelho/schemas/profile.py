"""
Profile Schemas
"""

from typing import List, Optional
from pydantic import BaseModel


class AIModelPreference(BaseModel):
    ai_model: str


class AIModelPreferenceResponse(BaseModel):
    ai_model: str
    provider: str
    display_name: str
    can_generate_images: bool


class AIModelInfo(BaseModel):
    model: str
    provider: str
    display_name: str
    description: str
    free_tier: bool
    rate_limit: str
    can_generate_images: bool
    category: str

    class Config:
        from_attributes = True


class AIModelListResponse(BaseModel):
    default: str
    models: List[AIModelInfo]
    selected: Optional[str] = None
