"""
Asset Schemas
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class AssetType(str, Enum):
    PRODUCT = "product"
    MODEL = "model"
    RESULT = "result"


class DeleteStrategy(str, Enum):
    KEEP_HISTORY = "keep-history"  # jobs stay, their reference is cleared
    DELETE_ALL = "delete-all"  # jobs using the asset are deleted too


class AssetResponse(BaseModel):
    id: str
    user_id: str
    type: str
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    published: bool = False
    is_favorite: bool = False
    public_url: str
    mime_type: str
    created_at: datetime

    class Config:
        from_attributes = True


class AssetUpdate(BaseModel):
    """Metadata patch. Extra keys are kept so the service can reject binary/type changes explicitly."""
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    published: Optional[bool] = None
    is_favorite: Optional[bool] = None

    class Config:
        extra = "allow"


class AssetImportRequest(BaseModel):
    url: str
    type: AssetType
    name: Optional[str] = None


class AssetDeleteResponse(BaseModel):
    id: str
    strategy: DeleteStrategy
    jobs_deleted: int = 0
    jobs_unlinked: int = 0
