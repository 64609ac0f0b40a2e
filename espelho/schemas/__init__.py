# Schemas package
from espelho.schemas.asset import (
    AssetDeleteResponse,
    AssetImportRequest,
    AssetResponse,
    AssetType,
    AssetUpdate,
    DeleteStrategy,
)
from espelho.schemas.job import (
    JobListResponse,
    JobResponse,
    JobStatus,
    JobVisibilityUpdate,
    ProcessJobRequest,
    ProcessJobResponse,
)
from espelho.schemas.profile import (
    AIModelInfo,
    AIModelListResponse,
    AIModelPreference,
    AIModelPreferenceResponse,
)

__all__ = [
    "AssetDeleteResponse",
    "AssetImportRequest",
    "AssetResponse",
    "AssetType",
    "AssetUpdate",
    "DeleteStrategy",
    "JobListResponse",
    "JobResponse",
    "JobStatus",
    "JobVisibilityUpdate",
    "ProcessJobRequest",
    "ProcessJobResponse",
    "AIModelInfo",
    "AIModelListResponse",
    "AIModelPreference",
    "AIModelPreferenceResponse",
]
