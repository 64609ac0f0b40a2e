"""
Provider Adapter Contract
Uniform request/result types shared by every AI provider.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union


class FailureKind(str, Enum):
    """Normalized failure taxonomy."""
    VALIDATION_ERROR = "validation_error"
    QUOTA_EXCEEDED = "quota_exceeded"
    SAFETY_BLOCK = "safety_block"
    COPYRIGHT_BLOCK = "copyright_block"
    EMPTY_RESPONSE = "empty_response"
    PROVIDER_ERROR = "provider_error"
    NETWORK_ERROR = "network_error"
    CAPABILITY_MISMATCH = "capability_mismatch"


@dataclass
class GenerationRequest:
    """Normalized payload handed to an adapter. Images are raw base64 (no data URL prefix)."""
    model_image: str
    product_image: str
    prompt: str
    model: str
    provider: str = "gemini"
    temperature: float = 0.6
    top_k: int = 32
    top_p: float = 0.8
    model_mime: str = "image/jpeg"
    product_mime: str = "image/jpeg"
    job_id: Optional[str] = None


@dataclass
class GenerationSuccess:
    image: str  # data:<mime>;base64,<data>

    success: bool = field(default=True, init=False)


@dataclass
class GenerationFailure:
    kind: FailureKind
    message: str
    retriable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)
    analysis: Optional[str] = None  # text returned instead of an image

    success: bool = field(default=False, init=False)


GenerationResult = Union[GenerationSuccess, GenerationFailure]


class ProviderAdapter(ABC):
    """Hides one provider's wire format. `generate` never raises provider exceptions."""

    name: str = ""

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        ...
