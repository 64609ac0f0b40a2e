"""
Generation Proxy Schemas
Provider configuration is a discriminated union so a typo'd field or an
unknown provider is rejected before any provider is called.
"""

from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class _ProviderConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    model: Optional[str] = None
    temperature: float = Field(default=0.6, ge=0.0, le=2.0)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        # Clients send explicit nulls for "use the default"
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class GeminiConfig(_ProviderConfig):
    provider: Literal["gemini"] = "gemini"
    topK: int = Field(default=32, ge=1)
    topP: float = Field(default=0.8, gt=0.0, le=1.0)


class GroqConfig(_ProviderConfig):
    provider: Literal["groq"]


ProviderConfig = Annotated[Union[GeminiConfig, GroqConfig], Field(discriminator="provider")]

_config_adapter = TypeAdapter(ProviderConfig)


def parse_provider_config(raw: Any) -> Union[GeminiConfig, GroqConfig]:
    """Validate a raw config dict. A missing provider means gemini."""
    if raw is None:
        raw = {}
    if isinstance(raw, dict) and raw.get("provider") is None:
        raw = {**raw, "provider": "gemini"}
    return _config_adapter.validate_python(raw)


class RevelacaoSuccess(BaseModel):
    success: bool = True
    jobId: Optional[str] = None
    image: str
