# AI provider adapters
from espelho.core.config import settings
from espelho.services.providers.base import (
    FailureKind,
    GenerationFailure,
    GenerationRequest,
    GenerationResult,
    GenerationSuccess,
    ProviderAdapter,
)
from espelho.services.providers.gemini import GeminiTryOnAdapter
from espelho.services.providers.groq import GroqVisionAdapter, CAPABILITY_MISMATCH_MESSAGE

ADAPTERS = {
    "gemini": GeminiTryOnAdapter,
    "groq": GroqVisionAdapter,
}

# Server-held credential for each provider
API_KEY_SETTINGS = {
    "gemini": "GEMINI_API_KEY",
    "groq": "GROQ_API_KEY",
}


def get_api_key(provider: str) -> str:
    return getattr(settings, API_KEY_SETTINGS[provider], "") or ""


def create_adapter(provider: str, api_key: str) -> ProviderAdapter:
    """Instantiate the adapter registered for a provider id."""
    try:
        adapter_cls = ADAPTERS[provider]
    except KeyError:
        raise ValueError(f"Unsupported provider: {provider}")
    return adapter_cls(api_key=api_key)


__all__ = [
    "FailureKind",
    "GenerationFailure",
    "GenerationRequest",
    "GenerationResult",
    "GenerationSuccess",
    "ProviderAdapter",
    "GeminiTryOnAdapter",
    "GroqVisionAdapter",
    "CAPABILITY_MISMATCH_MESSAGE",
    "ADAPTERS",
    "API_KEY_SETTINGS",
    "get_api_key",
    "create_adapter",
]
