"""
Provider Error Normalization
Maps SDK/transport exceptions from any provider onto the failure taxonomy.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import groq
import httpx

from espelho.services.providers.base import FailureKind, GenerationFailure

logger = logging.getLogger(__name__)

QUOTA_MARKERS = ("quota", "429", "resource_exhausted", "rate limit")

QUOTA_VARIANT_NO_FREE_TIER = "no_free_tier"
QUOTA_VARIANT_TEMPORARY = "temporary"

QUOTA_NO_FREE_TIER_MESSAGE = (
    "🚫 Limite de Quota da API Gemini Atingido\n\n"
    "⚠️ Sua chave API Gemini não tem acesso ao free tier.\n\n"
    "💡 SOLUÇÕES:\n\n"
    "1️⃣ Configure billing no Google Cloud (gratuito dentro dos limites)\n"
    "2️⃣ Alterne para Groq nas configurações do perfil\n"
    "3️⃣ Crie uma nova API Key em outra conta Google\n\n"
    "📊 Monitorar uso: https://ai.dev/usage?tab=rate-limit\n"
)

QUOTA_TEMPORARY_MESSAGE = (
    "🚫 Limite de Quota da API Gemini Atingido\n\n"
    "⏳ Limite temporário atingido. Aguarde alguns minutos.\n"
)

GROQ_RATE_LIMIT_MESSAGE = (
    "Limite de requisições do Groq atingido. "
    "Aguarde alguns minutos ou alterne para Gemini nas configurações."
)

NETWORK_ERROR_MESSAGE = "Falha de comunicação com o provedor de IA."

# groq wraps transport failures in its own exception type
NETWORK_EXCEPTIONS = (httpx.TransportError, asyncio.TimeoutError, ConnectionError, groq.APIConnectionError)


def _status_code(exc: Exception) -> Optional[int]:
    """HTTP status from a google-genai APIError (`code`) or a groq APIStatusError (`status_code`)."""
    for attr in ("code", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def _error_message(exc: Exception) -> str:
    message = getattr(exc, "message", None)
    return str(message) if message else str(exc)


def _error_payload(exc: Exception) -> Dict[str, Any]:
    """Provider error body, unwrapped from a top-level "error" key when present."""
    payload = getattr(exc, "details", None)
    if payload is None:
        payload = getattr(exc, "body", None)
    if not isinstance(payload, dict):
        return {}
    inner = payload.get("error")
    return inner if isinstance(inner, dict) else payload


def quota_violations(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """`violations` of the first QuotaFailure entry in a google.rpc error's details."""
    for detail in payload.get("details") or []:
        if isinstance(detail, dict) and "QuotaFailure" in str(detail.get("@type", "")):
            return [v for v in detail.get("violations") or [] if isinstance(v, dict)]
    return []


def quota_variant(payload: Dict[str, Any]) -> str:
    has_zero_limit = any("free_tier" in str(v.get("quotaMetric", "")) for v in quota_violations(payload))
    return QUOTA_VARIANT_NO_FREE_TIER if has_zero_limit else QUOTA_VARIANT_TEMPORARY


def is_quota_error(status: Optional[int], message: str) -> bool:
    if status == 429:
        return True
    lowered = message.lower()
    return any(marker in lowered for marker in QUOTA_MARKERS)


def quota_failure(provider: str, payload: Dict[str, Any]) -> GenerationFailure:
    if provider == "groq":
        variant = QUOTA_VARIANT_TEMPORARY
        message = GROQ_RATE_LIMIT_MESSAGE
    else:
        variant = quota_variant(payload)
        message = QUOTA_NO_FREE_TIER_MESSAGE if variant == QUOTA_VARIANT_NO_FREE_TIER else QUOTA_TEMPORARY_MESSAGE

    return GenerationFailure(
        kind=FailureKind.QUOTA_EXCEEDED,
        message=message,
        retriable=True,
        details={"quota_variant": variant, "provider_error": payload},
    )


def normalize_exception(exc: Exception, provider: str = "gemini") -> GenerationFailure:
    """Translate any exception raised by a provider call into a GenerationFailure."""
    if isinstance(exc, NETWORK_EXCEPTIONS):
        logger.warning(f"[{provider}] Network error: {exc}")
        return GenerationFailure(
            kind=FailureKind.NETWORK_ERROR,
            message=NETWORK_ERROR_MESSAGE,
            retriable=True,
            details={"error": str(exc)},
        )

    status = _status_code(exc)
    message = _error_message(exc)
    payload = _error_payload(exc)

    if is_quota_error(status, message):
        logger.warning(f"[{provider}] Quota exceeded (status={status})")
        return quota_failure(provider, payload)

    prefix = "Groq API error: " if provider == "groq" else ""

    if status in (500, 503):
        return GenerationFailure(
            kind=FailureKind.PROVIDER_ERROR,
            message=f"{prefix}{message}",
            retriable=True,
            details={"status": status, "provider_error": payload},
        )

    logger.error(f"[{provider}] Unexpected provider error (status={status}): {message}")
    return GenerationFailure(
        kind=FailureKind.PROVIDER_ERROR,
        message=f"{prefix}{message}",
        retriable=False,
        details={"status": status, "provider_error": payload},
    )
