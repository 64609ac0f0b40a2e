"""
Generation Proxy Routes
Server-side entry point holding the provider API keys. Receives the two
images and the prompt, picks the provider adapter and maps the result to
an HTTP response.
"""

import logging
import time

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from espelho.api.deps import get_adapter_factory
from espelho.core.config import settings
from espelho.core.logconfig import mask_secret
from espelho.schemas.revelacao import GeminiConfig, RevelacaoSuccess, parse_provider_config
from espelho.services.images import ImageProcessingError, decode_base64_image, strip_data_url_prefix
from espelho.services.providers import (
    API_KEY_SETTINGS,
    FailureKind,
    GenerationFailure,
    GenerationRequest,
    GenerationSuccess,
    get_api_key,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MISSING_IMAGES_MESSAGE = "Imagens ausentes no payload."
INVALID_IMAGES_MESSAGE = "Imagens inválidas no payload."

BLOCK_KINDS = (FailureKind.SAFETY_BLOCK, FailureKind.COPYRIGHT_BLOCK)


def _error(status_code: int, body: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body)


def failure_response(failure: GenerationFailure) -> JSONResponse:
    """Map a normalized provider failure to the proxy's HTTP contract."""
    kind = failure.kind

    if kind == FailureKind.CAPABILITY_MISMATCH:
        return _error(status.HTTP_200_OK, {
            "success": False,
            "error": failure.message,
            "analysis": failure.analysis,
            "kind": kind.value,
        })

    if kind in BLOCK_KINDS:
        return _error(status.HTTP_400_BAD_REQUEST, {"error": failure.message, "kind": kind.value})

    if kind == FailureKind.QUOTA_EXCEEDED:
        return _error(status.HTTP_429_TOO_MANY_REQUESTS, {
            "error": "QUOTA_EXCEEDED",
            "message": failure.message,
            "details": failure.details,
            "kind": kind.value,
        })

    body = {"error": failure.message, "kind": kind.value}
    if failure.details:
        body["details"] = failure.details
    if failure.analysis:
        body["analysis"] = failure.analysis
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, body)


@router.post("/api/revelacao")
@router.post("/generate", include_in_schema=False)
async def revelacao(
    request: Request,
    adapter_factory=Depends(get_adapter_factory),
):
    """
    Generate the try-on image.

    Body: {modelBase64, productBase64, prompt, jobId, config}
    """
    try:
        payload = await request.json()
    except ValueError:
        return _error(status.HTTP_400_BAD_REQUEST, {
            "error": "JSON inválido.",
            "kind": FailureKind.VALIDATION_ERROR.value,
        })
    if not isinstance(payload, dict):
        payload = {}

    job_id = payload.get("jobId")
    model_image = payload.get("modelBase64")
    product_image = payload.get("productBase64")

    if not model_image or not product_image:
        logger.warning(f"[Proxy] Missing images for job {job_id or 'N/A'}")
        return _error(status.HTTP_400_BAD_REQUEST, {
            "error": MISSING_IMAGES_MESSAGE,
            "kind": FailureKind.VALIDATION_ERROR.value,
        })

    try:
        decode_base64_image(model_image)
        decode_base64_image(product_image)
    except ImageProcessingError as e:
        logger.warning(f"[Proxy] Undecodable images for job {job_id or 'N/A'}: {e}")
        return _error(status.HTTP_400_BAD_REQUEST, {
            "error": INVALID_IMAGES_MESSAGE,
            "kind": FailureKind.VALIDATION_ERROR.value,
        })

    try:
        config = parse_provider_config(payload.get("config"))
    except ValidationError as e:
        logger.warning(f"[Proxy] Invalid config for job {job_id or 'N/A'}: {e.error_count()} error(s)")
        return _error(status.HTTP_400_BAD_REQUEST, {
            "error": "Configuração de provedor inválida.",
            "details": {"errors": e.errors(include_url=False, include_context=False)},
            "kind": FailureKind.VALIDATION_ERROR.value,
        })

    provider = config.provider
    api_key = get_api_key(provider)
    if not api_key:
        variable = API_KEY_SETTINGS[provider]
        logger.error(f"[Proxy] {variable} is not configured")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, {
            "error": f"Server Configuration Error: {variable} missing. Configure it in the server environment.",
            "kind": FailureKind.PROVIDER_ERROR.value,
        })

    if isinstance(config, GeminiConfig):
        model_name = config.model or settings.GEMINI_MODEL
        top_k, top_p = config.topK, config.topP
    else:
        model_name = config.model or settings.GROQ_MODEL
        top_k, top_p = settings.GENERATION_TOP_K, settings.GENERATION_TOP_P

    generation = GenerationRequest(
        model_image=strip_data_url_prefix(model_image),
        product_image=strip_data_url_prefix(product_image),
        prompt=payload.get("prompt") or "",
        model=model_name,
        provider=provider,
        temperature=config.temperature,
        top_k=top_k,
        top_p=top_p,
        job_id=job_id,
    )

    logger.info(
        f"[Proxy] job={job_id or 'N/A'} provider={provider} model={model_name} "
        f"key={mask_secret(api_key)}"
    )
    start = time.monotonic()
    result = await adapter_factory(provider, api_key).generate(generation)
    duration = time.monotonic() - start

    if isinstance(result, GenerationSuccess):
        logger.info(f"[Proxy] job={job_id or 'N/A'} succeeded in {duration:.1f}s")
        return RevelacaoSuccess(jobId=job_id, image=result.image)

    logger.warning(
        f"[Proxy] job={job_id or 'N/A'} failed in {duration:.1f}s: "
        f"{result.kind.value} ({result.message.splitlines()[0] if result.message else ''})"
    )
    return failure_response(result)
