"""
Generation Orchestrator
Runs one try-on attempt end to end: validate and shrink the images, resolve
the AI model, build the prompt, call the generation proxy and turn whatever
comes back into user-facing copy. Never retries on its own.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from espelho.core.ai_models import SUPPORTED_PROVIDERS, AIModelConfig
from espelho.core.auth import AuthSession, require_session
from espelho.core.config import settings
from espelho.models.asset import Asset
from espelho.services.images import ImageProcessingError, resize_data_url, strip_data_url_prefix
from espelho.services.jobs import JobLifecycleManager
from espelho.services.profiles import ProfileRepository
from espelho.services.prompts import CURRENT_PROMPT_VERSION, build_prompt
from espelho.services.providers.base import FailureKind
from espelho.services.providers.errors import (
    QUOTA_NO_FREE_TIER_MESSAGE,
    QUOTA_TEMPORARY_MESSAGE,
    QUOTA_VARIANT_NO_FREE_TIER,
)
from espelho.services.storage import StorageError

logger = logging.getLogger(__name__)

PROXY_PATH = "/api/revelacao"

CORRUPTED_IMAGES_MESSAGE = "Imagens corrompidas ou vazias. Tente reenviar as fotos."
SERVICE_UNAVAILABLE_MESSAGE = "Serviço da IA indisponível temporariamente."
CONNECTION_ERROR_MESSAGE = "Erro de conexão. Verifique sua internet."
SWITCH_PROVIDER_MESSAGE = (
    "⚠️ O modelo selecionado apenas analisa imagens e não gera looks. "
    "Altere para um modelo Gemini nas configurações do perfil."
)
INVALID_RESPONSE_MESSAGE = "A API não retornou uma imagem válida"
RESULT_SAVE_MESSAGE = "Não foi possível salvar o resultado. Tente novamente."
UNEXPECTED_ERROR_MESSAGE = "Erro interno ao processar o job."


class TryOnError(Exception):
    """Final, user-facing failure of a try-on attempt."""

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        retriable: bool = False,
        analysis: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.kind = FailureKind(kind)
        self.message = message
        self.retriable = retriable
        self.analysis = analysis
        self.details = details or {}


@dataclass
class ImageInput:
    """Image handed to the orchestrator. `data` is a data URL (or bare base64)."""
    data: Optional[str]
    mime_type: str = "image/jpeg"


@dataclass
class TryOnOutcome:
    job_id: str
    status: str
    image: Optional[str] = None
    result_url: Optional[str] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    retriable: bool = False
    analysis: Optional[str] = None
    duration_seconds: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == "completed"


class GenerationOrchestrator:
    def __init__(
        self,
        proxy_client: httpx.AsyncClient,
        jobs: JobLifecycleManager,
        profiles: ProfileRepository,
        assets=None,
    ):
        self.proxy_client = proxy_client
        self.jobs = jobs
        self.profiles = profiles
        self.assets = assets

    def resolve_model(self, user_id: Optional[str], override: Optional[str] = None) -> AIModelConfig:
        return self.profiles.resolve_ai_model(user_id, override)

    async def generate(
        self,
        garment: ImageInput,
        model: ImageInput,
        style: str,
        instructions: Optional[str] = None,
        ai_model_override: Optional[str] = None,
        user_id: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> str:
        """Return the generated look as a data URL or raise TryOnError."""
        # 1. local precondition, never reaches the provider
        if not garment or not garment.data or not model or not model.data:
            raise TryOnError(FailureKind.VALIDATION_ERROR, CORRUPTED_IMAGES_MESSAGE)

        # 2. bound payload size
        try:
            model_image = resize_data_url(model.data)
            garment_image = resize_data_url(garment.data)
        except ImageProcessingError as e:
            logger.warning(f"[Orchestrator] Could not resize inputs: {e}")
            raise TryOnError(FailureKind.VALIDATION_ERROR, CORRUPTED_IMAGES_MESSAGE)

        # 3. which provider/model
        config = self.resolve_model(user_id, ai_model_override)
        if config.provider not in SUPPORTED_PROVIDERS:
            raise TryOnError(
                FailureKind.VALIDATION_ERROR,
                f"O modelo {config.display_name} ainda não está disponível para geração. "
                f"Selecione um modelo Gemini nas configurações do perfil.",
            )
        logger.info(f"[Orchestrator] Using {config.display_name} ({config.model}) for job {job_id or 'N/A'}")

        # 4. prompt
        prompt = build_prompt(style, CURRENT_PROMPT_VERSION, instructions)

        # 5. proxy call
        payload = {
            "modelBase64": strip_data_url_prefix(model_image),
            "productBase64": strip_data_url_prefix(garment_image),
            "prompt": prompt,
            "jobId": job_id,
            "config": {
                "provider": config.provider,
                "model": config.model,
                "temperature": settings.GENERATION_TEMPERATURE,
                "topK": settings.GENERATION_TOP_K,
                "topP": settings.GENERATION_TOP_P,
            },
        }
        if config.provider == "groq":
            # GroqConfig has no top-K/top-P
            payload["config"].pop("topK")
            payload["config"].pop("topP")

        try:
            response = await self.proxy_client.post(
                PROXY_PATH, json=payload, timeout=settings.PROXY_TIMEOUT_SECONDS
            )
        except httpx.TransportError as e:
            logger.error(f"[Orchestrator] Proxy unreachable: {e}")
            raise TryOnError(FailureKind.NETWORK_ERROR, CONNECTION_ERROR_MESSAGE, retriable=True)

        # 6/7. interpret
        return self.interpret_response(response)

    def interpret_response(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code == 200:
            if body.get("success") and body.get("image"):
                return body["image"]
            if body.get("analysis") is not None or body.get("kind") == FailureKind.CAPABILITY_MISMATCH.value:
                raise TryOnError(
                    FailureKind.CAPABILITY_MISMATCH,
                    SWITCH_PROVIDER_MESSAGE,
                    analysis=body.get("analysis"),
                    details={"provider_message": body.get("error")},
                )
            raise TryOnError(FailureKind.EMPTY_RESPONSE, INVALID_RESPONSE_MESSAGE)

        logger.error(f"[Orchestrator] Proxy error {response.status_code}: {body.get('error')}")
        kind = body.get("kind")

        if response.status_code == 429 or body.get("error") == "QUOTA_EXCEEDED":
            details = body.get("details") or {}
            if details.get("quota_variant") == QUOTA_VARIANT_NO_FREE_TIER:
                message = QUOTA_NO_FREE_TIER_MESSAGE
            else:
                message = body.get("message") or QUOTA_TEMPORARY_MESSAGE
            raise TryOnError(FailureKind.QUOTA_EXCEEDED, message, retriable=True, details=details)

        if kind in (FailureKind.SAFETY_BLOCK.value, FailureKind.COPYRIGHT_BLOCK.value):
            raise TryOnError(FailureKind(kind), body.get("error") or SERVICE_UNAVAILABLE_MESSAGE)

        if kind == FailureKind.EMPTY_RESPONSE.value:
            raise TryOnError(
                FailureKind.EMPTY_RESPONSE,
                body.get("error") or INVALID_RESPONSE_MESSAGE,
                analysis=body.get("analysis"),
            )

        if kind == FailureKind.NETWORK_ERROR.value:
            raise TryOnError(FailureKind.NETWORK_ERROR, CONNECTION_ERROR_MESSAGE, retriable=True)

        if response.status_code >= 500:
            raise TryOnError(
                FailureKind.PROVIDER_ERROR,
                SERVICE_UNAVAILABLE_MESSAGE,
                retriable=True,
                details={"status": response.status_code, "error": body.get("error")},
            )

        # 400 without a block kind: the proxy rejected the payload
        raise TryOnError(
            FailureKind.VALIDATION_ERROR,
            body.get("error") or f"Erro HTTP {response.status_code}",
            details={"status": response.status_code},
        )

    async def run(
        self,
        session: Optional[AuthSession],
        garment: Asset,
        model: Asset,
        style: str,
        instructions: Optional[str] = None,
        ai_model_override: Optional[str] = None,
    ) -> TryOnOutcome:
        """
        create -> processing -> generate -> completed | failed.

        Every failure after the job exists is recorded on it, including
        unexpected exceptions. A capability mismatch fails the job with the
        switch-provider notice, it never completes it.
        """
        session = require_session(session)
        start = time.monotonic()

        config = self.resolve_model(session.user_id, ai_model_override)
        job = self.jobs.create(
            session,
            product_id=garment.id,
            model_id=model.id,
            style=style,
            instructions=instructions,
            ai_model=config.model,
            product_owner_id=garment.user_id,
        )
        self.jobs.mark_processing(job.id)

        try:
            garment_input = ImageInput(data=await self._load(garment), mime_type=garment.mime_type)
            model_input = ImageInput(data=await self._load(model), mime_type=model.mime_type)

            image = await self.generate(
                garment_input,
                model_input,
                style,
                instructions,
                ai_model_override=config.model,
                user_id=session.user_id,
                job_id=job.id,
            )
        except TryOnError as e:
            return self._failed(job.id, e, start)
        except Exception as e:
            logger.exception(f"[Orchestrator] Unexpected error on job {job.id}: {e}")
            self.jobs.db.rollback()
            return self._failed(
                job.id,
                TryOnError(FailureKind.PROVIDER_ERROR, UNEXPECTED_ERROR_MESSAGE, retriable=True),
                start,
            )

        try:
            job = await self.jobs.complete(job.id, image)
        except (StorageError, OSError, ImageProcessingError) as e:
            logger.error(f"[Orchestrator] Could not store result for {job.id}: {e}")
            return self._failed(
                job.id,
                TryOnError(FailureKind.PROVIDER_ERROR, RESULT_SAVE_MESSAGE, retriable=True),
                start,
            )
        except Exception as e:
            logger.exception(f"[Orchestrator] Unexpected error completing job {job.id}: {e}")
            self.jobs.db.rollback()
            return self._failed(
                job.id,
                TryOnError(FailureKind.PROVIDER_ERROR, UNEXPECTED_ERROR_MESSAGE, retriable=True),
                start,
            )

        duration = time.monotonic() - start
        logger.info(f"[Orchestrator] Job {job.id} completed in {duration:.1f}s")
        return TryOnOutcome(
            job_id=job.id,
            status="completed",
            image=image,
            result_url=job.result_public_url,
            duration_seconds=duration,
        )

    def _failed(self, job_id: str, error: TryOnError, start: float) -> TryOnOutcome:
        self.jobs.fail(job_id, error.message)
        logger.warning(f"[Orchestrator] Job {job_id} failed ({error.kind.value})")
        return TryOnOutcome(
            job_id=job_id,
            status="failed",
            error_kind=error.kind.value,
            message=error.message,
            retriable=error.retriable,
            analysis=error.analysis,
            duration_seconds=time.monotonic() - start,
            details=error.details,
        )

    async def _load(self, asset: Asset) -> Optional[str]:
        if self.assets is None:
            return None
        return await self.assets.load_data_url(asset)
