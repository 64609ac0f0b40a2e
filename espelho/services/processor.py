"""
Server-Side Job Processor
Processes an already-created queued job without a browser: loads both
assets from storage, builds the prompt and calls the provider adapter
directly. Runs as a FastAPI background task or as an RQ job.
"""

import base64
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from espelho.core.ai_models import SUPPORTED_PROVIDERS
from espelho.core.config import settings
from espelho.models.job import Job
from espelho.services.assets import AssetNotFoundError, AssetRepository
from espelho.services.images import ImageProcessingError, parse_data_url, resize_image
from espelho.services.jobs import (
    DEFAULT_INSTRUCTIONS,
    TERMINAL_STATUSES,
    JobLifecycleManager,
    JobNotFoundError,
)
from espelho.services.orchestrator import CORRUPTED_IMAGES_MESSAGE, UNEXPECTED_ERROR_MESSAGE
from espelho.services.profiles import ProfileRepository
from espelho.services.prompts import CURRENT_PROMPT_VERSION, build_prompt
from espelho.services.providers import (
    API_KEY_SETTINGS,
    GenerationRequest,
    GenerationSuccess,
    ProviderAdapter,
    create_adapter,
    get_api_key,
)
from espelho.services.storage import StorageService

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[str, str], ProviderAdapter]


class JobProcessor:
    def __init__(
        self,
        db: Session,
        storage: Optional[StorageService] = None,
        adapter_factory: AdapterFactory = create_adapter,
    ):
        self.db = db
        self.storage = storage or StorageService()
        self.jobs = JobLifecycleManager(db, self.storage)
        self.assets = AssetRepository(db, self.storage)
        self.profiles = ProfileRepository(db)
        self.adapter_factory = adapter_factory

    async def process(self, job_id: str, ai_model: Optional[str] = None) -> Job:
        job = self.jobs.get(job_id)
        if job.status in TERMINAL_STATUSES:
            logger.info(f"[Processor] {job_id} already {job.status}, skipping")
            return job

        self.jobs.mark_processing(job_id)

        config = self.profiles.resolve_ai_model(job.user_id, ai_model or job.ai_model_used)
        logger.info(f"[Processor] {job_id}: {config.display_name} ({config.provider})")

        if not config.can_generate_images or config.provider not in SUPPORTED_PROVIDERS:
            return self.jobs.fail(
                job_id,
                f"O modelo {config.display_name} não suporta geração de imagens. "
                f"Ele é um modelo de análise apenas. Por favor, selecione um modelo Gemini "
                f"nas configurações do seu perfil.",
            )

        api_key = get_api_key(config.provider)
        if not api_key:
            logger.error(f"[Processor] {API_KEY_SETTINGS[config.provider]} missing")
            return self.jobs.fail(job_id, f"Server Configuration Error: {API_KEY_SETTINGS[config.provider]} missing.")

        images = await self._load_images(job)
        if images is None:
            return self.jobs.fail(job_id, CORRUPTED_IMAGES_MESSAGE)
        model_b64, product_b64 = images

        instructions = job.user_instructions if job.user_instructions != DEFAULT_INSTRUCTIONS else None
        request = GenerationRequest(
            model_image=model_b64,
            product_image=product_b64,
            prompt=build_prompt(job.style, job.prompt_version or CURRENT_PROMPT_VERSION, instructions),
            provider=config.provider,
            model=config.model,
            temperature=settings.GENERATION_TEMPERATURE,
            top_k=settings.GENERATION_TOP_K,
            top_p=settings.GENERATION_TOP_P,
            job_id=job_id,
        )

        adapter = self.adapter_factory(config.provider, api_key)
        result = await adapter.generate(request)

        if isinstance(result, GenerationSuccess):
            return await self.jobs.complete(job_id, result.image)

        logger.warning(f"[Processor] {job_id} failed: {result.kind.value}")
        return self.jobs.fail(job_id, result.message)

    async def _load_images(self, job: Job):
        """(model, product) as resized raw base64, or None if either binary is unusable."""
        if not job.model_id or not job.product_id:
            return None
        try:
            model = self.assets.get(job.model_id)
            product = self.assets.get(job.product_id)
        except AssetNotFoundError as e:
            logger.error(f"[Processor] Could not load assets for {job.id}: {e}")
            return None

        encoded = []
        for asset in (model, product):
            data_url = await self.assets.load_data_url(asset)
            if not data_url:
                return None
            try:
                _, raw = parse_data_url(data_url)
                encoded.append(base64.b64encode(resize_image(raw)).decode("ascii"))
            except ImageProcessingError as e:
                logger.error(f"[Processor] Unusable image {asset.id}: {e}")
                return None
        return encoded[0], encoded[1]


async def run_process_job(
    session_factory: Callable[[], Session],
    job_id: str,
    ai_model: Optional[str] = None,
    adapter_factory: AdapterFactory = create_adapter,
    storage: Optional[StorageService] = None,
):
    """Entry point for background execution. Failures are logged and recorded on the job."""
    db = session_factory()
    try:
        await JobProcessor(db, storage, adapter_factory).process(job_id, ai_model)
    except JobNotFoundError:
        logger.warning(f"[Processor] Job {job_id} not found")
    except Exception as e:
        logger.exception(f"[Processor] Unexpected error on {job_id}: {e}")
        db.rollback()
        try:
            JobLifecycleManager(db).fail(job_id, UNEXPECTED_ERROR_MESSAGE)
        except JobNotFoundError:
            logger.warning(f"[Processor] Job {job_id} disappeared while failing it")
    finally:
        db.close()
