"""
Groq Vision Adapter
Llama vision models on Groq analyse images but cannot generate them, so a
successful call always ends in a capability mismatch carrying the analysis.
"""

import logging
from typing import Any, Optional

from groq import AsyncGroq

from espelho.core.config import settings
from espelho.services.providers.base import (
    FailureKind,
    GenerationFailure,
    GenerationRequest,
    GenerationResult,
    ProviderAdapter,
)
from espelho.services.providers.errors import normalize_exception

logger = logging.getLogger(__name__)

CAPABILITY_MISMATCH_MESSAGE = (
    "⚠️ Groq Llama Vision não gera imagens diretamente. Ele apenas analisa imagens. "
    "Para transformação de looks, use Gemini ou configure outro provedor de geração de imagens."
)


class GroqVisionAdapter(ProviderAdapter):
    name = "groq"

    def __init__(self, api_key: str, client: Optional[AsyncGroq] = None):
        self.client = client or AsyncGroq(api_key=api_key)

    def build_messages(self, request: GenerationRequest) -> list:
        return [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": request.prompt},
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{request.model_mime};base64,{request.model_image}"},
                    },
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{request.product_mime};base64,{request.product_image}"},
                    },
                ],
            }
        ]

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        logger.info(f"[Groq] Sending to {request.model} (job {request.job_id or 'N/A'})")
        try:
            response = await self.client.chat.completions.create(
                model=request.model,
                messages=self.build_messages(request),
                temperature=request.temperature,
                max_tokens=settings.GROQ_MAX_TOKENS,
            )
        except Exception as e:
            logger.error(f"[Groq] Request failed: {e}")
            return normalize_exception(e, provider=self.name)

        content = self._first_content(response)
        if not content:
            return GenerationFailure(
                kind=FailureKind.EMPTY_RESPONSE,
                message="Groq não retornou conteúdo válido.",
            )

        return GenerationFailure(
            kind=FailureKind.CAPABILITY_MISMATCH,
            message=CAPABILITY_MISMATCH_MESSAGE,
            analysis=content,
        )

    @staticmethod
    def _first_content(response: Any) -> Optional[str]:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return None
        message = getattr(choices[0], "message", None)
        return getattr(message, "content", None)
