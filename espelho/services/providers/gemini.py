"""
Gemini Try-On Adapter
Multimodal image generation through google-genai.
Documentation: https://ai.google.dev/gemini-api/docs/image-generation
"""

import base64
import logging
from typing import Any, List, Optional

from google import genai
from google.genai import types

from espelho.services.providers.base import (
    FailureKind,
    GenerationFailure,
    GenerationRequest,
    GenerationResult,
    GenerationSuccess,
    ProviderAdapter,
)
from espelho.services.providers.errors import normalize_exception

logger = logging.getLogger(__name__)

# Fashion imagery trips the default thresholds, only high severity is blocked
SAFETY_SETTINGS = [
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        threshold=types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    ),
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
        threshold=types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    ),
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        threshold=types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    ),
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        threshold=types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    ),
]


def _reason(value: Any) -> Optional[str]:
    """Enum or plain string -> plain string."""
    if value is None:
        return None
    return str(getattr(value, "value", value))


class GeminiTryOnAdapter(ProviderAdapter):
    """Composites the garment onto the model photo with a Gemini image model."""

    name = "gemini"

    def __init__(self, api_key: str, client: Optional[genai.Client] = None):
        self.client = client or genai.Client(api_key=api_key)

    def build_contents(self, request: GenerationRequest) -> List[Any]:
        # Order matters: the prompt refers to IMAGE_A (model) and IMAGE_B (garment)
        return [
            types.Part.from_bytes(data=base64.b64decode(request.model_image), mime_type=request.model_mime),
            types.Part.from_bytes(data=base64.b64decode(request.product_image), mime_type=request.product_mime),
            request.prompt,
        ]

    def build_config(self, request: GenerationRequest) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=request.temperature,
            top_k=request.top_k,
            top_p=request.top_p,
            safety_settings=SAFETY_SETTINGS,
        )

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        logger.info(f"[Gemini] Generating with model {request.model} (job {request.job_id or 'N/A'})")
        try:
            response = await self.client.aio.models.generate_content(
                model=request.model,
                contents=self.build_contents(request),
                config=self.build_config(request),
            )
        except Exception as e:
            logger.error(f"[Gemini] Request failed: {e}")
            return normalize_exception(e, provider=self.name)

        return self.parse_response(response)

    def parse_response(self, response: Any) -> GenerationResult:
        candidates = getattr(response, "candidates", None) or []

        if not candidates:
            feedback = getattr(response, "prompt_feedback", None)
            block_reason = _reason(getattr(feedback, "block_reason", None))
            if block_reason:
                return GenerationFailure(
                    kind=FailureKind.SAFETY_BLOCK,
                    message=f"Solicitação bloqueada: {block_reason}",
                )
            return GenerationFailure(
                kind=FailureKind.EMPTY_RESPONSE,
                message="A IA não retornou resultados visuais.",
            )

        candidate = candidates[0]
        content = getattr(candidate, "content", None)
        finish_reason = _reason(getattr(candidate, "finish_reason", None))

        if finish_reason and finish_reason != "STOP":
            logger.warning(f"[Gemini] Finish reason: {finish_reason}")
            if finish_reason == "SAFETY":
                return GenerationFailure(
                    kind=FailureKind.SAFETY_BLOCK,
                    message="A imagem gerada foi bloqueada pelos filtros de segurança (Conteúdo Sensível).",
                )
            if finish_reason == "RECITATION":
                return GenerationFailure(
                    kind=FailureKind.COPYRIGHT_BLOCK,
                    message="Bloqueio por direitos autorais. A IA reconheceu uma marca protegida.",
                )
            if content is None:
                return GenerationFailure(
                    kind=FailureKind.PROVIDER_ERROR,
                    message=f"A geração falhou. Motivo: {finish_reason}",
                    details={"finish_reason": finish_reason},
                )

        parts = getattr(content, "parts", None) or []
        if not parts:
            logger.error("[Gemini] Empty candidate content")
            return GenerationFailure(
                kind=FailureKind.EMPTY_RESPONSE,
                message="Erro inesperado: Resposta da IA vazia.",
            )

        texts = []
        for part in parts:
            inline = getattr(part, "inline_data", None)
            if inline is not None and getattr(inline, "data", None):
                data = inline.data
                if isinstance(data, bytes):
                    data = base64.b64encode(data).decode("ascii")
                mime_type = getattr(inline, "mime_type", None) or "image/png"
                return GenerationSuccess(image=f"data:{mime_type};base64,{data}")
            text = getattr(part, "text", None)
            if text:
                texts.append(text)

        analysis = "\n".join(texts) or None
        logger.warning(f"[Gemini] Model replied with text only: {(analysis or '')[:200]}")
        return GenerationFailure(
            kind=FailureKind.EMPTY_RESPONSE,
            message="A IA não retornou uma imagem válida.",
            analysis=analysis,
        )
