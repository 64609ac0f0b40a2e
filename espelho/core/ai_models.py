"""
AI Model Registry
Known generation/analysis models, their provider and capabilities.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class AIModelConfig:
    provider: str
    model: str
    display_name: str
    description: str
    free_tier: bool
    rate_limit: str
    can_generate_images: bool
    category: str  # recommended, experimental, analysis-only


GEMINI_25_FLASH_IMAGE = "gemini-2.5-flash-image-preview"
GEMINI_20_FLASH_EXP = "gemini-2.0-flash-exp"
GEMINI_15_PRO_VISION = "gemini-1.5-pro-vision"
GEMINI_15_FLASH_VISION = "gemini-1.5-flash-vision"
LLAMA_32_90B_VISION = "llama-3.2-90b-vision-preview"
GPT_4O_MINI_VISION = "gpt-4o-mini-vision"
QWEN_VL = "qwen-vl-plus"
DEEPSEEK_VL = "deepseek-vl"
MOONDREAM = "moondream-2"
CLIP_INTERROGATOR = "clip-interrogator"

DEFAULT_AI_MODEL = GEMINI_25_FLASH_IMAGE

# Providers the generation proxy can actually dispatch to
SUPPORTED_PROVIDERS = ("gemini", "groq")


AI_MODEL_CONFIGS: Dict[str, AIModelConfig] = {
    GEMINI_25_FLASH_IMAGE: AIModelConfig(
        provider="gemini",
        model=GEMINI_25_FLASH_IMAGE,
        display_name="Gemini 2.5 Flash Image Preview",
        description="Melhor equilíbrio entre qualidade e custo. Otimizado para processamento de imagens com resultados consistentes.",
        free_tier=True,
        rate_limit="500 req/dia",
        can_generate_images=True,
        category="recommended",
    ),
    GEMINI_20_FLASH_EXP: AIModelConfig(
        provider="gemini",
        model=GEMINI_20_FLASH_EXP,
        display_name="Gemini 2.0 Flash (Experimental)",
        description="Modelo experimental com recursos avançados. Pode ter resultados variáveis.",
        free_tier=True,
        rate_limit="100-500 req/dia",
        can_generate_images=True,
        category="experimental",
    ),
    GEMINI_15_PRO_VISION: AIModelConfig(
        provider="gemini",
        model=GEMINI_15_PRO_VISION,
        display_name="Gemini 1.5 Pro Vision",
        description="Modelo profissional com alta qualidade de processamento de imagens.",
        free_tier=True,
        rate_limit="50 req/dia",
        can_generate_images=True,
        category="recommended",
    ),
    GEMINI_15_FLASH_VISION: AIModelConfig(
        provider="gemini",
        model=GEMINI_15_FLASH_VISION,
        display_name="Gemini 1.5 Flash Vision",
        description="Versão rápida e eficiente para processamento de imagens.",
        free_tier=True,
        rate_limit="1500 req/dia",
        can_generate_images=True,
        category="recommended",
    ),
    LLAMA_32_90B_VISION: AIModelConfig(
        provider="groq",
        model=LLAMA_32_90B_VISION,
        display_name="Llama 3.2 90B Vision (Groq)",
        description="Modelo de análise de imagens. Não gera imagens, apenas analisa.",
        free_tier=True,
        rate_limit="14.400 req/dia",
        can_generate_images=False,
        category="analysis-only",
    ),
    GPT_4O_MINI_VISION: AIModelConfig(
        provider="openai",
        model=GPT_4O_MINI_VISION,
        display_name="GPT-4o Mini Vision",
        description="Modelo OpenAI otimizado para tarefas visuais.",
        free_tier=False,
        rate_limit="Depende do plano",
        can_generate_images=True,
        category="experimental",
    ),
    QWEN_VL: AIModelConfig(
        provider="qwen",
        model=QWEN_VL,
        display_name="Qwen VL Plus",
        description="Modelo chinês com bom desempenho em tarefas visuais.",
        free_tier=True,
        rate_limit="Limitado",
        can_generate_images=True,
        category="experimental",
    ),
    DEEPSEEK_VL: AIModelConfig(
        provider="deepseek",
        model=DEEPSEEK_VL,
        display_name="DeepSeek VL",
        description="Modelo de análise visual com boa precisão.",
        free_tier=True,
        rate_limit="Limitado",
        can_generate_images=False,
        category="analysis-only",
    ),
    MOONDREAM: AIModelConfig(
        provider="moondream",
        model=MOONDREAM,
        display_name="Moondream 2",
        description="Modelo leve para análise de imagens.",
        free_tier=True,
        rate_limit="Ilimitado",
        can_generate_images=False,
        category="analysis-only",
    ),
    CLIP_INTERROGATOR: AIModelConfig(
        provider="clip",
        model=CLIP_INTERROGATOR,
        display_name="CLIP Interrogator",
        description="Modelo para descrição e análise de imagens.",
        free_tier=True,
        rate_limit="Ilimitado",
        can_generate_images=False,
        category="analysis-only",
    ),
}


def get_ai_model_config(model_key: Optional[str] = None) -> AIModelConfig:
    """Config for a model id; unknown or empty ids resolve to the default model."""
    if not model_key:
        return AI_MODEL_CONFIGS[DEFAULT_AI_MODEL]
    return AI_MODEL_CONFIGS.get(model_key, AI_MODEL_CONFIGS[DEFAULT_AI_MODEL])


def is_known_model(model_key: Optional[str]) -> bool:
    return bool(model_key) and model_key in AI_MODEL_CONFIGS


def list_ai_models(category: Optional[str] = None) -> List[AIModelConfig]:
    models = list(AI_MODEL_CONFIGS.values())
    if category:
        models = [m for m in models if m.category == category]
    return models
