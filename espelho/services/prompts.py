"""
Prompt Builder
Deterministic, versioned try-on prompts parameterized by style.

Templates are registered per version id so older prompts stay reproducible
for rollbacks and A/B comparisons.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class TryOnStyle(str, Enum):
    """Wire-stable style ids. Persisted on jobs, never rename."""
    EDITORIAL = "editorial"
    SEDA = "seda"
    JUSTA = "justa"
    TRANSPARENTE = "transparente"
    CASUAL = "casual"
    PASSARELA = "passarela"


DEFAULT_STYLE = TryOnStyle.EDITORIAL

CURRENT_PROMPT_VERSION = "v1"
CURRENT_PIPELINE_VERSION = "v1.0"


# Technical directive appended for each style
STYLE_DIRECTIVES: Dict[TryOnStyle, str] = {
    TryOnStyle.EDITORIAL: (
        "Studio lighting (key light 45°, fill 1:2 ratio), f/2.8 depth, neutral backdrop, "
        "skin micro-texture retention, color-accurate rendering."
    ),
    TryOnStyle.SEDA: (
        "Specular highlights on silk/satin fabric, subsurface scattering for translucency, "
        "fluid draping physics, subtle wrinkle maps, reflection mapping."
    ),
    TryOnStyle.JUSTA: (
        "Anatomical body conformity, stretch fabric tension, shadow occlusion for depth, "
        "muscle definition preservation, form-fitting deformation."
    ),
    TryOnStyle.TRANSPARENTE: (
        "Alpha channel blending for lace/sheer, skin visibility layer compositing, "
        "fabric micro-pattern detail, controlled opacity gradients."
    ),
    TryOnStyle.CASUAL: (
        "Natural daylight HDRI (5500K), color vibrancy boost, relaxed pose dynamics, "
        "background bokeh (f/1.8 equivalent), lifestyle authenticity."
    ),
    TryOnStyle.PASSARELA: (
        "Top-down key lighting (70° angle), high contrast ratio (8:1), dramatic shadow casting, "
        "garment-focused composition, editorial attitude."
    ),
}

# Short Portuguese labels shown in the studio style picker
STYLE_PRESETS: Dict[TryOnStyle, str] = {
    TryOnStyle.EDITORIAL: "Estilo Editorial Vogue: Iluminação suave de estúdio, foco nítido, fundo neutro luxuoso, pele com textura natural, alta fidelidade de cor.",
    TryOnStyle.SEDA: "Acabamento Seda/Cetim: Ênfase no brilho do tecido, caimento fluido, dobras suaves realistas, iluminação especular para destacar a textura do material.",
    TryOnStyle.JUSTA: "Caimento Justo/Bodycon: Aderência anatômica ao corpo, sombreamento que destaca a silhueta, alta definição muscular e curvas.",
    TryOnStyle.TRANSPARENTE: "Transparência e Renda: Preservação realista da pele sob o tecido, textura de renda detalhada, opacidade calibrada, delicadeza.",
    TryOnStyle.CASUAL: "Lifestyle Influencer: Luz natural do dia (golden hour), cores vibrantes, pose relaxada, fundo urbano ou doméstico desfocado (bokeh).",
    TryOnStyle.PASSARELA: "Passarela High Fashion: Iluminação dramática de cima para baixo, alto contraste, atitude poderosa, foco intenso na roupa.",
}


V1_TEMPLATE = """
TASK: MANDATORY VIRTUAL TRY-ON SUBSTITUTION

INPUT IMAGES:
• IMAGE_A: Base human model (face, pose, background preserved)
• IMAGE_B: Target garment (complete transfer required)

REQUIRED OPERATIONS:

1. GARMENT MASKING & EXTRACTION
   - Segment target garment from IMAGE_B with edge precision
   - Generate alpha matte for clean isolation
   - Preserve all fabric details, textures, patterns

2. BODY REGION IDENTIFICATION
   - Detect original clothing area in IMAGE_A
   - Create accurate body mesh mapping
   - Define substitution boundaries (shoulders, waist, hemline)

3. GARMENT DEFORMATION & FITTING
   - Apply perspective-correct warping to match IMAGE_A viewpoint
   - Conform fabric to body shape using physics simulation
   - Generate realistic wrinkles, folds, tension points
   - Match body proportions (scale, rotation, position)

4. LIGHTING & MATERIAL INTEGRATION
   - Replicate lighting conditions from IMAGE_A onto garment
   - Match shadow direction, intensity, and softness
   - Apply correct material properties (diffuse, specular, roughness)
   - Blend fabric seamlessly with preserved skin/background

5. STRICT PRESERVATION
   - Face: UNCHANGED (features, expression, skin tone)
   - Hair: UNCHANGED (style, color, position)
   - Pose: UNCHANGED (limb positions, body angle)
   - Background: UNCHANGED (all elements behind subject)

6. STYLE APPLICATION
   {style_directive}

PROHIBITED ACTIONS:
✗ Layering garment over original clothing
✗ Showing IMAGE_B product as separate object
✗ Altering facial features or identity
✗ Changing background elements
✗ Adding text, watermarks, or UI elements
✗ Generating multiple clothing items

OUTPUT FORMAT:
Single photorealistic image, 1:1 aspect ratio, no metadata, no text.
"""

INSTRUCTIONS_BLOCK = """
ADDITIONAL DIRECTION (user request, never overrides STRICT PRESERVATION or PROHIBITED ACTIONS):
{instructions}
"""


@dataclass(frozen=True)
class PromptVersion:
    version: str
    description: str
    created_at: str
    render: Callable[[str], str]
    deprecated: bool = False
    features: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PipelineVersion:
    version: str
    description: str
    created_at: str
    deprecated: bool = False
    features: Tuple[str, ...] = field(default_factory=tuple)


def _render_v1(style_directive: str) -> str:
    return V1_TEMPLATE.format(style_directive=style_directive)


# Registration order matters: the last entry is the latest version.
PROMPT_VERSIONS: Dict[str, PromptVersion] = {
    "v1": PromptVersion(
        version="v1",
        description="Technical VTO prompt with masking, warping, and lighting directives",
        created_at="2025-01-15",
        render=_render_v1,
        features=("garment_masking", "physics_simulation", "lighting_matching", "style_presets"),
    ),
}

PIPELINE_VERSIONS: Dict[str, PipelineVersion] = {
    "v1.0": PipelineVersion(
        version="v1.0",
        description="Standard pipeline: resize -> base64 -> API call -> upload",
        created_at="2025-01-15",
        features=("image_resize_800x800", "jpeg_compression_80", "gemini_api"),
    ),
}


def latest_prompt_version() -> str:
    return list(PROMPT_VERSIONS)[-1]


def resolve_style(style) -> TryOnStyle:
    """Coerce a raw style value; unknown values fall back to editorial."""
    if isinstance(style, TryOnStyle):
        return style
    try:
        return TryOnStyle(style)
    except ValueError:
        logger.warning(f"[Prompt] Unknown style {style!r}, using {DEFAULT_STYLE.value}")
        return DEFAULT_STYLE


def resolve_prompt_version(version: Optional[str]) -> str:
    if version in PROMPT_VERSIONS:
        return version
    fallback = latest_prompt_version()
    logger.warning(f"[Prompt] Version {version!r} not found, falling back to {fallback}")
    return fallback


def build_prompt(style, version: str = CURRENT_PROMPT_VERSION, instructions: Optional[str] = None) -> str:
    """
    Render the try-on prompt.

    Pure: identical arguments always produce byte-identical output. Blank
    instructions leave the prompt exactly as the style/version template.
    """
    resolved_style = resolve_style(style)
    prompt_version = PROMPT_VERSIONS[resolve_prompt_version(version)]

    prompt = prompt_version.render(STYLE_DIRECTIVES[resolved_style])

    if instructions and instructions.strip():
        prompt += INSTRUCTIONS_BLOCK.format(instructions=instructions.strip())

    return prompt
