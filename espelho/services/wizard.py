"""
Studio Wizard
Four-step flow that collects the try-on inputs:

    1 SelectGarment -> 2 SelectModel -> 3 StyleAndInstructions -> 4 Execute

Forward moves need the previous selections, backward moves are free. State
lives in a DraftStore so a reload within the same browsing session resumes
at the furthest valid step.
"""

import logging
import time
from enum import IntEnum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from espelho.core.config import settings
from espelho.services.drafts import DraftStore, session_draft_key, style_preference_key
from espelho.services.prompts import DEFAULT_STYLE, TryOnStyle

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOADING_PHRASES = (
    "Analisando geometria corporal...",
    "A beleza começa no momento em que você decide ser você mesma.",
    "Calculando caimento do tecido...",
    "A elegância é a única beleza que não desaparece.",
    "Ajustando iluminação de estúdio...",
    "A moda sai de moda, o estilo jamais.",
    "Renderizando texturas em alta definição...",
    "Você é sua própria musa.",
    "Finalizando o toque mágico...",
)
PHRASE_ROTATION_SECONDS = 3


class WizardStep(IntEnum):
    SELECT_GARMENT = 1
    SELECT_MODEL = 2
    STYLE_AND_INSTRUCTIONS = 3
    EXECUTE = 4


class WizardError(Exception):
    """A transition whose prerequisites are not met."""


class WizardBusyError(WizardError):
    def __init__(self):
        super().__init__("Uma geração já está em andamento. Aguarde a conclusão.")


class StudioWizard:
    def __init__(
        self,
        draft_store: DraftStore,
        session_id: str,
        user_id: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        resume: bool = False,
    ):
        self.store = draft_store
        self.session_id = session_id
        self.user_id = user_id
        self.clock = clock

        self.step = WizardStep.SELECT_GARMENT
        self.garment_id: Optional[str] = None
        self.model_id: Optional[str] = None
        self.instructions = ""
        self.style = DEFAULT_STYLE
        self.processing_since: Optional[float] = None
        self.last_job_id: Optional[str] = None

        self.restore(resume=resume)

    # ----- persistence -----

    @property
    def draft_key(self) -> str:
        return session_draft_key(self.session_id)

    def restore(self, resume: bool = False):
        """
        Load the session draft. With `resume` (a page reload) a draft holding
        both selections lands on step 3 whatever step was saved.
        """
        draft = self.store.get(self.draft_key) or {}
        self.garment_id = draft.get("garment_id")
        self.model_id = draft.get("model_id")
        self.instructions = draft.get("instructions") or ""
        self.processing_since = draft.get("processing_since")
        self.last_job_id = draft.get("last_job_id")

        preference = self.store.get(style_preference_key(self.user_id)) if self.user_id else None
        self.style = self._coerce_style((preference or draft).get("style"))

        saved_step = draft.get("step") or WizardStep.SELECT_GARMENT
        self.step = self._clamp(saved_step, resume)

    def save(self):
        self.store.set(self.draft_key, self.snapshot_draft(), ttl=settings.DRAFT_TTL_SECONDS)

    def snapshot_draft(self) -> Dict[str, Any]:
        return {
            "step": int(self.step),
            "garment_id": self.garment_id,
            "model_id": self.model_id,
            "instructions": self.instructions,
            "style": self.style.value,
            "processing_since": self.processing_since,
            "last_job_id": self.last_job_id,
        }

    def reset(self):
        """Drop the session draft. The style preference is kept."""
        self.store.delete(self.draft_key)
        self.step = WizardStep.SELECT_GARMENT
        self.garment_id = None
        self.model_id = None
        self.instructions = ""
        self.processing_since = None
        self.last_job_id = None

    # ----- navigation -----

    def furthest_valid_step(self) -> WizardStep:
        if not self.garment_id:
            return WizardStep.SELECT_GARMENT
        if not self.model_id:
            return WizardStep.SELECT_MODEL
        return WizardStep.STYLE_AND_INSTRUCTIONS

    def _clamp(self, saved_step, resume: bool = False) -> WizardStep:
        try:
            saved = WizardStep(int(saved_step))
        except (TypeError, ValueError):
            saved = WizardStep.SELECT_GARMENT

        furthest = self.furthest_valid_step()
        # Both selections restored: resume straight at style/instructions
        if resume and furthest == WizardStep.STYLE_AND_INSTRUCTIONS:
            return furthest
        return min(saved, furthest)

    def can_enter(self, step: WizardStep) -> bool:
        if step == WizardStep.SELECT_GARMENT:
            return True
        if step == WizardStep.SELECT_MODEL:
            return bool(self.garment_id)
        return bool(self.garment_id and self.model_id)

    def go_to(self, step) -> WizardStep:
        target = WizardStep(int(step))
        if target <= self.step:
            self.step = target
        elif self.can_enter(target):
            self.step = target
        else:
            raise WizardError(f"Etapa {int(target)} indisponível: conclua as etapas anteriores.")
        self.save()
        return self.step

    def next(self) -> WizardStep:
        if self.step == WizardStep.SELECT_GARMENT:
            if not self.garment_id:
                raise WizardError("Selecione uma peça para continuar.")
            self.step = WizardStep.SELECT_MODEL
        elif self.step == WizardStep.SELECT_MODEL:
            if not self.model_id:
                raise WizardError("Selecione uma modelo para continuar.")
            self.step = WizardStep.STYLE_AND_INSTRUCTIONS if self.garment_id else WizardStep.SELECT_GARMENT
        elif self.step == WizardStep.STYLE_AND_INSTRUCTIONS:
            if not (self.garment_id and self.model_id):
                raise WizardError("Selecione a peça e a modelo antes de gerar.")
            self.step = WizardStep.EXECUTE
        self.save()
        return self.step

    def back(self) -> WizardStep:
        if self.step > WizardStep.SELECT_GARMENT:
            self.step = WizardStep(self.step - 1)
            self.save()
        return self.step

    # ----- selections -----

    def select_garment(self, asset_id: Optional[str]):
        self.garment_id = asset_id
        self.step = min(self.step, self.furthest_valid_step())
        self.save()

    def select_model(self, asset_id: Optional[str]):
        self.model_id = asset_id
        self.step = min(self.step, self.furthest_valid_step())
        self.save()

    def set_direction(self, style=None, instructions: Optional[str] = None):
        if style is not None:
            self.style = self._coerce_style(style, strict=True)
            if self.user_id:
                self.store.set(style_preference_key(self.user_id), {"style": self.style.value})
        if instructions is not None:
            self.instructions = instructions
        self.save()

    @staticmethod
    def _coerce_style(style, strict: bool = False) -> TryOnStyle:
        if style is None:
            return DEFAULT_STYLE
        try:
            return TryOnStyle(style)
        except ValueError:
            if strict:
                raise WizardError(f"Estilo desconhecido: {style}")
            return DEFAULT_STYLE

    # ----- execution -----

    @property
    def is_processing(self) -> bool:
        if self.processing_since is None:
            return False
        # A crashed run must not lock the studio forever
        return self.clock() - self.processing_since < settings.JOB_WATCH_TIMEOUT_SECONDS

    def loading_phrase(self, elapsed: Optional[float] = None) -> str:
        if elapsed is None:
            elapsed = self.clock() - self.processing_since if self.processing_since else 0
        index = int(max(elapsed, 0) // PHRASE_ROTATION_SECONDS) % len(LOADING_PHRASES)
        return LOADING_PHRASES[index]

    async def execute(self, run: Callable[[str, str, TryOnStyle, str], Awaitable[T]]) -> T:
        """
        Step 4: hand the selections to `run` (the orchestrator).

        Re-submission while a run is in flight raises WizardBusyError.
        """
        self.restore()
        if self.is_processing:
            raise WizardBusyError()
        if not (self.garment_id and self.model_id):
            raise WizardError("Selecione a peça e a modelo antes de gerar.")

        self.step = WizardStep.EXECUTE
        self.processing_since = self.clock()
        self.save()
        logger.info(f"[Studio] Session {self.session_id} executing ({self.garment_id} on {self.model_id})")

        try:
            result = await run(self.garment_id, self.model_id, self.style, self.instructions)
        finally:
            self.processing_since = None
            self.save()

        job_id = getattr(result, "job_id", None)
        if job_id:
            self.last_job_id = job_id
            self.save()
        return result

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "step": int(self.step),
            "garment_id": self.garment_id,
            "model_id": self.model_id,
            "style": self.style.value,
            "instructions": self.instructions,
            "is_processing": self.is_processing,
            "loading_phrase": self.loading_phrase() if self.is_processing else None,
            "last_job_id": self.last_job_id,
            "can_advance": self.can_enter(WizardStep(min(self.step + 1, WizardStep.EXECUTE))),
        }
