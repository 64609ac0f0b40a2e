"""
Studio API Routes
Server-held state of the four-step try-on wizard, plus step 4 execution
through the generation orchestrator.
"""

import logging
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from espelho.api.deps import (
    get_current_session,
    get_db,
    get_draft_store,
    get_proxy_client,
    get_storage,
)
from espelho.core.auth import AuthSession
from espelho.schemas.studio import (
    DirectionRequest,
    SelectAssetRequest,
    StepRequest,
    StudioGenerateRequest,
    StudioState,
    StyleOption,
    TryOnResponse,
)
from espelho.services.assets import AssetNotFoundError, AssetRepository
from espelho.services.drafts import DraftStore
from espelho.services.jobs import JobLifecycleManager
from espelho.services.orchestrator import GenerationOrchestrator
from espelho.services.profiles import ProfileRepository
from espelho.services.prompts import DEFAULT_STYLE, STYLE_PRESETS
from espelho.services.storage import StorageService
from espelho.services.wizard import StudioWizard, WizardBusyError, WizardError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_wizard(
    resume: bool = Query(default=False),
    session_id: Optional[str] = Query(default=None),
    x_studio_session: Optional[str] = Header(default=None),
    session: AuthSession = Depends(get_current_session),
    store: DraftStore = Depends(get_draft_store),
) -> StudioWizard:
    """Wizard bound to the browsing session (header or query), or to the user when neither is sent."""
    scope = x_studio_session or session_id or f"user-{session.user_id}"
    return StudioWizard(store, f"{session.user_id}:{scope}", user_id=session.user_id, resume=resume)


def _state(wizard: StudioWizard) -> StudioState:
    return StudioState(**wizard.snapshot())


def _check_asset(db: Session, session: AuthSession, asset_id: Optional[str], expected_type: str):
    if not asset_id:
        return
    try:
        asset = AssetRepository(db).get_for_generation(asset_id, session)
    except AssetNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")
    if asset.type != expected_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Asset {asset_id} is not a {expected_type}",
        )


@router.get("/styles", response_model=List[StyleOption])
async def list_styles():
    """Style picker for step 3, in display order."""
    return [
        StyleOption(id=style.value, description=description, is_default=style == DEFAULT_STYLE)
        for style, description in STYLE_PRESETS.items()
    ]


@router.get("", response_model=StudioState)
async def get_studio(wizard: StudioWizard = Depends(get_wizard)):
    """Current wizard state. Pass resume=true on page load."""
    return _state(wizard)


@router.post("/garment", response_model=StudioState)
async def select_garment(
    body: SelectAssetRequest,
    wizard: StudioWizard = Depends(get_wizard),
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    _check_asset(db, session, body.asset_id, "product")
    wizard.select_garment(body.asset_id)
    return _state(wizard)


@router.post("/model", response_model=StudioState)
async def select_model(
    body: SelectAssetRequest,
    wizard: StudioWizard = Depends(get_wizard),
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    _check_asset(db, session, body.asset_id, "model")
    wizard.select_model(body.asset_id)
    return _state(wizard)


@router.post("/direction", response_model=StudioState)
async def set_direction(body: DirectionRequest, wizard: StudioWizard = Depends(get_wizard)):
    try:
        wizard.set_direction(style=body.style.value if body.style else None, instructions=body.instructions)
    except WizardError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _state(wizard)


@router.post("/step", response_model=StudioState)
async def go_to_step(body: StepRequest, wizard: StudioWizard = Depends(get_wizard)):
    try:
        wizard.go_to(body.step)
    except WizardError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _state(wizard)


@router.post("/generate", response_model=TryOnResponse)
async def generate(
    body: Optional[StudioGenerateRequest] = None,
    wizard: StudioWizard = Depends(get_wizard),
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
    proxy_client: httpx.AsyncClient = Depends(get_proxy_client),
):
    """
    Step 4: create the job and run the generation.

    Returns 200 with success=false when the generation failed; the job
    carries the same message.
    """
    assets = AssetRepository(db, storage)
    orchestrator = GenerationOrchestrator(
        proxy_client,
        JobLifecycleManager(db, storage),
        ProfileRepository(db),
        assets,
    )
    ai_model = body.ai_model if body else None

    async def run(garment_id, model_id, style, instructions):
        garment = assets.get_for_generation(garment_id, session)
        model = assets.get_for_generation(model_id, session)
        return await orchestrator.run(session, garment, model, style.value, instructions, ai_model)

    try:
        outcome = await wizard.execute(run)
    except WizardBusyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except WizardError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except AssetNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")

    return TryOnResponse(
        job_id=outcome.job_id,
        status=outcome.status,
        success=outcome.success,
        result_url=outcome.result_url,
        error_kind=outcome.error_kind,
        message=outcome.message,
        retriable=outcome.retriable,
        analysis=outcome.analysis,
        duration_seconds=outcome.duration_seconds,
        details=outcome.details,
    )


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def reset_studio(wizard: StudioWizard = Depends(get_wizard)):
    """Clear the session draft. The style preference is kept."""
    wizard.reset()
