"""
Profile API Routes
AI model catalogue and the user's preferred model.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from espelho.api.deps import get_current_session, get_db, get_optional_session
from espelho.core.ai_models import DEFAULT_AI_MODEL, get_ai_model_config, list_ai_models
from espelho.core.auth import AuthSession
from espelho.schemas.profile import (
    AIModelInfo,
    AIModelListResponse,
    AIModelPreference,
    AIModelPreferenceResponse,
)
from espelho.services.profiles import ProfileRepository, UnknownAIModelError

router = APIRouter()


def _preference_response(model: Optional[str]) -> AIModelPreferenceResponse:
    config = get_ai_model_config(model)
    return AIModelPreferenceResponse(
        ai_model=config.model,
        provider=config.provider,
        display_name=config.display_name,
        can_generate_images=config.can_generate_images,
    )


@router.get("/ai-models", response_model=AIModelListResponse)
async def get_ai_models(
    category: Optional[str] = None,
    session: Optional[AuthSession] = Depends(get_optional_session),
    db: Session = Depends(get_db),
):
    """Available AI models, with the caller's selection when logged in."""
    selected = ProfileRepository(db).get_ai_model(session.user_id) if session else None
    return AIModelListResponse(
        default=DEFAULT_AI_MODEL,
        models=[AIModelInfo.model_validate(config) for config in list_ai_models(category)],
        selected=selected,
    )


@router.get("/profile/ai-model", response_model=AIModelPreferenceResponse)
async def get_ai_model_preference(
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return _preference_response(ProfileRepository(db).get_ai_model(session.user_id))


@router.put("/profile/ai-model", response_model=AIModelPreferenceResponse)
async def set_ai_model_preference(
    body: AIModelPreference,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        profile = ProfileRepository(db).set_ai_model(session.user_id, body.ai_model)
    except UnknownAIModelError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _preference_response(profile.ai_model)
