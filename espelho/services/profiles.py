"""
Profile Repository
Per-user preferences, currently the preferred AI model.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from espelho.core.ai_models import AIModelConfig, get_ai_model_config, is_known_model
from espelho.models.profile import Profile

logger = logging.getLogger(__name__)


class UnknownAIModelError(ValueError):
    def __init__(self, model: str):
        super().__init__(f"Unknown AI model: {model}")
        self.model = model


class ProfileRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[Profile]:
        return self.db.query(Profile).filter(Profile.id == user_id).first()

    def get_or_create(self, user_id: str) -> Profile:
        profile = self.get(user_id)
        if profile is None:
            profile = Profile(id=user_id, preferences={})
            self.db.add(profile)
            self.db.commit()
            self.db.refresh(profile)
        return profile

    def get_ai_model(self, user_id: str) -> Optional[str]:
        profile = self.get(user_id)
        return profile.ai_model if profile else None

    def set_ai_model(self, user_id: str, model: str) -> Profile:
        if not is_known_model(model):
            raise UnknownAIModelError(model)

        profile = self.get_or_create(user_id)
        profile.ai_model = model
        self.db.commit()
        logger.info(f"[Profiles] {user_id} selected AI model {model}")
        return profile

    def resolve_ai_model(self, user_id: Optional[str], override: Optional[str] = None) -> AIModelConfig:
        """override -> saved preference -> default model."""
        if override:
            return get_ai_model_config(override)
        saved = self.get_ai_model(user_id) if user_id else None
        return get_ai_model_config(saved)
