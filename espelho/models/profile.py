"""
Profile Model
Per-user preferences.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON

from espelho.core.database import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)  # same id as the auth user
    name = Column(String, nullable=True)
    ai_model = Column(String, nullable=True)  # preferred generation model
    preferences = Column(JSON, default={})

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
