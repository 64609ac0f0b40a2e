"""
Auth Session Model
Bearer tokens issued by the external auth service.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime

from espelho.core.database import Base


class AuthSession(Base):
    __tablename__ = "auth_sessions"

    token = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=True)  # None = no expiry
    created_at = Column(DateTime, default=datetime.utcnow)
