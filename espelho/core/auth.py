"""
Auth Session Context
Resolves the caller of a request into an explicit session object that is
passed to the services, instead of reading a global "current user".
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from espelho.models.auth_session import AuthSession as AuthSessionRecord

logger = logging.getLogger(__name__)

DEFAULT_AUTH_MESSAGE = "Usuário não autenticado. Por favor, faça login."


class AuthenticationError(Exception):
    """Raised when an operation needs a valid session and there is none."""

    def __init__(self, message: str = DEFAULT_AUTH_MESSAGE):
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class AuthSession:
    """Authenticated caller."""
    user_id: str
    token: str
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.utcnow()) >= self.expires_at


def require_session(session: Optional[AuthSession], now: Optional[datetime] = None) -> AuthSession:
    """Return the session if it is usable, raise AuthenticationError otherwise."""
    if session is None or not session.user_id:
        raise AuthenticationError()
    if session.is_expired(now):
        raise AuthenticationError("Sessão expirada. Por favor, faça login novamente.")
    return session


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def resolve_session(db: Session, token: Optional[str], now: Optional[datetime] = None) -> Optional[AuthSession]:
    """
    Look up a bearer token in the auth_sessions table.

    Returns None for unknown or expired tokens.
    """
    if not token:
        return None

    record = db.query(AuthSessionRecord).filter(AuthSessionRecord.token == token).first()
    if not record:
        logger.info("[Auth] Unknown bearer token")
        return None

    session = AuthSession(user_id=record.user_id, token=record.token, expires_at=record.expires_at)
    if session.is_expired(now):
        logger.info(f"[Auth] Expired session for user {record.user_id}")
        return None
    return session
