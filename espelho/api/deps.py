"""
API Dependencies
Common dependencies for FastAPI routes (database sessions, auth context,
storage, draft store, provider adapters).
"""

from typing import AsyncGenerator, Callable, Generator, Optional

import httpx
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from espelho.core.auth import AuthSession, parse_bearer, resolve_session
from espelho.core.config import settings
from espelho.core.database import SessionLocal
from espelho.services.drafts import DraftStore
from espelho.services.drafts import get_draft_store as _default_draft_store
from espelho.services.providers import create_adapter
from espelho.services.storage import StorageService


def get_session_factory() -> Callable[[], Session]:
    """Session factory, overridden in tests to point at another engine."""
    return SessionLocal


def get_db(factory: Callable[[], Session] = Depends(get_session_factory)) -> Generator:
    """Get database session."""
    db = factory()
    try:
        yield db
    finally:
        db.close()


def get_optional_session(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Optional[AuthSession]:
    token = parse_bearer(authorization)
    if not token:
        return None
    return resolve_session(db, token)


def get_current_session(
    session: Optional[AuthSession] = Depends(get_optional_session),
) -> AuthSession:
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Usuário não autenticado. Por favor, faça login.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def get_storage() -> StorageService:
    return StorageService()


def get_draft_store() -> DraftStore:
    return _default_draft_store()


def get_adapter_factory():
    """Provider adapter factory used by the proxy and the job processor."""
    return create_adapter


async def get_proxy_client(request: Request) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    HTTP client for the generation proxy. Without PROXY_BASE_URL the proxy
    routes of this same app are called in-process.
    """
    if settings.PROXY_BASE_URL:
        client = httpx.AsyncClient(base_url=settings.PROXY_BASE_URL, timeout=settings.PROXY_TIMEOUT_SECONDS)
    else:
        client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=request.app),
            base_url="http://espelho",
            timeout=settings.PROXY_TIMEOUT_SECONDS,
        )
    async with client:
        yield client
