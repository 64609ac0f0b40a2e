"""
Test fixtures and configuration for pytest.
"""

import base64
from datetime import datetime
from io import BytesIO
from typing import AsyncGenerator, List

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from espelho.api import deps
from espelho.core.auth import AuthSession
from espelho.core.config import settings
from espelho.core.database import init_db
from espelho.main import app
from espelho.models.asset import Asset
from espelho.models.auth_session import AuthSession as AuthSessionRecord
from espelho.services.drafts import InMemoryDraftStore
from espelho.services.providers import (
    FailureKind,
    GenerationFailure,
    GenerationRequest,
    GenerationSuccess,
    ProviderAdapter,
)
from espelho.services.storage import StorageService

USER_ID = "user_1"
OTHER_USER_ID = "user_2"
TOKEN = "test-token"
OTHER_TOKEN = "other-token"


# ============== Images ==============


def make_image_bytes(width: int = 64, height: int = 48, fmt: str = "PNG", color=(200, 30, 90)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=fmt)
    return buffer.getvalue()


def make_data_url(width: int = 64, height: int = 48, fmt: str = "PNG") -> str:
    mime = f"image/{fmt.lower()}"
    encoded = base64.b64encode(make_image_bytes(width, height, fmt)).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def image_size(data: bytes):
    with Image.open(BytesIO(data)) as img:
        return img.size


# ============== Fake provider ==============


class FakeAdapter(ProviderAdapter):
    """Records requests and returns a scripted result."""

    name = "fake"

    def __init__(self, result=None):
        self.result = result or GenerationSuccess(image=make_data_url(32, 32))
        self.requests: List[GenerationRequest] = []
        self.api_keys: List[str] = []

    async def generate(self, request: GenerationRequest):
        self.requests.append(request)
        return self.result


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def adapter_factory(fake_adapter):
    def factory(provider: str, api_key: str):
        fake_adapter.api_keys.append(api_key)
        return fake_adapter
    return factory


def quota_failure(variant: str = "temporary") -> GenerationFailure:
    return GenerationFailure(
        kind=FailureKind.QUOTA_EXCEEDED,
        message="quota",
        retriable=True,
        details={"quota_variant": variant},
    )


# ============== Settings ==============


@pytest.fixture(autouse=True)
def test_settings(monkeypatch, tmp_path):
    """Known keys, local storage in tmp and no Redis."""
    monkeypatch.setattr(settings, "GEMINI_API_KEY", "test-gemini-key-123456")
    monkeypatch.setattr(settings, "GROQ_API_KEY", "test-groq-key-123456")
    monkeypatch.setattr(settings, "USE_WORKER_QUEUE", False)
    monkeypatch.setattr(settings, "USE_REDIS_DRAFTS", False)
    monkeypatch.setattr(settings, "USE_GCS", False)
    monkeypatch.setattr(settings, "PROXY_BASE_URL", "")
    monkeypatch.setattr(settings, "LOCAL_STORAGE_PATH", str(tmp_path / "uploads"))
    yield settings


# ============== Database ==============


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path) -> StorageService:
    return StorageService(base_path=str(tmp_path / "uploads"), use_gcs=False)


@pytest.fixture
def draft_store() -> InMemoryDraftStore:
    return InMemoryDraftStore()


@pytest.fixture
def auth_session() -> AuthSession:
    return AuthSession(user_id=USER_ID, token=TOKEN)


@pytest.fixture
def other_session() -> AuthSession:
    return AuthSession(user_id=OTHER_USER_ID, token=OTHER_TOKEN)


@pytest.fixture
def tokens(db):
    db.add(AuthSessionRecord(token=TOKEN, user_id=USER_ID, created_at=datetime.utcnow()))
    db.add(AuthSessionRecord(token=OTHER_TOKEN, user_id=OTHER_USER_ID, created_at=datetime.utcnow()))
    db.commit()


# ============== Assets ==============


async def store_asset(
    db,
    storage: StorageService,
    owner_id: str,
    asset_type: str,
    data: bytes = None,
    published: bool = False,
    asset_id: str = None,
) -> Asset:
    data = data if data is not None else make_image_bytes(fmt="JPEG")
    public_url, path = await storage.upload(owner_id, f"{asset_type}s", data, "photo.jpg", "image/jpeg")
    asset = Asset(
        id=asset_id or f"asset_{asset_type}_{owner_id}_{len(data)}",
        user_id=owner_id,
        type=asset_type,
        name=f"{asset_type} photo",
        published=published,
        is_favorite=False,
        storage_path=path,
        public_url=public_url,
        mime_type="image/jpeg",
        created_at=datetime.utcnow(),
    )
    db.add(asset)
    db.commit()
    db.refresh(asset)
    return asset


@pytest_asyncio.fixture
async def garment(db, storage) -> Asset:
    return await store_asset(db, storage, USER_ID, "product", asset_id="asset_garment")


@pytest_asyncio.fixture
async def model_asset(db, storage) -> Asset:
    return await store_asset(db, storage, USER_ID, "model", asset_id="asset_model")


# ============== HTTP client ==============


@pytest.fixture
def overrides(session_factory, storage, draft_store, adapter_factory):
    app.dependency_overrides[deps.get_session_factory] = lambda: session_factory
    app.dependency_overrides[deps.get_storage] = lambda: storage
    app.dependency_overrides[deps.get_draft_store] = lambda: draft_store
    app.dependency_overrides[deps.get_adapter_factory] = lambda: adapter_factory
    yield app.dependency_overrides
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(overrides, tokens) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture
def other_headers():
    return {"Authorization": f"Bearer {OTHER_TOKEN}"}
