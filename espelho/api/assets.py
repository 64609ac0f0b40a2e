"""
Assets API Routes
Product and model image management: upload, URL import, metadata edits
and deletion strategies.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from espelho.api.deps import get_current_session, get_db, get_storage
from espelho.core.auth import AuthSession
from espelho.schemas.asset import (
    AssetDeleteResponse,
    AssetImportRequest,
    AssetResponse,
    AssetType,
    AssetUpdate,
    DeleteStrategy,
)
from espelho.services.assets import AssetNotFoundError, AssetRepository, ImmutableAssetError
from espelho.services.images import ImageImportError
from espelho.services.storage import StorageService

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_CONTENT_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")


@router.get("", response_model=List[AssetResponse])
async def list_assets(
    asset_type: Optional[AssetType] = None,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return AssetRepository(db).list_for_owner(
        session.user_id, asset_type.value if asset_type else None
    )


@router.post("", response_model=AssetResponse, status_code=status.HTTP_201_CREATED)
async def upload_asset(
    file: UploadFile = File(...),
    asset_type: AssetType = Form(..., alias="type"),
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    price: Optional[float] = Form(None),
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
):
    """Upload a product or model image."""
    if asset_type == AssetType.RESULT:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Result assets are created by the generation pipeline",
        )

    content_type = file.content_type or "image/jpeg"
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported image type: {content_type}",
        )

    data = await file.read()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")

    return await AssetRepository(db, storage).create(
        session,
        asset_type=asset_type.value,
        data=data,
        filename=file.filename or "upload.jpg",
        mime_type=content_type,
        name=name,
        description=description,
        category=category,
        price=price,
    )


@router.post("/import", response_model=AssetResponse, status_code=status.HTTP_201_CREATED)
async def import_asset(
    body: AssetImportRequest,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
):
    """Import an image by URL (image proxy first, direct fetch as fallback)."""
    try:
        return await AssetRepository(db, storage).import_from_url(
            session, body.url, body.type.value, body.name
        )
    except ImageImportError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)


@router.patch("/{asset_id}", response_model=AssetResponse)
async def update_asset(
    asset_id: str,
    body: AssetUpdate,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Edit metadata. The image and the type are immutable."""
    changes = body.model_dump(exclude_unset=True)
    try:
        return AssetRepository(db).update(asset_id, session.user_id, changes)
    except AssetNotFoundError:
        raise _not_found()
    except ImmutableAssetError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/{asset_id}/favorite", response_model=AssetResponse)
async def toggle_favorite(
    asset_id: str,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    try:
        return AssetRepository(db).toggle_favorite(asset_id, session.user_id)
    except AssetNotFoundError:
        raise _not_found()


@router.delete("/{asset_id}", response_model=AssetDeleteResponse)
async def delete_asset(
    asset_id: str,
    strategy: DeleteStrategy = DeleteStrategy.KEEP_HISTORY,
    session: AuthSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage),
):
    """
    Delete an asset.

    keep-history: generated looks stay in the history with the reference cleared.
    delete-all: generated looks that used the asset are deleted too.
    """
    try:
        deleted, unlinked = await AssetRepository(db, storage).delete(asset_id, session.user_id, strategy)
    except AssetNotFoundError:
        raise _not_found()
    return AssetDeleteResponse(
        id=asset_id,
        strategy=strategy,
        jobs_deleted=deleted,
        jobs_unlinked=unlinked,
    )
