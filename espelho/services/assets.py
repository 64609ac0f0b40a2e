"""
Asset Repository
Uploads, metadata edits and deletion strategies for user images.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from espelho.core.auth import AuthSession, require_session
from espelho.models.asset import Asset
from espelho.models.job import Job
from espelho.schemas.asset import AssetType, DeleteStrategy
from espelho.services.images import ImportedImage, to_data_url, url_to_base64
from espelho.services.storage import StorageError, StorageService, extension_for

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = ("name", "description", "category", "price", "published", "is_favorite")
IMMUTABLE_FIELDS = ("type", "storage_path", "public_url", "mime_type", "data", "user_id", "id")
PRODUCT_ONLY_FIELDS = ("price", "published")

FOLDER_BY_TYPE = {
    AssetType.PRODUCT.value: "products",
    AssetType.MODEL.value: "models",
    AssetType.RESULT.value: "results",
}


class AssetNotFoundError(Exception):
    def __init__(self, asset_id: str):
        super().__init__(f"Asset not found: {asset_id}")
        self.asset_id = asset_id


class ImmutableAssetError(Exception):
    """An update tried to change the binary or the type of an asset."""

    def __init__(self, fields: List[str]):
        super().__init__(f"Asset fields cannot be changed: {', '.join(sorted(fields))}")
        self.fields = fields


def new_asset_id() -> str:
    return f"asset_{uuid.uuid4().hex[:12]}"


class AssetRepository:
    def __init__(self, db: Session, storage: Optional[StorageService] = None):
        self.db = db
        self._storage = storage

    @property
    def storage(self) -> StorageService:
        if self._storage is None:
            self._storage = StorageService()
        return self._storage

    def get(self, asset_id: str, owner_id: Optional[str] = None) -> Asset:
        query = self.db.query(Asset).filter(Asset.id == asset_id)
        if owner_id:
            query = query.filter(Asset.user_id == owner_id)
        asset = query.first()
        if not asset:
            raise AssetNotFoundError(asset_id)
        return asset

    def get_for_generation(self, asset_id: str, session: AuthSession) -> Asset:
        """
        Assets a user may try on: their own, or a published product from
        another user's storefront.
        """
        asset = self.get(asset_id)
        if asset.user_id == session.user_id:
            return asset
        if asset.type == AssetType.PRODUCT.value and asset.published:
            return asset
        raise AssetNotFoundError(asset_id)

    def list_for_owner(self, owner_id: str, asset_type: Optional[str] = None) -> List[Asset]:
        query = self.db.query(Asset).filter(Asset.user_id == owner_id)
        if asset_type:
            query = query.filter(Asset.type == asset_type)
        return query.order_by(Asset.created_at.desc()).all()

    async def create(
        self,
        session: Optional[AuthSession],
        asset_type: str,
        data: bytes,
        filename: str,
        mime_type: str = "image/jpeg",
        name: Optional[str] = None,
        description: Optional[str] = None,
        category: Optional[str] = None,
        price: Optional[float] = None,
    ) -> Asset:
        session = require_session(session)
        asset_type = AssetType(asset_type).value

        public_url, path = await self.storage.upload(
            owner_id=session.user_id,
            folder=FOLDER_BY_TYPE[asset_type],
            data=data,
            filename=filename,
            content_type=mime_type,
        )

        asset = Asset(
            id=new_asset_id(),
            user_id=session.user_id,
            type=asset_type,
            name=name or filename,
            description=description,
            category=category,
            price=price if asset_type == AssetType.PRODUCT.value else None,
            published=False,
            is_favorite=False,
            storage_path=path,
            public_url=public_url,
            mime_type=mime_type,
            created_at=datetime.utcnow(),
        )
        self.db.add(asset)
        self.db.commit()
        self.db.refresh(asset)

        logger.info(f"[Assets] Created {asset.type} {asset.id} for {asset.user_id}")
        return asset

    async def import_from_url(
        self,
        session: Optional[AuthSession],
        url: str,
        asset_type: str,
        name: Optional[str] = None,
    ) -> Asset:
        """Fetch a remote image (through the image proxy, then directly) and store it."""
        session = require_session(session)
        image: ImportedImage = await url_to_base64(url)
        return await self.create(
            session,
            asset_type=asset_type,
            data=image.data,
            filename=f"import.{extension_for(image.mime_type)}",
            mime_type=image.mime_type,
            name=name,
        )

    def update(self, asset_id: str, owner_id: str, changes: Dict[str, Any]) -> Asset:
        """Patch metadata. Binary, type and ownership never change after upload."""
        blocked = [key for key in changes if key in IMMUTABLE_FIELDS]
        if blocked:
            raise ImmutableAssetError(blocked)

        unknown = [key for key in changes if key not in MUTABLE_FIELDS]
        if unknown:
            raise ValueError(f"Unknown asset fields: {', '.join(sorted(unknown))}")

        asset = self.get(asset_id, owner_id)
        for key, value in changes.items():
            if key in PRODUCT_ONLY_FIELDS and asset.type != AssetType.PRODUCT.value:
                continue
            setattr(asset, key, value)

        self.db.commit()
        return asset

    def toggle_favorite(self, asset_id: str, owner_id: str) -> Asset:
        asset = self.get(asset_id, owner_id)
        asset.is_favorite = not asset.is_favorite
        self.db.commit()
        return asset

    async def delete(
        self,
        asset_id: str,
        owner_id: str,
        strategy: DeleteStrategy = DeleteStrategy.KEEP_HISTORY,
    ) -> Tuple[int, int]:
        """
        Delete an asset and its binary.

        keep-history clears the reference on dependent jobs, delete-all removes
        them. Returns (jobs_deleted, jobs_unlinked).
        """
        asset = self.get(asset_id, owner_id)
        dependents = self.db.query(Job).filter(
            or_(Job.product_id == asset_id, Job.model_id == asset_id)
        ).all()

        deleted = unlinked = 0
        result_paths = []

        if strategy == DeleteStrategy.DELETE_ALL:
            for job in dependents:
                if job.result_public_url:
                    result_paths.append(self.storage.path_from_url(job.result_public_url))
                self.db.delete(job)
                deleted += 1
        else:
            for job in dependents:
                if job.product_id == asset_id:
                    job.product_id = None
                if job.model_id == asset_id:
                    job.model_id = None
                unlinked += 1

        storage_path = asset.storage_path
        self.db.delete(asset)
        self.db.commit()

        await self.storage.delete_file(storage_path)
        for path in result_paths:
            if path:
                await self.storage.delete_file(path)

        logger.info(
            f"[Assets] Deleted {asset_id} ({strategy.value}): "
            f"{deleted} job(s) deleted, {unlinked} job(s) unlinked"
        )
        return deleted, unlinked

    async def load_data_url(self, asset: Asset) -> Optional[str]:
        """Binary of an asset as a data URL, or None when it cannot be read."""
        try:
            data = await self.storage.get_file(asset.storage_path)
        except FileNotFoundError:
            logger.warning(f"[Assets] Missing binary for {asset.id} at {asset.storage_path}")
            return None
        except (StorageError, OSError) as e:
            logger.error(f"[Assets] Could not read binary for {asset.id}: {e}")
            return None
        if not data:
            return None
        return to_data_url(data, asset.mime_type or "image/jpeg")
