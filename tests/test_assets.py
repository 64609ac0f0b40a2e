"""
Tests for the asset repository and the assets routes.
"""

import pytest

from espelho.models.job import Job
from espelho.schemas.asset import DeleteStrategy
from espelho.services.assets import AssetNotFoundError, AssetRepository, ImmutableAssetError
from espelho.services.jobs import JobLifecycleManager
from tests.conftest import OTHER_USER_ID, USER_ID, make_data_url, make_image_bytes, store_asset


@pytest.fixture
def repo(db, storage):
    return AssetRepository(db, storage)


@pytest.fixture
async def finished_job(db, storage, auth_session, garment, model_asset):
    manager = JobLifecycleManager(db, storage)
    job = manager.create(auth_session, garment.id, model_asset.id)
    manager.mark_processing(job.id)
    return await manager.complete(job.id, make_data_url())


class TestAssetRepository:
    async def test_create_stores_binary(self, repo, auth_session, storage):
        asset = await repo.create(auth_session, "product", make_image_bytes(), "vestido.png", "image/png",
                                  name="Vestido", price=199.9)

        assert asset.id.startswith("asset_")
        assert asset.storage_path.startswith(f"{USER_ID}/products/")
        assert asset.public_url == f"/files/{asset.storage_path}"
        assert asset.price == 199.9
        assert await storage.get_file(asset.storage_path) == make_image_bytes()

    async def test_price_only_for_products(self, repo, auth_session):
        asset = await repo.create(auth_session, "model", make_image_bytes(), "eu.png", "image/png", price=10)
        assert asset.price is None

    def test_metadata_update(self, repo, garment):
        asset = repo.update(garment.id, USER_ID, {"name": "Saia midi", "published": True})

        assert asset.name == "Saia midi"
        assert asset.published is True

    @pytest.mark.parametrize("field", ["type", "storage_path", "mime_type", "data"])
    def test_binary_and_type_are_immutable(self, repo, garment, field):
        with pytest.raises(ImmutableAssetError):
            repo.update(garment.id, USER_ID, {field: "x"})

    def test_other_users_cannot_update(self, repo, garment):
        with pytest.raises(AssetNotFoundError):
            repo.update(garment.id, OTHER_USER_ID, {"name": "meu"})

    async def test_published_products_are_usable_by_others(self, repo, db, storage, other_session):
        published = await store_asset(db, storage, USER_ID, "product", published=True, asset_id="asset_pub")
        private = await store_asset(db, storage, USER_ID, "product", asset_id="asset_priv")

        assert repo.get_for_generation(published.id, other_session).id == published.id
        with pytest.raises(AssetNotFoundError):
            repo.get_for_generation(private.id, other_session)

    async def test_keep_history_unlinks_jobs(self, repo, db, storage, garment, finished_job):
        deleted, unlinked = await repo.delete(garment.id, USER_ID, DeleteStrategy.KEEP_HISTORY)

        assert (deleted, unlinked) == (0, 1)
        db.expire_all()
        job = db.query(Job).filter(Job.id == finished_job.id).first()
        assert job is not None
        assert job.product_id is None
        assert job.status == "completed"
        with pytest.raises(FileNotFoundError):
            await storage.get_file(garment.storage_path)

    async def test_delete_all_removes_jobs(self, repo, db, storage, garment, finished_job):
        result_path = storage.path_from_url(finished_job.result_public_url)
        deleted, unlinked = await repo.delete(garment.id, USER_ID, DeleteStrategy.DELETE_ALL)

        assert (deleted, unlinked) == (1, 0)
        assert db.query(Job).count() == 0
        with pytest.raises(FileNotFoundError):
            await storage.get_file(result_path)

    async def test_missing_binary_loads_as_none(self, repo, storage, garment):
        await storage.delete_file(garment.storage_path)
        assert await repo.load_data_url(garment) is None


class TestAssetRoutes:
    async def test_upload(self, client, auth_headers):
        response = await client.post(
            "/api/assets",
            files={"file": ("blusa.png", make_image_bytes(), "image/png")},
            data={"type": "product", "name": "Blusa", "price": "89.9"},
            headers=auth_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["type"] == "product"
        assert body["name"] == "Blusa"
        assert body["public_url"].startswith("/files/user_1/products/")

        served = await client.get(body["public_url"])
        assert served.status_code == 200
        assert served.headers["content-type"] == "image/png"

    async def test_upload_rejects_non_images(self, client, auth_headers):
        response = await client.post(
            "/api/assets",
            files={"file": ("notes.txt", b"hello", "text/plain")},
            data={"type": "product"},
            headers=auth_headers,
        )
        assert response.status_code == 400

    async def test_list_filters_by_type(self, client, auth_headers, garment, model_asset):
        response = await client.get("/api/assets", params={"asset_type": "model"}, headers=auth_headers)

        assert response.status_code == 200
        assert [a["id"] for a in response.json()] == [model_asset.id]

    async def test_patch_rejects_type_change(self, client, auth_headers, garment):
        response = await client.patch(f"/api/assets/{garment.id}", json={"type": "model"}, headers=auth_headers)
        assert response.status_code == 400

    async def test_favorite(self, client, auth_headers, garment):
        response = await client.post(f"/api/assets/{garment.id}/favorite", headers=auth_headers)
        assert response.json()["is_favorite"] is True

    async def test_delete_with_strategy(self, client, auth_headers, garment, finished_job):
        response = await client.delete(
            f"/api/assets/{garment.id}", params={"strategy": "delete-all"}, headers=auth_headers
        )

        assert response.status_code == 200
        assert response.json() == {
            "id": garment.id,
            "strategy": "delete-all",
            "jobs_deleted": 1,
            "jobs_unlinked": 0,
        }

    async def test_import_failure_is_422(self, client, auth_headers, monkeypatch):
        from espelho.services import assets as assets_module
        from espelho.services.images import ImageImportError

        async def failing(url, client=None):
            raise ImageImportError()

        monkeypatch.setattr(assets_module, "url_to_base64", failing)
        response = await client.post(
            "/api/assets/import",
            json={"url": "https://shop.example/x.jpg", "type": "product"},
            headers=auth_headers,
        )
        assert response.status_code == 422
