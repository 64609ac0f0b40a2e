"""
Tests for the job lifecycle manager and the jobs routes.
"""

from datetime import datetime, timedelta

import pytest

from espelho.core.auth import AuthenticationError, AuthSession
from espelho.core.config import settings
from espelho.models.job import Job
from espelho.services.jobs import (
    DEFAULT_FAILURE_MESSAGE,
    DEFAULT_INSTRUCTIONS,
    STALE_JOB_MESSAGE,
    JobLifecycleManager,
    InvalidTransitionError,
    JobNotFoundError,
    can_transition,
    is_stale,
    normalize_status,
)
from tests.conftest import USER_ID, image_size, make_data_url


@pytest.fixture
def manager(db, storage):
    return JobLifecycleManager(db, storage)


@pytest.fixture
def job(manager, auth_session, garment, model_asset):
    return manager.create(auth_session, garment.id, model_asset.id, style="seda", ai_model="gemini-2.5-flash-image-preview")


def assert_invariants(job: Job):
    if job.result_public_url:
        assert job.status == "completed"
    if job.error_message:
        assert job.status == "failed"


class TestCreate:
    def test_new_job_is_queued_and_versioned(self, job):
        assert job.status == "queued"
        assert job.style == "seda"
        assert job.user_id == USER_ID
        assert job.prompt_version == "v1"
        assert job.pipeline_version == "v1.0"
        assert job.user_instructions == DEFAULT_INSTRUCTIONS
        assert job.result_public_url is None
        assert job.error_message is None

    def test_requires_session(self, manager):
        with pytest.raises(AuthenticationError):
            manager.create(None, "p", "m")

    def test_expired_session_is_rejected(self, manager):
        expired = AuthSession(user_id=USER_ID, token="t", expires_at=datetime.utcnow() - timedelta(minutes=1))
        with pytest.raises(AuthenticationError) as exc:
            manager.create(expired, "p", "m")
        assert "expirada" in exc.value.message

    def test_product_owner_only_for_foreign_products(self, manager, auth_session):
        own = manager.create(auth_session, "p", "m", product_owner_id=USER_ID)
        foreign = manager.create(auth_session, "p", "m", product_owner_id="seller_9")

        assert own.product_owner_id is None
        assert foreign.product_owner_id == "seller_9"


class TestTransitions:
    async def test_happy_path(self, manager, job):
        manager.mark_processing(job.id)
        assert job.status == "processing"
        assert job.started_at is not None

        await manager.complete(job.id, make_data_url())

        assert job.status == "completed"
        assert job.result_public_url.startswith("/files/user_1/results/")
        assert job.result_public_url.endswith("_result.png")
        assert job.completed_at is not None
        assert_invariants(job)

    async def test_result_binary_is_stored(self, manager, job, storage):
        await manager.complete(job.id, make_data_url())
        data = await storage.get_file(storage.path_from_url(job.result_public_url))
        assert data.startswith(b"\x89PNG")

    async def test_complete_twice_last_write_wins(self, manager, job, storage):
        await manager.complete(job.id, make_data_url(10, 10))
        await manager.complete(job.id, make_data_url(20, 20))

        assert job.status == "completed"
        data = await storage.get_file(storage.path_from_url(job.result_public_url))
        assert image_size(data) == (20, 20)
        assert_invariants(job)

    def test_fail_records_message(self, manager, job):
        manager.mark_processing(job.id)
        manager.fail(job.id, "Erro de conexão")

        assert job.status == "failed"
        assert job.error_message == "Erro de conexão"
        assert_invariants(job)

    def test_fail_without_message_uses_default(self, manager, job):
        manager.fail(job.id, "  ")
        assert job.error_message == DEFAULT_FAILURE_MESSAGE

    def test_double_fail_keeps_first_message(self, manager, job):
        manager.fail(job.id, "primeira")
        manager.fail(job.id, "segunda")

        assert job.status == "failed"
        assert job.error_message == "primeira"

    async def test_fail_after_complete_is_ignored(self, manager, job):
        await manager.complete(job.id, make_data_url())
        manager.fail(job.id, "tarde demais")

        assert job.status == "completed"
        assert job.error_message is None

    def test_mark_processing_is_noop_on_terminal(self, manager, job):
        manager.fail(job.id, "x")
        manager.mark_processing(job.id)
        assert job.status == "failed"

    def test_pending_is_initial(self, manager, job, db):
        job.status = "pending"
        db.commit()
        manager.mark_processing(job.id)
        assert job.status == "processing"

    def test_unknown_job(self, manager):
        with pytest.raises(JobNotFoundError):
            manager.fail("job_missing")

    def test_strict_claim_rejects_started_jobs(self, manager, job):
        manager.mark_processing(job.id, strict=True)

        with pytest.raises(InvalidTransitionError) as exc:
            manager.mark_processing(job.id, strict=True)
        assert exc.value.current == "processing"
        assert job.status == "processing"

    def test_fail_leaves_artifact_fields_alone(self, manager, job):
        manager.mark_processing(job.id)
        started_at = job.started_at
        manager.fail(job.id, "x")

        assert job.started_at == started_at
        assert job.result_public_url is None
        assert job.product_id == "asset_garment"
        assert job.model_id == "asset_model"

    def test_transition_table(self):
        assert can_transition("queued", "processing")
        assert can_transition("processing", "completed")
        assert not can_transition("completed", "processing")
        assert not can_transition("failed", "completed")
        assert normalize_status("pending") == "queued"


class TestStaleness:
    def _processing(self, db, job, age_minutes):
        job.status = "processing"
        job.created_at = datetime.utcnow() - timedelta(minutes=age_minutes)
        db.commit()
        return job

    def test_old_processing_job_is_presented_failed(self, manager, db, job):
        self._processing(db, job, 11)
        views, stale_ids = manager.sweep_stale([job])

        assert stale_ids == [job.id]
        assert views[0].status == "failed"
        assert views[0].error_message == STALE_JOB_MESSAGE
        # presentation only
        assert job.status == "processing"

    def test_recent_processing_job_untouched(self, manager, db, job):
        self._processing(db, job, 5)
        views, stale_ids = manager.sweep_stale([job])

        assert stale_ids == []
        assert views[0].status == "processing"

    def test_boundary_is_strict(self, job):
        now = datetime.utcnow()
        job.status = "processing"
        job.created_at = now - timedelta(minutes=10)
        assert not is_stale(job, now)
        job.created_at = now - timedelta(minutes=10, seconds=1)
        assert is_stale(job, now)

    def test_queued_jobs_never_stale(self, job):
        job.created_at = datetime.utcnow() - timedelta(days=2)
        assert not is_stale(job, datetime.utcnow())

    def test_repair_is_idempotent(self, manager, db, job):
        self._processing(db, job, 30)
        manager.fail(job.id, STALE_JOB_MESSAGE)
        manager.fail(job.id, STALE_JOB_MESSAGE)

        views, stale_ids = manager.sweep_stale([job])
        assert stale_ids == []
        assert views[0].status == "failed"
        assert views[0].error_message == STALE_JOB_MESSAGE


class TestMetadata:
    async def test_visibility_is_independent_of_status(self, manager, job):
        manager.set_visibility(job.id, True)
        assert job.is_public is True and job.status == "queued"

        manager.fail(job.id, "x")
        manager.set_visibility(job.id, False)
        assert job.is_public is False and job.status == "failed"

    def test_toggle_favorite(self, manager, job):
        manager.toggle_favorite(job.id)
        assert job.is_favorite is True
        manager.toggle_favorite(job.id)
        assert job.is_favorite is False

    async def test_delete_removes_result(self, manager, job, storage):
        await manager.complete(job.id, make_data_url())
        path = storage.path_from_url(job.result_public_url)
        await manager.delete(job.id)

        with pytest.raises(JobNotFoundError):
            manager.get(job.id)
        with pytest.raises(FileNotFoundError):
            await storage.get_file(path)

    def test_list_for_owner(self, manager, auth_session, other_session):
        manager.create(auth_session, "p", "m")
        manager.create(other_session, "p", "m")
        queued = manager.create(auth_session, "p", "m")
        queued.status = "pending"
        manager.db.commit()

        assert len(manager.list_for_owner(USER_ID)) == 2
        assert len(manager.list_for_owner(USER_ID, status="queued")) == 2
        assert manager.list_for_owner(USER_ID, status="failed") == []


class TestJobRoutes:
    async def test_requires_auth(self, client):
        response = await client.get("/api/jobs")
        assert response.status_code == 401

    async def test_list_sweeps_and_repairs_stale_jobs(self, client, auth_headers, manager, db, job, session_factory):
        job.status = "processing"
        job.created_at = datetime.utcnow() - timedelta(minutes=15)
        db.commit()

        response = await client.get("/api/jobs", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["stale_job_ids"] == [job.id]
        assert body["jobs"][0]["status"] == "failed"
        assert body["jobs"][0]["error_message"] == STALE_JOB_MESSAGE

        # background repair ran after the response
        fresh = session_factory()
        try:
            repaired = fresh.query(Job).filter(Job.id == job.id).first()
            assert repaired.status == "failed"
            assert repaired.error_message == STALE_JOB_MESSAGE
        finally:
            fresh.close()

        second = (await client.get("/api/jobs", headers=auth_headers)).json()
        assert second["stale_job_ids"] == []
        assert second["jobs"][0]["status"] == "failed"

    async def test_get_job(self, client, auth_headers, job):
        response = await client.get(f"/api/jobs/{job.id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status_message"] == "Na fila de processamento"

    async def test_other_users_job_is_404(self, client, other_headers, job):
        response = await client.get(f"/api/jobs/{job.id}", headers=other_headers)
        assert response.status_code == 404

    async def test_visibility_and_favorite(self, client, auth_headers, job):
        response = await client.patch(f"/api/jobs/{job.id}/visibility", json={"is_public": True}, headers=auth_headers)
        assert response.json()["is_public"] is True

        response = await client.post(f"/api/jobs/{job.id}/favorite", headers=auth_headers)
        assert response.json()["is_favorite"] is True

    async def test_delete(self, client, auth_headers, job):
        response = await client.delete(f"/api/jobs/{job.id}", headers=auth_headers)
        assert response.status_code == 204

        response = await client.get(f"/api/jobs/{job.id}", headers=auth_headers)
        assert response.status_code == 404

    async def test_get_job_sweeps_and_repairs_stale_job(self, client, auth_headers, db, job, session_factory):
        job.status = "processing"
        job.created_at = datetime.utcnow() - timedelta(minutes=11)
        db.commit()

        response = await client.get(f"/api/jobs/{job.id}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        assert response.json()["error_message"] == STALE_JOB_MESSAGE

        fresh = session_factory()
        try:
            assert fresh.query(Job).filter(Job.id == job.id).first().status == "failed"
        finally:
            fresh.close()


class TestWaitRoute:
    @pytest.fixture(autouse=True)
    def fast_polling(self, monkeypatch):
        monkeypatch.setattr(settings, "JOB_POLL_INTERVAL_SECONDS", 0.01)

    async def test_terminal_job_returns_at_once(self, client, auth_headers, manager, job):
        await manager.complete(job.id, make_data_url())

        response = await client.get(f"/api/jobs/{job.id}/wait", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "completed"

    async def test_timeout_is_408_and_job_untouched(self, client, auth_headers, job, session_factory):
        response = await client.get(f"/api/jobs/{job.id}/wait", params={"timeout": 0.05}, headers=auth_headers)

        assert response.status_code == 408
        fresh = session_factory()
        try:
            assert fresh.query(Job).filter(Job.id == job.id).first().status == "queued"
        finally:
            fresh.close()

    async def test_stale_job_ends_the_wait_as_failed(self, client, auth_headers, db, job, session_factory):
        job.status = "processing"
        job.created_at = datetime.utcnow() - timedelta(minutes=11)
        db.commit()

        response = await client.get(f"/api/jobs/{job.id}/wait", params={"timeout": 5}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        fresh = session_factory()
        try:
            assert fresh.query(Job).filter(Job.id == job.id).first().status == "processing"
        finally:
            fresh.close()

    async def test_other_users_job_is_404(self, client, other_headers, job):
        response = await client.get(f"/api/jobs/{job.id}/wait", headers=other_headers)
        assert response.status_code == 404
