"""
Tests for the job watcher.
"""

from types import SimpleNamespace

import pytest

from espelho.services.jobs import JobLifecycleManager, JobNotFoundError
from espelho.services.watcher import JobWatcher, JobWatchTimeout, db_job_fetcher


class ScriptedFetcher:
    """Returns the scripted statuses in order, repeating the last one."""

    def __init__(self, *statuses, error_message=None):
        self.statuses = list(statuses)
        self.error_message = error_message
        self.calls = 0

    async def __call__(self, job_id):
        status = self.statuses[min(self.calls, len(self.statuses) - 1)]
        self.calls += 1
        if isinstance(status, Exception):
            raise status
        return SimpleNamespace(id=job_id, status=status, error_message=self.error_message)


class FakeTime:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_time():
    return FakeTime()


def make_watcher(fetch, fake_time, **kwargs):
    return JobWatcher(fetch, interval=4, timeout=300, clock=fake_time.clock, sleep=fake_time.sleep, **kwargs)


class TestJobWatcher:
    async def test_returns_on_completion(self, fake_time):
        fetch = ScriptedFetcher("queued", "processing", "processing", "completed")
        result = await make_watcher(fetch, fake_time).watch("job_1")

        assert result.completed
        assert result.status_history == ["queued", "processing", "completed"]
        assert fake_time.sleeps == [4, 4, 4]

    async def test_failed_job_carries_message(self, fake_time):
        fetch = ScriptedFetcher("processing", "failed", error_message="Erro de conexão")
        result = await make_watcher(fetch, fake_time).watch("job_1")

        assert not result.completed
        assert result.error_message == "Erro de conexão"

    async def test_already_terminal_returns_immediately(self, fake_time):
        result = await make_watcher(ScriptedFetcher("completed"), fake_time).watch("job_1")

        assert result.completed
        assert fake_time.sleeps == []

    async def test_timeout(self, fake_time):
        fetch = ScriptedFetcher("processing")

        with pytest.raises(JobWatchTimeout) as exc:
            await make_watcher(fetch, fake_time).watch("job_1")

        assert exc.value.elapsed > 300
        assert exc.value.last_job.status == "processing"
        assert "Timeout" in str(exc.value)

    async def test_status_callback(self, fake_time):
        changes = []
        fetch = ScriptedFetcher("pending", "processing", "completed")
        watcher = make_watcher(fetch, fake_time, on_status_change=lambda job, previous: changes.append((previous, job.status)))

        await watcher.watch("job_1")
        assert changes == [("queued", "processing"), ("processing", "completed")]

    async def test_fetch_errors_are_tolerated(self, fake_time):
        fetch = ScriptedFetcher(RuntimeError("db hiccup"), "completed")
        result = await make_watcher(fetch, fake_time).watch("job_1")
        assert result.completed

    async def test_missing_job_propagates(self, fake_time):
        fetch = ScriptedFetcher(JobNotFoundError("job_1"))
        with pytest.raises(JobNotFoundError):
            await make_watcher(fetch, fake_time).watch("job_1")

    async def test_watching_never_writes(self, fake_time, session_factory, db, auth_session):
        job = JobLifecycleManager(db).create(auth_session, "p", "m")
        JobLifecycleManager(db).mark_processing(job.id)

        with pytest.raises(JobWatchTimeout):
            await make_watcher(db_job_fetcher(session_factory), fake_time).watch(job.id)

        db.expire_all()
        assert JobLifecycleManager(db).get(job.id).status == "processing"
