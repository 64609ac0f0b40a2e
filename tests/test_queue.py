"""
Tests for the RQ queue wrappers. Redis and rq queues are mocked.
"""

from unittest.mock import MagicMock, patch

from rq.job import JobStatus as RQJobStatus

from espelho.core.redis import Queues, RedisManager, redacted_url
from espelho.workers.queue import QueueManager, process_job_id, stale_repair_id
from espelho.workers.tasks import run_process_job_task, run_stale_repair_task


def make_manager():
    manager = QueueManager(redis=MagicMock())
    queue = MagicMock()
    manager._queues = {Queues.GENERATION: queue, Queues.MAINTENANCE: queue, Queues.DEFAULT: queue}
    return manager, queue


class TestQueueManager:
    def test_deterministic_ids(self):
        assert process_job_id("job_1") == "process-job_1"
        assert stale_repair_id("job_1") == "stale-repair-job_1"

    def test_enqueue_process_job(self):
        manager, queue = make_manager()

        with patch.object(manager, "get_job", return_value=None):
            manager.enqueue_process_job("job_1", "gemini-2.5-flash-image-preview")

        args, kwargs = queue.enqueue.call_args
        assert args[0] is run_process_job_task
        assert kwargs["kwargs"] == {"job_id": "job_1", "ai_model": "gemini-2.5-flash-image-preview"}
        assert kwargs["job_id"] == "process-job_1"
        assert kwargs["meta"]["type"] == "process_job"

    def test_stale_repair_skipped_when_pending(self):
        manager, queue = make_manager()
        pending = MagicMock()
        pending.get_status.return_value = RQJobStatus.QUEUED

        with patch.object(manager, "get_job", return_value=pending):
            assert manager.enqueue_stale_repair("job_1") is None

        queue.enqueue.assert_not_called()

    def test_stale_repair_requeued_after_finish(self):
        manager, queue = make_manager()
        finished = MagicMock()
        finished.get_status.return_value = RQJobStatus.FINISHED

        with patch.object(manager, "get_job", return_value=finished):
            manager.enqueue_stale_repair("job_1")

        args, kwargs = queue.enqueue.call_args
        assert args[0] is run_stale_repair_task
        assert kwargs["job_id"] == "stale-repair-job_1"


class TestRedisManager:
    def test_credentials_are_redacted(self):
        assert redacted_url("redis://:secret@cache:6379/0") == "redis://***@cache:6379/0"
        assert redacted_url("redis://localhost:6379") == "redis://localhost:6379"

    def test_close_disconnects_pool(self):
        manager = RedisManager("redis://localhost:6379")
        client = MagicMock()
        manager._client = client

        manager.close()

        client.connection_pool.disconnect.assert_called_once()
        assert manager._client is None
