#!/usr/bin/env python3
"""
RQ Worker Startup Script
Starts the workers that process try-on jobs and stale-job repairs.

Usage:
    python scripts/run_workers.py                       # generation + maintenance + default
    python scripts/run_workers.py --queues generation
    python scripts/run_workers.py --workers 4 --burst
    python scripts/run_workers.py --check               # Redis connectivity only
"""

import argparse
import logging
import signal
import sys
from multiprocessing import Process
from typing import List, Optional

from rq import Queue, Worker

from espelho.core.config import settings
from espelho.core.database import init_db
from espelho.core.logconfig import configure_logging
from espelho.core.redis import Queues, get_redis, redis_health_check

logger = logging.getLogger("rq.worker")

# Listening order is priority order
ALL_QUEUES = [
    Queues.GENERATION,
    Queues.MAINTENANCE,
    Queues.DEFAULT,
]


def start_worker(queues: List[str], worker_name: Optional[str] = None, burst: bool = False):
    redis_conn = get_redis()
    worker = Worker(
        queues=[Queue(name, connection=redis_conn) for name in queues],
        connection=redis_conn,
        name=worker_name,
        log_job_description=True,
        job_monitoring_interval=5,
    )

    logger.info(f"Worker {worker_name or 'default'} starting on queues: {queues} (burst={burst})")
    worker.work(with_scheduler=True, burst=burst)


def run_worker_process(queues: List[str], process_id: int, burst: bool):
    """Target function for worker processes."""
    worker_name = f"espelho-worker-{process_id}"
    configure_logging()

    def signal_handler(signum, frame):
        logger.info(f"{worker_name}: received shutdown signal")
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    start_worker(queues, worker_name, burst)


def main():
    parser = argparse.ArgumentParser(description="Start RQ workers for Espelho Meu")
    parser.add_argument(
        "--queues", "-q",
        nargs="+",
        default=ALL_QUEUES,
        help="Queue names to listen to (default: all queues)",
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=1,
        help="Number of worker processes (default: 1)",
    )
    parser.add_argument(
        "--burst", "-b",
        action="store_true",
        help="Run in burst mode (exit when queues are empty)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check Redis connection and exit",
    )
    args = parser.parse_args()

    configure_logging()

    if args.check:
        health = redis_health_check()
        print(f"Redis Status: {health}")
        sys.exit(0 if health.get("connected") else 1)

    health = redis_health_check()
    if not health.get("connected"):
        logger.error(f"Cannot connect to Redis: {health.get('error')}")
        logger.error(f"Redis URL: {health.get('url')}")
        sys.exit(1)

    if not settings.USE_WORKER_QUEUE:
        logger.warning("USE_WORKER_QUEUE is off: the API will not enqueue jobs for these workers")

    init_db()
    logger.info(f"Redis connected: {health.get('redis_version')}")
    logger.info(f"Starting {args.workers} worker(s) on queues: {args.queues}")

    if args.workers == 1:
        start_worker(args.queues, "espelho-worker-main", args.burst)
        return

    processes: List[Process] = []

    def shutdown_all(signum, frame):
        logger.info("Shutting down all workers...")
        for p in processes:
            if p.is_alive():
                p.terminate()
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown_all)
    signal.signal(signal.SIGINT, shutdown_all)

    for i in range(args.workers):
        p = Process(
            target=run_worker_process,
            args=(args.queues, i + 1, args.burst),
            name=f"espelho-worker-{i + 1}",
        )
        p.start()
        processes.append(p)
        logger.info(f"Started worker process {i + 1}/{args.workers} (PID: {p.pid})")

    for p in processes:
        p.join()


if __name__ == "__main__":
    main()
