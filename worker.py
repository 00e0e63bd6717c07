#!/usr/bin/env python3
"""
jobstate Background Job Worker

A dedicated worker process that claims and executes queued jobs.
Run it next to the API as a separate service.

Usage:
    python worker.py [--concurrency=N] [--poll-interval=S] [--queues=Q1,Q2]

Features:
- Claims jobs from Redis queues in the order the queue names are given
- Executes jobs in a thread pool so pause and lock waits do not block polling
- Records jobs whose errors escape the runner on the failed list
- Graceful shutdown on signals: active jobs are asked to stop at their next checkpoint
"""

import argparse
import asyncio
import logging
import os
import signal
from datetime import datetime, timezone
from typing import Dict, List, Optional

from jobstate.jobs.job_manager import JobManager, get_manager
from jobstate.jobs.job_types import JobStatus, UnknownJobType
from jobstate.jobs.queue import RedisQueue
# Import handlers to register them
import jobstate.jobs.handlers  # noqa: F401

logger = logging.getLogger("jobstate.worker")


class BackgroundJobWorker:
    """
    Worker that polls Redis queues and executes statused jobs.
    """

    def __init__(
        self,
        worker_id: Optional[str] = None,
        concurrency: int = 3,
        poll_interval: float = 5.0,
        queues: Optional[List[str]] = None,
        manager: Optional[JobManager] = None
    ):
        self.worker_id = worker_id or f"worker-{os.getpid()}-{datetime.now(timezone.utc).strftime('%H%M%S')}"
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self.manager = manager or get_manager()
        self.queue: RedisQueue = self.manager.queue
        self.queues = queues or self.queue.queues() or ["statused"]

        self._running = False
        self._active_tasks: Dict[str, asyncio.Task] = {}
        self._shutdown_event = asyncio.Event()

        logger.info(f"Worker {self.worker_id} initialized with concurrency={concurrency} queues={self.queues}")

    async def start(self):
        """Start the worker and begin processing jobs."""
        self._running = True
        logger.info(f"Worker {self.worker_id} starting...")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_shutdown)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass

        try:
            await self._job_poll_loop()
        except asyncio.CancelledError:
            logger.info("Worker cancelled")
        finally:
            await self._cleanup()

    def _handle_shutdown(self):
        """Handle shutdown signal."""
        logger.info(f"Worker {self.worker_id} received shutdown signal")
        self._running = False
        self._shutdown_event.set()

    async def _job_poll_loop(self):
        """Main loop that polls for and processes jobs."""
        logger.info("Starting job poll loop")

        while self._running:
            try:
                claimed = False
                if len(self._active_tasks) < self.concurrency:
                    claimed = self.claim_next_job()

                # Poll again immediately while there is work and capacity
                if claimed:
                    await asyncio.sleep(0)
                    continue

                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.poll_interval)
                    break
                except asyncio.TimeoutError:
                    pass

            except Exception as e:
                logger.error(f"Error in poll loop: {e}")
                await asyncio.sleep(self.poll_interval)

        logger.info("Job poll loop stopped")

    def claim_next_job(self) -> bool:
        """Pop the next queued job and schedule it. Returns True if one was claimed."""
        for queue_name in self.queues:
            claimed = self.queue.pop([queue_name])
            if not claimed:
                continue

            job_type_name, job_id, options = claimed
            logger.info(f"Claimed job {job_id} ({job_type_name}) from {queue_name}")

            task = asyncio.create_task(self._execute_job(queue_name, job_type_name, job_id, options))
            self._active_tasks[job_id] = task
            task.add_done_callback(lambda t, jid=job_id: self._task_done(jid))
            return True
        return False

    async def _execute_job(self, queue_name: str, job_type_name: str, job_id: str, options: dict):
        """Run a claimed job on the default executor."""
        loop = asyncio.get_running_loop()
        try:
            job_cls = self.manager.runner.get_job_class(job_type_name)
        except UnknownJobType as e:
            logger.error(f"Cannot run job {job_id}: {e}")
            self.manager.store.set(job_id, {"status": JobStatus.FAILED}, str(e))
            self.queue.fail(queue_name, job_type_name, job_id, options, e)
            return

        try:
            await loop.run_in_executor(None, self.manager.perform, job_cls, job_id, options)
            logger.info(f"Job {job_id} finished")
        except Exception as e:
            logger.error(f"Error executing job {job_id}: {e}")
            self.queue.fail(queue_name, job_type_name, job_id, options, e)

    def _task_done(self, job_id: str):
        """Called when a job task completes."""
        self._active_tasks.pop(job_id, None)
        logger.debug(f"Task for job {job_id} cleaned up")

    async def _cleanup(self):
        """Ask active jobs to stop and wait for them."""
        logger.info("Worker cleaning up...")

        # Threads cannot be cancelled; jobs stop at their next checkpoint
        for job_id, task in list(self._active_tasks.items()):
            if not task.done():
                logger.info(f"Killing active job {job_id}")
                self.manager.kill(job_id)

        if self._active_tasks:
            await asyncio.gather(*self._active_tasks.values(), return_exceptions=True)

        logger.info("Worker cleanup complete")


def main():
    """Main entry point for the worker."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(description="jobstate Background Job Worker")
    parser.add_argument(
        "--concurrency", "-c",
        type=int,
        default=int(os.environ.get("WORKER_CONCURRENCY", "3")),
        help="Number of jobs to process concurrently (default: 3)"
    )
    parser.add_argument(
        "--poll-interval", "-p",
        type=float,
        default=float(os.environ.get("WORKER_POLL_INTERVAL", "5.0")),
        help="Seconds between queue polls (default: 5.0)"
    )
    parser.add_argument(
        "--queues", "-q",
        type=str,
        default=os.environ.get("WORKER_QUEUES", ""),
        help="Comma-separated queue names in priority order (default: all known queues)"
    )
    parser.add_argument(
        "--worker-id",
        type=str,
        default=os.environ.get("WORKER_ID"),
        help="Unique worker identifier (default: auto-generated)"
    )

    args = parser.parse_args()
    queues = [q.strip() for q in args.queues.split(",") if q.strip()] or None

    async def run():
        worker = BackgroundJobWorker(
            worker_id=args.worker_id,
            concurrency=args.concurrency,
            poll_interval=args.poll_interval,
            queues=queues
        )
        await worker.start()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Worker interrupted")

    logger.info("Worker stopped")


if __name__ == "__main__":
    main()
