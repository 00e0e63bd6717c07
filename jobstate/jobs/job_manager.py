"""
Job Manager

Handles job creation, queueing, dequeueing and the control operations exposed
to administrators (kill, pause, listing, clearing). This is the primary
interface for creating and managing background jobs.
"""

import logging
from typing import Any, Dict, List, Optional, Type

from jobstate.jobs.job_types import StatusRecord, generate_id
from jobstate.jobs.queue import Queue, RedisQueue
from jobstate.jobs.runner import Job, JobContext, JobRunner, get_runner
from jobstate.jobs.status_store import StatusStore, get_store
from jobstate.redis_client import get_redis

logger = logging.getLogger(__name__)


class JobManager:
    """
    Creates status records for new jobs and hands them to the queue.
    """

    def __init__(self, store: StatusStore, queue: Queue, runner: JobRunner):
        self.store = store
        self.queue = queue
        self.runner = runner

    def create(self, job_type: Type[Job], options: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """
        Queue a job of job_type on its default queue.

        Returns the new job id, or None if the job declined to be queued.
        """
        return self.enqueue(job_type, options)

    def enqueue(self, job_type: Type[Job], options: Optional[Dict[str, Any]] = None) -> Optional[str]:
        return self.enqueue_to(self.queue.default_queue_for(job_type), job_type, options)

    def enqueue_to(
        self,
        queue_name: str,
        job_type: Type[Job],
        options: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """
        Queue a job on a specific queue. The status record is written first so
        the job is visible as soon as it is queued; it is removed again if the
        queue declines the job.
        """
        options = options or {}
        job_id = generate_id()
        self.store.create(job_id, {"options": options})

        if self.queue.enqueue(queue_name, job_type, job_id, options):
            logger.info(f"Created job {job_id} of type {job_type.job_type_name()}")
            return job_id

        self.store.remove(job_id)
        logger.info(f"Job of type {job_type.job_type_name()} was not queued")
        return None

    def scheduled(
        self,
        queue_name: str,
        job_type: Type[Job],
        options: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Entry point for schedulers that fire (queue, job type, options)."""
        return self.enqueue_to(queue_name, job_type, options)

    def dequeue(self, job_type: Type[Job], job_id: str) -> int:
        """
        Remove a queued job. The queue matches entries by full payload, so the
        options are read back from the stored status.
        """
        status = self.store.get(job_id)
        options = status.options if status else {}
        removed = self.queue.dequeue(job_type, job_id, options)
        logger.info(f"Dequeued {removed} entr{'y' if removed == 1 else 'ies'} for job {job_id}")
        return removed

    def perform(
        self,
        job_type: Type[Job],
        job_id: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None
    ) -> JobContext:
        """Run a job in the calling thread. Used by workers for claimed jobs."""
        return self.runner.run(job_type(), job_id or generate_id(), options or {})

    # =========================================================================
    # Status access and control
    # =========================================================================

    def get(self, job_id: str) -> Optional[StatusRecord]:
        return self.store.get(job_id)

    def mget(self, job_ids: List[str]) -> List[Optional[StatusRecord]]:
        return self.store.mget(job_ids)

    def statuses(self, range_start: Optional[int] = None, range_end: Optional[int] = None) -> List[StatusRecord]:
        return self.store.statuses(range_start, range_end)

    def count(self) -> int:
        return self.store.count()

    def kill(self, job_id: str) -> None:
        self.store.kill(job_id)
        logger.info(f"Kill requested for job {job_id}")

    def kill_all(self, range_start: Optional[int] = None, range_end: Optional[int] = None) -> List[str]:
        return self.store.kill_all(range_start, range_end)

    def pause(self, job_id: str) -> None:
        self.store.pause(job_id)
        logger.info(f"Pause requested for job {job_id}")

    def unpause(self, job_id: str) -> None:
        self.store.unpause(job_id)
        logger.info(f"Unpause requested for job {job_id}")

    def clear(self) -> List[str]:
        return self.store.clear()

    def clear_completed(self) -> List[str]:
        return self.store.clear_completed()

    def clear_failed(self) -> List[str]:
        return self.store.clear_failed()


# ============================================================================
# Module-level convenience functions
# ============================================================================

_manager: Optional[JobManager] = None


def get_manager() -> JobManager:
    global _manager
    if _manager is None:
        _manager = JobManager(get_store(), RedisQueue(get_redis()), get_runner())
    return _manager


def create_job(job_type: Type[Job], options: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """Create and queue a new job. See JobManager.create."""
    return get_manager().create(job_type, options)


def get_status(job_id: str) -> Optional[StatusRecord]:
    """Get a job's status by ID."""
    return get_manager().get(job_id)


def kill_job(job_id: str) -> None:
    """Kill a job at its next checkpoint."""
    get_manager().kill(job_id)


def dequeue_job(job_type: Type[Job], job_id: str) -> int:
    """Remove a job that has not started yet."""
    return get_manager().dequeue(job_type, job_id)
