"""
Job Queue

The queue interface the dispatcher relies on, and a Redis list implementation
using the Resque payload layout: {"class": <job type>, "args": [id, options]}.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

import redis

from jobstate.jobs.runner import Job
from jobstate.jobs.utils import canonical_json

logger = logging.getLogger(__name__)

FAILED_KEY = "failed"


class Queue(ABC):
    """What the dispatcher needs from a job queue."""

    @abstractmethod
    def enqueue(
        self,
        queue_name: str,
        job_type: Type[Job],
        job_id: str,
        options: Dict[str, Any]
    ) -> bool:
        """Queue a job. Returns False if the job declined to be queued."""
        ...

    @abstractmethod
    def dequeue(self, job_type: Type[Job], job_id: str, options: Dict[str, Any]) -> int:
        """Remove matching queued entries. Returns how many were removed."""
        ...

    def default_queue_for(self, job_type: Type[Job]) -> str:
        return job_type.queue


class RedisQueue(Queue):
    """
    Redis list per queue name. Producers RPUSH, workers LPOP in the order the
    queue names are given.
    """

    def __init__(self, client: redis.Redis, namespace: str = ""):
        self.client = client
        self.namespace = namespace

    def _key(self, name: str) -> str:
        return f"{self.namespace}:{name}" if self.namespace else name

    def queue_key(self, queue_name: str) -> str:
        return self._key(f"queue:{queue_name}")

    @staticmethod
    def encode(job_type: Type[Job], job_id: str, options: Dict[str, Any]) -> str:
        return canonical_json({"class": job_type.job_type_name(), "args": [job_id, options]})

    def enqueue(
        self,
        queue_name: str,
        job_type: Type[Job],
        job_id: str,
        options: Dict[str, Any]
    ) -> bool:
        if not job_type.before_enqueue(job_id, options):
            logger.info(f"Job {job_id} of type {job_type.job_type_name()} declined by before_enqueue")
            return False

        self.client.sadd(self._key("queues"), queue_name)
        self.client.rpush(self.queue_key(queue_name), self.encode(job_type, job_id, options))
        logger.info(f"Enqueued job {job_id} of type {job_type.job_type_name()} on {queue_name}")
        return True

    def dequeue(self, job_type: Type[Job], job_id: str, options: Dict[str, Any]) -> int:
        payload = self.encode(job_type, job_id, options)
        return self.client.lrem(self.queue_key(self.default_queue_for(job_type)), 0, payload)

    def pop(self, queue_names: Sequence[str]) -> Optional[Tuple[str, str, Dict[str, Any]]]:
        """
        Claim the next job from the first non-empty queue.
        Returns (job type name, job id, options) or None.
        """
        for queue_name in queue_names:
            raw = self.client.lpop(self.queue_key(queue_name))
            if raw:
                payload = json.loads(raw)
                job_id, options = payload["args"]
                return payload["class"], job_id, options or {}
        return None

    def size(self, queue_name: str) -> int:
        return self.client.llen(self.queue_key(queue_name))

    def queues(self) -> List[str]:
        return sorted(self.client.smembers(self._key("queues")))

    def fail(self, queue_name: str, job_type_name: str, job_id: str, options: Dict[str, Any], error: Exception):
        """Record a job whose error escaped the runner on the failed list."""
        entry = {
            "failed_at": datetime.now(timezone.utc).isoformat(),
            "queue": queue_name,
            "payload": {"class": job_type_name, "args": [job_id, options]},
            "exception": type(error).__name__,
            "error": str(error),
        }
        self.client.rpush(self._key(FAILED_KEY), canonical_json(entry))

    def failed_count(self) -> int:
        return self.client.llen(self._key(FAILED_KEY))
