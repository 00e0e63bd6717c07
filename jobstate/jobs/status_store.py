"""
Status Store

Persists StatusRecord snapshots in Redis and keeps a time-ordered index of job
ids for paginated, newest-first listing. There is no local cache: every call
is a round trip, so Redis is the single source of truth and concurrent writers
race on a last-writer-wins basis.
"""

import logging
import time
from typing import List, Optional, Sequence

import redis

from jobstate.jobs.job_types import JobStatus, StatusPart, StatusRecord
from jobstate.jobs.signals import LockRegistry, SignalSet
from jobstate.redis_client import env_float, get_redis

logger = logging.getLogger(__name__)


class StatusStore:
    """
    Redis-backed status records, time index and control signal sets.

    Redis errors are not handled here; they propagate to the caller.
    """

    def __init__(
        self,
        client: redis.Redis,
        expire_in: Optional[int] = None,
        namespace: str = ""
    ):
        self.client = client
        self.expire_in = int(expire_in) if expire_in is not None else None
        self.namespace = namespace

        self.kill_set = SignalSet(client, self._key("_kill"), self)
        self.pause_set = SignalSet(client, self._key("_pause"), self)
        # Same shape as kill/pause, never consulted by job checkpoints
        self.revert_set = SignalSet(client, self._key("_revert"), self)
        self.locks = LockRegistry(client, prefix=self._key("_lock-"))

    def _key(self, name: str) -> str:
        return f"{self.namespace}:{name}" if self.namespace else name

    def status_key(self, job_id: str) -> str:
        return self._key(f"status:{job_id}")

    @property
    def set_key(self) -> str:
        return self._key("_statuses")

    # =========================================================================
    # Records
    # =========================================================================

    def create(self, job_id: str, *parts: StatusPart) -> str:
        """
        Write the initial record for job_id and add it to the time index.
        With expire_in configured, index entries older than the horizon are
        pruned as a side effect.
        """
        self.set(job_id, *parts)
        now = time.time()
        self.client.zadd(self.set_key, {job_id: now})
        if self.expire_in:
            self.client.zremrangebyscore(self.set_key, 0, now - self.expire_in)
        return job_id

    def get(self, job_id: str) -> Optional[StatusRecord]:
        raw = self.client.get(self.status_key(job_id))
        return StatusRecord.from_json(raw) if raw else None

    def mget(self, job_ids: Sequence[str]) -> List[Optional[StatusRecord]]:
        """Fetch several records; missing ids yield None in their slot."""
        if not job_ids:
            return []
        values = self.client.mget([self.status_key(job_id) for job_id in job_ids])
        return [StatusRecord.from_json(raw) if raw else None for raw in values]

    def set(self, job_id: str, *parts: StatusPart) -> StatusRecord:
        """Merge parts over the current record and write the new snapshot."""
        record = StatusRecord.build(self.get(job_id), *parts, job_id=job_id)
        self.client.set(self.status_key(job_id), record.to_json(), ex=self.expire_in or None)
        return record

    def remove(self, job_id: str) -> None:
        self.client.delete(self.status_key(job_id))
        self.client.zrem(self.set_key, job_id)

    # =========================================================================
    # Listing
    # =========================================================================

    def status_ids(
        self,
        range_start: Optional[int] = None,
        range_end: Optional[int] = None
    ) -> List[str]:
        """
        Job ids newest first. With both bounds, returns the inclusive slice
        [range_start, range_end] of that ordering; otherwise returns all ids.
        """
        if range_start is not None and range_end is not None:
            return list(self.client.zrevrange(self.set_key, abs(range_start), abs(range_end)))
        return list(self.client.zrevrange(self.set_key, 0, -1))

    def statuses(
        self,
        range_start: Optional[int] = None,
        range_end: Optional[int] = None
    ) -> List[StatusRecord]:
        """Records for status_ids(range), skipping any that have expired."""
        ids = self.status_ids(range_start, range_end)
        return [record for record in self.mget(ids) if record is not None]

    def count(self) -> int:
        return self.client.zcard(self.set_key)

    # =========================================================================
    # Bulk removal
    # =========================================================================

    def clear(self, range_start: Optional[int] = None, range_end: Optional[int] = None) -> List[str]:
        ids = self.status_ids(range_start, range_end)
        for job_id in ids:
            self.remove(job_id)
        logger.info(f"Cleared {len(ids)} status(es)")
        return ids

    def clear_completed(
        self,
        range_start: Optional[int] = None,
        range_end: Optional[int] = None
    ) -> List[str]:
        return self._clear_with_status(JobStatus.COMPLETED, range_start, range_end)

    def clear_failed(
        self,
        range_start: Optional[int] = None,
        range_end: Optional[int] = None
    ) -> List[str]:
        return self._clear_with_status(JobStatus.FAILED, range_start, range_end)

    def _clear_with_status(
        self,
        status: JobStatus,
        range_start: Optional[int],
        range_end: Optional[int]
    ) -> List[str]:
        ids = self.status_ids(range_start, range_end)
        removed = []
        for job_id, record in zip(ids, self.mget(ids)):
            if record is not None and record.status == status:
                self.remove(job_id)
                removed.append(job_id)
        logger.info(f"Cleared {len(removed)} {status.value} status(es)")
        return removed

    # =========================================================================
    # Control signals
    # =========================================================================

    def kill(self, job_id: str) -> None:
        """Ask the job to stop at its next checkpoint."""
        self.kill_set.signal(job_id)

    def kill_all(self, range_start: Optional[int] = None, range_end: Optional[int] = None) -> List[str]:
        return self.kill_set.signal_all(range_start, range_end)

    def kill_ids(self):
        return self.kill_set.list_signaled()

    def should_kill(self, job_id: str) -> bool:
        return self.kill_set.is_signaled(job_id)

    def pause(self, job_id: str) -> None:
        """Ask the job to pause at its next checkpoint."""
        self.pause_set.signal(job_id)

    def unpause(self, job_id: str) -> None:
        self.pause_set.clear(job_id)

    def pause_all(self, range_start: Optional[int] = None, range_end: Optional[int] = None) -> List[str]:
        return self.pause_set.signal_all(range_start, range_end)

    def pause_ids(self):
        return self.pause_set.list_signaled()

    def should_pause(self, job_id: str) -> bool:
        return self.pause_set.is_signaled(job_id)


# ============================================================================
# Default store
# ============================================================================

_store: Optional[StatusStore] = None


def get_store() -> StatusStore:
    """Get the process-wide store, configured from the environment."""
    global _store
    if _store is None:
        expire_in = env_float("JOBSTATE_EXPIRE_IN")
        _store = StatusStore(get_redis(), expire_in=int(expire_in) if expire_in else None)
    return _store
