"""
Control Signals

Kill/pause membership sets and the best-effort lock registry. A running job
never talks to the outside world directly; it polls these structures at its
checkpoints.
"""

import logging
from typing import TYPE_CHECKING, List, Optional, Set

import redis

if TYPE_CHECKING:
    from jobstate.jobs.status_store import StatusStore

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 3600


class SignalSet:
    """
    A Redis set of job ids. Membership is the signal; there is no payload.
    """

    def __init__(self, client: redis.Redis, key: str, store: "StatusStore"):
        self.client = client
        self.key = key
        self._store = store

    def signal(self, job_id: str) -> None:
        self.client.sadd(self.key, job_id)

    def clear(self, job_id: str) -> None:
        self.client.srem(self.key, job_id)

    def is_signaled(self, job_id: str) -> bool:
        return bool(self.client.sismember(self.key, job_id))

    def list_signaled(self) -> Set[str]:
        return set(self.client.smembers(self.key))

    def signal_all(
        self,
        range_start: Optional[int] = None,
        range_end: Optional[int] = None
    ) -> List[str]:
        """
        Signal every job in the given slice of the status index, newest first.
        Without a range every indexed job is signaled.
        """
        ids = self._store.status_ids(range_start, range_end)
        for job_id in ids:
            self.signal(job_id)
        logger.info(f"Signaled {len(ids)} job(s) on {self.key}")
        return ids


class LockRegistry:
    """
    Named locks used to serialize jobs with equivalent inputs.

    Release is advisory: any caller may release any lock, holders are not
    tracked. The expiry frees locks left behind by crashed holders.
    """

    def __init__(self, client: redis.Redis, prefix: str = "_lock-"):
        self.client = client
        self.prefix = prefix

    def _key(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def acquire(self, name: str, timeout: int = DEFAULT_LOCK_TIMEOUT) -> bool:
        """Take the lock if nobody holds it. Returns True if acquired."""
        return bool(self.client.set(self._key(name), name, nx=True, ex=int(timeout)))

    def release(self, name: str) -> None:
        self.client.delete(self._key(name))

    def is_locked(self, name: str) -> bool:
        return bool(self.client.exists(self._key(name)))
