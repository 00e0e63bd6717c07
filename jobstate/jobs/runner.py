"""
Job Runner

Executes jobs with status lifecycle management including:
- Unconditional working/completed/failed bookkeeping around user work
- Progress checkpoints (tick/at) that observe kill and pause signals
- Pause and lock waits that block the worker thread and poll the store
- Failure, success and kill hooks
"""

import logging
import time
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Type

from jobstate.jobs.job_types import (
    Checkpoint, JobStatus, Killed, NotANumber, StatusPart, StatusRecord, UnknownJobType
)
from jobstate.jobs.signals import DEFAULT_LOCK_TIMEOUT
from jobstate.jobs.status_store import StatusStore, get_store
from jobstate.jobs.utils import canonical_json, options_digest, timestamp
from jobstate.redis_client import env_float

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10.0


def _describe(parts) -> str:
    return " ".join(str(p) for p in parts if isinstance(p, str))


class Job(ABC):
    """
    Base class for jobs with a tracked status.

    Subclasses implement perform(ctx) and report progress through the
    context's checkpoints. Optional hooks are picked up when defined:

        on_success(ctx)
        on_failure(ctx, error)   # error is the exception or the failed message
        on_killed(ctx)

    Declaring on_failure means errors raised by perform are handed to the
    hook instead of being re-raised to the worker.
    """

    # Queue used when a job is enqueued without an explicit queue name
    queue = "statused"

    @abstractmethod
    def perform(self, ctx: "JobContext") -> None:
        ...

    @classmethod
    def job_type_name(cls) -> str:
        return cls.__name__

    @classmethod
    def before_enqueue(cls, job_id: str, options: Dict[str, Any]) -> bool:
        """Return False to stop the job from being queued."""
        return True

    @classmethod
    def display_name(cls, options: Optional[Dict[str, Any]] = None) -> str:
        shown = canonical_json(options) if options else ""
        return f"{cls.job_type_name()}({shown})"


@dataclass
class JobContext:
    """
    Context object passed to Job.perform.
    Provides status updates, kill/pause checkpoints and lock management for
    a single run of a single job.
    """
    job_id: str
    options: Dict[str, Any]
    name: str

    _store: StatusStore = field(repr=False)
    _poll_interval: float = field(default=DEFAULT_POLL_INTERVAL, repr=False)
    _lock_timeout: int = field(default=DEFAULT_LOCK_TIMEOUT, repr=False)
    _killed: bool = field(default=False, repr=False)

    @property
    def status(self) -> Optional[StatusRecord]:
        """The job's current record, read from the store."""
        return self._store.get(self.job_id)

    @property
    def killed(self) -> bool:
        """True once a checkpoint has recorded the kill."""
        return self._killed

    def set_status(self, *parts: StatusPart) -> StatusRecord:
        """
        Merge parts over the current record. Once the job has been killed
        the record is final and further updates are ignored.
        """
        if self._killed:
            logger.warning(f"Job {self.job_id}: ignoring status update after kill")
            return self.status
        return self._write(*parts)

    def _write(self, *parts: StatusPart) -> StatusRecord:
        return self._store.set(self.job_id, {"name": self.name}, *parts)

    def should_kill(self) -> bool:
        return self._store.should_kill(self.job_id)

    def should_pause(self) -> bool:
        return self._store.should_pause(self.job_id)

    # =========================================================================
    # Checkpoints
    # =========================================================================

    def tick(self, *messages: StatusPart) -> Checkpoint:
        """
        Report that the job is working. Kills the job if it is on the kill
        list and blocks while it is on the pause list.
        """
        if self.should_kill():
            return self.kill()
        if self.should_pause() and self.pause() is Checkpoint.KILLED:
            return Checkpoint.KILLED

        self.set_status({"status": JobStatus.WORKING}, *messages)
        logger.info(f"Job {self.job_id}: {_describe(messages)}")
        return Checkpoint.CONTINUE

    def at(self, num, total, *messages: StatusPart) -> Checkpoint:
        """tick() with progress: num out of total."""
        try:
            valid = float(total) > 0
        except (TypeError, ValueError):
            valid = False
        if not valid:
            raise NotANumber(f"Called at() with total={total!r} which is not a number")

        return self.tick({"num": num, "total": total}, *messages)

    def failed(self, *messages: StatusPart) -> StatusRecord:
        """Mark the job failed. The caller is responsible for stopping."""
        record = self.set_status({"status": JobStatus.FAILED}, *messages)
        logger.error(f"Job {self.job_id}: {_describe(messages)}")
        return record

    def completed(self, *messages: StatusPart) -> StatusRecord:
        record = self.set_status(
            {"status": JobStatus.COMPLETED, "message": f"Completed at {timestamp()}"},
            *messages
        )
        logger.info(f"Job {self.job_id}: {_describe(messages)}")
        return record

    def kill(self) -> Checkpoint:
        """Record the kill. The runner clears the kill signal when the job exits."""
        message = f"Killed at {timestamp()}"
        self._write({"status": JobStatus.KILLED, "message": message})
        self._killed = True
        logger.error(f"Job {self.job_id}: {message}")
        return Checkpoint.KILLED

    def pause(self) -> Checkpoint:
        """
        Mark the job paused and block until the pause signal is cleared,
        polling every poll interval. A kill while paused ends the wait.
        Callers reach this only after seeing the pause signal; an unpause
        that lands first ends the wait immediately.
        """
        message = f"Paused at {timestamp()}"
        self.set_status({"status": JobStatus.PAUSED, "message": message})
        logger.info(f"Job {self.job_id}: {message}")

        while self.should_pause():
            if self.should_kill():
                return self.kill()
            time.sleep(self._poll_interval)

        if self.should_kill():
            return self.kill()
        logger.info(f"Job {self.job_id}: Resumed at {timestamp()}")
        return Checkpoint.CONTINUE

    # =========================================================================
    # Locks
    # =========================================================================

    def lock(self, key: Optional[str] = None) -> Checkpoint:
        """
        Take the named lock, waiting while another job holds it. The key
        defaults to a hash of this job's options.
        """
        key = key or options_digest(self.options)
        locks = self._store.locks
        if locks.acquire(key, self._lock_timeout):
            return Checkpoint.CONTINUE

        waiting = {"status": JobStatus.WAITING, "message": f"Waiting at {timestamp()} due to existing job"}
        self.set_status(waiting)
        logger.info(f"Job {self.job_id}: waiting for lock {key}")

        while not locks.acquire(key, self._lock_timeout):
            if self.should_kill():
                return self.kill()
            if self.should_pause():
                if self.pause() is Checkpoint.KILLED:
                    return Checkpoint.KILLED
                self.set_status(waiting)
            time.sleep(self._poll_interval)

        self.set_status({"status": JobStatus.WORKING, "message": f"Lock acquired at {timestamp()}"})
        return Checkpoint.CONTINUE

    def unlock(self, key: Optional[str] = None) -> None:
        """Release the named lock. Release is not checked against the holder."""
        self._store.locks.release(key or options_digest(self.options))


class JobRunner:
    """
    Runs Job instances and guarantees a final status is recorded.
    """

    def __init__(
        self,
        store: StatusStore,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        lock_timeout: int = DEFAULT_LOCK_TIMEOUT
    ):
        self.store = store
        self.poll_interval = poll_interval
        self.lock_timeout = lock_timeout
        self._job_types: Dict[str, Type[Job]] = {}

    def register(self, job_cls: Type[Job]) -> Type[Job]:
        """Register a job class so queued payloads naming it can be run."""
        self._job_types[job_cls.job_type_name()] = job_cls
        logger.info(f"Registered job type: {job_cls.job_type_name()}")
        return job_cls

    def get_job_class(self, name: str) -> Type[Job]:
        try:
            return self._job_types[name]
        except KeyError:
            raise UnknownJobType(f"No job registered for type {name}") from None

    def create_context(self, job: Job, job_id: str, options: Dict[str, Any]) -> JobContext:
        return JobContext(
            job_id=job_id,
            options=options,
            name=job.display_name(options),
            _store=self.store,
            _poll_interval=self.poll_interval,
            _lock_timeout=self.lock_timeout
        )

    def run(self, job: Job, job_id: str, options: Optional[Dict[str, Any]] = None) -> JobContext:
        """
        Run job.perform, recording working before and a final status after.

        Errors from perform mark the job failed and are re-raised unless the
        job defines on_failure. A kill is never raised to the caller.
        """
        options = options or {}
        ctx = self.create_context(job, job_id, options)

        ctx.set_status({"status": JobStatus.WORKING})
        logger.info(f"{job_id}: Job starting")

        try:
            job.perform(ctx)
        except Killed:
            if not ctx.killed:
                ctx.kill()
            self._finish_killed(job, ctx)
            return ctx
        except Exception as e:
            if ctx.killed:
                self._finish_killed(job, ctx)
                return ctx

            error_trace = traceback.format_exc()
            ctx.failed(f"The task failed because of an error: {e}")
            logger.error(f"Job {job_id} failed: {e}\n{error_trace}")

            on_failure = getattr(job, "on_failure", None)
            if on_failure is None:
                raise
            on_failure(ctx, e)
            return ctx

        if ctx.killed:
            self._finish_killed(job, ctx)
            return ctx

        status = ctx.status
        if status is not None and status.status == JobStatus.FAILED:
            on_failure = getattr(job, "on_failure", None)
            if on_failure is not None:
                on_failure(ctx, status.message)
            return ctx

        if status is None or status.status != JobStatus.COMPLETED:
            ctx.completed()

        on_success = getattr(job, "on_success", None)
        if on_success is not None:
            on_success(ctx)
        return ctx

    def _finish_killed(self, job: Job, ctx: JobContext) -> None:
        self.store.kill_set.clear(ctx.job_id)
        logger.info(f"Job {ctx.job_id} was killed")

        on_killed = getattr(job, "on_killed", None)
        if on_killed is not None:
            on_killed(ctx)


# ============================================================================
# Global runner instance
# ============================================================================

_runner: Optional[JobRunner] = None


def get_runner() -> JobRunner:
    """Get the global job runner instance, configured from the environment."""
    global _runner
    if _runner is None:
        _runner = JobRunner(
            get_store(),
            poll_interval=env_float("JOBSTATE_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            lock_timeout=int(env_float("JOBSTATE_LOCK_TIMEOUT", DEFAULT_LOCK_TIMEOUT))
        )
    return _runner


def register_job(job_cls: Type[Job]) -> Type[Job]:
    """Register a job class with the global runner. Usable as a decorator."""
    return get_runner().register(job_cls)
