"""
Job Status Framework

Tracks long-running background jobs through a shared Redis status record and
lets outside actors kill, pause and serialize them cooperatively.

Key components:
- job_types: Status enum, StatusRecord snapshot, checkpoint outcomes and errors
- status_store: Record persistence, time index, expiry and control signal sets
- signals: Kill/pause signal sets and the lock registry
- runner: Job base class, per-run JobContext checkpoints and the JobRunner
- queue: Queue interface and the Redis list queue
- job_manager: Job creation, dequeueing and administrative operations
"""

from jobstate.jobs.job_types import (
    Checkpoint,
    JobStateError,
    JobStatus,
    Killed,
    NotANumber,
    StatusRecord,
    UnknownJobType,
    generate_id,
)

from jobstate.jobs.signals import (
    LockRegistry,
    SignalSet,
)

from jobstate.jobs.status_store import (
    StatusStore,
    get_store,
)

from jobstate.jobs.runner import (
    Job,
    JobContext,
    JobRunner,
    get_runner,
    register_job,
)

from jobstate.jobs.queue import (
    Queue,
    RedisQueue,
)

from jobstate.jobs.job_manager import (
    JobManager,
    create_job,
    dequeue_job,
    get_manager,
    get_status,
    kill_job,
)

__all__ = [
    # Types
    "Checkpoint",
    "JobStateError",
    "JobStatus",
    "Killed",
    "NotANumber",
    "StatusRecord",
    "UnknownJobType",
    "generate_id",
    # Store
    "LockRegistry",
    "SignalSet",
    "StatusStore",
    "get_store",
    # Runner
    "Job",
    "JobContext",
    "JobRunner",
    "get_runner",
    "register_job",
    # Queue
    "Queue",
    "RedisQueue",
    # Manager
    "JobManager",
    "create_job",
    "dequeue_job",
    "get_manager",
    "get_status",
    "kill_job",
]
