"""
Shared fixtures. Every test gets its own in-memory Redis.
"""

import fakeredis
import pytest

from jobstate.jobs.job_manager import JobManager
from jobstate.jobs.queue import RedisQueue
from jobstate.jobs.runner import JobRunner
from jobstate.jobs.status_store import StatusStore
from tests import sample_jobs


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def store(redis_client):
    return StatusStore(redis_client)


@pytest.fixture
def runner(store):
    runner = JobRunner(store, poll_interval=0.01, lock_timeout=60)
    for job_cls in sample_jobs.ALL_JOBS:
        runner.register(job_cls)
    return runner


@pytest.fixture
def queue(redis_client):
    return RedisQueue(redis_client)


@pytest.fixture
def manager(store, queue, runner):
    return JobManager(store, queue, runner)


@pytest.fixture(autouse=True)
def reset_sample_jobs():
    sample_jobs.reset()
    yield
