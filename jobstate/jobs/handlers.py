"""
Job Handlers

Jobs shipped with the package. Importing this module registers them with the
global runner so workers can run queued payloads that name them.
"""

import logging
import time

from jobstate.jobs.job_types import Checkpoint
from jobstate.jobs.runner import Job, JobContext, register_job

logger = logging.getLogger(__name__)


@register_job
class SleepJob(Job):
    """
    Sleeps for options["length"] seconds (default 1000), reporting progress
    every second. Handy for trying out kill and pause from the admin API.
    """

    def perform(self, ctx: JobContext) -> None:
        total = int(ctx.options.get("length", 1000))
        for num in range(total):
            if ctx.at(num, total, f"At {num} of {total}") is Checkpoint.KILLED:
                return
            time.sleep(1)
        ctx.completed()
