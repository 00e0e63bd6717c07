"""
Job Types and Schemas

Defines the status enum, checkpoint outcomes, error classes and the
StatusRecord snapshot shared between running jobs and outside observers.
"""

import json
import math
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JobStatus(str, Enum):
    """Status of a background job."""
    QUEUED = "queued"
    WORKING = "working"
    COMPLETED = "completed"
    FAILED = "failed"
    KILLED = "killed"
    PAUSED = "paused"
    WAITING = "waiting"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transitions can happen from this state."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.KILLED)


# ============================================================================
# Errors
# ============================================================================

class JobStateError(RuntimeError):
    """Base class for errors raised by the job lifecycle."""


class Killed(JobStateError):
    """Raised to unwind a job that was killed at a checkpoint."""


class NotANumber(JobStateError):
    """Raised when at() is given a progress total that is not a positive number."""


class UnknownJobType(JobStateError):
    """Raised when a queued payload names a job type nobody registered."""


class Checkpoint(str, Enum):
    """Outcome of a tick/at/lock checkpoint."""
    CONTINUE = "continue"
    KILLED = "killed"

    def raise_if_killed(self) -> "Checkpoint":
        """Unwind with Killed when the checkpoint observed a kill signal."""
        if self is Checkpoint.KILLED:
            raise Killed()
        return self


def generate_id() -> str:
    """Generate a fresh 32 character job id."""
    return uuid4().hex


# ============================================================================
# Status record
# ============================================================================

WELL_KNOWN_FIELDS = ("id", "status", "name", "message", "created_at", "num", "total", "options")

# Computed for display only, dropped when a stored record is decoded
PCT_COMPLETE = "pct_complete"

StatusPart = Union[str, Mapping[str, Any], "StatusRecord", None]


class StatusRecord(BaseModel):
    """
    Snapshot of one job's status.

    Records are built by merging partial updates (see build) and are never
    modified after construction; every store write produces a new record.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    status: JobStatus = JobStatus.QUEUED
    name: Optional[str] = None
    message: Optional[str] = None
    created_at: float = Field(default_factory=time.time)
    num: Optional[Union[int, float]] = None
    total: Optional[Union[int, float]] = None
    options: Dict[str, Any] = Field(default_factory=dict)
    extra: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("total")
    @classmethod
    def _total_must_be_positive(cls, value):
        if value is not None and (math.isnan(value) or value <= 0):
            raise ValueError(f"total must be greater than zero, got {value}")
        return value

    @classmethod
    def build(cls, *parts: StatusPart, job_id: Optional[str] = None) -> "StatusRecord":
        """
        Merge partial updates, in order, into a new record.

        Strings become the message, mappings and records are merged key by
        key with later parts winning. created_at and options keep the first
        value supplied so a merge over an existing record never replaces them.
        Keys that are not well-known fields land in the extension bag.
        """
        fields: Dict[str, Any] = {"status": JobStatus.QUEUED}
        extra: Dict[str, Any] = {}
        created_at = None
        options = None

        for part in parts:
            if part is None:
                continue
            if isinstance(part, StatusRecord):
                part = part.to_dict()
            elif isinstance(part, str):
                part = {"message": part}

            for key, value in part.items():
                if key == "created_at":
                    if created_at is None:
                        created_at = value
                elif key == "options":
                    if options is None:
                        options = value
                elif key == PCT_COMPLETE:
                    continue
                elif key in WELL_KNOWN_FIELDS:
                    fields[key] = value
                else:
                    extra[key] = value

        if job_id is not None:
            fields["id"] = job_id

        return cls(
            created_at=created_at if created_at is not None else time.time(),
            options=dict(options or {}),
            extra=extra,
            **fields
        )

    @classmethod
    def from_json(cls, raw: str) -> "StatusRecord":
        """Decode a record written by to_json."""
        return cls.build(json.loads(raw))

    def to_dict(self) -> Dict[str, Any]:
        """Flat, string keyed representation used for storage."""
        known = {
            "id": self.id,
            "status": self.status.value,
            "name": self.name,
            "message": self.message,
            "created_at": self.created_at,
            "num": self.num,
            "total": self.total,
            "options": dict(self.options),
        }
        known = {k: v for k, v in known.items() if v is not None}
        return {**self.extra, **known}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def as_response(self) -> Dict[str, Any]:
        """Flat representation with the computed completion percentage."""
        data = self.to_dict()
        data[PCT_COMPLETE] = self.percent_complete
        return data

    @property
    def percent_complete(self) -> int:
        """Completion percentage derived from status, num and total."""
        if self.status == JobStatus.COMPLETED:
            return 100
        if self.status in (JobStatus.QUEUED, JobStatus.FAILED):
            return 0
        total = max(self.total if self.total is not None else 1, 1)
        return int((self.num or 0) * 100 / total)

    @property
    def created(self) -> datetime:
        return datetime.fromtimestamp(self.created_at, tz=timezone.utc)

    def has_status(self, *statuses: JobStatus) -> bool:
        return self.status in statuses

    @property
    def killable(self) -> bool:
        """Failed, completed and killed jobs can't be killed."""
        return not self.status.is_terminal

    @property
    def pausable(self) -> bool:
        """Terminal or already paused jobs can't be paused."""
        return not self.status.is_terminal and self.status != JobStatus.PAUSED


__all__ = [
    "JobStatus",
    "JobStateError",
    "Killed",
    "NotANumber",
    "UnknownJobType",
    "Checkpoint",
    "StatusRecord",
    "StatusPart",
    "generate_id",
]
