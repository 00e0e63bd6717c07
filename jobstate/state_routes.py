"""
Job Status API Routes

Provides endpoints for:
- Paginated listing of job statuses, newest first
- Looking up a single status
- Server-Sent Events (SSE) streaming of a status until it finishes
- Kill, pause and unpause requests
- Clearing statuses
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from jobstate.jobs.job_manager import JobManager, get_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/state", tags=["state"])

PER_PAGE = 50


def get_job_manager() -> JobManager:
    """Dependency hook; tests override it with a manager on a fake Redis."""
    return get_manager()


# =============================================================================
# REQUEST/RESPONSE SCHEMAS
# =============================================================================

class StatusListResponse(BaseModel):
    """One page of statuses."""
    statuses: List[Dict[str, Any]]
    total_count: int
    start: int
    end: int
    has_more: bool


class ControlResponse(BaseModel):
    """Response for kill/pause/unpause requests."""
    success: bool
    message: str
    job_id: str


class BulkResponse(BaseModel):
    """Response for bulk kill and clear requests."""
    success: bool
    job_ids: List[str]
    count: int


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=StatusListResponse)
async def list_statuses(
    start: int = Query(default=0, ge=0),
    per_page: int = Query(default=PER_PAGE, ge=1, le=500),
    manager: JobManager = Depends(get_job_manager)
):
    """
    List job statuses, most recently created first.
    """
    end = start + per_page - 1
    statuses = manager.statuses(start, end)
    total = manager.count()

    return StatusListResponse(
        statuses=[s.as_response() for s in statuses],
        total_count=total,
        start=start,
        end=end,
        has_more=end + 1 < total
    )


@router.post("/clear", response_model=BulkResponse)
async def clear_statuses(manager: JobManager = Depends(get_job_manager)):
    """Remove every status."""
    ids = manager.clear()
    return BulkResponse(success=True, job_ids=ids, count=len(ids))


@router.post("/clear/completed", response_model=BulkResponse)
async def clear_completed(manager: JobManager = Depends(get_job_manager)):
    """Remove completed statuses."""
    ids = manager.clear_completed()
    return BulkResponse(success=True, job_ids=ids, count=len(ids))


@router.post("/clear/failed", response_model=BulkResponse)
async def clear_failed(manager: JobManager = Depends(get_job_manager)):
    """Remove failed statuses."""
    ids = manager.clear_failed()
    return BulkResponse(success=True, job_ids=ids, count=len(ids))


@router.post("/kill-all", response_model=BulkResponse)
async def kill_all(
    start: Optional[int] = Query(default=None, ge=0),
    end: Optional[int] = Query(default=None, ge=0),
    manager: JobManager = Depends(get_job_manager)
):
    """
    Kill every job in the range (newest first), or all jobs without a range.
    Jobs stop at their next checkpoint.
    """
    ids = manager.kill_all(start, end)
    return BulkResponse(success=True, job_ids=ids, count=len(ids))


@router.get("/{job_id}")
async def get_status(
    job_id: str,
    manager: JobManager = Depends(get_job_manager)
):
    """
    Get the current status of a job, including pct_complete.
    """
    status = manager.get(job_id)
    if not status:
        raise HTTPException(status_code=404, detail="Status not found")
    return status.as_response()


@router.get("/{job_id}/stream")
async def stream_status(
    job_id: str,
    manager: JobManager = Depends(get_job_manager)
):
    """
    Stream status updates using Server-Sent Events (SSE).

    Connection closes when the job reaches completed, failed or killed.
    """
    if not manager.get(job_id):
        raise HTTPException(status_code=404, detail="Status not found")

    async def event_generator():
        """Generate SSE events."""
        check_interval = 2  # seconds
        max_no_change_count = 150  # ~5 minutes
        no_change_count = 0
        last_seen = None

        try:
            while True:
                current = manager.get(job_id)
                if not current:
                    yield f"data: {json.dumps({'type': 'error', 'message': 'Status not found'})}\n\n"
                    break

                snapshot = current.as_response()
                if snapshot != last_seen:
                    event_data = {
                        "type": "status",
                        "job_id": job_id,
                        "status": snapshot,
                        "timestamp": datetime.now(timezone.utc).isoformat()
                    }
                    yield f"data: {json.dumps(event_data)}\n\n"
                    last_seen = snapshot
                    no_change_count = 0
                else:
                    no_change_count += 1

                if current.status.is_terminal:
                    yield f"data: {json.dumps({'type': 'complete', 'status': current.status.value})}\n\n"
                    break

                if no_change_count >= max_no_change_count:
                    yield f"data: {json.dumps({'type': 'timeout', 'message': 'No updates for 5 minutes'})}\n\n"
                    break

                await asyncio.sleep(check_interval)

        except asyncio.CancelledError:
            logger.info(f"SSE connection cancelled for job {job_id}")
            raise

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"  # Disable nginx buffering
        }
    )


@router.post("/{job_id}/kill", response_model=ControlResponse)
async def kill_job(
    job_id: str,
    manager: JobManager = Depends(get_job_manager)
):
    """
    Kill a job. It stops at its next checkpoint.
    """
    status = manager.get(job_id)
    if not status:
        raise HTTPException(status_code=404, detail="Status not found")

    if not status.killable:
        return ControlResponse(
            success=False,
            message=f"Cannot kill job with status '{status.status.value}'",
            job_id=job_id
        )

    manager.kill(job_id)
    return ControlResponse(
        success=True,
        message="Kill requested - job will stop at next checkpoint",
        job_id=job_id
    )


@router.post("/{job_id}/pause", response_model=ControlResponse)
async def pause_job(
    job_id: str,
    manager: JobManager = Depends(get_job_manager)
):
    """
    Pause a job at its next checkpoint.
    """
    status = manager.get(job_id)
    if not status:
        raise HTTPException(status_code=404, detail="Status not found")

    if not status.pausable:
        return ControlResponse(
            success=False,
            message=f"Cannot pause job with status '{status.status.value}'",
            job_id=job_id
        )

    manager.pause(job_id)
    return ControlResponse(
        success=True,
        message="Pause requested - job will pause at next checkpoint",
        job_id=job_id
    )


@router.post("/{job_id}/unpause", response_model=ControlResponse)
async def unpause_job(
    job_id: str,
    manager: JobManager = Depends(get_job_manager)
):
    """
    Let a paused job continue.
    """
    if not manager.get(job_id):
        raise HTTPException(status_code=404, detail="Status not found")

    manager.unpause(job_id)
    return ControlResponse(success=True, message="Job resumed", job_id=job_id)


# Export router
state_router = router
