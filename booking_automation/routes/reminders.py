"""
Reminder Job Status
Lets support tooling check whether an appointment has a pending reminder
"""

import asyncio
import logging

from arq.jobs import JobStatus
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from redis.exceptions import RedisError

from ..dependencies import get_job_queue
from ..domain.reminders.scheduler import reminder_job_id
from ..queue import JobQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reminders", tags=["Reminders"])

# Map ARQ job status to our response
STATUS_MAP = {
    JobStatus.deferred: "scheduled",
    JobStatus.queued: "queued",
    JobStatus.in_progress: "in_progress",
    JobStatus.complete: "complete",
    JobStatus.not_found: "not_found",
}


class ReminderStatusResponse(BaseModel):
    appointmentId: str
    jobId: str
    status: str


@router.get("/{appointment_id}", response_model=ReminderStatusResponse)
async def get_reminder_status(appointment_id: str, queue: JobQueue = Depends(get_job_queue)):
    """Status of the reminder job for an appointment"""
    job_id = reminder_job_id(appointment_id)
    try:
        job_status = await asyncio.wait_for(queue.status(job_id), timeout=15.0)
    except asyncio.TimeoutError:
        logger.warning(f"⏰ Timeout getting status for job {job_id}")
        raise HTTPException(
            status_code=504, detail="Timeout connecting to job queue - please try again"
        ) from None
    except RedisError as e:
        logger.error(f"❌ Failed to get status for job {job_id}: {e}")
        raise HTTPException(status_code=503, detail="Job queue unavailable") from e

    return ReminderStatusResponse(
        appointmentId=appointment_id,
        jobId=job_id,
        status=STATUS_MAP.get(job_status, "unknown"),
    )
