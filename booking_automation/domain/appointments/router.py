"""Appointment router - signed webhook receiving lifecycle events from the booking app"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from ...config import APPOINTMENT_WEBHOOK_SECRET
from ...dependencies import get_job_queue
from ...exceptions import TransientError
from ...queue import JobQueue
from ...webhook_security import verify_appointment_webhook
from .schemas import AppointmentChange

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/appointments", tags=["webhooks"])

LIFECYCLE_TASK = "handle_appointment_event_task"


@router.post("")
async def receive_appointment_event(request: Request, queue: JobQueue = Depends(get_job_queue)):
    """
    Accept a created/updated appointment snapshot pair and queue it for processing.
    Redelivered events with the same event_id are only queued once while the
    earlier job or its result is still held by the queue.
    """
    raw_body = await verify_appointment_webhook(request, APPOINTMENT_WEBHOOK_SECRET)

    try:
        change = AppointmentChange.model_validate_json(raw_body)
    except ValidationError as e:
        logger.warning(f"⚠️ Invalid appointment event payload: {e.error_count()} error(s)")
        raise HTTPException(status_code=422, detail=e.errors(include_url=False)) from e

    job_id = f"appointment-event:{change.event_id}" if change.event_id else None
    try:
        queued_id = await queue.enqueue(
            LIFECYCLE_TASK, change.model_dump(mode="json"), job_id=job_id
        )
    except TransientError as e:
        logger.error(f"❌ Failed to queue event for {change.appointment_id}: {e}")
        raise HTTPException(status_code=503, detail="Job queue unavailable") from e

    if queued_id is None:
        logger.info(f"ℹ️ Duplicate event {change.event_id} for {change.appointment_id} ignored")
        return {"status": "duplicate", "jobId": job_id}

    logger.info(f"📥 Queued lifecycle event for {change.appointment_id}: job {queued_id}")
    return {"status": "queued", "jobId": queued_id}
