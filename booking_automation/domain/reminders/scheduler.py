"""
Appointment reminder scheduling
One deferred job per appointment, keyed by the appointment id, so a reschedule
replaces the pending job instead of adding a second one.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from ...config import REMINDER_LEAD_MINUTES
from ...queue import JobQueue

logger = logging.getLogger(__name__)

REMINDER_TASK = "send_appointment_reminder_task"


def reminder_job_id(appointment_id: str) -> str:
    return f"appointment-reminder:{appointment_id}"


class ReminderScheduler:
    def __init__(self, queue: JobQueue, lead_minutes: int = REMINDER_LEAD_MINUTES):
        self.queue = queue
        self.lead = timedelta(minutes=lead_minutes)

    async def schedule(
        self, appointment_id: str, start_time: datetime, now: Optional[datetime] = None
    ) -> Optional[datetime]:
        """
        Replace any pending reminder for the appointment with one firing
        lead_minutes before start_time. Returns the fire time, or None when it
        has already passed.
        """
        now = now or datetime.now(timezone.utc)
        fire_at = start_time - self.lead

        if fire_at <= now:
            logger.info(
                f"⏭️ Reminder for {appointment_id} skipped: fire time {fire_at.isoformat()} already passed"
            )
            return None

        job_id = reminder_job_id(appointment_id)
        replaced = await self.queue.cancel(job_id)
        await self.queue.enqueue(REMINDER_TASK, appointment_id, job_id=job_id, defer_until=fire_at)

        action = "Rescheduled" if replaced else "Scheduled"
        logger.info(f"⏰ {action} reminder for {appointment_id} at {fire_at.isoformat()}")
        return fire_at
