"""
Appointment reminder dispatch

Runs when a deferred reminder job fires. Every check is made against the
appointment as it is now, so cancelled, rescheduled or already reminded
appointments end the job without sending anything.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ...config import REMINDER_WINDOW_MAX_MINUTES, REMINDER_WINDOW_MIN_MINUTES
from ...exceptions import DeliveryError
from ...notifications.templates import TenantProfile, render_appointment_reminder
from ...notifications.token_registry import TokenRegistry, token_from
from ...notifications.transport import PushMessage, PushTransport
from ...store import DocumentStore
from ...store.paths import brand_path, location_path, staff_path, user_path
from ..appointments.repository import AppointmentRepository
from ..appointments.schemas import SCHEDULED

logger = logging.getLogger(__name__)


def _skipped(appointment_id: str, reason: str) -> dict:
    return {"status": "skipped", "appointment_id": appointment_id, "reason": reason}


class ReminderDispatcher:
    def __init__(
        self,
        store: DocumentStore,
        transport: PushTransport,
        window_min_minutes: int = REMINDER_WINDOW_MIN_MINUTES,
        window_max_minutes: int = REMINDER_WINDOW_MAX_MINUTES,
    ):
        self.store = store
        self.transport = transport
        self.registry = TokenRegistry(store)
        self.window_min_minutes = window_min_minutes
        self.window_max_minutes = window_max_minutes

    async def dispatch(self, appointment_id: str, now: Optional[datetime] = None) -> dict:
        """
        Send the "see you in 2 hours" reminder if it is still due.
        Raises DeliveryError when the send fails so the job is retried.
        """
        now = now or datetime.now(timezone.utc)

        appointment = await AppointmentRepository.get_appointment(self.store, appointment_id)
        if appointment is None:
            logger.info(f"ℹ️ Reminder for {appointment_id}: appointment no longer exists")
            return _skipped(appointment_id, "appointment_not_found")

        if appointment.status != SCHEDULED:
            logger.info(f"ℹ️ Reminder for {appointment_id}: status is '{appointment.status}'")
            return _skipped(appointment_id, "not_scheduled")

        if appointment.reminder_sent:
            logger.info(f"ℹ️ Reminder for {appointment_id} already sent")
            return _skipped(appointment_id, "already_sent")

        if appointment.start_time is None or not appointment.user_id:
            logger.warning(f"⚠️ Reminder for {appointment_id}: missing start_time or user_id")
            return _skipped(appointment_id, "missing_reference")

        minutes_until_start = (appointment.start_time - now).total_seconds() / 60
        if not self.window_min_minutes <= minutes_until_start <= self.window_max_minutes:
            # Job left over from before a reschedule
            logger.info(
                f"ℹ️ Reminder for {appointment_id} is stale: starts in {minutes_until_start:.0f} min"
            )
            return _skipped(appointment_id, "outside_window")

        owner_path = user_path(appointment.user_id)
        paths = [owner_path]
        if appointment.brand_id:
            paths.append(brand_path(appointment.brand_id))
        if appointment.location_id:
            paths.append(location_path(appointment.location_id))
        if appointment.staff_id:
            paths.append(staff_path(appointment.staff_id))
        docs = await self.store.get_many(paths)

        token = token_from(docs.get(owner_path))
        if not token:
            logger.warning(
                f"⚠️ Reminder for {appointment_id}: user {appointment.user_id} has no push token"
            )
            return _skipped(appointment_id, "no_token")

        profile = TenantProfile.from_document(
            docs.get(brand_path(appointment.brand_id)) if appointment.brand_id else None
        )
        location = docs.get(location_path(appointment.location_id)) if appointment.location_id else None
        staff = docs.get(staff_path(appointment.staff_id)) if appointment.staff_id else None

        rendered = render_appointment_reminder(
            profile,
            appointment_id=appointment_id,
            user_id=appointment.user_id,
            start_time=appointment.start_time,
            venue_name=(location or {}).get("name") or "",
            staff_name=(staff or {}).get("name") or "",
        )

        result = await self.transport.send(
            PushMessage(token=token, title=rendered.title, body=rendered.body, data=rendered.data)
        )

        if not result.success:
            if result.invalid_token:
                await self.registry.remove_token(owner_path, token)
            logger.error(
                f"❌ Reminder for {appointment_id} failed: {result.error_code} {result.error_message}"
            )
            raise DeliveryError(
                f"Reminder for {appointment_id} failed: {result.error_code}",
                error_code=result.error_code,
                invalid_token=result.invalid_token,
            )

        await AppointmentRepository.mark_reminder_sent(self.store, appointment_id, now)
        logger.info(f"✅ Reminder sent for {appointment_id} to user {appointment.user_id}")
        return {"status": "sent", "appointment_id": appointment_id, "message_id": result.message_id}
