"""
Appointment lifecycle routing

Classifies a created/updated appointment and hands it to the stat aggregator,
the reminder scheduler or the cancellation notice. Holds no state of its own.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from ...notifications.templates import TenantProfile, render_cancellation_notice
from ...notifications.token_registry import TokenRegistry, token_from
from ...notifications.transport import PushMessage, PushTransport
from ...queue import JobQueue
from ...store import DocumentStore
from ...store.paths import brand_path, staff_path, user_path
from ..reminders.scheduler import ReminderScheduler
from ..stats.schemas import CompletionEvent
from ..stats.service import StatAggregator
from .repository import AppointmentRepository
from .schemas import COMPLETED, NO_SHOW, SCHEDULED, AppointmentChange, is_cancelled

logger = logging.getLogger(__name__)


class AppointmentLifecycleService:
    """Service layer for appointment status transitions"""

    def __init__(
        self,
        store: DocumentStore,
        transport: PushTransport,
        queue: JobQueue,
        aggregator: Optional[StatAggregator] = None,
        scheduler: Optional[ReminderScheduler] = None,
    ):
        self.store = store
        self.transport = transport
        self.aggregator = aggregator or StatAggregator(store)
        self.scheduler = scheduler or ReminderScheduler(queue)
        self.registry = TokenRegistry(store)

    async def handle_change(self, change: AppointmentChange, now: Optional[datetime] = None) -> str:
        """Route one lifecycle event. Returns the action taken."""
        now = now or datetime.now(timezone.utc)
        before, after = change.before, change.after
        status_before = before.status if before else None
        status_after = after.status

        # A new start time while still scheduled is a reschedule
        rescheduled = (
            before is not None
            and status_before == SCHEDULED
            and status_after == SCHEDULED
            and before.start_time != after.start_time
        )

        if status_before == status_after and not rescheduled:
            return "unchanged"

        logger.info(
            f"🔄 Appointment {change.appointment_id}: {status_before or 'new'} → {status_after}"
            f"{' (rescheduled)' if rescheduled else ''}"
        )

        if status_after == SCHEDULED:
            return await self._schedule_reminder(change, now)
        if is_cancelled(status_after):
            return await self._notify_cancellation(change)
        if status_after == COMPLETED:
            return await self._record_completion(change, now)
        if status_after == NO_SHOW:
            recorded = await self.aggregator.record_no_show(change.appointment_id, now=now)
            return "no_show_recorded" if recorded else "no_show_skipped"

        logger.debug(f"No handler for status '{status_after}' on {change.appointment_id}")
        return "ignored"

    async def _schedule_reminder(self, change: AppointmentChange, now: datetime) -> str:
        # Events can arrive late or out of order, the stored appointment decides
        appointment = await AppointmentRepository.get_appointment(self.store, change.appointment_id)
        if appointment is None:
            logger.warning(f"⚠️ Appointment {change.appointment_id} no longer exists, no reminder")
            return "reminder_skipped"

        if appointment.status != SCHEDULED:
            logger.info(
                f"ℹ️ Appointment {change.appointment_id} is '{appointment.status}' now, no reminder"
            )
            return "reminder_skipped"

        if appointment.start_time is None:
            logger.warning(f"⚠️ Scheduled appointment {change.appointment_id} has no start_time")
            return "invalid"

        fire_at = await self.scheduler.schedule(change.appointment_id, appointment.start_time, now=now)
        return "reminder_scheduled" if fire_at else "reminder_skipped"

    async def _record_completion(self, change: AppointmentChange, now: datetime) -> str:
        after = change.after
        if not after.user_id or not after.brand_id:
            logger.warning(
                f"⚠️ Completed appointment {change.appointment_id} missing user_id or brand_id"
            )
            return "invalid"

        applied = await self.aggregator.record_completion(
            CompletionEvent.from_snapshot(change.appointment_id, after), now=now
        )
        return "stats_recorded" if applied else "already_processed"

    async def _notify_cancellation(self, change: AppointmentChange) -> str:
        """Best effort: one attempt, failures are logged and never retried"""
        after = change.after
        if not after.staff_id:
            logger.info(f"ℹ️ Cancelled appointment {change.appointment_id} has no staff member")
            return "cancellation_not_notified"

        try:
            owner_path = staff_path(after.staff_id)
            paths = [owner_path]
            if after.user_id:
                paths.append(user_path(after.user_id))
            if after.brand_id:
                paths.append(brand_path(after.brand_id))
            docs = await self.store.get_many(paths)

            token = token_from(docs.get(owner_path))
            if not token:
                logger.info(f"ℹ️ Staff {after.staff_id} has no push token, cancellation not sent")
                return "cancellation_not_notified"

            customer = docs.get(user_path(after.user_id)) if after.user_id else None
            rendered = render_cancellation_notice(
                TenantProfile.from_document(
                    docs.get(brand_path(after.brand_id)) if after.brand_id else None
                ),
                appointment_id=change.appointment_id,
                start_time=after.start_time,
                customer_name=(customer or {}).get("full_name") or "",
            )
            result = await self.transport.send(
                PushMessage(token=token, title=rendered.title, body=rendered.body, data=rendered.data)
            )

            if not result.success:
                logger.error(
                    f"❌ Cancellation notice for {change.appointment_id} failed: {result.error_code}"
                )
                if result.invalid_token:
                    await self.registry.remove_token(owner_path, token)
                return "cancellation_not_notified"

            logger.info(f"✅ Cancellation notice sent to staff {after.staff_id}")
            return "cancellation_notified"

        except Exception as e:
            logger.error(f"❌ Cancellation notice for {change.appointment_id} failed: {e}")
            return "cancellation_not_notified"
