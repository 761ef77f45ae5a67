"""
Stat aggregation for completed and no-show appointments

Completion: customer metric + daily + monthly location stats are written in
one transaction, gated by last_processed_appointment_id on the metric.
No-show: one grouped write gated by no_show_counted on the appointment.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from ...config import DEFAULT_AVERAGE_VISIT_INTERVAL_DAYS
from ...notifications.templates import TenantProfile
from ...store import DocumentStore, Transaction, increment, set_field
from ...store.paths import (
    appointment_path,
    brand_path,
    customer_metric_path,
    daily_stats_path,
    monthly_stats_path,
)
from ..appointments.repository import AppointmentRepository
from ..appointments.schemas import NO_SHOW
from .schemas import CompletionEvent

logger = logging.getLogger(__name__)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def period_keys(moment: datetime, zone: ZoneInfo) -> tuple[str, str]:
    """Daily and monthly document keys for moment in the tenant's local time"""
    local = _as_utc(moment).astimezone(zone)
    return local.strftime("%Y-%m-%d"), local.strftime("%Y-%m")


class StatAggregator:
    """Applies appointment outcomes to customer metrics and location stats"""

    def __init__(
        self,
        store: DocumentStore,
        default_visit_interval_days: int = DEFAULT_AVERAGE_VISIT_INTERVAL_DAYS,
    ):
        self.store = store
        self.default_visit_interval_days = default_visit_interval_days

    async def tenant_zone(self, brand_id: Optional[str]) -> ZoneInfo:
        data = await self.store.get(brand_path(brand_id)) if brand_id else None
        return TenantProfile.from_document(data).zone

    async def record_completion(self, event: CompletionEvent, now: Optional[datetime] = None) -> bool:
        """
        Apply a completed appointment exactly once.
        Returns False when the appointment was already applied.
        """
        now = now or datetime.now(timezone.utc)
        zone = await self.tenant_zone(event.brand_id)
        date_key, month_key = period_keys(event.occurred_at or now, zone)
        metric_path = customer_metric_path(event.brand_id, event.user_id)

        async def _apply(tx: Transaction) -> bool:
            metric = await tx.get(metric_path)
            if metric and metric.get("last_processed_appointment_id") == event.appointment_id:
                return False

            ops, is_new_customer = self._metric_ops(metric_path, metric, event, now)
            if event.location_id:
                ops.extend(self._location_ops(event, date_key, month_key, is_new_customer))
            tx.write(ops)
            return True

        applied = await self.store.run_transaction(_apply)

        if not applied:
            logger.info(
                f"ℹ️ Appointment {event.appointment_id} already processed for user {event.user_id}"
            )
            return False

        if not event.location_id:
            logger.warning(
                f"⚠️ Appointment {event.appointment_id} has no location_id, only customer metrics updated"
            )
        logger.info(
            f"✅ Recorded completion of {event.appointment_id}: user={event.user_id}, "
            f"brand={event.brand_id}, location={event.location_id}, total={event.total_price}"
        )
        return True

    def _metric_ops(
        self,
        metric_path: str,
        metric: Optional[dict],
        event: CompletionEvent,
        now: datetime,
    ) -> tuple[list, bool]:
        metric = metric or {}
        prior_lifetime = _number(metric.get("lifetime_value")) or 0
        is_new_customer = prior_lifetime == 0

        interval = _number(metric.get("average_visit_interval"))
        if not interval or interval <= 0:
            interval = self.default_visit_interval_days
        next_visit_due = now + timedelta(days=interval)

        ops = [
            increment(metric_path, "lifetime_value", event.total_price),
            set_field(metric_path, "last_booking_date", now),
            set_field(metric_path, "next_visit_due", next_visit_due),
            set_field(metric_path, "reminded_this_cycle", False),
            set_field(metric_path, "preferred_staff_id", event.staff_id or ""),
            set_field(metric_path, "last_processed_appointment_id", event.appointment_id),
            increment(metric_path, "visit_count", 1),
        ]
        if "joined_at" not in metric:
            ops.append(set_field(metric_path, "joined_at", now))
        # Owned by the booking app, only initialised here
        if "loyalty_points" not in metric:
            ops.append(set_field(metric_path, "loyalty_points", 0))

        # Fold the gap since the previous visit into the average for the next cycle
        last_booking = metric.get("last_booking_date")
        if isinstance(last_booking, datetime):
            gap_days = max(1, (now - _as_utc(last_booking)).days)
            observed_gaps = max(int(_number(metric.get("visit_count")) or 1) - 1, 0)
            rolled = round((interval * observed_gaps + gap_days) / (observed_gaps + 1))
            ops.append(set_field(metric_path, "average_visit_interval", rolled))

        return ops, is_new_customer

    @staticmethod
    def _location_ops(
        event: CompletionEvent, date_key: str, month_key: str, is_new_customer: bool
    ) -> list:
        daily = daily_stats_path(event.location_id, date_key)
        monthly = monthly_stats_path(event.location_id, month_key)

        ops = [
            increment(daily, "total_revenue", event.total_price),
            increment(daily, "appointments_count", 1),
        ]
        if is_new_customer:
            ops.append(increment(daily, "new_customers", 1))
        for service_id in event.service_ids:
            ops.append(increment(daily, f"service_breakdown.{service_id}", 1))

        ops.append(increment(monthly, "total_revenue", event.total_price))
        if event.staff_id:
            ops.append(increment(monthly, f"staff_appointments.{event.staff_id}", 1))
        return ops

    async def record_no_show(self, appointment_id: str, now: Optional[datetime] = None) -> bool:
        """Count a no-show once. Returns False when nothing was written."""
        appointment = await AppointmentRepository.get_appointment(self.store, appointment_id)
        if appointment is None:
            logger.warning(f"⚠️ No-show for missing appointment {appointment_id}")
            return False

        if appointment.no_show_counted:
            logger.info(f"ℹ️ No-show already counted for {appointment_id}")
            return False

        if appointment.status != NO_SHOW:
            logger.info(
                f"ℹ️ Appointment {appointment_id} is '{appointment.status}' now, no-show not counted"
            )
            return False

        if not appointment.location_id:
            logger.warning(f"⚠️ No-show for {appointment_id} missing location_id")
            return False

        zone = await self.tenant_zone(appointment.brand_id)
        date_key, _ = period_keys(appointment.start_time or now or datetime.now(timezone.utc), zone)

        await self.store.atomic_write(
            [
                increment(daily_stats_path(appointment.location_id, date_key), "no_shows", 1),
                set_field(appointment_path(appointment_id), "no_show_counted", True),
            ]
        )
        logger.info(f"✅ Recorded no-show {appointment_id} at location {appointment.location_id}")
        return True
