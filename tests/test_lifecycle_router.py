"""
Lifecycle Event Routing Tests

Each change is classified from its before/after snapshots and routed to the
aggregator, the reminder scheduler or the cancellation notice.
"""

from datetime import datetime, timedelta, timezone

import pytest

from booking_automation.domain.appointments.schemas import AppointmentChange, is_cancelled
from booking_automation.domain.appointments.service import AppointmentLifecycleService
from booking_automation.domain.reminders.dispatcher import ReminderDispatcher
from booking_automation.domain.reminders.scheduler import ReminderScheduler, reminder_job_id
from booking_automation.domain.stats.service import StatAggregator
from booking_automation.store.paths import customer_metric_path

START = datetime(2024, 5, 1, 14, 0, tzinfo=timezone.utc)


def snapshot(status, **overrides):
    data = {
        "brand_id": "T1",
        "user_id": "U1",
        "staff_id": "S1",
        "location_id": "L1",
        "start_time": START,
        "total_price": 35,
        "service_ids": ["cut"],
        "status": status,
    }
    data.update(overrides)
    return data


def change(before, after, appointment_id="A1"):
    return AppointmentChange.model_validate(
        {"appointment_id": appointment_id, "before": before, "after": after}
    )


@pytest.fixture
def service(store, transport, queue):
    return AppointmentLifecycleService(
        store,
        transport,
        queue,
        aggregator=StatAggregator(store, default_visit_interval_days=30),
        scheduler=ReminderScheduler(queue, lead_minutes=120),
    )


@pytest.mark.asyncio
async def test_new_scheduled_appointment_gets_reminder(service, store, queue, now):
    store.put("appointments/A1", snapshot("scheduled"))

    action = await service.handle_change(change(None, snapshot("scheduled")), now=now)

    assert action == "reminder_scheduled"
    assert queue.jobs[reminder_job_id("A1")].defer_until == START - timedelta(hours=2)


@pytest.mark.asyncio
async def test_reschedule_moves_reminder(service, store, queue, now):
    new_start = START + timedelta(hours=3)
    store.put("appointments/A1", snapshot("scheduled"))
    await service.handle_change(change(None, snapshot("scheduled")), now=now)

    store.put("appointments/A1", snapshot("scheduled", start_time=new_start))
    action = await service.handle_change(
        change(snapshot("scheduled"), snapshot("scheduled", start_time=new_start)), now=now
    )

    assert action == "reminder_scheduled"
    assert len(queue.jobs) == 1
    assert queue.jobs[reminder_job_id("A1")].defer_until == new_start - timedelta(hours=2)


@pytest.mark.asyncio
async def test_late_reschedule_event_keeps_current_start_time(service, store, queue, transport, now):
    """Test reschedules delivered out of order: T1 -> T2 arrives before T0 -> T1"""
    t0, t1, t2 = START, START + timedelta(hours=2), START + timedelta(hours=6)
    store.put("appointments/A1", snapshot("scheduled", start_time=t2))
    store.put("users/U1", {"fcm_token": "tok-1"})

    await service.handle_change(
        change(snapshot("scheduled", start_time=t1), snapshot("scheduled", start_time=t2)), now=now
    )
    action = await service.handle_change(
        change(snapshot("scheduled", start_time=t0), snapshot("scheduled", start_time=t1)), now=now
    )

    assert action == "reminder_scheduled"
    assert len(queue.jobs) == 1
    job = queue.jobs[reminder_job_id("A1")]
    assert job.defer_until == t2 - timedelta(hours=2)

    # The remaining job is inside the send window when it fires
    result = await ReminderDispatcher(store, transport).dispatch("A1", now=job.defer_until)
    assert result["status"] == "sent"


@pytest.mark.asyncio
async def test_scheduled_event_after_cancellation_adds_no_reminder(service, store, queue, now):
    """Test a creation event processed after the appointment was already cancelled"""
    store.put("appointments/A1", snapshot("cancelled"))

    action = await service.handle_change(change(None, snapshot("scheduled")), now=now)

    assert action == "reminder_skipped"
    assert queue.jobs == {}


@pytest.mark.asyncio
async def test_scheduled_event_for_deleted_appointment(service, queue, now):
    action = await service.handle_change(change(None, snapshot("scheduled")), now=now)

    assert action == "reminder_skipped"
    assert queue.jobs == {}


@pytest.mark.asyncio
async def test_scheduled_without_start_time_is_invalid(service, store, queue, now):
    store.put("appointments/A1", snapshot("scheduled", start_time=None))

    action = await service.handle_change(change(None, snapshot("scheduled", start_time=None)), now=now)

    assert action == "invalid"
    assert queue.jobs == {}


@pytest.mark.asyncio
async def test_near_past_appointment_skips_reminder(service, store, queue, now):
    soon = snapshot("scheduled", start_time=now + timedelta(minutes=30))
    store.put("appointments/A1", soon)

    action = await service.handle_change(change(None, soon), now=now)

    assert action == "reminder_skipped"
    assert queue.jobs == {}


@pytest.mark.asyncio
async def test_unchanged_status_does_nothing(service, store, queue, now):
    before = store.snapshot()

    action = await service.handle_change(
        change(snapshot("completed"), snapshot("completed", total_price=99)), now=now
    )

    assert action == "unchanged"
    assert store.snapshot() == before
    assert queue.jobs == {}


@pytest.mark.asyncio
async def test_completion_recorded_once(service, store, now):
    event = change(snapshot("scheduled"), snapshot("completed"))

    assert await service.handle_change(event, now=now) == "stats_recorded"
    assert await service.handle_change(event, now=now) == "already_processed"

    assert store.docs[customer_metric_path("T1", "U1")]["lifetime_value"] == 35


@pytest.mark.asyncio
async def test_completion_missing_user_is_invalid(service, store, now):
    action = await service.handle_change(
        change(snapshot("scheduled"), snapshot("completed", user_id=None)), now=now
    )

    assert action == "invalid"
    assert list(store.docs) == ["brands/T1"]


@pytest.mark.asyncio
async def test_no_show_recorded_from_current_state(service, store, now):
    store.put("appointments/A1", snapshot("no_show"))

    action = await service.handle_change(change(snapshot("scheduled"), snapshot("no_show")), now=now)

    assert action == "no_show_recorded"
    assert store.docs["locations/L1/daily_stats/2024-05-01"]["no_shows"] == 1


@pytest.mark.asyncio
async def test_out_of_order_no_show_is_skipped(service, store, now):
    """Test a late no-show event after the appointment went back to scheduled"""
    store.put("appointments/A1", snapshot("scheduled"))

    action = await service.handle_change(change(snapshot("scheduled"), snapshot("no_show")), now=now)

    assert action == "no_show_skipped"


@pytest.mark.asyncio
async def test_cancellation_notifies_staff(service, store, transport, now):
    store.put("staff/S1", {"name": "Ivan", "fcmToken": "staff-tok"})
    store.put("users/U1", {"full_name": "Ana"})

    action = await service.handle_change(
        change(snapshot("scheduled"), snapshot("cancelled_by_client")), now=now
    )

    assert action == "cancellation_notified"
    message = transport.sent[0]
    assert message.token == "staff-tok"
    assert message.title == "Otkazan termin"
    assert message.body == "Ana – termin 01.05. u 16:00 je otkazan."
    assert message.data == {"type": "appointment_cancelled", "appointment_id": "A1"}


@pytest.mark.asyncio
async def test_cancellation_with_invalid_staff_token(service, store, transport, now):
    store.put("staff/S1", {"name": "Ivan", "fcm_token": "staff-tok"})
    transport.failures["staff-tok"] = "unregistered"

    action = await service.handle_change(change(snapshot("scheduled"), snapshot("cancelled")), now=now)

    assert action == "cancellation_not_notified"
    assert "fcm_token" not in store.docs["staff/S1"]


@pytest.mark.asyncio
async def test_cancellation_notice_failure_is_swallowed(service, store, transport, now):
    store.put("staff/S1", {"fcm_token": "staff-tok"})
    transport.unavailable = True

    action = await service.handle_change(change(snapshot("scheduled"), snapshot("cancelled")), now=now)

    assert action == "cancellation_not_notified"


@pytest.mark.asyncio
async def test_cancellation_without_staff(service, transport, now):
    action = await service.handle_change(
        change(snapshot("scheduled"), snapshot("cancelled", staff_id=None)), now=now
    )

    assert action == "cancellation_not_notified"
    assert transport.sent == []


@pytest.mark.asyncio
async def test_unknown_status_is_ignored(service, store, queue, now):
    action = await service.handle_change(change(snapshot("scheduled"), snapshot("pending")), now=now)

    assert action == "ignored"


def test_is_cancelled():
    assert is_cancelled("cancelled")
    assert is_cancelled("cancelled_by_staff")
    assert not is_cancelled("scheduled")
    assert not is_cancelled(None)


def test_snapshot_sanitises_untrusted_fields():
    event = change(
        None,
        snapshot(None, total_price="50", service_ids=["a", "", 3, "b"]),
    )

    assert event.after.total_price == 0
    assert event.after.service_ids == ["a", "b"]
    assert event.after.status == ""
    assert event.is_creation
