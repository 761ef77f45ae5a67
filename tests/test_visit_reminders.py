"""
Visit Reminder Tests

Covers the daily page chain: selection by due date, flagging, credential
cleanup and continuation across pages.
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from booking_automation.domain.retention.schemas import VisitReminderPage
from booking_automation.domain.retention.service import (
    PAGE_TASK,
    VisitReminderService,
    end_of_local_day,
    page_job_id,
)
from booking_automation.store.paths import customer_metric_path

ZAGREB = ZoneInfo("Europe/Zagreb")


def seed_metric(store, brand_id, user_id, due, reminded=False, staff_id=""):
    store.put(
        customer_metric_path(brand_id, user_id),
        {
            "next_visit_due": due,
            "reminded_this_cycle": reminded,
            "preferred_staff_id": staff_id,
            "lifetime_value": 40,
        },
    )


def seed_user(store, user_id, token=None, name=""):
    data = {"full_name": name}
    if token:
        data["fcm_token"] = token
    store.put(f"users/{user_id}", data)


async def run_chain(service, queue, now):
    """Run the first page and every continuation it enqueues. Returns page summaries."""
    summaries = [await service.start(now=now, zone_name="Europe/Zagreb")]
    while True:
        job = queue.pop(PAGE_TASK)
        if job is None:
            return summaries
        summaries.append(await service.run_page(VisitReminderPage.model_validate(job.args[0])))


def make_service(store, transport, queue, **kwargs):
    kwargs.setdefault("page_size", 500)
    kwargs.setdefault("flag_skipped", True)
    return VisitReminderService(store, transport, queue, **kwargs)


def test_end_of_local_day(now):
    cutoff = end_of_local_day(now, ZAGREB)

    assert cutoff == datetime(2024, 5, 1, 23, 59, 59, 999000, tzinfo=ZAGREB)
    assert cutoff.astimezone(timezone.utc) == datetime(2024, 5, 1, 21, 59, 59, 999000, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_customer_due_today_is_reminded_and_flagged(store, transport, queue, now):
    """Test a record due at 09:00 local today with the end-of-day cutoff"""
    store.put("staff/S1", {"name": "Marko"})
    seed_metric(store, "T1", "U1", datetime(2024, 5, 1, 9, 0, tzinfo=ZAGREB), staff_id="S1")
    seed_user(store, "U1", token="tok-1", name="Ana")

    summaries = await run_chain(make_service(store, transport, queue), queue, now)

    assert summaries == [
        {
            "page": 1,
            "processed": 1,
            "sent": 1,
            "failed": 0,
            "skipped": 0,
            "tokens_removed": 0,
            "continued": False,
        }
    ]
    message = transport.sent[0]
    assert message.token == "tok-1"
    assert message.title == "Ana, nedostaješ nam!"
    assert message.body.startswith("Marko te čeka")
    assert message.data == {
        "type": "visit_reminder",
        "user_id": "U1",
        "brand_id": "T1",
        "preferred_staff_id": "S1",
    }
    assert store.docs[customer_metric_path("T1", "U1")]["reminded_this_cycle"] is True


@pytest.mark.asyncio
async def test_only_due_unreminded_records_are_selected(store, transport, queue, now):
    seed_metric(store, "T1", "U1", datetime(2024, 4, 20, 12, 0, tzinfo=timezone.utc))
    seed_metric(store, "T1", "U2", datetime(2024, 5, 2, 9, 0, tzinfo=ZAGREB))
    seed_metric(store, "T1", "U3", datetime(2024, 4, 28, 12, 0, tzinfo=timezone.utc), reminded=True)
    for user_id in ("U1", "U2", "U3"):
        seed_user(store, user_id, token=f"tok-{user_id}")

    await run_chain(make_service(store, transport, queue), queue, now)

    assert [m.token for m in transport.sent] == ["tok-U1"]
    assert store.docs[customer_metric_path("T1", "U2")]["reminded_this_cycle"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize("count, page_size, pages", [(7, 3, 3), (6, 3, 2), (3, 3, 1), (1, 3, 1)])
async def test_pagination_reaches_every_record(store, transport, queue, now, count, page_size, pages):
    """Test that N due records take ceil(N / page size) page runs"""
    due = datetime(2024, 4, 30, 10, 0, tzinfo=timezone.utc)
    for i in range(count):
        # Identical due times force ordering ties across page boundaries
        seed_metric(store, "T1", f"U{i}", due if i % 2 else due - timedelta(hours=i))
        seed_user(store, f"U{i}", token=f"tok-{i}")

    service = make_service(store, transport, queue, page_size=page_size)
    summaries = await run_chain(service, queue, now)

    assert len(summaries) == pages
    assert sum(s["processed"] for s in summaries) == count
    assert sorted(m.token for m in transport.sent) == sorted(f"tok-{i}" for i in range(count))
    assert all(
        store.docs[customer_metric_path("T1", f"U{i}")]["reminded_this_cycle"] is True
        for i in range(count)
    )
    assert [s["continued"] for s in summaries] == [True] * (pages - 1) + [False]


@pytest.mark.asyncio
async def test_continuation_job_ids(store, transport, queue, now):
    for i in range(5):
        seed_metric(store, "T1", f"U{i}", datetime(2024, 4, 30, 10, i, tzinfo=timezone.utc))
        seed_user(store, f"U{i}", token=f"tok-{i}")

    service = make_service(store, transport, queue, page_size=2)
    await service.start(now=now, zone_name="Europe/Zagreb")

    assert list(queue.jobs) == ["visit-reminders:2024-05-01:page-2"]
    payload = queue.jobs["visit-reminders:2024-05-01:page-2"].args[0]
    assert payload["page_number"] == 2
    assert payload["cursor"]["path"] == customer_metric_path("T1", "U1")


@pytest.mark.asyncio
async def test_recompleted_cursor_record_does_not_skip_later_pages(store, transport, queue, now):
    """Test a cursor record whose due date moves forward between two page runs"""
    for i in range(5):
        seed_metric(store, "T1", f"U{i}", datetime(2024, 4, 30, 10, i, tzinfo=timezone.utc))
        seed_user(store, f"U{i}", token=f"tok-{i}")
    service = make_service(store, transport, queue, page_size=2)
    await service.start(now=now, zone_name="Europe/Zagreb")

    # U1 closed the first page and books again before page 2 runs
    store.docs[customer_metric_path("T1", "U1")].update(
        {"next_visit_due": now + timedelta(days=30), "reminded_this_cycle": False}
    )
    job = queue.pop(PAGE_TASK)
    while job is not None:
        await service.run_page(VisitReminderPage.model_validate(job.args[0]))
        job = queue.pop(PAGE_TASK)

    assert sorted(m.token for m in transport.sent) == [f"tok-{i}" for i in range(5)]
    assert all(
        store.docs[customer_metric_path("T1", f"U{i}")]["reminded_this_cycle"] for i in (2, 3, 4)
    )


@pytest.mark.asyncio
async def test_replayed_page_sends_nothing_new(store, transport, queue, now):
    seed_metric(store, "T1", "U1", datetime(2024, 4, 30, 10, 0, tzinfo=timezone.utc))
    seed_user(store, "U1", token="tok-1")
    service = make_service(store, transport, queue)
    page = VisitReminderPage(cutoff=end_of_local_day(now, ZAGREB))

    await service.run_page(page)
    replay = await service.run_page(page)

    assert replay["processed"] == 0
    assert len(transport.sent) == 1


@pytest.mark.asyncio
async def test_invalid_tokens_are_removed(store, transport, queue, now):
    due = datetime(2024, 4, 30, 10, 0, tzinfo=timezone.utc)
    seed_metric(store, "T1", "U1", due)
    seed_metric(store, "T1", "U2", due)
    seed_user(store, "U1", token="tok-bad")
    seed_user(store, "U2", token="tok-good")
    transport.failures["tok-bad"] = "unregistered"

    summaries = await run_chain(make_service(store, transport, queue), queue, now)

    summary = summaries[0]
    assert (summary["sent"], summary["failed"], summary["tokens_removed"]) == (1, 1, 1)
    assert "fcm_token" not in store.docs["users/U1"]
    assert store.docs["users/U2"]["fcm_token"] == "tok-good"
    # Failed sends are not retried within the cycle
    assert store.docs[customer_metric_path("T1", "U1")]["reminded_this_cycle"] is True


@pytest.mark.asyncio
async def test_same_token_in_two_brands_removed_once(store, transport, queue, now):
    store.put("brands/T2", {"name": "Salon Dva", "locale": "en"})
    due = datetime(2024, 4, 30, 10, 0, tzinfo=timezone.utc)
    seed_metric(store, "T1", "U1", due)
    seed_metric(store, "T2", "U1", due)
    seed_user(store, "U1", token="tok-bad")
    transport.failures["tok-bad"] = "unregistered"

    summaries = await run_chain(make_service(store, transport, queue), queue, now)

    assert summaries[0]["failed"] == 2
    assert summaries[0]["tokens_removed"] == 1
    assert transport.bulk_calls == 1


@pytest.mark.asyncio
async def test_users_without_token(store, transport, queue, now):
    due = datetime(2024, 4, 30, 10, 0, tzinfo=timezone.utc)
    seed_metric(store, "T1", "U1", due)
    seed_user(store, "U1")

    summaries = await run_chain(make_service(store, transport, queue), queue, now)

    assert summaries[0]["skipped"] == 1
    assert transport.sent == []
    assert store.docs[customer_metric_path("T1", "U1")]["reminded_this_cycle"] is True


@pytest.mark.asyncio
async def test_users_without_token_left_unflagged_when_configured(store, transport, queue, now):
    seed_metric(store, "T1", "U1", datetime(2024, 4, 30, 10, 0, tzinfo=timezone.utc))

    service = make_service(store, transport, queue, flag_skipped=False)
    await run_chain(service, queue, now)

    assert store.docs[customer_metric_path("T1", "U1")]["reminded_this_cycle"] is False


@pytest.mark.asyncio
async def test_flag_writes_split_by_batch_limit(store, transport, queue, now):
    for i in range(5):
        seed_metric(store, "T1", f"U{i}", datetime(2024, 4, 30, 10, i, tzinfo=timezone.utc))
        seed_user(store, f"U{i}", token=f"tok-{i}")
    service = make_service(store, transport, queue, write_batch_limit=2)

    await run_chain(service, queue, now)

    assert all(
        store.docs[customer_metric_path("T1", f"U{i}")]["reminded_this_cycle"] for i in range(5)
    )


def test_page_job_id():
    page = VisitReminderPage(cutoff=datetime(2024, 5, 1, 23, 59, 59, tzinfo=ZAGREB), page_number=4)

    assert page_job_id(page) == "visit-reminders:2024-05-01:page-4"
