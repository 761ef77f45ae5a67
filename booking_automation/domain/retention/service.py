"""
Daily "we miss you" reminders

Customers whose next visit is due by the end of today get one push per brand.
The work runs as a chain of page jobs: each page is sent, flagged and then
enqueues the next page with a cursor, until a page comes back short.
"""

import logging
from datetime import datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ...config import (
    FIRESTORE_BATCH_LIMIT,
    TIMEZONE,
    VISIT_REMINDER_FLAG_SKIPPED,
    VISIT_REMINDER_PAGE_SIZE,
)
from ...notifications.templates import TenantProfile, render_visit_reminder
from ...notifications.token_registry import TokenRegistry, token_from
from ...notifications.transport import PushMessage, PushTransport
from ...queue import JobQueue
from ...store import Document, DocumentStore, set_field
from ...store.paths import (
    CUSTOMER_METRICS,
    brand_path,
    parse_customer_metric_path,
    staff_path,
    user_path,
)
from .schemas import PageCursor, VisitReminderPage

logger = logging.getLogger(__name__)

PAGE_TASK = "send_visit_reminders_page_task"


def end_of_local_day(now: datetime, zone: ZoneInfo) -> datetime:
    """Last millisecond of now's calendar day in zone"""
    local_date = now.astimezone(zone).date()
    return datetime.combine(local_date, time(23, 59, 59, 999000), tzinfo=zone)


def page_job_id(page: VisitReminderPage) -> str:
    return f"visit-reminders:{page.cutoff.date().isoformat()}:page-{page.page_number}"


def _chunks(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start : start + size]


class VisitReminderService:
    def __init__(
        self,
        store: DocumentStore,
        transport: PushTransport,
        queue: JobQueue,
        page_size: int = VISIT_REMINDER_PAGE_SIZE,
        flag_skipped: bool = VISIT_REMINDER_FLAG_SKIPPED,
        write_batch_limit: int = FIRESTORE_BATCH_LIMIT,
    ):
        self.store = store
        self.transport = transport
        self.queue = queue
        self.registry = TokenRegistry(store)
        self.page_size = page_size
        self.flag_skipped = flag_skipped
        self.write_batch_limit = write_batch_limit

    async def start(self, now: Optional[datetime] = None, zone_name: str = TIMEZONE) -> dict:
        """Begin today's chain with the cutoff at the end of the local day"""
        now = now or datetime.now(timezone.utc)
        cutoff = end_of_local_day(now, ZoneInfo(zone_name))
        logger.info(f"🚀 Starting visit reminders, cutoff {cutoff.isoformat()}")
        return await self.run_page(VisitReminderPage(cutoff=cutoff))

    async def run_page(self, page: VisitReminderPage) -> dict:
        """Process one page and enqueue the next one if more records are due"""
        cursor = page.cursor.to_cursor() if page.cursor else None
        # One extra record tells whether another page exists
        records = await self.store.query(
            CUSTOMER_METRICS,
            filters=[
                ("next_visit_due", "<=", page.cutoff),
                ("reminded_this_cycle", "==", False),
            ],
            order_by="next_visit_due",
            limit=self.page_size + 1,
            start_after=cursor,
        )
        has_more = len(records) > self.page_size
        records = records[: self.page_size]

        summary = {
            "page": page.page_number,
            "processed": len(records),
            "sent": 0,
            "failed": 0,
            "skipped": 0,
            "tokens_removed": 0,
            "continued": False,
        }
        if not records:
            logger.info(f"ℹ️ Visit reminders page {page.page_number}: nobody due")
            return summary

        entries = []
        for record in records:
            try:
                brand_id, user_id = parse_customer_metric_path(record.path)
            except ValueError:
                logger.warning(f"⚠️ Ignoring unexpected customer metric document {record.path}")
                continue
            entries.append((record, brand_id, user_id))

        users, staff, brands = await self._resolve_labels(entries)

        messages: list[PushMessage] = []
        targets: list[tuple[str, str]] = []
        attempted: list[str] = []

        for record, brand_id, user_id in entries:
            user = users.get(user_path(user_id))
            token = token_from(user)
            if not token:
                logger.warning(f"⚠️ Visit reminder: user {user_id} has no push token")
                summary["skipped"] += 1
                if self.flag_skipped:
                    attempted.append(record.path)
                continue

            staff_id = record.data.get("preferred_staff_id") or ""
            staff_doc = staff.get(staff_path(staff_id)) if staff_id else None
            rendered = render_visit_reminder(
                TenantProfile.from_document(brands.get(brand_path(brand_id))),
                user_id=user_id,
                brand_id=brand_id,
                customer_name=(user or {}).get("full_name") or "",
                staff_id=staff_id,
                staff_name=(staff_doc or {}).get("name") or "",
            )
            messages.append(
                PushMessage(token=token, title=rendered.title, body=rendered.body, data=rendered.data)
            )
            targets.append((user_id, token))
            attempted.append(record.path)

        if messages:
            results = await self.transport.send_bulk(messages)
            summary["tokens_removed"] = await self._handle_results(targets, results, summary)

        # Failed sends count as handled too, otherwise they would be retried every day
        for chunk in _chunks(attempted, self.write_batch_limit):
            await self.store.atomic_write(
                [set_field(path, "reminded_this_cycle", True) for path in chunk]
            )

        logger.info(
            f"📊 Visit reminders page {page.page_number}: {summary['sent']} sent, "
            f"{summary['failed']} failed, {summary['skipped']} without token"
        )

        if has_more:
            await self._continue(page, records[-1])
            summary["continued"] = True
        else:
            logger.info(f"✅ Visit reminders finished after {page.page_number} page(s)")
        return summary

    async def _resolve_labels(self, entries: list[tuple[Document, str, str]]):
        """Fetch users, preferred staff and brands with one multi-get each"""
        user_paths = {user_path(user_id) for _, _, user_id in entries}
        staff_paths = {
            staff_path(record.data["preferred_staff_id"])
            for record, _, _ in entries
            if isinstance(record.data.get("preferred_staff_id"), str)
            and record.data["preferred_staff_id"]
        }
        brand_paths = {brand_path(brand_id) for _, brand_id, _ in entries}

        users = await self.store.get_many(user_paths)
        staff = await self.store.get_many(staff_paths) if staff_paths else {}
        brands = await self.store.get_many(brand_paths)
        return users, staff, brands

    async def _handle_results(self, targets, results, summary: dict) -> int:
        removed_tokens = set()
        failures = []

        for (user_id, token), result in zip(targets, results):
            if result.success:
                summary["sent"] += 1
                continue

            summary["failed"] += 1
            failures.append({"user_id": user_id, "error": result.error_code})
            if result.invalid_token and token not in removed_tokens:
                await self.registry.remove_token(user_path(user_id), token)
                removed_tokens.add(token)

        if failures:
            logger.warning(f"⚠️ Visit reminders: some sends failed: {failures}")
        return len(removed_tokens)

    async def _continue(self, page: VisitReminderPage, last: Document) -> None:
        next_page = VisitReminderPage(
            cutoff=page.cutoff,
            cursor=PageCursor(next_visit_due=last.data["next_visit_due"], path=last.path),
            page_number=page.page_number + 1,
        )
        job_id = await self.queue.enqueue(
            PAGE_TASK, next_page.model_dump(mode="json"), job_id=page_job_id(next_page)
        )
        logger.info(
            f"➡️ Visit reminders page {next_page.page_number} queued after {last.path} (job {job_id})"
        )
