"""
Push notification copy
Pure rendering functions: structured context + tenant profile in, title/body/data out
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import DEFAULT_LOCALE, TIMEZONE

logger = logging.getLogger(__name__)

COPY = {
    "hr": {
        "appointment": "termin",
        "venue": "lokacija",
        "visit_title_named": "{name}, nedostaješ nam!",
        "visit_title": "Nedostaješ nam!",
        "visit_body_staff": "{staff} te čeka i veseli se tvom povratku. Rezerviraj {appointment} – brzo i jednostavno!",
        "visit_body": "Čekamo te i veselimo se tvom povratku. Rezerviraj {appointment} – brzo i jednostavno!",
        "reminder_title": "Vidimo se za 2 sata!",
        "reminder_body": "Tvoj {appointment} u {venue}{staff_part} kreće u {time}.",
        "reminder_staff_part": " s {staff}",
        "cancel_title": "Otkazan {appointment}",
        "cancel_body": "{customer} – {appointment} {date} u {time} je otkazan.",
        "cancel_customer": "Klijent",
        "date_format": "%d.%m.",
    },
    "en": {
        "appointment": "appointment",
        "venue": "our location",
        "visit_title_named": "{name}, we miss you!",
        "visit_title": "We miss you!",
        "visit_body_staff": "{staff} is looking forward to seeing you again. Book your {appointment} in seconds!",
        "visit_body": "We're looking forward to seeing you again. Book your {appointment} in seconds!",
        "reminder_title": "See you in 2 hours!",
        "reminder_body": "Your {appointment} at {venue}{staff_part} starts at {time}.",
        "reminder_staff_part": " with {staff}",
        "cancel_title": "{appointment_title} cancelled",
        "cancel_body": "{customer} cancelled the {appointment} on {date} at {time}.",
        "cancel_customer": "A customer",
        "date_format": "%b %d",
    },
}


@dataclass(frozen=True)
class TenantProfile:
    """Brand-level settings that change wording and local time"""

    name: str = ""
    locale: str = DEFAULT_LOCALE
    timezone: str = TIMEZONE
    terminology: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_document(cls, data: Optional[dict]) -> "TenantProfile":
        data = data or {}
        locale = str(data.get("locale") or DEFAULT_LOCALE).lower()
        if locale not in COPY:
            logger.warning(f"⚠️ Unsupported locale '{locale}', using {DEFAULT_LOCALE}")
            locale = DEFAULT_LOCALE if DEFAULT_LOCALE in COPY else "hr"

        timezone = data.get("timezone") or TIMEZONE
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"⚠️ Unknown timezone '{timezone}', using {TIMEZONE}")
            timezone = TIMEZONE

        terminology = data.get("terminology")
        return cls(
            name=data.get("name") or "",
            locale=locale,
            timezone=timezone,
            terminology=dict(terminology) if isinstance(terminology, dict) else {},
        )

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def term(self, key: str) -> str:
        """Tenant wording for key ("appointment", "venue"), falling back to locale copy"""
        value = self.terminology.get(key)
        if isinstance(value, str) and value:
            return value
        return COPY[self.locale][key]


@dataclass(frozen=True)
class RenderedMessage:
    title: str
    body: str
    data: dict[str, str]


def _local(start_time: datetime, profile: TenantProfile) -> datetime:
    return start_time.astimezone(profile.zone)


def render_visit_reminder(
    profile: TenantProfile,
    *,
    user_id: str,
    brand_id: str,
    customer_name: str = "",
    staff_id: str = "",
    staff_name: str = "",
) -> RenderedMessage:
    """'We miss you' nudge for a customer whose next visit is due"""
    copy = COPY[profile.locale]
    appointment = profile.term("appointment")

    if customer_name:
        title = copy["visit_title_named"].format(name=customer_name)
    else:
        title = copy["visit_title"]

    if staff_name:
        body = copy["visit_body_staff"].format(staff=staff_name, appointment=appointment)
    else:
        body = copy["visit_body"].format(appointment=appointment)

    return RenderedMessage(
        title=title,
        body=body,
        data={
            "type": "visit_reminder",
            "user_id": user_id,
            "brand_id": brand_id,
            "preferred_staff_id": staff_id or "",
        },
    )


def render_appointment_reminder(
    profile: TenantProfile,
    *,
    appointment_id: str,
    user_id: str,
    start_time: datetime,
    venue_name: str = "",
    staff_name: str = "",
) -> RenderedMessage:
    copy = COPY[profile.locale]
    staff_part = copy["reminder_staff_part"].format(staff=staff_name) if staff_name else ""
    body = copy["reminder_body"].format(
        appointment=profile.term("appointment"),
        venue=venue_name or profile.term("venue"),
        staff_part=staff_part,
        time=_local(start_time, profile).strftime("%H:%M"),
    )
    return RenderedMessage(
        title=copy["reminder_title"],
        body=body,
        data={
            "type": "appointment_reminder",
            "appointment_id": appointment_id,
            "user_id": user_id,
        },
    )


def render_cancellation_notice(
    profile: TenantProfile,
    *,
    appointment_id: str,
    start_time: Optional[datetime],
    customer_name: str = "",
) -> RenderedMessage:
    """Notice for the staff member whose appointment was cancelled"""
    copy = COPY[profile.locale]
    appointment = profile.term("appointment")

    if start_time is not None:
        local_start = _local(start_time, profile)
        date_str = local_start.strftime(copy["date_format"])
        time_str = local_start.strftime("%H:%M")
    else:
        date_str = time_str = "?"

    return RenderedMessage(
        title=copy["cancel_title"].format(
            appointment=appointment, appointment_title=appointment.capitalize()
        ),
        body=copy["cancel_body"].format(
            customer=customer_name or copy["cancel_customer"],
            appointment=appointment,
            date=date_str,
            time=time_str,
        ),
        data={"type": "appointment_cancelled", "appointment_id": appointment_id},
    )
