"""Appointment domain schemas - Pydantic models for snapshots and lifecycle events"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

SCHEDULED = "scheduled"
COMPLETED = "completed"
NO_SHOW = "no_show"
CANCELLED = "cancelled"


def is_cancelled(status: Optional[str]) -> bool:
    """Covers every cancellation variant, e.g. cancelled_by_client"""
    return bool(status) and CANCELLED in status


class AppointmentSnapshot(BaseModel):
    """Appointment document as written by the booking app"""

    model_config = ConfigDict(extra="ignore")

    brand_id: Optional[str] = None
    user_id: Optional[str] = None
    staff_id: Optional[str] = None
    location_id: Optional[str] = None
    start_time: Optional[datetime] = None
    total_price: float = 0
    service_ids: list[str] = []
    status: str = ""
    no_show_counted: bool = False
    reminder_sent: bool = False

    @field_validator("total_price", mode="before")
    @classmethod
    def validate_total_price(cls, v: Any):
        # Only real numbers count towards revenue
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return 0
        return v

    @field_validator("service_ids", mode="before")
    @classmethod
    def validate_service_ids(cls, v: Any):
        if not isinstance(v, list):
            return []
        return [sid for sid in v if isinstance(sid, str) and sid]

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v: Any):
        return v if isinstance(v, str) else ""

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v: Optional[datetime]):
        # Naive timestamps are treated as UTC
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class Appointment(AppointmentSnapshot):
    """Appointment with its document id"""

    id: str

    @classmethod
    def from_document(cls, appointment_id: str, data: dict) -> "Appointment":
        return cls.model_validate({**data, "id": appointment_id})


class AppointmentChange(BaseModel):
    """
    A created (before is None) or updated appointment.
    Delivered at least once and possibly out of order.
    """

    appointment_id: str
    before: Optional[AppointmentSnapshot] = None
    after: AppointmentSnapshot
    event_id: Optional[str] = None

    @property
    def is_creation(self) -> bool:
        return self.before is None
