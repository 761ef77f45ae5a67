"""Appointment repository - Document store access for appointments and their flags"""

from datetime import datetime
from typing import Optional

from ...store import DocumentStore, set_field
from ...store.paths import appointment_path
from .schemas import Appointment


class AppointmentRepository:
    """Repository for appointment documents"""

    @staticmethod
    async def get_appointment(store: DocumentStore, appointment_id: str) -> Optional[Appointment]:
        data = await store.get(appointment_path(appointment_id))
        if data is None:
            return None
        return Appointment.from_document(appointment_id, data)

    @staticmethod
    async def mark_reminder_sent(store: DocumentStore, appointment_id: str, sent_at: datetime) -> None:
        path = appointment_path(appointment_id)
        await store.atomic_write(
            [
                set_field(path, "reminder_sent", True),
                set_field(path, "reminder_sent_at", sent_at),
            ]
        )
