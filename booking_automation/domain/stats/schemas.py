"""Stats domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ..appointments.schemas import AppointmentSnapshot


class CompletionEvent(BaseModel):
    """Everything the aggregator needs from one completed appointment"""

    appointment_id: str
    brand_id: str
    user_id: str
    staff_id: Optional[str] = None
    location_id: Optional[str] = None
    total_price: float = 0
    service_ids: list[str] = []
    occurred_at: Optional[datetime] = None

    @classmethod
    def from_snapshot(cls, appointment_id: str, snapshot: AppointmentSnapshot) -> "CompletionEvent":
        """Caller checks brand_id and user_id are present"""
        return cls(
            appointment_id=appointment_id,
            brand_id=snapshot.brand_id,
            user_id=snapshot.user_id,
            staff_id=snapshot.staff_id,
            location_id=snapshot.location_id,
            total_price=snapshot.total_price,
            service_ids=snapshot.service_ids,
            occurred_at=snapshot.start_time,
        )

