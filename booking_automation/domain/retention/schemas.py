"""Retention domain schemas - job payloads for the visit reminder chain"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ...store import Cursor


class PageCursor(BaseModel):
    """Serializable position of the last customer metric handled by a page"""

    next_visit_due: datetime
    path: str

    def to_cursor(self) -> Cursor:
        return Cursor(value=self.next_visit_due, path=self.path)


class VisitReminderPage(BaseModel):
    """Payload of one page job: same cutoff for the whole chain, cursor moves forward"""

    cutoff: datetime
    cursor: Optional[PageCursor] = None
    page_number: int = 1
