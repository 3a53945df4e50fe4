from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel

UpdateSource = Literal["app", "sms", "system"]


class Handoff(BaseModel):
    id: UUID
    created_at: datetime
    summary: str
    category: str
    priority: str  # low, medium, high
    location_code: str | None = None
    status: str | None = None  # open, needs_followup, resolved (raw, see status policy)
    last_update_at: datetime | None = None
    last_update_by_snapshot: str | None = None
    created_by: UUID | None = None
    created_by_display_name_snapshot: str | None = None

    @property
    def effective_at(self) -> datetime:
        return self.last_update_at or self.created_at


class HandoffUpdate(BaseModel):
    id: UUID
    created_at: datetime
    handoff_id: UUID
    author_user_id: UUID | None = None
    author_display_name_snapshot: str | None = None
    source: UpdateSource
    message: str


class HandoffToken(BaseModel):
    token: str
    handoff_id: UUID
