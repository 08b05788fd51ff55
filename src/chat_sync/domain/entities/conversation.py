from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Conversation:
    counterparty_id: str
    display_name: str
    picture_ref: str | None
    last_message_text: str
    last_message_at: datetime | None
    unread_count: int = 0
    started_at: datetime | None = None

    @property
    def sort_key(self) -> datetime | None:
        return self.last_message_at or self.started_at
