from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_sync.domain.entities.message import Attachment, ReplyRef


@dataclass(frozen=True, slots=True)
class OptimisticMessage:
    """Locally authored message before the backend has confirmed it."""

    temp_id: str
    sender_id: str
    receiver_id: str
    text: str
    created_at: datetime
    sender_name: str | None = None
    sender_pic: str | None = None
    reply_to: ReplyRef | None = None
    attachment: Attachment | None = None


@dataclass(frozen=True, slots=True)
class SendReceipt:
    """Outcome of a successful ``sendMessage`` call."""

    confirmed_id: str | None = None
    created_at: datetime | None = None
