from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from chat_sync.domain.value_objects.enums import MessageStatus


@dataclass(frozen=True, slots=True)
class ReplyRef:
    """Snapshot of the message being replied to, not a live link."""

    message_id: str
    sender_id: str
    text: str


@dataclass(frozen=True, slots=True)
class Attachment:
    url: str
    mime_type: str
    name: str


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    sender_id: str
    receiver_id: str
    text: str
    timestamp: datetime
    status: MessageStatus
    reply_to: ReplyRef | None = None
    attachment: Attachment | None = None
    sender_name: str | None = None
    receiver_name: str | None = None
    sender_pic: str | None = None
    receiver_pic: str | None = None
    synthetic_id: bool = False

    def counterparty(self, owner_id: str) -> str:
        """Conversation key: the participant that is not ``owner_id``."""
        return self.receiver_id if self.sender_id == owner_id else self.sender_id

    def is_own(self, owner_id: str) -> bool:
        return self.sender_id == owner_id

    def with_status(self, status: MessageStatus) -> Message:
        return replace(self, status=status)
