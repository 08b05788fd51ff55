"""Normalize every inbound message shape to the canonical ``Message``."""
from __future__ import annotations

import json
from datetime import datetime, timezone, tzinfo

from chat_sync.application.dto.message import OptimisticMessage
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import MessageStatus
from chat_sync.infrastructure.http.schemas import RawFetchedMessage
from chat_sync.infrastructure.ws.protocol import PushFrame, is_control_frame


def as_utc(ts: datetime, server_tz: tzinfo | None = None) -> datetime:
    """Normalize to aware UTC.

    Naive backend timestamps are wall time of ``server_tz``; with no zone
    configured they are read as local time.
    """
    if ts.tzinfo is None:
        if server_tz is None:
            return ts.astimezone(timezone.utc)
        ts = ts.replace(tzinfo=server_tz)
    return ts.astimezone(timezone.utc)


def fetched_to_message(raw: RawFetchedMessage, server_tz: tzinfo | None = None) -> Message:
    return Message(
        id=raw.chat_id,
        sender_id=raw.sender_id,
        receiver_id=raw.receiver_id,
        text=raw.message,
        timestamp=as_utc(raw.created_at, server_tz),
        status=MessageStatus.DELIVERED,
        sender_name=raw.sender_name,
        receiver_name=raw.receiver_name,
        sender_pic=raw.sender_pic,
        receiver_pic=raw.receiver_pic,
    )


def decode_push_frame(raw: str) -> PushFrame | None:
    """Parse a push frame; None for control frames.

    Raises ``ValueError`` (incl. pydantic's ``ValidationError``) when the
    frame is not JSON or lacks a required field.
    """
    data = json.loads(raw)
    if is_control_frame(data):
        return None
    return PushFrame.model_validate(data)


def push_to_message(
    frame: PushFrame,
    *,
    received_at: datetime,
    fallback_id: str,
    server_tz: tzinfo | None = None,
) -> Message:
    return Message(
        id=frame.message_id or fallback_id,
        sender_id=frame.sender_id,
        receiver_id=frame.receiver_id,
        text=frame.message,
        timestamp=as_utc(frame.timestamp, server_tz) if frame.timestamp else as_utc(received_at),
        status=MessageStatus.RECEIVED,
        sender_name=frame.sender_name,
        sender_pic=frame.sender_pic,
        synthetic_id=frame.message_id is None,
    )


def optimistic_to_message(draft: OptimisticMessage) -> Message:
    return Message(
        id=draft.temp_id,
        sender_id=draft.sender_id,
        receiver_id=draft.receiver_id,
        text=draft.text,
        timestamp=as_utc(draft.created_at),
        status=MessageStatus.PENDING,
        reply_to=draft.reply_to,
        attachment=draft.attachment,
        sender_name=draft.sender_name,
        sender_pic=draft.sender_pic,
        synthetic_id=True,
    )
