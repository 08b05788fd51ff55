"""Push channel frame models."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from chat_sync.infrastructure.schemas_common import LooseId


class PushFrame(BaseModel):
    """Server → client chat message."""

    model_config = ConfigDict(extra="ignore")

    message: str
    sender_id: LooseId
    receiver_id: LooseId
    message_id: LooseId | None = None
    timestamp: datetime | None = None
    sender_name: str | None = None
    sender_pic: str | None = None


class OutboundChatFrame(BaseModel):
    """Client → server fan-out of a message just persisted."""

    sender_id: str
    receiver_id: str
    message: str
    message_id: str | None = None
    timestamp: datetime
    sender_name: str | None = None
    sender_pic: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


HEARTBEAT: dict[str, Any] = {"type": "ping"}


def is_control_frame(data: Any) -> bool:
    """Frames such as ``{"type": "pong"}`` carry no chat message."""
    return isinstance(data, dict) and "type" in data and "message" not in data
