"""Wire models of the chat HTTP API."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from chat_sync.infrastructure.schemas_common import LooseId, Text


class ApiEnvelope(BaseModel):
    status: str
    data: Any = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


class RawFetchedMessage(BaseModel):
    """One record of the ``get_message`` history response."""

    chat_id: LooseId
    message: Text = ""
    created_at: datetime
    sender_id: LooseId
    receiver_id: LooseId
    sender_name: str | None = None
    receiver_name: str | None = None
    sender_pic: str | None = None
    receiver_pic: str | None = None


class SendMessageResponse(BaseModel):
    status: str
    chat_id: LooseId | None = None
    message_id: LooseId | None = None
    created_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @property
    def confirmed_id(self) -> str | None:
        return self.chat_id or self.message_id


class RawUser(BaseModel):
    users_id: LooseId
    users_fname: str = ""
    users_mname: str | None = None
    users_lname: str = ""
    users_email: str | None = None
    users_pic: str | None = None

    @property
    def full_name(self) -> str:
        parts = (self.users_fname, self.users_mname or "", self.users_lname)
        return " ".join(p for p in parts if p).strip()
