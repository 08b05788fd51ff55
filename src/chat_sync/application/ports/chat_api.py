from __future__ import annotations

from typing import Protocol

from chat_sync.application.dto.message import SendReceipt
from chat_sync.domain.entities.contact import Contact
from chat_sync.domain.entities.message import Attachment, Message


class ChatApi(Protocol):
    """Request/response persistence collaborator.

    Implementations raise ``PersistenceError`` on any failure.
    """

    async def get_messages(self, user_id: str) -> list[Message]: ...

    async def send_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: str,
        attachment: Attachment | None = None,
    ) -> SendReceipt: ...

    async def search_users(self, term: str) -> list[Contact]: ...
