"""Events the chat session publishes to its UI collaborator."""
from __future__ import annotations

from dataclasses import dataclass

from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.value_objects.enums import ConnectionStatus


@dataclass(frozen=True, slots=True)
class ConnectionStatusChanged:
    status: ConnectionStatus
    attempts: int
    notice: str | None


@dataclass(frozen=True, slots=True)
class ConversationsChanged:
    conversations: tuple[Conversation, ...]


@dataclass(frozen=True, slots=True)
class MessagesChanged:
    counterparty_ids: frozenset[str]


@dataclass(frozen=True, slots=True)
class SendFailed:
    message_id: str
    detail: str
