from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Mapping

from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import ConversationFilter

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def aggregate_conversations(
    messages: Iterable[Message],
    owner_id: str,
    *,
    started: Mapping[str, Conversation] | None = None,
    unread: Mapping[str, int] | None = None,
) -> list[Conversation]:
    """Fold all stored messages into one conversation per counterparty.

    Single pass over ``messages``; input order does not matter. Conversations
    started explicitly but still empty are included. Most recent first.
    """
    started = started or {}
    unread = unread or {}
    latest: dict[str, Message] = {}
    names: dict[str, str] = {}
    pictures: dict[str, str] = {}

    for message in messages:
        key = message.counterparty(owner_id)
        current = latest.get(key)
        if current is None or message.timestamp > current.timestamp:
            latest[key] = message

        own = message.is_own(owner_id)
        name = message.receiver_name if own else message.sender_name
        if name and key not in names:
            names[key] = name
        picture = message.receiver_pic if own else message.sender_pic
        if picture and key not in pictures:
            pictures[key] = picture

    conversations: list[Conversation] = []
    for key, last in latest.items():
        known = started.get(key)
        conversations.append(
            Conversation(
                counterparty_id=key,
                display_name=names.get(key) or (known.display_name if known else key),
                picture_ref=pictures.get(key) or (known.picture_ref if known else None),
                last_message_text=last.text,
                last_message_at=last.timestamp,
                unread_count=unread.get(key, 0),
                started_at=known.started_at if known else None,
            )
        )
    for key, known in started.items():
        if key not in latest:
            conversations.append(
                Conversation(
                    counterparty_id=key,
                    display_name=known.display_name,
                    picture_ref=known.picture_ref,
                    last_message_text="",
                    last_message_at=None,
                    unread_count=unread.get(key, 0),
                    started_at=known.started_at,
                )
            )

    conversations.sort(key=lambda c: c.sort_key or _EPOCH, reverse=True)
    return conversations


def filter_conversations(
    conversations: Iterable[Conversation],
    mode: ConversationFilter = ConversationFilter.ALL,
    search: str = "",
) -> list[Conversation]:
    """Apply the category filter, then a case-insensitive name/text search."""
    term = search.strip().lower()
    result: list[Conversation] = []
    for conversation in conversations:
        if mode == ConversationFilter.UNREAD and conversation.unread_count == 0:
            continue
        if term and not (
            term in conversation.display_name.lower()
            or term in conversation.last_message_text.lower()
        ):
            continue
        result.append(conversation)
    return result
