"""Optimistic send: show locally, persist, fan out, reconcile."""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable

from chat_sync.application.dto.message import OptimisticMessage
from chat_sync.application.dto.session_user import SessionUser
from chat_sync.application.exceptions import PersistenceError, TransportError, ValidationError
from chat_sync.application.ports.chat_api import ChatApi
from chat_sync.application.ports.clock import Clock
from chat_sync.application.ports.events import EventSink
from chat_sync.domain.entities.message import Attachment, Message, ReplyRef
from chat_sync.domain.events.session_events import SendFailed
from chat_sync.domain.value_objects.enums import MessageStatus
from chat_sync.infrastructure.mappers.message import optimistic_to_message
from chat_sync.infrastructure.ws.protocol import OutboundChatFrame
from chat_sync.services.message_store import MessageStore

logger = logging.getLogger(__name__)

PushSend = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass(slots=True)
class Composer:
    """Reply/attachment staged for the next message."""

    reply_to: ReplyRef | None = None
    attachment: Attachment | None = None

    def clear(self) -> None:
        self.reply_to = None
        self.attachment = None


def reply_ref(message: Message) -> ReplyRef:
    return ReplyRef(message_id=message.id, sender_id=message.sender_id, text=message.text)


class SendPipeline:
    def __init__(
        self,
        store: MessageStore,
        api: ChatApi,
        *,
        user: SessionUser,
        push: PushSend,
        is_connected: Callable[[], bool],
        events: EventSink,
        clock: Clock,
    ) -> None:
        self._store = store
        self._api = api
        self._user = user
        self._push = push
        self._is_connected = is_connected
        self._events = events
        self._clock = clock
        self._seq = itertools.count(1)
        self.composer = Composer()

    def new_temp_id(self) -> str:
        return f"tmp-{self._clock.now_ns()}-{next(self._seq)}"

    async def send(
        self,
        receiver_id: str | None,
        text: str,
        attachment: Attachment | None = None,
        reply_to: ReplyRef | None = None,
    ) -> Message:
        """Send ``text`` to ``receiver_id``.

        The message is visible in the store immediately as ``pending``. On
        success it becomes ``sent`` (under the confirmed id when the backend
        returns one); on failure it is marked ``failed`` and a ``SendFailed``
        event is emitted instead of raising.
        """
        text = text.strip()
        attachment = attachment or self.composer.attachment
        reply_to = reply_to or self.composer.reply_to
        if not text and attachment is None:
            raise ValidationError("Message is empty")
        if not receiver_id:
            raise ValidationError("No active conversation")
        if not self._user.user_id:
            raise ValidationError("No authenticated user")

        draft = OptimisticMessage(
            temp_id=self.new_temp_id(),
            sender_id=self._user.user_id,
            receiver_id=receiver_id,
            text=text,
            created_at=self._clock.now(),
            sender_name=self._user.name,
            sender_pic=self._user.picture_ref,
            reply_to=reply_to,
            attachment=attachment,
        )
        message = optimistic_to_message(draft)
        self._store.merge(message, local=True)
        self.composer.clear()
        return await self._dispatch(message)

    async def retry(self, message_id: str) -> Message:
        current = self._store.find(message_id)
        if current is None or current.status != MessageStatus.FAILED:
            raise ValidationError(f"Message {message_id} is not a failed send")
        pending = self._store.update_status(message_id, MessageStatus.PENDING) or current
        return await self._dispatch(pending)

    async def _dispatch(self, message: Message) -> Message:
        try:
            receipt = await self._api.send_message(
                message.sender_id, message.receiver_id, message.text, message.attachment,
            )
        except PersistenceError as exc:
            logger.warning("Send of %s failed: %s", message.id, exc.detail)
            failed = self._store.update_status(message.id, MessageStatus.FAILED)
            self._events.emit(SendFailed(message_id=message.id, detail=exc.detail))
            return failed or message.with_status(MessageStatus.FAILED)

        if receipt.confirmed_id:
            confirmed = replace(
                message,
                id=receipt.confirmed_id,
                status=MessageStatus.SENT,
                timestamp=receipt.created_at or message.timestamp,
                synthetic_id=False,
            )
            self._store.reconcile(message.id, confirmed)
        else:
            # Stays synthetic until the history fetch brings the real record.
            confirmed = (
                self._store.update_status(message.id, MessageStatus.SENT)
                or message.with_status(MessageStatus.SENT)
            )

        await self._fan_out(confirmed)
        return self._store.find(confirmed.id) or confirmed

    async def _fan_out(self, message: Message) -> None:
        if not self._is_connected():
            return
        frame = OutboundChatFrame(
            sender_id=message.sender_id,
            receiver_id=message.receiver_id,
            message=message.text,
            message_id=None if message.synthetic_id else message.id,
            timestamp=message.timestamp,
            sender_name=message.sender_name,
            sender_pic=message.sender_pic,
        )
        try:
            await self._push(frame.to_payload())
        except TransportError as exc:
            logger.warning("Push fan-out of %s failed: %s", message.id, exc.detail)
