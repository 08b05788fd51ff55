"""Chat session: owns the push connection, polls and store of one chat view."""
from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from datetime import timedelta
from types import TracebackType
from typing import Any, Awaitable, Callable

from chat_sync.application.connection_state import ConnectionState
from chat_sync.application.dto.session_user import SessionUser
from chat_sync.application.exceptions import ConflictError, TransportError
from chat_sync.application.policies.reconnection import decide
from chat_sync.application.ports.chat_api import ChatApi
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.ports.events import EventSink, LoggingEventSink
from chat_sync.application.ports.transport import Transport, TransportFactory
from chat_sync.config import Settings
from chat_sync.config import settings as default_settings
from chat_sync.domain.entities.contact import Contact
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Attachment, Message, ReplyRef
from chat_sync.domain.events.session_events import (
    ConnectionStatusChanged,
    ConversationsChanged,
    MessagesChanged,
)
from chat_sync.domain.value_objects.enums import ConnectionStatus, ConversationFilter
from chat_sync.infrastructure.mappers.message import decode_push_frame, push_to_message
from chat_sync.infrastructure.ws.endpoint import derive_ws_endpoint
from chat_sync.infrastructure.ws.keepalive import KeepaliveTicker
from chat_sync.infrastructure.ws.transport import TransportChannel
from chat_sync.services.conversation_aggregator import (
    aggregate_conversations,
    filter_conversations,
)
from chat_sync.services.history_fetcher import HistoryFetcher
from chat_sync.services.message_store import MessageStore
from chat_sync.services.send_pipeline import SendPipeline, reply_ref

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class ChatSession:
    """Synchronization engine behind one mounted chat view.

    Built on mount, torn down on unmount. Teardown cancels the pending
    reconnect, closes the push channel cleanly and stops both poll timers
    and the keepalive; nothing runs against the session afterwards.
    """

    def __init__(
        self,
        user: SessionUser,
        api: ChatApi,
        *,
        settings: Settings = default_settings,
        transport_factory: TransportFactory = TransportChannel,
        events: EventSink | None = None,
        clock: Clock | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.user = user
        self._api = api
        self._settings = settings
        self._transport_factory = transport_factory
        self._events = events or LoggingEventSink()
        self._clock = clock or SystemClock()
        self._sleep = sleep
        self._server_tz = settings.api_tzinfo

        self.state = ConnectionState()
        self.store = MessageStore(
            user.user_id,
            fingerprint_window=timedelta(seconds=settings.FINGERPRINT_WINDOW_SECONDS),
        )
        self.store.subscribe(self._on_store_changed)
        self.fetcher = HistoryFetcher(
            api,
            self.store,
            user.user_id,
            baseline_interval=settings.HISTORY_POLL_SECONDS,
            active_interval=settings.ACTIVE_POLL_SECONDS,
            is_visible=lambda: self._visible,
        )
        self.sender = SendPipeline(
            self.store,
            api,
            user=user,
            push=self._push,
            is_connected=lambda: self.connected,
            events=self._events,
            clock=self._clock,
        )
        self._keepalive = KeepaliveTicker(self._push, settings.KEEPALIVE_SECONDS)

        self._transport: Transport | None = None
        self._generation = 0
        self._opened = False
        self._connect_task: asyncio.Task[None] | None = None
        self._push_seq = itertools.count(1)
        self._conversations: list[Conversation] = []
        self._active: str | None = None
        self._visible = True
        self._started = False
        self._closed = False

    # -- lifecycle -------------------------------------------------------------

    async def __aenter__(self) -> ChatSession:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.teardown()

    async def start(self) -> None:
        self._ensure_open()
        if self._started:
            return
        self._started = True
        logger.info("Chat session starting for user %s", self.user.user_id)
        await self.fetcher.fetch_all()
        self.fetcher.start_baseline()
        self._schedule_connect(0)

    async def teardown(self) -> None:
        if self._closed:
            return
        self._closed = True

        task, self._connect_task = self._connect_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._keepalive.stop()
        await self.fetcher.stop()

        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()
        if self.state.status not in (ConnectionStatus.DISCONNECTED, ConnectionStatus.FAILED):
            self._set_status(ConnectionStatus.DISCONNECTED)
        logger.info("Chat session for user %s torn down", self.user.user_id)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def connected(self) -> bool:
        return (
            self.state.status == ConnectionStatus.CONNECTED
            and self._transport is not None
            and self._transport.is_open
        )

    # -- conversations ---------------------------------------------------------

    @property
    def active_conversation(self) -> str | None:
        return self._active

    async def open_conversation(self, counterparty_id: str) -> list[Message]:
        """Switch the active conversation and refresh its baseline."""
        self._ensure_open()
        self._active = counterparty_id
        await self.fetcher.fetch_all()
        self.fetcher.start_active()
        return self.store.get(counterparty_id)

    async def start_conversation(self, contact: Contact) -> list[Message]:
        self._ensure_open()
        self.store.ensure_conversation(
            contact.user_id, contact.name, contact.picture_ref, self._clock.now(),
        )
        return await self.open_conversation(contact.user_id)

    def close_conversation(self) -> None:
        self._active = None
        self.fetcher.stop_active()

    def set_visible(self, visible: bool) -> None:
        self._visible = visible

    def set_unread(self, counterparty_id: str, count: int) -> None:
        self.store.set_unread(counterparty_id, count)

    def messages(self, counterparty_id: str | None = None) -> list[Message]:
        key = counterparty_id or self._active
        return self.store.get(key) if key else []

    def conversations(
        self,
        mode: ConversationFilter = ConversationFilter.ALL,
        search: str = "",
    ) -> list[Conversation]:
        return filter_conversations(self._conversations, mode, search)

    async def search_contacts(self, term: str) -> list[Contact]:
        contacts = await self._api.search_users(term)
        return [c for c in contacts if c.user_id != self.user.user_id]

    # -- sending ---------------------------------------------------------------

    def stage_reply(self, message: Message | None) -> None:
        self.sender.composer.reply_to = reply_ref(message) if message else None

    def stage_attachment(self, attachment: Attachment | None) -> None:
        self.sender.composer.attachment = attachment

    async def send(
        self,
        text: str,
        attachment: Attachment | None = None,
        reply_to: ReplyRef | None = None,
    ) -> Message:
        self._ensure_open()
        return await self.sender.send(self._active, text, attachment, reply_to)

    async def retry(self, message_id: str) -> Message:
        self._ensure_open()
        return await self.sender.retry(message_id)

    # -- push channel ----------------------------------------------------------

    def _schedule_connect(self, delay_ms: int) -> None:
        self._connect_task = asyncio.create_task(
            self._connect_after(delay_ms),
            name="chat-reconnect" if delay_ms else "chat-connect",
        )

    async def _connect_after(self, delay_ms: int) -> None:
        if delay_ms:
            await self._sleep(delay_ms / 1000)
        if self._closed:
            return
        await self._connect()

    async def _connect(self) -> None:
        self._set_status(ConnectionStatus.CONNECTING)
        self._generation += 1
        generation = self._generation
        self._opened = False
        try:
            url = derive_ws_endpoint(self._settings.CHAT_API_URL, self._settings.WS_PORT)
        except TransportError as exc:
            self._handle_error(generation, exc)
            return

        self._transport = self._transport_factory(
            on_open=lambda: self._handle_open(generation),
            on_message=lambda raw: self._handle_message(generation, raw),
            on_close=lambda code, reason, clean: self._handle_close(generation, code, reason, clean),
            on_error=lambda exc: self._handle_error(generation, exc),
        )
        await self._transport.open(url)

    def _handle_open(self, generation: int) -> None:
        if generation != self._generation or self._closed:
            return
        self._opened = True
        self._connect_task = None
        self._set_status(ConnectionStatus.CONNECTED)
        logger.info("Push channel up")

    def _handle_message(self, generation: int, raw: str) -> None:
        if generation != self._generation or self._closed:
            return
        try:
            frame = decode_push_frame(raw)
        except ValueError as exc:
            logger.warning("Dropping malformed push frame: %s", exc)
            return
        if frame is None:
            logger.debug("Ignoring control frame: %s", raw)
            return
        message = push_to_message(
            frame,
            received_at=self._clock.now(),
            fallback_id=f"push-{self._clock.now_ns()}-{next(self._push_seq)}",
            server_tz=self._server_tz,
        )
        self.store.merge(message)

    def _handle_error(self, generation: int, exc: BaseException) -> None:
        if generation != self._generation:
            return
        logger.warning("Push channel error: %s", exc)
        if not self._opened:
            # Never opened: no close event will follow.
            self._transport = None
            self._connection_lost(was_clean=False)
        elif self.state.status == ConnectionStatus.CONNECTED:
            self._set_status(ConnectionStatus.ERROR)

    def _handle_close(self, generation: int, code: int | None, reason: str, was_clean: bool) -> None:
        if generation != self._generation:
            return
        logger.info("Push channel closed: code=%s reason=%r clean=%s", code, reason, was_clean)
        self._opened = False
        self._transport = None
        self._connection_lost(was_clean)

    def _connection_lost(self, was_clean: bool) -> None:
        if self._closed or was_clean:
            if self.state.status not in (ConnectionStatus.DISCONNECTED, ConnectionStatus.FAILED):
                self._set_status(ConnectionStatus.DISCONNECTED)
            return

        if self.state.status != ConnectionStatus.ERROR:
            self._set_status(ConnectionStatus.ERROR)
        decision = decide(
            self.state.attempts,
            was_clean,
            max_attempts=self._settings.RECONNECT_MAX_ATTEMPTS,
            base_delay_ms=self._settings.RECONNECT_BASE_DELAY_MS,
        )
        if not decision.reconnect:
            logger.error("Giving up on push channel after %d attempts", self.state.attempts)
            self._set_status(ConnectionStatus.FAILED)
            return

        self.state.attempts += 1
        logger.info(
            "Reconnecting in %d ms (attempt %d/%d)",
            decision.delay_ms, self.state.attempts, self._settings.RECONNECT_MAX_ATTEMPTS,
        )
        self._schedule_connect(decision.delay_ms)

    async def _push(self, payload: dict[str, Any]) -> None:
        if self._transport is None:
            raise TransportError("Push channel is not open")
        await self._transport.send(payload)

    # -- internals -------------------------------------------------------------

    def _set_status(self, status: ConnectionStatus) -> None:
        if self.state.status == status:
            return
        self.state.transition(status)
        if status == ConnectionStatus.CONNECTED:
            self._keepalive.start()
        else:
            self._keepalive.stop()
        self._events.emit(
            ConnectionStatusChanged(
                status=status, attempts=self.state.attempts, notice=self.state.notice,
            )
        )

    def _on_store_changed(self, keys: frozenset[str]) -> None:
        self._conversations = aggregate_conversations(
            self.store.all(),
            self.user.user_id,
            started=self.store.started_conversations,
            unread=self.store.unread_counts,
        )
        self._events.emit(ConversationsChanged(conversations=tuple(self._conversations)))
        self._events.emit(MessagesChanged(counterparty_ids=keys))

    def _ensure_open(self) -> None:
        if self._closed:
            raise ConflictError("Chat session is closed")
