"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from chat_sync.application.dto.message import SendReceipt
from chat_sync.application.dto.session_user import SessionUser
from chat_sync.application.exceptions import PersistenceError, TransportError
from chat_sync.application.ports.transport import OnClose, OnError, OnMessage, OnOpen
from chat_sync.config import Settings
from chat_sync.domain.entities.contact import Contact
from chat_sync.domain.entities.message import Attachment, Message
from chat_sync.domain.value_objects.enums import MessageStatus

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

OWNER = "1"


def at(seconds: float) -> datetime:
    return BASE_TIME + timedelta(seconds=seconds)


def make_message(
    *,
    id: str = "m1",
    sender: str = OWNER,
    receiver: str = "2",
    text: str = "hello",
    t: float = 0,
    status: MessageStatus = MessageStatus.DELIVERED,
    synthetic: bool = False,
    sender_name: str | None = None,
    receiver_name: str | None = None,
) -> Message:
    return Message(
        id=id,
        sender_id=sender,
        receiver_id=receiver,
        text=text,
        timestamp=at(t),
        status=status,
        sender_name=sender_name,
        receiver_name=receiver_name,
        synthetic_id=synthetic,
    )


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "CHAT_API_URL": "http://chat.test/coc/gsd/",
        "WS_PORT": 8080,
        "API_TIMEZONE": "UTC",
        "KEEPALIVE_SECONDS": 0.01,
        "HISTORY_POLL_SECONDS": 0.02,
        "ACTIVE_POLL_SECONDS": 0.01,
    }
    values.update(overrides)
    return Settings(**values)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def user() -> SessionUser:
    return SessionUser(user_id=OWNER, name="Ana", picture_ref="ana.png")


@dataclass
class FakeClock:
    current: datetime = BASE_TIME
    _ns: int = 1_700_000_000_000_000_000

    def now(self) -> datetime:
        return self.current

    def now_ns(self) -> int:
        self._ns += 1
        return self._ns

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@dataclass
class FakeChatApi:
    history: list[Message] = field(default_factory=list)
    contacts: list[Contact] = field(default_factory=list)
    fail_fetch: bool = False
    fail_send: bool = False
    confirm_ids: bool = True
    fetch_gate: asyncio.Event | None = None
    fetch_calls: int = 0
    sent: list[tuple[str, str, str, Attachment | None]] = field(default_factory=list)
    _next_id: int = 100

    async def get_messages(self, user_id: str) -> list[Message]:
        self.fetch_calls += 1
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fail_fetch:
            raise PersistenceError("history unavailable")
        return list(self.history)

    async def send_message(
        self,
        sender_id: str,
        receiver_id: str,
        text: str,
        attachment: Attachment | None = None,
    ) -> SendReceipt:
        self.sent.append((sender_id, receiver_id, text, attachment))
        if self.fail_send:
            raise PersistenceError("send rejected")
        if not self.confirm_ids:
            return SendReceipt()
        self._next_id += 1
        return SendReceipt(confirmed_id=str(self._next_id))

    async def search_users(self, term: str) -> list[Contact]:
        if len(term.strip()) < 2:
            return []
        return [c for c in self.contacts if term.lower() in c.name.lower()]


class FakeTransport:
    """In-memory push channel following the Transport callback contract."""

    def __init__(
        self,
        *,
        on_open: OnOpen,
        on_message: OnMessage,
        on_close: OnClose,
        on_error: OnError,
        fail_open: bool = False,
    ) -> None:
        self.on_open = on_open
        self.on_message = on_message
        self.on_close = on_close
        self.on_error = on_error
        self.fail_open = fail_open
        self.url: str | None = None
        self.sent: list[dict[str, Any]] = []
        self.closed_cleanly = False
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self, url: str) -> None:
        self.url = url
        if self.fail_open:
            self.on_error(ConnectionRefusedError("refused"))
            return
        self._open = True
        self.on_open()

    async def send(self, payload: dict[str, Any]) -> None:
        if not self._open:
            raise TransportError("closed")
        self.sent.append(payload)

    async def close(self) -> None:
        if self._open:
            self._open = False
            self.closed_cleanly = True
            self.on_close(1000, "", True)

    def deliver(self, frame: dict[str, Any] | str) -> None:
        self.on_message(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self, code: int = 1006) -> None:
        self._open = False
        self.on_close(code, "", False)

    def pings(self) -> int:
        return sum(1 for p in self.sent if p == {"type": "ping"})


@dataclass
class FakeTransportFactory:
    outcomes: list[str] = field(default_factory=list)
    default: str = "ok"
    created: list[FakeTransport] = field(default_factory=list)

    def __call__(
        self,
        *,
        on_open: OnOpen,
        on_message: OnMessage,
        on_close: OnClose,
        on_error: OnError,
    ) -> FakeTransport:
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        transport = FakeTransport(
            on_open=on_open,
            on_message=on_message,
            on_close=on_close,
            on_error=on_error,
            fail_open=outcome == "fail",
        )
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


@dataclass
class RecordingSink:
    events: list[object] = field(default_factory=list)

    def emit(self, event: object) -> None:
        self.events.append(event)

    def of_type(self, cls: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, cls)]


@dataclass
class RecordingSleep:
    """Stands in for asyncio.sleep in reconnect scheduling."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)
