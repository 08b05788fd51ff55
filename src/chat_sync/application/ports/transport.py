from __future__ import annotations

from typing import Any, Callable, Protocol

OnOpen = Callable[[], None]
OnMessage = Callable[[str], None]
OnClose = Callable[[int | None, str, bool], None]
OnError = Callable[[BaseException], None]


class Transport(Protocol):
    """One full-duplex push connection.

    ``open`` reports a failure through ``on_error`` and returns without
    raising; no ``on_close`` follows. Once opened, exactly one ``on_close``
    is reported, preceded by ``on_error`` when the loss was caused by one.
    """

    @property
    def is_open(self) -> bool: ...

    async def open(self, url: str) -> None: ...

    async def send(self, payload: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class TransportFactory(Protocol):
    def __call__(
        self,
        *,
        on_open: OnOpen,
        on_message: OnMessage,
        on_close: OnClose,
        on_error: OnError,
    ) -> Transport: ...
