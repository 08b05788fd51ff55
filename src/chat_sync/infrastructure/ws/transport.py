"""aiohttp WebSocket implementation of the push channel."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
from aiohttp import WSCloseCode, WSMsgType

from chat_sync.application.exceptions import TransportError
from chat_sync.application.ports.transport import OnClose, OnError, OnMessage, OnOpen

logger = logging.getLogger(__name__)


class TransportChannel:
    """Implements application.ports.transport.Transport.

    One instance wraps one connection attempt; reconnecting means building
    a new channel.
    """

    def __init__(
        self,
        *,
        on_open: OnOpen,
        on_message: OnMessage,
        on_close: OnClose,
        on_error: OnError,
        connect_timeout: float = 10.0,
    ) -> None:
        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._on_error = on_error
        self._connect_timeout = connect_timeout
        self._http: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def open(self, url: str) -> None:
        if self._http is not None:
            raise TransportError("Transport channel already used")
        self._http = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=self._connect_timeout),
        )
        try:
            self._ws = await self._http.ws_connect(url)
        except asyncio.CancelledError:
            await self._release()
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as exc:
            await self._release()
            logger.warning("Push channel connect to %s failed: %s", url, exc)
            self._on_error(exc)
            return

        logger.info("Push channel connected to %s", url)
        self._reader = asyncio.create_task(self._read_loop(self._ws), name="chat-ws-reader")
        self._on_open()

    async def send(self, payload: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            raise TransportError("Push channel is not open")
        try:
            await ws.send_json(payload)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as exc:
            raise TransportError(f"Push send failed: {exc}") from exc

    async def close(self) -> None:
        """Close with a normal closure code; the peer sees a clean close."""
        self._closing = True
        if self._ws is not None and not self._ws.closed:
            await self._ws.close(code=WSCloseCode.OK)
        if self._reader is not None and self._reader is not asyncio.current_task():
            await self._reader
        await self._release()

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        was_clean = False
        reason = ""
        try:
            while True:
                msg = await ws.receive()
                if msg.type == WSMsgType.TEXT:
                    self._dispatch(msg.data)
                elif msg.type == WSMsgType.BINARY:
                    self._dispatch(msg.data.decode("utf-8", errors="replace"))
                elif msg.type == WSMsgType.CLOSE:
                    was_clean = True
                    reason = msg.extra or ""
                    break
                elif msg.type == WSMsgType.ERROR:
                    self._on_error(ws.exception() or TransportError("Push channel error"))
                    break
                else:
                    # CLOSING / CLOSED: our own close() or a dropped connection
                    was_clean = self._closing
                    break
        finally:
            if not ws.closed and not self._closing:
                await ws.close()
            code = ws.close_code
            logger.info("Push channel closed (code=%s, clean=%s)", code, was_clean)
            self._on_close(code, reason, was_clean)
            if not self._closing:
                await self._release()

    def _dispatch(self, raw: str) -> None:
        try:
            self._on_message(raw)
        except Exception:
            logger.exception("Push message handler failed")

    async def _release(self) -> None:
        if self._http is not None and not self._http.closed:
            await self._http.close()
