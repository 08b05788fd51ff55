from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from chat_sync.infrastructure.ws.protocol import HEARTBEAT

logger = logging.getLogger(__name__)

SendFrame = Callable[[dict[str, Any]], Awaitable[None]]


class KeepaliveTicker:
    """Sends a heartbeat frame at a fixed interval while running.

    No reply is expected; the frames only keep idle proxies from dropping
    the connection.
    """

    def __init__(self, send: SendFrame, interval: float) -> None:
        self._send = send
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="chat-keepalive")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._send(dict(HEARTBEAT))
            except Exception:
                logger.warning("Heartbeat send failed", exc_info=True)
