"""Pull side of the sync engine: periodic full-history fetches."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable

from chat_sync.application.exceptions import PersistenceError
from chat_sync.application.ports.chat_api import ChatApi
from chat_sync.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class HistoryFetcher:
    """Fetches everything visible to the user and merges it into the store.

    Two timers feed it: a slow baseline poll that only runs while the host
    is visible, and a fast poll while a conversation is open. A tick that
    finds a fetch still in flight is skipped.
    """

    def __init__(
        self,
        api: ChatApi,
        store: MessageStore,
        user_id: str,
        *,
        baseline_interval: float,
        active_interval: float,
        is_visible: Callable[[], bool] = lambda: True,
    ) -> None:
        self._api = api
        self._store = store
        self._user_id = user_id
        self._baseline_interval = baseline_interval
        self._active_interval = active_interval
        self._is_visible = is_visible
        self._baseline_task: asyncio.Task[None] | None = None
        self._active_task: asyncio.Task[None] | None = None
        self._in_flight = 0
        self._stopped = False

    @property
    def busy(self) -> bool:
        return self._in_flight > 0

    async def fetch_all(self) -> int:
        """Fetch and merge once. Returns the number of newly stored messages."""
        if self._stopped:
            return 0
        self._in_flight += 1
        try:
            messages = await self._api.get_messages(self._user_id)
        except PersistenceError as exc:
            logger.warning("History fetch failed: %s", exc.detail)
            return 0
        finally:
            self._in_flight -= 1

        if self._stopped:
            return 0
        added = self._store.merge(messages)
        if added:
            logger.debug("History fetch stored %d new messages", added)
        return added

    def start_baseline(self) -> None:
        if self._stopped or _running(self._baseline_task):
            return
        self._baseline_task = asyncio.create_task(
            self._poll(self._baseline_interval, foreground_only=True),
            name="chat-history-baseline",
        )

    def start_active(self) -> None:
        """(Re)start the fast poll for a newly opened conversation."""
        if self._stopped:
            return
        self.stop_active()
        self._active_task = asyncio.create_task(
            self._poll(self._active_interval, foreground_only=False),
            name="chat-history-active",
        )

    def stop_active(self) -> None:
        if self._active_task is not None:
            self._active_task.cancel()
            self._active_task = None

    async def stop(self) -> None:
        self._stopped = True
        tasks = [t for t in (self._baseline_task, self._active_task) if t is not None]
        self._baseline_task = self._active_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _poll(self, interval: float, *, foreground_only: bool) -> None:
        while True:
            await asyncio.sleep(interval)
            if foreground_only and not self._is_visible():
                continue
            if self.busy:
                logger.debug("Skipping history poll, previous fetch still running")
                continue
            try:
                await self.fetch_all()
            except Exception:
                logger.exception("History poll error")


def _running(task: asyncio.Task[None] | None) -> bool:
    return task is not None and not task.done()
