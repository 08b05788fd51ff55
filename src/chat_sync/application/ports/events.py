from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    def emit(self, event: object) -> None: ...


class LoggingEventSink:
    """Fallback sink for headless sessions."""

    def emit(self, event: object) -> None:
        logger.info("Session event: %r", event)
