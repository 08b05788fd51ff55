from __future__ import annotations

import logging
import uuid
from contextvars import ContextVar, Token

session_id_ctx: ContextVar[str] = ContextVar("session_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(session_id)s]: %(message)s"


def bind_session_id(session_id: str | None = None) -> Token[str]:
    """Tag log records of the current context (and tasks it spawns)."""
    return session_id_ctx.set(session_id or uuid.uuid4().hex[:8])


class SessionIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = session_id_ctx.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler()
    handler.addFilter(SessionIdFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())
