from __future__ import annotations

import logging

from chat_sync.infrastructure.logging_context import (
    SessionIdFilter,
    bind_session_id,
    session_id_ctx,
)


def _record() -> logging.LogRecord:
    return logging.LogRecord("chat_sync", logging.INFO, __file__, 1, "msg", None, None)


def test_filter_tags_record_with_bound_session_id():
    token = bind_session_id("abc123")
    try:
        record = _record()
        assert SessionIdFilter().filter(record) is True
        assert record.session_id == "abc123"
    finally:
        session_id_ctx.reset(token)


def test_unbound_context_uses_placeholder():
    record = _record()
    SessionIdFilter().filter(record)
    assert record.session_id == "-"


def test_generated_session_id():
    token = bind_session_id()
    try:
        assert len(session_id_ctx.get()) == 8
    finally:
        session_id_ctx.reset(token)
