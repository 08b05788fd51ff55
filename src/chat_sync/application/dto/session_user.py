from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SessionUser:
    """Authenticated user the chat session runs for."""

    user_id: str
    name: str | None = None
    picture_ref: str | None = None
