from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Contact:
    """A directory entry the user can start a conversation with."""

    user_id: str
    name: str
    email: str | None = None
    picture_ref: str | None = None
