from __future__ import annotations

from typing import Annotated, Any

from pydantic import BeforeValidator


def _to_str(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


# The backend sends user and message ids as ints or strings interchangeably.
LooseId = Annotated[str, BeforeValidator(_to_str)]


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


# Attachment-only rows come back with a null message.
Text = Annotated[str, BeforeValidator(_none_to_empty)]
