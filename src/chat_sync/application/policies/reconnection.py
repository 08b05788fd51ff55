from __future__ import annotations

from dataclasses import dataclass

MAX_ATTEMPTS = 5
BASE_DELAY_MS = 3000


@dataclass(frozen=True, slots=True)
class ReconnectDecision:
    reconnect: bool
    delay_ms: int = 0


def decide(
    attempts: int,
    was_clean: bool,
    *,
    max_attempts: int = MAX_ATTEMPTS,
    base_delay_ms: int = BASE_DELAY_MS,
) -> ReconnectDecision:
    """Decide whether a lost connection should be re-established.

    A clean close is intentional and never retried. Otherwise the delay
    doubles with every attempt until ``max_attempts`` is reached, after
    which the caller must give up and move to the terminal state.
    """
    if was_clean:
        return ReconnectDecision(reconnect=False)
    if attempts >= max_attempts:
        return ReconnectDecision(reconnect=False)
    return ReconnectDecision(reconnect=True, delay_ms=base_delay_ms * (2 ** attempts))
