"""Connection state machine for one chat session."""
from __future__ import annotations

from dataclasses import dataclass

from chat_sync.application.exceptions import InvalidTransitionError
from chat_sync.domain.value_objects.enums import ConnectionStatus

_S = ConnectionStatus

TRANSITIONS: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    _S.DISCONNECTED: frozenset({_S.CONNECTING}),
    _S.CONNECTING: frozenset({_S.CONNECTED, _S.ERROR, _S.DISCONNECTED}),
    _S.CONNECTED: frozenset({_S.ERROR, _S.DISCONNECTED}),
    _S.ERROR: frozenset({_S.CONNECTING, _S.FAILED, _S.DISCONNECTED}),
    _S.FAILED: frozenset(),
}

STATUS_NOTICES: dict[ConnectionStatus, str] = {
    _S.DISCONNECTED: "Disconnected from chat server. Reconnecting...",
    _S.CONNECTING: "Connecting to chat server...",
    _S.ERROR: "Connection error. Retrying...",
    _S.FAILED: "Failed to connect to chat server. Please refresh the page.",
}


@dataclass(slots=True)
class ConnectionState:
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    attempts: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status == ConnectionStatus.FAILED

    @property
    def notice(self) -> str | None:
        """User-facing status line; None while connected."""
        return STATUS_NOTICES.get(self.status)

    def can_transition(self, target: ConnectionStatus) -> bool:
        return target in TRANSITIONS[self.status]

    def transition(self, target: ConnectionStatus) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(
                f"Illegal connection transition {self.status} -> {target}"
            )
        self.status = target
        if target == ConnectionStatus.CONNECTED:
            self.attempts = 0
