from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ConflictError(AppError):
    pass


class ValidationError(AppError):
    pass


class InvalidTransitionError(ConflictError):
    pass


class TransportError(AppError):
    """Push channel could not be addressed or used."""


class PersistenceError(AppError):
    """The remote chat API call failed."""
