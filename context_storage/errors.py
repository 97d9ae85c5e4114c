from __future__ import annotations

from typing import Any


class ContextStorageError(Exception):
    """
    Base class for every error raised by the context storage.

    Carries a human-readable message plus optional debugging details
    (never credentials).
    """

    def __init__(self, message: str, technical_details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.technical_details = technical_details or {}


class InvalidPathError(ContextStorageError, ValueError):
    """A property path could not be normalized. Raised before any store command is issued."""

    def __init__(self, message: str, path: object = None, position: int | None = None) -> None:
        super().__init__(message, {"path": path, "position": position})
        self.path = path
        self.position = position


class NotConnectedError(ContextStorageError):
    """An operation was attempted while no session is open."""


class TransportError(ContextStorageError):
    """Connection, authentication, TLS or command failure reported by Redis."""


class ProcedureMissingError(ContextStorageError):
    """A registered Lua procedure is unknown to the server even after re-registering it."""

    def __init__(self, message: str, handle: str | None = None) -> None:
        super().__init__(message, {"handle": handle})
        self.handle = handle


class DecodeError(ContextStorageError):
    """Stored data is not valid JSON. Only used internally; reads degrade to a missing value."""
