"""
Error taxonomy for the language client.

Lifecycle failures (spawn, handshake) propagate to the caller of the
operation that hit them. Transport failures during normal traffic are
reported through callbacks and never restart anything on their own.
"""

from __future__ import annotations

from typing import Any


class LanguageClientError(Exception):
    """Base class for all language client errors."""


class SpawnError(LanguageClientError):
    """The server executable could not be found or started."""

    def __init__(self, executable: str, reason: str):
        self.executable = executable
        self.reason = reason
        super().__init__(f"Cannot start language server {executable!r}: {reason}")


class HandshakeError(LanguageClientError):
    """The server did not complete protocol initialization."""


class TransportLost(LanguageClientError):
    """The server's stream closed while the session was open."""

    def __init__(self, returncode: int | None = None):
        self.returncode = returncode
        detail = "exit status unknown" if returncode is None else f"exit status {returncode}"
        super().__init__(f"Language server connection lost ({detail})")


class SessionTerminated(LanguageClientError):
    """The session closed before a pending request was answered."""


class ResponseError(LanguageClientError):
    """The server answered a request with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.error_message = message
        self.data = data
        super().__init__(f"JSON-RPC error {code}: {message}")


class TransitionInProgressError(LanguageClientError):
    """A restart was requested while a start or stop is still running."""
