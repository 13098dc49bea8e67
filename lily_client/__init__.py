"""lily-client - lifecycle manager for the lily language server."""

__version__ = "0.1.0"

from .config import ClientConfig, load_config
from .controller import SessionController, SessionState
from .errors import (
    HandshakeError,
    LanguageClientError,
    SessionTerminated,
    SpawnError,
    TransitionInProgressError,
    TransportLost,
)
from .extension import activate, deactivate, get_client
from .synchronizer import EventSynchronizer

__all__ = [
    "ClientConfig",
    "EventSynchronizer",
    "HandshakeError",
    "LanguageClientError",
    "SessionController",
    "SessionState",
    "SessionTerminated",
    "SpawnError",
    "TransitionInProgressError",
    "TransportLost",
    "activate",
    "deactivate",
    "get_client",
    "load_config",
]
