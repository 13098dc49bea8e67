"""
The boundary between the client core and whatever hosts it.

A host (an editor, the bundled console tool, a test double) implements
HostContext. The core only ever sees these protocols.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol

from ..controller import DiagnosticsSink
from ..events import WorkspaceEvent

CommandHandler = Callable[[], Awaitable[Any]]
WatchCallback = Callable[[WorkspaceEvent], Any]


class Disposable(Protocol):
    def dispose(self) -> None: ...


class CallbackDisposable:
    """Run a callback once on dispose."""

    def __init__(self, callback: Callable[[], None]):
        self._callback: Callable[[], None] | None = callback

    @property
    def disposed(self) -> bool:
        return self._callback is None

    def dispose(self) -> None:
        callback, self._callback = self._callback, None
        if callback is not None:
            callback()


class HostContext(Protocol):
    """Facilities a host hands to the client on activation."""

    workspace_root: Path | None
    subscriptions: list[Disposable]

    def register_command(self, command_id: str, handler: CommandHandler) -> Disposable: ...

    def create_file_watcher(self, glob: str, on_event: WatchCallback) -> Disposable: ...

    def create_diagnostics(self, label: str) -> DiagnosticsSink: ...

    def show_error(self, message: str) -> None: ...

    def show_info(self, message: str) -> None: ...


__all__ = [
    "CallbackDisposable",
    "CommandHandler",
    "DiagnosticsSink",
    "Disposable",
    "HostContext",
    "WatchCallback",
    "WorkspaceEvent",
]
