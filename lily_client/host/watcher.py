"""
File system watcher for the console host.

This module provides:
- Watchdog-based workspace monitoring
- Mapping of created/modified/deleted events to WorkspaceEvent
- Moves reported as delete + create
- Thread-safe hand-off of events to the asyncio loop

Glob filtering is left to the event synchronizer.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from ..events import EventKind, WorkspaceEvent
from .base import WatchCallback

logger = logging.getLogger(__name__)


class WorkspaceEventHandler(FileSystemEventHandler):
    """
    Relay watchdog events from the observer thread to the event loop.

    Hidden files and directories (any path part starting with ".") and
    directory events are ignored.
    """

    def __init__(self, root: Path, on_event: WatchCallback, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.root = root
        self.on_event = on_event
        self.loop = loop

    def _is_relevant(self, path: str | bytes) -> bool:
        p = Path(os.fsdecode(path))
        try:
            parts = p.relative_to(self.root).parts
        except ValueError:
            parts = p.parts
        return not any(part.startswith(".") for part in parts)

    def _emit(self, kind: EventKind, path: str | bytes) -> None:
        event = WorkspaceEvent(kind=kind, path=Path(os.fsdecode(path)))
        try:
            self.loop.call_soon_threadsafe(self.on_event, event)
        except RuntimeError:
            # Loop already closed during shutdown
            logger.debug(f"Dropping {kind.value} {event.path}: event loop closed")

    def on_created(self, event: FileCreatedEvent) -> None:
        if event.is_directory or not self._is_relevant(event.src_path):
            return
        self._emit(EventKind.CREATED, event.src_path)

    def on_modified(self, event: FileModifiedEvent) -> None:
        if event.is_directory or not self._is_relevant(event.src_path):
            return
        self._emit(EventKind.CHANGED, event.src_path)

    def on_deleted(self, event: FileDeletedEvent) -> None:
        if event.is_directory or not self._is_relevant(event.src_path):
            return
        self._emit(EventKind.DELETED, event.src_path)

    def on_moved(self, event: FileMovedEvent) -> None:
        if event.is_directory:
            return
        if self._is_relevant(event.src_path):
            self._emit(EventKind.DELETED, event.src_path)
        if self._is_relevant(event.dest_path):
            self._emit(EventKind.CREATED, event.dest_path)


class WorkspaceWatcher:
    """A running observer; dispose() stops it."""

    def __init__(self, observer: Observer, handler: WorkspaceEventHandler):
        self.observer = observer
        self.handler = handler

    def dispose(self) -> None:
        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join()


def watch_workspace(
    root: Path,
    on_event: WatchCallback,
    loop: asyncio.AbstractEventLoop,
    recursive: bool = True,
) -> WorkspaceWatcher:
    """
    Start watching a workspace directory.

    Args:
        root: Directory to watch
        on_event: Called on the loop thread with each WorkspaceEvent
        loop: Loop that owns the client
        recursive: Whether to watch subdirectories

    Returns:
        WorkspaceWatcher - call dispose() to stop watching
    """
    handler = WorkspaceEventHandler(root, on_event, loop)
    observer = Observer()
    observer.schedule(handler, str(root), recursive=recursive)
    observer.start()
    logger.debug(f"Watching {root} (recursive={recursive})")
    return WorkspaceWatcher(observer, handler)
