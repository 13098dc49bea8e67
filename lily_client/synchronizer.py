"""
Forward workspace file events to the language server.

The subscription is made once at activation and survives restarts. Each
matching event observed while the controller is RUNNING becomes exactly
one workspace/didChangeWatchedFiles notification; anything observed in
another state is dropped, since a fresh server re-indexes on start.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import TYPE_CHECKING, Iterable

from lsprotocol import types as lsp

from .controller import SessionController
from .errors import LanguageClientError
from .events import ALL_KINDS, EventKind, WorkspaceEvent
from .globs import glob_match
from .transport.documents import path_to_uri

if TYPE_CHECKING:
    from .host.base import Disposable, HostContext

logger = logging.getLogger(__name__)


def _relative_posix(path: PurePath, root: Path | None) -> str:
    if root is not None:
        try:
            return PurePath(path).relative_to(root).as_posix()
        except ValueError:
            pass
    return PurePath(path).as_posix()


def matches_glob(path: PurePath, pattern: str, root: Path | None = None) -> bool:
    """
    Check a path against a watch glob.

    The path is taken relative to root when it lies under it. "*" stays
    within one path segment and "**" spans any number of them, so
    "**/*.lily" also matches files directly under the root.
    """
    return glob_match(_relative_posix(path, root), pattern)


@dataclass
class Subscription:
    """Standing interest in file events matching a glob."""

    pattern: str
    kinds: frozenset[EventKind]
    disposable: Disposable | None = None

    @property
    def active(self) -> bool:
        return self.disposable is not None

    def dispose(self) -> None:
        if self.disposable is not None:
            self.disposable.dispose()
            self.disposable = None


class EventSynchronizer:
    """Translate host file events into protocol notifications."""

    def __init__(
        self,
        controller: SessionController,
        pattern: str,
        *,
        root: Path | None = None,
        kinds: Iterable[EventKind] = ALL_KINDS,
    ):
        self._controller = controller
        self._root = root
        self.subscription = Subscription(pattern=pattern, kinds=frozenset(kinds))
        self.forwarded = 0
        self.dropped = 0

    def subscribe(self, host: HostContext) -> Subscription:
        """Ask the host for a watcher. Calling again keeps the existing one."""
        if not self.subscription.active:
            self.subscription.disposable = host.create_file_watcher(self.subscription.pattern, self.handle)
            logger.debug(f"Watching {self.subscription.pattern}")
        return self.subscription

    def dispose(self) -> None:
        self.subscription.dispose()

    def accepts(self, event: WorkspaceEvent) -> bool:
        return event.kind in self.subscription.kinds and matches_glob(
            event.path, self.subscription.pattern, self._root
        )

    def handle(self, event: WorkspaceEvent) -> bool:
        """
        Forward one event if it matches and a session is running.

        Returns:
            True if a notification was sent
        """
        if not self.accepts(event):
            return False

        params = lsp.DidChangeWatchedFilesParams(
            changes=[lsp.FileEvent(uri=path_to_uri(event.path), type=event.kind.change_type)]
        )
        try:
            sent = self._controller.forward(lsp.WORKSPACE_DID_CHANGE_WATCHED_FILES, params)
        except LanguageClientError as e:
            logger.warning(f"Could not forward {event.kind.value} {event.path}: {e}")
            self.dropped += 1
            return False

        if sent:
            self.forwarded += 1
            logger.debug(f"Forwarded {event.kind.value} {event.path}")
        else:
            self.dropped += 1
            logger.debug(f"Dropped {event.kind.value} {event.path} (session {self._controller.state.value})")
        return sent
