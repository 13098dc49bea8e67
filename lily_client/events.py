"""
Workspace file events as seen by the client.

Hosts translate their native notifications into WorkspaceEvent; the
event synchronizer turns them into protocol file-change notifications.
Renames are reported as a delete followed by a create.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from lsprotocol import types as lsp


class EventKind(str, Enum):
    """Types of file system events."""

    CREATED = "created"
    CHANGED = "changed"
    DELETED = "deleted"

    @property
    def change_type(self) -> lsp.FileChangeType:
        return _CHANGE_TYPES[self]


_CHANGE_TYPES = {
    EventKind.CREATED: lsp.FileChangeType.Created,
    EventKind.CHANGED: lsp.FileChangeType.Changed,
    EventKind.DELETED: lsp.FileChangeType.Deleted,
}

ALL_KINDS: frozenset[EventKind] = frozenset(EventKind)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class WorkspaceEvent:
    """A single file system event."""

    kind: EventKind
    path: Path
    timestamp: str = field(default_factory=_now, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "path": str(self.path), "timestamp": self.timestamp}
